"""
Job listing provider interface and the fixed fallback listing set.
"""

from abc import ABC, abstractmethod
from functools import lru_cache
from pathlib import Path
from typing import Optional

import yaml
from loguru import logger

from shared.models import JobListing

FALLBACK_LISTINGS_PATH = Path(__file__).parent / "data" / "fallback_listings.yaml"


class ListingProvider(ABC):
    """Source of job listings for the matcher pipeline."""

    name: str = "base"

    @abstractmethod
    async def fetch(
        self,
        suggested_roles: list[str],
        seniority: str = "",
        location: Optional[str] = None,
    ) -> list[JobListing]:
        """Listings for the given roles. May raise ProviderError."""

    async def close(self) -> None:
        pass


@lru_cache
def _load_fallback(path: Path) -> tuple[JobListing, ...]:
    with open(path) as f:
        data = yaml.safe_load(f) or {}

    listings = tuple(JobListing.model_validate(item) for item in data.get("listings", []))
    logger.debug(f"Loaded {len(listings)} fallback listings from {path.name}")
    return listings


def fallback_listings(path: Path = FALLBACK_LISTINGS_PATH) -> list[JobListing]:
    """Fresh copies of the fixed fallback listing set."""
    return [listing.model_copy(deep=True) for listing in _load_fallback(path)]


class FallbackListingProvider(ListingProvider):
    """Always returns the fallback set. Used when no provider is configured."""

    name = "fallback"

    async def fetch(
        self,
        suggested_roles: list[str],
        seniority: str = "",
        location: Optional[str] = None,
    ) -> list[JobListing]:
        return fallback_listings()

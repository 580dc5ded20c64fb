"""Job listing providers."""

from typing import Optional

from loguru import logger

from shared.config import Settings, get_settings

from .apify_client import ApifyListingProvider
from .base import FallbackListingProvider, ListingProvider, fallback_listings


def build_listing_provider(settings: Optional[Settings] = None) -> ListingProvider:
    """Apify when a token is configured, otherwise the fixed fallback set."""
    settings = settings or get_settings()
    if settings.apify_api_token.get_secret_value():
        return ApifyListingProvider(settings)
    logger.warning("APIFY_API_TOKEN not set - using fallback job listings")
    return FallbackListingProvider()


__all__ = [
    "ApifyListingProvider",
    "FallbackListingProvider",
    "ListingProvider",
    "build_listing_provider",
    "fallback_listings",
]

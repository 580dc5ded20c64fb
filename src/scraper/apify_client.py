"""
Apify-backed job listing provider.
Uses the LinkedIn jobs actor (bebity/linkedin-jobs-scraper) through the
run-sync-get-dataset-items endpoint.
"""

import re
from typing import Optional

import httpx
from loguru import logger
from pydantic import BaseModel, ConfigDict, Field, ValidationError

from shared.config import Settings, get_settings
from shared.errors import ProviderError, RateLimitError
from shared.models import JobListing

from .base import ListingProvider

# LinkedIn experience levels -> seniority labels understood by the matcher
LINKEDIN_LEVELS = {
    "internship": "Entry-level",
    "entry level": "Entry-level",
    "associate": "Junior",
    "mid-senior level": "Senior",
    "director": "Lead",
    "executive": "Principal",
}

BULLET_RE = re.compile(r"^\s*(?:[-*•]|\d+[.)])\s+(.+)$")
REQUIREMENT_HEADINGS = ("requirement", "qualification", "skills", "what you bring", "you have")


class ApifyJobItem(BaseModel):
    """Raw item from the LinkedIn jobs actor dataset."""

    model_config = ConfigDict(populate_by_name=True)

    id: Optional[str] = None
    title: Optional[str] = None
    company: Optional[str] = Field(default=None, alias="companyName")
    location: Optional[str] = None
    description: Optional[str] = None
    url: Optional[str] = Field(default=None, alias="jobUrl")
    salary: Optional[str] = None
    contract_type: Optional[str] = Field(default=None, alias="contractType")
    experience_level: Optional[str] = Field(default=None, alias="experienceLevel")
    published_at: Optional[str] = Field(default=None, alias="publishedAt")

    def to_listing(self) -> JobListing:
        requirements, responsibilities = split_description(self.description or "")
        level = (self.experience_level or "").strip().lower()
        return JobListing(
            title=self.title or "",
            company=self.company or "",
            location=self.location or "",
            salary_range=self.salary or "",
            job_type=self.contract_type or "",
            seniority=LINKEDIN_LEVELS.get(level, self.experience_level or ""),
            requirements=requirements,
            responsibilities=responsibilities,
            posted_at=self.published_at or "",
            link=self.url or "",
            job_description=self.description or "",
        )


def split_description(description: str) -> tuple[list[str], list[str]]:
    """
    Split bullet points of a free-text description into requirements and
    responsibilities. Bullets under a requirements-like heading count as
    requirements, all others as responsibilities.
    """
    requirements: list[str] = []
    responsibilities: list[str] = []
    in_requirements = False

    for line in description.splitlines():
        stripped = line.strip()
        if not stripped:
            continue
        match = BULLET_RE.match(stripped)
        if match:
            (requirements if in_requirements else responsibilities).append(match.group(1).strip())
        elif len(stripped) < 60:
            heading = stripped.lower()
            in_requirements = any(word in heading for word in REQUIREMENT_HEADINGS)

    return requirements, responsibilities


class ApifyListingProvider(ListingProvider):
    """Client for the Apify LinkedIn Jobs Scraper API."""

    name = "apify"

    def __init__(self, settings: Optional[Settings] = None, max_roles: int = 3):
        self.settings = settings or get_settings()
        self.base_url = self.settings.apify_base_url
        self.actor_id = self.settings.apify_actor_id
        self.max_roles = max_roles
        self._client: Optional[httpx.AsyncClient] = None

    @property
    def headers(self) -> dict[str, str]:
        """Get request headers with auth token."""
        return {
            "Authorization": f"Bearer {self.settings.apify_api_token.get_secret_value()}",
            "Content-Type": "application/json",
        }

    async def _get_client(self) -> httpx.AsyncClient:
        """Get or create HTTP client."""
        if self._client is None or self._client.is_closed:
            self._client = httpx.AsyncClient(timeout=self.settings.apify_timeout_seconds)
        return self._client

    async def close(self) -> None:
        """Close HTTP client."""
        if self._client and not self._client.is_closed:
            await self._client.aclose()

    async def run_actor_sync(self, title: str, location: str, max_jobs: int) -> list[JobListing]:
        """Run the actor for one title and return its dataset items as listings."""
        client = await self._get_client()
        actor_input = {
            "title": title,
            "location": location,
            "rows": max_jobs,
        }
        sync_url = f"{self.base_url}/acts/{self.actor_id}/run-sync-get-dataset-items"
        logger.info(f"Apify search: '{title}' in {location} (max {max_jobs})")

        try:
            response = await client.post(
                sync_url,
                headers=self.headers,
                json=actor_input,
                params={"timeout": int(self.settings.apify_timeout_seconds)},
            )
            response.raise_for_status()
        except httpx.HTTPStatusError as e:
            if e.response.status_code == 429:
                raise RateLimitError("Apify rate limit exceeded") from e
            raise ProviderError(f"Apify returned HTTP {e.response.status_code}") from e
        except httpx.HTTPError as e:
            raise ProviderError(f"Apify request failed: {e}") from e

        try:
            items = response.json()
        except ValueError as e:
            raise ProviderError("Apify returned invalid JSON") from e
        if not isinstance(items, list):
            raise ProviderError("Unexpected Apify response payload")
        return self._parse_results(items)

    def _parse_results(self, items: list[dict]) -> list[JobListing]:
        listings = []
        for item in items:
            try:
                parsed = ApifyJobItem.model_validate(item)
            except ValidationError as e:
                logger.warning(f"Failed to parse job item: {e}")
                continue
            if parsed.title and parsed.company:
                listings.append(parsed.to_listing())
        return listings

    async def fetch(
        self,
        suggested_roles: list[str],
        seniority: str = "",
        location: Optional[str] = None,
    ) -> list[JobListing]:
        """Search each suggested role in turn, deduplicated by link."""
        location = location or self.settings.listing_location
        listings: list[JobListing] = []
        seen: set[str] = set()

        for role in suggested_roles[: self.max_roles]:
            results = await self.run_actor_sync(role, location, self.settings.listing_max_results)
            new_count = 0
            for listing in results:
                key = listing.link or f"{listing.title}|{listing.company}"
                if key in seen:
                    continue
                seen.add(key)
                listings.append(listing)
                new_count += 1
            logger.info(f"    Found {len(results)} jobs, {new_count} new (deduplicated)")

        logger.info(f"Apify search complete: {len(listings)} unique listings")
        return listings

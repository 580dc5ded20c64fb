"""
Listing providers: Apify adapter (mocked transport) and the fallback set.
"""

import asyncio
import json

import httpx
import pytest

from scraper import ApifyListingProvider, FallbackListingProvider, build_listing_provider, fallback_listings
from scraper.apify_client import ApifyJobItem, split_description
from shared.config import Settings
from shared.errors import ProviderError, RateLimitError

DESCRIPTION = """About the role
We build payment systems.

Responsibilities
- Design and build backend services
- Review code

Requirements
- 3+ years with Python
* PostgreSQL
"""

ITEMS = [
    {
        "id": "1",
        "title": "Backend Engineer",
        "companyName": "Acme",
        "location": "Jakarta",
        "jobUrl": "https://example.com/jobs/1",
        "experienceLevel": "Mid-Senior level",
        "contractType": "Full-time",
        "publishedAt": "2025-11-01",
        "description": DESCRIPTION,
    },
    {"id": "2", "title": "No Company"},
    {"id": "3", "title": "Platform Engineer", "companyName": "Initech", "jobUrl": "https://example.com/jobs/3"},
]


def apify_settings(**kwargs) -> Settings:
    return Settings(_env_file=None, apify_api_token="token-123", **kwargs)


def provider_with(handler) -> ApifyListingProvider:
    provider = ApifyListingProvider(apify_settings())
    provider._client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
    return provider


def test_split_description():
    requirements, responsibilities = split_description(DESCRIPTION)
    assert requirements == ["3+ years with Python", "PostgreSQL"]
    assert responsibilities == ["Design and build backend services", "Review code"]


def test_item_to_listing():
    listing = ApifyJobItem.model_validate(ITEMS[0]).to_listing()

    assert listing.company == "Acme"
    assert listing.link == "https://example.com/jobs/1"
    assert listing.seniority == "Senior"
    assert listing.job_type == "Full-time"
    assert listing.requirements == ["3+ years with Python", "PostgreSQL"]


def test_fetch_queries_each_role_and_deduplicates():
    requests = []

    def handler(request: httpx.Request) -> httpx.Response:
        requests.append(json.loads(request.content))
        assert request.headers["Authorization"] == "Bearer token-123"
        assert request.url.path.endswith("/run-sync-get-dataset-items")
        return httpx.Response(200, json=ITEMS)

    async def scenario():
        provider = provider_with(handler)
        try:
            return await provider.fetch(["Backend Engineer", "Python Developer"], "Senior", "Indonesia")
        finally:
            await provider.close()

    listings = asyncio.run(scenario())

    assert [listing.title for listing in listings] == ["Backend Engineer", "Platform Engineer"]
    assert [r["title"] for r in requests] == ["Backend Engineer", "Python Developer"]
    assert requests[0]["location"] == "Indonesia"
    assert requests[0]["rows"] == 10


def test_only_first_roles_are_searched():
    requests = []

    def handler(request: httpx.Request) -> httpx.Response:
        requests.append(request)
        return httpx.Response(200, json=[])

    async def scenario():
        provider = provider_with(handler)
        await provider.fetch(["A", "B", "C", "D", "E"])
        await provider.close()

    asyncio.run(scenario())
    assert len(requests) == 3


@pytest.mark.parametrize(
    "response, error",
    [
        (httpx.Response(429), RateLimitError),
        (httpx.Response(503), ProviderError),
        (httpx.Response(200, json={"error": "bad input"}), ProviderError),
    ],
)
def test_http_failures_become_provider_errors(response, error):
    async def scenario():
        provider = provider_with(lambda request: response)
        try:
            await provider.fetch(["Backend Engineer"])
        finally:
            await provider.close()

    with pytest.raises(error):
        asyncio.run(scenario())


def test_connection_failure_is_a_provider_error():
    def handler(request):
        raise httpx.ConnectError("connection refused")

    async def scenario():
        provider = provider_with(handler)
        try:
            await provider.fetch(["Backend Engineer"])
        finally:
            await provider.close()

    with pytest.raises(ProviderError):
        asyncio.run(scenario())


def test_fallback_listings():
    listings = fallback_listings()

    assert [listing.company for listing in listings] == [
        "Tokopedia",
        "GoTo Financial",
        "Traveloka",
        "Bukalapak",
        "Mekari",
    ]
    assert all(listing.requirements and listing.responsibilities for listing in listings)

    # Callers get copies
    listings[0].requirements.append("Mutated")
    assert "Mutated" not in fallback_listings()[0].requirements


def test_fallback_provider():
    listings = asyncio.run(FallbackListingProvider().fetch(["Anything"]))
    assert len(listings) == 5


def test_build_listing_provider():
    assert isinstance(build_listing_provider(apify_settings()), ApifyListingProvider)
    assert isinstance(build_listing_provider(Settings(_env_file=None, apify_api_token="")), FallbackListingProvider)

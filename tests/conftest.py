"""
Fixtures shared across the test suite. Fakes live in ``fakes.py``.
"""

import pytest

from documents import MemoryDocumentRepository
from shared.config import Settings
from shared.database import MemoryJobStore


@pytest.fixture
def settings():
    return Settings(
        _env_file=None,
        store_backend="memory",
        openai_api_key="",
        environment="production",
        queue_backoff_delay=0.01,
    )


@pytest.fixture
def store():
    return MemoryJobStore()


@pytest.fixture
def documents():
    return MemoryDocumentRepository()

"""Shared pytest fixtures and configuration."""

import os
import pytest
from unittest.mock import AsyncMock, Mock
from datetime import datetime, timedelta, timezone

# Set test environment variables
os.environ.setdefault("ENVIRONMENT", "test")
os.environ.setdefault("SUPABASE_URL", "https://test.supabase.co")
os.environ.setdefault("SUPABASE_SERVICE_ROLE_KEY", "test-key")
os.environ.setdefault("FOODSHARE_STORE_BACKEND", "memory")
os.environ.setdefault("LOG_FORMAT", "text")

from foodshare.services.claim_ledger import ClaimLedger
from foodshare.services.claim_service import ClaimService, reset_services
from foodshare.services.delivery import DeliveryService
from foodshare.services.notifications import LoggingNotificationDispatcher
from foodshare.services.reconciliation import ReconciliationEngine
from foodshare.services.store import InMemoryClaimStore, InMemoryListingStore
from tests.utils.factories import make_listing

NOW = datetime(2024, 12, 9, 12, 0, tzinfo=timezone.utc)


@pytest.fixture
def now():
    """Fixed 'current' instant passed explicitly to services."""
    return NOW


@pytest.fixture
def mock_supabase_client():
    """Mock Supabase client for testing."""
    client = Mock()
    client.table = Mock(return_value=Mock())
    return client


@pytest.fixture
def listing_store():
    return InMemoryListingStore()


@pytest.fixture
def claim_store():
    return InMemoryClaimStore()


@pytest.fixture
def ledger(claim_store):
    return ClaimLedger(claim_store)


@pytest.fixture
def engine(listing_store, ledger):
    return ReconciliationEngine(listing_store, ledger)


@pytest.fixture
def dispatcher():
    return LoggingNotificationDispatcher()


@pytest.fixture
def claim_service(listing_store, claim_store, dispatcher):
    return ClaimService(listing_store, claim_store, dispatcher)


@pytest.fixture
def delivery_service(claim_store, dispatcher):
    return DeliveryService(claim_store, dispatcher)


@pytest.fixture
def mock_dispatcher():
    """Dispatcher whose hooks are AsyncMocks."""
    dispatcher = Mock()
    dispatcher.on_reconciled = AsyncMock()
    dispatcher.on_claim_reviewed = AsyncMock()
    dispatcher.on_delivery_requested = AsyncMock()
    dispatcher.on_delivery_assigned = AsyncMock()
    dispatcher.on_delivery_completed = AsyncMock()
    return dispatcher


@pytest.fixture
def seed_listing(listing_store):
    """Insert a listing built by make_listing and return it."""

    async def _seed(**overrides):
        overrides.setdefault("expiry_timestamp", NOW + timedelta(days=1))
        return await listing_store.insert_listing(make_listing(**overrides))

    return _seed


@pytest.fixture
def mock_vercel_request():
    """Mock Vercel serverless function request."""
    return {
        "method": "POST",
        "path": "/api/claims/submit",
        "headers": {"content-type": "application/json"},
        "body": "{}",
        "query": {},
    }


@pytest.fixture(autouse=True)
def reset_service_singletons():
    """Each test gets fresh memory-backed stores behind the API handlers."""
    reset_services()
    yield
    reset_services()


@pytest.fixture(scope="function")
def reset_environment(monkeypatch):
    """Reset environment variables for each test."""
    original_env = os.environ.copy()
    yield
    os.environ.clear()
    os.environ.update(original_env)

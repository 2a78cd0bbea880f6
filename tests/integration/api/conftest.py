from collections.abc import Iterator
from datetime import UTC, datetime

import pytest
from fastapi.testclient import TestClient

from src.adapters.auth.identity import JWTIdentityAdapter
from src.adapters.clock import FrozenClock
from src.adapters.memory_store import InMemoryDocumentStore
from src.adapters.payment_stub import PaymentStubAdapter
from src.api.deps import get_clock, get_identity_adapter, get_payments, get_store
from src.api.main import app

SECRET = "api-test-secret"
WEBHOOK_SECRET = "whsec_api_test"


@pytest.fixture
def api_store() -> InMemoryDocumentStore:
    store = InMemoryDocumentStore()
    store.set(
        "bundles",
        "b1",
        {
            "title": "Starter pack",
            "creatorId": "creator-1",
            "priceMinorUnits": 1500,
            "contentItems": ["c1"],
            "detailedContentItems": [
                {
                    "id": "c1",
                    "title": "Intro.mp4",
                    "fileUrl": "https://cdn.example.com/c1.mp4",
                    "mimeType": "video/mp4",
                    "fileSize": 2048,
                }
            ],
        },
    )
    store.set("users", "creator-1", {"displayName": "Ada"})
    return store


@pytest.fixture
def payments() -> PaymentStubAdapter:
    return PaymentStubAdapter(webhook_secret=WEBHOOK_SECRET)


@pytest.fixture
def identity() -> JWTIdentityAdapter:
    return JWTIdentityAdapter(SECRET)


@pytest.fixture
def api_clock() -> FrozenClock:
    return FrozenClock(datetime(2024, 6, 1, 12, 0, tzinfo=UTC))


@pytest.fixture
def client(
    api_store: InMemoryDocumentStore,
    payments: PaymentStubAdapter,
    identity: JWTIdentityAdapter,
    api_clock: FrozenClock,
) -> Iterator[TestClient]:
    app.dependency_overrides[get_store] = lambda: api_store
    app.dependency_overrides[get_payments] = lambda: payments
    app.dependency_overrides[get_identity_adapter] = lambda: identity
    app.dependency_overrides[get_clock] = lambda: api_clock
    # No context manager: the lifespan (rules + SQLite migration) is not needed here
    yield TestClient(app)
    app.dependency_overrides.clear()


@pytest.fixture
def auth_headers(identity: JWTIdentityAdapter):
    def _headers(user_id: str) -> dict[str, str]:
        return {"Authorization": f"Bearer {identity.create_token(user_id)}"}

    return _headers

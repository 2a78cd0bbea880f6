from typing import Protocol

from src.adapters.auth.identity import JWTIdentityAdapter
from src.adapters.clock import FrozenClock, SystemClock
from src.adapters.memory_store import InMemoryDocumentStore
from src.adapters.payment_stub import PaymentStubAdapter
from src.adapters.sqlite.document_store import SQLiteDocumentStore
from src.adapters.stripe_payments import StripePaymentAdapter
from src.core.ports import DocumentStorePort, IdentityPort, PaymentProviderPort, TimePort


def test_ports_are_protocols():
    """Verify all defined ports inherit from Protocol."""
    assert issubclass(DocumentStorePort, Protocol)
    assert issubclass(IdentityPort, Protocol)
    assert issubclass(PaymentProviderPort, Protocol)
    assert issubclass(TimePort, Protocol)


def _implements(adapter: type, port: type) -> bool:
    members = [
        name
        for name, value in vars(port).items()
        if callable(value) and not name.startswith("_")
    ]
    return all(callable(getattr(adapter, name, None)) for name in members)


def test_adapters_implement_ports():
    assert _implements(InMemoryDocumentStore, DocumentStorePort)
    assert _implements(SQLiteDocumentStore, DocumentStorePort)
    assert _implements(PaymentStubAdapter, PaymentProviderPort)
    assert _implements(StripePaymentAdapter, PaymentProviderPort)
    assert _implements(JWTIdentityAdapter, IdentityPort)
    assert _implements(SystemClock, TimePort)
    assert _implements(FrozenClock, TimePort)

import logging
import os
from functools import lru_cache
from pathlib import Path
from typing import Annotated

from fastapi import Depends, HTTPException, Request, status
from fastapi.security import OAuth2PasswordBearer

from src.adapters.auth.identity import JWTIdentityAdapter
from src.adapters.clock import SystemClock
from src.adapters.payment_stub import PaymentStubAdapter
from src.adapters.sqlite.document_store import SQLiteDocumentStore
from src.adapters.stripe_payments import StripePaymentAdapter
from src.components.fulfillment import FulfillmentVerifier
from src.components.fulfillment import load_config_from_rules as load_fulfillment_config
from src.components.normalizer import NormalizerConfig
from src.components.normalizer import load_config_from_rules as load_normalizer_config
from src.components.purchases import PurchaseRecorder
from src.components.purchases import load_config_from_rules as load_purchases_config
from src.components.reconcile import ReconcileConfig
from src.components.reconcile import load_config_from_rules as load_reconcile_config
from src.components.tiers import TierConfig
from src.components.tiers import load_config_from_rules as load_tiers_config
from src.core.ports.db import DocumentStorePort
from src.core.ports.identity import IdentityPort, VerifiedIdentity
from src.core.ports.payment import PaymentProviderPort
from src.core.ports.time import TimePort
from src.rules.loader import load_rules
from src.rules.models import Rules

logger = logging.getLogger(__name__)


# --- Settings ---
class Settings:
    def __init__(self) -> None:
        self.base_dir = Path(os.getcwd())
        self.data_dir = Path(os.environ.get("BUNDLES_DATA_DIR", "./data"))
        self.db_path = str(self.data_dir / "bundles.db")
        self.rules_path = self.base_dir / "rules.yaml"
        self.migrations_dir = self.base_dir / "migrations"
        self.secret_key = os.environ.get("BUNDLES_SECRET_KEY", "dev-secret-change-me")
        self.stripe_secret_key = os.environ.get("STRIPE_SECRET_KEY", "")
        self.stripe_webhook_secret = os.environ.get("STRIPE_WEBHOOK_SECRET", "")
        # "stripe" or "stub"
        self.payment_backend = os.environ.get("BUNDLES_PAYMENT_BACKEND", "stripe")


@lru_cache
def get_settings() -> Settings:
    return Settings()


# --- Rules ---
@lru_cache
def get_rules() -> Rules:
    return load_rules(get_settings().rules_path)


def get_normalizer_config(rules: Rules = Depends(get_rules)) -> NormalizerConfig:
    return load_normalizer_config(rules)


def get_tier_config(rules: Rules = Depends(get_rules)) -> TierConfig:
    return load_tiers_config(rules)


def get_reconcile_config(rules: Rules = Depends(get_rules)) -> ReconcileConfig:
    return load_reconcile_config(rules)


# --- Adapters ---
def get_store(settings: Settings = Depends(get_settings)) -> DocumentStorePort:
    return SQLiteDocumentStore(settings.db_path)


_clock_instance: SystemClock | None = None


def get_clock() -> TimePort:
    """Get clock singleton."""
    global _clock_instance
    if _clock_instance is None:
        _clock_instance = SystemClock()
    return _clock_instance


_stub_payments: PaymentStubAdapter | None = None


def get_payments(settings: Settings = Depends(get_settings)) -> PaymentProviderPort:
    if settings.payment_backend == "stub":
        global _stub_payments
        if _stub_payments is None:
            logger.warning("Using stub payment backend; no real payments are verified")
            _stub_payments = PaymentStubAdapter()
        return _stub_payments
    return StripePaymentAdapter(settings.stripe_secret_key, settings.stripe_webhook_secret)


def get_identity_adapter(settings: Settings = Depends(get_settings)) -> IdentityPort:
    return JWTIdentityAdapter(settings.secret_key)


# --- Components ---
def get_recorder(
    store: DocumentStorePort = Depends(get_store),
    clock: TimePort = Depends(get_clock),
    rules: Rules = Depends(get_rules),
) -> PurchaseRecorder:
    return PurchaseRecorder(store, clock, load_purchases_config(rules))


def get_verifier(
    recorder: PurchaseRecorder = Depends(get_recorder),
    payments: PaymentProviderPort = Depends(get_payments),
    clock: TimePort = Depends(get_clock),
    rules: Rules = Depends(get_rules),
) -> FulfillmentVerifier:
    return FulfillmentVerifier(recorder, payments, clock, load_fulfillment_config(rules))


# --- Auth ---
oauth2_scheme = OAuth2PasswordBearer(tokenUrl="/api/auth/token", auto_error=False)


def get_optional_identity(
    request: Request,
    token: Annotated[str | None, Depends(oauth2_scheme)],
    identity: IdentityPort = Depends(get_identity_adapter),
) -> VerifiedIdentity | None:
    """Identity behind the bearer header or ``access_token`` cookie, if valid."""
    cookie_token = request.cookies.get("access_token")
    if not token and cookie_token and cookie_token.startswith("Bearer "):
        token = cookie_token.split(" ", 1)[1]
    if not token:
        return None
    return identity.verify(token)


def get_current_identity(
    current: VerifiedIdentity | None = Depends(get_optional_identity),
) -> VerifiedIdentity:
    if current is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Not authenticated",
            headers={"WWW-Authenticate": "Bearer"},
        )
    return current

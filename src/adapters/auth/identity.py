"""
JWT identity adapter.

Verifies HS256 bearer tokens issued by the auth service. Token issuance
lives outside this service; ``create_token`` exists for dev tooling and
tests.
"""

from __future__ import annotations

import logging
from datetime import UTC, datetime, timedelta
from typing import Any

from jose import JWTError, jwt

from src.core.ports.identity import VerifiedIdentity

logger = logging.getLogger(__name__)

ALGORITHM = "HS256"


class JWTIdentityAdapter:
    """IdentityPort backed by python-jose."""

    def __init__(self, secret_key: str, algorithm: str = ALGORITHM):
        self.secret_key = secret_key
        self.algorithm = algorithm

    def verify(self, credential: str) -> VerifiedIdentity | None:
        try:
            payload: dict[str, Any] = jwt.decode(
                credential, self.secret_key, algorithms=[self.algorithm]
            )
        except JWTError as e:
            logger.info("Rejected bearer token: %s", e)
            return None

        user_id = payload.get("sub")
        if not user_id or not isinstance(user_id, str):
            return None
        return VerifiedIdentity(user_id=user_id, email=str(payload.get("email") or ""))

    def create_token(
        self,
        user_id: str,
        email: str = "",
        expires_delta: timedelta | None = None,
        now_utc: datetime | None = None,
    ) -> str:
        current_time = now_utc if now_utc is not None else datetime.now(UTC)
        expire = current_time + (expires_delta or timedelta(minutes=15))
        claims: dict[str, Any] = {"sub": user_id, "exp": expire}
        if email:
            claims["email"] = email
        token: str = jwt.encode(claims, self.secret_key, algorithm=self.algorithm)
        return token

# app/core/security.py
from __future__ import annotations

import uuid
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from enum import Enum
from typing import Any, Dict, Optional

from jose import JWTError, jwt

from app.core.config import settings

ROLES = ("provider", "patient", "admin")


@dataclass(frozen=True)
class Principal:
    """Caller identity taken from a verified access token."""

    id: uuid.UUID
    role: str
    email: Optional[str] = None

    @property
    def is_provider(self) -> bool:
        return self.role == "provider"

    @property
    def is_patient(self) -> bool:
        return self.role == "patient"

    @property
    def is_admin(self) -> bool:
        return self.role == "admin"


# =====
# JWTs
# =====
# Tokens are issued by the identity service; the API only decodes them.
# create_access_token exists for local tooling and tests.


class TokenType(str, Enum):
    ACCESS = "access"
    REFRESH = "refresh"


class InvalidTokenError(Exception):
    """Raised when a token is missing/invalid/expired or claims are malformed."""


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def create_access_token(
    principal: Principal,
    *,
    expires_minutes: Optional[int] = None,
    extra_claims: Optional[Dict[str, Any]] = None,
) -> str:
    now = _utcnow()
    ttl = timedelta(minutes=expires_minutes or settings.ACCESS_EXPIRES_MIN)
    claims: Dict[str, Any] = {
        "sub": str(principal.id),
        "role": principal.role,
        "type": TokenType.ACCESS.value,
        "iat": int(now.timestamp()),
        "exp": int((now + ttl).timestamp()),
        "jti": uuid.uuid4().hex,
    }
    if principal.email:
        claims["email"] = principal.email
    if extra_claims:
        claims.update(extra_claims)
    return jwt.encode(claims, settings.JWT_SECRET, algorithm=settings.JWT_ALGORITHM)


def decode_token(token: str) -> Dict[str, Any]:
    """
    Verify signature and expiry. Raises InvalidTokenError on failure.
    """
    if not token:
        raise InvalidTokenError("missing_token")
    try:
        payload = jwt.decode(token, settings.JWT_SECRET, algorithms=[settings.JWT_ALGORITHM])
    except JWTError as exc:
        raise InvalidTokenError("invalid_token") from exc

    if "sub" not in payload or "type" not in payload:
        raise InvalidTokenError("invalid_claims")
    return payload


def is_access_token(payload: Dict[str, Any]) -> bool:
    return payload.get("type") == TokenType.ACCESS.value


def principal_from_payload(payload: Dict[str, Any]) -> Principal:
    """
    Build a Principal from decoded claims. Raises InvalidTokenError when the
    subject is not a UUID or the role is unknown.
    """
    try:
        subject = uuid.UUID(str(payload["sub"]))
    except (KeyError, ValueError) as exc:
        raise InvalidTokenError("invalid_subject") from exc
    role = payload.get("role")
    if role not in ROLES:
        raise InvalidTokenError("invalid_role")
    return Principal(id=subject, role=role, email=payload.get("email"))

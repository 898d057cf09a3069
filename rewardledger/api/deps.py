"""
rewardledger.api.deps — FastAPI dependency injection
=====================================================

Tokens are issued by the platform's identity provider; this service only
verifies them.  ``sub`` is the member id, ``is_admin`` gates admin routes.
"""

from __future__ import annotations

import os
from functools import lru_cache
from typing import Annotated

import jwt
from fastapi import Depends, Header, HTTPException, status
from jwt.exceptions import InvalidTokenError
from sqlalchemy import Engine

from rewardledger.config import RewardsConfig, load_config
from rewardledger.database.engine import create_db_engine
from rewardledger.engine.cache import RewardCatalogCache
from rewardledger.services.daily_login_service import ClaimedTodayCache
from rewardledger.services.notifications import (
    LoggingNotifier,
    Notifier,
    PgEventNotifier,
)

_WEAK_SECRETS = frozenset({
    "rewardledger-dev-secret-change-me",
    "change-me",
    "secret",
    "dev",
    "",
})

_MIN_SECRET_LENGTH = 32

JWT_ALGORITHM = "HS256"


def _load_jwt_secret() -> str:
    """Load and validate JWT_SECRET from the environment.

    Raises RuntimeError at import time if the secret is missing, blank,
    too short (< 32 chars), or a known weak default.
    """
    secret = os.getenv("JWT_SECRET", "")
    if not secret:
        raise RuntimeError(
            "JWT_SECRET environment variable is not set. "
            "Generate one with: python -c \"import secrets; print(secrets.token_urlsafe(64))\""
        )
    if secret in _WEAK_SECRETS:
        raise RuntimeError(
            f"JWT_SECRET is set to a known weak default ('{secret}'). "
            "Please set a strong, unique secret."
        )
    if len(secret) < _MIN_SECRET_LENGTH:
        raise RuntimeError(
            f"JWT_SECRET is too short ({len(secret)} chars). "
            f"Minimum length is {_MIN_SECRET_LENGTH} characters."
        )
    return secret


JWT_SECRET: str = _load_jwt_secret()


@lru_cache(maxsize=1)
def get_engine() -> Engine:
    return create_db_engine()


@lru_cache(maxsize=1)
def get_config() -> RewardsConfig:
    return load_config()


@lru_cache(maxsize=4)
def _cache_for(engine: Engine) -> RewardCatalogCache:
    return RewardCatalogCache(engine)


def get_cache(engine: Annotated[Engine, Depends(get_engine)]) -> RewardCatalogCache:
    return _cache_for(engine)


@lru_cache(maxsize=1)
def get_claim_hint() -> ClaimedTodayCache:
    return ClaimedTodayCache()


def get_notifier(engine: Annotated[Engine, Depends(get_engine)]) -> Notifier:
    """``REWARD_NOTIFIER=pg`` publishes on PG NOTIFY; default is log-only."""
    if os.getenv("REWARD_NOTIFIER", "").strip().lower() == "pg":
        return PgEventNotifier(engine)
    return LoggingNotifier()


def _decode_bearer(authorization: str | None) -> dict:
    if not authorization or not authorization.startswith("Bearer "):
        raise HTTPException(status.HTTP_401_UNAUTHORIZED, "Missing token")
    token = authorization.split(" ", 1)[1]
    try:
        payload = jwt.decode(token, JWT_SECRET, algorithms=[JWT_ALGORITHM])
    except InvalidTokenError:
        raise HTTPException(status.HTTP_401_UNAUTHORIZED, "Invalid token")
    if not payload.get("sub"):
        raise HTTPException(status.HTTP_401_UNAUTHORIZED, "Token has no subject")
    return payload


def get_current_user(
    authorization: Annotated[str | None, Header()] = None,
) -> dict:
    """Validate JWT and return the member payload. Raises 401 if invalid."""
    return _decode_bearer(authorization)


def get_current_admin(
    authorization: Annotated[str | None, Header()] = None,
) -> dict:
    """Validate JWT and return admin user payload. Raises 401 if invalid."""
    payload = _decode_bearer(authorization)
    if not payload.get("is_admin"):
        raise HTTPException(status.HTTP_403_FORBIDDEN, "Not admin")
    return payload

"""
wordplay.api.deps — FastAPI dependency injection
==================================================
"""

from __future__ import annotations

import os
from functools import lru_cache
from typing import Annotated

import jwt
from fastapi import Header, HTTPException, status
from jwt.exceptions import InvalidTokenError
from sqlalchemy import Engine

from wordplay.config import WordplayConfig, get_shuffle_secret, load_config
from wordplay.database.engine import create_db_engine
from wordplay.engine.games import UserKey
from wordplay.engine.words import WordList
from wordplay.services.chain import ChainVerifier, HttpChainVerifier
from wordplay.services.notifications import NotificationDispatcher, WebhookNotificationDispatcher
from wordplay.services.wallets import HttpWalletResolver, WalletResolver

_WEAK_SECRETS = frozenset({
    "wordplay-dev-secret-change-me",
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


# ---------------------------------------------------------------------------
# Process-wide singletons
# ---------------------------------------------------------------------------
@lru_cache(maxsize=1)
def get_engine() -> Engine:
    return create_db_engine()


@lru_cache(maxsize=1)
def get_config() -> WordplayConfig:
    return load_config(os.getenv("WORDPLAY_CONFIG", "config.yaml"))


@lru_cache(maxsize=1)
def get_words() -> WordList:
    cfg = get_config()
    if cfg.answers_path:
        return WordList.from_files(cfg.answers_path, cfg.allowed_path)
    return WordList.bundled()


def get_secret() -> str:
    return get_shuffle_secret()


@lru_cache(maxsize=1)
def get_chain() -> ChainVerifier:
    return HttpChainVerifier(get_config().chain)


@lru_cache(maxsize=1)
def get_wallets() -> WalletResolver:
    url = get_config().wallet_resolver_url
    if not url:
        raise RuntimeError("wallet_resolver_url is not configured")
    return HttpWalletResolver(url)


@lru_cache(maxsize=1)
def get_dispatcher() -> NotificationDispatcher:
    notifications = get_config().notifications
    if not notifications.webhook_url:
        raise RuntimeError("notifications.webhook_url is not configured")
    return WebhookNotificationDispatcher(
        notifications.webhook_url, batch_size=notifications.batch_size
    )


# ---------------------------------------------------------------------------
# Auth
# ---------------------------------------------------------------------------
def _decode(authorization: str | None) -> dict:
    if not authorization or not authorization.startswith("Bearer "):
        raise HTTPException(status.HTTP_401_UNAUTHORIZED, "Missing token")
    token = authorization.split(" ", 1)[1]
    try:
        payload = jwt.decode(token, JWT_SECRET, algorithms=[JWT_ALGORITHM])
    except InvalidTokenError:
        raise HTTPException(status.HTTP_401_UNAUTHORIZED, "Invalid token")
    if not payload.get("sub") or not payload.get("idp"):
        raise HTTPException(status.HTTP_401_UNAUTHORIZED, "Invalid token")
    return payload


def get_current_user(
    authorization: Annotated[str | None, Header()] = None,
) -> UserKey:
    """Validate the bearer JWT and return the player it names.

    The token carries ``sub`` (provider user id) and ``idp`` (identity
    provider), issued by whichever front end authenticated the player.
    """
    payload = _decode(authorization)
    return UserKey(str(payload["sub"]), str(payload["idp"]))


def get_optional_user(
    authorization: Annotated[str | None, Header()] = None,
) -> UserKey | None:
    if not authorization:
        return None
    return get_current_user(authorization)


def get_current_admin(
    authorization: Annotated[str | None, Header()] = None,
) -> dict:
    """Validate JWT and return admin payload. Raises 401/403 if invalid."""
    payload = _decode(authorization)
    if not payload.get("is_admin"):
        raise HTTPException(status.HTTP_403_FORBIDDEN, "Not admin")
    return payload

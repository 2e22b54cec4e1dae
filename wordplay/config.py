"""
wordplay.config — YAML Configuration Loader
=============================================

**Why this file exists:**
This module reads ``config.yaml`` for infrastructure and tuning settings
(leaderboard window, freeze limits, chain endpoints, notification webhook).
Secrets (``DATABASE_URL``, ``SHUFFLE_SECRET``, ``JWT_SECRET``) never live in
the YAML file; they are read from the environment.

Usage::

    from wordplay.config import load_config

    cfg = load_config()              # reads ./config.yaml by default
    print(cfg.leaderboard_size)      # 50
    print(cfg.chain.rpc_url)         # "https://mainnet.base.org"
"""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from pathlib import Path

import yaml

from wordplay.constants import (
    DEFAULT_LEADERBOARD_DAYS,
    DEFAULT_LEADERBOARD_SIZE,
    FREEZE_EARN_INTERVAL,
    FREEZE_MAX_CONSECUTIVE,
)


# ---------------------------------------------------------------------------
# Nested sections
# ---------------------------------------------------------------------------
@dataclass(frozen=True, slots=True)
class ChainConfig:
    """Where the streak-freeze contract lives."""

    rpc_url: str
    contract_address: str
    token_id: int = 1
    timeout_seconds: float = 10.0


@dataclass(frozen=True, slots=True)
class NotificationConfig:
    webhook_url: str | None = None
    batch_size: int = 100


# ---------------------------------------------------------------------------
# Typed settings object
# ---------------------------------------------------------------------------
@dataclass(frozen=True, slots=True)
class WordplayConfig:
    """Immutable configuration loaded from ``config.yaml``."""

    chain: ChainConfig
    notifications: NotificationConfig = field(default_factory=NotificationConfig)

    # Leaderboards
    leaderboard_size: int = DEFAULT_LEADERBOARD_SIZE
    leaderboard_days: int = DEFAULT_LEADERBOARD_DAYS
    excluded_users: tuple[str, ...] = ()  # "provider:userId"

    # Arenas
    arena_blacklist: tuple[str, ...] = ()  # "provider/userId"
    arena_notify_cooldown_minutes: int = 60

    # Streak freezes
    freeze_earn_interval: int = FREEZE_EARN_INTERVAL
    freeze_max_consecutive: int = FREEZE_MAX_CONSECUTIVE

    # Optional
    wallet_resolver_url: str | None = None
    answers_path: str | None = None  # Override the bundled answer list
    allowed_path: str | None = None  # Override the bundled guess-only list


# ---------------------------------------------------------------------------
# Environment secrets
# ---------------------------------------------------------------------------
def get_shuffle_secret() -> str:
    """Return ``SHUFFLE_SECRET`` — the seed behind every word selection.

    Raises
    ------
    RuntimeError
        If the variable is unset or blank.
    """
    secret = os.getenv("SHUFFLE_SECRET", "").strip()
    if not secret:
        raise RuntimeError(
            "SHUFFLE_SECRET is not set.  "
            "Copy .env.example → .env and set a random value."
        )
    return secret


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------
def load_config(path: str | Path = "config.yaml") -> WordplayConfig:
    """Read *path* and return a :class:`WordplayConfig` instance.

    Parameters
    ----------
    path:
        Filesystem path to the YAML configuration file.
        Defaults to ``config.yaml`` in the current working directory.

    Raises
    ------
    FileNotFoundError
        If the YAML file doesn't exist.
    KeyError
        If a required key is missing from the YAML file.
    """
    config_path = Path(path)
    if not config_path.exists():
        raise FileNotFoundError(
            f"Configuration file not found: {config_path.resolve()}\n"
            "Hint: copy config.yaml.example → config.yaml and edit it."
        )

    with open(config_path, encoding="utf-8") as fh:
        raw: dict = yaml.safe_load(fh) or {}

    return parse_config(raw)


def parse_config(raw: dict) -> WordplayConfig:
    """Build a :class:`WordplayConfig` from an already-parsed mapping."""
    chain_raw = raw["chain"]
    chain = ChainConfig(
        rpc_url=chain_raw["rpc_url"],
        contract_address=chain_raw["contract_address"],
        token_id=int(chain_raw.get("token_id", 1)),
        timeout_seconds=float(chain_raw.get("timeout_seconds", 10.0)),
    )

    notif_raw = raw.get("notifications") or {}
    notifications = NotificationConfig(
        webhook_url=notif_raw.get("webhook_url"),
        batch_size=int(notif_raw.get("batch_size", 100)),
    )

    return WordplayConfig(
        chain=chain,
        notifications=notifications,
        leaderboard_size=int(raw.get("leaderboard_size", DEFAULT_LEADERBOARD_SIZE)),
        leaderboard_days=int(raw.get("leaderboard_days", DEFAULT_LEADERBOARD_DAYS)),
        excluded_users=tuple(raw.get("excluded_users") or ()),
        arena_blacklist=tuple(raw.get("arena_blacklist") or ()),
        arena_notify_cooldown_minutes=int(raw.get("arena_notify_cooldown_minutes", 60)),
        freeze_earn_interval=int(raw.get("freeze_earn_interval", FREEZE_EARN_INTERVAL)),
        freeze_max_consecutive=int(
            raw.get("freeze_max_consecutive", FREEZE_MAX_CONSECUTIVE)
        ),
        wallet_resolver_url=raw.get("wallet_resolver_url"),
        answers_path=raw.get("answers_path"),
        allowed_path=raw.get("allowed_path"),
    )

"""
wordplay.services.wallets — Wallet Resolver
============================================

Maps a player to the wallet addresses verified for them by the identity
provider.  The first address is the one freeze purchases and burns are
checked against.
"""

from __future__ import annotations

import logging
from typing import Protocol

import httpx

from wordplay.exceptions import ExternalServiceError

logger = logging.getLogger(__name__)


class WalletResolver(Protocol):
    def addresses_for_user(self, user_id: str) -> list[str]: ...


class HttpWalletResolver:
    """``GET {base_url}/users/{user_id}/addresses`` → ``{"addresses": [...]}``."""

    def __init__(
        self,
        base_url: str,
        *,
        timeout: float = 10.0,
        transport: httpx.BaseTransport | None = None,
    ) -> None:
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self._transport = transport or httpx.HTTPTransport(retries=1)

    def addresses_for_user(self, user_id: str) -> list[str]:
        try:
            with httpx.Client(timeout=self.timeout, transport=self._transport) as client:
                resp = client.get(f"{self.base_url}/users/{user_id}/addresses")
                if resp.status_code == 404:
                    return []
                resp.raise_for_status()
                addresses = resp.json().get("addresses") or []
        except httpx.HTTPError as exc:
            raise ExternalServiceError(
                f"Wallet lookup failed for user {user_id}: {exc}",
                code="wallet_resolver_unavailable",
            ) from exc
        return [a.lower() for a in addresses if isinstance(a, str)]

"""
wordplay.services.notifications — Notification Dispatcher
==========================================================

The core only decides *who* gets notified and *what* they read; delivery is
somebody else's job.  :class:`WebhookNotificationDispatcher` posts batches
to a webhook and never raises: a failed batch is logged and dropped.
"""

from __future__ import annotations

import logging
from collections.abc import Sequence
from typing import Protocol

import httpx

from wordplay.engine.games import UserKey

logger = logging.getLogger(__name__)


class NotificationDispatcher(Protocol):
    def notify(self, recipients: Sequence[UserKey], title: str, body: str) -> None: ...


class WebhookNotificationDispatcher:
    def __init__(
        self,
        webhook_url: str,
        *,
        batch_size: int = 100,
        timeout: float = 10.0,
        transport: httpx.BaseTransport | None = None,
    ) -> None:
        if batch_size < 1:
            raise ValueError("batch_size must be at least 1")
        self.webhook_url = webhook_url
        self.batch_size = batch_size
        self.timeout = timeout
        self._transport = transport or httpx.HTTPTransport(retries=1)

    def notify(self, recipients: Sequence[UserKey], title: str, body: str) -> None:
        if not recipients:
            return
        with httpx.Client(timeout=self.timeout, transport=self._transport) as client:
            for start in range(0, len(recipients), self.batch_size):
                batch = recipients[start:start + self.batch_size]
                payload = {
                    "title": title,
                    "body": body,
                    "recipients": [
                        {"userId": r.user_id, "identityProvider": r.identity_provider}
                        for r in batch
                    ],
                }
                try:
                    resp = client.post(self.webhook_url, json=payload)
                    resp.raise_for_status()
                except httpx.HTTPError as exc:
                    logger.warning(
                        "Notification batch of %d failed: %s", len(batch), exc
                    )

"""
wordplay.services.chain — On-Chain Streak-Freeze Verifier
==========================================================

Freeze tokens are ERC-1155 tokens (id ``chain.token_id``) on an EVM chain.
The ledger never trusts local records for balances; it asks the chain:

* ``get_balance(wallet)`` — ``balanceOf(wallet, tokenId)`` via ``eth_call``.
* ``burned_amount(tx, wallet)`` — how many tokens *tx* burned from *wallet*,
  read from the receipt's ``TransferSingle`` logs (``to`` = zero address).
* ``verify_purchase_tx(tx, wallet)`` — *tx* minted at least one token to
  *wallet* (``from`` = zero address).

All calls go through a synchronous JSON-RPC client with an explicit timeout
and one transport retry.  Network and RPC failures raise
:class:`~wordplay.exceptions.ExternalServiceError`; callers decide whether
to degrade (balance → 0) or surface the error.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Protocol

import httpx

from wordplay.config import ChainConfig
from wordplay.exceptions import ExternalServiceError

logger = logging.getLogger(__name__)

BALANCE_OF_SELECTOR = "0x00fdd58e"  # balanceOf(address,uint256)
TRANSFER_SINGLE_TOPIC = (
    "0xc3d58168c5ae7397731d063d5bbf3d657854427343f4c083240f7aacaa2d0f62"
)
ZERO_ADDRESS = "0x" + "0" * 40


class ChainVerifier(Protocol):
    def verify_burn_tx(self, tx_hash: str, wallet: str) -> bool: ...

    def burned_amount(self, tx_hash: str, wallet: str) -> int: ...

    def verify_purchase_tx(self, tx_hash: str, wallet: str) -> bool: ...

    def get_balance(self, wallet: str) -> int: ...


@dataclass(frozen=True, slots=True)
class TransferSingle:
    operator: str
    sender: str
    recipient: str
    token_id: int
    value: int


def _topic_address(topic: str) -> str:
    return "0x" + topic[-40:].lower()


def _pad32(hex_value: str) -> str:
    return hex_value.removeprefix("0x").lower().rjust(64, "0")


class HttpChainVerifier:
    """JSON-RPC implementation of :class:`ChainVerifier`."""

    def __init__(
        self,
        config: ChainConfig,
        *,
        transport: httpx.BaseTransport | None = None,
    ) -> None:
        self.config = config
        self._contract = config.contract_address.lower()
        self._transport = transport or httpx.HTTPTransport(retries=1)
        self._request_id = 0

    # -- JSON-RPC -----------------------------------------------------------

    def _rpc(self, method: str, params: list[Any]) -> Any:
        self._request_id += 1
        payload = {
            "jsonrpc": "2.0",
            "id": self._request_id,
            "method": method,
            "params": params,
        }
        try:
            with httpx.Client(
                timeout=self.config.timeout_seconds, transport=self._transport
            ) as client:
                resp = client.post(self.config.rpc_url, json=payload)
                resp.raise_for_status()
                body = resp.json()
        except httpx.HTTPError as exc:
            raise ExternalServiceError(
                f"Chain RPC {method} failed: {exc}", code="chain_unavailable"
            ) from exc
        except ValueError as exc:
            raise ExternalServiceError(
                f"Chain RPC {method} returned invalid JSON", code="chain_unavailable"
            ) from exc

        if body.get("error"):
            raise ExternalServiceError(
                f"Chain RPC {method} error: {body['error']}",
                code="chain_rpc_error",
                details={"method": method},
            )
        return body.get("result")

    # -- reads --------------------------------------------------------------

    def get_balance(self, wallet: str) -> int:
        data = (
            BALANCE_OF_SELECTOR
            + _pad32(wallet)
            + _pad32(hex(self.config.token_id))
        )
        result = self._rpc("eth_call", [{"to": self._contract, "data": data}, "latest"])
        return int(result or "0x0", 16)

    def transfers(self, tx_hash: str) -> list[TransferSingle]:
        """``TransferSingle`` events emitted by the freeze contract in *tx_hash*.

        Returns an empty list for unknown or reverted transactions.
        """
        receipt = self._rpc("eth_getTransactionReceipt", [tx_hash])
        if not receipt or receipt.get("status") != "0x1":
            return []

        events = []
        for log in receipt.get("logs") or []:
            topics = log.get("topics") or []
            if (log.get("address") or "").lower() != self._contract:
                continue
            if len(topics) != 4 or topics[0].lower() != TRANSFER_SINGLE_TOPIC:
                continue
            data = (log.get("data") or "0x").removeprefix("0x")
            if len(data) < 128:
                continue
            events.append(
                TransferSingle(
                    operator=_topic_address(topics[1]),
                    sender=_topic_address(topics[2]),
                    recipient=_topic_address(topics[3]),
                    token_id=int(data[:64], 16),
                    value=int(data[64:128], 16),
                )
            )
        return events

    def burned_amount(self, tx_hash: str, wallet: str) -> int:
        wallet = wallet.lower()
        return sum(
            t.value
            for t in self.transfers(tx_hash)
            if t.token_id == self.config.token_id
            and t.sender == wallet
            and t.recipient == ZERO_ADDRESS
        )

    def verify_burn_tx(self, tx_hash: str, wallet: str) -> bool:
        return self.burned_amount(tx_hash, wallet) > 0

    def verify_purchase_tx(self, tx_hash: str, wallet: str) -> bool:
        wallet = wallet.lower()
        return any(
            t.token_id == self.config.token_id
            and t.sender == ZERO_ADDRESS
            and t.recipient == wallet
            and t.value > 0
            for t in self.transfers(tx_hash)
        )

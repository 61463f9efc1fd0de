"""
Base provider interface.

A provider is a third-party data source that can list the UTXOs of an address
and broadcast a raw transaction. Responses are normalized to ``UTXO``; the
scriptPubKey is left empty because the gateway derives it itself.
"""

from __future__ import annotations

import re
from abc import ABC, abstractmethod
from typing import Any

import httpx

from protomint.errors import ProviderError
from protomint.models import UTXO

TXID_RE = re.compile(r"^[0-9a-fA-F]{64}$")


def parse_esplora_utxo(provider: str, item: Any) -> UTXO:
    """Normalize one Esplora-style UTXO entry."""
    if not isinstance(item, dict):
        raise ProviderError(provider, f"Malformed UTXO entry: {item!r}")

    txid = item.get("txid")
    vout = item.get("vout")
    value = item.get("value")
    if not isinstance(txid, str) or not TXID_RE.match(txid):
        raise ProviderError(provider, f"Malformed txid in UTXO entry: {txid!r}")
    if not isinstance(vout, int) or isinstance(vout, bool) or vout < 0:
        raise ProviderError(provider, f"Malformed vout in UTXO entry: {vout!r}")
    if not isinstance(value, int) or isinstance(value, bool) or value < 0:
        raise ProviderError(provider, f"Malformed value in UTXO entry: {value!r}")

    status = item.get("status") or {}
    return UTXO(
        txid=txid.lower(),
        vout=vout,
        value=value,
        confirmed=bool(status.get("confirmed", True)),
        height=status.get("block_height"),
    )


def parse_esplora_utxo_list(provider: str, data: Any) -> list[UTXO]:
    if not isinstance(data, list):
        raise ProviderError(provider, f"Expected a UTXO list, got {type(data).__name__}")
    return [parse_esplora_utxo(provider, item) for item in data]


def parse_txid(provider: str, text: str) -> str:
    txid = text.strip().strip('"')
    if not TXID_RE.match(txid):
        raise ProviderError(provider, f"Unexpected broadcast response: {text[:200]}")
    return txid.lower()


class Provider(ABC):
    """Abstract UTXO / broadcast provider."""

    def __init__(
        self,
        name: str,
        utxo_timeout: float,
        broadcast_timeout: float,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        self.name = name
        self.utxo_timeout = utxo_timeout
        self.broadcast_timeout = broadcast_timeout
        self._owns_client = client is None
        self.client = client or httpx.AsyncClient()

    @abstractmethod
    async def get_utxos(self, address: str) -> list[UTXO]:
        """Get UTXOs for an address"""

    @abstractmethod
    async def broadcast_transaction(self, tx_hex: str) -> str:
        """Broadcast transaction, returns txid"""

    def _check_status(self, response: httpx.Response) -> None:
        if response.is_success:
            return
        raise ProviderError(
            self.name,
            f"HTTP {response.status_code} {response.reason_phrase}: {response.text[:200]}",
        )

    async def close(self) -> None:
        """Close the HTTP client if this provider created it"""
        if self._owns_client:
            await self.client.aclose()

    def __repr__(self) -> str:
        return f"{type(self).__name__}(name={self.name!r})"

"""
Esplora REST provider (Blockstream, mempool.space).
"""

from __future__ import annotations

import httpx
from loguru import logger

from protomint.errors import ProviderError
from protomint.models import UTXO
from protomint.providers.base import Provider, parse_esplora_utxo_list, parse_txid


class EsploraProvider(Provider):
    def __init__(
        self,
        name: str,
        api_url: str,
        utxo_timeout: float,
        broadcast_timeout: float,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        super().__init__(name, utxo_timeout, broadcast_timeout, client)
        self.api_url = api_url.rstrip("/")

    async def get_utxos(self, address: str) -> list[UTXO]:
        response = await self.client.get(
            f"{self.api_url}/address/{address}/utxo", timeout=self.utxo_timeout
        )
        self._check_status(response)

        try:
            data = response.json()
        except ValueError as e:
            raise ProviderError(self.name, "Invalid JSON in UTXO response") from e

        utxos = parse_esplora_utxo_list(self.name, data)
        logger.debug(f"{self.name} returned {len(utxos)} UTXOs")
        return utxos

    async def broadcast_transaction(self, tx_hex: str) -> str:
        response = await self.client.post(
            f"{self.api_url}/tx",
            content=tx_hex,
            headers={"Content-Type": "text/plain"},
            timeout=self.broadcast_timeout,
        )
        self._check_status(response)
        return parse_txid(self.name, response.text)

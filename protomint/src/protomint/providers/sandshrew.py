"""
Sandshrew JSON-RPC aggregator provider.

UTXOs come from the ``esplora_address::utxo`` RPC method. Broadcasts are
posted as plain text to the project's ``esplora_tx`` endpoint.
"""

from __future__ import annotations

from typing import Any

import httpx
from loguru import logger

from protomint.errors import ProviderError
from protomint.models import UTXO
from protomint.providers.base import Provider, parse_esplora_utxo_list, parse_txid


class SandshrewProvider(Provider):
    def __init__(
        self,
        api_url: str,
        project_id: str,
        utxo_timeout: float,
        broadcast_timeout: float,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        super().__init__("sandshrew", utxo_timeout, broadcast_timeout, client)
        self.rpc_url = f"{api_url.rstrip('/')}/{project_id}"
        self._request_id = 0

    async def _rpc_call(self, method: str, params: list[Any] | None = None) -> Any:
        """
        Make a JSON-RPC call.

        Raises:
            ProviderError: On non-success status, RPC errors or malformed bodies
            httpx.HTTPError: On connection/timeout errors
        """
        self._request_id += 1
        payload = {
            "jsonrpc": "2.0",
            "id": self._request_id,
            "method": method,
            "params": params or [],
        }

        response = await self.client.post(self.rpc_url, json=payload, timeout=self.utxo_timeout)
        self._check_status(response)

        try:
            data = response.json()
        except ValueError as e:
            raise ProviderError(self.name, f"Invalid JSON response to {method}") from e

        if not isinstance(data, dict):
            raise ProviderError(self.name, f"Unexpected response to {method}")

        if data.get("error"):
            error_info = data["error"]
            if isinstance(error_info, dict):
                message = error_info.get("message", str(error_info))
            else:
                message = str(error_info)
            raise ProviderError(self.name, f"RPC error: {message}")

        return data.get("result")

    async def get_utxos(self, address: str) -> list[UTXO]:
        result = await self._rpc_call("esplora_address::utxo", [address])
        utxos = parse_esplora_utxo_list(self.name, result)
        logger.debug(f"Sandshrew returned {len(utxos)} UTXOs")
        return utxos

    async def broadcast_transaction(self, tx_hex: str) -> str:
        response = await self.client.post(
            f"{self.rpc_url}/esplora_tx",
            content=tx_hex,
            headers={"Content-Type": "text/plain"},
            timeout=self.broadcast_timeout,
        )
        self._check_status(response)
        return parse_txid(self.name, response.text)

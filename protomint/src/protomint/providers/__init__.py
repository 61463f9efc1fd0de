"""
Third-party UTXO and broadcast providers.

Available providers:
- SandshrewProvider: JSON-RPC aggregator (requires a project id)
- EsploraProvider: Esplora REST API (Blockstream, mempool.space)

Providers are built once at startup, in the priority order configured in
Settings, and shared read-only by every request.
"""

from __future__ import annotations

import httpx
from loguru import logger

from protomint.config import Settings
from protomint.providers.base import Provider
from protomint.providers.esplora import EsploraProvider
from protomint.providers.sandshrew import SandshrewProvider


def build_provider(
    name: str, settings: Settings, client: httpx.AsyncClient | None = None
) -> Provider | None:
    """Build a provider by name. Returns None if it is not configured."""
    timeouts = {
        "utxo_timeout": settings.utxo_timeout,
        "broadcast_timeout": settings.broadcast_timeout,
        "client": client,
    }
    if name == "sandshrew":
        if not settings.sandshrew_project_id:
            logger.warning("SANDSHREW_PROJECT_ID not set, skipping sandshrew provider")
            return None
        return SandshrewProvider(
            settings.sandshrew_api_url, settings.sandshrew_project_id, **timeouts
        )
    if name == "blockstream":
        return EsploraProvider("blockstream", settings.blockstream_api_url, **timeouts)
    if name == "mempool":
        return EsploraProvider("mempool", settings.mempool_api_url, **timeouts)
    raise ValueError(f"Unknown provider: {name}")


def build_providers(
    names: list[str], settings: Settings, client: httpx.AsyncClient | None = None
) -> list[Provider]:
    providers = []
    for name in names:
        provider = build_provider(name, settings, client)
        if provider is not None:
            providers.append(provider)
    return providers


__all__ = [
    "EsploraProvider",
    "Provider",
    "SandshrewProvider",
    "build_provider",
    "build_providers",
]

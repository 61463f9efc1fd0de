"""
Test fixtures and configuration.
"""

from __future__ import annotations

from collections.abc import Callable
from unittest.mock import AsyncMock, MagicMock

import pytest

from protomint.config import Settings
from protomint.models import UTXO

# secp256k1 generator point, compressed
PUBKEY_HEX = "0279be667ef9dcbbac55a06295ce870b07029bfcdb2dce28d959f2815b16f81798"
PUBKEY_HASH160_HEX = "751e76e8199196d454941c45d1b3a323f1433bd6"
XONLY_HEX = PUBKEY_HEX[2:]

P2WPKH_ADDRESS = "bc1qw508d6qejxtdg4y5r3zarvary0c5xw7kv8f3t4"
P2WPKH_TESTNET_ADDRESS = "tb1qw508d6qejxtdg4y5r3zarvary0c5xw7kxpjzsx"
P2TR_ADDRESS = "bc1p0xlxvlhemja6c4dqv22uapctqupfhlxm9h8z3k2e72q4k9hcz7vqzk5jj0"
P2TR_TESTNET_ADDRESS = "tb1pqqqqp399et2xygdj5xreqhjjvcmzhxw4aywxecjdzew6hylgvsesf3hn0c"
P2WSH_ADDRESS = "bc1qrp33g0q5c5txsp9arysrx4k6zdkfs4nce4xj0gdcccefvpysxf3qccfmv3"
LEGACY_ADDRESS = "1BvBMSEYstWetqTFn5Au4m4GFg7xJaNVN2"

P2WPKH_SCRIPT_HEX = "0014" + PUBKEY_HASH160_HEX
P2TR_SCRIPT_HEX = "5120" + XONLY_HEX

# DER-shaped placeholder; finalization never verifies signatures
DUMMY_SIG = bytes.fromhex("3044" + "02" * 68 + "01")
DUMMY_SCHNORR_SIG = bytes(64)


@pytest.fixture
def settings() -> Settings:
    return Settings(_env_file=None, sandshrew_project_id="test-project")


@pytest.fixture
def dev_settings() -> Settings:
    return Settings(
        _env_file=None,
        environment="development",
        allow_mock_broadcast=True,
        sandshrew_project_id="test-project",
    )


@pytest.fixture
def make_utxo() -> Callable[..., UTXO]:
    def _make(value: int, index: int = 0, confirmed: bool = True) -> UTXO:
        return UTXO(
            txid=format(index + 1, "064x"),
            vout=index,
            value=value,
            scriptpubkey=P2WPKH_SCRIPT_HEX,
            confirmed=confirmed,
        )

    return _make


@pytest.fixture
def make_provider() -> Callable[..., MagicMock]:
    """Provider double: returns ``utxos`` / ``txid`` or raises ``error``."""

    def _make(
        name: str,
        utxos: list[UTXO] | None = None,
        txid: str | None = None,
        error: Exception | None = None,
    ) -> MagicMock:
        provider = MagicMock()
        provider.name = name
        if error is not None:
            provider.get_utxos = AsyncMock(side_effect=error)
            provider.broadcast_transaction = AsyncMock(side_effect=error)
        else:
            provider.get_utxos = AsyncMock(return_value=utxos or [])
            provider.broadcast_transaction = AsyncMock(return_value=txid or "ab" * 32)
        provider.close = AsyncMock()
        return provider

    return _make

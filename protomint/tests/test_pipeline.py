"""
Tests for the mint pipeline wiring.
"""

from __future__ import annotations

from collections.abc import Callable
from unittest.mock import MagicMock

import pytest
from conftest import P2TR_ADDRESS, P2WPKH_ADDRESS, P2WPKH_TESTNET_ADDRESS

from protomint.broadcast import BroadcastDispatcher
from protomint.config import Settings
from protomint.errors import InvalidAddressError
from protomint.gateway import UTXOGateway
from protomint.models import UTXO, ExecuteRequest, ProtocolMessage, ServiceFee, TokenId
from protomint.payload import ManualEncoder
from protomint.pipeline import MintPipeline
from protomint.providers import EsploraProvider, SandshrewProvider


@pytest.fixture
def message() -> ProtocolMessage:
    return ProtocolMessage(token_id=TokenId(block=2, tx=50169))


class TestFromSettings:
    """Tests for MintPipeline.from_settings."""

    def test_provider_order(self) -> None:
        """Test providers follow the configured priority lists."""
        settings = Settings(
            _env_file=None,
            sandshrew_project_id="abc",
            utxo_providers="mempool,sandshrew",
            broadcast_providers="blockstream",
        )

        pipeline = MintPipeline.from_settings(settings)

        utxo = pipeline.gateway.providers
        assert [p.name for p in utxo] == ["mempool", "sandshrew"]
        assert isinstance(utxo[0], EsploraProvider)
        assert isinstance(utxo[1], SandshrewProvider)
        assert [p.name for p in pipeline.dispatcher.providers] == ["blockstream"]

    def test_sandshrew_skipped_without_project_id(self) -> None:
        """Test sandshrew is skipped without a project id."""
        settings = Settings(_env_file=None, sandshrew_project_id="")
        pipeline = MintPipeline.from_settings(settings)
        assert [p.name for p in pipeline.gateway.providers] == ["blockstream", "mempool"]

    def test_encoder_from_settings(self) -> None:
        """Test the encoder is selected from settings."""
        settings = Settings(_env_file=None, payload_encoder="manual")
        pipeline = MintPipeline.from_settings(settings)
        assert isinstance(pipeline.encoder, ManualEncoder)


class TestMintPipeline:
    """Tests for MintPipeline.execute and preview."""

    @pytest.mark.asyncio
    async def test_execute_absorbs_sub_dust_change(
        self,
        settings: Settings,
        make_provider: Callable[..., MagicMock],
        message: ProtocolMessage,
    ) -> None:
        """Test sub-dust change is reported as fee."""
        provider = make_provider("mempool", utxos=[UTXO(txid="aa" * 32, vout=0, value=1200)])
        pipeline = MintPipeline(
            settings, UTXOGateway([provider]), BroadcastDispatcher(settings, [])
        )

        result = await pipeline.execute(ExecuteRequest(address=P2WPKH_ADDRESS, message=message))

        assert result["changeSats"] == 0
        assert result["estimatedFeeSats"] == 1200 - 546
        assert result["totalAvailableSats"] == 1200

    @pytest.mark.asyncio
    async def test_execute_invalid_output_address(
        self,
        settings: Settings,
        make_provider: Callable[..., MagicMock],
        message: ProtocolMessage,
    ) -> None:
        """Test an invalid recipient fails before fetching UTXOs."""
        provider = make_provider("mempool")
        pipeline = MintPipeline(
            settings, UTXOGateway([provider]), BroadcastDispatcher(settings, [])
        )
        request = ExecuteRequest(
            address=P2WPKH_ADDRESS, output_address="bc1qinvalid", message=message
        )

        with pytest.raises(InvalidAddressError):
            await pipeline.execute(request)
        provider.get_utxos.assert_not_awaited()

    def test_preview_uses_address_network(
        self, settings: Settings, message: ProtocolMessage
    ) -> None:
        """Test preview assembles for the spending address network."""
        pipeline = MintPipeline(settings, UTXOGateway([]), BroadcastDispatcher(settings, []))

        assembled = pipeline.preview(
            P2WPKH_TESTNET_ADDRESS,
            message,
            service_fee=ServiceFee(address=P2WPKH_TESTNET_ADDRESS, amount_sats=1000),
        )

        assert [o.value for o in assembled.psbt.tx.outputs] == [546, 0, 1000]
        assert assembled.psbt.tx.inputs == []

    def test_preview_rejects_cross_network_recipient(
        self, settings: Settings, message: ProtocolMessage
    ) -> None:
        """Test preview rejects a recipient on the other network."""
        pipeline = MintPipeline(settings, UTXOGateway([]), BroadcastDispatcher(settings, []))
        with pytest.raises(InvalidAddressError):
            pipeline.preview(P2WPKH_TESTNET_ADDRESS, message, output_address=P2TR_ADDRESS)

"""
Mint pipeline: one execute request from address to unsigned PSBT.

    classify -> fetch UTXOs -> plan -> encode payload -> assemble

Each stage awaits the previous one; nothing is shared between requests
except the settings and the provider objects.
"""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Any

import httpx
from loguru import logger

from protomint.address import classify_address
from protomint.assembler import AssembledTransaction, TransactionAssembler
from protomint.broadcast import BroadcastDispatcher
from protomint.config import Settings
from protomint.errors import InvalidAddressError
from protomint.gateway import UTXOGateway
from protomint.models import BroadcastRequest, ExecuteRequest, ProtocolMessage, ServiceFee
from protomint.payload import PayloadEncoder, get_encoder
from protomint.planner import FeePlanner
from protomint.providers import build_providers


def _timestamp() -> str:
    return datetime.now(timezone.utc).isoformat()


def _require_valid(address: str | None) -> str:
    info = classify_address(address)
    if not info.valid:
        raise InvalidAddressError(address, info.error or "Invalid address")
    return info.address


class MintPipeline:
    def __init__(
        self,
        settings: Settings,
        gateway: UTXOGateway,
        dispatcher: BroadcastDispatcher,
        encoder: PayloadEncoder | None = None,
    ) -> None:
        self.settings = settings
        self.gateway = gateway
        self.dispatcher = dispatcher
        self.encoder = encoder or get_encoder(settings.payload_encoder)
        self.planner = FeePlanner(settings)
        self.assembler = TransactionAssembler(settings)

    @classmethod
    def from_settings(
        cls, settings: Settings, client: httpx.AsyncClient | None = None
    ) -> MintPipeline:
        """Build providers in configured priority order and wire the stages."""
        utxo_providers = build_providers(settings.get_utxo_provider_names(), settings, client)
        broadcast_providers = build_providers(
            settings.get_broadcast_provider_names(), settings, client
        )
        logger.info(
            f"UTXO providers: {[p.name for p in utxo_providers]}, "
            f"broadcast providers: {[p.name for p in broadcast_providers]}, "
            f"encoder: {settings.payload_encoder}"
        )
        return cls(
            settings,
            UTXOGateway(utxo_providers),
            BroadcastDispatcher(settings, broadcast_providers),
        )

    async def execute(self, request: ExecuteRequest) -> dict[str, Any]:
        """
        Build the unsigned mint PSBT for ``request``.

        Raises:
            InvalidAddressError: If an address is invalid
            ProviderExhaustedError: If no UTXO provider answered
            InsufficientFundsError: If the address cannot pay for the mint
            EncodingError: If the protocol payload cannot be built
        """
        address = _require_valid(request.address)
        output_address = (
            _require_valid(request.output_address) if request.output_address else address
        )
        fee_rate = request.fee_rate or self.settings.default_fee_rate
        token = request.message.token_id
        logger.info(
            f"Execute: mint {token.block}:{token.tx} opcode {request.message.opcode} "
            f"from {address} to {output_address} at {fee_rate} sat/vB"
        )

        utxo_set = await self.gateway.fetch(address, request.public_key_hex)
        plan = self.planner.plan(utxo_set.spendable, fee_rate, request.service_fee)
        payload_script = self.encoder.build_script(request.message)
        assembled = self.assembler.assemble(
            plan, address, output_address, payload_script, request.service_fee
        )

        return {
            "container": assembled.hex,
            "containerBase64": assembled.base64,
            "address": address,
            "outputAddress": output_address,
            "estimatedFeeSats": plan.effective_fee_sats,
            "serviceFeeSats": plan.service_fee_sats,
            "totalAvailableSats": utxo_set.total_balance,
            "changeSats": plan.change_sats if plan.has_change_output else 0,
        }

    def preview(
        self,
        address: str,
        message: ProtocolMessage,
        output_address: str | None = None,
        fee_rate: float | None = None,
        service_fee: ServiceFee | None = None,
    ) -> AssembledTransaction:
        """Input-less template PSBT for ``message``. No provider is queried."""
        address = _require_valid(address)
        output_address = _require_valid(output_address) if output_address else address
        plan = self.planner.plan(
            [], fee_rate or self.settings.default_fee_rate, service_fee, allow_template=True
        )
        payload_script = self.encoder.build_script(message)
        return self.assembler.assemble(plan, address, output_address, payload_script, service_fee)

    async def utxos(self, address: str) -> dict[str, Any]:
        utxo_set = await self.gateway.fetch(address)
        return {
            "utxos": utxo_set.to_dict(),
            "originalAddress": address,
            "timestamp": _timestamp(),
        }

    async def balance(self, address: str) -> dict[str, Any]:
        utxo_set = await self.gateway.fetch(address)
        return {
            "balance": utxo_set.confirmed_balance,
            "pendingBalance": utxo_set.pending_balance,
            "totalBalance": utxo_set.total_balance,
            "originalAddress": address,
            "timestamp": _timestamp(),
        }

    async def broadcast(self, request: BroadcastRequest) -> dict[str, Any]:
        result = await self.dispatcher.dispatch(request.signed_container, request.original_address)
        return {"transactionId": result.txid, "provider": result.provider}

    async def close(self) -> None:
        await self.gateway.close()
        await self.dispatcher.close()

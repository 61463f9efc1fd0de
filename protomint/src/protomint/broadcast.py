"""
Broadcast of signed PSBTs.

The signer may hand back a PSBT with partial signatures only. Inputs without a
final witness are finalized here before the network transaction is extracted
and pushed through the broadcast providers in priority order.
"""

from __future__ import annotations

import secrets
from collections.abc import Sequence

from loguru import logger

from protomint.address import network_for_address
from protomint.config import Settings
from protomint.errors import BroadcastExhaustedError, ExtractionError, FinalizationError
from protomint.fallback import first_success
from protomint.models import BroadcastResult, NetworkType
from protomint.providers.base import Provider
from protomint.psbt import PSBT
from protomint.transaction import Transaction


def finalize_inputs(psbt: PSBT) -> list[FinalizationError]:
    """
    Finalize every input that is not finalized yet.

    Failures are logged and returned, not raised: extraction decides whether
    the container is usable.
    """
    failures: list[FinalizationError] = []
    if psbt.is_finalized():
        logger.debug("All inputs already finalized")
        return failures

    for i in range(len(psbt.inputs)):
        if psbt.is_input_finalized(i):
            continue
        try:
            psbt.finalize_input(i)
            logger.debug(f"Finalized input {i}")
        except FinalizationError as e:
            logger.warning(str(e))
            failures.append(e)
    return failures


class BroadcastDispatcher:
    def __init__(self, settings: Settings, providers: Sequence[Provider]) -> None:
        self.network = NetworkType(settings.network)
        self.mock_broadcast = settings.mock_broadcast_enabled
        self.providers = list(providers)

    def extract(self, container: str, original_address: str | None = None) -> Transaction:
        """
        Decode, finalize and extract the network transaction.

        Raises:
            ContainerDecodeError: If the container is not a PSBT in hex or base64
            ExtractionError: If an input is still unfinalized after finalization
        """
        psbt = PSBT.from_string(container)
        network = network_for_address(original_address, self.network)
        logger.info(
            f"Received PSBT with {len(psbt.inputs)} input(s), {len(psbt.outputs)} output(s) "
            f"({network.value})"
        )

        failures = finalize_inputs(psbt)
        try:
            tx = psbt.extract_transaction()
        except ExtractionError as e:
            if failures:
                reasons = "; ".join(str(f) for f in failures)
                raise ExtractionError(f"{e} ({reasons})") from e
            raise

        logger.debug(f"PSBT summary: {psbt.summary(network)}")
        return tx

    async def dispatch(
        self, container: str, original_address: str | None = None
    ) -> BroadcastResult:
        """
        Finalize, extract and broadcast a signed PSBT.

        Args:
            container: Signed PSBT as hex or base64
            original_address: Hint used only to pick network parameters

        Raises:
            ContainerDecodeError: If the container cannot be decoded
            ExtractionError: If the transaction cannot be extracted
            BroadcastExhaustedError: If every provider failed and mock broadcast is off
        """
        tx = self.extract(container, original_address)
        tx_hex = tx.hex()
        logger.info(f"Broadcasting transaction {tx.txid()} ({len(tx_hex) // 2} bytes)")

        attempts = [
            (provider.name, lambda p=provider: p.broadcast_transaction(tx_hex))
            for provider in self.providers
        ]
        try:
            provider_name, txid = await first_success(
                attempts, what="broadcast", exhausted_error=BroadcastExhaustedError
            )
        except BroadcastExhaustedError:
            if not self.mock_broadcast:
                raise
            txid = f"mock_{secrets.token_hex(8)}"
            logger.warning(f"Development mode: returning mock txid {txid}")
            return BroadcastResult(txid=txid, provider="mock")

        logger.info(f"Transaction broadcast via {provider_name}: {txid}")
        return BroadcastResult(txid=txid, provider=provider_name)

    async def close(self) -> None:
        for provider in self.providers:
            await provider.close()

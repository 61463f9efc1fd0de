"""
Unsigned mint transaction assembly.

Output order is fixed and relied upon by signers and indexers:

    0: dust output to the recipient (the token lands here, pointer 0)
    1: OP_RETURN protocol payload, value 0
    2: service fee (optional)
    3: change back to the spending address (optional)
"""

from __future__ import annotations

from dataclasses import dataclass

from loguru import logger

from protomint.address import address_to_scriptpubkey, network_for_address
from protomint.config import Settings
from protomint.errors import InvalidAddressError
from protomint.models import NetworkType, OutputPlan, ServiceFee
from protomint.psbt import PSBT
from protomint.transaction import Transaction, TxInput, TxOutput


@dataclass
class AssembledTransaction:
    psbt: PSBT
    hex: str
    base64: str


class TransactionAssembler:
    def __init__(self, settings: Settings) -> None:
        self.network = NetworkType(settings.network)

    def _script_for(self, address: str, network: NetworkType) -> bytes:
        try:
            return address_to_scriptpubkey(address, network)
        except ValueError as e:
            raise InvalidAddressError(address, str(e)) from e

    def assemble(
        self,
        plan: OutputPlan,
        spend_address: str,
        recipient_address: str | None,
        payload_script: bytes,
        service_fee: ServiceFee | None = None,
    ) -> AssembledTransaction:
        """
        Lay out inputs and outputs and serialize the unsigned PSBT.

        Args:
            plan: Output plan with the selected inputs
            spend_address: Address the inputs belong to, receives the change
            recipient_address: Receives the dust output, defaults to spend_address
            payload_script: Complete OP_RETURN script
            service_fee: Optional service fee destination

        Raises:
            InvalidAddressError: If an output address cannot be decoded
        """
        network = network_for_address(spend_address, self.network)
        spend_script = self._script_for(spend_address, network)
        recipient = recipient_address or spend_address
        recipient_script = self._script_for(recipient, network)

        outputs = [
            TxOutput(value=plan.dust_output_sats, scriptpubkey=recipient_script),
            TxOutput(value=0, scriptpubkey=payload_script),
        ]
        if service_fee and plan.service_fee_sats > 0:
            outputs.append(
                TxOutput(
                    value=plan.service_fee_sats,
                    scriptpubkey=self._script_for(service_fee.address, network),
                )
            )
        if plan.has_change_output:
            outputs.append(TxOutput(value=plan.change_sats, scriptpubkey=spend_script))

        inputs = [TxInput(txid=u.txid, vout=u.vout) for u in plan.selected]
        psbt = PSBT(Transaction(inputs=inputs, outputs=outputs))
        for psbt_in, utxo in zip(psbt.inputs, plan.selected):
            script = bytes.fromhex(utxo.scriptpubkey) if utxo.scriptpubkey else spend_script
            psbt_in.witness_utxo = TxOutput(value=utxo.value, scriptpubkey=script)

        logger.info(
            f"Assembled PSBT: {len(inputs)} input(s), {len(outputs)} output(s), "
            f"fee {plan.effective_fee_sats} sats"
        )
        logger.debug(f"PSBT summary: {psbt.summary(network)}")

        return AssembledTransaction(psbt=psbt, hex=psbt.to_hex(), base64=psbt.to_base64())

"""
Fee and output planning.

Works out the value every output needs (dust recipient output, network fee,
optional service fee) and picks inputs greedily, largest first, stopping as
soon as they cover the total. This favours fewer inputs over optimal change.
"""

from __future__ import annotations

import math

from loguru import logger

from protomint.config import Settings
from protomint.errors import InsufficientFundsError
from protomint.models import UTXO, OutputPlan, ServiceFee


def select_inputs(utxos: list[UTXO], required: int) -> list[UTXO]:
    """
    Take UTXOs in the given order until their total reaches ``required``.

    Raises:
        InsufficientFundsError: If the whole list does not reach ``required``
    """
    selected: list[UTXO] = []
    total = 0
    for utxo in utxos:
        if total >= required:
            break
        selected.append(utxo)
        total += utxo.value

    if total < required:
        raise InsufficientFundsError(required=required, available=total)
    return selected


class FeePlanner:
    def __init__(self, settings: Settings) -> None:
        self.dust_amount = settings.dust_amount
        self.min_network_fee = settings.min_network_fee
        self.base_tx_vsize = settings.base_tx_vsize
        self.service_fee_tx_vsize = settings.service_fee_tx_vsize

    def estimate_size(self, service_fee: ServiceFee | None) -> int:
        """Fixed estimate: larger when a service fee output is present."""
        return self.service_fee_tx_vsize if service_fee else self.base_tx_vsize

    def network_fee(self, fee_rate: float, service_fee: ServiceFee | None = None) -> int:
        size = self.estimate_size(service_fee)
        return max(math.ceil(size * fee_rate), self.min_network_fee)

    def plan(
        self,
        utxos: list[UTXO],
        fee_rate: float,
        service_fee: ServiceFee | None = None,
        allow_template: bool = False,
    ) -> OutputPlan:
        """
        Build the output plan for a mint transaction.

        Args:
            utxos: Candidate UTXOs, sorted by value, largest first
            fee_rate: Fee rate in sat/vbyte
            service_fee: Optional flat fee paid to a separate address
            allow_template: Return an input-less plan when ``utxos`` is empty

        Raises:
            ValueError: If fee_rate is not positive
            InsufficientFundsError: If the candidates do not cover the outputs and fees
        """
        if fee_rate <= 0:
            raise ValueError(f"Fee rate must be positive, got {fee_rate}")

        estimated_size = self.estimate_size(service_fee)
        network_fee = self.network_fee(fee_rate, service_fee)
        service_fee_sats = service_fee.amount_sats if service_fee else 0
        required = self.dust_amount + network_fee + service_fee_sats

        logger.debug(
            f"Fee calculation: rate={fee_rate} size={estimated_size} fee={network_fee} "
            f"dust={self.dust_amount} service={service_fee_sats} required={required}"
        )

        if not utxos and allow_template:
            logger.info("No UTXOs provided, planning template transaction without inputs")
            return OutputPlan(
                dust_output_sats=self.dust_amount,
                network_fee_sats=network_fee,
                service_fee_sats=service_fee_sats,
                change_sats=0,
                total_input_sats=0,
                estimated_size=estimated_size,
            )

        selected = select_inputs(utxos, required)
        total_input = sum(u.value for u in selected)
        plan = OutputPlan(
            dust_output_sats=self.dust_amount,
            network_fee_sats=network_fee,
            service_fee_sats=service_fee_sats,
            change_sats=total_input - required,
            total_input_sats=total_input,
            estimated_size=estimated_size,
            selected=selected,
        )

        if plan.has_change_output:
            logger.info(
                f"Selected {len(selected)} input(s) for {total_input} sats, "
                f"change {plan.change_sats} sats"
            )
        else:
            logger.info(
                f"Selected {len(selected)} input(s) for {total_input} sats, "
                f"no change output (change {plan.change_sats} <= dust {self.dust_amount})"
            )
        return plan

"""
Tests for mint transaction assembly.
"""

from __future__ import annotations

from collections.abc import Callable

import pytest
from conftest import (
    LEGACY_ADDRESS,
    P2TR_ADDRESS,
    P2TR_SCRIPT_HEX,
    P2WPKH_ADDRESS,
    P2WPKH_SCRIPT_HEX,
    P2WPKH_TESTNET_ADDRESS,
)

from protomint.address import address_to_scriptpubkey
from protomint.assembler import TransactionAssembler
from protomint.config import Settings
from protomint.constants import DEFAULT_SEQUENCE
from protomint.errors import InvalidAddressError
from protomint.models import UTXO, ProtocolMessage, ServiceFee, TokenId
from protomint.payload import RunestoneEncoder
from protomint.planner import FeePlanner
from protomint.psbt import PSBT


@pytest.fixture
def assembler(settings: Settings) -> TransactionAssembler:
    return TransactionAssembler(settings)


@pytest.fixture
def planner(settings: Settings) -> FeePlanner:
    return FeePlanner(settings)


@pytest.fixture
def payload_script() -> bytes:
    message = ProtocolMessage(token_id=TokenId(block=2, tx=50169))
    return RunestoneEncoder().build_script(message)


class TestTransactionAssembler:
    """Tests for TransactionAssembler.assemble."""

    def test_output_order_with_service_fee_and_change(
        self,
        assembler: TransactionAssembler,
        planner: FeePlanner,
        payload_script: bytes,
        make_utxo: Callable[..., UTXO],
    ) -> None:
        """Test dust, OP_RETURN, service fee and change order."""
        service_fee = ServiceFee(address=LEGACY_ADDRESS, amount_sats=3104)
        plan = planner.plan(
            [make_utxo(5000, 0), make_utxo(3000, 1), make_utxo(1000, 2)], 1.0, service_fee
        )

        assembled = assembler.assemble(
            plan, P2WPKH_ADDRESS, P2TR_ADDRESS, payload_script, service_fee
        )
        outputs = assembled.psbt.tx.outputs

        assert [o.value for o in outputs] == [546, 0, 3104, 1000]
        assert outputs[0].scriptpubkey.hex() == P2TR_SCRIPT_HEX
        assert outputs[1].scriptpubkey == payload_script
        assert outputs[2].scriptpubkey == address_to_scriptpubkey(LEGACY_ADDRESS)
        assert outputs[3].scriptpubkey.hex() == P2WPKH_SCRIPT_HEX

    def test_order_independent_of_input_order(
        self,
        assembler: TransactionAssembler,
        planner: FeePlanner,
        payload_script: bytes,
        make_utxo: Callable[..., UTXO],
    ) -> None:
        """Test output order does not depend on selected inputs."""
        service_fee = ServiceFee(address=P2TR_ADDRESS, amount_sats=1000)
        plan = planner.plan([make_utxo(1500, 0), make_utxo(1500, 1)], 1.0, service_fee)
        assert len(plan.selected) == 2

        outputs = assembler.assemble(
            plan, P2WPKH_ADDRESS, None, payload_script, service_fee
        ).psbt.tx.outputs

        assert outputs[0].value == 546
        assert outputs[1].scriptpubkey == payload_script
        assert outputs[2].value == 1000

    def test_no_change_when_below_dust(
        self,
        assembler: TransactionAssembler,
        planner: FeePlanner,
        payload_script: bytes,
        make_utxo: Callable[..., UTXO],
    ) -> None:
        """Test sub-dust change is left to the fee."""
        plan = planner.plan([make_utxo(1000, 0)], 1.0)

        assembled = assembler.assemble(plan, P2WPKH_ADDRESS, None, payload_script)
        outputs = assembled.psbt.tx.outputs

        assert [o.value for o in outputs] == [546, 0]
        assert outputs[0].scriptpubkey.hex() == P2WPKH_SCRIPT_HEX
        assert assembled.psbt.fee() == 454

    def test_inputs_carry_witness_utxo(
        self,
        assembler: TransactionAssembler,
        planner: FeePlanner,
        payload_script: bytes,
        make_utxo: Callable[..., UTXO],
    ) -> None:
        """Test every input carries its witness UTXO."""
        utxos = [make_utxo(600, 0), make_utxo(500, 1)]
        plan = planner.plan(utxos, 1.0)

        psbt = assembler.assemble(plan, P2WPKH_ADDRESS, None, payload_script).psbt

        assert [(i.txid, i.vout) for i in psbt.tx.inputs] == [(u.txid, u.vout) for u in utxos]
        assert all(i.sequence == DEFAULT_SEQUENCE for i in psbt.tx.inputs)
        assert psbt.tx.version == 2
        assert psbt.tx.locktime == 0
        for psbt_in, utxo in zip(psbt.inputs, utxos):
            assert psbt_in.witness_utxo is not None
            assert psbt_in.witness_utxo.value == utxo.value
            assert psbt_in.witness_utxo.scriptpubkey.hex() == utxo.scriptpubkey

    def test_transport_encodings_decode_to_same_psbt(
        self,
        assembler: TransactionAssembler,
        planner: FeePlanner,
        payload_script: bytes,
        make_utxo: Callable[..., UTXO],
    ) -> None:
        """Test hex and base64 decode to the same PSBT."""
        service_fee = ServiceFee(address=P2TR_ADDRESS, amount_sats=2000)
        plan = planner.plan([make_utxo(10_000, 0)], 2.0, service_fee)
        assembled = assembler.assemble(plan, P2WPKH_ADDRESS, None, payload_script, service_fee)

        from_hex = PSBT.from_string(assembled.hex)
        from_base64 = PSBT.from_string(assembled.base64)

        assert from_hex.tx == from_base64.tx == assembled.psbt.tx
        assert from_hex.inputs == from_base64.inputs == assembled.psbt.inputs

    def test_template(
        self, assembler: TransactionAssembler, planner: FeePlanner, payload_script: bytes
    ) -> None:
        """Test an input-less template PSBT."""
        plan = planner.plan([], 1.0, allow_template=True)

        assembled = assembler.assemble(plan, P2WPKH_ADDRESS, None, payload_script)

        assert assembled.psbt.tx.inputs == []
        assert [o.value for o in assembled.psbt.tx.outputs] == [546, 0]
        assert PSBT.from_string(assembled.base64).tx.inputs == []

    def test_invalid_service_fee_address(
        self,
        assembler: TransactionAssembler,
        planner: FeePlanner,
        payload_script: bytes,
        make_utxo: Callable[..., UTXO],
    ) -> None:
        """Test an undecodable service fee address is rejected."""
        service_fee = ServiceFee(address="not-an-address", amount_sats=1000)
        plan = planner.plan([make_utxo(10_000, 0)], 1.0, service_fee)

        with pytest.raises(InvalidAddressError):
            assembler.assemble(plan, P2WPKH_ADDRESS, None, payload_script, service_fee)

    def test_recipient_on_other_network_rejected(
        self,
        assembler: TransactionAssembler,
        planner: FeePlanner,
        payload_script: bytes,
        make_utxo: Callable[..., UTXO],
    ) -> None:
        """Test a recipient on the other network is rejected."""
        plan = planner.plan([make_utxo(10_000, 0)], 1.0)
        with pytest.raises(InvalidAddressError):
            assembler.assemble(plan, P2WPKH_ADDRESS, P2WPKH_TESTNET_ADDRESS, payload_script)

"""
Tests for fee calculation and input selection.
"""

from __future__ import annotations

from collections.abc import Callable

import pytest
from conftest import LEGACY_ADDRESS

from protomint.config import Settings
from protomint.errors import InsufficientFundsError
from protomint.models import UTXO, ServiceFee
from protomint.planner import FeePlanner, select_inputs


class TestSelectInputs:
    """Tests for greedy input selection."""

    def test_stops_once_sufficient(self, make_utxo: Callable[..., UTXO]) -> None:
        """Test selection stops at the first sufficient UTXO."""
        utxos = [make_utxo(5000, 0), make_utxo(3000, 1), make_utxo(1000, 2)]
        selected = select_inputs(utxos, 4000)
        assert [u.value for u in selected] == [5000]

    def test_accumulates(self, make_utxo: Callable[..., UTXO]) -> None:
        """Test selection accumulates largest first."""
        utxos = [make_utxo(5000, 0), make_utxo(3000, 1), make_utxo(1000, 2)]
        selected = select_inputs(utxos, 7000)
        assert [u.value for u in selected] == [5000, 3000]

    def test_exact_amount(self, make_utxo: Callable[..., UTXO]) -> None:
        """Test an exact match needs no further inputs."""
        selected = select_inputs([make_utxo(896, 0), make_utxo(500, 1)], 896)
        assert [u.value for u in selected] == [896]

    def test_insufficient(self, make_utxo: Callable[..., UTXO]) -> None:
        """Test the shortfall is reported."""
        with pytest.raises(InsufficientFundsError) as exc_info:
            select_inputs([make_utxo(500, 0), make_utxo(300, 1)], 1000)
        err = exc_info.value
        assert err.required == 1000
        assert err.available == 800
        assert err.shortfall == 200
        assert err.http_status == 400

    def test_empty(self) -> None:
        """Test selection from no UTXOs."""
        with pytest.raises(InsufficientFundsError) as exc_info:
            select_inputs([], 896)
        assert exc_info.value.available == 0


class TestFeePlanner:
    """Tests for FeePlanner.plan."""

    @pytest.fixture
    def planner(self, settings: Settings) -> FeePlanner:
        return FeePlanner(settings)

    @pytest.fixture
    def service_fee(self) -> ServiceFee:
        return ServiceFee(address=LEGACY_ADDRESS, amount_sats=3104)

    def test_network_fee_floor(self, planner: FeePlanner) -> None:
        """Test the minimum network fee applies."""
        assert planner.network_fee(1.0) == 350
        assert planner.network_fee(0.1) == 350

    def test_network_fee_scales_with_rate(self, planner: FeePlanner) -> None:
        """Test the fee scales with the fee rate."""
        assert planner.network_fee(2.0) == 500
        assert planner.network_fee(1.5) == 375
        assert planner.network_fee(10.0) == 2500

    def test_service_fee_increases_size(
        self, planner: FeePlanner, service_fee: ServiceFee
    ) -> None:
        """Test the size estimate grows with a service fee."""
        assert planner.estimate_size(None) == 250
        assert planner.estimate_size(service_fee) == 300
        assert planner.network_fee(5.0, service_fee) == 1500

    def test_greedy_minimal_selection(
        self, planner: FeePlanner, service_fee: ServiceFee, make_utxo: Callable[..., UTXO]
    ) -> None:
        """Test greedy selection with a service fee."""
        utxos = [make_utxo(5000, 0), make_utxo(3000, 1), make_utxo(1000, 2)]

        plan = planner.plan(utxos, 1.0, service_fee)

        assert plan.required_sats == 4000
        assert [u.value for u in plan.selected] == [5000]
        assert plan.total_input_sats == 5000
        assert plan.change_sats == 1000
        assert plan.has_change_output

    def test_change_below_dust_absorbed(
        self, planner: FeePlanner, make_utxo: Callable[..., UTXO]
    ) -> None:
        """Test change below dust is absorbed into the fee."""
        plan = planner.plan([make_utxo(1000, 0)], 1.0)

        assert plan.dust_output_sats == 546
        assert plan.network_fee_sats == 350
        assert plan.service_fee_sats == 0
        assert plan.required_sats == 896
        assert plan.change_sats == 104
        assert not plan.has_change_output
        assert plan.effective_fee_sats == 454

    def test_change_equal_to_dust_absorbed(
        self, planner: FeePlanner, make_utxo: Callable[..., UTXO]
    ) -> None:
        """Test change equal to dust is absorbed into the fee."""
        plan = planner.plan([make_utxo(896 + 546, 0)], 1.0)
        assert plan.change_sats == 546
        assert not plan.has_change_output

    def test_change_above_dust_kept(
        self, planner: FeePlanner, make_utxo: Callable[..., UTXO]
    ) -> None:
        """Test change above dust gets its own output."""
        plan = planner.plan([make_utxo(896 + 547, 0)], 1.0)
        assert plan.has_change_output
        assert plan.effective_fee_sats == 350

    def test_insufficient_funds(self, planner: FeePlanner, make_utxo: Callable[..., UTXO]) -> None:
        """Test insufficient funds carries the required amount."""
        with pytest.raises(InsufficientFundsError) as exc_info:
            planner.plan([make_utxo(600, 0), make_utxo(200, 1)], 1.0)
        assert exc_info.value.required == 896
        assert exc_info.value.shortfall == 96

    def test_empty_rejected_by_default(self, planner: FeePlanner) -> None:
        """Test no UTXOs fails without template mode."""
        with pytest.raises(InsufficientFundsError):
            planner.plan([], 1.0)

    def test_template_plan(self, planner: FeePlanner, service_fee: ServiceFee) -> None:
        """Test a template plan without inputs."""
        plan = planner.plan([], 1.0, service_fee, allow_template=True)

        assert plan.is_template
        assert plan.selected == []
        assert plan.total_input_sats == 0
        assert plan.change_sats == 0
        assert not plan.has_change_output
        assert plan.service_fee_sats == 3104

    @pytest.mark.parametrize("fee_rate", [0, -1.0])
    def test_fee_rate_must_be_positive(self, planner: FeePlanner, fee_rate: float) -> None:
        """Test non-positive fee rates are rejected."""
        with pytest.raises(ValueError):
            planner.plan([], fee_rate, allow_template=True)

    def test_configurable_constants(self, make_utxo: Callable[..., UTXO]) -> None:
        """Test dust and fee floor come from settings."""
        settings = Settings(_env_file=None, dust_amount=330, min_network_fee=200)
        plan = FeePlanner(settings).plan([make_utxo(10_000, 0)], 1.0)
        assert plan.required_sats == 330 + 250

"""
Tests for the ordered-fallback executor.
"""

from __future__ import annotations

from unittest.mock import AsyncMock

import pytest

from protomint.errors import BroadcastExhaustedError, ProviderError, ProviderExhaustedError
from protomint.fallback import first_success


class TestFirstSuccess:
    """Tests for first_success."""

    @pytest.mark.asyncio
    async def test_first_attempt_wins(self) -> None:
        """Test the first successful attempt is returned."""
        first = AsyncMock(return_value="a")
        second = AsyncMock(return_value="b")

        name, result = await first_success([("one", first), ("two", second)])

        assert (name, result) == ("one", "a")
        second.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_falls_back_in_order(self) -> None:
        """Test attempts run in order until one succeeds."""
        failing = AsyncMock(side_effect=ProviderError("one", "down"))
        succeeding = AsyncMock(return_value=[1, 2])
        unused = AsyncMock(return_value=[3])

        name, result = await first_success(
            [("one", failing), ("two", succeeding), ("three", unused)]
        )

        assert name == "two"
        assert result == [1, 2]
        failing.assert_awaited_once()
        unused.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_each_attempt_runs_once(self) -> None:
        """Test a failed attempt is never retried."""
        failing = AsyncMock(side_effect=RuntimeError("boom"))
        with pytest.raises(ProviderExhaustedError):
            await first_success([("one", failing)])
        assert failing.await_count == 1

    @pytest.mark.asyncio
    async def test_all_fail_reports_last_error(self) -> None:
        """Test exhaustion carries the last error and all errors."""
        first_error = ProviderError("one", "HTTP 500")
        last_error = ProviderError("two", "timeout")

        with pytest.raises(ProviderExhaustedError) as exc_info:
            await first_success(
                [
                    ("one", AsyncMock(side_effect=first_error)),
                    ("two", AsyncMock(side_effect=last_error)),
                ],
                what="UTXO fetch",
            )

        err = exc_info.value
        assert err.errors == [first_error, last_error]
        assert err.last_error is last_error
        assert err.__cause__ is last_error
        assert "UTXO fetch" in str(err)
        assert "timeout" in str(err)
        assert err.to_dict()["details"] == str(last_error)

    @pytest.mark.asyncio
    async def test_custom_exhausted_error(self) -> None:
        """Test the exhausted error class can be chosen."""
        with pytest.raises(BroadcastExhaustedError):
            await first_success(
                [("one", AsyncMock(side_effect=ValueError("bad")))],
                exhausted_error=BroadcastExhaustedError,
            )

    @pytest.mark.asyncio
    async def test_no_attempts(self) -> None:
        """Test an empty provider list is reported."""
        with pytest.raises(ProviderExhaustedError, match="No providers configured"):
            await first_success([], what="broadcast")

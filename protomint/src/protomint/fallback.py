"""
Ordered-fallback execution shared by UTXO fetching and broadcasting.
"""

from __future__ import annotations

from collections.abc import Awaitable, Callable, Sequence
from typing import TypeVar

from loguru import logger

from protomint.errors import ProviderExhaustedError

T = TypeVar("T")

Attempt = tuple[str, Callable[[], Awaitable[T]]]


async def first_success(
    attempts: Sequence[Attempt[T]],
    what: str = "operation",
    exhausted_error: type[ProviderExhaustedError] = ProviderExhaustedError,
) -> tuple[str, T]:
    """
    Run ``attempts`` in order and return (name, result) of the first success.

    Each attempt is awaited once; a failure moves on to the next one, it never
    retries the same attempt. When every attempt fails, ``exhausted_error`` is
    raised with the last error as its cause and all errors attached in order.
    """
    errors: list[Exception] = []

    for name, attempt in attempts:
        try:
            result = await attempt()
        except Exception as e:
            logger.warning(f"{what} via {name} failed: {e}")
            errors.append(e)
            continue
        if errors:
            logger.info(f"{what} succeeded via {name} after {len(errors)} failure(s)")
        else:
            logger.debug(f"{what} succeeded via {name}")
        return name, result

    if not errors:
        raise exhausted_error(f"No providers configured for {what}")

    last_error = errors[-1]
    logger.error(f"All {len(errors)} provider(s) failed for {what}")
    raise exhausted_error(f"All providers failed for {what}: {last_error}", errors) from last_error

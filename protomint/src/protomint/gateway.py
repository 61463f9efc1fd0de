"""
UTXO provider gateway.

Fetches the UTXOs of an address from the first provider that answers,
then stamps every UTXO with the spending script derived locally from the
address and the caller's public key.
"""

from __future__ import annotations

from collections.abc import Sequence

from loguru import logger

from protomint.address import classify_address
from protomint.errors import InvalidAddressError
from protomint.fallback import first_success
from protomint.models import UTXO, UTXOSet
from protomint.providers.base import Provider
from protomint.scripts import resolve_spending_script, script_matches_address


def normalize_utxos(utxos: list[UTXO], scriptpubkey: bytes) -> UTXOSet:
    """Apply the derived script and split out the spendable set (largest first)."""
    script_hex = scriptpubkey.hex()
    normalized = [
        UTXO(
            txid=u.txid,
            vout=u.vout,
            value=u.value,
            scriptpubkey=script_hex,
            confirmed=u.confirmed,
            height=u.height,
        )
        for u in utxos
    ]
    spendable = sorted((u for u in normalized if u.spendable), key=lambda u: u.value, reverse=True)
    return UTXOSet(all=normalized, spendable=spendable)


class UTXOGateway:
    def __init__(self, providers: Sequence[Provider]) -> None:
        self.providers = list(providers)

    async def fetch(self, address: str, public_key_hex: str | None = None) -> UTXOSet:
        """
        Fetch and normalize the UTXOs of ``address``.

        Raises:
            InvalidAddressError: If no spending script can be derived for the address
            ProviderExhaustedError: If every provider failed
        """
        info = classify_address(address)
        if not info.valid:
            raise InvalidAddressError(address, info.error or "Invalid address")

        scriptpubkey = resolve_spending_script(address, public_key_hex)
        if not scriptpubkey:
            raise InvalidAddressError(address, "Cannot derive spending script for address")
        if public_key_hex and not script_matches_address(scriptpubkey, address):
            logger.warning(
                f"Public key {public_key_hex[:10]}... does not match {address}, "
                "using the key-derived script"
            )

        logger.info(f"Fetching UTXOs for {address} ({len(self.providers)} providers)")
        attempts = [
            (provider.name, lambda p=provider: p.get_utxos(address)) for provider in self.providers
        ]
        provider_name, raw = await first_success(attempts, what="UTXO fetch")

        utxo_set = normalize_utxos(raw, scriptpubkey)
        logger.info(
            f"Fetched {len(utxo_set.all)} UTXOs via {provider_name}, "
            f"{len(utxo_set.spendable)} spendable, {utxo_set.total_balance} sats"
        )
        return utxo_set

    async def close(self) -> None:
        for provider in self.providers:
            await provider.close()

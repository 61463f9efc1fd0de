"""
Spending-script resolution and script building helpers.

The spending script of every UTXO is derived here from the address and the
caller's public key. Provider-reported scripts are never trusted.
"""

from __future__ import annotations

from loguru import logger

from protomint.address import classify_address, decode_witness_program, hash160
from protomint.constants import OP_0, OP_1, OP_PUSHDATA1, OP_PUSHDATA2
from protomint.models import ScriptFamily


def push_data(data: bytes) -> bytes:
    """Minimal push opcode for ``data`` followed by the data itself."""
    length = len(data)
    if length < OP_PUSHDATA1:
        return bytes([length]) + data
    if length <= 0xFF:
        return bytes([OP_PUSHDATA1, length]) + data
    if length <= 0xFFFF:
        return bytes([OP_PUSHDATA2]) + length.to_bytes(2, "little") + data
    raise ValueError(f"Data push too large: {length} bytes")


def p2wpkh_script(pubkey: bytes) -> bytes:
    """OP_0 <hash160(pubkey)>"""
    if len(pubkey) != 33 or pubkey[0] not in (0x02, 0x03):
        raise ValueError(f"Invalid compressed pubkey: {pubkey.hex()}")
    return bytes([OP_0]) + push_data(hash160(pubkey))


def to_xonly(pubkey: bytes) -> bytes:
    """Normalize a compressed or x-only public key to its 32-byte x coordinate."""
    if len(pubkey) == 32:
        return pubkey
    if len(pubkey) == 33 and pubkey[0] in (0x02, 0x03):
        return pubkey[1:]
    raise ValueError(f"Invalid public key format: {pubkey.hex()}")


def p2tr_script(pubkey: bytes) -> bytes:
    """OP_1 <x-only pubkey>"""
    return bytes([OP_1]) + push_data(to_xonly(pubkey))


def resolve_spending_script(address: str, public_key_hex: str | None = None) -> bytes:
    """
    Derive the scriptPubKey that locks the UTXOs of ``address``.

    With a public key the script is built from the key (hash160 for v0, x-only
    for taproot). Without one the witness program is decoded from the address.
    Returns an empty script when the address family is unknown or the inputs
    are malformed; callers must treat that as "cannot spend".
    """
    info = classify_address(address)
    if not info.valid or info.script_family == ScriptFamily.UNKNOWN:
        logger.warning(f"Unknown address type, cannot generate scriptPubKey: {info.error}")
        return b""

    try:
        if public_key_hex:
            pubkey = bytes.fromhex(public_key_hex)
            if info.script_family == ScriptFamily.SEGWIT_V0:
                return p2wpkh_script(pubkey)
            return p2tr_script(pubkey)

        witver, witprog = decode_witness_program(address, info.network)
        opcode = OP_0 if witver == 0 else OP_1
        return bytes([opcode]) + push_data(witprog)
    except ValueError as e:
        logger.error(f"Error generating scriptPubKey for {address}: {e}")
        return b""


def script_matches_address(script: bytes, address: str) -> bool:
    """True if ``script`` is the scriptPubKey encoded by ``address``."""
    try:
        witver, witprog = decode_witness_program(address)
    except ValueError:
        return False
    opcode = OP_0 if witver == 0 else OP_1
    return script == bytes([opcode]) + push_data(witprog)

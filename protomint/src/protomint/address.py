"""
Bitcoin address classification and address <-> scriptPubKey conversion.

Only native witness addresses (v0 segwit and v1 taproot) are spendable by the
pipeline. Legacy base58 addresses are still accepted as payment destinations
for the service fee output.
"""

from __future__ import annotations

import hashlib

import base58
import bech32

from protomint.constants import OP_0, OP_1
from protomint.models import AddressInfo, NetworkType, ScriptFamily

NETWORK_HRP: dict[NetworkType, str] = {
    NetworkType.MAINNET: "bc",
    NetworkType.TESTNET: "tb",
}

# Base58 version bytes: (p2pkh, p2sh)
BASE58_VERSIONS: dict[NetworkType, tuple[int, int]] = {
    NetworkType.MAINNET: (0x00, 0x05),
    NetworkType.TESTNET: (0x6F, 0xC4),
}

WITNESS_VERSION_CHARS: dict[str, ScriptFamily] = {
    "q": ScriptFamily.SEGWIT_V0,
    "p": ScriptFamily.TAPROOT,
}


def hash160(data: bytes) -> bytes:
    """RIPEMD160(SHA256(data))"""
    h = hashlib.new("ripemd160")
    h.update(hashlib.sha256(data).digest())
    return h.digest()


def detect_network(address: str | None) -> NetworkType | None:
    """Network from the human-readable prefix, None if it is not a witness address."""
    if not address:
        return None
    lowered = address.strip().lower()
    for network, hrp in NETWORK_HRP.items():
        if lowered.startswith(hrp + "1"):
            return network
    return None


def network_for_address(address: str | None, default: NetworkType) -> NetworkType:
    """Network parameters to use for a hint address, falling back to ``default``."""
    return detect_network(address) or default


def decode_witness_program(address: str, network: NetworkType | None = None) -> tuple[int, bytes]:
    """
    Decode a bech32/bech32m address into (witness version, witness program).

    Raises:
        ValueError: If the address is not a valid witness address for the network
    """
    detected = detect_network(address)
    if detected is None:
        raise ValueError(f"Not a witness address: {address}")
    if network is not None and detected != network:
        raise ValueError(f"Address {address} is not a {network.value} address")

    witver, witprog = bech32.decode(NETWORK_HRP[detected], address.strip())
    if witver is None or witprog is None:
        raise ValueError(f"Invalid bech32 address: {address}")
    return witver, bytes(witprog)


def witness_scriptpubkey(witver: int, witprog: bytes) -> bytes:
    """Build OP_n <program> for a supported witness program."""
    if witver == 0 and len(witprog) in (20, 32):
        # P2WPKH / P2WSH: OP_0 <20 or 32 bytes>
        return bytes([OP_0, len(witprog)]) + witprog
    if witver == 1 and len(witprog) == 32:
        # P2TR: OP_1 <32-byte x-only pubkey>
        return bytes([OP_1, 0x20]) + witprog
    raise ValueError(f"Unsupported witness program: version {witver}, {len(witprog)} bytes")


def address_to_scriptpubkey(address: str, network: NetworkType | None = None) -> bytes:
    """
    Convert a Bitcoin address to scriptPubKey.

    Supports:
    - P2WPKH / P2WSH (bc1q..., tb1q...)
    - P2TR (bc1p..., tb1p...)
    - P2PKH (1..., m..., n...)
    - P2SH (3..., 2...)

    Raises:
        ValueError: If the address cannot be decoded (for the given network)
    """
    if detect_network(address) is not None:
        witver, witprog = decode_witness_program(address, network)
        return witness_scriptpubkey(witver, witprog)

    try:
        decoded = base58.b58decode_check(address)
    except ValueError as e:
        raise ValueError(f"Invalid address: {address}") from e
    if len(decoded) != 21:
        raise ValueError(f"Invalid base58 payload length: {len(decoded)}")

    version = decoded[0]
    payload = decoded[1:]
    networks = [network] if network is not None else list(BASE58_VERSIONS)
    for net in networks:
        p2pkh, p2sh = BASE58_VERSIONS[net]
        if version == p2pkh:
            # OP_DUP OP_HASH160 <20-byte-pubkeyhash> OP_EQUALVERIFY OP_CHECKSIG
            return bytes([0x76, 0xA9, 0x14]) + payload + bytes([0x88, 0xAC])
        if version == p2sh:
            # OP_HASH160 <20-byte-scripthash> OP_EQUAL
            return bytes([0xA9, 0x14]) + payload + bytes([0x87])

    raise ValueError(f"Unknown address version: {version}")


def scriptpubkey_to_address(scriptpubkey: bytes, network: NetworkType = NetworkType.MAINNET) -> str:
    """Convert a witness scriptPubKey back to its address."""
    hrp = NETWORK_HRP[network]

    if len(scriptpubkey) == 22 and scriptpubkey[0] == OP_0 and scriptpubkey[1] == 0x14:
        witver = 0
    elif len(scriptpubkey) == 34 and scriptpubkey[0] == OP_0 and scriptpubkey[1] == 0x20:
        witver = 0
    elif len(scriptpubkey) == 34 and scriptpubkey[0] == OP_1 and scriptpubkey[1] == 0x20:
        witver = 1
    else:
        raise ValueError(f"Unsupported scriptPubKey: {scriptpubkey.hex()}")

    result = bech32.encode(hrp, witver, scriptpubkey[2:])
    if result is None:
        raise ValueError(f"Failed to encode address for scriptPubKey: {scriptpubkey.hex()}")
    return result


def classify_address(address: str | None) -> AddressInfo:
    """
    Determine network, script family and validity of an address.

    Never raises: a failed decode sets ``valid=False`` and records the cause.
    """
    if not address or not address.strip():
        return AddressInfo(
            address=address or "",
            network=NetworkType.MAINNET,
            script_family=ScriptFamily.UNKNOWN,
            valid=False,
            error="Missing address",
        )

    network = detect_network(address)
    if network is None:
        return AddressInfo(
            address=address,
            network=NetworkType.MAINNET,
            script_family=ScriptFamily.UNKNOWN,
            valid=False,
            error="Unrecognized address prefix",
        )

    hrp = NETWORK_HRP[network]
    version_char = address.strip().lower()[len(hrp) + 1 : len(hrp) + 2]
    family = WITNESS_VERSION_CHARS.get(version_char, ScriptFamily.UNKNOWN)
    if family == ScriptFamily.UNKNOWN:
        return AddressInfo(
            address=address,
            network=network,
            script_family=family,
            valid=False,
            error="Unsupported witness version",
        )

    try:
        address_to_scriptpubkey(address, network)
    except ValueError as e:
        return AddressInfo(
            address=address, network=network, script_family=family, valid=False, error=str(e)
        )

    return AddressInfo(address=address, network=network, script_family=family, valid=True)

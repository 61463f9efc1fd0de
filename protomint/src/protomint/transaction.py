"""
Bitcoin transaction serialization.

Inputs reference previous outputs by txid in RPC (big-endian) hex; the raw
format stores them reversed.
"""

from __future__ import annotations

import hashlib
import struct
from dataclasses import dataclass, field

from protomint.constants import DEFAULT_SEQUENCE, TX_LOCKTIME, TX_VERSION


@dataclass
class TxInput:
    """Transaction input."""

    txid: str
    vout: int
    scriptsig: bytes = b""
    sequence: int = DEFAULT_SEQUENCE
    witness: list[bytes] = field(default_factory=list)


@dataclass
class TxOutput:
    """Transaction output."""

    value: int
    scriptpubkey: bytes


@dataclass
class Transaction:
    inputs: list[TxInput] = field(default_factory=list)
    outputs: list[TxOutput] = field(default_factory=list)
    version: int = TX_VERSION
    locktime: int = TX_LOCKTIME

    @property
    def has_witness(self) -> bool:
        return any(inp.witness for inp in self.inputs)

    def serialize(self, include_witness: bool = True) -> bytes:
        """Serialize, with BIP144 marker/flag and witnesses when any input has one."""
        segwit = include_witness and self.has_witness

        result = struct.pack("<I", self.version)
        if segwit:
            result += bytes([0x00, 0x01])

        result += varint(len(self.inputs))
        for inp in self.inputs:
            result += serialize_input(inp)

        result += varint(len(self.outputs))
        for out in self.outputs:
            result += serialize_output(out)

        if segwit:
            for inp in self.inputs:
                result += varint(len(inp.witness))
                for item in inp.witness:
                    result += varint(len(item)) + item

        result += struct.pack("<I", self.locktime)
        return result

    def txid(self) -> str:
        """Double SHA256 of the non-witness serialization, in RPC byte order."""
        data = self.serialize(include_witness=False)
        return hashlib.sha256(hashlib.sha256(data).digest()).digest()[::-1].hex()

    def hex(self) -> str:
        return self.serialize().hex()

    @classmethod
    def parse(cls, tx_bytes: bytes, allow_witness: bool = True) -> Transaction:
        """
        Parse a transaction.

        PSBTs store the unsigned transaction without witness data, where an
        input-less transaction with one output would look like a segwit marker.
        Pass ``allow_witness=False`` for those.

        Raises:
            ValueError: If the bytes are not a complete transaction
        """
        try:
            tx, offset = _parse(tx_bytes, allow_witness)
        except (IndexError, struct.error) as e:
            raise ValueError(f"Truncated transaction: {e}") from e
        if offset != len(tx_bytes):
            raise ValueError(f"Trailing data after transaction: {len(tx_bytes) - offset} bytes")
        return tx


def varint(n: int) -> bytes:
    """Encode integer as Bitcoin varint."""
    if n < 0xFD:
        return bytes([n])
    elif n <= 0xFFFF:
        return bytes([0xFD]) + struct.pack("<H", n)
    elif n <= 0xFFFFFFFF:
        return bytes([0xFE]) + struct.pack("<I", n)
    else:
        return bytes([0xFF]) + struct.pack("<Q", n)


def read_varint(data: bytes, offset: int) -> tuple[int, int]:
    """Read varint and return (value, new offset)."""
    first = data[offset]
    if first < 0xFD:
        return first, offset + 1
    elif first == 0xFD:
        return struct.unpack("<H", data[offset + 1 : offset + 3])[0], offset + 3
    elif first == 0xFE:
        return struct.unpack("<I", data[offset + 1 : offset + 5])[0], offset + 5
    else:
        return struct.unpack("<Q", data[offset + 1 : offset + 9])[0], offset + 9


def serialize_outpoint(txid: str, vout: int) -> bytes:
    """Serialize outpoint (txid:vout)."""
    # txid is in RPC format (big-endian), need to reverse for raw tx
    txid_bytes = bytes.fromhex(txid)[::-1]
    return txid_bytes + struct.pack("<I", vout)


def serialize_input(inp: TxInput) -> bytes:
    result = serialize_outpoint(inp.txid, inp.vout)
    result += varint(len(inp.scriptsig)) + inp.scriptsig
    result += struct.pack("<I", inp.sequence)
    return result


def serialize_output(out: TxOutput) -> bytes:
    result = struct.pack("<Q", out.value)
    result += varint(len(out.scriptpubkey)) + out.scriptpubkey
    return result


def read_bytes(data: bytes, offset: int, size: int) -> tuple[bytes, int]:
    """Read exactly ``size`` bytes and return (bytes, new offset)."""
    chunk = data[offset : offset + size]
    if len(chunk) != size:
        raise IndexError(f"need {size} bytes at offset {offset}")
    return chunk, offset + size


def _parse(tx_bytes: bytes, allow_witness: bool) -> tuple[Transaction, int]:
    offset = 0
    version = struct.unpack("<I", tx_bytes[offset : offset + 4])[0]
    offset += 4

    has_witness = False
    if allow_witness and tx_bytes[offset] == 0x00 and tx_bytes[offset + 1] == 0x01:
        has_witness = True
        offset += 2

    input_count, offset = read_varint(tx_bytes, offset)
    inputs = []
    for _ in range(input_count):
        txid_le, offset = read_bytes(tx_bytes, offset, 32)
        vout = struct.unpack("<I", tx_bytes[offset : offset + 4])[0]
        offset += 4
        script_len, offset = read_varint(tx_bytes, offset)
        scriptsig, offset = read_bytes(tx_bytes, offset, script_len)
        sequence = struct.unpack("<I", tx_bytes[offset : offset + 4])[0]
        offset += 4
        inputs.append(
            TxInput(txid=txid_le[::-1].hex(), vout=vout, scriptsig=scriptsig, sequence=sequence)
        )

    output_count, offset = read_varint(tx_bytes, offset)
    outputs = []
    for _ in range(output_count):
        value = struct.unpack("<Q", tx_bytes[offset : offset + 8])[0]
        offset += 8
        script_len, offset = read_varint(tx_bytes, offset)
        scriptpubkey, offset = read_bytes(tx_bytes, offset, script_len)
        outputs.append(TxOutput(value=value, scriptpubkey=scriptpubkey))

    if has_witness:
        for inp in inputs:
            item_count, offset = read_varint(tx_bytes, offset)
            for _ in range(item_count):
                item_len, offset = read_varint(tx_bytes, offset)
                item, offset = read_bytes(tx_bytes, offset, item_len)
                inp.witness.append(item)

    locktime = struct.unpack("<I", tx_bytes[offset : offset + 4])[0]
    offset += 4

    return Transaction(inputs=inputs, outputs=outputs, version=version, locktime=locktime), offset

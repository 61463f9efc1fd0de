"""
Alkanes protocol payload encoding.

The protocol message travels in a null-data output as a runestone:

    OP_RETURN OP_13 <LEB128 tag/value stream>

A protostone is a list of integers:

    [protocol_tag, field_count, 91, pointer, 93, refund, 81, msg_0, 81, msg_1, ...]

where ``field_count`` counts the integers that follow it and ``msg_i`` are
the calldata ``[block, tx, opcode, *extra]`` enciphered as LEB128 and packed
15 bytes at a time into little-endian integers.

The protostone integers are enciphered as LEB128 in turn, packed into 15-byte
chunks the same way, and each chunk becomes one value of the runestone's
protorunes field (tag 16383).

Two encoders produce this script. ``RunestoneEncoder`` builds it from an
object model and returns a complete script, ``ManualEncoder`` enciphers the
integer stream directly and returns the bare payload. Both results go
through ``ensure_null_data_script`` and are byte-identical.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from collections.abc import Iterable
from dataclasses import dataclass, field

from loguru import logger

from protomint.constants import (
    ALKANES_PROTOCOL_TAG,
    MAX_SCRIPT_ELEMENT_SIZE,
    OP_RETURN,
    PROTORUNES_PROTOCOL_FIELD,
    PROTOSTONE_CHUNK_SIZE,
    PROTOSTONE_TAG_MESSAGE,
    PROTOSTONE_TAG_POINTER,
    PROTOSTONE_TAG_REFUND,
    RUNESTONE_MAGIC,
    U128_MAX,
)
from protomint.errors import EncodingError
from protomint.models import ProtocolMessage
from protomint.scripts import push_data


def encode_varint(value: int) -> bytes:
    """Unsigned LEB128 encoding of a u128."""
    if value < 0 or value > U128_MAX:
        raise ValueError(f"Value out of u128 range: {value}")
    result = bytearray()
    while True:
        byte = value & 0x7F
        value >>= 7
        if value:
            result.append(byte | 0x80)
        else:
            result.append(byte)
            return bytes(result)


def encipher(values: Iterable[int]) -> bytes:
    """Concatenated LEB128 encoding of a list of integers."""
    return b"".join(encode_varint(v) for v in values)


def pack_u128s(data: bytes) -> list[int]:
    """Split ``data`` into 15-byte little-endian integers."""
    return [
        int.from_bytes(data[i : i + PROTOSTONE_CHUNK_SIZE], "little")
        for i in range(0, len(data), PROTOSTONE_CHUNK_SIZE)
    ]


def null_data_script(payload: bytes) -> bytes:
    """OP_RETURN OP_13 followed by ``payload`` in pushes of at most 520 bytes."""
    script = bytes([OP_RETURN, RUNESTONE_MAGIC])
    for i in range(0, len(payload), MAX_SCRIPT_ELEMENT_SIZE):
        script += push_data(payload[i : i + MAX_SCRIPT_ELEMENT_SIZE])
    return script


def ensure_null_data_script(data: bytes) -> bytes:
    """
    Return ``data`` as a complete null-data script.

    Some encoders return the full script, others the bare runestone payload.
    A bare payload never starts with OP_RETURN: its first byte is the start of
    a LEB128 tag.
    """
    if not data:
        raise EncodingError("Encoder returned an empty payload")
    if data[0] == OP_RETURN:
        return data
    return null_data_script(data)


@dataclass
class Protostone:
    """A protorunes message. The edict list is always empty for mints."""

    protocol_tag: int
    message: bytes = b""
    pointer: int | None = None
    refund_pointer: int | None = None

    def fields(self) -> list[tuple[int, int]]:
        """Tag/value pairs in wire order: pointer, refund pointer, then message chunks."""
        pairs: list[tuple[int, int]] = []
        if self.pointer is not None:
            pairs.append((PROTOSTONE_TAG_POINTER, self.pointer))
        if self.refund_pointer is not None:
            pairs.append((PROTOSTONE_TAG_REFUND, self.refund_pointer))
        pairs.extend((PROTOSTONE_TAG_MESSAGE, chunk) for chunk in pack_u128s(self.message))
        return pairs

    def to_integers(self) -> list[int]:
        values = [v for pair in self.fields() for v in pair]
        return [self.protocol_tag, len(values), *values]

    @classmethod
    def mint(cls, message: ProtocolMessage) -> Protostone:
        return cls(
            protocol_tag=ALKANES_PROTOCOL_TAG,
            message=encipher(message.calldata()),
            pointer=0,
            refund_pointer=0,
        )


@dataclass
class Runestone:
    protostones: list[Protostone] = field(default_factory=list)

    def protocol_values(self) -> list[int]:
        """Values of the protorunes field: the enciphered protostones in 15-byte chunks."""
        integers = [value for stone in self.protostones for value in stone.to_integers()]
        return pack_u128s(encipher(integers))

    def payload(self) -> bytes:
        field_tag = encode_varint(PROTORUNES_PROTOCOL_FIELD)
        return b"".join(field_tag + encode_varint(value) for value in self.protocol_values())

    def to_script(self) -> bytes:
        return null_data_script(self.payload())


class PayloadEncoder(ABC):
    """Strategy for turning a protocol message into its null-data script."""

    name: str = ""

    @abstractmethod
    def encode(self, message: ProtocolMessage) -> bytes:
        """Return either the complete script or the bare runestone payload"""

    def build_script(self, message: ProtocolMessage) -> bytes:
        """
        Encode ``message`` into a complete OP_RETURN script.

        Raises:
            EncodingError: If the message cannot be encoded
        """
        try:
            script = ensure_null_data_script(self.encode(message))
        except EncodingError:
            raise
        except (ValueError, OverflowError) as e:
            raise EncodingError(f"Failed to encode protocol message: {e}") from e

        logger.debug(
            f"{self.name} encoder: token {message.token_id.block}:{message.token_id.tx} "
            f"opcode {message.opcode} -> {script.hex()}"
        )
        return script


class RunestoneEncoder(PayloadEncoder):
    """Primary encoder built on the Runestone / Protostone object model."""

    name = "runestone"

    def encode(self, message: ProtocolMessage) -> bytes:
        return Runestone(protostones=[Protostone.mint(message)]).to_script()


class ManualEncoder(PayloadEncoder):
    """Fallback encoder that enciphers the integer stream directly."""

    name = "manual"

    def encode(self, message: ProtocolMessage) -> bytes:
        fields = [PROTOSTONE_TAG_POINTER, 0, PROTOSTONE_TAG_REFUND, 0]
        for chunk in pack_u128s(encipher(message.calldata())):
            fields += [PROTOSTONE_TAG_MESSAGE, chunk]

        protostone = encipher([ALKANES_PROTOCOL_TAG, len(fields), *fields])
        return encipher(
            v for chunk in pack_u128s(protostone) for v in (PROTORUNES_PROTOCOL_FIELD, chunk)
        )


ENCODERS: dict[str, type[PayloadEncoder]] = {
    RunestoneEncoder.name: RunestoneEncoder,
    ManualEncoder.name: ManualEncoder,
}


def get_encoder(name: str) -> PayloadEncoder:
    """Select the payload encoder once, at startup."""
    try:
        return ENCODERS[name]()
    except KeyError:
        raise ValueError(f"Unknown payload encoder: {name}") from None

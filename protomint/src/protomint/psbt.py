"""
BIP174 (version 0) PSBT container.

Only the records the mint pipeline reads or writes are decoded: the unsigned
transaction, witness UTXOs, partial signatures, the taproot key-path signature
and the final scriptSig / witness. Every other key/value pair is kept as raw
bytes and written back unchanged.
"""

from __future__ import annotations

import base64
import binascii
import struct
from dataclasses import dataclass, field
from typing import Any

from protomint.address import hash160, scriptpubkey_to_address
from protomint.constants import (
    OP_0,
    OP_1,
    OP_RETURN,
    PSBT_GLOBAL_UNSIGNED_TX,
    PSBT_IN_FINAL_SCRIPTSIG,
    PSBT_IN_FINAL_SCRIPTWITNESS,
    PSBT_IN_NON_WITNESS_UTXO,
    PSBT_IN_PARTIAL_SIG,
    PSBT_IN_SIGHASH_TYPE,
    PSBT_IN_TAP_KEY_SIG,
    PSBT_IN_WITNESS_UTXO,
    PSBT_MAGIC,
    PSBT_MAGIC_BASE64,
    PSBT_MAGIC_HEX,
)
from protomint.errors import ContainerDecodeError, ExtractionError, FinalizationError
from protomint.models import NetworkType
from protomint.transaction import (
    Transaction,
    TxInput,
    TxOutput,
    read_bytes,
    read_varint,
    serialize_output,
    varint,
)

KeyValue = tuple[bytes, bytes]


def is_p2wpkh(script: bytes) -> bool:
    return len(script) == 22 and script[0] == OP_0 and script[1] == 0x14


def is_p2tr(script: bytes) -> bool:
    return len(script) == 34 and script[0] == OP_1 and script[1] == 0x20


def serialize_witness(stack: list[bytes]) -> bytes:
    result = varint(len(stack))
    for item in stack:
        result += varint(len(item)) + item
    return result


def parse_witness(data: bytes) -> list[bytes]:
    count, offset = read_varint(data, 0)
    stack = []
    for _ in range(count):
        length, offset = read_varint(data, offset)
        item, offset = read_bytes(data, offset, length)
        stack.append(item)
    if offset != len(data):
        raise ValueError("Trailing data after witness stack")
    return stack


def parse_tx_output(data: bytes) -> TxOutput:
    value = struct.unpack("<Q", data[:8])[0]
    length, offset = read_varint(data, 8)
    script, offset = read_bytes(data, offset, length)
    if offset != len(data):
        raise ValueError("Trailing data after witness UTXO")
    return TxOutput(value=value, scriptpubkey=script)


@dataclass
class PSBTInput:
    witness_utxo: TxOutput | None = None
    non_witness_utxo: bytes | None = None
    partial_sigs: dict[bytes, bytes] = field(default_factory=dict)
    sighash_type: int | None = None
    tap_key_sig: bytes | None = None
    final_script_sig: bytes | None = None
    final_script_witness: list[bytes] | None = None
    # Records not decoded above, keyed by the full key (type byte included)
    unknown: dict[bytes, bytes] = field(default_factory=dict)

    @property
    def is_finalized(self) -> bool:
        return self.final_script_witness is not None or self.final_script_sig is not None

    def to_pairs(self) -> list[KeyValue]:
        pairs: list[KeyValue] = []
        if self.non_witness_utxo is not None:
            pairs.append((bytes([PSBT_IN_NON_WITNESS_UTXO]), self.non_witness_utxo))
        if self.witness_utxo is not None:
            pairs.append((bytes([PSBT_IN_WITNESS_UTXO]), serialize_output(self.witness_utxo)))
        for pubkey, sig in self.partial_sigs.items():
            pairs.append((bytes([PSBT_IN_PARTIAL_SIG]) + pubkey, sig))
        if self.sighash_type is not None:
            pairs.append((bytes([PSBT_IN_SIGHASH_TYPE]), struct.pack("<I", self.sighash_type)))
        if self.final_script_sig is not None:
            pairs.append((bytes([PSBT_IN_FINAL_SCRIPTSIG]), self.final_script_sig))
        if self.final_script_witness is not None:
            pairs.append(
                (bytes([PSBT_IN_FINAL_SCRIPTWITNESS]), serialize_witness(self.final_script_witness))
            )
        if self.tap_key_sig is not None:
            pairs.append((bytes([PSBT_IN_TAP_KEY_SIG]), self.tap_key_sig))
        pairs.extend(self.unknown.items())
        return pairs

    @classmethod
    def from_pairs(cls, pairs: list[KeyValue]) -> PSBTInput:
        inp = cls()
        for key, value in pairs:
            key_type = key[0]
            if key_type == PSBT_IN_NON_WITNESS_UTXO and len(key) == 1:
                inp.non_witness_utxo = value
            elif key_type == PSBT_IN_WITNESS_UTXO and len(key) == 1:
                inp.witness_utxo = parse_tx_output(value)
            elif key_type == PSBT_IN_PARTIAL_SIG and len(key) in (34, 66):
                inp.partial_sigs[key[1:]] = value
            elif key_type == PSBT_IN_SIGHASH_TYPE and len(key) == 1 and len(value) == 4:
                inp.sighash_type = struct.unpack("<I", value)[0]
            elif key_type == PSBT_IN_FINAL_SCRIPTSIG and len(key) == 1:
                inp.final_script_sig = value
            elif key_type == PSBT_IN_FINAL_SCRIPTWITNESS and len(key) == 1:
                inp.final_script_witness = parse_witness(value)
            elif key_type == PSBT_IN_TAP_KEY_SIG and len(key) == 1:
                inp.tap_key_sig = value
            else:
                inp.unknown[key] = value
        return inp


@dataclass
class PSBTOutput:
    # No output record is needed for minting; everything is passed through.
    unknown: dict[bytes, bytes] = field(default_factory=dict)

    def to_pairs(self) -> list[KeyValue]:
        return list(self.unknown.items())

    @classmethod
    def from_pairs(cls, pairs: list[KeyValue]) -> PSBTOutput:
        return cls(unknown=dict(pairs))


def _serialize_map(pairs: list[KeyValue]) -> bytes:
    result = b""
    for key, value in pairs:
        result += varint(len(key)) + key + varint(len(value)) + value
    return result + b"\x00"


def _read_map(data: bytes, offset: int) -> tuple[list[KeyValue], int]:
    pairs: list[KeyValue] = []
    seen: set[bytes] = set()
    while True:
        key_len, offset = read_varint(data, offset)
        if key_len == 0:
            return pairs, offset
        key, offset = read_bytes(data, offset, key_len)
        value_len, offset = read_varint(data, offset)
        value, offset = read_bytes(data, offset, value_len)
        if key in seen:
            raise ValueError(f"Duplicate key {key.hex()}")
        seen.add(key)
        pairs.append((key, value))


class PSBT:
    def __init__(
        self,
        tx: Transaction,
        inputs: list[PSBTInput] | None = None,
        outputs: list[PSBTOutput] | None = None,
        unknown: dict[bytes, bytes] | None = None,
    ) -> None:
        self.tx = tx
        self.inputs = inputs if inputs is not None else [PSBTInput() for _ in tx.inputs]
        self.outputs = outputs if outputs is not None else [PSBTOutput() for _ in tx.outputs]
        self.unknown = unknown or {}

        if len(self.inputs) != len(tx.inputs) or len(self.outputs) != len(tx.outputs):
            raise ValueError("PSBT input/output maps do not match the unsigned transaction")

    # Encoding

    def serialize(self) -> bytes:
        unsigned = self.tx.serialize(include_witness=False)
        result = PSBT_MAGIC
        result += _serialize_map(
            [(bytes([PSBT_GLOBAL_UNSIGNED_TX]), unsigned), *self.unknown.items()]
        )
        for inp in self.inputs:
            result += _serialize_map(inp.to_pairs())
        for out in self.outputs:
            result += _serialize_map(out.to_pairs())
        return result

    def to_hex(self) -> str:
        return self.serialize().hex()

    def to_base64(self) -> str:
        return base64.b64encode(self.serialize()).decode("ascii")

    @classmethod
    def parse(cls, data: bytes) -> PSBT:
        """
        Parse a binary PSBT.

        Raises:
            ContainerDecodeError: If the bytes are not a well-formed PSBT
        """
        if not data.startswith(PSBT_MAGIC):
            raise ContainerDecodeError("Not a PSBT: missing magic bytes")

        try:
            global_pairs, offset = _read_map(data, len(PSBT_MAGIC))
            unknown = dict(global_pairs)
            unsigned = unknown.pop(bytes([PSBT_GLOBAL_UNSIGNED_TX]), None)
            if unsigned is None:
                raise ValueError("Missing unsigned transaction")
            tx = Transaction.parse(unsigned, allow_witness=False)
            if any(inp.scriptsig for inp in tx.inputs):
                raise ValueError("Unsigned transaction has non-empty scriptSig")

            inputs = []
            for _ in tx.inputs:
                pairs, offset = _read_map(data, offset)
                inputs.append(PSBTInput.from_pairs(pairs))
            outputs = []
            for _ in tx.outputs:
                pairs, offset = _read_map(data, offset)
                outputs.append(PSBTOutput.from_pairs(pairs))
        except (ValueError, IndexError, struct.error) as e:
            raise ContainerDecodeError(f"Malformed PSBT: {e}") from e

        if offset != len(data):
            raise ContainerDecodeError(f"Trailing data after PSBT: {len(data) - offset} bytes")
        return cls(tx, inputs, outputs, unknown)

    @classmethod
    def from_string(cls, container: str) -> PSBT:
        """
        Decode a PSBT from hex or base64, detected by the encoded magic bytes.

        Raises:
            ContainerDecodeError: If the encoding is not recognized or invalid
        """
        text = container.strip() if container else ""
        if not text:
            raise ContainerDecodeError("Empty PSBT")

        try:
            if text.lower().startswith(PSBT_MAGIC_HEX):
                raw = bytes.fromhex(text)
            elif text.startswith(PSBT_MAGIC_BASE64):
                raw = base64.b64decode(text, validate=True)
            else:
                raise ContainerDecodeError("Unrecognized PSBT encoding, expected hex or base64")
        except (ValueError, binascii.Error) as e:
            raise ContainerDecodeError(f"Invalid PSBT encoding: {e}") from e

        return cls.parse(raw)

    # Finalization

    def is_input_finalized(self, index: int) -> bool:
        return self.inputs[index].is_finalized

    def is_finalized(self) -> bool:
        return all(inp.is_finalized for inp in self.inputs)

    def finalize_input(self, index: int) -> None:
        """
        Build the final witness of a single-key input from its signature.

        P2WPKH uses the partial signature whose public key hashes to the
        witness program, P2TR uses the key-path signature. Signing records are
        dropped once the final witness is set; the witness UTXO and unknown
        fields are kept. Already finalized inputs are left untouched.

        Raises:
            FinalizationError: If the input cannot be finalized
        """
        inp = self.inputs[index]
        if inp.is_finalized:
            return
        if inp.witness_utxo is None:
            raise FinalizationError(index, "missing witness UTXO")

        script = inp.witness_utxo.scriptpubkey
        if is_p2wpkh(script):
            witness = self._p2wpkh_witness(index, inp, script[2:])
        elif is_p2tr(script):
            if not inp.tap_key_sig:
                raise FinalizationError(index, "missing taproot key-path signature")
            if len(inp.tap_key_sig) not in (64, 65):
                raise FinalizationError(
                    index, f"invalid taproot signature length {len(inp.tap_key_sig)}"
                )
            witness = [inp.tap_key_sig]
        else:
            raise FinalizationError(index, f"unsupported script {script.hex()}")

        inp.final_script_witness = witness
        inp.partial_sigs = {}
        inp.sighash_type = None
        inp.tap_key_sig = None

    @staticmethod
    def _p2wpkh_witness(index: int, inp: PSBTInput, program: bytes) -> list[bytes]:
        if not inp.partial_sigs:
            raise FinalizationError(index, "no partial signatures")
        for pubkey, sig in inp.partial_sigs.items():
            if hash160(pubkey) == program:
                return [sig, pubkey]
        raise FinalizationError(index, "no partial signature matches the witness program")

    def extract_transaction(self) -> Transaction:
        """
        Build the network transaction from the finalized inputs.

        Raises:
            ExtractionError: If an input is not finalized or there are no inputs
        """
        if not self.inputs:
            raise ExtractionError("PSBT has no inputs")

        inputs = []
        for i, (txin, psbt_in) in enumerate(zip(self.tx.inputs, self.inputs)):
            if not psbt_in.is_finalized:
                raise ExtractionError(f"Input {i} is not finalized")
            inputs.append(
                TxInput(
                    txid=txin.txid,
                    vout=txin.vout,
                    scriptsig=psbt_in.final_script_sig or b"",
                    sequence=txin.sequence,
                    witness=list(psbt_in.final_script_witness or []),
                )
            )

        return Transaction(
            inputs=inputs,
            outputs=[TxOutput(o.value, o.scriptpubkey) for o in self.tx.outputs],
            version=self.tx.version,
            locktime=self.tx.locktime,
        )

    # Inspection

    def fee(self) -> int | None:
        """Input value minus output value, None without inputs or with a missing witness UTXO."""
        if not self.inputs or any(inp.witness_utxo is None for inp in self.inputs):
            return None
        total_in = sum(inp.witness_utxo.value for inp in self.inputs if inp.witness_utxo)
        return total_in - sum(out.value for out in self.tx.outputs)

    def summary(self, network: NetworkType = NetworkType.MAINNET) -> dict[str, Any]:
        """Human-readable overview of the container, for logging."""
        outputs = []
        for out in self.tx.outputs:
            if out.scriptpubkey[:1] == bytes([OP_RETURN]):
                destination = "OP_RETURN"
            else:
                try:
                    destination = scriptpubkey_to_address(out.scriptpubkey, network)
                except ValueError:
                    destination = out.scriptpubkey.hex()
            outputs.append({"value": out.value, "destination": destination})

        return {
            "txid": self.tx.txid(),
            "inputs": [
                {
                    "outpoint": f"{txin.txid}:{txin.vout}",
                    "value": psbt_in.witness_utxo.value if psbt_in.witness_utxo else None,
                    "finalized": psbt_in.is_finalized,
                }
                for txin, psbt_in in zip(self.tx.inputs, self.inputs)
            ],
            "outputs": outputs,
            "fee": self.fee(),
        }

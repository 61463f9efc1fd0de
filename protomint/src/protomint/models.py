"""
Core data models using Pydantic for validation and serialization.

Request bodies accept both the field names of the HTTP API and the names used
by the web front-end (``executeData``, ``walletPublicKey`` ...).
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, field_validator

from protomint.constants import MINT_OPCODE, U64_MAX


class NetworkType(str, Enum):
    MAINNET = "mainnet"
    TESTNET = "testnet"


class ScriptFamily(str, Enum):
    SEGWIT_V0 = "segwit_v0"
    TAPROOT = "taproot"
    UNKNOWN = "unknown"


class AddressInfo(BaseModel):
    """Classification of an address string. Callers must check ``valid``."""

    model_config = ConfigDict(frozen=True)

    address: str
    network: NetworkType
    script_family: ScriptFamily
    valid: bool
    error: str | None = None

    @property
    def is_segwit(self) -> bool:
        return self.script_family == ScriptFamily.SEGWIT_V0

    @property
    def is_taproot(self) -> bool:
        return self.script_family == ScriptFamily.TAPROOT


@dataclass
class UTXO:
    txid: str
    vout: int
    value: int
    scriptpubkey: str = ""
    confirmed: bool = True
    height: int | None = None

    @property
    def spendable(self) -> bool:
        return self.value > 0

    def to_dict(self) -> dict[str, object]:
        return {
            "txid": self.txid,
            "vout": self.vout,
            "value": self.value,
            "scriptPubKey": self.scriptpubkey,
            "confirmed": self.confirmed,
        }


@dataclass
class UTXOSet:
    """UTXOs fetched for one address. ``spendable`` is sorted by value, largest first."""

    all: list[UTXO] = field(default_factory=list)
    spendable: list[UTXO] = field(default_factory=list)

    @property
    def total_balance(self) -> int:
        return sum(u.value for u in self.spendable)

    @property
    def confirmed_balance(self) -> int:
        return sum(u.value for u in self.spendable if u.confirmed)

    @property
    def pending_balance(self) -> int:
        return sum(u.value for u in self.spendable if not u.confirmed)

    def to_dict(self) -> dict[str, object]:
        return {
            "all": [u.to_dict() for u in self.all],
            "spendable": [u.to_dict() for u in self.spendable],
        }


@dataclass
class OutputPlan:
    dust_output_sats: int
    network_fee_sats: int
    service_fee_sats: int
    change_sats: int
    total_input_sats: int
    estimated_size: int
    selected: list[UTXO] = field(default_factory=list)

    @property
    def required_sats(self) -> int:
        return self.dust_output_sats + self.network_fee_sats + self.service_fee_sats

    @property
    def is_template(self) -> bool:
        return not self.selected

    @property
    def has_change_output(self) -> bool:
        # Change at or below the dust value is left to the miner
        return not self.is_template and self.change_sats > self.dust_output_sats

    @property
    def effective_fee_sats(self) -> int:
        """Fee actually paid, including change absorbed below the dust threshold."""
        if self.is_template or self.has_change_output:
            return self.network_fee_sats
        return self.network_fee_sats + self.change_sats


class TokenId(BaseModel):
    block: int = Field(..., ge=0, le=U64_MAX)
    tx: int = Field(..., ge=0, le=U64_MAX)


class ProtocolMessage(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    token_id: TokenId = Field(..., validation_alias=AliasChoices("token_id", "tokenId", "alkaneId"))
    opcode: int = Field(default=MINT_OPCODE, ge=0, le=255)
    extra_fields: list[int] = Field(
        default_factory=list,
        validation_alias=AliasChoices("extra_fields", "extraFields", "calldata"),
    )

    @field_validator("extra_fields")
    @classmethod
    def validate_extra_fields(cls, v: list[int]) -> list[int]:
        for value in v:
            if value < 0 or value > U64_MAX:
                raise ValueError(f"Extra field out of range: {value}")
        return v

    def calldata(self) -> list[int]:
        return [self.token_id.block, self.token_id.tx, self.opcode, *self.extra_fields]


class ServiceFee(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    address: str = Field(..., min_length=1)
    amount_sats: int = Field(
        ..., gt=0, validation_alias=AliasChoices("amount_sats", "amountSats", "amount")
    )


class ExecuteRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    address: str = Field(..., min_length=1)
    output_address: str | None = Field(
        default=None,
        validation_alias=AliasChoices("output_address", "outputAddress", "taprootAddress"),
    )
    message: ProtocolMessage = Field(..., validation_alias=AliasChoices("message", "executeData"))
    fee_rate: float | None = Field(
        default=None,
        gt=0,
        allow_inf_nan=False,
        validation_alias=AliasChoices("fee_rate", "feeRate"),
    )
    public_key_hex: str | None = Field(
        default=None,
        validation_alias=AliasChoices("public_key_hex", "publicKeyHex", "walletPublicKey"),
    )
    service_fee: ServiceFee | None = Field(
        default=None, validation_alias=AliasChoices("service_fee", "serviceFee", "feeConfig")
    )


class BroadcastRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    signed_container: str = Field(
        ...,
        min_length=1,
        validation_alias=AliasChoices("signed_container", "signedContainer", "signedPsbt"),
    )
    original_address: str | None = Field(
        default=None, validation_alias=AliasChoices("original_address", "originalAddress")
    )


@dataclass
class BroadcastResult:
    txid: str
    provider: str

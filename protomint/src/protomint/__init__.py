"""
protomint - Alkanes mint transaction builder

Builds unsigned mint PSBTs from a spending address and a protocol message,
and broadcasts the signed result through a list of fallback providers.
"""

__version__ = "0.1.0"

from protomint.address import classify_address
from protomint.assembler import AssembledTransaction, TransactionAssembler
from protomint.broadcast import BroadcastDispatcher
from protomint.config import Settings, get_settings
from protomint.errors import (
    BroadcastExhaustedError,
    ContainerDecodeError,
    EncodingError,
    ExtractionError,
    FinalizationError,
    InsufficientFundsError,
    InvalidAddressError,
    ProtomintError,
    ProviderError,
    ProviderExhaustedError,
)
from protomint.gateway import UTXOGateway
from protomint.models import (
    UTXO,
    AddressInfo,
    BroadcastResult,
    NetworkType,
    OutputPlan,
    ProtocolMessage,
    ScriptFamily,
    ServiceFee,
    TokenId,
    UTXOSet,
)
from protomint.payload import ManualEncoder, PayloadEncoder, RunestoneEncoder, get_encoder
from protomint.pipeline import MintPipeline
from protomint.planner import FeePlanner
from protomint.psbt import PSBT
from protomint.scripts import resolve_spending_script

__all__ = [
    "AddressInfo",
    "AssembledTransaction",
    "BroadcastDispatcher",
    "BroadcastExhaustedError",
    "BroadcastResult",
    "ContainerDecodeError",
    "EncodingError",
    "ExtractionError",
    "FeePlanner",
    "FinalizationError",
    "InsufficientFundsError",
    "InvalidAddressError",
    "ManualEncoder",
    "MintPipeline",
    "NetworkType",
    "OutputPlan",
    "PSBT",
    "PayloadEncoder",
    "ProtocolMessage",
    "ProtomintError",
    "ProviderError",
    "ProviderExhaustedError",
    "RunestoneEncoder",
    "ScriptFamily",
    "ServiceFee",
    "Settings",
    "TokenId",
    "TransactionAssembler",
    "UTXO",
    "UTXOGateway",
    "UTXOSet",
    "classify_address",
    "get_encoder",
    "get_settings",
    "resolve_spending_script",
]

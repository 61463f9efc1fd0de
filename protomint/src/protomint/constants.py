"""
Bitcoin, PSBT and Alkanes protocol constants.
"""

from __future__ import annotations

# Standard P2PKH dust limit in Bitcoin Core.
# Used as the value of the recipient output and as the change threshold.
STANDARD_DUST_LIMIT = 546  # satoshis

# Floor for the network fee regardless of fee rate
MIN_NETWORK_FEE = 350  # satoshis

# Size estimates (vbytes) for a single-input mint transaction.
# Not a byte-exact vsize calculation.
BASE_TX_VSIZE = 250
SERVICE_FEE_TX_VSIZE = 300

DEFAULT_FEE_RATE = 1.0  # sat/vbyte

# Provider timeouts (seconds)
UTXO_FETCH_TIMEOUT = 10.0
BROADCAST_TIMEOUT = 15.0

# Script opcodes
OP_0 = 0x00
OP_PUSHDATA1 = 0x4C
OP_PUSHDATA2 = 0x4D
OP_1 = 0x51
OP_13 = 0x5D
OP_RETURN = 0x6A

# Largest single data push allowed by standardness rules
MAX_SCRIPT_ELEMENT_SIZE = 520

# Transaction defaults
TX_VERSION = 2
TX_LOCKTIME = 0
DEFAULT_SEQUENCE = 0xFFFFFFFF

# PSBT (BIP174)
PSBT_MAGIC = b"psbt\xff"
PSBT_MAGIC_HEX = PSBT_MAGIC.hex()  # "70736274ff"
PSBT_MAGIC_BASE64 = "cHNidP"

PSBT_GLOBAL_UNSIGNED_TX = 0x00
PSBT_IN_NON_WITNESS_UTXO = 0x00
PSBT_IN_WITNESS_UTXO = 0x01
PSBT_IN_PARTIAL_SIG = 0x02
PSBT_IN_SIGHASH_TYPE = 0x03
PSBT_IN_FINAL_SCRIPTSIG = 0x07
PSBT_IN_FINAL_SCRIPTWITNESS = 0x08
PSBT_IN_TAP_KEY_SIG = 0x13

# Runes / protorunes / Alkanes
RUNESTONE_MAGIC = OP_13
PROTORUNES_PROTOCOL_FIELD = 16383  # Runestone tag carrying protostones
ALKANES_PROTOCOL_TAG = 1
MINT_OPCODE = 77

# Protostone field tags
PROTOSTONE_TAG_MESSAGE = 81
PROTOSTONE_TAG_POINTER = 91
PROTOSTONE_TAG_REFUND = 93

# Protostone byte streams are packed into u128 integers 15 bytes at a time
# so that every chunk stays below 2**120.
PROTOSTONE_CHUNK_SIZE = 15

U128_MAX = (1 << 128) - 1
U64_MAX = (1 << 64) - 1

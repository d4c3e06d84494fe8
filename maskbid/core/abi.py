"""
ABI Codec - Solidity ABI encoding for event logs and reports.

Thin layer over eth_abi for the types the MaskBid contracts emit and
consume:
    uint256, address, bool, bytes32, string

Decoding is strict: non-canonical padding, bad pointers and truncated
data raise MalformedLogError, since any of them means the contract ABI
and the event catalog have drifted apart. Encoding failures are plain
ValueErrors (caller bug, not chain data).
"""

from typing import Any, List, Sequence

import eth_abi
from eth_abi.exceptions import DecodingError, EncodingError

from maskbid.core.errors import MalformedLogError
from maskbid.crypto import bytes_to_hex, is_valid_address

WORD_SIZE = 32

STATIC_TYPES = ("uint256", "address", "bool", "bytes32")
DYNAMIC_TYPES = ("string",)
SUPPORTED_TYPES = STATIC_TYPES + DYNAMIC_TYPES


# =============================================================================
# Encoding
# =============================================================================


def _prepare(abi_type: str, value: Any) -> Any:
    """Normalize a value into the form eth_abi expects for its type."""
    if abi_type not in SUPPORTED_TYPES:
        raise ValueError(f"Unsupported ABI type: {abi_type}")
    if abi_type == "address":
        if not is_valid_address(value):
            raise ValueError(f"Invalid address: {value!r}")
        # eth_abi enforces EIP-55 on mixed case; checksums are not ours to verify
        return value.lower()
    if abi_type == "bool":
        return bool(value)
    if abi_type == "bytes32":
        if not isinstance(value, (bytes, bytearray)) or len(value) != WORD_SIZE:
            raise ValueError(f"bytes32 must be 32 bytes, got {value!r}")
        return bytes(value)
    return value


def encode_tuple(types: Sequence[str], values: Sequence[Any]) -> bytes:
    """
    ABI-encode a tuple of values (abi.encode semantics).

    Example:
        encode_tuple(["uint256", "string"], [7, "uid-1"])
    """
    if len(types) != len(values):
        raise ValueError(f"Expected {len(types)} values, got {len(values)}")
    prepared = [_prepare(t, v) for t, v in zip(types, values)]
    try:
        return eth_abi.encode(list(types), prepared)
    except EncodingError as e:
        raise ValueError(str(e))


def encode_uint256(value: int) -> bytes:
    """Encode an unsigned integer as one big-endian word."""
    return encode_tuple(["uint256"], [value])


def encode_address(address: str) -> bytes:
    """Encode an address left-padded to 32 bytes."""
    return encode_tuple(["address"], [address])


def encode_bool(value: bool) -> bytes:
    return encode_tuple(["bool"], [value])


def encode_bytes32(value: bytes) -> bytes:
    return encode_tuple(["bytes32"], [value])


def encode_string(value: str) -> bytes:
    """Encode the tail part of a dynamic string (length word + padded data)."""
    return encode_tuple(["string"], [value])[WORD_SIZE:]


# =============================================================================
# Decoding
# =============================================================================


def _from_eth_abi(abi_type: str, value: Any) -> Any:
    if abi_type == "address":
        return value.lower()
    if abi_type == "bytes32":
        return bytes_to_hex(value)
    return value


def decode_data(types: Sequence[str], data: bytes) -> List[Any]:
    """
    Decode ABI head/tail data into Python values.

    Returns:
        One value per type: int, 0x-address str, bool, 0x-bytes32 str or str

    Raises:
        MalformedLogError: on truncation, bad padding or bad pointers
    """
    for abi_type in types:
        if abi_type not in SUPPORTED_TYPES:
            raise MalformedLogError(f"Unsupported ABI type: {abi_type}")
    try:
        decoded = eth_abi.decode(list(types), bytes(data), strict=True)
    except DecodingError as e:
        raise MalformedLogError(f"ABI decoding failed: {e}")
    except UnicodeDecodeError as e:
        raise MalformedLogError(f"string is not valid UTF-8: {e}")
    return [_from_eth_abi(t, v) for t, v in zip(types, decoded)]


def decode_static(abi_type: str, word: bytes) -> Any:
    """Decode one static word (also used for indexed topics)."""
    if abi_type not in STATIC_TYPES:
        raise MalformedLogError(f"Unsupported static ABI type: {abi_type}")
    if len(word) != WORD_SIZE:
        raise MalformedLogError(f"{abi_type} word must be {WORD_SIZE} bytes, got {len(word)}")
    return decode_data([abi_type], word)[0]


def decode_uint256(word: bytes) -> int:
    return decode_static("uint256", word)


def decode_address(word: bytes) -> str:
    return decode_static("address", word)


def decode_bool(word: bytes) -> bool:
    return decode_static("bool", word)


def decode_bytes32(word: bytes) -> str:
    return decode_static("bytes32", word)

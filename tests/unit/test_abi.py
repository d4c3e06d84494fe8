"""
Unit tests for the ABI codec.
"""

import pytest

from maskbid.core.abi import (
    WORD_SIZE,
    decode_address,
    decode_bool,
    decode_data,
    decode_uint256,
    encode_address,
    encode_bool,
    encode_string,
    encode_tuple,
    encode_uint256,
)
from maskbid.core.amounts import MAX_UINT256
from maskbid.core.errors import MalformedLogError

ADDRESS = "0x" + "ab" * 20


# =============================================================================
# Encoding
# =============================================================================


class TestEncoding:
    """Tests for word encoders."""

    def test_uint256_is_big_endian_word(self):
        word = encode_uint256(7)
        assert len(word) == WORD_SIZE
        assert word[-1] == 7
        assert word[:-1] == bytes(31)

    def test_uint256_bounds(self):
        assert encode_uint256(MAX_UINT256) == b"\xff" * 32
        with pytest.raises(ValueError):
            encode_uint256(-1)
        with pytest.raises(ValueError):
            encode_uint256(MAX_UINT256 + 1)

    def test_uint256_rejects_non_int(self):
        with pytest.raises(ValueError):
            encode_uint256(True)
        with pytest.raises(ValueError):
            encode_uint256(1.0)

    def test_address_left_padded(self):
        word = encode_address(ADDRESS)
        assert word[:12] == bytes(12)
        assert word[12:] == bytes.fromhex("ab" * 20)

    def test_address_invalid(self):
        with pytest.raises(ValueError):
            encode_address("0x1234")

    def test_address_mixed_case_without_checksum(self):
        mixed = "0x" + "aB" * 20
        assert encode_address(mixed) == encode_address(ADDRESS)

    def test_bytes32_requires_full_word(self):
        with pytest.raises(ValueError):
            encode_tuple(["bytes32"], [b"\x01" * 31])
        assert encode_tuple(["bytes32"], [b"\x01" * 32]) == b"\x01" * 32

    def test_string_tail(self):
        tail = encode_string("hi")
        assert decode_uint256(tail[:32]) == 2
        assert tail[32:34] == b"hi"
        assert len(tail) == 64

    def test_tuple_uint_string(self):
        """abi.encode(uint256, string) layout."""
        data = encode_tuple(["uint256", "string"], [7, "uid-1"])
        assert decode_uint256(data[0:32]) == 7
        assert decode_uint256(data[32:64]) == 64   # offset of the string
        assert decode_uint256(data[64:96]) == 5    # string length
        assert data[96:101] == b"uid-1"
        assert len(data) == 128

    def test_tuple_arity_mismatch(self):
        with pytest.raises(ValueError):
            encode_tuple(["uint256"], [1, 2])


# =============================================================================
# Decoding
# =============================================================================


class TestDecoding:
    """Tests for strict decoders."""

    def test_decode_address_lowercases(self):
        word = encode_address("0x" + "AB" * 20)
        assert decode_address(word) == ADDRESS

    def test_decode_address_dirty_padding(self):
        word = b"\x01" + bytes(11) + bytes.fromhex("ab" * 20)
        with pytest.raises(MalformedLogError):
            decode_address(word)

    def test_decode_bool(self):
        assert decode_bool(encode_bool(True)) is True
        assert decode_bool(encode_bool(False)) is False
        with pytest.raises(MalformedLogError):
            decode_bool(encode_uint256(2))

    def test_decode_data_mixed(self):
        types = ["string", "uint256", "string"]
        data = encode_tuple(types, ["Gold Bar", 1000, ""])
        assert decode_data(types, data) == ["Gold Bar", 1000, ""]

    def test_decode_utf8(self):
        data = encode_tuple(["string"], ["Émeraude"])
        assert decode_data(["string"], data) == ["Émeraude"]

    def test_truncated_head(self):
        with pytest.raises(MalformedLogError):
            decode_data(["uint256", "uint256"], encode_uint256(1))

    def test_string_overrun(self):
        data = encode_tuple(["string"], ["abcdef"])
        with pytest.raises(MalformedLogError):
            decode_data(["string"], data[:68])

    def test_bad_offset(self):
        data = encode_uint256(4096) + encode_uint256(0)
        with pytest.raises(MalformedLogError):
            decode_data(["string"], data)

    def test_dirty_string_padding(self):
        data = encode_tuple(["string"], ["hi"])
        dirty = data[:-1] + b"\x01"
        with pytest.raises(MalformedLogError):
            decode_data(["string"], dirty)

    def test_unsupported_type(self):
        with pytest.raises(MalformedLogError):
            decode_data(["int8"], bytes(32))

    def test_invalid_utf8(self):
        data = encode_uint256(32) + encode_uint256(2) + b"\xff\xfe" + bytes(30)
        with pytest.raises(MalformedLogError):
            decode_data(["string"], data)

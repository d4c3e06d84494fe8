"""
Cryptographic primitives for MaskBid.

This module provides:
- Hashing functions (SHA-256, Keccak-256)
- Event topic derivation (Keccak-256 of the canonical event signature)
- Sealed-bid commitments
- RSA-OAEP sealing and opening of bid payloads

Design Notes:
-------------
Bids are sealed client-side with the solver's RSA public key (RSA-OAEP,
SHA-256) and stored as base64 ciphertext. Only the resolver holding the
private key can open them.

The commitment binds the on-chain auction reference, the bidder and the
ciphertext, so anyone can recompute it and compare it to the bid hash
recorded on-chain without learning the amount.
"""

import base64
import binascii
import hashlib
import json
import time
from dataclasses import dataclass
from decimal import Decimal
from typing import Any, Dict, Optional, Union

from Crypto.Cipher import PKCS1_OAEP
from Crypto.Hash import SHA256, keccak
from Crypto.PublicKey import RSA


# =============================================================================
# Constants
# =============================================================================

RSA_KEY_BITS = 2048
ADDRESS_LENGTH = 20


# =============================================================================
# Hashing
# =============================================================================


def sha256(data: bytes) -> bytes:
    """Compute SHA-256 hash."""
    return hashlib.sha256(data).digest()


def keccak256(data: bytes) -> bytes:
    """
    Compute Keccak-256 hash (Ethereum-style).

    Used for: event topics, compatibility with EVM conventions.
    """
    k = keccak.new(digest_bits=256)
    k.update(data)
    return k.digest()


def event_topic(signature: str) -> bytes:
    """
    Topic0 of an event: keccak256 of its canonical signature.

    Example: event_topic("AuctionEnded(uint256,uint256)")
    """
    return keccak256(signature.encode("ascii"))


# =============================================================================
# Hex / Address Utilities
# =============================================================================


def bytes_to_hex(data: bytes) -> str:
    """Convert bytes to hex string with 0x prefix."""
    return "0x" + data.hex()


def hex_to_bytes(hex_str: str) -> bytes:
    """Convert hex string (with or without 0x prefix) to bytes."""
    if hex_str.startswith("0x") or hex_str.startswith("0X"):
        hex_str = hex_str[2:]
    return bytes.fromhex(hex_str)


def is_valid_address(address: str) -> bool:
    """Check if string is a valid address format."""
    if not isinstance(address, str) or not address.startswith("0x"):
        return False
    if len(address) != 42:  # 0x + 40 hex chars
        return False
    try:
        int(address, 16)
        return True
    except ValueError:
        return False


def normalize_address(address: str) -> str:
    """
    Lowercase a 0x-prefixed 20-byte address.

    Raises:
        ValueError: if the address is not 0x + 40 hex chars
    """
    if not is_valid_address(address):
        raise ValueError(f"Invalid address: {address!r}")
    return address.lower()


# =============================================================================
# Commitments
# =============================================================================


def compute_commitment(auction_ref: Union[int, str], bidder: str, encrypted_payload: str) -> str:
    """
    Commitment hash of a sealed bid.

    commitment = SHA-256("{auction_ref}:{bidder_lowercase}:{encrypted_payload}")

    Args:
        auction_ref: On-chain auction id the bid was escrowed against
        bidder: Bidder address
        encrypted_payload: Base64 ciphertext exactly as stored

    Returns:
        0x-prefixed 32-byte hex digest
    """
    data = f"{auction_ref}:{bidder.lower()}:{encrypted_payload}"
    return bytes_to_hex(sha256(data.encode("utf-8")))


# =============================================================================
# RSA Sealing
# =============================================================================


@dataclass
class RSAKeyPair:
    """PEM-encoded RSA keypair used to seal and open bids."""
    private_pem: str
    public_pem: str


def generate_rsa_keypair(bits: int = RSA_KEY_BITS) -> RSAKeyPair:
    """Generate a new RSA keypair for the solver."""
    key = RSA.generate(bits)
    return RSAKeyPair(
        private_pem=key.export_key().decode("ascii"),
        public_pem=key.publickey().export_key().decode("ascii"),
    )


def load_private_key(pem: str) -> RSA.RsaKey:
    """
    Import a PEM private key.

    Raises:
        ValueError: if the PEM is not a valid RSA private key
    """
    key = RSA.import_key(pem)
    if not key.has_private():
        raise ValueError("Key is not an RSA private key")
    return key


def seal_payload(plaintext: bytes, public_pem: str) -> str:
    """Encrypt plaintext with RSA-OAEP (SHA-256); return base64 ciphertext."""
    cipher = PKCS1_OAEP.new(RSA.import_key(public_pem), hashAlgo=SHA256)
    return base64.b64encode(cipher.encrypt(plaintext)).decode("ascii")


def open_payload(ciphertext_b64: str, private_key: RSA.RsaKey) -> bytes:
    """
    Decrypt a base64 RSA-OAEP (SHA-256) ciphertext.

    Raises:
        ValueError: on bad base64 or failed OAEP decoding
    """
    try:
        ciphertext = base64.b64decode(ciphertext_b64, validate=True)
    except (binascii.Error, ValueError) as e:
        raise ValueError(f"Ciphertext is not valid base64: {e}")
    cipher = PKCS1_OAEP.new(private_key, hashAlgo=SHA256)
    return cipher.decrypt(ciphertext)


def encode_bid_plaintext(amount: Union[str, Decimal, int], bidder: str, timestamp_ms: Optional[int] = None) -> bytes:
    """
    Serialize a bid the way the bidder app does before sealing.

    The amount is written as a JSON number in currency units.
    """
    if timestamp_ms is None:
        timestamp_ms = int(time.time() * 1000)
    body = '{"amount": %s, "user": %s, "timestamp": %d}' % (
        str(Decimal(str(amount))),
        json.dumps(bidder.lower()),
        timestamp_ms,
    )
    return body.encode("utf-8")


def parse_bid_plaintext(plaintext: bytes) -> Dict[str, Any]:
    """
    Parse an opened bid; numbers are kept as Decimal, never float.

    Raises:
        ValueError: if the plaintext is not a JSON object
    """
    try:
        data = json.loads(plaintext.decode("utf-8"), parse_float=Decimal)
    except RecursionError:
        raise ValueError("Bid plaintext is nested too deeply")
    if not isinstance(data, dict):
        raise ValueError("Bid plaintext must be a JSON object")
    return data


def seal_bid(amount: Union[str, Decimal, int], bidder: str, public_pem: str, timestamp_ms: Optional[int] = None) -> str:
    """Seal a bid amount for the solver; returns base64 ciphertext."""
    return seal_payload(encode_bid_plaintext(amount, bidder, timestamp_ms), public_pem)


__all__ = [
    "sha256",
    "keccak256",
    "event_topic",
    "bytes_to_hex",
    "hex_to_bytes",
    "is_valid_address",
    "normalize_address",
    "compute_commitment",
    "RSAKeyPair",
    "generate_rsa_keypair",
    "load_private_key",
    "seal_payload",
    "open_payload",
    "encode_bid_plaintext",
    "parse_bid_plaintext",
    "seal_bid",
]

"""
Shared fixtures.

Bids in tests are "sealed" with base64 JSON and opened by FakeBidDecryptor;
the production RSA path is exercised separately in test_crypto.py and
test_bid_opening.py.
"""

import base64
import binascii
from decimal import Decimal
from typing import Union

import pytest

from maskbid.core.abi import encode_address, encode_bool, encode_tuple, encode_uint256
from maskbid.core.amounts import to_minor_units
from maskbid.core.config import MaskBidConfig
from maskbid.core.errors import DecryptionError
from maskbid.core.events import RawLog
from maskbid.core.models import Auction, AuctionStatus, SealedBid, from_unix
from maskbid.core.storage import SQLiteAdapter
from maskbid.crypto import compute_commitment, encode_bid_plaintext, hex_to_bytes

SOLVER_TOKEN = "solver-secret-0123456789abcdef"


class FakeBidDecryptor:
    """Opens base64 JSON payloads."""

    def __init__(self):
        self.calls = 0

    def decrypt(self, encrypted_payload: str) -> bytes:
        self.calls += 1
        try:
            return base64.b64decode(encrypted_payload, validate=True)
        except (binascii.Error, ValueError) as e:
            raise DecryptionError(f"not base64: {e}")


def fake_seal(amount: Union[str, int, Decimal], bidder: str, timestamp_ms: int = 1700000000000) -> str:
    return base64.b64encode(encode_bid_plaintext(amount, bidder, timestamp_ms)).decode("ascii")


# =============================================================================
# Fixtures
# =============================================================================


@pytest.fixture
def config():
    return MaskBidConfig(solver_auth_token=SOLVER_TOKEN)


@pytest.fixture
def store(tmp_path):
    adapter = SQLiteAdapter(tmp_path / "maskbid.db")
    yield adapter
    adapter.close()


@pytest.fixture
def decryptor():
    return FakeBidDecryptor()


@pytest.fixture
def seal():
    return fake_seal


@pytest.fixture
def auth_header():
    return f"Bearer {SOLVER_TOKEN}"


@pytest.fixture
def make_auction(store):
    """Insert an auction; reserve is in currency units."""

    def _make(
        auction_id: str = "A1",
        reserve: str = "1000",
        contract_auction_id=7,
        asset_id: str = "42",
        status: AuctionStatus = AuctionStatus.ENDED,
    ) -> Auction:
        auction = Auction(
            auction_id=auction_id,
            asset_id=asset_id,
            seller_address="0x" + "5e" * 20,
            reserve_price=to_minor_units(reserve),
            contract_auction_id=contract_auction_id,
            started_at=from_unix(1700000000),
            ends_at=from_unix(1700259200),
            status=status,
        )
        store.insert_auction_if_absent(auction)
        return auction

    return _make


@pytest.fixture
def place_bid(store):
    """Insert a sealed bid with a valid commitment; returns the stored bid."""

    def _place(auction: Auction, bidder: str, amount=None, payload: str = None) -> SealedBid:
        if payload is None:
            payload = fake_seal(amount, bidder)
        bid = SealedBid(
            bid_id=f"{auction.auction_id}-{bidder[2:8]}-{len(store.list_bids(auction.auction_id))}",
            auction_id=auction.auction_id,
            bidder_address=bidder.lower(),
            encrypted_payload=payload,
            commitment_hash=compute_commitment(auction.commitment_ref, bidder, payload),
        )
        _, stored = store.insert_bid_if_absent(bid)
        return stored

    return _place


# =============================================================================
# Raw Logs
# =============================================================================


def _topic_word(abi_type: str, value) -> bytes:
    if abi_type == "uint256":
        return encode_uint256(value)
    if abi_type == "address":
        return encode_address(value)
    if abi_type == "bool":
        return encode_bool(value)
    return hex_to_bytes(value)


def build_log(catalog, name: str, tx_hash: str = None, log_index: int = None, **values) -> RawLog:
    """Encode a log for a catalog event from field values."""
    event_spec = catalog.by_name(name)
    topics = [event_spec.topic] + [_topic_word(p.abi_type, values[p.field]) for p in event_spec.indexed]
    data = encode_tuple(
        [p.abi_type for p in event_spec.unindexed],
        [values[p.field] for p in event_spec.unindexed],
    )
    return RawLog(topics=tuple(topics), data=data, transaction_hash=tx_hash, log_index=log_index)


@pytest.fixture
def raw_log():
    return build_log

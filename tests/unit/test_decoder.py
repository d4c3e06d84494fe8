"""
Unit tests for the event decoder and relay payload conversion.
"""

import pytest

from maskbid.core.errors import BadRequestError, MalformedLogError, UnknownEventError
from maskbid.core.events import (
    ASSET_CATALOG,
    AUCTION_CATALOG,
    AssetRegistered,
    AssetVerified,
    AuctionFinalized,
    BidPlaced,
    RawLog,
    TokensMinted,
    decode_asset_log,
    decode_auction_log,
    event_from_payload,
    event_to_payload,
)
from maskbid.crypto import event_topic

ISSUER = "0x" + "1a" * 20
SELLER = "0x" + "5e" * 20
BIDDER = "0x" + "b0" * 20
BID_HASH = "0x" + "ee" * 32
TX = "0x" + "7f" * 32


@pytest.fixture
def registered_log(raw_log):
    return raw_log(
        ASSET_CATALOG,
        "AssetRegistered",
        tx_hash=TX,
        log_index=3,
        asset_id=42,
        issuer=ISSUER,
        asset_name="Gold Bar",
        symbol="GOLD",
        asset_type="commodity",
        description="1kg bar",
        serial_number="SN-001",
        reserve_price=1_000_000_000,
        required_deposit=100_000_000,
        auction_duration=72,
    )


# =============================================================================
# Catalog
# =============================================================================


class TestCatalog:
    """Tests for event signatures."""

    def test_signatures(self):
        assert ASSET_CATALOG.by_name("AssetRegistered").signature == (
            "AssetRegistered(uint256,address,string,string,string,string,string,uint256,uint256,uint256)"
        )
        assert AUCTION_CATALOG.by_name("BidPlaced").signature == "BidPlaced(uint256,address,bytes32,uint256)"

    def test_topics_are_keccak_of_signature(self):
        event_spec = AUCTION_CATALOG.by_name("AuctionEnded")
        assert event_spec.topic == event_topic("AuctionEnded(uint256,uint256)")
        assert AUCTION_CATALOG.by_topic(event_spec.topic) is event_spec

    def test_catalogs_are_disjoint(self):
        assert not set(ASSET_CATALOG.names()) & set(AUCTION_CATALOG.names())


# =============================================================================
# Log Decoding
# =============================================================================


class TestDecodeLog:
    """Tests for raw log decoding."""

    def test_asset_registered(self, registered_log):
        event = decode_asset_log(registered_log)
        assert isinstance(event, AssetRegistered)
        assert event.asset_id == 42
        assert event.issuer == ISSUER
        assert event.asset_name == "Gold Bar"
        assert event.serial_number == "SN-001"
        assert event.reserve_price == 1_000_000_000
        assert event.auction_duration == 72
        assert event.event_key == f"{TX}:3"
        assert event.tx_hash == TX

    def test_decoding_is_deterministic(self, registered_log):
        assert decode_asset_log(registered_log) == decode_asset_log(registered_log)

    def test_asset_verified_indexed_bool(self, raw_log):
        log = raw_log(ASSET_CATALOG, "AssetVerified", asset_id=42, is_valid=True, verification_details="ok")
        event = decode_asset_log(log)
        assert isinstance(event, AssetVerified)
        assert event.is_valid is True

    def test_tokens_minted_all_indexed(self, raw_log):
        log = raw_log(ASSET_CATALOG, "TokensMinted", asset_id=42, amount=10**30, to=ISSUER, reason="initial")
        event = decode_asset_log(log)
        assert isinstance(event, TokensMinted)
        assert event.amount == 10**30
        assert event.reason == "initial"

    def test_bid_placed(self, raw_log):
        log = raw_log(AUCTION_CATALOG, "BidPlaced", auction_id=7, bidder=BIDDER, bid_hash=BID_HASH, escrow_amount=5)
        event = decode_auction_log(log)
        assert isinstance(event, BidPlaced)
        assert event.bid_hash == BID_HASH
        assert event.escrow_amount == 5

    def test_auction_finalized(self, raw_log):
        log = raw_log(AUCTION_CATALOG, "AuctionFinalized", auction_id=7, winner=BIDDER, winning_bid=1500)
        event = decode_auction_log(log)
        assert isinstance(event, AuctionFinalized)
        assert (event.auction_id, event.winner, event.winning_bid) == (7, BIDDER, 1500)

    def test_unknown_topic(self, registered_log):
        """An asset log is not an auction event."""
        with pytest.raises(UnknownEventError):
            decode_auction_log(registered_log)

    def test_no_topics(self):
        with pytest.raises(UnknownEventError):
            decode_asset_log(RawLog(topics=()))

    def test_wrong_indexed_count(self, registered_log):
        log = RawLog(topics=registered_log.topics[:2], data=registered_log.data)
        with pytest.raises(MalformedLogError):
            decode_asset_log(log)

    def test_truncated_data(self, registered_log):
        log = RawLog(topics=registered_log.topics, data=registered_log.data[:100])
        with pytest.raises(MalformedLogError):
            decode_asset_log(log)

    def test_short_topic(self, registered_log):
        topics = (registered_log.topics[0], b"\x01", registered_log.topics[2])
        with pytest.raises(MalformedLogError):
            decode_asset_log(RawLog(topics=topics, data=registered_log.data))

    def test_content_key_without_position(self, registered_log):
        log = RawLog(topics=registered_log.topics, data=registered_log.data)
        event = decode_asset_log(log)
        assert event.event_key.startswith("content:")
        assert event.event_key == decode_asset_log(log).event_key

    def test_from_hex(self, registered_log):
        log = RawLog.from_hex(
            ["0x" + t.hex() for t in registered_log.topics],
            "0x" + registered_log.data.hex(),
            transaction_hash=TX,
            log_index=3,
        )
        assert decode_asset_log(log) == decode_asset_log(registered_log)

    def test_from_hex_invalid(self):
        with pytest.raises(MalformedLogError):
            RawLog.from_hex(["0xzz"])


# =============================================================================
# Relay Payloads
# =============================================================================


class TestPayloads:
    """Tests for event <-> relay payload conversion."""

    def test_to_payload(self, registered_log):
        payload = event_to_payload(decode_asset_log(registered_log))
        assert payload["action"] == "AssetRegistered"
        assert payload["assetId"] == "42"
        assert payload["assetName"] == "Gold Bar"
        assert payload["reservePrice"] == "1000000000"
        assert payload["eventKey"] == f"{TX}:3"
        assert payload["txHash"] == TX

    def test_roundtrip(self, registered_log):
        event = decode_asset_log(registered_log)
        assert event_from_payload(event_to_payload(event), ASSET_CATALOG) == event

    def test_minimal_payload(self):
        """The relay may omit string fields and the event key."""
        event = event_from_payload({"action": "AssetVerified", "assetId": "42", "isValid": True}, ASSET_CATALOG)
        assert event == AssetVerified(asset_id=42, is_valid=True, event_key=event.event_key)
        assert event.verification_details == ""
        assert event.event_key.startswith("content:")

    def test_integer_fields_accept_numbers(self):
        event = event_from_payload({"action": "TokensMinted", "assetId": 42, "amount": "10", "to": ISSUER}, ASSET_CATALOG)
        assert event.amount == 10

    def test_invalid_action(self):
        with pytest.raises(BadRequestError) as exc:
            event_from_payload({"action": "Nope"}, ASSET_CATALOG)
        assert "AssetRegistered" in exc.value.context["validActions"]

    def test_missing_fields(self):
        with pytest.raises(BadRequestError) as exc:
            event_from_payload({"action": "TokensMinted", "assetId": "42"}, ASSET_CATALOG)
        assert set(exc.value.context["missing"]) == {"amount", "to"}

    def test_rejects_float_and_bool_ints(self):
        with pytest.raises(BadRequestError):
            event_from_payload({"action": "AuctionEnded", "auctionId": 7.0, "endTime": "1"}, AUCTION_CATALOG)
        with pytest.raises(BadRequestError):
            event_from_payload({"action": "AuctionEnded", "auctionId": True, "endTime": "1"}, AUCTION_CATALOG)

    def test_rejects_bad_address(self):
        with pytest.raises(BadRequestError):
            event_from_payload(
                {"action": "BidRefunded", "auctionId": "7", "bidder": "alice", "amount": "1"},
                AUCTION_CATALOG,
            )

    def test_bool_must_be_bool(self):
        with pytest.raises(BadRequestError):
            event_from_payload({"action": "AssetVerified", "assetId": "42", "isValid": "true"}, ASSET_CATALOG)

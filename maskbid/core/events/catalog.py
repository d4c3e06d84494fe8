"""
Event Catalog - Signatures of the events the decoder understands.

The catalog is versioned with the on-chain contracts: parameter order,
types and indexed flags must match the deployed ABI exactly.
"""

from dataclasses import dataclass
from typing import Dict, Optional, Tuple, Type

from maskbid.core.events.types import (
    AssetRegistered,
    AssetVerified,
    TokensMinted,
    TokensRedeemed,
    AuctionCreated,
    BidPlaced,
    AuctionEnded,
    AuctionFinalized,
    BidRefunded,
)
from maskbid.crypto import event_topic

CATALOG_VERSION = 1


@dataclass(frozen=True)
class EventParam:
    """One event parameter: dataclass field, ABI type, indexed flag, relay key."""
    field: str
    abi_type: str
    indexed: bool
    payload_key: str


@dataclass(frozen=True)
class EventSpec:
    """A single event signature."""
    event_cls: Type
    params: Tuple[EventParam, ...]

    @property
    def name(self) -> str:
        return self.event_cls.name

    @property
    def signature(self) -> str:
        types = ",".join(p.abi_type for p in self.params)
        return f"{self.name}({types})"

    @property
    def topic(self) -> bytes:
        return event_topic(self.signature)

    @property
    def indexed(self) -> Tuple[EventParam, ...]:
        return tuple(p for p in self.params if p.indexed)

    @property
    def unindexed(self) -> Tuple[EventParam, ...]:
        return tuple(p for p in self.params if not p.indexed)


def _p(field: str, abi_type: str, indexed: bool = False, payload_key: Optional[str] = None) -> EventParam:
    if payload_key is None:
        head, *rest = field.split("_")
        payload_key = head + "".join(part.title() for part in rest)
    return EventParam(field, abi_type, indexed, payload_key)


# =============================================================================
# Asset Contract Events
# =============================================================================

ASSET_EVENTS: Tuple[EventSpec, ...] = (
    EventSpec(AssetRegistered, (
        _p("asset_id", "uint256", indexed=True),
        _p("issuer", "address", indexed=True),
        _p("asset_name", "string"),
        _p("symbol", "string"),
        _p("asset_type", "string"),
        _p("description", "string"),
        _p("serial_number", "string"),
        _p("reserve_price", "uint256"),
        _p("required_deposit", "uint256"),
        _p("auction_duration", "uint256"),
    )),
    EventSpec(AssetVerified, (
        _p("asset_id", "uint256", indexed=True),
        _p("is_valid", "bool", indexed=True),
        _p("verification_details", "string"),
    )),
    EventSpec(TokensMinted, (
        _p("asset_id", "uint256", indexed=True),
        _p("amount", "uint256", indexed=True),
        _p("to", "address", indexed=True),
        _p("reason", "string"),
    )),
    EventSpec(TokensRedeemed, (
        _p("asset_id", "uint256", indexed=True),
        _p("amount", "uint256", indexed=True),
        _p("account", "address", indexed=True),
        _p("settlement_details", "string"),
    )),
)


# =============================================================================
# Auction Contract Events
# =============================================================================

AUCTION_EVENTS: Tuple[EventSpec, ...] = (
    EventSpec(AuctionCreated, (
        _p("auction_id", "uint256", indexed=True),
        _p("token_id", "uint256", indexed=True),
        _p("seller", "address", indexed=True),
        _p("token_amount", "uint256"),
        _p("reserve_price", "uint256"),
        _p("deposit_required", "uint256"),
        _p("start_time", "uint256"),
        _p("end_time", "uint256"),
    )),
    EventSpec(BidPlaced, (
        _p("auction_id", "uint256", indexed=True),
        _p("bidder", "address", indexed=True),
        _p("bid_hash", "bytes32", indexed=True),
        _p("escrow_amount", "uint256"),
    )),
    EventSpec(AuctionEnded, (
        _p("auction_id", "uint256", indexed=True),
        _p("end_time", "uint256"),
    )),
    EventSpec(AuctionFinalized, (
        _p("auction_id", "uint256", indexed=True),
        _p("winner", "address", indexed=True),
        _p("winning_bid", "uint256", indexed=True),
    )),
    EventSpec(BidRefunded, (
        _p("auction_id", "uint256", indexed=True),
        _p("bidder", "address", indexed=True),
        _p("amount", "uint256"),
    )),
)


class EventCatalog:
    """Lookup of event specs by topic0 and by name."""

    def __init__(self, specs: Tuple[EventSpec, ...], version: int = CATALOG_VERSION):
        self.version = version
        self.specs = specs
        self._by_topic: Dict[bytes, EventSpec] = {s.topic: s for s in specs}
        self._by_name: Dict[str, EventSpec] = {s.name: s for s in specs}

    def by_topic(self, topic: bytes) -> Optional[EventSpec]:
        return self._by_topic.get(topic)

    def by_name(self, name: str) -> Optional[EventSpec]:
        return self._by_name.get(name)

    def names(self) -> Tuple[str, ...]:
        return tuple(self._by_name)


ASSET_CATALOG = EventCatalog(ASSET_EVENTS)
AUCTION_CATALOG = EventCatalog(AUCTION_EVENTS)

"""
Domain events emitted by the MaskBid contracts.

One frozen dataclass per event kind. Numeric ids and amounts are Python
ints (arbitrary precision), addresses are lowercase 0x-hex strings.

event_key identifies the log a value was decoded from
("<txhash>:<logIndex>"), so redelivered logs can be recognised.
"""

from dataclasses import dataclass
from typing import ClassVar, Optional, Union


@dataclass(frozen=True)
class AssetRegistered:
    name: ClassVar[str] = "AssetRegistered"
    asset_id: int
    issuer: str
    asset_name: str
    symbol: str
    asset_type: str
    description: str
    serial_number: str
    reserve_price: int
    required_deposit: int
    auction_duration: int
    event_key: str = ""
    tx_hash: Optional[str] = None


@dataclass(frozen=True)
class AssetVerified:
    name: ClassVar[str] = "AssetVerified"
    asset_id: int
    is_valid: bool
    verification_details: str = ""
    event_key: str = ""
    tx_hash: Optional[str] = None


@dataclass(frozen=True)
class TokensMinted:
    name: ClassVar[str] = "TokensMinted"
    asset_id: int
    amount: int
    to: str
    reason: str = ""
    event_key: str = ""
    tx_hash: Optional[str] = None


@dataclass(frozen=True)
class TokensRedeemed:
    name: ClassVar[str] = "TokensRedeemed"
    asset_id: int
    amount: int
    account: str
    settlement_details: str = ""
    event_key: str = ""
    tx_hash: Optional[str] = None


@dataclass(frozen=True)
class AuctionCreated:
    name: ClassVar[str] = "AuctionCreated"
    auction_id: int
    token_id: int
    seller: str
    token_amount: int
    reserve_price: int
    deposit_required: int
    start_time: int
    end_time: int
    event_key: str = ""
    tx_hash: Optional[str] = None


@dataclass(frozen=True)
class BidPlaced:
    name: ClassVar[str] = "BidPlaced"
    auction_id: int
    bidder: str
    bid_hash: str
    escrow_amount: int
    event_key: str = ""
    tx_hash: Optional[str] = None


@dataclass(frozen=True)
class AuctionEnded:
    name: ClassVar[str] = "AuctionEnded"
    auction_id: int
    end_time: int
    event_key: str = ""
    tx_hash: Optional[str] = None


@dataclass(frozen=True)
class AuctionFinalized:
    """On-chain confirmation that a resolution report was processed."""
    name: ClassVar[str] = "AuctionFinalized"
    auction_id: int
    winner: str
    winning_bid: int
    event_key: str = ""
    tx_hash: Optional[str] = None


@dataclass(frozen=True)
class BidRefunded:
    name: ClassVar[str] = "BidRefunded"
    auction_id: int
    bidder: str
    amount: int
    event_key: str = ""
    tx_hash: Optional[str] = None


AssetEvent = Union[AssetRegistered, AssetVerified, TokensMinted, TokensRedeemed]
AuctionEvent = Union[AuctionCreated, BidPlaced, AuctionEnded, AuctionFinalized, BidRefunded]
DomainEvent = Union[AssetEvent, AuctionEvent]

"""
Persisted records: assets, auctions and sealed bids.

Amounts (reserve price, deposit, escrow, winning amount) are integers in
the escrow currency's minor units.

Status lifecycles:
    Auction:   active -> ended -> resolved, or -> cancelled
    SealedBid: active -> won | lost   (never back to active)
"""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Optional


class AuctionStatus(str, Enum):
    ACTIVE = "active"
    ENDED = "ended"
    RESOLVED = "resolved"
    CANCELLED = "cancelled"


class BidStatus(str, Enum):
    ACTIVE = "active"
    WON = "won"
    LOST = "lost"


# Statuses from which an auction may still be resolved
RESOLVABLE_STATUSES = (AuctionStatus.ACTIVE, AuctionStatus.ENDED)


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def from_unix(seconds: int) -> datetime:
    return datetime.fromtimestamp(seconds, tz=timezone.utc)


@dataclass
class Asset:
    """A registered real-world asset."""
    asset_id: int
    issuer: str
    name: str
    symbol: str = ""
    asset_type: str = ""
    description: str = ""
    serial_number: str = ""
    reserve_price: int = 0
    required_deposit: int = 0
    auction_duration_hours: int = 0
    verified: bool = False
    minted_supply: int = 0
    redeemed_supply: int = 0
    uid: Optional[str] = None     # Off-chain metadata id written back on-chain


@dataclass
class Auction:
    """A sealed-bid sale of an asset token."""
    auction_id: str                          # Off-chain primary key
    asset_id: str
    seller_address: str
    reserve_price: int
    deposit_required: int = 0
    contract_auction_id: Optional[int] = None
    token_amount: int = 0
    started_at: Optional[datetime] = None
    ends_at: Optional[datetime] = None
    status: AuctionStatus = AuctionStatus.ACTIVE
    winner_address: Optional[str] = None
    winning_amount: Optional[int] = None
    winning_bid_id: Optional[str] = None     # Resolution checkpoint
    resolved_at: Optional[datetime] = None
    tx_hash_create: Optional[str] = None
    tx_hash_finalize: Optional[str] = None

    @property
    def is_resolved(self) -> bool:
        return self.status == AuctionStatus.RESOLVED

    @property
    def is_resolvable(self) -> bool:
        return self.status in RESOLVABLE_STATUSES

    @property
    def commitment_ref(self) -> str:
        """Auction reference bound into bid commitments: the on-chain id once mapped."""
        if self.contract_auction_id is not None:
            return str(self.contract_auction_id)
        return self.auction_id


@dataclass
class SealedBid:
    """
    One bidder's encrypted submission.

    sequence is assigned by the store on insert and orders submissions;
    the earliest sequence wins an exact tie.
    """
    bid_id: str
    auction_id: str
    bidder_address: str
    encrypted_payload: str = ""
    commitment_hash: str = ""
    escrow_tx_hash: Optional[str] = None
    escrow_amount: int = 0
    status: BidStatus = BidStatus.ACTIVE
    sequence: int = 0
    created_at: datetime = field(default_factory=utc_now)
    refunded: bool = False

"""
Store interface consumed by the Synchronizer and the Resolver.

Every write touches a single record and is atomic on its own; there are no
multi-record transactions. Conditional writes report what happened instead
of raising, so callers can tell a redelivery (DUPLICATE) from a lost race
(CONFLICT) and from an ordering anomaly (NOT_FOUND). Transport failures
raise TransportError.
"""

from datetime import datetime
from enum import Enum
from typing import Any, Dict, Iterable, List, Mapping, Optional, Protocol, Tuple, runtime_checkable

from maskbid.core.models import Asset, Auction, AuctionStatus, BidStatus, SealedBid


class WriteResult(str, Enum):
    APPLIED = "applied"
    DUPLICATE = "duplicate"      # Same logical record/event already present
    NOT_FOUND = "not_found"      # Target record absent
    CONFLICT = "conflict"        # Record present but precondition failed


class SupplyKind(str, Enum):
    MINTED = "minted"
    REDEEMED = "redeemed"


# Fields callers may change through update_asset_fields / set_auction_fields
ASSET_MUTABLE_FIELDS = ("verified", "uid")
AUCTION_MUTABLE_FIELDS = ("contract_auction_id", "ends_at", "tx_hash_finalize", "tx_hash_create")


@runtime_checkable
class AuctionStore(Protocol):
    """Persisted-state operations needed by MaskBid."""

    # Assets
    def get_asset(self, asset_id: int) -> Optional[Asset]: ...
    def insert_asset_if_absent(self, asset: Asset) -> WriteResult: ...
    def update_asset_fields(self, asset_id: int, **fields: Any) -> WriteResult: ...
    def apply_asset_supply(self, asset_id: int, kind: SupplyKind, amount: int, event_key: str) -> WriteResult: ...

    # Auctions
    def get_auction(self, auction_id: str) -> Optional[Auction]: ...
    def get_auction_by_contract_id(self, contract_auction_id: int) -> Optional[Auction]: ...
    def insert_auction_if_absent(self, auction: Auction) -> WriteResult: ...
    def update_auction_status(
        self, auction_id: str, status: AuctionStatus, expected: Iterable[AuctionStatus], **fields: Any
    ) -> WriteResult: ...
    def update_auction_resolution(
        self, auction_id: str, winner_address: str, winning_amount: int,
        winning_bid_id: Optional[str], resolved_at: datetime,
    ) -> WriteResult: ...
    def set_auction_fields(self, auction_id: str, **fields: Any) -> WriteResult: ...
    def list_ended_auctions(self, now: datetime) -> List[Auction]: ...

    # Bids
    def get_bid(self, bid_id: str) -> Optional[SealedBid]: ...
    def list_bids(self, auction_id: str) -> List[SealedBid]: ...
    def get_active_bids_for_auction(self, auction_id: str) -> List[SealedBid]: ...
    def insert_bid_if_absent(self, bid: SealedBid) -> Tuple[WriteResult, SealedBid]: ...
    def attach_bid_payload(self, bid_id: str, encrypted_payload: str) -> WriteResult: ...
    def update_bid_status(self, bid_id: str, status: BidStatus) -> WriteResult: ...
    def mark_bid_refunded(self, auction_id: str, bidder_address: str) -> WriteResult: ...


def check_fields(fields: Mapping[str, Any], allowed: Tuple[str, ...]) -> None:
    unknown = set(fields) - set(allowed)
    if unknown:
        raise ValueError(f"Fields not updatable: {sorted(unknown)}")


def settle_bids(store: AuctionStore, auction_id: str, winning_bid_id: Optional[str]) -> int:
    """
    Move every still-active bid of a resolved auction to won or lost.

    Safe to repeat: bids that already left active are not touched. With no
    winning_bid_id (winner never submitted off-chain) every bid is lost.

    Returns:
        Number of bids whose status changed
    """
    settled = 0
    for bid in store.get_active_bids_for_auction(auction_id):
        status = BidStatus.WON if bid.bid_id == winning_bid_id else BidStatus.LOST
        if store.update_bid_status(bid.bid_id, status) == WriteResult.APPLIED:
            settled += 1
    return settled


# =============================================================================
# Row Mapping
# =============================================================================
# Integers that may exceed 64 bits are stored as decimal strings.


def _int(value: Any) -> int:
    return int(value) if value is not None else 0


def _opt_int(value: Any) -> Optional[int]:
    return int(value) if value is not None else None


def _dt(value: Any) -> Optional[datetime]:
    if value is None or isinstance(value, datetime):
        return value
    return datetime.fromisoformat(str(value).replace("Z", "+00:00"))


def _iso(value: Optional[datetime]) -> Optional[str]:
    return value.isoformat() if value is not None else None


def asset_to_row(asset: Asset) -> Dict[str, Any]:
    return {
        "asset_id": str(asset.asset_id),
        "issuer": asset.issuer,
        "asset_name": asset.name,
        "symbol": asset.symbol,
        "asset_type": asset.asset_type,
        "description": asset.description,
        "serial_number": asset.serial_number,
        "reserve_price": str(asset.reserve_price),
        "required_deposit": str(asset.required_deposit),
        "auction_duration_hours": asset.auction_duration_hours,
        "verified": bool(asset.verified),
        "token_minted": str(asset.minted_supply),
        "token_redeemed": str(asset.redeemed_supply),
        "uid": asset.uid,
    }


def row_to_asset(row: Mapping[str, Any]) -> Asset:
    return Asset(
        asset_id=int(row["asset_id"]),
        issuer=row["issuer"],
        name=row["asset_name"],
        symbol=row["symbol"] or "",
        asset_type=row["asset_type"] or "",
        description=row["description"] or "",
        serial_number=row["serial_number"] or "",
        reserve_price=_int(row["reserve_price"]),
        required_deposit=_int(row["required_deposit"]),
        auction_duration_hours=_int(row["auction_duration_hours"]),
        verified=bool(row["verified"]),
        minted_supply=_int(row["token_minted"]),
        redeemed_supply=_int(row["token_redeemed"]),
        uid=row["uid"],
    )


def auction_to_row(auction: Auction) -> Dict[str, Any]:
    return {
        "id": auction.auction_id,
        "asset_id": auction.asset_id,
        "seller_address": auction.seller_address,
        "reserve_price": str(auction.reserve_price),
        "deposit_required": str(auction.deposit_required),
        "contract_auction_id": _opt_str(auction.contract_auction_id),
        "token_amount": str(auction.token_amount),
        "started_at": _iso(auction.started_at),
        "ends_at": _iso(auction.ends_at),
        "status": auction.status.value,
        "winner_address": auction.winner_address,
        "winning_amount": _opt_str(auction.winning_amount),
        "winning_bid_id": auction.winning_bid_id,
        "resolved_at": _iso(auction.resolved_at),
        "tx_hash_create": auction.tx_hash_create,
        "tx_hash_finalize": auction.tx_hash_finalize,
    }


def row_to_auction(row: Mapping[str, Any]) -> Auction:
    return Auction(
        auction_id=row["id"],
        asset_id=row["asset_id"],
        seller_address=row["seller_address"],
        reserve_price=_int(row["reserve_price"]),
        deposit_required=_int(row["deposit_required"]),
        contract_auction_id=_opt_int(row["contract_auction_id"]),
        token_amount=_int(row["token_amount"]),
        started_at=_dt(row["started_at"]),
        ends_at=_dt(row["ends_at"]),
        status=AuctionStatus(row["status"]),
        winner_address=row["winner_address"],
        winning_amount=_opt_int(row["winning_amount"]),
        winning_bid_id=row["winning_bid_id"],
        resolved_at=_dt(row["resolved_at"]),
        tx_hash_create=row["tx_hash_create"],
        tx_hash_finalize=row["tx_hash_finalize"],
    )


def bid_to_row(bid: SealedBid) -> Dict[str, Any]:
    return {
        "id": bid.bid_id,
        "auction_id": bid.auction_id,
        "bidder_address": bid.bidder_address,
        "encrypted_data": bid.encrypted_payload,
        "bid_hash": bid.commitment_hash,
        "escrow_tx_hash": bid.escrow_tx_hash,
        "escrow_amount": str(bid.escrow_amount),
        "status": bid.status.value,
        "created_at": _iso(bid.created_at),
        "refunded": bool(bid.refunded),
    }


def row_to_bid(row: Mapping[str, Any]) -> SealedBid:
    return SealedBid(
        bid_id=row["id"],
        auction_id=row["auction_id"],
        bidder_address=row["bidder_address"],
        encrypted_payload=row["encrypted_data"] or "",
        commitment_hash=row["bid_hash"] or "",
        escrow_tx_hash=row["escrow_tx_hash"],
        escrow_amount=_int(row["escrow_amount"]),
        status=BidStatus(row["status"]),
        sequence=_int(row["seq"]),
        created_at=_dt(row["created_at"]),
        refunded=bool(row["refunded"]),
    )


def _opt_str(value: Optional[int]) -> Optional[str]:
    return str(value) if value is not None else None


def encode_field(name: str, value: Any) -> Any:
    """Convert a mutable field value to its row representation."""
    if isinstance(value, datetime):
        return value.isoformat()
    if isinstance(value, Enum):
        return value.value
    if name == "contract_auction_id":
        return _opt_str(value)
    return value

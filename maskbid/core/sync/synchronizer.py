"""
State Synchronizer - Projects decoded contract events into the store.

Every handler is safe under at-least-once redelivery:
- Inserts are insert-if-absent keyed by the event's natural id.
- Supply counters are deduplicated by the log's event key.
- Status moves are conditional on the current status, so replays and
  out-of-order deliveries collapse into DUPLICATE instead of regressing.

A handler that needs a record which does not exist yet raises
NotFoundError. That is an ordering anomaly, and the relay is expected to
redeliver the event later.
"""

import uuid
from dataclasses import dataclass
from typing import Any, Callable, Dict, Optional

from maskbid.core.config import MaskBidConfig
from maskbid.core.errors import AuctionStateError, BadRequestError, NotFoundError, UnknownEventError
from maskbid.core.events.types import (
    AssetEvent,
    AssetRegistered,
    AssetVerified,
    AuctionCreated,
    AuctionEnded,
    AuctionEvent,
    AuctionFinalized,
    BidPlaced,
    BidRefunded,
    TokensMinted,
    TokensRedeemed,
)
from maskbid.core.models import Asset, Auction, AuctionStatus, SealedBid, from_unix, utc_now
from maskbid.core.storage.base import AuctionStore, SupplyKind, WriteResult, settle_bids
from maskbid.crypto import compute_commitment, normalize_address
from maskbid.utils.logger import get_logger

logger = get_logger("sync")


@dataclass
class SyncResult:
    """What applying one event did to the store."""
    event: str
    outcome: WriteResult
    record_id: Optional[str] = None

    @property
    def changed(self) -> bool:
        return self.outcome == WriteResult.APPLIED

    def to_dict(self) -> Dict[str, Any]:
        return {
            "success": True,
            "action": self.event,
            "result": self.outcome.value,
            "recordId": self.record_id,
        }


class StateSynchronizer:
    """
    Sole writer of asset and auction records driven by contract events.

    Usage:
        sync = StateSynchronizer(store)
        sync.apply_asset_event(decode_asset_log(log))
    """

    def __init__(self, store: AuctionStore, config: Optional[MaskBidConfig] = None):
        self.store = store
        self.config = config or MaskBidConfig()
        self._asset_handlers: Dict[type, Callable[[Any], SyncResult]] = {
            AssetRegistered: self._on_asset_registered,
            AssetVerified: self._on_asset_verified,
            TokensMinted: self._on_tokens_minted,
            TokensRedeemed: self._on_tokens_redeemed,
        }
        self._auction_handlers: Dict[type, Callable[[Any], SyncResult]] = {
            AuctionCreated: self._on_auction_created,
            BidPlaced: self._on_bid_placed,
            AuctionEnded: self._on_auction_ended,
            AuctionFinalized: self._on_auction_finalized,
            BidRefunded: self._on_bid_refunded,
        }

    # =========================================================================
    # Dispatch
    # =========================================================================

    def apply_asset_event(self, event: AssetEvent) -> SyncResult:
        handler = self._asset_handlers.get(type(event))
        if handler is None:
            raise UnknownEventError(f"No asset handler for {type(event).__name__}")
        result = handler(event)
        logger.info(f"{result.event} asset={result.record_id} -> {result.outcome.value}")
        return result

    def apply_auction_event(self, event: AuctionEvent) -> SyncResult:
        handler = self._auction_handlers.get(type(event))
        if handler is None:
            raise UnknownEventError(f"No auction handler for {type(event).__name__}")
        result = handler(event)
        logger.info(f"{result.event} record={result.record_id} -> {result.outcome.value}")
        return result

    # =========================================================================
    # Asset Events
    # =========================================================================

    def _on_asset_registered(self, event: AssetRegistered) -> SyncResult:
        asset = Asset(
            asset_id=event.asset_id,
            issuer=event.issuer,
            name=event.asset_name,
            symbol=event.symbol,
            asset_type=event.asset_type,
            description=event.description,
            serial_number=event.serial_number,
            reserve_price=event.reserve_price,
            required_deposit=event.required_deposit,
            auction_duration_hours=event.auction_duration,
        )
        outcome = self.store.insert_asset_if_absent(asset)
        return SyncResult(event.name, outcome, str(event.asset_id))

    def _on_asset_verified(self, event: AssetVerified) -> SyncResult:
        if not event.is_valid:
            # Verification is one-way; a negative result only gets logged.
            if self.store.get_asset(event.asset_id) is None:
                raise NotFoundError(f"Asset {event.asset_id} not found", assetId=str(event.asset_id))
            logger.warning(f"Asset {event.asset_id} failed verification: {event.verification_details}")
            return SyncResult(event.name, WriteResult.DUPLICATE, str(event.asset_id))

        outcome = self.store.update_asset_fields(event.asset_id, verified=True)
        if outcome == WriteResult.NOT_FOUND:
            raise NotFoundError(f"Asset {event.asset_id} not found", assetId=str(event.asset_id))
        return SyncResult(event.name, outcome, str(event.asset_id))

    def _apply_supply(self, event: Any, kind: SupplyKind) -> SyncResult:
        outcome = self.store.apply_asset_supply(event.asset_id, kind, event.amount, event.event_key)
        if outcome == WriteResult.NOT_FOUND:
            raise NotFoundError(f"Asset {event.asset_id} not found", assetId=str(event.asset_id))
        return SyncResult(event.name, outcome, str(event.asset_id))

    def _on_tokens_minted(self, event: TokensMinted) -> SyncResult:
        return self._apply_supply(event, SupplyKind.MINTED)

    def _on_tokens_redeemed(self, event: TokensRedeemed) -> SyncResult:
        return self._apply_supply(event, SupplyKind.REDEEMED)

    # =========================================================================
    # Auction Events
    # =========================================================================

    def _auction_for(self, contract_auction_id: int) -> Auction:
        auction = self.store.get_auction_by_contract_id(contract_auction_id)
        if auction is None:
            raise NotFoundError(
                f"No auction mapped to on-chain id {contract_auction_id}",
                contractAuctionId=contract_auction_id,
            )
        return auction

    def _on_auction_created(self, event: AuctionCreated) -> SyncResult:
        existing = self.store.get_auction_by_contract_id(event.auction_id)
        if existing is not None:
            return SyncResult(event.name, WriteResult.DUPLICATE, existing.auction_id)

        auction = Auction(
            auction_id=str(uuid.uuid4()),
            asset_id=str(event.token_id),
            seller_address=event.seller,
            reserve_price=event.reserve_price,
            deposit_required=event.deposit_required,
            contract_auction_id=event.auction_id,
            token_amount=event.token_amount,
            started_at=from_unix(event.start_time),
            ends_at=from_unix(event.end_time),
            tx_hash_create=event.tx_hash,
        )
        outcome = self.store.insert_auction_if_absent(auction)
        if outcome == WriteResult.DUPLICATE:
            # Lost a race with a concurrent delivery of the same log
            winner = self.store.get_auction_by_contract_id(event.auction_id)
            return SyncResult(event.name, outcome, winner.auction_id if winner else None)
        return SyncResult(event.name, outcome, auction.auction_id)

    def _on_bid_placed(self, event: BidPlaced) -> SyncResult:
        auction = self._auction_for(event.auction_id)
        bid = SealedBid(
            bid_id=str(uuid.uuid4()),
            auction_id=auction.auction_id,
            bidder_address=event.bidder,
            commitment_hash=event.bid_hash,
            escrow_tx_hash=event.tx_hash,
            escrow_amount=event.escrow_amount,
        )
        outcome, stored = self.store.insert_bid_if_absent(bid)
        return SyncResult(event.name, outcome, stored.bid_id)

    def _on_auction_ended(self, event: AuctionEnded) -> SyncResult:
        auction = self._auction_for(event.auction_id)
        outcome = self.store.update_auction_status(
            auction.auction_id,
            AuctionStatus.ENDED,
            expected=(AuctionStatus.ACTIVE,),
            ends_at=from_unix(event.end_time),
        )
        if outcome == WriteResult.CONFLICT:
            # Already ended, resolved or cancelled
            outcome = WriteResult.DUPLICATE
        return SyncResult(event.name, outcome, auction.auction_id)

    def _on_auction_finalized(self, event: AuctionFinalized) -> SyncResult:
        """
        Reconcile the on-chain outcome with the off-chain record.

        The off-chain resolution is never overwritten. A disagreement is
        logged as an error for manual reconciliation. Once the outcome is
        recorded, bids still active are settled against it.
        """
        auction = self._auction_for(event.auction_id)

        if auction.is_resolved:
            if auction.winner_address == event.winner and auction.winning_amount == event.winning_bid:
                if event.tx_hash and not auction.tx_hash_finalize:
                    self.store.set_auction_fields(auction.auction_id, tx_hash_finalize=event.tx_hash)
                settle_bids(self.store, auction.auction_id, auction.winning_bid_id)
                return SyncResult(event.name, WriteResult.DUPLICATE, auction.auction_id)
            logger.error(
                f"Settlement divergence on auction {auction.auction_id}: "
                f"off-chain winner={auction.winner_address} amount={auction.winning_amount}, "
                f"on-chain winner={event.winner} amount={event.winning_bid}"
            )
            return SyncResult(event.name, WriteResult.CONFLICT, auction.auction_id)

        if not auction.is_resolvable:
            logger.error(f"Auction {auction.auction_id} finalized on-chain while {auction.status.value}")
            return SyncResult(event.name, WriteResult.CONFLICT, auction.auction_id)

        winning_bid_id = None
        for bid in self.store.get_active_bids_for_auction(auction.auction_id):
            if bid.bidder_address == event.winner:
                winning_bid_id = bid.bid_id
                break

        outcome = self.store.update_auction_resolution(
            auction.auction_id,
            winner_address=event.winner,
            winning_amount=event.winning_bid,
            winning_bid_id=winning_bid_id,
            resolved_at=utc_now(),
        )
        if outcome == WriteResult.APPLIED:
            if event.tx_hash:
                self.store.set_auction_fields(auction.auction_id, tx_hash_finalize=event.tx_hash)
            settled = settle_bids(self.store, auction.auction_id, winning_bid_id)
            logger.info(f"Auction {auction.auction_id} finalized on-chain; settled {settled} bid(s)")
        elif outcome == WriteResult.CONFLICT:
            # Resolved concurrently; compare against what won the race
            return self._on_auction_finalized(event)
        return SyncResult(event.name, outcome, auction.auction_id)

    def _on_bid_refunded(self, event: BidRefunded) -> SyncResult:
        auction = self._auction_for(event.auction_id)
        outcome = self.store.mark_bid_refunded(auction.auction_id, event.bidder)
        if outcome == WriteResult.NOT_FOUND:
            raise NotFoundError(
                f"No bid from {event.bidder} on auction {auction.auction_id}",
                auctionId=auction.auction_id,
            )
        return SyncResult(event.name, outcome, auction.auction_id)

    # =========================================================================
    # Bid Submission
    # =========================================================================

    def record_sealed_bid(
        self,
        auction_id: str,
        bidder_address: str,
        encrypted_payload: str,
        commitment_hash: Optional[str] = None,
        escrow_tx_hash: Optional[str] = None,
    ) -> SealedBid:
        """
        Store a sealed bid submitted by the bidder app.

        If the bid was already recorded from its BidPlaced event, the
        ciphertext is attached to that record instead of creating a new one.

        Raises:
            BadRequestError: invalid bidder, empty payload or commitment mismatch
            NotFoundError: unknown auction
            AuctionStateError: auction no longer accepts bids
        """
        try:
            bidder = normalize_address(bidder_address)
        except ValueError:
            raise BadRequestError("bidderAddress must be a 0x address")
        if not encrypted_payload:
            raise BadRequestError("encryptedData is required")

        auction = self.store.get_auction(auction_id)
        if auction is None:
            raise NotFoundError(f"Auction {auction_id} not found", auctionId=auction_id)
        if auction.status != AuctionStatus.ACTIVE:
            raise AuctionStateError(
                f"Auction {auction_id} is {auction.status.value}",
                auctionId=auction_id,
                status=auction.status.value,
            )

        expected = compute_commitment(auction.commitment_ref, bidder, encrypted_payload)
        if commitment_hash and commitment_hash.lower() != expected:
            raise BadRequestError("Commitment hash does not match the sealed bid", auctionId=auction_id)

        bid = SealedBid(
            bid_id=str(uuid.uuid4()),
            auction_id=auction.auction_id,
            bidder_address=bidder,
            encrypted_payload=encrypted_payload,
            commitment_hash=expected,
            escrow_tx_hash=escrow_tx_hash,
        )
        outcome, stored = self.store.insert_bid_if_absent(bid)
        if outcome == WriteResult.DUPLICATE and not stored.encrypted_payload:
            self.store.attach_bid_payload(stored.bid_id, encrypted_payload)
            stored = self.store.get_bid(stored.bid_id) or stored

        logger.info(f"Sealed bid {stored.bid_id} recorded for auction {auction_id} ({outcome.value})")
        return stored

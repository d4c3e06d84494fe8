"""
Bid Resolver - Settles a sealed-bid auction.

Pipeline:
    authorize -> validate -> fetch active bids -> open bids -> select winner
    -> persist outcome -> encode report

Persistence is a short saga over single-record writes:
1. The conditional auction update (active/ended -> resolved, with winner,
   amount and winning_bid_id) is written first. It is the "decided"
   checkpoint; a concurrent resolver loses this write and adopts the
   stored outcome instead of picking its own winner.
2. Bid statuses are then moved out of active (winner -> won, rest -> lost).

A retry against a resolved auction never re-selects. It finishes step 2
from the recorded winning_bid_id and returns the stored outcome.
"""

import hmac
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, List, Literal, Mapping, Optional

from pydantic import BaseModel, ConfigDict, Field, ValidationError

from maskbid.core.amounts import format_minor_units
from maskbid.core.config import MaskBidConfig
from maskbid.core.errors import (
    AuctionStateError,
    BadRequestError,
    DecryptionError,
    MisconfiguredError,
    NoBidsError,
    NotFoundError,
    NoValidBidsError,
    UnauthorizedError,
    UnmappedAuctionError,
)
from maskbid.core.models import Auction, SealedBid, utc_now
from maskbid.core.solver.decryption import BidDecryptor, DecryptedBid, open_bid
from maskbid.core.solver.selection import eligible_bids, select_winner
from maskbid.core.storage.base import AuctionStore, WriteResult, settle_bids
from maskbid.core.sync.report import ResolutionReport
from maskbid.crypto import compute_commitment
from maskbid.utils.logger import get_logger, redact

logger = get_logger("solver")

UNMAPPED_AUCTION_SENTINEL = 0


class ResolveRequest(BaseModel):
    """Body of a resolution request."""
    model_config = ConfigDict(populate_by_name=True)

    auction_id: str = Field(alias="auctionId", min_length=1)
    contract_auction_id: Optional[int] = Field(default=None, alias="contractAuctionId", ge=0)
    action: Literal["resolve"]


def parse_request(payload: Any) -> ResolveRequest:
    """
    Validate a resolution request body.

    Raises:
        BadRequestError: not an object, missing auctionId or resolve action
    """
    if not isinstance(payload, Mapping):
        raise BadRequestError("Request body must be a JSON object")
    try:
        return ResolveRequest.model_validate(dict(payload))
    except ValidationError as e:
        fields = sorted({str(err["loc"][0]) for err in e.errors() if err.get("loc")})
        raise BadRequestError("Missing or invalid fields: auctionId, action", fields=fields)


@dataclass
class ResolutionResult:
    """Outcome of a resolution plus the report to deliver on-chain."""
    auction_id: str
    asset_id: str
    contract_auction_id: int
    winner: str
    amount: int
    total_bids: int
    report: ResolutionReport
    winning_bid_id: Optional[str] = None
    timestamp: datetime = field(default_factory=utc_now)
    needs_reconciliation: bool = False
    already_resolved: bool = False

    def to_response(self, decimals: int) -> Dict[str, Any]:
        body: Dict[str, Any] = {
            "winner": self.winner,
            "amount": format_minor_units(self.amount, decimals),
            "amountUnits": self.amount,
            "assetId": self.asset_id,
            "auctionId": self.auction_id,
            "contractAuctionId": self.contract_auction_id,
            "totalBids": self.total_bids,
            "timestamp": self.timestamp.isoformat(),
            "report": self.report.to_hex(),
        }
        if self.already_resolved:
            body["alreadyResolved"] = True
        if self.needs_reconciliation:
            body["needsReconciliation"] = True
        return body


class BidResolver:
    """
    Authenticated settlement of one auction per call.

    Usage:
        resolver = BidResolver(config, store, build_decryptor(config))
        result = resolver.resolve({"auctionId": "...", "action": "resolve"}, "Bearer <token>")
    """

    def __init__(self, config: MaskBidConfig, store: AuctionStore, decryptor: BidDecryptor):
        self.config = config
        self.store = store
        self.decryptor = decryptor

    # =========================================================================
    # Entry Point
    # =========================================================================

    def resolve(self, payload: Any, authorization: Optional[str]) -> ResolutionResult:
        """
        Resolve the auction named in payload.

        Raises:
            UnauthorizedError, MisconfiguredError, BadRequestError,
            NotFoundError, AuctionStateError, NoBidsError, NoValidBidsError,
            UnmappedAuctionError, TransportError
        """
        self.authorize(authorization)
        request = parse_request(payload)

        auction = self.store.get_auction(request.auction_id)
        if auction is None:
            raise NotFoundError(f"Auction {request.auction_id} not found", auctionId=request.auction_id)
        if auction.is_resolved:
            logger.info(f"Auction {auction.auction_id} already resolved, returning stored outcome")
            return self._resume(auction, request)
        if not auction.is_resolvable:
            raise AuctionStateError(
                f"Auction {auction.auction_id} is {auction.status.value}",
                auctionId=auction.auction_id,
                status=auction.status.value,
            )

        bids = self.store.get_active_bids_for_auction(auction.auction_id)
        if not bids:
            raise NoBidsError("No bids found for this auction", auctionId=auction.auction_id, totalBids=0)

        opened = self._open_bids(auction, bids)
        winner = select_winner(opened, auction.reserve_price)
        if winner is None:
            raise NoValidBidsError(
                "No valid bids found",
                auctionId=auction.auction_id,
                totalBids=len(bids),
                openedBids=len(opened),
                eligibleBids=len(eligible_bids(opened, auction.reserve_price)),
            )
        logger.info(
            f"Auction {auction.auction_id}: winner {winner.bidder} at "
            f"{format_minor_units(winner.amount, self.config.currency_decimals)} "
            f"({len(opened)}/{len(bids)} bids opened)"
        )

        contract_id, needs_reconciliation = self._contract_auction_id(auction, request)
        resolved_at = utc_now()

        outcome = self.store.update_auction_resolution(
            auction.auction_id,
            winner_address=winner.bidder,
            winning_amount=winner.amount,
            winning_bid_id=winner.bid.bid_id,
            resolved_at=resolved_at,
        )
        if outcome == WriteResult.NOT_FOUND:
            raise NotFoundError(f"Auction {auction.auction_id} not found", auctionId=auction.auction_id)
        if outcome == WriteResult.CONFLICT:
            current = self.store.get_auction(auction.auction_id)
            if current is None or not current.is_resolved:
                raise AuctionStateError(
                    f"Auction {auction.auction_id} changed state during resolution",
                    auctionId=auction.auction_id,
                )
            logger.info(f"Auction {auction.auction_id} was resolved concurrently, adopting stored outcome")
            return self._resume(current, request)

        settle_bids(self.store, auction.auction_id, winner.bid.bid_id)

        return ResolutionResult(
            auction_id=auction.auction_id,
            asset_id=auction.asset_id,
            contract_auction_id=contract_id,
            winner=winner.bidder,
            amount=winner.amount,
            total_bids=len(bids),
            report=ResolutionReport(contract_id, winner.bidder, winner.amount),
            winning_bid_id=winner.bid.bid_id,
            timestamp=resolved_at,
            needs_reconciliation=needs_reconciliation,
        )

    # =========================================================================
    # Steps
    # =========================================================================

    def authorize(self, authorization: Optional[str]):
        """Check the bearer credential against the pre-shared solver token."""
        try:
            expected = self.config.require_solver_token()
        except MisconfiguredError:
            logger.error("SOLVER_AUTH_TOKEN is not configured; refusing resolution requests")
            raise

        received = ""
        if authorization and authorization.startswith("Bearer "):
            received = authorization[len("Bearer "):].strip()

        if not hmac.compare_digest(received.encode("utf-8"), expected.encode("utf-8")):
            logger.warning(f"Unauthorized resolution request: expected {redact(expected)}, got {redact(received)}")
            raise UnauthorizedError("Unauthorized")

    def _commitment_ok(self, auction: Auction, bid: SealedBid) -> bool:
        if not bid.commitment_hash:
            return True
        refs = {auction.auction_id, auction.commitment_ref}
        stored = bid.commitment_hash.lower()
        return any(compute_commitment(ref, bid.bidder_address, bid.encrypted_payload) == stored for ref in refs)

    def _open_bids(self, auction: Auction, bids: List[SealedBid]) -> List[DecryptedBid]:
        """Open every bid; unusable ones are logged and dropped."""
        opened: List[DecryptedBid] = []
        for bid in bids:
            if bid.encrypted_payload and not self._commitment_ok(auction, bid):
                logger.warning(f"Dropping bid {bid.bid_id}: commitment hash does not match payload")
                continue
            try:
                opened.append(
                    open_bid(
                        self.decryptor,
                        bid,
                        max_attempts=self.config.max_decrypt_attempts,
                        decimals=self.config.currency_decimals,
                    )
                )
            except DecryptionError as e:
                logger.warning(f"Dropping bid {bid.bid_id}: {e.message}")
        return opened

    def _contract_auction_id(self, auction: Auction, request: ResolveRequest):
        """On-chain id for the report, and whether it is the unmapped sentinel."""
        stored = auction.contract_auction_id
        requested = request.contract_auction_id
        if requested is not None:
            if stored is not None and stored != requested:
                raise BadRequestError(
                    "contractAuctionId does not match the recorded on-chain auction",
                    auctionId=auction.auction_id,
                )
            return requested, False
        if stored is not None:
            return stored, False

        if not self.config.allow_unmapped_auction:
            raise UnmappedAuctionError(
                "Auction has no on-chain id; refusing to report against a sentinel",
                auctionId=auction.auction_id,
            )
        logger.error(
            f"Auction {auction.auction_id} has no on-chain id; reporting against "
            f"{UNMAPPED_AUCTION_SENTINEL}, manual reconciliation required"
        )
        return UNMAPPED_AUCTION_SENTINEL, True

    def _resume(self, auction: Auction, request: ResolveRequest) -> ResolutionResult:
        """Finish an interrupted saga and return the stored outcome."""
        if auction.winner_address is None or auction.winning_amount is None:
            raise AuctionStateError(
                f"Auction {auction.auction_id} is resolved without a recorded winner",
                auctionId=auction.auction_id,
            )
        contract_id, needs_reconciliation = self._contract_auction_id(auction, request)
        if auction.winning_bid_id:
            settle_bids(self.store, auction.auction_id, auction.winning_bid_id)

        return ResolutionResult(
            auction_id=auction.auction_id,
            asset_id=auction.asset_id,
            contract_auction_id=contract_id,
            winner=auction.winner_address,
            amount=auction.winning_amount,
            total_bids=len(self.store.list_bids(auction.auction_id)),
            report=ResolutionReport(contract_id, auction.winner_address, auction.winning_amount),
            winning_bid_id=auction.winning_bid_id,
            timestamp=auction.resolved_at or utc_now(),
            needs_reconciliation=needs_reconciliation,
            already_resolved=True,
        )

"""
Supabase backend for the auction store.

Talks to PostgREST over httpx. Conditional writes are expressed as filtered
PATCH requests with `Prefer: return=representation`, so the store itself
decides whether the precondition held; an empty result means it did not.
Supply counters go through the `apply_asset_supply` RPC, which records the
event key and bumps the counter in one database call (see sql/).
"""

from datetime import datetime
from typing import Any, Dict, Iterable, List, Optional, Tuple

import httpx

from maskbid.core.errors import TransportError
from maskbid.core.models import Asset, Auction, AuctionStatus, BidStatus, SealedBid, RESOLVABLE_STATUSES
from maskbid.core.storage.base import (
    ASSET_MUTABLE_FIELDS,
    AUCTION_MUTABLE_FIELDS,
    SupplyKind,
    WriteResult,
    asset_to_row,
    auction_to_row,
    bid_to_row,
    check_fields,
    encode_field,
    row_to_asset,
    row_to_auction,
    row_to_bid,
)
from maskbid.utils.logger import get_logger

logger = get_logger("storage.supabase")

RETURN_ROWS = "return=representation"
IGNORE_DUPLICATES = "resolution=ignore-duplicates,return=representation"


def _in(values: Iterable[str]) -> str:
    return "in.(" + ",".join(values) + ")"


class SupabaseAdapter:
    """PostgREST client implementing AuctionStore."""

    def __init__(
        self,
        url: str,
        service_key: str,
        timeout: float = 10.0,
        client: Optional[httpx.Client] = None,
    ):
        self.base_url = url.rstrip("/") + "/rest/v1"
        self._client = client or httpx.Client(timeout=timeout)
        self._headers = {
            "apikey": service_key,
            "Authorization": f"Bearer {service_key}",
            "Content-Type": "application/json",
        }

    # =========================================================================
    # HTTP
    # =========================================================================

    def _request(
        self,
        method: str,
        path: str,
        params: Optional[Dict[str, str]] = None,
        json: Any = None,
        prefer: Optional[str] = None,
        allow_conflict: bool = False,
    ) -> Any:
        headers = dict(self._headers)
        if prefer:
            headers["Prefer"] = prefer
        try:
            response = self._client.request(
                method, f"{self.base_url}/{path}", params=params, json=json, headers=headers
            )
        except httpx.HTTPError as e:
            raise TransportError(f"Supabase {method} {path} failed: {e}")

        if allow_conflict and response.status_code == 409:
            return None
        if response.status_code >= 400:
            raise TransportError(
                f"Supabase {method} {path} returned {response.status_code}",
                status=response.status_code,
            )
        if not response.content:
            return []
        return response.json()

    def _select(self, table: str, **filters: str) -> List[Dict[str, Any]]:
        params = {"select": "*"}
        params.update(filters)
        return self._request("GET", table, params=params)

    def _exists(self, table: str, **filters: str) -> bool:
        return bool(self._select(table, **filters))

    # =========================================================================
    # Assets
    # =========================================================================

    def get_asset(self, asset_id: int) -> Optional[Asset]:
        rows = self._select("assets", asset_id=f"eq.{asset_id}")
        return row_to_asset(rows[0]) if rows else None

    def insert_asset_if_absent(self, asset: Asset) -> WriteResult:
        row = asset_to_row(asset)
        rows = self._request(
            "POST", "assets", params={"on_conflict": "asset_id"}, json=row, prefer=IGNORE_DUPLICATES
        )
        return WriteResult.APPLIED if rows else WriteResult.DUPLICATE

    def update_asset_fields(self, asset_id: int, **fields: Any) -> WriteResult:
        check_fields(fields, ASSET_MUTABLE_FIELDS)
        if not fields:
            return WriteResult.DUPLICATE
        body = {k: encode_field(k, v) for k, v in fields.items()}
        rows = self._request(
            "PATCH", "assets", params={"asset_id": f"eq.{asset_id}"}, json=body, prefer=RETURN_ROWS
        )
        return WriteResult.APPLIED if rows else WriteResult.NOT_FOUND

    def apply_asset_supply(self, asset_id: int, kind: SupplyKind, amount: int, event_key: str) -> WriteResult:
        result = self._request(
            "POST",
            "rpc/apply_asset_supply",
            json={
                "p_asset_id": str(asset_id),
                "p_kind": kind.value,
                "p_amount": str(amount),
                "p_event_key": event_key,
            },
        )
        try:
            return WriteResult(result)
        except ValueError:
            raise TransportError(f"Unexpected apply_asset_supply result: {result!r}")

    # =========================================================================
    # Auctions
    # =========================================================================

    def get_auction(self, auction_id: str) -> Optional[Auction]:
        rows = self._select("auctions", id=f"eq.{auction_id}")
        return row_to_auction(rows[0]) if rows else None

    def get_auction_by_contract_id(self, contract_auction_id: int) -> Optional[Auction]:
        rows = self._select("auctions", contract_auction_id=f"eq.{contract_auction_id}")
        return row_to_auction(rows[0]) if rows else None

    def insert_auction_if_absent(self, auction: Auction) -> WriteResult:
        rows = self._request(
            "POST",
            "auctions",
            params={"on_conflict": "id"},
            json=auction_to_row(auction),
            prefer=IGNORE_DUPLICATES,
            allow_conflict=True,  # contract_auction_id unique violation
        )
        return WriteResult.APPLIED if rows else WriteResult.DUPLICATE

    def update_auction_status(
        self,
        auction_id: str,
        status: AuctionStatus,
        expected: Iterable[AuctionStatus],
        **fields: Any,
    ) -> WriteResult:
        check_fields(fields, AUCTION_MUTABLE_FIELDS)
        body = {"status": status.value}
        body.update({k: encode_field(k, v) for k, v in fields.items()})
        rows = self._request(
            "PATCH",
            "auctions",
            params={"id": f"eq.{auction_id}", "status": _in(s.value for s in expected)},
            json=body,
            prefer=RETURN_ROWS,
        )
        if rows:
            return WriteResult.APPLIED
        return WriteResult.CONFLICT if self._exists("auctions", id=f"eq.{auction_id}") else WriteResult.NOT_FOUND

    def update_auction_resolution(
        self,
        auction_id: str,
        winner_address: str,
        winning_amount: int,
        winning_bid_id: Optional[str],
        resolved_at: datetime,
    ) -> WriteResult:
        rows = self._request(
            "PATCH",
            "auctions",
            params={"id": f"eq.{auction_id}", "status": _in(s.value for s in RESOLVABLE_STATUSES)},
            json={
                "status": AuctionStatus.RESOLVED.value,
                "winner_address": winner_address,
                "winning_amount": str(winning_amount),
                "winning_bid_id": winning_bid_id,
                "resolved_at": resolved_at.isoformat(),
            },
            prefer=RETURN_ROWS,
        )
        if rows:
            return WriteResult.APPLIED
        return WriteResult.CONFLICT if self._exists("auctions", id=f"eq.{auction_id}") else WriteResult.NOT_FOUND

    def set_auction_fields(self, auction_id: str, **fields: Any) -> WriteResult:
        check_fields(fields, AUCTION_MUTABLE_FIELDS)
        if not fields:
            return WriteResult.DUPLICATE
        rows = self._request(
            "PATCH",
            "auctions",
            params={"id": f"eq.{auction_id}"},
            json={k: encode_field(k, v) for k, v in fields.items()},
            prefer=RETURN_ROWS,
        )
        return WriteResult.APPLIED if rows else WriteResult.NOT_FOUND

    def list_ended_auctions(self, now: datetime) -> List[Auction]:
        rows = self._select(
            "auctions",
            status=_in(s.value for s in RESOLVABLE_STATUSES),
            order="ends_at.asc",
        )
        auctions = [row_to_auction(r) for r in rows]
        return [
            a for a in auctions
            if a.status == AuctionStatus.ENDED or (a.ends_at is not None and a.ends_at <= now)
        ]

    # =========================================================================
    # Bids
    # =========================================================================

    def get_bid(self, bid_id: str) -> Optional[SealedBid]:
        rows = self._select("bids", id=f"eq.{bid_id}")
        return row_to_bid(rows[0]) if rows else None

    def list_bids(self, auction_id: str) -> List[SealedBid]:
        rows = self._select("bids", auction_id=f"eq.{auction_id}", order="seq.asc")
        return [row_to_bid(r) for r in rows]

    def get_active_bids_for_auction(self, auction_id: str) -> List[SealedBid]:
        rows = self._select(
            "bids",
            auction_id=f"eq.{auction_id}",
            status=f"eq.{BidStatus.ACTIVE.value}",
            order="seq.asc",
        )
        return [row_to_bid(r) for r in rows]

    def insert_bid_if_absent(self, bid: SealedBid) -> Tuple[WriteResult, SealedBid]:
        rows = self._request(
            "POST",
            "bids",
            params={"on_conflict": "auction_id,bid_hash"},
            json=bid_to_row(bid),
            prefer=IGNORE_DUPLICATES,
        )
        if rows:
            return WriteResult.APPLIED, row_to_bid(rows[0])
        stored = self._select("bids", auction_id=f"eq.{bid.auction_id}", bid_hash=f"eq.{bid.commitment_hash}")
        if not stored:
            raise TransportError("Bid insert ignored but no existing row found")
        return WriteResult.DUPLICATE, row_to_bid(stored[0])

    def attach_bid_payload(self, bid_id: str, encrypted_payload: str) -> WriteResult:
        rows = self._request(
            "PATCH",
            "bids",
            params={"id": f"eq.{bid_id}", "encrypted_data": "eq."},
            json={"encrypted_data": encrypted_payload},
            prefer=RETURN_ROWS,
        )
        if rows:
            return WriteResult.APPLIED
        current = self.get_bid(bid_id)
        if current is None:
            return WriteResult.NOT_FOUND
        return WriteResult.DUPLICATE if current.encrypted_payload == encrypted_payload else WriteResult.CONFLICT

    def update_bid_status(self, bid_id: str, status: BidStatus) -> WriteResult:
        if status == BidStatus.ACTIVE:
            raise ValueError("A bid cannot be moved back to active")
        rows = self._request(
            "PATCH",
            "bids",
            params={"id": f"eq.{bid_id}", "status": f"eq.{BidStatus.ACTIVE.value}"},
            json={"status": status.value},
            prefer=RETURN_ROWS,
        )
        if rows:
            return WriteResult.APPLIED
        current = self.get_bid(bid_id)
        if current is None:
            return WriteResult.NOT_FOUND
        return WriteResult.DUPLICATE if current.status == status else WriteResult.CONFLICT

    def mark_bid_refunded(self, auction_id: str, bidder_address: str) -> WriteResult:
        bidder = bidder_address.lower()
        rows = self._request(
            "PATCH",
            "bids",
            params={
                "auction_id": f"eq.{auction_id}",
                "bidder_address": f"eq.{bidder}",
                "refunded": "is.false",
            },
            json={"refunded": True},
            prefer=RETURN_ROWS,
        )
        if rows:
            return WriteResult.APPLIED
        exists = self._exists("bids", auction_id=f"eq.{auction_id}", bidder_address=f"eq.{bidder}")
        return WriteResult.DUPLICATE if exists else WriteResult.NOT_FOUND

    def close(self):
        self._client.close()

import sqlite3
import threading
from contextlib import contextmanager
from datetime import datetime
from pathlib import Path
from typing import Any, Iterable, Iterator, List, Optional, Tuple

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

logger = get_logger("storage.sqlite")


class SQLiteAdapter:
    """
    SQLite backend for the auction store.

    Provides:
    1. Asset records with a ledger of applied supply events (redelivery dedup).
    2. Auction records with status-conditional updates.
    3. Sealed bids ordered by an autoincrement submission sequence.

    Connections are per thread; each public write runs in its own
    BEGIN IMMEDIATE transaction and touches one logical record.
    """

    def __init__(self, db_path: Path):
        self.db_path = Path(db_path)
        self._conn_local = threading.local()

        if not self.db_path.parent.exists():
            self.db_path.parent.mkdir(parents=True, exist_ok=True)

        self._init_schema()
        logger.info(f"SQLite store initialized at {self.db_path}")

    def _get_conn(self) -> sqlite3.Connection:
        """Get or create connection for current thread."""
        if not hasattr(self._conn_local, "conn"):
            conn = sqlite3.connect(
                self.db_path,
                timeout=30.0,
                check_same_thread=False,
                isolation_level=None,
            )
            conn.row_factory = sqlite3.Row
            conn.execute("PRAGMA journal_mode=WAL;")
            conn.execute("PRAGMA synchronous=NORMAL;")
            self._conn_local.conn = conn
        return self._conn_local.conn

    @contextmanager
    def _transaction(self) -> Iterator[sqlite3.Connection]:
        conn = self._get_conn()
        try:
            conn.execute("BEGIN IMMEDIATE")
        except sqlite3.Error as e:
            raise TransportError(f"SQLite unavailable: {e}")
        try:
            yield conn
        except sqlite3.Error as e:
            conn.execute("ROLLBACK")
            raise TransportError(f"SQLite write failed: {e}")
        except BaseException:
            conn.execute("ROLLBACK")
            raise
        else:
            conn.execute("COMMIT")

    def _query(self, sql: str, params: Tuple = ()) -> List[sqlite3.Row]:
        try:
            return self._get_conn().execute(sql, params).fetchall()
        except sqlite3.Error as e:
            raise TransportError(f"SQLite query failed: {e}")

    def _init_schema(self):
        """Initialize database schema."""
        with self._transaction() as conn:
            conn.execute("""
                CREATE TABLE IF NOT EXISTS assets (
                    asset_id TEXT PRIMARY KEY,
                    issuer TEXT NOT NULL,
                    asset_name TEXT NOT NULL,
                    symbol TEXT,
                    asset_type TEXT,
                    description TEXT,
                    serial_number TEXT,
                    reserve_price TEXT NOT NULL DEFAULT '0',
                    required_deposit TEXT NOT NULL DEFAULT '0',
                    auction_duration_hours INTEGER NOT NULL DEFAULT 0,
                    verified INTEGER NOT NULL DEFAULT 0,
                    token_minted TEXT NOT NULL DEFAULT '0',
                    token_redeemed TEXT NOT NULL DEFAULT '0',
                    uid TEXT
                )
            """)

            # Supply events already applied, keyed by log position
            conn.execute("""
                CREATE TABLE IF NOT EXISTS asset_events (
                    event_key TEXT PRIMARY KEY,
                    asset_id TEXT NOT NULL
                )
            """)

            conn.execute("""
                CREATE TABLE IF NOT EXISTS auctions (
                    id TEXT PRIMARY KEY,
                    asset_id TEXT NOT NULL,
                    seller_address TEXT NOT NULL,
                    reserve_price TEXT NOT NULL,
                    deposit_required TEXT NOT NULL DEFAULT '0',
                    contract_auction_id TEXT UNIQUE,
                    token_amount TEXT NOT NULL DEFAULT '0',
                    started_at TEXT,
                    ends_at TEXT,
                    status TEXT NOT NULL,
                    winner_address TEXT,
                    winning_amount TEXT,
                    winning_bid_id TEXT,
                    resolved_at TEXT,
                    tx_hash_create TEXT,
                    tx_hash_finalize TEXT
                )
            """)
            conn.execute("CREATE INDEX IF NOT EXISTS idx_auction_status ON auctions(status);")

            conn.execute("""
                CREATE TABLE IF NOT EXISTS bids (
                    seq INTEGER PRIMARY KEY AUTOINCREMENT,
                    id TEXT NOT NULL UNIQUE,
                    auction_id TEXT NOT NULL,
                    bidder_address TEXT NOT NULL,
                    encrypted_data TEXT NOT NULL DEFAULT '',
                    bid_hash TEXT NOT NULL,
                    escrow_tx_hash TEXT,
                    escrow_amount TEXT NOT NULL DEFAULT '0',
                    status TEXT NOT NULL,
                    created_at TEXT NOT NULL,
                    refunded INTEGER NOT NULL DEFAULT 0,
                    UNIQUE (auction_id, bid_hash)
                )
            """)
            conn.execute("CREATE INDEX IF NOT EXISTS idx_bid_auction ON bids(auction_id, status);")

    # =========================================================================
    # Assets
    # =========================================================================

    def get_asset(self, asset_id: int) -> Optional[Asset]:
        rows = self._query("SELECT * FROM assets WHERE asset_id = ?", (str(asset_id),))
        return row_to_asset(rows[0]) if rows else None

    def insert_asset_if_absent(self, asset: Asset) -> WriteResult:
        row = asset_to_row(asset)
        columns = ", ".join(row)
        marks = ", ".join("?" for _ in row)
        with self._transaction() as conn:
            cursor = conn.execute(
                f"INSERT OR IGNORE INTO assets ({columns}) VALUES ({marks})",
                tuple(row.values()),
            )
        return WriteResult.APPLIED if cursor.rowcount == 1 else WriteResult.DUPLICATE

    def update_asset_fields(self, asset_id: int, **fields: Any) -> WriteResult:
        check_fields(fields, ASSET_MUTABLE_FIELDS)
        if not fields:
            return WriteResult.DUPLICATE
        assignments = ", ".join(f"{name} = ?" for name in fields)
        values = tuple(encode_field(k, v) for k, v in fields.items())
        with self._transaction() as conn:
            cursor = conn.execute(
                f"UPDATE assets SET {assignments} WHERE asset_id = ?",
                values + (str(asset_id),),
            )
        return WriteResult.APPLIED if cursor.rowcount == 1 else WriteResult.NOT_FOUND

    def apply_asset_supply(self, asset_id: int, kind: SupplyKind, amount: int, event_key: str) -> WriteResult:
        """Add amount to a supply counter once per event_key."""
        column = "token_minted" if kind == SupplyKind.MINTED else "token_redeemed"
        with self._transaction() as conn:
            row = conn.execute(
                f"SELECT {column} FROM assets WHERE asset_id = ?", (str(asset_id),)
            ).fetchone()
            if row is None:
                return WriteResult.NOT_FOUND

            cursor = conn.execute(
                "INSERT OR IGNORE INTO asset_events (event_key, asset_id) VALUES (?, ?)",
                (event_key, str(asset_id)),
            )
            if cursor.rowcount == 0:
                return WriteResult.DUPLICATE

            total = int(row[column]) + amount
            conn.execute(
                f"UPDATE assets SET {column} = ? WHERE asset_id = ?",
                (str(total), str(asset_id)),
            )
        return WriteResult.APPLIED

    # =========================================================================
    # Auctions
    # =========================================================================

    def get_auction(self, auction_id: str) -> Optional[Auction]:
        rows = self._query("SELECT * FROM auctions WHERE id = ?", (auction_id,))
        return row_to_auction(rows[0]) if rows else None

    def get_auction_by_contract_id(self, contract_auction_id: int) -> Optional[Auction]:
        rows = self._query(
            "SELECT * FROM auctions WHERE contract_auction_id = ?", (str(contract_auction_id),)
        )
        return row_to_auction(rows[0]) if rows else None

    def insert_auction_if_absent(self, auction: Auction) -> WriteResult:
        """Insert unless the id or the on-chain id is already recorded."""
        row = auction_to_row(auction)
        columns = ", ".join(row)
        marks = ", ".join("?" for _ in row)
        with self._transaction() as conn:
            cursor = conn.execute(
                f"INSERT OR IGNORE INTO auctions ({columns}) VALUES ({marks})",
                tuple(row.values()),
            )
        return WriteResult.APPLIED if cursor.rowcount == 1 else WriteResult.DUPLICATE

    def _auction_exists(self, conn: sqlite3.Connection, auction_id: str) -> bool:
        return conn.execute("SELECT 1 FROM auctions WHERE id = ?", (auction_id,)).fetchone() is not None

    def update_auction_status(
        self,
        auction_id: str,
        status: AuctionStatus,
        expected: Iterable[AuctionStatus],
        **fields: Any,
    ) -> WriteResult:
        """Move an auction to status only if its current status is in expected."""
        check_fields(fields, AUCTION_MUTABLE_FIELDS)
        expected = [s.value for s in expected]
        assignments = ", ".join(["status = ?"] + [f"{name} = ?" for name in fields])
        values = (status.value,) + tuple(encode_field(k, v) for k, v in fields.items())
        marks = ", ".join("?" for _ in expected)

        with self._transaction() as conn:
            cursor = conn.execute(
                f"UPDATE auctions SET {assignments} WHERE id = ? AND status IN ({marks})",
                values + (auction_id,) + tuple(expected),
            )
            if cursor.rowcount == 1:
                return WriteResult.APPLIED
            exists = self._auction_exists(conn, auction_id)
        return WriteResult.CONFLICT if exists else WriteResult.NOT_FOUND

    def update_auction_resolution(
        self,
        auction_id: str,
        winner_address: str,
        winning_amount: int,
        winning_bid_id: Optional[str],
        resolved_at: datetime,
    ) -> WriteResult:
        """Record the winner; only applies while the auction is active or ended."""
        marks = ", ".join("?" for _ in RESOLVABLE_STATUSES)
        with self._transaction() as conn:
            cursor = conn.execute(
                f"""
                UPDATE auctions
                SET status = ?, winner_address = ?, winning_amount = ?,
                    winning_bid_id = ?, resolved_at = ?
                WHERE id = ? AND status IN ({marks})
                """,
                (
                    AuctionStatus.RESOLVED.value,
                    winner_address,
                    str(winning_amount),
                    winning_bid_id,
                    resolved_at.isoformat(),
                    auction_id,
                ) + tuple(s.value for s in RESOLVABLE_STATUSES),
            )
            if cursor.rowcount == 1:
                return WriteResult.APPLIED
            exists = self._auction_exists(conn, auction_id)
        return WriteResult.CONFLICT if exists else WriteResult.NOT_FOUND

    def set_auction_fields(self, auction_id: str, **fields: Any) -> WriteResult:
        check_fields(fields, AUCTION_MUTABLE_FIELDS)
        if not fields:
            return WriteResult.DUPLICATE
        assignments = ", ".join(f"{name} = ?" for name in fields)
        values = tuple(encode_field(k, v) for k, v in fields.items())
        with self._transaction() as conn:
            cursor = conn.execute(
                f"UPDATE auctions SET {assignments} WHERE id = ?", values + (auction_id,)
            )
        return WriteResult.APPLIED if cursor.rowcount == 1 else WriteResult.NOT_FOUND

    def list_ended_auctions(self, now: datetime) -> List[Auction]:
        """Auctions past their end time that are not resolved or cancelled."""
        rows = self._query(
            "SELECT * FROM auctions WHERE status IN (?, ?) ORDER BY ends_at ASC",
            tuple(s.value for s in RESOLVABLE_STATUSES),
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
        rows = self._query("SELECT * FROM bids WHERE id = ?", (bid_id,))
        return row_to_bid(rows[0]) if rows else None

    def list_bids(self, auction_id: str) -> List[SealedBid]:
        rows = self._query("SELECT * FROM bids WHERE auction_id = ? ORDER BY seq ASC", (auction_id,))
        return [row_to_bid(r) for r in rows]

    def get_active_bids_for_auction(self, auction_id: str) -> List[SealedBid]:
        rows = self._query(
            "SELECT * FROM bids WHERE auction_id = ? AND status = ? ORDER BY seq ASC",
            (auction_id, BidStatus.ACTIVE.value),
        )
        return [row_to_bid(r) for r in rows]

    def insert_bid_if_absent(self, bid: SealedBid) -> Tuple[WriteResult, SealedBid]:
        """Insert keyed by (auction_id, commitment_hash); returns the stored bid."""
        row = bid_to_row(bid)
        columns = ", ".join(row)
        marks = ", ".join("?" for _ in row)
        with self._transaction() as conn:
            cursor = conn.execute(
                f"INSERT OR IGNORE INTO bids ({columns}) VALUES ({marks})",
                tuple(row.values()),
            )
            result = WriteResult.APPLIED if cursor.rowcount == 1 else WriteResult.DUPLICATE
            stored = conn.execute(
                "SELECT * FROM bids WHERE auction_id = ? AND bid_hash = ?",
                (bid.auction_id, bid.commitment_hash),
            ).fetchone()
        return result, row_to_bid(stored)

    def attach_bid_payload(self, bid_id: str, encrypted_payload: str) -> WriteResult:
        """Fill in the ciphertext of a bid first seen on-chain."""
        with self._transaction() as conn:
            row = conn.execute("SELECT encrypted_data FROM bids WHERE id = ?", (bid_id,)).fetchone()
            if row is None:
                return WriteResult.NOT_FOUND
            if row["encrypted_data"] == encrypted_payload:
                return WriteResult.DUPLICATE
            if row["encrypted_data"]:
                return WriteResult.CONFLICT
            conn.execute("UPDATE bids SET encrypted_data = ? WHERE id = ?", (encrypted_payload, bid_id))
        return WriteResult.APPLIED

    def update_bid_status(self, bid_id: str, status: BidStatus) -> WriteResult:
        """Finalize a bid. Only an active bid changes; a bid never returns to active."""
        if status == BidStatus.ACTIVE:
            raise ValueError("A bid cannot be moved back to active")
        with self._transaction() as conn:
            cursor = conn.execute(
                "UPDATE bids SET status = ? WHERE id = ? AND status = ?",
                (status.value, bid_id, BidStatus.ACTIVE.value),
            )
            if cursor.rowcount == 1:
                return WriteResult.APPLIED
            row = conn.execute("SELECT status FROM bids WHERE id = ?", (bid_id,)).fetchone()
        if row is None:
            return WriteResult.NOT_FOUND
        return WriteResult.DUPLICATE if row["status"] == status.value else WriteResult.CONFLICT

    def mark_bid_refunded(self, auction_id: str, bidder_address: str) -> WriteResult:
        with self._transaction() as conn:
            cursor = conn.execute(
                "UPDATE bids SET refunded = 1 WHERE auction_id = ? AND bidder_address = ? AND refunded = 0",
                (auction_id, bidder_address.lower()),
            )
            if cursor.rowcount > 0:
                return WriteResult.APPLIED
            row = conn.execute(
                "SELECT 1 FROM bids WHERE auction_id = ? AND bidder_address = ?",
                (auction_id, bidder_address.lower()),
            ).fetchone()
        return WriteResult.DUPLICATE if row else WriteResult.NOT_FOUND

    def close(self):
        if hasattr(self._conn_local, "conn"):
            self._conn_local.conn.close()
            del self._conn_local.conn

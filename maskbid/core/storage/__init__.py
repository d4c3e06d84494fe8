"""
Persistent Storage Module.

Provides the AuctionStore interface and two backends:
- SQLiteAdapter: local file database (development, tests, single node)
- SupabaseAdapter: PostgREST over HTTP (production)
"""

from maskbid.core.config import MaskBidConfig
from maskbid.core.errors import MisconfiguredError
from maskbid.core.storage.base import AuctionStore, SupplyKind, WriteResult, settle_bids
from maskbid.core.storage.sqlite_adapter import SQLiteAdapter
from maskbid.core.storage.supabase_adapter import SupabaseAdapter


def open_store(config: MaskBidConfig) -> AuctionStore:
    """Build the configured store backend."""
    if config.store_backend == "supabase":
        if not config.supabase_url or not config.supabase_key:
            raise MisconfiguredError("SUPABASE_URL and SUPABASE_SERVICE_ROLE_KEY are required")
        return SupabaseAdapter(config.supabase_url, config.supabase_key, timeout=config.http_timeout)
    return SQLiteAdapter(config.db_path)


__all__ = [
    "AuctionStore",
    "SupplyKind",
    "WriteResult",
    "settle_bids",
    "SQLiteAdapter",
    "SupabaseAdapter",
    "open_store",
]

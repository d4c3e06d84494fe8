"""Event decoding for the MaskBid asset and auction contracts"""
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
    AssetEvent,
    AuctionEvent,
    DomainEvent,
)
from maskbid.core.events.catalog import (
    EventCatalog,
    EventSpec,
    ASSET_CATALOG,
    AUCTION_CATALOG,
    CATALOG_VERSION,
)
from maskbid.core.events.decoder import (
    RawLog,
    decode_log,
    decode_asset_log,
    decode_auction_log,
    event_to_payload,
    event_from_payload,
)

__all__ = [
    "AssetRegistered",
    "AssetVerified",
    "TokensMinted",
    "TokensRedeemed",
    "AuctionCreated",
    "BidPlaced",
    "AuctionEnded",
    "AuctionFinalized",
    "BidRefunded",
    "AssetEvent",
    "AuctionEvent",
    "DomainEvent",
    "EventCatalog",
    "EventSpec",
    "ASSET_CATALOG",
    "AUCTION_CATALOG",
    "CATALOG_VERSION",
    "RawLog",
    "decode_log",
    "decode_asset_log",
    "decode_auction_log",
    "event_to_payload",
    "event_from_payload",
]

"""Sealed-bid resolution"""
from maskbid.core.solver.decryption import (
    BidDecryptor,
    RSABidDecryptor,
    DecryptedBid,
    build_decryptor,
    open_bid,
)
from maskbid.core.solver.selection import eligible_bids, rank_bids, select_winner
from maskbid.core.solver.resolver import (
    BidResolver,
    ResolveRequest,
    ResolutionResult,
    UNMAPPED_AUCTION_SENTINEL,
    parse_request,
)

__all__ = [
    "BidDecryptor",
    "RSABidDecryptor",
    "DecryptedBid",
    "build_decryptor",
    "open_bid",
    "eligible_bids",
    "rank_bids",
    "select_winner",
    "BidResolver",
    "ResolveRequest",
    "ResolutionResult",
    "UNMAPPED_AUCTION_SENTINEL",
    "parse_request",
]

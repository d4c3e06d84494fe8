"""
Winner selection over opened bids.

Candidates below the reserve (or non-positive) are removed before
ranking. Ranking is by amount descending, then by submission order, so
the earliest of several equal bids wins.
"""

from typing import List, Optional, Sequence

from maskbid.core.solver.decryption import DecryptedBid


def eligible_bids(candidates: Sequence[DecryptedBid], reserve_price: int) -> List[DecryptedBid]:
    """Bids with a positive amount at or above the reserve."""
    return [c for c in candidates if c.amount > 0 and c.amount >= reserve_price]


def rank_bids(candidates: Sequence[DecryptedBid]) -> List[DecryptedBid]:
    # bid_id keeps the order total when two bids share a sequence
    return sorted(candidates, key=lambda c: (-c.amount, c.sequence, c.bid.bid_id))


def select_winner(candidates: Sequence[DecryptedBid], reserve_price: int) -> Optional[DecryptedBid]:
    """Highest eligible bid, or None when nothing clears the reserve."""
    ranked = rank_bids(eligible_bids(candidates, reserve_price))
    return ranked[0] if ranked else None

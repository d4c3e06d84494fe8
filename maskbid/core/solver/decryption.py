"""
Bid Decryption - Pluggable strategy for opening sealed bids.

The strategy is chosen once at startup. Production uses RSABidDecryptor.
There is no plaintext fallback: a process without a private key refuses
to build a decryptor at all.
"""

from dataclasses import dataclass
from typing import Optional, Protocol, runtime_checkable

from maskbid.core.amounts import DEFAULT_DECIMALS, to_minor_units
from maskbid.core.config import MaskBidConfig
from maskbid.core.errors import DecryptionError, MisconfiguredError
from maskbid.core.models import SealedBid
from maskbid.crypto import load_private_key, normalize_address, open_payload, parse_bid_plaintext
from maskbid.utils.logger import get_logger

logger = get_logger("solver.decrypt")


@runtime_checkable
class BidDecryptor(Protocol):
    """Opens one sealed payload into its plaintext bytes."""

    def decrypt(self, encrypted_payload: str) -> bytes:
        """
        Raises:
            DecryptionError: payload cannot be opened (retriable=True for
                transient failures such as an unreachable key service)
        """
        ...


class RSABidDecryptor:
    """RSA-OAEP (SHA-256) decryption with the solver's private key."""

    def __init__(self, private_pem: str):
        try:
            self._key = load_private_key(private_pem)
        except (ValueError, IndexError, TypeError) as e:
            raise MisconfiguredError(f"RSA private key could not be loaded: {e}")

    def decrypt(self, encrypted_payload: str) -> bytes:
        try:
            return open_payload(encrypted_payload, self._key)
        except (ValueError, TypeError) as e:
            raise DecryptionError(f"RSA-OAEP decryption failed: {e}")


def build_decryptor(config: MaskBidConfig) -> BidDecryptor:
    """
    Build the production decryptor.

    Raises:
        MisconfiguredError: no private key configured
    """
    return RSABidDecryptor(config.require_private_key())


# =============================================================================
# Opened Bids
# =============================================================================


@dataclass(frozen=True)
class DecryptedBid:
    """A sealed bid after opening; amount is in minor units."""
    bid: SealedBid
    bidder: str
    amount: int
    timestamp: Optional[int] = None

    @property
    def sequence(self) -> int:
        return self.bid.sequence


def _decrypt_bounded(decryptor: BidDecryptor, bid: SealedBid, max_attempts: int) -> bytes:
    attempt = 1
    while True:
        try:
            return decryptor.decrypt(bid.encrypted_payload)
        except DecryptionError as e:
            if not e.retriable or attempt >= max_attempts:
                raise
            logger.debug(f"Retrying decryption of bid {bid.bid_id} (attempt {attempt + 1}/{max_attempts})")
            attempt += 1


def open_bid(
    decryptor: BidDecryptor,
    bid: SealedBid,
    max_attempts: int = 2,
    decimals: int = DEFAULT_DECIMALS,
) -> DecryptedBid:
    """
    Decrypt and validate one sealed bid.

    The plaintext must name the same bidder the bid was stored under, and
    its amount must be representable in the currency's minor units.

    Raises:
        DecryptionError: the bid is unusable and must be dropped
    """
    if not bid.encrypted_payload:
        raise DecryptionError("Bid has no sealed payload", bidId=bid.bid_id)

    plaintext = _decrypt_bounded(decryptor, bid, max(1, max_attempts))

    try:
        data = parse_bid_plaintext(plaintext)
    except (ValueError, UnicodeDecodeError) as e:
        raise DecryptionError(f"Bid plaintext is not a JSON object: {e}", bidId=bid.bid_id)

    try:
        amount = to_minor_units(data.get("amount"), decimals)
    except (ValueError, TypeError) as e:
        raise DecryptionError(f"Invalid bid amount: {e}", bidId=bid.bid_id)

    user = data.get("user")
    try:
        bidder = normalize_address(user)
    except (ValueError, TypeError):
        raise DecryptionError("Bid plaintext has no valid user address", bidId=bid.bid_id)
    if bidder != bid.bidder_address.lower():
        raise DecryptionError("Bid plaintext names a different bidder", bidId=bid.bid_id)

    timestamp = data.get("timestamp")
    return DecryptedBid(
        bid=bid,
        bidder=bidder,
        amount=amount,
        timestamp=timestamp if isinstance(timestamp, int) and not isinstance(timestamp, bool) else None,
    )

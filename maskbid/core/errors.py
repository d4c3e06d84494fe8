"""
Error taxonomy for MaskBid.

Every error carries a taxonomy tag and the HTTP status it maps to, so the
API layer and the workflows can surface failures without string matching.

Tags:
    BadRequest, Unauthorized, Misconfigured, NotFound, NoBids, NoValidBids,
    AuctionState, UnmappedAuction, UnknownEvent, MalformedLog, Transport
"""

from typing import Any, Dict


class MaskBidError(Exception):
    """Base application error."""

    tag = "InternalError"
    http_status = 500

    def __init__(self, message: str, **context: Any) -> None:
        self.message = message
        self.context = context
        super().__init__(message)

    def to_dict(self) -> Dict[str, Any]:
        body = {"error": self.tag, "message": self.message}
        body.update(self.context)
        return body


# =============================================================================
# Request errors
# =============================================================================


class BadRequestError(MaskBidError):
    """Malformed or incomplete input. Never retriable."""
    tag = "BadRequest"
    http_status = 400


class UnauthorizedError(MaskBidError):
    tag = "Unauthorized"
    http_status = 401


class MisconfiguredError(MaskBidError):
    """A required process-wide secret or setting is missing."""
    tag = "Misconfigured"
    http_status = 500


class NotFoundError(MaskBidError):
    """
    Referenced asset/auction does not exist.

    Usually an ordering anomaly: the event arrived before its prerequisite.
    Redelivery is expected to succeed later.
    """
    tag = "NotFound"
    http_status = 404


# =============================================================================
# Business outcomes
# =============================================================================


class NoBidsError(MaskBidError):
    tag = "NoBids"
    http_status = 400


class NoValidBidsError(MaskBidError):
    tag = "NoValidBids"
    http_status = 400


class AuctionStateError(MaskBidError):
    """Auction is in a state that does not allow the operation."""
    tag = "AuctionState"
    http_status = 409


class UnmappedAuctionError(MaskBidError):
    """No on-chain auction id is known for an off-chain auction."""
    tag = "UnmappedAuction"
    http_status = 409


# =============================================================================
# Decoding
# =============================================================================


class DecodeError(MaskBidError):
    tag = "DecodeError"
    http_status = 400


class UnknownEventError(DecodeError):
    """Log topic matches no catalog entry. Callers treat this as a no-op."""
    tag = "UnknownEvent"


class MalformedLogError(DecodeError):
    """Known event whose fields do not decode. Indicates ABI drift."""
    tag = "MalformedLog"
    http_status = 500


# =============================================================================
# Infrastructure
# =============================================================================


class TransportError(MaskBidError):
    """Store or outbound HTTP failure."""
    tag = "Transport"
    http_status = 500


class DecryptionError(MaskBidError):
    """
    A single sealed bid could not be opened.

    Recovered per bid by the resolver and never returned to callers.
    """
    tag = "Decryption"

    def __init__(self, message: str, retriable: bool = False, **context: Any) -> None:
        self.retriable = retriable
        super().__init__(message, **context)

"""
Event Decoder - Raw EVM logs to typed domain events.

Pure functions, no I/O. Two failure modes are kept distinct:
- UnknownEventError: topic0 is not in the catalog. Not actionable; callers
  treat it as a no-op.
- MalformedLogError: topic0 matches but the fields do not decode. The
  contract ABI and the catalog disagree; this must never be swallowed.

The same module converts events to and from the JSON payloads the relay
workflows post to the event endpoints.
"""

import json
from dataclasses import dataclass, field
from typing import Any, Dict, List, Mapping, Optional, Sequence, Union

from maskbid.core.abi import WORD_SIZE, decode_data, decode_static
from maskbid.core.errors import BadRequestError, MalformedLogError, UnknownEventError
from maskbid.core.events.catalog import ASSET_CATALOG, AUCTION_CATALOG, EventCatalog, EventSpec
from maskbid.core.events.types import AssetEvent, AuctionEvent, DomainEvent
from maskbid.crypto import bytes_to_hex, hex_to_bytes, normalize_address, sha256
from maskbid.utils.logger import get_logger

logger = get_logger("decoder")


@dataclass(frozen=True)
class RawLog:
    """
    A log record as delivered by the chain.

    topics[0] is the event topic; topics[1:] carry indexed parameters.
    """
    topics: Sequence[bytes]
    data: bytes = b""
    transaction_hash: Optional[str] = None
    log_index: Optional[int] = None
    block_number: Optional[int] = None
    address: Optional[str] = None

    @classmethod
    def from_hex(
        cls,
        topics: Sequence[str],
        data: str = "0x",
        transaction_hash: Optional[str] = None,
        log_index: Optional[int] = None,
        block_number: Optional[int] = None,
        address: Optional[str] = None,
    ) -> "RawLog":
        """Build a RawLog from 0x-hex strings (JSON-RPC shape)."""
        try:
            return cls(
                topics=tuple(hex_to_bytes(t) for t in topics),
                data=hex_to_bytes(data) if data else b"",
                transaction_hash=transaction_hash,
                log_index=log_index,
                block_number=block_number,
                address=address,
            )
        except ValueError as e:
            raise MalformedLogError(f"Log is not valid hex: {e}")

    def key(self) -> str:
        """Position of the log on chain, or a content hash without one."""
        if self.transaction_hash is not None and self.log_index is not None:
            return f"{self.transaction_hash.lower()}:{self.log_index}"
        digest = sha256(b"".join(self.topics) + self.data)
        return "content:" + digest.hex()


# =============================================================================
# Log Decoding
# =============================================================================


def decode_log(log: RawLog, catalog: EventCatalog) -> DomainEvent:
    """
    Decode a raw log against a catalog.

    Raises:
        UnknownEventError: no topics, or topic0 not in the catalog
        MalformedLogError: arity/type mismatch for a known event
    """
    if not log.topics:
        raise UnknownEventError("Log has no topics")

    event_spec = catalog.by_topic(bytes(log.topics[0]))
    if event_spec is None:
        raise UnknownEventError(
            f"Unrecognized event topic {bytes_to_hex(bytes(log.topics[0]))}",
            catalogVersion=catalog.version,
        )

    indexed = event_spec.indexed
    indexed_topics = log.topics[1:]
    if len(indexed_topics) != len(indexed):
        raise MalformedLogError(
            f"{event_spec.name}: expected {len(indexed)} indexed topics, got {len(indexed_topics)}"
        )

    values: Dict[str, Any] = {}
    for param, topic in zip(indexed, indexed_topics):
        if len(topic) != WORD_SIZE:
            raise MalformedLogError(f"{event_spec.name}.{param.field}: topic must be 32 bytes")
        values[param.field] = decode_static(param.abi_type, bytes(topic))

    unindexed = event_spec.unindexed
    try:
        decoded = decode_data([p.abi_type for p in unindexed], bytes(log.data))
    except MalformedLogError as e:
        raise MalformedLogError(f"{event_spec.name}: {e.message}")
    for param, value in zip(unindexed, decoded):
        values[param.field] = value

    return event_spec.event_cls(**values, event_key=log.key(), tx_hash=log.transaction_hash)


def decode_asset_log(log: RawLog) -> AssetEvent:
    """Decode a log emitted by the asset contract."""
    return decode_log(log, ASSET_CATALOG)


def decode_auction_log(log: RawLog) -> AuctionEvent:
    """Decode a log emitted by the auction contract."""
    return decode_log(log, AUCTION_CATALOG)


# =============================================================================
# Relay Payloads
# =============================================================================


def _spec_for(event: DomainEvent) -> EventSpec:
    event_spec = ASSET_CATALOG.by_name(event.name) or AUCTION_CATALOG.by_name(event.name)
    if event_spec is None:
        raise TypeError(f"Not a catalog event: {type(event).__name__}")
    return event_spec


def event_to_payload(event: DomainEvent) -> Dict[str, Any]:
    """
    Serialize an event to the relay JSON shape.

    Integers are stringified so they survive JSON consumers without
    53-bit precision limits.
    """
    event_spec = _spec_for(event)
    payload: Dict[str, Any] = {"action": event_spec.name}
    for param in event_spec.params:
        value = getattr(event, param.field)
        payload[param.payload_key] = str(value) if param.abi_type == "uint256" else value
    payload["eventKey"] = event.event_key
    if event.tx_hash:
        payload["txHash"] = event.tx_hash
    return payload


def _parse_uint(value: Any, key: str) -> int:
    if isinstance(value, bool) or isinstance(value, float):
        raise BadRequestError(f"{key} must be an integer or integer string")
    if isinstance(value, int):
        result = value
    elif isinstance(value, str) and value.strip().isdigit():
        result = int(value.strip())
    else:
        raise BadRequestError(f"{key} must be an integer or integer string")
    if result < 0:
        raise BadRequestError(f"{key} must be non-negative")
    return result


def _parse_value(abi_type: str, value: Any, key: str) -> Any:
    if abi_type == "uint256":
        return _parse_uint(value, key)
    if abi_type == "bool":
        if not isinstance(value, bool):
            raise BadRequestError(f"{key} must be a boolean")
        return value
    if abi_type == "address":
        try:
            return normalize_address(value)
        except ValueError:
            raise BadRequestError(f"{key} must be a 0x address")
    if abi_type == "bytes32":
        if not isinstance(value, str) or len(value) != 66 or not value.startswith("0x"):
            raise BadRequestError(f"{key} must be a 0x-prefixed 32-byte hex string")
        return value.lower()
    if not isinstance(value, str):
        raise BadRequestError(f"{key} must be a string")
    return value


def event_from_payload(payload: Mapping[str, Any], catalog: EventCatalog) -> DomainEvent:
    """
    Rebuild a typed event from a relay payload.

    Raises:
        BadRequestError: unknown action, missing or mistyped fields
    """
    if not isinstance(payload, Mapping):
        raise BadRequestError("Request body must be a JSON object")
    action = payload.get("action")
    event_spec = catalog.by_name(action) if isinstance(action, str) else None
    if event_spec is None:
        raise BadRequestError("Invalid action", validActions=list(catalog.names()))

    missing: List[str] = [
        p.payload_key for p in event_spec.params
        if payload.get(p.payload_key) is None and p.abi_type != "string"
    ]
    if missing:
        raise BadRequestError(f"Missing required parameters for {event_spec.name}", missing=missing)

    values: Dict[str, Any] = {}
    for param in event_spec.params:
        raw = payload.get(param.payload_key)
        if raw is None:
            raw = ""
        values[param.field] = _parse_value(param.abi_type, raw, param.payload_key)

    tx_hash = payload.get("txHash") or None
    event_key = payload.get("eventKey") or _content_key(event_spec.name, values)
    return event_spec.event_cls(**values, event_key=event_key, tx_hash=tx_hash)


def _content_key(name: str, values: Dict[str, Any]) -> str:
    canonical = json.dumps({"action": name, **values}, sort_keys=True, default=str)
    return "content:" + sha256(canonical.encode("utf-8")).hex()

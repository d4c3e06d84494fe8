"""
Asset workflow.

Log trigger: decode an asset contract log and relay it to the event
endpoint. HTTP trigger: write an asset's off-chain metadata uid back to the
asset contract as a (uint256, string) report.
"""

import json
from typing import Union

from maskbid.core.errors import BadRequestError, MisconfiguredError, UnknownEventError
from maskbid.core.events import RawLog, decode_asset_log, event_to_payload
from maskbid.core.sync.report import encode_asset_uid_report
from maskbid.workflows.runtime import WorkflowContext, post_event

NO_KEY_EVENT = "No key event detected"


def on_log_trigger(context: WorkflowContext, log: RawLog) -> str:
    try:
        event = decode_asset_log(log)
    except UnknownEventError as e:
        context.log.info(f"{NO_KEY_EVENT}: {e.message}")
        return NO_KEY_EVENT

    context.log.info(f"Event name: {event.name} assetId={event.asset_id}")
    post_event(context, event_to_payload(event))
    return "Success"


def on_http_trigger(context: WorkflowContext, payload: Union[bytes, str, None]) -> str:
    """
    Handle {"assetId": ..., "uid": ...}.

    Returns:
        Transaction hash of the report write

    Raises:
        BadRequestError: empty or malformed payload
    """
    if not payload:
        raise BadRequestError("Json payload is empty")
    try:
        data = json.loads(payload)
    except (ValueError, UnicodeDecodeError):
        raise BadRequestError("Failed to parse HTTP trigger payload")
    if not isinstance(data, dict):
        raise BadRequestError("Failed to parse HTTP trigger payload")

    asset_id, uid = data.get("assetId"), data.get("uid")
    if asset_id in (None, "") or not uid or not isinstance(uid, str):
        raise BadRequestError("Failed to extract assetId or uid from HTTP request")
    if isinstance(asset_id, bool) or not str(asset_id).isdigit():
        raise BadRequestError("assetId must be a non-negative integer")

    if not context.config.asset_address:
        raise MisconfiguredError("Workflow config has no assetAddress")

    report = encode_asset_uid_report(int(asset_id), uid)
    context.log.info(f"Updating metadata for asset {asset_id} on {context.config.asset_address}")
    tx_hash = context.require_chain().write_report(
        context.config.asset_address, report, context.config.gas_limit
    )
    context.log.info(f"write report transaction succeeded: {tx_hash}")
    return tx_hash

"""Auction workflow log trigger: relay auction contract events."""

from maskbid.core.errors import UnknownEventError
from maskbid.core.events import RawLog, decode_auction_log, event_to_payload
from maskbid.workflows.runtime import WorkflowContext, post_event

NO_KEY_EVENT = "No key event detected"


def on_log_trigger(context: WorkflowContext, log: RawLog) -> str:
    try:
        event = decode_auction_log(log)
    except UnknownEventError as e:
        context.log.info(f"{NO_KEY_EVENT}: {e.message}")
        return NO_KEY_EVENT

    context.log.info(f"Event name: {event.name} auctionId={event.auction_id}")
    post_event(context, event_to_payload(event))
    return "Success"

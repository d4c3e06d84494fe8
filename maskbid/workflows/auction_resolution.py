"""
Auction resolution workflow.

Cron trigger: list ended auctions, ask the solver to resolve each one and
deliver every returned report to the auction contract. A failure on one
auction is recorded in the tick's results and does not stop the others.

HTTP trigger: resolve one auction named in the payload, or the configured
default, and fail loudly on any error.
"""

import json
from typing import Any, Dict, List, Optional, Union

from maskbid.core.errors import (
    BadRequestError,
    MaskBidError,
    MisconfiguredError,
    NoBidsError,
    NoValidBidsError,
    TransportError,
)
from maskbid.core.models import Auction, utc_now
from maskbid.core.sync.report import decode_report
from maskbid.crypto import hex_to_bytes
from maskbid.workflows.runtime import WorkflowContext

SOLVER_SECRET = "solver_auth_token"

# Solver answers that mean "nothing to settle", not a failure
UNRESOLVABLE_TAGS = (NoBidsError.tag, NoValidBidsError.tag)


def _solver_error(status_code: int, body: Any) -> TransportError:
    tag = body.get("error") if isinstance(body, dict) else None
    message = body.get("message") if isinstance(body, dict) else None
    return TransportError(
        f"Solver returned {status_code}: {message or 'no message'}",
        status=status_code,
        solverError=tag,
    )


def resolve_auction(
    context: WorkflowContext,
    auction_id: str,
    contract_auction_id: Optional[int] = None,
) -> Dict[str, Any]:
    """
    Call the solver for one auction and submit its report on-chain.

    Raises:
        MisconfiguredError: solver url, secret, contract address or chain missing
        TransportError: solver or report delivery failed (solverError carries
            the solver's error tag when it returned one)
    """
    config = context.config
    if not config.solver_url:
        raise MisconfiguredError("Workflow config has no solverUrl")
    if not config.auction_contract_address:
        raise MisconfiguredError("Workflow config has no auctionContractAddress")
    chain = context.require_chain()

    body: Dict[str, Any] = {"auctionId": auction_id, "action": "resolve"}
    if contract_auction_id is not None:
        body["contractAuctionId"] = contract_auction_id

    context.log.info(f"Resolving auction {auction_id} (contract id: {contract_auction_id})")
    result = context.http.post(
        config.solver_url,
        json=body,
        headers={
            "Authorization": f"Bearer {context.secret(SOLVER_SECRET)}",
            "Content-Type": "application/json",
            "X-Auction-ID": auction_id,
        },
    )
    try:
        response = result.json()
    except (ValueError, UnicodeDecodeError):
        response = None
    if not result.ok:
        raise _solver_error(result.status_code, response)
    if not isinstance(response, dict) or not response.get("report"):
        raise TransportError("Solver response carries no report", auctionId=auction_id)
    if not isinstance(response["report"], str):
        raise TransportError("Solver report is not a hex string", auctionId=auction_id)

    # Refuse to deliver anything that is not a well-formed report
    report = decode_report(response["report"])
    tx_hash = chain.write_report(
        config.auction_contract_address,
        hex_to_bytes(response["report"]),
        config.gas_limit,
    )
    context.log.info(f"Auction {auction_id} settled on-chain for {report.auction_id}: {tx_hash}")

    return {
        "auctionId": auction_id,
        "contractAuctionId": report.auction_id,
        "status": "resolved",
        "winner": report.winner,
        "amount": response.get("amount"),
        "txHash": tx_hash,
    }


def on_cron_tick(context: WorkflowContext, payload: Any = None) -> Dict[str, Any]:
    if context.store is None:
        raise MisconfiguredError("No store available to list ended auctions")

    auctions: List[Auction] = context.store.list_ended_auctions(utc_now())
    if not auctions:
        context.log.info("No ended auctions found")
        return {"trigger": "cron", "auctionsProcessed": 0, "results": [], "timestamp": utc_now().isoformat()}

    context.log.info(f"Found {len(auctions)} ended auction(s) to resolve")
    results = []
    for auction in auctions:
        try:
            results.append(resolve_auction(context, auction.auction_id, auction.contract_auction_id))
        except MisconfiguredError:
            raise
        except MaskBidError as e:
            tag = e.context.get("solverError") or e.tag
            status = "unresolved" if tag in UNRESOLVABLE_TAGS else "error"
            log = context.log.info if status == "unresolved" else context.log.error
            log(f"Failed to resolve auction {auction.auction_id}: [{tag}] {e.message}")
            results.append({
                "auctionId": auction.auction_id,
                "contractAuctionId": auction.contract_auction_id,
                "status": status,
                "error": tag,
                "message": e.message,
            })

    return {
        "trigger": "cron",
        "auctionsProcessed": len(auctions),
        "results": results,
        "timestamp": utc_now().isoformat(),
    }


def on_http_trigger(context: WorkflowContext, payload: Union[bytes, str, None] = None) -> Dict[str, Any]:
    """Resolve a single auction: payload {"auctionId", "contractAuctionId"?} or the configured default."""
    data: Dict[str, Any] = {}
    if payload:
        try:
            data = json.loads(payload)
        except (ValueError, UnicodeDecodeError):
            raise BadRequestError("Failed to parse HTTP trigger payload")
        if not isinstance(data, dict):
            raise BadRequestError("Failed to parse HTTP trigger payload")

    auction_id = data.get("auctionId") or context.config.auction_id
    if not auction_id:
        raise BadRequestError("auctionId not provided and no default configured")

    contract_auction_id = data.get("contractAuctionId")
    if contract_auction_id is not None and (isinstance(contract_auction_id, bool) or not isinstance(contract_auction_id, int)):
        raise BadRequestError("contractAuctionId must be an integer")

    result = resolve_auction(context, str(auction_id), contract_auction_id)
    result["trigger"] = "http"
    result["timestamp"] = utc_now().isoformat()
    return result

"""
FastAPI application factory.

Routes:
    POST /solver            resolution endpoint (bearer-authenticated)
    POST /events/asset      relay sink for asset contract events
    POST /events/auction    relay sink for auction contract events
    GET  /assets/{asset_id} asset record
    POST /bids              sealed bid submission
    GET  /health

Every MaskBidError is rendered as {"error": <tag>, "message": ..., ...}
with the error's HTTP status.
"""

import hmac
import json
from contextlib import asynccontextmanager
from typing import Any, AsyncGenerator, Dict, Optional

from fastapi import FastAPI, Header, Request
from fastapi.responses import JSONResponse
from starlette.concurrency import run_in_threadpool

from maskbid import __version__
from maskbid.api.middleware import RequestLogMiddleware
from maskbid.api.schemas import AssetResponse, BidResponse, BidSubmission, parse_body
from maskbid.core.config import MaskBidConfig
from maskbid.core.errors import BadRequestError, MaskBidError, NotFoundError, UnauthorizedError
from maskbid.core.events import ASSET_CATALOG, AUCTION_CATALOG, event_from_payload
from maskbid.core.solver import BidDecryptor, BidResolver, build_decryptor
from maskbid.core.storage import AuctionStore, open_store
from maskbid.core.sync import StateSynchronizer
from maskbid.utils.logger import get_logger

logger = get_logger("api")


async def _json_body(request: Request) -> Any:
    raw = await request.body()
    if not raw:
        raise BadRequestError("Request body is empty")
    try:
        return json.loads(raw)
    except (ValueError, UnicodeDecodeError):
        raise BadRequestError("Invalid JSON payload")


def create_app(
    config: MaskBidConfig,
    store: Optional[AuctionStore] = None,
    decryptor: Optional[BidDecryptor] = None,
) -> FastAPI:
    """
    Build the API application.

    store defaults to the configured backend; decryptor defaults to the RSA
    decryptor and fails startup with MisconfiguredError without a key.
    """
    store = store if store is not None else open_store(config)
    decryptor = decryptor if decryptor is not None else build_decryptor(config)
    resolver = BidResolver(config, store, decryptor)
    synchronizer = StateSynchronizer(store, config)

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
        yield
        close = getattr(store, "close", None)
        if close is not None:
            close()

    app = FastAPI(title="MaskBid", version=__version__, lifespan=lifespan)
    app.state.config = config
    app.state.store = store
    app.state.resolver = resolver
    app.state.synchronizer = synchronizer

    app.add_middleware(RequestLogMiddleware)

    @app.exception_handler(MaskBidError)
    async def maskbid_error_handler(request: Request, exc: MaskBidError) -> JSONResponse:
        if exc.http_status >= 500:
            logger.error(f"{request.method} {request.url.path} failed: [{exc.tag}] {exc.message}")
        return JSONResponse(status_code=exc.http_status, content=exc.to_dict())

    def check_webhook_token(authorization: Optional[str]):
        if not config.webhook_token:
            return
        expected = f"Bearer {config.webhook_token}"
        if not hmac.compare_digest((authorization or "").encode("utf-8"), expected.encode("utf-8")):
            raise UnauthorizedError("Unauthorized")

    # =========================================================================
    # Resolution
    # =========================================================================

    @app.post("/solver")
    async def solve(request: Request, authorization: Optional[str] = Header(default=None)) -> Dict[str, Any]:
        """
        Resolve one auction.

        "amount" is the winning bid as a fixed-point decimal string
        ("1500.000000"), never a JSON float; "amountUnits" carries the same
        value as an integer in minor units, matching the report.
        """
        # Authorize before touching the body so rejected callers learn nothing
        await run_in_threadpool(resolver.authorize, authorization)
        payload = await _json_body(request)
        result = await run_in_threadpool(resolver.resolve, payload, authorization)
        return result.to_response(config.currency_decimals)

    # =========================================================================
    # Relay Sinks
    # =========================================================================

    @app.post("/events/asset")
    async def asset_event(request: Request, authorization: Optional[str] = Header(default=None)) -> Dict[str, Any]:
        check_webhook_token(authorization)
        event = event_from_payload(await _json_body(request), ASSET_CATALOG)
        result = await run_in_threadpool(synchronizer.apply_asset_event, event)
        return result.to_dict()

    @app.post("/events/auction")
    async def auction_event(request: Request, authorization: Optional[str] = Header(default=None)) -> Dict[str, Any]:
        check_webhook_token(authorization)
        event = event_from_payload(await _json_body(request), AUCTION_CATALOG)
        result = await run_in_threadpool(synchronizer.apply_auction_event, event)
        return result.to_dict()

    # =========================================================================
    # Records
    # =========================================================================

    @app.get("/assets/{asset_id}")
    async def get_asset(asset_id: str) -> Dict[str, Any]:
        if not asset_id.isdigit():
            raise BadRequestError("assetId must be a non-negative integer")
        asset = await run_in_threadpool(store.get_asset, int(asset_id))
        if asset is None:
            raise NotFoundError("Asset not found", assetId=asset_id)
        return {"success": True, "asset": AssetResponse.from_asset(asset).model_dump()}

    @app.post("/bids", status_code=201)
    async def submit_bid(request: Request) -> Dict[str, Any]:
        submission = parse_body(BidSubmission, await _json_body(request))
        bid = await run_in_threadpool(
            synchronizer.record_sealed_bid,
            submission.auction_id,
            submission.bidder_address,
            submission.encrypted_data,
            submission.bid_hash,
            submission.escrow_tx_hash,
        )
        return {"success": True, "bid": BidResponse.from_bid(bid).model_dump()}

    @app.get("/health")
    async def health() -> Dict[str, str]:
        return {"status": "ok", "version": __version__, "store": config.store_backend}

    return app

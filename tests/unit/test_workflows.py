"""
Unit tests for the workflow handlers, driven with fake capabilities.
"""

import json

import httpx
import pytest

from maskbid.core.errors import BadRequestError, MalformedLogError, MisconfiguredError, TransportError
from maskbid.core.events import ASSET_CATALOG, AUCTION_CATALOG, RawLog
from maskbid.core.models import AuctionStatus
from maskbid.core.sync import ResolutionReport, decode_report
from maskbid.workflows import asset_log_trigger, auction_log_trigger, auction_resolution
from maskbid.workflows.runtime import (
    HttpResult,
    HttpxCapability,
    WorkflowContext,
    load_workflow_config,
    post_event,
)

CAROL = "0x" + "c0" * 20
ISSUER = "0x" + "1a" * 20
ASSET_CONTRACT = "0x" + "a5" * 20
AUCTION_CONTRACT = "0x" + "ac" * 20
SOLVER_URL = "https://solver.example/api/solver"


class FakeHttp:
    """Records posts; answers per auction id, else from a per-url queue, else 200 {}."""

    def __init__(self):
        self.posts = []
        self.answers = {}
        self.by_auction = {}

    def answer_auction(self, auction_id, status_code, body):
        self.by_auction[auction_id] = HttpResult(status_code, json.dumps(body).encode("utf-8"))

    def answer(self, url, status_code, body):
        self.answers.setdefault(url, []).append(HttpResult(status_code, json.dumps(body).encode("utf-8")))

    def post(self, url, json, headers=None):
        self.posts.append({"url": url, "json": json, "headers": headers or {}})
        if isinstance(json, dict) and json.get("auctionId") in self.by_auction:
            return self.by_auction[json["auctionId"]]
        queue = self.answers.get(url)
        if queue:
            return queue.pop(0)
        return HttpResult(200, b"{}")


class FakeChain:
    def __init__(self):
        self.writes = []

    def write_report(self, receiver, report, gas_limit):
        self.writes.append((receiver, report, gas_limit))
        return "0x" + "%064x" % len(self.writes)


@pytest.fixture
def http():
    return FakeHttp()


@pytest.fixture
def chain():
    return FakeChain()


@pytest.fixture
def context(http, chain, store):
    config = load_workflow_config({
        "url": "https://relay.example/events",
        "solverUrl": SOLVER_URL,
        "assetAddress": ASSET_CONTRACT,
        "auctionContractAddress": AUCTION_CONTRACT,
        "gasLimit": 300000,
    })
    return WorkflowContext(
        config=config,
        http=http,
        chain=chain,
        store=store,
        secrets={"solver_auth_token": "tok", "webhook_token": "hook"},
    )


def solver_answer(auction_id=7, winner=CAROL, units=1_500_000000):
    return {
        "winner": winner,
        "amount": "1500.000000",
        "amountUnits": units,
        "report": ResolutionReport(auction_id, winner, units).to_hex(),
    }


# =============================================================================
# Runtime
# =============================================================================


class TestRuntime:
    """Tests for config loading and the event relay helper."""

    def test_config_aliases_and_defaults(self):
        config = load_workflow_config({"solverUrl": SOLVER_URL, "auctionId": "A1"})
        assert config.solver_url == SOLVER_URL
        assert config.auction_id == "A1"
        assert config.gas_limit == 500000

    def test_config_from_file(self, tmp_path):
        path = tmp_path / "config.json"
        path.write_text(json.dumps({"schedule": "0 * * * * *", "gasLimit": 10}))
        config = load_workflow_config(path)
        assert config.schedule == "0 * * * * *"
        assert config.gas_limit == 10

    @pytest.mark.parametrize("source", [{"gasLimit": 0}, {"gasLimit": "lots"}])
    def test_config_invalid(self, source):
        with pytest.raises(MisconfiguredError):
            load_workflow_config(source)

    def test_config_missing_file(self, tmp_path):
        with pytest.raises(MisconfiguredError):
            load_workflow_config(tmp_path / "absent.json")

    def test_post_event_adds_bearer(self, context, http):
        post_event(context, {"action": "AuctionEnded"})
        sent = http.posts[0]
        assert sent["url"] == "https://relay.example/events"
        assert sent["headers"]["Authorization"] == "Bearer hook"

    def test_post_event_non_2xx(self, context, http):
        http.answer("https://relay.example/events", 503, {"error": "down"})
        with pytest.raises(TransportError):
            post_event(context, {"action": "AuctionEnded"})

    def test_missing_secret(self, context):
        with pytest.raises(MisconfiguredError):
            context.secret("absent")

    def test_httpx_capability(self):
        def handler(request):
            assert json.loads(request.content) == {"a": 1}
            return httpx.Response(202, json={"ok": True})

        capability = HttpxCapability(client=httpx.Client(transport=httpx.MockTransport(handler)))
        result = capability.post("https://relay.example/x", json={"a": 1})
        assert result.ok
        assert result.json() == {"ok": True}
        capability.close()


# =============================================================================
# Log Triggers
# =============================================================================


class TestLogTriggers:
    """Tests for relaying decoded logs."""

    def test_asset_log_relayed(self, context, http, raw_log):
        log = raw_log(
            ASSET_CATALOG, "TokensMinted", tx_hash="0x" + "7f" * 32, log_index=2,
            asset_id=42, amount=100, to=ISSUER, reason="initial",
        )
        assert asset_log_trigger.on_log_trigger(context, log) == "Success"

        payload = http.posts[0]["json"]
        assert payload["action"] == "TokensMinted"
        assert payload["assetId"] == "42"
        assert payload["eventKey"] == "0x" + "7f" * 32 + ":2"

    def test_auction_log_relayed(self, context, http, raw_log):
        log = raw_log(AUCTION_CATALOG, "AuctionEnded", auction_id=7, end_time=1700259200)
        assert auction_log_trigger.on_log_trigger(context, log) == "Success"
        assert http.posts[0]["json"]["action"] == "AuctionEnded"

    def test_unknown_topic(self, context, http):
        log = RawLog(topics=(b"\x11" * 32,), data=b"")
        assert asset_log_trigger.on_log_trigger(context, log) == asset_log_trigger.NO_KEY_EVENT
        assert auction_log_trigger.on_log_trigger(context, log) == auction_log_trigger.NO_KEY_EVENT
        assert http.posts == []


class TestAssetHttpTrigger:
    """Tests for writing the metadata uid back on-chain."""

    def test_writes_report(self, context, chain):
        tx_hash = asset_log_trigger.on_http_trigger(context, b'{"assetId": "42", "uid": "u-1"}')

        receiver, report, gas_limit = chain.writes[0]
        assert tx_hash.startswith("0x")
        assert receiver == ASSET_CONTRACT
        assert gas_limit == 300000
        assert int.from_bytes(report[:32], "big") == 42

    @pytest.mark.parametrize("payload", [
        None,
        b"",
        b"not json",
        b"[1]",
        b'{"uid": "u-1"}',
        b'{"assetId": 42}',
        b'{"assetId": "-1", "uid": "u"}',
        b'{"assetId": true, "uid": "u"}',
    ])
    def test_bad_payload(self, context, chain, payload):
        with pytest.raises(BadRequestError):
            asset_log_trigger.on_http_trigger(context, payload)
        assert chain.writes == []


# =============================================================================
# Auction Resolution
# =============================================================================


class TestResolveAuction:
    """Tests for calling the solver and delivering its report."""

    def test_posts_request_and_writes_report(self, context, http, chain):
        http.answer(SOLVER_URL, 200, solver_answer())

        result = auction_resolution.resolve_auction(context, "A1", 7)

        sent = http.posts[0]
        assert sent["json"] == {"auctionId": "A1", "action": "resolve", "contractAuctionId": 7}
        assert sent["headers"]["Authorization"] == "Bearer tok"
        assert sent["headers"]["X-Auction-ID"] == "A1"

        receiver, report, gas_limit = chain.writes[0]
        assert receiver == AUCTION_CONTRACT
        assert decode_report(report) == ResolutionReport(7, CAROL, 1_500_000000)
        assert result["status"] == "resolved"
        assert result["winner"] == CAROL
        assert result["txHash"] == "0x" + "%064x" % 1

    def test_contract_id_omitted_when_unknown(self, context, http):
        http.answer(SOLVER_URL, 200, solver_answer())
        auction_resolution.resolve_auction(context, "A1")
        assert "contractAuctionId" not in http.posts[0]["json"]

    def test_solver_error_carries_tag(self, context, http, chain):
        http.answer(SOLVER_URL, 400, {"error": "NoBids", "message": "No bids found for this auction"})
        with pytest.raises(TransportError) as exc_info:
            auction_resolution.resolve_auction(context, "A3")
        assert exc_info.value.context["solverError"] == "NoBids"
        assert chain.writes == []

    def test_malformed_report_not_delivered(self, context, http, chain):
        http.answer(SOLVER_URL, 200, {"report": "0x1234"})
        with pytest.raises(MalformedLogError):
            auction_resolution.resolve_auction(context, "A1")
        assert chain.writes == []

    def test_missing_report(self, context, http, chain):
        http.answer(SOLVER_URL, 200, {"winner": CAROL})
        with pytest.raises(TransportError):
            auction_resolution.resolve_auction(context, "A1")

    @pytest.mark.parametrize("report", [12345, ["0x00"], {"hex": "0x00"}])
    def test_non_string_report(self, context, http, chain, report):
        http.answer(SOLVER_URL, 200, {"report": report})
        with pytest.raises(TransportError):
            auction_resolution.resolve_auction(context, "A1")
        assert chain.writes == []

    def test_missing_secret(self, context, http):
        context.secrets.pop("solver_auth_token")
        with pytest.raises(MisconfiguredError):
            auction_resolution.resolve_auction(context, "A1")
        assert http.posts == []


class TestCronTick:
    """Tests for the scheduled sweep over ended auctions."""

    def test_nothing_to_do(self, context, http):
        result = auction_resolution.on_cron_tick(context)
        assert result["auctionsProcessed"] == 0
        assert result["results"] == []
        assert http.posts == []

    def test_failures_do_not_stop_the_sweep(self, context, http, chain, make_auction):
        make_auction("A1", contract_auction_id=7)
        make_auction("A3", contract_auction_id=9)
        make_auction("A4", contract_auction_id=10)
        make_auction("A5", contract_auction_id=11, status=AuctionStatus.RESOLVED)
        http.answer_auction("A1", 200, solver_answer(7))
        http.answer_auction("A3", 400, {"error": "NoBids", "message": "No bids"})
        http.answer_auction("A4", 500, {"error": "Transport", "message": "db down"})

        result = auction_resolution.on_cron_tick(context)

        by_id = {r["auctionId"]: r for r in result["results"]}
        assert result["auctionsProcessed"] == 3
        assert sorted(p["json"]["auctionId"] for p in http.posts) == ["A1", "A3", "A4"]
        assert by_id["A1"]["status"] == "resolved"
        assert by_id["A3"]["status"] == "unresolved"
        assert by_id["A3"]["error"] == "NoBids"
        assert by_id["A4"]["status"] == "error"
        assert len(chain.writes) == 1

    def test_garbled_solver_answer_recorded(self, context, http, chain, make_auction):
        make_auction("A1", contract_auction_id=7)
        make_auction("A2", contract_auction_id=8)
        http.answer_auction("A1", 200, {"report": 12345})
        http.answer_auction("A2", 200, solver_answer(8))

        result = auction_resolution.on_cron_tick(context)

        by_id = {r["auctionId"]: r for r in result["results"]}
        assert by_id["A1"]["status"] == "error"
        assert by_id["A1"]["error"] == "Transport"
        assert by_id["A2"]["status"] == "resolved"
        assert len(chain.writes) == 1

    def test_misconfiguration_aborts(self, context, make_auction):
        make_auction("A1")
        context.secrets.clear()
        with pytest.raises(MisconfiguredError):
            auction_resolution.on_cron_tick(context)

    def test_requires_store(self, http):
        context = WorkflowContext(config=load_workflow_config({}), http=http)
        with pytest.raises(MisconfiguredError):
            auction_resolution.on_cron_tick(context)


class TestResolutionHttpTrigger:
    """Tests for resolving a single named auction."""

    def test_payload_auction(self, context, http):
        http.answer(SOLVER_URL, 200, solver_answer(12))
        result = auction_resolution.on_http_trigger(context, b'{"auctionId": "A1", "contractAuctionId": 12}')
        assert result["trigger"] == "http"
        assert result["contractAuctionId"] == 12
        assert http.posts[0]["json"]["contractAuctionId"] == 12

    def test_default_auction(self, http, chain):
        config = load_workflow_config({"solverUrl": SOLVER_URL, "auctionContractAddress": AUCTION_CONTRACT, "auctionId": "A9"})
        context = WorkflowContext(config=config, http=http, chain=chain, secrets={"solver_auth_token": "tok"})
        http.answer(SOLVER_URL, 200, solver_answer())
        auction_resolution.on_http_trigger(context)
        assert http.posts[0]["json"]["auctionId"] == "A9"

    @pytest.mark.parametrize("payload", [None, b"{}", b"oops", b'{"auctionId": "A1", "contractAuctionId": "7"}'])
    def test_bad_request(self, context, payload):
        with pytest.raises(BadRequestError):
            auction_resolution.on_http_trigger(context, payload)

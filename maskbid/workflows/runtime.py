"""
Workflow runtime contract.

Handlers have the shape (context, trigger_payload) -> result. The runtime
that schedules them owns logging, outbound HTTP and on-chain report
delivery and hands them in through WorkflowContext, so handlers stay free
of transport code and can be driven directly from tests.
"""

import json
import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, Mapping, Optional, Protocol, Union

import httpx
from pydantic import BaseModel, ConfigDict, Field, ValidationError

from maskbid.core.errors import MisconfiguredError, TransportError
from maskbid.core.storage.base import AuctionStore
from maskbid.utils.logger import get_logger


class WorkflowConfig(BaseModel):
    """Per-deployment workflow settings (camelCase keys in config files)."""
    model_config = ConfigDict(populate_by_name=True)

    schedule: str = "0 */5 * * * *"
    url: Optional[str] = None                                       # Event relay endpoint
    solver_url: Optional[str] = Field(default=None, alias="solverUrl")
    auction_id: Optional[str] = Field(default=None, alias="auctionId")
    asset_address: Optional[str] = Field(default=None, alias="assetAddress")
    auction_contract_address: Optional[str] = Field(default=None, alias="auctionContractAddress")
    chain_selector_name: str = Field(default="ethereum-sepolia", alias="chainSelectorName")
    gas_limit: int = Field(default=500000, alias="gasLimit", gt=0)


def load_workflow_config(source: Union[str, Path, Mapping[str, Any]]) -> WorkflowConfig:
    """
    Load a workflow config from a JSON file or a mapping.

    Raises:
        MisconfiguredError: unreadable file or invalid settings
    """
    if isinstance(source, Mapping):
        data = dict(source)
    else:
        try:
            data = json.loads(Path(source).read_text())
        except (OSError, ValueError) as e:
            raise MisconfiguredError(f"Cannot read workflow config {source}: {e}")
    try:
        return WorkflowConfig.model_validate(data)
    except ValidationError as e:
        raise MisconfiguredError(f"Invalid workflow config: {e.error_count()} error(s)", details=str(e))


# =============================================================================
# Capabilities
# =============================================================================


@dataclass
class HttpResult:
    status_code: int
    body: bytes = b""

    @property
    def ok(self) -> bool:
        return 200 <= self.status_code < 300

    def json(self) -> Any:
        return json.loads(self.body.decode("utf-8")) if self.body else None


class HttpCapability(Protocol):
    def post(self, url: str, json: Any, headers: Optional[Dict[str, str]] = None) -> HttpResult: ...


class ChainCapability(Protocol):
    def write_report(self, receiver: str, report: bytes, gas_limit: int) -> str:
        """Deliver a report to a contract; returns the transaction hash."""
        ...


class HttpxCapability:
    """HttpCapability over an httpx client."""

    def __init__(self, timeout: float = 10.0, client: Optional[httpx.Client] = None):
        self._client = client or httpx.Client(timeout=timeout)

    def post(self, url: str, json: Any, headers: Optional[Dict[str, str]] = None) -> HttpResult:
        try:
            response = self._client.post(url, json=json, headers=headers)
        except httpx.HTTPError as e:
            raise TransportError(f"POST {url} failed: {e}")
        return HttpResult(status_code=response.status_code, body=response.content)

    def close(self):
        self._client.close()


@dataclass
class WorkflowContext:
    """Everything a handler may touch."""
    config: WorkflowConfig
    http: HttpCapability
    chain: Optional[ChainCapability] = None
    store: Optional[AuctionStore] = None
    secrets: Dict[str, str] = field(default_factory=dict)
    log: logging.Logger = field(default_factory=lambda: get_logger("workflow"))

    def secret(self, name: str) -> str:
        value = self.secrets.get(name)
        if not value:
            raise MisconfiguredError(f"Workflow secret {name} is not configured")
        return value

    def require_chain(self) -> ChainCapability:
        if self.chain is None:
            raise MisconfiguredError("No chain capability available for report delivery")
        return self.chain


def post_event(context: WorkflowContext, payload: Dict[str, Any]) -> HttpResult:
    """
    Relay a decoded event payload to the configured event endpoint.

    Raises:
        MisconfiguredError: no event URL configured
        TransportError: non-2xx response
    """
    if not context.config.url:
        raise MisconfiguredError("Workflow config has no event url")
    headers = {"Content-Type": "application/json"}
    token = context.secrets.get("webhook_token")
    if token:
        headers["Authorization"] = f"Bearer {token}"

    result = context.http.post(context.config.url, json=payload, headers=headers)
    if not result.ok:
        raise TransportError(f"HTTP request failed with status: {result.status_code}", status=result.status_code)
    context.log.info(f"Sent {payload.get('action')} to event url. Status {result.status_code}")
    return result

"""Workflow handlers invoked by the relay/trigger runtime"""
from maskbid.workflows.runtime import (
    WorkflowConfig,
    WorkflowContext,
    HttpResult,
    HttpCapability,
    ChainCapability,
    HttpxCapability,
    load_workflow_config,
    post_event,
)

__all__ = [
    "WorkflowConfig",
    "WorkflowContext",
    "HttpResult",
    "HttpCapability",
    "ChainCapability",
    "HttpxCapability",
    "load_workflow_config",
    "post_event",
]

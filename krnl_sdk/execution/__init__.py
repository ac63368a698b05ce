"""
Workflow submission to the execution node and on-chain confirmation.
"""
from .poller import INTENT_EXECUTED_EVENT_ABI, ConfirmationPoller
from .submitter import DEFAULT_NODE_URL, ExecutionNodeClient
from .workflow import (
    find_unresolved_placeholders,
    flatten,
    intent_replacements,
    load_workflow_template,
    render_workflow,
    substitute,
    unflatten,
)

__all__ = [
    "ConfirmationPoller",
    "ExecutionNodeClient",
    "DEFAULT_NODE_URL",
    "INTENT_EXECUTED_EVENT_ABI",
    "find_unresolved_placeholders",
    "flatten",
    "intent_replacements",
    "load_workflow_template",
    "render_workflow",
    "substitute",
    "unflatten",
]

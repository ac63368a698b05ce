"""
Workflow document helpers.

Workflow templates are nested JSON documents with ``{{PLACEHOLDER}}`` tokens
in their string values. Rendering flattens the document into dotted keys,
applies overrides and substitutions, and rebuilds the nested structure. A
path segment that is all digits addresses a list index.
"""
import copy
import json
import logging
import re
from pathlib import Path
from typing import Any, Dict, List, Mapping, Optional, Union

from ..exceptions import ValidationError
from ..models import TransactionIntent
from ..utils import ZERO_ADDRESS

logger = logging.getLogger(__name__)

SEPARATOR = "."
PLACEHOLDER_PATTERN = re.compile(r"\{\{[^{}]+\}\}")
_INDEX_PATTERN = re.compile(r"[0-9]+")


def flatten(document: Mapping[str, Any], sep: str = SEPARATOR) -> Dict[str, Any]:
    """
    Flatten a nested document into ``{dotted.path: leaf}``.

    List items are addressed by their index. Empty dicts and lists are kept
    as leaves so they survive a round trip.
    """
    if not isinstance(document, Mapping):
        raise ValidationError(f"Workflow document must be an object, got {type(document).__name__}")

    flat: Dict[str, Any] = {}

    def walk(node: Any, path: str) -> None:
        if isinstance(node, Mapping) and node:
            for key, value in node.items():
                walk(value, f"{path}{sep}{key}" if path else str(key))
        elif isinstance(node, list) and node:
            for index, item in enumerate(node):
                walk(item, f"{path}{sep}{index}" if path else str(index))
        elif path:
            flat[path] = node

    walk(document, "")
    return flat


def _is_index(segment: str) -> bool:
    return _INDEX_PATTERN.fullmatch(segment) is not None


def _child(container: Union[Dict, List], segment: str) -> Any:
    if isinstance(container, list):
        if not _is_index(segment):
            raise ValidationError(f"{segment!r} is not a list index")
        index = int(segment)
        return container[index] if index < len(container) else None
    return container.get(segment)


def _assign(container: Union[Dict, List], segment: str, value: Any, key: str) -> None:
    if isinstance(container, list):
        if not _is_index(segment):
            raise ValidationError(f"Key {key!r} uses {segment!r} as a list index")
        index = int(segment)
        if index >= len(container):
            container.extend([None] * (index + 1 - len(container)))
        container[index] = value
    else:
        container[segment] = value


def unflatten(flat: Mapping[str, Any], sep: str = SEPARATOR) -> Dict[str, Any]:
    """
    Rebuild a nested document from dotted keys.

    A missing intermediate container is a list when the next segment is all
    digits and a dict otherwise; lists are padded with None up to the index.
    """
    root: Dict[str, Any] = {}
    for key, value in flat.items():
        segments = key.split(sep)
        current: Any = root
        for segment, next_segment in zip(segments, segments[1:]):
            child = _child(current, segment)
            if child is None:
                child = [] if _is_index(next_segment) else {}
                _assign(current, segment, child, key)
            elif not isinstance(child, (dict, list)):
                raise ValidationError(f"Key {key!r} descends into leaf value at {segment!r}")
            current = child

        if isinstance(value, (dict, list)) and not value:
            value = type(value)()
        _assign(current, segments[-1], value, key)
    return root


def substitute(flat: Mapping[str, Any], replacements: Mapping[str, Any]) -> Dict[str, Any]:
    """Replace every occurrence of each placeholder in string leaves."""
    result = {}
    for key, value in flat.items():
        if isinstance(value, str):
            for placeholder, replacement in replacements.items():
                value = value.replace(placeholder, str(replacement))
        result[key] = value
    return result


def find_unresolved_placeholders(document: Any) -> List[str]:
    """Return the distinct ``{{...}}`` tokens left anywhere in a document."""
    found = set()

    def walk(node: Any) -> None:
        if isinstance(node, str):
            found.update(PLACEHOLDER_PATTERN.findall(node))
        elif isinstance(node, Mapping):
            for key, value in node.items():
                walk(key)
                walk(value)
        elif isinstance(node, (list, tuple)):
            for item in node:
                walk(item)

    walk(document)
    return sorted(found)


def intent_replacements(
    intent: TransactionIntent,
    sender_address: str,
    signature: str,
    target_contract: Optional[str] = None,
    node_address: Optional[str] = None,
    extra: Optional[Mapping[str, Any]] = None,
) -> Dict[str, str]:
    """
    Placeholder map for a signed intent.

    Args:
        intent: The signed intent
        sender_address: Account the intent acts for
        signature: The user's intent signature
        target_contract: Value for ``{{ENV.TARGET_CONTRACT}}`` (defaults to intent.target)
        node_address: Value for ``{{ENV.NODE_ADDRESS}}`` (defaults to intent.node_address)
        extra: Additional placeholder values, applied last
    """
    replacements = {
        "{{ENV.SENDER_ADDRESS}}": sender_address,
        "{{ENV.TARGET_CONTRACT}}": target_contract or intent.target,
        "{{ENV.NODE_ADDRESS}}": node_address or intent.node_address,
        "{{USER_SIGNATURE}}": signature,
        "{{TRANSACTION_INTENT_TARGET}}": intent.target,
        "{{TRANSACTION_INTENT_VALUE}}": str(intent.value),
        "{{TRANSACTION_INTENT_ID}}": intent.id,
        "{{TRANSACTION_INTENT_NODE_ADDRESS}}": intent.node_address,
        "{{TRANSACTION_INTENT_DELEGATE}}": intent.delegate or ZERO_ADDRESS,
        "{{TRANSACTION_INTENT_NONCE}}": str(intent.nonce),
        "{{TRANSACTION_INTENT_DEADLINE}}": str(intent.deadline),
    }
    if extra:
        replacements.update({k: str(v) for k, v in extra.items()})
    return replacements


def render_workflow(
    template: Mapping[str, Any],
    replacements: Mapping[str, Any],
    overrides: Optional[Mapping[str, Any]] = None,
    sep: str = SEPARATOR,
) -> Dict[str, Any]:
    """
    Produce a submission-ready workflow from a template.

    Overrides are dotted keys whose value replaces the whole subtree at that
    path, e.g. ``{"workflow.steps.5.inputs.value.authData.executions": []}``.
    Substitution runs after overrides. The template is not modified.
    """
    flat = flatten(copy.deepcopy(template), sep)

    for path, value in (overrides or {}).items():
        prefix = path + sep
        for key in [k for k in flat if k.startswith(prefix)]:
            del flat[key]
        flat[path] = copy.deepcopy(value)
        logger.debug(f"Workflow override applied at {path}")

    return unflatten(substitute(flat, replacements), sep)


def load_workflow_template(path: Union[str, Path]) -> Dict[str, Any]:
    """Load a workflow template from a JSON file."""
    with open(path, "r", encoding="utf-8") as f:
        try:
            document = json.load(f)
        except json.JSONDecodeError as e:
            raise ValidationError(f"Workflow template {path} is not valid JSON: {e}")

    if not isinstance(document, dict):
        raise ValidationError(f"Workflow template {path} must contain a JSON object")
    return document

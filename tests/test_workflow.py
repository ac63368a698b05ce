"""
Tests for workflow flattening, overrides and placeholder substitution.
"""
import json
import string

import pytest
from hypothesis import HealthCheck, given, settings, strategies as st

from krnl_sdk.exceptions import ValidationError
from krnl_sdk.execution.workflow import (
    find_unresolved_placeholders,
    flatten,
    intent_replacements,
    load_workflow_template,
    render_workflow,
    substitute,
    unflatten,
)
from krnl_sdk.intent import IntentBuilder
from krnl_sdk.utils import ZERO_ADDRESS
from tests.test_helpers import TEST_ADDRESS, TEST_DELEGATE, TEST_TARGET

TEMPLATE = {
    "chain_id": 11155111,
    "sender": "{{ENV.SENDER_ADDRESS}}",
    "workflow": {
        "name": "transfer",
        "steps": [
            {"name": "prepare", "inputs": {"target": "{{TRANSACTION_INTENT_TARGET}}"}},
            {
                "name": "execute",
                "inputs": {
                    "value": {
                        "authData": {
                            "executions": [{"to": "0xabc"}, {"to": "0xdef"}],
                            "signature": "{{USER_SIGNATURE}}",
                        },
                        "intent": "id={{TRANSACTION_INTENT_ID}};nonce={{TRANSACTION_INTENT_NONCE}}",
                    }
                },
            },
        ],
    },
}

keys = st.text(alphabet=string.ascii_letters, min_size=1, max_size=5)
leaves = st.none() | st.booleans() | st.integers() | st.text(max_size=10)
documents = st.dictionaries(
    keys,
    st.recursive(
        leaves,
        lambda children: st.lists(children, max_size=3) | st.dictionaries(keys, children, max_size=3),
        max_leaves=6,
    ),
    max_size=4,
)


@pytest.fixture
def intent():
    builder = IntentBuilder(clock=lambda: 1_700_000_000, delegate=TEST_DELEGATE)
    return builder.create_intent(TEST_TARGET, 5, 3, TEST_ADDRESS)


def test_flatten_uses_dotted_paths_and_indices():
    flat = flatten(TEMPLATE)
    assert flat["workflow.steps.0.name"] == "prepare"
    assert flat["workflow.steps.1.inputs.value.authData.executions.1.to"] == "0xdef"
    assert flat["chain_id"] == 11155111


def test_flatten_keeps_empty_containers():
    assert flatten({"a": {}, "b": [], "c": {"d": []}}) == {"a": {}, "b": [], "c.d": []}


def test_flatten_requires_object():
    with pytest.raises(ValidationError):
        flatten(["not", "an", "object"])


def test_unflatten_rebuilds_lists_and_dicts():
    assert unflatten({"a.0.b": 1, "a.1": "x", "c.d": None}) == {"a": [{"b": 1}, "x"], "c": {"d": None}}


def test_unflatten_pads_sparse_lists():
    assert unflatten({"a.2": "z"}) == {"a": [None, None, "z"]}


def test_unflatten_rejects_descending_into_leaf():
    with pytest.raises(ValidationError):
        unflatten({"a": 1, "a.b": 2})


def test_unflatten_rejects_named_key_in_list():
    with pytest.raises(ValidationError):
        unflatten({"a.0": 1, "a.name": 2})


@settings(max_examples=50, deadline=None, suppress_health_check=[HealthCheck.too_slow])
@given(documents)
def test_flatten_round_trip(document):
    assert unflatten(flatten(document)) == document


def test_substitute_replaces_every_occurrence():
    flat = {"a": "{{X}}-{{X}}", "b": 7, "c": "{{Y}}"}
    assert substitute(flat, {"{{X}}": "1", "{{Y}}": 2}) == {"a": "1-1", "b": 7, "c": "2"}


def test_find_unresolved_placeholders_scans_keys_and_values():
    document = {"{{KEY}}": ["plain", {"x": "pre {{B}} post {{A}}"}], "n": 1}
    assert find_unresolved_placeholders(document) == ["{{A}}", "{{B}}", "{{KEY}}"]
    assert find_unresolved_placeholders({"a": "{ not a placeholder }"}) == []


def test_intent_replacements(intent):
    replacements = intent_replacements(intent, TEST_ADDRESS, "0xsig", extra={"{{CUSTOM}}": 42})

    assert replacements["{{ENV.SENDER_ADDRESS}}"] == TEST_ADDRESS
    assert replacements["{{ENV.TARGET_CONTRACT}}"] == TEST_TARGET
    assert replacements["{{ENV.NODE_ADDRESS}}"] == ZERO_ADDRESS
    assert replacements["{{USER_SIGNATURE}}"] == "0xsig"
    assert replacements["{{TRANSACTION_INTENT_VALUE}}"] == "5"
    assert replacements["{{TRANSACTION_INTENT_NONCE}}"] == "3"
    assert replacements["{{TRANSACTION_INTENT_ID}}"] == intent.id
    assert replacements["{{TRANSACTION_INTENT_DELEGATE}}"] == TEST_DELEGATE
    assert replacements["{{TRANSACTION_INTENT_DEADLINE}}"] == str(intent.deadline)
    assert replacements["{{CUSTOM}}"] == "42"


def test_render_workflow_substitutes_without_touching_template(intent):
    before = json.dumps(TEMPLATE, sort_keys=True)
    rendered = render_workflow(TEMPLATE, intent_replacements(intent, TEST_ADDRESS, "0xsig"))

    assert json.dumps(TEMPLATE, sort_keys=True) == before
    assert rendered["sender"] == TEST_ADDRESS
    step = rendered["workflow"]["steps"][1]["inputs"]["value"]
    assert step["authData"]["signature"] == "0xsig"
    assert step["intent"] == f"id={intent.id};nonce=3"
    assert find_unresolved_placeholders(rendered) == []


def test_render_workflow_override_replaces_subtree(intent):
    path = "workflow.steps.1.inputs.value.authData.executions"
    rendered = render_workflow(TEMPLATE, intent_replacements(intent, TEST_ADDRESS, "0xsig"), overrides={path: []})

    auth_data = rendered["workflow"]["steps"][1]["inputs"]["value"]["authData"]
    assert auth_data["executions"] == []
    assert auth_data["signature"] == "0xsig"


def test_render_workflow_override_values_are_substituted(intent):
    rendered = render_workflow(
        TEMPLATE,
        intent_replacements(intent, TEST_ADDRESS, "0xsig"),
        overrides={"workflow.name": "{{TRANSACTION_INTENT_NONCE}}", "workflow.extra": {"flag": True}},
    )
    assert rendered["workflow"]["name"] == "3"
    assert rendered["workflow"]["extra"] == {"flag": True}


def test_render_leaves_unknown_placeholders(intent):
    rendered = render_workflow({"x": "{{UNKNOWN}}"}, intent_replacements(intent, TEST_ADDRESS, "0xsig"))
    assert find_unresolved_placeholders(rendered) == ["{{UNKNOWN}}"]


def test_load_workflow_template(tmp_path):
    path = tmp_path / "workflow.json"
    path.write_text(json.dumps(TEMPLATE), encoding="utf-8")
    assert load_workflow_template(path) == TEMPLATE


@pytest.mark.parametrize("content", ["{not json", "[1, 2]"])
def test_load_workflow_template_rejects_bad_files(tmp_path, content):
    path = tmp_path / "workflow.json"
    path.write_text(content, encoding="utf-8")
    with pytest.raises(ValidationError):
        load_workflow_template(path)

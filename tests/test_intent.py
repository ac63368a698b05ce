"""
Tests for intent id derivation, intent hashing and the IntentBuilder.
"""
import pytest
from unittest.mock import MagicMock

from eth_utils import keccak

from krnl_sdk.exceptions import InvalidNonceError, MissingAddressError, ValidationError
from krnl_sdk.intent import (
    FIXED_DEADLINE,
    IntentBuilder,
    IntentNonceSource,
    derive_intent_id,
    intent_signing_hash,
)
from krnl_sdk.utils import ZERO_ADDRESS
from tests.test_helpers import TEST_ADDRESS, TEST_DELEGATE, TEST_TARGET

NOW = 1_700_000_000


def fixed_clock():
    return NOW


@pytest.fixture
def builder():
    return IntentBuilder(clock=fixed_clock, delegate=TEST_DELEGATE)


def packed_id(sender, nonce, deadline):
    return "0x" + keccak(
        bytes.fromhex(sender[2:]) + nonce.to_bytes(32, "big") + deadline.to_bytes(32, "big")
    ).hex()


def test_derive_intent_id_matches_tight_packing():
    assert derive_intent_id(TEST_ADDRESS, 3, NOW + 3600) == packed_id(TEST_ADDRESS, 3, NOW + 3600)


def test_derive_intent_id_is_deterministic():
    first = derive_intent_id(TEST_ADDRESS, 7, 1234)
    assert first == derive_intent_id(TEST_ADDRESS.lower(), 7, 1234)
    assert first != derive_intent_id(TEST_ADDRESS, 8, 1234)
    assert first != derive_intent_id(TEST_ADDRESS, 7, 1235)


def test_create_intent_window_deadline(builder):
    intent = builder.create_intent(TEST_TARGET, 0, 5, TEST_ADDRESS)

    assert intent.deadline == NOW + 3600
    assert intent.nonce == 5
    assert intent.value == 0
    assert intent.node_address == ZERO_ADDRESS
    assert intent.delegate == TEST_DELEGATE
    assert intent.id == packed_id(TEST_ADDRESS, 5, NOW + 3600)


def test_create_intent_fixed_deadline():
    builder = IntentBuilder(deadline_policy="fixed", clock=fixed_clock)
    intent = builder.create_intent(TEST_TARGET, 0, 0, TEST_ADDRESS)
    assert intent.deadline == FIXED_DEADLINE


def test_invalid_deadline_policy():
    with pytest.raises(ValueError, match="deadline policy"):
        IntentBuilder(deadline_policy="sometimes")


def test_create_intent_normalises_numeric_strings(builder):
    intent = builder.create_intent(TEST_TARGET, "0x10", "3", TEST_ADDRESS)
    assert intent.value == 16
    assert intent.nonce == 3


def test_create_intent_rejects_stale_nonce(builder):
    with pytest.raises(InvalidNonceError) as excinfo:
        builder.create_intent(TEST_TARGET, 0, 4, TEST_ADDRESS, current_nonce=5)

    assert excinfo.value.supplied == 4
    assert excinfo.value.current == 5


def test_create_intent_accepts_matching_nonce(builder):
    intent = builder.create_intent(TEST_TARGET, 0, 5, TEST_ADDRESS, current_nonce=5)
    assert intent.nonce == 5


@pytest.mark.parametrize("sender,target", [
    (None, TEST_TARGET),
    (TEST_ADDRESS, None),
    ("0x1234", TEST_TARGET),
    (TEST_ADDRESS, "not-an-address"),
])
def test_create_intent_requires_addresses(builder, sender, target):
    with pytest.raises(MissingAddressError):
        builder.create_intent(target, 0, 0, sender)


@pytest.mark.parametrize("value,nonce", [(-1, 0), (1.5, 0), (0, -3), (0, "abc")])
def test_create_intent_rejects_invalid_numbers(builder, value, nonce):
    with pytest.raises(ValidationError):
        builder.create_intent(TEST_TARGET, value, nonce, TEST_ADDRESS)


def test_create_intent_rejects_past_deadline():
    builder = IntentBuilder(deadline_policy="fixed", clock=lambda: FIXED_DEADLINE + 1)
    with pytest.raises(ValidationError, match="not in the future"):
        builder.create_intent(TEST_TARGET, 0, 0, TEST_ADDRESS)


def test_create_intent_target_function_selector(builder):
    intent = builder.create_intent(TEST_TARGET, 0, 0, TEST_ADDRESS, target_function="0xA9059CBB")
    assert intent.target_function == "0xa9059cbb"

    with pytest.raises(ValidationError, match="4-byte selector"):
        builder.create_intent(TEST_TARGET, 0, 0, TEST_ADDRESS, target_function="0xa905")


def test_intent_is_immutable(builder):
    intent = builder.create_intent(TEST_TARGET, 0, 0, TEST_ADDRESS)
    with pytest.raises(ValueError):
        intent.nonce = 99


def test_intent_signing_hash_matches_tight_packing(builder):
    intent = builder.create_intent(TEST_TARGET, 10, 2, TEST_ADDRESS)
    expected = keccak(
        bytes.fromhex(intent.target[2:])
        + (10).to_bytes(32, "big")
        + bytes.fromhex(intent.id[2:])
        + bytes.fromhex(ZERO_ADDRESS[2:])
        + bytes.fromhex(TEST_DELEGATE[2:])
        + (2).to_bytes(32, "big")
        + intent.deadline.to_bytes(32, "big")
    )
    assert intent_signing_hash(intent) == "0x" + expected.hex()


def test_intent_id_and_hash_stable_across_signing(builder, signer):
    intent = builder.create_intent(TEST_TARGET, 0, 1, TEST_ADDRESS)
    before = (intent.id, intent_signing_hash(intent))

    signer.sign_message(intent_signing_hash(intent))

    assert (intent.id, intent_signing_hash(intent)) == before
    assert intent.id == derive_intent_id(TEST_ADDRESS, 1, intent.deadline)


def test_as_struct_field_order(builder):
    intent = builder.create_intent(TEST_TARGET, 10, 2, TEST_ADDRESS)
    target, value, intent_id, node_address, delegate, nonce, deadline = intent.as_struct()

    assert target == TEST_TARGET
    assert value == 10
    assert intent_id == bytes.fromhex(intent.id[2:])
    assert node_address == ZERO_ADDRESS
    assert delegate == TEST_DELEGATE
    assert (nonce, deadline) == (2, intent.deadline)


def test_nonce_source_reads_fresh_value_each_call():
    w3 = MagicMock()
    nonces_call = w3.eth.contract.return_value.functions.nonces.return_value.call
    nonces_call.side_effect = [7, 8]

    source = IntentNonceSource(w3)
    assert source.fresh_nonce(TEST_TARGET, TEST_ADDRESS.lower()) == 7
    assert source.fresh_nonce(TEST_TARGET, TEST_ADDRESS) == 8

    assert w3.eth.contract.call_args.kwargs["address"] == TEST_TARGET
    w3.eth.contract.return_value.functions.nonces.assert_called_with(TEST_ADDRESS)

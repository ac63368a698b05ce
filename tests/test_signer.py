"""
Tests for the private-key signer.
"""
import pytest
from eth_account import Account
from eth_account.messages import encode_defunct
from eth_utils import keccak

from krnl_sdk.codec import authorization_hash
from krnl_sdk.models import AuthorizationTuple
from krnl_sdk.signer import LocalSigner
from tests.test_helpers import TEST_ADDRESS, TEST_CHAIN_ID, TEST_DELEGATED_ACCOUNT, TEST_PRIV_KEY

MESSAGE_HASH = "0x" + keccak(text="intent").hex()


def test_address_matches_key(signer):
    assert signer.address == TEST_ADDRESS
    assert TEST_ADDRESS in repr(signer)
    assert TEST_PRIV_KEY[2:] not in repr(signer)


def test_sign_message_uses_personal_sign_prefix(signer):
    signature = signer.sign_message(MESSAGE_HASH)

    assert len(bytes.fromhex(signature[2:])) == 65
    recovered = Account.recover_message(
        encode_defunct(primitive=bytes.fromhex(MESSAGE_HASH[2:])),
        signature=signature
    )
    assert recovered == TEST_ADDRESS


def test_sign_hash_signs_raw_digest(signer):
    signature = signer.sign_hash(MESSAGE_HASH)
    recovered = Account._recover_hash(bytes.fromhex(MESSAGE_HASH[2:]), signature=bytes.fromhex(signature[2:]))
    assert recovered == TEST_ADDRESS
    assert signature != signer.sign_message(MESSAGE_HASH)


def test_sign_hash_requires_32_bytes(signer):
    with pytest.raises(ValueError, match="32-byte"):
        signer.sign_hash("0x1234")


def test_sign_authorization(signer):
    output = signer.sign_authorization(TEST_CHAIN_ID, TEST_DELEGATED_ACCOUNT.lower(), 8)

    assert output["chainId"] == TEST_CHAIN_ID
    assert output["address"] == TEST_DELEGATED_ACCOUNT
    assert output["nonce"] == 8
    assert output["v"] in (27, 28)

    signature = (
        output["r"].to_bytes(32, "big") + output["s"].to_bytes(32, "big") + bytes([output["v"]])
    )
    digest = authorization_hash(TEST_CHAIN_ID, TEST_DELEGATED_ACCOUNT, 8)
    assert Account._recover_hash(digest, signature=signature) == TEST_ADDRESS


def test_authorization_output_normalises_to_tuple(signer):
    output = signer.sign_authorization(TEST_CHAIN_ID, TEST_DELEGATED_ACCOUNT, 8)
    auth = AuthorizationTuple.from_signer_output(output, TEST_CHAIN_ID, TEST_DELEGATED_ACCOUNT, 8).with_parity()

    assert auth.nonce == 8
    assert auth.v in (0, 1)
    assert int(auth.r, 16) == output["r"]
    assert len(auth.r) == 66


def test_distinct_keys_give_distinct_addresses():
    other = LocalSigner("0x" + "22" * 32)
    assert other.address != TEST_ADDRESS

"""
Utility functions for creating test clients with consistent defaults.
"""
from typing import Optional
from unittest.mock import MagicMock

from eth_account import Account

from krnl_sdk.client import KrnlClient

# Test constants used throughout tests
TEST_RPC_URL = "https://rpc.example.com"
TEST_NODE_URL = "https://node.example.com/"
TEST_PRIV_KEY = "0x0123456789abcdef0123456789abcdef0123456789abcdef0123456789abcdef"
TEST_CHAIN_ID = 31337
TEST_DELEGATED_ACCOUNT = "0x1234567890123456789012345678901234567890"
TEST_TARGET = "0x2345678901234567890123456789012345678901"
TEST_DELEGATE = "0x3456789012345678901234567890123456789012"
TEST_ADDRESS = Account.from_key(TEST_PRIV_KEY).address


def delegation_code(contract_address: str) -> bytes:
    """Code of an account delegated to ``contract_address`` (EIP-7702 designator)."""
    return bytes.fromhex("ef0100") + bytes.fromhex(contract_address[2:])


def create_test_client(
    w3: Optional[MagicMock] = None,
    rpc_url: str = TEST_RPC_URL,
    node_url: str = TEST_NODE_URL,
    priv_key: Optional[str] = TEST_PRIV_KEY,
    signer=None,
    **kwargs
) -> KrnlClient:
    """
    Create a client backed by a mocked Web3 instance.

    Polling intervals default to zero so confirmation tests run instantly.
    """
    kwargs.setdefault("chain_id", TEST_CHAIN_ID)
    kwargs.setdefault("poll_interval", 0)
    kwargs.setdefault("delegate_owner", TEST_DELEGATE)
    return KrnlClient(
        rpc_url=rpc_url,
        delegated_account_address=TEST_DELEGATED_ACCOUNT,
        node_url=node_url,
        priv_key=priv_key,
        signer=signer,
        w3=w3 if w3 is not None else MagicMock(),
        **kwargs
    )

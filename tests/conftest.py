"""
Pytest fixtures for the KRNL delegate SDK tests.
"""
import pytest
from unittest.mock import MagicMock

from krnl_sdk._rate_limited_log import reset_rate_limit_cache
from krnl_sdk.signer.local import LocalSigner
from tests.test_helpers import TEST_CHAIN_ID, TEST_PRIV_KEY


@pytest.fixture(autouse=True)
def _isolate_environment(monkeypatch):
    """Keep developer settings out of the tests."""
    for name in ("KRNL_INSECURE_HTTP", "KRNL_RPC_URL", "KRNL_NODE_URL", "KRNL_CHAIN_ID",
                 "KRNL_DELEGATED_ACCOUNT_ADDRESS", "KRNL_DELEGATE_OWNER",
                 "KRNL_NODE_ADDRESS", "KRNL_TIMEOUT"):
        monkeypatch.delenv(name, raising=False)
    reset_rate_limit_cache()


@pytest.fixture
def signer():
    return LocalSigner(TEST_PRIV_KEY)


@pytest.fixture
def mock_w3():
    w3 = MagicMock()
    w3.eth.chain_id = TEST_CHAIN_ID
    w3.eth.block_number = 100
    return w3

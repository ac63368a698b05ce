"""
Configuration for the KRNL delegate SDK.

Explicit arguments always win; environment variables fill in what is not
given:

    KRNL_RPC_URL                     chain RPC endpoint
    KRNL_NODE_URL                    execution node endpoint
    KRNL_CHAIN_ID                    chain id
    KRNL_DELEGATED_ACCOUNT_ADDRESS   delegated account implementation
    KRNL_DELEGATE_OWNER              delegate allowed to execute intents
    KRNL_NODE_ADDRESS                execution node address placed in intents
    KRNL_TIMEOUT                     confirmation timeout in seconds
    KRNL_INSECURE_HTTP               set to 1 to allow plain http to remote hosts
"""
import logging
import os
import urllib.parse
from types import SimpleNamespace
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field

from .execution.submitter import DEFAULT_NODE_URL
from .utils import ZERO_ADDRESS

logger = logging.getLogger(__name__)

ENV_PREFIX = "KRNL_"

SEPOLIA_CHAIN_ID = 11155111
LOCALHOST_CHAIN_ID = 31337
LOCALHOST_RPC_URL = "http://127.0.0.1:8545"

_ENV_FIELDS = {
    "rpc_url": "RPC_URL",
    "node_url": "NODE_URL",
    "chain_id": "CHAIN_ID",
    "delegated_account_address": "DELEGATED_ACCOUNT_ADDRESS",
    "delegate_owner": "DELEGATE_OWNER",
    "node_address": "NODE_ADDRESS",
    "timeout": "TIMEOUT",
}


def validate_url(name: str, url: str) -> str:
    """
    Require https unless the host is local or KRNL_INSECURE_HTTP=1.

    Raises:
        ValueError: If the URL is malformed or insecure
    """
    parsed = urllib.parse.urlparse(url or "")
    if not parsed.scheme or not parsed.netloc:
        raise ValueError(f"{name} is not a valid URL: {url!r}")

    host = parsed.hostname or ""
    is_local = host in ("localhost", "127.0.0.1", "::1")
    if parsed.scheme != "https" and not is_local:
        if os.environ.get(f"{ENV_PREFIX}INSECURE_HTTP") != "1":
            raise ValueError(
                f"{name} must use https:// for security (got: {parsed.scheme}://). "
                f"Set {ENV_PREFIX}INSECURE_HTTP=1 to allow HTTP for development."
            )
        logger.warning(f"{name} uses insecure {parsed.scheme}:// to a remote host")
    return url


class ChainConfig(BaseModel):
    """Per-chain deployment settings"""
    chain_id: int = Field(..., alias="chainId")
    contract_address: str = Field(..., alias="contractAddress")
    rpc_url: Optional[str] = Field(None, alias="rpcUrl")

    class Config:
        populate_by_name = True


def _sepolia(contract_address: str, rpc_url: Optional[str] = None) -> ChainConfig:
    return ChainConfig(chain_id=SEPOLIA_CHAIN_ID, contract_address=contract_address, rpc_url=rpc_url)


def _localhost(contract_address: str, rpc_url: str = LOCALHOST_RPC_URL) -> ChainConfig:
    return ChainConfig(chain_id=LOCALHOST_CHAIN_ID, contract_address=contract_address, rpc_url=rpc_url)


# Pre-configured chains, e.g. ``chains.sepolia("0x...")``
chains = SimpleNamespace(sepolia=_sepolia, localhost=_localhost)


class KrnlConfig(BaseModel):
    """Settings for KrnlClient"""
    rpc_url: str = Field(..., alias="rpcUrl")
    delegated_account_address: str = Field(..., alias="contractAddress")
    node_url: str = Field(DEFAULT_NODE_URL, alias="nodeUrl")
    chain_id: Optional[int] = Field(None, alias="chainId")
    delegate_owner: Optional[str] = Field(None, alias="delegateOwner")
    node_address: str = Field(ZERO_ADDRESS, alias="nodeAddress")

    gas_limit: int = Field(50000, alias="gasLimit")
    max_fee_per_gas: int = Field(20_000_000_000, alias="gasFeeCap")
    max_priority_fee_per_gas: int = Field(5_000_000_000, alias="gasTipCap")
    confirmations: int = 1
    max_attempts: int = Field(60, alias="maxAttempts")

    timeout: float = 300
    poll_interval: float = Field(5, alias="pollInterval")
    block_lookback: int = Field(10000, alias="blockLookback")
    deadline_policy: str = Field("window", alias="deadlinePolicy")

    request_timeout: int = Field(60, alias="requestTimeout")
    retry_count: int = Field(3, alias="retryCount")

    class Config:
        populate_by_name = True

    @classmethod
    def from_env(cls, **overrides: Any) -> "KrnlConfig":
        """
        Build a config from KRNL_* environment variables.

        Keyword arguments override the environment.

        Raises:
            ValueError: If a required setting is missing or a value is invalid
        """
        values: Dict[str, Any] = {}
        for field, suffix in _ENV_FIELDS.items():
            raw = os.environ.get(f"{ENV_PREFIX}{suffix}")
            if raw:
                values[field] = raw
        values.update({k: v for k, v in overrides.items() if v is not None})

        missing = [f for f in ("rpc_url", "delegated_account_address") if not values.get(f)]
        if missing:
            names = ", ".join(f"{ENV_PREFIX}{_ENV_FIELDS[f]}" for f in missing)
            raise ValueError(f"Missing required configuration: {names}")

        return cls(**values)


def create_config(
    chain_configs: List[ChainConfig],
    default_chain_id: Optional[int] = None,
    **overrides: Any,
) -> KrnlConfig:
    """
    Select a chain and build a KrnlConfig from it.

    The chain with ``default_chain_id`` is used when present, otherwise the
    first one. Keyword arguments override the chain's values.

    Raises:
        ValueError: If no chains are given or the chosen chain has no RPC URL
    """
    if not chain_configs:
        raise ValueError("At least one chain configuration is required")

    target_chain_id = default_chain_id or chain_configs[0].chain_id
    chain = next((c for c in chain_configs if c.chain_id == target_chain_id), chain_configs[0])
    if default_chain_id and chain.chain_id != default_chain_id:
        logger.warning(f"Chain {default_chain_id} not configured, using {chain.chain_id}")

    values: Dict[str, Any] = {
        "chain_id": chain.chain_id,
        "delegated_account_address": chain.contract_address,
        "rpc_url": chain.rpc_url,
    }
    values.update({k: v for k, v in overrides.items() if v is not None})
    if not values.get("rpc_url"):
        raise ValueError(f"No RPC URL configured for chain {chain.chain_id}")

    return KrnlConfig(**values)

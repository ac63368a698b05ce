"""
Data models for the KRNL delegate SDK.
"""
from enum import Enum, IntEnum
from typing import Any, Dict, Mapping, Optional, Tuple

from pydantic import BaseModel, Field

from .exceptions import MalformedSignatureError, SerializationError
from .utils import ZERO_ADDRESS, normalize_numeric


class TransactionIntent(BaseModel):
    """An off-chain description of a future on-chain action, signed by the user"""
    target: str
    value: int = 0
    nonce: int
    deadline: int
    id: str
    node_address: str = Field(ZERO_ADDRESS, alias="nodeAddress")
    delegate: Optional[str] = None
    target_function: Optional[str] = Field(None, alias="targetFunction")

    class Config:
        populate_by_name = True
        frozen = True

    def as_struct(self) -> Tuple[str, int, bytes, str, str, int, int]:
        """
        Return the intent as the tuple the delegated account contract expects.

        Field order is (target, value, id, nodeAddress, delegate, nonce, deadline)
        and must not change; the account hashes the fields in this order.
        """
        return (
            self.target,
            self.value,
            bytes.fromhex(self.id[2:]),
            self.node_address,
            self.delegate or ZERO_ADDRESS,
            self.nonce,
            self.deadline,
        )


class AuthorizationTuple(BaseModel):
    """Signed EIP-7702 authorization for setting an account's code pointer"""
    chain_id: int = Field(..., alias="chainId")
    contract_address: str = Field(..., alias="contractAddress")
    nonce: int
    r: str
    s: str
    v: int

    class Config:
        populate_by_name = True

    @property
    def y_parity(self) -> int:
        """Recovery id collapsed to {0, 1}"""
        return self.v - 27 if self.v >= 27 else self.v

    def with_parity(self) -> "AuthorizationTuple":
        """Copy of this tuple with ``v`` expressed as y-parity."""
        return self.model_copy(update={"v": self.y_parity})

    @classmethod
    def from_signer_output(
        cls,
        output: Any,
        chain_id: int,
        contract_address: str,
        nonce: int,
    ) -> "AuthorizationTuple":
        """
        Build a tuple from whatever the signer returned.

        Signers return mappings (camelCase or snake_case) or objects with
        attributes; numbers may be ints or hex strings. Fields the signer
        leaves out fall back to the values that were requested.

        Raises:
            MalformedSignatureError: If r, s or the recovery id are missing or invalid
        """
        keys = ("chainId", "chain_id", "contractAddress", "contract_address", "address", "nonce",
                "r", "s", "v", "yParity", "y_parity")
        if isinstance(output, Mapping):
            data = {k: output.get(k) for k in keys}
        else:
            data = {k: getattr(output, k, None) for k in keys}

        def first(*names):
            for name in names:
                if data.get(name) is not None:
                    return data[name]
            return None

        try:
            raw_chain_id = first("chainId", "chain_id")
            raw_nonce = first("nonce")
            raw_v = first("v")
            if raw_v is None:
                raw_parity = first("yParity", "y_parity")
                if raw_parity is None:
                    raise MalformedSignatureError("Authorization signature has neither v nor yParity")
                raw_v = normalize_numeric(raw_parity, "yParity", bits=8)

            if first("r") is None or first("s") is None:
                raise MalformedSignatureError("Authorization signature is missing r or s")

            return cls(
                chain_id=normalize_numeric(raw_chain_id, "chainId") if raw_chain_id is not None else chain_id,
                contract_address=first("contractAddress", "contract_address", "address") or contract_address,
                nonce=normalize_numeric(raw_nonce, "nonce", bits=64) if raw_nonce is not None else nonce,
                r="0x" + format(normalize_numeric(first("r"), "r"), "064x"),
                s="0x" + format(normalize_numeric(first("s"), "s"), "064x"),
                v=normalize_numeric(raw_v, "v", bits=8),
            )
        except SerializationError as e:
            raise MalformedSignatureError(f"Invalid authorization signature: {e}")


class AuthorizationStatus(BaseModel):
    """Delegation state derived from the account's on-chain code"""
    smart_account_enabled: bool = Field(..., alias="smartAccountEnabled")
    is_authorized: bool = Field(..., alias="isAuthorized")
    contract_address: Optional[str] = Field(None, alias="contractAddress")

    class Config:
        populate_by_name = True


class UnsignedTransaction(BaseModel):
    """Unsigned transaction bytes and the hash that must be signed"""
    unsigned_tx: str = Field(..., alias="unsignedTx")
    sign_hash: str = Field(..., alias="signHash")

    class Config:
        populate_by_name = True


class SignedTransaction(BaseModel):
    """Broadcastable transaction and its hash"""
    signed_tx: str = Field(..., alias="signedTx")
    tx_hash: str = Field(..., alias="txHash")

    class Config:
        populate_by_name = True


class AuthorizationResult(BaseModel):
    """
    Outcome of enabling delegation.

    ``transaction_hash`` and ``block_number`` are None when the account was
    already delegated and no transaction was sent.
    """
    transaction_hash: Optional[str] = Field(None, alias="transactionHash")
    block_number: Optional[int] = Field(None, alias="blockNumber")
    status: AuthorizationStatus

    class Config:
        populate_by_name = True


class SignatureValidation(BaseModel):
    """Result of the delegated account's signature check"""
    is_valid: bool = Field(..., alias="isValid")
    recovered_signer: Optional[str] = Field(None, alias="recoveredSigner")

    class Config:
        populate_by_name = True


class SubmissionResult(BaseModel):
    """Execution node response for an accepted workflow"""
    request_id: Optional[int] = Field(None, alias="id")
    jsonrpc: str = "2.0"
    result: Any = None
    accepted: bool = True
    reason: Optional[str] = None

    class Config:
        populate_by_name = True


class ConfirmationResult(BaseModel):
    """On-chain evidence that an intent was executed"""
    transaction_hash: str = Field(..., alias="transactionHash")
    block_number: int = Field(..., alias="blockNumber")
    event_args: Dict[str, Any] = Field(default_factory=dict, alias="eventArgs")
    log_index: Optional[int] = Field(None, alias="logIndex")

    class Config:
        populate_by_name = True


class AuthorizationState(str, Enum):
    """States of the delegation-enabling flow."""
    UNCHECKED = "unchecked"
    CHECKING = "checking"
    ENABLED = "enabled"
    NOT_ENABLED = "not_enabled"
    ENABLING = "enabling"
    AWAITING_CONFIRMATION = "awaiting_confirmation"
    CONFIRMED = "confirmed"
    FAILED = "failed"
    REJECTED = "rejected"


class ExecutionState(str, Enum):
    """Observable states of a single intent execution."""
    PREPARED = "prepared"
    SIGNED = "signed"
    VALIDATED = "validated"
    SUBMITTED = "submitted"
    CONFIRMED = "confirmed"
    TIMED_OUT = "timed_out"
    FAILED = "failed"


class WorkflowStatus(IntEnum):
    """Status codes reported by the execution node's krnl_workflowStatus."""
    PENDING = 0
    PROCESSING = 1
    SUCCESS = 2
    FAILED = 3
    INTENT_NOT_FOUND = 4
    WORKFLOW_NOT_FOUND = 5
    INVALID = 6

    @property
    def is_terminal(self) -> bool:
        return self not in (WorkflowStatus.PENDING, WorkflowStatus.PROCESSING)


class ExecutionOutcome(BaseModel):
    """Progress record for one intent, updated as each stage completes"""
    state: ExecutionState
    intent: TransactionIntent
    signature: Optional[str] = None
    submission: Optional[SubmissionResult] = None
    confirmation: Optional[ConfirmationResult] = None
    error: Optional[str] = None


class WorkflowStatusReport(BaseModel):
    """Execution node's view of a submitted workflow"""
    code: WorkflowStatus
    result: Any = None

    class Config:
        populate_by_name = True

    @property
    def transaction_hash(self) -> Optional[str]:
        """Hash of the executing transaction, reported once the workflow succeeds"""
        if self.code == WorkflowStatus.SUCCESS and isinstance(self.result, str):
            return self.result
        return None

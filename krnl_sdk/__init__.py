"""
KRNL delegate SDK - EIP-7702 delegated accounts and intent execution.
"""
from .auth import AuthorizationManager
from .client import KrnlClient
from .codec import CodecBridge, RlpTransactionCodec, TransactionCodec
from .config import ChainConfig, KrnlConfig, chains, create_config
from .exceptions import (
    BroadcastError,
    CodecError,
    CompileError,
    ConfirmationTimeoutError,
    IntentInFlightError,
    InvalidNonceError,
    KrnlError,
    MalformedSignatureError,
    MissingAddressError,
    OnChainValidationError,
    SerializationError,
    SignatureError,
    SignatureMismatchError,
    SignatureRejectedError,
    SubmissionError,
    TransactionFailedError,
    UnresolvedPlaceholderError,
    ValidationError,
)
from .execution import ConfirmationPoller, ExecutionNodeClient
from .intent import IntentBuilder, derive_intent_id, intent_signing_hash
from .models import (
    AuthorizationResult,
    AuthorizationState,
    AuthorizationStatus,
    AuthorizationTuple,
    ConfirmationResult,
    ExecutionOutcome,
    ExecutionState,
    SubmissionResult,
    TransactionIntent,
    WorkflowStatus,
    WorkflowStatusReport,
)
from .signer import LocalSigner, Signer
from .validation import SignatureValidator
from .version import __version__

__all__ = [
    "KrnlClient",
    "AuthorizationManager",
    "CodecBridge",
    "RlpTransactionCodec",
    "TransactionCodec",
    "ChainConfig",
    "KrnlConfig",
    "chains",
    "create_config",
    "ConfirmationPoller",
    "ExecutionNodeClient",
    "IntentBuilder",
    "derive_intent_id",
    "intent_signing_hash",
    "LocalSigner",
    "Signer",
    "SignatureValidator",
    "AuthorizationResult",
    "AuthorizationState",
    "AuthorizationStatus",
    "AuthorizationTuple",
    "ConfirmationResult",
    "ExecutionOutcome",
    "ExecutionState",
    "SubmissionResult",
    "TransactionIntent",
    "WorkflowStatus",
    "WorkflowStatusReport",
    "KrnlError",
    "ValidationError",
    "InvalidNonceError",
    "MissingAddressError",
    "UnresolvedPlaceholderError",
    "IntentInFlightError",
    "SignatureError",
    "SignatureRejectedError",
    "MalformedSignatureError",
    "CodecError",
    "SerializationError",
    "CompileError",
    "OnChainValidationError",
    "SignatureMismatchError",
    "SubmissionError",
    "BroadcastError",
    "TransactionFailedError",
    "ConfirmationTimeoutError",
    "__version__",
]

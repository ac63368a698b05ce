"""
Exceptions for the KRNL delegate SDK.

Every stage of the intent and delegation flows raises a distinct error type so
callers can tell a declined signature from a mismatched one, a rejected
submission from a confirmation that simply has not been observed yet.
"""
from typing import Any, Optional


class KrnlError(Exception):
    """Base exception for all SDK errors."""
    pass


# ─── validation (raised before any network call) ────────────────────────────

class ValidationError(KrnlError):
    """Raised when intent fields or workflow documents are invalid or stale."""
    pass


class InvalidNonceError(ValidationError):
    """Raised when the supplied nonce differs from the on-chain nonce."""

    def __init__(self, message: str, supplied: Optional[int] = None, current: Optional[int] = None):
        self.supplied = supplied
        self.current = current
        super().__init__(message)


class MissingAddressError(ValidationError):
    """Raised when a required address is absent or malformed."""
    pass


class UnresolvedPlaceholderError(ValidationError):
    """Raised when a workflow still contains {{...}} tokens before submission."""

    def __init__(self, message: str, placeholders: Optional[list] = None):
        self.placeholders = placeholders or []
        super().__init__(message)


class IntentInFlightError(ValidationError):
    """Raised when another intent for the same sender is still in flight."""
    pass


# ─── signatures ─────────────────────────────────────────────────────────────

class SignatureError(KrnlError):
    """Raised when a signature could not be obtained or is malformed."""
    pass


class SignatureRejectedError(SignatureError):
    """Raised when the external signer declines a signing request."""
    pass


class MalformedSignatureError(SignatureError):
    """Raised when signer output cannot be interpreted as a signature."""
    pass


# ─── codec ──────────────────────────────────────────────────────────────────

class CodecError(KrnlError):
    """Base exception for transaction codec failures."""
    pass


class SerializationError(CodecError):
    """Raised when transaction fields cannot be losslessly encoded."""
    pass


class CompileError(CodecError):
    """Raised when an unsigned transaction cannot be combined with a signature."""
    pass


# ─── on-chain validation ────────────────────────────────────────────────────

class OnChainValidationError(KrnlError):
    """Raised when the delegated account's signature check fails or errors."""
    pass


class SignatureMismatchError(OnChainValidationError):
    """Raised when the account contract recovers a different signer."""

    def __init__(self, recovered_signer: Optional[str], expected_signer: str):
        self.recovered_signer = recovered_signer
        self.expected_signer = expected_signer
        super().__init__(
            f"Signature validation failed: recovered {recovered_signer}, expected {expected_signer}"
        )


# ─── submission and broadcast ───────────────────────────────────────────────

class SubmissionError(KrnlError):
    """Raised when the execution node rejects a workflow or is unreachable."""

    def __init__(self, message: str, code: Optional[int] = None, data: Any = None):
        self.code = code
        self.data = data
        super().__init__(message)


class BroadcastError(KrnlError):
    """Raised when the chain RPC refuses a raw transaction."""

    def __init__(self, message: str, provider_message: Optional[str] = None):
        self.provider_message = provider_message
        super().__init__(message)


class TransactionFailedError(KrnlError):
    """Raised when a mined transaction reports a failed status."""

    def __init__(self, message: str, transaction_hash: Optional[str] = None):
        self.transaction_hash = transaction_hash
        super().__init__(message)


# ─── confirmation ───────────────────────────────────────────────────────────

class ConfirmationTimeoutError(KrnlError):
    """
    Raised when polling ends without observing the expected on-chain effect.

    This is not a failure of the transaction itself: the action may still
    complete after local observation has stopped.
    """

    def __init__(
        self,
        message: str,
        transaction_hash: Optional[str] = None,
        intent_id: Optional[str] = None,
        cancelled: bool = False,
    ):
        self.transaction_hash = transaction_hash
        self.intent_id = intent_id
        self.cancelled = cancelled
        super().__init__(message)

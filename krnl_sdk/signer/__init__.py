"""
Signer capability used by the authorization and intent flows.

A signer never exposes its key. Implementations that wrap a wallet or an
embedded-account provider should raise ``SignatureRejectedError`` when the
user declines a request; any other exception is treated as a signing failure.
"""
from typing import Any, Protocol

from .local import LocalSigner


class Signer(Protocol):
    """Protocol for custom signers"""
    address: str

    def sign_authorization(self, chain_id: int, contract_address: str, nonce: int) -> Any:
        """Sign an EIP-7702 authorization; return a mapping or object with r, s and v/yParity"""
        ...

    def sign_hash(self, message_hash: str) -> Any:
        """Sign a raw 32-byte hash with no prefix; return hex, bytes or {r, s, v}"""
        ...

    def sign_message(self, message_hash: str) -> Any:
        """Sign a 32-byte hash with the EIP-191 personal_sign prefix"""
        ...


__all__ = ["Signer", "LocalSigner"]

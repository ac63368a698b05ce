"""
On-chain signature validation against the user's delegated account.

The account contract is the authority on what a valid intent signature is,
so validation is an ``eth_call`` to the account itself rather than a local
ecrecover.
"""
import logging
from typing import Any, Optional

from web3 import Web3

from .exceptions import OnChainValidationError, SignatureMismatchError
from .models import SignatureValidation, TransactionIntent
from .utils import RPC_ERRORS, ZERO_ADDRESS, normalize_address, signature_to_bytes

TRANSACTION_INTENT_COMPONENTS = [
    {"internalType": "address", "name": "target", "type": "address"},
    {"internalType": "uint256", "name": "value", "type": "uint256"},
    {"internalType": "bytes32", "name": "id", "type": "bytes32"},
    {"internalType": "address", "name": "nodeAddress", "type": "address"},
    {"internalType": "address", "name": "delegate", "type": "address"},
    {"internalType": "uint256", "name": "nonce", "type": "uint256"},
    {"internalType": "uint256", "name": "deadline", "type": "uint256"},
]

DELEGATED_ACCOUNT_ABI = [
    {
        "inputs": [
            {
                "components": TRANSACTION_INTENT_COMPONENTS,
                "internalType": "struct TransactionIntent",
                "name": "intent",
                "type": "tuple"
            },
            {"internalType": "bytes", "name": "signature", "type": "bytes"}
        ],
        "name": "validateIntentSignature",
        "outputs": [
            {"internalType": "bool", "name": "isValid", "type": "bool"},
            {"internalType": "address", "name": "signer", "type": "address"}
        ],
        "stateMutability": "view",
        "type": "function"
    }
]


class SignatureValidator:
    """Validates intent signatures through the delegated account's ``validateIntentSignature``."""

    def __init__(self, w3: Web3, logger: Optional[logging.Logger] = None):
        self.w3 = w3
        self.logger = logger or logging.getLogger(__name__)

    def validate(self, intent: TransactionIntent, signature: Any, account_address: str) -> SignatureValidation:
        """
        Ask the account whether ``signature`` is a valid signature of ``intent``.

        Args:
            intent: The intent that was signed
            signature: Signature as hex, bytes or an {r, s, v} mapping
            account_address: Delegated account to validate against

        Returns:
            SignatureValidation with the account's verdict and recovered signer

        Raises:
            MalformedSignatureError: If the signature cannot be decoded
            OnChainValidationError: If the call itself fails
        """
        account = normalize_address(account_address, "account_address")
        signature_bytes = signature_to_bytes(signature)
        contract = self.w3.eth.contract(address=account, abi=DELEGATED_ACCOUNT_ABI)

        try:
            result = contract.functions.validateIntentSignature(intent.as_struct(), signature_bytes).call()
        except RPC_ERRORS as e:
            raise OnChainValidationError(
                f"validateIntentSignature call on {account} failed: {e}"
            ) from e

        if isinstance(result, (list, tuple)):
            is_valid = bool(result[0])
            recovered = result[1] if len(result) > 1 else None
        else:
            is_valid, recovered = bool(result), None

        if recovered == ZERO_ADDRESS:
            recovered = None
        elif recovered is not None:
            recovered = Web3.to_checksum_address(recovered)

        self.logger.debug(f"Intent {intent.id} on {account}: valid={is_valid}, signer={recovered}")
        return SignatureValidation(is_valid=is_valid, recovered_signer=recovered)

    def require_valid(
        self,
        intent: TransactionIntent,
        signature: Any,
        account_address: str,
        expected_signer: Optional[str] = None,
    ) -> SignatureValidation:
        """
        Validate and raise unless the account accepts the signature.

        The expected signer defaults to the account itself (an EIP-7702
        account signs with its own key).

        Raises:
            SignatureMismatchError: If the account rejects the signature or
                recovers someone other than the expected signer
            OnChainValidationError: If the call itself fails
        """
        expected = normalize_address(expected_signer or account_address, "expected_signer")
        validation = self.validate(intent, signature, account_address)

        if not validation.is_valid:
            raise SignatureMismatchError(validation.recovered_signer, expected)
        if validation.recovered_signer is not None and validation.recovered_signer != expected:
            raise SignatureMismatchError(validation.recovered_signer, expected)
        return validation

"""
AuthorizationManager - enables EIP-7702 delegation for a user's account.

Delegation is enabled by a self-transaction carrying one authorization tuple
that points the account's code at the delegated account contract. Because the
sender's own nonce is consumed by the transaction before the authorization
list is processed, the tuple is signed for ``nonce + 1``.
"""
import logging
from typing import Any, Callable, Dict, Optional

from web3 import Web3
from web3.exceptions import TransactionNotFound

from .._rate_limited_log import rate_limited_log
from ..codec.bridge import CodecBridge
from ..exceptions import (
    BroadcastError,
    KrnlError,
    SignatureError,
    SignatureRejectedError,
    TransactionFailedError,
    ValidationError,
)
from ..models import AuthorizationResult, AuthorizationState, AuthorizationStatus, AuthorizationTuple
from ..polling import PollTask
from ..utils import RPC_ERRORS, ZERO_ADDRESS, normalize_address, strip_0x, to_hex

DEFAULT_GAS = 50000
DEFAULT_MAX_FEE_PER_GAS = 20_000_000_000
DEFAULT_MAX_PRIORITY_FEE_PER_GAS = 5_000_000_000
DEFAULT_POLL_INTERVAL = 5
DEFAULT_MAX_ATTEMPTS = 60
DEFAULT_CONFIRMATIONS = 1


def _provider_message(error: Exception) -> str:
    if error.args and isinstance(error.args[0], dict):
        return str(error.args[0].get("message", error.args[0]))
    return str(error)


class AuthorizationManager:
    """
    Checks and enables delegation of an account to the delegated account contract.

    The manager tracks the last observed AuthorizationState in ``state``. It
    is not safe to run ``enable`` for the same account from two threads.

    Args:
        w3: Connected Web3 instance
        signer: Signer for the account being delegated
        contract_address: Delegated account implementation to point at
        chain_id: Chain id; read from the RPC when omitted
        codec_bridge: Codec bridge used to build and finalize the transaction
        gas: Gas limit for the delegation transaction
        max_fee_per_gas: Fee cap in wei
        max_priority_fee_per_gas: Tip cap in wei
        poll_interval: Seconds between receipt polls
        max_attempts: Maximum receipt polls before giving up
        confirmations: Blocks required on top of the receipt's block
        logger: Optional logger instance
    """

    def __init__(
        self,
        w3: Web3,
        signer: Any,
        contract_address: str,
        chain_id: Optional[int] = None,
        codec_bridge: Optional[CodecBridge] = None,
        gas: int = DEFAULT_GAS,
        max_fee_per_gas: int = DEFAULT_MAX_FEE_PER_GAS,
        max_priority_fee_per_gas: int = DEFAULT_MAX_PRIORITY_FEE_PER_GAS,
        poll_interval: float = DEFAULT_POLL_INTERVAL,
        max_attempts: int = DEFAULT_MAX_ATTEMPTS,
        confirmations: int = DEFAULT_CONFIRMATIONS,
        logger: Optional[logging.Logger] = None,
    ):
        self.w3 = w3
        self.signer = signer
        self.contract_address = normalize_address(contract_address, "contract_address")
        self.chain_id = chain_id
        self.codec_bridge = codec_bridge or CodecBridge()
        self.gas = gas
        self.max_fee_per_gas = max_fee_per_gas
        self.max_priority_fee_per_gas = max_priority_fee_per_gas
        self.poll_interval = poll_interval
        self.max_attempts = max_attempts
        self.confirmations = confirmations
        self.logger = logger or logging.getLogger(__name__)
        self.state = AuthorizationState.UNCHECKED
        self._poll_task: Optional[PollTask] = None

    def _set_state(self, state: AuthorizationState) -> None:
        if state != self.state:
            self.logger.debug(f"Authorization state {self.state.value} -> {state.value}")
        self.state = state

    def _account(self, account: Optional[str]) -> str:
        return normalize_address(account or getattr(self.signer, "address", None), "account")

    def _read_status(self, account: str) -> AuthorizationStatus:
        code = bytes(self.w3.eth.get_code(account))
        enabled = len(code) > 0
        authorized = enabled and bytes.fromhex(strip_0x(self.contract_address)) in code
        return AuthorizationStatus(
            smart_account_enabled=enabled,
            is_authorized=authorized,
            contract_address=self.contract_address if authorized else None,
        )

    def check_status(self, account: Optional[str] = None) -> AuthorizationStatus:
        """
        Read the account's delegation status from its on-chain code.

        Never cached; every call re-reads the code. RPC errors propagate.
        """
        address = self._account(account)
        self._set_state(AuthorizationState.CHECKING)
        try:
            status = self._read_status(address)
        except Exception:
            self._set_state(AuthorizationState.UNCHECKED)
            raise

        self._set_state(
            AuthorizationState.ENABLED if status.is_authorized else AuthorizationState.NOT_ENABLED
        )
        self.logger.debug(
            f"Account {address}: code present={status.smart_account_enabled}, "
            f"authorized={status.is_authorized}"
        )
        return status

    def _sign(self, action: str, func: Callable[[], Any]) -> Any:
        try:
            return func()
        except SignatureRejectedError:
            self._set_state(AuthorizationState.REJECTED)
            self.logger.info(f"Signer declined to {action}")
            raise
        except KrnlError:
            raise
        except Exception as e:
            raise SignatureError(f"Signer failed to {action}: {e}") from e

    def build_authorization(self, chain_id: int, nonce: int) -> AuthorizationTuple:
        """Ask the signer for an authorization tuple and normalise it to y-parity form."""
        raw = self._sign(
            "sign authorization",
            lambda: self.signer.sign_authorization(chain_id, self.contract_address, nonce)
        )
        return AuthorizationTuple.from_signer_output(
            raw, chain_id, self.contract_address, nonce
        ).with_parity()

    def enable(self, account: Optional[str] = None) -> AuthorizationResult:
        """
        Enable delegation for the signer's account and wait for confirmation.

        Returns:
            AuthorizationResult with the transaction hash, block and new status

        Raises:
            ValidationError: If ``account`` is not the signer's account
            SignatureRejectedError: If the signer declines either signature
            SignatureError: If the signer fails or returns malformed output
            SerializationError / CompileError: If the codec rejects the transaction
            BroadcastError: If the RPC refuses the raw transaction
            TransactionFailedError: If the transaction reverts or delegation did not take effect
            ConfirmationTimeoutError: If no confirmation is observed in time
        """
        address = self._account(account)
        signer_address = normalize_address(getattr(self.signer, "address", None), "signer address")
        if address != signer_address:
            raise ValidationError(
                f"Delegation must be signed by the account itself: {address} != signer {signer_address}"
            )

        self._set_state(AuthorizationState.ENABLING)
        try:
            return self._enable(address)
        except SignatureRejectedError:
            self._set_state(AuthorizationState.REJECTED)
            raise
        except Exception:
            self._set_state(AuthorizationState.FAILED)
            raise

    def _enable(self, address: str) -> AuthorizationResult:
        chain_id = self.chain_id if self.chain_id is not None else int(self.w3.eth.chain_id)
        nonce = int(self.w3.eth.get_transaction_count(address))
        self.logger.info(f"Enabling delegation for {address} -> {self.contract_address} (nonce={nonce})")

        authorization = self.build_authorization(chain_id, nonce + 1)

        unsigned = self.codec_bridge.build_unsigned(self.transaction_fields(chain_id, nonce, authorization))
        signature = self._sign("sign delegation transaction", lambda: self.signer.sign_hash(unsigned.sign_hash))
        signed = self.codec_bridge.finalize(unsigned, signature, chain_id)

        tx_hash = self._broadcast(signed.signed_tx)
        if tx_hash != signed.tx_hash:
            self.logger.warning(f"RPC returned hash {tx_hash}, codec computed {signed.tx_hash}")

        self._set_state(AuthorizationState.AWAITING_CONFIRMATION)
        receipt = self.wait_for_confirmation(tx_hash)

        status = self._read_status(address)
        if not status.is_authorized:
            raise TransactionFailedError(
                f"Transaction {tx_hash} confirmed but {address} is not delegated to {self.contract_address}",
                transaction_hash=tx_hash
            )

        self._set_state(AuthorizationState.CONFIRMED)
        self.logger.info(f"Delegation for {address} confirmed in block {receipt['blockNumber']}")
        return AuthorizationResult(
            transaction_hash=tx_hash,
            block_number=int(receipt["blockNumber"]),
            status=status,
        )

    def transaction_fields(self, chain_id: int, nonce: int, authorization: AuthorizationTuple) -> Dict[str, Any]:
        """Fields of the delegation self-transaction."""
        return {
            "chain_id": chain_id,
            "nonce": nonce,
            "to": ZERO_ADDRESS,
            "value": 0,
            "gas": self.gas,
            "max_fee_per_gas": self.max_fee_per_gas,
            "max_priority_fee_per_gas": self.max_priority_fee_per_gas,
            "data": "0x",
            "authorization_list": [authorization],
        }

    def _broadcast(self, signed_tx: str) -> str:
        try:
            tx_hash = self.w3.eth.send_raw_transaction(signed_tx)
        except RPC_ERRORS as e:
            message = _provider_message(e)
            raise BroadcastError(f"Failed to broadcast delegation transaction: {message}", provider_message=message) from e
        tx_hash_hex = to_hex(bytes(tx_hash)) if isinstance(tx_hash, (bytes, bytearray)) else to_hex(tx_hash)
        self.logger.info(f"Delegation transaction sent: {tx_hash_hex}")
        return tx_hash_hex

    def wait_for_confirmation(
        self,
        tx_hash: str,
        max_attempts: Optional[int] = None,
        poll_interval: Optional[float] = None,
    ) -> Dict[str, Any]:
        """
        Poll for the transaction's receipt until it has enough confirmations.

        Returns:
            The transaction receipt

        Raises:
            TransactionFailedError: If the receipt reports a failed status
            ConfirmationTimeoutError: If the attempt budget is exhausted or polling is cancelled
        """
        def check():
            try:
                receipt = self.w3.eth.get_transaction_receipt(tx_hash)
            except TransactionNotFound:
                return None
            except RPC_ERRORS as e:
                rate_limited_log(f"Receipt poll for {tx_hash} failed: {e}", logger_instance=self.logger)
                return None
            if receipt is None:
                return None

            if receipt.get("status") == 0:
                raise TransactionFailedError(f"Transaction {tx_hash} reverted", transaction_hash=tx_hash)

            try:
                head = int(self.w3.eth.block_number)
            except RPC_ERRORS as e:
                rate_limited_log(f"Block number poll failed: {e}", logger_instance=self.logger)
                return None
            if head - int(receipt["blockNumber"]) >= self.confirmations:
                return receipt
            return None

        self._poll_task = PollTask(
            check,
            interval=self.poll_interval if poll_interval is None else poll_interval,
            max_attempts=max_attempts or self.max_attempts,
            description=f"Confirmation of {tx_hash}",
            transaction_hash=tx_hash,
            logger=self.logger,
        )
        try:
            return self._poll_task.run()
        finally:
            self._poll_task = None

    def cancel(self) -> None:
        """Stop waiting for a pending confirmation."""
        task = self._poll_task
        if task is not None:
            task.cancel()

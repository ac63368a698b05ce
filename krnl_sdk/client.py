"""
KrnlClient - Main client for delegated-account intent execution.
"""
import logging
import threading
from contextlib import contextmanager
from pathlib import Path
from typing import Any, Callable, Dict, Iterator, Mapping, Optional, Union

import requests
from web3 import Web3

from .auth.manager import AuthorizationManager
from .codec.bridge import CodecBridge
from .codec.rlp_codec import TransactionCodec
from .config import KrnlConfig, validate_url
from .exceptions import (
    ConfirmationTimeoutError,
    IntentInFlightError,
    KrnlError,
    SignatureError,
    SignatureRejectedError,
)
from .execution.poller import ConfirmationPoller
from .execution.submitter import DEFAULT_NODE_URL, ExecutionNodeClient
from .execution.workflow import intent_replacements, load_workflow_template, render_workflow
from .intent import IntentBuilder, IntentNonceSource, intent_signing_hash
from .models import (
    AuthorizationResult,
    AuthorizationStatus,
    ConfirmationResult,
    ExecutionOutcome,
    ExecutionState,
    TransactionIntent,
)
from .signer import LocalSigner, Signer
from .utils import ZERO_ADDRESS, normalize_address, signature_to_bytes, to_hex
from .validation import SignatureValidator

StateCallback = Callable[[ExecutionState, ExecutionOutcome], None]


class KrnlClient:
    """
    Client for the KRNL delegated-account flow.

    This client handles:
    1. Enabling EIP-7702 delegation for the user's account
    2. Building and signing transaction intents
    3. Validating signatures against the delegated account
    4. Submitting workflows to the execution node and confirming execution

    Intents for the same sender are serialised: a second ``execute_intent``
    for a sender whose previous intent is still in flight fails with
    IntentInFlightError once ``lock_timeout`` expires.
    """

    def __init__(
        self,
        rpc_url: str,
        delegated_account_address: str,
        node_url: str = DEFAULT_NODE_URL,
        priv_key: Optional[str] = None,
        signer: Optional[Signer] = None,
        chain_id: Optional[int] = None,
        delegate_owner: Optional[str] = None,
        node_address: str = ZERO_ADDRESS,
        codec: Optional[TransactionCodec] = None,
        deadline_policy: str = IntentBuilder.DEADLINE_WINDOW,
        gas_limit: int = 50000,
        max_fee_per_gas: int = 20_000_000_000,
        max_priority_fee_per_gas: int = 5_000_000_000,
        confirmations: int = 1,
        max_attempts: int = 60,
        poll_interval: float = 5,
        block_lookback: int = 10000,
        confirmation_timeout: float = 300,
        retry_count: int = 3,
        timeout: int = 60,
        lock_timeout: float = 0,
        w3: Optional[Web3] = None,
        session: Optional[requests.Session] = None,
        logger: Optional[logging.Logger] = None,
    ):
        """
        Initialize the KrnlClient

        Args:
            rpc_url: Chain RPC endpoint URL
            delegated_account_address: Delegated account implementation contract
            node_url: Execution node JSON-RPC endpoint
            priv_key: Private key (optional if signer provided)
            signer: Custom signer object (optional if priv_key provided)
            chain_id: Chain id (read from the RPC when omitted)
            delegate_owner: Delegate placed in intents
            node_address: Execution node address placed in intents
            codec: Transaction codec (defaults to RlpTransactionCodec)
            deadline_policy: "window" (now + 1h) or "fixed"
            gas_limit: Gas limit for the delegation transaction
            max_fee_per_gas: Fee cap for the delegation transaction
            max_priority_fee_per_gas: Tip cap for the delegation transaction
            confirmations: Blocks required on top of the delegation receipt
            max_attempts: Maximum receipt polls for the delegation transaction
            poll_interval: Seconds between confirmation polls
            block_lookback: Blocks scanned per event poll
            confirmation_timeout: Default seconds to wait for intent execution
            retry_count: Number of HTTP retries for the execution node
            timeout: Timeout for HTTP requests in seconds
            lock_timeout: Seconds to wait for a sender's previous intent to finish
            w3: Pre-configured Web3 instance (rpc_url is still validated)
            session: Pre-configured requests session for the execution node
            logger: Optional logger instance to use for debug/info logging

        Raises:
            ValueError: If neither priv_key nor signer is provided
            ValueError: If the URLs don't use https (unless they're localhost/127.0.0.1)
        """
        if not priv_key and not signer:
            raise ValueError("Either priv_key or signer must be provided")

        for url_name, url in [("rpc_url", rpc_url), ("node_url", node_url)]:
            validate_url(url_name, url)

        self.rpc_url = rpc_url
        self.node_url = node_url
        self.logger = logger or logging.getLogger(__name__)
        self.delegated_account_address = normalize_address(delegated_account_address, "delegated_account_address")
        self.chain_id = chain_id
        self.confirmation_timeout = confirmation_timeout
        self.lock_timeout = lock_timeout

        self.w3 = w3 or Web3(Web3.HTTPProvider(rpc_url, request_kwargs={"timeout": timeout}))
        self.signer = signer or LocalSigner(priv_key)

        self.codec_bridge = CodecBridge(codec, logger=self.logger)
        self.auth_manager = AuthorizationManager(
            self.w3,
            self.signer,
            self.delegated_account_address,
            chain_id=chain_id,
            codec_bridge=self.codec_bridge,
            gas=gas_limit,
            max_fee_per_gas=max_fee_per_gas,
            max_priority_fee_per_gas=max_priority_fee_per_gas,
            poll_interval=poll_interval,
            max_attempts=max_attempts,
            confirmations=confirmations,
            logger=self.logger,
        )
        self.intent_builder = IntentBuilder(
            deadline_policy=deadline_policy,
            node_address=node_address,
            delegate=delegate_owner,
        )
        self.nonce_source = IntentNonceSource(self.w3)
        self.validator = SignatureValidator(self.w3, logger=self.logger)
        self.node_client = ExecutionNodeClient(
            node_url,
            retry_count=retry_count,
            timeout=timeout,
            session=session,
            logger=self.logger,
        )
        self.poller = ConfirmationPoller(
            self.w3,
            poll_interval=poll_interval,
            block_lookback=block_lookback,
            logger=self.logger,
        )

        self._sender_locks: Dict[str, threading.Lock] = {}
        self._sender_locks_guard = threading.RLock()

    @classmethod
    def from_config(
        cls,
        config: KrnlConfig,
        priv_key: Optional[str] = None,
        signer: Optional[Signer] = None,
        **kwargs: Any,
    ) -> "KrnlClient":
        """Create a client from a KrnlConfig; keyword arguments override it."""
        params = dict(
            rpc_url=config.rpc_url,
            delegated_account_address=config.delegated_account_address,
            node_url=config.node_url,
            chain_id=config.chain_id,
            delegate_owner=config.delegate_owner,
            node_address=config.node_address,
            deadline_policy=config.deadline_policy,
            gas_limit=config.gas_limit,
            max_fee_per_gas=config.max_fee_per_gas,
            max_priority_fee_per_gas=config.max_priority_fee_per_gas,
            confirmations=config.confirmations,
            max_attempts=config.max_attempts,
            poll_interval=config.poll_interval,
            block_lookback=config.block_lookback,
            confirmation_timeout=config.timeout,
            retry_count=config.retry_count,
            timeout=config.request_timeout,
        )
        params.update(kwargs)
        return cls(priv_key=priv_key, signer=signer, **params)

    @property
    def address(self) -> str:
        """
        Get the signer's account address

        Returns:
            Checksummed Ethereum address
        """
        return normalize_address(getattr(self.signer, "address", None), "signer address")

    # ─── delegation ─────────────────────────────────────────────────────────

    def check_authorization(self, account: Optional[str] = None) -> AuthorizationStatus:
        """Read the account's delegation status (defaults to the signer's account)."""
        return self.auth_manager.check_status(account or self.address)

    def enable_smart_account(self, account: Optional[str] = None) -> AuthorizationResult:
        """
        Enable delegation for the signer's account.

        Already-delegated accounts are returned as-is without sending a
        transaction.
        """
        address = account or self.address
        status = self.auth_manager.check_status(address)
        if status.is_authorized:
            self.logger.info(f"{address} is already delegated to {self.delegated_account_address}")
            return AuthorizationResult(status=status)
        return self.auth_manager.enable(address)

    # ─── intents ────────────────────────────────────────────────────────────

    def prepare_intent(
        self,
        target: str,
        value: Any = 0,
        target_function: Optional[str] = None,
        nonce: Optional[int] = None,
    ) -> TransactionIntent:
        """
        Build an intent for the signer's account using a freshly read nonce.

        Args:
            target: Contract the intent will call
            value: Wei value attached to the call
            target_function: Optional 4-byte selector
            nonce: Nonce the caller expects; must match the on-chain nonce if given

        Raises:
            InvalidNonceError: If ``nonce`` is stale
        """
        sender = self.address
        current = self.nonce_source.fresh_nonce(target, sender)
        return self.intent_builder.create_intent(
            target=target,
            value=value,
            sender_nonce=current if nonce is None else nonce,
            sender_address=sender,
            current_nonce=current,
            target_function=target_function,
        )

    def sign_intent(self, intent: TransactionIntent) -> str:
        """
        Sign the intent's hash with EIP-191 personal_sign.

        Returns:
            0x-prefixed 65-byte signature

        Raises:
            SignatureRejectedError: If the signer declines
            SignatureError: If the signer fails or returns malformed output
        """
        intent_hash = intent_signing_hash(intent)
        try:
            raw = self.signer.sign_message(intent_hash)
        except SignatureRejectedError:
            self.logger.info(f"Signer declined intent {intent.id}")
            raise
        except KrnlError:
            raise
        except Exception as e:
            raise SignatureError(f"Signer failed to sign intent {intent.id}: {e}") from e
        return to_hex(signature_to_bytes(raw))

    @contextmanager
    def _sender_slot(self, sender: str) -> Iterator[None]:
        with self._sender_locks_guard:
            lock = self._sender_locks.setdefault(sender, threading.Lock())

        if self.lock_timeout > 0:
            acquired = lock.acquire(timeout=self.lock_timeout)
        else:
            acquired = lock.acquire(blocking=False)
        if not acquired:
            raise IntentInFlightError(f"Another intent for {sender} is still in flight")
        try:
            yield
        finally:
            lock.release()

    def execute_intent(
        self,
        target: str,
        workflow_template: Union[Mapping[str, Any], str, Path],
        value: Any = 0,
        target_function: Optional[str] = None,
        nonce: Optional[int] = None,
        overrides: Optional[Mapping[str, Any]] = None,
        extra_replacements: Optional[Mapping[str, Any]] = None,
        wait_for_confirmation: bool = True,
        event_account: Optional[str] = None,
        timeout: Optional[float] = None,
        on_state: Optional[StateCallback] = None,
    ) -> ExecutionOutcome:
        """
        Run the full intent flow: nonce, build, sign, validate, submit, confirm.

        Args:
            target: Contract the intent will call
            workflow_template: Workflow document or path to a JSON template
            value: Wei value attached to the call
            target_function: Optional 4-byte selector
            nonce: Expected nonce; checked against the fresh on-chain value
            overrides: Dotted-key subtree replacements applied before substitution
            extra_replacements: Additional {{PLACEHOLDER}} values
            wait_for_confirmation: Whether to poll for the execution event
            event_account: Contract emitting the execution event (defaults to target)
            timeout: Seconds to wait for confirmation (defaults to confirmation_timeout)
            on_state: Called with each ExecutionState as it is reached

        Returns:
            ExecutionOutcome; state is CONFIRMED, SUBMITTED (not waiting) or
            TIMED_OUT (submitted, execution not observed within the timeout)

        Raises:
            ValidationError, SignatureError, OnChainValidationError, SubmissionError:
                The failing stage's error; later stages are not attempted
        """
        if not isinstance(workflow_template, Mapping):
            workflow_template = load_workflow_template(workflow_template)

        sender = self.address
        with self._sender_slot(sender):
            intent = self.prepare_intent(target, value, target_function=target_function, nonce=nonce)
            outcome = ExecutionOutcome(state=ExecutionState.PREPARED, intent=intent)

            def advance(state: ExecutionState) -> None:
                outcome.state = state
                self.logger.debug(f"Intent {intent.id}: {state.value}")
                if on_state:
                    on_state(state, outcome)

            advance(ExecutionState.PREPARED)
            try:
                outcome.signature = self.sign_intent(intent)
                advance(ExecutionState.SIGNED)

                self.validator.require_valid(intent, outcome.signature, sender)
                advance(ExecutionState.VALIDATED)

                replacements = intent_replacements(
                    intent, sender, outcome.signature, extra=extra_replacements
                )
                workflow = render_workflow(workflow_template, replacements, overrides)
                outcome.submission = self.node_client.submit(workflow)
                advance(ExecutionState.SUBMITTED)
            except KrnlError as e:
                outcome.error = str(e)
                advance(ExecutionState.FAILED)
                raise

            if not wait_for_confirmation:
                return outcome

            try:
                outcome.confirmation = self.await_confirmation(
                    intent.id, event_account or intent.target, timeout
                )
            except ConfirmationTimeoutError as e:
                # Submitted but not observed; the execution may still land
                outcome.error = str(e)
                advance(ExecutionState.TIMED_OUT)
                return outcome

            advance(ExecutionState.CONFIRMED)
            return outcome

    def await_confirmation(
        self,
        intent_id: str,
        deployed_account: str,
        timeout: Optional[float] = None,
    ) -> ConfirmationResult:
        """Poll for the intent's execution event on ``deployed_account``."""
        return self.poller.await_confirmation(
            intent_id,
            deployed_account,
            self.confirmation_timeout if timeout is None else timeout,
        )

    def close(self) -> None:
        """Close the execution node HTTP session."""
        self.node_client.session.close()

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()

"""
Transaction intent construction.

An intent's ``id`` is ``keccak256(abi.encodePacked(sender, nonce, deadline))``
and the hash the user signs packs the full intent in the order the delegated
account contract uses. Both encodings are tight (non-padded) and must stay in
lock-step with the deployed account contract.
"""
import logging
import time
from typing import Any, Callable, Optional

from web3 import Web3

from .exceptions import InvalidNonceError, SerializationError, ValidationError
from .models import TransactionIntent
from .utils import ZERO_ADDRESS, hex_to_bytes, normalize_address, normalize_numeric, to_hex

logger = logging.getLogger(__name__)

# Packed field layouts, in order
INTENT_ID_TYPES = ["address", "uint256", "uint256"]
INTENT_HASH_TYPES = ["address", "uint256", "bytes32", "address", "address", "uint256", "uint256"]

DEFAULT_DEADLINE_WINDOW = 3600
FIXED_DEADLINE = 99999999999

NONCES_ABI = [
    {
        "inputs": [{"internalType": "address", "name": "", "type": "address"}],
        "name": "nonces",
        "outputs": [{"internalType": "uint256", "name": "", "type": "uint256"}],
        "stateMutability": "view",
        "type": "function"
    }
]


def derive_intent_id(sender: str, nonce: int, deadline: int) -> str:
    """
    Derive the deterministic intent identifier.

    Args:
        sender: Address of the account the intent acts for
        nonce: Intent nonce from the target contract
        deadline: Unix timestamp after which the intent is void

    Returns:
        0x-prefixed bytes32 hex string
    """
    packed_hash = Web3.solidity_keccak(
        INTENT_ID_TYPES,
        [normalize_address(sender, "sender"), nonce, deadline]
    )
    return to_hex(bytes(packed_hash))


def intent_signing_hash(intent: TransactionIntent) -> str:
    """
    Hash of the full intent that the user signs (EIP-191 personal_sign).

    The signature is never part of the input, so the hash is stable before
    and after signing.
    """
    target, value, intent_id, node_address, delegate, nonce, deadline = intent.as_struct()
    packed_hash = Web3.solidity_keccak(
        INTENT_HASH_TYPES,
        [target, value, intent_id, node_address, delegate, nonce, deadline]
    )
    return to_hex(bytes(packed_hash))


class IntentNonceSource:
    """Reads the authoritative intent nonce from a target contract's ``nonces`` mapping."""

    def __init__(self, w3: Web3):
        self.w3 = w3

    def fresh_nonce(self, target: str, sender: str) -> int:
        """Read the current nonce for ``sender`` on ``target``; never cached."""
        contract = self.w3.eth.contract(
            address=normalize_address(target, "target"),
            abi=NONCES_ABI
        )
        nonce = contract.functions.nonces(normalize_address(sender, "sender")).call()
        logger.debug(f"Fresh nonce for {sender} on {target}: {nonce}")
        return int(nonce)


class IntentBuilder:
    """
    Builds immutable TransactionIntent records.

    The deadline policy is fixed for the lifetime of a builder: either a
    rolling window after creation time or the far-future sentinel used by
    deployments that do not expire intents.
    """

    DEADLINE_WINDOW = "window"
    DEADLINE_FIXED = "fixed"

    def __init__(
        self,
        deadline_policy: str = DEADLINE_WINDOW,
        deadline_window: int = DEFAULT_DEADLINE_WINDOW,
        node_address: str = ZERO_ADDRESS,
        delegate: Optional[str] = None,
        clock: Callable[[], float] = time.time,
    ):
        if deadline_policy not in (self.DEADLINE_WINDOW, self.DEADLINE_FIXED):
            raise ValueError(
                f"Invalid deadline policy: {deadline_policy}. "
                f"Valid options are: {self.DEADLINE_WINDOW}, {self.DEADLINE_FIXED}"
            )
        if deadline_window <= 0:
            raise ValueError("deadline_window must be positive")
        self.deadline_policy = deadline_policy
        self.deadline_window = deadline_window
        self.node_address = node_address
        self.delegate = delegate
        self.clock = clock

    def _deadline(self, now: int) -> int:
        if self.deadline_policy == self.DEADLINE_FIXED:
            return FIXED_DEADLINE
        return now + self.deadline_window

    def create_intent(
        self,
        target: Optional[str],
        value: Any,
        sender_nonce: Any,
        sender_address: Optional[str],
        node_address: Optional[str] = None,
        delegate: Optional[str] = None,
        current_nonce: Optional[int] = None,
        target_function: Optional[str] = None,
    ) -> TransactionIntent:
        """
        Create a TransactionIntent.

        Args:
            target: Contract the intent will call
            value: Wei value attached to the call
            sender_nonce: Nonce the caller read for (sender, target)
            sender_address: Account the intent acts for
            node_address: Execution node address (defaults to the builder's)
            delegate: Delegate allowed to execute (defaults to the builder's)
            current_nonce: Authoritative nonce read immediately before the call
            target_function: Optional 4-byte selector of the target function

        Returns:
            The immutable intent with its derived id

        Raises:
            MissingAddressError: If sender or target is absent or malformed
            InvalidNonceError: If sender_nonce differs from current_nonce
            ValidationError: If value, nonce or selector are invalid
        """
        sender = normalize_address(sender_address, "sender_address")
        target = normalize_address(target, "target")
        node = normalize_address(node_address or self.node_address, "node_address")
        delegate_address = delegate or self.delegate
        if delegate_address:
            delegate_address = normalize_address(delegate_address, "delegate")

        try:
            nonce = normalize_numeric(sender_nonce, "nonce")
            wei_value = normalize_numeric(value if value is not None else 0, "value")
        except SerializationError as e:
            raise ValidationError(str(e))

        if current_nonce is not None and int(current_nonce) != nonce:
            raise InvalidNonceError(
                f"Stale nonce for {sender}: supplied {nonce}, on-chain {current_nonce}",
                supplied=nonce,
                current=int(current_nonce)
            )

        selector = None
        if target_function is not None:
            try:
                selector_bytes = hex_to_bytes(target_function, "target_function")
            except SerializationError as e:
                raise ValidationError(str(e))
            if len(selector_bytes) != 4:
                raise ValidationError(
                    f"target_function must be a 4-byte selector, got {len(selector_bytes)} bytes"
                )
            selector = to_hex(selector_bytes)

        now = int(self.clock())
        deadline = self._deadline(now)
        if deadline <= now:
            raise ValidationError(f"Intent deadline {deadline} is not in the future (now={now})")

        intent_id = derive_intent_id(sender, nonce, deadline)
        logger.debug(f"Created intent {intent_id} for {sender} (nonce={nonce}, deadline={deadline})")

        return TransactionIntent(
            target=target,
            value=wei_value,
            nonce=nonce,
            deadline=deadline,
            id=intent_id,
            node_address=node,
            delegate=delegate_address,
            target_function=selector,
        )

"""
Confirmation polling for executed intents.

Each cycle reads the recent event log of the executing contract for the
"intent executed" event and matches the indexed intent id against the
locally held ``TransactionIntent.id``. Only a bounded window of recent
blocks is scanned.
"""
import logging
from typing import Any, Dict, Mapping, Optional

from eth_abi.exceptions import DecodingError
from eth_utils import event_abi_to_log_topic
from web3 import Web3

from .._rate_limited_log import rate_limited_log
from ..models import ConfirmationResult
from ..polling import PollTask
from ..utils import RPC_ERRORS, hex_to_bytes, normalize_address, to_hex

DEFAULT_POLL_INTERVAL = 5
DEFAULT_BLOCK_LOOKBACK = 10000
DEFAULT_TIMEOUT = 300

INTENT_EXECUTED_EVENT_ABI = {
    "anonymous": False,
    "inputs": [
        {"indexed": True, "internalType": "address", "name": "caller", "type": "address"},
        {"indexed": True, "internalType": "uint256", "name": "nonce", "type": "uint256"},
        {"indexed": True, "internalType": "bytes32", "name": "id", "type": "bytes32"}
    ],
    "name": "IntentExecuted",
    "type": "event"
}


def _topic_hex(topic: Any) -> str:
    if isinstance(topic, (bytes, bytearray)):
        return to_hex(bytes(topic))
    return to_hex(str(topic))


def _plain(value: Any) -> Any:
    if isinstance(value, (bytes, bytearray)):
        return to_hex(bytes(value))
    if isinstance(value, Mapping):
        return {k: _plain(v) for k, v in value.items()}
    if isinstance(value, (list, tuple)):
        return [_plain(v) for v in value]
    return value


class ConfirmationPoller:
    """
    Polls event logs for the execution of a specific intent.

    Args:
        w3: Connected Web3 instance
        event_abi: ABI of the execution event; must have an indexed bytes32 id input
        id_field: Name of the indexed event input carrying the intent id
        poll_interval: Seconds between polls
        block_lookback: Number of recent blocks scanned per poll
        logger: Optional logger instance
    """

    def __init__(
        self,
        w3: Web3,
        event_abi: Optional[Dict[str, Any]] = None,
        id_field: str = "id",
        poll_interval: float = DEFAULT_POLL_INTERVAL,
        block_lookback: int = DEFAULT_BLOCK_LOOKBACK,
        logger: Optional[logging.Logger] = None,
    ):
        if block_lookback < 0:
            raise ValueError("block_lookback must not be negative")

        self.w3 = w3
        self.event_abi = event_abi or INTENT_EXECUTED_EVENT_ABI
        self.poll_interval = poll_interval
        self.block_lookback = block_lookback
        self.logger = logger or logging.getLogger(__name__)

        indexed = [i.get("name") for i in self.event_abi.get("inputs", []) if i.get("indexed")]
        if id_field not in indexed:
            raise ValueError(f"Event {self.event_abi.get('name')} has no indexed '{id_field}' input")
        # topic 0 is the event signature
        self.id_topic_index = indexed.index(id_field) + 1
        self.event_topic = to_hex(event_abi_to_log_topic(self.event_abi))
        self._poll_task: Optional[PollTask] = None

    def find_execution(self, intent_id: str, deployed_account: str) -> Optional[ConfirmationResult]:
        """
        Scan the recent block window once for the intent's execution event.

        Returns:
            ConfirmationResult for the first matching log, or None

        Raises:
            Any RPC error from the chain; callers polling in a loop decide whether to retry
        """
        account = normalize_address(deployed_account, "deployed_account")
        wanted = to_hex(hex_to_bytes(intent_id, "intent_id").rjust(32, b"\0"))

        head = int(self.w3.eth.block_number)
        from_block = max(0, head - self.block_lookback)
        logs = self.w3.eth.get_logs({
            "address": account,
            "fromBlock": from_block,
            "toBlock": head,
            "topics": [self.event_topic],
        })
        self.logger.debug(f"Scanned blocks {from_block}-{head} on {account}: {len(logs)} log(s)")

        for log in logs:
            topics = log.get("topics") or []
            if len(topics) > self.id_topic_index and _topic_hex(topics[self.id_topic_index]) == wanted:
                return self._result(log, intent_id)
        return None

    def _result(self, log: Mapping[str, Any], intent_id: str) -> ConfirmationResult:
        event_name = self.event_abi.get("name")
        try:
            contract = self.w3.eth.contract(abi=[self.event_abi])
            decoded = getattr(contract.events, event_name)().process_log(log)
            event_args = _plain(dict(decoded["args"]))
        except (DecodingError, KeyError, TypeError, AttributeError, *RPC_ERRORS) as e:
            self.logger.debug(f"Could not decode {event_name} log: {e}")
            event_args = {"id": intent_id}

        tx_hash = log.get("transactionHash")
        return ConfirmationResult(
            transaction_hash=_topic_hex(tx_hash) if tx_hash is not None else "",
            block_number=int(log.get("blockNumber") or 0),
            event_args=event_args,
            log_index=log.get("logIndex"),
        )

    def await_confirmation(
        self,
        intent_id: str,
        deployed_account: str,
        timeout: float = DEFAULT_TIMEOUT,
    ) -> ConfirmationResult:
        """
        Poll until the intent's execution event appears.

        RPC errors during a cycle are logged and the cycle is retried at the
        next interval. Returns within ``timeout`` plus one interval plus the
        duration of the RPC call in flight, which is bounded by the provider's
        request timeout.

        Raises:
            ConfirmationTimeoutError: If no matching event is found in time or polling is cancelled
        """
        def check():
            try:
                return self.find_execution(intent_id, deployed_account)
            except RPC_ERRORS as e:
                rate_limited_log(f"Event poll for intent {intent_id} failed: {e}", logger_instance=self.logger)
                return None

        self._poll_task = PollTask(
            check,
            interval=self.poll_interval,
            timeout=timeout,
            description=f"Execution of intent {intent_id}",
            intent_id=intent_id,
            logger=self.logger,
        )
        try:
            result = self._poll_task.run()
        finally:
            self._poll_task = None

        self.logger.info(f"Intent {intent_id} executed in tx {result.transaction_hash} (block {result.block_number})")
        return result

    def cancel(self) -> None:
        """Stop a running ``await_confirmation``; the execution itself is unaffected."""
        task = self._poll_task
        if task is not None:
            task.cancel()

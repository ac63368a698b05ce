"""
Bounded, cancellable polling.

Receipt confirmation and event confirmation share one loop: call a check,
stop when it returns something, otherwise sleep for the interval. The loop
ends on the first of a result, the attempt budget, the time budget, or
``cancel()``. Cancelling or timing out only stops local observation; it never
affects what is already on chain.
"""
import logging
import threading
import time
from typing import Callable, Generic, Optional, TypeVar

from .exceptions import ConfirmationTimeoutError

T = TypeVar('T')


class PollTask(Generic[T]):
    """
    A single-owner polling task.

    Args:
        check: Called once per attempt; returns None to keep polling
        interval: Seconds between attempts
        timeout: Overall time budget in seconds (None for no time bound)
        max_attempts: Maximum number of check calls (None for no attempt bound)
        description: Human readable name used in logs and errors
        transaction_hash: Attached to the timeout error, if known
        intent_id: Attached to the timeout error, if known
        clock: Monotonic clock, injectable for tests
        logger: Optional logger instance
    """

    def __init__(
        self,
        check: Callable[[], Optional[T]],
        interval: float,
        timeout: Optional[float] = None,
        max_attempts: Optional[int] = None,
        description: str = "operation",
        transaction_hash: Optional[str] = None,
        intent_id: Optional[str] = None,
        clock: Callable[[], float] = time.monotonic,
        logger: Optional[logging.Logger] = None,
    ):
        if interval < 0:
            raise ValueError("interval must not be negative")
        if timeout is None and max_attempts is None:
            raise ValueError("Either timeout or max_attempts must bound the poll")
        if max_attempts is not None and max_attempts < 1:
            raise ValueError("max_attempts must be at least 1")

        self.check = check
        self.interval = interval
        self.timeout = timeout
        self.max_attempts = max_attempts
        self.description = description
        self.transaction_hash = transaction_hash
        self.intent_id = intent_id
        self.clock = clock
        self.logger = logger or logging.getLogger(__name__)
        self.attempts = 0
        self._cancelled = threading.Event()

    @property
    def cancelled(self) -> bool:
        return self._cancelled.is_set()

    def cancel(self) -> None:
        """Stop polling; a blocked ``run()`` wakes up and raises promptly."""
        self._cancelled.set()

    def run(self) -> T:
        """
        Poll until the check yields a result.

        The time budget is tested between attempts, so a call returns no later
        than ``timeout`` plus one interval plus the duration of the check in
        progress. A check that blocks (an RPC call waiting on its request
        timeout) is never interrupted.

        Returns:
            The first non-None check result

        Raises:
            ConfirmationTimeoutError: If the budget runs out or the task is cancelled
        """
        deadline = self.clock() + self.timeout if self.timeout is not None else None

        while True:
            if self._cancelled.is_set():
                raise self._error(f"{self.description} polling cancelled", cancelled=True)

            self.attempts += 1
            result = self.check()
            if result is not None:
                self.logger.debug(f"{self.description} resolved after {self.attempts} attempt(s)")
                return result

            if self.max_attempts is not None and self.attempts >= self.max_attempts:
                raise self._error(
                    f"{self.description} not observed after {self.attempts} attempts"
                )

            wait = self.interval
            if deadline is not None:
                remaining = deadline - self.clock()
                if remaining <= 0:
                    raise self._error(
                        f"{self.description} not observed within {self.timeout}s"
                    )
                wait = min(wait, remaining)

            if self._cancelled.wait(wait):
                raise self._error(f"{self.description} polling cancelled", cancelled=True)

    def _error(self, message: str, cancelled: bool = False) -> ConfirmationTimeoutError:
        self.logger.info(message)
        return ConfirmationTimeoutError(
            message,
            transaction_hash=self.transaction_hash,
            intent_id=self.intent_id,
            cancelled=cancelled,
        )

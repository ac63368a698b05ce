"""
Thread-safe rate-limited logging utilities.

Confirmation polls can hit the same RPC error on every attempt; this keeps
the log readable while still surfacing the first occurrence.
"""
import logging
import threading
from typing import Optional

from cachetools import TTLCache

logger = logging.getLogger(__name__)

# At most one record per distinct message per TTL window
_error_log_cache = TTLCache(maxsize=100, ttl=60)
_error_log_cache_lock = threading.RLock()


def rate_limited_log(
    message: str,
    level: str = "warning",
    logger_instance: Optional[logging.Logger] = None
) -> bool:
    """
    Log a message with rate limiting, in a thread-safe manner.

    Args:
        message: Message to log
        level: Log level (debug, info, warning, error, critical)
        logger_instance: Logger to use (defaults to module logger)

    Returns:
        True if the message was emitted, False if it was suppressed
    """
    log_instance = logger_instance or logger
    log_method = getattr(log_instance, level.lower(), log_instance.warning)

    key = f"{level}:{message}"

    with _error_log_cache_lock:
        if key in _error_log_cache:
            return False
        log_method(message)
        _error_log_cache[key] = True
    return True


def reset_rate_limit_cache() -> None:
    """Forget previously emitted messages."""
    with _error_log_cache_lock:
        _error_log_cache.clear()

"""
Tests for rate-limited logging.
"""
import logging
from unittest.mock import MagicMock

from krnl_sdk._rate_limited_log import rate_limited_log, reset_rate_limit_cache


def test_repeated_message_is_suppressed():
    logger = MagicMock(spec=logging.Logger)

    assert rate_limited_log("rpc down", logger_instance=logger)
    assert not rate_limited_log("rpc down", logger_instance=logger)
    assert rate_limited_log("rpc still down", logger_instance=logger)

    assert logger.warning.call_count == 2


def test_levels_are_tracked_separately():
    logger = MagicMock(spec=logging.Logger)

    rate_limited_log("poll failed", level="info", logger_instance=logger)
    rate_limited_log("poll failed", level="error", logger_instance=logger)

    logger.info.assert_called_once_with("poll failed")
    logger.error.assert_called_once_with("poll failed")


def test_reset_allows_message_again():
    logger = MagicMock(spec=logging.Logger)

    rate_limited_log("rpc down", logger_instance=logger)
    reset_rate_limit_cache()
    rate_limited_log("rpc down", logger_instance=logger)

    assert logger.warning.call_count == 2


def test_default_logger(caplog):
    with caplog.at_level(logging.WARNING):
        rate_limited_log("default logger message")
    assert "default logger message" in caplog.text

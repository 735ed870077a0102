"""
Tests for the rate-limited logging helper.
"""
import logging
from unittest.mock import MagicMock, patch

from cachetools import TTLCache

from aa_singleton._rate_limited_log import rate_limited_log, reset_rate_limits


class TestRateLimitedLog:
    """Tests for the TTL-cached log suppression."""

    def test_repeated_messages_are_suppressed(self):
        mock_cache = {}
        mock_lock = MagicMock()
        mock_logger = MagicMock()

        with patch('aa_singleton._rate_limited_log._log_cache', mock_cache), \
             patch('aa_singleton._rate_limited_log._log_cache_lock', mock_lock), \
             patch('aa_singleton._rate_limited_log.logger', mock_logger):

            # First log should go through
            assert rate_limited_log("Test message", level="warning")
            mock_logger.warning.assert_called_once_with("Test message")
            mock_lock.__enter__.assert_called()
            assert "warning:Test message" in mock_cache

            mock_logger.reset_mock()

            # Second immediate log should be suppressed
            assert not rate_limited_log("Test message", level="warning")
            mock_logger.warning.assert_not_called()

            # Different level should go through
            assert rate_limited_log("Test message", level="error")
            mock_logger.error.assert_called_once_with("Test message")
            assert "error:Test message" in mock_cache

            # Different message should go through
            mock_logger.reset_mock()
            assert rate_limited_log("Different message", level="warning")
            mock_logger.warning.assert_called_once_with("Different message")

    def test_expired_entries_log_again(self):
        now = [0.0]
        cache = TTLCache(maxsize=10, ttl=60, timer=lambda: now[0])
        mock_logger = MagicMock()

        with patch('aa_singleton._rate_limited_log._log_cache', cache):
            assert rate_limited_log("Flaky", logger_instance=mock_logger)
            assert not rate_limited_log("Flaky", logger_instance=mock_logger)
            now[0] = 61.0
            assert rate_limited_log("Flaky", logger_instance=mock_logger)
        assert mock_logger.warning.call_count == 2

    def test_unknown_level_falls_back_to_warning(self):
        mock_logger = MagicMock(spec=logging.Logger)
        with patch('aa_singleton._rate_limited_log._log_cache', {}):
            rate_limited_log("Odd level", level="loud", logger_instance=mock_logger)
        mock_logger.warning.assert_called_once_with("Odd level")

    def test_reset(self, caplog):
        with caplog.at_level(logging.WARNING, logger="aa_singleton._rate_limited_log"):
            assert rate_limited_log("Once")
            assert not rate_limited_log("Once")
            reset_rate_limits()
            assert rate_limited_log("Once")
        assert caplog.text.count("Once") == 2

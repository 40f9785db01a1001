"""
Tests for the pipeline error taxonomy and retry helper.
"""

import logging

import pytest
from unittest.mock import AsyncMock

from schoolsync.integrations.sis.error_handler import (
    AuthenticationFailure, ConfigurationFailure, CrawlItemFailure, ParseFailure,
    RetryConfig, SyncErrorCategory, SyncErrorHandler, SyncErrorSeverity,
    TransportFailure, retry_on_error
)


class TestErrorTaxonomy:
    """Test category, severity and retryability of each failure."""

    def test_parse_failure(self):
        error = ParseFailure("no table")

        assert error.category == SyncErrorCategory.PARSE
        assert error.severity == SyncErrorSeverity.LOW
        assert not error.retryable

    def test_crawl_failure_carries_url(self):
        error = CrawlItemFailure("HTTP 404 fetching profile", url="https://sis.example.com/students/1")

        assert error.url == "https://sis.example.com/students/1"
        assert error.to_dict()["details"]["url"] == error.url

    def test_transport_failure_carries_status(self):
        error = TransportFailure("HTTP 500: boom", status=500)

        assert error.status == 500
        assert error.retryable

    def test_authentication_and_configuration_are_high(self):
        assert AuthenticationFailure().severity == SyncErrorSeverity.HIGH
        assert ConfigurationFailure("no endpoint").severity == SyncErrorSeverity.HIGH


class TestSyncErrorHandler:
    """Test error logging and recent-error lookup."""

    def test_log_level_follows_severity(self, caplog):
        handler = SyncErrorHandler()

        with caplog.at_level(logging.INFO, logger="schoolsync.sync"):
            handler.log_error(ParseFailure("bad header"))
            handler.log_error(ConfigurationFailure("no endpoint"))

        levels = [record.levelno for record in caplog.records]
        assert levels == [logging.INFO, logging.ERROR]

    def test_recent_errors_filtered_by_category(self):
        handler = SyncErrorHandler()
        handler.log_error(ParseFailure("one"))
        handler.log_error(TransportFailure("two"), {"batch": 2})
        handler.log_error(ParseFailure("three"))

        recent = handler.get_recent_errors(category_filter=SyncErrorCategory.PARSE)

        assert [e["message"] for e in recent] == ["one", "three"]
        assert handler.get_recent_errors(limit=1)[0]["message"] == "three"

    def test_log_is_bounded(self):
        handler = SyncErrorHandler(max_log_entries=2)
        for i in range(5):
            handler.log_error(ParseFailure(f"error {i}"))

        assert [e["message"] for e in handler.get_recent_errors()] == ["error 3", "error 4"]

    def test_plain_exception_logged_as_unknown(self):
        handler = SyncErrorHandler()

        handler.log_error(ValueError("odd"), {"url": "https://x"})

        entry = handler.get_recent_errors()[0]
        assert entry["category"] == SyncErrorCategory.UNKNOWN
        assert entry["url"] == "https://x"


class TestRetryOnError:
    """Test retry with backoff."""

    def test_delay_is_capped(self):
        config = RetryConfig(base_delay=1.0, max_delay=5.0, jitter=False)

        assert config.delay_for(0) == 1.0
        assert config.delay_for(1) == 2.0
        assert config.delay_for(10) == 5.0

    @pytest.mark.asyncio
    async def test_retries_until_success(self):
        func = AsyncMock(side_effect=[TransportFailure("timeout"), "ok"])

        result = await retry_on_error(func, RetryConfig(max_attempts=2, base_delay=0, jitter=False))

        assert result == "ok"
        assert func.call_count == 2

    @pytest.mark.asyncio
    async def test_gives_up_after_max_attempts(self):
        func = AsyncMock(side_effect=TransportFailure("timeout"))

        with pytest.raises(TransportFailure):
            await retry_on_error(func, RetryConfig(max_attempts=3, base_delay=0, jitter=False))

        assert func.call_count == 3

    @pytest.mark.asyncio
    async def test_non_retryable_error_propagates_immediately(self):
        func = AsyncMock(side_effect=CrawlItemFailure("HTTP 404 fetching profile"))

        with pytest.raises(CrawlItemFailure):
            await retry_on_error(func, RetryConfig(max_attempts=3, base_delay=0, jitter=False))

        assert func.call_count == 1

    @pytest.mark.asyncio
    async def test_passes_arguments(self):
        func = AsyncMock(return_value="<html></html>")

        await retry_on_error(func, RetryConfig(), (TransportFailure,), "https://x", flag=True)

        func.assert_awaited_once_with("https://x", flag=True)

"""
Error taxonomy and handling utilities for the extraction and sync pipeline.

Nothing raised here is fatal to the host process: parse failures resolve to
empty results, crawl failures skip one item, transport failures fail one
batch, and authentication/configuration failures stop a sync before any
network call is made.
"""

import asyncio
import logging
import random
from collections import deque
from datetime import datetime, timezone
from typing import Any, Callable, Deque, Dict, List, Optional, Tuple, Type, Union


sync_logger = logging.getLogger('schoolsync.sync')


class SyncErrorSeverity:
    """How much of a run an error costs."""
    LOW = "low"           # one row, page or profile
    MEDIUM = "medium"     # one batch
    HIGH = "high"         # the whole run
    CRITICAL = "critical"


class SyncErrorCategory:
    """Which pipeline stage an error came from."""
    PARSE = "parse"
    CRAWL = "crawl"
    AUTHENTICATION = "authentication"
    TRANSPORT = "transport"
    CONFIGURATION = "configuration"
    UNKNOWN = "unknown"


_LOG_LEVELS = {
    SyncErrorSeverity.LOW: logging.INFO,
    SyncErrorSeverity.MEDIUM: logging.WARNING,
    SyncErrorSeverity.HIGH: logging.ERROR,
    SyncErrorSeverity.CRITICAL: logging.CRITICAL,
}


class SyncError(Exception):
    """
    Base pipeline error.

    Subclasses fix ``category``, ``severity`` and ``retryable`` as class
    attributes; instances carry the message and free-form details.
    """

    category = SyncErrorCategory.UNKNOWN
    severity = SyncErrorSeverity.MEDIUM
    retryable = False

    def __init__(
        self,
        message: str,
        details: Optional[Dict[str, Any]] = None,
        original_exception: Optional[BaseException] = None
    ):
        super().__init__(message)
        self.message = message
        self.details = dict(details or {})
        self.original_exception = original_exception
        self.occurred_at = datetime.now(timezone.utc)

    def to_dict(self) -> Dict[str, Any]:
        entry = {
            'message': self.message,
            'category': self.category,
            'severity': self.severity,
            'retryable': self.retryable,
            'details': self.details,
            'occurred_at': self.occurred_at.isoformat(),
        }
        if self.original_exception is not None:
            entry['cause'] = repr(self.original_exception)
        return entry


class ParseFailure(SyncError):
    """Document did not have the expected shape. Always recovered locally."""
    category = SyncErrorCategory.PARSE
    severity = SyncErrorSeverity.LOW


class CrawlItemFailure(SyncError):
    """One detail page could not be fetched or scraped."""
    category = SyncErrorCategory.CRAWL
    severity = SyncErrorSeverity.LOW
    retryable = True

    def __init__(self, message: str, url: Optional[str] = None, **kwargs):
        super().__init__(message, **kwargs)
        self.url = url
        self.details['url'] = url


class AuthenticationFailure(SyncError):
    """Wrong passphrase or tampered credential blob."""
    category = SyncErrorCategory.AUTHENTICATION
    severity = SyncErrorSeverity.HIGH

    def __init__(self, message: str = "Invalid passphrase or corrupted credential", **kwargs):
        super().__init__(message, **kwargs)


class TransportFailure(SyncError):
    """Timeout, network error or non-2xx response."""
    category = SyncErrorCategory.TRANSPORT
    severity = SyncErrorSeverity.MEDIUM
    retryable = True

    def __init__(self, message: str, status: Optional[int] = None, **kwargs):
        super().__init__(message, **kwargs)
        self.status = status
        self.details['status'] = status


class ConfigurationFailure(SyncError):
    """Missing endpoint or token."""
    category = SyncErrorCategory.CONFIGURATION
    severity = SyncErrorSeverity.HIGH


class SyncErrorHandler:
    """Logs pipeline errors and keeps the most recent ones for status reporting."""

    def __init__(self, max_log_entries: int = 1000):
        self._recent: Deque[Dict[str, Any]] = deque(maxlen=max_log_entries)

    def log_error(
        self,
        error: Union[SyncError, Exception],
        context: Optional[Dict[str, Any]] = None
    ) -> None:
        """
        Log an error at a level chosen by its severity.

        Args:
            error: pipeline error, or any exception (recorded as unknown)
            context: extra keys merged into the recorded entry
        """
        if isinstance(error, SyncError):
            entry = error.to_dict()
        else:
            entry = {
                'message': str(error),
                'category': SyncErrorCategory.UNKNOWN,
                'severity': SyncErrorSeverity.MEDIUM,
                'occurred_at': datetime.now(timezone.utc).isoformat(),
                'cause': repr(error),
            }
        entry.update(context or {})

        level = _LOG_LEVELS.get(entry['severity'], logging.WARNING)
        sync_logger.log(level, f"[{entry['category']}] {entry['message']}")
        self._recent.append(entry)

    def get_recent_errors(
        self,
        limit: int = 50,
        category_filter: Optional[str] = None
    ) -> List[Dict[str, Any]]:
        """Newest ``limit`` entries, oldest first, optionally for one category."""
        entries = [
            entry for entry in self._recent
            if category_filter is None or entry.get('category') == category_filter
        ]
        return entries[-limit:] if limit else []


class RetryConfig:
    """Attempt count and capped exponential backoff."""

    def __init__(
        self,
        max_attempts: int = 3,
        base_delay: float = 1.0,
        max_delay: float = 60.0,
        exponential_base: float = 2.0,
        jitter: bool = True
    ):
        self.max_attempts = max(1, max_attempts)
        self.base_delay = base_delay
        self.max_delay = max_delay
        self.exponential_base = exponential_base
        self.jitter = jitter

    def delay_for(self, attempt: int) -> float:
        """Backoff delay after the given zero-based attempt."""
        delay = min(self.base_delay * self.exponential_base ** attempt, self.max_delay)
        if self.jitter:
            delay *= random.uniform(0.5, 1.5)
        return delay


async def retry_on_error(
    func: Callable,
    retry_config: RetryConfig,
    retryable_errors: Tuple[Type[BaseException], ...] = (TransportFailure,),
    *args,
    **kwargs
) -> Any:
    """
    Call ``func`` until it succeeds or attempts run out.

    Only ``retryable_errors`` trigger another attempt; anything else
    propagates at once. The last retryable error is re-raised when every
    attempt fails.
    """
    attempt = 0
    while True:
        try:
            result = func(*args, **kwargs)
            if asyncio.iscoroutine(result):
                result = await result
            return result
        except retryable_errors as e:
            attempt += 1
            if attempt >= retry_config.max_attempts:
                raise
            sync_logger.info(f"Attempt {attempt}/{retry_config.max_attempts} failed, retrying: {e}")
            await asyncio.sleep(retry_config.delay_for(attempt - 1))


sync_error_handler = SyncErrorHandler()

"""
Capsule API client: sends changed records in fixed-size batches.

A batch either succeeds or fails as a whole; a failed batch is recorded
and the remaining batches are still attempted.
"""

import asyncio
import logging
from typing import Callable, Dict, Optional, Sequence

import aiohttp

from schoolsync.core.config import settings
from schoolsync.integrations.sis.error_handler import (
    ConfigurationFailure, TransportFailure, sync_error_handler
)
from schoolsync.models.records import CanonicalRecord, SyncOutcome


logger = logging.getLogger(__name__)

SYNC_PATH = "/api/v1/sync/students"
HEALTH_PATH = "/api/v1/health"
SOURCE_HEADER = "schoolsync"
ERROR_BODY_LIMIT = 200

ProgressCallback = Callable[[int, int], None]


class CapsuleSyncClient:
    """Batched, partially-failable sync against the Capsule API."""

    def __init__(
        self,
        endpoint: Optional[str],
        token: Optional[str],
        batch_size: Optional[int] = None,
        timeout: Optional[float] = None,
        health_timeout: Optional[float] = None,
        session: Optional[aiohttp.ClientSession] = None
    ):
        self.endpoint = (endpoint or "").rstrip("/")
        self.token = token
        self.batch_size = batch_size or settings.SYNC_BATCH_SIZE
        self.timeout = timeout or settings.SYNC_REQUEST_TIMEOUT
        self.health_timeout = health_timeout or settings.HEALTH_CHECK_TIMEOUT
        self._session = session
        self._owns_session = False

    async def __aenter__(self):
        if self._session is None:
            self._session = aiohttp.ClientSession(
                headers={'User-Agent': settings.USER_AGENT}
            )
            self._owns_session = True
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        if self._owns_session and self._session:
            await self._session.close()
            self._session = None
            self._owns_session = False

    def _auth_headers(self) -> Dict[str, str]:
        return {'Authorization': f"Bearer {self.token}"}

    def _check_configured(self) -> None:
        if not self.endpoint:
            raise ConfigurationFailure("Capsule endpoint not configured.")
        if not self.token:
            raise ConfigurationFailure("Not authenticated. Please save a Capsule token.")

    async def sync(
        self,
        records: Sequence[CanonicalRecord],
        on_progress: Optional[ProgressCallback] = None
    ) -> SyncOutcome:
        """
        Send records in order, one batch at a time.

        Raises ConfigurationFailure before any request when the endpoint or
        token is missing. Batch errors never raise; they are counted per
        batch in the returned SyncOutcome.
        """
        self._check_configured()
        if self._session is None:
            async with self:
                return await self.sync(records, on_progress)

        outcome = SyncOutcome()
        total = len(records)
        for number, start in enumerate(range(0, total, self.batch_size), start=1):
            batch = records[start:start + self.batch_size]
            try:
                await self._send_batch(batch)
                outcome.success_count += len(batch)
            except TransportFailure as e:
                self._record_failure(outcome, number, batch, e)
            except Exception as e:
                self._record_failure(outcome, number, batch, TransportFailure(
                    f"Unexpected error: {e}", original_exception=e
                ))

            if on_progress:
                on_progress(min(start + self.batch_size, total), total)

        logger.info(
            f"Sync finished: {outcome.success_count} succeeded, "
            f"{outcome.failed_count} failed in {len(outcome.errors)} failed batches"
        )
        return outcome

    def _record_failure(
        self,
        outcome: SyncOutcome,
        number: int,
        batch: Sequence[CanonicalRecord],
        error: TransportFailure
    ) -> None:
        outcome.failed_count += len(batch)
        outcome.errors.append(f"Batch {number}: {error.message}")
        outcome.failed_record_ids.extend(record.sourced_id for record in batch)
        sync_error_handler.log_error(error, {'batch': number, 'batch_size': len(batch)})

    async def _send_batch(self, batch: Sequence[CanonicalRecord]) -> None:
        headers = {
            **self._auth_headers(),
            'Content-Type': 'application/json',
            'X-Source': SOURCE_HEADER,
        }
        try:
            async with self._session.post(
                f"{self.endpoint}{SYNC_PATH}",
                json={'students': [record.to_payload() for record in batch]},
                headers=headers,
                timeout=aiohttp.ClientTimeout(total=self.timeout)
            ) as response:
                if 200 <= response.status < 300:
                    return
                # Error bodies are informational; undecodable bytes must not escape
                body = await response.text(errors='replace')
                raise TransportFailure(
                    f"HTTP {response.status}: {body[:ERROR_BODY_LIMIT]}",
                    status=response.status
                )
        except asyncio.TimeoutError:
            raise TransportFailure(f"Request timed out after {self.timeout}s")
        except aiohttp.ClientError as e:
            raise TransportFailure(str(e) or type(e).__name__, original_exception=e)

    async def health_check(self) -> bool:
        """Liveness and credential check; any failure reads as False."""
        if not self.endpoint or not self.token:
            return False
        if self._session is None:
            async with self:
                return await self.health_check()

        try:
            async with self._session.get(
                f"{self.endpoint}{HEALTH_PATH}",
                headers=self._auth_headers(),
                timeout=aiohttp.ClientTimeout(total=self.health_timeout)
            ) as response:
                return 200 <= response.status < 300
        except (asyncio.TimeoutError, aiohttp.ClientError) as e:
            logger.warning(f"Capsule health check failed: {type(e).__name__}")
            return False

"""
Persistent key-value state for the sync pipeline.

Holds the Capsule endpoint, the encrypted token, the schedule preference,
the sync log and the hash index. Nothing stored here is record PII.
"""

import copy
import logging
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, Protocol

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from schoolsync.core.config import settings
from schoolsync.core.database import AsyncSessionLocal
from schoolsync.models.records import SyncOutcome
from schoolsync.models.sync_state import SyncStateEntry


logger = logging.getLogger(__name__)

CAPSULE_ENDPOINT = 'capsule_endpoint'
ENCRYPTED_TOKEN = 'encrypted_token'
SYNC_SCHEDULE = 'sync_schedule'
LAST_SYNC = 'last_sync'
SYNC_LOG = 'sync_log'
STUDENT_HASHES = 'student_hashes'

DEFAULT_SCHEDULE = {'enabled': False, 'intervalHours': 24}


class StateStore(Protocol):
    """Transactional get/set capability the pipeline relies on."""

    async def get(self, key: str) -> Any:
        ...

    async def set(self, key: str, value: Any) -> None:
        ...


class InMemoryStateStore:
    """Process-local store; values are copied in and out like a serializing store."""

    def __init__(self, initial: Optional[Dict[str, Any]] = None):
        self._data: Dict[str, Any] = copy.deepcopy(initial or {})

    async def get(self, key: str) -> Any:
        return copy.deepcopy(self._data.get(key))

    async def set(self, key: str, value: Any) -> None:
        self._data[key] = copy.deepcopy(value)


class SQLStateStore:
    """Store backed by the ``sync_state`` table."""

    def __init__(self, session_factory: async_sessionmaker = AsyncSessionLocal):
        self.session_factory = session_factory

    async def get(self, key: str) -> Any:
        async with self.session_factory() as session:
            entry = await session.get(SyncStateEntry, key)
            return entry.value if entry is not None else None

    async def set(self, key: str, value: Any) -> None:
        async with self.session_factory() as session:
            await self._upsert(session, key, value)
            await session.commit()

    @staticmethod
    async def _upsert(session: AsyncSession, key: str, value: Any) -> None:
        entry = await session.get(SyncStateEntry, key)
        if entry is None:
            session.add(SyncStateEntry(key=key, value=value))
        else:
            entry.value = value


class SyncStateRepository:
    """Typed access to the pipeline's persisted keys."""

    def __init__(self, store: StateStore, log_limit: Optional[int] = None):
        self.store = store
        self.log_limit = log_limit or settings.SYNC_LOG_LIMIT

    async def get_endpoint(self) -> Optional[str]:
        endpoint = await self.store.get(CAPSULE_ENDPOINT)
        return endpoint or settings.CAPSULE_ENDPOINT or None

    async def set_endpoint(self, endpoint: str) -> None:
        await self.store.set(CAPSULE_ENDPOINT, endpoint.rstrip('/'))

    async def get_encrypted_token(self) -> Optional[str]:
        return await self.store.get(ENCRYPTED_TOKEN)

    async def set_encrypted_token(self, blob: str) -> None:
        await self.store.set(ENCRYPTED_TOKEN, blob)

    async def get_schedule(self) -> Dict[str, Any]:
        return await self.store.get(SYNC_SCHEDULE) or dict(DEFAULT_SCHEDULE)

    async def set_schedule(self, enabled: bool, interval_hours: int) -> Dict[str, Any]:
        schedule = {'enabled': enabled, 'intervalHours': interval_hours}
        await self.store.set(SYNC_SCHEDULE, schedule)
        return schedule

    async def get_hash_index(self) -> Dict[str, str]:
        return await self.store.get(STUDENT_HASHES) or {}

    async def set_hash_index(self, hashes: Dict[str, str]) -> None:
        await self.store.set(STUDENT_HASHES, hashes)

    async def get_last_sync(self) -> Optional[Dict[str, Any]]:
        return await self.store.get(LAST_SYNC)

    async def get_sync_log(self) -> List[Dict[str, Any]]:
        return await self.store.get(SYNC_LOG) or []

    async def record_sync(self, student_count: int, outcome: SyncOutcome) -> Dict[str, Any]:
        """Store the last-sync entry and prepend it to the bounded log."""
        entry = {
            'timestamp': datetime.now(timezone.utc).isoformat(),
            'studentCount': student_count,
            'status': outcome.status,
            'errors': list(outcome.errors),
        }
        await self.store.set(LAST_SYNC, entry)
        log = await self.get_sync_log()
        log.insert(0, entry)
        await self.store.set(SYNC_LOG, log[:self.log_limit])
        return entry

    async def get_status(self) -> Dict[str, Any]:
        return {
            'last_sync': await self.get_last_sync(),
            'schedule': await self.get_schedule(),
            'configured': bool(await self.get_endpoint()),
            'sync_log': await self.get_sync_log(),
        }

"""
Change detection and synchronization

Components:
- Content-addressed differ over a hash-only index
- Batched, partially-failable Capsule API client
- Key-value sync state (endpoint, encrypted token, schedule, log, hash index)
- Pipeline orchestrating extraction, crawl, diff and sync
"""

from .differ import DiffResult, diff, hash_record
from .synchronizer import CapsuleSyncClient
from .state_store import (
    StateStore,
    InMemoryStateStore,
    SQLStateStore,
    SyncStateRepository
)
from .pipeline import (
    ExtractionResult,
    PipelineResult,
    SyncPipeline,
    enrich_with_details
)

__all__ = [
    # Change detection
    'DiffResult',
    'diff',
    'hash_record',

    # Transport
    'CapsuleSyncClient',

    # State
    'StateStore',
    'InMemoryStateStore',
    'SQLStateStore',
    'SyncStateRepository',

    # Orchestration
    'ExtractionResult',
    'PipelineResult',
    'SyncPipeline',
    'enrich_with_details'
]

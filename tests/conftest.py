"""
Shared fixtures for the SchoolSync test suite.
"""

import pytest

from schoolsync.core.security import CredentialVault
from schoolsync.integrations.sis.error_handler import RetryConfig
from schoolsync.models.records import CanonicalRecord
from schoolsync.services.sync.state_store import InMemoryStateStore, SyncStateRepository

# Low iteration count keeps key derivation fast in tests
TEST_ITERATIONS = 1000

CAPSULE_ENDPOINT = "https://capsule.example.com"


@pytest.fixture
def state_store():
    """Create an empty in-memory state store."""
    return InMemoryStateStore()


@pytest.fixture
def repository(state_store):
    """Create a sync state repository over the in-memory store."""
    return SyncStateRepository(state_store, log_limit=5)


@pytest.fixture
def vault():
    """Create a credential vault with a test iteration count."""
    return CredentialVault(iterations=TEST_ITERATIONS)


@pytest.fixture
def no_delay_retry():
    """Retry configuration without backoff sleeps."""
    return RetryConfig(max_attempts=2, base_delay=0, jitter=False)


def make_record(sourced_id, first="Jane", last="Doe", **fields):
    record = CanonicalRecord(sourced_id=sourced_id, first_name=first, last_name=last)
    for name, value in fields.items():
        setattr(record, name, value)
    return record


@pytest.fixture
def sample_records():
    """Create three canonical student records."""
    return [
        make_record("1001", "Jane", "Doe", grade_level="7", email="jdoe@school.edu"),
        make_record("1002", "John", "Smith", grade_level="8"),
        make_record("1003", "Ana", "Lopez", home_room="104"),
    ]


@pytest.fixture
def record_factory():
    """Factory for canonical records with overridable fields."""
    return make_record

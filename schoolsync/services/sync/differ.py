"""
Content-addressed differ.

Only SHA-256 digests of a fixed field subset are kept between runs, so the
persisted index never holds names or emails.
"""

import hashlib
import json
import logging
from dataclasses import dataclass, field
from typing import Dict, List, Mapping, Sequence

from schoolsync.models.records import CanonicalRecord


logger = logging.getLogger(__name__)

# Serialization keys in fingerprint order
HASH_FIELDS = (
    ('id', 'sourced_id'),
    ('fn', 'first_name'),
    ('ln', 'last_name'),
    ('gr', 'grade_level'),
    ('hr', 'home_room'),
    ('es', 'enroll_status'),
    ('em', 'email'),
    ('si', 'school_id'),
)


def fingerprint_payload(record: CanonicalRecord) -> str:
    """Compact JSON over the hashed fields; missing values serialize as ""."""
    ordered = {key: getattr(record, attr) or '' for key, attr in HASH_FIELDS}
    return json.dumps(ordered, separators=(',', ':'), ensure_ascii=False)


def hash_record(record: CanonicalRecord) -> str:
    """Lowercase hex SHA-256 fingerprint of a record."""
    return hashlib.sha256(fingerprint_payload(record).encode('utf-8')).hexdigest()


@dataclass
class DiffResult:
    changed: List[CanonicalRecord] = field(default_factory=list)
    new_hashes: Dict[str, str] = field(default_factory=dict)

    @property
    def has_changes(self) -> bool:
        return bool(self.changed)


def dedupe_records(records: Sequence[CanonicalRecord]) -> List[CanonicalRecord]:
    """One record per sourced id, first occurrence wins."""
    unique: Dict[str, CanonicalRecord] = {}
    for record in records:
        unique.setdefault(record.sourced_id, record)
    if len(unique) < len(records):
        logger.info(f"Dropped {len(records) - len(unique)} duplicate records")
    return list(unique.values())


def diff(records: Sequence[CanonicalRecord], prior_hashes: Mapping[str, str]) -> DiffResult:
    """
    Records that are new or changed since ``prior_hashes``.

    Repeated ids are collapsed to their first occurrence. ``new_hashes`` is
    the full replacement index: one entry per distinct id, ids seen only in
    the prior index are dropped.
    """
    result = DiffResult()
    for record in dedupe_records(records):
        digest = hash_record(record)
        result.new_hashes[record.sourced_id] = digest
        if prior_hashes.get(record.sourced_id) != digest:
            result.changed.append(record)

    logger.info(f"Diff: {len(result.changed)} of {len(records)} records changed")
    return result

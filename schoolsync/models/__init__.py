from .records import (
    CanonicalRecord,
    DeepRecord,
    GradeEntry,
    GradeRecord,
    AttendanceRecord,
    AttendanceStatus,
    StudentLink,
    SyncOutcome,
    merge_records,
)

__all__ = [
    "CanonicalRecord",
    "DeepRecord",
    "GradeEntry",
    "GradeRecord",
    "AttendanceRecord",
    "AttendanceStatus",
    "StudentLink",
    "SyncOutcome",
    "merge_records",
]

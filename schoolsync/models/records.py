"""
Canonical record shapes shared by parsers, crawler, differ and synchronizer.

Records are transient: they live for one pipeline invocation and only their
hashes are persisted.
"""

from dataclasses import dataclass, field, fields, replace
from enum import Enum
from typing import Dict, Any, List, Optional, TypeVar


# Attribute name -> wire (camelCase) name for the Capsule payload
CANONICAL_WIRE_NAMES = {
    'sourced_id': 'sourcedId',
    'first_name': 'firstName',
    'last_name': 'lastName',
    'grade_level': 'gradeLevel',
    'home_room': 'homeRoom',
    'enroll_status': 'enrollStatus',
    'email': 'email',
    'school_id': 'schoolId',
    'dob': 'dob',
    'gender': 'gender',
}

DEEP_WIRE_NAMES = {
    **CANONICAL_WIRE_NAMES,
    'address': 'address',
    'phone': 'phone',
    'guardian_name': 'guardianName',
    'guardian_email': 'guardianEmail',
    'guardian_phone': 'guardianPhone',
    'emergency_contact': 'emergencyContact',
    'emergency_phone': 'emergencyPhone',
    'ethnicity': 'ethnicity',
    'language': 'language',
    'iep': 'iep',
    'section504': 'section504',
    'lunch_status': 'lunchStatus',
    'transportation': 'transportation',
    'enroll_date': 'enrollDate',
    'exit_date': 'exitDate',
    'gpa': 'gpa',
    'credits': 'credits',
}

# Mapping-valued fields merged key-wise rather than as scalars
MAPPING_FIELDS = ('extra', 'schedule')


def clean_value(value: Any) -> Optional[str]:
    """Trim a raw value; empty means absent."""
    if value is None:
        return None
    text = str(value).strip()
    return text or None


@dataclass
class CanonicalRecord:
    """Normalized student record, the unit of sync."""
    sourced_id: str = ''
    first_name: Optional[str] = None
    last_name: Optional[str] = None
    grade_level: Optional[str] = None
    home_room: Optional[str] = None
    enroll_status: Optional[str] = None
    email: Optional[str] = None
    school_id: Optional[str] = None
    dob: Optional[str] = None
    gender: Optional[str] = None
    extra: Dict[str, str] = field(default_factory=dict)

    wire_names = CANONICAL_WIRE_NAMES

    @property
    def has_name(self) -> bool:
        return bool(self.first_name or self.last_name)

    @property
    def display_name(self) -> str:
        return ' '.join(p for p in (self.first_name, self.last_name) if p)

    def assign(self, field_name: str, value: Any) -> bool:
        """
        Set a field only if it is still unset and the value is non-empty.

        Returns True when the value was written.
        """
        cleaned = clean_value(value)
        if cleaned is None or field_name not in self.wire_names:
            return False
        if field_name == 'sourced_id':
            if self.sourced_id:
                return False
            self.sourced_id = cleaned
            return True
        if getattr(self, field_name) is not None:
            return False
        setattr(self, field_name, cleaned)
        return True

    def add_extra(self, label: str, value: Any) -> bool:
        """Preserve an unmatched label/value pair; first one wins."""
        label = clean_value(label)
        cleaned = clean_value(value)
        if not label or cleaned is None or label in self.extra:
            return False
        self.extra[label] = cleaned
        return True

    def to_payload(self) -> Dict[str, Any]:
        """Camel-cased dict in the shape the Capsule API expects."""
        payload: Dict[str, Any] = {
            'sourcedId': self.sourced_id,
            'firstName': self.first_name or '',
            'lastName': self.last_name or '',
        }
        for attr, wire in self.wire_names.items():
            if attr in ('sourced_id', 'first_name', 'last_name'):
                continue
            value = getattr(self, attr)
            if value is not None:
                payload[wire] = value
        if self.extra:
            payload['extra'] = dict(self.extra)
        return payload


@dataclass
class DeepRecord(CanonicalRecord):
    """Canonical record enriched from a student's detail page."""
    address: Optional[str] = None
    phone: Optional[str] = None
    guardian_name: Optional[str] = None
    guardian_email: Optional[str] = None
    guardian_phone: Optional[str] = None
    emergency_contact: Optional[str] = None
    emergency_phone: Optional[str] = None
    ethnicity: Optional[str] = None
    language: Optional[str] = None
    iep: Optional[str] = None
    section504: Optional[str] = None
    lunch_status: Optional[str] = None
    transportation: Optional[str] = None
    enroll_date: Optional[str] = None
    exit_date: Optional[str] = None
    gpa: Optional[str] = None
    credits: Optional[str] = None
    schedule: Dict[str, str] = field(default_factory=dict)

    wire_names = DEEP_WIRE_NAMES

    def add_schedule(self, period: Any, class_name: Any) -> bool:
        period = clean_value(period)
        class_name = clean_value(class_name)
        if not period or not class_name or period in self.schedule:
            return False
        self.schedule[period] = class_name
        return True

    def to_payload(self) -> Dict[str, Any]:
        payload = super().to_payload()
        if self.schedule:
            payload['schedule'] = dict(self.schedule)
        return payload


RecordT = TypeVar('RecordT', bound=CanonicalRecord)


def merge_records(primary: RecordT, secondary: CanonicalRecord) -> RecordT:
    """
    Merge two partial records, first non-unset value per field wins.

    The result has the primary's type; fields the secondary does not have
    are left as they are in the primary.
    """
    merged = replace(primary, extra=dict(primary.extra))
    if isinstance(merged, DeepRecord):
        merged.schedule = dict(merged.schedule)

    secondary_fields = {f.name for f in fields(secondary)}
    for f in fields(merged):
        if f.name not in secondary_fields:
            continue
        other = getattr(secondary, f.name)
        if f.name in MAPPING_FIELDS:
            target = getattr(merged, f.name)
            for key, value in other.items():
                target.setdefault(key, value)
        else:
            merged.assign(f.name, other)
    return merged


@dataclass
class GradeEntry:
    assignment: str
    score: str
    max_score: str = ''
    category: str = ''

    def to_payload(self) -> Dict[str, str]:
        return {
            'assignment': self.assignment,
            'score': self.score,
            'maxScore': self.max_score,
            'category': self.category,
        }


@dataclass
class GradeRecord:
    """Grades of one student in one class, independent of CanonicalRecord."""
    sourced_id: str
    student_name: str
    class_name: str = ''
    grades: List[GradeEntry] = field(default_factory=list)

    def to_payload(self) -> Dict[str, Any]:
        return {
            'sourcedId': self.sourced_id,
            'studentName': self.student_name,
            'className': self.class_name,
            'grades': [g.to_payload() for g in self.grades],
        }


class AttendanceStatus(str, Enum):
    PRESENT = "present"
    ABSENT = "absent"
    TARDY = "tardy"
    EXCUSED = "excused"


@dataclass
class AttendanceRecord:
    sourced_id: str
    student_name: str
    date: str
    status: AttendanceStatus
    period: Optional[str] = None

    def to_payload(self) -> Dict[str, Any]:
        payload = {
            'sourcedId': self.sourced_id,
            'studentName': self.student_name,
            'date': self.date,
            'status': self.status.value,
        }
        if self.period:
            payload['period'] = self.period
        return payload


@dataclass
class StudentLink:
    """A detail-page link found on a roster page."""
    sourced_id: str
    display_name: str
    url: str


@dataclass
class SyncOutcome:
    """Per-run batch accounting."""
    success_count: int = 0
    failed_count: int = 0
    errors: List[str] = field(default_factory=list)
    failed_record_ids: List[str] = field(default_factory=list)

    @property
    def status(self) -> str:
        if self.failed_count == 0:
            return 'success'
        if self.success_count == 0:
            return 'failed'
        return 'partial'

    @property
    def first_error(self) -> Optional[str]:
        return self.errors[0] if self.errors else None

    def to_dict(self) -> Dict[str, Any]:
        return {
            'success': self.success_count,
            'failed': self.failed_count,
            'errors': list(self.errors),
            'status': self.status,
        }

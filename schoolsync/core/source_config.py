"""
Source configuration registry.

Each SIS/LMS platform differs only in data: where its roster container
lives, what its column headers look like, and how student ids appear in
profile links. Parsers are generic and read everything from a SourceProfile.
"""

import re
from enum import Enum
from functools import cached_property
from typing import Dict, List, Optional, Tuple

from pydantic import BaseModel, ConfigDict, Field, field_validator

from schoolsync.integrations.sis.matcher import (
    ColumnMatcher, DEFAULT_COLUMN_PATTERNS, DEFAULT_COMBINED_NAME_PATTERN, build_rules
)


class SourceKind(str, Enum):
    """Supported student-information and learning-management platforms."""
    POWERSCHOOL = "powerschool"
    INFINITE_CAMPUS = "infinite_campus"
    SKYWARD = "skyward"
    CLEVER = "clever"
    CLASSLINK = "classlink"
    AERIES = "aeries"
    GENESIS = "genesis"
    SCHOOLOGY = "schoology"
    CANVAS = "canvas"
    GENERIC = "generic"


class PageKind(str, Enum):
    """Record shape a page carries."""
    ROSTER = "roster"
    EXPORT = "export"
    GRADEBOOK = "gradebook"
    ATTENDANCE = "attendance"
    UNKNOWN = "unknown"


DEFAULT_ID_LINK_PATTERNS: List[str] = [
    r"(?:student(?:id|_id|\.id)?|frn|id)=(\d+)",
    r"/students/(\d+)",
]


class SourceProfile(BaseModel):
    """Data-only description of one platform's markup conventions."""
    kind: SourceKind
    name: str
    id_prefix: str
    hosts: List[str] = Field(default_factory=list)
    table_selectors: List[str] = Field(default_factory=list)
    column_patterns: List[Tuple[str, str]] = Field(default_factory=lambda: list(DEFAULT_COLUMN_PATTERNS))
    combined_name_pattern: Optional[str] = DEFAULT_COMBINED_NAME_PATTERN
    id_link_patterns: List[str] = Field(default_factory=lambda: list(DEFAULT_ID_LINK_PATTERNS))
    card_selectors: List[str] = Field(default_factory=list)
    card_name_selectors: List[str] = Field(default_factory=lambda: ['[class*="name"]', "h3", "h4", ".title"])
    card_grade_selectors: List[str] = Field(default_factory=lambda: ['[class*="grade"]'])
    card_sis_id_selectors: List[str] = Field(default_factory=list)
    card_id_attributes: List[str] = Field(default_factory=lambda: ["data-id", "data-student-id"])
    prefer_cards: bool = False
    gradebook_selectors: List[str] = Field(
        default_factory=lambda: ["table#scoreTable", "table.linkDescList", "#content-main table.grid", ".box-round table"]
    )

    model_config = ConfigDict(frozen=True, ignored_types=(cached_property,))

    @field_validator("id_prefix")
    @classmethod
    def validate_id_prefix(cls, v):
        if not re.fullmatch(r"[a-z0-9]+", v):
            raise ValueError("id_prefix must be lowercase alphanumeric")
        return v

    @field_validator("id_link_patterns")
    @classmethod
    def validate_id_link_patterns(cls, v):
        for pattern in v:
            if re.compile(pattern).groups < 1:
                raise ValueError(f"id link pattern {pattern!r} needs a capture group")
        return v

    @cached_property
    def matcher(self) -> ColumnMatcher:
        return ColumnMatcher(build_rules(self.column_patterns), self.combined_name_pattern)

    @cached_property
    def compiled_id_patterns(self) -> List[re.Pattern]:
        return [re.compile(p, re.IGNORECASE) for p in self.id_link_patterns]

    def extract_link_id(self, href: Optional[str]) -> Optional[str]:
        """Numeric student id from a profile link, if any pattern matches."""
        if not href:
            return None
        for pattern in self.compiled_id_patterns:
            match = pattern.search(href)
            if match:
                return next((g for g in match.groups() if g), None)
        return None


class SourceRegistry:
    """Registry of source profiles, with host-based lookup in fixed order."""

    def __init__(self):
        self._profiles: Dict[SourceKind, SourceProfile] = {}

    def register(self, profile: SourceProfile) -> None:
        self._profiles[profile.kind] = profile

    def get(self, kind: SourceKind) -> SourceProfile:
        return self._profiles.get(kind) or self._profiles[SourceKind.GENERIC]

    def list_profiles(self) -> List[SourceProfile]:
        return list(self._profiles.values())

    def match_host(self, host: str) -> SourceKind:
        """First registered profile whose host keyword occurs in ``host``."""
        host = (host or "").lower()
        for profile in self._profiles.values():
            if any(keyword in host for keyword in profile.hosts):
                return profile.kind
        return SourceKind.GENERIC


# Default profiles, registered in host-matching priority order
DEFAULT_PROFILES = [
    SourceProfile(
        kind=SourceKind.POWERSCHOOL,
        name="PowerSchool",
        id_prefix="ps",
        hosts=["powerschool"],
        table_selectors=["table.linkDescList", "table#studentsTable", "table.grid", "#content-main table", ".box-round table"],
        id_link_patterns=[
            r"/students/(\d+)",
            r"studentid=(\d+)",
            r"frn=(\d+)",
            r"/guardian/students\.html\?.*id=(\d+)",
            r"(?:student(?:id|_id|\.id)?|id)=(\d+)",
        ],
    ),
    SourceProfile(
        kind=SourceKind.INFINITE_CAMPUS,
        name="Infinite Campus",
        id_prefix="ic",
        hosts=["infinitecampus", "campus"],
        table_selectors=["table.data-grid", "table.roster-table", "#studentSearchResults table", ".search-results table", "table.ccDataGrid", "#content table"],
        column_patterns=[
            ("sourced_id", r"student.?(?:number|id)|person.?id|id"),
            ("last_name", r"last.?name|surname"),
            ("first_name", r"first.?name|given"),
            ("grade_level", r"grade|gr"),
            ("home_room", r"home.?room|homeroom|section"),
            ("enroll_status", r"status|enroll"),
            ("email", r"email|e.?mail"),
            ("school_id", r"school|building|campus"),
        ],
        combined_name_pattern=r"name|student",
        id_link_patterns=[r"personID=(\d+)", r"/person/(\d+)", r"/student/(\d+)"],
    ),
    SourceProfile(
        kind=SourceKind.SKYWARD,
        name="Skyward",
        id_prefix="sw",
        hosts=["skyward"],
        table_selectors=["table.sfDataTable", "table#gridStudents", "#dtStud table", ".gridContainer table", "table.DataGrid", "#contentArea table"],
        column_patterns=[
            ("sourced_id", r"stu.?(?:id|num)|other.?id|id.?number|namelinkid"),
            ("last_name", r"last|lname|last.?name"),
            ("first_name", r"first|fname|first.?name"),
            ("grade_level", r"gr|grade|grd"),
            ("home_room", r"home.?room|hr|room"),
            ("enroll_status", r"status|enroll|entry"),
            ("email", r"email|e.?mail"),
            ("school_id", r"school|entity|building"),
        ],
        id_link_patterns=[r"stuID=(\d+)", r"studentId=(\d+)", r"/student/(\d+)"],
    ),
    SourceProfile(
        kind=SourceKind.CLEVER,
        name="Clever",
        id_prefix="cl",
        hosts=["clever"],
        table_selectors=["table.students-table", 'table[data-testid="students-table"]', ".roster-list table", ".student-list table", "#main-content table"],
        column_patterns=[
            ("sourced_id", r"sis.?id|student.?id|clever.?id|id"),
            ("last_name", r"last.?name|surname"),
            ("first_name", r"first.?name|given"),
            ("grade_level", r"grade|gr"),
            ("home_room", r"section|homeroom|class"),
            ("email", r"email|e.?mail"),
            ("school_id", r"school"),
        ],
        combined_name_pattern=r"name|student",
        id_link_patterns=[r"/students/(\d+)", r"/student/(\d+)"],
        card_selectors=['[class*="student-card"]', '[class*="StudentCard"]', '[data-testid*="student"]'],
    ),
    SourceProfile(
        kind=SourceKind.CLASSLINK,
        name="ClassLink",
        id_prefix="cll",
        hosts=["classlink", "oneroster"],
        table_selectors=['[role="grid"]', '[role="table"]'],
        column_patterns=[
            ("sourced_id", r"id|sis.?id|student.?id|sourced.?id"),
            ("last_name", r"last|last.?name|family"),
            ("first_name", r"first|first.?name|given"),
            ("grade_level", r"grade|gr"),
            ("email", r"email"),
            ("home_room", r"section|class|homeroom"),
        ],
        combined_name_pattern=r"name|student",
        id_link_patterns=[r"/users?/(\d+)", r"/students?/(\d+)"],
    ),
    SourceProfile(
        kind=SourceKind.AERIES,
        name="Aeries",
        id_prefix="ae",
        hosts=["aeries"],
        table_selectors=["#StudentListGrid table", "table.StudentList", "#MainContent table", ".aeries-grid table", 'table[id*="Student"]'],
        column_patterns=[
            ("sourced_id", r"stu.?(?:id|num)|perm.?id|student.?number|id"),
            ("last_name", r"last.?name|lname"),
            ("first_name", r"first.?name|fname"),
            ("grade_level", r"gr|grade"),
            ("home_room", r"hr|homeroom|home.?room|teacher"),
            ("enroll_status", r"status|stat|enroll"),
            ("email", r"email"),
            ("school_id", r"school|sch"),
        ],
        combined_name_pattern=r"name|student",
        id_link_patterns=[r"(?:ID|STU|perm)=(\d+)", r"/student/(\d+)"],
    ),
    SourceProfile(
        kind=SourceKind.GENESIS,
        name="Genesis",
        id_prefix="gen",
        hosts=["genesis"],
        table_selectors=["table.list", "table#students", "#contentArea table", ".mainContent table", 'table[class*="student"]'],
        column_patterns=[
            ("sourced_id", r"stu.?(?:id|num)|student.?id|id"),
            ("last_name", r"last.?name"),
            ("first_name", r"first.?name"),
            ("grade_level", r"gr|grade"),
            ("home_room", r"hr|homeroom|home.?room"),
            ("enroll_status", r"status"),
            ("email", r"email"),
        ],
        combined_name_pattern=r"name|student",
        id_link_patterns=[r"student_id=(\d+)", r"studentid=(\d+)"],
    ),
    SourceProfile(
        kind=SourceKind.SCHOOLOGY,
        name="Schoology",
        id_prefix="sc",
        hosts=["schoology"],
        column_patterns=[
            ("sourced_id", r"id|sis|student.?id"),
            ("last_name", r"last|last.?name"),
            ("first_name", r"first|first.?name"),
            ("grade_level", r"grade"),
            ("email", r"email"),
        ],
        combined_name_pattern=r"name",
        id_link_patterns=[r"/user/(\d+)"],
        card_selectors=[".enrollment-list li", ".members-list li", '[class*="member-item"]', '[class*="UserRow"]'],
        card_name_selectors=[".name", '[class*="Name"]', "a"],
    ),
    SourceProfile(
        kind=SourceKind.CANVAS,
        name="Canvas",
        id_prefix="canvas",
        hosts=["instructure", "canvas"],
        table_selectors=[".gradebook table", "#gradebook_grid", '[class*="GradebookGrid"]'],
        column_patterns=[
            ("sourced_id", r"sis.?(?:user.?)?id|login.?id|id"),
            ("last_name", r"last.?name"),
            ("first_name", r"first.?name"),
            ("email", r"email"),
            ("home_room", r"section"),
        ],
        combined_name_pattern=r"name|student|student.?name",
        id_link_patterns=[r"/users/(\d+)"],
        card_selectors=[".roster .user_name", ".student_roster .student", '[class*="RosterUser"]'],
        card_name_selectors=["a", ".name", '[class*="name"]'],
        card_grade_selectors=[],
        card_sis_id_selectors=['[class*="sis"]', '[class*="SIS"]'],
        prefer_cards=True,
    ),
    SourceProfile(
        kind=SourceKind.GENERIC,
        name="Generic",
        id_prefix="ps",
        id_link_patterns=[r"/students?/(\d+)", r"/profile/(\d+)", r"(?:student(?:id|_id)?|id)=(\d+)"],
    ),
]


def create_default_registry() -> SourceRegistry:
    registry = SourceRegistry()
    for profile in DEFAULT_PROFILES:
        registry.register(profile)
    return registry


# Global registry instance
source_registry = create_default_registry()

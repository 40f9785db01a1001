"""
Column/label matcher: maps free-text headers and labels onto canonical
record fields through ordered pattern rules.
"""

import re
from dataclasses import dataclass
from typing import Dict, Iterable, List, Optional, Pattern, Sequence, Tuple, Union


# Pseudo-field for a "Name" column holding first and last name together
COMBINED_NAME = "_combined_name"

DEFAULT_COMBINED_NAME_PATTERN = r"name|student.?name|student"

_TRAILING_PUNCTUATION = re.compile(r"[\s:*]+$")


@dataclass(frozen=True)
class FieldRule:
    """A canonical field and the pattern its labels must fully match."""
    field: str
    pattern: Pattern

    @classmethod
    def of(cls, field: str, pattern: Union[str, Pattern]) -> "FieldRule":
        if isinstance(pattern, str):
            pattern = re.compile(pattern, re.IGNORECASE)
        return cls(field, pattern)

    def matches(self, label: str) -> bool:
        return self.pattern.fullmatch(label) is not None


def build_rules(pairs: Iterable[Tuple[str, Union[str, Pattern]]]) -> List[FieldRule]:
    return [FieldRule.of(field, pattern) for field, pattern in pairs]


def normalize_label(text: Optional[str]) -> str:
    """Collapse whitespace and strip trailing colons/asterisks."""
    if not text:
        return ""
    collapsed = " ".join(text.split())
    return _TRAILING_PUNCTUATION.sub("", collapsed).strip()


def split_combined_name(text: Optional[str]) -> Tuple[str, str]:
    """
    Split a combined name cell into (first, last).

    "Last, First" when a comma is present, otherwise the first token is the
    given name and the rest the surname. Multi-word surnames without a comma
    split wrongly ("Mary Ann Smith" -> "Mary", "Ann Smith").
    """
    text = " ".join((text or "").split())
    if not text:
        return "", ""
    if "," in text:
        last, _, first = text.partition(",")
        # Anything after a second comma (suffixes, etc.) stays with the given name
        return first.strip().strip(","), last.strip()
    parts = text.split(" ")
    return parts[0], " ".join(parts[1:])


class ColumnMatcher:
    """Ordered rule matcher with a combined-name catch-all tried last."""

    def __init__(
        self,
        rules: Sequence[FieldRule],
        combined_name_pattern: Optional[Union[str, Pattern]] = DEFAULT_COMBINED_NAME_PATTERN
    ):
        self.rules = list(rules)
        self.combined_rule = (
            FieldRule.of(COMBINED_NAME, combined_name_pattern)
            if combined_name_pattern else None
        )

    def match(self, label: Optional[str]) -> Optional[str]:
        """First matching canonical field, COMBINED_NAME, or None."""
        cleaned = normalize_label(label)
        if not cleaned:
            return None
        for rule in self.rules:
            if rule.matches(cleaned):
                return rule.field
        if self.combined_rule and self.combined_rule.matches(cleaned):
            return COMBINED_NAME
        return None

    def map_headers(self, labels: Sequence[str]) -> Dict[int, str]:
        """Column index -> field for every header label that matches."""
        mapping = {}
        for index, label in enumerate(labels):
            field = self.match(label)
            if field:
                mapping[index] = field
        return mapping


# PowerSchool-style roster columns, also the generic default
DEFAULT_COLUMN_PATTERNS: List[Tuple[str, str]] = [
    ("sourced_id", r"student.?(?:number|id)|id|sis.?id|sourced.?id"),
    ("last_name", r"last.?name|lname|surname|family.?name"),
    ("first_name", r"first.?name|fname|given.?name|preferred.?name"),
    ("grade_level", r"grade|gr|grade.?level|year"),
    ("home_room", r"home.?room|hr|section|room"),
    ("enroll_status", r"status|enroll.?status|enrollment"),
    ("email", r"email|e-mail|student.?email"),
    ("school_id", r"school|school.?id"),
    ("gender", r"gender|sex"),
    ("dob", r"dob|date.?of.?birth|birth.?date|birthday"),
]

DEFAULT_COLUMN_RULES = build_rules(DEFAULT_COLUMN_PATTERNS)

# Label patterns for student detail pages
PROFILE_FIELD_RULES = build_rules([
    # Demographics
    ("sourced_id", r"student.?(?:number|id)|sis.?id|id.?number|perm.?id|dcid"),
    ("first_name", r"first.?name|legal.?first|preferred.?name"),
    ("last_name", r"last.?name|legal.?last|surname"),
    ("dob", r"date.?of.?birth|dob|birth.?date|birthday"),
    ("gender", r"gender|sex"),
    ("ethnicity", r"ethnicity|race|ethnic"),
    ("language", r"home.?language|primary.?language|language|ell"),
    ("grade_level", r"grade|grade.?level|gr|current.?grade"),
    # Contact
    ("address", r"address|home.?address|street|mailing.?address|residence"),
    ("phone", r"phone|home.?phone|student.?phone|cell"),
    ("email", r"email|student.?email|e.?mail"),
    # Guardian
    ("guardian_name", r"parent|guardian|mother|father|parent.?(?:1|name)|guardian.?name|emergency.?1.?name|custodial"),
    ("guardian_email", r"parent.?email|guardian.?email|family.?email"),
    ("guardian_phone", r"parent.?phone|guardian.?phone|family.?phone|mother.?phone|father.?phone"),
    # Emergency
    ("emergency_contact", r"emergency.?contact|emergency.?name|emergency.?(?:2|3)"),
    ("emergency_phone", r"emergency.?phone|emergency.?(?:2|3).?phone"),
    # School
    ("home_room", r"home.?room|homeroom|hr|advisory|section"),
    ("school_id", r"school|building|campus|school.?name"),
    ("enroll_status", r"enroll.?status|status|enrollment|active"),
    ("enroll_date", r"enroll.?date|entry.?date|admission.?date"),
    ("exit_date", r"exit.?date|withdrawal.?date|leave.?date"),
    # Academic
    ("gpa", r"gpa|cumulative.?gpa|grade.?point|weighted.?gpa"),
    ("credits", r"credits|total.?credits|earned.?credits"),
    # Special programs
    ("iep", r"iep|special.?ed|sped|individualized"),
    ("section504", r"504|section.?504|504.?plan|accommodation"),
    ("lunch_status", r"lunch|free.?(?:reduced)?|meal.?status|frl"),
    ("transportation", r"transport|bus|transportation|route"),
])

profile_matcher = ColumnMatcher(PROFILE_FIELD_RULES, combined_name_pattern=None)

"""
CSV export parser for Quick Export style downloads.

Export headers are standardized enough that they are looked up in a fixed
table rather than matched by pattern.
"""

import logging
import re
from typing import Dict, List, Optional

from schoolsync.core.source_config import SourceProfile, SourceKind, source_registry
from schoolsync.integrations.sis.document import Document
from schoolsync.integrations.sis.error_handler import ParseFailure, sync_error_handler
from schoolsync.models.records import CanonicalRecord
from schoolsync.integrations.sis.parsers.base import synthesize_id


logger = logging.getLogger(__name__)

CSV_COLUMN_MAP: Dict[str, str] = {
    # Student number
    "student_number": "sourced_id",
    "studentnumber": "sourced_id",
    "student number": "sourced_id",
    "id": "sourced_id",
    "student_id": "sourced_id",
    "dcid": "sourced_id",
    # Names
    "last_name": "last_name",
    "lastname": "last_name",
    "last name": "last_name",
    "last": "last_name",
    "first_name": "first_name",
    "firstname": "first_name",
    "first name": "first_name",
    "first": "first_name",
    # Enrollment
    "grade_level": "grade_level",
    "gradelevel": "grade_level",
    "grade level": "grade_level",
    "grade": "grade_level",
    "gr": "grade_level",
    "home_room": "home_room",
    "homeroom": "home_room",
    "home room": "home_room",
    "hr": "home_room",
    "section": "home_room",
    "enroll_status": "enroll_status",
    "enrollstatus": "enroll_status",
    "enrollment_status": "enroll_status",
    "status": "enroll_status",
    # Contact and demographics
    "student_email": "email",
    "email": "email",
    "email_addr": "email",
    "schoolid": "school_id",
    "school_id": "school_id",
    "school": "school_id",
    "dob": "dob",
    "date_of_birth": "dob",
    "dateofbirth": "dob",
    "gender": "gender",
    "sex": "gender",
}

BOM = "\ufeff"


def tokenize_csv(text: str) -> List[List[str]]:
    """
    Split CSV text into rows of fields (RFC 4180).

    Handles doubled-quote escapes, commas and newlines inside quoted
    fields, and both CRLF and LF line endings. A leading byte-order mark
    is dropped.
    """
    if text.startswith(BOM):
        text = text[len(BOM):]

    rows: List[List[str]] = []
    row: List[str] = []
    field: List[str] = []
    in_quotes = False
    pending = False
    i = 0
    length = len(text)

    while i < length:
        ch = text[i]
        if in_quotes:
            if ch == '"':
                if i + 1 < length and text[i + 1] == '"':
                    field.append('"')
                    i += 1
                else:
                    in_quotes = False
            else:
                field.append(ch)
        elif ch == '"':
            in_quotes = True
            pending = True
        elif ch == ",":
            row.append("".join(field))
            field = []
            pending = True
        elif ch in "\r\n":
            if pending or field:
                row.append("".join(field))
            if row:
                rows.append(row)
            row, field, pending = [], [], False
            if ch == "\r" and i + 1 < length and text[i + 1] == "\n":
                i += 1
        else:
            field.append(ch)
            pending = True
        i += 1

    if pending or field:
        row.append("".join(field))
    if row:
        rows.append(row)
    return rows


def normalize_header(header: str) -> str:
    return " ".join(header.split()).lower()


def map_csv_headers(headers: List[str]) -> Dict[int, str]:
    mapping = {}
    for index, header in enumerate(headers):
        field = CSV_COLUMN_MAP.get(normalize_header(header))
        if field:
            mapping[index] = field
    return mapping


class CSVExportParser:
    """Parses CSV export text into canonical records."""

    def __init__(self, profile: Optional[SourceProfile] = None):
        self.profile = profile or source_registry.get(SourceKind.POWERSCHOOL)

    def parse(self, text: str) -> List[CanonicalRecord]:
        try:
            return self._parse(text or "")
        except Exception as e:
            sync_error_handler.log_error(
                ParseFailure(f"CSV export could not be parsed: {e}", original_exception=e),
                {'source': self.profile.kind.value}
            )
            return []

    def _parse(self, text: str) -> List[CanonicalRecord]:
        rows = tokenize_csv(text)
        if len(rows) < 2:
            return []

        headers = [h.strip() for h in rows[0]]
        mapping = map_csv_headers(headers)
        if not mapping:
            logger.debug("CSV export has no recognizable columns")
            return []

        records = []
        for row_index, row in enumerate(rows[1:], start=1):
            if not any(value.strip() for value in row):
                continue

            record = CanonicalRecord()
            for column, field in mapping.items():
                if column < len(row):
                    record.assign(field, row[column])
            if not record.has_name:
                continue

            for column, value in enumerate(row):
                if column not in mapping and column < len(headers):
                    record.add_extra(headers[column], value)

            if not record.sourced_id:
                record.sourced_id = synthesize_id(
                    self.profile.id_prefix, record.last_name, record.first_name, row_index
                )
            records.append(record)
        return records


def find_csv_on_page(document: Document) -> Optional[str]:
    """
    Locate CSV on an export page.

    Returns the absolute URL of a linked ``.csv`` download, or the inline
    CSV text of a textarea, or None.
    """
    for link in document.select('a[href*=".csv"], a[href*="export"], a[download]'):
        href = link.get("href") or ""
        if re.search(r"\.csv", href, re.IGNORECASE):
            return document.resolve(href)

    for textarea in document.select("textarea"):
        value = textarea.get_text()
        if "," in value and len(value.split("\n")) > 2:
            return value
    return None

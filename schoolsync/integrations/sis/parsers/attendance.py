"""
Attendance grid parser.

Multi-day grids have one column per date; single-day views have no date
columns and record the first recognizable mark for the observation date.
"""

import re
from datetime import date
from typing import List, Optional

from schoolsync.core.source_config import SourceProfile
from schoolsync.integrations.sis.document import Document, node_text, row_cells, table_rows
from schoolsync.models.records import AttendanceRecord, AttendanceStatus
from schoolsync.integrations.sis.parsers.base import BaseParser, query_link_id, synthesize_name_id


STATUS_MAP = {
    "p": AttendanceStatus.PRESENT,
    "present": AttendanceStatus.PRESENT,
    "✓": AttendanceStatus.PRESENT,
    "✔": AttendanceStatus.PRESENT,
    "a": AttendanceStatus.ABSENT,
    "absent": AttendanceStatus.ABSENT,
    "✗": AttendanceStatus.ABSENT,
    "✘": AttendanceStatus.ABSENT,
    "x": AttendanceStatus.ABSENT,
    "t": AttendanceStatus.TARDY,
    "tardy": AttendanceStatus.TARDY,
    "late": AttendanceStatus.TARDY,
    "e": AttendanceStatus.EXCUSED,
    "excused": AttendanceStatus.EXCUSED,
    "ea": AttendanceStatus.EXCUSED,
}

ISO_DATE = re.compile(r"(\d{4})-(\d{2})-(\d{2})")
SHORT_DATE = re.compile(r"(\d{1,2})[/-](\d{1,2})(?:[/-](\d{2,4}))?")

MIN_ROWS = 3


def parse_status(text: str) -> Optional[AttendanceStatus]:
    return STATUS_MAP.get(text.strip().lower())


def normalize_date(text: str, observed_on: date) -> Optional[str]:
    """
    ISO 8601 date from a column header, or None when it is not a date.

    Month/day headers take the observation year; two-digit years are
    treated as 20xx. Headers that look like dates but are not valid
    calendar days (13/45, 2/30) also give None.
    """
    iso = ISO_DATE.search(text)
    if iso:
        parts = iso.groups()
    else:
        short = SHORT_DATE.search(text)
        if not short:
            return None
        month, day, year = short.groups()
        if year is None:
            year = str(observed_on.year)
        elif len(year) == 2:
            year = "20" + year
        parts = (year, month, day)
    try:
        return date(int(parts[0]), int(parts[1]), int(parts[2])).isoformat()
    except ValueError:
        return None


def looks_like_date(text: str) -> bool:
    return bool(ISO_DATE.search(text) or SHORT_DATE.search(text))


class AttendanceParser(BaseParser):

    def __init__(self, profile: SourceProfile, observed_on: Optional[date] = None):
        super().__init__(profile)
        self.observed_on = observed_on

    def _parse(self, document: Document) -> List[AttendanceRecord]:
        table = document.largest_table(MIN_ROWS)
        if table is None:
            return []
        rows = table_rows(table)
        observed_on = self.observed_on or date.today()

        date_columns = []
        multi_day = False
        for index, cell in enumerate(row_cells(rows[0])):
            if index == 0:
                continue
            header = node_text(cell)
            multi_day = multi_day or looks_like_date(header)
            iso = normalize_date(header, observed_on)
            if iso:
                date_columns.append((index, iso))

        records = []
        for position in range(1, len(rows)):
            cells = row_cells(rows[position])
            if len(cells) < 2:
                continue
            student_name = node_text(cells[0])
            if not student_name:
                continue
            sourced_id = query_link_id(cells[0]) or synthesize_name_id(
                self.profile.id_prefix, student_name, position
            )

            if not multi_day:
                for cell in cells[1:]:
                    status = parse_status(node_text(cell))
                    if status:
                        records.append(AttendanceRecord(
                            sourced_id=sourced_id,
                            student_name=student_name,
                            date=observed_on.isoformat(),
                            status=status
                        ))
                        break
                continue

            for index, iso in date_columns:
                if index >= len(cells):
                    continue
                status = parse_status(node_text(cells[index]))
                if status:
                    records.append(AttendanceRecord(
                        sourced_id=sourced_id,
                        student_name=student_name,
                        date=iso,
                        status=status
                    ))
        return records

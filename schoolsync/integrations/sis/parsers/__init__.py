"""
Source parsers.

Every variant is driven by a SourceProfile; sources differ only in data.
"""

from datetime import date
from typing import Optional, Union

from schoolsync.core.source_config import PageKind, SourceKind, SourceRegistry, source_registry
from .base import BaseParser, synthesize_id
from .table import TableRecordParser
from .cards import CardRecordParser
from .roster import RosterParser
from .csv_export import CSVExportParser, find_csv_on_page, tokenize_csv
from .gradebook import GradebookParser
from .attendance import AttendanceParser


def get_parser(
    source_kind: SourceKind,
    page_kind: PageKind,
    registry: Optional[SourceRegistry] = None,
    observed_on: Optional[date] = None
) -> Optional[Union[BaseParser, CSVExportParser]]:
    """Parser variant for a classification; None for unknown pages."""
    profile = (registry or source_registry).get(source_kind)
    if page_kind == PageKind.ROSTER:
        return RosterParser(profile)
    if page_kind == PageKind.EXPORT:
        return CSVExportParser(profile)
    if page_kind == PageKind.GRADEBOOK:
        return GradebookParser(profile)
    if page_kind == PageKind.ATTENDANCE:
        return AttendanceParser(profile, observed_on=observed_on)
    return None


__all__ = [
    'BaseParser',
    'TableRecordParser',
    'CardRecordParser',
    'RosterParser',
    'CSVExportParser',
    'GradebookParser',
    'AttendanceParser',
    'find_csv_on_page',
    'tokenize_csv',
    'synthesize_id',
    'get_parser',
]

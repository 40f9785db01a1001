"""
Table engine shared by every table-based roster view (PowerSchool,
Infinite Campus, Skyward, Clever, ClassLink grids, Aeries, Genesis,
Schoology, Canvas and the generic fallback).
"""

import logging
from typing import Dict, List, Optional, Tuple

from bs4.element import Tag

from schoolsync.core.source_config import SourceProfile
from schoolsync.integrations.sis.document import (
    Document, is_table_like, node_text, row_cells, table_rows
)
from schoolsync.integrations.sis.matcher import COMBINED_NAME, split_combined_name
from schoolsync.models.records import CanonicalRecord
from schoolsync.integrations.sis.parsers.base import BaseParser, synthesize_id


logger = logging.getLogger(__name__)

# Fallback container must have more than this many rows
MIN_FALLBACK_ROWS = 3


class TableRecordParser(BaseParser):
    """Header-mapped extraction of one record per table row."""

    def __init__(self, profile: SourceProfile, keep_extra: bool = True):
        super().__init__(profile)
        self.keep_extra = keep_extra

    def find_container(self, document: Document) -> Optional[Tag]:
        """First profile selector hit, else the largest table or grid."""
        for selector in self.profile.table_selectors:
            for node in document.select(selector):
                if is_table_like(node):
                    return node
                nested = next(
                    (child for child in node.find_all(True) if is_table_like(child)),
                    None
                )
                if nested is not None:
                    return nested
        return document.largest_table(MIN_FALLBACK_ROWS)

    def locate_header(self, rows: List[Tag]) -> Tuple[int, Dict[int, str]]:
        """Header row index and its column mapping; row 1 is tried if row 0 maps nothing."""
        matcher = self.profile.matcher
        for index in (0, 1):
            if index >= len(rows):
                break
            labels = [node_text(cell) for cell in row_cells(rows[index])]
            mapping = matcher.map_headers(labels)
            if mapping:
                return index, mapping
        return 0, {}

    def _parse(self, document: Document) -> List[CanonicalRecord]:
        container = self.find_container(document)
        if container is None:
            return []

        rows = table_rows(container)
        if len(rows) < 2:
            return []

        header_index, mapping = self.locate_header(rows)
        if not mapping:
            logger.debug(f"No recognizable header columns for {self.profile.name}")
            return []

        headers = [node_text(cell) for cell in row_cells(rows[header_index])]
        records = []
        for position in range(header_index + 1, len(rows)):
            row = rows[position]
            cells = row_cells(row)
            if not cells:
                continue
            record = self.read_row(row, cells, mapping, headers, position - header_index)
            if record is not None:
                records.append(record)
        return records

    def read_row(
        self,
        row: Tag,
        cells: List[Tag],
        mapping: Dict[int, str],
        headers: List[str],
        row_index: int
    ) -> Optional[CanonicalRecord]:
        record = CanonicalRecord()
        id_cell = None
        combined_cells = []

        for column, field in sorted(mapping.items()):
            if column >= len(cells):
                continue
            cell = cells[column]
            if field == COMBINED_NAME:
                combined_cells.append(cell)
            elif field == "sourced_id":
                id_cell = id_cell if id_cell is not None else cell
            else:
                record.assign(field, node_text(cell))

        # Specific name columns win over a combined "Name" column
        for cell in combined_cells:
            first, last = split_combined_name(node_text(cell))
            record.assign("first_name", first)
            record.assign("last_name", last)

        if not record.has_name:
            return None

        if id_cell is not None:
            record.assign("sourced_id", self.link_id(id_cell) or node_text(id_cell))
        if not record.sourced_id:
            record.assign("sourced_id", self.link_id(row))
        if not record.sourced_id:
            record.sourced_id = synthesize_id(
                self.profile.id_prefix, record.last_name, record.first_name, row_index
            )

        if self.keep_extra:
            for column, cell in enumerate(cells):
                if column in mapping or column >= len(headers):
                    continue
                record.add_extra(headers[column], node_text(cell))

        return record

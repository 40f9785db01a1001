"""
Gradebook grid parser: one GradeRecord per student row, one GradeEntry per
assignment column.
"""

import re
from typing import List, Optional, Tuple

from bs4.element import Tag

from schoolsync.integrations.sis.document import Document, is_table_like, node_text, row_cells, table_rows
from schoolsync.models.records import GradeEntry, GradeRecord
from schoolsync.integrations.sis.parsers.base import BaseParser, query_link_id, synthesize_name_id


SUMMARY_COLUMN_PATTERN = re.compile(r"total|final|grade|avg|average|%", re.IGNORECASE)
FRACTION_SCORE = re.compile(r"(\d+(?:\.\d+)?)\s*/\s*(\d+(?:\.\d+)?)")
PERCENT_SCORE = re.compile(r"(\d+(?:\.\d+)?)%")
CLASS_NAME_SELECTOR = ".current_class, .breadcrumb .active, h1, h2"


def parse_score(text: str) -> Tuple[str, str]:
    """(score, max_score) from "8/10", "80%" or a raw mark."""
    fraction = FRACTION_SCORE.fullmatch(text)
    if fraction:
        return fraction.group(1), fraction.group(2)
    percent = PERCENT_SCORE.fullmatch(text)
    if percent:
        return percent.group(1), "100"
    return text, ""


class GradebookParser(BaseParser):

    def find_table(self, document: Document) -> Optional[Tag]:
        for selector in self.profile.gradebook_selectors:
            for node in document.select(selector):
                if is_table_like(node):
                    return node
        return document.largest_table(min_rows=1)

    def _parse(self, document: Document) -> List[GradeRecord]:
        table = self.find_table(document)
        if table is None:
            return []
        rows = table_rows(table)
        if len(rows) < 2:
            return []

        # First column holds the student, the rest are assignments
        assignments = []
        for index, cell in enumerate(row_cells(rows[0])):
            label = node_text(cell)
            if index == 0 or not label or SUMMARY_COLUMN_PATTERN.fullmatch(label):
                continue
            assignments.append((index, label))

        class_name = node_text(document.select_one(CLASS_NAME_SELECTOR))

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

            grades = []
            for index, assignment in assignments:
                if index >= len(cells):
                    continue
                text = node_text(cells[index])
                if not text:
                    continue
                score, max_score = parse_score(text)
                grades.append(GradeEntry(assignment=assignment, score=score, max_score=max_score))

            if grades:
                records.append(GradeRecord(
                    sourced_id=sourced_id,
                    student_name=student_name,
                    class_name=class_name,
                    grades=grades
                ))
        return records

"""
Student detail-page scraper.

Profile pages have no common layout, so several label/value strategies run
in priority order. Each produces a partial DeepRecord and the partials are
merged with first-match-wins semantics.
"""

import logging
import re
from typing import Callable, List, Optional, Union

from bs4.element import Tag

from schoolsync.integrations.sis.document import Document, is_table_like, node_text, row_cells, table_rows
from schoolsync.integrations.sis.matcher import ColumnMatcher, normalize_label, profile_matcher, split_combined_name
from schoolsync.models.records import DeepRecord, merge_records


logger = logging.getLogger(__name__)

MAX_VALUE_LENGTH = 500
SCHEDULE_SIBLING_LIMIT = 5

LABEL_SELECTOR = 'label, .field-label, [class*="label"], [class*="Label"]'
READONLY_SELECTOR = 'input[readonly], input[disabled], input.readonly, span.fieldValue, [class*="fieldValue"]'
FIELD_CONTAINER_SELECTOR = '.field, .form-group, [class*="field"]'
FIELD_LABEL_SELECTOR = 'label, .label, [class*="label"]'
SECTION_HEADING_SELECTOR = 'h2, h3, h4, .section-header, [class*="sectionHeader"]'
NAME_HEADING_SELECTOR = 'h1, .student-name, [class*="studentName"], [class*="StudentName"]'

SCHEDULE_HEADING_PATTERN = re.compile(r"schedule|classes|courses|period", re.IGNORECASE)
SCHEDULE_HEADER_ROW_PATTERN = re.compile(r"^(?:period|time|class)", re.IGNORECASE)


def _field_value(node: Tag) -> str:
    if node.name in ("input", "textarea", "select") and node.get("value"):
        return node["value"].strip()
    return node_text(node)


class DetailPageScraper:
    """Applies the label/value strategies to one profile page."""

    def __init__(self, matcher: Optional[ColumnMatcher] = None):
        self.matcher = matcher or profile_matcher
        self.strategies: List[Callable[[Document, DeepRecord], None]] = [
            self.scan_table_rows,
            self.scan_definition_lists,
            self.scan_labels,
            self.scan_readonly_fields,
            self.scan_schedule,
        ]

    def scrape(self, document: Document, sourced_id: str) -> DeepRecord:
        record = DeepRecord(sourced_id=sourced_id)
        for strategy in self.strategies:
            partial = DeepRecord()
            strategy(document, partial)
            record = merge_records(record, partial)

        if not record.has_name:
            heading = document.select_one(NAME_HEADING_SELECTOR)
            if heading is not None:
                first, last = split_combined_name(node_text(heading))
                record.assign("first_name", first)
                record.assign("last_name", last)
        return record

    def apply(self, record: DeepRecord, label: str, value: str) -> None:
        """Route one label/value pair to a field, or to ``extra``."""
        label = normalize_label(label)
        value = (value or "").strip()
        if not label or not value or len(value) > MAX_VALUE_LENGTH:
            return
        field = self.matcher.match(label)
        if field:
            record.assign(field, value)
        else:
            record.add_extra(label, value)

    def scan_table_rows(self, document: Document, record: DeepRecord) -> None:
        for table in document.select("table"):
            for row in table_rows(table):
                cells = row_cells(row)
                if len(cells) >= 2:
                    self.apply(record, node_text(cells[0]), node_text(cells[1]))
                th = row.find("th")
                td = row.find("td")
                if th is not None and td is not None:
                    self.apply(record, node_text(th), node_text(td))

    def scan_definition_lists(self, document: Document, record: DeepRecord) -> None:
        for dl in document.select("dl"):
            for dt, dd in zip(dl.find_all("dt"), dl.find_all("dd")):
                self.apply(record, node_text(dt), node_text(dd))

    def scan_labels(self, document: Document, record: DeepRecord) -> None:
        for label in document.select(LABEL_SELECTOR):
            label_text = node_text(label)
            sibling = label.find_next_sibling(True)
            if sibling is not None:
                value = node_text(sibling)
                if value and len(value) < MAX_VALUE_LENGTH:
                    self.apply(record, label_text, value)
            target_id = label.get("for")
            if target_id:
                target = document.soup.find(id=target_id)
                if target is not None:
                    self.apply(record, label_text, _field_value(target))

    def scan_readonly_fields(self, document: Document, record: DeepRecord) -> None:
        for node in document.select(READONLY_SELECTOR):
            value = _field_value(node)
            if not value:
                continue
            key = node.get("id") or node.get("name")
            if key:
                label = document.soup.find("label", attrs={"for": key})
                if label is not None:
                    self.apply(record, node_text(label), value)
                    continue
            container = node.css.closest(FIELD_CONTAINER_SELECTOR)
            if container is not None:
                label = container.select_one(FIELD_LABEL_SELECTOR)
                if label is not None:
                    self.apply(record, node_text(label), value)

    def scan_schedule(self, document: Document, record: DeepRecord) -> None:
        for heading in document.select(SECTION_HEADING_SELECTOR):
            if not SCHEDULE_HEADING_PATTERN.search(node_text(heading)):
                continue
            for sibling in heading.find_next_siblings(True, limit=SCHEDULE_SIBLING_LIMIT):
                if not is_table_like(sibling):
                    continue
                for row in table_rows(sibling):
                    cells = row_cells(row)
                    if len(cells) < 2:
                        continue
                    period = node_text(cells[0])
                    if SCHEDULE_HEADER_ROW_PATTERN.match(period):
                        continue
                    record.add_schedule(period, node_text(cells[1]))
                break


detail_page_scraper = DetailPageScraper()


def scrape_detail_page(page: Union[str, Document], sourced_id: str, url: str = "") -> DeepRecord:
    """Scrape a profile page (HTML text or Document) into a DeepRecord."""
    document = page if isinstance(page, Document) else Document.from_html(page, url)
    return detail_page_scraper.scrape(document, sourced_id)

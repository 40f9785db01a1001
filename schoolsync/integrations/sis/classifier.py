"""
Source classifier: decides which platform a page came from and what kind
of records it carries.
"""

import logging
import re
from typing import Optional, Tuple

from schoolsync.core.source_config import PageKind, SourceKind, SourceRegistry, source_registry
from schoolsync.integrations.sis.document import Document, node_text, table_rows


logger = logging.getLogger(__name__)

# Path patterns, checked in this order
PAGE_PATH_PATTERNS = [
    (PageKind.EXPORT, re.compile(r"export|quickexport|data.?export", re.IGNORECASE)),
    (PageKind.GRADEBOOK, re.compile(r"gradebook|scores|assignment|grades", re.IGNORECASE)),
    (PageKind.ATTENDANCE, re.compile(r"attendance", re.IGNORECASE)),
    (PageKind.ROSTER, re.compile(
        r"roster|studentlist|students|classroster|people|users|members|enrollment|census",
        re.IGNORECASE
    )),
]

ROSTER_HEADER_PATTERN = re.compile(r"name|student|first|last", re.IGNORECASE)
ROSTER_MIN_ROWS = 5

# Markers of pages that never carry records
BLOCKED_PAGE_SELECTOR = ".login-page, #loginForm, .errorPage"


class SourceClassifier:
    """Classifies documents into (source kind, page kind)."""

    def __init__(self, registry: Optional[SourceRegistry] = None):
        self.registry = registry or source_registry

    def classify(self, document: Document) -> Tuple[SourceKind, PageKind]:
        source_kind = self.detect_source(document)
        page_kind = self.detect_page(document)
        logger.debug(f"Classified {document.url or '<inline>'} as {source_kind.value}/{page_kind.value}")
        return source_kind, page_kind

    def detect_source(self, document: Document) -> SourceKind:
        return self.registry.match_host(document.host)

    def detect_page(self, document: Document) -> PageKind:
        if document.select_one(BLOCKED_PAGE_SELECTOR) is not None:
            return PageKind.UNKNOWN

        path = document.path
        for page_kind, pattern in PAGE_PATH_PATTERNS:
            if pattern.search(path):
                return page_kind

        # Structural fallback: a big table whose first row looks like a header
        for table in document.tables():
            rows = table_rows(table)
            if len(rows) > ROSTER_MIN_ROWS and ROSTER_HEADER_PATTERN.search(node_text(rows[0])):
                return PageKind.ROSTER

        return PageKind.UNKNOWN


source_classifier = SourceClassifier()

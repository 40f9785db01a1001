"""
Queryable document wrapper used by the classifier, parsers and crawler.

Wraps a BeautifulSoup tree together with the URL it was loaded from, and
knows how to treat both plain ``<table>`` markup and ARIA grids
(``role="grid"``/``role="table"``) as row/cell structures.
"""

import logging
from typing import List, Optional
from urllib.parse import urljoin, urlparse

from bs4 import BeautifulSoup
from bs4.element import Tag


logger = logging.getLogger(__name__)

GRID_ROLES = ("grid", "table", "treegrid")
CELL_ROLES = ("cell", "gridcell", "columnheader", "rowheader")


def node_text(node: Optional[Tag]) -> str:
    """Whitespace-collapsed text content of a node."""
    if node is None:
        return ""
    return " ".join(node.get_text(" ", strip=True).split())


def is_table_like(node: Tag) -> bool:
    return node.name == "table" or (node.get("role") or "").lower() in GRID_ROLES


def _owning_container(node: Tag) -> Optional[Tag]:
    for parent in node.parents:
        if isinstance(parent, Tag) and is_table_like(parent):
            return parent
    return None


def table_rows(container: Tag) -> List[Tag]:
    """Rows that belong to this table or grid (nested tables excluded)."""
    if container.name == "table":
        candidates = container.find_all("tr")
    else:
        candidates = container.select('[role="row"]')
        if not candidates:
            candidates = container.find_all("tr")
    return [row for row in candidates if _owning_container(row) is container]


def row_cells(row: Tag) -> List[Tag]:
    """Cells of a row, header and data cells alike, in document order."""
    cells = [
        child for child in row.find_all(True, recursive=False)
        if child.name in ("td", "th") or (child.get("role") or "").lower() in CELL_ROLES
    ]
    if cells:
        return cells
    # React grids often wrap cells in an extra div
    return row.select(", ".join(f'[role="{role}"]' for role in CELL_ROLES))


class Document:
    """An HTML document plus the URL it came from."""

    def __init__(self, soup: BeautifulSoup, url: str = ""):
        self.soup = soup
        self.url = url or ""

    @classmethod
    def from_html(cls, html: str, url: str = "") -> "Document":
        return cls(BeautifulSoup(html or "", "html.parser"), url)

    @property
    def host(self) -> str:
        return (urlparse(self.url).hostname or "").lower()

    @property
    def path(self) -> str:
        return urlparse(self.url).path.lower()

    @property
    def title(self) -> str:
        return node_text(self.soup.title)

    def select(self, selector: str) -> List[Tag]:
        """CSS select that treats an invalid selector as matching nothing."""
        try:
            return self.soup.select(selector)
        except Exception as e:
            logger.debug(f"Selector {selector!r} rejected: {e}")
            return []

    def select_one(self, selector: str) -> Optional[Tag]:
        found = self.select(selector)
        return found[0] if found else None

    def tables(self) -> List[Tag]:
        """All tables and ARIA grids in document order."""
        selector = "table, " + ", ".join(f'[role="{role}"]' for role in GRID_ROLES)
        return [node for node in self.select(selector) if is_table_like(node)]

    def largest_table(self, min_rows: int = 3) -> Optional[Tag]:
        """Largest table-like structure with more than ``min_rows`` rows."""
        best = None
        best_count = min_rows
        for table in self.tables():
            count = len(table_rows(table))
            if count > best_count:
                best, best_count = table, count
        return best

    def resolve(self, href: str) -> str:
        """Absolute URL for a link found in this document."""
        return urljoin(self.url, href or "")

    def text(self) -> str:
        return node_text(self.soup)

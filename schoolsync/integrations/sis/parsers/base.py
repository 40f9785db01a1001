"""
Common parser contract: pure, synchronous, and never raising.
"""

import logging
import re
from abc import ABC, abstractmethod
from typing import Any, List, Optional

from bs4.element import Tag

from schoolsync.core.source_config import SourceProfile
from schoolsync.integrations.sis.document import Document
from schoolsync.integrations.sis.error_handler import ParseFailure, sync_error_handler


logger = logging.getLogger(__name__)

_WHITESPACE = re.compile(r"\s+")


def synthesize_id(prefix: str, last_name: Optional[str], first_name: Optional[str], index: int) -> str:
    """Position-based fallback id: ``<prefix>_<last>_<first>_<index>``."""
    raw = f"{prefix}_{last_name or ''}_{first_name or ''}_{index}".lower()
    return _WHITESPACE.sub("_", raw)


def synthesize_name_id(prefix: str, display_name: str, index: int) -> str:
    """Fallback id for grade and attendance rows keyed by a single name cell."""
    return _WHITESPACE.sub("_", f"{prefix}_{display_name}_{index}".lower())


# Student id in a link query string (gradebook and attendance rows)
QUERY_ID_PATTERN = re.compile(r"(?:student(?:id|_id)?|frn|id)=(\d+)", re.IGNORECASE)


def query_link_id(node: Optional[Tag]) -> Optional[str]:
    if node is None:
        return None
    link = node.find("a", href=True)
    if link is None:
        return None
    match = QUERY_ID_PATTERN.search(link["href"])
    return match.group(1) if match else None


class BaseParser(ABC):
    """Base class for every page parser."""

    def __init__(self, profile: SourceProfile):
        self.profile = profile

    def parse(self, document: Document) -> List[Any]:
        """
        Parse a document into records.

        Any internal failure is logged as a ParseFailure and yields an
        empty list.
        """
        try:
            records = self._parse(document)
        except Exception as e:
            failure = ParseFailure(
                f"{type(self).__name__} could not parse page: {e}",
                original_exception=e
            )
            sync_error_handler.log_error(failure, {
                'source': self.profile.kind.value,
                'url': document.url,
            })
            return []
        logger.debug(f"{type(self).__name__} extracted {len(records)} records from {document.url or '<inline>'}")
        return records

    @abstractmethod
    def _parse(self, document: Document) -> List[Any]:
        """Parser-specific extraction. May raise; parse() recovers."""

    def link_id(self, node: Optional[Tag]) -> Optional[str]:
        """Student id from the first profile-link inside ``node`` that yields one."""
        if node is None:
            return None
        for link in node.find_all("a", href=True):
            found = self.profile.extract_link_id(link["href"])
            if found:
                return found
        return None

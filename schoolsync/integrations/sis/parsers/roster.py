from typing import List

from schoolsync.core.source_config import SourceProfile
from schoolsync.integrations.sis.document import Document
from schoolsync.models.records import CanonicalRecord
from schoolsync.integrations.sis.parsers.base import BaseParser
from schoolsync.integrations.sis.parsers.cards import CardRecordParser
from schoolsync.integrations.sis.parsers.table import TableRecordParser


class RosterParser(BaseParser):
    """Per-source roster variant: table and card engines, first non-empty wins."""

    def __init__(self, profile: SourceProfile):
        super().__init__(profile)
        engines = [TableRecordParser(profile), CardRecordParser(profile)]
        if profile.prefer_cards:
            engines.reverse()
        self.engines = engines

    def _parse(self, document: Document) -> List[CanonicalRecord]:
        for engine in self.engines:
            records = engine.parse(document)
            if records:
                return records
        return []

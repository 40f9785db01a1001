"""
Card/tile engine for list layouts without columns (Clever student cards,
Canvas people lists, Schoology member lists).
"""

from typing import List, Optional

from bs4.element import Tag

from schoolsync.integrations.sis.document import Document, node_text
from schoolsync.integrations.sis.matcher import split_combined_name
from schoolsync.models.records import CanonicalRecord
from schoolsync.integrations.sis.parsers.base import BaseParser, synthesize_id


def _first_text(card: Tag, selectors: List[str]) -> str:
    for selector in selectors:
        found = card.select_one(selector)
        text = node_text(found)
        if text:
            return text
    return ""


class CardRecordParser(BaseParser):
    """One record per card element; cards carry no ``extra``."""

    def find_cards(self, document: Document) -> List[Tag]:
        if not self.profile.card_selectors:
            return []
        return document.select(", ".join(self.profile.card_selectors))

    def _parse(self, document: Document) -> List[CanonicalRecord]:
        records = []
        for index, card in enumerate(self.find_cards(document), start=1):
            record = self.read_card(card, index)
            if record is not None:
                records.append(record)
        return records

    def read_card(self, card: Tag, index: int) -> Optional[CanonicalRecord]:
        name = _first_text(card, self.profile.card_name_selectors) or node_text(card)
        first, last = split_combined_name(name)
        record = CanonicalRecord()
        record.assign("first_name", first)
        record.assign("last_name", last)
        if not record.has_name:
            return None

        record.assign("grade_level", _first_text(card, self.profile.card_grade_selectors))

        record.assign("sourced_id", _first_text(card, self.profile.card_sis_id_selectors))
        for attribute in self.profile.card_id_attributes:
            record.assign("sourced_id", card.get(attribute))
        if card.name == "a" and card.get("href"):
            record.assign("sourced_id", self.profile.extract_link_id(card["href"]))
        record.assign("sourced_id", self.link_id(card))
        if not record.sourced_id:
            record.sourced_id = synthesize_id(
                self.profile.id_prefix, record.last_name, record.first_name, index
            )
        return record

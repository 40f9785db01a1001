"""
Tests for the table roster engine.
"""

import pytest

from schoolsync.core.source_config import SourceKind, source_registry
from schoolsync.integrations.sis.document import Document
from schoolsync.integrations.sis.parsers import RosterParser, TableRecordParser

POWERSCHOOL_ROSTER = """
<html><body>
<div id="content-main">
  <table class="linkDescList">
    <tr><th>Name</th><th>Student Number</th><th>Grade</th><th>Locker</th></tr>
    <tr><td><a href="/teachers/studentpages/students/482">Doe, Jane</a></td><td>10482</td><td>7</td><td>B-12</td></tr>
    <tr><td><a href="/teachers/studentpages/students/483">Smith, John</a></td><td></td><td>8</td><td>C-01</td></tr>
    <tr><td>Lopez, Ana</td><td></td><td>7</td><td></td></tr>
    <tr><td></td><td>999</td><td>6</td><td>D-4</td></tr>
  </table>
</div>
</body></html>
"""


@pytest.fixture
def powerschool():
    return source_registry.get(SourceKind.POWERSCHOOL)


def parse(html, kind=SourceKind.POWERSCHOOL, url="https://district.powerschool.com/teachers/roster.html"):
    return RosterParser(source_registry.get(kind)).parse(Document.from_html(html, url))


class TestTableRecordParser:
    """Test header mapping, identity fallback and extra columns."""

    def test_rows_become_records(self):
        records = parse(POWERSCHOOL_ROSTER)

        assert [(r.first_name, r.last_name) for r in records] == [
            ("Jane", "Doe"), ("John", "Smith"), ("Ana", "Lopez")
        ]

    def test_id_column_wins_over_link(self):
        records = parse(POWERSCHOOL_ROSTER)

        assert records[0].sourced_id == "10482"

    def test_link_id_used_when_id_cell_empty(self):
        records = parse(POWERSCHOOL_ROSTER)

        assert records[1].sourced_id == "483"

    def test_synthesized_id_is_position_based(self):
        records = parse(POWERSCHOOL_ROSTER)

        assert records[2].sourced_id == "ps_lopez_ana_3"

    def test_extraction_is_deterministic(self):
        first = [r.to_payload() for r in parse(POWERSCHOOL_ROSTER)]
        second = [r.to_payload() for r in parse(POWERSCHOOL_ROSTER)]

        assert first == second

    def test_unmapped_columns_kept_as_extra(self):
        records = parse(POWERSCHOOL_ROSTER)

        assert records[0].extra == {"Locker": "B-12"}
        assert records[2].extra == {}

    def test_extra_can_be_disabled(self, powerschool):
        document = Document.from_html(POWERSCHOOL_ROSTER)

        records = TableRecordParser(powerschool, keep_extra=False).parse(document)

        assert all(r.extra == {} for r in records)

    def test_specific_name_columns_win_over_combined(self):
        html = """
        <table>
          <tr><th>Student</th><th>First Name</th><th>Last Name</th></tr>
          <tr><td>Doe, Janie</td><td>Jane</td><td>Doe-Ruiz</td></tr>
          <tr><td>Smith, John</td><td>John</td><td>Smith</td></tr>
          <tr><td>Lee, Kim</td><td></td><td></td></tr>
          <tr><td>Park, Min</td><td>Min</td><td>Park</td></tr>
        </table>
        """
        records = parse(html, SourceKind.GENERIC, "https://sis.example.com/roster")

        assert (records[0].first_name, records[0].last_name) == ("Jane", "Doe-Ruiz")
        assert (records[2].first_name, records[2].last_name) == ("Kim", "Lee")

    def test_header_in_second_row(self):
        html = """
        <table>
          <tr><td colspan="3">Period 2 - Algebra I</td></tr>
          <tr><th>Last Name</th><th>First Name</th><th>Grade</th></tr>
          <tr><td>Doe</td><td>Jane</td><td>7</td></tr>
          <tr><td>Smith</td><td>John</td><td>7</td></tr>
        </table>
        """
        records = parse(html, SourceKind.GENERIC, "https://sis.example.com/roster")

        assert [r.sourced_id for r in records] == ["ps_doe_jane_1", "ps_smith_john_2"]

    def test_profile_selector_beats_largest_table(self):
        html = """
        <table>
          <tr><th>Name</th></tr>
          <tr><td>Decoy One</td></tr><tr><td>Decoy Two</td></tr>
          <tr><td>Decoy Three</td></tr><tr><td>Decoy Four</td></tr>
        </table>
        <table class="sfDataTable">
          <tr><th>Stu ID</th><th>Last</th><th>First</th></tr>
          <tr><td>77</td><td>Doe</td><td>Jane</td></tr>
        </table>
        """
        records = parse(html, SourceKind.SKYWARD, "https://skyward.example.com/roster")

        assert [(r.sourced_id, r.first_name) for r in records] == [("77", "Jane")]

    def test_aria_grid(self):
        html = """
        <div role="grid">
          <div role="row"><div role="columnheader">Name</div><div role="columnheader">Grade</div></div>
          <div role="row">
            <div role="gridcell"><a href="/users/9001">Jane Doe</a></div><div role="gridcell">7</div>
          </div>
          <div role="row">
            <div role="gridcell"><a href="/users/9002">John Smith</a></div><div role="gridcell">8</div>
          </div>
        </div>
        """
        records = parse(html, SourceKind.CLASSLINK, "https://launchpad.classlink.com/roster")

        assert [(r.sourced_id, r.first_name, r.last_name, r.grade_level) for r in records] == [
            ("9001", "Jane", "Doe", "7"),
            ("9002", "John", "Smith", "8"),
        ]

    def test_no_table_yields_empty(self):
        assert parse("<p>No students enrolled.</p>") == []

    def test_unrecognized_headers_yield_empty(self):
        html = """
        <table>
          <tr><th>Foo</th><th>Bar</th></tr>
          <tr><td>1</td><td>2</td></tr><tr><td>3</td><td>4</td></tr><tr><td>5</td><td>6</td></tr>
        </table>
        """
        assert parse(html, SourceKind.GENERIC, "https://sis.example.com/roster") == []

"""
Tests for the card/tile roster engine.
"""

from schoolsync.core.source_config import SourceKind, source_registry
from schoolsync.integrations.sis.document import Document
from schoolsync.integrations.sis.parsers import CardRecordParser, RosterParser


def parse(html, kind, url=""):
    return RosterParser(source_registry.get(kind)).parse(Document.from_html(html, url))


class TestCardRecordParser:
    """Test per-card extraction across card layouts."""

    def test_clever_cards(self):
        html = """
        <div class="student-card" data-id="5001">
          <span class="student-name">Jane Doe</span><span class="grade-badge">7</span>
        </div>
        <div class="student-card">
          <span class="student-name">John Smith</span>
          <a href="/teacher/students/5002">Profile</a>
        </div>
        <div class="student-card"><span class="student-name">Ana Lopez</span></div>
        """
        records = parse(html, SourceKind.CLEVER, "https://clever.com/teacher/students")

        assert [(r.sourced_id, r.first_name, r.last_name) for r in records] == [
            ("5001", "Jane", "Doe"),
            ("5002", "John", "Smith"),
            ("cl_lopez_ana_3", "Ana", "Lopez"),
        ]
        assert records[0].grade_level == "7"

    def test_cards_carry_no_extra(self):
        html = '<div class="student-card" data-id="1"><span class="name">Jane Doe</span></div>'
        parser = CardRecordParser(source_registry.get(SourceKind.CLEVER))

        records = parser.parse(Document.from_html(html))

        assert records[0].extra == {}

    def test_canvas_prefers_cards(self):
        """Test that Canvas people lists are read before any table."""
        html = """
        <table class="gradebook">
          <tr><th>Name</th></tr><tr><td>Table Student</td></tr>
        </table>
        <div class="roster">
          <div class="user_name">
            <a href="/courses/12/users/3301">Jane Doe</a><span class="sis_id">S-3301</span>
          </div>
          <div class="user_name"><a href="/courses/12/users/3302">John Smith</a></div>
        </div>
        """
        records = parse(html, SourceKind.CANVAS, "https://school.instructure.com/courses/12/users")

        assert [(r.sourced_id, r.first_name) for r in records] == [("S-3301", "Jane"), ("3302", "John")]

    def test_schoology_member_list(self):
        html = """
        <ul class="enrollment-list">
          <li><span class="name"><a href="/user/88120">Doe, Jane</a></span></li>
          <li><span class="name">Smith, John</span></li>
        </ul>
        """
        records = parse(html, SourceKind.SCHOOLOGY, "https://app.schoology.com/course/1/members")

        assert [(r.sourced_id, r.first_name, r.last_name) for r in records] == [
            ("88120", "Jane", "Doe"),
            ("sc_smith_john_2", "John", "Smith"),
        ]

    def test_table_first_when_cards_not_preferred(self):
        html = """
        <table>
          <tr><th>Student ID</th><th>Name</th></tr>
          <tr><td>1</td><td>Jane Doe</td></tr>
          <tr><td>2</td><td>John Smith</td></tr>
          <tr><td>3</td><td>Ana Lopez</td></tr>
        </table>
        <div class="student-card" data-id="9"><span class="name">Card Only</span></div>
        """
        records = parse(html, SourceKind.CLEVER, "https://clever.com/teacher/students")

        assert [r.sourced_id for r in records] == ["1", "2", "3"]

    def test_empty_cards_skipped(self):
        html = '<div class="student-card"></div><div class="student-card"><h3>Jane Doe</h3></div>'
        records = parse(html, SourceKind.CLEVER)

        assert len(records) == 1
        assert records[0].sourced_id == "cl_doe_jane_2"

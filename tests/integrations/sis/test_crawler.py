"""
Tests for profile link extraction and the detail crawler.
"""

import asyncio

import aiohttp
import pytest
from unittest.mock import AsyncMock, patch
from aioresponses import aioresponses

from schoolsync.integrations.sis.crawler import DetailCrawler, decode_page, extract_links
from schoolsync.integrations.sis.document import Document
from schoolsync.integrations.sis.error_handler import SyncErrorCategory, sync_error_handler
from schoolsync.models.records import StudentLink

ROSTER_URL = "https://district.powerschool.com/teachers/roster.html"

ROSTER_PAGE = """
<nav><a href="/admin/reports?id=999">Reports</a></nav>
<table>
  <tr><td><a href="/guardian/students/101">Doe, Jane</a></td></tr>
  <tr><td><a href="/students/102">Smith, John</a></td></tr>
  <tr><td><a href="/guardian/students/101">Doe, Jane (again)</a></td></tr>
  <tr><td><a href="/teachers/help.html">Help</a></td></tr>
</table>
<div><a href="/home/user/555">Kim Lee</a></div>
"""


def profile_page(student_number, first="Jane", last="Doe"):
    return f"""
    <table>
      <tr><td>Student Number</td><td>{student_number}</td></tr>
      <tr><td>First Name</td><td>{first}</td></tr>
      <tr><td>Last Name</td><td>{last}</td></tr>
    </table>
    """


def make_links(*ids):
    return [
        StudentLink(sourced_id=i, display_name=f"Student {i}", url=f"https://sis.example.com/students/{i}")
        for i in ids
    ]


class TestExtractLinks:
    """Test profile link discovery on roster pages."""

    def test_links_in_list_context(self):
        links = extract_links(Document.from_html(ROSTER_PAGE, ROSTER_URL))

        assert [link.sourced_id for link in links] == ["101", "102", "555"]

    def test_duplicates_dropped_first_wins(self):
        links = extract_links(Document.from_html(ROSTER_PAGE, ROSTER_URL))

        assert links[0].display_name == "Doe, Jane"

    def test_urls_resolved(self):
        links = extract_links(Document.from_html(ROSTER_PAGE, ROSTER_URL))

        assert links[0].url == "https://district.powerschool.com/guardian/students/101"

    def test_navigation_links_rejected(self):
        links = extract_links(Document.from_html(ROSTER_PAGE, ROSTER_URL))

        assert "999" not in [link.sourced_id for link in links]

    def test_list_item_context(self):
        html = '<ul><li><a href="/campus/person.xsl?personID=42">Jane Doe</a></li></ul>'

        links = extract_links(Document.from_html(html, "https://ic.infinitecampus.org/roster"))

        assert [(link.sourced_id, link.display_name) for link in links] == [("42", "Jane Doe")]


class TestDetailCrawler:
    """Test sequential crawling, failure isolation and cancellation."""

    @pytest.mark.asyncio
    async def test_crawl_reports_progress_in_order(self, no_delay_retry):
        links = make_links("101", "102", "103")
        progress = []

        with aioresponses() as m:
            for link in links:
                m.get(link.url, status=200, body=profile_page(link.sourced_id))

            async with DetailCrawler(delay=0, retry_config=no_delay_retry) as crawler:
                records = await crawler.crawl(links, on_progress=lambda *args: progress.append(args))

        assert progress == [
            (1, 3, "Student 101"),
            (2, 3, "Student 102"),
            (3, 3, "Student 103"),
        ]
        assert [r.sourced_id for r in records] == ["101", "102", "103"]
        assert records[0].first_name == "Jane"

    @pytest.mark.asyncio
    async def test_failed_item_is_skipped(self, no_delay_retry):
        links = make_links("101", "102", "103")

        with aioresponses() as m:
            m.get(links[0].url, status=200, body=profile_page("101"))
            m.get(links[1].url, status=404, body="Not Found")
            m.get(links[2].url, status=200, body=profile_page("103"))

            async with DetailCrawler(delay=0, retry_config=no_delay_retry) as crawler:
                records = await crawler.crawl(links)

        assert [r.sourced_id for r in records] == ["101", "103"]
        last_crawl_error = sync_error_handler.get_recent_errors(
            limit=1, category_filter=SyncErrorCategory.CRAWL
        )[0]
        assert last_crawl_error["url"] == links[1].url

    @pytest.mark.asyncio
    async def test_transport_error_retried(self, no_delay_retry):
        link = make_links("101")[0]

        with aioresponses() as m:
            m.get(link.url, exception=aiohttp.ClientConnectionError("reset"))
            m.get(link.url, status=200, body=profile_page("101"))

            async with DetailCrawler(delay=0, retry_config=no_delay_retry) as crawler:
                record = await crawler.crawl_one(link)

        assert record is not None
        assert record.sourced_id == "101"

    @pytest.mark.asyncio
    async def test_timeouts_exhaust_retries(self, no_delay_retry):
        link = make_links("101")[0]

        with aioresponses() as m:
            m.get(link.url, exception=asyncio.TimeoutError())
            m.get(link.url, exception=asyncio.TimeoutError())

            async with DetailCrawler(delay=0, retry_config=no_delay_retry) as crawler:
                record = await crawler.crawl_one(link)

        assert record is None

    @pytest.mark.asyncio
    async def test_cancellation_stops_before_next_item(self, no_delay_retry):
        links = make_links("101", "102", "103")
        cancel_event = asyncio.Event()

        def on_progress(current, total, name):
            cancel_event.set()

        with aioresponses() as m:
            for link in links:
                m.get(link.url, status=200, body=profile_page(link.sourced_id))

            async with DetailCrawler(delay=0, retry_config=no_delay_retry) as crawler:
                records = await crawler.crawl(links, on_progress=on_progress, cancel_event=cancel_event)

        assert [r.sourced_id for r in records] == ["101"]

    @pytest.mark.asyncio
    async def test_pause_between_items_only(self, no_delay_retry):
        links = make_links("101", "102", "103")

        with aioresponses() as m:
            for link in links:
                m.get(link.url, status=200, body=profile_page(link.sourced_id))

            with patch.object(DetailCrawler, "_pause", new_callable=AsyncMock) as mock_pause:
                async with DetailCrawler(delay=0.8, retry_config=no_delay_retry) as crawler:
                    await crawler.crawl(links)

        assert mock_pause.await_count == 2

    @pytest.mark.asyncio
    async def test_legacy_encoded_profile_is_kept(self, no_delay_retry):
        """Test a Latin-1 profile served as text/html with no charset."""
        link = make_links("101")[0]
        body = profile_page("101", first="Jos\u00e9", last="Pe\u00f1a").encode("latin-1")

        with aioresponses() as m:
            m.get(link.url, status=200, body=body, content_type="text/html")

            async with DetailCrawler(delay=0, retry_config=no_delay_retry) as crawler:
                records = await crawler.crawl([link])

        assert len(records) == 1
        assert records[0].first_name == "Jos\u00e9"
        assert records[0].last_name == "Pe\u00f1a"

    @pytest.mark.asyncio
    async def test_crawl_requires_session(self):
        crawler = DetailCrawler(delay=0)

        with pytest.raises(RuntimeError, match="needs a session"):
            await crawler.crawl(make_links("101"))


class TestDecodePage:
    """Test charset handling for fetched pages."""

    def test_utf8_by_default(self):
        assert decode_page("Jos\u00e9".encode("utf-8")) == "Jos\u00e9"

    def test_declared_charset_wins(self):
        assert decode_page("Pe\u00f1a".encode("iso-8859-1"), "iso-8859-1") == "Pe\u00f1a"

    def test_undeclared_legacy_bytes(self):
        assert decode_page(b"Jos\xe9 \x93Pepe\x94") == "Jos\u00e9 \u201cPepe\u201d"

    def test_unknown_charset_ignored(self):
        assert decode_page(b"Ana", "x-not-a-charset") == "Ana"

    def test_never_raises(self):
        assert decode_page(b"\x81\x8d") == "\ufffd\ufffd"

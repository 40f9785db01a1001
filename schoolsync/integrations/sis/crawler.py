"""
Detail crawler: follows student profile links found on a roster page and
scrapes each profile, one request at a time.
"""

import asyncio
import logging
import re
from typing import Callable, Dict, List, Optional, Pattern, Sequence

import aiohttp

from schoolsync.core.config import settings
from schoolsync.integrations.sis.detail_scraper import scrape_detail_page
from schoolsync.integrations.sis.document import Document, node_text
from schoolsync.integrations.sis.error_handler import (
    CrawlItemFailure, RetryConfig, SyncError, TransportFailure,
    retry_on_error, sync_error_handler
)
from schoolsync.models.records import DeepRecord, StudentLink


logger = logging.getLogger(__name__)

# Profile URL patterns across platforms, tried in order
STUDENT_LINK_PATTERNS: List[Pattern] = [
    re.compile(p, re.IGNORECASE) for p in (
        # PowerSchool
        r"/students/(\d+)",
        r"studentid=(\d+)",
        r"frn=(\d+)",
        r"/guardian/students\.html\?.*id=(\d+)",
        # Infinite Campus
        r"personID=(\d+)",
        r"/person/(\d+)",
        r"/student/(\d+)",
        # Skyward
        r"stuID=(\d+)",
        r"studentId=(\d+)",
        # Aeries
        r"ID=(\d+)",
        # Genesis
        r"student_id=(\d+)",
        # Canvas
        r"/users/(\d+)",
        # Schoology
        r"/user/(\d+)",
        # Generic
        r"/profile/(\d+)",
    )
]

LIST_CONTEXT_SELECTOR = 'tr, li, .student, [class*="student"], [class*="roster"]'
LIST_CONTEXT_HREF = re.compile(r"student|person|user", re.IGNORECASE)

ProgressCallback = Callable[[int, int, str], None]


def match_student_id(href: str, resolved: str, patterns: Sequence[Pattern]) -> Optional[str]:
    for pattern in patterns:
        match = pattern.search(href) or pattern.search(resolved)
        if match:
            return match.group(1)
    return None


def extract_links(
    document: Document,
    patterns: Sequence[Pattern] = STUDENT_LINK_PATTERNS
) -> List[StudentLink]:
    """
    Student profile links on a roster page.

    A link is kept only when it sits in a list context (a row, list item or
    student/roster container) or its href itself names a student, person or
    user. Duplicates by id are dropped, first occurrence wins.
    """
    links = []
    seen = set()
    for anchor in document.select("a[href]"):
        href = anchor.get("href") or ""
        resolved = document.resolve(href)
        student_id = match_student_id(href, resolved, patterns)
        if not student_id or student_id in seen:
            continue
        in_list = anchor.css.closest(LIST_CONTEXT_SELECTOR) is not None
        if not in_list and not LIST_CONTEXT_HREF.search(href):
            continue
        seen.add(student_id)
        links.append(StudentLink(
            sourced_id=student_id,
            display_name=node_text(anchor),
            url=resolved
        ))
    return links


def decode_page(body: bytes, charset: Optional[str] = None) -> str:
    """
    Profile page text.

    The declared charset is tried first, then UTF-8. Legacy SIS pages often
    send Windows-1252 without declaring it, so that is the last resort and
    never fails.
    """
    for encoding in (charset, 'utf-8'):
        if not encoding:
            continue
        try:
            return body.decode(encoding)
        except (LookupError, UnicodeDecodeError):
            continue
    return body.decode('cp1252', errors='replace')


class DetailCrawler:
    """
    Sequential, rate-limited profile crawler.

    Uses the injected aiohttp session (so the caller's authenticated cookies
    are sent) or owns one when used as an async context manager.
    """

    def __init__(
        self,
        session: Optional[aiohttp.ClientSession] = None,
        delay: Optional[float] = None,
        timeout: Optional[float] = None,
        retry_config: Optional[RetryConfig] = None,
        cookies: Optional[Dict[str, str]] = None
    ):
        self._session = session
        self._owns_session = False
        self._cookies = cookies
        self.delay = settings.CRAWL_DELAY if delay is None else delay
        self.timeout = settings.CRAWL_TIMEOUT if timeout is None else timeout
        self.retry_config = retry_config or RetryConfig(
            max_attempts=settings.CRAWL_MAX_ATTEMPTS,
            base_delay=settings.CRAWL_RETRY_BASE_DELAY,
            max_delay=settings.CRAWL_TIMEOUT
        )

    async def __aenter__(self):
        if self._session is None:
            self._session = aiohttp.ClientSession(
                cookies=self._cookies,
                headers={'User-Agent': settings.USER_AGENT}
            )
            self._owns_session = True
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        if self._owns_session and self._session:
            await self._session.close()
            self._session = None
            self._owns_session = False

    async def crawl(
        self,
        links: Sequence[StudentLink],
        on_progress: Optional[ProgressCallback] = None,
        cancel_event: Optional[asyncio.Event] = None
    ) -> List[DeepRecord]:
        """
        Visit each link in order and scrape its profile.

        Failed items are logged and skipped. Cancellation takes effect before
        the next item starts; records scraped so far are returned.
        """
        if self._session is None:
            raise RuntimeError("DetailCrawler needs a session; use 'async with' or pass one in")

        total = len(links)
        results = []
        for index, link in enumerate(links):
            if cancel_event is not None and cancel_event.is_set():
                logger.info(f"Crawl cancelled after {index} of {total} profiles")
                break

            if on_progress:
                on_progress(index + 1, total, link.display_name)

            record = await self.crawl_one(link)
            if record is not None:
                results.append(record)

            if index < total - 1:
                await self._pause(cancel_event)

        logger.info(f"Crawled {len(results)} of {total} student profiles")
        return results

    async def crawl_one(self, link: StudentLink) -> Optional[DeepRecord]:
        try:
            html = await retry_on_error(
                self.fetch_page,
                self.retry_config,
                (TransportFailure,),
                link.url
            )
            return scrape_detail_page(html, link.sourced_id, link.url)
        except SyncError as e:
            failure = e if isinstance(e, CrawlItemFailure) else CrawlItemFailure(
                e.message, url=link.url, original_exception=e
            )
        except Exception as e:
            failure = CrawlItemFailure(
                f"Profile could not be scraped: {e}", url=link.url, original_exception=e
            )
        sync_error_handler.log_error(failure, {'url': link.url})
        return None

    async def fetch_page(self, url: str) -> str:
        """GET one profile page; non-2xx is final, transport errors are retryable."""
        try:
            async with self._session.get(
                url,
                headers={'Accept': 'text/html'},
                timeout=aiohttp.ClientTimeout(total=self.timeout)
            ) as response:
                if not 200 <= response.status < 300:
                    raise CrawlItemFailure(f"HTTP {response.status} fetching profile", url=url)
                return decode_page(await response.read(), response.charset)
        except asyncio.TimeoutError:
            raise TransportFailure(f"Timed out after {self.timeout}s fetching {url}")
        except aiohttp.ClientError as e:
            raise TransportFailure(f"HTTP client error fetching {url}: {e}")

    async def _pause(self, cancel_event: Optional[asyncio.Event]) -> None:
        """Inter-item delay that ends early on cancellation."""
        if self.delay <= 0:
            return
        if cancel_event is None:
            await asyncio.sleep(self.delay)
            return
        try:
            await asyncio.wait_for(cancel_event.wait(), timeout=self.delay)
        except asyncio.TimeoutError:
            pass

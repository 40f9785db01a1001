"""
Sync pipeline orchestration.

classify -> parse -> (detail crawl) -> diff -> batched sync -> persist
"""

import asyncio
import logging
import re
from dataclasses import dataclass, field
from datetime import date
from typing import Any, Callable, Dict, List, Optional, Sequence, Tuple

import aiohttp

from schoolsync.core.config import settings
from schoolsync.core.security import CredentialVault
from schoolsync.core.source_config import PageKind, SourceKind, SourceRegistry, source_registry
from schoolsync.integrations.sis.classifier import SourceClassifier
from schoolsync.integrations.sis.crawler import DetailCrawler, decode_page, extract_links
from schoolsync.integrations.sis.document import Document
from schoolsync.integrations.sis.error_handler import (
    AuthenticationFailure, ConfigurationFailure, SyncError, TransportFailure, sync_error_handler
)
from schoolsync.integrations.sis.parsers import CSVExportParser, find_csv_on_page, get_parser
from schoolsync.models.records import (
    AttendanceRecord, CanonicalRecord, DeepRecord, GradeRecord, SyncOutcome, merge_records
)
from schoolsync.services.sync.differ import diff
from schoolsync.services.sync.state_store import SyncStateRepository
from schoolsync.services.sync.synchronizer import CapsuleSyncClient


logger = logging.getLogger(__name__)

URL_PATTERN = re.compile(r"^https?://", re.IGNORECASE)

NO_DATA_MESSAGE = "No data found on page"
NO_CHANGES_MESSAGE = "No changes detected"


@dataclass
class ExtractionResult:
    """Everything one page yielded."""
    source_kind: SourceKind
    page_kind: PageKind
    students: List[CanonicalRecord] = field(default_factory=list)
    grades: List[GradeRecord] = field(default_factory=list)
    attendance: List[AttendanceRecord] = field(default_factory=list)
    csv_link: Optional[str] = None

    @property
    def count(self) -> int:
        return len(self.students) + len(self.grades) + len(self.attendance)


@dataclass
class PipelineResult:
    """Outcome of a pipeline run with a single foregrounded error."""
    success: bool
    count: int = 0
    total: int = 0
    message: Optional[str] = None
    error: Optional[str] = None
    source_kind: Optional[SourceKind] = None
    page_kind: Optional[PageKind] = None
    outcome: Optional[SyncOutcome] = None
    grades: List[GradeRecord] = field(default_factory=list)
    attendance: List[AttendanceRecord] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            'success': self.success,
            'count': self.count,
            'total': self.total,
            'message': self.message,
            'error': self.error,
            'source_kind': self.source_kind.value if self.source_kind else None,
            'page_kind': self.page_kind.value if self.page_kind else None,
            'outcome': self.outcome.to_dict() if self.outcome else None,
            'grades': [g.to_payload() for g in self.grades],
            'attendance': [a.to_payload() for a in self.attendance],
        }


def enrich_with_details(
    records: Sequence[CanonicalRecord],
    details: Sequence[DeepRecord]
) -> List[CanonicalRecord]:
    """
    Merge crawled profiles into roster records by sourced id.

    Detail-page values take precedence; roster values fill the gaps.
    Profiles with no roster counterpart are appended in crawl order.
    """
    by_id = {detail.sourced_id: detail for detail in details}
    merged: List[CanonicalRecord] = []
    used = set()
    for record in records:
        detail = by_id.get(record.sourced_id)
        if detail is None:
            merged.append(record)
            continue
        merged.append(merge_records(detail, record))
        used.add(record.sourced_id)
    merged.extend(detail for detail in details if detail.sourced_id not in used)
    return merged


class SyncPipeline:
    """Runs extraction and sync for one page at a time."""

    def __init__(
        self,
        repository: SyncStateRepository,
        vault: Optional[CredentialVault] = None,
        registry: Optional[SourceRegistry] = None,
        session: Optional[aiohttp.ClientSession] = None
    ):
        self.repository = repository
        self.vault = vault or CredentialVault()
        self.registry = registry or source_registry
        self.classifier = SourceClassifier(self.registry)
        self.session = session

    # Extraction

    def extract(self, document: Document, observed_on: Optional[date] = None) -> ExtractionResult:
        source_kind, page_kind = self.classifier.classify(document)
        result = ExtractionResult(source_kind=source_kind, page_kind=page_kind)

        if page_kind == PageKind.UNKNOWN:
            return result

        if page_kind == PageKind.EXPORT:
            found = find_csv_on_page(document)
            if found and URL_PATTERN.match(found):
                result.csv_link = found
            elif found:
                result.students = CSVExportParser(self.registry.get(source_kind)).parse(found)
            else:
                # Some export pages render the data as a table instead
                result.students = get_parser(source_kind, PageKind.ROSTER, self.registry).parse(document)
            return result

        parser = get_parser(source_kind, page_kind, self.registry, observed_on)
        records = parser.parse(document)
        if page_kind == PageKind.GRADEBOOK:
            result.grades = records
        elif page_kind == PageKind.ATTENDANCE:
            result.attendance = records
        else:
            result.students = records

        logger.info(f"Extracted {result.count} records from {source_kind.value}/{page_kind.value} page")
        return result

    async def fetch_csv(self, url: str, source_kind: SourceKind = SourceKind.POWERSCHOOL) -> List[CanonicalRecord]:
        """Download a linked CSV export and parse it."""
        timeout = aiohttp.ClientTimeout(total=settings.SYNC_REQUEST_TIMEOUT)
        session = self.session or aiohttp.ClientSession(headers={'User-Agent': settings.USER_AGENT})
        try:
            async with session.get(url, timeout=timeout) as response:
                if not 200 <= response.status < 300:
                    raise TransportFailure(f"HTTP {response.status}", status=response.status)
                text = decode_page(await response.read(), response.charset)
        except asyncio.TimeoutError:
            raise TransportFailure(f"Timed out after {settings.SYNC_REQUEST_TIMEOUT}s")
        except aiohttp.ClientError as e:
            raise TransportFailure(str(e) or type(e).__name__, original_exception=e)
        finally:
            if session is not self.session:
                await session.close()
        return CSVExportParser(self.registry.get(source_kind)).parse(text)

    async def crawl(
        self,
        document: Document,
        on_progress: Optional[Callable[[int, int, str], None]] = None,
        cancel_event: Optional[asyncio.Event] = None
    ) -> List[DeepRecord]:
        links = extract_links(document)
        if not links:
            return []
        logger.info(f"Deep crawl of {len(links)} student profiles")
        async with DetailCrawler(session=self.session) as crawler:
            return await crawler.crawl(links, on_progress=on_progress, cancel_event=cancel_event)

    # Credentials

    async def save_credentials(self, endpoint: str, token: str, passphrase: str) -> None:
        if not URL_PATTERN.match(endpoint or ""):
            raise ConfigurationFailure("Capsule endpoint must start with http:// or https://")
        if not token or not passphrase:
            raise ConfigurationFailure("Token and passphrase are required")
        blob = self.vault.seal(token, passphrase)
        await self.repository.set_endpoint(endpoint)
        await self.repository.set_encrypted_token(blob)
        logger.info("Capsule credentials saved")

    async def resolve_credentials(self, passphrase: Optional[str]) -> Tuple[str, str]:
        """
        Endpoint and decrypted token.

        Raises:
            ConfigurationFailure: no endpoint or no stored token
            AuthenticationFailure: passphrase missing or wrong, blob tampered
        """
        endpoint = await self.repository.get_endpoint()
        if not endpoint:
            raise ConfigurationFailure("Capsule endpoint not configured. Set it in settings.")

        blob = await self.repository.get_encrypted_token()
        if not blob and not self.vault.has_session:
            raise ConfigurationFailure("Not authenticated. Please save a Capsule token.")

        token = self.vault.unseal(blob, passphrase)
        if not token:
            raise AuthenticationFailure("Passphrase required to unlock the stored token")
        return endpoint, token

    async def test_connection(self, passphrase: Optional[str] = None) -> bool:
        try:
            endpoint, token = await self.resolve_credentials(passphrase)
        except SyncError as e:
            sync_error_handler.log_error(e)
            return False
        async with CapsuleSyncClient(endpoint, token, session=self.session) as client:
            return await client.health_check()

    # Sync

    async def sync_students(
        self,
        records: Sequence[CanonicalRecord],
        passphrase: Optional[str],
        on_progress: Optional[Callable[[int, int], None]] = None
    ) -> PipelineResult:
        """Diff against the stored index and send only changed records."""
        try:
            endpoint, token = await self.resolve_credentials(passphrase)
        except (ConfigurationFailure, AuthenticationFailure) as e:
            sync_error_handler.log_error(e)
            return PipelineResult(success=False, total=len(records), error=e.message)

        prior = await self.repository.get_hash_index()
        result = diff(records, prior)

        if not result.has_changes:
            await self.repository.set_hash_index(result.new_hashes)
            return PipelineResult(success=True, count=0, total=len(records), message=NO_CHANGES_MESSAGE)

        async with CapsuleSyncClient(endpoint, token, session=self.session) as client:
            outcome = await client.sync(result.changed, on_progress=on_progress)

        # Records from failed batches are left out so the next run resends them
        new_hashes = dict(result.new_hashes)
        for sourced_id in outcome.failed_record_ids:
            new_hashes.pop(sourced_id, None)
        await self.repository.set_hash_index(new_hashes)
        await self.repository.record_sync(len(result.changed), outcome)

        return PipelineResult(
            success=outcome.failed_count == 0,
            count=len(result.changed),
            total=len(records),
            error=outcome.first_error,
            outcome=outcome
        )

    async def run(
        self,
        document: Document,
        passphrase: Optional[str],
        deep: bool = False,
        on_progress: Optional[Callable[[int, int], None]] = None,
        on_crawl_progress: Optional[Callable[[int, int, str], None]] = None,
        cancel_event: Optional[asyncio.Event] = None
    ) -> PipelineResult:
        """Extract a page and sync its student records end to end."""
        extraction = self.extract(document)
        base = {'source_kind': extraction.source_kind, 'page_kind': extraction.page_kind}

        if extraction.page_kind == PageKind.GRADEBOOK:
            return PipelineResult(
                success=True, count=len(extraction.grades), total=len(extraction.grades),
                message="Grades extracted; kept local until a grades endpoint exists",
                grades=extraction.grades, **base
            )
        if extraction.page_kind == PageKind.ATTENDANCE:
            return PipelineResult(
                success=True, count=len(extraction.attendance), total=len(extraction.attendance),
                message="Attendance extracted; kept local until an attendance endpoint exists",
                attendance=extraction.attendance, **base
            )

        students = extraction.students
        if not students and extraction.csv_link:
            try:
                students = await self.fetch_csv(extraction.csv_link, extraction.source_kind)
            except TransportFailure as e:
                sync_error_handler.log_error(e, {'url': extraction.csv_link})
                return PipelineResult(success=False, error=f"CSV fetch failed: {e.message}", **base)
            if not students:
                return PipelineResult(success=False, error="CSV contained no student data", **base)

        if deep and extraction.page_kind == PageKind.ROSTER:
            details = await self.crawl(document, on_progress=on_crawl_progress, cancel_event=cancel_event)
            students = enrich_with_details(students, details)

        if not students:
            return PipelineResult(success=False, message=NO_DATA_MESSAGE, **base)

        result = await self.sync_students(students, passphrase, on_progress=on_progress)
        result.source_kind = extraction.source_kind
        result.page_kind = extraction.page_kind
        return result

import logging
import time
import uuid
from dataclasses import dataclass, field, replace
from datetime import datetime
from typing import Optional

from django.conf import settings
from django.db import DatabaseError
from django.utils import timezone

from .catalog_client import CatalogClient, PageResult, PageStatus
from .diff import ChangeKind, classify
from .lock import RunLock
from .status import StatusStore, SyncStatusSnapshot
from .storage import ShipStorage
from .transformer import dedupe_records, parse_record

logger = logging.getLogger(__name__)

TRIGGER_SCHEDULED = 'scheduled'
TRIGGER_MANUAL = 'manual'
TRIGGERS = (TRIGGER_SCHEDULED, TRIGGER_MANUAL)

STATUS_RUNNING = 'running'
STATUS_SUCCESS = 'success'
STATUS_PARTIAL = 'partial'
STATUS_FAILED = 'failed'
STATUS_ALREADY_RUNNING = 'already_running'


def _empty_counts() -> dict:
    return {kind.value: 0 for kind in ChangeKind}


@dataclass
class SyncRun:
    """Mutable state of one run, from lock acquisition to summary."""

    trigger: str
    sync_version: int
    error_cap: int
    id: str = field(default_factory=lambda: uuid.uuid4().hex)
    started_at: datetime = field(default_factory=timezone.now)
    finished_at: Optional[datetime] = None
    status: str = STATUS_RUNNING
    current_page: Optional[int] = None
    pages_processed: int = 0
    records_seen: int = 0
    counts: dict = field(default_factory=_empty_counts)
    errors: list = field(default_factory=list)
    error_count: int = 0
    duration_ms: int = 0
    aborted: bool = False
    _clock_start: float = field(default_factory=time.monotonic, repr=False)

    def record_error(self, page: Optional[int], message: str):
        self.error_count += 1
        if len(self.errors) < self.error_cap:
            self.errors.append({'page': page, 'message': message})

    def abort(self, page: Optional[int], message: str):
        self.record_error(page, message)
        self.aborted = True

    def finish(self):
        self.finished_at = timezone.now()
        self.duration_ms = int((time.monotonic() - self._clock_start) * 1000)
        if self.aborted or self.pages_processed == 0:
            self.status = STATUS_FAILED
        elif self.error_count:
            self.status = STATUS_PARTIAL
        else:
            self.status = STATUS_SUCCESS


@dataclass(frozen=True)
class SyncRunSummary:
    status: str
    trigger: str
    sync_version: int = 0
    ship_count: int = 0
    new_ships: int = 0
    updated_ships: int = 0
    unchanged_ships: int = 0
    skipped_ships: int = 0
    duration_ms: int = 0
    pages_processed: int = 0
    error_count: int = 0
    errors: tuple = ()
    run_id: Optional[str] = None

    @classmethod
    def from_run(cls, run: SyncRun, ship_count: int) -> 'SyncRunSummary':
        return cls(
            status=run.status,
            trigger=run.trigger,
            sync_version=run.sync_version,
            ship_count=ship_count,
            new_ships=run.counts[ChangeKind.NEW.value],
            updated_ships=run.counts[ChangeKind.UPDATED.value],
            unchanged_ships=run.counts[ChangeKind.UNCHANGED.value],
            skipped_ships=run.counts[ChangeKind.SKIPPED.value],
            duration_ms=run.duration_ms,
            pages_processed=run.pages_processed,
            error_count=run.error_count,
            errors=tuple(run.errors),
            run_id=run.id,
        )

    @classmethod
    def already_running(cls, trigger: str) -> 'SyncRunSummary':
        return cls(status=STATUS_ALREADY_RUNNING, trigger=trigger)

    @classmethod
    def failed(cls, trigger: str, message: str) -> 'SyncRunSummary':
        """A run that failed before any page was fetched."""
        return cls(
            status=STATUS_FAILED,
            trigger=trigger,
            error_count=1,
            errors=({'page': None, 'message': message},),
        )

    def with_error(self, message: str) -> 'SyncRunSummary':
        return replace(
            self,
            error_count=self.error_count + 1,
            errors=self.errors + ({'page': None, 'message': message},),
        )

    @property
    def has_errors(self) -> bool:
        return self.error_count > 0

    def as_dict(self) -> dict:
        return {
            'status': self.status,
            'trigger': self.trigger,
            'syncVersion': self.sync_version,
            'shipCount': self.ship_count,
            'newShips': self.new_ships,
            'updatedShips': self.updated_ships,
            'unchangedShips': self.unchanged_ships,
            'skippedShips': self.skipped_ships,
            'durationMs': self.duration_ms,
            'pagesProcessed': self.pages_processed,
            'errorCount': self.error_count,
            'hasErrors': self.has_errors,
            'errors': list(self.errors),
        }


class SyncOrchestrator:
    """
    Drives one catalog synchronization run end to end.

    Collaborators are injectable; by default the catalog client is built
    per run so it picks up current settings, and the storage, status store
    and run lock use the Django ORM.
    """

    def __init__(self, client=None, storage=None, status_store=None, lock=None):
        self._client = client
        self._storage = storage or ShipStorage()
        self._status = status_store or StatusStore()
        self._lock = lock

    def run(self, trigger: str = TRIGGER_MANUAL) -> SyncRunSummary:
        """
        Run a sync unless one is already in progress.

        Never raises for sync failures: every outcome, including a busy lock
        or a crash mid-run, comes back as a SyncRunSummary.
        """
        if trigger not in TRIGGERS:
            raise ValueError(f"Unknown sync trigger {trigger!r}; expected one of {TRIGGERS}.")

        lock = self._lock or RunLock()
        summary = None
        try:
            with lock.held() as acquired:
                if not acquired:
                    logger.info("Ship sync (%s) requested while another run is in progress – skipping.", trigger)
                    return SyncRunSummary.already_running(trigger)
                summary = self._run_locked(trigger)
        except DatabaseError as exc:
            if summary is None:
                logger.exception("Ship sync (%s) could not acquire the run lock.", trigger)
                return SyncRunSummary.failed(trigger, f'Run lock unavailable: {exc}')
            # The run itself finished; the lock row expires once stale.
            logger.exception("Ship sync run %s could not release the run lock.", summary.run_id)
            return summary.with_error(f'Failed to release run lock: {exc}')
        return summary

    def _run_locked(self, trigger: str) -> SyncRunSummary:
        try:
            latest = self._status.get_latest()
        except DatabaseError as exc:
            logger.exception("Ship sync (%s) could not read the published status.", trigger)
            return SyncRunSummary.failed(trigger, f'Status store unavailable: {exc}')

        run = SyncRun(
            trigger=trigger,
            sync_version=(latest.sync_version if latest else 0) + 1,
            error_cap=settings.SHIP_SYNC_ERROR_LIST_CAP,
        )
        logger.info("Starting ship sync v%d (%s, run %s).", run.sync_version, trigger, run.id)

        try:
            self._fetch_pages(run)
            if not run.aborted and run.pages_processed and not run.records_seen:
                run.abort(1, 'Catalog returned no ships – keeping existing data.')
            elif not run.aborted and latest is not None:
                self._check_catalog_size(run, latest.ship_count)
        except Exception as exc:
            logger.exception("Ship sync run %s crashed on page %s.", run.id, run.current_page)
            run.abort(run.current_page, f'Unexpected error: {exc}')

        run.finish()
        return self._finalize(run)

    def _check_catalog_size(self, run: SyncRun, previous_count: int):
        """Flag a catalog that shrank sharply since the last published sync."""
        ratio = settings.SHIP_SYNC_MIN_CATALOG_RATIO
        if previous_count and run.records_seen < previous_count * ratio:
            logger.warning(
                "Catalog returned %d ships, below %.0f%% of the %d at the last sync.",
                run.records_seen, ratio * 100, previous_count,
            )
            run.record_error(
                None,
                f'Catalog returned {run.records_seen} ships, below {ratio:.0%} of the '
                f'{previous_count} at the last sync – upstream listing may be truncated.',
            )

    def _fetch_pages(self, run: SyncRun):
        client = self._client or CatalogClient()
        page_size = settings.SHIP_CATALOG_PAGE_SIZE
        max_pages = settings.SHIP_CATALOG_MAX_PAGES
        max_failures = settings.SHIP_SYNC_MAX_CONSECUTIVE_FAILURES
        timeout = settings.SHIP_SYNC_RUN_TIMEOUT
        deadline = time.monotonic() + timeout

        page = 1
        has_more = True
        consecutive_failures = 0
        while has_more and page <= max_pages:
            if time.monotonic() >= deadline:
                logger.warning("Ship sync run %s timed out before page %d.", run.id, page)
                run.record_error(page, f'Run timed out after {timeout:.0f}s – remaining pages abandoned.')
                return

            run.current_page = page
            result = client.fetch_page(page, page_size, deadline=deadline)

            if result.status is PageStatus.FATAL_ERROR:
                logger.error("Page %d: fatal upstream error – %s. Aborting run.", page, result.message)
                run.abort(page, result.message)
                return

            if not result.ok:
                consecutive_failures += 1
                run.record_error(page, f'Page {page} failed after {result.attempts} attempt(s): {result.message}')
                if consecutive_failures > max_failures:
                    logger.error(
                        "Aborting run after %d consecutive page failures (limit %d).",
                        consecutive_failures, max_failures,
                    )
                    run.abort(page, f'Aborted after {consecutive_failures} consecutive page failures.')
                    return
                page += 1
                continue

            consecutive_failures = 0
            self._process_page(run, result)
            has_more = result.has_more
            page += 1

        if has_more:
            logger.error("Reached page cap (%d) with more pages pending.", max_pages)
            run.abort(page, f'Reached page cap ({max_pages}) with more pages pending.')

    def _process_page(self, run: SyncRun, result: PageResult):
        page = result.page
        parsed = [parse_record(raw) for raw in result.records]
        run.records_seen += len(parsed)

        kept, duplicates = dedupe_records(parsed)
        run.counts[ChangeKind.SKIPPED.value] += len(duplicates)

        existing = self._storage.existing_for(item.external_id for item in kept)
        for item in kept:
            diff = classify(existing.get(item.external_id), item)
            if diff.kind is ChangeKind.SKIPPED:
                logger.warning("Page %d: skipping record %s – %s.", page, diff.external_id or '<no id>', diff.reason)
            elif diff.needs_write:
                try:
                    self._storage.upsert(diff)
                except DatabaseError as exc:
                    logger.error("Page %d: failed to store ship %s: %s", page, diff.external_id, exc)
                    run.record_error(page, f'Failed to store ship {diff.external_id}: {exc}')
                    continue
            run.counts[diff.kind.value] += 1

        run.pages_processed += 1
        logger.info(
            "Page %d processed: %d records, %d duplicates (totals: %s).",
            page, len(parsed), len(duplicates), run.counts,
        )

    def _finalize(self, run: SyncRun) -> SyncRunSummary:
        ship_count = 0
        try:
            ship_count = self._storage.count()
            if run.status == STATUS_FAILED:
                logger.warning("Ship sync v%d failed – keeping the previously published snapshot.", run.sync_version)
            else:
                self._status.publish(SyncStatusSnapshot(
                    last_sync_at=run.finished_at,
                    ship_count=ship_count,
                    status=run.status,
                    sync_version=run.sync_version,
                ))
            self._status.archive(run, ship_count)
        except DatabaseError as exc:
            logger.exception("Failed to record the outcome of ship sync run %s.", run.id)
            run.record_error(None, f'Failed to record sync status: {exc}')
            if run.status == STATUS_SUCCESS:
                run.status = STATUS_PARTIAL

        summary = SyncRunSummary.from_run(run, ship_count)
        logger.info(
            "Ship sync v%d %s. new=%d, updated=%d, unchanged=%d, skipped=%d, pages=%d, errors=%d, %dms.",
            summary.sync_version, summary.status, summary.new_ships, summary.updated_ships,
            summary.unchanged_ships, summary.skipped_ships, summary.pages_processed,
            summary.error_count, summary.duration_ms,
        )
        return summary


def run_sync(trigger: str = TRIGGER_MANUAL) -> SyncRunSummary:
    return SyncOrchestrator().run(trigger)

"""Date-window sync and historical backfill against the opportunity source."""
from __future__ import annotations

import logging
import threading
import time
from dataclasses import dataclass, field, replace
from datetime import date, datetime, timedelta
from enum import Enum
from typing import Callable, Iterator, Optional

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import sessionmaker

from samsync.cache import CacheStore, IngestResult
from samsync.credentials import resolve_sync_context
from samsync.ingest.base import SearchParams, SourceClient, SyncContext
from samsync.models import utcnow
from samsync.settings import settings

logger = logging.getLogger("samsync.sync")

class BackfillStatus(str, Enum):
    IDLE = "idle"
    RUNNING = "running"

class BackfillState:
    """Guards against overlapping backfills. Only ``try_start``/``finish`` change it."""

    def __init__(self):
        self._lock = threading.Lock()
        self._status = BackfillStatus.IDLE
        self._cancel = threading.Event()
        self.started_at: Optional[datetime] = None

    def try_start(self) -> bool:
        with self._lock:
            if self._status is BackfillStatus.RUNNING:
                return False
            self._status = BackfillStatus.RUNNING
            self._cancel.clear()
            self.started_at = utcnow()
            return True

    def finish(self) -> None:
        with self._lock:
            self._status = BackfillStatus.IDLE
            self.started_at = None

    def request_cancel(self) -> None:
        self._cancel.set()

    @property
    def cancel_requested(self) -> bool:
        return self._cancel.is_set()

    @property
    def status(self) -> BackfillStatus:
        with self._lock:
            return self._status

    @property
    def is_running(self) -> bool:
        return self.status is BackfillStatus.RUNNING

@dataclass
class SyncResult:
    start: date
    end: date
    total_available: int
    pages: int
    ingest: IngestResult
    history_id: Optional[int] = None

    @property
    def total_records(self) -> int:
        return self.ingest.total

@dataclass
class BackfillResult:
    windows: int
    succeeded: list[tuple[date, date]] = field(default_factory=list)
    failed: list[tuple[date, date, str]] = field(default_factory=list)
    cancelled: bool = False
    records: int = 0

class SyncOrchestrator:
    def __init__(
        self,
        client: SourceClient,
        cache: CacheStore | None = None,
        session_factory: sessionmaker | None = None,
        state: BackfillState | None = None,
        page_size: int | None = None,
        page_delay: float | None = None,
        window_days: int | None = None,
        window_delay: float | None = None,
        sleep: Callable[[float], None] = time.sleep,
        today: Callable[[], date] | None = None,
        context_resolver: Callable[[], SyncContext] | None = None,
    ):
        self.client = client
        self.session_factory = session_factory
        self.cache = cache or CacheStore(session_factory)
        self.state = state or BackfillState()
        self.page_size = min(page_size or settings.SAM_PAGE_LIMIT, client.max_page_size)
        self.page_delay = settings.SYNC_PAGE_DELAY_SECONDS if page_delay is None else page_delay
        self.window_days = window_days or settings.BACKFILL_WINDOW_DAYS
        self.window_delay = settings.BACKFILL_WINDOW_DELAY_SECONDS if window_delay is None else window_delay
        self.sleep = sleep
        self.today = today or (lambda: utcnow().date())
        self.context_resolver = context_resolver or (lambda: resolve_sync_context(session_factory))

    # ---------- Single range ----------

    def sync_range(self, start: date, end: date, keyword: str | None = None) -> SyncResult:
        """
        Fetch every page for [start, end], cache the whole set, record history.
        Not retried here; a failure still leaves a 'failed' history row.
        """
        context = SyncContext()
        params = SearchParams(posted_from=start, posted_to=end, limit=self.page_size, keyword=keyword)
        history_params = params.as_dict()
        history_params.pop("offset")

        logger.info(f"[SAM.gov Sync] Syncing range: {start.isoformat()} to {end.isoformat()}")
        try:
            context = self.context_resolver()
            records, total, pages = self._fetch_all(params, context)
            result = self.cache.ingest(records, user_id=context.user_id, organization_id=context.organization_id)
        except Exception as e:
            logger.error(f"[SAM.gov Sync] Failed to sync range {start} to {end}: {e}")
            self._record_failure(history_params, e, context)
            raise

        history = self.cache.record_search_history(
            history_params,
            result,
            user_id=context.user_id,
            organization_id=context.organization_id,
        )
        return SyncResult(start, end, total, pages, result, history.id)

    def sync_recent(self, days: int | None = None) -> SyncResult:
        if days is None:
            days = settings.RECENT_SYNC_DAYS
        end = self.today()
        start = end - timedelta(days=days)
        logger.info("[SAM.gov Sync] Starting recent sync...")
        result = self.sync_range(start, end)
        logger.info(
            f"[SAM.gov Sync] Recent sync complete. Found {result.total_records} opportunities "
            f"({result.ingest.new} new)."
        )
        return result

    def _fetch_all(self, params: SearchParams, context: SyncContext) -> tuple[list[dict], int, int]:
        records: list[dict] = []
        offset = 0
        pages = 0
        total = 0
        while True:
            page = self.client.search(replace(params, offset=offset), context)
            pages += 1
            total = page.total_available
            records.extend(page.records)
            if not page.records or len(records) >= total:
                break
            offset += self.page_size
            self.sleep(self.page_delay)  # source rate limit
        return records, total, pages

    def _record_failure(self, params: dict, error: Exception, context: SyncContext) -> None:
        try:
            self.cache.record_search_history(
                params,
                status="failed",
                error=f"{type(error).__name__}: {error}",
                user_id=context.user_id,
                organization_id=context.organization_id,
            )
        except SQLAlchemyError as e:
            logger.error(f"[SAM.gov Sync] Could not record failed sync: {e}")

    # ---------- Backfill ----------

    def backfill_windows(self, months_back: int) -> Iterator[tuple[date, date]]:
        """Newest-first inclusive windows of ``window_days`` days that abut exactly."""
        end = self.today()
        for _ in range(months_back):
            start = end - timedelta(days=self.window_days - 1)
            yield start, end
            end = start - timedelta(days=1)

    def backfill(self, months_back: int | None = None) -> BackfillResult | None:
        """
        Crawl history window by window. Returns None without doing anything if a
        backfill is already running.
        """
        if not self.state.try_start():
            logger.warning("[SAM.gov Backfill] Backfill already in progress; ignoring request.")
            return None
        try:
            return self._run_backfill(settings.BACKFILL_MONTHS if months_back is None else months_back)
        finally:
            self.state.finish()

    def _run_backfill(self, months_back: int) -> BackfillResult:
        logger.info(f"[SAM.gov Backfill] Starting {months_back}-month backfill...")
        outcome = BackfillResult(windows=months_back)

        for i, (start, end) in enumerate(self.backfill_windows(months_back)):
            if self.state.cancel_requested:
                logger.warning(f"[SAM.gov Backfill] Cancelled before chunk {i + 1}/{months_back}.")
                outcome.cancelled = True
                break

            logger.info(f"[SAM.gov Backfill] Processing chunk {i + 1}/{months_back}...")
            try:
                result = self.sync_range(start, end)
                outcome.succeeded.append((start, end))
                outcome.records += result.total_records
                logger.info(f"[SAM.gov Backfill] Chunk {i + 1} complete. Processed {result.total_records} records.")
            except Exception as e:
                outcome.failed.append((start, end, str(e)))
                logger.error(f"[SAM.gov Backfill] Error in chunk {i + 1}. Continuing to next chunk... {e}")

            if i < months_back - 1:
                self.sleep(self.window_delay)

        logger.info(
            f"[SAM.gov Backfill] Backfill process completed: {len(outcome.succeeded)} ok, "
            f"{len(outcome.failed)} failed."
        )
        return outcome

from datetime import date, datetime, timedelta

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from samsync.cache import CacheStore
from samsync.errors import SourceUnavailableError
from samsync.ingest.base import SearchPage, SourceClient, SyncContext
from samsync.models import Base
from samsync.notify import NotificationSink
from samsync.sync import BackfillState, SyncOrchestrator

FIXED_NOW = datetime(2025, 3, 15, 12, 0, 0)
TODAY = FIXED_NOW.date()


class FixedClock:
    def __init__(self, now: datetime):
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> datetime:
        self.now += timedelta(**kwargs)
        return self.now


class FakeSource(SourceClient):
    """
    Serves ``records`` page by page; windows starting on a date in ``fail_on`` raise.
    With ``by_posted_date`` only records posted inside the requested window are served.
    """

    def __init__(self, records=None, total=None, max_page_size=1000, fail_on=(), on_search=None,
                 by_posted_date=False):
        self.records = list(records or [])
        self.total = total
        self.max_page_size = max_page_size
        self.fail_on = set(fail_on)
        self.on_search = on_search
        self.by_posted_date = by_posted_date
        self.calls = []

    def search(self, params, context):
        self.calls.append(params)
        if self.on_search:
            self.on_search(params)
        if params.posted_from in self.fail_on:
            raise SourceUnavailableError(f"HTTP 503 for {params.posted_from}")
        records = self.records
        if self.by_posted_date:
            records = [
                r for r in records
                if params.posted_from <= date.fromisoformat(r["postedDate"][:10]) <= params.posted_to
            ]
        page = records[params.offset:params.offset + params.limit]
        total = len(records) if self.total is None else self.total
        return SearchPage(total_available=total, records=page)


class RecordingSink(NotificationSink):
    def __init__(self, fail: bool = False):
        self.fail = fail
        self.sent = []

    def notify(self, recipient_id, type, title, message="", metadata=None):
        if self.fail:
            raise RuntimeError("notification service down")
        self.sent.append({
            "recipient_id": recipient_id,
            "type": type,
            "title": title,
            "message": message,
            "metadata": metadata,
        })


def _make_record(notice_id, **fields) -> dict:
    record = {
        "noticeId": notice_id,
        "title": f"Opportunity {notice_id}",
        "type": "Solicitation",
        "solicitationNumber": f"SOL-{notice_id}",
        "postedDate": "2025-03-10",
        "responseDeadLine": "2025-04-10T17:00:00-04:00",
        "naicsCode": "541512",
        "classificationCode": "D302",
        "fullParentPathName": "DEPT OF DEFENSE.DEPT OF THE ARMY",
        "description": "Cloud migration support services",
    }
    record.update(fields)
    return record


@pytest.fixture
def make_record():
    return _make_record


@pytest.fixture
def engine():
    eng = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(eng)
    yield eng
    eng.dispose()


@pytest.fixture
def session_factory(engine):
    return sessionmaker(bind=engine, expire_on_commit=False)


@pytest.fixture
def clock():
    return FixedClock(FIXED_NOW)


@pytest.fixture
def cache(session_factory, clock):
    return CacheStore(session_factory, clock=clock)


@pytest.fixture
def source():
    return FakeSource()


@pytest.fixture
def sleeps():
    return []


@pytest.fixture
def orchestrator(source, cache, session_factory, sleeps):
    return SyncOrchestrator(
        source,
        cache=cache,
        session_factory=session_factory,
        state=BackfillState(),
        page_size=100,
        page_delay=0.2,
        window_days=30,
        window_delay=5.0,
        sleep=sleeps.append,
        today=lambda: TODAY,
        context_resolver=lambda: SyncContext(api_key="test-key", source="system"),
    )


@pytest.fixture
def sink():
    return RecordingSink()

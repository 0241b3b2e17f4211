from datetime import date, timedelta

import pytest

from samsync.errors import SourceUnavailableError, StorageError
from samsync.ingest.base import SyncContext
from samsync.sync import BackfillState, BackfillStatus, SyncOrchestrator

from conftest import TODAY, FakeSource


def test_pagination_fetches_every_page(orchestrator, source, cache, sleeps, make_record):
    source.records = [make_record(f"N-{i}") for i in range(250)]

    result = orchestrator.sync_range(date(2025, 3, 1), date(2025, 3, 15))

    assert [p.offset for p in source.calls] == [0, 100, 200]
    assert all(p.limit == 100 for p in source.calls)
    assert result.pages == 3
    assert result.total_records == 250
    assert result.ingest.new == 250
    assert cache.count() == 250
    assert sleeps == [0.2, 0.2]


def test_page_size_never_exceeds_source_maximum(cache, session_factory, make_record):
    source = FakeSource([make_record(f"N-{i}") for i in range(120)], max_page_size=50)
    orch = SyncOrchestrator(source, cache=cache, session_factory=session_factory, page_size=1000,
                            page_delay=0, sleep=lambda s: None,
                            context_resolver=lambda: SyncContext(api_key="k"))

    orch.sync_range(date(2025, 3, 1), date(2025, 3, 15))

    assert [p.limit for p in source.calls] == [50, 50, 50]


def test_stops_on_empty_page_even_if_total_claims_more(orchestrator, source, make_record):
    source.records = [make_record(f"N-{i}") for i in range(120)]
    source.total = 500

    result = orchestrator.sync_range(date(2025, 3, 1), date(2025, 3, 15))

    assert [p.offset for p in source.calls] == [0, 100, 200]
    assert result.total_records == 120


def test_successful_sync_records_history(orchestrator, source, cache, make_record):
    source.records = [make_record("A"), make_record("B")]

    result = orchestrator.sync_range(date(2025, 3, 1), date(2025, 3, 15), keyword="cloud")

    history = cache.recent_searches()
    assert len(history) == 1
    assert history[0].id == result.history_id
    assert history[0].status == "success"
    assert history[0].keyword == "cloud"
    assert history[0].total_records == 2
    assert history[0].posted_to == date(2025, 3, 15)


def test_failed_sync_leaves_failed_history(orchestrator, source, cache):
    source.fail_on = {date(2025, 3, 1)}

    with pytest.raises(SourceUnavailableError):
        orchestrator.sync_range(date(2025, 3, 1), date(2025, 3, 15))

    history = cache.recent_searches()
    assert len(history) == 1
    assert history[0].status == "failed"
    assert "SourceUnavailableError" in history[0].error
    assert history[0].total_records == 0


def test_sync_recent_covers_trailing_week(orchestrator, source):
    orchestrator.sync_recent()

    assert source.calls[0].posted_to == TODAY
    assert source.calls[0].posted_from == TODAY - timedelta(days=7)


def test_sync_recent_zero_days_is_today_only(orchestrator, source):
    orchestrator.sync_recent(0)

    assert (source.calls[0].posted_from, source.calls[0].posted_to) == (TODAY, TODAY)


def test_backfill_of_zero_months_does_nothing(orchestrator, source, sleeps):
    outcome = orchestrator.backfill(0)

    assert outcome.windows == 0
    assert outcome.succeeded == [] and outcome.failed == []
    assert source.calls == []
    assert sleeps == []


def test_unreadable_credentials_leave_failed_history(orchestrator, source, cache):
    def broken():
        raise StorageError("Could not read API credentials")

    orchestrator.context_resolver = broken

    with pytest.raises(StorageError):
        orchestrator.sync_range(date(2025, 3, 1), date(2025, 3, 15))

    assert source.calls == []
    history = cache.recent_searches()
    assert [h.status for h in history] == ["failed"]
    assert "StorageError" in history[0].error


def test_backfill_windows_abut_without_overlap(orchestrator):
    windows = list(orchestrator.backfill_windows(10))

    assert len(windows) == 10
    assert windows[0] == (date(2025, 2, 14), date(2025, 3, 15))
    for start, end in windows:
        assert (end - start).days == 29
    for newer, older in zip(windows, windows[1:]):
        assert newer[0] - older[1] == timedelta(days=1)


def test_backfill_continues_past_failed_window(orchestrator, source, cache, sleeps, make_record):
    windows = list(orchestrator.backfill_windows(10))
    source.by_posted_date = True
    source.records = [make_record(f"W-{i}", postedDate=start.isoformat()) for i, (start, _) in enumerate(windows)]
    source.fail_on = {windows[4][0]}

    outcome = orchestrator.backfill(10)

    assert outcome.windows == 10
    assert len(outcome.succeeded) == 9
    assert [(s, e) for s, e, _ in outcome.failed] == [windows[4]]
    assert len(source.calls) == 10
    # delay between windows, none after the last
    assert sleeps == [5.0] * 9
    assert orchestrator.state.status is BackfillStatus.IDLE

    assert outcome.records == 9
    assert cache.count() == 9
    assert cache.get("W-4") is None
    assert all(cache.get(f"W-{i}") is not None for i in range(10) if i != 4)


def test_backfill_failures_are_recorded(orchestrator, source, cache):
    windows = list(orchestrator.backfill_windows(3))
    source.fail_on = {windows[1][0]}

    orchestrator.backfill(3)

    statuses = sorted(h.status for h in cache.recent_searches())
    assert statuses == ["failed", "success", "success"]


def test_second_backfill_is_a_no_op(orchestrator, source):
    assert orchestrator.state.try_start()

    assert orchestrator.backfill(3) is None
    assert source.calls == []
    assert orchestrator.state.is_running

    orchestrator.state.finish()


def test_backfill_requested_while_running_is_ignored(orchestrator, source):
    nested = []
    source.on_search = lambda params: nested.append(orchestrator.backfill(2)) if not nested else None

    outcome = orchestrator.backfill(2)

    assert nested == [None]
    assert len(outcome.succeeded) == 2
    assert not orchestrator.state.is_running


def test_backfill_stops_when_cancelled(orchestrator, source):
    source.on_search = lambda params: orchestrator.state.request_cancel()

    outcome = orchestrator.backfill(5)

    assert outcome.cancelled
    assert len(outcome.succeeded) == 1
    assert len(source.calls) == 1


def test_backfill_state_transitions():
    state = BackfillState()
    assert state.status is BackfillStatus.IDLE
    assert state.started_at is None

    assert state.try_start()
    assert not state.try_start()
    assert state.started_at is not None

    state.finish()
    assert state.status is BackfillStatus.IDLE
    assert state.try_start()

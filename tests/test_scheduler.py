import pytest
from apscheduler.schedulers.background import BackgroundScheduler
from apscheduler.triggers.cron import CronTrigger
from apscheduler.triggers.date import DateTrigger
from apscheduler.triggers.interval import IntervalTrigger

import samsync.scheduler as scheduler_module
from samsync.errors import ConfigurationError
from samsync.notify import BestEffortNotifier
from samsync.scheduler import PipelineScheduler, get_scheduler_status
from samsync.settings import settings


@pytest.fixture
def pipeline(orchestrator, session_factory, sink):
    return PipelineScheduler(
        orchestrator=orchestrator,
        session_factory=session_factory,
        notifier=BestEffortNotifier(sink),
        scheduler=BackgroundScheduler(timezone="UTC"),
    )


def test_registers_all_jobs(pipeline):
    pipeline.add_jobs()
    jobs = {job.id: job for job in pipeline.scheduler.get_jobs()}

    assert set(jobs) == {"samgov_daily_sync", "reminder_sweep", "saved_search_sweep", "samgov_startup_sync"}
    assert isinstance(jobs["samgov_daily_sync"].trigger, CronTrigger)
    assert isinstance(jobs["reminder_sweep"].trigger, IntervalTrigger)
    assert isinstance(jobs["saved_search_sweep"].trigger, CronTrigger)
    assert isinstance(jobs["samgov_startup_sync"].trigger, DateTrigger)


def test_startup_syncs_and_backfills_sparse_cache(pipeline, source):
    pipeline.run_startup()

    assert len(source.calls) == 1
    assert pipeline.scheduler.get_job("samgov_backfill") is not None


def test_startup_skips_backfill_when_cache_is_full(pipeline, source, make_record, monkeypatch):
    monkeypatch.setattr(settings, "BACKFILL_LOW_WATER_MARK", 2)
    source.records = [make_record(f"N-{i}") for i in range(3)]

    pipeline.run_startup()

    assert pipeline.cache.count() == 3
    assert pipeline.scheduler.get_job("samgov_backfill") is None


def test_startup_skips_backfill_already_running(pipeline):
    pipeline.state.try_start()

    pipeline.run_startup()

    assert pipeline.scheduler.get_job("samgov_backfill") is None
    pipeline.state.finish()


def test_startup_backfill_check_survives_failed_sync(pipeline, source):
    def no_key(params):
        raise ConfigurationError("SAM.gov API key not configured")
    source.on_search = no_key

    pipeline.run_startup()

    assert pipeline.scheduler.get_job("samgov_backfill") is not None


def test_job_failures_are_contained(pipeline, source, monkeypatch):
    def boom(*args, **kwargs):
        raise RuntimeError("boom")

    source.on_search = boom
    monkeypatch.setattr(scheduler_module, "send_due_reminders", boom)
    monkeypatch.setattr(scheduler_module, "run_saved_searches", boom)
    monkeypatch.setattr(pipeline.orchestrator, "backfill", boom)

    pipeline.run_daily_sync()
    pipeline.run_reminders()
    pipeline.run_saved_searches()
    pipeline.run_backfill()


def test_backfill_job_runs_orchestrator(pipeline, source, monkeypatch):
    monkeypatch.setattr(settings, "BACKFILL_MONTHS", 3)

    pipeline.run_backfill()

    assert len(source.calls) == 3
    assert not pipeline.state.is_running


def test_status_and_stop(pipeline):
    pipeline.add_jobs()

    status = pipeline.status()
    assert status["running"] is False
    assert status["timezone"] == "UTC"
    assert status["backfill"] == "idle"
    assert {j["id"] for j in status["jobs"]} >= {"samgov_daily_sync", "reminder_sweep"}

    pipeline.stop()
    assert pipeline.state.cancel_requested


def test_module_status_without_scheduler(monkeypatch):
    monkeypatch.setattr(scheduler_module, "_scheduler", None)

    assert get_scheduler_status() == {"running": False, "jobs": []}

import pytest

from app.core.config import SchedulerSettings
from app.jobs.scheduler import OVERDUE_JOB_ID, PRE_DEADLINE_JOB_ID, ReminderScheduler


@pytest.fixture
def scheduler(session_factory, dispatcher):
    reminder_scheduler = ReminderScheduler(
        session_factory,
        dispatcher,
        SchedulerSettings(enabled=True, hour=6, minute=30, timezone="UTC", misfire_grace_seconds=60),
    )
    yield reminder_scheduler
    reminder_scheduler.shutdown(wait=False)


def test_registers_both_daily_jobs(scheduler):
    scheduler.start()
    assert scheduler.running

    for job_id in (PRE_DEADLINE_JOB_ID, OVERDUE_JOB_ID):
        job = scheduler.scheduler.get_job(job_id)
        assert job is not None
        assert (job.next_run_time.hour, job.next_run_time.minute) == (6, 30)
        assert job.max_instances == 1
        assert job.coalesce is True


def test_start_is_idempotent(scheduler):
    scheduler.start()
    scheduler.start()
    assert len(scheduler.scheduler.get_jobs()) == 2


def test_shutdown_signals_running_sweeps(scheduler):
    scheduler.start()
    scheduler.shutdown(wait=True)
    assert not scheduler.running
    assert scheduler.stop_event.is_set()
    assert scheduler.sweeper.stop_event is scheduler.stop_event


def test_job_errors_do_not_escape(monkeypatch, scheduler):
    def explode(today=None):
        raise RuntimeError("boom")

    monkeypatch.setattr(scheduler.sweeper, "run_pre_deadline", explode)
    monkeypatch.setattr(scheduler.sweeper, "run_overdue", explode)
    assert scheduler.run_pre_deadline() is None
    assert scheduler.run_overdue() is None

# tests/test_scheduler_service.py

from __future__ import annotations

import asyncio
from datetime import datetime, timedelta, timezone

import pytest

from careerhub.services.scheduler_service import (
    CRON_JOBS,
    SchedulerNotInitializedError,
    SchedulerService,
    UnknownTaskError,
    cron_trigger,
)

from .conftest import NOW
from .factories import make_company, make_job


def next_fire(expression: str, after: datetime) -> datetime:
    return cron_trigger(expression).get_next_fire_time(None, after)


def test_weekly_cron_fires_on_sunday_midnight() -> None:
    monday = datetime(2025, 6, 2, 9, 0, tzinfo=timezone.utc)

    fire = next_fire("0 0 * * 0", monday)

    assert fire.weekday() == 6
    assert (fire.year, fire.month, fire.day, fire.hour, fire.minute) == (2025, 6, 8, 0, 0)
    assert next_fire("0 0 * * 7", monday) == fire


def test_interval_crons() -> None:
    start = datetime(2025, 6, 2, 9, 30, tzinfo=timezone.utc)

    assert next_fire("0 */6 * * *", start).hour == 12
    assert next_fire("0 */12 * * *", start).hour == 12
    assert next_fire("0 */2 * * *", start).hour == 10
    assert next_fire("0 0 * * *", start).day == 3


def test_calls_before_initialize_raise() -> None:
    service = SchedulerService()

    with pytest.raises(SchedulerNotInitializedError):
        service.list_jobs()
    with pytest.raises(SchedulerNotInitializedError):
        service.task_names()


@pytest.mark.asyncio
async def test_run_task_before_initialize_raises() -> None:
    with pytest.raises(SchedulerNotInitializedError):
        await SchedulerService().run_task("daily")


@pytest.mark.asyncio
async def test_initialize_registers_the_five_jobs_once(runner) -> None:
    service = SchedulerService()
    service.initialize(runner)
    service.initialize(runner)

    jobs = service.list_jobs()

    assert [j["id"] for j in jobs] == [job_id for job_id, _, _ in CRON_JOBS]
    assert {j["id"]: j["cron"] for j in jobs}["weekly"] == "0 0 * * 0"
    assert {j["id"]: j["task"] for j in jobs}["deadlineCheck"] == "deadlineReminders"
    service.shutdown()


@pytest.mark.asyncio
async def test_task_names(runner) -> None:
    service = SchedulerService()
    service.initialize(runner)

    assert service.task_names() == [
        "daily",
        "weekly",
        "deadlineReminders",
        "expiringJobs",
        "incompleteProfiles",
        "jobStats",
        "pendingRegistrations",
        "meetingReminders",
        "feedbackRequests",
        "chatCleanup",
    ]
    service.shutdown()


@pytest.mark.asyncio
async def test_unknown_task_raises(runner) -> None:
    service = SchedulerService()
    service.initialize(runner)

    with pytest.raises(UnknownTaskError) as excinfo:
        await service.run_task("hourly")

    assert excinfo.value.name == "hourly"
    service.shutdown()


@pytest.mark.asyncio
async def test_run_task_returns_results_as_a_list(db, runner) -> None:
    company = await make_company(db)
    await make_job(db, company, NOW + timedelta(days=2))
    service = SchedulerService()
    service.initialize(runner)

    single = await service.run_task("expiringJobs")
    bundle = await service.run_task("daily")

    assert [r.task for r in single] == ["expiringJobs"]
    assert single[0].notifications == 1
    assert len(bundle) == 6
    # Already flagged by the single run
    assert bundle[0].notifications == 0
    service.shutdown()


@pytest.mark.asyncio
async def test_start_and_shutdown(runner) -> None:
    service = SchedulerService()
    service.initialize(runner)
    service.start()

    assert service.scheduler.running
    assert all(j["nextRunTime"] for j in service.list_jobs())

    service.shutdown()

    assert not service.initialized
    assert service.scheduler is None
    with pytest.raises(SchedulerNotInitializedError):
        await service.run_task("daily")


@pytest.mark.asyncio
async def test_worker_runs_until_stopped(runner) -> None:
    from careerhub.worker import run_worker

    service = SchedulerService()
    service.initialize(runner)
    stop = asyncio.Event()
    stop.set()

    await run_worker(stop, service)

    assert not service.initialized


@pytest.mark.asyncio
async def test_overlapping_runs_are_serialized_on_the_running_loop(db, runner) -> None:
    company = await make_company(db)
    await make_job(db, company, NOW + timedelta(days=2))
    service = SchedulerService()
    assert service._lock is None
    service.initialize(runner)

    first, second = await asyncio.gather(service.run_task("expiringJobs"), service.run_task("expiringJobs"))

    assert [r.error for r in first + second] == [None, None]
    assert sorted([first[0].notifications, second[0].notifications]) == [0, 1]
    service.shutdown()
    assert service._lock is None

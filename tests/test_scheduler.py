"""Tests for binding fetchers to APScheduler."""

from __future__ import annotations

from datetime import timedelta
from types import SimpleNamespace
from typing import Any, Dict, List

from apscheduler.jobstores.base import JobLookupError
from apscheduler.schedulers.background import BackgroundScheduler

from web_retrieval.scheduler import FetchScheduler


class FakeScheduler:
    def __init__(self) -> None:
        self.jobs: Dict[str, Any] = {}
        self.rescheduled: List[Any] = []

    def add_job(self, func: Any, trigger: Any, id: str, **kwargs: Any) -> None:
        self.jobs[id] = SimpleNamespace(func=func, trigger=trigger, kwargs=kwargs)

    def get_job(self, job_id: str) -> Any:
        return self.jobs.get(job_id)

    def remove_job(self, job_id: str) -> None:
        if job_id not in self.jobs:
            raise JobLookupError(job_id)
        del self.jobs[job_id]

    def reschedule_job(self, job_id: str, trigger: Any) -> None:
        if job_id not in self.jobs:
            raise JobLookupError(job_id)
        self.jobs[job_id].trigger = trigger
        self.rescheduled.append(trigger)


class StubFetcher:
    def __init__(self, interval: timedelta = timedelta(minutes=30)) -> None:
        self.name = "stub"
        self.actual_interval = interval
        self.fetches = 0
        self.next_interval = interval

    def fetch(self) -> bool:
        self.fetches += 1
        self.actual_interval = self.next_interval
        return True


def test_schedule_adds_non_overlapping_interval_job() -> None:
    scheduler = FakeScheduler()
    binding = FetchScheduler(StubFetcher(timedelta(minutes=5)), scheduler)

    binding.schedule()

    job = scheduler.jobs["fetch_stub"]
    assert job.trigger.interval == timedelta(minutes=5)
    assert job.kwargs["max_instances"] == 1
    assert job.kwargs["coalesce"] is True
    assert "next_run_time" not in job.kwargs
    assert binding.is_scheduled


def test_schedule_run_now_sets_immediate_start() -> None:
    scheduler = FakeScheduler()
    binding = FetchScheduler(StubFetcher(), scheduler)

    binding.schedule(run_now=True)

    assert scheduler.jobs["fetch_stub"].kwargs["next_run_time"] is not None


def test_job_runs_fetch() -> None:
    scheduler = FakeScheduler()
    fetcher = StubFetcher()
    FetchScheduler(fetcher, scheduler).schedule()

    scheduler.jobs["fetch_stub"].func()

    assert fetcher.fetches == 1
    assert scheduler.rescheduled == []


def test_interval_change_reschedules_job() -> None:
    scheduler = FakeScheduler()
    fetcher = StubFetcher(timedelta(minutes=5))
    FetchScheduler(fetcher, scheduler).schedule()
    fetcher.next_interval = timedelta(minutes=15)

    scheduler.jobs["fetch_stub"].func()
    scheduler.jobs["fetch_stub"].func()

    assert len(scheduler.rescheduled) == 1
    assert scheduler.jobs["fetch_stub"].trigger.interval == timedelta(minutes=15)


def test_unschedule_removes_job() -> None:
    scheduler = FakeScheduler()
    binding = FetchScheduler(StubFetcher(), scheduler)
    binding.schedule()

    binding.unschedule()

    assert not binding.is_scheduled
    binding.unschedule()


def test_in_flight_run_after_unschedule_does_not_reschedule() -> None:
    scheduler = FakeScheduler()
    fetcher = StubFetcher(timedelta(minutes=5))
    binding = FetchScheduler(fetcher, scheduler)
    binding.schedule()
    run = scheduler.jobs["fetch_stub"].func
    binding.unschedule()
    fetcher.next_interval = timedelta(minutes=15)

    run()

    assert fetcher.fetches == 1
    assert scheduler.rescheduled == []
    assert not binding.is_scheduled


def test_works_with_apscheduler() -> None:
    scheduler = BackgroundScheduler()
    binding = FetchScheduler(StubFetcher(timedelta(minutes=5)), scheduler, job_id="status")

    binding.schedule()

    job = scheduler.get_job("status")
    assert job is not None
    assert job.max_instances == 1
    assert job.trigger.interval == timedelta(minutes=5)

    binding.unschedule()
    assert scheduler.get_job("status") is None

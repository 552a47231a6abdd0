"""
Binding of a RecurringFetcher to APScheduler.

The binding triggers ``fetch`` at the fetcher's actual retrieval interval and
follows interval changes negotiated by retrieved payloads. Ticks of a single
fetcher never overlap (``max_instances=1``).
"""

from __future__ import annotations

import threading
from datetime import datetime, timedelta, timezone
from typing import Any, Optional

import structlog
from apscheduler.jobstores.base import JobLookupError
from apscheduler.schedulers.background import BackgroundScheduler
from apscheduler.schedulers.base import BaseScheduler
from apscheduler.triggers.interval import IntervalTrigger

from web_retrieval.fetcher import RecurringFetcher

logger = structlog.get_logger(__name__)

MISFIRE_GRACE_SECONDS = 60


class FetchScheduler:
    """Schedules recurring fetches on an APScheduler instance.

    The scheduler is owned by the caller, who is responsible for starting
    and shutting it down. Without one a ``BackgroundScheduler`` is created.
    """

    def __init__(
        self,
        fetcher: RecurringFetcher[Any],
        scheduler: BaseScheduler | None = None,
        job_id: str | None = None,
    ) -> None:
        self.fetcher = fetcher
        self.scheduler = scheduler or BackgroundScheduler()
        self.job_id = job_id or f"fetch_{fetcher.name}"
        self._interval: Optional[timedelta] = None
        self._lock = threading.Lock()

    @property
    def is_scheduled(self) -> bool:
        return self.scheduler.get_job(self.job_id) is not None

    def schedule(self, run_now: bool = False) -> None:
        """(Re-)schedule the fetcher at its actual interval, optionally running immediately."""
        interval = self.fetcher.actual_interval
        job_kwargs = {}
        if run_now:
            job_kwargs["next_run_time"] = datetime.now(timezone.utc)

        with self._lock:
            self.scheduler.add_job(
                self._run,
                trigger=IntervalTrigger(seconds=interval.total_seconds()),
                id=self.job_id,
                name=f"Fetch {self.fetcher.name}",
                replace_existing=True,
                misfire_grace_time=MISFIRE_GRACE_SECONDS,
                max_instances=1,
                coalesce=True,
                **job_kwargs,
            )
            self._interval = interval

        logger.info(
            "Scheduled recurring fetch",
            job_id=self.job_id,
            interval_seconds=interval.total_seconds(),
            run_now=run_now,
        )

    def unschedule(self) -> None:
        """Stop triggering fetches; a fetch already running is allowed to finish."""
        with self._lock:
            try:
                self.scheduler.remove_job(self.job_id)
            except JobLookupError:
                logger.debug("Fetch job was not scheduled", job_id=self.job_id)
                return
            self._interval = None
        logger.info("Unscheduled recurring fetch", job_id=self.job_id)

    def _run(self) -> None:
        self.fetcher.fetch()
        self._follow_interval()

    def _follow_interval(self) -> None:
        interval = self.fetcher.actual_interval
        with self._lock:
            if self._interval is None or interval == self._interval:
                return
            try:
                self.scheduler.reschedule_job(self.job_id, trigger=IntervalTrigger(seconds=interval.total_seconds()))
            except JobLookupError:
                return
            previous, self._interval = self._interval, interval

        logger.info(
            "Rescheduled recurring fetch",
            job_id=self.job_id,
            previous_seconds=previous.total_seconds(),
            interval_seconds=interval.total_seconds(),
        )

"""Recurring retrieval from a randomly load-balanced pool of URLs."""

from __future__ import annotations

import enum
import random
import threading
from datetime import datetime, timedelta, timezone
from typing import Any, Callable, Generic, Iterable, Optional, Sequence, Tuple, TypeVar

import structlog

from web_retrieval.decoders import Decoder, DecodeFailure
from web_retrieval.models import RetrievedData
from web_retrieval.notifier import NotificationHub
from web_retrieval.retrieval import HttpRetrieval, IncompleteContent, RetrievalConfig

logger = structlog.get_logger(__name__)

T = TypeVar("T")

DEFAULT_RETRIEVAL_INTERVAL = timedelta(minutes=30)
DEFAULT_FAILURE_THRESHOLD = 3


class FetcherMisconfigured(RuntimeError):
    """Base class for fetches abandoned because the fetcher is not set up."""


class NoCandidateURLs(FetcherMisconfigured):
    """No URL is available to fetch from."""


class MissingTemplate(FetcherMisconfigured):
    """No retrieval configuration template has been provided."""


class FetcherState(enum.Enum):
    UNCONFIGURED = "unconfigured"
    IDLE = "idle"
    ARMED = "armed"
    FETCHING = "fetching"


class RecurringFetcher(Generic[T]):
    """Periodically retrieves and holds information from remote servers.

    Each ``fetch`` picks one URL at random from the configured pool for basic
    client-side load balancing, runs a fresh ``HttpRetrieval`` configured from
    the template and decodes the body. The decoded value may replace the URL
    pool (``next_retrieval_urls``) and demand a minimum interval between
    retrievals (``minimum_retrieval_interval``).

    Successful results are distributed through ``on_success`` as
    ``RetrievedData``. Once consecutive failures exceed ``failure_threshold``
    the fetcher itself is distributed through ``on_failure`` so the
    application can restart or reconfigure it.

    Calling ``fetch`` is the job of a scheduler binding; the fetcher does not
    serialize overlapping calls itself.
    """

    def __init__(
        self,
        decoder: Decoder[T],
        failure_threshold: int = DEFAULT_FAILURE_THRESHOLD,
        executor_factory: Callable[[RetrievalConfig], HttpRetrieval] = HttpRetrieval,
        rng: random.Random | None = None,
        clock: Callable[[], datetime] | None = None,
        name: str | None = None,
    ) -> None:
        if decoder is None:
            raise ValueError("decoder must not be None")
        self.decoder = decoder
        self.failure_threshold = max(0, failure_threshold)
        self.executor_factory = executor_factory
        self.name = name or f"fetcher-{id(self):x}"
        self.on_success: NotificationHub[RetrievedData[T]] = NotificationHub()
        self.on_failure: NotificationHub[RecurringFetcher[T]] = NotificationHub()

        self._rng = rng or random.Random()
        self._clock = clock or (lambda: datetime.now(timezone.utc))
        self._lock = threading.Lock()
        self._template: Optional[RetrievalConfig] = None
        self._urls: Tuple[str, ...] = ()
        self._preferred_interval: Optional[timedelta] = None
        self._minimum_interval: Optional[timedelta] = None
        self._actual_interval = DEFAULT_RETRIEVAL_INTERVAL
        self._consecutive_failures = 0
        self._latest: Optional[RetrievedData[T]] = None
        self._last_error: Optional[Exception] = None
        self._fetching = False

    # configuration

    def set_template(self, config: RetrievalConfig | None) -> None:
        """Use a copy of ``config`` for all following retrievals; None disables fetching."""
        copied = config.copy() if config is not None else None
        with self._lock:
            self._template = copied
        if copied is None:
            logger.warning("Unset retrieval template, fetching is disabled until a template is given", fetcher=self.name)

    @property
    def template(self) -> Optional[RetrievalConfig]:
        with self._lock:
            return self._template.copy() if self._template is not None else None

    def set_urls(self, urls: Iterable[str] | None) -> None:
        """Replace the pool of URLs one of which is chosen at random on each fetch."""
        copied = self._copy_urls(urls)
        with self._lock:
            self._urls = copied

    def _copy_urls(self, urls: Iterable[str] | None) -> Tuple[str, ...]:
        if urls is None:
            logger.warning("Retrieval URLs were reset due to None input", fetcher=self.name)
            return ()
        copied = tuple(urls)
        if not copied:
            logger.warning("Retrieval URLs were reset due to empty input", fetcher=self.name)
        return copied

    @property
    def next_retrieval_urls(self) -> Tuple[str, ...]:
        with self._lock:
            return self._urls

    def set_preferred_interval(self, interval: timedelta | None) -> None:
        """Set the interval the application would like to retrieve at.

        The actual interval may be longer if a retrieved payload demands it.
        """
        if interval is not None and interval <= timedelta(0):
            raise ValueError("preferred interval must be positive")
        with self._lock:
            self._preferred_interval = interval
            self._update_actual_interval()

    @property
    def preferred_interval(self) -> Optional[timedelta]:
        with self._lock:
            return self._preferred_interval

    @property
    def actual_interval(self) -> timedelta:
        with self._lock:
            return self._actual_interval

    def _update_actual_interval(self) -> None:
        # caller holds the lock
        candidates = [i for i in (self._preferred_interval, self._minimum_interval) if i is not None]
        self._actual_interval = max(candidates) if candidates else DEFAULT_RETRIEVAL_INTERVAL

    # state readers

    @property
    def consecutive_failures(self) -> int:
        with self._lock:
            return self._consecutive_failures

    @property
    def latest_retrieved_information(self) -> Optional[RetrievedData[T]]:
        """Latest successfully decoded result; kept while later fetches fail."""
        with self._lock:
            return self._latest

    @property
    def last_error(self) -> Optional[Exception]:
        with self._lock:
            return self._last_error

    @property
    def state(self) -> FetcherState:
        with self._lock:
            if self._fetching:
                return FetcherState.FETCHING
            if self._template is None:
                return FetcherState.UNCONFIGURED
            if not self._urls:
                return FetcherState.IDLE
            return FetcherState.ARMED

    # fetching

    def fetch(self) -> bool:
        """Fetch once, update state and notify listeners.

        Returns whether the fetch fully succeeded.
        """
        with self._lock:
            urls = self._urls
            template = self._template

        if not urls:
            logger.error("Attempted to fetch without any URL to fetch from", fetcher=self.name)
            self._abandon(NoCandidateURLs(f"{self.name} has no URL to fetch from"))
            return False
        if template is None:
            logger.error("Attempted to fetch without a retrieval template", fetcher=self.name)
            self._abandon(MissingTemplate(f"{self.name} has no retrieval template"))
            return False

        url = self._rng.choice(urls)
        retrieval = self.executor_factory(template.copy())

        with self._lock:
            self._fetching = True
        try:
            result, error = self._retrieve(retrieval, url)
        finally:
            with self._lock:
                self._fetching = False

        if error is not None:
            self._record_failure(url, error)
            return False

        self._record_success(result)
        return True

    def _retrieve(self, retrieval: HttpRetrieval, url: str) -> Tuple[Any, Optional[Exception]]:
        if not retrieval.get(url):
            return None, retrieval.last_error
        if not retrieval.is_complete_content():
            return None, IncompleteContent(url, retrieval.status_code)

        try:
            data = self.decoder(retrieval)
        except DecodeFailure as exc:
            return None, exc

        result = RetrievedData(
            retrieved_time=self._clock(),
            requested_location=retrieval.last_requested_location,
            retrieved_location=retrieval.last_resolved_location,
            data=data,
        )
        return result, None

    def _abandon(self, error: Exception) -> None:
        with self._lock:
            self._last_error = error

    def _record_success(self, result: RetrievedData[T]) -> None:
        next_urls: Optional[Sequence[str]] = getattr(result.data, "next_retrieval_urls", None)
        minimum_interval: Optional[timedelta] = getattr(result.data, "minimum_retrieval_interval", None)

        replacement_urls: Optional[Tuple[str, ...]] = None
        if next_urls is not None:
            logger.info("Retrieved data replaces retrieval URLs", fetcher=self.name, urls=list(next_urls))
            replacement_urls = self._copy_urls(next_urls)

        # pool, result and interval change together for readers
        with self._lock:
            if replacement_urls is not None:
                self._urls = replacement_urls
            self._latest = result
            self._consecutive_failures = 0
            self._last_error = None
            self._minimum_interval = minimum_interval
            previous_interval = self._actual_interval
            self._update_actual_interval()
            actual_interval = self._actual_interval

        if actual_interval != previous_interval:
            logger.info(
                "Retrieval interval changed",
                fetcher=self.name,
                previous_seconds=previous_interval.total_seconds(),
                actual_seconds=actual_interval.total_seconds(),
            )
        logger.debug("Fetch succeeded", fetcher=self.name, url=result.requested_location)
        self._distribute(self.on_success, result)

    def _record_failure(self, url: str, error: Exception) -> None:
        with self._lock:
            self._consecutive_failures += 1
            self._last_error = error
            failures = self._consecutive_failures

        logger.warning("Fetch failed", fetcher=self.name, url=url, error=str(error), consecutive_failures=failures)
        if failures == self.failure_threshold + 1:
            logger.error(
                "Consecutive failures exceeded threshold",
                fetcher=self.name,
                consecutive_failures=failures,
                threshold=self.failure_threshold,
            )
            self._distribute(self.on_failure, self)

    def _distribute(self, hub: NotificationHub[Any], value: Any) -> None:
        try:
            hub.distribute(value)
        except Exception:  # noqa: BLE001
            logger.exception("Listener failed while handling a notification", fetcher=self.name)

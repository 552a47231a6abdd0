"""Listener registration and distribution, plus stock failure notifiers."""

from __future__ import annotations

import inspect
import sys
import threading
from typing import TYPE_CHECKING, Any, Callable, Dict, Generic, Protocol, TextIO, Tuple, TypeVar, Union

import requests
import structlog

if TYPE_CHECKING:
    from web_retrieval.fetcher import RecurringFetcher

logger = structlog.get_logger(__name__)

T = TypeVar("T")
T_contra = TypeVar("T_contra", contravariant=True)


class NotificationError(RuntimeError):
    """Raised when sending a notification fails."""


class Listener(Protocol[T_contra]):
    """Listener interface."""

    def handle(self, value: T_contra) -> None: ...


ListenerLike = Union[Listener[T], Callable[[T], Any]]


def _listener_key(listener: Any) -> Tuple[int, Any]:
    # every attribute access creates a new bound method object
    owner = getattr(listener, "__self__", None)
    if owner is None or inspect.ismodule(owner):
        return (id(listener), None)
    return (id(owner), getattr(listener, "__func__", None) or getattr(listener, "__name__", None))


class NotificationHub(Generic[T]):
    """Distributes a value to all subscribed listeners.

    Listeners are kept by identity, so subscribing the same object twice has
    no further effect. Bound methods count as the same listener when they
    bind the same function to the same object. The value is passed by
    reference; distribute immutable values if listeners must not be able to
    affect each other.
    """

    def __init__(self) -> None:
        self._listeners: Dict[Tuple[int, Any], ListenerLike[T]] = {}
        self._lock = threading.RLock()

    def subscribe(self, listener: ListenerLike[T] | None) -> None:
        if listener is None:
            return
        with self._lock:
            self._listeners.setdefault(_listener_key(listener), listener)

    def unsubscribe(self, listener: ListenerLike[T]) -> None:
        with self._lock:
            self._listeners.pop(_listener_key(listener), None)

    def distribute(self, value: T) -> None:
        """Invoke every subscribed listener with ``value``, in no particular order."""
        with self._lock:
            for listener in list(self._listeners.values()):
                handle = getattr(listener, "handle", None)
                if callable(handle):
                    handle(value)
                else:
                    listener(value)

    def __len__(self) -> int:
        with self._lock:
            return len(self._listeners)


def _alert_text(fetcher: "RecurringFetcher[Any]") -> str:
    parts = [f"[ALERT] {fetcher.name}", f"consecutive_failures={fetcher.consecutive_failures}"]
    if fetcher.last_error is not None:
        parts.append(f"last_error={fetcher.last_error}")
    return " ".join(parts)


class StdoutNotifier:
    """Failure listener that writes an alert line to stdout."""

    def __init__(self, stream: TextIO | None = None) -> None:
        self.stream = stream or sys.stdout

    def handle(self, fetcher: "RecurringFetcher[Any]") -> None:
        print(_alert_text(fetcher), file=self.stream)


class SlackNotifier:
    """Failure listener that posts an alert to a Slack webhook."""

    def __init__(self, webhook_url: str, timeout: float = 5) -> None:
        self.webhook_url = webhook_url
        self.timeout = timeout

    def handle(self, fetcher: "RecurringFetcher[Any]") -> None:
        payload = {"text": _alert_text(fetcher)}

        try:
            response = requests.post(self.webhook_url, json=payload, timeout=self.timeout)
            response.raise_for_status()
        except requests.exceptions.RequestException as exc:
            raise NotificationError(f"Failed to send Slack notification: {exc}") from exc
        logger.info("Sent Slack alert", fetcher=fetcher.name)

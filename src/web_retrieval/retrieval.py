"""Single GET request execution on top of requests."""

from __future__ import annotations

import copy
import re
from dataclasses import dataclass
from datetime import timedelta
from typing import Any, Optional, Tuple

import requests
import structlog
from requests import Response
from requests.utils import requote_uri
from urllib3 import HTTPHeaderDict

from web_retrieval.headers import CaseInsensitiveHeaders

logger = structlog.get_logger(__name__)

DEFAULT_TIMEOUT = timedelta(seconds=30)
DEFAULT_USER_AGENT = "web-retrieval/0.1 (+https://example.com)"
DEFAULT_MAX_REDIRECTS = 5
UNUSUAL_MAX_REDIRECTS = 10

# lower-case only
SUPPORTED_PROTOCOLS = frozenset({"http", "https"})
_URL_PROTOCOL = re.compile(r"^([a-z]+)://", re.IGNORECASE)


class RetrievalError(RuntimeError):
    """Base class for errors recorded by a failed GET request."""

    def __init__(self, url: Optional[str], message: str) -> None:
        self.url = url
        self.message = message
        super().__init__(f"{message}: {url!r}")


class UnsupportedProtocol(RetrievalError):
    """The URL is missing, malformed or does not use http/https."""

    def __init__(self, url: Optional[str]) -> None:
        super().__init__(url, "Unsupported protocol")


class TransportError(RetrievalError):
    """The request failed on I/O level before a response was obtained."""

    def __init__(self, url: Optional[str], cause: Exception) -> None:
        self.cause = cause
        super().__init__(url, f"GET request failed ({type(cause).__name__}: {cause})")


class IncompleteContent(RetrievalError):
    """A response was obtained but its status does not denote complete content."""

    def __init__(self, url: Optional[str], status_code: Optional[int]) -> None:
        self.status_code = status_code
        super().__init__(url, f"Incomplete content (status={status_code})")


def is_complete_content_status(status_code: int) -> bool:
    """Check if a status code indicates that the full body was retrieved.

    Partial content (206), redirects and errors do not count as complete.
    """
    return 200 <= status_code <= 205


def is_supported_protocol(url: Any) -> bool:
    if not isinstance(url, str) or not url:
        return False
    match = _URL_PROTOCOL.match(url)
    if match is None:
        return False
    return match.group(1).lower() in SUPPORTED_PROTOCOLS


class RetrievalConfig:
    """Timeout, user agent and redirect limit applied to GET requests.

    Setters validate their input; rejected values keep the previous setting.
    """

    def __init__(
        self,
        timeout: timedelta | float = DEFAULT_TIMEOUT,
        user_agent: str = DEFAULT_USER_AGENT,
        max_redirects: int = DEFAULT_MAX_REDIRECTS,
    ) -> None:
        self._timeout = DEFAULT_TIMEOUT
        self._user_agent = DEFAULT_USER_AGENT
        self._max_redirects = DEFAULT_MAX_REDIRECTS
        self.timeout = timeout
        self.user_agent = user_agent
        self.max_redirects = max_redirects

    @property
    def timeout(self) -> timedelta:
        return self._timeout

    @timeout.setter
    def timeout(self, value: timedelta | float) -> None:
        if not isinstance(value, timedelta):
            value = timedelta(seconds=value)
        if value <= timedelta(0):
            logger.warning("Timeout must be positive, keeping previous value", requested=str(value), kept=str(self._timeout))
            return
        self._timeout = value

    @property
    def user_agent(self) -> str:
        return self._user_agent

    @user_agent.setter
    def user_agent(self, value: Optional[str]) -> None:
        if value is None:
            logger.warning("User agent cannot be set to None, keeping previous value", kept=self._user_agent)
            return
        if not value.strip():
            logger.warning("User agent cannot be blank, keeping previous value", kept=self._user_agent)
            return
        self._user_agent = value

    @property
    def max_redirects(self) -> int:
        return self._max_redirects

    @max_redirects.setter
    def max_redirects(self, value: int) -> None:
        if value < 0:
            logger.warning("Negative maximum of redirects, limiting to 0", requested=value)
            value = 0
        elif value > UNUSUAL_MAX_REDIRECTS:
            logger.warning("Allowing an unusually high number of redirects", requested=value)
        self._max_redirects = value

    def copy(self) -> "RetrievalConfig":
        return copy.copy(self)

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, RetrievalConfig):
            return NotImplemented
        return (self._timeout, self._user_agent, self._max_redirects) == (
            other._timeout,
            other._user_agent,
            other._max_redirects,
        )

    def __repr__(self) -> str:
        return (
            f"RetrievalConfig(timeout={self._timeout!r}, user_agent={self._user_agent!r}, "
            f"max_redirects={self._max_redirects!r})"
        )


@dataclass(frozen=True)
class RequestOutcome:
    """Everything captured from one response."""

    status_code: int
    header_pairs: Tuple[Tuple[str, str], ...]
    body: bytes
    requested_location: str
    resolved_location: str


def _header_pairs(response: Response) -> Tuple[Tuple[str, str], ...]:
    # requests folds repeated headers into one value, urllib3 keeps them apart
    raw_headers = getattr(getattr(response, "raw", None), "headers", None)
    if isinstance(raw_headers, HTTPHeaderDict):
        return tuple(raw_headers.iteritems())
    return tuple((response.headers or {}).items())


def _resolved_location(url: str, response: Response) -> str:
    if not getattr(response, "history", None):
        return url
    return requote_uri(response.url)


class HttpRetrieval:
    """Performs GET requests and keeps the outcome of the latest one.

    ``get`` only reports network-level success: an HTTP error status still
    counts as a response. Use ``is_complete_content`` to interpret the status.
    """

    def __init__(self, config: RetrievalConfig | None = None) -> None:
        self._config = config.copy() if config is not None else RetrievalConfig()
        self._outcome: Optional[RequestOutcome] = None
        self._last_requested_location: Optional[str] = None
        self._last_error: Optional[RetrievalError] = None

    def configure(self, config: RetrievalConfig) -> "HttpRetrieval":
        self._config = config.copy()
        return self

    @property
    def config(self) -> RetrievalConfig:
        return self._config.copy()

    def copy_configuration(self) -> "HttpRetrieval":
        """Return a fresh instance sharing no state except a copy of the configuration."""
        return type(self)(self._config)

    def get(self, url: Optional[str]) -> bool:
        """Request ``url`` and return whether any response was obtained."""
        self._outcome = None
        self._last_error = None
        self._last_requested_location = url if url is None else str(url)

        if not is_supported_protocol(url):
            logger.warning("Unsupported protocol used in URL for GET request", url=url)
            self._last_error = UnsupportedProtocol(self._last_requested_location)
            return False

        config = self._config
        logger.debug("Requesting by GET", url=url)
        try:
            response, body = self._perform(url, config)
        except requests.exceptions.RequestException as exc:
            logger.warning("GET request failed with an exception", url=url, error=str(exc))
            self._last_error = TransportError(url, exc)
            return False

        self._outcome = RequestOutcome(
            status_code=response.status_code,
            header_pairs=_header_pairs(response),
            body=body,
            requested_location=url,
            resolved_location=_resolved_location(url, response),
        )
        return True

    def _perform(self, url: str, config: RetrievalConfig) -> Tuple[Response, bytes]:
        with requests.Session() as session:
            session.max_redirects = config.max_redirects
            session.headers["User-Agent"] = config.user_agent
            response = session.get(url, timeout=config.timeout.total_seconds(), allow_redirects=True)
            # content is already decompressed by requests
            return response, response.content

    @property
    def outcome(self) -> Optional[RequestOutcome]:
        return self._outcome

    @property
    def last_error(self) -> Optional[RetrievalError]:
        return self._last_error

    @property
    def last_requested_location(self) -> Optional[str]:
        return self._last_requested_location

    @property
    def last_resolved_location(self) -> Optional[str]:
        """Location after following all redirects; None without a response."""
        if self._outcome is None:
            return None
        return self._outcome.resolved_location

    @property
    def status_code(self) -> Optional[int]:
        return None if self._outcome is None else self._outcome.status_code

    @property
    def body_bytes(self) -> Optional[bytes]:
        return None if self._outcome is None else self._outcome.body

    @property
    def headers(self) -> Optional[CaseInsensitiveHeaders]:
        if self._outcome is None:
            return None
        return CaseInsensitiveHeaders(self._outcome.header_pairs)

    def is_complete_content(self) -> bool:
        if self._outcome is None:
            return False
        return is_complete_content_status(self._outcome.status_code)

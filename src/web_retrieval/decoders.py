"""Decoders turning a completed HttpRetrieval into application values.

A decoder is any callable accepting an ``HttpRetrieval``. It signals that the
payload cannot be interpreted by raising ``DecodeFailure``; ``None`` or an
empty value is a valid result.

Decoded values may steer a ``RecurringFetcher`` by exposing the attributes
``next_retrieval_urls`` (replacement URL pool) and
``minimum_retrieval_interval`` (a ``timedelta``). ``DecodedDocument`` carries
both next to the actual value.
"""

from __future__ import annotations

import codecs
import json
import math
import re
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Any, Callable, List, Optional, Sequence, TypeVar

from bs4 import BeautifulSoup

from web_retrieval.models import RetrievedData
from web_retrieval.retrieval import HttpRetrieval

T = TypeVar("T")

Decoder = Callable[[HttpRetrieval], T]

CONTENT_TYPE_HEADER = "Content-Type"
NEXT_URLS_KEY = "next_urls"
MIN_INTERVAL_KEY = "min_interval_seconds"

_CHARSET_PATTERN = re.compile(r";\s*charset=(\S+)", re.IGNORECASE)


class DecodeFailure(Exception):
    """Raised when a response body cannot be interpreted."""


@dataclass(frozen=True)
class DecodedDocument:
    """A decoded value plus optional instructions for the next retrievals."""

    value: Any
    next_retrieval_urls: Optional[Sequence[str]] = None
    minimum_retrieval_interval: Optional[timedelta] = None


def extract_charset(content_type: Optional[str]) -> Optional[str]:
    """Return the charset token of a Content-Type header value, if any."""
    if not content_type:
        return None
    match = _CHARSET_PATTERN.search(content_type)
    if match is None:
        return None
    return match.group(1)


def _lookup_charset(name: Optional[str]) -> Optional[str]:
    if name is None:
        return None
    try:
        info = codecs.lookup(name)
    except LookupError:
        return None
    # bytes-to-bytes codecs such as base64 or rot13 cannot decode a body
    if not getattr(info, "_is_text_encoding", True):
        return None
    return info.name


def _require_body(retrieval: HttpRetrieval) -> bytes:
    body = retrieval.body_bytes
    if body is None:
        raise DecodeFailure(f"No response body available for {retrieval.last_requested_location!r}")
    return body


def _decode_text(body: bytes, charset: str) -> str:
    try:
        return body.decode(charset)
    except UnicodeDecodeError as exc:
        raise DecodeFailure(f"Body is not valid {charset}: {exc}") from exc
    except LookupError as exc:
        raise DecodeFailure(f"Cannot decode body as {charset}: {exc}") from exc


def header_charset(retrieval: HttpRetrieval, fallback: str) -> str:
    headers = retrieval.headers
    content_type = headers.get_first_by_name(CONTENT_TYPE_HEADER) if headers is not None else None
    return _lookup_charset(extract_charset(content_type)) or fallback


def body_as_text(charset: str) -> Decoder[str]:
    """Build a decoder reading the body with a fixed character set."""
    if _lookup_charset(charset) is None:
        raise ValueError(f"Unknown character set {charset!r}")

    def decode(retrieval: HttpRetrieval) -> str:
        return _decode_text(_require_body(retrieval), charset)

    return decode


def body_as_text_with_header_charset(fallback: str) -> Decoder[str]:
    """Build a decoder using the Content-Type charset, or ``fallback`` if unavailable."""
    if _lookup_charset(fallback) is None:
        raise ValueError(f"Unknown character set {fallback!r}")

    def decode(retrieval: HttpRetrieval) -> str:
        return _decode_text(_require_body(retrieval), header_charset(retrieval, fallback))

    return decode


def _parse_next_urls(raw: Any) -> Optional[List[str]]:
    if raw is None:
        return None
    if not isinstance(raw, list) or not all(isinstance(item, str) for item in raw):
        raise DecodeFailure(f'"{NEXT_URLS_KEY}" must be a list of strings')
    return list(raw)


def _parse_min_interval(raw: Any) -> Optional[timedelta]:
    if raw is None:
        return None
    if isinstance(raw, bool) or not isinstance(raw, (int, float)):
        raise DecodeFailure(f'"{MIN_INTERVAL_KEY}" must be a non-negative number')
    try:
        if not math.isfinite(raw) or raw < 0:
            raise DecodeFailure(f'"{MIN_INTERVAL_KEY}" must be a finite non-negative number')
        return timedelta(seconds=raw)
    except (OverflowError, ValueError) as exc:
        raise DecodeFailure(f'"{MIN_INTERVAL_KEY}" is out of range: {raw!r}') from exc


def json_document(fallback_charset: str = "utf-8") -> Decoder[DecodedDocument]:
    """Build a decoder for JSON bodies.

    A top-level object may carry ``next_urls`` and ``min_interval_seconds``
    which are lifted into the returned ``DecodedDocument``.
    """
    text_decoder = body_as_text_with_header_charset(fallback_charset)

    def decode(retrieval: HttpRetrieval) -> DecodedDocument:
        text = text_decoder(retrieval)
        try:
            value = json.loads(text)
        except ValueError as exc:
            raise DecodeFailure(f"Body is not valid JSON: {exc}") from exc

        if not isinstance(value, dict):
            return DecodedDocument(value=value)

        return DecodedDocument(
            value=value,
            next_retrieval_urls=_parse_next_urls(value.get(NEXT_URLS_KEY)),
            minimum_retrieval_interval=_parse_min_interval(value.get(MIN_INTERVAL_KEY)),
        )

    return decode


def html_selector(selector: str, fallback_charset: str = "utf-8") -> Decoder[str]:
    """Build a decoder returning the text of the first element matching ``selector``."""
    text_decoder = body_as_text_with_header_charset(fallback_charset)

    def decode(retrieval: HttpRetrieval) -> str:
        soup = BeautifulSoup(text_decoder(retrieval), "html.parser")
        elem = soup.select_one(selector)
        if elem is None:
            raise DecodeFailure(f"No element found for selector {selector!r}")
        return elem.get_text(strip=True)

    return decode


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


def with_metadata(
    decoder: Decoder[T], clock: Callable[[], datetime] | None = None
) -> Decoder[RetrievedData[T]]:
    """Wrap the results of ``decoder`` into ``RetrievedData``."""
    if decoder is None:
        raise ValueError("decoder must not be None")
    now = clock or _utc_now

    def decode(retrieval: HttpRetrieval) -> RetrievedData[T]:
        retrieved_time = now()
        data = decoder(retrieval)
        return RetrievedData(
            retrieved_time=retrieved_time,
            requested_location=retrieval.last_requested_location,
            retrieved_location=retrieval.last_resolved_location,
            data=data,
        )

    return decode

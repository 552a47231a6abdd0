"""Value types shared between decoders, fetchers and listeners."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import Generic, Optional, TypeVar

T = TypeVar("T")


@dataclass(frozen=True)
class RetrievedData(Generic[T]):
    """Decoded data annotated with where and when it was retrieved.

    ``requested_location`` is the URL asked for, ``retrieved_location`` the
    one the data actually came from after following redirects.
    """

    retrieved_time: datetime
    requested_location: Optional[str]
    retrieved_location: Optional[str]
    data: T

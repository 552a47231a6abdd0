"""Case-insensitive storage for HTTP response headers."""

from __future__ import annotations

from types import MappingProxyType
from typing import Dict, Iterable, List, Mapping, Optional, Tuple


class CaseInsensitiveHeaders:
    """Header values indexed by lower-cased name.

    A name may occur multiple times; its values are kept in order of arrival.
    Lookups return read-only snapshots.
    """

    def __init__(self, pairs: Iterable[Tuple[str, str]] | None = None) -> None:
        self._values: Dict[str, List[str]] = {}
        if pairs is not None:
            self.add_all(pairs)

    def add(self, name: str, value: str) -> "CaseInsensitiveHeaders":
        if name is None:
            raise ValueError("None is not allowed as header name")
        if value is None:
            raise ValueError("None is not allowed as header value")

        self._values.setdefault(name.lower(), []).append(value)
        return self

    def add_all(self, pairs: Iterable[Tuple[str, str]] | None) -> "CaseInsensitiveHeaders":
        if pairs is None:
            return self
        for name, value in pairs:
            self.add(name, value)
        return self

    def get_all(self) -> Mapping[str, Tuple[str, ...]]:
        """Return all values indexed by lower-case header name."""
        return MappingProxyType({name: tuple(values) for name, values in self._values.items()})

    def get_all_by_name(self, name: str) -> Tuple[str, ...]:
        return tuple(self._values.get(name.lower(), ()))

    def get_first_by_name(self, name: str) -> Optional[str]:
        values = self._values.get(name.lower())
        return values[0] if values else None

    def __contains__(self, name: object) -> bool:
        return isinstance(name, str) and name.lower() in self._values

    def __len__(self) -> int:
        return len(self._values)

    def __repr__(self) -> str:
        return f"CaseInsensitiveHeaders({dict(self.get_all())!r})"

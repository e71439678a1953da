"""A database of string literals laid out in one zero-terminated buffer."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Optional, Union


@dataclass(frozen=True)
class StringEntry:
    """Where a string lives in the database."""

    str: str
    idx: int
    len: int


@dataclass
class StringDb:
    """String literals stored back to back, each followed by a NUL byte."""

    _buffer: bytearray = field(default_factory=bytearray)
    _entries: dict[str, StringEntry] = field(default_factory=dict)

    def find(self, s: str) -> Optional[StringEntry]:
        """Return the entry for `s`, or None if it has not been added."""
        return self._entries.get(s)

    def add(self, s: Union[str, bytes]) -> StringEntry:
        """Add `s` unless present; return its entry."""
        key = s.decode("latin-1") if isinstance(s, bytes) else s
        existing = self._entries.get(key)
        if existing is not None:
            return existing
        encoded = s if isinstance(s, bytes) else s.encode("utf-8")
        entry = StringEntry(key, len(self._buffer), len(encoded))
        self._buffer += encoded
        self._buffer.append(0)
        self._entries[key] = entry
        return entry

    def data(self) -> bytes:
        """The whole buffer."""
        return bytes(self._buffer)

    def __len__(self) -> int:
        return len(self._buffer)
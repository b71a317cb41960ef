"""Append-only log of edited images for one editing session."""

from __future__ import annotations

from typing import Iterable, Iterator


class EditHistory:
    """Ordered data URLs, oldest first, plus a pointer to the current entry.

    Reverting only moves the pointer. Entries after the reverted-to point are
    kept, and the next append still lands at the tail of the full log.
    """

    def __init__(self, entries: Iterable[str] | None = None):
        self._entries: list[str] = list(entries or [])
        self._current: str | None = self._entries[-1] if self._entries else None

    @property
    def entries(self) -> list[str]:
        return list(self._entries)

    @property
    def current(self) -> str | None:
        return self._current

    def append(self, data_url: str) -> None:
        self._entries.append(data_url)
        self._current = data_url

    def revert(self, data_url: str) -> str:
        if data_url not in self._entries:
            raise ValueError("Can only revert to an entry in the history.")
        self._current = data_url
        return data_url

    def clear(self) -> None:
        self._entries = []
        self._current = None

    def __len__(self) -> int:
        return len(self._entries)

    def __iter__(self) -> Iterator[str]:
        return iter(list(self._entries))

"""Phone number to name lookups used to enrich call events."""

import re
from abc import ABC, abstractmethod

_NON_DIGITS_RE = re.compile(r"\D")


def digits_only(number: str) -> str:
    return _NON_DIGITS_RE.sub("", number)


class Directory(ABC):
    @abstractmethod
    def lookup_name(self, number: str) -> str | None:
        """Return the name for a number, or None if unknown."""


class StaticDirectory(Directory):
    """In-memory phonebook built from a number → name mapping."""

    def __init__(self, entries: dict[str, str] | None = None) -> None:
        self._entries = {
            digits_only(number): name
            for number, name in (entries or {}).items()
            if digits_only(number)
        }

    def __len__(self) -> int:
        return len(self._entries)

    def lookup_name(self, number: str) -> str | None:
        key = digits_only(number)
        if not key:
            return None
        return self._entries.get(key)

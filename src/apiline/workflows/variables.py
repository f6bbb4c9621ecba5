"""Thread-safe variable storage for a workflow session."""

from __future__ import annotations

import threading
from typing import Any, Iterator, Mapping

_ABSENT = object()


class VariableStore:
    """Name to value mapping shared by substitution, auth and persistence.

    Names are case-sensitive and the last write wins. Iteration and
    ``snapshot`` follow first-insertion order, so overwriting a variable keeps
    its position in listings and in the written document.
    """

    def __init__(self, initial: Mapping[str, Any] | None = None) -> None:
        self._lock = threading.RLock()
        self._values: dict[str, Any] = {}
        if initial:
            self.merge(initial)

    def get(self, name: str, default: Any = None) -> Any:
        with self._lock:
            return self._values.get(name, default)

    def set(self, name: str, value: Any) -> None:
        with self._lock:
            self._values[name] = value

    def merge(self, mapping: Mapping[str, Any]) -> None:
        """Apply each entry of ``mapping`` as a ``set``."""
        with self._lock:
            for name, value in mapping.items():
                self._values[name] = value

    def setdefault(self, name: str, value: Any) -> bool:
        """Bind ``name`` only if it is not bound yet.

        Returns:
            True if the variable was added.
        """
        with self._lock:
            if name in self._values:
                return False
            self._values[name] = value
            return True

    def lookup(self, name: str) -> tuple[bool, Any]:
        """Return ``(found, value)`` so that a bound ``None`` is distinguishable from absence."""
        with self._lock:
            value = self._values.get(name, _ABSENT)
        if value is _ABSENT:
            return False, None
        return True, value

    def snapshot(self) -> list[tuple[str, Any]]:
        with self._lock:
            return list(self._values.items())

    def as_dict(self) -> dict[str, Any]:
        with self._lock:
            return dict(self._values)

    def __contains__(self, name: object) -> bool:
        with self._lock:
            return name in self._values

    def __iter__(self) -> Iterator[str]:
        with self._lock:
            return iter(list(self._values))

    def __len__(self) -> int:
        with self._lock:
            return len(self._values)

    def __repr__(self) -> str:
        return f"VariableStore({self.as_dict()!r})"

"""Populate-once memoization cell.

Used for per-pull-request data that is fetched lazily and never refreshed
(e.g. the file list):

- The first caller runs the factory while holding the lock
- Concurrent first callers wait and then reuse that result
- A factory that raises leaves the cell empty, so the next call retries
"""

from __future__ import annotations

import logging
import threading
from collections.abc import Callable
from typing import Generic, TypeVar

logger = logging.getLogger(__name__)

T = TypeVar("T")

_SENTINEL = object()


class Memo(Generic[T]):
    """A lock-guarded cell that holds one lazily computed value."""

    __slots__ = ("_lock", "_value")

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._value: object = _SENTINEL

    @property
    def is_set(self) -> bool:
        return self._value is not _SENTINEL

    def get_or_set(self, factory: Callable[[], T]) -> T:
        """Return the cached value, computing it with *factory* on first use."""
        value = self._value
        if value is not _SENTINEL:
            return value  # type: ignore[return-value]

        with self._lock:
            if self._value is _SENTINEL:
                self._value = factory()
                logger.debug("Memo populated")
            else:
                logger.debug("Memo populated by a concurrent caller")
            return self._value  # type: ignore[return-value]

    def clear(self) -> None:
        """Forget the cached value."""
        with self._lock:
            self._value = _SENTINEL

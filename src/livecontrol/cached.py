"""Compute-once cells shared between readers."""

import threading
from typing import Callable, Generic, Optional, TypeVar

T = TypeVar("T")

_UNSET = object()


class CachedCompute(Generic[T]):
    """
    Lazily computes a value once and hands the same object to every reader.

    Any number of threads may call `get()`; the first one computes under a
    lock and the rest wait for and reuse its result. If the computation
    raises, nothing is cached and the next reader retries.
    """

    def __init__(self, compute: Optional[Callable[[], T]] = None):
        self._compute = compute
        self._value = _UNSET
        self._lock = threading.Lock()

    @property
    def is_ready(self) -> bool:
        return self._value is not _UNSET

    def get(self, compute: Optional[Callable[[], T]] = None) -> T:
        value = self._value
        if value is not _UNSET:
            return value
        with self._lock:
            if self._value is _UNSET:
                fn = compute or self._compute
                if fn is None:
                    raise ValueError("CachedCompute has no compute function")
                self._value = fn()
            return self._value

    def peek(self) -> Optional[T]:
        """The cached value, or None if not computed yet."""
        return None if self._value is _UNSET else self._value

    def reset(self) -> None:
        with self._lock:
            self._value = _UNSET

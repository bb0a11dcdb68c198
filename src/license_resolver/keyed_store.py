from __future__ import annotations

import threading
from concurrent.futures import Future
from typing import Callable, Generic, Hashable, Optional, TypeVar


K = TypeVar("K", bound=Hashable)
V = TypeVar("V")


class KeyedStore(Generic[K, V]):
    """Thread-safe memo table with single-flight ``get_or_compute``.

    The first caller for a missing key runs ``compute``; concurrent callers for
    the same key block on that caller's future and reuse its value or its
    exception. Entries are never evicted.
    """

    def __init__(self, name: str = "store", wait_timeout: Optional[float] = None):
        self.name = name
        self.wait_timeout = wait_timeout
        self._values: dict[K, V] = {}
        self._pending: dict[K, Future] = {}
        self._lock = threading.Lock()

    def __contains__(self, key: object) -> bool:
        with self._lock:
            return key in self._values

    def __len__(self) -> int:
        with self._lock:
            return len(self._values)

    def get(self, key: K, default: Optional[V] = None) -> Optional[V]:
        with self._lock:
            return self._values.get(key, default)

    def put(self, key: K, value: V) -> None:
        with self._lock:
            self._values[key] = value

    def items(self) -> list[tuple[K, V]]:
        with self._lock:
            return list(self._values.items())

    def get_or_compute(self, key: K, compute: Callable[[], V]) -> V:
        with self._lock:
            if key in self._values:
                return self._values[key]
            future = self._pending.get(key)
            owner = future is None
            if owner:
                future = Future()
                self._pending[key] = future

        if not owner:
            return future.result(timeout=self.wait_timeout)

        try:
            value = compute()
        except BaseException as exc:
            with self._lock:
                self._pending.pop(key, None)
            future.set_exception(exc)
            raise

        with self._lock:
            # a value stored with put() while computing wins
            value = self._values.setdefault(key, value)
            self._pending.pop(key, None)
        future.set_result(value)
        return value

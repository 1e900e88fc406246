"""Bounded parallel runner with first-error short-circuit.

Usage::

    runner = fixed_bounded_runner(queue_size=len(items), parallelism=8)
    for item in items:
        runner.submit(partial(work, item))
    results = runner.collect()  # raises the first error

Results come back in completion order; callers sort when order matters.
After the first failure no further thunks are started, while thunks already
running finish and their results are dropped.
"""

from __future__ import annotations

import os
import threading
from collections.abc import Callable
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field

from gatewaygen.config.constants import IO_BOUND_MULTIPLIER
from gatewaygen.core.logging import get_logger

logger = get_logger("scheduler")


def default_parallelism(io_bound: bool = False) -> int:
    """CPU count, or CPU count x4 for IO-bound phases."""
    cpus = os.cpu_count() or 1
    return cpus * IO_BOUND_MULTIPLIER if io_bound else cpus


@dataclass
class Runner[T]:
    """Run thunks on worker threads and gather their results.

    With ``parallelism`` set, at most that many thunks run at once and
    ``submit`` blocks once ``queue_size`` thunks are waiting. With
    ``parallelism=None`` every thunk gets its own thread.
    """

    queue_size: int
    parallelism: int | None = None
    name: str = "gwgen-worker"

    _executor: ThreadPoolExecutor | None = field(default=None, init=False)
    _threads: list[threading.Thread] = field(default_factory=list, init=False)
    _slots: threading.BoundedSemaphore | None = field(default=None, init=False)
    _cancelled: threading.Event = field(default_factory=threading.Event, init=False)
    _lock: threading.Lock = field(default_factory=threading.Lock, init=False)
    _results: list[T] = field(default_factory=list, init=False)
    _error: BaseException | None = field(default=None, init=False)
    _closed: bool = field(default=False, init=False)

    def __post_init__(self) -> None:
        if self.parallelism is not None:
            if self.parallelism < 1:
                raise ValueError(f"parallelism must be >= 1, got {self.parallelism}")
            self._executor = ThreadPoolExecutor(max_workers=self.parallelism, thread_name_prefix=self.name)
            self._slots = threading.BoundedSemaphore(max(self.queue_size, 0) + self.parallelism)

    @property
    def cancelled(self) -> bool:
        return self._cancelled.is_set()

    def _run(self, thunk: Callable[[], T]) -> None:
        try:
            if self._cancelled.is_set():
                return
            try:
                result = thunk()
            except BaseException as e:  # noqa: BLE001 - handed to collect()
                with self._lock:
                    if self._error is None:
                        self._error = e
                        logger.debug("runner_first_error", runner=self.name, error=str(e))
                self._cancelled.set()
                return
            if not self._cancelled.is_set():
                with self._lock:
                    self._results.append(result)
        finally:
            if self._slots is not None:
                self._slots.release()

    def submit(self, thunk: Callable[[], T]) -> None:
        """Queue ``thunk``. A no-op once the runner has failed."""
        if self._closed:
            raise RuntimeError("submit() after collect()")
        if self._cancelled.is_set():
            return
        if self._executor is not None:
            assert self._slots is not None
            self._slots.acquire()
            self._executor.submit(self._run, thunk)
        else:
            thread = threading.Thread(target=self._run, args=(thunk,), name=f"{self.name}-{len(self._threads)}")
            self._threads.append(thread)
            thread.start()

    def collect(self) -> list[T]:
        """Wait for all work; return the results or raise the first error."""
        self._closed = True
        if self._executor is not None:
            self._executor.shutdown(wait=True)
        for thread in self._threads:
            thread.join()
        if self._error is not None:
            raise self._error
        return list(self._results)


def fixed_bounded_runner[T](queue_size: int, parallelism: int | None = None, name: str = "gwgen-worker") -> Runner[T]:
    """Runner with a fixed worker pool (CPU count by default)."""
    return Runner(queue_size, parallelism or default_parallelism(), name)


def unbounded_runner[T](queue_size: int, name: str = "gwgen-io") -> Runner[T]:
    """Thread-per-task runner for short IO-bound fanouts."""
    return Runner(queue_size, None, name)

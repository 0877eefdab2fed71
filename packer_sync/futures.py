from __future__ import annotations

import logging
import queue
import threading
from concurrent.futures import Executor, Future, ThreadPoolExecutor
from typing import Any, Callable

from tqdm import tqdm

LOGGER = logging.getLogger(__name__)


class FuturePool:
    """Fan work out to futures and block until every registered future has completed.

    Each registered future relays itself onto one shared completion queue when it
    finishes, whichever stage or thread created it. ``drain_all`` receives from that
    queue exactly as many times as there are outstanding futures, so nothing is lost
    or counted twice, including futures registered while a drain is in progress.

    The pool does not judge outcomes. Tasks record success or failure on the
    records they own; the pool only guarantees that ``drain_all`` returns once all
    of them have delivered.
    """

    def __init__(
        self,
        max_workers: int = 8,
        *,
        executor: Executor | None = None,
        progress: bool = False,
    ) -> None:
        self._owns_executor = executor is None
        self._executor = executor or ThreadPoolExecutor(
            max_workers=max(1, max_workers), thread_name_prefix="packer-sync"
        )
        self._completed: queue.Queue[Future] = queue.Queue()
        self._lock = threading.Lock()
        self._outstanding = 0
        self._progress = progress

    @property
    def outstanding(self) -> int:
        with self._lock:
            return self._outstanding

    def register(self, future: Future) -> Future:
        with self._lock:
            self._outstanding += 1
        # Done callbacks fire on return, exception and cancellation alike.
        future.add_done_callback(self._completed.put)
        return future

    def spawn(self, fn: Callable[..., Any], /, *args: Any, **kwargs: Any) -> Future:
        return self.register(self._executor.submit(fn, *args, **kwargs))

    def drain_all(self, label: str) -> int:
        LOGGER.info(label)
        drained = 0
        with tqdm(total=self.outstanding, desc=label, disable=not self._progress) as bar:
            while True:
                with self._lock:
                    if self._outstanding == 0:
                        break
                    total = drained + self._outstanding
                if bar.total != total:
                    bar.total = total
                    bar.refresh()
                future = self._completed.get()
                with self._lock:
                    self._outstanding -= 1
                drained += 1
                bar.update(1)
                self._log_unexpected_failure(future, label)
        return drained

    def shutdown(self, wait: bool = True) -> None:
        if self._owns_executor:
            self._executor.shutdown(wait=wait)

    def __enter__(self) -> "FuturePool":
        return self

    def __exit__(self, *exc_info: Any) -> None:
        self.shutdown(wait=True)

    @staticmethod
    def _log_unexpected_failure(future: Future, label: str) -> None:
        if future.cancelled():
            LOGGER.warning("%s: a task was cancelled before it ran", label)
            return
        exc = future.exception()
        if exc is not None:
            LOGGER.error("%s: task raised %s: %s", label, type(exc).__name__, exc, exc_info=exc)

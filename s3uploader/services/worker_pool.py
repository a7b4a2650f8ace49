"""Bounded thread pool for upload tasks.

concurrent.futures.ThreadPoolExecutor queues without limit and has no notion
of core threads, so the pool is implemented here with the same Future handles.
Submission follows this order of preference:

1. start a new worker while fewer than ``core_pool_size`` workers exist
2. queue the task while the queue holds fewer than ``queue_capacity`` tasks
3. start a new worker while fewer than ``maximum_pool_size`` workers exist
4. run the task on the submitting thread

Workers beyond the core count exit after ``keep_alive_seconds`` without work.
"""

import logging
import queue
import threading
from collections.abc import Callable
from concurrent.futures import Future
from typing import Any

logger = logging.getLogger(__name__)


class _WorkItem:
    """A submitted call and the future that receives its result."""

    def __init__(
        self,
        future: Future[Any],
        fn: Callable[..., Any],
        args: tuple[Any, ...],
        kwargs: dict[str, Any],
    ) -> None:
        self.future = future
        self.fn = fn
        self.args = args
        self.kwargs = kwargs

    def run(self) -> None:
        if not self.future.set_running_or_notify_cancel():
            return

        try:
            result = self.fn(*self.args, **self.kwargs)
        except BaseException as exc:
            self.future.set_exception(exc)
            # Break a reference cycle with the exception 'exc'
            self = None  # type: ignore[assignment]
        else:
            self.future.set_result(result)


class WorkerPool:
    """Thread pool with core/maximum sizes, a bounded queue and caller-runs overflow."""

    def __init__(
        self,
        core_pool_size: int,
        maximum_pool_size: int,
        queue_capacity: int,
        keep_alive_seconds: float = 60.0,
        thread_name_prefix: str = "upload-worker",
    ) -> None:
        if core_pool_size < 1:
            raise ValueError("core_pool_size must be at least 1")
        if maximum_pool_size < core_pool_size:
            raise ValueError("maximum_pool_size must be greater than or equal to core_pool_size")
        if queue_capacity < 1:
            raise ValueError("queue_capacity must be at least 1")

        self.core_pool_size = core_pool_size
        self.maximum_pool_size = maximum_pool_size
        self.queue_capacity = queue_capacity
        self.keep_alive_seconds = keep_alive_seconds
        self.thread_name_prefix = thread_name_prefix

        # Unbounded so shutdown() can always append stop markers; capacity
        # is enforced in submit()
        self._queue: queue.Queue[_WorkItem | None] = queue.Queue()
        self._lock = threading.Lock()
        self._threads: set[threading.Thread] = set()
        self._thread_counter = 0
        self._active = 0
        self._caller_runs = 0
        self._shutdown = False

    @property
    def active_count(self) -> int:
        """Number of workers currently running a task."""
        with self._lock:
            return self._active

    @property
    def queue_size(self) -> int:
        """Number of tasks waiting for a worker."""
        with self._lock:
            if self._shutdown:
                return max(0, self._queue.qsize() - len(self._threads))
            return self._queue.qsize()

    @property
    def pool_size(self) -> int:
        """Number of live worker threads."""
        with self._lock:
            return len(self._threads)

    @property
    def caller_runs_count(self) -> int:
        """Number of tasks that overflowed and ran on the submitting thread."""
        with self._lock:
            return self._caller_runs

    def submit(self, fn: Callable[..., Any], *args: Any, **kwargs: Any) -> Future[Any]:
        """Schedule fn(*args, **kwargs) and return a Future for its result.

        When every worker is busy and the queue is full the call runs on the
        calling thread before submit() returns.

        Raises:
            RuntimeError: If the pool has been shut down
        """
        future: Future[Any] = Future()
        item = _WorkItem(future, fn, args, kwargs)

        with self._lock:
            if self._shutdown:
                raise RuntimeError("cannot schedule new tasks after shutdown")

            if len(self._threads) < self.core_pool_size:
                self._start_worker(item)
                return future

            if self._queue.qsize() < self.queue_capacity:
                self._queue.put(item)
                return future

            if len(self._threads) < self.maximum_pool_size:
                self._start_worker(item)
                return future

            self._caller_runs += 1

        logger.warning("Upload queue is full, running task on the submitting thread")
        item.run()
        return future

    def shutdown(self, wait: bool = True) -> None:
        """Stop accepting tasks and let workers finish the queue.

        Args:
            wait: Block until every worker thread has exited
        """
        with self._lock:
            if not self._shutdown:
                self._shutdown = True
                # Stop markers go behind queued work so it still runs
                for _ in self._threads:
                    self._queue.put(None)
            threads = list(self._threads)

        if wait:
            for thread in threads:
                thread.join()

    def _start_worker(self, first_item: _WorkItem) -> None:
        # Caller holds self._lock
        self._thread_counter += 1
        thread = threading.Thread(
            target=self._worker,
            args=(first_item,),
            name=f"{self.thread_name_prefix}-{self._thread_counter}",
            daemon=True,
        )
        self._threads.add(thread)
        thread.start()

    def _worker(self, first_item: _WorkItem) -> None:
        current = threading.current_thread()
        item: _WorkItem | None = first_item
        try:
            while item is not None:
                with self._lock:
                    self._active += 1
                try:
                    item.run()
                finally:
                    with self._lock:
                        self._active -= 1
                # drop the finished item before blocking
                item = None
                item = self._next_item(current)
        finally:
            with self._lock:
                self._threads.discard(current)

    def _next_item(self, current: threading.Thread) -> _WorkItem | None:
        """Block for the next task, or return None when this worker should exit."""
        while True:
            with self._lock:
                timeout = (
                    self.keep_alive_seconds
                    if len(self._threads) > self.core_pool_size and not self._shutdown
                    else None
                )

            try:
                return self._queue.get(timeout=timeout)
            except queue.Empty:
                with self._lock:
                    if len(self._threads) > self.core_pool_size and not self._shutdown:
                        self._threads.discard(current)
                        return None

"""Admission control for the upload pipeline."""

import threading


class AdmissionGate:
    """Counting semaphore bounding the uploads admitted into the pipeline.

    The bound covers queued and active tasks together (maximum pool size plus
    queue capacity), so the directory scan can never get more than ``bound``
    files ahead of the uploaders. Unlike threading.Semaphore, a blocked
    acquire() can be woken by close() when the service shuts down.
    """

    def __init__(self, bound: int) -> None:
        if bound < 1:
            raise ValueError("bound must be at least 1")
        self._bound = bound
        self._available = bound
        self._closed = False
        self._cond = threading.Condition()

    @property
    def bound(self) -> int:
        return self._bound

    @property
    def in_use(self) -> int:
        """Number of permits currently held."""
        with self._cond:
            return self._bound - self._available

    @property
    def closed(self) -> bool:
        return self._closed

    def acquire(self, timeout: float | None = None) -> bool:
        """Take a permit, blocking while none are free.

        Args:
            timeout: Seconds to wait, or None to wait until a permit is free
                or the gate is closed

        Returns:
            True if a permit was taken, False if the gate was closed or the
            timeout expired
        """
        with self._cond:
            if not self._cond.wait_for(lambda: self._closed or self._available > 0, timeout):
                return False
            if self._closed:
                return False
            self._available -= 1
            return True

    def release(self) -> None:
        """Return a permit taken by acquire().

        Raises:
            ValueError: If more permits are returned than were taken
        """
        with self._cond:
            if self._available >= self._bound:
                raise ValueError("AdmissionGate released too many times")
            self._available += 1
            self._cond.notify()

    def close(self) -> None:
        """Wake every blocked acquire() and refuse new permits."""
        with self._cond:
            self._closed = True
            self._cond.notify_all()

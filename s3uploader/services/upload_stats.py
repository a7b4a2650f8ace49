"""Live upload statistics for the monitoring API."""

import threading
from collections.abc import Callable
from dataclasses import dataclass
from typing import Any

from s3uploader.services.utils import format_file_size


def _zero() -> int:
    return 0


@dataclass(frozen=True)
class StatsSnapshot:
    """Point-in-time copy of the upload statistics."""

    files_uploaded: int
    bytes_uploaded: int
    files_failed: int
    active_task_count: int
    queue_size: int

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for JSON serialization."""
        return {
            "files_uploaded": self.files_uploaded,
            "bytes_uploaded": self.bytes_uploaded,
            "bytes_uploaded_formatted": format_file_size(self.bytes_uploaded),
            "files_failed": self.files_failed,
            "active_task_count": self.active_task_count,
            "queue_size": self.queue_size,
        }


class UploadStats:
    """Cumulative upload counters plus gauges read from the worker pool.

    Counters start at zero and only grow while the process runs. Writers take
    a lock so concurrent completions never lose an increment; readers get the
    current int without locking.
    """

    def __init__(
        self,
        active_count: Callable[[], int] = _zero,
        queue_size: Callable[[], int] = _zero,
    ) -> None:
        self._lock = threading.Lock()
        self._files_uploaded = 0
        self._bytes_uploaded = 0
        self._files_failed = 0
        self._active_count = active_count
        self._queue_size = queue_size

    def record_success(self, bytes_transferred: int) -> None:
        with self._lock:
            self._files_uploaded += 1
            self._bytes_uploaded += bytes_transferred

    def record_failure(self) -> None:
        with self._lock:
            self._files_failed += 1

    @property
    def files_uploaded(self) -> int:
        """Total number of files uploaded since the service started."""
        return self._files_uploaded

    @property
    def bytes_uploaded(self) -> int:
        """Total number of bytes uploaded since the service started."""
        return self._bytes_uploaded

    @property
    def files_failed(self) -> int:
        """Total number of failed uploads since the service started."""
        return self._files_failed

    @property
    def active_task_count(self) -> int:
        """Number of uploads running right now."""
        return self._active_count()

    @property
    def queue_size(self) -> int:
        """Number of uploads waiting for a worker right now."""
        return self._queue_size()

    def snapshot(self) -> StatsSnapshot:
        """Read all counters and gauges together.

        Counters are copied under the lock so files_uploaded and
        bytes_uploaded always describe the same set of uploads.
        """
        with self._lock:
            uploaded, uploaded_bytes, failed = (
                self._files_uploaded,
                self._bytes_uploaded,
                self._files_failed,
            )
        return StatsSnapshot(
            files_uploaded=uploaded,
            bytes_uploaded=uploaded_bytes,
            files_failed=failed,
            active_task_count=self._active_count(),
            queue_size=self._queue_size(),
        )

"""Upload service: the polling driver loop and per-file completion handling.

One driver thread sweeps every configured source, claims each newly seen file
in the in-flight tracker, takes an admission permit and submits an UploadTask
to the worker pool. A permit covers one queued or running upload, so the sweep
blocks once maximum_pool_size + queue_capacity uploads are outstanding and
resumes as uploads complete.
"""

import logging
import threading
from concurrent.futures import CancelledError, Future
from dataclasses import dataclass
from functools import partial
from pathlib import Path
from typing import Any

from s3uploader.config import Settings, SourceSpec
from s3uploader.services.admission_gate import AdmissionGate
from s3uploader.services.file_scanner import file_identity, scan_source
from s3uploader.services.inflight_tracker import InFlightTracker
from s3uploader.services.log_service import LogService
from s3uploader.services.s3_service import ObjectStore
from s3uploader.services.upload_stats import UploadStats
from s3uploader.services.upload_task import CompletedUpload, UploadTask
from s3uploader.services.utils import format_file_size
from s3uploader.services.worker_pool import WorkerPool

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class CompletionOutcome:
    """Terminal outcome of one upload task: a byte count or a failure cause."""

    identity: str
    bytes_transferred: int = 0
    error: BaseException | None = None

    @property
    def succeeded(self) -> bool:
        return self.error is None

    @classmethod
    def from_future(cls, identity: str, future: "Future[CompletedUpload]") -> "CompletionOutcome":
        """Build the outcome of a finished task future."""
        if future.cancelled():
            return cls(identity, error=CancelledError())
        error = future.exception()
        if error is not None:
            return cls(identity, error=error)
        return cls(identity, bytes_transferred=future.result().bytes_transferred)


@dataclass
class PipelineContext:
    """Everything the driver and the completion handler share.

    Built once at startup and handed to the UploadService; nothing in the
    pipeline is reached through module globals.
    """

    sources: list[SourceSpec]
    store: ObjectStore
    tracker: InFlightTracker
    gate: AdmissionGate
    pool: WorkerPool
    stats: UploadStats
    log: LogService | None = None
    delete_after_upload: bool = True
    pause_interval: float = 2.0

    @classmethod
    def from_settings(
        cls, settings: Settings, store: ObjectStore, log: LogService | None = None
    ) -> "PipelineContext":
        """Build the tracker, gate, pool and stats sized from the settings."""
        pool = WorkerPool(
            core_pool_size=settings.core_pool_size,
            maximum_pool_size=settings.maximum_pool_size,
            queue_capacity=settings.queue_capacity,
            keep_alive_seconds=settings.keep_alive_seconds,
        )
        return cls(
            sources=settings.sources,
            store=store,
            tracker=InFlightTracker(),
            gate=AdmissionGate(settings.maximum_pool_size + settings.queue_capacity),
            pool=pool,
            stats=UploadStats(
                active_count=lambda: pool.active_count,
                queue_size=lambda: pool.queue_size,
            ),
            log=log,
            delete_after_upload=settings.delete_after_upload,
            pause_interval=settings.pause_interval,
        )


class UploadService:
    """Polls the configured sources and feeds new files to the worker pool."""

    def __init__(self, context: PipelineContext) -> None:
        self.context = context
        self._cancelled = threading.Event()

    @property
    def cancelled(self) -> bool:
        return self._cancelled.is_set()

    def start(self) -> None:
        """Run the driver loop until stop() is called.

        Sweeps every source, then pauses before sweeping again so an empty
        folder is not listed continuously. An error escaping a sweep is logged
        and the next sweep runs as usual.
        """
        logger.info("Starting upload service with %d source(s)", len(self.context.sources))
        while not self.cancelled:
            try:
                self.process_sources()
            except Exception:
                logger.exception("Sweep failed, retrying in %.1fs", self.context.pause_interval)
            self._cancelled.wait(self.context.pause_interval)
        logger.info("Upload service driver loop stopped")

    def stop(self) -> None:
        """Ask the driver loop to exit and stop accepting uploads.

        Wakes the driver out of a blocked admission or the pause between
        sweeps. Uploads already admitted keep running.
        """
        self._cancelled.set()
        self.context.gate.close()
        self.context.pool.shutdown(wait=False)

    def shutdown(self, wait: bool = True) -> None:
        """Stop the service and optionally wait for admitted uploads to drain."""
        self.stop()
        self.context.pool.shutdown(wait=wait)

    def process_sources(self) -> int:
        """Sweep every source once.

        Returns:
            Number of uploads submitted during the sweep
        """
        submitted = 0
        for source in self.context.sources:
            if self.cancelled:
                break
            submitted += self.process_source(source)
        return submitted

    def process_source(self, source: SourceSpec) -> int:
        """List one source folder and submit every file not already in flight.

        A listing error abandons this source until the next sweep.

        Returns:
            Number of uploads submitted from this source
        """
        submitted = 0
        try:
            for path in scan_source(source):
                if self.cancelled:
                    break

                identity = file_identity(path)
                if not self.context.tracker.try_claim(identity):
                    continue

                logger.debug("Claimed %s", identity)
                if not self._submit(source, path, identity):
                    break
                submitted += 1

        except OSError as e:
            logger.error("Scan of %s abandoned: %s", source.local_path, e)
            if self.context.log:
                self.context.log.error(
                    "scan",
                    "source_scan_failed",
                    f"Scan of {source.local_path} abandoned: {e}",
                    {"local_path": str(source.local_path), "error": str(e)},
                )
        return submitted

    def _submit(self, source: SourceSpec, path: Path, identity: str) -> bool:
        """Admit and submit one claimed file.

        Returns:
            False if the service is shutting down; the claim is dropped
        """
        ctx = self.context

        if not ctx.gate.acquire():
            ctx.tracker.release(identity)
            return False

        task = UploadTask(
            ctx.store,
            source,
            path,
            identity,
            delete_after_upload=ctx.delete_after_upload,
            log=ctx.log,
        )

        try:
            future = ctx.pool.submit(task.run)
        except RuntimeError:
            # Pool already shut down, the task never ran
            ctx.tracker.release(identity)
            ctx.gate.release()
            return False

        future.add_done_callback(partial(self._on_complete, identity))

        logger.debug(
            "Submitted '%s', in queue: %d, active: %d",
            path.name,
            ctx.pool.queue_size,
            ctx.pool.active_count,
        )
        return True

    def _on_complete(self, identity: str, future: "Future[CompletedUpload]") -> None:
        """Completion handler, called exactly once per submitted task.

        Runs on the worker thread that finished the task. The permit is
        returned even if bookkeeping fails, otherwise capacity would leak.
        """
        ctx = self.context
        try:
            ctx.tracker.release(identity)
            self._record(CompletionOutcome.from_future(identity, future))
        finally:
            ctx.gate.release()

    def _record(self, outcome: CompletionOutcome) -> None:
        ctx = self.context
        if outcome.succeeded:
            ctx.stats.record_success(outcome.bytes_transferred)
            logger.info(
                "Uploaded %s (%s)", outcome.identity, format_file_size(outcome.bytes_transferred)
            )
            if ctx.log:
                ctx.log.info(
                    "upload",
                    "file_upload_completed",
                    f"Uploaded {Path(outcome.identity).name}",
                    {"path": outcome.identity, "file_size": outcome.bytes_transferred},
                )
        else:
            ctx.stats.record_failure()
            logger.error("Upload failed for %s: %s", outcome.identity, outcome.error)
            if ctx.log:
                ctx.log.error(
                    "upload",
                    "file_upload_failed",
                    f"Failed to upload {Path(outcome.identity).name}: {outcome.error}",
                    {"path": outcome.identity, "error": str(outcome.error)},
                )

    def status(self) -> dict[str, Any]:
        """Live statistics plus pipeline occupancy, for the monitoring API."""
        ctx = self.context
        data = ctx.stats.snapshot().to_dict()
        data.update(
            {
                "in_flight": len(ctx.tracker),
                "permits_in_use": ctx.gate.in_use,
                "admission_bound": ctx.gate.bound,
                "running": not self.cancelled,
            }
        )
        return data

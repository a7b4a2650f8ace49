"""Upload of a single file and its post-upload disposition."""

import logging
import os
from collections.abc import Iterable
from dataclasses import dataclass
from enum import Enum
from pathlib import Path

from s3uploader.config import SourceSpec
from s3uploader.services.log_service import LogService
from s3uploader.services.s3_service import ObjectStore

logger = logging.getLogger(__name__)

S3_PATH_SEPARATOR = "/"


class Subfolder(Enum):
    """Subfolders of a source that processed files are moved into."""

    UPLOADED = "uploaded"
    FAILED = "failed"


class UploadState(Enum):
    """State of an upload task."""

    PENDING = "pending"
    UPLOADING = "uploading"
    SUCCEEDED = "succeeded"
    FAILED = "failed"


@dataclass(frozen=True)
class CompletedUpload:
    """Result of a successful upload task."""

    identity: str
    bytes_transferred: int


def derive_object_key(object_key_root: str, file_name: str) -> str:
    """Build the S3 object key for a file.

    An empty root or a bare "/" puts the file at the bucket root; otherwise the
    root and file name are joined with exactly one separator.

    Args:
        object_key_root: Folder in the bucket, e.g. "images" or "images/"
        file_name: Name of the local file

    Returns:
        The object key, e.g. "images/photo.jpg"
    """
    if not object_key_root or object_key_root == S3_PATH_SEPARATOR:
        return file_name
    if object_key_root.endswith(S3_PATH_SEPARATOR):
        return object_key_root + file_name
    return object_key_root + S3_PATH_SEPARATOR + file_name


def move_to_subfolder(path: Path, subfolder: Subfolder) -> Path:
    """Move a file into a subfolder of its own folder.

    A file with the same name already in the subfolder is replaced.

    Returns:
        The new path of the file

    Raises:
        OSError: If the move fails
    """
    target = path.parent / subfolder.value / path.name
    os.replace(path, target)
    return target


def prepare_source_folders(sources: Iterable[SourceSpec], delete_after_upload: bool) -> None:
    """Create the 'failed' subfolder, and 'uploaded' in move mode, for each source.

    Raises:
        OSError: If a subfolder cannot be created
    """
    for source in sources:
        if not delete_after_upload:
            (source.local_path / Subfolder.UPLOADED.value).mkdir(parents=True, exist_ok=True)
        (source.local_path / Subfolder.FAILED.value).mkdir(parents=True, exist_ok=True)


class UploadTask:
    """Uploads one file, then deletes it or moves it out of the source folder.

    The filesystem side effect always happens before run() returns or raises,
    so a finished file is never rediscovered by the next scan.
    """

    def __init__(
        self,
        store: ObjectStore,
        source: SourceSpec,
        path: Path,
        identity: str,
        delete_after_upload: bool = True,
        log: LogService | None = None,
    ) -> None:
        self.store = store
        self.source = source
        self.path = path
        self.identity = identity
        self.delete_after_upload = delete_after_upload
        self.log = log
        self.state = UploadState.PENDING

    @property
    def object_key(self) -> str:
        return derive_object_key(self.source.object_key_root, self.path.name)

    def run(self) -> CompletedUpload:
        """Upload the file and dispose of it.

        Returns:
            The identity and size of the uploaded file

        Raises:
            Exception: Whatever the object store raised; the file has already
                been moved to the 'failed' subfolder
        """
        self.state = UploadState.UPLOADING

        try:
            self.store.put(
                self.source.bucket_name,
                self.object_key,
                self.path,
                self.source.metadata_headers,
            )
        except Exception as e:
            logger.error("Upload of %s failed: %s", self.identity, e)
            self._move(Subfolder.FAILED)
            self.state = UploadState.FAILED
            raise

        # Size must be read before the file is deleted or moved
        try:
            bytes_transferred = self.path.stat().st_size
        except OSError:
            logger.warning("Could not read size of %s after upload", self.identity)
            bytes_transferred = 0

        logger.debug(
            "Transferred %s to s3://%s/%s, bytes: %d",
            self.identity,
            self.source.bucket_name,
            self.object_key,
            bytes_transferred,
        )

        if self.delete_after_upload:
            try:
                self.path.unlink()
            except OSError as e:
                self._disposition_failed("delete", e)
        else:
            self._move(Subfolder.UPLOADED)

        self.state = UploadState.SUCCEEDED
        return CompletedUpload(self.identity, bytes_transferred)

    def _move(self, subfolder: Subfolder) -> None:
        try:
            move_to_subfolder(self.path, subfolder)
        except OSError as e:
            self._disposition_failed(f"move to {subfolder.value}", e)

    def _disposition_failed(self, action: str, error: OSError) -> None:
        logger.error("Could not %s %s: %s", action, self.identity, error)
        if self.log:
            self.log.error(
                "upload",
                "file_disposition_failed",
                f"Could not {action} {self.path.name}: {error}",
                {"path": self.identity, "action": action, "error": str(error)},
            )

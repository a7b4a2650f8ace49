"""Directory polling for files waiting to be uploaded.

Each call to scan_source() re-lists the source folder, so the driver can sweep
the same folder every cycle and rely on the in-flight tracker to skip files that
are already queued or uploading. Only the top level of the folder is listed;
the 'uploaded' and 'failed' subfolders are directories and are never yielded.
"""

import fnmatch
import logging
import os
import re
from collections.abc import Iterator
from functools import lru_cache
from pathlib import Path

from s3uploader.config import SourceSpec

logger = logging.getLogger(__name__)

_BRACES = re.compile(r"\{([^{}]*)\}")


def expand_braces(pattern: str) -> list[str]:
    """Expand {a,b} alternatives in a glob pattern.

    fnmatch has no brace support, so "*.{jpg,png}" becomes ["*.jpg", "*.png"].
    Nested groups are expanded one level at a time.
    """
    match = _BRACES.search(pattern)
    if not match:
        return [pattern]

    head, tail = pattern[: match.start()], pattern[match.end() :]
    expanded: list[str] = []
    for option in match.group(1).split(","):
        expanded.extend(expand_braces(head + option + tail))
    return expanded


@lru_cache(maxsize=64)
def compile_glob(pattern: str) -> re.Pattern[str] | None:
    """Compile a glob pattern into a case-sensitive regex, or None to match all."""
    if not pattern:
        return None
    alternatives = [fnmatch.translate(p) for p in expand_braces(pattern)]
    return re.compile("|".join(f"(?:{alt})" for alt in alternatives))


def matches_glob(name: str, pattern: str) -> bool:
    """Check a file name against a source's glob pattern."""
    regex = compile_glob(pattern)
    return regex is None or regex.match(name) is not None


def is_eligible(entry: os.DirEntry[str]) -> bool:
    """Check that a directory entry is a visible, readable, non-directory file."""
    if entry.name.startswith("."):
        return False
    if entry.is_dir(follow_symlinks=False):
        return False
    return os.access(entry.path, os.R_OK)


def file_identity(path: Path) -> str:
    """Get the dedup key for a file: its normalized absolute path."""
    return os.path.abspath(path)


def scan_source(source: SourceSpec) -> Iterator[Path]:
    """Lazily list the files in a source folder that should be uploaded.

    The listing order is whatever the filesystem returns.

    Args:
        source: The source folder to list

    Yields:
        Paths of eligible files directly under the source's local path

    Raises:
        OSError: If the folder is missing, unreadable, or fails mid-listing
    """
    with os.scandir(source.local_path) as entries:
        for entry in entries:
            if not matches_glob(entry.name, source.glob_pattern):
                continue
            try:
                eligible = is_eligible(entry)
            except FileNotFoundError:
                # vanished between listing and stat
                logger.debug("Skipping vanished entry %s", entry.path)
                continue
            if eligible:
                yield Path(entry.path)

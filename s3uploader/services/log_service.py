"""JSONL event log for the upload pipeline.

Events are appended to one file per day in a hive-partitioned tree,
logs/json/year=YYYY/month=MM/day=DD/events.jsonl, so the files can be queried
with DuckDB: SELECT * FROM read_json_auto('logs/json/**/events.jsonl', hive_partitioning=true)
"""

import json
import logging
import re
import threading
from collections.abc import Iterator
from datetime import UTC, date, datetime
from pathlib import Path
from typing import Any

logger = logging.getLogger(__name__)

EVENTS_FILE = "events.jsonl"

_PARTITION = re.compile(r"year=(\d{4})/month=(\d{2})/day=(\d{2})")


def partition_dir(log_dir: Path, day: date) -> Path:
    """Get the directory holding one day's events."""
    return (
        log_dir / "json" / f"year={day.year:04d}" / f"month={day.month:02d}" / f"day={day.day:02d}"
    )


def partition_date(path: Path) -> str | None:
    """Get the YYYY-MM-DD day of a partitioned events file, or None."""
    match = _PARTITION.search(path.as_posix())
    return "-".join(match.groups()) if match else None


class LogService:
    """Structured event log shared by the pipeline and the monitoring API.

    Writing is best-effort: an event that cannot be written is reported
    through the module logger and dropped, so a full disk or an unwritable
    log directory never interrupts an upload or a scan.
    """

    def __init__(self, log_dir: Path) -> None:
        self.log_dir = Path(log_dir)
        self._write_lock = threading.Lock()

    def log(
        self,
        level: str,
        category: str,
        event: str,
        message: str,
        metadata: dict[str, Any] | None = None,
    ) -> None:
        """Append an event to the current day's file.

        Args:
            level: Log level (INFO, WARNING, ERROR)
            category: Event category (app, scan, upload)
            event: Machine-readable event name (snake_case)
            message: Human-readable message
            metadata: Optional additional data
        """
        now = datetime.now(UTC)
        entry: dict[str, Any] = {
            "timestamp": now.isoformat(),
            "level": level.upper(),
            "category": category,
            "event": event,
            "message": message,
        }
        if metadata:
            entry["metadata"] = metadata
        line = json.dumps(entry, default=str)

        try:
            with self._write_lock:
                folder = partition_dir(self.log_dir, now)
                folder.mkdir(parents=True, exist_ok=True)
                with open(folder / EVENTS_FILE, "a", encoding="utf-8") as f:
                    f.write(line + "\n")
        except OSError:
            logger.warning("Failed to write '%s' event to %s", event, self.log_dir, exc_info=True)

    def info(self, category: str, event: str, message: str, metadata: dict[str, Any] | None = None) -> None:
        self.log("INFO", category, event, message, metadata)

    def warning(self, category: str, event: str, message: str, metadata: dict[str, Any] | None = None) -> None:
        self.log("WARNING", category, event, message, metadata)

    def error(self, category: str, event: str, message: str, metadata: dict[str, Any] | None = None) -> None:
        self.log("ERROR", category, event, message, metadata)

    def event_files(self, day: str | None = None) -> list[Path]:
        """Find events files, newest day first.

        Args:
            day: Only this YYYY-MM-DD day; an unparseable day matches nothing
        """
        if day:
            try:
                parsed = datetime.strptime(day, "%Y-%m-%d").date()
            except ValueError:
                return []
            path = partition_dir(self.log_dir, parsed) / EVENTS_FILE
            return [path] if path.exists() else []

        root = self.log_dir / "json"
        if not root.is_dir():
            return []
        return sorted(root.rglob(EVENTS_FILE), reverse=True)

    @staticmethod
    def read_events(path: Path) -> Iterator[dict[str, Any]]:
        """Yield the events of one file, skipping lines that are not JSON."""
        try:
            with open(path, encoding="utf-8") as f:
                for line in f:
                    if not line.strip():
                        continue
                    try:
                        yield json.loads(line)
                    except json.JSONDecodeError:
                        logger.debug("Skipping corrupt line in %s", path)
        except OSError:
            logger.warning("Could not read %s", path, exc_info=True)

    def query(
        self,
        day: str | None = None,
        level: str | None = None,
        category: str | None = None,
        search: str | None = None,
        offset: int = 0,
        limit: int = 100,
    ) -> dict[str, Any]:
        """Get one page of matching events, newest first.

        Args:
            day: Only events of this YYYY-MM-DD day
            level: Only this level, case insensitive
            category: Only this category
            search: Case-insensitive text to find in the message or event name
            offset: Matches to skip
            limit: Maximum matches to return

        Returns:
            Dict with entries, total, offset and limit
        """
        needle = search.lower() if search else None

        def wanted(entry: dict[str, Any]) -> bool:
            if level and str(entry.get("level", "")).upper() != level.upper():
                return False
            if category and entry.get("category") != category:
                return False
            if needle:
                return any(
                    needle in str(entry.get(field, "")).lower() for field in ("message", "event")
                )
            return True

        matches = [e for path in self.event_files(day) for e in self.read_events(path) if wanted(e)]
        matches.sort(key=lambda e: str(e.get("timestamp", "")), reverse=True)

        return {
            "entries": matches[offset : offset + limit],
            "total": len(matches),
            "offset": offset,
            "limit": limit,
        }

    def list_files(self) -> list[dict[str, Any]]:
        """Describe each events file: its day, path under log_dir and size."""
        return [
            {
                "date": partition_date(path),
                "path": path.relative_to(self.log_dir).as_posix(),
                "size_bytes": path.stat().st_size,
            }
            for path in self.event_files()
        ]

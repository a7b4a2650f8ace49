"""Event log API routes for s3uploader"""

from flask import Blueprint, Response, current_app, jsonify, request

from s3uploader.services.log_service import LogService

logs_bp = Blueprint("logs", __name__)


def _log_service() -> LogService | None:
    log: LogService | None = current_app.config["UPLOAD_SERVICE"].context.log
    return log


def _disabled() -> tuple[Response, int]:
    return jsonify({"error": "Event log is disabled"}), 404


@logs_bp.route("/entries", methods=["GET"])
def get_log_entries() -> tuple[Response, int]:
    """Query events with filtering and pagination.

    Query params:
        date: Filter by day (YYYY-MM-DD)
        level: Filter by level (INFO/WARNING/ERROR)
        category: Filter by category (app/scan/upload)
        search: Text to find in message and event
        offset: Pagination offset (default 0)
        limit: Pagination limit (default 100, at most 1000)
    """
    log = _log_service()
    if log is None:
        return _disabled()

    try:
        offset = max(0, int(request.args.get("offset", "0")))
        limit = max(1, min(1000, int(request.args.get("limit", "100"))))
    except ValueError:
        offset, limit = 0, 100

    result = log.query(
        day=request.args.get("date"),
        level=request.args.get("level"),
        category=request.args.get("category"),
        search=request.args.get("search"),
        offset=offset,
        limit=limit,
    )
    return jsonify(result), 200


@logs_bp.route("/files", methods=["GET"])
def get_log_files() -> tuple[Response, int]:
    """List the daily events files."""
    log = _log_service()
    if log is None:
        return _disabled()
    return jsonify({"files": log.list_files()}), 200

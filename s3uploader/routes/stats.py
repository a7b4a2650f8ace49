"""Statistics API routes for s3uploader"""

from flask import Blueprint, Response, current_app, jsonify

from s3uploader.services.upload_service import UploadService

stats_bp = Blueprint("stats", __name__)


def _service() -> UploadService:
    service: UploadService = current_app.config["UPLOAD_SERVICE"]
    return service


@stats_bp.route("", methods=["GET"])
def get_stats() -> tuple[Response, int]:
    """Get live upload statistics.

    Returns:
        JSON with cumulative counters (files_uploaded, bytes_uploaded,
        files_failed), gauges (active_task_count, queue_size) and pipeline
        occupancy (in_flight, permits_in_use, admission_bound)
    """
    data = _service().status()
    data["version"] = current_app.config["VERSION"]
    return jsonify(data), 200


@stats_bp.route("/in-flight", methods=["GET"])
def get_in_flight() -> tuple[Response, int]:
    """List the files currently queued or uploading."""
    files = _service().context.tracker.snapshot()
    return jsonify({"files": files, "count": len(files)}), 200

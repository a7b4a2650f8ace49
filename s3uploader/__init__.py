"""Flask application factory for the s3uploader monitoring API."""

from flask import Flask

from s3uploader.config import get_package_version
from s3uploader.services.upload_service import UploadService


def create_app(service: UploadService) -> Flask:
    """Create the monitoring app for a running upload service."""
    app = Flask(__name__)

    # Routes reach the pipeline through app config, not module globals
    app.config["UPLOAD_SERVICE"] = service
    app.config["VERSION"] = get_package_version()

    from s3uploader.routes.logs import logs_bp
    from s3uploader.routes.stats import stats_bp

    app.register_blueprint(stats_bp, url_prefix="/api/stats")
    app.register_blueprint(logs_bp, url_prefix="/api/logs")

    return app

"""s3uploader command line entry point.

Loads and validates the configuration, prepares the source folders, checks S3
access, then runs the upload service until SIGINT or SIGTERM.
"""

import argparse
import logging
import signal
import sys
import threading
from pathlib import Path
from typing import Any

from botocore.exceptions import BotoCoreError, ProfileNotFound
from werkzeug.serving import BaseWSGIServer, make_server

from s3uploader import create_app
from s3uploader.config import ConfigError, Settings, get_package_version
from s3uploader.services import s3_service
from s3uploader.services.log_service import LogService
from s3uploader.services.upload_service import PipelineContext, UploadService
from s3uploader.services.upload_task import prepare_source_folders

logger = logging.getLogger("s3uploader")

APP_NAME = "s3uploader"
EXIT_MESSAGE = "Exiting now."


def build_parser() -> argparse.ArgumentParser:
    """Command line options; values given here override the configuration file."""
    parser = argparse.ArgumentParser(
        prog=APP_NAME,
        description="Poll local folders and upload new files to Amazon S3.",
    )
    parser.add_argument(
        "-c", "--config", type=Path, default=None,
        help="Path to the JSON configuration file (default: ./config.json)",
    )
    parser.add_argument(
        "--core-pool-size", type=int, dest="core_pool_size",
        help="The base number of worker threads to use in uploading files (default: 1)",
    )
    parser.add_argument(
        "--maximum-pool-size", type=int, dest="maximum_pool_size",
        help="The maximum number of worker threads to use in uploading files (default: 3)",
    )
    parser.add_argument(
        "--queue-capacity", type=int, dest="queue_capacity",
        help="The maximum number of upload tasks to allow in the task queue (default: 3)",
    )
    parser.add_argument(
        "--connection-timeout", type=float, dest="connection_timeout",
        help="The timeout for opening a connection, in seconds (default: 50)",
    )
    parser.add_argument(
        "--socket-timeout", type=float, dest="socket_timeout",
        help="The timeout for reading from a connected socket, in seconds (default: 120)",
    )
    disposition = parser.add_mutually_exclusive_group()
    disposition.add_argument(
        "--delete-after-upload", action="store_const", const=True, dest="delete_after_upload",
        help="Delete files once uploaded",
    )
    disposition.add_argument(
        "--move-after-upload", action="store_const", const=False, dest="delete_after_upload",
        help="Move files to the 'uploaded' subfolder once uploaded",
    )
    parser.add_argument(
        "--monitor-port", type=int, dest="monitor_port",
        help="Port for the monitoring API (default: 5000)",
    )
    parser.add_argument(
        "--no-monitor", action="store_const", const=False, dest="monitor_enabled",
        help="Do not start the monitoring API",
    )
    parser.add_argument(
        "--skip-bucket-check", action="store_true",
        help="Do not verify bucket access before starting",
    )
    parser.add_argument(
        "--log-level", default="INFO", choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        help="Console log level (default: INFO)",
    )
    parser.add_argument("--version", action="version", version=get_package_version())
    return parser


def load_settings(args: argparse.Namespace) -> Settings:
    """Load the configuration file and apply command line overrides.

    Raises:
        ConfigError: If the configuration is missing or invalid
    """
    settings = Settings.load(args.config)

    overrides: dict[str, Any] = {
        key: getattr(args, key)
        for key in (
            "core_pool_size",
            "maximum_pool_size",
            "queue_capacity",
            "connection_timeout",
            "socket_timeout",
            "delete_after_upload",
            "monitor_port",
            "monitor_enabled",
        )
        if getattr(args, key) is not None
    }
    settings.update(overrides)
    settings.validate()
    return settings


def check_buckets(client: Any, settings: Settings) -> list[str]:
    """Verify access to every configured bucket.

    Returns:
        Error messages, empty when every bucket is reachable
    """
    errors: list[str] = []
    for bucket in sorted({source.bucket_name for source in settings.sources}):
        try:
            result = s3_service.validate_bucket_access(client, bucket)
        except BotoCoreError as e:
            errors.append(f"{bucket}: {e}")
            continue
        if not result["success"]:
            errors.append(str(result["error"]))
    return errors


def start_monitor(service: UploadService, settings: Settings) -> BaseWSGIServer:
    """Serve the monitoring API from a background thread."""
    server = make_server(settings.monitor_host, settings.monitor_port, create_app(service), threaded=True)
    thread = threading.Thread(target=server.serve_forever, name="Monitor", daemon=True)
    thread.start()
    logger.info("Monitoring API at http://%s:%d/api/stats", settings.monitor_host, settings.monitor_port)
    return server


def main(argv: list[str] | None = None) -> int:
    args = build_parser().parse_args(argv)

    logging.basicConfig(
        level=args.log_level,
        format="%(asctime)s %(levelname)s [%(threadName)s] %(name)s: %(message)s",
    )

    # ── Configuration ────────────────────────────────────────
    try:
        settings = load_settings(args)
    except ConfigError as e:
        logger.error("Configuration loading failed. Reason: %s", e)
        logger.info(EXIT_MESSAGE)
        return 1

    try:
        prepare_source_folders(settings.sources, settings.delete_after_upload)
    except OSError as e:
        logger.error("Could not create source subfolders. Reason: %s", e)
        logger.info(EXIT_MESSAGE)
        return 1

    # ── S3 client ────────────────────────────────────────────
    try:
        client = s3_service.create_s3_client(
            settings.aws_profile,
            settings.aws_region,
            max_connections=settings.maximum_pool_size,
            connect_timeout=settings.connection_timeout,
            read_timeout=settings.socket_timeout,
        )
    except ProfileNotFound:
        logger.error(
            "AWS profile '%s' not found. Available profiles: %s",
            settings.aws_profile,
            ", ".join(s3_service.get_available_profiles()),
        )
        logger.info(EXIT_MESSAGE)
        return 1

    if not args.skip_bucket_check:
        errors = check_buckets(client, settings)
        if errors:
            for error in errors:
                logger.error("S3 access check failed. Reason: %s", error)
            logger.info(EXIT_MESSAGE)
            return 1

    # ── Pipeline ─────────────────────────────────────────────
    log = LogService(settings.log_directory)
    store = s3_service.S3ObjectStore(client, acl=settings.object_acl)
    service = UploadService(PipelineContext.from_settings(settings, store, log))

    log.info(
        "app",
        "app_started",
        f"Upload service started (v{get_package_version()})",
        {"version": get_package_version(), "sources": len(settings.sources)},
    )

    server = start_monitor(service, settings) if settings.monitor_enabled else None

    def shutdown(_signum: int = 0, _frame: object = None) -> None:
        logger.info("Shutting down upload service...")
        service.stop()

    signal.signal(signal.SIGINT, shutdown)
    signal.signal(signal.SIGTERM, shutdown)

    driver = threading.Thread(target=service.start, name="Upload Service")
    driver.start()

    # Poll the join so signal handlers keep running on the main thread
    while driver.is_alive():
        driver.join(timeout=1.0)

    logger.info("Waiting for admitted uploads to finish...")
    service.shutdown(wait=True)
    if server is not None:
        server.shutdown()

    log.info("app", "app_stopped", "Upload service stopped", service.status())
    logger.info(EXIT_MESSAGE)
    return 0


if __name__ == "__main__":
    sys.exit(main())

"""
Structured JSON logging for the file sharing server.

Every entry carries the instance it came from, so logs from several shares
on one LAN can be told apart once collected:
  - timestamp, level, logger, message
  - service     : "lanshare"
  - environment : Settings.environment (ENVIRONMENT)
  - port        : the port the share is served on
  - upload_dir  : the content directory the share serves
  - + any extra fields passed via logger.info(..., extra={...}), such as
    the stored names of an accepted upload
"""

import logging.config

from lanshare.config import Settings

SERVICE_NAME = "lanshare"


def build_logging_config(settings: Settings, level: str | None = None) -> dict:
    log_level = (level or settings.log_level).upper()
    handler = {"handlers": ["json"], "level": log_level, "propagate": False}
    return {
        "version": 1,
        "disable_existing_loggers": False,
        "handlers": {
            "json": {
                "class": "logging.StreamHandler",
                "formatter": "json",
                "stream": "ext://sys.stdout",
            },
        },
        "formatters": {
            "json": {
                "()": "pythonjsonlogger.json.JsonFormatter",
                "fmt": "%(asctime)s %(levelname)s %(name)s %(message)s",
                "datefmt": "%Y-%m-%dT%H:%M:%S",
                "rename_fields": {"asctime": "timestamp", "levelname": "level", "name": "logger"},
                "static_fields": {
                    "service": SERVICE_NAME,
                    "environment": settings.environment,
                    "port": settings.port,
                    "upload_dir": str(settings.upload_dir),
                },
            },
        },
        "root": {"handlers": ["json"], "level": log_level},
        "loggers": {
            "uvicorn": dict(handler),
            "uvicorn.error": dict(handler),
            "uvicorn.access": dict(handler),
            SERVICE_NAME: dict(handler),
            # Per-part debug output of the multipart parser.
            "multipart": {"handlers": ["json"], "level": "WARNING", "propagate": False},
            "apscheduler": {"handlers": ["json"], "level": "WARNING", "propagate": False},
        },
    }


def setup_logging(settings: Settings, level: str | None = None) -> None:
    """
    Configure JSON output for the server, uvicorn and the sweeper.

    Called once at process start, before uvicorn is launched. ``level``
    overrides ``settings.log_level``.
    """
    logging.config.dictConfig(build_logging_config(settings, level))

# attribution_app/utils/logging_config.py
"""
Logging setup for the attribution application.

Configures ``app.logger`` and the ``attribution_app`` package logger with a
console handler and a rotating file handler, in text or JSON format, driven by
the ``config.monitoring`` settings.
"""

import json
import logging
import os
from datetime import datetime, timezone
from logging.handlers import RotatingFileHandler

from flask.logging import default_handler

_RESERVED_ATTRS = frozenset(
    {
        "name",
        "msg",
        "args",
        "created",
        "filename",
        "funcName",
        "levelname",
        "levelno",
        "lineno",
        "module",
        "msecs",
        "pathname",
        "process",
        "processName",
        "relativeCreated",
        "stack_info",
        "exc_info",
        "exc_text",
        "thread",
        "threadName",
        "message",
        "taskName",
    }
)

TEXT_FORMAT = "%(asctime)s [%(levelname)s] %(name)s: %(message)s"
_HANDLER_MARKER = "_attribution_handler"


class JSONFormatter(logging.Formatter):
    """One JSON object per line; ``extra`` fields are carried through."""

    def __init__(self, app_name=None, app_version=None):
        super().__init__()
        self.app_name = app_name
        self.app_version = app_version

    def format(self, record):
        payload = {
            "timestamp": datetime.fromtimestamp(record.created, tz=timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        if self.app_name:
            payload["app"] = self.app_name
        if self.app_version:
            payload["version"] = self.app_version
        if record.exc_info:
            payload["exception"] = self.formatException(record.exc_info)
        for key, value in record.__dict__.items():
            if key not in _RESERVED_ATTRS and not key.startswith("_"):
                payload[key] = value
        return json.dumps(payload, default=str)


def _build_formatter(config):
    if str(config.get("LOG_FORMAT", "text")).lower() == "json":
        return JSONFormatter(config.get("APP_NAME"), config.get("APP_VERSION"))
    return logging.Formatter(TEXT_FORMAT)


def _remove_managed_handlers(logger):
    for handler in list(logger.handlers):
        if getattr(handler, _HANDLER_MARKER, False):
            logger.removeHandler(handler)
            handler.close()


def setup_logging(app):
    """
    Configure application logging from ``app.config``.

    Safe to call repeatedly; handlers installed by a previous call are replaced.
    """
    config = app.config
    level_name = str(config.get("LOG_LEVEL", "INFO")).upper()
    level = getattr(logging, level_name, logging.INFO)
    formatter = _build_formatter(config)

    handlers = []
    if config.get("ENABLE_CONSOLE_LOGGING", True):
        console_handler = logging.StreamHandler()
        console_handler.setFormatter(formatter)
        handlers.append(console_handler)

    if config.get("ENABLE_FILE_LOGGING", False):
        log_dir = config.get("LOG_DIR", "logs")
        try:
            os.makedirs(log_dir, exist_ok=True)
            file_handler = RotatingFileHandler(
                os.path.join(log_dir, "attribution.log"),
                maxBytes=int(config.get("LOG_FILE_MAX_BYTES", 10485760)),
                backupCount=int(config.get("LOG_FILE_BACKUP_COUNT", 10)),
                encoding="utf-8",
            )
        except OSError as exc:
            app.logger.warning("File logging disabled, cannot open %s: %s", log_dir, exc)
        else:
            file_handler.setFormatter(formatter)
            handlers.append(file_handler)

    # Our handlers replace the stderr handler Flask installs on first use.
    app.logger.removeHandler(default_handler)
    package_logger = logging.getLogger("attribution_app")
    for logger in (app.logger, package_logger):
        _remove_managed_handlers(logger)
        logger.setLevel(level)
        for handler in handlers:
            setattr(handler, _HANDLER_MARKER, True)
            handler.setLevel(level)
            logger.addHandler(handler)
    # Package records already reach our handlers; skip the root logger when any are installed.
    package_logger.propagate = not handlers

    app.logger.debug("Logging configured (level=%s, format=%s)", level_name, config.get("LOG_FORMAT"))
    return app.logger

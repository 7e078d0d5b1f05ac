# config/monitoring.py

"""Log handler settings read by ``setup_logging``, layered per environment."""

import os

from .base import _coerce_bool, _coerce_int


class MonitoringConfig:
    LOG_LEVEL = os.environ.get("LOG_LEVEL", "INFO").upper()
    # "json" for collectors, "text" for people
    LOG_FORMAT = os.environ.get("LOG_FORMAT", "json").lower()
    LOG_DIR = os.environ.get("LOG_DIR", "logs")
    LOG_FILE_MAX_BYTES = _coerce_int(os.environ.get("LOG_FILE_MAX_BYTES"), 10 * 1024 * 1024, minimum=1024)
    LOG_FILE_BACKUP_COUNT = _coerce_int(os.environ.get("LOG_FILE_BACKUP_COUNT"), 10, minimum=0)
    ENABLE_FILE_LOGGING = _coerce_bool(os.environ.get("ENABLE_FILE_LOGGING"), default=True)
    ENABLE_CONSOLE_LOGGING = _coerce_bool(os.environ.get("ENABLE_CONSOLE_LOGGING"), default=True)

    # Stamped on every JSON log line
    APP_NAME = os.environ.get("APP_NAME", "Attribution Engine")
    APP_VERSION = os.environ.get("APP_VERSION", "1.0.0")


class DevelopmentMonitoringConfig(MonitoringConfig):
    LOG_LEVEL = os.environ.get("LOG_LEVEL", "DEBUG").upper()
    LOG_FORMAT = os.environ.get("LOG_FORMAT", "text").lower()


class ProductionMonitoringConfig(MonitoringConfig):
    """Production always logs JSON so resolution and stats lines can be parsed downstream."""

    LOG_FORMAT = "json"


class TestingMonitoringConfig(MonitoringConfig):
    # CLI tests parse stdout as JSON, so no handler may write there.
    LOG_LEVEL = "WARNING"
    LOG_FORMAT = "text"
    ENABLE_FILE_LOGGING = False
    ENABLE_CONSOLE_LOGGING = False

# app.py
#
# Flask host for the attribution engine. There are no HTTP routes; everything
# runs through `flask attribution ...`.

import logging
import os

from dotenv import load_dotenv
from flask import Flask
from sqlalchemy import event

# .env must be loaded before config classes read os.environ at import time
load_dotenv()

from attribution_app import init_attribution  # noqa: E402
from attribution_app.models import db  # noqa: E402
from attribution_app.utils.logging_config import setup_logging  # noqa: E402
from config import DevelopmentConfig, ProductionConfig, TestingConfig  # noqa: E402
from config.monitoring import (  # noqa: E402
    DevelopmentMonitoringConfig,
    ProductionMonitoringConfig,
    TestingMonitoringConfig,
)
from config.validation import validate_and_exit  # noqa: E402

logger = logging.getLogger(__name__)

_ENVIRONMENTS = {
    "production": (ProductionConfig, ProductionMonitoringConfig),
    "testing": (TestingConfig, TestingMonitoringConfig),
    "development": (DevelopmentConfig, DevelopmentMonitoringConfig),
}


def _sqlite_pragma_hook(*, foreign_keys: bool):
    """Build a connect listener that lets concurrent resolver writers share one SQLite file."""
    pragmas = ["journal_mode=WAL", "synchronous=NORMAL", "busy_timeout=5000"]
    if foreign_keys:
        pragmas.append("foreign_keys=ON")

    def _on_connect(dbapi_connection, connection_record):  # pragma: no cover - instrumentation
        cursor = dbapi_connection.cursor()
        try:
            for pragma in pragmas:
                cursor.execute(f"PRAGMA {pragma}")
        except Exception as exc:  # noqa: BLE001 - pragmas are best effort
            logger.warning("SQLite PRAGMA setup failed: %s", exc)
        finally:
            cursor.close()

    return _on_connect


def _prepare_database(flask_app: Flask) -> None:
    engine = db.engine
    if engine.url.drivername.startswith("sqlite") and not getattr(engine, "_attribution_pragmas", False):
        event.listen(engine, "connect", _sqlite_pragma_hook(foreign_keys=not flask_app.testing))
        engine._attribution_pragmas = True  # type: ignore[attr-defined]
    # Tests build their own schema per test
    if not flask_app.testing:
        db.create_all()


flask_env = os.environ.get("FLASK_ENV", "development")
if flask_env == "production":
    validate_and_exit(flask_env)

app = Flask(__name__)
for config_object in _ENVIRONMENTS.get(flask_env, _ENVIRONMENTS["development"]):
    app.config.from_object(config_object)

db.init_app(app)
# Handlers first, so the engine's startup line is captured
setup_logging(app)
init_attribution(app)

with app.app_context():
    _prepare_database(app)

# conftest.py

import os

import pytest

# app.py picks its config classes at import time; it must see "testing" first.
os.environ["FLASK_ENV"] = "testing"

from app import app as flask_app  # noqa: E402
from attribution_app import init_attribution  # noqa: E402
from attribution_app.models import db  # noqa: E402
from attribution_app.utils.logging_config import setup_logging  # noqa: E402

# Every test starts from these values, whatever an earlier test changed.
_TEST_SETTINGS = {
    "TESTING": True,
    "SECRET_KEY": "test-secret-key-for-testing-only",
    "ENABLE_FILE_LOGGING": False,
    "ENABLE_CONSOLE_LOGGING": False,
    "LOG_LEVEL": "DEBUG",
    "ATTRIBUTION_ENABLED": True,
    "ATTRIBUTION_AUTO_MERGE_CONFIDENCE": None,
    "ATTRIBUTION_MATCHING_PROFILE_PATH": None,
    "ATTRIBUTION_STATS_SAMPLE_SIZE": None,
    "ATTRIBUTION_STATS_SEED": 1234,
    "ATTRIBUTION_STATS_MAX_SECONDS": 60.0,
    "ATTRIBUTION_STATS_MAX_OPERATIONS": None,
}


@pytest.fixture(scope="function")
def app():
    """The shared Flask app with reset settings and an empty contact schema."""
    flask_app.config.update(_TEST_SETTINGS)
    # Cached matching profile and log handlers depend on the settings above
    setup_logging(flask_app)
    init_attribution(flask_app)

    with flask_app.app_context():
        db.drop_all()
        db.create_all()
        yield flask_app
        db.session.remove()
        db.drop_all()


@pytest.fixture(autouse=True)
def app_context(app):
    with app.app_context():
        yield


@pytest.fixture
def runner(app):
    """CLI runner for `flask attribution` commands."""
    return app.test_cli_runner()


def pytest_configure(config):
    os.environ["FLASK_ENV"] = "testing"
    config.addinivalue_line("markers", "concurrency: exercises the resolver from several threads")

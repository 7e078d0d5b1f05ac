# config/base.py
import os

_TRUE_WORDS = {"1", "true", "yes", "on"}
_FALSE_WORDS = {"0", "false", "no", "off"}


def _coerce_bool(value, default=False):
    """Read an env-style flag; unrecognised words fall back to ``default``."""
    if isinstance(value, bool):
        return value
    word = "" if value is None else str(value).strip().lower()
    if word in _TRUE_WORDS:
        return True
    if word in _FALSE_WORDS:
        return False
    return default


def _coerce_number(cast, value, default, minimum):
    text = "" if value is None else str(value).strip()
    if not text:
        return default
    try:
        number = cast(text)
    except ValueError:
        return default
    return default if minimum is not None and number < minimum else number


def _coerce_int(value, default=None, *, minimum=None):
    return _coerce_number(int, value, default, minimum)


def _coerce_float(value, default=None, *, minimum=None):
    return _coerce_number(float, value, default, minimum)


def _sqlite_engine_options(uri):
    # Resolver threads share one engine; let SQLite wait on its file lock.
    if uri and uri.startswith("sqlite"):
        return {"connect_args": {"check_same_thread": False, "timeout": 5}}
    return {}


_PROJECT_ROOT = os.path.dirname(os.path.dirname(os.path.abspath(__file__)))


class Config:
    _flask_env = os.environ.get("FLASK_ENV", "development")

    SECRET_KEY = os.environ.get("SECRET_KEY")
    if not SECRET_KEY:
        if _flask_env == "production":
            raise ValueError("SECRET_KEY must be set when FLASK_ENV=production.")
        SECRET_KEY = "attribution-dev-secret"

    SQLALCHEMY_TRACK_MODIFICATIONS = False
    SQLALCHEMY_ENGINE_OPTIONS = {}

    # Feature flag for the whole `flask attribution` command group
    ATTRIBUTION_ENABLED = _coerce_bool(os.environ.get("ATTRIBUTION_ENABLED"), default=True)
    # None keeps the matching profile's own threshold.
    ATTRIBUTION_AUTO_MERGE_CONFIDENCE = (os.environ.get("ATTRIBUTION_AUTO_MERGE_CONFIDENCE") or "").strip().lower() or None
    ATTRIBUTION_MATCHING_PROFILE_PATH = os.environ.get("ATTRIBUTION_MATCHING_PROFILE_PATH")

    # Statistics scans walk the whole population, so they carry default bounds.
    ATTRIBUTION_STATS_SAMPLE_SIZE = _coerce_int(os.environ.get("ATTRIBUTION_STATS_SAMPLE_SIZE"), minimum=1)
    ATTRIBUTION_STATS_SEED = _coerce_int(os.environ.get("ATTRIBUTION_STATS_SEED"))
    ATTRIBUTION_STATS_MAX_SECONDS = _coerce_float(
        os.environ.get("ATTRIBUTION_STATS_MAX_SECONDS"), default=60.0, minimum=0.0
    )
    ATTRIBUTION_STATS_MAX_OPERATIONS = _coerce_int(os.environ.get("ATTRIBUTION_STATS_MAX_OPERATIONS"), minimum=1)


class DevelopmentConfig(Config):
    DEBUG = True
    instance_path = os.path.join(_PROJECT_ROOT, "instance")
    os.makedirs(instance_path, exist_ok=True)

    SQLALCHEMY_DATABASE_URI = os.environ.get(
        "DATABASE_URL", "sqlite:///" + os.path.join(instance_path, "attribution_dev.db").replace("\\", "/")
    )
    SQLALCHEMY_ECHO = _coerce_bool(os.environ.get("SQLALCHEMY_ECHO"), default=False)
    SQLALCHEMY_ENGINE_OPTIONS = _sqlite_engine_options(SQLALCHEMY_DATABASE_URI)


class TestingConfig(Config):
    TESTING = True
    SECRET_KEY = os.environ.get("SECRET_KEY", "test-secret-key-for-testing-only")
    SQLALCHEMY_DATABASE_URI = "sqlite:///:memory:"
    SQLALCHEMY_ECHO = False
    SQLALCHEMY_ENGINE_OPTIONS = _sqlite_engine_options(SQLALCHEMY_DATABASE_URI)
    # Fixed so sampled statistics are reproducible
    ATTRIBUTION_STATS_SEED = 1234


class ProductionConfig(Config):
    DEBUG = False
    SQLALCHEMY_ECHO = False
    # Heroku-style URLs still use the postgres:// scheme SQLAlchemy 2 rejects.
    SQLALCHEMY_DATABASE_URI = (os.environ.get("DATABASE_URL") or "").replace("postgres://", "postgresql://", 1) or None

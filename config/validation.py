# config/validation.py

"""
Startup checks for the attribution engine's environment.

Only production refuses to boot on a bad environment; other environments fall
back to the defaults in ``config.base`` and ``config.matching``.
"""

import os
import sys
from typing import Callable, List, Mapping, Tuple

from config.matching import MatchingProfileError, load_profile

_PLACEHOLDER_SECRETS = {"", "your-secret-key", "your_secret_key", "changeme"}
_CONFIDENCE_NAMES = ("none", "low", "medium", "high", "exact")
_NUMERIC_SETTINGS = (
    "ATTRIBUTION_STATS_SAMPLE_SIZE",
    "ATTRIBUTION_STATS_MAX_SECONDS",
    "ATTRIBUTION_STATS_MAX_OPERATIONS",
)


def _check_secret_key(env: Mapping[str, str]) -> List[str]:
    if env.get("SECRET_KEY", "").strip() in _PLACEHOLDER_SECRETS:
        return [
            "SECRET_KEY must be set to a non-placeholder value. "
            'Generate one with: python -c "import secrets; print(secrets.token_hex(32))"'
        ]
    return []


def _check_database(env: Mapping[str, str]) -> List[str]:
    if not env.get("DATABASE_URL", "").strip():
        return ["DATABASE_URL must point at the contact store (a PostgreSQL connection string)."]
    return []


def _check_confidence(env: Mapping[str, str]) -> List[str]:
    value = (env.get("ATTRIBUTION_AUTO_MERGE_CONFIDENCE") or "").strip().lower()
    if value and value not in _CONFIDENCE_NAMES:
        return [f"ATTRIBUTION_AUTO_MERGE_CONFIDENCE is '{value}'; expected one of {', '.join(_CONFIDENCE_NAMES)}."]
    return []


def _check_stats_bounds(env: Mapping[str, str]) -> List[str]:
    problems = []
    for name in _NUMERIC_SETTINGS:
        raw = (env.get(name) or "").strip()
        if not raw:
            continue
        try:
            number = float(raw)
        except ValueError:
            problems.append(f"{name} is '{raw}'; expected a number.")
            continue
        if number < 0:
            problems.append(f"{name} must not be negative.")
    return problems


def _check_matching_profile(env: Mapping[str, str]) -> List[str]:
    # Parses the override too, so a malformed profile fails at boot rather than on first resolve.
    try:
        load_profile(env)
    except MatchingProfileError as exc:
        return [f"ATTRIBUTION_MATCHING_PROFILE_PATH: {exc}"]
    return []


_CHECKS: Tuple[Callable[[Mapping[str, str]], List[str]], ...] = (
    _check_secret_key,
    _check_database,
    _check_confidence,
    _check_stats_bounds,
    _check_matching_profile,
)


def validate_environment(flask_env: str = None, environ: Mapping[str, str] = None) -> Tuple[bool, List[str]]:
    """
    Run the production startup checks.

    Returns ``(is_valid, errors)``. Non-production environments always pass.
    """
    env = os.environ if environ is None else environ
    if flask_env is None:
        flask_env = env.get("FLASK_ENV", "development")
    if flask_env != "production":
        return True, []

    errors = [message for check in _CHECKS for message in check(env)]
    return not errors, errors


def validate_and_exit(flask_env: str = None) -> None:
    """Print every failed check to stderr and exit with status 1."""
    is_valid, errors = validate_environment(flask_env)
    if is_valid:
        return

    lines = ["Attribution engine cannot start; fix these settings in .env or the environment:"]
    lines.extend(f"  - {error}" for error in errors)
    print("\n".join(lines), file=sys.stderr)
    sys.exit(1)

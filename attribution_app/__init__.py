"""
Attribution engine package.

``init_attribution`` records engine state inside ``app.extensions['attribution']``
and registers the ``flask attribution`` CLI group. No HTTP routes are mounted.
"""

from __future__ import annotations

from dataclasses import replace
from typing import Any

from flask import Flask, current_app

from config.matching import MatchingProfile, MatchingProfileError, load_profile

ATTRIBUTION_EXTENSION_KEY = "attribution"

__all__ = [
    "ATTRIBUTION_EXTENSION_KEY",
    "get_matching_profile",
    "init_attribution",
    "is_attribution_enabled",
]


def is_attribution_enabled(app: Flask | None = None) -> bool:
    config = (app or current_app).config
    return bool(config.get("ATTRIBUTION_ENABLED", True))


def _ensure_extension_state(app: Flask) -> dict[str, Any]:
    return app.extensions.setdefault(ATTRIBUTION_EXTENSION_KEY, {"profile": None})


def _load_app_profile(app: Flask) -> MatchingProfile:
    profile = load_profile({"ATTRIBUTION_MATCHING_PROFILE_PATH": app.config.get("ATTRIBUTION_MATCHING_PROFILE_PATH") or ""})
    confidence = app.config.get("ATTRIBUTION_AUTO_MERGE_CONFIDENCE")
    if confidence:
        from attribution_app.engine.types import MatchConfidence

        try:
            MatchConfidence.parse(confidence)
        except ValueError as exc:
            raise MatchingProfileError(str(exc)) from exc
        profile = replace(profile, auto_merge_confidence=str(confidence).strip().lower())
    seed = app.config.get("ATTRIBUTION_STATS_SEED")
    if seed is not None and profile.stats_seed is None:
        profile = replace(profile, stats_seed=int(seed))
    return profile


def get_matching_profile(app: Flask | None = None) -> MatchingProfile:
    """Return the app's matching profile, loading and caching it on first use."""
    app = app or current_app._get_current_object()
    state = _ensure_extension_state(app)
    if state.get("profile") is None:
        state["profile"] = _load_app_profile(app)
    return state["profile"]


def init_attribution(app: Flask) -> None:
    """Register the attribution CLI group and reset cached engine state."""
    from .cli import attribution_cli

    state = _ensure_extension_state(app)
    state["profile"] = None

    command_name = attribution_cli.name
    if command_name in app.cli.commands:
        app.cli.commands.pop(command_name)
    app.cli.add_command(attribution_cli)

    if is_attribution_enabled(app):
        app.logger.info("Attribution engine enabled.")
    else:
        app.logger.info("Attribution engine disabled via ATTRIBUTION_ENABLED flag.")

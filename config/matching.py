"""
Matching and merge profile configuration for the identity resolution engine.

The resolver, merge policy and statistics aggregator read their tunables from a
``MatchingProfile``. Defaults live here so no database tables are required.
Operators can override any subset of the defaults by pointing
``ATTRIBUTION_MATCHING_PROFILE_PATH`` at a JSON or YAML file; the helpers below
load and validate that override.
"""

from __future__ import annotations

import json
from dataclasses import dataclass, replace
from pathlib import Path
from typing import Any, Mapping, MutableMapping, Sequence

import yaml

# ---------------------------------------------------------------------------
# Data structures
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class MatchingProfile:
    """
    Tunables shared by the match scorer, merge policy and stats aggregator.

    Attributes:
        key: Identifier used in logs when a profile override is active.
        name_similarity_threshold: Minimum normalized edit-distance ratio
            (0..1) for two names to count as similar.
        min_phone_digits: Phones with fewer digits never corroborate a match.
        dot_insensitive_domains: Email providers that ignore dots and
            ``+alias`` suffixes in the local part.
        free_mail_domains: Email domains that never stand in for a company.
        company_suffixes: Legal-entity suffixes dropped before comparing
            company names.
        auto_merge_confidence: Default confidence threshold for ``resolve``.
        notes_separator: Inserted between appended note fragments.
        expected_fields: Canonical contact fields counted for field coverage.
        max_failure_reasons: Upper bound on failure reasons kept by batches.
        stats_seed: Optional seed for reproducible statistics sampling.
    """

    key: str = "default"
    name_similarity_threshold: float = 0.8
    min_phone_digits: int = 7
    dot_insensitive_domains: frozenset[str] = frozenset({"gmail.com", "googlemail.com"})
    free_mail_domains: frozenset[str] = frozenset(
        {
            "gmail.com",
            "googlemail.com",
            "yahoo.com",
            "hotmail.com",
            "outlook.com",
            "live.com",
            "icloud.com",
            "me.com",
            "aol.com",
            "proton.me",
            "protonmail.com",
        }
    )
    company_suffixes: tuple[str, ...] = (
        "inc",
        "incorporated",
        "llc",
        "ltd",
        "limited",
        "corp",
        "corporation",
        "co",
        "company",
        "gmbh",
        "plc",
        "sa",
        "bv",
        "pty",
    )
    auto_merge_confidence: str = "medium"
    notes_separator: str = "\n---\n"
    expected_fields: tuple[str, ...] = ("name", "email", "phone", "company")
    max_failure_reasons: int = 50
    stats_seed: int | None = None


DEFAULT_PROFILE = MatchingProfile()

_CONTACT_FIELDS = frozenset({"name", "email", "phone", "company", "notes"})
_CONFIDENCE_NAMES = frozenset({"none", "low", "medium", "high", "exact"})


# ---------------------------------------------------------------------------
# Loading helpers
# ---------------------------------------------------------------------------


class MatchingProfileError(RuntimeError):
    """Raised when a matching profile override cannot be parsed."""


def _load_override(path: Path) -> MutableMapping[str, object]:
    if not path.exists():
        raise MatchingProfileError(f"Matching profile override file {path} does not exist.")
    try:
        text = path.read_text(encoding="utf-8")
    except OSError as exc:  # pragma: no cover - filesystem failure
        raise MatchingProfileError(f"Unable to read matching profile override file {path}: {exc}") from exc

    try:
        if path.suffix.lower() in {".yaml", ".yml"}:
            data = yaml.safe_load(text)
        else:
            data = json.loads(text)
    except (ValueError, yaml.YAMLError) as exc:
        raise MatchingProfileError(f"Matching profile override {path} is not valid: {exc}") from exc

    if not isinstance(data, Mapping):
        raise MatchingProfileError("Matching profile override must be a JSON/YAML object.")
    return dict(data)


def _coerce_string_set(value: object, *, item_name: str) -> frozenset[str]:
    if isinstance(value, Sequence) and not isinstance(value, (str, bytes)):
        return frozenset(str(item).strip().lower() for item in value if str(item).strip())
    raise MatchingProfileError(f"Expected sequence for {item_name}, got {type(value).__name__}.")


def _coerce_ratio(value: object, *, item_name: str) -> float:
    try:
        ratio = float(value)  # type: ignore[arg-type]
    except (TypeError, ValueError) as exc:
        raise MatchingProfileError(f"{item_name} must be a number.") from exc
    if not 0.0 < ratio <= 1.0:
        raise MatchingProfileError(f"{item_name} must be within (0, 1], got {ratio}.")
    return ratio


def _coerce_positive_int(value: object, *, item_name: str) -> int:
    try:
        number = int(value)  # type: ignore[arg-type]
    except (TypeError, ValueError) as exc:
        raise MatchingProfileError(f"{item_name} must be an integer.") from exc
    if number < 1:
        raise MatchingProfileError(f"{item_name} must be at least 1, got {number}.")
    return number


def _coerce_profile(raw: Mapping[str, object]) -> MatchingProfile:
    overrides: dict[str, Any] = {}

    if "key" in raw:
        overrides["key"] = str(raw["key"] or DEFAULT_PROFILE.key).strip() or DEFAULT_PROFILE.key
    if "name_similarity_threshold" in raw:
        overrides["name_similarity_threshold"] = _coerce_ratio(
            raw["name_similarity_threshold"], item_name="name_similarity_threshold"
        )
    if "min_phone_digits" in raw:
        overrides["min_phone_digits"] = _coerce_positive_int(raw["min_phone_digits"], item_name="min_phone_digits")
    if "max_failure_reasons" in raw:
        overrides["max_failure_reasons"] = _coerce_positive_int(
            raw["max_failure_reasons"], item_name="max_failure_reasons"
        )
    for set_field in ("dot_insensitive_domains", "free_mail_domains"):
        if set_field in raw:
            overrides[set_field] = _coerce_string_set(raw[set_field], item_name=set_field)
    if "company_suffixes" in raw:
        overrides["company_suffixes"] = tuple(
            sorted(_coerce_string_set(raw["company_suffixes"], item_name="company_suffixes"))
        )
    if "auto_merge_confidence" in raw:
        confidence = str(raw["auto_merge_confidence"]).strip().lower()
        if confidence not in _CONFIDENCE_NAMES:
            raise MatchingProfileError(f"Unknown auto_merge_confidence '{confidence}'.")
        overrides["auto_merge_confidence"] = confidence
    if "notes_separator" in raw:
        separator = raw["notes_separator"]
        if not isinstance(separator, str) or not separator:
            raise MatchingProfileError("notes_separator must be a non-empty string.")
        overrides["notes_separator"] = separator
    if "expected_fields" in raw:
        fields = _coerce_string_set(raw["expected_fields"], item_name="expected_fields")
        unknown = fields - _CONTACT_FIELDS
        if unknown or not fields:
            raise MatchingProfileError(f"expected_fields contains unknown fields: {sorted(unknown)}.")
        ordered = (str(item).strip().lower() for item in raw["expected_fields"])  # type: ignore[union-attr]
        overrides["expected_fields"] = tuple(dict.fromkeys(item for item in ordered if item))
    if "stats_seed" in raw:
        seed = raw["stats_seed"]
        if seed is None:
            overrides["stats_seed"] = None
        else:
            try:
                overrides["stats_seed"] = int(seed)  # type: ignore[arg-type]
            except (TypeError, ValueError) as exc:
                raise MatchingProfileError("stats_seed must be an integer or null.") from exc

    return replace(DEFAULT_PROFILE, **overrides)


def load_profile(env: Mapping[str, str] | None = None) -> MatchingProfile:
    """
    Load the active matching profile.

    If ``ATTRIBUTION_MATCHING_PROFILE_PATH`` is set, its JSON/YAML content
    overrides the defaults field by field. Otherwise the built-in defaults are
    used.
    """

    env_map = env or {}
    override_path = env_map.get("ATTRIBUTION_MATCHING_PROFILE_PATH")
    if not override_path:
        return DEFAULT_PROFILE
    raw = _load_override(Path(override_path))
    return _coerce_profile(raw)


__all__ = [
    "DEFAULT_PROFILE",
    "MatchingProfile",
    "MatchingProfileError",
    "load_profile",
]

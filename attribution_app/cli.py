"""
CLI commands for the attribution engine.

All commands print JSON so their output can be piped into other tooling.
"""

from __future__ import annotations

import json
from collections import defaultdict
from datetime import datetime
from pathlib import Path
from typing import Any, Optional

import click
from flask import current_app
from flask.cli import AppGroup

from attribution_app import get_matching_profile, is_attribution_enabled
from attribution_app.engine import (
    AttributionStatsAggregator,
    ContactNotFound,
    ContactResolver,
    DateWindow,
    MalformedRecord,
    MatchConfidence,
    MatchingProfileError,
    OperationBudget,
    Source,
    SourceEvent,
    SourceRecord,
    StoreUnavailable,
    TimelineBuilder,
)
from attribution_app.engine.timeline import parse_timestamp
from attribution_app.stores import SqlAlchemyContactStore, SqlAlchemyEventSource

attribution_cli = AppGroup("attribution", help="Identity resolution and attribution commands.")


def _ensure_enabled() -> None:
    if not is_attribution_enabled(current_app):
        raise click.ClickException("Attribution commands are unavailable because ATTRIBUTION_ENABLED=false.")


def _profile():
    try:
        return get_matching_profile(current_app)
    except MatchingProfileError as exc:
        raise click.ClickException(f"Invalid matching profile: {exc}") from exc


def _read_items(file_path: Path, key: str) -> list[Any]:
    try:
        payload = json.loads(file_path.read_text(encoding="utf-8"))
    except (OSError, ValueError) as exc:
        raise click.ClickException(f"Unable to read {file_path}: {exc}") from exc
    if isinstance(payload, dict):
        payload = payload.get(key, [])
    if not isinstance(payload, list):
        raise click.ClickException(f"{file_path} must contain a JSON list or an object with a '{key}' list.")
    return payload


def _event_sources() -> list[SqlAlchemyEventSource]:
    return [SqlAlchemyEventSource(source) for source in Source]


def _parse_window(start: Optional[str], end: Optional[str]) -> Optional[DateWindow]:
    if not start and not end:
        return None
    bounds: list[Optional[datetime]] = []
    for label, value in (("--start", start), ("--end", end)):
        if not value:
            bounds.append(None)
            continue
        parsed = parse_timestamp(value)
        if parsed is None:
            raise click.BadParameter(f"Could not parse {value!r} as a timestamp.", param_hint=label)
        bounds.append(parsed)
    try:
        return DateWindow(start=bounds[0], end=bounds[1])
    except ValueError as exc:
        raise click.BadParameter(str(exc), param_hint="--start/--end") from exc


def _echo_json(payload: Any) -> None:
    click.echo(json.dumps(payload, indent=2, sort_keys=True, default=str))


@attribution_cli.command("resolve")
@click.option(
    "--file",
    "file_path",
    required=True,
    type=click.Path(path_type=Path, exists=True, dir_okay=False),
    help="JSON file holding a list of source records.",
)
@click.option(
    "--threshold",
    type=click.Choice([level.label for level in MatchConfidence], case_sensitive=False),
    help="Minimum confidence required to merge into an existing contact.",
)
def resolve_command(file_path: Path, threshold: Optional[str]):
    """Resolve source records into canonical contacts."""
    _ensure_enabled()
    profile = _profile()

    records: list[SourceRecord] = []
    malformed: list[dict[str, Any]] = []
    for index, item in enumerate(_read_items(file_path, "records")):
        try:
            records.append(SourceRecord.from_mapping(item))
        except MalformedRecord as exc:
            malformed.append({"index": index, "field": exc.field_name, "message": str(exc)})

    resolver = ContactResolver(SqlAlchemyContactStore(), profile=profile)
    summary = resolver.resolve_batch(records, confidence_threshold=threshold)

    payload = summary.as_dict()
    payload["malformed"] = malformed
    payload["contact_ids"] = sorted(set(summary.contact_ids))
    _echo_json(payload)


@attribution_cli.command("load-events")
@click.option(
    "--file",
    "file_path",
    required=True,
    type=click.Path(path_type=Path, exists=True, dir_okay=False),
    help="JSON file holding a list of touch-point events.",
)
def load_events_command(file_path: Path):
    """Store raw touch-point events for later timeline builds."""
    _ensure_enabled()

    grouped: dict[Source, list[SourceEvent]] = defaultdict(list)
    invalid: list[dict[str, Any]] = []
    for index, item in enumerate(_read_items(file_path, "events")):
        if not isinstance(item, dict):
            invalid.append({"index": index, "message": "event must be an object"})
            continue
        try:
            source = Source.parse(item.get("source"))
        except ValueError as exc:
            invalid.append({"index": index, "message": str(exc)})
            continue
        source_id = str(item.get("source_id") or "").strip()
        event_type = str(item.get("type") or "").strip()
        if not source_id or not event_type:
            invalid.append({"index": index, "message": "event requires 'source_id' and 'type'"})
            continue
        grouped[source].append(
            SourceEvent(
                source=source,
                source_id=source_id,
                type=event_type,
                occurred_at=item.get("occurred_at"),
                contact_id=item.get("contact_id"),
                record_id=item.get("record_id"),
                metadata=item.get("metadata") if isinstance(item.get("metadata"), dict) else {},
            )
        )

    added: dict[str, int] = {}
    try:
        for source, events in grouped.items():
            added[source.value] = SqlAlchemyEventSource(source).save_events(events)
    except StoreUnavailable as exc:
        raise click.ClickException(str(exc)) from exc

    _echo_json({"added": added, "invalid": invalid})


@attribution_cli.command("timeline")
@click.argument("contact_id")
@click.option("--start", help="Only include events at or after this timestamp.")
@click.option("--end", help="Only include events at or before this timestamp.")
def timeline_command(contact_id: str, start: Optional[str], end: Optional[str]):
    """Print the ordered touch-point timeline for a contact."""
    _ensure_enabled()
    window = _parse_window(start, end)
    builder = TimelineBuilder(SqlAlchemyContactStore(), _event_sources())
    try:
        timeline = builder.build_timeline(contact_id, window=window)
    except (ContactNotFound, StoreUnavailable) as exc:
        raise click.ClickException(str(exc)) from exc
    _echo_json(timeline.as_dict())


@attribution_cli.command("stats")
@click.option("--sample-size", type=click.IntRange(min=0), help="Analyse a uniform random sample of contacts.")
@click.option("--seed", type=int, help="Seed for reproducible sampling.")
@click.option("--max-seconds", type=click.FloatRange(min=0), help="Stop after this many seconds.")
@click.option("--max-operations", type=click.IntRange(min=0), help="Stop after this many contacts.")
@click.option("--start", help="Only count events at or after this timestamp.")
@click.option("--end", help="Only count events at or before this timestamp.")
def stats_command(
    sample_size: Optional[int],
    seed: Optional[int],
    max_seconds: Optional[float],
    max_operations: Optional[int],
    start: Optional[str],
    end: Optional[str],
):
    """Compute attribution statistics across canonical contacts."""
    _ensure_enabled()
    profile = _profile()
    config = current_app.config
    window = _parse_window(start, end)

    budget = OperationBudget(
        max_operations=max_operations if max_operations is not None else config.get("ATTRIBUTION_STATS_MAX_OPERATIONS"),
        max_seconds=max_seconds if max_seconds is not None else config.get("ATTRIBUTION_STATS_MAX_SECONDS"),
    )
    store = SqlAlchemyContactStore()
    aggregator = AttributionStatsAggregator(store, TimelineBuilder(store, _event_sources()), profile=profile)
    try:
        stats = aggregator.compute_stats(
            sample_size=sample_size if sample_size is not None else config.get("ATTRIBUTION_STATS_SAMPLE_SIZE"),
            seed=seed,
            budget=budget,
            window=window,
        )
    except StoreUnavailable as exc:
        raise click.ClickException(str(exc)) from exc
    _echo_json(stats.as_dict())

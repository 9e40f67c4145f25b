"""Versioned upgrades for stored observation payloads.

Records written by earlier releases are brought to the current shape on load.
Each step is a pure function of the payload; ``upgrade`` never mutates its
argument.
"""
from __future__ import annotations

import copy
import hashlib
import logging
from typing import Any, Callable, Dict

from .models import SCHEMA_VERSION

LOGGER = logging.getLogger(__name__)

Record = Dict[str, Any]

# Start time for legacy episodes whose record carries no timestamp either.
LEGACY_EPOCH = "1970-01-01T00:00:00+00:00"


def record_version(record: Record) -> int:
    raw = record.get("schema_version")
    if raw is None:
        # v0 stored "who" as a single string; v1 already used a list.
        context = record.get("context") or {}
        return 0 if isinstance(context.get("who"), str) else 1
    return int(raw)


def _v0_to_v1(record: Record) -> Record:
    context = record.setdefault("context", {})
    who = context.get("who")
    if who in (None, ""):
        context["who"] = []
    elif isinstance(who, str):
        context["who"] = [who]
    return record


def _v1_to_v2(record: Record) -> Record:
    context = record.get("context")
    if not isinstance(context, dict):
        context = {}
        record["context"] = context
    context.setdefault("who", [])
    context["notes"] = context.get("notes") or ""
    context["prompts"] = context.get("prompts") or []

    if not record.get("behavior"):
        record["behavior"] = context.pop("behavior", "") or ""
    else:
        context.pop("behavior", None)

    episodes = record.get("episodes") or []
    fallback_start = record.get("timestamp") or LEGACY_EPOCH
    for index, episode in enumerate(episodes):
        if not episode.get("id"):
            seed = f"{record.get('id', '')}:{index}:{episode.get('status', '')}"
            episode["id"] = hashlib.sha1(seed.encode("utf-8")).hexdigest()[:32]
        if not episode.get("startTime"):
            episode["startTime"] = fallback_start
        episode["duration"] = int(episode.get("duration") or 0)
    record["episodes"] = episodes
    return record


MIGRATIONS: Dict[int, Callable[[Record], Record]] = {
    0: _v0_to_v1,
    1: _v1_to_v2,
}


def upgrade(record: Record) -> Record:
    """Return a copy of ``record`` upgraded to ``SCHEMA_VERSION``."""
    version = record_version(record)
    if version > SCHEMA_VERSION:
        raise ValueError(f"Record {record.get('id')} has unsupported schema version {version}")
    upgraded = copy.deepcopy(record)
    while version < SCHEMA_VERSION:
        upgraded = MIGRATIONS[version](upgraded)
        version += 1
        LOGGER.debug("Upgraded record %s to schema version %s", upgraded.get("id"), version)
    upgraded["schema_version"] = SCHEMA_VERSION
    return upgraded

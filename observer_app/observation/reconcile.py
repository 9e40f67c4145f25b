"""End-of-session reconciliation of committed episodes against elapsed time."""
from __future__ import annotations

import logging
from dataclasses import replace
from datetime import datetime, timedelta
from typing import Any, Iterable, List, Mapping, Optional

from .errors import ReconciliationInvariantViolation
from .models import Episode, FinalizedRecord, Status, utc_now

LOGGER = logging.getLogger(__name__)


def reconcile(
    elapsed: int,
    primary_status: Status | str,
    committed: Iterable[Episode],
    now: Optional[datetime] = None,
    context: Optional[Mapping[str, Any]] = None,
) -> FinalizedRecord:
    """Force committed episodes to partition ``elapsed`` seconds exactly.

    Degenerate episodes are dropped, any overflow is trimmed from the most
    recently committed episodes first, and any remaining time is attributed to
    a synthesized primary-status episode. The result is ordered by start time,
    ties keeping commit order.
    """
    elapsed = int(elapsed)
    if elapsed < 0:
        raise ValueError(f"Elapsed time cannot be negative: {elapsed}")
    primary_status = Status.parse(primary_status)
    now = now or utc_now()

    committed = list(committed)
    episodes = [ep for ep in committed if ep.duration > 0]
    if len(episodes) != len(committed):
        LOGGER.warning("Dropped %s episode(s) with no duration", len(committed) - len(episodes))

    episode_time = sum(ep.duration for ep in episodes)
    if episode_time > elapsed:
        episodes = trim_overflow(episodes, episode_time - elapsed)

    shortfall = elapsed - sum(ep.duration for ep in episodes)
    if shortfall > 0:
        episodes.append(primary_episode(primary_status, elapsed, shortfall, now))

    ordered = sorted(episodes, key=lambda ep: ep.start_time)
    total = sum(ep.duration for ep in ordered)
    if total != elapsed:
        raise ReconciliationInvariantViolation(expected=elapsed, actual=total)

    LOGGER.debug(
        "Reconciled %ss into %s episode(s) (%s committed)", elapsed, len(ordered), len(committed)
    )
    return FinalizedRecord(
        duration=elapsed,
        episodes=tuple(ordered),
        primary_status=primary_status,
        context=context,
    )


def trim_overflow(episodes: List[Episode], overflow: int) -> List[Episode]:
    """Remove ``overflow`` seconds, latest commit first; empty episodes are dropped."""
    trimmed = list(episodes)
    LOGGER.info("Episode time exceeds session time by %ss; trimming latest episodes", overflow)
    for index in range(len(trimmed) - 1, -1, -1):
        if overflow <= 0:
            break
        episode = trimmed[index]
        cut = min(overflow, episode.duration)
        end_time = episode.end_time - timedelta(seconds=cut) if episode.end_time else None
        trimmed[index] = replace(episode, duration=episode.duration - cut, end_time=end_time)
        overflow -= cut
    return [ep for ep in trimmed if ep.duration > 0]


def primary_episode(status: Status, elapsed: int, duration: int, now: datetime) -> Episode:
    # The real sub-intervals are not recoverable; anchor at the session start.
    start_time = now - timedelta(seconds=elapsed)
    return Episode(
        status=status,
        start_time=start_time,
        end_time=start_time + timedelta(seconds=duration),
        duration=duration,
    )

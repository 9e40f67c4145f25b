"""Percentage-of-time statistics for finalized records."""
from __future__ import annotations

import logging
from typing import Iterable, Optional, Protocol, Sequence

from .models import Episode, ObservationStats, Status

LOGGER = logging.getLogger(__name__)

DURATION_TOLERANCE_SECONDS = 2


class StatsSource(Protocol):
    duration: int

    @property
    def status(self) -> Status: ...

    @property
    def episodes(self) -> Sequence[Episode]: ...


def percent(part: int, total: int) -> int:
    """Integer percentage rounded half up; 0 when ``total`` is 0."""
    if total <= 0:
        return 0
    return (200 * part + total) // (2 * total)


def status_seconds(episodes: Iterable[Episode], status: Status) -> int:
    return sum(ep.duration for ep in episodes if ep.status == status)


def calculate_stats(
    record: StatsSource,
    tolerance_seconds: int = DURATION_TOLERANCE_SECONDS,
    record_id: Optional[str] = None,
) -> ObservationStats:
    """Compute on-task/off-task/transition percentages for a record.

    Each percentage is rounded on its own, so the three need not add up to 100.
    A record without episodes counts entirely toward its primary status.
    """
    episodes = list(record.episodes or [])
    if episodes:
        total_time = sum(ep.duration for ep in episodes)
        delta = abs(total_time - record.duration)
        if delta > tolerance_seconds:
            LOGGER.warning(
                "Episode duration mismatch for observation %s: total %ss, episodes %ss (delta=%ss)",
                record_id or getattr(record, "id", "<unsaved>"),
                record.duration,
                total_time,
                delta,
            )
        return ObservationStats(
            on_task_percent=percent(status_seconds(episodes, Status.ON_TASK), total_time),
            off_task_percent=percent(status_seconds(episodes, Status.OFF_TASK), total_time),
            transition_percent=percent(status_seconds(episodes, Status.TRANSITIONING), total_time),
            total_time=total_time,
            has_episodes=True,
        )

    status = Status.parse(record.status)
    return ObservationStats(
        on_task_percent=100 if status == Status.ON_TASK else 0,
        off_task_percent=100 if status == Status.OFF_TASK else 0,
        transition_percent=100 if status == Status.TRANSITIONING else 0,
        total_time=record.duration,
        has_episodes=False,
    )


def average_on_task(records: Iterable[StatsSource]) -> int:
    """Mean on-task percentage across records, rounded half up; 0 if none."""
    values = [calculate_stats(record).on_task_percent for record in records]
    if not values:
        return 0
    return percent(sum(values), 100 * len(values))

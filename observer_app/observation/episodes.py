"""Episode sub-timer: one in-flight episode nested inside a session."""
from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Callable, Optional

from .errors import DuplicateStatus, NoActiveEpisode, ZeroDuration
from .models import Episode, Status, utc_now

LOGGER = logging.getLogger(__name__)


@dataclass(frozen=True)
class ActiveEpisode:
    status: Status
    start_time: datetime


class EpisodeTimer:
    """Track at most one uncommitted episode for a session.

    Durations come from the episode's own start/end instants, so pausing the
    session timer does not pause an active episode. ``running_seconds`` is a
    display counter advanced by ``tick()`` and plays no part in commits.
    """

    def __init__(self, primary_status: Status, clock: Callable[[], datetime] = utc_now) -> None:
        self.primary_status = primary_status
        self.clock = clock
        self.active: Optional[ActiveEpisode] = None
        self.running_seconds = 0

    @property
    def is_active(self) -> bool:
        return self.active is not None

    def start_episode(self, status: Status | str) -> ActiveEpisode:
        status = Status.parse(status)
        if status == self.primary_status:
            raise DuplicateStatus(f"Episode status {status.value} matches the primary status")
        if self.active is not None:
            raise DuplicateStatus(f"An {self.active.status.value} episode is already in progress")
        self.active = ActiveEpisode(status=status, start_time=self.clock())
        self.running_seconds = 0
        LOGGER.debug("Started %s episode at %s", status.value, self.active.start_time)
        return self.active

    def tick(self) -> int:
        if self.active is not None:
            self.running_seconds += 1
        return self.running_seconds

    def end_episode(self) -> Episode:
        active = self._require_active()
        now = self.clock()
        episode = Episode.between(active.status, active.start_time, now)
        if episode.duration <= 0:
            raise ZeroDuration("Episode duration must be greater than 0")
        self.active = None
        self.running_seconds = 0
        LOGGER.debug("Committed %s episode of %ss", episode.status.value, episode.duration)
        return episode

    def cancel_episode(self) -> ActiveEpisode:
        active = self._require_active()
        self.active = None
        self.running_seconds = 0
        LOGGER.debug("Cancelled %s episode", active.status.value)
        return active

    def discard(self) -> None:
        """Drop any active episode without error (session cancel)."""
        self.active = None
        self.running_seconds = 0

    def _require_active(self) -> ActiveEpisode:
        if self.active is None:
            raise NoActiveEpisode("No episode is in progress")
        return self.active

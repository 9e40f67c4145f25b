"""Session phase machine driving the session ticker and the episode sub-timer.

Idle -> Running <-> Paused -> Stopped -> Idle, with Cancel from any phase back
to Idle. Every command and every tick runs under one re-entrant lock, which
the ticker shares, so a tick is either applied before a transition or not at
all. Rejected commands raise and leave the session unchanged.
"""
from __future__ import annotations

import logging
import threading
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Callable, List, Mapping, Optional

from .episodes import ActiveEpisode, EpisodeTimer
from .errors import EpisodeInProgress, InvalidTransition, ValidationError, ZeroDuration
from .models import Episode, FinalizedRecord, Phase, Status, utc_now
from .reconcile import reconcile
from .timers import TickerFactory, format_clock, thread_ticker_factory

LOGGER = logging.getLogger(__name__)

TransitionHook = Callable[[Phase, Phase], None]


@dataclass(frozen=True)
class SessionSnapshot:
    """Read-only view of a session for live display."""

    phase: Phase
    elapsed_seconds: int
    primary_status: Optional[Status]
    active_episode: Optional[ActiveEpisode]
    active_episode_seconds: int
    episode_count: int

    @property
    def formatted(self) -> str:
        return format_clock(self.elapsed_seconds)


class ObservationSession:
    def __init__(
        self,
        clock: Callable[[], datetime] = utc_now,
        ticker_factory: TickerFactory = thread_ticker_factory,
        tick_interval: float = 1.0,
        on_transition: Optional[TransitionHook] = None,
        on_tick: Optional[Callable[[SessionSnapshot], None]] = None,
    ) -> None:
        self.clock = clock
        self.on_tick = on_tick
        self._lock = threading.RLock()
        self._listeners: List[TransitionHook] = []
        if on_transition is not None:
            self._listeners.append(on_transition)
        self._ticker = ticker_factory(self._handle_tick, tick_interval, self._lock)

        self.phase = Phase.IDLE
        self.elapsed_seconds = 0
        self.primary_status: Optional[Status] = None
        self.observer = ""
        self.student = ""
        self.context: Optional[Mapping[str, Any]] = None
        self.episode_log: List[Episode] = []
        self.final_record: Optional[FinalizedRecord] = None
        self._episodes: Optional[EpisodeTimer] = None

    @property
    def ticker(self):
        return self._ticker

    @property
    def active_episode(self) -> Optional[ActiveEpisode]:
        return self._episodes.active if self._episodes else None

    def add_transition_listener(self, listener: TransitionHook) -> None:
        self._listeners.append(listener)

    # Session lifecycle
    def start(
        self,
        observer: str,
        student: str,
        primary_status: Status | str | None,
        context: Optional[Mapping[str, Any]] = None,
    ) -> None:
        with self._lock:
            if self.phase != Phase.IDLE:
                raise InvalidTransition(f"Cannot start a session while {self.phase.value}")
            if not (observer or "").strip():
                raise ValidationError("Please enter your name as observer")
            if not (student or "").strip():
                raise ValidationError("Please enter student initials")
            if primary_status in (None, ""):
                raise ValidationError("Please select a task status first")
            try:
                status = Status.parse(primary_status)
            except ValueError as exc:
                raise ValidationError(str(exc)) from exc

            self.observer = observer.strip()
            self.student = student.strip()
            self.primary_status = status
            self.context = context
            self.elapsed_seconds = 0
            self.episode_log = []
            self.final_record = None
            self._episodes = EpisodeTimer(status, clock=self.clock)
            self._ticker.start()
            self._set_phase(Phase.RUNNING)

    def pause(self) -> None:
        with self._lock:
            if self.phase != Phase.RUNNING:
                raise InvalidTransition(f"Cannot pause while {self.phase.value}")
            self._ticker.stop()
            self._set_phase(Phase.PAUSED)

    def resume(self) -> None:
        with self._lock:
            if self.phase != Phase.PAUSED:
                raise InvalidTransition(f"Cannot resume while {self.phase.value}")
            self._ticker.start()
            self._set_phase(Phase.RUNNING)

    def toggle_pause(self) -> Phase:
        with self._lock:
            if self.phase == Phase.PAUSED:
                self.resume()
            else:
                self.pause()
            return self.phase

    def end(self, context: Optional[Mapping[str, Any]] = None) -> FinalizedRecord:
        """Stop the session and return its reconciled record."""
        with self._lock:
            if self.phase not in (Phase.RUNNING, Phase.PAUSED):
                raise InvalidTransition(f"Cannot end a session while {self.phase.value}")
            if self._episodes is not None and self._episodes.is_active:
                raise EpisodeInProgress("End or cancel the current episode first")
            if self.elapsed_seconds == 0:
                raise ZeroDuration("Cannot end timer with zero duration")
            if self.primary_status is None:
                raise InvalidTransition("Session has no primary status")
            record = reconcile(
                self.elapsed_seconds,
                self.primary_status,
                self.episode_log,
                now=self.clock(),
                context=context if context is not None else self.context,
            )
            self._ticker.stop()
            self.final_record = record
            self._set_phase(Phase.STOPPED)
            LOGGER.info(
                "Session for %s ended after %ss with %s episode(s)",
                self.student,
                record.duration,
                len(record.episodes),
            )
            return record

    def reset(self) -> None:
        with self._lock:
            if self.phase in (Phase.RUNNING, Phase.PAUSED):
                raise InvalidTransition("Cancel the running session instead of resetting it")
            self._clear()
            self._set_phase(Phase.IDLE)

    def cancel(self) -> None:
        """Abandon the session from any phase; no record is produced."""
        with self._lock:
            self._ticker.stop()
            if self._episodes is not None:
                self._episodes.discard()
            self._clear()
            self._set_phase(Phase.IDLE)
        self._ticker.join(timeout=1.0)

    # Episodes
    def start_episode(self, status: Status | str) -> ActiveEpisode:
        with self._lock:
            return self._require_episodes().start_episode(status)

    def end_episode(self) -> Episode:
        with self._lock:
            episode = self._require_episodes().end_episode()
            self.episode_log.append(episode)
            return episode

    def cancel_episode(self) -> ActiveEpisode:
        with self._lock:
            return self._require_episodes().cancel_episode()

    # Display
    def snapshot(self) -> SessionSnapshot:
        with self._lock:
            elapsed = self.final_record.duration if self.phase == Phase.STOPPED and self.final_record else self.elapsed_seconds
            return SessionSnapshot(
                phase=self.phase,
                elapsed_seconds=elapsed,
                primary_status=self.primary_status,
                active_episode=self.active_episode,
                active_episode_seconds=self._episodes.running_seconds if self._episodes else 0,
                episode_count=len(self.episode_log),
            )

    @property
    def formatted(self) -> str:
        return self.snapshot().formatted

    # Internals
    def _handle_tick(self) -> None:
        with self._lock:
            if self.phase != Phase.RUNNING:
                return
            self.elapsed_seconds += 1
            if self._episodes is not None:
                self._episodes.tick()
            if self.on_tick:
                try:
                    self.on_tick(self.snapshot())
                except Exception:  # pragma: no cover - defensive
                    LOGGER.exception("Session tick callback failed")

    def _require_episodes(self) -> EpisodeTimer:
        if self.phase not in (Phase.RUNNING, Phase.PAUSED) or self._episodes is None:
            raise InvalidTransition(f"Episodes can only be recorded during a session, not while {self.phase.value}")
        return self._episodes

    def _clear(self) -> None:
        self.elapsed_seconds = 0
        self.episode_log = []
        self.primary_status = None
        self.observer = ""
        self.student = ""
        self.context = None
        self.final_record = None
        self._episodes = None

    def _set_phase(self, new_phase: Phase) -> None:
        old_phase = self.phase
        self.phase = new_phase
        if old_phase == new_phase:
            return
        LOGGER.debug("Session phase %s -> %s", old_phase.value, new_phase.value)
        for listener in list(self._listeners):
            try:
                listener(old_phase, new_phase)
            except Exception:
                LOGGER.exception("Transition listener failed (%s -> %s)", old_phase.value, new_phase.value)

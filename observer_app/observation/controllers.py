"""Controllers orchestrating the session engine, storage, and exports."""
from __future__ import annotations

import logging
import tomllib
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass
from pathlib import Path
from typing import TYPE_CHECKING, Any, List, Mapping, Optional, Protocol

from .models import Episode, Observation, ObservationStats, Phase, Status
from .session import ObservationSession, SessionSnapshot
from .stats import calculate_stats
from .storage import ObservationStorage

if TYPE_CHECKING:
    from observer_app.reports.csv_export import CsvExporter

LOGGER = logging.getLogger(__name__)


CONFIG_DIR = Path.home() / ".behavior_observer"
CONFIG_FILE = CONFIG_DIR / "config.toml"
DEFAULT_CONFIG_PATH = Path(__file__).resolve().parent.parent / "config" / "default_config.toml"


def _toml_string(value: str) -> str:
    return '"' + value.replace("\\", "\\\\").replace('"', '\\"') + '"'


@dataclass
class AppConfig:
    export_path: str
    db_path: str
    tick_interval: float = 1.0
    stats_tolerance_seconds: int = 2
    recent_students_limit: int = 5
    last_observer: Optional[str] = None

    @classmethod
    def from_toml(cls, data: dict) -> "AppConfig":
        raw_observer = data.get("last_observer")
        last_observer = None if raw_observer in (None, "", "null") else str(raw_observer)
        return cls(
            export_path=data.get("export_path", "observations.csv"),
            db_path=data.get("db_path", str(CONFIG_DIR / "observations.db")),
            tick_interval=float(data.get("tick_interval", 1.0)),
            stats_tolerance_seconds=int(data.get("stats_tolerance_seconds", 2)),
            recent_students_limit=int(data.get("recent_students_limit", 5)),
            last_observer=last_observer,
        )

    def to_toml(self) -> str:
        lines = [
            f"export_path = {_toml_string(self.export_path)}",
            f"db_path = {_toml_string(self.db_path)}",
            f"tick_interval = {float(self.tick_interval)}",
            f"stats_tolerance_seconds = {int(self.stats_tolerance_seconds)}",
            f"recent_students_limit = {int(self.recent_students_limit)}",
            f"last_observer = {_toml_string(self.last_observer or '')}",
        ]
        return "\n".join(lines) + "\n"


class ConfigManager:
    def __init__(self, config_file: Path = CONFIG_FILE, default_path: Path = DEFAULT_CONFIG_PATH) -> None:
        self.config_file = Path(config_file)
        self.default_path = Path(default_path)
        self.config_file.parent.mkdir(parents=True, exist_ok=True)
        self.config = self._load()

    def _load(self) -> AppConfig:
        if self.config_file.exists():
            with open(self.config_file, "rb") as fh:
                return AppConfig.from_toml(tomllib.load(fh))
        with open(self.default_path, "rb") as fh:
            config = AppConfig.from_toml(tomllib.load(fh))
        self.save(config)
        return config

    def save(self, config: Optional[AppConfig] = None) -> None:
        cfg = config or self.config
        self.config_file.parent.mkdir(parents=True, exist_ok=True)
        self.config_file.write_text(cfg.to_toml(), encoding="utf-8")
        LOGGER.info("Saved configuration to %s", self.config_file)


class WakeLock(Protocol):
    """Platform capability that keeps the device awake during a session."""

    def acquire(self) -> None: ...

    def release(self) -> None: ...


class NullWakeLock:
    def acquire(self) -> None:
        LOGGER.debug("Wake lock requested (no platform support)")

    def release(self) -> None:
        LOGGER.debug("Wake lock released (no platform support)")


class WakeLockNotifier:
    """Forward running/not-running changes to a wake lock, best effort.

    Calls run on a single background worker in submission order; failures are
    logged and never reach the session.
    """

    def __init__(self, wake_lock: WakeLock) -> None:
        self.wake_lock = wake_lock
        self._executor = ThreadPoolExecutor(max_workers=1, thread_name_prefix="wake-lock")

    def __call__(self, old_phase: Phase, new_phase: Phase) -> None:
        if new_phase == Phase.RUNNING and old_phase != Phase.RUNNING:
            self._executor.submit(self._apply, self.wake_lock.acquire, "acquire")
        elif old_phase == Phase.RUNNING and new_phase != Phase.RUNNING:
            self._executor.submit(self._apply, self.wake_lock.release, "release")

    @staticmethod
    def _apply(action, name: str) -> None:
        try:
            action()
        except Exception:
            LOGGER.exception("Wake lock %s failed", name)

    def shutdown(self, wait: bool = True) -> None:
        self._executor.shutdown(wait=wait)


class ObservationController:
    def __init__(
        self,
        storage: ObservationStorage,
        session: ObservationSession,
        exporter: CsvExporter,
        config_manager: ConfigManager,
        wake_lock: Optional[WakeLock] = None,
    ) -> None:
        self.storage = storage
        self.session = session
        self.exporter = exporter
        self.config_manager = config_manager
        self.wake_lock_notifier = WakeLockNotifier(wake_lock or NullWakeLock())
        self.session.add_transition_listener(self.wake_lock_notifier)
        self.behavior = ""
        self._unsaved: Optional[Observation] = None

    # Session operations
    def start_observation(
        self,
        observer: str,
        student: str,
        status: Status | str | None,
        behavior: str = "",
        context: Optional[Mapping[str, Any]] = None,
    ) -> SessionSnapshot:
        self.session.start(observer, student, status, context=context)
        self.behavior = behavior
        cfg = self.config_manager.config
        if cfg.last_observer != self.session.observer:
            cfg.last_observer = self.session.observer
            self.config_manager.save(cfg)
        return self.session.snapshot()

    def toggle_pause(self) -> SessionSnapshot:
        self.session.toggle_pause()
        return self.session.snapshot()

    def start_episode(self, status: Status | str) -> SessionSnapshot:
        self.session.start_episode(status)
        return self.session.snapshot()

    def end_episode(self) -> Episode:
        return self.session.end_episode()

    def cancel_episode(self) -> SessionSnapshot:
        self.session.cancel_episode()
        return self.session.snapshot()

    def end_observation(self, context: Optional[Mapping[str, Any]] = None) -> Observation:
        """Reconcile, persist, and reset the session for the next student.

        If a previous call ended the session but failed to save it, calling
        again saves that same record instead of ending twice.
        """
        observer, student = self.session.observer, self.session.student
        if self.session.phase == Phase.STOPPED and self.session.final_record is not None:
            observation = self._unsaved or Observation.from_record(
                self.session.final_record, observer=observer, student=student, behavior=self.behavior
            )
            LOGGER.info("Retrying save of observation %s", observation.id)
        else:
            record = self.session.end(context=context)
            observation = Observation.from_record(record, observer=observer, student=student, behavior=self.behavior)
        self._unsaved = observation
        self.storage.add(observation)
        self._unsaved = None
        self.session.reset()
        self.behavior = ""
        self.storage.remember_student(student, limit=self.config_manager.config.recent_students_limit)
        return observation

    def cancel_observation(self) -> None:
        self.session.cancel()
        self._unsaved = None
        self.behavior = ""

    def snapshot(self) -> SessionSnapshot:
        return self.session.snapshot()

    # Stored records
    def list_observations(self) -> List[Observation]:
        return self.storage.list_all()

    def get_observation(self, observation_id: str) -> Optional[Observation]:
        return self.storage.get(observation_id)

    def get_stats(self, observation: Observation) -> ObservationStats:
        return calculate_stats(
            observation,
            tolerance_seconds=self.config_manager.config.stats_tolerance_seconds,
            record_id=observation.id,
        )

    def update_observation(self, observation_id: str, **changes: Any) -> Observation:
        return self.storage.update(observation_id, **changes)

    def delete_observation(self, observation_id: str) -> None:
        self.storage.delete(observation_id)

    def recent_students(self) -> List[str]:
        return self.storage.recent_students()

    def export_csv(self) -> Path:
        observations = self.storage.list_all()
        path = self.exporter.export(observations)
        self.exporter.export_episodes(observations)
        return path

    def backup_database(self) -> Path:
        return self.storage.backup_database()

    def close(self) -> None:
        self.session.cancel()
        self.wake_lock_notifier.shutdown()

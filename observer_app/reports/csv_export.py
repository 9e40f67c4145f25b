"""CSV export of stored observations."""
from __future__ import annotations

import logging
from pathlib import Path
from typing import Iterable, List

import pandas as pd

from observer_app.observation.models import Observation
from observer_app.observation.stats import average_on_task, calculate_stats

LOGGER = logging.getLogger(__name__)

OBSERVATION_COLUMNS = [
    "Timestamp",
    "Observer",
    "Student",
    "PrimaryStatus",
    "DurationSeconds",
    "Duration",
    "Episodes",
    "OnTaskPercent",
    "OffTaskPercent",
    "TransitionPercent",
    "Behavior",
    "Who",
    "What",
    "When",
    "Where",
    "Why",
    "Notes",
]

EPISODE_COLUMNS = ["ObservationId", "Student", "Status", "StartTime", "EndTime", "DurationSeconds"]


def format_duration(seconds: int) -> str:
    minutes, secs = divmod(max(int(seconds), 0), 60)
    return f"{minutes}m {secs}s"


class CsvExporter:
    def __init__(self, export_path: Path):
        self.export_path = Path(export_path)
        self.export_path.parent.mkdir(parents=True, exist_ok=True)

    def observations_frame(self, observations: Iterable[Observation]) -> pd.DataFrame:
        rows: List[tuple] = []
        for obs in observations:
            stats = calculate_stats(obs)
            rows.append(
                (
                    obs.timestamp.isoformat(),
                    obs.observer,
                    obs.student,
                    obs.status.value,
                    obs.duration,
                    format_duration(obs.duration),
                    len(obs.episodes),
                    stats.on_task_percent,
                    stats.off_task_percent,
                    stats.transition_percent,
                    obs.behavior,
                    ", ".join(obs.context.who),
                    obs.context.what,
                    obs.context.when,
                    obs.context.where,
                    obs.context.why,
                    obs.context.notes,
                )
            )
        return pd.DataFrame(rows, columns=OBSERVATION_COLUMNS)

    def episodes_frame(self, observations: Iterable[Observation]) -> pd.DataFrame:
        rows = [
            (
                obs.id,
                obs.student,
                ep.status.value,
                ep.start_time.isoformat() if ep.start_time else "",
                ep.end_time.isoformat() if ep.end_time else "",
                ep.duration,
            )
            for obs in observations
            for ep in obs.episodes
        ]
        return pd.DataFrame(rows, columns=EPISODE_COLUMNS)

    def export(self, observations: Iterable[Observation]) -> Path:
        """Write one row per observation, newest first as supplied."""
        observations = list(observations)
        df = self.observations_frame(observations)
        df.to_csv(self.export_path, index=False)
        LOGGER.info(
            "Exported %s observations to %s (average on-task %s%%)",
            len(df),
            self.export_path,
            average_on_task(observations),
        )
        return self.export_path

    def export_episodes(self, observations: Iterable[Observation], path: Path | None = None) -> Path:
        target = Path(path) if path else self.export_path.with_name(f"{self.export_path.stem}-episodes.csv")
        df = self.episodes_frame(observations)
        df.to_csv(target, index=False)
        LOGGER.info("Exported %s episodes to %s", len(df), target)
        return target

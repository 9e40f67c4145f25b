"""Data models for the behavior observation engine."""
from __future__ import annotations

import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, List, Mapping, Optional, Tuple

SCHEMA_VERSION = 2


class Status(str, Enum):
    """Behavioral status an interval of time can be tagged with."""

    ON_TASK = "on-task"
    OFF_TASK = "off-task"
    TRANSITIONING = "transitioning"

    @classmethod
    def parse(cls, value: "Status | str | None") -> "Status":
        if isinstance(value, cls):
            return value
        try:
            return cls(value)
        except ValueError:
            raise ValueError(f"Unknown status: {value!r}") from None

    @property
    def label(self) -> str:
        return self.value.replace("-", " ").title()


class Phase(str, Enum):
    IDLE = "idle"
    RUNNING = "running"
    PAUSED = "paused"
    STOPPED = "stopped"


class PromptEffectiveness(str, Enum):
    EFFECTIVE = "effective"
    PARTIALLY_EFFECTIVE = "partially-effective"
    INEFFECTIVE = "ineffective"


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def new_id() -> str:
    return uuid.uuid4().hex


def _parse_instant(value: Any) -> Optional[datetime]:
    if value in (None, ""):
        return None
    if isinstance(value, datetime):
        parsed = value
    else:
        parsed = datetime.fromisoformat(str(value).replace("Z", "+00:00"))
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def _format_instant(value: Optional[datetime]) -> Optional[str]:
    return value.isoformat() if value is not None else None


@dataclass(frozen=True)
class Episode:
    """A contiguous interval of a session tagged with one status.

    ``duration`` is whole seconds. When both instants are present it equals
    ``round(end_time - start_time)``.
    """

    status: Status
    start_time: datetime
    duration: int
    end_time: Optional[datetime] = None
    id: str = field(default_factory=new_id)

    @classmethod
    def between(cls, status: Status, start_time: datetime, end_time: datetime) -> "Episode":
        seconds = round((end_time - start_time).total_seconds())
        return cls(status=status, start_time=start_time, end_time=end_time, duration=max(seconds, 0))

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "status": self.status.value,
            "startTime": _format_instant(self.start_time),
            "endTime": _format_instant(self.end_time),
            "duration": self.duration,
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "Episode":
        start_time = _parse_instant(data.get("startTime"))
        if start_time is None:
            raise ValueError(f"Episode {data.get('id')!r} has no start time")
        return cls(
            id=str(data.get("id") or new_id()),
            status=Status.parse(data.get("status")),
            start_time=start_time,
            end_time=_parse_instant(data.get("endTime")),
            duration=int(data.get("duration") or 0),
        )


@dataclass(frozen=True)
class FinalizedRecord:
    """Output of reconciliation: ``episodes`` partition ``duration`` exactly."""

    duration: int
    episodes: Tuple[Episode, ...]
    primary_status: Status
    context: Optional[Mapping[str, Any]] = None

    @property
    def status(self) -> Status:
        return self.primary_status

    @property
    def episode_time(self) -> int:
        return sum(ep.duration for ep in self.episodes)


@dataclass
class Prompt:
    type: str
    timestamp: datetime
    effectiveness: Optional[PromptEffectiveness] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "type": self.type,
            "timestamp": _format_instant(self.timestamp),
            "effectiveness": self.effectiveness.value if self.effectiveness else None,
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "Prompt":
        raw = data.get("effectiveness")
        return cls(
            type=str(data.get("type", "")),
            timestamp=_parse_instant(data.get("timestamp")) or utc_now(),
            effectiveness=PromptEffectiveness(raw) if raw else None,
        )


@dataclass
class ObservationContext:
    """The "5W" context captured alongside an observation."""

    who: List[str] = field(default_factory=list)
    what: str = ""
    when: str = ""
    where: str = ""
    why: str = ""
    notes: str = ""
    prompts: List[Prompt] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "who": list(self.who),
            "what": self.what,
            "when": self.when,
            "where": self.where,
            "why": self.why,
            "notes": self.notes,
            "prompts": [p.to_dict() for p in self.prompts],
        }

    @classmethod
    def from_dict(cls, data: Optional[Mapping[str, Any]]) -> "ObservationContext":
        data = data or {}
        who = data.get("who") or []
        if isinstance(who, str):
            who = [who]
        return cls(
            who=[str(w) for w in who],
            what=data.get("what") or "",
            when=data.get("when") or "",
            where=data.get("where") or "",
            why=data.get("why") or "",
            notes=data.get("notes") or "",
            prompts=[Prompt.from_dict(p) for p in data.get("prompts") or []],
        )


@dataclass
class Observation:
    """A finalized record as stored by the persistence layer."""

    id: str
    timestamp: datetime
    observer: str
    student: str
    status: Status
    duration: int
    episodes: List[Episode] = field(default_factory=list)
    context: ObservationContext = field(default_factory=ObservationContext)
    behavior: str = ""
    last_modified: Optional[datetime] = None
    schema_version: int = SCHEMA_VERSION

    @classmethod
    def from_record(
        cls,
        record: FinalizedRecord,
        observer: str,
        student: str,
        behavior: str = "",
        timestamp: Optional[datetime] = None,
    ) -> "Observation":
        return cls(
            id=new_id(),
            timestamp=timestamp or utc_now(),
            observer=observer.strip(),
            student=student.strip(),
            status=record.primary_status,
            duration=record.duration,
            episodes=list(record.episodes),
            context=ObservationContext.from_dict(record.context),
            behavior=behavior,
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "schema_version": self.schema_version,
            "id": self.id,
            "timestamp": _format_instant(self.timestamp),
            "lastModified": _format_instant(self.last_modified),
            "observer": self.observer,
            "student": self.student,
            "status": self.status.value,
            "duration": self.duration,
            "behavior": self.behavior,
            "episodes": [ep.to_dict() for ep in self.episodes],
            "context": self.context.to_dict(),
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "Observation":
        return cls(
            id=str(data["id"]),
            timestamp=_parse_instant(data.get("timestamp")) or utc_now(),
            last_modified=_parse_instant(data.get("lastModified")),
            observer=data.get("observer") or "",
            student=data.get("student") or "",
            status=Status.parse(data.get("status")),
            duration=int(data.get("duration") or 0),
            behavior=data.get("behavior") or "",
            episodes=[Episode.from_dict(ep) for ep in data.get("episodes") or []],
            context=ObservationContext.from_dict(data.get("context")),
            schema_version=int(data.get("schema_version", SCHEMA_VERSION)),
        )


@dataclass(frozen=True)
class ObservationStats:
    """Percentage-of-time breakdown for one record."""

    on_task_percent: int
    off_task_percent: int
    transition_percent: int
    total_time: int
    has_episodes: bool

    def percent_for(self, status: Status) -> int:
        return {
            Status.ON_TASK: self.on_task_percent,
            Status.OFF_TASK: self.off_task_percent,
            Status.TRANSITIONING: self.transition_percent,
        }[status]

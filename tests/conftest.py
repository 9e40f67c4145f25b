import sys
from datetime import datetime, timedelta, timezone
from pathlib import Path

import pytest

# Ensure the application package is importable during tests
ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from observer_app.observation.controllers import ConfigManager, ObservationController  # noqa: E402
from observer_app.observation.session import ObservationSession  # noqa: E402
from observer_app.observation.storage import ObservationStorage  # noqa: E402
from observer_app.observation.timers import ManualTicker  # noqa: E402
from observer_app.reports.csv_export import CsvExporter  # noqa: E402

T0 = datetime(2024, 3, 4, 9, 0, 0, tzinfo=timezone.utc)


class FakeClock:
    def __init__(self, start: datetime = T0) -> None:
        self.now = start

    def __call__(self) -> datetime:
        return self.now

    def advance(self, seconds: float) -> datetime:
        self.now += timedelta(seconds=seconds)
        return self.now


def manual_ticker_factory(callback, interval, lock):
    return ManualTicker(callback, interval, lock)


def run_for(session: ObservationSession, clock: FakeClock, seconds: int) -> None:
    """Let ``seconds`` of wall-clock time pass, ticking once per second."""
    for _ in range(seconds):
        clock.advance(1)
        session.ticker.fire()


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def session(clock):
    return ObservationSession(clock=clock, ticker_factory=manual_ticker_factory)


def build_controller(tmp_path, clock, wake_lock=None):
    config_manager = ConfigManager(config_file=tmp_path / "config.toml")
    session = ObservationSession(clock=clock, ticker_factory=manual_ticker_factory)
    return ObservationController(
        ObservationStorage(tmp_path / "obs.db"),
        session,
        CsvExporter(tmp_path / "exports" / "observations.csv"),
        config_manager,
        wake_lock=wake_lock,
    )

"""Once-per-second tick sources for observation sessions (no GUI dependency)."""
from __future__ import annotations

import logging
import re
import threading
from typing import Callable, List, Optional

from .errors import ValidationError

LOGGER = logging.getLogger(__name__)

TickCallback = Callable[[], None]

# Two minute digits cap an entered duration at 99:59.
DURATION_PATTERN = re.compile(r"^(\d{1,2}):(\d{2})$")


def format_clock(seconds: int) -> str:
    """Render seconds as ``MM:SS`` (minutes keep counting past an hour)."""
    minutes, secs = divmod(max(int(seconds), 0), 60)
    return f"{minutes:02d}:{secs:02d}"


def parse_duration(text: str) -> int:
    """Parse an operator-entered ``MM:SS`` duration into seconds."""
    match = DURATION_PATTERN.match((text or "").strip())
    if match is None:
        raise ValidationError("Please use MM:SS format")
    minutes, seconds = int(match.group(1)), int(match.group(2))
    if seconds >= 60:
        raise ValidationError("Seconds must be less than 60")
    return minutes * 60 + seconds


class Ticker:
    """Fire ``callback`` once per ``interval`` seconds on a worker thread.

    Delivery happens while holding ``lock``. ``stop()`` takes the same lock and
    invalidates the running generation, so once it returns no tick is
    delivered, including one the worker had already woken up for. Owners that
    pass their own lock get ticks serialized with their other operations.
    """

    def __init__(
        self,
        callback: TickCallback,
        interval: float = 1.0,
        lock: Optional[threading.RLock] = None,
        name: str = "observation-ticker",
    ) -> None:
        self.callback = callback
        self.interval = interval
        self.name = name
        self._lock = lock if lock is not None else threading.RLock()
        self._generation = 0
        self._stop_event: threading.Event | None = None
        self._thread: threading.Thread | None = None
        self._retired: List[threading.Thread] = []

    @property
    def is_running(self) -> bool:
        return self._thread is not None

    def start(self) -> None:
        with self._lock:
            if self._thread is not None:
                return
            self._generation += 1
            self._stop_event = threading.Event()
            self._thread = threading.Thread(
                target=self._run_loop,
                args=(self._generation, self._stop_event),
                name=self.name,
                daemon=True,
            )
            self._thread.start()
            LOGGER.debug("Started %s (generation %s)", self.name, self._generation)

    def stop(self) -> None:
        with self._lock:
            if self._thread is None:
                return
            self._generation += 1
            if self._stop_event is not None:
                self._stop_event.set()
            # Workers that already exited need no join.
            self._retired = [thread for thread in self._retired if thread.is_alive()]
            self._retired.append(self._thread)
            self._thread = None
            self._stop_event = None
            LOGGER.debug("Stopped %s", self.name)

    @property
    def retired_workers(self) -> int:
        """Worker threads of stopped generations not yet joined."""
        with self._lock:
            self._retired = [thread for thread in self._retired if thread.is_alive()]
            return len(self._retired)

    def join(self, timeout: float | None = None) -> None:
        """Wait for worker threads of stopped generations to exit."""
        with self._lock:
            retired, self._retired = self._retired, []
        for thread in retired:
            if thread is not threading.current_thread():
                thread.join(timeout=timeout)

    def _run_loop(self, generation: int, stop_event: threading.Event) -> None:
        while not stop_event.wait(self.interval):
            with self._lock:
                if stop_event.is_set() or generation != self._generation:
                    return
                try:
                    self.callback()
                except Exception:  # pragma: no cover - defensive
                    LOGGER.exception("Tick callback failed in %s", self.name)

    def __enter__(self) -> "Ticker":
        self.start()
        return self

    def __exit__(self, *_exc) -> None:
        self.stop()


class ManualTicker:
    """Ticker double that only delivers ticks when ``fire()`` is called."""

    def __init__(
        self,
        callback: TickCallback | None = None,
        interval: float = 1.0,
        lock: Optional[threading.RLock] = None,
        name: str = "manual-ticker",
    ) -> None:
        self.callback = callback
        self.interval = interval
        self.name = name
        self._lock = lock if lock is not None else threading.RLock()
        self._running = False
        self.starts = 0
        self.stops = 0

    @property
    def is_running(self) -> bool:
        return self._running

    def start(self) -> None:
        with self._lock:
            if not self._running:
                self._running = True
                self.starts += 1

    def stop(self) -> None:
        with self._lock:
            if self._running:
                self._running = False
                self.stops += 1

    def join(self, timeout: float | None = None) -> None:
        return None

    def fire(self, count: int = 1) -> int:
        """Deliver up to ``count`` ticks; returns how many were delivered."""
        delivered = 0
        for _ in range(count):
            with self._lock:
                if not self._running or self.callback is None:
                    break
                self.callback()
                delivered += 1
        return delivered

    def __enter__(self) -> "ManualTicker":
        self.start()
        return self

    def __exit__(self, *_exc) -> None:
        self.stop()


TickerFactory = Callable[[TickCallback, float, threading.RLock], "Ticker | ManualTicker"]


def thread_ticker_factory(callback: TickCallback, interval: float, lock: threading.RLock) -> Ticker:
    return Ticker(callback, interval=interval, lock=lock)

import os
import sqlite3
import sys
import tempfile
from pathlib import Path

# Kivy parses sys.argv and writes logs on import unless told otherwise.
os.environ.setdefault("KIVY_NO_ARGS", "1")
os.environ.setdefault("KIVY_NO_CONSOLELOG", "1")
os.environ.setdefault("KIVY_NO_FILELOG", "1")
os.environ.setdefault("KIVY_HOME", tempfile.mkdtemp(prefix="kivy_home_"))

import pytest

sys.path.append(str(Path(__file__).resolve().parents[1]))

from backend import settings
from backend.db import init_database
from backend.notifications import NotificationBridge
from backend.timers import TimerCoordinator


class FakeClock:
    """Manually advanced replacement for ``time.time``."""

    def __init__(self, start: float = 1_000_000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class FakeEvent:
    def __init__(self, scheduler, callback, interval, repeat):
        self.scheduler = scheduler
        self.callback = callback
        self.interval = interval
        self.repeat = repeat
        self.cancelled = False

    def cancel(self):
        self.cancelled = True
        if self in self.scheduler.events:
            self.scheduler.events.remove(self)


class FakeScheduler:
    """Stand-in for ``kivy.clock.Clock`` that only fires on :meth:`tick`."""

    def __init__(self):
        self.events: list[FakeEvent] = []

    def schedule_interval(self, callback, interval):
        event = FakeEvent(self, callback, interval, True)
        self.events.append(event)
        return event

    def schedule_once(self, callback, timeout=0):
        event = FakeEvent(self, callback, timeout, False)
        self.events.append(event)
        return event

    def tick(self):
        for event in list(self.events):
            if event.cancelled:
                continue
            if not event.repeat:
                self.events.remove(event)
            event.callback(event.interval)


class FakeNotifier(NotificationBridge):
    def __init__(self):
        self.scheduled: list[tuple[float, str, str, str]] = []
        self.cancelled: list[str] = []
        self.pending: dict[str, float] = {}

    def schedule_one_shot(self, after_seconds, title, body, key="rest_timer"):
        self.scheduled.append((after_seconds, title, body, key))
        self.pending[key] = after_seconds
        return key

    def cancel_pending(self, key="rest_timer"):
        self.cancelled.append(key)
        self.pending.pop(key, None)


@pytest.fixture(autouse=True)
def isolated_settings(tmp_path, monkeypatch):
    """Point the settings file at a temporary location for every test."""
    monkeypatch.setattr(settings, "SETTINGS_PATH", tmp_path / "settings.json")
    settings.clear_cache()
    yield
    settings.clear_cache()


@pytest.fixture
def db_path(tmp_path: Path) -> Path:
    """Return a fresh database created from the bundled schema."""
    return init_database(tmp_path / "workout.db")


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def scheduler() -> FakeScheduler:
    return FakeScheduler()


@pytest.fixture
def notifier() -> FakeNotifier:
    return FakeNotifier()


@pytest.fixture
def make_coordinator(tmp_path, clock, scheduler, notifier):
    """Build coordinators that share a clock and recovery files."""

    def _make(**kwargs):
        kwargs.setdefault("clock", clock)
        kwargs.setdefault("scheduler", scheduler)
        kwargs.setdefault("notifier", notifier)
        kwargs.setdefault("recovery_base", tmp_path / "timer_state")
        return TimerCoordinator(**kwargs)

    return _make


@pytest.fixture
def coordinator(make_coordinator) -> TimerCoordinator:
    return make_coordinator()


@pytest.fixture
def record_session(db_path):
    """Insert a completed session directly into the database.

    ``exercises`` maps exercise names to lists of ``(reps, weight)`` sets.
    Returns the new session id.
    """

    def _record(exercises: dict, started_at: float, duration: int | None = 3600):
        conn = sqlite3.connect(db_path)
        with conn:
            cur = conn.execute(
                "INSERT INTO session_sessions (name, started_at, duration_seconds) VALUES (?, ?, ?)",
                ("Recorded", started_at, duration),
            )
            session_id = cur.lastrowid
            for position, (name, sets) in enumerate(exercises.items()):
                cur = conn.execute(
                    "INSERT INTO session_exercises (session_id, name, position) VALUES (?, ?, ?)",
                    (session_id, name, position),
                )
                ex_id = cur.lastrowid
                for index, (reps, weight) in enumerate(sets):
                    conn.execute(
                        """
                        INSERT INTO session_sets
                            (session_exercise_id, set_index, reps, weight, is_complete)
                        VALUES (?, ?, ?, ?, ?)
                        """,
                        (ex_id, index, reps, weight, int(reps > 0)),
                    )
        conn.close()
        return session_id

    return _record

"""Workout, rest and warmup timers for a live session.

All three timers work from absolute timestamps rather than counting ticks:
the periodic clock events only trigger a recomputation, so time spent while
the app is suspended is never lost.  The workout and rest timers write a
:class:`~backend.models.TimerSnapshot` on every transition so a new process
can pick up where the old one stopped.  The warmup sequence is short lived
and is not persisted.
"""

from __future__ import annotations

import json
import logging
import math
import time
from pathlib import Path
from typing import Callable

from kivy.clock import Clock
from kivy.event import EventDispatcher

from backend import DEFAULT_WARMUP_DURATION, RECOVERY_DIR
from backend import settings
from backend.models import TimerSnapshot, Warmup
from backend.notifications import NotificationBridge, NullNotifier, REST_TIMER_KEY

# Recovery files live at ``<base>_1.json`` and ``<base>_2.json``.
DEFAULT_RECOVERY_BASE = RECOVERY_DIR / "timer_state"

WORKOUT_TICK_INTERVAL = 0.5
COUNTDOWN_TICK_INTERVAL = 1.0

IDLE = "idle"
RUNNING = "running"
PAUSED = "paused"

# Warmup sequence states
NOT_STARTED = "not_started"
NO_WARMUPS = "no_warmups"
FINISHED = "finished"


class InvalidTransitionError(ValueError):
    """A timer operation is not allowed in the timer's current state."""


def format_seconds(seconds: float) -> str:
    """Return ``seconds`` as ``m:ss``."""

    seconds = max(0, int(seconds))
    minutes, secs = divmod(seconds, 60)
    return f"{minutes}:{secs:02d}"


def recovery_paths(base: Path) -> tuple[Path, Path]:
    base = Path(base)
    return (
        base.with_name(base.name + "_1.json"),
        base.with_name(base.name + "_2.json"),
    )


def load_snapshot(base: Path = DEFAULT_RECOVERY_BASE) -> TimerSnapshot | None:
    """Return the snapshot stored at ``base``, trying the backup file second."""

    for path in recovery_paths(base):
        try:
            if not path.exists():
                continue
            text = path.read_text().strip()
            if not text:
                continue
            return TimerSnapshot.from_dict(json.loads(text))
        except (OSError, ValueError, TypeError):
            logging.warning("Ignoring unreadable timer state %s", path)
            continue
    return None


def clear_snapshot(base: Path = DEFAULT_RECOVERY_BASE) -> None:
    """Remove any stored timer state."""

    for path in recovery_paths(base):
        try:
            path.unlink()
        except FileNotFoundError:
            pass
        except OSError:
            logging.exception("Could not remove timer state %s", path)


class WorkoutTimer:
    """Count-up timer for the whole session: idle, running, paused."""

    def __init__(self, owner: "TimerCoordinator") -> None:
        self._owner = owner
        self.state = IDLE
        self.accumulated = 0.0
        self.segment_start: float | None = None
        self._event = None

    @property
    def is_running(self) -> bool:
        return self.state == RUNNING

    def _require(self, *states: str, action: str) -> None:
        if self.state not in states:
            raise InvalidTransitionError(
                f"Cannot {action} workout timer while {self.state}"
            )

    def start(self, started_at: float | None = None) -> None:
        """Start counting, from ``started_at`` when given instead of now."""

        self._require(IDLE, action="start")
        self.accumulated = 0.0
        now = self._owner.clock()
        self.segment_start = min(started_at, now) if started_at is not None else now
        self.state = RUNNING
        self._schedule()
        logging.debug("Workout timer started")
        self._owner.persist()
        self._owner.dispatch("on_workout_tick", int(self.elapsed()))

    def pause(self) -> None:
        self._require(RUNNING, action="pause")
        self.accumulated += max(0.0, self._owner.clock() - self.segment_start)
        self.segment_start = None
        self.state = PAUSED
        self._unschedule()
        logging.debug("Workout timer paused at %.1fs", self.accumulated)
        self._owner.persist()
        self._owner.dispatch("on_workout_tick", int(self.accumulated))

    def resume(self) -> None:
        self._require(PAUSED, action="resume")
        self.segment_start = self._owner.clock()
        self.state = RUNNING
        self._schedule()
        logging.debug("Workout timer resumed")
        self._owner.persist()

    def stop(self) -> int:
        """Stop the timer and return the total elapsed seconds."""

        self._require(RUNNING, PAUSED, action="stop")
        total = self.elapsed()
        self._reset()
        logging.debug("Workout timer stopped after %.1fs", total)
        self._owner.persist()
        self._owner.dispatch("on_workout_tick", 0)
        return int(total)

    def elapsed(self) -> float:
        """Return the elapsed seconds, excluding paused time."""

        if self.state == RUNNING and self.segment_start is not None:
            return self.accumulated + max(0.0, self._owner.clock() - self.segment_start)
        return self.accumulated

    def _reset(self) -> None:
        self._unschedule()
        self.state = IDLE
        self.accumulated = 0.0
        self.segment_start = None

    def _restore(self, snapshot: TimerSnapshot) -> None:
        self._unschedule()
        if not snapshot.workout_timer_active:
            self.state = IDLE
            self.accumulated = 0.0
            self.segment_start = None
            return
        self.accumulated = float(snapshot.workout_accumulated_seconds)
        self.segment_start = snapshot.workout_segment_start_at
        if self.segment_start is None:
            self.state = PAUSED
        else:
            self.state = RUNNING
            self._schedule()

    def _schedule(self) -> None:
        self._unschedule()
        self._event = self._owner.scheduler.schedule_interval(
            self._tick, self._owner.workout_tick_interval
        )

    def _unschedule(self) -> None:
        if self._event is not None:
            self._event.cancel()
            self._event = None

    def _tick(self, dt=None) -> None:
        if self.state == RUNNING:
            self._owner.dispatch("on_workout_tick", int(self.elapsed()))


class RestTimer:
    """Countdown between sets: idle or running."""

    def __init__(self, owner: "TimerCoordinator") -> None:
        self._owner = owner
        self.state = IDLE
        self.initial_duration = 0
        self.segment_start: float | None = None
        self._event = None

    @property
    def is_running(self) -> bool:
        return self.state == RUNNING

    def start(self, duration: int | None = None) -> None:
        if self.state != IDLE:
            raise InvalidTransitionError("Rest timer is already running")
        if duration is None:
            duration = self._owner.default_rest_duration
        if duration <= 0:
            raise ValueError("Rest duration must be positive")
        self.initial_duration = int(duration)
        self.segment_start = self._owner.clock()
        self.state = RUNNING
        self._owner.schedule_rest_notification(self.initial_duration)
        self._schedule()
        logging.debug("Rest timer started for %ss", self.initial_duration)
        self._owner.persist()
        self._owner.dispatch("on_rest_tick", self.initial_duration)

    def restart(self, duration: int | None = None) -> None:
        """Replace a running countdown with a new one of ``duration``."""

        if self.state == RUNNING:
            self.stop(manual=True)
        self.start(duration)

    def stop(self, manual: bool = True) -> None:
        if self.state != RUNNING:
            raise InvalidTransitionError("Rest timer is not running")
        self._finish(manual)

    def remaining(self) -> float:
        """Return the seconds left, completing the countdown once it hits 0."""

        if self.state != RUNNING or self.segment_start is None:
            return 0.0
        left = self.initial_duration - (self._owner.clock() - self.segment_start)
        if left <= 0:
            self._finish(manual=False)
            return 0.0
        return left

    def _finish(self, manual: bool) -> None:
        self._owner.cancel_rest_notification()
        self._unschedule()
        self.state = IDLE
        self.initial_duration = 0
        self.segment_start = None
        logging.debug("Rest timer finished (manual=%s)", manual)
        self._owner.persist()
        self._owner.dispatch("on_rest_complete", manual)

    def _restore(self, snapshot: TimerSnapshot) -> None:
        self._unschedule()
        if not snapshot.rest_timer_active or snapshot.rest_segment_start_at is None:
            self.state = IDLE
            self.initial_duration = 0
            self.segment_start = None
            return
        self.initial_duration = int(snapshot.rest_initial_duration_seconds)
        self.segment_start = snapshot.rest_segment_start_at
        self.state = RUNNING
        # A countdown that ran out in the background completes right away.
        if self.remaining() > 0:
            self._schedule()

    def _schedule(self) -> None:
        self._unschedule()
        self._event = self._owner.scheduler.schedule_interval(
            self._tick, self._owner.countdown_tick_interval
        )

    def _unschedule(self) -> None:
        if self._event is not None:
            self._event.cancel()
            self._event = None

    def _tick(self, dt=None) -> None:
        left = self.remaining()
        if self.state == RUNNING:
            self._owner.dispatch("on_rest_tick", math.ceil(left))


class WarmupSequence:
    """Guided countdown through a list of warmups.

    Each warmup waits for an explicit :meth:`start_current` before its
    countdown runs.  When the countdown reaches zero the sequence moves on
    to the next warmup by itself.
    """

    def __init__(self, owner: "TimerCoordinator") -> None:
        self._owner = owner
        self.state = NOT_STARTED
        self.warmups: list[Warmup] = []
        self.index = 0
        self._remaining = 0.0
        self.segment_start: float | None = None
        self._event = None

    @property
    def is_active(self) -> bool:
        return self.state in (NO_WARMUPS, PAUSED, RUNNING)

    @property
    def is_empty(self) -> bool:
        return self.state == NO_WARMUPS

    @property
    def current_name(self) -> str | None:
        if self.state in (PAUSED, RUNNING) and self.index < len(self.warmups):
            return self.warmups[self.index].name
        return None

    @property
    def is_last(self) -> bool:
        return bool(self.warmups) and self.index == len(self.warmups) - 1

    @staticmethod
    def _normalise(items, durations) -> list[Warmup]:
        items = list(items)
        if items and all(isinstance(item, str) for item in items):
            durations = list(durations or [])
            if len(durations) != len(items):
                durations = [DEFAULT_WARMUP_DURATION] * len(items)
            return [Warmup(name, int(d)) for name, d in zip(items, durations)]
        warmups = []
        for item in items:
            if isinstance(item, Warmup):
                warmups.append(item)
            else:
                name, duration = item
                warmups.append(Warmup(name, int(duration)))
        return warmups

    def begin(self, warmups, durations: list[int] | None = None) -> None:
        """Load ``warmups`` and wait for the first one to be started.

        ``warmups`` holds :class:`Warmup` objects, ``(name, seconds)`` pairs
        or plain names.  Plain names take their seconds from ``durations``,
        falling back to the default duration for every entry when the two
        lists do not line up.
        """

        if self.is_active:
            raise InvalidTransitionError("Warmup sequence already in progress")
        self.warmups = self._normalise(warmups, durations)
        self.index = 0
        self.segment_start = None
        if not self.warmups:
            self._remaining = 0.0
            self.state = NO_WARMUPS
            logging.debug("No warmups configured")
            return
        self._remaining = float(self.warmups[0].duration_seconds)
        self.state = PAUSED
        self._owner.dispatch(
            "on_warmup_advanced", 0, self.warmups[0].name, self.warmups[0].duration_seconds
        )

    def start_current(self) -> None:
        if self.state != PAUSED:
            raise InvalidTransitionError(f"Cannot start warmup while {self.state}")
        self.segment_start = self._owner.clock()
        self.state = RUNNING
        self._schedule()

    def remaining(self) -> float:
        """Return the seconds left in the current warmup."""

        if self.state != RUNNING or self.segment_start is None:
            return self._remaining
        left = self._remaining - (self._owner.clock() - self.segment_start)
        if left <= 0:
            self.advance()
            return self._remaining
        return left

    def advance(self) -> None:
        """Move to the next warmup, finishing after the last one."""

        if not self.is_active:
            raise InvalidTransitionError(f"Cannot advance warmups while {self.state}")
        self._unschedule()
        self.segment_start = None
        self.index += 1
        if self.index < len(self.warmups):
            current = self.warmups[self.index]
            self._remaining = float(current.duration_seconds)
            self.state = PAUSED
            self._owner.dispatch(
                "on_warmup_advanced", self.index, current.name, current.duration_seconds
            )
        else:
            self._finish()

    def cancel_all(self) -> None:
        """Skip the remaining warmups."""

        if not self.is_active:
            raise InvalidTransitionError(f"Cannot cancel warmups while {self.state}")
        self._unschedule()
        self._finish()

    def _finish(self) -> None:
        self.warmups = []
        self.index = 0
        self._remaining = 0.0
        self.segment_start = None
        self.state = FINISHED
        logging.debug("Warmup sequence finished")
        self._owner.dispatch("on_warmup_complete")

    def _schedule(self) -> None:
        self._unschedule()
        self._event = self._owner.scheduler.schedule_interval(
            self._tick, self._owner.countdown_tick_interval
        )

    def _unschedule(self) -> None:
        if self._event is not None:
            self._event.cancel()
            self._event = None

    def _tick(self, dt=None) -> None:
        left = self.remaining()
        if self.state == RUNNING:
            self._owner.dispatch("on_warmup_tick", math.ceil(left))


class TimerCoordinator(EventDispatcher):
    """Owns the workout, rest and warmup timers of one live session.

    Events:

    ``on_workout_tick(elapsed)``
        Whole seconds elapsed on the workout timer.
    ``on_rest_tick(remaining)``
        Whole seconds left on the rest countdown.
    ``on_rest_complete(manual)``
        The rest countdown ended; ``manual`` is ``True`` when the user
        stopped it rather than letting it run out.
    ``on_warmup_advanced(index, name, remaining)``
        A warmup became current and waits to be started.
    ``on_warmup_tick(remaining)``
        Whole seconds left in the running warmup.
    ``on_warmup_complete()``
        The warmup sequence finished or was skipped.
    """

    __events__ = (
        "on_workout_tick",
        "on_rest_tick",
        "on_rest_complete",
        "on_warmup_advanced",
        "on_warmup_tick",
        "on_warmup_complete",
    )

    def __init__(
        self,
        clock: Callable[[], float] = time.time,
        scheduler=Clock,
        notifier: NotificationBridge | None = None,
        recovery_base: Path = DEFAULT_RECOVERY_BASE,
        default_rest_duration: int | None = None,
        workout_tick_interval: float = WORKOUT_TICK_INTERVAL,
        countdown_tick_interval: float = COUNTDOWN_TICK_INTERVAL,
    ) -> None:
        super().__init__()
        self.clock = clock
        self.scheduler = scheduler
        self.notifier = notifier if notifier is not None else NullNotifier()
        self.recovery_base = Path(recovery_base)
        if default_rest_duration is None:
            default_rest_duration = settings.get_value("rest_duration")
        self.default_rest_duration = int(default_rest_duration)
        self.workout_tick_interval = workout_tick_interval
        self.countdown_tick_interval = countdown_tick_interval

        self.workout = WorkoutTimer(self)
        self.rest = RestTimer(self)
        self.warmup = WarmupSequence(self)

    # default handlers required by EventDispatcher
    def on_workout_tick(self, elapsed):
        pass

    def on_rest_tick(self, remaining):
        pass

    def on_rest_complete(self, manual):
        pass

    def on_warmup_advanced(self, index, name, remaining):
        pass

    def on_warmup_tick(self, remaining):
        pass

    def on_warmup_complete(self):
        pass

    @property
    def visible_timer(self) -> str | None:
        """Name of the timer whose countdown the session screen should show."""

        if self.warmup.is_active:
            return "warmup"
        if self.rest.is_running:
            return "rest"
        if self.workout.state != IDLE:
            return "workout"
        return None

    # --------------------------------------------------------------
    # Notifications
    # --------------------------------------------------------------

    def schedule_rest_notification(self, after_seconds: float) -> None:
        if after_seconds <= 0:
            return
        try:
            self.notifier.schedule_one_shot(
                after_seconds,
                "Rest Timer Complete",
                "Time to start your next set!",
                REST_TIMER_KEY,
            )
        except Exception:
            logging.exception("Failed to schedule rest notification")

    def cancel_rest_notification(self) -> None:
        try:
            self.notifier.cancel_pending(REST_TIMER_KEY)
        except Exception:
            logging.exception("Failed to cancel rest notification")

    # --------------------------------------------------------------
    # Persistence
    # --------------------------------------------------------------

    def snapshot(self) -> TimerSnapshot:
        return TimerSnapshot(
            workout_timer_active=self.workout.state != IDLE,
            workout_accumulated_seconds=self.workout.accumulated,
            workout_segment_start_at=self.workout.segment_start,
            rest_timer_active=self.rest.state == RUNNING,
            rest_initial_duration_seconds=self.rest.initial_duration,
            rest_segment_start_at=self.rest.segment_start,
        )

    def persist(self) -> None:
        """Write the current snapshot to both recovery files.

        Failures are logged; the in-memory timers keep running either way.
        """

        try:
            payload = json.dumps(self.snapshot().to_dict())
            for path in recovery_paths(self.recovery_base):
                path.parent.mkdir(parents=True, exist_ok=True)
                path.write_text(payload)
        except (OSError, TypeError, ValueError):
            logging.exception("Failed to persist timer state")

    def restore(self) -> bool:
        """Reload the persisted snapshot; return ``True`` if one was found.

        Bind event handlers first: a rest countdown that expired while the
        app was gone completes during this call.
        """

        snapshot = load_snapshot(self.recovery_base)
        if snapshot is None:
            return False
        self.workout._restore(snapshot)
        self.rest._restore(snapshot)
        logging.info(
            "Restored timers: workout=%s rest=%s", self.workout.state, self.rest.state
        )
        self._refresh()
        return True

    def _refresh(self) -> None:
        if self.workout.state != IDLE:
            self.dispatch("on_workout_tick", int(self.workout.elapsed()))
        if self.rest.is_running:
            left = self.rest.remaining()
            if self.rest.is_running:
                self.dispatch("on_rest_tick", math.ceil(left))
        if self.warmup.state == RUNNING:
            self.warmup._tick()

    def on_app_background(self) -> None:
        """Save state and make sure a running rest countdown will notify."""

        self.persist()
        if self.rest.is_running:
            left = self.rest.remaining()
            if self.rest.is_running:
                self.cancel_rest_notification()
                self.schedule_rest_notification(left)

    def on_app_foreground(self) -> None:
        """Recompute every timer after the app becomes visible again.

        A fresh process has nothing in memory, so the snapshot is reloaded
        first.
        """

        if self.workout.state == IDLE and not self.rest.is_running:
            if self.restore():
                return
        self._refresh()

    def reset(self) -> None:
        """Stop every timer without events and forget the stored state."""

        if self.rest.is_running:
            self.cancel_rest_notification()
        self.workout._reset()
        self.rest._unschedule()
        self.rest.state = IDLE
        self.rest.initial_duration = 0
        self.rest.segment_start = None
        self.warmup._unschedule()
        self.warmup = WarmupSequence(self)
        clear_snapshot(self.recovery_base)

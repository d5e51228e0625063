"""Typed records for templates, sessions and timer state.

Rows are read from SQLite into these dataclasses so callers work with
explicit attributes and defaults rather than raw tuples or dictionaries.
"""

from __future__ import annotations

from dataclasses import dataclass, field, asdict


@dataclass
class TemplateExercise:
    id: int
    template_id: int
    name: str
    order: int
    target_set_count: int


@dataclass
class Warmup:
    name: str
    duration_seconds: int


@dataclass
class Template:
    """Reusable workout blueprint."""

    id: int
    name: str
    created_at: float
    exercises: list[TemplateExercise] = field(default_factory=list)
    warmups: list[Warmup] = field(default_factory=list)
    # Filled in by listings that do not load the exercises themselves
    exercise_count: int = 0


@dataclass
class SessionSet:
    id: int
    session_exercise_id: int
    set_index: int
    reps: int = 0
    weight: float = 0.0
    is_complete: bool = False


@dataclass
class SessionExercise:
    id: int
    session_id: int
    name: str
    order: int
    template_exercise_id: int | None = None
    sets: list[SessionSet] = field(default_factory=list)


@dataclass
class Session:
    """A performed or in-progress workout.

    ``duration_seconds`` stays ``None`` until the session is completed.
    """

    id: int
    started_at: float
    name: str = ""
    template_id: int | None = None
    duration_seconds: int | None = None
    exercises: list[SessionExercise] = field(default_factory=list)

    @property
    def is_completed(self) -> bool:
        return self.duration_seconds is not None


@dataclass
class TimerSnapshot:
    """Durable state of the workout and rest timers.

    Timestamps are absolute ``time.time()`` values so elapsed and remaining
    durations can be recomputed after the process was suspended or killed.
    """

    workout_timer_active: bool = False
    workout_accumulated_seconds: float = 0.0
    workout_segment_start_at: float | None = None
    rest_timer_active: bool = False
    rest_initial_duration_seconds: int = 0
    rest_segment_start_at: float | None = None

    def to_dict(self) -> dict:
        """Return a JSON-serialisable representation of the snapshot."""

        return asdict(self)

    @classmethod
    def from_dict(cls, data: dict) -> "TimerSnapshot":
        """Reconstruct a snapshot, ignoring unknown keys."""

        known = {name: data[name] for name in cls.__dataclass_fields__ if name in data}
        return cls(**known)

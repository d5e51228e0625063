"""Creation and editing of workout sessions.

:class:`SessionInstantiator` turns a template into a fully populated session
graph (session, exercises, sets) seeded from the user's history.  The module
level functions cover the edits made while a session is live and the final
complete/cancel step.
"""

from __future__ import annotations

import logging
import sqlite3
import time
from pathlib import Path
from typing import Callable

from kivy.event import EventDispatcher

from backend import DEFAULT_DB_PATH, DEFAULT_SETS_PER_EXERCISE
from backend import settings
from backend.db import transaction
from backend.history import HistoryLookup
from backend.models import Session, SessionExercise, SessionSet, Template
from backend.templates import get_template


class SourceUnavailableError(LookupError):
    """The template a session should be built from no longer exists."""


class SessionCreationError(RuntimeError):
    """Writing a new session failed and nothing was stored."""


class SessionInstantiator(EventDispatcher):
    """Build new sessions from templates.

    Events:

    ``on_session_created(session)``
        A session graph was stored.
    ``on_session_failed(reason)``
        Creation failed; ``reason`` is a short user-facing message.
    """

    __events__ = ("on_session_created", "on_session_failed")

    def __init__(
        self,
        db_path: Path = DEFAULT_DB_PATH,
        history_window: int | None = None,
        clock: Callable[[], float] = time.time,
    ) -> None:
        super().__init__()
        self.db_path = Path(db_path)
        if history_window is None:
            history_window = settings.get_value("history_window")
        self.history_window = history_window
        self.clock = clock

    def on_session_created(self, session: Session) -> None:
        pass

    def on_session_failed(self, reason: str) -> None:
        pass

    def _fail(self, reason: str) -> None:
        logging.warning("Session creation failed: %s", reason)
        self.dispatch("on_session_failed", reason)

    def _plan_sets(
        self, lookup: HistoryLookup, name: str, target: int
    ) -> list[tuple[int, float, bool]]:
        """Return ``(reps, weight, is_complete)`` for each set to create.

        Never creates fewer sets than were performed last time, even if the
        template's target has since been lowered.
        """

        previous = lookup.last_set_count(name)
        planned = []
        for set_index in range(max(target, previous)):
            reps, weight = 0, 0.0
            if set_index < previous:
                data = lookup.last_set_data(name, set_index)
                if data is not None:
                    reps, weight = data
            planned.append((reps, weight, reps > 0))
        return planned

    def start_session(self, template_id: int) -> Session:
        """Create and store a session from ``template_id``.

        Raises :class:`SourceUnavailableError` when the template is gone and
        :class:`SessionCreationError` when storing the graph fails.  In both
        cases no part of the session is left in the database.
        """

        try:
            template = get_template(template_id, db_path=self.db_path)
        except sqlite3.Error as exc:
            logging.exception("Failed to load template %s", template_id)
            self._fail("Could not read the workout template")
            raise SessionCreationError(str(exc)) from exc
        if template is None:
            self._fail("This workout template is no longer available")
            raise SourceUnavailableError(f"Template {template_id} not found")

        try:
            session = self._write_session(template)
        except SourceUnavailableError:
            self._fail("This workout template is no longer available")
            raise
        except sqlite3.Error as exc:
            logging.exception("Failed to create session from template %s", template_id)
            self._fail("Could not create the workout")
            raise SessionCreationError(str(exc)) from exc

        logging.info(
            "Started session %s from template %s with %d exercises",
            session.id,
            template.id,
            len(session.exercises),
        )
        self.dispatch("on_session_created", session)
        return session

    def _write_session(self, template: Template) -> Session:
        lookup = HistoryLookup(self.db_path, window=self.history_window)
        exercises = sorted(template.exercises, key=lambda ex: ex.order)
        plans = [
            self._plan_sets(lookup, ex.name, ex.target_set_count) for ex in exercises
        ]
        started_at = self.clock()

        with transaction(self.db_path) as conn:
            # The template may have been deleted since it was loaded.
            if conn.execute(
                "SELECT 1 FROM template_templates WHERE id = ?", (template.id,)
            ).fetchone() is None:
                raise SourceUnavailableError(f"Template {template.id} not found")
            cur = conn.execute(
                """
                INSERT INTO session_sessions (template_id, name, started_at)
                VALUES (?, ?, ?)
                """,
                (template.id, template.name, started_at),
            )
            session = Session(
                id=cur.lastrowid,
                started_at=started_at,
                name=template.name,
                template_id=template.id,
            )
            for position, (ex, plan) in enumerate(zip(exercises, plans)):
                cur = conn.execute(
                    """
                    INSERT INTO session_exercises
                        (session_id, template_exercise_id, name, position)
                    VALUES (?, ?, ?, ?)
                    """,
                    (session.id, ex.id, ex.name, position),
                )
                session_ex = SessionExercise(
                    id=cur.lastrowid,
                    session_id=session.id,
                    name=ex.name,
                    order=position,
                    template_exercise_id=ex.id,
                )
                for set_index, (reps, weight, complete) in enumerate(plan):
                    session_ex.sets.append(
                        _insert_set(conn, session_ex.id, set_index, reps, weight, complete)
                    )
                session.exercises.append(session_ex)
        return session

    def create_blank_session(self, name: str = "Blank Workout") -> Session:
        """Create a session with no exercises and no template link."""

        started_at = self.clock()
        try:
            with transaction(self.db_path) as conn:
                cur = conn.execute(
                    "INSERT INTO session_sessions (name, started_at) VALUES (?, ?)",
                    (name, started_at),
                )
                session_id = cur.lastrowid
        except sqlite3.Error as exc:
            logging.exception("Failed to create blank session")
            self._fail("Could not create the workout")
            raise SessionCreationError(str(exc)) from exc
        session = Session(id=session_id, started_at=started_at, name=name)
        logging.info("Started blank session %s", session_id)
        self.dispatch("on_session_created", session)
        return session


def _insert_set(
    conn: sqlite3.Connection,
    session_exercise_id: int,
    set_index: int,
    reps: int = 0,
    weight: float = 0.0,
    is_complete: bool = False,
) -> SessionSet:
    cur = conn.execute(
        """
        INSERT INTO session_sets
            (session_exercise_id, set_index, reps, weight, is_complete)
        VALUES (?, ?, ?, ?, ?)
        """,
        (session_exercise_id, set_index, reps, weight, int(is_complete)),
    )
    return SessionSet(
        id=cur.lastrowid,
        session_exercise_id=session_exercise_id,
        set_index=set_index,
        reps=reps,
        weight=weight,
        is_complete=is_complete,
    )


def get_session(session_id: int, *, db_path: Path = DEFAULT_DB_PATH) -> Session | None:
    """Return ``session_id`` with its exercises and sets, or ``None``."""

    with transaction(db_path) as conn:
        row = conn.execute(
            """
            SELECT id, started_at, name, template_id, duration_seconds
              FROM session_sessions WHERE id = ?
            """,
            (session_id,),
        ).fetchone()
        if row is None:
            return None
        session = Session(
            id=row[0],
            started_at=row[1],
            name=row[2],
            template_id=row[3],
            duration_seconds=row[4],
        )
        cur = conn.execute(
            """
            SELECT id, session_id, name, position, template_exercise_id
              FROM session_exercises
             WHERE session_id = ?
             ORDER BY position
            """,
            (session_id,),
        )
        by_id: dict[int, SessionExercise] = {}
        for ex_id, sid, name, position, template_ex_id in cur.fetchall():
            ex = SessionExercise(ex_id, sid, name, position, template_ex_id)
            by_id[ex_id] = ex
            session.exercises.append(ex)
        # one query for every set of the session
        cur = conn.execute(
            """
            SELECT ss.id, ss.session_exercise_id, ss.set_index, ss.reps,
                   ss.weight, ss.is_complete
              FROM session_sets ss
              JOIN session_exercises se ON ss.session_exercise_id = se.id
             WHERE se.session_id = ?
             ORDER BY ss.session_exercise_id, ss.set_index
            """,
            (session_id,),
        )
        for set_id, ex_id, set_index, reps, weight, complete in cur.fetchall():
            by_id[ex_id].sets.append(
                SessionSet(set_id, ex_id, set_index, reps, weight, bool(complete))
            )
    return session


def find_unfinished_session(*, db_path: Path = DEFAULT_DB_PATH) -> Session | None:
    """Return the newest session that was started but never completed."""

    with transaction(db_path) as conn:
        row = conn.execute(
            """
            SELECT id FROM session_sessions
             WHERE duration_seconds IS NULL
             ORDER BY started_at DESC, id DESC
             LIMIT 1
            """
        ).fetchone()
    if row is None:
        return None
    return get_session(row[0], db_path=db_path)


def add_exercise_to_session(
    session_id: int,
    name: str,
    sets: int = DEFAULT_SETS_PER_EXERCISE,
    *,
    db_path: Path = DEFAULT_DB_PATH,
) -> SessionExercise:
    """Append an ad hoc exercise with ``sets`` empty sets to a live session."""

    name = name.strip()
    if not name:
        raise ValueError("Exercise name cannot be empty")
    if sets < 0:
        raise ValueError("Set count cannot be negative")
    with transaction(db_path) as conn:
        if conn.execute(
            "SELECT 1 FROM session_sessions WHERE id = ?", (session_id,)
        ).fetchone() is None:
            raise ValueError(f"Session {session_id} not found")
        position = conn.execute(
            "SELECT COUNT(*) FROM session_exercises WHERE session_id = ?",
            (session_id,),
        ).fetchone()[0]
        cur = conn.execute(
            "INSERT INTO session_exercises (session_id, name, position) VALUES (?, ?, ?)",
            (session_id, name, position),
        )
        exercise = SessionExercise(cur.lastrowid, session_id, name, position)
        for set_index in range(sets):
            exercise.sets.append(_insert_set(conn, exercise.id, set_index))
    return exercise


def add_set(session_exercise_id: int, *, db_path: Path = DEFAULT_DB_PATH) -> SessionSet:
    """Append a set with the next index, copying the previous set's values."""

    with transaction(db_path) as conn:
        if conn.execute(
            "SELECT 1 FROM session_exercises WHERE id = ?", (session_exercise_id,)
        ).fetchone() is None:
            raise ValueError(f"Session exercise {session_exercise_id} not found")
        last = conn.execute(
            """
            SELECT set_index, reps, weight FROM session_sets
             WHERE session_exercise_id = ?
             ORDER BY set_index DESC LIMIT 1
            """,
            (session_exercise_id,),
        ).fetchone()
        if last is None:
            return _insert_set(conn, session_exercise_id, 0)
        return _insert_set(conn, session_exercise_id, last[0] + 1, last[1], last[2])


def update_set(
    set_id: int,
    *,
    reps: int | None = None,
    weight: float | None = None,
    is_complete: bool | None = None,
    db_path: Path = DEFAULT_DB_PATH,
) -> None:
    """Record reps, weight and/or completion for ``set_id``."""

    if reps is not None and reps < 0:
        raise ValueError("Reps cannot be negative")
    if weight is not None and weight < 0:
        raise ValueError("Weight cannot be negative")
    updates = []
    params: list = []
    if reps is not None:
        updates.append("reps = ?")
        params.append(int(reps))
    if weight is not None:
        updates.append("weight = ?")
        params.append(float(weight))
    if is_complete is not None:
        updates.append("is_complete = ?")
        params.append(int(is_complete))
    if not updates:
        return
    with transaction(db_path) as conn:
        cur = conn.execute(
            f"UPDATE session_sets SET {', '.join(updates)} WHERE id = ?",
            (*params, set_id),
        )
        if cur.rowcount == 0:
            raise ValueError(f"Set {set_id} not found")


def delete_session_exercise(
    session_exercise_id: int, *, db_path: Path = DEFAULT_DB_PATH
) -> None:
    """Remove an exercise from a live session and renumber the rest."""

    with transaction(db_path) as conn:
        row = conn.execute(
            "SELECT session_id FROM session_exercises WHERE id = ?",
            (session_exercise_id,),
        ).fetchone()
        if row is None:
            return
        conn.execute(
            "DELETE FROM session_sets WHERE session_exercise_id = ?",
            (session_exercise_id,),
        )
        conn.execute(
            "DELETE FROM session_exercises WHERE id = ?", (session_exercise_id,)
        )
        cur = conn.execute(
            "SELECT id FROM session_exercises WHERE session_id = ? ORDER BY position",
            (row[0],),
        )
        for position, (ex_id,) in enumerate(cur.fetchall()):
            conn.execute(
                "UPDATE session_exercises SET position = ? WHERE id = ?",
                (position, ex_id),
            )


def complete_session(
    session_id: int, duration_seconds: int, *, db_path: Path = DEFAULT_DB_PATH
) -> None:
    """Stamp ``duration_seconds`` on ``session_id``, finalising it."""

    if duration_seconds < 0:
        raise ValueError("Duration cannot be negative")
    with transaction(db_path) as conn:
        cur = conn.execute(
            "UPDATE session_sessions SET duration_seconds = ? WHERE id = ?",
            (int(duration_seconds), session_id),
        )
        if cur.rowcount == 0:
            raise ValueError(f"Session {session_id} not found")
    logging.info("Completed session %s after %ss", session_id, int(duration_seconds))


def cancel_session(session_id: int, *, db_path: Path = DEFAULT_DB_PATH) -> None:
    """Discard ``session_id`` and everything recorded in it."""

    with transaction(db_path) as conn:
        conn.execute(
            """
            DELETE FROM session_sets WHERE session_exercise_id IN (
                SELECT id FROM session_exercises WHERE session_id = ?
            )
            """,
            (session_id,),
        )
        conn.execute("DELETE FROM session_exercises WHERE session_id = ?", (session_id,))
        conn.execute("DELETE FROM session_sessions WHERE id = ?", (session_id,))
    logging.info("Cancelled session %s", session_id)

"""Queries over completed workout sessions.

:class:`HistoryLookup` answers the "what did I do last time" questions used
when a new session is built from a template.  The module level helpers back
the history and progress screens.

Only completed sessions (those with a duration) count as history.  Exercises
are matched by name, case-insensitively, so ad hoc exercises and template
exercises with the same name share their history.
"""

from __future__ import annotations

import time
from pathlib import Path

from backend import DEFAULT_DB_PATH, HISTORY_SESSION_WINDOW
from backend.db import transaction
from backend.models import Session

# Sub-select yielding the searched window of completed sessions. The first
# parameter is a session id to leave out, the second the LIMIT (-1 = all).
_WINDOW_SQL = """
    SELECT id, started_at FROM session_sessions
     WHERE duration_seconds IS NOT NULL AND id != ?
     ORDER BY started_at DESC, id DESC
     LIMIT ?
"""


class HistoryLookup:
    """Look up the most recent recorded values for an exercise.

    ``window`` bounds the search to that many of the newest completed
    sessions; ``None`` searches the whole history.  ``exclude_session_id``
    keeps a session (typically the one being filled in) out of the results.
    """

    def __init__(
        self,
        db_path: Path = DEFAULT_DB_PATH,
        window: int | None = HISTORY_SESSION_WINDOW,
        exclude_session_id: int | None = None,
    ) -> None:
        if window is not None and window < 1:
            raise ValueError("History window must be at least 1")
        self.db_path = Path(db_path)
        self.window = window
        self.exclude_session_id = exclude_session_id

    def _window_params(self) -> tuple[int, int]:
        exclude = self.exclude_session_id if self.exclude_session_id is not None else -1
        limit = self.window if self.window is not None else -1
        return exclude, limit

    def last_set_data(self, name: str, set_index: int) -> tuple[int, float] | None:
        """Return ``(reps, weight)`` last recorded for ``name`` at ``set_index``.

        Sessions are searched newest first.  Sets where both reps and weight
        are zero were never really recorded, so the search continues into
        older sessions.  ``None`` is returned when nothing qualifies.
        """

        with transaction(self.db_path) as conn:
            row = conn.execute(
                f"""
                SELECT ss.reps, ss.weight
                  FROM session_sets ss
                  JOIN session_exercises se ON ss.session_exercise_id = se.id
                  JOIN ({_WINDOW_SQL}) s ON se.session_id = s.id
                 WHERE se.name = ? COLLATE NOCASE
                   AND ss.set_index = ?
                   AND (ss.reps > 0 OR ss.weight > 0)
                 ORDER BY s.started_at DESC, s.id DESC, se.position
                 LIMIT 1
                """,
                (*self._window_params(), name.strip(), set_index),
            ).fetchone()
        if row is None:
            return None
        return int(row[0]), float(row[1])

    def last_set_count(self, name: str) -> int:
        """Return the number of sets in the newest exercise called ``name``."""

        with transaction(self.db_path) as conn:
            row = conn.execute(
                f"""
                SELECT se.id
                  FROM session_exercises se
                  JOIN ({_WINDOW_SQL}) s ON se.session_id = s.id
                 WHERE se.name = ? COLLATE NOCASE
                 ORDER BY s.started_at DESC, s.id DESC, se.position
                 LIMIT 1
                """,
                (*self._window_params(), name.strip()),
            ).fetchone()
            if row is None:
                return 0
            return conn.execute(
                "SELECT COUNT(*) FROM session_sets WHERE session_exercise_id = ?",
                (row[0],),
            ).fetchone()[0]


def _session_rows_to_models(rows) -> list[Session]:
    return [
        Session(
            id=sid,
            started_at=started,
            name=name,
            template_id=template_id,
            duration_seconds=duration,
        )
        for sid, started, name, template_id, duration in rows
    ]


def recent_sessions(
    limit: int | None = None, *, db_path: Path = DEFAULT_DB_PATH
) -> list[Session]:
    """Return completed sessions, newest first.

    Exercises are not loaded; use :func:`backend.sessions.get_session` for
    the full graph.
    """

    with transaction(db_path) as conn:
        cur = conn.execute(
            """
            SELECT id, started_at, name, template_id, duration_seconds
              FROM session_sessions
             WHERE duration_seconds IS NOT NULL
             ORDER BY started_at DESC, id DESC
             LIMIT ?
            """,
            (limit if limit is not None else -1,),
        )
        return _session_rows_to_models(cur.fetchall())


def sessions_with_exercise(
    name: str, *, db_path: Path = DEFAULT_DB_PATH
) -> list[Session]:
    """Return completed sessions containing an exercise called ``name``."""

    with transaction(db_path) as conn:
        cur = conn.execute(
            """
            SELECT s.id, s.started_at, s.name, s.template_id, s.duration_seconds
              FROM session_sessions s
             WHERE s.duration_seconds IS NOT NULL
               AND EXISTS (
                    SELECT 1 FROM session_exercises se
                     WHERE se.session_id = s.id AND se.name = ? COLLATE NOCASE
               )
             ORDER BY s.started_at DESC, s.id DESC
            """,
            (name.strip(),),
        )
        return _session_rows_to_models(cur.fetchall())


def exercise_names(*, db_path: Path = DEFAULT_DB_PATH) -> list[str]:
    """Return the distinct exercise names found in completed sessions."""

    with transaction(db_path) as conn:
        cur = conn.execute(
            """
            SELECT DISTINCT se.name
              FROM session_exercises se
              JOIN session_sessions s ON se.session_id = s.id
             WHERE s.duration_seconds IS NOT NULL
             ORDER BY se.name COLLATE NOCASE
            """
        )
        return [row[0] for row in cur.fetchall()]


def weight_progress(
    name: str,
    days_back: int | None = None,
    *,
    now: float | None = None,
    db_path: Path = DEFAULT_DB_PATH,
) -> list[tuple[float, float]]:
    """Return ``(started_at, max_weight)`` points for ``name``, oldest first.

    Each point is the heaviest weight lifted for at least one rep in a
    session.  Sessions without such a set are left out.  ``days_back``
    restricts the result to sessions started within that many days of
    ``now``.
    """

    cutoff = None
    if days_back is not None:
        cutoff = (now if now is not None else time.time()) - days_back * 86400
    with transaction(db_path) as conn:
        cur = conn.execute(
            """
            SELECT s.started_at,
                   MAX(CASE WHEN ss.reps > 0 THEN ss.weight END)
              FROM session_sessions s
              JOIN session_exercises se ON se.session_id = s.id
              JOIN session_sets ss ON ss.session_exercise_id = se.id
             WHERE s.duration_seconds IS NOT NULL
               AND se.name = ? COLLATE NOCASE
               AND (? IS NULL OR s.started_at >= ?)
             GROUP BY s.id
             ORDER BY s.started_at, s.id
            """,
            (name.strip(), cutoff, cutoff),
        )
        rows = cur.fetchall()
    return [(started, float(weight)) for started, weight in rows if weight and weight > 0]


def progress_percentage(points: list[tuple[float, float]]) -> float | None:
    """Return the change from the first to the last weight in percent."""

    if len(points) < 2:
        return None
    first, last = points[0][1], points[-1][1]
    if first == 0:
        return None
    return (last - first) / first * 100

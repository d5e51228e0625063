"""Template record store.

Templates own an ordered list of exercises.  Every mutation that inserts,
removes or moves an exercise rewrites ``position`` so the values stay a
contiguous ``0..n-1`` sequence.
"""

from __future__ import annotations

import logging
import sqlite3
import time
from pathlib import Path

from backend import DEFAULT_DB_PATH, DEFAULT_SETS_PER_EXERCISE
from backend.db import transaction
from backend.models import Template, TemplateExercise
from backend.warmups import get_warmups


def create_template(name: str, *, db_path: Path = DEFAULT_DB_PATH) -> Template:
    """Insert a new empty template called ``name``."""

    name = name.strip()
    if not name:
        raise ValueError("Template name cannot be empty")
    created_at = time.time()
    with transaction(db_path) as conn:
        cur = conn.execute(
            "INSERT INTO template_templates (name, created_at) VALUES (?, ?)",
            (name, created_at),
        )
        template_id = cur.lastrowid
    logging.info("Created template %s (%s)", template_id, name)
    return Template(id=template_id, name=name, created_at=created_at)


def rename_template(
    template_id: int, name: str, *, db_path: Path = DEFAULT_DB_PATH
) -> None:
    """Change the name of ``template_id``."""

    name = name.strip()
    if not name:
        raise ValueError("Template name cannot be empty")
    with transaction(db_path) as conn:
        cur = conn.execute(
            "UPDATE template_templates SET name = ? WHERE id = ?",
            (name, template_id),
        )
        if cur.rowcount == 0:
            raise ValueError(f"Template {template_id} not found")


def delete_template(template_id: int, *, db_path: Path = DEFAULT_DB_PATH) -> None:
    """Delete ``template_id`` together with its exercises and warmups.

    Past sessions keep their exercise names; only their link back to the
    template is cleared.
    """

    with transaction(db_path) as conn:
        conn.execute(
            "DELETE FROM template_warmups WHERE template_id = ?", (template_id,)
        )
        conn.execute(
            "DELETE FROM template_exercises WHERE template_id = ?", (template_id,)
        )
        conn.execute("DELETE FROM template_templates WHERE id = ?", (template_id,))
    logging.info("Deleted template %s", template_id)


def _load_exercises(
    conn: sqlite3.Connection, template_id: int
) -> list[TemplateExercise]:
    cur = conn.execute(
        """
        SELECT id, template_id, name, position, number_of_sets
          FROM template_exercises
         WHERE template_id = ?
         ORDER BY position
        """,
        (template_id,),
    )
    return [TemplateExercise(*row) for row in cur.fetchall()]


def get_template(
    template_id: int, *, db_path: Path = DEFAULT_DB_PATH
) -> Template | None:
    """Return ``template_id`` with exercises and warmups, or ``None``."""

    with transaction(db_path) as conn:
        row = conn.execute(
            "SELECT id, name, created_at FROM template_templates WHERE id = ?",
            (template_id,),
        ).fetchone()
        if row is None:
            return None
        exercises = _load_exercises(conn, template_id)
    return Template(
        id=row[0],
        name=row[1],
        created_at=row[2],
        exercises=exercises,
        warmups=get_warmups(template_id, db_path=db_path),
        exercise_count=len(exercises),
    )


def list_templates(*, db_path: Path = DEFAULT_DB_PATH) -> list[Template]:
    """Return all templates, newest first, with their exercise counts.

    Counts come from a single aggregate query so listing does not issue one
    query per template.
    """

    with transaction(db_path) as conn:
        cur = conn.execute(
            """
            SELECT t.id, t.name, t.created_at, COUNT(e.id)
              FROM template_templates t
              LEFT JOIN template_exercises e ON e.template_id = t.id
             GROUP BY t.id
             ORDER BY t.created_at DESC, t.id DESC
            """
        )
        rows = cur.fetchall()
    return [
        Template(id=tid, name=name, created_at=created, exercise_count=count)
        for tid, name, created, count in rows
    ]


def _renumber(conn: sqlite3.Connection, exercise_ids: list[int]) -> None:
    """Store ``exercise_ids`` in the given order as positions ``0..n-1``."""

    for position, ex_id in enumerate(exercise_ids):
        conn.execute(
            "UPDATE template_exercises SET position = ? WHERE id = ?",
            (position, ex_id),
        )


def add_template_exercise(
    template_id: int,
    name: str,
    sets: int = DEFAULT_SETS_PER_EXERCISE,
    *,
    db_path: Path = DEFAULT_DB_PATH,
) -> TemplateExercise:
    """Append exercise ``name`` to ``template_id``."""

    name = name.strip()
    if not name:
        raise ValueError("Exercise name cannot be empty")
    if sets < 0:
        raise ValueError("Set count cannot be negative")
    with transaction(db_path) as conn:
        if conn.execute(
            "SELECT 1 FROM template_templates WHERE id = ?", (template_id,)
        ).fetchone() is None:
            raise ValueError(f"Template {template_id} not found")
        position = conn.execute(
            "SELECT COUNT(*) FROM template_exercises WHERE template_id = ?",
            (template_id,),
        ).fetchone()[0]
        cur = conn.execute(
            """
            INSERT INTO template_exercises (template_id, name, position, number_of_sets)
            VALUES (?, ?, ?, ?)
            """,
            (template_id, name, position, sets),
        )
        ex_id = cur.lastrowid
    return TemplateExercise(ex_id, template_id, name, position, sets)


def update_template_exercise(
    exercise_id: int,
    *,
    name: str | None = None,
    sets: int | None = None,
    db_path: Path = DEFAULT_DB_PATH,
) -> None:
    """Update the name and/or target set count of ``exercise_id``."""

    if name is not None and not name.strip():
        raise ValueError("Exercise name cannot be empty")
    if sets is not None and sets < 0:
        raise ValueError("Set count cannot be negative")
    with transaction(db_path) as conn:
        if conn.execute(
            "SELECT 1 FROM template_exercises WHERE id = ?", (exercise_id,)
        ).fetchone() is None:
            raise ValueError(f"Template exercise {exercise_id} not found")
        if name is not None:
            conn.execute(
                "UPDATE template_exercises SET name = ? WHERE id = ?",
                (name.strip(), exercise_id),
            )
        if sets is not None:
            conn.execute(
                "UPDATE template_exercises SET number_of_sets = ? WHERE id = ?",
                (sets, exercise_id),
            )


def delete_template_exercise(
    exercise_id: int, *, db_path: Path = DEFAULT_DB_PATH
) -> None:
    """Remove ``exercise_id`` and close the gap in the template ordering."""

    with transaction(db_path) as conn:
        row = conn.execute(
            "SELECT template_id FROM template_exercises WHERE id = ?",
            (exercise_id,),
        ).fetchone()
        if row is None:
            return
        template_id = row[0]
        conn.execute("DELETE FROM template_exercises WHERE id = ?", (exercise_id,))
        remaining = [ex.id for ex in _load_exercises(conn, template_id)]
        _renumber(conn, remaining)


def move_template_exercise(
    template_id: int,
    source: int,
    destination: int,
    *,
    db_path: Path = DEFAULT_DB_PATH,
) -> None:
    """Move the exercise at index ``source`` to index ``destination``."""

    with transaction(db_path) as conn:
        ids = [ex.id for ex in _load_exercises(conn, template_id)]
        if not 0 <= source < len(ids):
            raise ValueError(f"Invalid source index {source}")
        if not 0 <= destination < len(ids):
            raise ValueError(f"Invalid destination index {destination}")
        ids.insert(destination, ids.pop(source))
        _renumber(conn, ids)

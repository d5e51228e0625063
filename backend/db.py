"""SQLite helpers shared by the record stores."""

from __future__ import annotations

import logging
import sqlite3
from contextlib import contextmanager
from pathlib import Path
from typing import Iterator

from backend import DEFAULT_DB_PATH

SCHEMA_PATH = Path(__file__).resolve().parents[1] / "data" / "workout_schema.sql"

# Tables every valid database must contain.
REQUIRED_TABLES = [
    "template_templates",
    "template_exercises",
    "template_warmups",
    "session_sessions",
    "session_exercises",
    "session_sets",
]


def connect(db_path: Path = DEFAULT_DB_PATH) -> sqlite3.Connection:
    """Open ``db_path`` with foreign key enforcement enabled."""

    conn = sqlite3.connect(str(db_path))
    conn.execute("PRAGMA foreign_keys = ON")
    return conn


@contextmanager
def transaction(db_path: Path = DEFAULT_DB_PATH) -> Iterator[sqlite3.Connection]:
    """Yield a connection that commits on success and rolls back on error.

    The connection is always closed when the block exits.
    """

    conn = connect(db_path)
    try:
        with conn:
            yield conn
    finally:
        conn.close()


def init_database(db_path: Path = DEFAULT_DB_PATH) -> Path:
    """Create the schema in ``db_path`` if it does not exist yet."""

    db_path = Path(db_path)
    db_path.parent.mkdir(parents=True, exist_ok=True)
    with SCHEMA_PATH.open("r", encoding="utf-8") as fh:
        script = fh.read()
    with transaction(db_path) as conn:
        conn.executescript(script)
    logging.info("Database ready at %s", db_path)
    return db_path


def validate_database(db_path: Path) -> tuple[bool, list[str]]:
    """Return ``(ok, errors)`` after checking :data:`REQUIRED_TABLES`."""

    errors: list[str] = []
    try:
        with transaction(db_path) as conn:
            cur = conn.cursor()
            for table in REQUIRED_TABLES:
                cur.execute(
                    "SELECT name FROM sqlite_master WHERE type='table' AND name=?",
                    (table,),
                )
                if not cur.fetchone():
                    errors.append(f"missing table: {table}")
    except sqlite3.Error as exc:
        errors.append(str(exc))
    return (len(errors) == 0, errors)

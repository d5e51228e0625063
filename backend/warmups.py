"""Per-template warmup configuration.

Each template may carry an ordered list of short warmup steps.  Durations
are clamped to :data:`MIN_WARMUP_DURATION`..:data:`MAX_WARMUP_DURATION`
seconds before they are written.
"""

from __future__ import annotations

from pathlib import Path

from backend import (
    DEFAULT_DB_PATH,
    DEFAULT_WARMUP_DURATION,
    MIN_WARMUP_DURATION,
    MAX_WARMUP_DURATION,
)
from backend.db import transaction
from backend.models import Warmup


def clamp_duration(seconds: int | None) -> int:
    """Return ``seconds`` limited to the allowed warmup range."""

    if seconds is None:
        seconds = DEFAULT_WARMUP_DURATION
    return max(MIN_WARMUP_DURATION, min(MAX_WARMUP_DURATION, int(seconds)))


def get_warmups(template_id: int, *, db_path: Path = DEFAULT_DB_PATH) -> list[Warmup]:
    """Return the warmups configured for ``template_id`` in order."""

    with transaction(db_path) as conn:
        cur = conn.execute(
            """
            SELECT name, duration_seconds FROM template_warmups
             WHERE template_id = ?
             ORDER BY position
            """,
            (template_id,),
        )
        return [Warmup(name, duration) for name, duration in cur.fetchall()]


def set_warmups(
    template_id: int,
    names: list[str],
    durations: list[int] | None = None,
    *,
    db_path: Path = DEFAULT_DB_PATH,
) -> list[Warmup]:
    """Replace the warmup list of ``template_id``.

    ``durations`` is parallel to ``names``; entries beyond its length use
    :data:`DEFAULT_WARMUP_DURATION`.
    """

    durations = list(durations or [])
    warmups = [
        Warmup(name, clamp_duration(durations[i] if i < len(durations) else None))
        for i, name in enumerate(names)
    ]
    with transaction(db_path) as conn:
        conn.execute(
            "DELETE FROM template_warmups WHERE template_id = ?", (template_id,)
        )
        for position, warmup in enumerate(warmups):
            conn.execute(
                """
                INSERT INTO template_warmups
                    (template_id, name, duration_seconds, position)
                VALUES (?, ?, ?, ?)
                """,
                (template_id, warmup.name, warmup.duration_seconds, position),
            )
    return warmups


def add_warmup(
    template_id: int,
    name: str,
    duration: int | None = None,
    *,
    db_path: Path = DEFAULT_DB_PATH,
) -> Warmup:
    """Append a warmup to the end of the list for ``template_id``."""

    name = name.strip()
    if not name:
        raise ValueError("Warmup name cannot be empty")
    warmup = Warmup(name, clamp_duration(duration))
    with transaction(db_path) as conn:
        position = conn.execute(
            "SELECT COUNT(*) FROM template_warmups WHERE template_id = ?",
            (template_id,),
        ).fetchone()[0]
        conn.execute(
            """
            INSERT INTO template_warmups (template_id, name, duration_seconds, position)
            VALUES (?, ?, ?, ?)
            """,
            (template_id, warmup.name, warmup.duration_seconds, position),
        )
    return warmup


def get_warmup(
    template_id: int, index: int, *, db_path: Path = DEFAULT_DB_PATH
) -> Warmup | None:
    """Return the warmup at ``index`` or ``None`` when out of range."""

    warmups = get_warmups(template_id, db_path=db_path)
    if 0 <= index < len(warmups):
        return warmups[index]
    return None


def delete_warmup(
    template_id: int, index: int, *, db_path: Path = DEFAULT_DB_PATH
) -> None:
    """Remove the warmup at ``index`` and keep positions contiguous."""

    warmups = get_warmups(template_id, db_path=db_path)
    if not 0 <= index < len(warmups):
        raise ValueError(f"Invalid warmup index {index}")
    del warmups[index]
    set_warmups(
        template_id,
        [w.name for w in warmups],
        [w.duration_seconds for w in warmups],
        db_path=db_path,
    )

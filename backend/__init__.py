"""Shared constants and globals for backend modules."""

from __future__ import annotations

from pathlib import Path

# Default values used throughout the application
DEFAULT_SETS_PER_EXERCISE = 3
DEFAULT_REST_DURATION = 101
DEFAULT_WARMUP_DURATION = 15

# Warmup durations are clamped to this range (seconds)
MIN_WARMUP_DURATION = 5
MAX_WARMUP_DURATION = 60

# Number of most recent completed sessions searched for carry-forward data.
# ``None`` searches the full history.
HISTORY_SESSION_WINDOW = 5

# Path to the bundled SQLite database shipped with the application
DEFAULT_DB_PATH = (
    Path(__file__).resolve().parent.parent / "data" / "workout.db"
)

# Directory holding the timer recovery files
RECOVERY_DIR = Path(__file__).resolve().parent.parent / "data"

__all__ = [
    "DEFAULT_SETS_PER_EXERCISE",
    "DEFAULT_REST_DURATION",
    "DEFAULT_WARMUP_DURATION",
    "MIN_WARMUP_DURATION",
    "MAX_WARMUP_DURATION",
    "HISTORY_SESSION_WINDOW",
    "DEFAULT_DB_PATH",
    "RECOVERY_DIR",
]

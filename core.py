"""Application-facing entry point for the backend.

Screens import from here so they do not depend on how the backend modules
are split up.
"""

from __future__ import annotations

from backend import (
    DEFAULT_SETS_PER_EXERCISE,
    DEFAULT_REST_DURATION,
    DEFAULT_WARMUP_DURATION,
    HISTORY_SESSION_WINDOW,
    DEFAULT_DB_PATH,
)
from backend.db import init_database
from backend.history import (
    HistoryLookup,
    exercise_names,
    progress_percentage,
    recent_sessions,
    sessions_with_exercise,
    weight_progress,
)
from backend.live_session import LiveSession
from backend.models import (
    Session,
    SessionExercise,
    SessionSet,
    Template,
    TemplateExercise,
    TimerSnapshot,
    Warmup,
)
from backend.sessions import (
    SessionCreationError,
    SessionInstantiator,
    SourceUnavailableError,
    add_exercise_to_session,
    add_set,
    delete_session_exercise,
    get_session,
    update_set,
)
from backend.templates import (
    add_template_exercise,
    create_template,
    delete_template,
    delete_template_exercise,
    get_template,
    list_templates,
    move_template_exercise,
    rename_template,
    update_template_exercise,
)
from backend.timers import InvalidTransitionError, TimerCoordinator, format_seconds
from backend.warmups import add_warmup, delete_warmup, get_warmups, set_warmups

__all__ = [
    "DEFAULT_SETS_PER_EXERCISE",
    "DEFAULT_REST_DURATION",
    "DEFAULT_WARMUP_DURATION",
    "HISTORY_SESSION_WINDOW",
    "DEFAULT_DB_PATH",
    "init_database",
    "HistoryLookup",
    "exercise_names",
    "progress_percentage",
    "recent_sessions",
    "sessions_with_exercise",
    "weight_progress",
    "LiveSession",
    "Session",
    "SessionExercise",
    "SessionSet",
    "Template",
    "TemplateExercise",
    "TimerSnapshot",
    "Warmup",
    "SessionCreationError",
    "SessionInstantiator",
    "SourceUnavailableError",
    "add_exercise_to_session",
    "add_set",
    "delete_session_exercise",
    "get_session",
    "update_set",
    "add_template_exercise",
    "create_template",
    "delete_template",
    "delete_template_exercise",
    "get_template",
    "list_templates",
    "move_template_exercise",
    "rename_template",
    "update_template_exercise",
    "InvalidTransitionError",
    "TimerCoordinator",
    "format_seconds",
    "add_warmup",
    "delete_warmup",
    "get_warmups",
    "set_warmups",
]

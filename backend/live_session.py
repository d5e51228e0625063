"""The workout currently being performed together with its timers."""

from __future__ import annotations

import logging
from pathlib import Path

from backend import DEFAULT_DB_PATH
from backend.models import Session
from backend.sessions import (
    SessionInstantiator,
    cancel_session,
    complete_session,
    find_unfinished_session,
    get_session,
)
from backend.timers import IDLE, TimerCoordinator, clear_snapshot
from backend.warmups import get_warmups


class LiveSession:
    """Pairs a stored :class:`Session` with the coordinator timing it.

    Only one live session exists at a time.  The coordinator's lifetime is
    the session's lifetime: it is reset when the session is finished or
    cancelled.
    """

    def __init__(
        self,
        session: Session,
        coordinator: TimerCoordinator,
        db_path: Path = DEFAULT_DB_PATH,
    ) -> None:
        self.session = session
        self.coordinator = coordinator
        self.db_path = Path(db_path)

    @classmethod
    def begin(
        cls,
        template_id: int | None,
        coordinator: TimerCoordinator,
        *,
        db_path: Path = DEFAULT_DB_PATH,
        instantiator: SessionInstantiator | None = None,
    ) -> "LiveSession":
        """Create a session (blank when ``template_id`` is ``None``) and start timing.

        Template sessions also load the template's warmups into the
        coordinator; the first warmup waits for the user to start it.
        """

        instantiator = instantiator or SessionInstantiator(
            db_path, clock=coordinator.clock
        )
        if template_id is None:
            session = instantiator.create_blank_session()
        else:
            session = instantiator.start_session(template_id)
        coordinator.reset()
        coordinator.workout.start()
        if template_id is not None:
            coordinator.warmup.begin(get_warmups(template_id, db_path=db_path))
        return cls(session, coordinator, db_path)

    @classmethod
    def resume(
        cls, coordinator: TimerCoordinator, *, db_path: Path = DEFAULT_DB_PATH
    ) -> "LiveSession | None":
        """Pick up an unfinished session after the process was restarted.

        Without usable timer state the workout timer restarts from the
        session's start time, so the recorded duration still covers it.
        """

        session = find_unfinished_session(db_path=db_path)
        if session is None:
            clear_snapshot(coordinator.recovery_base)
            return None
        if not coordinator.restore() or coordinator.workout.state == IDLE:
            logging.warning(
                "No timer state for session %s, timing from its start", session.id
            )
            coordinator.workout.start(started_at=session.started_at)
        logging.info("Resumed live session %s", session.id)
        return cls(session, coordinator, db_path)

    def reload(self) -> Session:
        """Re-read the session graph after edits."""

        session = get_session(self.session.id, db_path=self.db_path)
        if session is not None:
            self.session = session
        return self.session

    def finish(self) -> Session:
        """Stop the timers and store the session's duration."""

        timers = self.coordinator
        if timers.rest.is_running:
            timers.rest.stop(manual=True)
        if timers.warmup.is_active:
            timers.warmup.cancel_all()
        duration = timers.workout.stop() if timers.workout.state != IDLE else 0
        complete_session(self.session.id, duration, db_path=self.db_path)
        timers.reset()
        return self.reload()

    def cancel(self) -> None:
        """Throw the session away without keeping any record of it."""

        self.coordinator.reset()
        cancel_session(self.session.id, db_path=self.db_path)

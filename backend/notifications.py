"""Local notifications for timers that finish while the app is hidden.

Notifications are a best-effort nudge only: the in-app countdown stays
authoritative, and callers are expected to log and ignore failures raised
from :meth:`NotificationBridge.schedule_one_shot`.
"""

from __future__ import annotations

import logging
import time

REST_TIMER_KEY = "rest_timer"

# Android notification channel used for timer alerts.
CHANNEL_ID = "workout_timers"
CHANNEL_NAME = "Workout timers"


class NotificationBridge:
    """Interface for scheduling one-shot local notifications."""

    def schedule_one_shot(
        self, after_seconds: float, title: str, body: str, key: str = REST_TIMER_KEY
    ) -> str:
        """Deliver ``title``/``body`` after ``after_seconds``; return ``key``.

        Scheduling again under the same ``key`` replaces the pending request.
        """

        raise NotImplementedError

    def cancel_pending(self, key: str = REST_TIMER_KEY) -> None:
        """Drop the pending request stored under ``key`` if there is one."""

        raise NotImplementedError


class NullNotifier(NotificationBridge):
    """Notifier for platforms without local notifications.

    Requests are remembered in :attr:`pending` so the rest of the app can
    behave the same everywhere, but nothing is ever shown.
    """

    def __init__(self) -> None:
        self.pending: dict[str, tuple[float, str, str]] = {}

    def schedule_one_shot(self, after_seconds, title, body, key=REST_TIMER_KEY):
        self.pending[key] = (after_seconds, title, body)
        logging.debug("Notification %s would fire in %.1fs", key, after_seconds)
        return key

    def cancel_pending(self, key=REST_TIMER_KEY):
        self.pending.pop(key, None)


def _notification_id(key: str) -> int:
    return sum(ord(c) for c in key) % 100000


def _android_manager():
    """Return ``(activity, NotificationManager)`` with the timer channel set up."""

    from jnius import autoclass  # Android only

    PythonActivity = autoclass("org.kivy.android.PythonActivity")
    Context = autoclass("android.content.Context")
    NotificationChannel = autoclass("android.app.NotificationChannel")
    NotificationManager = autoclass("android.app.NotificationManager")
    String = autoclass("java.lang.String")

    activity = PythonActivity.mActivity
    manager = activity.getSystemService(Context.NOTIFICATION_SERVICE)
    channel = NotificationChannel(
        CHANNEL_ID, String(CHANNEL_NAME), NotificationManager.IMPORTANCE_HIGH
    )
    manager.createNotificationChannel(channel)
    return activity, manager


def _android_notify(key: str, title: str, body: str, countdown_to: float | None = None) -> None:
    from jnius import autoclass  # Android only

    Builder = autoclass("android.app.Notification$Builder")
    String = autoclass("java.lang.String")

    activity, manager = _android_manager()
    builder = Builder(activity, CHANNEL_ID)
    builder.setContentTitle(String(title))
    builder.setContentText(String(body))
    builder.setSmallIcon(activity.getApplicationInfo().icon)
    builder.setAutoCancel(True)
    if countdown_to is not None:
        # Chronometer keeps counting down while the process is suspended.
        builder.setWhen(int(countdown_to * 1000))
        builder.setUsesChronometer(True)
        builder.setChronometerCountDown(True)
        builder.setOnlyAlertOnce(True)
    manager.notify(_notification_id(key), builder.build())


def _android_cancel(key: str) -> None:
    _activity, manager = _android_manager()
    manager.cancel(_notification_id(key))


class AndroidNotifier(NotificationBridge):
    """Notifier backed by the Android notification manager (via pyjnius).

    Scheduling immediately posts a silent countdown notification that stays
    accurate while the app is suspended, and arms a Kivy clock event that
    replaces it with an alerting notification when the time is up.

    The clock event only fires while the process is running in the
    foreground.  When the app is paused or killed, the chronometer countdown
    is the only thing shown and no alert sounds at zero; the coordinator
    completes the rest timer on return instead.  Alerting from the
    background would need an ``AlarmManager`` broadcast receiver, which
    this build does not ship.
    """

    def __init__(self, scheduler=None, clock=time.time) -> None:
        if scheduler is None:
            from kivy.clock import Clock

            scheduler = Clock
        self.scheduler = scheduler
        self.clock = clock
        self._events: dict[str, object] = {}

    def schedule_one_shot(self, after_seconds, title, body, key=REST_TIMER_KEY):
        self._unschedule(key)
        _android_notify(key, title, body, countdown_to=self.clock() + after_seconds)
        self._events[key] = self.scheduler.schedule_once(
            lambda dt: self._deliver(key, title, body), after_seconds
        )
        return key

    def _deliver(self, key: str, title: str, body: str) -> None:
        self._events.pop(key, None)
        try:
            _android_notify(key, title, body)
        except Exception:
            logging.exception("Failed to deliver notification %s", key)

    def _unschedule(self, key: str) -> None:
        event = self._events.pop(key, None)
        if event is not None:
            event.cancel()

    def cancel_pending(self, key=REST_TIMER_KEY):
        self._unschedule(key)
        _android_cancel(key)

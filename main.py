from kivymd.app import MDApp
from kivy.lang import Builder
from kivy.properties import StringProperty, BooleanProperty
from kivy.utils import platform
from kivymd.uix.screen import MDScreen
from kivymd.uix.list import OneLineListItem
from kivymd.uix.button import MDFlatButton
from kivymd.toast import toast
import logging

from backend import settings
from backend.notifications import AndroidNotifier, NullNotifier
from core import (
    DEFAULT_DB_PATH,
    LiveSession,
    SessionCreationError,
    SourceUnavailableError,
    TimerCoordinator,
    format_seconds,
    init_database,
    list_templates,
)


KV = '''
ScreenManager:
    TemplatesScreen:
        name: "templates"
    SessionScreen:
        name: "session"

<TemplatesScreen>:
    BoxLayout:
        orientation: "vertical"
        MDTopAppBar:
            title: "Workouts"
        ScrollView:
            MDList:
                id: template_list
        MDRaisedButton:
            text: "Blank workout"
            pos_hint: {"center_x": 0.5}
            on_release: app.start_workout(None)

<SessionScreen>:
    BoxLayout:
        orientation: "vertical"
        padding: "12dp"
        spacing: "8dp"
        MDLabel:
            text: root.session_name
            font_style: "H5"
        MDLabel:
            text: "Workout " + root.workout_time
        MDLabel:
            text: "Rest " + root.rest_time
        MDLabel:
            text: root.warmup_text
        BoxLayout:
            id: rest_presets
            size_hint_y: None
            height: "48dp"
            spacing: "4dp"
        BoxLayout:
            size_hint_y: None
            height: "48dp"
            spacing: "8dp"
            MDRaisedButton:
                text: "Resume" if root.paused else "Pause"
                disabled: not root.timing
                on_release: app.toggle_pause()
            MDRaisedButton:
                text: "Rest"
                on_release: app.start_rest()
            MDFlatButton:
                text: "Skip rest"
                disabled: not root.resting
                on_release: app.skip_rest()
        BoxLayout:
            size_hint_y: None
            height: "48dp"
            spacing: "8dp"
            MDRaisedButton:
                text: "Start warmup"
                disabled: not root.warmup_waiting
                on_release: app.start_warmup()
            MDFlatButton:
                text: "Skip warmups"
                disabled: not root.warmup_active
                on_release: app.skip_warmups()
        BoxLayout:
            size_hint_y: None
            height: "48dp"
            spacing: "8dp"
            MDRaisedButton:
                text: "Finish"
                on_release: app.finish_workout()
            MDFlatButton:
                text: "Cancel"
                on_release: app.cancel_workout()
'''


class TemplatesScreen(MDScreen):
    """List of templates a workout can be started from."""

    def on_pre_enter(self, *args):
        template_list = self.ids.template_list
        template_list.clear_widgets()
        for template in list_templates(db_path=DEFAULT_DB_PATH):
            item = OneLineListItem(
                text=f"{template.name} ({template.exercise_count} exercises)"
            )
            item.bind(
                on_release=lambda _item, tid=template.id: MDApp.get_running_app().start_workout(tid)
            )
            template_list.add_widget(item)
        return super().on_pre_enter(*args)


class SessionScreen(MDScreen):
    """Timers of the live session."""

    session_name = StringProperty("")
    workout_time = StringProperty("0:00")
    rest_time = StringProperty("0:00")
    warmup_text = StringProperty("")
    paused = BooleanProperty(False)
    timing = BooleanProperty(False)
    resting = BooleanProperty(False)
    warmup_active = BooleanProperty(False)
    warmup_waiting = BooleanProperty(False)

    def on_pre_enter(self, *args):
        presets = self.ids.rest_presets
        presets.clear_widgets()
        for seconds in settings.get_value("rest_presets", []):
            button = MDFlatButton(text=format_seconds(seconds))
            button.bind(
                on_release=lambda _btn, s=seconds: MDApp.get_running_app().start_rest(s)
            )
            presets.add_widget(button)
        return super().on_pre_enter(*args)

    def attach(self, coordinator: TimerCoordinator) -> None:
        coordinator.bind(
            on_workout_tick=lambda _c, elapsed: setattr(self, "workout_time", format_seconds(elapsed)),
            on_rest_tick=self._on_rest_tick,
            on_rest_complete=self._on_rest_complete,
            on_warmup_advanced=self._on_warmup_advanced,
            on_warmup_tick=lambda _c, left: setattr(self, "warmup_text", f"Warmup {format_seconds(left)}"),
            on_warmup_complete=self._on_warmup_complete,
        )

    def _on_rest_tick(self, _coordinator, remaining):
        self.resting = True
        self.rest_time = format_seconds(remaining)

    def _on_rest_complete(self, _coordinator, manual):
        self.resting = False
        self.rest_time = "0:00"
        if not manual:
            toast("Rest complete")

    def _on_warmup_advanced(self, coordinator, index, name, remaining):
        self.warmup_active = True
        self.warmup_waiting = True
        self.warmup_text = f"{name}: {format_seconds(remaining)}"

    def _on_warmup_complete(self, _coordinator):
        self.warmup_active = False
        self.warmup_waiting = False
        self.warmup_text = ""


class FitnessTrackerApp(MDApp):
    live_session: LiveSession | None = None
    coordinator: TimerCoordinator | None = None

    def build(self):
        init_database(DEFAULT_DB_PATH)
        return Builder.load_string(KV)

    def _new_coordinator(self) -> TimerCoordinator:
        if platform == "android" and settings.get_value("notifications_on"):
            notifier = AndroidNotifier()
        else:
            notifier = NullNotifier()
        coordinator = TimerCoordinator(notifier=notifier)
        self.root.get_screen("session").attach(coordinator)
        return coordinator

    def on_start(self):
        coordinator = self._new_coordinator()
        live = LiveSession.resume(coordinator, db_path=DEFAULT_DB_PATH)
        if live is not None:
            self._show_session(live)

    def on_pause(self):
        if self.coordinator is not None:
            self.coordinator.on_app_background()
        return True

    def on_resume(self):
        if self.coordinator is not None:
            self.coordinator.on_app_foreground()

    def _show_session(self, live: LiveSession) -> None:
        self.live_session = live
        self.coordinator = live.coordinator
        screen = self.root.get_screen("session")
        screen.session_name = live.session.name
        screen.paused = live.coordinator.workout.state == "paused"
        screen.timing = live.coordinator.workout.state != "idle"
        screen.warmup_active = live.coordinator.warmup.is_active
        screen.warmup_waiting = live.coordinator.warmup.state == "paused"
        if live.coordinator.warmup.is_empty:
            screen.warmup_text = "No warmups configured"
        self.root.current = "session"

    def start_workout(self, template_id):
        try:
            live = LiveSession.begin(
                template_id, self._new_coordinator(), db_path=DEFAULT_DB_PATH
            )
        except (SourceUnavailableError, SessionCreationError) as exc:
            logging.warning("Could not start workout: %s", exc)
            toast("Could not start workout, please try again")
            return
        self._show_session(live)

    def toggle_pause(self):
        workout = self.coordinator.workout
        screen = self.root.get_screen("session")
        if workout.is_running:
            workout.pause()
        else:
            workout.resume()
        screen.paused = not workout.is_running

    def start_rest(self, duration=None):
        self.coordinator.rest.restart(duration)

    def skip_rest(self):
        self.coordinator.rest.stop(manual=True)

    def start_warmup(self):
        self.coordinator.warmup.start_current()
        self.root.get_screen("session").warmup_waiting = False

    def skip_warmups(self):
        self.coordinator.warmup.cancel_all()

    def finish_workout(self):
        session = self.live_session.finish()
        toast(f"Workout saved ({format_seconds(session.duration_seconds or 0)})")
        self._leave_session()

    def cancel_workout(self):
        self.live_session.cancel()
        self._leave_session()

    def _leave_session(self):
        self.live_session = None
        self.coordinator = None
        self.root.current = "templates"


if __name__ == "__main__":
    FitnessTrackerApp().run()

import json

import pytest

from backend import settings
from backend.models import TimerSnapshot, Warmup
from backend.notifications import NotificationBridge
from backend.timers import (
    FINISHED,
    IDLE,
    NO_WARMUPS,
    PAUSED,
    RUNNING,
    InvalidTransitionError,
    format_seconds,
    load_snapshot,
    recovery_paths,
)


class BrokenNotifier(NotificationBridge):
    def schedule_one_shot(self, after_seconds, title, body, key="rest_timer"):
        raise RuntimeError("notifications disabled")

    def cancel_pending(self, key="rest_timer"):
        raise RuntimeError("notifications disabled")


def record(coordinator, *events):
    """Collect ``(event, args)`` for the given coordinator events."""
    seen = []
    for name in events:
        coordinator.bind(**{name: lambda _c, *args, name=name: seen.append((name, args))})
    return seen


def test_format_seconds():
    assert format_seconds(0) == "0:00"
    assert format_seconds(65.9) == "1:05"
    assert format_seconds(3600) == "60:00"
    assert format_seconds(-3) == "0:00"


# ----------------------------------------------------------------------
# Workout timer
# ----------------------------------------------------------------------


def test_workout_elapsed_excludes_paused_time(coordinator, clock):
    workout = coordinator.workout
    workout.start()
    clock.advance(10)
    assert workout.elapsed() == 10

    workout.pause()
    clock.advance(300)
    assert workout.elapsed() == 10
    assert workout.state == PAUSED

    workout.resume()
    assert workout.elapsed() == 10
    clock.advance(3)
    assert workout.elapsed() == 13

    assert workout.stop() == 13
    assert workout.state == IDLE
    assert workout.elapsed() == 0


def test_workout_invalid_transitions(coordinator):
    workout = coordinator.workout
    with pytest.raises(InvalidTransitionError):
        workout.pause()
    with pytest.raises(InvalidTransitionError):
        workout.resume()
    with pytest.raises(InvalidTransitionError):
        workout.stop()
    workout.start()
    with pytest.raises(InvalidTransitionError):
        workout.start()
    with pytest.raises(InvalidTransitionError):
        workout.resume()


def test_workout_ticks(coordinator, clock, scheduler):
    ticks = record(coordinator, "on_workout_tick")
    coordinator.workout.start()
    clock.advance(2.4)
    scheduler.tick()
    coordinator.workout.pause()
    scheduler.tick()
    assert ticks == [
        ("on_workout_tick", (0,)),
        ("on_workout_tick", (2,)),
        ("on_workout_tick", (2,)),
    ]


def test_workout_survives_process_restart(make_coordinator, clock):
    first = make_coordinator()
    first.workout.start()
    clock.advance(125)

    second = make_coordinator()
    assert second.restore()
    assert second.workout.state == RUNNING
    assert second.workout.elapsed() == 125


def test_paused_workout_survives_process_restart(make_coordinator, clock):
    first = make_coordinator()
    first.workout.start()
    clock.advance(30)
    first.workout.pause()
    clock.advance(600)

    second = make_coordinator()
    assert second.restore()
    assert second.workout.state == PAUSED
    assert second.workout.elapsed() == 30


# ----------------------------------------------------------------------
# Rest timer
# ----------------------------------------------------------------------


def test_rest_countdown(coordinator, clock, scheduler, notifier):
    events = record(coordinator, "on_rest_tick")
    coordinator.rest.start(90)
    clock.advance(10.5)
    scheduler.tick()

    assert coordinator.rest.remaining() == pytest.approx(79.5)
    assert events == [("on_rest_tick", (90,)), ("on_rest_tick", (80,))]
    assert notifier.scheduled == [
        (90, "Rest Timer Complete", "Time to start your next set!", "rest_timer")
    ]


def test_rest_uses_configured_default(make_coordinator):
    settings.set_value("rest_duration", 45)
    coordinator = make_coordinator()
    coordinator.rest.start()
    assert coordinator.rest.initial_duration == 45


def test_rest_default_duration(coordinator):
    coordinator.rest.start()
    assert coordinator.rest.initial_duration == 101


def test_rest_manual_stop(coordinator, notifier):
    events = record(coordinator, "on_rest_complete")
    coordinator.rest.start(30)
    coordinator.rest.stop()
    assert events == [("on_rest_complete", (True,))]
    assert coordinator.rest.state == IDLE
    assert "rest_timer" in notifier.cancelled
    assert notifier.pending == {}


def test_rest_natural_completion_fires_once(coordinator, clock):
    events = record(coordinator, "on_rest_complete")
    coordinator.rest.start(101)
    clock.advance(150)

    assert coordinator.rest.remaining() == 0
    assert coordinator.rest.remaining() == 0
    assert coordinator.rest.remaining() == 0
    assert events == [("on_rest_complete", (False,))]


def test_rest_completes_from_tick(coordinator, clock, scheduler):
    events = record(coordinator, "on_rest_complete", "on_rest_tick")
    coordinator.rest.start(5)
    clock.advance(6)
    scheduler.tick()
    scheduler.tick()
    assert events == [("on_rest_tick", (5,)), ("on_rest_complete", (False,))]
    assert scheduler.events == []


def test_rest_restart_replaces_countdown(coordinator, clock):
    events = record(coordinator, "on_rest_complete")
    coordinator.rest.start(60)
    clock.advance(20)
    coordinator.rest.restart(90)
    assert events == [("on_rest_complete", (True,))]
    assert coordinator.rest.remaining() == 90


def test_rest_invalid_transitions(coordinator):
    with pytest.raises(InvalidTransitionError):
        coordinator.rest.stop()
    with pytest.raises(ValueError):
        coordinator.rest.start(0)
    coordinator.rest.start(30)
    with pytest.raises(InvalidTransitionError):
        coordinator.rest.start(30)


def test_rest_expired_while_process_was_gone(make_coordinator, clock):
    first = make_coordinator()
    first.rest.start(60)
    clock.advance(90)

    second = make_coordinator()
    events = record(second, "on_rest_complete", "on_rest_tick")
    assert second.restore()

    assert second.rest.state == IDLE
    assert second.rest.remaining() == 0
    assert events == [("on_rest_complete", (False,))]
    assert load_snapshot(second.recovery_base).rest_timer_active is False


def test_rest_restored_mid_countdown(make_coordinator, clock):
    first = make_coordinator()
    first.rest.start(60)
    clock.advance(25)

    second = make_coordinator()
    assert second.restore()
    assert second.rest.state == RUNNING
    assert second.rest.remaining() == 35


def test_notification_failures_do_not_stop_rest(make_coordinator, clock):
    coordinator = make_coordinator(notifier=BrokenNotifier())
    events = record(coordinator, "on_rest_complete")
    coordinator.rest.start(30)
    assert coordinator.rest.state == RUNNING
    clock.advance(31)
    assert coordinator.rest.remaining() == 0
    assert events == [("on_rest_complete", (False,))]


# ----------------------------------------------------------------------
# Persistence
# ----------------------------------------------------------------------


def test_snapshot_written_to_both_files(coordinator, clock):
    coordinator.workout.start()
    coordinator.rest.start(60)

    first, second = recovery_paths(coordinator.recovery_base)
    data = json.loads(first.read_text())
    assert data == json.loads(second.read_text())
    assert data == coordinator.snapshot().to_dict()
    assert data["workout_segment_start_at"] == clock.now
    assert data["rest_initial_duration_seconds"] == 60


def test_load_snapshot_falls_back_to_backup(coordinator):
    coordinator.workout.start()
    first, _second = recovery_paths(coordinator.recovery_base)

    first.write_text("{not json")
    assert load_snapshot(coordinator.recovery_base) == coordinator.snapshot()

    first.unlink()
    assert load_snapshot(coordinator.recovery_base) == coordinator.snapshot()


def test_restore_without_files(coordinator):
    assert load_snapshot(coordinator.recovery_base) is None
    assert not coordinator.restore()


def test_snapshot_ignores_unknown_keys():
    snapshot = TimerSnapshot.from_dict({"workout_timer_active": True, "extra": 1})
    assert snapshot.workout_timer_active
    assert snapshot.rest_segment_start_at is None


def test_persist_failure_keeps_timers_running(make_coordinator, tmp_path, clock):
    blocker = tmp_path / "blocker"
    blocker.write_text("")
    coordinator = make_coordinator(recovery_base=blocker / "timer_state")

    coordinator.workout.start()
    clock.advance(5)

    assert coordinator.workout.state == RUNNING
    assert coordinator.workout.elapsed() == 5


def test_background_reschedules_notification(coordinator, clock, notifier):
    coordinator.rest.start(100)
    clock.advance(40)

    coordinator.on_app_background()

    assert notifier.scheduled[-1][0] == pytest.approx(60)
    assert notifier.pending == {"rest_timer": pytest.approx(60)}
    assert load_snapshot(coordinator.recovery_base).rest_timer_active


def test_foreground_restores_fresh_process(make_coordinator, clock):
    first = make_coordinator()
    first.workout.start()
    first.rest.start(60)
    clock.advance(20)

    second = make_coordinator()
    events = record(second, "on_workout_tick", "on_rest_tick")
    second.on_app_foreground()

    assert events == [("on_workout_tick", (20,)), ("on_rest_tick", (40,))]


def test_foreground_refreshes_running_timers(coordinator, clock):
    coordinator.workout.start()
    events = record(coordinator, "on_workout_tick")
    clock.advance(42)
    coordinator.on_app_foreground()
    assert events == [("on_workout_tick", (42,))]


def test_reset_clears_everything(coordinator, notifier):
    coordinator.workout.start()
    coordinator.rest.start(60)
    coordinator.warmup.begin([Warmup("Jacks", 20)])
    events = record(coordinator, "on_rest_complete", "on_warmup_complete")

    coordinator.reset()

    assert coordinator.workout.state == IDLE
    assert coordinator.rest.state == IDLE
    assert not coordinator.warmup.is_active
    assert notifier.pending == {}
    assert events == []
    assert not any(path.exists() for path in recovery_paths(coordinator.recovery_base))


def test_visible_timer(coordinator):
    assert coordinator.visible_timer is None
    coordinator.workout.start()
    assert coordinator.visible_timer == "workout"
    coordinator.rest.start(60)
    assert coordinator.visible_timer == "rest"
    coordinator.warmup.begin(["Jacks"])
    assert coordinator.visible_timer == "warmup"
    coordinator.warmup.cancel_all()
    assert coordinator.visible_timer == "rest"


# ----------------------------------------------------------------------
# Warmups
# ----------------------------------------------------------------------


def test_empty_warmup_list(coordinator):
    events = record(coordinator, "on_warmup_advanced", "on_warmup_complete")
    coordinator.warmup.begin([])

    assert coordinator.warmup.state == NO_WARMUPS
    assert coordinator.warmup.is_empty
    assert coordinator.warmup.current_name is None
    with pytest.raises(InvalidTransitionError):
        coordinator.warmup.start_current()

    coordinator.warmup.cancel_all()
    assert coordinator.warmup.state == FINISHED
    assert events == [("on_warmup_complete", ())]


def test_warmup_sequence(coordinator, clock, scheduler):
    events = record(
        coordinator, "on_warmup_advanced", "on_warmup_tick", "on_warmup_complete"
    )
    warmup = coordinator.warmup
    warmup.begin([("Arm circles", 10), Warmup("Jacks", 20)])
    assert warmup.state == PAUSED
    assert warmup.current_name == "Arm circles"
    clock.advance(100)
    assert warmup.remaining() == 10

    warmup.start_current()
    clock.advance(4)
    scheduler.tick()
    assert warmup.remaining() == 6

    clock.advance(6)
    assert warmup.remaining() == 20
    assert warmup.state == PAUSED
    assert warmup.is_last

    warmup.start_current()
    clock.advance(25)
    scheduler.tick()

    assert warmup.state == FINISHED
    assert events == [
        ("on_warmup_advanced", (0, "Arm circles", 10)),
        ("on_warmup_tick", (6,)),
        ("on_warmup_advanced", (1, "Jacks", 20)),
        ("on_warmup_complete", ()),
    ]


def test_warmup_manual_advance(coordinator):
    warmup = coordinator.warmup
    warmup.begin(["A", "B"], [30, 40])
    assert [w.duration_seconds for w in warmup.warmups] == [30, 40]
    warmup.advance()
    assert warmup.current_name == "B"
    warmup.advance()
    assert warmup.state == FINISHED
    with pytest.raises(InvalidTransitionError):
        warmup.advance()


def test_warmup_mismatched_durations_use_default(coordinator):
    coordinator.warmup.begin(["A", "B"], [30])
    assert coordinator.warmup.warmups == [Warmup("A", 15), Warmup("B", 15)]


def test_warmup_begin_twice(coordinator):
    coordinator.warmup.begin(["A"])
    with pytest.raises(InvalidTransitionError):
        coordinator.warmup.begin(["B"])


def test_warmups_are_not_persisted(coordinator):
    coordinator.warmup.begin(["A"])
    coordinator.warmup.start_current()
    coordinator.persist()
    assert load_snapshot(coordinator.recovery_base) == TimerSnapshot()


def test_workout_start_from_earlier_time(coordinator, clock):
    ticks = record(coordinator, "on_workout_tick")
    coordinator.workout.start(started_at=clock.now - 90)
    assert coordinator.workout.elapsed() == 90
    assert ticks == [("on_workout_tick", (90,))]


def test_workout_start_ignores_future_time(coordinator, clock):
    coordinator.workout.start(started_at=clock.now + 50)
    assert coordinator.workout.elapsed() == 0

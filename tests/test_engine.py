from datetime import timedelta

import pytest

from countdown.engine import AlarmSettings, CountdownEngine, TimerObserver, TimerPhase
from countdown.parser import InvalidSpecification, RelativeSeconds, ResolvedDeadline, resolve
from countdown.sounds import SILENT


class RecordingObserver(TimerObserver):
    def __init__(self, visible=True):
        self.visible = visible
        self.deadlines = []
        self.phases = []
        self.ticks = []

    def on_deadline_changed(self, deadline):
        self.deadlines.append(deadline)

    def on_phase_changed(self, phase):
        self.phases.append(phase)

    def on_tick(self, remaining):
        self.ticks.append(remaining)


def _arm(engine, loop, seconds):
    deadline = resolve(RelativeSeconds(seconds), loop.now())
    engine.arm(deadline)
    return deadline


def test_alarm_fires_once_at_deadline(engine, loop, notifier, sound_player):
    _arm(engine, loop, 5)
    loop.advance(4.9)
    assert notifier.deliveries == []
    assert engine.phase == TimerPhase.RUNNING

    loop.advance(0.2)
    assert engine.phase == TimerPhase.ALARMING
    assert notifier.deliveries == [("It's time!", "Timer finished", True, 5.0)]
    assert sound_player.played == [0]

    loop.advance(60)
    engine.tick()
    assert len(notifier.deliveries) == 1
    assert sound_player.played == [0]


def test_rearm_fires_only_the_new_deadline(engine, loop, notifier):
    _arm(engine, loop, 10)
    loop.advance(3)
    _arm(engine, loop, 5)

    loop.advance(4.9)
    assert notifier.deliveries == []
    loop.advance(0.2)
    assert [d[3] for d in notifier.deliveries] == [8.0]

    loop.advance(30)
    assert len(notifier.deliveries) == 1


def test_cancel_suppresses_alarm(engine, loop, notifier, sound_player):
    _arm(engine, loop, 5)
    engine.cancel()
    loop.advance(60)
    assert engine.phase == TimerPhase.IDLE
    assert engine.deadline is None
    assert notifier.deliveries == []
    assert sound_player.played == []


def test_cancel_when_idle_is_noop(engine):
    engine.cancel()
    assert engine.phase == TimerPhase.IDLE


def test_past_deadline_is_rejected_without_state_change(engine, loop):
    past = ResolvedDeadline(at=loop.now() - timedelta(seconds=1), spec=RelativeSeconds(1))
    with pytest.raises(InvalidSpecification):
        engine.arm(past)
    assert engine.phase == TimerPhase.IDLE
    assert engine.deadline is None
    assert loop.scheduled() == []


def test_past_deadline_keeps_running_timer(engine, loop):
    current = _arm(engine, loop, 30)
    with pytest.raises(InvalidSpecification):
        engine.arm(ResolvedDeadline(at=loop.now(), spec=RelativeSeconds(1)))
    assert engine.deadline == current
    assert engine.phase == TimerPhase.RUNNING


def test_notification_failure_still_rings(engine, loop, notifier, sound_player):
    notifier.fail = True
    _arm(engine, loop, 1)
    loop.advance(1)
    assert engine.phase == TimerPhase.ALARMING
    assert sound_player.played == [0]


def test_silent_alarm_disables_notification_sound(loop, notifier, sound_player):
    engine = CountdownEngine(
        notifier, sound_player, loop, clock=loop.now, alarm=AlarmSettings(title="Tea", message="Ready", sound_id=SILENT)
    )
    _arm(engine, loop, 2)
    loop.advance(2)
    assert notifier.deliveries == [("Tea", "Ready", False, 2.0)]
    assert sound_player.played == [SILENT]


def test_observers_see_transitions_and_ticks(engine, loop):
    observer = RecordingObserver(visible=True)
    engine.add_observer(observer)
    deadline = _arm(engine, loop, 3)
    loop.advance(3)

    assert observer.deadlines == [deadline]
    assert observer.phases == [TimerPhase.RUNNING, TimerPhase.ALARMING]
    assert observer.ticks == [timedelta(seconds=2), timedelta(seconds=1), timedelta(0)]

    engine.cancel()
    assert observer.deadlines[-1] is None
    assert observer.phases[-1] == TimerPhase.IDLE


def test_failing_observer_does_not_block_alarm(engine, loop, notifier):
    class Broken(TimerObserver):
        def on_phase_changed(self, phase):
            raise RuntimeError("boom")

    engine.add_observer(Broken())
    _arm(engine, loop, 1)
    loop.advance(1)
    assert len(notifier.deliveries) == 1


def test_hidden_timer_wakes_rarely(loop, notifier, sound_player):
    engine = CountdownEngine(notifier, sound_player, loop, clock=loop.now, hidden_tick_interval=30)
    _arm(engine, loop, 100)
    assert loop.scheduled() == [30.0]
    loop.advance(90)
    assert loop.scheduled() == [100.0]
    loop.advance(10)
    assert len(notifier.deliveries) == 1


def test_visible_timer_ticks_on_second_boundaries(engine, loop):
    engine.add_observer(RecordingObserver(visible=True))
    _arm(engine, loop, 2.5)
    assert loop.scheduled() == [0.5]


def test_start_without_duration_fails(engine):
    with pytest.raises(InvalidSpecification):
        engine.start()


def test_toggle_starts_and_cancels(engine, loop):
    engine.set_duration(10)
    assert engine.remaining == timedelta(seconds=10)

    engine.toggle()
    assert engine.phase == TimerPhase.RUNNING
    assert engine.deadline.at == loop.now() + timedelta(seconds=10)

    loop.advance(4)
    engine.toggle()
    assert engine.phase == TimerPhase.IDLE


def test_start_while_running_is_noop(engine, loop):
    deadline = _arm(engine, loop, 20)
    loop.advance(5)
    engine.start()
    assert engine.deadline == deadline


def test_start_after_cancel_reuses_duration(engine, loop):
    _arm(engine, loop, 20)
    engine.cancel()
    loop.advance(5)
    engine.start()
    assert engine.deadline.at == loop.now() + timedelta(seconds=20)


def test_rearm_while_alarming_stops_sound(engine, loop, sound_player):
    _arm(engine, loop, 1)
    loop.advance(1)
    assert engine.phase == TimerPhase.ALARMING
    _arm(engine, loop, 5)
    assert sound_player.stops == 1
    assert engine.phase == TimerPhase.RUNNING


def test_state_snapshot(engine, loop):
    _arm(engine, loop, 10)
    loop.advance(4)
    state = engine.state
    assert state.phase == TimerPhase.RUNNING
    assert state.remaining == timedelta(seconds=6)


def test_removed_observer_is_not_called(engine, loop):
    observer = RecordingObserver(visible=True)
    engine.add_observer(observer)
    engine.remove_observer(observer)
    assert not engine.visible
    _arm(engine, loop, 2)
    loop.advance(2)
    assert observer.phases == []

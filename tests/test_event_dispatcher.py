"""Tests for EventDispatcher tick and cursor behavior."""

import pytest

from event_dispatcher import EventDispatcher, first_index_at_or_after
from lightshow_models import LightAction, LightingEvent, Reactor
from playback_clock import CURSOR_UNINITIALIZED, PlaybackSample


def event(time_ms: float, reactor: Reactor = Reactor.CENTER_LIGHT, action: LightAction = LightAction.BLUE_ON):
    return LightingEvent(time_ms=time_ms, reactor=reactor, action=action)


def sample(paused: bool, seconds: float, at_ms: float) -> PlaybackSample:
    return PlaybackSample.from_feed(paused=paused, current_time_seconds=seconds, observed_at_ms=at_ms)


@pytest.fixture
def events():
    return [event(float(time_ms)) for time_ms in (0, 250, 500, 500, 1000, 1750, 3000, 4500)]


@pytest.fixture
def dispatcher(events):
    instance = EventDispatcher()
    instance.replace_sequence(events)
    return instance


def collect(instance: EventDispatcher):
    received = []
    instance.subscribe(received.append)
    return received


class TestNoOps:
    def test_empty_sequence(self):
        instance = EventDispatcher()
        instance.on_sample(sample(False, 0.0, 0.0))

        assert instance.tick(100_000.0) == []

    def test_uninitialized_cursor(self, dispatcher):
        assert dispatcher.cursor_index() == CURSOR_UNINITIALIZED
        assert dispatcher.tick(100_000.0) == []

    def test_paused(self, dispatcher):
        dispatcher.on_sample(sample(False, 0.0, 0.0))
        dispatcher.on_sample(sample(True, 0.1, 100.0))

        assert dispatcher.tick(10_000.0) == []


class TestDispatch:
    def test_every_event_once_in_order(self, dispatcher, events):
        received = collect(dispatcher)
        dispatcher.on_sample(sample(False, 0.0, 1000.0))

        for now_ms in range(1000, 7000, 16):
            dispatcher.tick(float(now_ms))

        assert received == events
        assert dispatcher.cursor_index() == len(events)

    def test_stops_at_first_future_event(self, dispatcher):
        dispatcher.on_sample(sample(False, 0.0, 0.0))
        dispatched = dispatcher.tick(600.0)

        assert [item.time_ms for item in dispatched] == [0.0, 250.0, 500.0, 500.0]
        assert dispatcher.cursor_index() == 4

    def test_sparse_samples_do_not_duplicate(self, dispatcher, events):
        received = collect(dispatcher)
        dispatcher.on_sample(sample(False, 0.0, 0.0))
        dispatcher.tick(1100.0)
        dispatcher.on_sample(sample(False, 1.2, 1200.0))
        dispatcher.tick(5000.0)

        assert received == events

    def test_backward_jump_replays_from_new_position(self, dispatcher):
        received = collect(dispatcher)
        dispatcher.on_sample(sample(False, 0.0, 0.0))
        dispatcher.tick(5000.0)
        dispatcher.on_sample(sample(False, 5.0, 5000.0))
        received.clear()

        dispatcher.on_sample(sample(False, 0.0, 5100.0))
        assert dispatcher.cursor_index() == 0

        dispatcher.tick(5100.0)
        assert [item.time_ms for item in received] == [0.0]

    def test_sparse_backward_seek_replays_extrapolated_events(self):
        instance = EventDispatcher()
        instance.replace_sequence([event(5500.0), event(6500.0), event(7500.0)])
        received = collect(instance)
        instance.on_sample(sample(False, 5.0, 0.0))
        instance.tick(3000.0)
        assert [item.time_ms for item in received] == [5500.0, 6500.0, 7500.0]
        received.clear()

        outcome = instance.on_sample(sample(False, 6.0, 3000.0))
        assert outcome.restarted
        assert instance.cursor_index() == 1

        instance.tick(4600.0)
        assert [item.time_ms for item in received] == [6500.0, 7500.0]

    def test_seek_forward_skips_past_events(self, dispatcher):
        received = collect(dispatcher)
        dispatcher.on_sample(sample(False, 0.0, 0.0))
        dispatcher.on_sample(sample(True, 0.0, 10.0))
        dispatcher.on_sample(sample(False, 2.0, 20.0))

        dispatcher.tick(20.0)
        assert received == []
        dispatcher.tick(1020.0)
        assert [item.time_ms for item in received] == [3000.0]

    def test_replace_sequence_resets_cursor(self, dispatcher):
        dispatcher.on_sample(sample(False, 0.0, 0.0))
        dispatcher.tick(300.0)
        dispatcher.replace_sequence([event(100.0)])

        assert dispatcher.cursor_index() == CURSOR_UNINITIALIZED
        assert dispatcher.tick(5000.0) == []

    def test_replace_sequence_sorts(self):
        instance = EventDispatcher()
        instance.replace_sequence([event(300.0), event(100.0), event(200.0)])

        assert [item.time_ms for item in instance.events()] == [100.0, 200.0, 300.0]

    def test_failing_subscriber_does_not_block_others(self, dispatcher, events):
        def explode(_event):
            raise RuntimeError("boom")

        dispatcher.subscribe(explode)
        received = collect(dispatcher)
        dispatcher.on_sample(sample(False, 0.0, 0.0))
        dispatcher.tick(10_000.0)

        assert received == events

    def test_unsubscribe(self, dispatcher):
        received = collect(dispatcher)
        dispatcher.unsubscribe(received.append)
        dispatcher.on_sample(sample(False, 0.0, 0.0))
        dispatcher.tick(10_000.0)

        assert received == []

    def test_clock_state_snapshot(self, dispatcher):
        dispatcher.on_sample(sample(False, 1.0, 500.0))
        state = dispatcher.clock_state()

        assert state.is_playing
        assert state.last_known_position_ms == 1000.0
        assert state.last_update_wall_clock_ms == 500.0
        assert state.cursor_index == 4


def test_first_index_at_or_after():
    times = (0.0, 100.0, 100.0, 200.0)
    assert first_index_at_or_after(times, 100.0) == 1
    assert first_index_at_or_after(times, 150.0) == 3
    assert first_index_at_or_after(times, 999.0) == 4

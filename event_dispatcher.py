# -*- coding: utf-8 -*-
########################
# event_dispatcher.py
########################
# Purpose:
# - Walk the sorted lighting event sequence against the playback clock once per tick.
# - Emit each due event exactly once, in ascending time order, to every subscriber.
#
# Design notes:
# - No Qt usage. Pure scheduling logic; the caller owns the tick cadence.
# - The event sequence and its cursor live in one timeline object that is swapped as a whole,
#   so a tick never sees a new sequence paired with an old cursor.
# - A fresh sequence starts with the cursor uninitialized. Only a detected restart positions it.
# - On restart the cursor is found by binary search, never reset to 0 or left in place.
# - A failing subscriber is logged and skipped; dispatch continues.
#
########################
# Interfaces:
# Public classes:
# - class EventDispatcher
#   - __init__(clock: Optional[PlaybackClock] = None)
#   - clock() -> PlaybackClock
#   - events() -> tuple[LightingEvent, ...]
#   - cursor_index() -> int
#   - clock_state() -> ClockState
#   - subscribe(callback: Callable[[LightingEvent], None]) -> None
#   - unsubscribe(callback: Callable[[LightingEvent], None]) -> None
#   - replace_sequence(events: Iterable[LightingEvent]) -> None
#   - clear() -> None
#   - on_sample(sample: PlaybackSample, *, now_ms: Optional[float] = None) -> SampleOutcome
#   - seek(song_time_ms: float) -> int
#   - tick(now_ms: float) -> list[LightingEvent]
#
# Public functions:
# - first_index_at_or_after(times: Sequence[float], song_time_ms: float) -> int
#
# Inputs:
# - EventSequence from BeatmapLoader, PlaybackSample from the playback feed, tick instants.
#
# Outputs:
# - LightingEvent callbacks to subscribers (ReactorAnimator.on_event via LightmapSource).
#
########################

from __future__ import annotations

import bisect
import logging
from typing import Callable, Iterable, List, Optional, Sequence, Tuple

from lightshow_models import LightingEvent, Reactor, LightAction
from playback_clock import CURSOR_UNINITIALIZED, ClockState, PlaybackClock, PlaybackSample, SampleOutcome


logger = logging.getLogger(__name__)


EventCallback = Callable[[LightingEvent], None]


def first_index_at_or_after(times: Sequence[float], song_time_ms: float) -> int:
    return bisect.bisect_left(times, float(song_time_ms))


class _Timeline:
    __slots__ = ("events", "times", "cursor_index")

    def __init__(self, events: Tuple[LightingEvent, ...]) -> None:
        self.events = events
        self.times = tuple(float(event.time_ms) for event in events)
        self.cursor_index = CURSOR_UNINITIALIZED


class EventDispatcher:
    def __init__(self, clock: Optional[PlaybackClock] = None) -> None:
        self._clock = clock if clock is not None else PlaybackClock()
        self._timeline = _Timeline(())
        self._subscribers: List[EventCallback] = []

    def clock(self) -> PlaybackClock:
        return self._clock

    def events(self) -> Tuple[LightingEvent, ...]:
        return self._timeline.events

    def cursor_index(self) -> int:
        return int(self._timeline.cursor_index)

    def clock_state(self) -> ClockState:
        return ClockState(
            is_playing=self._clock.is_playing(),
            last_known_position_ms=self._clock.last_known_position_ms(),
            last_update_wall_clock_ms=self._clock.last_update_wall_clock_ms(),
            cursor_index=self.cursor_index(),
        )

    def subscribe(self, callback: EventCallback) -> None:
        if callback not in self._subscribers:
            self._subscribers.append(callback)

    def unsubscribe(self, callback: EventCallback) -> None:
        if callback in self._subscribers:
            self._subscribers.remove(callback)

    def replace_sequence(self, events: Iterable[LightingEvent]) -> None:
        ordered = tuple(sorted(events, key=lambda event: event.time_ms))
        self._timeline = _Timeline(ordered)

    def clear(self) -> None:
        self._timeline = _Timeline(())

    def on_sample(self, sample: PlaybackSample, *, now_ms: Optional[float] = None) -> SampleOutcome:
        outcome = self._clock.on_sample(sample)
        if outcome.restarted:
            reference_ms = float(sample.observed_at_ms) if now_ms is None else float(now_ms)
            song_time_ms = self._clock.estimate_current_time_ms(reference_ms)
            cursor_index = self.seek(song_time_ms)
            logger.debug("Song restarted at %.1f ms, cursor -> %d", song_time_ms, cursor_index)
        return outcome

    def seek(self, song_time_ms: float) -> int:
        timeline = self._timeline
        timeline.cursor_index = first_index_at_or_after(timeline.times, song_time_ms)
        return int(timeline.cursor_index)

    def tick(self, now_ms: float) -> List[LightingEvent]:
        timeline = self._timeline
        if not timeline.events:
            return []
        if not self._clock.is_playing():
            return []
        if timeline.cursor_index == CURSOR_UNINITIALIZED:
            return []

        song_time_ms = self._clock.estimate_current_time_ms(now_ms)
        dispatched: List[LightingEvent] = []

        while timeline.cursor_index < len(timeline.events):
            event = timeline.events[timeline.cursor_index]
            if event.time_ms > song_time_ms:
                break

            timeline.cursor_index += 1
            dispatched.append(event)
            self._emit(event)

            # A subscriber replaced the sequence. The new timeline waits for its own restart.
            if self._timeline is not timeline:
                break

        return dispatched

    def _emit(self, event: LightingEvent) -> None:
        for callback in list(self._subscribers):
            try:
                callback(event)
            except Exception:
                logger.exception("Lighting event subscriber failed for %s at %.1f ms", event.action.value, event.time_ms)


def _run_unit_tests() -> None:
    events = [
        LightingEvent(time_ms=500.0, reactor=Reactor.LEFT_LASER, action=LightAction.BLUE_ON),
        LightingEvent(time_ms=100.0, reactor=Reactor.CENTER_LIGHT, action=LightAction.RED_FLASH),
        LightingEvent(time_ms=500.0, reactor=Reactor.RIGHT_LASER, action=LightAction.OFF),
    ]
    received: List[LightingEvent] = []
    dispatcher = EventDispatcher()
    dispatcher.subscribe(received.append)
    dispatcher.replace_sequence(events)

    assert dispatcher.tick(0.0) == []
    dispatcher.on_sample(PlaybackSample.from_feed(paused=False, current_time_seconds=0.0, observed_at_ms=1000.0))
    assert dispatcher.cursor_index() == 0

    dispatcher.tick(1200.0)
    assert [event.time_ms for event in received] == [100.0]
    dispatcher.tick(1600.0)
    assert [event.reactor for event in received[1:]] == [Reactor.LEFT_LASER, Reactor.RIGHT_LASER]
    assert dispatcher.tick(5000.0) == []

    dispatcher.on_sample(PlaybackSample.from_feed(paused=False, current_time_seconds=4.5, observed_at_ms=5500.0))
    assert dispatcher.cursor_index() == 3
    dispatcher.on_sample(PlaybackSample.from_feed(paused=False, current_time_seconds=0.2, observed_at_ms=6000.0))
    assert dispatcher.cursor_index() == 1


if __name__ == "__main__":
    _run_unit_tests()
    print("event_dispatcher.py: ok")

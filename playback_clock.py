# -*- coding: utf-8 -*-
########################
# playback_clock.py
########################
# Purpose:
# - Single source of truth for song time in the lighting pipeline.
# - Extrapolates song position between sparse player samples and detects restarts and seeks.
#
# Design notes:
# - No Qt usage. Keep this module pure and deterministic. Wall clock is always passed in.
# - While paused the estimate holds still. While playing it advances with wall clock.
# - Restart: stopped -> playing, or a reported position earlier than the position extrapolated
#   for the sample's observation instant by more than seek_tolerance_ms.
# - Samples stamped at receipt may trail the extrapolation by up to seek_tolerance_ms without restarting.
# - Player positions are clamped to non-negative.
#
########################
# Interfaces:
# Public constants:
# - CURSOR_UNINITIALIZED = -1
# - DEFAULT_SEEK_TOLERANCE_MS = 50.0
#
# Public dataclasses:
# - PlaybackSample(paused: bool, position_ms: float, observed_at_ms: float)
#   - from_feed(*, paused: bool, current_time_seconds: float, observed_at_ms: float) -> PlaybackSample
# - SampleOutcome(restarted: bool)
# - ClockState(is_playing: bool, last_known_position_ms: float, last_update_wall_clock_ms: float, cursor_index: int)
#
# Public classes:
# - class PlaybackClock(seek_tolerance_ms: float = DEFAULT_SEEK_TOLERANCE_MS)
#   - is_playing() -> bool
#   - last_known_position_ms() -> float
#   - last_update_wall_clock_ms() -> float
#   - on_sample(sample: PlaybackSample) -> SampleOutcome
#   - estimate_current_time_ms(now_ms: float) -> float
#   - reset() -> None
#
# Public functions:
# - monotonic_ms() -> float
#
# Inputs:
# - PlaybackSample from the playback status feed ({paused, currentTime} in seconds).
#
# Outputs:
# - Estimated song time in milliseconds, used by EventDispatcher.
#
########################

from __future__ import annotations

import time
from dataclasses import dataclass


CURSOR_UNINITIALIZED = -1
DEFAULT_SEEK_TOLERANCE_MS = 50.0


def monotonic_ms() -> float:
    return time.monotonic() * 1000.0


@dataclass(frozen=True)
class PlaybackSample:
    paused: bool
    position_ms: float
    observed_at_ms: float

    @classmethod
    def from_feed(cls, *, paused: bool, current_time_seconds: float, observed_at_ms: float) -> "PlaybackSample":
        return cls(
            paused=bool(paused),
            position_ms=float(current_time_seconds) * 1000.0,
            observed_at_ms=float(observed_at_ms),
        )


@dataclass(frozen=True)
class SampleOutcome:
    restarted: bool


@dataclass(frozen=True)
class ClockState:
    is_playing: bool
    last_known_position_ms: float
    last_update_wall_clock_ms: float
    cursor_index: int


class PlaybackClock:
    def __init__(self, seek_tolerance_ms: float = DEFAULT_SEEK_TOLERANCE_MS) -> None:
        if float(seek_tolerance_ms) < 0.0:
            raise ValueError(f"seek_tolerance_ms must be >= 0, got: {seek_tolerance_ms!r}")
        self._seek_tolerance_ms = float(seek_tolerance_ms)
        self._is_playing = False
        self._last_known_position_ms = 0.0
        self._last_update_wall_clock_ms = 0.0

    def is_playing(self) -> bool:
        return bool(self._is_playing)

    def last_known_position_ms(self) -> float:
        return float(self._last_known_position_ms)

    def last_update_wall_clock_ms(self) -> float:
        return float(self._last_update_wall_clock_ms)

    def on_sample(self, sample: PlaybackSample) -> SampleOutcome:
        position_ms = float(sample.position_ms)
        if position_ms < 0.0:
            position_ms = 0.0

        # Compare against where the previous sample says the song should be now, before overwriting it.
        expected_ms = self.estimate_current_time_ms(sample.observed_at_ms)

        restarted = False
        if not self._is_playing and not sample.paused:
            restarted = True
        if position_ms < expected_ms - self._seek_tolerance_ms:
            restarted = True

        self._is_playing = not bool(sample.paused)
        self._last_known_position_ms = position_ms
        self._last_update_wall_clock_ms = float(sample.observed_at_ms)

        return SampleOutcome(restarted=restarted)

    def estimate_current_time_ms(self, now_ms: float) -> float:
        if not self._is_playing:
            return float(self._last_known_position_ms)
        elapsed_ms = float(now_ms) - float(self._last_update_wall_clock_ms)
        return float(self._last_known_position_ms) + elapsed_ms

    def reset(self) -> None:
        self._is_playing = False
        self._last_known_position_ms = 0.0
        self._last_update_wall_clock_ms = 0.0


def _run_unit_tests() -> None:
    clock = PlaybackClock()
    assert clock.estimate_current_time_ms(1000.0) == 0.0

    outcome = clock.on_sample(PlaybackSample.from_feed(paused=False, current_time_seconds=1.5, observed_at_ms=10_000.0))
    assert outcome.restarted
    assert abs(clock.estimate_current_time_ms(10_250.0) - 1750.0) < 1e-9

    outcome = clock.on_sample(PlaybackSample.from_feed(paused=False, current_time_seconds=2.0, observed_at_ms=10_500.0))
    assert not outcome.restarted

    outcome = clock.on_sample(PlaybackSample.from_feed(paused=True, current_time_seconds=2.1, observed_at_ms=10_600.0))
    assert not outcome.restarted
    assert clock.estimate_current_time_ms(99_999.0) == 2100.0

    outcome = clock.on_sample(PlaybackSample.from_feed(paused=False, current_time_seconds=0.0, observed_at_ms=11_000.0))
    assert outcome.restarted

    # Seek back inside the extrapolation window: 6.0 s reported where 8.0 s was expected.
    clock.on_sample(PlaybackSample.from_feed(paused=False, current_time_seconds=5.0, observed_at_ms=20_000.0))
    outcome = clock.on_sample(PlaybackSample.from_feed(paused=False, current_time_seconds=6.0, observed_at_ms=23_000.0))
    assert outcome.restarted


if __name__ == "__main__":
    _run_unit_tests()
    print("playback_clock.py: ok")

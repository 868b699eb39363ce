# -*- coding: utf-8 -*-
########################
# reactor_animator.py
########################
# Purpose:
# - Per-fixture reaction to lighting events.
# - Maps a LightingEvent to a color change plus a scalar property interpolation and runs it to completion.
#
# Design notes:
# - No Qt usage. The owner calls pulse(now_ms) at a fixed cadence (60 Hz in LightmapSource).
# - One animation per fixture. Starting a new one replaces the running one before anything is written.
# - cancel() is synchronous and idempotent.
# - Color changes are instantaneous. All sink writes use immediate=True.
# - The fixture's cached color and property values live in a FixtureState owned by the animator.
#
########################
# Interfaces:
# Public protocols:
# - PropertySink: update(object_id: str, properties: dict[str, float | str], immediate: bool) -> None
#
# Public enums:
# - class AnimatorPhase(str, Enum): IDLE | RUNNING
#
# Public dataclasses:
# - FixtureState(color: Optional[str], properties: dict[str, float])
# - PropertyAnimation(target_property: str, start_value: float, end_value: float, duration_ms: float, started_at_ms: float)
#   - progress(now_ms: float) -> float
#   - value_at(now_ms: float) -> float
#
# Public functions:
# - target_property_for_kind(fixture_kind: str) -> str
#
# Public classes:
# - class ReactorAnimator
#   - on_event(event: LightingEvent, now_ms: float) -> bool
#   - apply_action(action: LightAction, now_ms: float) -> None
#   - animate_property(name: str, start_value: float, end_value: float, duration_ms: float, now_ms: float) -> None
#   - pulse(now_ms: float) -> None
#   - cancel() -> None
#
# Inputs:
# - LightingEvent from EventDispatcher, wall clock instants in milliseconds.
#
# Outputs:
# - Property updates written to the PropertySink.
#
########################

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, Optional, Protocol, runtime_checkable

import lightshow_models
from lightshow_models import LightAction, LightingEvent, ReactorChannel, UnknownEventAction


logger = logging.getLogger(__name__)


PROPERTY_INTENSITY = "intensity"
PROPERTY_OPACITY = "opacity"

_LIGHT_KINDS = frozenset({"point-light", "spot-light"})


@runtime_checkable
class PropertySink(Protocol):
    def update(self, object_id: str, properties: Dict[str, Any], immediate: bool) -> None:
        ...


class AnimatorPhase(str, Enum):
    IDLE = "IDLE"
    RUNNING = "RUNNING"


@dataclass
class FixtureState:
    color: Optional[str] = None
    properties: Dict[str, float] = field(default_factory=dict)

    def live_value(self, name: str) -> float:
        return float(self.properties.get(name, 0.0))


@dataclass(frozen=True)
class PropertyAnimation:
    target_property: str
    start_value: float
    end_value: float
    duration_ms: float
    started_at_ms: float

    def progress(self, now_ms: float) -> float:
        if self.duration_ms <= 0.0:
            return 1.0
        elapsed_ms = float(now_ms) - self.started_at_ms
        return min(max(elapsed_ms / self.duration_ms, 0.0), 1.0)

    def value_at(self, now_ms: float) -> float:
        return self.start_value + (self.end_value - self.start_value) * self.progress(now_ms)

    def is_complete(self, now_ms: float) -> bool:
        return float(now_ms) - self.started_at_ms >= self.duration_ms


def target_property_for_kind(fixture_kind: str) -> str:
    if str(fixture_kind or "").strip().lower() in _LIGHT_KINDS:
        return PROPERTY_INTENSITY
    return PROPERTY_OPACITY


class ReactorAnimator:
    """Drives one scene object from lighting events on a single channel."""

    def __init__(
        self,
        *,
        object_id: str,
        sink: PropertySink,
        channel: ReactorChannel = ReactorChannel.DISABLED,
        fixture_kind: str = "",
        intensity_multiplier: float = 1.0,
        state: Optional[FixtureState] = None,
    ) -> None:
        self._object_id = str(object_id)
        self._sink = sink
        self._channel = ReactorChannel(channel)
        self._fixture_kind = str(fixture_kind or "")
        self._intensity_multiplier = 1.0
        self.set_intensity_multiplier(intensity_multiplier)
        self._state = state if state is not None else FixtureState()
        self._animation: Optional[PropertyAnimation] = None

    @property
    def object_id(self) -> str:
        return self._object_id

    @property
    def channel(self) -> ReactorChannel:
        return self._channel

    @property
    def fixture_kind(self) -> str:
        return self._fixture_kind

    @property
    def intensity_multiplier(self) -> float:
        return self._intensity_multiplier

    @property
    def state(self) -> FixtureState:
        return self._state

    def set_intensity_multiplier(self, intensity_multiplier: float) -> None:
        value = float(intensity_multiplier)
        if value < 0.0:
            raise ValueError(f"intensity_multiplier must be >= 0, got: {intensity_multiplier!r}")
        self._intensity_multiplier = value

    def target_property(self) -> str:
        return target_property_for_kind(self._fixture_kind)

    def phase(self) -> AnimatorPhase:
        return AnimatorPhase.IDLE if self._animation is None else AnimatorPhase.RUNNING

    def active_animation(self) -> Optional[PropertyAnimation]:
        return self._animation

    def on_event(self, event: LightingEvent, now_ms: float) -> bool:
        if not self._channel.accepts(event.reactor):
            return False

        try:
            self.apply_action(event.action, now_ms)
        except UnknownEventAction as exc:
            logger.warning("Lightmap reactor %s ignored event: %s", self._object_id, exc)
            return False
        return True

    def apply_action(self, action: LightAction, now_ms: float) -> None:
        effect = lightshow_models.effect_for_action(action)

        if effect.color and self._state.color != effect.color:
            self._sink.update(self._object_id, {"color": effect.color}, True)
            self._state.color = effect.color

        name = self.target_property()
        start_base = effect.start_intensity
        if start_base is None:
            start_base = self._state.live_value(name)

        multiplier = self._intensity_multiplier
        self.animate_property(
            name,
            start_base * multiplier,
            effect.end_intensity * multiplier,
            effect.duration_ms,
            now_ms,
        )

    def animate_property(
        self,
        name: str,
        start_value: float,
        end_value: float,
        duration_ms: float,
        now_ms: float,
    ) -> None:
        self.cancel()
        self._write(name, float(start_value))
        self._animation = PropertyAnimation(
            target_property=str(name),
            start_value=float(start_value),
            end_value=float(end_value),
            duration_ms=max(0.0, float(duration_ms)),
            started_at_ms=float(now_ms),
        )

    def pulse(self, now_ms: float) -> None:
        animation = self._animation
        if animation is None:
            return

        self._write(animation.target_property, animation.value_at(now_ms))
        if animation.is_complete(now_ms):
            # Land exactly on the end value regardless of interpolation rounding.
            self._write(animation.target_property, animation.end_value)
            self._animation = None

    def cancel(self) -> None:
        self._animation = None

    def _write(self, name: str, value: float) -> None:
        self._sink.update(self._object_id, {name: value}, True)
        self._state.properties[name] = value

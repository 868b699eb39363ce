# -*- coding: utf-8 -*-
########################
# lightshow_models.py
########################
# Purpose:
# - Core data models for the lighting pipeline.
# - Defines lighting channels, actions, hues, the action effect table and LightingEvent.
#
# Design notes:
# - Keep these models stable. Prefer extending with new optional fields rather than breaking changes.
# - No Qt usage. Plain enums and frozen dataclasses.
# - Beatmap codes and action effects are table driven. Add rows, not branches.
#
########################
# Interfaces:
# Public enums:
# - class Reactor(str, Enum): CENTER_LIGHT | LEFT_LASER | RIGHT_LASER
# - class ReactorChannel(str, Enum): DISABLED | CENTER_LIGHT | LEFT_LASER | RIGHT_LASER
# - class LightAction(str, Enum): OFF | BLUE_ON | ... | WHITE_FADE
#
# Public exceptions:
# - class UnknownEventAction(ValueError)
#
# Public dataclasses:
# - LightingEvent(time_ms: float, reactor: Reactor, action: LightAction)
# - ActionEffect(color: Optional[str], start_intensity: Optional[float], end_intensity: float, duration_ms: float)
#
# Public functions:
# - reactor_for_event_type(event_type: int) -> Optional[Reactor]
# - action_for_event_value(event_value: int) -> Optional[LightAction]
# - effect_for_action(action: LightAction) -> ActionEffect
# - parse_reactor(text: str) -> Reactor
# - parse_action(text: str) -> LightAction
#
# Inputs/Outputs:
# - These types are exchanged between beatmap_store, event_dispatcher, reactor_animator,
#   lightmap_source and web_server.
#
########################

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Dict, Optional, Tuple


class UnknownEventAction(ValueError):
    """Raised when a lighting action has no known effect."""


class Reactor(str, Enum):
    CENTER_LIGHT = "Center Light"
    LEFT_LASER = "Left Laser"
    RIGHT_LASER = "Right Laser"


class ReactorChannel(str, Enum):
    DISABLED = "Disabled"
    CENTER_LIGHT = "Center Light"
    LEFT_LASER = "Left Laser"
    RIGHT_LASER = "Right Laser"

    def accepts(self, reactor: Reactor) -> bool:
        if self is ReactorChannel.DISABLED:
            return False
        return self.value == reactor.value


class LightAction(str, Enum):
    OFF = "light:off"
    BLUE_ON = "light:blue:on"
    BLUE_FLASH = "light:blue:flash"
    BLUE_FADE = "light:blue:fade"
    RED_ON = "light:red:on"
    RED_FLASH = "light:red:flash"
    RED_FADE = "light:red:fade"
    WHITE_ON = "light:white:on"
    WHITE_FLASH = "light:white:flash"
    WHITE_FADE = "light:white:fade"


HUE_BLUE = "#55ccff"
HUE_RED = "#ff9e9e"
HUE_WHITE = "#ffffff"


@dataclass(frozen=True)
class LightingEvent:
    time_ms: float
    reactor: Reactor
    action: LightAction


@dataclass(frozen=True)
class ActionEffect:
    """What an action does to a fixture.

    color=None leaves the current color alone.
    start_intensity=None starts from the fixture's live value.
    """

    color: Optional[str]
    start_intensity: Optional[float]
    end_intensity: float
    duration_ms: float


# Beat Saber light channels: https://bsmg.wiki/mapping/difficulty-format-v2.html#events-2
_REACTOR_BY_EVENT_TYPE: Dict[int, Reactor] = {
    2: Reactor.LEFT_LASER,
    3: Reactor.RIGHT_LASER,
    4: Reactor.CENTER_LIGHT,
}

# Values 4 and 8 are unused by the light channels and are dropped.
_ACTION_BY_EVENT_VALUE: Dict[int, LightAction] = {
    0: LightAction.OFF,
    1: LightAction.BLUE_ON,
    2: LightAction.BLUE_FLASH,
    3: LightAction.BLUE_FADE,
    5: LightAction.RED_ON,
    6: LightAction.RED_FLASH,
    7: LightAction.RED_FADE,
    9: LightAction.WHITE_ON,
    10: LightAction.WHITE_FLASH,
    11: LightAction.WHITE_FADE,
}


def _hue_effects(color: str) -> Tuple[ActionEffect, ActionEffect, ActionEffect]:
    return (
        ActionEffect(color=color, start_intensity=None, end_intensity=1.0, duration_ms=100.0),
        ActionEffect(color=color, start_intensity=2.0, end_intensity=1.0, duration_ms=500.0),
        ActionEffect(color=color, start_intensity=2.0, end_intensity=0.0, duration_ms=500.0),
    )


_BLUE_ON, _BLUE_FLASH, _BLUE_FADE = _hue_effects(HUE_BLUE)
_RED_ON, _RED_FLASH, _RED_FADE = _hue_effects(HUE_RED)
_WHITE_ON, _WHITE_FLASH, _WHITE_FADE = _hue_effects(HUE_WHITE)

ACTION_EFFECTS: Dict[LightAction, ActionEffect] = {
    LightAction.OFF: ActionEffect(color=None, start_intensity=None, end_intensity=0.0, duration_ms=100.0),
    LightAction.BLUE_ON: _BLUE_ON,
    LightAction.BLUE_FLASH: _BLUE_FLASH,
    LightAction.BLUE_FADE: _BLUE_FADE,
    LightAction.RED_ON: _RED_ON,
    LightAction.RED_FLASH: _RED_FLASH,
    LightAction.RED_FADE: _RED_FADE,
    LightAction.WHITE_ON: _WHITE_ON,
    LightAction.WHITE_FLASH: _WHITE_FLASH,
    LightAction.WHITE_FADE: _WHITE_FADE,
}


def reactor_for_event_type(event_type: int) -> Optional[Reactor]:
    return _REACTOR_BY_EVENT_TYPE.get(event_type)


def action_for_event_value(event_value: int) -> Optional[LightAction]:
    return _ACTION_BY_EVENT_VALUE.get(event_value)


def effect_for_action(action: LightAction) -> ActionEffect:
    effect = ACTION_EFFECTS.get(action)
    if effect is None:
        raise UnknownEventAction(f"Unknown lighting action: {action!r}")
    return effect


def parse_reactor(text: str) -> Reactor:
    cleaned = str(text or "").strip()
    for reactor in Reactor:
        if cleaned == reactor.value or cleaned.upper() == reactor.name:
            return reactor
    raise ValueError(f"Unknown reactor: {text!r}. Allowed: {[item.value for item in Reactor]}")


def parse_action(text: str) -> LightAction:
    cleaned = str(text or "").strip().lower()
    try:
        return LightAction(cleaned)
    except ValueError as exc:
        raise UnknownEventAction(f"Unknown lighting action: {text!r}") from exc

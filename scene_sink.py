# -*- coding: utf-8 -*-
########################
# scene_sink.py
########################
# Purpose:
# - In-process property-update sink for scene objects.
# - Records the latest value of every property pushed for every object so it can be inspected and served.
#
# Design notes:
# - Written from the Qt thread, read from the Flask thread. Keep it thread-safe and explicit.
# - Stores values only. Rendering is the host's job.
#
########################
# Interfaces:
# Public classes:
# - class SceneStateSink
#   - update(object_id: str, properties: dict[str, Any], immediate: bool) -> None
#   - properties_for(object_id: str) -> dict[str, Any]
#   - snapshot() -> dict[str, dict[str, Any]]
#   - add_listener(listener: Callable[[str, dict[str, Any], bool], None]) -> None
#
########################

from __future__ import annotations

import threading
from typing import Any, Callable, Dict, List


SinkListener = Callable[[str, Dict[str, Any], bool], None]


class SceneStateSink:
    def __init__(self) -> None:
        self._lock = threading.RLock()
        self._objects: Dict[str, Dict[str, Any]] = {}
        self._listeners: List[SinkListener] = []

    def add_listener(self, listener: SinkListener) -> None:
        with self._lock:
            self._listeners.append(listener)

    def update(self, object_id: str, properties: Dict[str, Any], immediate: bool) -> None:
        key = str(object_id)
        with self._lock:
            self._objects.setdefault(key, {}).update(properties)
            listeners = list(self._listeners)

        for listener in listeners:
            listener(key, dict(properties), bool(immediate))

    def properties_for(self, object_id: str) -> Dict[str, Any]:
        with self._lock:
            return dict(self._objects.get(str(object_id), {}))

    def snapshot(self) -> Dict[str, Dict[str, Any]]:
        with self._lock:
            return {object_id: dict(properties) for object_id, properties in self._objects.items()}

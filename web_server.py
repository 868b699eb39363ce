# -*- coding: utf-8 -*-
from __future__ import annotations

########################
# web_server.py
########################
# Purpose:
# - Local Flask web server for the light show.
# - Receives the media player's playback status feed and exposes status, scene and control endpoints.
#
# Design notes:
# - Handlers never touch dispatcher or animator state directly. They call the bound callbacks,
#   which forward onto the Qt thread (LightmapSource.post_*).
# - ShowBindings is the server-side contract; keep it explicit.
# - Malformed requests get {"ok": false, "error": ...} and a 400, never an exception.
#
########################
# Interfaces:
# Public dataclasses:
# - WebServerConfig(host: str, port: int, debug: bool)
# - ShowBindings(
#     status_provider: Callable[[], dict],
#     clock_provider: Callable[[], dict],
#     scene_provider: Callable[[], dict],
#     playback_sink: Callable[[bool, float], None],
#     source_setter: Callable[[str], None],
#     event_sink: Callable[[LightingEvent], None],
#   )
#
# Public functions:
# - create_flask_app(config: WebServerConfig, bindings: ShowBindings) -> flask.Flask
# - parse_playback_payload(payload: Any) -> tuple[bool, float]
#
# Inputs:
# - HTTP requests:
#   - /api/status (GET)
#   - /api/scene (GET)
#   - /api/playback (POST) {paused: bool, currentTime: seconds}
#   - /api/source (POST) {archive_url: str}
#   - /api/events (POST) {reactor: str, action: str}
#
# Outputs:
# - JSON responses.
#
########################

import dataclasses
import logging
import math
from dataclasses import dataclass
from typing import Any, Callable, Dict, Tuple

from flask import Flask, Response, jsonify, request

import lightshow_models
from lightshow_models import LightingEvent, UnknownEventAction


logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class WebServerConfig:
    host: str
    port: int
    debug: bool = False


@dataclass(frozen=True)
class ShowBindings:
    status_provider: Callable[[], Dict[str, Any]]
    clock_provider: Callable[[], Dict[str, Any]]
    scene_provider: Callable[[], Dict[str, Any]]
    playback_sink: Callable[[bool, float], None]
    source_setter: Callable[[str], None]
    event_sink: Callable[[LightingEvent], None]


def _serialize_dataclass(value: Any) -> Any:
    if dataclasses.is_dataclass(value):
        result: dict[str, Any] = {}
        for field in dataclasses.fields(value):
            result[field.name] = _serialize_dataclass(getattr(value, field.name))
        return result
    if isinstance(value, (list, tuple)):
        return [_serialize_dataclass(item) for item in value]
    if isinstance(value, dict):
        return {str(key): _serialize_dataclass(subvalue) for key, subvalue in value.items()}
    return value


def parse_playback_payload(payload: Any) -> Tuple[bool, float]:
    if not isinstance(payload, dict):
        raise ValueError("Body must be a JSON object")

    paused_value = payload.get("paused")
    if not isinstance(paused_value, bool):
        raise ValueError("paused must be a boolean")

    current_time_value = payload.get("currentTime")
    if isinstance(current_time_value, bool) or not isinstance(current_time_value, (int, float)):
        raise ValueError("currentTime must be a number of seconds")
    if not math.isfinite(float(current_time_value)):
        raise ValueError("currentTime must be finite")

    return paused_value, float(current_time_value)


def create_flask_app(config: WebServerConfig, bindings: ShowBindings) -> Flask:
    flask_app = Flask(__name__, static_folder=None)
    flask_app.extensions["lightshow_bindings"] = bindings
    flask_app.extensions["lightshow_server_config"] = config

    @flask_app.after_request
    def add_no_cache_headers(response: Response) -> Response:
        response.headers["Cache-Control"] = "no-store"
        return response

    def error_response(message: str, status_code: int = 400) -> Response:
        return jsonify({"ok": False, "error": str(message)}), status_code

    @flask_app.get("/api/status")
    def api_status() -> Response:
        payload: dict[str, Any] = {"ok": True}
        payload.update(_serialize_dataclass(bindings.status_provider()))
        payload["clock"] = _serialize_dataclass(bindings.clock_provider())
        return jsonify(payload)

    @flask_app.get("/api/scene")
    def api_scene() -> Response:
        return jsonify({"ok": True, "objects": _serialize_dataclass(bindings.scene_provider())})

    @flask_app.post("/api/playback")
    def api_playback() -> Response:
        try:
            paused, current_time_seconds = parse_playback_payload(request.get_json(silent=True))
        except ValueError as exception:
            return error_response(str(exception))

        bindings.playback_sink(paused, current_time_seconds)
        return jsonify({"ok": True})

    @flask_app.post("/api/source")
    def api_source() -> Response:
        payload = request.get_json(silent=True) or {}
        archive_url = str(payload.get("archive_url") or "").strip() if isinstance(payload, dict) else ""
        if not archive_url:
            return error_response("archive_url is required")

        logger.info("Lightmap source requested: %s", archive_url)
        bindings.source_setter(archive_url)
        return jsonify({"ok": True})

    @flask_app.post("/api/events")
    def api_events() -> Response:
        payload = request.get_json(silent=True) or {}
        if not isinstance(payload, dict):
            return error_response("Body must be a JSON object")

        try:
            reactor = lightshow_models.parse_reactor(str(payload.get("reactor") or ""))
            action = lightshow_models.parse_action(str(payload.get("action") or ""))
        except UnknownEventAction as exception:
            logger.warning("Rejected manual lighting event: %s", exception)
            return error_response(str(exception))
        except ValueError as exception:
            return error_response(str(exception))

        bindings.event_sink(LightingEvent(time_ms=0.0, reactor=reactor, action=action))
        return jsonify({"ok": True, "reactor": reactor.value, "action": action.value})

    @flask_app.errorhandler(404)
    def not_found(_error: Exception) -> Response:
        return error_response("Not found", 404)

    return flask_app

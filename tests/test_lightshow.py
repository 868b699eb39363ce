"""End-to-end wiring tests: config fixtures, coordinator, scene sink and web API."""

import pytest

import config as config_module
import lightshow
import web_server
from lightmap_source import LightmapSource
from lightshow_models import HUE_WHITE, ReactorChannel
from scene_sink import SceneStateSink


@pytest.fixture
def app_config():
    return config_module.AppConfig.model_validate(
        {
            "fixtures": [
                {"object_id": "center-bulb", "kind": "point-light", "channel": "Center Light"},
                {"object_id": "left-panel", "kind": "plane", "channel": "Left Laser", "intensity_multiplier": 0.5},
            ]
        }
    )


@pytest.fixture
def wired(qt_app, app_config):
    sink = SceneStateSink()
    source = LightmapSource(clock_ms=lambda: 0.0)
    for animator in lightshow.build_animators(app_config, sink):
        source.add_animator(animator)
    flask_app = web_server.create_flask_app(
        web_server.WebServerConfig(host="127.0.0.1", port=5188),
        lightshow.build_bindings(source, sink),
    )
    flask_app.testing = True
    yield source, sink, flask_app.test_client()
    source.stop()


def test_build_animators(app_config):
    animators = lightshow.build_animators(app_config, SceneStateSink())

    assert [animator.object_id for animator in animators] == ["center-bulb", "left-panel"]
    assert animators[0].channel is ReactorChannel.CENTER_LIGHT
    assert animators[1].target_property() == "opacity"


def test_manual_event_reaches_scene(wired):
    source, sink, client = wired

    response = client.post("/api/events", json={"reactor": "Center Light", "action": "light:white:flash"})
    assert response.status_code == 200

    objects = client.get("/api/scene").get_json()["objects"]
    assert objects["center-bulb"] == {"color": HUE_WHITE, "intensity": 2.0}
    assert "left-panel" not in objects


def test_status_reports_idle_clock(wired):
    _source, _sink, client = wired
    payload = client.get("/api/status").get_json()

    assert payload["state"] == "idle"
    assert payload["event_count"] == 0
    assert payload["clock"]["is_playing"] is False


def test_scene_sink_notifies_listeners():
    sink = SceneStateSink()
    seen = []
    sink.add_listener(lambda object_id, properties, immediate: seen.append((object_id, properties, immediate)))

    sink.update("stage", {"opacity": 0.25}, True)
    sink.update("stage", {"color": "#ff0000"}, True)

    assert seen[0] == ("stage", {"opacity": 0.25}, True)
    assert sink.properties_for("stage") == {"opacity": 0.25, "color": "#ff0000"}

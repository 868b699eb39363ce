"""Tests for configuration loading and validation."""

import json

import pytest

import config as config_module
from lightshow_models import ReactorChannel


@pytest.fixture(autouse=True)
def clean_environment(monkeypatch):
    for name in (
        "LIGHTSHOW_CONFIG_PATH",
        "LIGHTSHOW_ARCHIVE_URL",
        "LIGHTSHOW_TICK_INTERVAL_MS",
        "LIGHTSHOW_WEB_ENABLED",
        "LIGHTSHOW_WEB_HOST",
        "LIGHTSHOW_WEB_PORT",
        "LIGHTSHOW_LOG_LEVEL",
    ):
        monkeypatch.delenv(name, raising=False)
    config_module.get_config.cache_clear()
    yield
    config_module.get_config.cache_clear()


def write_config(tmp_path, payload):
    config_path = tmp_path / "lightshow_config.json"
    config_path.write_text(json.dumps(payload), encoding="utf-8")
    return config_path


class TestLoadConfig:
    def test_defaults(self, tmp_path):
        app_config, resolved_path = config_module.load_config(write_config(tmp_path, {}))

        assert resolved_path.name == "lightshow_config.json"
        assert app_config.source.archive_url == ""
        assert app_config.fixtures == []
        assert app_config.driver.tick_interval_ms == 16
        assert app_config.web_server.port == 5188
        assert app_config.logging.level == "INFO"

    def test_fixtures(self, tmp_path):
        payload = {
            "fixtures": [
                {"object_id": "center", "kind": "Point-Light", "channel": "Center Light"},
                {"object_id": "left", "kind": "plane", "channel": "Left Laser", "intensity_multiplier": 0.5},
                {"object_id": "idle"},
            ]
        }
        app_config, _path = config_module.load_config(write_config(tmp_path, payload))

        center, left, idle = app_config.fixtures
        assert center.kind == "point-light"
        assert center.channel is ReactorChannel.CENTER_LIGHT
        assert left.intensity_multiplier == 0.5
        assert idle.channel is ReactorChannel.DISABLED
        assert idle.intensity_multiplier == 1.0

    def test_negative_multiplier_rejected(self, tmp_path):
        payload = {"fixtures": [{"object_id": "x", "intensity_multiplier": -1}]}
        with pytest.raises(ValueError, match="validation failed"):
            config_module.load_config(write_config(tmp_path, payload))

    def test_unknown_channel_rejected(self, tmp_path):
        payload = {"fixtures": [{"object_id": "x", "channel": "Ring Laser"}]}
        with pytest.raises(ValueError):
            config_module.load_config(write_config(tmp_path, payload))

    def test_duplicate_object_ids_rejected(self, tmp_path):
        payload = {"fixtures": [{"object_id": "x"}, {"object_id": "x"}]}
        with pytest.raises(ValueError, match="Duplicate"):
            config_module.load_config(write_config(tmp_path, payload))

    def test_invalid_json(self, tmp_path):
        config_path = tmp_path / "broken.json"
        config_path.write_text("{", encoding="utf-8")
        with pytest.raises(ValueError, match="not valid JSON"):
            config_module.load_config(config_path)

    def test_root_must_be_object(self, tmp_path):
        with pytest.raises(ValueError, match="JSON object"):
            config_module.load_config(write_config(tmp_path, [1, 2]))


class TestEnvironmentOverrides:
    def test_overrides(self, tmp_path, monkeypatch):
        monkeypatch.setenv("LIGHTSHOW_ARCHIVE_URL", " https://example.com/map.zip ")
        monkeypatch.setenv("LIGHTSHOW_TICK_INTERVAL_MS", "33")
        monkeypatch.setenv("LIGHTSHOW_WEB_ENABLED", "off")
        monkeypatch.setenv("LIGHTSHOW_WEB_PORT", "6000")
        monkeypatch.setenv("LIGHTSHOW_LOG_LEVEL", "debug")

        app_config, _path = config_module.load_config(write_config(tmp_path, {"source": {"archive_url": "a.zip"}}))

        assert app_config.source.archive_url == "https://example.com/map.zip"
        assert app_config.driver.tick_interval_ms == 33
        assert app_config.web_server.enabled is False
        assert app_config.web_server.port == 6000
        assert app_config.logging.level == "DEBUG"

    def test_invalid_int_override_ignored(self, tmp_path, monkeypatch):
        monkeypatch.setenv("LIGHTSHOW_WEB_PORT", "not-a-port")
        app_config, _path = config_module.load_config(write_config(tmp_path, {}))

        assert app_config.web_server.port == 5188

    def test_config_path_from_environment(self, tmp_path, monkeypatch):
        config_path = write_config(tmp_path, {"driver": {"tick_interval_ms": 20}})
        monkeypatch.setenv("LIGHTSHOW_CONFIG_PATH", str(config_path))

        app_config, resolved_path = config_module.get_config()

        assert resolved_path == config_path
        assert app_config.driver.tick_interval_ms == 20

    def test_default_config_without_file(self, monkeypatch):
        monkeypatch.setenv("LIGHTSHOW_ARCHIVE_URL", "map.zip")

        assert config_module.default_config().source.archive_url == "map.zip"


def test_redacted_json_hides_query_string():
    app_config = config_module.AppConfig.model_validate(
        {"source": {"archive_url": "https://cdn.example.com/map.zip?token=secret"}}
    )
    redacted = json.loads(config_module.to_redacted_json(app_config))

    assert redacted["source"]["archive_url"] == "https://cdn.example.com/map.zip?(redacted)"

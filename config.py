"""
config.py

Typed configuration for the Beatlights runtime: archive source, scene fixtures,
driver cadence, the playback-feed web server and log level.

Rules
- One UTF-8 JSON document, validated by pydantic models with defaults for every field.
- LIGHTSHOW_* environment variables override individual fields after the file is read.
- Reading the file is the only I/O. Missing directories are never created.

Config file location
- If LIGHTSHOW_CONFIG_PATH is set, that file is used.
- Otherwise Beatlights searches these paths in order and uses the first one that exists:
  1) ./lightshow_config.json (current working directory)
  2) <user config dir>/Beatlights/Beatlights/lightshow_config.json
  3) <user config dir>/Beatlights/Beatlights/config.json

Example config file (lightshow_config.json)
{
  "source": {
    "archive_url": "https://example.com/maps/1a2b.zip"
  },
  "fixtures": [
    {"object_id": "stage-center", "kind": "point-light", "channel": "Center Light"},
    {"object_id": "laser-left", "kind": "plane", "channel": "Left Laser", "intensity_multiplier": 0.8},
    {"object_id": "laser-right", "kind": "plane", "channel": "Right Laser", "intensity_multiplier": 0.8}
  ],
  "driver": {
    "tick_interval_ms": 16
  },
  "web_server": {
    "host": "127.0.0.1",
    "port": 5188
  },
  "logging": {
    "level": "INFO"
  }
}
"""

from __future__ import annotations

import json
import os
from functools import lru_cache
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional, Tuple

from platformdirs import user_config_dir
from pydantic import BaseModel, Field, ValidationError, field_validator

from lightshow_models import ReactorChannel


class SourceConfig(BaseModel):
    archive_url: str = Field(default="", description="Beat Saber map archive (.zip) URL or local path.")
    max_download_bytes: int = Field(default=64 * 1024 * 1024, ge=1024, description="Archive size limit in bytes.")
    request_timeout_seconds: float = Field(default=20.0, gt=0.0, description="Archive download timeout.")

    @field_validator("archive_url")
    @classmethod
    def strip_archive_url(cls, value: str) -> str:
        return (value or "").strip()


class FixtureConfig(BaseModel):
    object_id: str = Field(description="Scene object id that receives property updates.")
    kind: str = Field(default="point-light", description="point-light, spot-light, or any other object kind.")
    channel: ReactorChannel = Field(default=ReactorChannel.DISABLED, description="Lighting channel to react to.")
    intensity_multiplier: float = Field(default=1.0, ge=0.0, description="Scale applied to all target intensities.")

    @field_validator("object_id")
    @classmethod
    def validate_object_id(cls, value: str) -> str:
        trimmed = (value or "").strip()
        if not trimmed:
            raise ValueError("object_id must not be empty")
        return trimmed

    @field_validator("kind")
    @classmethod
    def normalize_kind(cls, value: str) -> str:
        return (value or "").strip().lower()


class DriverConfig(BaseModel):
    tick_interval_ms: int = Field(default=16, ge=1, le=1000, description="Dispatch and animation pulse interval.")


class WebServerConfig(BaseModel):
    enabled: bool = Field(default=True, description="Serve the playback feed and status API.")
    host: str = Field(default="127.0.0.1", description="Bind address for local web server.")
    port: int = Field(default=5188, ge=1, le=65535, description="Port for local web server.")


class LoggingConfig(BaseModel):
    level: str = Field(default="INFO", description="DEBUG, INFO, WARNING, ERROR")

    @field_validator("level")
    @classmethod
    def validate_level(cls, value: str) -> str:
        normalized = (value or "").strip().upper()
        allowed = {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}
        if normalized not in allowed:
            raise ValueError("level must be one of: DEBUG, INFO, WARNING, ERROR, CRITICAL")
        return normalized


class AppConfig(BaseModel):
    source: SourceConfig = Field(default_factory=SourceConfig)
    fixtures: List[FixtureConfig] = Field(default_factory=list)
    driver: DriverConfig = Field(default_factory=DriverConfig)
    web_server: WebServerConfig = Field(default_factory=WebServerConfig)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)

    @field_validator("fixtures")
    @classmethod
    def validate_unique_object_ids(cls, value: List[FixtureConfig]) -> List[FixtureConfig]:
        seen: set[str] = set()
        for fixture in value:
            if fixture.object_id in seen:
                raise ValueError(f"Duplicate fixture object_id: {fixture.object_id}")
            seen.add(fixture.object_id)
        return value


def _default_config_candidates() -> List[Path]:
    config_directory = Path(user_config_dir("Beatlights", "Beatlights"))
    return [
        Path.cwd() / "lightshow_config.json",
        config_directory / "lightshow_config.json",
        config_directory / "config.json",
    ]


def _resolve_config_path() -> Path:
    explicit_path_text = os.environ.get("LIGHTSHOW_CONFIG_PATH", "").strip()
    if explicit_path_text:
        return Path(explicit_path_text)

    candidates = _default_config_candidates()
    existing = next((candidate for candidate in candidates if candidate.exists()), None)
    if existing is not None:
        return existing

    searched = ", ".join(str(candidate) for candidate in candidates)
    raise FileNotFoundError(f"No lightshow_config.json found (searched: {searched})")


def _read_config_document(config_path: Path) -> Dict[str, Any]:
    # FileNotFoundError propagates untouched so callers can fall back to defaults.
    if not config_path.is_file():
        raise FileNotFoundError(f"Config file not found: {config_path}")

    try:
        document = json.loads(config_path.read_text(encoding="utf-8"))
    except json.JSONDecodeError as exception:
        raise ValueError(f"Config file is not valid JSON: {config_path}. Error: {exception}") from exception
    except (OSError, UnicodeDecodeError) as exception:
        raise OSError(f"Cannot read config file {config_path}: {exception}") from exception

    if not isinstance(document, dict):
        raise ValueError(f"Config file root must be a JSON object: {config_path}")
    return document


def _env_text(raw_text: str) -> Optional[str]:
    return raw_text or None


def _env_int(raw_text: str) -> Optional[int]:
    try:
        return int(raw_text)
    except ValueError:
        return None


def _env_flag(raw_text: str) -> Optional[bool]:
    lowered = raw_text.lower()
    if lowered in ("1", "true", "yes", "on"):
        return True
    if lowered in ("0", "false", "no", "off"):
        return False
    return None


# (variable, section, key, converter). A converter returning None leaves the file value alone.
_ENVIRONMENT_OVERRIDES: Tuple[Tuple[str, str, str, Callable[[str], Any]], ...] = (
    ("LIGHTSHOW_ARCHIVE_URL", "source", "archive_url", _env_text),
    ("LIGHTSHOW_TICK_INTERVAL_MS", "driver", "tick_interval_ms", _env_int),
    ("LIGHTSHOW_WEB_ENABLED", "web_server", "enabled", _env_flag),
    ("LIGHTSHOW_WEB_HOST", "web_server", "host", _env_text),
    ("LIGHTSHOW_WEB_PORT", "web_server", "port", _env_int),
    ("LIGHTSHOW_LOG_LEVEL", "logging", "level", _env_text),
)


def _apply_environment_overrides(config_dict: Dict[str, Any]) -> Dict[str, Any]:
    """Layer LIGHTSHOW_* variables over the file contents. The file stays the primary source."""
    merged = dict(config_dict)
    for env_name, section_name, key_name, convert in _ENVIRONMENT_OVERRIDES:
        raw_text = os.environ.get(env_name, "").strip()
        if not raw_text:
            continue
        value = convert(raw_text)
        if value is None:
            continue
        section = merged.get(section_name)
        section = dict(section) if isinstance(section, dict) else {}
        section[key_name] = value
        merged[section_name] = section
    return merged


def load_config(config_path: Optional[Path] = None) -> Tuple[AppConfig, Path]:
    resolved_path = config_path if config_path is not None else _resolve_config_path()
    json_dict = _read_config_document(resolved_path)
    json_dict = _apply_environment_overrides(json_dict)

    try:
        config = AppConfig.model_validate(json_dict)
    except ValidationError as exception:
        raise ValueError(f"Config validation failed for {resolved_path}:\n{exception}") from exception

    return config, resolved_path


def default_config() -> AppConfig:
    """Config built from defaults and environment overrides only."""
    return AppConfig.model_validate(_apply_environment_overrides({}))


@lru_cache(maxsize=1)
def get_config() -> Tuple[AppConfig, Path]:
    return load_config()


def to_redacted_json(config: AppConfig) -> str:
    config_dict = config.model_dump(mode="json")
    source_section = config_dict.get("source")
    if isinstance(source_section, dict):
        # Signed download links carry credentials in the query string.
        archive_url = str(source_section.get("archive_url") or "")
        if "?" in archive_url:
            source_section["archive_url"] = archive_url.split("?", 1)[0] + "?(redacted)"
    return json.dumps(config_dict, ensure_ascii=False, indent=2)


def main() -> int:
    """Print the resolved config path, a fixture summary and the redacted config."""
    try:
        config, resolved_path = load_config()
    except (OSError, ValueError) as exception:
        print(json.dumps({"ok": False, "error": str(exception)}, indent=2))
        return 2

    fixture_lines = [f"{fixture.object_id} ({fixture.kind or 'object'}): {fixture.channel.value}" for fixture in config.fixtures]
    report = {
        "ok": True,
        "config_path": str(resolved_path),
        "fixtures": fixture_lines,
        "config": json.loads(to_redacted_json(config)),
    }
    print(json.dumps(report, ensure_ascii=False, indent=2))
    return 0


if __name__ == "__main__":
    raise SystemExit(main())

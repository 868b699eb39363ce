"""Pytest configuration and shared fixtures."""

import json
import os
import zipfile
from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple

import pytest

os.environ.setdefault("QT_QPA_PLATFORM", "offscreen")


class RecordingSink:
    """Property sink that keeps every update in order."""

    def __init__(self) -> None:
        self.updates: List[Tuple[str, Dict[str, Any], bool]] = []

    def update(self, object_id: str, properties: Dict[str, Any], immediate: bool) -> None:
        self.updates.append((object_id, dict(properties), immediate))

    def values_for(self, name: str) -> List[Any]:
        return [properties[name] for _object_id, properties, _immediate in self.updates if name in properties]


def make_info(beatmap_filename: str = "ExpertStandard.dat", **overrides: Any) -> Dict[str, Any]:
    info: Dict[str, Any] = {
        "_version": "2.0.0",
        "_songName": "Test Song",
        "_songAuthorName": "Test Artist",
        "_levelAuthorName": "Test Mapper",
        "_beatsPerMinute": 120,
        "_difficultyBeatmapSets": [
            {
                "_beatmapCharacteristicName": "Standard",
                "_difficultyBeatmaps": [
                    {"_difficulty": "Expert", "_beatmapFilename": beatmap_filename},
                    {"_difficulty": "Hard", "_beatmapFilename": "HardStandard.dat"},
                ],
            }
        ],
    }
    info.update(overrides)
    return info


def make_beatmap(events: List[Dict[str, Any]], bpm: Optional[float] = 120.0) -> Dict[str, Any]:
    beatmap: Dict[str, Any] = {"version": "3.2.0", "basicBeatmapEvents": events}
    beatmap["bpmEvents"] = [{"b": 0, "m": bpm}] if bpm is not None else []
    return beatmap


def write_archive(path: Path, entries: Dict[str, Any]) -> Path:
    with zipfile.ZipFile(path, "w") as archive:
        for name, payload in entries.items():
            text = payload if isinstance(payload, str) else json.dumps(payload)
            archive.writestr(name, text)
    return path


@pytest.fixture
def recording_sink() -> RecordingSink:
    return RecordingSink()


@pytest.fixture
def archive_factory(tmp_path):
    """Build a beatmap archive in tmp_path and return its path as a string."""
    counter = {"value": 0}

    def build(
        events: Optional[List[Dict[str, Any]]] = None,
        *,
        bpm: Optional[float] = 120.0,
        info: Optional[Dict[str, Any]] = None,
        beatmap: Optional[Dict[str, Any]] = None,
        extra_entries: Optional[Dict[str, Any]] = None,
    ) -> str:
        counter["value"] += 1
        info_payload = info if info is not None else make_info()
        beatmap_payload = beatmap if beatmap is not None else make_beatmap(events or [], bpm=bpm)
        filename = info_payload["_difficultyBeatmapSets"][0]["_difficultyBeatmaps"][0]["_beatmapFilename"]
        entries: Dict[str, Any] = {"Info.dat": info_payload, filename: beatmap_payload}
        entries.update(extra_entries or {})
        archive_path = write_archive(tmp_path / f"map_{counter['value']}.zip", entries)
        return str(archive_path)

    return build


@pytest.fixture(scope="session")
def qt_app():
    from PyQt6.QtCore import QCoreApplication

    application = QCoreApplication.instance()
    if application is None:
        application = QCoreApplication([])
    return application

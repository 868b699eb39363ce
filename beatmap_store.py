# -*- coding: utf-8 -*-
########################
# beatmap_store.py
########################
# Purpose:
# - Fetch and parse Beat Saber beatmap archives (.zip).
# - Convert beat-indexed light events into a time-sorted sequence of absolute millisecond LightingEvents.
#
# Design notes:
# - No Qt usage. Pure fetching and parsing.
# - A load either returns complete data or raises LoadError. Nothing partial leaks out.
# - Tempo is constant per track: the first bpm event wins. Later tempo changes are ignored.
# - Unrecognized (type, value) pairs are dropped, never an error.
#
########################
# Interfaces:
# Public exceptions:
# - class BeatmapError(Exception)
# - class LoadError(BeatmapError)
#
# Public dataclasses:
# - BeatmapInfo(song_name: str, song_author_name: str, level_author_name: str,
#               beatmap_filename: str, beats_per_minute: Optional[float])
# - LoadedBeatmap(source_url: str, info: BeatmapInfo, version: str, bpm: float,
#                 events: tuple[LightingEvent, ...])
#
# Public functions:
# - fetch_archive_bytes(source_url: str, *, max_download_bytes: int, timeout_seconds: float) -> bytes
# - parse_info(info_payload: dict) -> BeatmapInfo
# - beat_to_ms(beat: float, bpm: float) -> float
# - resolve_bpm(beatmap_payload: dict, info: BeatmapInfo) -> float
# - parse_light_events(beatmap_payload: dict, *, bpm: float) -> list[LightingEvent]
#
# Public classes:
# - class BeatmapLoader
#   - load(source_url: str) -> tuple[LightingEvent, ...]
#   - load_beatmap(source_url: str) -> LoadedBeatmap
#
# Inputs:
# - Archive URL (http, https, file) or local filesystem path.
#
# Outputs:
# - EventSequence (tuple of LightingEvent) sorted by time_ms, stable for ties.
#
########################

from __future__ import annotations

import io
import json
import logging
import urllib.parse
import urllib.request
import zipfile
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, Iterable, List, Optional, Tuple

import lightshow_models
from lightshow_models import LightingEvent


logger = logging.getLogger(__name__)


INFO_ENTRY_NAME = "Info.dat"
DEFAULT_BPM = 100.0
DEFAULT_MAX_DOWNLOAD_BYTES = 64 * 1024 * 1024
DEFAULT_TIMEOUT_SECONDS = 20.0


class BeatmapError(Exception):
    """Base error for beatmap loading and parsing."""


class LoadError(BeatmapError):
    """Raised when an archive cannot be fetched, opened or parsed into events."""


@dataclass(frozen=True)
class BeatmapInfo:
    song_name: str
    song_author_name: str
    level_author_name: str
    beatmap_filename: str
    beats_per_minute: Optional[float] = None


@dataclass(frozen=True)
class LoadedBeatmap:
    source_url: str
    info: BeatmapInfo
    version: str
    bpm: float
    events: Tuple[LightingEvent, ...]


def _is_remote_url(source_url: str) -> bool:
    scheme = (urllib.parse.urlparse(source_url).scheme or "").lower()
    return scheme in ("http", "https")


def _local_path_for(source_url: str) -> Path:
    parsed = urllib.parse.urlparse(source_url)
    if (parsed.scheme or "").lower() == "file":
        return Path(urllib.request.url2pathname(parsed.path))
    return Path(source_url)


def fetch_archive_bytes(
    source_url: str,
    *,
    max_download_bytes: int = DEFAULT_MAX_DOWNLOAD_BYTES,
    timeout_seconds: float = DEFAULT_TIMEOUT_SECONDS,
) -> bytes:
    cleaned_url = str(source_url or "").strip()
    if not cleaned_url:
        raise LoadError("Missing archive url")

    if not _is_remote_url(cleaned_url):
        archive_path = _local_path_for(cleaned_url)
        try:
            data = archive_path.read_bytes()
        except OSError as exc:
            raise LoadError(f"Failed to read archive: {archive_path}") from exc
        if len(data) > max_download_bytes:
            raise LoadError(f"Archive exceeds size limit: {archive_path}")
        return data

    request_headers = {
        "User-Agent": "BeatlightsLoader/1.0",
        "Accept": "application/zip,application/octet-stream,*/*;q=0.8",
    }
    request_object = urllib.request.Request(cleaned_url, headers=request_headers)

    chunks: List[bytes] = []
    total_bytes = 0
    try:
        with urllib.request.urlopen(request_object, timeout=timeout_seconds) as response:
            while True:
                chunk = response.read(64 * 1024)
                if not chunk:
                    break
                total_bytes += len(chunk)
                if total_bytes > max_download_bytes:
                    raise LoadError("Archive download exceeded size limit")
                chunks.append(chunk)
    except LoadError:
        raise
    except Exception as exc:
        raise LoadError(f"Archive download failed: {exc}") from exc

    return b"".join(chunks)


def _open_archive(archive_bytes: bytes) -> zipfile.ZipFile:
    try:
        return zipfile.ZipFile(io.BytesIO(archive_bytes))
    except zipfile.BadZipFile as exc:
        raise LoadError("Source is not a valid zip archive") from exc


def _find_entry_name(archive: zipfile.ZipFile, entry_name: str) -> str:
    names = archive.namelist()
    if entry_name in names:
        return entry_name

    # Some packers change case or nest everything one folder deep.
    lowered = entry_name.lower()
    for name in names:
        if name.lower() == lowered or name.lower().endswith("/" + lowered):
            return name
    raise LoadError(f"Archive entry is missing: {entry_name}")


def _read_json_entry(archive: zipfile.ZipFile, entry_name: str) -> Dict[str, Any]:
    resolved_name = _find_entry_name(archive, entry_name)
    try:
        raw_bytes = archive.read(resolved_name)
    except (zipfile.BadZipFile, OSError, RuntimeError) as exc:
        raise LoadError(f"Failed to decompress archive entry: {resolved_name}") from exc

    try:
        raw_text = raw_bytes.decode("utf-8-sig")
    except UnicodeDecodeError as exc:
        raise LoadError(f"Archive entry is not valid UTF-8: {resolved_name}") from exc

    try:
        parsed = json.loads(raw_text)
    except json.JSONDecodeError as exc:
        raise LoadError(f"Archive entry is not valid JSON: {resolved_name}. Error: {exc}") from exc

    if not isinstance(parsed, dict):
        raise LoadError(f"Archive entry root must be a JSON object: {resolved_name}")
    return parsed


def _optional_text(payload: Dict[str, Any], key: str) -> str:
    value = payload.get(key)
    if value is None:
        return ""
    return str(value).strip()


def _optional_positive_float(value: Any) -> Optional[float]:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return None
    if float(value) <= 0.0:
        return None
    return float(value)


def parse_info(info_payload: Dict[str, Any]) -> BeatmapInfo:
    difficulty_sets = info_payload.get("_difficultyBeatmapSets")
    if not isinstance(difficulty_sets, list) or not difficulty_sets:
        raise LoadError("Info.dat has no _difficultyBeatmapSets")

    first_set = difficulty_sets[0]
    difficulties = first_set.get("_difficultyBeatmaps") if isinstance(first_set, dict) else None
    if not isinstance(difficulties, list) or not difficulties:
        raise LoadError("Info.dat first difficulty set has no _difficultyBeatmaps")

    first_difficulty = difficulties[0]
    beatmap_filename = first_difficulty.get("_beatmapFilename") if isinstance(first_difficulty, dict) else None
    if not isinstance(beatmap_filename, str) or not beatmap_filename.strip():
        raise LoadError("Info.dat first difficulty has no _beatmapFilename")

    return BeatmapInfo(
        song_name=_optional_text(info_payload, "_songName"),
        song_author_name=_optional_text(info_payload, "_songAuthorName"),
        level_author_name=_optional_text(info_payload, "_levelAuthorName"),
        beatmap_filename=beatmap_filename.strip(),
        beats_per_minute=_optional_positive_float(info_payload.get("_beatsPerMinute")),
    )


def beat_to_ms(beat: float, bpm: float) -> float:
    return float(beat) / float(bpm) * 60.0 * 1000.0


def _is_legacy_beatmap(beatmap_payload: Dict[str, Any]) -> bool:
    return "basicBeatmapEvents" not in beatmap_payload and isinstance(beatmap_payload.get("_events"), list)


def resolve_bpm(beatmap_payload: Dict[str, Any], info: Optional[BeatmapInfo] = None) -> float:
    """Return the single tempo used for the whole track.

    v3 maps take bpmEvents[0].m. v2 maps have no bpm events and use Info.dat.
    Anything missing or non-positive falls back to DEFAULT_BPM.
    """
    if _is_legacy_beatmap(beatmap_payload):
        if info is not None and info.beats_per_minute is not None:
            return info.beats_per_minute
        return DEFAULT_BPM

    bpm_events = beatmap_payload.get("bpmEvents")
    if isinstance(bpm_events, list) and bpm_events and isinstance(bpm_events[0], dict):
        bpm_value = _optional_positive_float(bpm_events[0].get("m"))
        if bpm_value is not None:
            return bpm_value
    return DEFAULT_BPM


def _raw_light_events(beatmap_payload: Dict[str, Any]) -> Iterable[Tuple[Any, Any, Any]]:
    if _is_legacy_beatmap(beatmap_payload):
        for item in beatmap_payload.get("_events") or []:
            if isinstance(item, dict):
                yield item.get("_time"), item.get("_type"), item.get("_value")
        return

    events = beatmap_payload.get("basicBeatmapEvents")
    if not isinstance(events, list):
        return
    for item in events:
        if isinstance(item, dict):
            yield item.get("b"), item.get("et"), item.get("i")


def _as_int(value: Any) -> Optional[int]:
    if isinstance(value, bool):
        return None
    if isinstance(value, int):
        return value
    if isinstance(value, float) and value.is_integer():
        return int(value)
    return None


def parse_light_events(beatmap_payload: Dict[str, Any], *, bpm: float) -> List[LightingEvent]:
    events: List[LightingEvent] = []
    dropped_count = 0

    for beat_value, event_type, event_value in _raw_light_events(beatmap_payload):
        # Missing beat means beat 0 in the beatmap format.
        if beat_value is None:
            beat_value = 0.0
        if isinstance(beat_value, bool) or not isinstance(beat_value, (int, float)):
            dropped_count += 1
            continue

        type_code = _as_int(event_type)
        value_code = _as_int(event_value)
        reactor = lightshow_models.reactor_for_event_type(type_code) if type_code is not None else None
        action = lightshow_models.action_for_event_value(value_code) if value_code is not None else None
        if reactor is None or action is None:
            dropped_count += 1
            continue

        events.append(LightingEvent(time_ms=beat_to_ms(beat_value, bpm), reactor=reactor, action=action))

    if dropped_count:
        logger.debug("Dropped %d events with no lighting meaning", dropped_count)

    # list.sort is stable, so equal times keep source order.
    events.sort(key=lambda event: event.time_ms)
    return events


class BeatmapLoader:
    """Loads lighting events from a beatmap archive.

    Fetch, open, parse and convert in one call. Any failure raises LoadError.
    """

    def __init__(
        self,
        *,
        max_download_bytes: int = DEFAULT_MAX_DOWNLOAD_BYTES,
        timeout_seconds: float = DEFAULT_TIMEOUT_SECONDS,
    ) -> None:
        self._max_download_bytes = int(max(1024, max_download_bytes))
        self._timeout_seconds = float(max(1.0, timeout_seconds))

    def load(self, source_url: str) -> Tuple[LightingEvent, ...]:
        return self.load_beatmap(source_url).events

    def load_beatmap(self, source_url: str) -> LoadedBeatmap:
        logger.debug("Loading lightmap from: %s", source_url)
        archive_bytes = fetch_archive_bytes(
            source_url,
            max_download_bytes=self._max_download_bytes,
            timeout_seconds=self._timeout_seconds,
        )

        with _open_archive(archive_bytes) as archive:
            info = parse_info(_read_json_entry(archive, INFO_ENTRY_NAME))
            logger.info(
                "Loaded song: %s by %s (mapped by %s)",
                info.song_name,
                info.song_author_name,
                info.level_author_name,
            )
            logger.debug("Loading beatmap file: %s", info.beatmap_filename)
            beatmap_payload = _read_json_entry(archive, info.beatmap_filename)

        version = _optional_text(beatmap_payload, "version") or _optional_text(beatmap_payload, "_version")
        bpm = resolve_bpm(beatmap_payload, info)
        events = parse_light_events(beatmap_payload, bpm=bpm)
        logger.info("Loaded %d events (beatmap v%s, %.2f bpm)", len(events), version or "?", bpm)

        return LoadedBeatmap(
            source_url=str(source_url),
            info=info,
            version=version,
            bpm=bpm,
            events=tuple(events),
        )

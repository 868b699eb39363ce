# -*- coding: utf-8 -*-
########################
# lightmap_source.py
########################
# Purpose:
# - Runtime coordinator for the light show on the Qt event loop.
# - Owns the EventDispatcher, the ReactorAnimators, the periodic driver timer and the archive load.
#
# Design notes:
# - Everything that mutates dispatcher or animator state runs on the Qt thread.
# - Archive loading runs on a worker thread. Its result comes back through a queued signal and is
#   applied with one replace_sequence call, so a tick never sees a half-replaced sequence.
# - Each load carries a generation number. Results from a superseded load are discarded.
# - post_* methods are safe to call from any thread (Flask handlers). They capture the wall clock
#   at receipt and forward through queued signals.
# - A LoadError leaves the sequence empty. Playback then simply fires no events.
# - stop() cancels animations, clears the sequence and resets the clock to not-playing.
#
########################
# Interfaces:
# Public dataclasses:
# - SourceStatus(source_url: str, state: str, error: Optional[str], info: Optional[BeatmapInfo],
#                bpm: Optional[float], version: Optional[str], event_count: int)
#
# Public classes:
# - class LightmapSource(PyQt6.QtCore.QObject)
#   - Signals:
#     - sourceLoaded(SourceStatus)
#     - eventDispatched(LightingEvent)
#   - Methods:
#     - dispatcher() -> EventDispatcher
#     - animators() -> list[ReactorAnimator]
#     - add_animator(animator: ReactorAnimator) -> None
#     - start() -> None
#     - stop() -> None
#     - is_running() -> bool
#     - set_archive_url(url: str, *, blocking: bool = False) -> None
#     - reload(*, blocking: bool = False) -> None
#     - on_playback_sample(*, paused: bool, current_time_seconds: float, observed_at_ms: Optional[float] = None) -> SampleOutcome
#     - trigger_event(event: LightingEvent, *, now_ms: Optional[float] = None) -> None
#     - tick(now_ms: Optional[float] = None) -> list[LightingEvent]
#     - status() -> SourceStatus
#     - post_playback_sample(*, paused: bool, current_time_seconds: float) -> None
#     - post_archive_url(url: str) -> None
#     - post_event(event: LightingEvent) -> None
#
# Inputs:
# - Archive URL from config, CLI or web control.
# - Playback samples from the web playback feed.
#
# Outputs:
# - Property updates through each ReactorAnimator's PropertySink.
#
########################

from __future__ import annotations

import logging
import threading
from dataclasses import dataclass
from typing import Callable, Dict, List, Optional

from PyQt6.QtCore import QObject, QTimer, pyqtSignal

from beatmap_store import BeatmapError, BeatmapInfo, BeatmapLoader, LoadedBeatmap
from event_dispatcher import EventDispatcher
from lightshow_models import LightingEvent
from playback_clock import PlaybackSample, SampleOutcome, monotonic_ms
from reactor_animator import ReactorAnimator


logger = logging.getLogger(__name__)


STATE_IDLE = "idle"
STATE_LOADING = "loading"
STATE_LOADED = "loaded"
STATE_FAILED = "failed"


@dataclass(frozen=True)
class SourceStatus:
    source_url: str = ""
    state: str = STATE_IDLE
    error: Optional[str] = None
    info: Optional[BeatmapInfo] = None
    bpm: Optional[float] = None
    version: Optional[str] = None
    event_count: int = 0


class LightmapSource(QObject):
    sourceLoaded = pyqtSignal(object)
    eventDispatched = pyqtSignal(object)

    _loadCompleted = pyqtSignal(int, object, object)
    _sampleReceived = pyqtSignal(bool, float, float)
    _archiveUrlReceived = pyqtSignal(str)
    _eventReceived = pyqtSignal(object)

    def __init__(
        self,
        *,
        loader: Optional[BeatmapLoader] = None,
        tick_interval_ms: int = 16,
        clock_ms: Callable[[], float] = monotonic_ms,
        parent: Optional[QObject] = None,
    ) -> None:
        super().__init__(parent)

        self._loader = loader if loader is not None else BeatmapLoader()
        self._clock_ms = clock_ms
        self._dispatcher = EventDispatcher()
        self._dispatcher.subscribe(self._fan_out)
        self._animators: Dict[str, ReactorAnimator] = {}

        self._source_url = ""
        self._load_generation = 0
        self._tick_now_ms: Optional[float] = None

        self._status_lock = threading.Lock()
        self._status = SourceStatus()

        self._tick_timer = QTimer(self)
        self._tick_timer.setInterval(int(max(1, tick_interval_ms)))
        self._tick_timer.timeout.connect(self._on_tick_timer)

        self._loadCompleted.connect(self._on_load_completed)
        self._sampleReceived.connect(self._on_sample_received)
        self._archiveUrlReceived.connect(self._on_archive_url_received)
        self._eventReceived.connect(self._on_event_received)

    # -----------------
    # Accessors
    # -----------------

    def dispatcher(self) -> EventDispatcher:
        return self._dispatcher

    def animators(self) -> List[ReactorAnimator]:
        return list(self._animators.values())

    def source_url(self) -> str:
        return self._source_url

    def status(self) -> SourceStatus:
        with self._status_lock:
            return self._status

    def _set_status(self, status: SourceStatus) -> None:
        with self._status_lock:
            self._status = status

    def add_animator(self, animator: ReactorAnimator) -> None:
        existing = self._animators.get(animator.object_id)
        if existing is not None:
            existing.cancel()
        self._animators[animator.object_id] = animator

    # -----------------
    # Lifecycle
    # -----------------

    def start(self) -> None:
        if self._tick_timer.isActive():
            return
        self._tick_timer.start()
        logger.debug("Lightmap driver started (%d ms)", self._tick_timer.interval())

    def stop(self) -> None:
        if self._tick_timer.isActive():
            self._tick_timer.stop()
        self._load_generation += 1
        for animator in self._animators.values():
            animator.cancel()
        self._dispatcher.clear()
        self._dispatcher.clock().reset()
        self._source_url = ""
        self._set_status(SourceStatus())
        logger.debug("Lightmap driver stopped")

    def is_running(self) -> bool:
        return bool(self._tick_timer.isActive())

    # -----------------
    # Source loading
    # -----------------

    def set_archive_url(self, url: str, *, blocking: bool = False) -> None:
        cleaned_url = str(url or "").strip()
        if not cleaned_url or cleaned_url == self._source_url:
            return
        self._source_url = cleaned_url
        self._begin_load(blocking=blocking)

    def reload(self, *, blocking: bool = False) -> None:
        if not self._source_url:
            return
        self._begin_load(blocking=blocking)

    def _begin_load(self, *, blocking: bool) -> None:
        self._load_generation += 1
        generation = self._load_generation
        source_url = self._source_url

        # Unload existing data first. No events fire until the new sequence lands.
        self._dispatcher.clear()
        self._set_status(SourceStatus(source_url=source_url, state=STATE_LOADING))

        if blocking:
            loaded, error_text = self._load_now(source_url)
            self._on_load_completed(generation, loaded, error_text)
            return

        def run_load() -> None:
            loaded, error_text = self._load_now(source_url)
            self._loadCompleted.emit(generation, loaded, error_text)

        load_thread = threading.Thread(target=run_load, name="lightmap-loader", daemon=True)
        load_thread.start()

    def _load_now(self, source_url: str) -> tuple[Optional[LoadedBeatmap], Optional[str]]:
        try:
            return self._loader.load_beatmap(source_url), None
        except BeatmapError as exc:
            logger.error("Unable to load lightmap from %s: %s", source_url, exc)
            return None, str(exc)

    def _on_load_completed(self, generation: int, loaded: Optional[LoadedBeatmap], error_text: Optional[str]) -> None:
        if generation != self._load_generation:
            logger.debug("Discarding superseded lightmap load (generation %d)", generation)
            return

        if loaded is None:
            self._dispatcher.clear()
            status = SourceStatus(source_url=self._source_url, state=STATE_FAILED, error=error_text)
        else:
            self._dispatcher.replace_sequence(loaded.events)
            status = SourceStatus(
                source_url=loaded.source_url,
                state=STATE_LOADED,
                info=loaded.info,
                bpm=loaded.bpm,
                version=loaded.version,
                event_count=len(loaded.events),
            )

        self._set_status(status)
        self.sourceLoaded.emit(status)

    # -----------------
    # Playback feed and driver
    # -----------------

    def on_playback_sample(
        self,
        *,
        paused: bool,
        current_time_seconds: float,
        observed_at_ms: Optional[float] = None,
    ) -> SampleOutcome:
        observed_ms = self._clock_ms() if observed_at_ms is None else float(observed_at_ms)
        sample = PlaybackSample.from_feed(
            paused=paused,
            current_time_seconds=current_time_seconds,
            observed_at_ms=observed_ms,
        )
        outcome = self._dispatcher.on_sample(sample, now_ms=self._clock_ms())
        if outcome.restarted:
            logger.debug("Song restarted!")
        return outcome

    def tick(self, now_ms: Optional[float] = None) -> List[LightingEvent]:
        tick_ms = self._clock_ms() if now_ms is None else float(now_ms)
        self._tick_now_ms = tick_ms
        try:
            dispatched = self._dispatcher.tick(tick_ms)
            for animator in list(self._animators.values()):
                try:
                    animator.pulse(tick_ms)
                except Exception:
                    logger.exception("Animation pulse failed for %s", animator.object_id)
                    animator.cancel()
        finally:
            self._tick_now_ms = None
        return dispatched

    def trigger_event(self, event: LightingEvent, *, now_ms: Optional[float] = None) -> None:
        self._tick_now_ms = self._clock_ms() if now_ms is None else float(now_ms)
        try:
            self._fan_out(event)
        finally:
            self._tick_now_ms = None

    def _fan_out(self, event: LightingEvent) -> None:
        now_ms = self._tick_now_ms if self._tick_now_ms is not None else self._clock_ms()
        for animator in list(self._animators.values()):
            try:
                animator.on_event(event, now_ms)
            except Exception:
                logger.exception("Lighting event %s failed for %s", event.action, animator.object_id)
                animator.cancel()
        self.eventDispatched.emit(event)

    def _on_tick_timer(self) -> None:
        self.tick()

    # -----------------
    # Thread-safe entry points
    # -----------------

    def post_playback_sample(self, *, paused: bool, current_time_seconds: float) -> None:
        self._sampleReceived.emit(bool(paused), float(current_time_seconds), float(self._clock_ms()))

    def post_archive_url(self, url: str) -> None:
        self._archiveUrlReceived.emit(str(url or ""))

    def post_event(self, event: LightingEvent) -> None:
        self._eventReceived.emit(event)

    def _on_sample_received(self, paused: bool, current_time_seconds: float, observed_at_ms: float) -> None:
        self.on_playback_sample(paused=paused, current_time_seconds=current_time_seconds, observed_at_ms=observed_at_ms)

    def _on_archive_url_received(self, url: str) -> None:
        self.set_archive_url(url)

    def _on_event_received(self, event: LightingEvent) -> None:
        self.trigger_event(event)


def describe_status(status: SourceStatus) -> Dict[str, object]:
    song: Optional[Dict[str, object]] = None
    if status.info is not None:
        song = {
            "song_name": status.info.song_name,
            "song_author_name": status.info.song_author_name,
            "level_author_name": status.info.level_author_name,
            "beatmap_filename": status.info.beatmap_filename,
        }
    return {
        "source_url": status.source_url,
        "state": status.state,
        "error": status.error,
        "song": song,
        "bpm": status.bpm,
        "version": status.version,
        "event_count": int(status.event_count),
    }

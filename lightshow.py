"""
lightshow.py

Real entrypoint that launches the light show runtime.

Integration
- Creates QCoreApplication
- Loads config (falls back to defaults when no config file exists)
- Builds the property sink, one ReactorAnimator per configured fixture and the LightmapSource
- Starts the Flask web server in background for the playback feed and status API
- Starts the driver timer and the Qt event loop
"""

from __future__ import annotations

import argparse
import logging
import signal
import sys
import threading
from pathlib import Path
from typing import Any, Dict, List, Optional

from PyQt6.QtCore import QCoreApplication, QTimer

import config as config_module
import lightmap_source
import web_server
from beatmap_store import BeatmapLoader
from lightmap_source import LightmapSource
from reactor_animator import ReactorAnimator
from scene_sink import SceneStateSink


logger = logging.getLogger("lightshow")


def _load_app_config(config_path: Optional[str]) -> config_module.AppConfig:
    if config_path:
        app_config, _resolved_path = config_module.load_config(Path(config_path))
        return app_config
    try:
        app_config, _resolved_path = config_module.get_config()
        return app_config
    except FileNotFoundError:
        return config_module.default_config()


def build_animators(app_config: config_module.AppConfig, sink: SceneStateSink) -> List[ReactorAnimator]:
    return [
        ReactorAnimator(
            object_id=fixture.object_id,
            sink=sink,
            channel=fixture.channel,
            fixture_kind=fixture.kind,
            intensity_multiplier=fixture.intensity_multiplier,
        )
        for fixture in app_config.fixtures
    ]


def build_bindings(source: LightmapSource, sink: SceneStateSink) -> web_server.ShowBindings:
    def status_provider() -> Dict[str, Any]:
        return lightmap_source.describe_status(source.status())

    def clock_provider() -> Dict[str, Any]:
        clock_state = source.dispatcher().clock_state()
        return {
            "is_playing": clock_state.is_playing,
            "last_known_position_ms": clock_state.last_known_position_ms,
            "cursor_index": clock_state.cursor_index,
        }

    def playback_sink(paused: bool, current_time_seconds: float) -> None:
        source.post_playback_sample(paused=paused, current_time_seconds=current_time_seconds)

    return web_server.ShowBindings(
        status_provider=status_provider,
        clock_provider=clock_provider,
        scene_provider=sink.snapshot,
        playback_sink=playback_sink,
        source_setter=source.post_archive_url,
        event_sink=source.post_event,
    )


def _start_web_server_in_background(flask_app: Any, server_config: web_server.WebServerConfig) -> None:
    def run_server() -> None:
        flask_app.run(
            host=server_config.host,
            port=server_config.port,
            debug=server_config.debug,
            use_reloader=False,
            threaded=False,
        )

    server_thread = threading.Thread(target=run_server, name="lightshow-web-server", daemon=True)
    server_thread.start()


def main() -> int:
    argument_parser = argparse.ArgumentParser(description="Beatlights light show runtime")
    argument_parser.add_argument("--config", default=None, help="Path to lightshow_config.json.")
    argument_parser.add_argument("--archive-url", default=None, help="Beatmap archive URL or path, overrides config.")
    argument_parser.add_argument("--no-web", action="store_true", help="Do not start the web server.")
    argument_parser.add_argument("--web-debug", action="store_true", help="Enable Flask debug mode.")
    argument_parser.add_argument("--log-level", default=None, help="DEBUG, INFO, WARNING or ERROR.")
    argument_parser.add_argument("--trace-updates", action="store_true", help="Log every property update.")
    parsed_args = argument_parser.parse_args()

    try:
        app_config = _load_app_config(parsed_args.config)
    except (OSError, ValueError) as exception:
        print(f"lightshow: {exception}", file=sys.stderr)
        return 2

    log_level_name = str(parsed_args.log_level or app_config.logging.level).upper()
    logging.basicConfig(
        level=getattr(logging, log_level_name, logging.INFO),
        format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
    )

    qt_application = QCoreApplication(sys.argv)

    sink = SceneStateSink()
    if parsed_args.trace_updates:
        sink.add_listener(lambda object_id, properties, _immediate: logger.debug("update %s %s", object_id, properties))

    loader = BeatmapLoader(
        max_download_bytes=app_config.source.max_download_bytes,
        timeout_seconds=app_config.source.request_timeout_seconds,
    )
    source = LightmapSource(loader=loader, tick_interval_ms=app_config.driver.tick_interval_ms)
    for animator in build_animators(app_config, sink):
        source.add_animator(animator)
    logger.info("Configured %d fixtures", len(source.animators()))

    if app_config.web_server.enabled and not parsed_args.no_web:
        server_config = web_server.WebServerConfig(
            host=str(app_config.web_server.host),
            port=int(app_config.web_server.port),
            debug=bool(parsed_args.web_debug),
        )
        flask_app = web_server.create_flask_app(server_config, build_bindings(source, sink))
        _start_web_server_in_background(flask_app, server_config)
        logger.info("Playback feed listening on http://%s:%d/api/playback", server_config.host, server_config.port)

    source.start()
    source.set_archive_url(parsed_args.archive_url or app_config.source.archive_url)

    qt_application.aboutToQuit.connect(source.stop)

    # Let Ctrl+C reach Python while Qt owns the main loop.
    signal.signal(signal.SIGINT, lambda _signum, _frame: qt_application.quit())
    wake_timer = QTimer()
    wake_timer.setInterval(200)
    wake_timer.timeout.connect(lambda: None)
    wake_timer.start()

    return int(qt_application.exec())


if __name__ == "__main__":
    raise SystemExit(main())

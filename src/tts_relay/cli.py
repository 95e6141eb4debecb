"""
Command-Line Interface for tts-relay.

Usage Examples:
    # Run the HTTP service
    tts-relay serve
    tts-relay serve --port 9000 --settings config/prod.yaml --log-level VERBOSE

    # Show the voice catalog (voiceIx values)
    tts-relay voices
    tts-relay voices --json

Shutdown (serve):
    First SIGINT/SIGTERM: /_health turns 503 and new submissions are refused;
    after server.shutdown_grace_s the server stops accepting connections,
    finishes open requests and waits up to jobs.shutdown_timeout_s for
    running jobs. Second signal: exit immediately.

Environment Variables:
    TTS_RELAY_SETTINGS: Settings file (default config/settings.yaml)
    TTS_RELAY_LOG_LEVEL: Log level (1-4 or name)
"""

from __future__ import annotations

import argparse
import json
import os
import threading
from typing import List, Optional

import uvicorn

from tts_relay import __version__
from tts_relay.clients.tts import voice_catalog
from tts_relay.core.config import load_settings
from tts_relay.core.lifecycle import ShutdownState, get_shutdown_state
from tts_relay.core.logging import configure_logging, get_logger, info, warn


class DrainingServer(uvicorn.Server):
    """
    uvicorn server that drains before exiting.

    The first exit signal flips the shared ShutdownState and schedules the
    real exit after grace_s; a second signal forces exit.
    """

    def __init__(self, config: uvicorn.Config, shutdown_state: ShutdownState, grace_s: float):
        super().__init__(config)
        self._shutdown_state = shutdown_state
        self._grace_s = grace_s
        self._timer: Optional[threading.Timer] = None
        self._log = get_logger("tts-relay.server")

    def handle_exit(self, sig, frame) -> None:
        count = self._shutdown_state.begin_draining()
        if count == 1:
            warn(self._log, "draining", signal=int(sig), grace_s=self._grace_s)
            self._timer = threading.Timer(self._grace_s, self._stop)
            self._timer.daemon = True
            self._timer.start()
            return

        warn(self._log, "force_exit", signal=int(sig))
        if self._timer is not None:
            self._timer.cancel()
        self.should_exit = True
        self.force_exit = True

    def _stop(self) -> None:
        info(self._log, "grace_elapsed")
        self.should_exit = True


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="tts-relay", description="tts-relay CLI")
    parser.add_argument("--version", action="version", version=f"tts-relay {__version__}")
    sub = parser.add_subparsers(dest="command")

    serve = sub.add_parser("serve", help="Run the HTTP service")
    serve.add_argument("--host", help="Bind address (default from settings)")
    serve.add_argument("--port", type=int, help="Bind port (default from settings)")
    serve.add_argument("--settings", help="Settings YAML path")
    serve.add_argument("--log-level", help="Log level (1-4 or MINIMAL/NORMAL/VERBOSE/DEBUG)")

    voices = sub.add_parser("voices", help="List the voice catalog")
    voices.add_argument("--json", action="store_true", help="Output JSON")

    return parser


def _serve(args: argparse.Namespace) -> int:
    # Set before the app is imported: dependencies and logging read them
    if args.settings:
        os.environ["TTS_RELAY_SETTINGS"] = args.settings
    if args.log_level:
        os.environ["TTS_RELAY_LOG_LEVEL"] = str(args.log_level)

    settings_path = os.getenv("TTS_RELAY_SETTINGS", "config/settings.yaml")
    config = load_settings(settings_path, missing_ok=True).get_relay_config()

    configure_logging(level=config.logging.level, force=True)
    log = get_logger("tts-relay.cli")
    host = args.host or config.server.host
    port = args.port or config.server.port

    from tts_relay.main import app

    info(log, "serve", host=host, port=port, settings=settings_path, workers=config.jobs.max_workers)
    server = DrainingServer(
        uvicorn.Config(app, host=host, port=port, log_config=None, lifespan="on"),
        shutdown_state=get_shutdown_state(),
        grace_s=config.server.shutdown_grace_s,
    )
    server.run()
    return 0


def _voices(args: argparse.Namespace) -> int:
    catalog = voice_catalog()
    if args.json:
        print(json.dumps(catalog, ensure_ascii=False, indent=2))
        return 0

    for entry in catalog:
        flag = " (disabled)" if entry["disabled"] else ""
        print(f"{entry['index']:>2}  {entry['voiceId']}  {entry['description']}{flag}")
    return 0


def main(argv: Optional[List[str]] = None) -> int:
    parser = _build_parser()
    args = parser.parse_args(argv)
    if args.command == "serve":
        return _serve(args)
    if args.command == "voices":
        return _voices(args)

    parser.print_help()
    return 2


if __name__ == "__main__":
    raise SystemExit(main())

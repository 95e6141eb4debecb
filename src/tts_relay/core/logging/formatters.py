"""
Log Formatters for JSON and Console Output.

    JsonlFormatter: one JSON object per line for file output, carrying the
        submission id as "job_id" so a job's whole history can be pulled
        out with a single filter (jq 'select(.job_id == "ep-42")').

    ColoredConsoleFormatter: human-readable colored lines for the terminal.

Output Examples:
    JSONL (file):
        {"ts":"2026-01-15T14:30:05+00:00","level":2,"tag":"SUCCESS","message":"job_completed","job_id":"ep-42","seconds":3.1,"extra":{"status":"completed","r2_key":"podcasts/episode.mp3"}}

    Console (colored):
        14:30:05 [SUCCESS] (ep-42) job_completed 3.100s status=completed r2_key=podcasts/episode.mp3

Color Schemes:
    Timing (seconds):
        - < 1.0s: Green
        - 1.0-10.0s: Yellow (typical TTS round trip)
        - > 10.0s: Red

    status=...: green completed, red failed, yellow processing
    attempt=...: yellow once a retry is happening
"""
from __future__ import annotations

import json
import logging
from datetime import datetime
from typing import Any, Dict

from .colors import Colors, get_status_color, get_tag_color


def _colorize_for_formatter(text: str, color: str) -> str:
    # Read the flag at call time so configure_logging() and tests can flip it
    from . import colors
    if not colors.USE_COLORS:
        return text
    return f"{color}{text}{Colors.RESET}"


class JsonlFormatter(logging.Formatter):
    """
    Format log records as JSON Lines for file output.

    Output Format:
        {
            "ts": "...",            # ISO timestamp with timezone
            "level": 2,             # Numeric level (1-4)
            "tag": "INFO",
            "message": "job_accepted",
            "job_id": "ep-42",      # Submission id, "-" outside a job
            "event": "...",         # Optional
            "seconds": 0.5,         # Optional
            "extra": {...}          # Optional structured fields
        }
    """

    def format(self, record: logging.LogRecord) -> str:
        ts = datetime.fromtimestamp(record.created).astimezone().isoformat()

        payload: Dict[str, Any] = {
            "ts": ts,
            "level": getattr(record, "numeric_level", 2),
            "tag": getattr(record, "tag", record.levelname),
            "message": record.getMessage(),
            "job_id": getattr(record, "job_id", "-"),
        }

        event = getattr(record, "event", None)
        if event:
            payload["event"] = event

        seconds = getattr(record, "seconds", None)
        if seconds is not None:
            payload["seconds"] = seconds

        extra_data = getattr(record, "extra_data", None)
        if extra_data:
            payload["extra"] = extra_data

        if record.exc_info:
            payload["exc"] = self.formatException(record.exc_info)

        return json.dumps(payload, ensure_ascii=False, default=str)


class ColoredConsoleFormatter(logging.Formatter):
    """
    Format log records with ANSI colors for console output.

    Output Format:
        HH:MM:SS [ TAG   ] (job id) message 0.123s key=value
    """

    def format(self, record: logging.LogRecord) -> str:
        ts = datetime.fromtimestamp(record.created).strftime("%H:%M:%S")
        tag = getattr(record, "tag", record.levelname)
        job_id = getattr(record, "job_id", "-")
        msg = record.getMessage()

        parts = [
            _colorize_for_formatter(ts, Colors.DIM),
            _colorize_for_formatter(f"[{tag:^7}]", get_tag_color(tag)),
        ]
        if job_id != "-":
            parts.append(_colorize_for_formatter(f"({job_id})", Colors.DIM + Colors.CYAN))
        parts.append(msg)

        event = getattr(record, "event", None)
        if event:
            parts.append(_colorize_for_formatter(f"event={event}", Colors.BLUE))

        seconds = getattr(record, "seconds", None)
        if seconds is not None:
            if seconds < 1.0:
                time_color = Colors.GREEN
            elif seconds < 10.0:
                time_color = Colors.YELLOW
            else:
                time_color = Colors.RED
            parts.append(_colorize_for_formatter(f"{seconds:.3f}s", time_color))

        extra_data = getattr(record, "extra_data", None)
        if extra_data:
            for k, v in extra_data.items():
                parts.append(_colorize_for_formatter(f"{k}={v}", self._get_field_color(k, v)))

        line = " ".join(parts)
        if record.exc_info:
            line = f"{line}\n{self.formatException(record.exc_info)}"
        return line

    def _get_field_color(self, key: str, value: Any) -> str:
        if key == "status":
            return get_status_color(value)
        if key == "attempt" and isinstance(value, int):
            return Colors.YELLOW if value > 1 else Colors.DIM
        if key in ("error", "reason"):
            return Colors.RED
        if key == "cpu_percent" and isinstance(value, (int, float)):
            if value < 50:
                return Colors.CYAN
            if value < 80:
                return Colors.YELLOW
            return Colors.RED
        return Colors.DIM

"""
Job Context and Configuration State for Logging.

Context Variables:
    The job id context variable correlates every log line that belongs to
    one submission: the HTTP handler sets it when a request names a
    submission, and each processing task sets it again on its worker thread
    (context variables do not cross into ThreadPoolExecutor workers).

Configuration State:
    Module-level variables hold the current level, the resolved logging
    configuration and the "already configured" flag.

Environment Variables:
    - TTS_RELAY_SETTINGS: Settings file to read the logging section from
    - TTS_RELAY_LOG_LEVEL: Override log level (1-4 or name)
    - TTS_RELAY_LOG_DIR: Directory for JSONL log files
    - TTS_RELAY_JSONL_FILE: JSONL filename
    - TTS_RELAY_LOG_ROTATE_BYTES: Max log file size
    - TTS_RELAY_LOG_ROTATE_BACKUP: Number of backup files
"""
from __future__ import annotations

import os
from contextvars import ContextVar
from typing import Any, Dict

from .levels import LEVEL_NAMES, LogLevel

# "-" marks log lines emitted outside any job
_job_id: ContextVar[str] = ContextVar("job_id", default="-")

_configured: bool = False
_log_config: Dict[str, Any] = {}
_current_level: LogLevel = LogLevel.NORMAL


def get_job_id() -> str:
    """Get the submission id bound to the current context, or "-"."""
    return _job_id.get()


def set_job_id(job_id: str) -> None:
    """Bind a submission id to the current context for log correlation."""
    _job_id.set(job_id)


def get_level() -> LogLevel:
    return _current_level


def set_level(level: LogLevel) -> None:
    global _current_level
    _current_level = level


def get_level_name() -> str:
    """Current log level as a name ("MINIMAL", "NORMAL", ...)."""
    return LEVEL_NAMES.get(_current_level, "NORMAL")


def is_configured() -> bool:
    return _configured


def set_configured(value: bool) -> None:
    global _configured
    _configured = value


def get_log_config() -> Dict[str, Any]:
    return _log_config


def set_log_config(config: Dict[str, Any]) -> None:
    global _log_config
    _log_config = config


def _int_env(cfg: Dict[str, Any], env_name: str, key: str) -> None:
    value = os.getenv(env_name)
    if not value:
        return
    try:
        cfg[key] = int(value)
    except ValueError:
        pass  # Invalid value, keep file/default setting


def read_logging_config() -> Dict[str, Any]:
    """
    Read logging configuration from settings file and environment.

    Configuration priority (highest to lowest):
        1. Environment variables (TTS_RELAY_LOG_LEVEL, etc.)
        2. settings.yaml logging section
        3. Default values

    Returns:
        Dictionary with resolved logging configuration.
    """
    cfg: Dict[str, Any] = {}

    settings_path = os.getenv("TTS_RELAY_SETTINGS", "config/settings.yaml")
    try:
        from tts_relay.core.config import load_settings
        settings = load_settings(settings_path)
        cfg.update(settings.raw.get("logging", {}) or {})
    except Exception:
        # Settings file not found or invalid - use defaults
        pass

    if os.getenv("TTS_RELAY_LOG_LEVEL"):
        cfg["level"] = os.environ["TTS_RELAY_LOG_LEVEL"]
    if os.getenv("TTS_RELAY_LOG_DIR"):
        cfg["log_dir"] = os.environ["TTS_RELAY_LOG_DIR"]
    if os.getenv("TTS_RELAY_JSONL_FILE"):
        cfg["jsonl_file"] = os.environ["TTS_RELAY_JSONL_FILE"]
    _int_env(cfg, "TTS_RELAY_LOG_ROTATE_BYTES", "rotate_max_bytes")
    _int_env(cfg, "TTS_RELAY_LOG_ROTATE_BACKUP", "rotate_backup_count")

    return cfg

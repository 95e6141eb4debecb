"""
Configuration Management for tts-relay.

This module provides centralized configuration handling with:
    - Default values (Defaults class)
    - Dataclass-based configuration objects
    - YAML file loading with environment variable overrides
    - Validation with meaningful error messages

Configuration Hierarchy (highest priority first):
    1. Environment variables (TTS_RELAY_MAX_WORKERS, TTS_RELAY_PORT, etc.)
    2. YAML config file (config/settings.yaml)
    3. Defaults class values

Per-job parameters (API key, bucket, credentials, prefix) are NOT part of
the service configuration; callers supply them with every submission.

Example settings.yaml:
    server:
      port: 8080
      shutdown_grace_s: 2

    jobs:
      max_workers: 4
      max_pending: 64

    tts:
      timeout_s: 30
      max_attempts: 3

    logging:
      level: 2  # NORMAL
"""

from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict
import os
import yaml


class ConfigValidationError(Exception):
    """
    Raised when configuration validation fails.

    This exception is thrown when a configuration value is outside
    acceptable bounds or of the wrong type.
    """
    pass


class Defaults:
    """
    Centralized default configuration values.

    Sections:
        - Server: Bind address and shutdown behaviour
        - Jobs: Worker pool and temporary artifacts
        - TTS: Remote text-to-speech provider
        - Object Store: S3-compatible upload target
        - Logging: Log level and formatting
        - Resources: CPU/RAM monitoring
    """

    # ─────────────────────────────────────────────────────────────────────────
    # Server
    # ─────────────────────────────────────────────────────────────────────────
    SERVER_HOST = "0.0.0.0"
    SERVER_PORT = 8080
    SERVER_SHUTDOWN_GRACE_S = 2.0       # Draining window before uvicorn stops

    # ─────────────────────────────────────────────────────────────────────────
    # Jobs
    # ─────────────────────────────────────────────────────────────────────────
    JOBS_MAX_WORKERS = 4                # Concurrent processing tasks
    JOBS_MAX_PENDING = 64               # Accepted-but-unfinished jobs before 503
    JOBS_ARTIFACT_DIR = ""              # Empty = system temp dir
    JOBS_SHUTDOWN_TIMEOUT_S = 5.0       # Wait for running tasks on shutdown
    JOBS_DEFAULT_OUTPUT_FILE_NAME = "episode.mp3"
    JOBS_DEFAULT_VOICE_INDEX = 0

    # ─────────────────────────────────────────────────────────────────────────
    # TTS provider (ElevenLabs)
    # ─────────────────────────────────────────────────────────────────────────
    TTS_BASE_URL = "https://api.elevenlabs.io"
    TTS_MODEL_ID = "eleven_multilingual_v2"
    TTS_OUTPUT_FORMAT = "mp3_44100_128"
    TTS_SPEED = 1.0
    TTS_TIMEOUT_S = 30.0
    TTS_CONNECT_TIMEOUT_S = 10.0
    TTS_MAX_ATTEMPTS = 3
    TTS_BACKOFF_BASE_S = 2.0            # 2s, 4s, 8s, ...

    # ─────────────────────────────────────────────────────────────────────────
    # Object store (Cloudflare R2)
    # ─────────────────────────────────────────────────────────────────────────
    STORE_ENDPOINT_TEMPLATE = "https://{account_id}.r2.cloudflarestorage.com"
    STORE_REGION = "auto"
    STORE_CONTENT_TYPE = "audio/mpeg"

    # ─────────────────────────────────────────────────────────────────────────
    # Logging
    # ─────────────────────────────────────────────────────────────────────────
    LOGGING_TEXT_PREVIEW_CHARS = 100
    LOGGING_LEVEL = 2                   # 1=MINIMAL, 2=NORMAL, 3=VERBOSE, 4=DEBUG

    # ─────────────────────────────────────────────────────────────────────────
    # Resource Monitoring
    # ─────────────────────────────────────────────────────────────────────────
    RESOURCES_ENABLED = True


@dataclass
class ServerConfig:
    """HTTP server bind address and shutdown behaviour."""
    host: str = Defaults.SERVER_HOST
    port: int = Defaults.SERVER_PORT
    shutdown_grace_s: float = Defaults.SERVER_SHUTDOWN_GRACE_S


@dataclass
class JobsConfig:
    """
    Job runner configuration.

    max_workers caps the number of processing tasks (and therefore
    outbound TTS calls) running at the same time. max_pending bounds the
    number of accepted jobs that have not finished yet.
    """
    max_workers: int = Defaults.JOBS_MAX_WORKERS
    max_pending: int = Defaults.JOBS_MAX_PENDING
    artifact_dir: str = Defaults.JOBS_ARTIFACT_DIR
    shutdown_timeout_s: float = Defaults.JOBS_SHUTDOWN_TIMEOUT_S
    default_output_file_name: str = Defaults.JOBS_DEFAULT_OUTPUT_FILE_NAME
    default_voice_index: int = Defaults.JOBS_DEFAULT_VOICE_INDEX


@dataclass
class TTSClientConfig:
    """Remote TTS provider endpoint, timeouts and retry policy."""
    base_url: str = Defaults.TTS_BASE_URL
    model_id: str = Defaults.TTS_MODEL_ID
    output_format: str = Defaults.TTS_OUTPUT_FORMAT
    speed: float = Defaults.TTS_SPEED
    timeout_s: float = Defaults.TTS_TIMEOUT_S
    connect_timeout_s: float = Defaults.TTS_CONNECT_TIMEOUT_S
    max_attempts: int = Defaults.TTS_MAX_ATTEMPTS
    backoff_base_s: float = Defaults.TTS_BACKOFF_BASE_S


@dataclass
class ObjectStoreConfig:
    """S3-compatible object store endpoint settings."""
    endpoint_template: str = Defaults.STORE_ENDPOINT_TEMPLATE
    region: str = Defaults.STORE_REGION
    content_type: str = Defaults.STORE_CONTENT_TYPE


@dataclass
class LoggingConfig:
    """
    Logging configuration.

    Log levels:
        1 = MINIMAL: Startup, shutdown, failures only
        2 = NORMAL: Job lifecycle (default)
        3 = VERBOSE: Per-stage timing, retries
        4 = DEBUG: Internal state
    """
    text_preview_chars: int = Defaults.LOGGING_TEXT_PREVIEW_CHARS
    level: int = Defaults.LOGGING_LEVEL


@dataclass
class ResourcesConfig:
    """Resource monitoring configuration (reported by /_health)."""
    enabled: bool = Defaults.RESOURCES_ENABLED


@dataclass
class RelayConfig:
    """
    Validated configuration for the relay service.

    This is the main configuration object created from Settings.
    It validates all values and provides typed access to configuration.

    Usage:
        settings = load_settings("config/settings.yaml")
        config = RelayConfig.from_settings(settings)
        print(config.jobs.max_workers)
    """
    server: ServerConfig = field(default_factory=ServerConfig)
    jobs: JobsConfig = field(default_factory=JobsConfig)
    tts: TTSClientConfig = field(default_factory=TTSClientConfig)
    store: ObjectStoreConfig = field(default_factory=ObjectStoreConfig)
    logging: LoggingConfig = field(default_factory=LoggingConfig)
    resources: ResourcesConfig = field(default_factory=ResourcesConfig)

    @classmethod
    def from_settings(cls, settings: "Settings") -> "RelayConfig":
        """
        Create RelayConfig from Settings with validation.

        Args:
            settings: Raw Settings object loaded from YAML.

        Returns:
            Validated RelayConfig instance.

        Raises:
            ConfigValidationError: If any value fails validation.
        """
        raw = settings.raw

        # ─────────────────────────────────────────────────────────────────────
        # Server
        # ─────────────────────────────────────────────────────────────────────
        server_raw = raw.get("server", {}) or {}
        server = ServerConfig(
            host=str(server_raw.get("host", Defaults.SERVER_HOST)),
            port=int(server_raw.get("port", Defaults.SERVER_PORT)),
            shutdown_grace_s=float(server_raw.get("shutdown_grace_s", Defaults.SERVER_SHUTDOWN_GRACE_S)),
        )
        cls._validate_range("server.port", server.port, 1, 65535)
        cls._validate_non_negative("server.shutdown_grace_s", server.shutdown_grace_s)

        # ─────────────────────────────────────────────────────────────────────
        # Jobs
        # ─────────────────────────────────────────────────────────────────────
        jobs_raw = raw.get("jobs", {}) or {}
        jobs = JobsConfig(
            max_workers=int(jobs_raw.get("max_workers", Defaults.JOBS_MAX_WORKERS)),
            max_pending=int(jobs_raw.get("max_pending", Defaults.JOBS_MAX_PENDING)),
            artifact_dir=str(jobs_raw.get("artifact_dir", Defaults.JOBS_ARTIFACT_DIR) or ""),
            shutdown_timeout_s=float(jobs_raw.get("shutdown_timeout_s", Defaults.JOBS_SHUTDOWN_TIMEOUT_S)),
            default_output_file_name=str(
                jobs_raw.get("default_output_file_name", Defaults.JOBS_DEFAULT_OUTPUT_FILE_NAME)
            ),
            default_voice_index=int(jobs_raw.get("default_voice_index", Defaults.JOBS_DEFAULT_VOICE_INDEX)),
        )
        cls._validate_positive("jobs.max_workers", jobs.max_workers)
        cls._validate_positive("jobs.max_pending", jobs.max_pending)
        cls._validate_non_negative("jobs.shutdown_timeout_s", jobs.shutdown_timeout_s)
        from tts_relay.clients.tts import is_valid_voice_index
        if not is_valid_voice_index(jobs.default_voice_index):
            raise ConfigValidationError(
                f"jobs.default_voice_index must name an enabled catalog voice, got {jobs.default_voice_index}"
            )
        if not jobs.default_output_file_name:
            raise ConfigValidationError("jobs.default_output_file_name must not be empty")
        if jobs.max_pending < jobs.max_workers:
            raise ConfigValidationError(
                f"jobs.max_pending ({jobs.max_pending}) must be >= jobs.max_workers ({jobs.max_workers})"
            )

        # ─────────────────────────────────────────────────────────────────────
        # TTS provider
        # ─────────────────────────────────────────────────────────────────────
        tts_raw = raw.get("tts", {}) or {}
        tts = TTSClientConfig(
            base_url=str(tts_raw.get("base_url", Defaults.TTS_BASE_URL)).rstrip("/"),
            model_id=str(tts_raw.get("model_id", Defaults.TTS_MODEL_ID)),
            output_format=str(tts_raw.get("output_format", Defaults.TTS_OUTPUT_FORMAT)),
            speed=float(tts_raw.get("speed", Defaults.TTS_SPEED)),
            timeout_s=float(tts_raw.get("timeout_s", Defaults.TTS_TIMEOUT_S)),
            connect_timeout_s=float(tts_raw.get("connect_timeout_s", Defaults.TTS_CONNECT_TIMEOUT_S)),
            max_attempts=int(tts_raw.get("max_attempts", Defaults.TTS_MAX_ATTEMPTS)),
            backoff_base_s=float(tts_raw.get("backoff_base_s", Defaults.TTS_BACKOFF_BASE_S)),
        )
        cls._validate_positive("tts.speed", tts.speed)
        cls._validate_positive("tts.timeout_s", tts.timeout_s)
        cls._validate_positive("tts.connect_timeout_s", tts.connect_timeout_s)
        cls._validate_range("tts.max_attempts", tts.max_attempts, 1, 10)
        cls._validate_non_negative("tts.backoff_base_s", tts.backoff_base_s)

        # ─────────────────────────────────────────────────────────────────────
        # Object store
        # ─────────────────────────────────────────────────────────────────────
        store_raw = raw.get("store", {}) or {}
        store = ObjectStoreConfig(
            endpoint_template=str(store_raw.get("endpoint_template", Defaults.STORE_ENDPOINT_TEMPLATE)),
            region=str(store_raw.get("region", Defaults.STORE_REGION)),
            content_type=str(store_raw.get("content_type", Defaults.STORE_CONTENT_TYPE)),
        )
        if "{account_id}" not in store.endpoint_template:
            raise ConfigValidationError("store.endpoint_template must contain '{account_id}'")

        # ─────────────────────────────────────────────────────────────────────
        # Logging
        # ─────────────────────────────────────────────────────────────────────
        logging_raw = raw.get("logging", {}) or {}
        log_level_raw = os.getenv("TTS_RELAY_LOG_LEVEL") or logging_raw.get("level", Defaults.LOGGING_LEVEL)

        # Handle string log levels (e.g., "INFO", "DEBUG")
        if isinstance(log_level_raw, str):
            level_map = {
                "MINIMAL": 1, "1": 1,
                "NORMAL": 2, "INFO": 2, "2": 2,
                "VERBOSE": 3, "3": 3,
                "DEBUG": 4, "TRACE": 4, "4": 4,
            }
            log_level = level_map.get(log_level_raw.upper(), Defaults.LOGGING_LEVEL)
        else:
            log_level = int(log_level_raw)

        logging_cfg = LoggingConfig(
            text_preview_chars=int(logging_raw.get("text_preview_chars", Defaults.LOGGING_TEXT_PREVIEW_CHARS)),
            level=log_level,
        )
        cls._validate_non_negative("logging.text_preview_chars", logging_cfg.text_preview_chars)
        cls._validate_range("logging.level", logging_cfg.level, 1, 4)

        # ─────────────────────────────────────────────────────────────────────
        # Resources (environment variable takes precedence)
        # ─────────────────────────────────────────────────────────────────────
        resources_raw = raw.get("resources", {}) or {}
        resources_enabled = os.getenv("TTS_RELAY_RESOURCES_ENABLED")
        resources = ResourcesConfig(
            enabled=resources_enabled != "0" if resources_enabled is not None
                else bool(resources_raw.get("enabled", Defaults.RESOURCES_ENABLED)),
        )

        return cls(
            server=server,
            jobs=jobs,
            tts=tts,
            store=store,
            logging=logging_cfg,
            resources=resources,
        )

    @staticmethod
    def _validate_positive(name: str, value: int | float) -> None:
        """Validate that a value is positive (> 0)."""
        if value <= 0:
            raise ConfigValidationError(f"{name} must be positive, got {value}")

    @staticmethod
    def _validate_non_negative(name: str, value: int | float) -> None:
        """Validate that a value is non-negative (>= 0)."""
        if value < 0:
            raise ConfigValidationError(f"{name} must be non-negative, got {value}")

    @staticmethod
    def _validate_range(name: str, value: int | float, min_val: int | float, max_val: int | float) -> None:
        """Validate that a value is within a range [min_val, max_val]."""
        if not (min_val <= value <= max_val):
            raise ConfigValidationError(f"{name} must be between {min_val} and {max_val}, got {value}")


@dataclass(frozen=True)
class Settings:
    """
    Immutable settings container loaded from YAML.

    This is the raw settings object before validation. Use
    get_relay_config() to get the validated RelayConfig.

    Attributes:
        raw: Dictionary of raw configuration values.
    """
    raw: Dict[str, Any]

    def get_relay_config(self) -> RelayConfig:
        """
        Get validated RelayConfig from these settings.

        Raises:
            ConfigValidationError: If validation fails.
        """
        return RelayConfig.from_settings(self)


@dataclass(frozen=True)
class DeploymentContext:
    """
    Deployment metadata attached to submission responses.

    Read from the environment the container platform injects. Purely
    informational, no behaviour depends on it.
    """
    region: str = ""
    instance_id: str = ""
    country: str = ""
    location: str = ""

    @classmethod
    def from_env(cls) -> "DeploymentContext":
        return cls(
            region=os.getenv("CLOUDFLARE_REGION", ""),
            instance_id=os.getenv("CLOUDFLARE_DEPLOYMENT_ID", ""),
            country=os.getenv("CLOUDFLARE_COUNTRY_A2", ""),
            location=os.getenv("CLOUDFLARE_LOCATION", ""),
        )

    def to_dict(self) -> Dict[str, str]:
        return {
            "region": self.region,
            "instanceId": self.instance_id,
            "country": self.country,
            "location": self.location,
        }


# Environment variable -> (section, key, converter)
_ENV_OVERRIDES = {
    "TTS_RELAY_HOST": ("server", "host", str),
    "TTS_RELAY_PORT": ("server", "port", int),
    "TTS_RELAY_MAX_WORKERS": ("jobs", "max_workers", int),
    "TTS_RELAY_ARTIFACT_DIR": ("jobs", "artifact_dir", str),
    "TTS_RELAY_TTS_BASE_URL": ("tts", "base_url", str),
}


def _apply_env_overrides(raw: Dict[str, Any]) -> Dict[str, Any]:
    for env_name, (section, key, convert) in _ENV_OVERRIDES.items():
        value = os.getenv(env_name)
        if not value:
            continue
        try:
            raw.setdefault(section, {})[key] = convert(value)
        except ValueError:
            raise ConfigValidationError(f"{env_name} has an invalid value: {value!r}")
    return raw


def load_settings(path: str = "config/settings.yaml", missing_ok: bool = False) -> Settings:
    """
    Load settings from a YAML configuration file.

    Environment variable overrides (TTS_RELAY_HOST, TTS_RELAY_PORT,
    TTS_RELAY_MAX_WORKERS, TTS_RELAY_ARTIFACT_DIR, TTS_RELAY_TTS_BASE_URL)
    are applied on top of the file contents.

    Args:
        path: Path to the YAML configuration file.
        missing_ok: Fall back to defaults when the file does not exist.

    Returns:
        Settings object with loaded configuration.

    Raises:
        FileNotFoundError: If the settings file doesn't exist and
            missing_ok is False.
    """
    p = Path(path)
    if not p.exists():
        if not missing_ok:
            raise FileNotFoundError(f"settings file not found: {p.resolve()}")
        return Settings(raw=_apply_env_overrides({}))

    with p.open("r", encoding="utf-8") as f:
        raw: Dict[str, Any] = yaml.safe_load(f) or {}

    return Settings(raw=_apply_env_overrides(raw))

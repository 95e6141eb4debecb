"""
FastAPI Dependency Injection Providers.

    get_settings()        - Loads and caches settings (TTS_RELAY_SETTINGS)
    get_job_service()     - Singleton JobService built from those settings

Tests override these through app.dependency_overrides.
"""
from __future__ import annotations

import os
from functools import lru_cache

from tts_relay.core.config import Settings, load_settings
from tts_relay.jobs.service import JobService, get_service


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """
    Load and cache application settings.

    The path comes from TTS_RELAY_SETTINGS (default config/settings.yaml);
    a missing file means "all defaults".
    """
    path = os.getenv("TTS_RELAY_SETTINGS", "config/settings.yaml")
    return load_settings(path, missing_ok=True)


def get_job_service() -> JobService:
    return get_service(get_settings())

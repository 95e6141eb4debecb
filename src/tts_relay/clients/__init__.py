"""
Remote Dependency Clients.

    - tts.py: ElevenLabs text-to-speech (httpx) and the voice catalog
    - object_store.py: S3-compatible upload to Cloudflare R2 (boto3)
"""
from tts_relay.clients.object_store import (
    ObjectStore,
    ObjectStoreCredentials,
    ObjectStoreError,
    R2ObjectStore,
)
from tts_relay.clients.tts import (
    VOICES,
    TTSClient,
    TTSClientError,
    VoiceModel,
    get_voice,
    is_valid_voice_index,
    voice_catalog,
)

__all__ = [
    "ObjectStore",
    "ObjectStoreCredentials",
    "ObjectStoreError",
    "R2ObjectStore",
    "VOICES",
    "TTSClient",
    "TTSClientError",
    "VoiceModel",
    "get_voice",
    "is_valid_voice_index",
    "voice_catalog",
]

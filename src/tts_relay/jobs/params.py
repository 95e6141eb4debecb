"""
Per-Job Parameters.

JobRequest carries what the caller sent, with every field optional.
ProcessingParams is the validated, immutable form the processing task
works from; it is only ever constructed complete.
"""
from __future__ import annotations

from dataclasses import dataclass, field
from typing import Optional

from tts_relay.clients.object_store import ObjectStoreCredentials
from tts_relay.clients.tts import is_valid_voice_index
from tts_relay.core.config import Defaults
from tts_relay.jobs.validators import ValidationError


@dataclass(frozen=True)
class JobRequest:
    """Submission payload as received, before validation."""
    text: Optional[str] = None
    api_key: Optional[str] = field(default=None, repr=False)
    voice_index: Optional[int] = None
    output_file_name: Optional[str] = None
    bucket_name: Optional[str] = None
    access_key_id: Optional[str] = None
    secret_access_key: Optional[str] = field(default=None, repr=False)
    account_id: Optional[str] = None
    prefix: Optional[str] = None


def _mask(value: str) -> str:
    if len(value) <= 4:
        return "****"
    return f"****{value[-4:]}"


@dataclass(frozen=True)
class ProcessingParams:
    """
    Everything one processing task needs.

    Validation runs in __post_init__ and stops at the first missing field,
    in wire-name order: apiKey, voiceIx, outputFileName, r2BucketName,
    r2AccessKeyId, r2SecretAccessKey, r2AccountId, r2Prefix.

    Raises:
        ValidationError: On the first invalid field.
    """
    text: str
    api_key: str
    bucket_name: str
    access_key_id: str
    secret_access_key: str
    account_id: str
    prefix: str
    voice_index: int = Defaults.JOBS_DEFAULT_VOICE_INDEX
    output_file_name: str = Defaults.JOBS_DEFAULT_OUTPUT_FILE_NAME

    def __post_init__(self) -> None:
        if not self.text or not self.text.strip():
            raise ValidationError("text is required", "TEXT_REQUIRED")
        if not self.api_key:
            raise ValidationError("apiKey is required", "API_KEY_REQUIRED")
        if not is_valid_voice_index(self.voice_index):
            raise ValidationError("voiceIx is out of range", "VOICE_INDEX_OUT_OF_RANGE")
        if not self.output_file_name:
            raise ValidationError("outputFileName is required", "OUTPUT_FILE_NAME_REQUIRED")
        if not self.bucket_name:
            raise ValidationError("r2BucketName is required", "BUCKET_NAME_REQUIRED")
        if not self.access_key_id:
            raise ValidationError("r2AccessKeyId is required", "ACCESS_KEY_ID_REQUIRED")
        if not self.secret_access_key:
            raise ValidationError("r2SecretAccessKey is required", "SECRET_ACCESS_KEY_REQUIRED")
        if not self.account_id:
            raise ValidationError("r2AccountId is required", "ACCOUNT_ID_REQUIRED")
        if not self.prefix:
            raise ValidationError("r2Prefix is required", "PREFIX_REQUIRED")

    @classmethod
    def from_request(
        cls,
        request: JobRequest,
        default_voice_index: int = Defaults.JOBS_DEFAULT_VOICE_INDEX,
        default_output_file_name: str = Defaults.JOBS_DEFAULT_OUTPUT_FILE_NAME,
    ) -> "ProcessingParams":
        """Fill defaults for voiceIx / outputFileName and validate."""
        return cls(
            text=request.text or "",
            api_key=request.api_key or "",
            voice_index=default_voice_index if request.voice_index is None else request.voice_index,
            output_file_name=request.output_file_name or default_output_file_name,
            bucket_name=request.bucket_name or "",
            access_key_id=request.access_key_id or "",
            secret_access_key=request.secret_access_key or "",
            account_id=request.account_id or "",
            prefix=request.prefix or "",
        )

    @property
    def storage_key(self) -> str:
        """Object key: "{prefix}/{output_file_name}", a trailing "/" on prefix not doubled."""
        return f"{self.prefix.rstrip('/')}/{self.output_file_name}"

    @property
    def credentials(self) -> ObjectStoreCredentials:
        return ObjectStoreCredentials(
            access_key_id=self.access_key_id,
            secret_access_key=self.secret_access_key,
        )

    def __repr__(self) -> str:
        return (
            f"ProcessingParams(chars={len(self.text)}, api_key={_mask(self.api_key)!r}, "
            f"voice_index={self.voice_index}, output_file_name={self.output_file_name!r}, "
            f"bucket_name={self.bucket_name!r}, access_key_id={self.access_key_id!r}, "
            f"secret_access_key='****', account_id={self.account_id!r}, prefix={self.prefix!r})"
        )

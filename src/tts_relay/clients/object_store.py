"""
S3-Compatible Object Store Client (Cloudflare R2).

Uploads a local file to a bucket. Credentials and account come with every
job, so a boto3 client is built per upload rather than once at startup.

R2 specifics:
    endpoint_url = https://{account_id}.r2.cloudflarestorage.com
    region_name  = "auto"
    signature    = s3v4

Uploads are a single attempt (botocore's own retries are disabled); a
failure is reported with botocore's error text unchanged.
"""
from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from pathlib import Path

import boto3
from botocore.client import Config
from botocore.exceptions import BotoCoreError, ClientError

from tts_relay.core.config import ObjectStoreConfig
from tts_relay.core.logging import get_logger, verbose
from tts_relay.core.metrics import metrics


_LOG = get_logger("tts-relay.store")


class ObjectStoreError(Exception):
    """Raised when an upload fails. The message is the underlying error text."""

    def __init__(self, message: str):
        self.message = message
        super().__init__(message)


@dataclass(frozen=True)
class ObjectStoreCredentials:
    access_key_id: str
    secret_access_key: str = field(repr=False)


class ObjectStore(ABC):
    """Abstract upload target."""

    @abstractmethod
    def upload(
        self,
        bucket: str,
        key: str,
        path: Path,
        credentials: ObjectStoreCredentials,
        account_id: str,
    ) -> None:
        """
        Upload the file at path to bucket/key.

        Raises:
            ObjectStoreError: If the store rejects or cannot receive the upload.
            OSError: If the local file cannot be read.
        """


class R2ObjectStore(ObjectStore):
    """Upload to Cloudflare R2 (or any S3-compatible store) with boto3."""

    def __init__(self, config: ObjectStoreConfig):
        self._config = config

    def endpoint_url(self, account_id: str) -> str:
        return self._config.endpoint_template.format(account_id=account_id)

    def _client(self, credentials: ObjectStoreCredentials, account_id: str):
        return boto3.client(
            "s3",
            endpoint_url=self.endpoint_url(account_id),
            aws_access_key_id=credentials.access_key_id,
            aws_secret_access_key=credentials.secret_access_key,
            region_name=self._config.region,
            config=Config(signature_version="s3v4", retries={"total_max_attempts": 1}),
        )

    def upload(
        self,
        bucket: str,
        key: str,
        path: Path,
        credentials: ObjectStoreCredentials,
        account_id: str,
    ) -> None:
        size = Path(path).stat().st_size
        try:
            s3 = self._client(credentials, account_id)
            with open(path, "rb") as body:
                s3.put_object(
                    Bucket=bucket,
                    Key=key,
                    Body=body,
                    ContentType=self._config.content_type,
                )
        except (BotoCoreError, ClientError) as e:
            raise ObjectStoreError(str(e)) from e

        metrics.record_upload(size)
        verbose(_LOG, "upload_ok", bucket=bucket, r2_key=key, bytes=size)

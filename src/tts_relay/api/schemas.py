"""
API Request/Response Schemas.

Field names on the wire are camelCase; the Python attributes are
snake_case with aliases.

Example Request (POST /process/ep-42):
    {
        "text": "Welcome to episode forty-two.",
        "elevenLabsApiToken": "sk_...",
        "voiceIx": 8,
        "outputFileName": "episode.mp3",
        "r2BucketName": "podcasts",
        "r2AccessKeyId": "...",
        "r2SecretAccessKey": "...",
        "r2AccountId": "...",
        "r2Prefix": "shows/weekly/42"
    }

Only text is required at this layer. The rest is checked by the processing
task, so a submission with missing credentials is accepted and then fails
with a message naming the missing field.
"""
from __future__ import annotations

from typing import Optional

from pydantic import BaseModel, ConfigDict, Field

from tts_relay.jobs.params import JobRequest


class ProcessRequest(BaseModel):
    """Body of POST /process/{submission_id}."""

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    text: Optional[str] = Field(None, description="Text to synthesize")
    api_key: Optional[str] = Field(None, alias="elevenLabsApiToken", repr=False)
    voice_index: Optional[int] = Field(None, alias="voiceIx", description="Index into GET /voices")
    output_file_name: Optional[str] = Field(None, alias="outputFileName")
    bucket_name: Optional[str] = Field(None, alias="r2BucketName")
    access_key_id: Optional[str] = Field(None, alias="r2AccessKeyId")
    secret_access_key: Optional[str] = Field(None, alias="r2SecretAccessKey", repr=False)
    account_id: Optional[str] = Field(None, alias="r2AccountId")
    prefix: Optional[str] = Field(None, alias="r2Prefix")

    def to_job_request(self) -> JobRequest:
        return JobRequest(
            text=self.text,
            api_key=self.api_key,
            voice_index=self.voice_index,
            output_file_name=self.output_file_name,
            bucket_name=self.bucket_name,
            access_key_id=self.access_key_id,
            secret_access_key=self.secret_access_key,
            account_id=self.account_id,
            prefix=self.prefix,
        )


class ProcessAck(BaseModel):
    """Response of POST /process/{submission_id}."""

    model_config = ConfigDict(populate_by_name=True)

    message: str
    submission_id: str = Field(alias="submissionId")
    status: str
    started_at: str = Field(alias="startedAt")
    region: str = ""
    instance_id: str = Field("", alias="instanceId")
    country: str = ""
    location: str = ""


class JobStatusResponse(BaseModel):
    """Response of GET /status/{submission_id}."""

    model_config = ConfigDict(populate_by_name=True)

    submission_id: str = Field(alias="submissionId")
    status: str
    r2_key: Optional[str] = Field(None, alias="r2Key")
    error: Optional[str] = None
    started_at: str = Field(alias="startedAt")
    completed_at: Optional[str] = Field(None, alias="completedAt")

"""
Input Validation for Submissions.

Checks that run synchronously in the submission path, before any record is
created or task started. A failure here is a client error (HTTP 400).

Validation Rules:
    - Submission id: required, at most 256 characters, no "/" (it is a path segment)
    - Text: required, not blank
    - Voice index: optional, must name an enabled catalog voice

All functions raise ValidationError with a human-readable message and a
machine-readable code ({FIELD}_REQUIRED, {FIELD}_TOO_LONG, ...).
"""
from __future__ import annotations

from typing import Optional

from tts_relay.clients.tts import VOICES, is_valid_voice_index

MAX_SUBMISSION_ID_LENGTH = 256


class ValidationError(Exception):
    """
    Exception raised when input validation fails.

    Attributes:
        message: Human-readable error description.
        code: Machine-readable error code for programmatic handling.
    """

    def __init__(self, message: str, code: str = "VALIDATION_ERROR"):
        self.message = message
        self.code = code
        super().__init__(message)


def validate_submission_id(submission_id: Optional[str]) -> str:
    if not submission_id or not submission_id.strip():
        raise ValidationError("submissionId is required in URL path", "SUBMISSION_ID_REQUIRED")

    if len(submission_id) > MAX_SUBMISSION_ID_LENGTH:
        raise ValidationError(
            f"submissionId exceeds maximum length ({len(submission_id)} > {MAX_SUBMISSION_ID_LENGTH})",
            "SUBMISSION_ID_TOO_LONG",
        )

    if "/" in submission_id:
        raise ValidationError("submissionId must not contain '/'", "SUBMISSION_ID_INVALID")

    return submission_id


def validate_text(text: Optional[str]) -> str:
    """
    Validate the text to synthesize.

    The text is returned unchanged (not stripped); leading and trailing
    whitespace is the caller's choice and is sent to the provider as is.
    """
    if not text or not text.strip():
        raise ValidationError("text is required", "TEXT_REQUIRED")
    return text


def validate_voice_index(voice_index: Optional[int]) -> Optional[int]:
    """
    Validate an optional voice index.

    Returns:
        The index, or None when the caller did not pick a voice.
    """
    if voice_index is None:
        return None

    if isinstance(voice_index, bool) or not isinstance(voice_index, int):
        raise ValidationError("voiceIx must be an integer", "VOICE_INDEX_INVALID")

    if not is_valid_voice_index(voice_index):
        raise ValidationError(
            f"voiceIx is out of range (0-{len(VOICES) - 1})",
            "VOICE_INDEX_OUT_OF_RANGE",
        )

    return voice_index

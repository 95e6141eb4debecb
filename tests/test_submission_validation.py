"""Tests for submission validators and ProcessingParams."""
from __future__ import annotations

import pytest

from tts_relay.jobs.params import JobRequest, ProcessingParams
from tts_relay.jobs.validators import (
    ValidationError,
    validate_submission_id,
    validate_text,
    validate_voice_index,
)

from conftest import make_request


class TestValidators:
    """Test synchronous validators."""

    def test_submission_id_required(self):
        with pytest.raises(ValidationError) as exc:
            validate_submission_id("")
        assert exc.value.code == "SUBMISSION_ID_REQUIRED"
        assert exc.value.message == "submissionId is required in URL path"

    def test_submission_id_whitespace_only(self):
        with pytest.raises(ValidationError):
            validate_submission_id("   ")

    def test_submission_id_too_long(self):
        with pytest.raises(ValidationError) as exc:
            validate_submission_id("x" * 257)
        assert exc.value.code == "SUBMISSION_ID_TOO_LONG"

    def test_submission_id_max_length_ok(self):
        assert validate_submission_id("x" * 256) == "x" * 256

    def test_submission_id_with_slash(self):
        with pytest.raises(ValidationError) as exc:
            validate_submission_id("a/b")
        assert exc.value.code == "SUBMISSION_ID_INVALID"

    @pytest.mark.parametrize("text", [None, "", "   ", "\n\t"])
    def test_text_required(self, text):
        with pytest.raises(ValidationError) as exc:
            validate_text(text)
        assert exc.value.message == "text is required"

    def test_text_returned_unchanged(self):
        assert validate_text("  hello  ") == "  hello  "

    def test_voice_index_optional(self):
        assert validate_voice_index(None) is None

    def test_voice_index_bounds(self):
        assert validate_voice_index(0) == 0
        assert validate_voice_index(10) == 10
        with pytest.raises(ValidationError) as exc:
            validate_voice_index(11)
        assert exc.value.code == "VOICE_INDEX_OUT_OF_RANGE"
        with pytest.raises(ValidationError):
            validate_voice_index(-1)

    def test_voice_index_rejects_bool(self):
        with pytest.raises(ValidationError) as exc:
            validate_voice_index(True)
        assert exc.value.code == "VOICE_INDEX_INVALID"


class TestProcessingParams:
    """Test ProcessingParams construction and validation."""

    def test_defaults_applied(self):
        """voiceIx defaults to 0 and outputFileName to episode.mp3."""
        params = ProcessingParams.from_request(make_request())
        assert params.voice_index == 0
        assert params.output_file_name == "episode.mp3"

    def test_explicit_values_kept(self):
        params = ProcessingParams.from_request(make_request(voice_index=8, output_file_name="ep42.mp3"))
        assert params.voice_index == 8
        assert params.output_file_name == "ep42.mp3"

    def test_configured_defaults(self):
        params = ProcessingParams.from_request(
            make_request(), default_voice_index=3, default_output_file_name="audio.mp3"
        )
        assert params.voice_index == 3
        assert params.output_file_name == "audio.mp3"

    @pytest.mark.parametrize("field,message", [
        ("api_key", "apiKey is required"),
        ("bucket_name", "r2BucketName is required"),
        ("access_key_id", "r2AccessKeyId is required"),
        ("secret_access_key", "r2SecretAccessKey is required"),
        ("account_id", "r2AccountId is required"),
        ("prefix", "r2Prefix is required"),
    ])
    def test_missing_field_message(self, field, message):
        with pytest.raises(ValidationError) as exc:
            ProcessingParams.from_request(make_request(**{field: None}))
        assert exc.value.message == message

    def test_first_missing_field_reported(self):
        """Validation stops at the first missing field in wire order."""
        request = make_request(api_key="", bucket_name="", prefix="")
        with pytest.raises(ValidationError) as exc:
            ProcessingParams.from_request(request)
        assert exc.value.message == "apiKey is required"

    def test_voice_index_out_of_range(self):
        with pytest.raises(ValidationError) as exc:
            ProcessingParams.from_request(make_request(voice_index=42))
        assert exc.value.message == "voiceIx is out of range"

    def test_storage_key(self):
        params = ProcessingParams.from_request(make_request(prefix="shows/weekly"))
        assert params.storage_key == "shows/weekly/episode.mp3"

    def test_storage_key_trailing_slash(self):
        params = ProcessingParams.from_request(make_request(prefix="shows/weekly/"))
        assert params.storage_key == "shows/weekly/episode.mp3"

    def test_immutable(self):
        params = ProcessingParams.from_request(make_request())
        with pytest.raises(Exception):
            params.prefix = "other"

    def test_repr_masks_secrets(self):
        params = ProcessingParams.from_request(make_request())
        text = repr(params)
        assert "super-secret-key" not in text
        assert "sk_test_0123456789" not in text
        assert "6789" in text  # last four of the API key only

    def test_job_request_repr_hides_secrets(self):
        text = repr(JobRequest(api_key="sk_abc", secret_access_key="shh"))
        assert "sk_abc" not in text
        assert "shh" not in text

    def test_credentials(self):
        creds = ProcessingParams.from_request(make_request()).credentials
        assert creds.access_key_id == "AKIDEXAMPLE"
        assert creds.secret_access_key == "super-secret-key"
        assert "super-secret-key" not in repr(creds)

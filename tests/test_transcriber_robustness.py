"""Tests for transcriber robustness: provider errors, transport failures, timeouts."""

import io
import time
from types import SimpleNamespace
from unittest.mock import MagicMock

import httpx
import pytest
from deepgram.core.api_error import ApiError

from speech_insight.transcriber import (
    TranscriptionError,
    TranscriptionProvider,
    TranscriptionProviderError,
    TranscriptionTransportError,
)
from speech_insight.transcriber_deepgram import DeepgramTranscriber


@pytest.fixture
def transcriber():
    t = DeepgramTranscriber(api_key="dg-test", max_workers=1)
    t._client = MagicMock()
    yield t
    t.executor.shutdown(wait=True)


async def run(t: DeepgramTranscriber):
    return await t.transcribe(io.BytesIO(b"audio"), "clip.mp3", "audio/mpeg", diarize=False)


class TestProviderErrors:
    """Test mapping of Deepgram API errors."""

    @pytest.mark.asyncio
    async def test_api_error_maps_status_and_detail(self, transcriber):
        """Test a non-2xx response keeps its status and body."""
        transcriber._client.listen.v1.media.transcribe_file.side_effect = ApiError(
            status_code=401, body="Invalid credentials"
        )

        with pytest.raises(TranscriptionProviderError) as exc_info:
            await run(transcriber)

        assert exc_info.value.status_code == 401
        assert exc_info.value.detail == "Invalid credentials"
        assert str(exc_info.value) == "Transcription failed: 401"
        assert exc_info.value.retryable is False

    @pytest.mark.asyncio
    async def test_api_error_structured_body(self, transcriber):
        """Test non-string bodies are rendered into the detail."""
        transcriber._client.listen.v1.media.transcribe_file.side_effect = ApiError(
            status_code=400, body={"err_code": "Bad Request"}
        )

        with pytest.raises(TranscriptionProviderError) as exc_info:
            await run(transcriber)

        assert "Bad Request" in exc_info.value.detail

    @pytest.mark.parametrize(
        "status,retryable",
        [(400, False), (403, False), (408, True), (429, True), (500, True), (503, True)],
    )
    def test_retryable_classification(self, status, retryable):
        """Test which statuses are worth retrying."""
        assert TranscriptionProviderError(status).retryable is retryable

    def test_error_hierarchy(self):
        """Test both failure kinds share the transcription base."""
        assert issubclass(TranscriptionProviderError, TranscriptionError)
        assert issubclass(TranscriptionTransportError, TranscriptionError)
        assert TranscriptionTransportError("x").retryable is True


class TestTransportErrors:
    """Test network failures and timeouts."""

    @pytest.mark.asyncio
    async def test_connect_error(self, transcriber):
        """Test connection failures map to transport errors."""
        transcriber._client.listen.v1.media.transcribe_file.side_effect = httpx.ConnectError(
            "connection refused"
        )

        with pytest.raises(TranscriptionTransportError, match="connection refused"):
            await run(transcriber)

    @pytest.mark.asyncio
    async def test_read_timeout(self, transcriber):
        """Test HTTP timeouts map to transport errors."""
        transcriber._client.listen.v1.media.transcribe_file.side_effect = httpx.ReadTimeout(
            "read timed out"
        )

        with pytest.raises(TranscriptionTransportError):
            await run(transcriber)

    @pytest.mark.asyncio
    async def test_overall_timeout(self, transcriber):
        """Test the overall request timeout maps to a transport error."""
        transcriber.timeout = 0.05

        def slow(*args, **kwargs):
            time.sleep(0.3)

        transcriber._client.listen.v1.media.transcribe_file.side_effect = slow

        with pytest.raises(TranscriptionTransportError, match="timed out"):
            await run(transcriber)


class TestMalformedResponses:
    """Test responses that cannot be interpreted."""

    @pytest.mark.asyncio
    async def test_no_channels(self, transcriber):
        """Test an empty channel list is a transcription error."""
        transcriber._client.listen.v1.media.transcribe_file.return_value = SimpleNamespace(
            results=SimpleNamespace(channels=[], utterances=None),
            metadata=None,
        )

        with pytest.raises(TranscriptionError, match="Unexpected transcription response"):
            await run(transcriber)

    @pytest.mark.asyncio
    async def test_missing_results(self, transcriber):
        """Test a response without results is a transcription error."""
        transcriber._client.listen.v1.media.transcribe_file.return_value = SimpleNamespace()

        with pytest.raises(TranscriptionError):
            await run(transcriber)

    @pytest.mark.asyncio
    async def test_unexpected_sdk_error_wrapped(self, transcriber):
        """Test other SDK exceptions surface as TranscriptionError with the cause kept."""
        transcriber._client.listen.v1.media.transcribe_file.side_effect = ValueError(
            "1 validation error for ListenV1Response"
        )

        with pytest.raises(TranscriptionError, match="Transcription request failed") as exc_info:
            await run(transcriber)

        assert isinstance(exc_info.value.__cause__, ValueError)
        assert not isinstance(exc_info.value, TranscriptionProviderError)


class TestProviderContract:
    """Test the abstract provider contract."""

    def test_abstract(self):
        """Test the contract cannot be instantiated directly."""
        with pytest.raises(TypeError):
            TranscriptionProvider()

    @pytest.mark.asyncio
    async def test_minimal_provider(self):
        """Test a minimal implementation only needs transcribe and model_name."""

        class Fixed(TranscriptionProvider):
            async def transcribe(self, stream, filename, content_type, diarize):
                raise TranscriptionTransportError("offline")

            def model_name(self):
                return "fixed"

        provider = Fixed()
        assert provider.model_name() == "fixed"
        await provider.shutdown()
        with pytest.raises(TranscriptionTransportError):
            await provider.transcribe(io.BytesIO(), "a.wav", None, False)

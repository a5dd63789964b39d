"""Audio transcription via Deepgram API."""

import asyncio
import logging
import time
from concurrent.futures import ThreadPoolExecutor
from typing import Any, BinaryIO

import httpx

from speech_insight._types import TranscriptionResult, TranscriptSegment
from speech_insight.config import ConfigError, DeepgramConfig
from speech_insight.text_metrics import normalize_language_code
from speech_insight.transcriber import (
    TranscriptionError,
    TranscriptionProvider,
    TranscriptionProviderError,
    TranscriptionTransportError,
)

logger = logging.getLogger(__name__)


class DeepgramTranscriber(TranscriptionProvider):
    """Encapsulates Deepgram API client and transcription logic.

    Runs transcription inside a thread pool executor to avoid blocking the event loop.
    Lazy-initializes client on first transcription; the client is shared by all
    in-flight requests.
    """

    def __init__(
        self,
        api_key: str | None,
        model: str = "nova-3",
        language: str = "auto",
        smart_format: bool = True,
        punctuate: bool = True,
        utterances: bool = True,
        timeout: float = 120.0,
        executor: ThreadPoolExecutor | None = None,
        max_workers: int = 4,
    ):
        """Initialize Deepgram transcriber.

        Args:
            api_key: Deepgram API key (checked on first use)
            model: Deepgram model (nova-3, nova-2, whisper-large, etc.)
            language: Language code, or "auto" for provider detection
            smart_format: Enable smart formatting (currency, dates, etc.)
            punctuate: Auto-add punctuation
            utterances: Return utterance-level segments
            timeout: API request timeout in seconds
            executor: Optional ThreadPoolExecutor for transcription tasks
            max_workers: Worker count when the executor is owned
        """
        self.api_key = api_key
        self.model = model
        self.language = language
        self.smart_format = smart_format
        self.punctuate = punctuate
        self.utterances = utterances
        self.timeout = timeout
        self.executor = executor or ThreadPoolExecutor(max_workers=max_workers)
        self._executor_owned = executor is None
        self._client = None
        self._client_lock = asyncio.Lock()
        logger.info(
            "DeepgramTranscriber initialized: model=%s, language=%s, smart_format=%s, "
            "punctuate=%s, timeout=%.1fs",
            model,
            language,
            smart_format,
            punctuate,
            timeout,
        )

    @classmethod
    def from_config(cls, cfg: DeepgramConfig) -> "DeepgramTranscriber":
        """Build a transcriber from the [deepgram] config section."""
        return cls(
            api_key=cfg.api_key,
            model=cfg.model,
            language=cfg.language,
            smart_format=cfg.smart_format,
            punctuate=cfg.punctuate,
            utterances=cfg.utterances,
            timeout=cfg.timeout,
            max_workers=cfg.max_workers,
        )

    def model_name(self) -> str:
        return self.model

    async def _ensure_client_initialized(self) -> None:
        """Lazy-initialize Deepgram client on first use.

        Uses asyncio.Lock to prevent concurrent initialization attempts.

        Raises:
            ConfigError: If no API key is configured
            TranscriptionError: If client initialization fails
        """
        async with self._client_lock:
            if self._client is not None:
                return

            if not self.api_key:
                raise ConfigError(
                    "DEEPGRAM_API_KEY is not set. Add it to the config file or environment."
                )

            logger.info("Initializing Deepgram client with model: %s", self.model)

            try:
                from deepgram import DeepgramClient

                start_time = time.perf_counter()
                self._client = DeepgramClient(api_key=self.api_key)
                duration = time.perf_counter() - start_time
                logger.info("Deepgram client initialized in %.3f seconds", duration)
            except Exception as e:
                logger.error("Failed to initialize Deepgram client: %s", e)
                raise TranscriptionError(f"Failed to initialize Deepgram client: {e}") from e

    async def transcribe(
        self,
        stream: BinaryIO,
        filename: str,
        content_type: str | None,
        diarize: bool,
    ) -> TranscriptionResult:
        """Transcribe an audio stream asynchronously using Deepgram API.

        Reads the stream from its current position to the end, runs the API call
        in the thread pool, and normalizes the response.

        Args:
            stream: Binary audio stream (WAV, MP3, M4A, WEBM, etc.)
            filename: Display file name (for logging)
            content_type: Optional MIME type (Deepgram sniffs the container)
            diarize: Request speaker-labeled segments

        Returns:
            TranscriptionResult with text, model, duration, segments and language

        Raises:
            ConfigError: If no API key is configured
            TranscriptionProviderError: On a non-2xx Deepgram response
            TranscriptionTransportError: On network failure or timeout
        """
        await self._ensure_client_initialized()

        audio_bytes = stream.read()
        logger.info(
            "Starting transcription of %s (%d bytes, content_type=%s, diarize=%s)",
            filename,
            len(audio_bytes),
            content_type,
            diarize,
        )

        try:
            result = await asyncio.wait_for(
                asyncio.get_running_loop().run_in_executor(
                    self.executor,
                    self._transcribe_sync,
                    audio_bytes,
                    diarize,
                ),
                timeout=self.timeout,
            )
            logger.info("Transcription completed: %d segments", len(result.segments))
            return result
        except asyncio.TimeoutError as e:
            logger.error("Transcription timed out after %.1f seconds", self.timeout)
            raise TranscriptionTransportError(
                f"Transcription timed out after {self.timeout} seconds"
            ) from e

    def _transcribe_sync(self, audio_bytes: bytes, diarize: bool) -> TranscriptionResult:
        """Synchronous transcription using Deepgram API (runs in thread pool).

        Raises:
            TranscriptionProviderError: On a non-2xx Deepgram response
            TranscriptionTransportError: On network failure
            TranscriptionError: If the response cannot be interpreted
        """
        if self._client is None:
            raise TranscriptionError("Deepgram client not initialized")

        options: dict[str, Any] = {
            "model": self.model,
            "smart_format": self.smart_format,
            "punctuate": self.punctuate,
            "utterances": self.utterances or diarize,
        }
        if diarize:
            options["diarize"] = True
        if self.language == "auto":
            options["detect_language"] = True
        else:
            options["language"] = self.language

        logger.debug("Deepgram options: %s", options)

        from deepgram.core.api_error import ApiError

        try:
            response = self._client.listen.v1.media.transcribe_file(
                request=audio_bytes,
                **options,
            )
        except ApiError as e:
            detail = e.body if isinstance(e.body, str) else repr(e.body)
            logger.error("Deepgram API error (%s): %s", e.status_code, detail)
            raise TranscriptionProviderError(e.status_code or 0, detail) from e
        except httpx.HTTPError as e:
            logger.error("Deepgram transport error: %s", e)
            raise TranscriptionTransportError(f"Transcription service error: {e}") from e
        except Exception as e:
            logger.error("Deepgram request failed: %s", e, exc_info=True)
            raise TranscriptionError(f"Transcription request failed: {e}") from e

        try:
            return self._normalize_response(response, diarize)
        except (AttributeError, IndexError, TypeError) as e:
            logger.error("Unexpected Deepgram response shape: %s", e, exc_info=True)
            raise TranscriptionError(f"Unexpected transcription response: {e}") from e

    def _normalize_response(self, response: Any, diarize: bool) -> TranscriptionResult:
        """Map a Deepgram response onto TranscriptionResult.

        Duration comes from response metadata, else from the largest segment end.
        Blank segments are dropped.
        """
        results = response.results
        channel = results.channels[0]
        alternative = channel.alternatives[0]
        text = alternative.transcript or ""

        language = normalize_language_code(getattr(channel, "detected_language", None))
        if not language and self.language != "auto":
            language = normalize_language_code(self.language)

        segments = []
        for utt in getattr(results, "utterances", None) or []:
            seg_text = (utt.transcript or "").strip()
            if not seg_text:
                continue
            speaker = getattr(utt, "speaker", None)
            start, end = utt.start, utt.end
            if start is not None and end is not None and end < start:
                logger.debug("Swapping inverted segment timing %.3f..%.3f", start, end)
                start, end = end, start
            segments.append(
                TranscriptSegment(
                    text=seg_text,
                    speaker=f"speaker_{int(speaker)}" if diarize and speaker is not None else None,
                    start=start,
                    end=end,
                )
            )

        duration = None
        metadata = getattr(response, "metadata", None)
        if metadata is not None and getattr(metadata, "duration", None) is not None:
            duration = float(metadata.duration)
        elif segments:
            max_end = max(seg.end or 0.0 for seg in segments)
            if max_end > 0:
                duration = max_end

        return TranscriptionResult(
            text=text,
            model=self.model,
            duration=duration,
            segments=segments,
            diarized=diarize,
            language=language,
        )

    async def shutdown(self) -> None:
        """Clean up resources and shut down executor.

        Releases client reference and stops thread pool if owned by this instance.
        """
        logger.info("DeepgramTranscriber shutting down")
        self._client = None
        if self._executor_owned and self.executor:
            self.executor.shutdown(wait=True)
            logger.debug("Executor shut down")

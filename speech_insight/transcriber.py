"""Transcription provider contract and error types."""

from abc import ABC, abstractmethod
from typing import BinaryIO

from speech_insight._types import TranscriptionResult

__all__ = [
    "TranscriptionError",
    "TranscriptionProviderError",
    "TranscriptionTransportError",
    "TranscriptionProvider",
]

RETRYABLE_STATUS_CODES = frozenset({408, 429})


class TranscriptionError(Exception):
    """Base exception for transcription failures (always fatal to an analysis)."""

    retryable = False


class TranscriptionProviderError(TranscriptionError):
    """Provider answered with a non-success status."""

    def __init__(self, status_code: int, detail: str = ""):
        super().__init__(f"Transcription failed: {status_code}")
        self.status_code = status_code
        self.detail = detail

    @property
    def retryable(self) -> bool:
        return self.status_code in RETRYABLE_STATUS_CODES or self.status_code >= 500


class TranscriptionTransportError(TranscriptionError):
    """Provider could not be reached (network failure or timeout)."""

    retryable = True


class TranscriptionProvider(ABC):
    """Speech-to-text service returning a normalized TranscriptionResult."""

    @abstractmethod
    async def transcribe(
        self,
        stream: BinaryIO,
        filename: str,
        content_type: str | None,
        diarize: bool,
    ) -> TranscriptionResult:
        """Transcribe the audio stream.

        Requests speaker-labeled output when diarize is set.

        Raises:
            ConfigError: If provider credentials are missing
            TranscriptionProviderError: On a non-2xx provider response
            TranscriptionTransportError: On network failure or timeout
        """

    @abstractmethod
    def model_name(self) -> str:
        """Return the model identifier reported on results."""

    async def shutdown(self) -> None:
        """Release clients and worker threads."""

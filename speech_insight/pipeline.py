"""Analysis pipeline: duration probe -> transcription -> text metrics -> insights."""

import asyncio
import contextlib
import logging
from collections.abc import Awaitable
from enum import Enum
from typing import BinaryIO, TypeVar

from speech_insight._types import AnalysisResult, Insights, TextMetrics
from speech_insight.duration import probe_duration
from speech_insight.insights import InsightsProvider
from speech_insight.text_metrics import (
    compute_clarity_estimate,
    compute_confidence_heuristic,
    compute_speaking_rate,
    count_filler_words,
    count_words,
    detect_language_heuristic,
    normalize_language_code,
)
from speech_insight.transcriber import TranscriptionProvider

logger = logging.getLogger(__name__)

T = TypeVar("T")


class CancellationToken:
    """Token for aborting an in-flight analysis.

    The pipeline checks the token between stages and races it against the
    network stages, so cancelling stops the current stage and skips the rest.
    """

    def __init__(self):
        """Initialize cancellation token in non-cancelled state."""
        self._event = asyncio.Event()

    def cancel(self) -> None:
        """Mark token as cancelled."""
        self._event.set()

    def is_cancelled(self) -> bool:
        """Check if token is cancelled.

        Returns:
            True if cancelled, False otherwise
        """
        return self._event.is_set()

    async def wait(self) -> None:
        """Block until the token is cancelled."""
        await self._event.wait()


class Stage(Enum):
    """Pipeline stage."""

    PROBING = "probing"
    TRANSCRIBING = "transcribing"
    ANALYZING = "analyzing"
    INSIGHTS = "insights"
    ASSEMBLING = "assembling"


class AnalysisCancelledError(Exception):
    """The caller cancelled the analysis; no later stage ran."""

    def __init__(self, stage: Stage):
        super().__init__(f"Analysis cancelled during {stage.value}")
        self.stage = stage


class AnalysisPipeline:
    """Runs the analysis stages in sequence and assembles an AnalysisResult.

    Only transcription failures propagate. The duration probe degrades to an
    unknown duration and the insights stage degrades to absent insights.
    """

    def __init__(
        self,
        transcriber: TranscriptionProvider,
        insights_provider: InsightsProvider | None = None,
        max_duration_seconds: float = 900,
        insights_timeout: float | None = None,
    ):
        """Initialize pipeline with providers.

        Args:
            transcriber: Transcription provider (required)
            insights_provider: Optional insights provider; None skips the stage
            max_duration_seconds: Threshold for duration_exceeds_recommended
            insights_timeout: Optional limit for the insights stage in seconds
        """
        self.transcriber = transcriber
        self.insights_provider = insights_provider
        self.max_duration_seconds = max_duration_seconds
        self.insights_timeout = insights_timeout

    async def analyze(
        self,
        stream: BinaryIO,
        filename: str,
        content_type: str | None,
        diarize: bool = True,
        token: CancellationToken | None = None,
    ) -> AnalysisResult:
        """Run the full analysis.

        Args:
            stream: Seekable audio stream owned by the caller (not closed here)
            filename: Display file name
            content_type: Optional MIME type
            diarize: Request speaker-labeled transcription
            token: Optional cancellation token

        Returns:
            Assembled AnalysisResult

        Raises:
            ValueError: If the stream is not seekable
            ConfigError: If provider credentials are missing
            TranscriptionError: If transcription fails
            AnalysisCancelledError: If the token is cancelled
        """
        if stream is None:
            raise ValueError("Audio stream is required")
        if not stream.seekable():
            raise ValueError("Audio stream must be seekable for analysis.")

        # 1. Duration from the container header, when the format allows it.
        self._check_cancelled(token, Stage.PROBING)
        logger.debug("Stage: %s", Stage.PROBING.value)
        stream.seek(0)
        duration = probe_duration(stream, content_type, filename)
        stream.seek(0)
        logger.debug("Probed duration for %s: %s", filename, duration)

        # 2. Transcription (fatal on failure).
        self._check_cancelled(token, Stage.TRANSCRIBING)
        logger.info("Stage: %s (%s, diarize=%s)", Stage.TRANSCRIBING.value, filename, diarize)
        transcription = await self._run_cancellable(
            self.transcriber.transcribe(stream, filename, content_type, diarize),
            token,
            Stage.TRANSCRIBING,
        )

        # 3. Provider duration only fills an unknown value.
        if duration is None and transcription.duration is not None:
            duration = transcription.duration

        # 4. Text metrics.
        self._check_cancelled(token, Stage.ANALYZING)
        text = transcription.text or ""
        word_count = count_words(text)
        provider_language = normalize_language_code(transcription.language)
        detected_language = provider_language or detect_language_heuristic(text)
        confidence = compute_confidence_heuristic(
            len(text),
            duration,
            word_count,
            had_provider_error=False,
        )

        # 5. Insights (best-effort).
        insights = await self._best_effort_insights(text, token)

        # 6. Delivery metrics.
        filler_count = count_filler_words(text)
        clarity_score, clarity_notes = compute_clarity_estimate(word_count, duration, filler_count)
        speaking_rate = compute_speaking_rate(word_count, duration)

        # 7. Assemble.
        result = AnalysisResult(
            text=text,
            model=transcription.model,
            duration_seconds=duration,
            segments=tuple(transcription.segments),
            diarized=transcription.diarized,
            duration_exceeds_recommended=(
                duration is not None and duration > self.max_duration_seconds
            ),
            metrics=TextMetrics(
                word_count=word_count,
                detected_language=detected_language,
                confidence_score=confidence,
                filler_count=filler_count,
                clarity_score=clarity_score,
                clarity_notes=clarity_notes,
                speaking_rate=speaking_rate,
            ),
            insights=insights,
        )
        logger.info(
            "Analysis success: model=%s, durationSec=%s, words=%d, language=%s",
            result.model,
            result.duration_seconds,
            result.word_count,
            result.detected_language,
        )
        return result

    async def _best_effort_insights(
        self,
        text: str,
        token: CancellationToken | None,
    ) -> Insights | None:
        """Run the insights stage, converting any failure into absent insights.

        Cancellation still propagates.
        """
        if self.insights_provider is None:
            return None

        self._check_cancelled(token, Stage.INSIGHTS)
        logger.debug("Stage: %s", Stage.INSIGHTS.value)
        call = self.insights_provider.get_insights(text)
        if self.insights_timeout is not None:
            call = asyncio.wait_for(call, timeout=self.insights_timeout)

        try:
            return await self._run_cancellable(call, token, Stage.INSIGHTS)
        except AnalysisCancelledError:
            raise
        except Exception as e:
            logger.warning("Insights unavailable (%s: %s)", type(e).__name__, e)
            return None

    @staticmethod
    def _check_cancelled(token: CancellationToken | None, stage: Stage) -> None:
        if token is not None and token.is_cancelled():
            logger.info("Analysis cancelled before %s", stage.value)
            raise AnalysisCancelledError(stage)

    @staticmethod
    async def _run_cancellable(
        call: Awaitable[T],
        token: CancellationToken | None,
        stage: Stage,
    ) -> T:
        """Await a network stage, aborting it as soon as the token fires."""
        if token is None:
            return await call

        task = asyncio.ensure_future(call)
        waiter = asyncio.ensure_future(token.wait())
        try:
            await asyncio.wait({task, waiter}, return_when=asyncio.FIRST_COMPLETED)
        except asyncio.CancelledError:
            task.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await task
            raise
        finally:
            waiter.cancel()

        if task.done():
            return task.result()

        logger.info("Analysis cancelled during %s", stage.value)
        task.cancel()
        with contextlib.suppress(asyncio.CancelledError):
            await task
        raise AnalysisCancelledError(stage)

    async def shutdown(self) -> None:
        """Release provider resources."""
        logger.info("Pipeline shutdown starting")
        try:
            await self.transcriber.shutdown()
        except Exception as e:
            logger.warning("Error shutting down transcriber: %s", e)
        if self.insights_provider is not None:
            try:
                await self.insights_provider.aclose()
            except Exception as e:
                logger.warning("Error closing insights provider: %s", e)
        logger.info("Pipeline shutdown complete")

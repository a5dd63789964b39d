"""Shared types and dataclasses for cross-module use."""

from dataclasses import dataclass, field


@dataclass
class TranscriptSegment:
    """A segment of transcribed text with optional speaker and timing information."""

    text: str
    speaker: str | None = None
    start: float | None = None
    end: float | None = None


@dataclass
class TranscriptionResult:
    """Normalized result from a transcription provider."""

    text: str
    model: str
    duration: float | None = None
    segments: list[TranscriptSegment] = field(default_factory=list)
    diarized: bool = False
    language: str | None = None


@dataclass(frozen=True)
class TextMetrics:
    """Heuristics derived locally from the transcript."""

    word_count: int
    detected_language: str | None
    confidence_score: float
    filler_count: int
    clarity_score: int
    clarity_notes: str
    speaking_rate: float | None = None


@dataclass(frozen=True)
class Sentiment:
    """Sentiment label (Positive, Neutral, Negative, Mixed) and score in [-1, 1]."""

    label: str = "Neutral"
    score: float = 0.0


@dataclass(frozen=True)
class Insights:
    """Model-derived summary, sentiment and topics."""

    summary: str | None = None
    sentiment: Sentiment = field(default_factory=Sentiment)
    topics: tuple[str, ...] = ()


@dataclass(frozen=True)
class AnalysisResult:
    """Assembled output of one analysis request."""

    text: str
    model: str
    duration_seconds: float | None
    segments: tuple[TranscriptSegment, ...]
    diarized: bool
    duration_exceeds_recommended: bool
    metrics: TextMetrics
    insights: Insights | None = None

    @property
    def word_count(self) -> int:
        return self.metrics.word_count

    @property
    def detected_language(self) -> str | None:
        return self.metrics.detected_language

    @property
    def confidence_score(self) -> float:
        return self.metrics.confidence_score

    @property
    def summary(self) -> str | None:
        return self.insights.summary if self.insights else None

    @property
    def sentiment(self) -> Sentiment | None:
        return self.insights.sentiment if self.insights else None

    @property
    def topics(self) -> tuple[str, ...] | None:
        return self.insights.topics if self.insights else None

    def to_dict(self) -> dict:
        """Serialize to the JSON response shape (insight keys are None when insights are absent)."""
        sentiment = self.sentiment
        return {
            "text": self.text,
            "model": self.model,
            "duration_seconds": self.duration_seconds,
            "segments": [
                {
                    "speaker": seg.speaker,
                    "start_seconds": seg.start,
                    "end_seconds": seg.end,
                    "text": seg.text,
                }
                for seg in self.segments
            ],
            "diarized": self.diarized,
            "duration_exceeds_recommended": self.duration_exceeds_recommended,
            "word_count": self.word_count,
            "detected_language": self.detected_language,
            "confidence_score": self.confidence_score,
            "summary": self.summary,
            "sentiment": (
                {"label": sentiment.label, "score": sentiment.score} if sentiment else None
            ),
            "topics": list(self.topics) if self.topics is not None else None,
            "metrics": {
                "duration_seconds": self.duration_seconds,
                "word_count": self.metrics.word_count,
                "speaking_rate": self.metrics.speaking_rate,
                "clarity_score": self.metrics.clarity_score,
                "clarity_notes": self.metrics.clarity_notes,
                "filler_count": self.metrics.filler_count,
            },
        }

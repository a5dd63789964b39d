"""Summary, sentiment and topics from transcript text via a chat-completions API."""

import asyncio
import json
import logging
import math
from abc import ABC, abstractmethod

import httpx

from speech_insight._types import Insights, Sentiment
from speech_insight.config import InsightsConfig

logger = logging.getLogger(__name__)

__all__ = [
    "SENTIMENT_LABELS",
    "MAX_TOPICS",
    "InsightsError",
    "InsightsProvider",
    "OpenAIInsightsProvider",
    "default_insights",
    "normalize_sentiment_label",
    "parse_insights_content",
    "parse_insights_response",
]

SENTIMENT_LABELS = ("Positive", "Neutral", "Negative", "Mixed")
MAX_TOPICS = 5
TRUNCATION_MARKER = "\u2026"

SYSTEM_PROMPT = """\
You are an analysis assistant. Given a transcription, return ONLY valid JSON with no markdown or explanation.
Use this exact shape:
{"summary": "2-4 sentence summary or 3-5 bullet points. Be factual and conservative. Do not diagnose or judge the speaker.", "sentimentLabel": "Positive"|"Neutral"|"Negative"|"Mixed", "sentimentScore": number from -1.0 to 1.0, "topics": ["topic1", "topic2", ...] max 5 short phrases}
Rules: No psychological or medical claims. No absolute claims. sentimentLabel must be one of the four values. topics: max 5 items.
"""


class InsightsError(Exception):
    """Insights request failed (missing key, transport error or non-2xx status)."""

    pass


def default_insights() -> Insights:
    """Safe defaults: no summary, Neutral/0 sentiment, no topics."""
    return Insights(summary=None, sentiment=Sentiment("Neutral", 0.0), topics=())


def normalize_sentiment_label(label: object) -> str:
    """Map a label case-insensitively onto the four canonical values (Neutral otherwise)."""
    if isinstance(label, str):
        for canonical in SENTIMENT_LABELS:
            if label.strip().lower() == canonical.lower():
                return canonical
    return "Neutral"


def parse_insights_content(content: str | None) -> Insights:
    """Parse the model's JSON object into Insights.

    Malformed input degrades to defaults; individual bad fields fall back to
    their own defaults.
    """
    if not content or not content.strip():
        return default_insights()

    try:
        data = json.loads(content)
    except json.JSONDecodeError as e:
        logger.warning("Insights content is not valid JSON: %s", e)
        return default_insights()
    if not isinstance(data, dict):
        return default_insights()

    summary = data.get("summary")
    if not isinstance(summary, str) or not summary.strip():
        summary = None

    label = "Neutral"
    if "sentimentLabel" in data:
        label = normalize_sentiment_label(data["sentimentLabel"])

    score = 0.0
    raw_score = data.get("sentimentScore")
    if (
        isinstance(raw_score, (int, float))
        and not isinstance(raw_score, bool)
        and math.isfinite(raw_score)
    ):
        score = min(max(float(raw_score), -1.0), 1.0)

    topics: list[str] = []
    raw_topics = data.get("topics")
    if isinstance(raw_topics, list):
        for topic in raw_topics:
            if isinstance(topic, str) and topic.strip():
                topics.append(topic.strip())
            if len(topics) >= MAX_TOPICS:
                break

    return Insights(summary=summary, sentiment=Sentiment(label, score), topics=tuple(topics))


def parse_insights_response(body: str) -> Insights:
    """Extract the first choice's message content from a chat-completions body and parse it."""
    try:
        data = json.loads(body)
        choices = data["choices"]
        if not choices:
            return default_insights()
        content = choices[0]["message"]["content"]
    except (json.JSONDecodeError, KeyError, IndexError, TypeError) as e:
        logger.warning("Unexpected insights response shape: %s", e)
        return default_insights()
    if not isinstance(content, str):
        return default_insights()
    return parse_insights_content(content)


class InsightsProvider(ABC):
    """Derives summary, sentiment and topics from a transcript."""

    @abstractmethod
    async def get_insights(self, text: str) -> Insights:
        """Return insights for the transcript (defaults for blank input).

        Raises:
            InsightsError: If the service cannot be reached or rejects the request
        """

    async def aclose(self) -> None:
        """Release network resources."""


class OpenAIInsightsProvider(InsightsProvider):
    """Calls an OpenAI-compatible /chat/completions endpoint in JSON-object mode.

    A single httpx.AsyncClient is created lazily and shared by concurrent requests.
    """

    def __init__(
        self,
        api_key: str | None,
        base_url: str = "https://api.openai.com/v1",
        model: str = "gpt-4o-mini",
        max_tokens: int = 500,
        max_input_chars: int = 12000,
        timeout: float = 30.0,
        client: httpx.AsyncClient | None = None,
    ):
        self.api_key = api_key
        self.base_url = base_url.rstrip("/")
        self.model = model
        self.max_tokens = max_tokens
        self.max_input_chars = max_input_chars
        self.timeout = timeout
        self._client = client
        self._client_owned = client is None
        self._client_lock = asyncio.Lock()
        logger.info(
            "OpenAIInsightsProvider initialized: model=%s, base_url=%s, timeout=%.1fs",
            model,
            self.base_url,
            timeout,
        )

    @classmethod
    def from_config(cls, cfg: InsightsConfig) -> "OpenAIInsightsProvider":
        """Build a provider from the [insights] config section."""
        return cls(
            api_key=cfg.api_key,
            base_url=cfg.base_url,
            model=cfg.model,
            max_tokens=cfg.max_tokens,
            max_input_chars=cfg.max_input_chars,
            timeout=cfg.timeout,
        )

    async def _get_client(self) -> httpx.AsyncClient:
        async with self._client_lock:
            if self._client is None:
                self._client = httpx.AsyncClient(timeout=self.timeout)
            return self._client

    def _build_payload(self, text: str) -> dict:
        if len(text) > self.max_input_chars:
            text = text[: self.max_input_chars] + TRUNCATION_MARKER
        return {
            "model": self.model,
            "messages": [
                {"role": "system", "content": SYSTEM_PROMPT},
                {"role": "user", "content": "Transcription:\n\n" + text},
            ],
            "response_format": {"type": "json_object"},
            "max_tokens": self.max_tokens,
        }

    async def get_insights(self, text: str) -> Insights:
        """Request insights for the transcript.

        Blank input returns defaults without a network call. Unparseable model
        output also returns defaults.

        Raises:
            InsightsError: On missing API key, transport failure or non-2xx status
        """
        if not text or not text.strip():
            return default_insights()

        if not self.api_key:
            raise InsightsError("OPENAI_API_KEY is not set.")

        client = await self._get_client()
        logger.debug("Insights request: model=%s, %d chars", self.model, len(text))

        try:
            response = await client.post(
                f"{self.base_url}/chat/completions",
                json=self._build_payload(text),
                headers={"Authorization": f"Bearer {self.api_key}"},
            )
        except httpx.HTTPError as e:
            raise InsightsError(f"Insights request failed: {e}") from e

        if not response.is_success:
            raise InsightsError(f"Insights API error: {response.status_code}. {response.text}")

        insights = parse_insights_response(response.text)
        logger.info(
            "Insights received: sentiment=%s, topics=%d",
            insights.sentiment.label,
            len(insights.topics),
        )
        return insights

    async def aclose(self) -> None:
        """Close the HTTP client if owned by this instance."""
        if self._client is not None and self._client_owned:
            await self._client.aclose()
            logger.debug("Insights HTTP client closed")
        self._client = None

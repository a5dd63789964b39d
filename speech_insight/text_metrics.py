"""Transcript heuristics: word count, language hint, confidence and clarity.

All functions are pure. Thresholds:

- confidence: x0.7 below 20 wpm, x0.85 above 250 wpm, x0.6 under 10 characters;
  0 for empty text, zero words, non-positive duration or a provider error.
- clarity: -25 when fillers exceed 15% of words (else -15 above 8%), -10 below
  60 wpm (else -5 above 180 wpm), clamped to 0-100.
"""

import re

__all__ = [
    "FILLER_TOKENS",
    "tokenize",
    "is_filler_artifact",
    "count_words",
    "count_filler_words",
    "detect_language_heuristic",
    "compute_speaking_rate",
    "compute_confidence_heuristic",
    "compute_clarity_estimate",
]

_WORD_SEPARATORS = re.compile(r"[ \t\n\r\u00a0]+")

FILLER_TOKENS = frozenset({"um", "uh", "eh", "[inaudible]", "[silence]", "...", "\u2026"})

LOW_WPM = 20
HIGH_WPM = 250
LOW_WPM_FACTOR = 0.7
HIGH_WPM_FACTOR = 0.85
SHORT_TEXT_CHARS = 10
SHORT_TEXT_FACTOR = 0.6

MANY_FILLERS_RATIO = 0.15
SOME_FILLERS_RATIO = 0.08
SLOW_PACE_WPM = 60
FAST_PACE_WPM = 180

NO_SPEECH_NOTES = (
    "No speech detected. Clarity is an estimate based on word count, pace, and fillers."
)


def tokenize(text: str | None) -> list[str]:
    """Split on space, tab, newline, carriage return and no-break space; drop empty tokens."""
    if not text:
        return []
    return [token for token in _WORD_SEPARATORS.split(text) if token]


def is_filler_artifact(token: str) -> bool:
    """Check for filler or non-word artifacts some engines emit (single characters never count)."""
    if len(token) <= 1:
        return False
    return token.lower() in FILLER_TOKENS


def count_words(text: str | None) -> int:
    """Count words, excluding filler artifacts."""
    return sum(1 for token in tokenize(text) if not is_filler_artifact(token))


def count_filler_words(text: str | None) -> int:
    """Count filler tokens (used for clarity scoring)."""
    return sum(1 for token in tokenize(text) if is_filler_artifact(token))


def normalize_language_code(code: str | None) -> str | None:
    """Reduce a language tag such as "en-US" to its lowercase two-letter primary subtag.

    Anything that is not a two-letter ASCII code becomes None.
    """
    if not code:
        return None
    primary = code.strip().lower().split("-", 1)[0]
    if len(primary) == 2 and primary.isascii() and primary.isalpha():
        return primary
    return None


def detect_language_heuristic(text: str | None) -> str | None:
    """Guess a language code from the script of the characters.

    Returns "he" or "ru" when that script makes up more than a third of the
    non-whitespace characters, "en" when Latin letters make up more than half,
    otherwise None.
    """
    if not text or not text.strip():
        return None

    hebrew = cyrillic = latin = other = 0
    for c in text:
        if c.isspace():
            continue
        if "\u0590" <= c <= "\u05ff":
            hebrew += 1
        elif "\u0400" <= c <= "\u04ff":
            cyrillic += 1
        elif ("a" <= c <= "z") or ("A" <= c <= "Z") or ("\u00c0" <= c <= "\u024f"):
            latin += 1
        else:
            other += 1

    total = hebrew + cyrillic + latin + other
    if total == 0:
        return None
    if hebrew * 3 > total:
        return "he"
    if cyrillic * 3 > total:
        return "ru"
    if latin * 2 > total:
        return "en"
    return None


def compute_speaking_rate(word_count: int, duration_seconds: float | None) -> float | None:
    """Words per minute, or None unless both word count and duration are positive."""
    if word_count <= 0 or duration_seconds is None or duration_seconds <= 0:
        return None
    return word_count / (duration_seconds / 60.0)


def compute_confidence_heuristic(
    transcription_length: int,
    duration_seconds: float | None,
    word_count: int,
    had_provider_error: bool = False,
) -> float:
    """Evidence-based confidence in [0, 1] from text length, duration and word count.

    Args:
        transcription_length: Character count of the full transcript
        duration_seconds: Audio duration, if known
        word_count: Word count with fillers excluded
        had_provider_error: Whether the provider flagged an error

    Returns:
        Confidence score between 0.0 and 1.0
    """
    if had_provider_error:
        return 0.0
    if duration_seconds is not None and duration_seconds <= 0:
        return 0.0
    # Whitespace-and-filler transcripts have length > 0 but zero words.
    if transcription_length == 0 or word_count == 0:
        return 0.0

    score = 1.0
    wpm = compute_speaking_rate(word_count, duration_seconds)
    if wpm is not None:
        if wpm < LOW_WPM:
            score *= LOW_WPM_FACTOR
        elif wpm > HIGH_WPM:
            score *= HIGH_WPM_FACTOR
    if transcription_length < SHORT_TEXT_CHARS:
        score *= SHORT_TEXT_FACTOR

    return min(max(score, 0.0), 1.0)


def compute_clarity_estimate(
    word_count: int,
    duration_seconds: float | None,
    filler_count: int,
) -> tuple[int, str]:
    """Clarity score 0-100 and notes from filler ratio and speaking pace.

    This estimates delivery (pace and fillers), not content.

    Returns:
        Tuple of (score, notes)
    """
    if word_count <= 0:
        return 0, NO_SPEECH_NOTES

    score = 100
    reasons: list[str] = []

    if filler_count > 0:
        filler_ratio = filler_count / word_count
        if filler_ratio > MANY_FILLERS_RATIO:
            score -= 25
            reasons.append("many fillers")
        elif filler_ratio > SOME_FILLERS_RATIO:
            score -= 15
            reasons.append("some fillers")

    wpm = compute_speaking_rate(word_count, duration_seconds)
    if wpm is not None:
        if wpm < SLOW_PACE_WPM:
            score -= 10
            reasons.append("slow pace")
        elif wpm > FAST_PACE_WPM:
            score -= 5
            reasons.append("fast pace")

    score = min(max(score, 0), 100)
    if reasons:
        notes = (
            f"Estimate based on pace and filler words ({', '.join(reasons)}). "
            "Not a judgment of content."
        )
    else:
        notes = "Estimate based on pace and filler words. Not a judgment of content."
    return score, notes

"""Typer CLI entrypoint for speech-insight."""

import asyncio
import json
import logging
import mimetypes
from pathlib import Path

import typer

from speech_insight._types import AnalysisResult
from speech_insight.config import AnalysisConfig, Config, ConfigError, load_config
from speech_insight.insights import OpenAIInsightsProvider
from speech_insight.pipeline import AnalysisPipeline
from speech_insight.transcriber import (
    TranscriptionProviderError,
    TranscriptionTransportError,
)
from speech_insight.transcriber_deepgram import DeepgramTranscriber

app = typer.Typer(help="Analyze speech recordings: transcript, metrics and insights")

logger = logging.getLogger(__name__)

EXIT_VALIDATION = 1
EXIT_CONFIG = 2
EXIT_PROVIDER = 3
EXIT_TRANSPORT = 4

FRIENDLY_MESSAGES = {
    400: "Invalid request to transcription service.",
    401: "Invalid or missing API key. Check DEEPGRAM_API_KEY.",
    403: "Access denied. Check your Deepgram plan and API key.",
    429: "Rate limit or quota exceeded. Check your Deepgram plan and billing.",
    500: "Transcription service error. Try again later.",
}


class UploadValidationError(Exception):
    """Audio file rejected before analysis."""

    pass


def _setup_logging(verbose: bool = False) -> None:
    """Setup logging configuration."""
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )


def _friendly_message(status_code: int) -> str:
    """User-facing message for a transcription provider status."""
    return FRIENDLY_MESSAGES.get(status_code, f"Transcription failed ({status_code}).")


def validate_upload(path: Path, limits: AnalysisConfig) -> None:
    """Check the audio file exists, is non-empty, within size and of an allowed type.

    Raises:
        UploadValidationError: If the file is rejected
    """
    if not path.is_file():
        raise UploadValidationError(f"File not found: {path}")

    size = path.stat().st_size
    if size == 0:
        raise UploadValidationError("File is empty.")

    if size > limits.max_file_size_bytes:
        raise UploadValidationError(
            f"File too large. Maximum size is {limits.max_file_size_bytes // (1024 * 1024)} MB."
        )

    ext = path.suffix.lower()
    if not ext or ext not in limits.allowed_extensions:
        raise UploadValidationError(
            f"File type not allowed. Allowed: {', '.join(limits.allowed_extensions)}"
        )


def build_pipeline(cfg: Config, *, insights: bool = True) -> AnalysisPipeline:
    """Create the pipeline and its providers from configuration."""
    transcriber = DeepgramTranscriber.from_config(cfg.deepgram)
    insights_provider = None
    if insights and cfg.insights.enabled:
        insights_provider = OpenAIInsightsProvider.from_config(cfg.insights)
    return AnalysisPipeline(
        transcriber=transcriber,
        insights_provider=insights_provider,
        max_duration_seconds=cfg.analysis.max_duration_seconds,
        insights_timeout=cfg.insights.timeout,
    )


async def _analyze_file(
    pipeline: AnalysisPipeline,
    path: Path,
    diarize: bool,
) -> AnalysisResult:
    content_type, _ = mimetypes.guess_type(path.name)
    try:
        with open(path, "rb") as f:
            return await pipeline.analyze(f, path.name, content_type, diarize=diarize)
    finally:
        await pipeline.shutdown()


def _print_summary(result: AnalysisResult) -> None:
    duration = (
        f"{result.duration_seconds:.1f}s" if result.duration_seconds is not None else "unknown"
    )
    typer.echo(f"Model: {result.model}")
    typer.echo(f"Duration: {duration}")
    if result.duration_exceeds_recommended:
        typer.echo("  (longer than the recommended maximum)")
    typer.echo(f"Language: {result.detected_language or 'unknown'}")
    typer.echo(f"Words: {result.word_count} (fillers: {result.metrics.filler_count})")
    if result.metrics.speaking_rate is not None:
        typer.echo(f"Speaking rate: {result.metrics.speaking_rate:.0f} wpm")
    typer.echo(f"Confidence: {result.confidence_score:.2f}")
    typer.echo(f"Clarity: {result.metrics.clarity_score}/100 - {result.metrics.clarity_notes}")

    if result.insights is not None:
        sentiment = result.sentiment
        typer.echo(f"Sentiment: {sentiment.label} ({sentiment.score:+.2f})")
        if result.topics:
            typer.echo(f"Topics: {', '.join(result.topics)}")
        if result.summary:
            typer.echo("Summary:")
            typer.echo(f"  {result.summary}")

    typer.echo("")
    if result.segments:
        for seg in result.segments:
            start = f"{seg.start:7.2f}" if seg.start is not None else "      ?"
            speaker = f"{seg.speaker}: " if seg.speaker else ""
            typer.echo(f"[{start}] {speaker}{seg.text}")
    else:
        typer.echo(result.text)


@app.command()
def analyze(
    audio_file: Path = typer.Argument(..., help="Audio file to analyze"),
    config: Path | None = typer.Option(
        None, "--config", help="Path to configuration file"
    ),
    verbose: bool = typer.Option(
        False, "--verbose", "-v", help="Enable verbose logging"
    ),
    no_diarize: bool = typer.Option(
        False, "--no-diarize", help="Request plain transcription without speaker labels"
    ),
    no_insights: bool = typer.Option(
        False, "--no-insights", help="Skip summary, sentiment and topics"
    ),
    json_output: bool = typer.Option(
        False, "--json", help="Output as JSON instead of text"
    ),
) -> None:
    """Analyze an audio file."""
    _setup_logging(verbose)
    try:
        cfg = load_config(config)
        if cfg.general.verbose or cfg.general.debug:
            logging.getLogger().setLevel(logging.DEBUG)
        cfg.validate()
        validate_upload(audio_file, cfg.analysis)

        pipeline = build_pipeline(cfg, insights=not no_insights)
        result = asyncio.run(_analyze_file(pipeline, audio_file, diarize=not no_diarize))
    except UploadValidationError as e:
        logger.error("%s", e)
        raise typer.Exit(EXIT_VALIDATION)
    except ConfigError as e:
        logger.error("Configuration error: %s", e)
        raise typer.Exit(EXIT_CONFIG)
    except TranscriptionProviderError as e:
        logger.error("%s", _friendly_message(e.status_code))
        logger.debug("Provider detail: %s", e.detail)
        raise typer.Exit(EXIT_PROVIDER)
    except TranscriptionTransportError as e:
        logger.error("Transcription service error: %s", e)
        raise typer.Exit(EXIT_TRANSPORT)
    except KeyboardInterrupt:
        logger.info("Analysis interrupted by user")
        raise typer.Exit(130)
    except Exception as e:
        logger.error("Unexpected error: %s", e, exc_info=True)
        raise typer.Exit(1)

    if json_output:
        typer.echo(json.dumps(result.to_dict(), indent=2, ensure_ascii=False))
    else:
        _print_summary(result)


@app.command()
def limits(
    config: Path | None = typer.Option(
        None, "--config", help="Path to configuration file"
    ),
    json_output: bool = typer.Option(
        False, "--json", help="Output as JSON instead of text"
    ),
) -> None:
    """Show upload limits."""
    _setup_logging(False)
    try:
        cfg = load_config(config)
    except ConfigError as e:
        logger.error("Configuration error: %s", e)
        raise typer.Exit(EXIT_CONFIG)

    data = {
        "max_file_size_bytes": cfg.analysis.max_file_size_bytes,
        "max_duration_seconds": cfg.analysis.max_duration_seconds,
        "allowed_extensions": list(cfg.analysis.allowed_extensions),
    }
    if json_output:
        typer.echo(json.dumps(data, indent=2))
    else:
        typer.echo(f"Max file size: {data['max_file_size_bytes'] // (1024 * 1024)} MB")
        typer.echo(f"Recommended max duration: {data['max_duration_seconds']}s")
        typer.echo(f"Allowed extensions: {', '.join(data['allowed_extensions'])}")


@app.command()
def check_config(
    config: Path | None = typer.Option(
        None, "--config", help="Path to configuration file"
    ),
    verbose: bool = typer.Option(False, "--verbose", "-v"),
) -> None:
    """Load and validate configuration without calling any provider."""
    _setup_logging(verbose)
    try:
        cfg = load_config(config)
        cfg.validate()
    except ConfigError as e:
        logger.error("Configuration error: %s", e)
        raise typer.Exit(EXIT_CONFIG)
    typer.echo("Configuration OK")
    typer.echo(f"  Transcription model: {cfg.deepgram.model} (language={cfg.deepgram.language})")
    insights_state = "enabled" if cfg.insights.enabled and cfg.insights.api_key else "disabled"
    typer.echo(f"  Insights: {insights_state} ({cfg.insights.model})")


if __name__ == "__main__":
    app()

"""Configuration loader and validation."""

import logging
import sys
from collections.abc import Mapping
from dataclasses import dataclass, field
from pathlib import Path

if sys.version_info >= (3, 11):
    import tomllib
else:
    import tomli as tomllib

logger = logging.getLogger(__name__)

__all__ = [
    "DeepgramConfig",
    "InsightsConfig",
    "AnalysisConfig",
    "GeneralConfig",
    "Config",
    "ConfigError",
    "load_config",
]

SECTIONS = ("deepgram", "insights", "analysis", "general")

DEFAULT_ALLOWED_EXTENSIONS = (".mp3", ".mpga", ".m4a", ".wav", ".webm", ".mp4", ".mpeg")


class ConfigError(Exception):
    """Configuration loading or validation error."""

    pass


@dataclass
class DeepgramConfig:
    """Deepgram API configuration (transcription provider)."""

    api_key: str | None = None
    model: str = "nova-3"
    language: str = "auto"
    smart_format: bool = True
    punctuate: bool = True
    utterances: bool = True
    timeout: float = 120.0
    max_workers: int = 4


@dataclass
class InsightsConfig:
    """Chat-completions endpoint used for summary, sentiment and topics."""

    enabled: bool = True
    api_key: str | None = None
    base_url: str = "https://api.openai.com/v1"
    model: str = "gpt-4o-mini"
    max_tokens: int = 500
    max_input_chars: int = 12000
    timeout: float = 30.0


@dataclass
class AnalysisConfig:
    """Upload limits and the recommended duration threshold."""

    max_duration_seconds: float = 900
    max_file_size_bytes: int = 25 * 1024 * 1024
    allowed_extensions: tuple[str, ...] = DEFAULT_ALLOWED_EXTENSIONS

    def __post_init__(self) -> None:
        """Normalize extensions to a lowercase tuple."""
        if isinstance(self.allowed_extensions, str):
            raise ConfigError("analysis.allowed_extensions must be a list of extensions")
        self.allowed_extensions = tuple(str(ext).lower() for ext in self.allowed_extensions)


@dataclass
class GeneralConfig:
    """General application settings."""

    verbose: bool = False
    debug: bool = False


@dataclass
class Config:
    """Main configuration container."""

    deepgram: DeepgramConfig = field(default_factory=DeepgramConfig)
    insights: InsightsConfig = field(default_factory=InsightsConfig)
    analysis: AnalysisConfig = field(default_factory=AnalysisConfig)
    general: GeneralConfig = field(default_factory=GeneralConfig)

    @classmethod
    def from_toml(
        cls,
        path: Path | None = None,
        *,
        env: Mapping[str, str] | None = None,
    ) -> "Config":
        """Load configuration from TOML file with environment overrides.

        Args:
            path: Explicit config file path. If None, searches in order:
                  1. SPEECH_INSIGHT_CONFIG env var
                  2. ./speech_insight.toml
                  3. ~/.config/speech_insight.toml
                  Falls back to built-in defaults when none exists.
            env: Environment variables for overrides (defaults to os.environ)

        Returns:
            Loaded Config instance

        Raises:
            ConfigError: If an explicit config file is missing or values are invalid
        """
        if env is None:
            import os

            env = os.environ

        resolved_path = _resolve_config_path(path, env)
        raw_data = _load_toml_file(resolved_path) if resolved_path else {}

        try:
            coerced = _coerce_config_values(raw_data, env)
            return cls(
                deepgram=DeepgramConfig(**coerced["deepgram"]),
                insights=InsightsConfig(**coerced["insights"]),
                analysis=AnalysisConfig(**coerced["analysis"]),
                general=GeneralConfig(**coerced["general"]),
            )
        except TypeError as e:
            raise ConfigError(f"Invalid configuration values: {e}") from e

    def validate(self) -> None:
        """Validate configuration values.

        Raises:
            ConfigError: If any value is out of range or a required key is missing
        """
        validate_deepgram_config(self.deepgram)
        validate_insights_config(self.insights)
        validate_analysis_config(self.analysis)


def _resolve_config_path(
    cli_path: Path | None,
    env: Mapping[str, str],
) -> Path | None:
    """Resolve configuration file path following search order.

    Search order:
    1. CLI-provided path
    2. SPEECH_INSIGHT_CONFIG environment variable
    3. ./speech_insight.toml (current directory)
    4. ~/.config/speech_insight.toml (user config directory)

    Returns:
        Resolved path, or None when no file exists in the implicit locations

    Raises:
        ConfigError: If the CLI-provided path does not exist
    """
    if cli_path:
        cli_path = Path(cli_path)
        if cli_path.exists():
            logger.info("Using config file: %s", cli_path.resolve())
            return cli_path.resolve()
        raise ConfigError(f"Config file not found: {cli_path}")

    candidates = []
    if env_path := env.get("SPEECH_INSIGHT_CONFIG"):
        candidates.append(Path(env_path))

    candidates.append(Path("speech_insight.toml"))
    candidates.append(Path.home() / ".config" / "speech_insight.toml")

    for candidate in candidates:
        if candidate.exists():
            logger.info("Using config file: %s", candidate.resolve())
            return candidate.resolve()

    logger.info(
        "No config file found (searched: %s), using defaults",
        ", ".join(str(c) for c in candidates),
    )
    return None


def _load_toml_file(path: Path) -> dict:
    """Load and parse TOML configuration file.

    Raises:
        ConfigError: If file cannot be read or parsed
    """
    try:
        with open(path, "rb") as f:
            return tomllib.load(f)
    except FileNotFoundError as e:
        raise ConfigError(f"Config file not found: {path}") from e
    except Exception as e:
        raise ConfigError(f"Failed to parse config file {path}: {e}") from e


def _coerce_config_values(raw_data: dict, env: Mapping[str, str]) -> dict:
    """Normalize raw TOML data for dataclass instantiation.

    Applies API key fallbacks from the environment.

    Args:
        raw_data: Raw parsed TOML dictionary
        env: Environment variables for overrides

    Returns:
        Coerced dictionary ready for dataclass instantiation
    """
    coerced = {}

    for section in SECTIONS:
        value = raw_data.get(section, {})
        if not isinstance(value, dict):
            raise ConfigError(f"Section [{section}] must be a table")
        coerced[section] = dict(value)

    deepgram_section = coerced["deepgram"]
    if not deepgram_section.get("api_key"):
        deepgram_section["api_key"] = env.get("DEEPGRAM_API_KEY")

    insights_section = coerced["insights"]
    if not insights_section.get("api_key"):
        insights_section["api_key"] = env.get("OPENAI_API_KEY")

    analysis_section = coerced["analysis"]
    if "allowed_extensions" in analysis_section:
        extensions = analysis_section["allowed_extensions"]
        if not isinstance(extensions, (list, tuple)):
            raise ConfigError("analysis.allowed_extensions must be a list of extensions")
        analysis_section["allowed_extensions"] = tuple(extensions)

    return coerced


def validate_deepgram_config(deepgram_cfg: DeepgramConfig) -> None:
    """Validate Deepgram configuration.

    Raises:
        ConfigError: If the API key is missing or numeric values are invalid
    """
    if not deepgram_cfg.api_key:
        raise ConfigError(
            "Deepgram API key is required. "
            "Set it in config file or via DEEPGRAM_API_KEY environment variable."
        )

    if deepgram_cfg.timeout <= 0:
        raise ConfigError(f"Deepgram timeout must be positive, got {deepgram_cfg.timeout}")

    if deepgram_cfg.max_workers <= 0:
        raise ConfigError(
            f"Deepgram max_workers must be positive, got {deepgram_cfg.max_workers}"
        )


def validate_insights_config(insights_cfg: InsightsConfig) -> None:
    """Validate insights configuration.

    A missing API key is not an error here: insights are best-effort and
    simply come back absent.

    Raises:
        ConfigError: If numeric values are invalid
    """
    if insights_cfg.timeout <= 0:
        raise ConfigError(f"Insights timeout must be positive, got {insights_cfg.timeout}")

    if insights_cfg.max_tokens <= 0:
        raise ConfigError(f"max_tokens must be positive, got {insights_cfg.max_tokens}")

    if insights_cfg.max_input_chars <= 0:
        raise ConfigError(
            f"max_input_chars must be positive, got {insights_cfg.max_input_chars}"
        )

    if insights_cfg.enabled and not insights_cfg.api_key:
        logger.warning("Insights enabled but no API key configured; insights will be omitted")


def validate_analysis_config(analysis_cfg: AnalysisConfig) -> None:
    """Validate analysis limits.

    Raises:
        ConfigError: If limits are not positive or extensions are malformed
    """
    if analysis_cfg.max_duration_seconds <= 0:
        raise ConfigError(
            f"max_duration_seconds must be positive, got {analysis_cfg.max_duration_seconds}"
        )

    if analysis_cfg.max_file_size_bytes <= 0:
        raise ConfigError(
            f"max_file_size_bytes must be positive, got {analysis_cfg.max_file_size_bytes}"
        )

    for ext in analysis_cfg.allowed_extensions:
        if not ext.startswith(".") or len(ext) < 2:
            raise ConfigError(f"Invalid extension '{ext}'. Extensions must start with '.'")


def load_config(
    path: Path | None = None,
    *,
    env: Mapping[str, str] | None = None,
) -> Config:
    """Load configuration from TOML file.

    Convenience wrapper around Config.from_toml().

    Args:
        path: Explicit config file path (optional)
        env: Environment variables (defaults to os.environ)

    Returns:
        Loaded Config instance

    Raises:
        ConfigError: If config cannot be loaded
    """
    return Config.from_toml(path, env=env)

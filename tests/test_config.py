"""Tests for config module."""

import tempfile
from pathlib import Path
from unittest.mock import patch

import pytest

from speech_insight.config import (
    AnalysisConfig,
    Config,
    ConfigError,
    DeepgramConfig,
    GeneralConfig,
    InsightsConfig,
    load_config,
)


@pytest.fixture
def tmp_config_file():
    """Create a temporary TOML config file for testing."""

    def _create(content: str) -> Path:
        with tempfile.NamedTemporaryFile(mode="w", suffix=".toml", delete=False) as f:
            f.write(content)
            return Path(f.name)

    return _create


@pytest.fixture
def full_config_content():
    """Full configuration with all sections."""
    return """
[deepgram]
api_key = "dg-file-key"
model = "nova-2"
language = "en"
timeout = 60.0
max_workers = 2

[insights]
enabled = true
api_key = "sk-file-key"
model = "gpt-4o-mini"
max_input_chars = 8000

[analysis]
max_duration_seconds = 600
max_file_size_bytes = 1048576
allowed_extensions = [".WAV", ".mp3"]

[general]
verbose = true
"""


@pytest.fixture
def isolated_cwd(tmp_path, monkeypatch):
    """Run with an empty working directory and home so no config file is found."""
    monkeypatch.chdir(tmp_path)
    with patch("speech_insight.config.Path.home", return_value=tmp_path):
        yield tmp_path


class TestConfigDataclasses:
    """Test configuration dataclasses."""

    def test_deepgram_config_defaults(self):
        """Test DeepgramConfig defaults."""
        cfg = DeepgramConfig()
        assert cfg.api_key is None
        assert cfg.model == "nova-3"
        assert cfg.language == "auto"
        assert cfg.timeout == 120.0

    def test_insights_config_defaults(self):
        """Test InsightsConfig defaults."""
        cfg = InsightsConfig()
        assert cfg.enabled is True
        assert cfg.model == "gpt-4o-mini"
        assert cfg.max_tokens == 500
        assert cfg.max_input_chars == 12000

    def test_analysis_config_defaults(self):
        """Test AnalysisConfig defaults."""
        cfg = AnalysisConfig()
        assert cfg.max_duration_seconds == 900
        assert cfg.max_file_size_bytes == 25 * 1024 * 1024
        assert ".wav" in cfg.allowed_extensions

    def test_analysis_extensions_normalized(self):
        """Test extensions are lowercased into a tuple."""
        cfg = AnalysisConfig(allowed_extensions=[".WAV", ".Mp3"])
        assert cfg.allowed_extensions == (".wav", ".mp3")

    def test_analysis_extensions_string_rejected(self):
        """Test a bare string is not accepted as an extension list."""
        with pytest.raises(ConfigError):
            AnalysisConfig(allowed_extensions=".wav")

    def test_general_config_defaults(self):
        """Test GeneralConfig defaults."""
        cfg = GeneralConfig()
        assert cfg.verbose is False
        assert cfg.debug is False


class TestConfigLoading:
    """Test configuration loading from TOML."""

    def test_load_full_config(self, tmp_config_file, full_config_content):
        """Test loading a full configuration."""
        path = tmp_config_file(full_config_content)
        try:
            cfg = load_config(path, env={})
            assert cfg.deepgram.api_key == "dg-file-key"
            assert cfg.deepgram.model == "nova-2"
            assert cfg.deepgram.max_workers == 2
            assert cfg.insights.api_key == "sk-file-key"
            assert cfg.insights.max_input_chars == 8000
            assert cfg.analysis.max_duration_seconds == 600
            assert cfg.analysis.allowed_extensions == (".wav", ".mp3")
            assert cfg.general.verbose is True
        finally:
            path.unlink()

    def test_explicit_path_missing(self):
        """Test a missing explicit path is an error."""
        with pytest.raises(ConfigError, match="Config file not found"):
            load_config(Path("/nonexistent/speech_insight.toml"), env={})

    def test_defaults_when_no_file(self, isolated_cwd):
        """Test built-in defaults are used when no file exists."""
        cfg = load_config(env={})
        assert cfg.deepgram.model == "nova-3"
        assert cfg.deepgram.api_key is None
        assert cfg.analysis.max_duration_seconds == 900

    def test_env_config_path(self, isolated_cwd, tmp_config_file):
        """Test SPEECH_INSIGHT_CONFIG points at the config file."""
        path = tmp_config_file('[deepgram]\nmodel = "nova-2"\n')
        try:
            cfg = load_config(env={"SPEECH_INSIGHT_CONFIG": str(path)})
            assert cfg.deepgram.model == "nova-2"
        finally:
            path.unlink()

    def test_cwd_config_file(self, isolated_cwd):
        """Test ./speech_insight.toml is picked up."""
        (isolated_cwd / "speech_insight.toml").write_text('[insights]\nenabled = false\n')
        cfg = load_config(env={})
        assert cfg.insights.enabled is False

    def test_api_keys_from_env(self, isolated_cwd):
        """Test API keys fall back to environment variables."""
        cfg = load_config(env={"DEEPGRAM_API_KEY": "dg-env", "OPENAI_API_KEY": "sk-env"})
        assert cfg.deepgram.api_key == "dg-env"
        assert cfg.insights.api_key == "sk-env"

    def test_file_key_wins_over_env(self, tmp_config_file, full_config_content):
        """Test keys in the file take precedence over the environment."""
        path = tmp_config_file(full_config_content)
        try:
            cfg = load_config(path, env={"DEEPGRAM_API_KEY": "dg-env"})
            assert cfg.deepgram.api_key == "dg-file-key"
        finally:
            path.unlink()

    def test_invalid_toml(self, tmp_config_file):
        """Test unparseable TOML is an error."""
        path = tmp_config_file("[deepgram\nmodel = ")
        try:
            with pytest.raises(ConfigError, match="Failed to parse"):
                load_config(path, env={})
        finally:
            path.unlink()

    def test_section_not_a_table(self, tmp_config_file):
        """Test a scalar section is an error."""
        path = tmp_config_file('deepgram = "nope"\n')
        try:
            with pytest.raises(ConfigError, match="must be a table"):
                load_config(path, env={})
        finally:
            path.unlink()

    def test_unknown_key(self, tmp_config_file):
        """Test unknown keys are reported as invalid values."""
        path = tmp_config_file("[deepgram]\nbogus = 1\n")
        try:
            with pytest.raises(ConfigError, match="Invalid configuration values"):
                load_config(path, env={})
        finally:
            path.unlink()

    def test_extensions_not_a_list(self, tmp_config_file):
        """Test allowed_extensions must be a list."""
        path = tmp_config_file('[analysis]\nallowed_extensions = ".wav"\n')
        try:
            with pytest.raises(ConfigError, match="allowed_extensions"):
                load_config(path, env={})
        finally:
            path.unlink()


class TestConfigValidation:
    """Test Config.validate."""

    def _config(self, **deepgram) -> Config:
        deepgram.setdefault("api_key", "dg-key")
        return Config(deepgram=DeepgramConfig(**deepgram))

    def test_valid(self):
        """Test a config with a Deepgram key validates."""
        self._config().validate()

    def test_missing_deepgram_key(self):
        """Test the transcription key is required."""
        with pytest.raises(ConfigError, match="DEEPGRAM_API_KEY"):
            Config().validate()

    def test_non_positive_timeout(self):
        """Test Deepgram timeout must be positive."""
        with pytest.raises(ConfigError, match="timeout"):
            self._config(timeout=0).validate()

    def test_non_positive_workers(self):
        """Test max_workers must be positive."""
        with pytest.raises(ConfigError, match="max_workers"):
            self._config(max_workers=0).validate()

    def test_missing_insights_key_is_not_fatal(self):
        """Test insights without a key only warns."""
        cfg = self._config()
        cfg.insights.api_key = None
        cfg.validate()

    def test_insights_limits(self):
        """Test insights numeric limits must be positive."""
        cfg = self._config()
        cfg.insights.max_input_chars = 0
        with pytest.raises(ConfigError, match="max_input_chars"):
            cfg.validate()

    def test_analysis_limits(self):
        """Test analysis limits must be positive."""
        cfg = self._config()
        cfg.analysis.max_duration_seconds = -1
        with pytest.raises(ConfigError, match="max_duration_seconds"):
            cfg.validate()

    def test_bad_extension(self):
        """Test extensions must start with a dot."""
        cfg = self._config()
        cfg.analysis.allowed_extensions = ("wav",)
        with pytest.raises(ConfigError, match="Invalid extension"):
            cfg.validate()

"""Configuration with 4-layer resolution: defaults -> YAML -> env -> CLI.

Uses pydantic-settings with YamlConfigSettingsSource for layered configuration.
Supports ``.env`` file loading, ``OUTREACH_RESEARCH_`` prefixed env vars, and
nested delimiter ``__`` for overriding sub-model fields. The conventional
``YOUTUBE_API_KEY`` variable is honoured when ``youtube.api_key`` is unset.
"""

from __future__ import annotations

import os
from pathlib import Path
from typing import Any, ClassVar, Literal

import structlog
from pydantic import BaseModel, Field, ValidationError, model_validator
from pydantic_settings import (
    BaseSettings,
    PydanticBaseSettingsSource,
    SettingsConfigDict,
    YamlConfigSettingsSource,
)

logger: structlog.stdlib.BoundLogger = structlog.get_logger(__name__)


# ---------------------------------------------------------------------------
# Sub-models
# ---------------------------------------------------------------------------


class YouTubeSettings(BaseModel):
    """YouTube Data API v3 configuration."""

    api_key: str | None = None
    base_url: str = "https://www.googleapis.com/youtube/v3"
    timeout: float = Field(default=15.0, gt=0.0, description="Request timeout in seconds.")
    search_results: int = Field(
        default=15, gt=0, le=50, description="Candidates requested per query."
    )
    retries: int = Field(default=3, ge=1)


class TranscriptSettings(BaseModel):
    """Transcript retrieval configuration."""

    min_length: int = Field(
        default=100, ge=0, description="Minimum characters for a usable transcript."
    )
    timeout: float = Field(
        default=120.0, gt=0.0, description="Per-source timeout in seconds."
    )
    languages: list[str] = Field(default_factory=lambda: ["en", "en-US", "en-GB"])
    asr_enabled: bool = Field(
        default=False,
        description="Fall back to yt-dlp audio download + whisper-cli speech-to-text.",
    )
    work_dir: Path = Path("./data/asr")


class LLMSettings(BaseModel):
    """Language-model configuration (litellm model identifiers)."""

    model: str = "openai/gpt-4o-mini"
    fallback_models: list[str] = Field(default_factory=list)
    timeout: float = Field(default=60.0, gt=0.0, description="Request timeout in seconds.")
    retries: int = Field(default=3, ge=1)
    analysis_max_tokens: int = Field(default=1500, gt=0)
    analysis_temperature: float = Field(default=0.3, ge=0.0, le=2.0)
    summary_max_tokens: int = Field(default=2000, gt=0)
    summary_temperature: float = Field(default=0.4, ge=0.0, le=2.0)


class ResearchSettings(BaseModel):
    """Research pipeline tuning."""

    freshness_hours: int = Field(
        default=24, gt=0, description="Reuse persisted research younger than this."
    )
    standard_videos: int = Field(default=10, gt=0)
    deep_videos: int = Field(default=15, gt=0)
    max_concurrent_videos: int = Field(
        default=1, ge=1, le=16, description="Videos processed concurrently per query."
    )
    confidence_threshold: int = Field(default=6, ge=0, le=10)
    transcript_char_budget: int = Field(
        default=8000, gt=0, description="Transcript prefix sent to the analyzer."
    )


class StorageSettings(BaseModel):
    """Document store configuration."""

    directory: Path = Path("./data/store")


class LoggingSettings(BaseModel):
    """Logging / observability configuration."""

    level: Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"] = "INFO"
    format: Literal["console", "json"] = "console"
    file: Path | None = None


# ---------------------------------------------------------------------------
# Main Settings (4-layer resolution)
# ---------------------------------------------------------------------------


class Settings(BaseSettings):
    """Top-level application settings.

    Resolution order (last wins):
        1. Field defaults (defined above)
        2. YAML config file (``config.yaml`` or ``--config`` path)
        3. Environment variables (prefixed ``OUTREACH_RESEARCH_``)
        4. CLI overrides (applied programmatically after loading)
    """

    model_config = SettingsConfigDict(
        env_prefix="OUTREACH_RESEARCH_",
        env_nested_delimiter="__",
        env_file=".env",
        env_file_encoding="utf-8",
        yaml_file="config.yaml",
        yaml_file_encoding="utf-8",
        extra="ignore",
    )

    _config_path_override: ClassVar[Path | None] = None

    youtube: YouTubeSettings = Field(default_factory=YouTubeSettings)
    transcripts: TranscriptSettings = Field(default_factory=TranscriptSettings)
    llm: LLMSettings = Field(default_factory=LLMSettings)
    research: ResearchSettings = Field(default_factory=ResearchSettings)
    storage: StorageSettings = Field(default_factory=StorageSettings)
    logging: LoggingSettings = Field(default_factory=LoggingSettings)

    @model_validator(mode="after")
    def _youtube_key_from_env(self) -> Settings:
        if not self.youtube.api_key:
            self.youtube.api_key = os.environ.get("YOUTUBE_API_KEY") or None
        return self

    @classmethod
    def settings_customise_sources(
        cls,
        settings_cls: type[BaseSettings],
        init_settings: PydanticBaseSettingsSource,
        env_settings: PydanticBaseSettingsSource,
        dotenv_settings: PydanticBaseSettingsSource,
        file_secret_settings: PydanticBaseSettingsSource,
    ) -> tuple[PydanticBaseSettingsSource, ...]:
        """Customise settings source priority.

        Resolution order (first = highest priority):
            init_settings (CLI) > env_settings > dotenv (.env) > yaml > defaults

        Args:
            settings_cls: The settings class.
            init_settings: Init / programmatic overrides.
            env_settings: Environment variable source.
            dotenv_settings: Dotenv file source (.env).
            file_secret_settings: Secret file source (unused).

        Returns:
            Ordered tuple of settings sources (first = highest priority).
        """
        yaml_file = cls._config_path_override or settings_cls.model_config.get(
            "yaml_file", "config.yaml"
        )
        return (
            init_settings,
            env_settings,
            dotenv_settings,
            YamlConfigSettingsSource(settings_cls, yaml_file=yaml_file),
        )

    @classmethod
    def load(cls, config_path: Path | None = None, **overrides: Any) -> Settings:
        """Load settings with optional config path and CLI overrides.

        Args:
            config_path: Optional path to a YAML config file.
            **overrides: Key-value CLI overrides applied at highest priority.

        Returns:
            Fully-resolved Settings instance.

        Raises:
            ValidationError: If any setting value fails validation.
        """
        cls._config_path_override = config_path
        try:
            return cls(**overrides)
        finally:
            cls._config_path_override = None


def format_validation_error(exc: ValidationError) -> str:
    """Format a Pydantic ValidationError into a user-friendly message.

    Args:
        exc: The validation error to format.

    Returns:
        A multi-line string with each error on its own line.
    """
    lines: list[str] = []
    for error in exc.errors():
        loc = " -> ".join(str(part) for part in error["loc"])
        msg = error["msg"]
        raw_input = error.get("input")
        if raw_input is not None:
            lines.append(f"  {loc}: {msg} (got {raw_input!r})")
        else:
            lines.append(f"  {loc}: {msg}")
    return "Configuration error:\n" + "\n".join(lines)

"""
Configuration schema using Pydantic.

Principles:
- All config values have sensible defaults
- Validation happens at load time
- Timing constants are in milliseconds, matching the provider's event clock
"""

from pathlib import Path
from typing import Literal

from pydantic import BaseModel, Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

SpeakPolicy = Literal["confirm", "auto", "text"]


class ProviderConfig(BaseModel):
    """Hosted model provider configuration."""

    api_key: str | None = None
    base_url: str = "https://api.openai.com/v1"
    realtime_model: str = "gpt-realtime"
    enrichment_model: str = "gpt-4o-mini"
    voice: str = "alloy"
    transcription_model: str = "whisper-1"

    # External endpoint returning {client_secret, base_url, model}.
    # When unset the credential is minted directly from the provider.
    bootstrap_url: str | None = None

    request_timeout_seconds: float = Field(default=30.0, gt=0.0, le=300.0)

    @field_validator("base_url")
    @classmethod
    def strip_trailing_slash(cls, v: str) -> str:
        """Normalize base URL."""
        return v.rstrip("/")


class TurnConfig(BaseModel):
    """Push-to-talk and reply gating constants."""

    min_hold_ms: int = Field(default=150, ge=0, le=5000)
    commit_window_ms: int = Field(default=2500, ge=100, le=30000)
    commit_tail_ms: int = Field(default=150, ge=0, le=2000)
    reply_cooldown_ms: int = Field(default=800, ge=0, le=10000)
    outbox_flush_ms: int = Field(default=200, ge=10, le=5000)

    # confirm: stage replies until the user confirms
    # auto: speak immediately after each turn
    # text: reply in text only
    speak_policy: SpeakPolicy = "confirm"


class EnrichmentConfig(BaseModel):
    """Summary, extraction and proposal settings."""

    window_size: int = Field(default=30, ge=1, le=200)
    max_bucket_items: int = Field(default=12, ge=1, le=50)
    min_proposals: int = Field(default=3, ge=0, le=20)
    max_proposals: int = Field(default=8, ge=1, le=20)


class LexiconConfig(BaseModel):
    """Hand-tuned phrase grammars.

    Starting configuration only; product owners are expected to tune these.
    """

    confirmation_phrases: list[str] = Field(
        default_factory=lambda: [
            "go ahead",
            "please proceed",
            "proceed",
            "you can speak",
            "read it",
            "say it",
            "continue",
            "please continue",
            "ok speak",
            "okay speak",
            "go for it",
            "sounds good",
            "that works",
        ]
    )
    negation_markers: list[str] = Field(
        default_factory=lambda: [
            "no",
            "not",
            "no longer",
            "instead",
            "rather",
            "prefer",
            "switch",
            "change",
            "stop",
            "cancel",
            "drop",
            "remove",
            "exclude",
        ]
    )


class DefinitionConfig(BaseModel):
    """Definition gate behaviour."""

    # Close the gate as soon as the greeter tool reports status "complete"
    # instead of waiting for the user to accept the draft pack.
    auto_accept: bool = False


class VantageConfig(BaseSettings):
    """Root configuration for Vantage."""

    model_config = SettingsConfigDict(
        env_prefix="VANTAGE_",
        env_nested_delimiter="__",
        extra="ignore",
    )

    provider: ProviderConfig = Field(default_factory=ProviderConfig)
    turn: TurnConfig = Field(default_factory=TurnConfig)
    enrichment: EnrichmentConfig = Field(default_factory=EnrichmentConfig)
    lexicon: LexiconConfig = Field(default_factory=LexiconConfig)
    definition: DefinitionConfig = Field(default_factory=DefinitionConfig)

    # Logging
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR"] = "INFO"
    log_file: Path | None = None

    config_dir: Path = Field(default=Path("~/.vantage"))

    @field_validator("config_dir")
    @classmethod
    def validate_paths(cls, v: Path) -> Path:
        """Expand user paths."""
        return Path(v).expanduser()

    @field_validator("log_file")
    @classmethod
    def validate_log_file(cls, v: Path | None) -> Path | None:
        """Expand user path."""
        return Path(v).expanduser() if v is not None else None

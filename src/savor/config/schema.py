"""
Pydantic models for savor configuration.

Defines all configuration schemas using Pydantic v2 for validation,
defaults, and serialization.
"""

from pathlib import Path
from typing import Literal

from pydantic import BaseModel, Field, field_validator


class LLMConfig(BaseModel):
    """Generation/analysis provider configuration."""

    provider: Literal["openai", "anthropic", "claude", "deepseek", "ollama", "custom"] = "openai"
    model: str = "gpt-4o"
    api_base: str | None = None
    api_key_env: str = "OPENAI_API_KEY"
    timeout: int = 120
    retries: int = Field(
        default=2,
        ge=0,
        description=(
            "Retries for transient provider errors (rate limit, 5xx, connection). "
            "Applied by the adapter only; the evolution pipeline never retries."
        ),
    )
    generation_temperature: float = Field(default=0.7, ge=0.0, le=2.0)
    analysis_temperature: float = Field(default=0.3, ge=0.0, le=2.0)

    model_config = {"extra": "forbid"}


class StorageConfig(BaseModel):
    """SQLite storage configuration."""

    path: Path = Path(".savor/savor.db")
    echo: bool = False

    model_config = {"extra": "forbid"}


class PipelineConfig(BaseModel):
    """Evolution pipeline configuration."""

    workers: int = Field(default=2, ge=1, le=32)
    sample_separator: str = "\n---\n"

    model_config = {"extra": "forbid"}

    @field_validator("sample_separator")
    @classmethod
    def _non_empty_separator(cls, v: str) -> str:
        if not v.strip():
            raise ValueError("sample_separator must contain a visible marker")
        return v


class LoggingConfig(BaseModel):
    """Logging system configuration."""

    level: Literal["debug", "info", "human", "warn", "error"] = "human"
    file: Path | None = None
    verbose: int = 0

    model_config = {"extra": "forbid"}


class AppConfig(BaseModel):
    """Complete application configuration.

    This is the root of the configuration tree. It combines all sections
    and is the entry point for validation.
    """

    llm: LLMConfig = Field(default_factory=LLMConfig)
    storage: StorageConfig = Field(default_factory=StorageConfig)
    pipeline: PipelineConfig = Field(default_factory=PipelineConfig)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)

    model_config = {"extra": "forbid"}

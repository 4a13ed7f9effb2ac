"""Configuration settings for the reconciliation engine."""

from __future__ import annotations

from typing import Annotated, Literal

from pydantic import Field, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class ReconcilerConfig(BaseSettings):
    """Reconciliation engine configuration settings.

    The thresholds below have no statistical derivation behind them; they are
    the values the tracker has shipped with and are meant to be tuned. All can
    be overridden via environment variables with `RECONCILER_` prefix or a
    .env file.
    """

    model_config = SettingsConfigDict(
        env_prefix="RECONCILER_",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # Status arbitration
    ai_accept_threshold: Annotated[float, Field(ge=0.0, le=1.0)] = Field(
        default=0.7,
        description="AI result replaces the rule result only above this confidence",
    )
    status_confidence_threshold: Annotated[float, Field(ge=0.0, le=1.0)] = Field(
        default=0.7,
        description="History entries must exceed this to set the current status",
    )
    fallback_confidence: Annotated[float, Field(ge=0.0, le=1.0)] = Field(
        default=0.6,
        description="Confidence assigned to keyword fallback after an AI failure",
    )
    ai_policy: Literal["off", "inconclusive", "always"] = Field(
        default="always",
        description=(
            "When to consult the AI tier: never, only when the rule tier is "
            "below rule_decisive_confidence, or for every message"
        ),
    )
    rule_decisive_confidence: Annotated[float, Field(ge=0.0, le=1.0)] = Field(
        default=0.8,
        description="Rule results at or above this are decisive for ai_policy=inconclusive",
    )
    ai_budget: int | None = Field(
        default=None,
        ge=0,
        description="Maximum AI calls per merge (None = unlimited)",
    )
    max_failure_attempts: Annotated[int, Field(gt=0)] = Field(
        default=3,
        description="Attempts per error signature before the AI tier skips a message",
    )
    complex_content_length: Annotated[int, Field(gt=0)] = Field(
        default=2000,
        description="Body length above which a message counts as complex",
    )

    # Duplicate detection and history gathering
    duplicate_threshold: Annotated[float, Field(ge=0.0, le=1.0)] = Field(
        default=0.8,
        description="Minimum token Jaccard similarity for company and position",
    )
    lookback_days: Annotated[int, Field(gt=0)] = Field(
        default=90,
        description="How far back to fetch related messages when updating a record",
    )

    # Record updates
    identity_overwrite_confidence: Annotated[float, Field(ge=0.0, le=1.0)] = Field(
        default=0.9,
        description="Confidence needed to replace an existing company/position",
    )
    field_overwrite_confidence: Annotated[float, Field(ge=0.0, le=1.0)] = Field(
        default=0.6,
        description=(
            "Confidence needed to replace an existing contact, person, salary "
            "or location value"
        ),
    )
    auto_apply_confidence: Annotated[float, Field(ge=0.0, le=1.0)] = Field(
        default=0.8,
        description="Minimum confidence for a suggested change to count towards auto-apply",
    )
    auto_apply_min_changes: Annotated[int, Field(gt=0)] = Field(
        default=2,
        description="Independently-sourced high-confidence changes needed to auto-apply",
    )

    # LLM settings
    llm_provider: str = Field(
        default="openai",
        description="LLM provider (openai, anthropic, gemini, etc.)",
    )
    llm_model: str = Field(
        default="gpt-4o-mini",
        description="Model used for routine status classification",
    )
    llm_escalation_model: str = Field(
        default="gpt-4o",
        description="Stronger model used for ambiguous or complex messages",
    )
    llm_api_key: str | None = Field(
        default=None,
        description="API key for LLM provider",
    )
    llm_base_url: str | None = Field(
        default=None,
        description="Base URL for OpenAI-compatible endpoints",
    )
    llm_max_retries: Annotated[int, Field(ge=0)] = Field(
        default=1,
        description="Maximum retry attempts for LLM calls",
    )
    llm_timeout: Annotated[float, Field(gt=0)] = Field(
        default=60.0,
        description="Timeout in seconds for LLM calls",
    )
    llm_reasoning_effort: str | None = Field(
        default=None,
        description="Reasoning effort for supported models (e.g. 'low', 'medium')",
    )

    @model_validator(mode="after")
    def validate_thresholds(self) -> ReconcilerConfig:
        """Keyword fallback must not be able to outrank a decisive rule result."""
        if self.fallback_confidence > self.rule_decisive_confidence:
            raise ValueError(
                "fallback_confidence must not exceed rule_decisive_confidence "
                f"(got {self.fallback_confidence} > {self.rule_decisive_confidence})."
            )
        return self


_reconciler_config: ReconcilerConfig | None = None


def get_reconciler_config() -> ReconcilerConfig:
    """Get the reconciler configuration singleton."""
    global _reconciler_config
    if _reconciler_config is None:
        _reconciler_config = ReconcilerConfig()
    return _reconciler_config


def reset_reconciler_config() -> None:
    """Reset the reconciler configuration singleton (useful for testing)."""
    global _reconciler_config
    _reconciler_config = None

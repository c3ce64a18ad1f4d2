"""Application configuration and .env loading."""

from __future__ import annotations

from dataclasses import dataclass, replace
from functools import lru_cache
from typing import Any, Literal

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

ReportLang = Literal["fr", "en"]

DEFAULT_AI_BATCH_SIZE = 6
DEFAULT_ENRICHMENT_CACHE_SIZE = 32


def normalize_report_lang(value: object) -> ReportLang:
    """Anything other than ``en`` falls back to French."""
    return "en" if str(value or "").strip().lower() == "en" else "fr"


class Settings(BaseSettings):
    """Centralized runtime configuration."""

    ai_batch_size: int = Field(
        default=DEFAULT_AI_BATCH_SIZE, ge=1, validation_alias="AUDIT_AI_BATCH_SIZE"
    )
    enrichment_cache_size: int = Field(
        default=DEFAULT_ENRICHMENT_CACHE_SIZE,
        ge=0,
        validation_alias="AUDIT_ENRICHMENT_CACHE_SIZE",
    )
    enrichment_enabled: bool = Field(default=True, validation_alias="AUDIT_ENRICH")
    fail_fast: bool = Field(default=False, validation_alias="AUDIT_FAIL_FAST")
    report_lang: str = Field(default="fr", validation_alias="AUDIT_REPORT_LANG")
    debug_snapshots: bool = Field(default=False, validation_alias="AUDIT_DEBUG_SNAPSHOTS")

    ai_model: str | None = Field(default=None, validation_alias="AUDIT_AI_MODEL")
    ai_model_provider: str | None = Field(
        default=None, validation_alias="AUDIT_AI_MODEL_PROVIDER"
    )
    ai_temperature: float = Field(default=0.0, validation_alias="AUDIT_AI_TEMPERATURE")
    ai_timeout: float | None = Field(default=None, validation_alias="AUDIT_AI_TIMEOUT")
    ai_max_tokens: int | None = Field(default=None, validation_alias="AUDIT_AI_MAX_TOKENS")
    ai_max_retries: int = Field(default=0, validation_alias="AUDIT_AI_MAX_RETRIES")
    ai_stall_timeout: float | None = Field(
        default=None, validation_alias="AUDIT_AI_STALL_TIMEOUT"
    )

    auto_resume_after: float | None = Field(
        default=None, validation_alias="AUDIT_AUTO_RESUME_AFTER"
    )

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    @field_validator("report_lang", mode="before")
    @classmethod
    def _normalize_lang(cls, value: object) -> str:
        return normalize_report_lang(value)

    @field_validator("ai_stall_timeout", "auto_resume_after", "ai_timeout", mode="before")
    @classmethod
    def _empty_or_non_positive_is_none(cls, value: object) -> object:
        if value is None or (isinstance(value, str) and not value.strip()):
            return None
        try:
            return None if float(value) <= 0 else value  # type: ignore[arg-type]
        except (TypeError, ValueError):
            return value


@dataclass(frozen=True)
class AuditConfig:
    """Immutable per-session configuration passed to every pipeline component."""

    ai_batch_size: int = DEFAULT_AI_BATCH_SIZE
    enrichment_cache_size: int = DEFAULT_ENRICHMENT_CACHE_SIZE
    enrichment_enabled: bool = True
    fail_fast: bool = False
    report_lang: ReportLang = "fr"
    ai_stall_timeout: float | None = None
    debug_snapshots: bool = False
    keep_checkpoint: bool = False

    @property
    def continue_on_page_failure(self) -> bool:
        return not self.fail_fast

    def with_overrides(self, **overrides: Any) -> "AuditConfig":
        cleaned = {key: value for key, value in overrides.items() if value is not None}
        if "report_lang" in cleaned:
            cleaned["report_lang"] = normalize_report_lang(cleaned["report_lang"])
        if "ai_batch_size" in cleaned and int(cleaned["ai_batch_size"]) < 1:
            raise ValueError("ai_batch_size must be >= 1")
        return replace(self, **cleaned)


def build_audit_config(settings: Settings | None = None, **overrides: Any) -> AuditConfig:
    """Freeze settings plus explicit overrides into an AuditConfig."""
    resolved = settings or get_settings()
    base = AuditConfig(
        ai_batch_size=resolved.ai_batch_size,
        enrichment_cache_size=resolved.enrichment_cache_size,
        enrichment_enabled=resolved.enrichment_enabled,
        fail_fast=resolved.fail_fast,
        report_lang=normalize_report_lang(resolved.report_lang),
        ai_stall_timeout=resolved.ai_stall_timeout,
        debug_snapshots=resolved.debug_snapshots,
    )
    return base.with_overrides(**overrides)


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Load settings once from .env/environment."""
    return Settings()


__all__ = [
    "AuditConfig",
    "DEFAULT_AI_BATCH_SIZE",
    "DEFAULT_ENRICHMENT_CACHE_SIZE",
    "ReportLang",
    "Settings",
    "build_audit_config",
    "get_settings",
    "normalize_report_lang",
]

"""Unit tests for the core configuration module."""

from __future__ import annotations

import pytest

from core.config import AuditConfig, Settings, build_audit_config, normalize_report_lang


def test_settings_defaults(monkeypatch) -> None:
    for name in ("AUDIT_AI_BATCH_SIZE", "AUDIT_ENRICHMENT_CACHE_SIZE", "AUDIT_REPORT_LANG"):
        monkeypatch.delenv(name, raising=False)

    settings = Settings(_env_file=None)

    assert settings.ai_batch_size == 6
    assert settings.enrichment_cache_size == 32
    assert settings.report_lang == "fr"
    assert settings.ai_stall_timeout is None


def test_settings_with_env_vars(monkeypatch) -> None:
    monkeypatch.setenv("AUDIT_AI_BATCH_SIZE", "3")
    monkeypatch.setenv("AUDIT_REPORT_LANG", "EN")
    monkeypatch.setenv("AUDIT_AI_STALL_TIMEOUT", "0")
    monkeypatch.setenv("AUDIT_FAIL_FAST", "true")

    settings = Settings(_env_file=None)

    assert settings.ai_batch_size == 3
    assert settings.report_lang == "en"
    assert settings.ai_stall_timeout is None
    assert settings.fail_fast is True


def test_build_audit_config_applies_overrides(monkeypatch) -> None:
    monkeypatch.delenv("AUDIT_AI_BATCH_SIZE", raising=False)
    settings = Settings(_env_file=None)

    config = build_audit_config(settings, ai_batch_size=2, report_lang="en", fail_fast=None)

    assert config.ai_batch_size == 2
    assert config.report_lang == "en"
    assert config.fail_fast is settings.fail_fast
    assert config.continue_on_page_failure is not config.fail_fast


def test_audit_config_rejects_zero_batch() -> None:
    with pytest.raises(ValueError, match="ai_batch_size"):
        AuditConfig().with_overrides(ai_batch_size=0)


def test_normalize_report_lang() -> None:
    assert normalize_report_lang("en") == "en"
    assert normalize_report_lang("de") == "fr"
    assert normalize_report_lang(None) == "fr"

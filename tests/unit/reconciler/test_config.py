"""Tests for ReconcilerConfig."""

import pytest
from pydantic import ValidationError


class TestReconcilerConfigDefaults:
    """Test default values."""

    def test_default_thresholds(self):
        from apptrail.reconciler.config import ReconcilerConfig

        config = ReconcilerConfig(_env_file=None)  # type: ignore[call-arg]

        assert config.ai_accept_threshold == 0.7
        assert config.status_confidence_threshold == 0.7
        assert config.fallback_confidence == 0.6
        assert config.duplicate_threshold == 0.8
        assert config.lookback_days == 90
        assert config.max_failure_attempts == 3
        assert config.auto_apply_confidence == 0.8
        assert config.auto_apply_min_changes == 2
        assert config.identity_overwrite_confidence == 0.9
        assert config.ai_policy == "always"
        assert config.ai_budget is None

    def test_default_llm_settings(self):
        from apptrail.reconciler.config import ReconcilerConfig

        config = ReconcilerConfig(_env_file=None)  # type: ignore[call-arg]

        assert config.llm_provider == "openai"
        assert config.llm_model == "gpt-4o-mini"
        assert config.llm_escalation_model == "gpt-4o"
        assert config.llm_api_key is None
        assert config.llm_max_retries == 1


class TestReconcilerConfigEnv:
    """Test environment overrides."""

    def test_env_prefix(self, monkeypatch):
        from apptrail.reconciler.config import ReconcilerConfig

        monkeypatch.setenv("RECONCILER_DUPLICATE_THRESHOLD", "0.6")
        monkeypatch.setenv("RECONCILER_AI_POLICY", "inconclusive")
        monkeypatch.setenv("RECONCILER_AI_BUDGET", "4")

        config = ReconcilerConfig(_env_file=None)  # type: ignore[call-arg]

        assert config.duplicate_threshold == 0.6
        assert config.ai_policy == "inconclusive"
        assert config.ai_budget == 4

    def test_singleton(self, monkeypatch):
        from apptrail.reconciler.config import (
            get_reconciler_config,
            reset_reconciler_config,
        )

        monkeypatch.setenv("RECONCILER_LOOKBACK_DAYS", "30")
        reset_reconciler_config()

        first = get_reconciler_config()
        assert first is get_reconciler_config()
        assert first.lookback_days == 30


class TestReconcilerConfigValidation:
    """Test rejected values."""

    @pytest.mark.parametrize(
        "overrides",
        [
            {"ai_accept_threshold": 1.5},
            {"duplicate_threshold": -0.1},
            {"ai_policy": "sometimes"},
            {"ai_budget": -1},
            {"max_failure_attempts": 0},
            {"lookback_days": 0},
        ],
    )
    def test_invalid_values(self, overrides):
        from apptrail.reconciler.config import ReconcilerConfig

        with pytest.raises(ValidationError):
            ReconcilerConfig(_env_file=None, **overrides)  # type: ignore[call-arg]

    def test_fallback_cannot_outrank_decisive_rule(self):
        from apptrail.reconciler.config import ReconcilerConfig

        with pytest.raises(ValidationError, match="fallback_confidence"):
            ReconcilerConfig(  # type: ignore[call-arg]
                _env_file=None, fallback_confidence=0.9, rule_decisive_confidence=0.8
            )

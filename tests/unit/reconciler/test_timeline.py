"""Tests for the status timeline builder."""

import asyncio
import json
from unittest.mock import AsyncMock

import pytest

from apptrail.reconciler.classifier import ClassificationContext, StatusClassifier
from apptrail.reconciler.config import ReconcilerConfig
from apptrail.reconciler.llm import StatusLLMError
from apptrail.reconciler.models import ClassifierTier, StatusHistoryEntry
from apptrail.reconciler.timeline import TimelineBuilder
from apptrail.tracker.models import ApplicationStatus


def _builder(config: ReconcilerConfig, service=None) -> TimelineBuilder:
    return TimelineBuilder(StatusClassifier(service, config), config)


class TestBuildHistory:
    """Test history construction with the rule tier only."""

    @pytest.mark.asyncio
    async def test_one_entry_per_observation_newest_first(
        self, reconciler_config, lifecycle_observations
    ):
        builder = _builder(reconciler_config)

        timeline = await builder.build_history(lifecycle_observations)

        assert [e.source_id for e in timeline.history] == ["msg-3", "msg-2", "msg-1"]
        assert [e.status for e in timeline.history] == [
            ApplicationStatus.REJECTED,
            ApplicationStatus.INTERVIEW,
            ApplicationStatus.APPLIED,
        ]
        assert timeline.status == ApplicationStatus.REJECTED

    @pytest.mark.asyncio
    async def test_highest_confidence_above_threshold_wins(
        self, reconciler_config, make_observation
    ):
        """A newer interview (0.8) does not beat an older offer (0.9)."""
        observations = [
            make_observation("a", day=0, subject="Congratulations on the offer"),
            make_observation("b", day=3, subject="Interview follow-up"),
        ]

        timeline = await _builder(reconciler_config).build_history(observations)

        assert timeline.status == ApplicationStatus.OFFER

    @pytest.mark.asyncio
    async def test_seed_kept_when_nothing_is_confident(
        self, reconciler_config, make_observation
    ):
        observations = [make_observation("a", subject="Hello", body="Checking in")]

        timeline = await _builder(reconciler_config).build_history(
            observations, seed_status=ApplicationStatus.INTERVIEW
        )

        assert timeline.status == ApplicationStatus.INTERVIEW
        assert timeline.history[0].status == ApplicationStatus.APPLIED

    @pytest.mark.asyncio
    async def test_default_seed_is_applied(self, reconciler_config, make_observation):
        timeline = await _builder(reconciler_config).build_history(
            [make_observation("a", subject="Hello")]
        )
        assert timeline.status == ApplicationStatus.APPLIED

    @pytest.mark.asyncio
    async def test_input_order_does_not_matter(self, reconciler_config, lifecycle_observations):
        builder = _builder(reconciler_config)

        forward = await builder.build_history(lifecycle_observations)
        backward = await builder.build_history(list(reversed(lifecycle_observations)))

        assert forward.history == backward.history
        assert forward.status == backward.status


class TestAuthoritativeStatus:
    def test_threshold_is_exclusive(self, reconciler_config, make_observation):
        obs = make_observation("a")
        history = [
            StatusHistoryEntry(ApplicationStatus.OFFER, obs.timestamp, "a", 0.7),
        ]
        builder = _builder(reconciler_config)
        assert builder.authoritative_status(history, ApplicationStatus.APPLIED) == (
            ApplicationStatus.APPLIED
        )

    def test_tie_goes_to_newest(self, reconciler_config, make_observation):
        newer = make_observation("b", day=2)
        older = make_observation("a", day=0)
        history = [
            StatusHistoryEntry(ApplicationStatus.REJECTED, newer.timestamp, "b", 0.85),
            StatusHistoryEntry(ApplicationStatus.INTERVIEW, older.timestamp, "a", 0.85),
        ]
        builder = _builder(reconciler_config)
        assert builder.authoritative_status(history, ApplicationStatus.APPLIED) == (
            ApplicationStatus.REJECTED
        )


class TestAITier:
    """Test AI tier participation, fallback and budget."""

    @pytest.mark.asyncio
    async def test_ai_failure_falls_back_at_fixed_confidence(
        self, reconciler_config, lifecycle_observations
    ):
        service = AsyncMock()
        service.classify.side_effect = StatusLLMError("service unavailable")
        context = ClassificationContext.from_config(reconciler_config)

        timeline = await _builder(reconciler_config, service).build_history(
            lifecycle_observations, context=context
        )

        assert len(timeline.history) == 3
        assert all(e.confidence == 0.6 for e in timeline.history)
        assert all(e.tier == ClassifierTier.FALLBACK for e in timeline.history)
        assert [e.status for e in timeline.history] == [
            ApplicationStatus.REJECTED,
            ApplicationStatus.INTERVIEW,
            ApplicationStatus.APPLIED,
        ]
        # Nothing clears 0.7, so the seed stands
        assert timeline.status == ApplicationStatus.APPLIED
        assert context.usage.fallbacks == 3

    @pytest.mark.asyncio
    async def test_confident_ai_overrides_rule(self, reconciler_config, make_observation):
        service = AsyncMock()
        service.classify.return_value = json.dumps(
            {"detected_status": "rejected", "confidence": 0.92, "reasoning": "polite no"}
        )

        timeline = await _builder(reconciler_config, service).build_history(
            [make_observation("a", subject="Update on your application")]
        )

        entry = timeline.history[0]
        assert entry.status == ApplicationStatus.REJECTED
        assert entry.tier == ClassifierTier.AI
        assert timeline.analyses["a"].reasoning == "polite no"
        assert timeline.status == ApplicationStatus.REJECTED

    @pytest.mark.asyncio
    async def test_history_order_ignores_completion_order(
        self, reconciler_config, lifecycle_observations
    ):
        """Slow answers for older messages do not reorder the history."""
        delays = {"msg-1": 0.0, "msg-2": 0.02, "msg-3": 0.04}

        async def _classify(request):
            source = next(
                o.source_id for o in lifecycle_observations if o.subject == request.subject
            )
            await asyncio.sleep(delays[source])
            return json.dumps({"detected_status": "interview", "confidence": 0.75})

        service = AsyncMock()
        service.classify.side_effect = _classify

        timeline = await _builder(reconciler_config, service).build_history(
            lifecycle_observations
        )

        assert [e.source_id for e in timeline.history] == ["msg-3", "msg-2", "msg-1"]

    @pytest.mark.asyncio
    async def test_budget_goes_to_newest_messages(
        self, lifecycle_observations
    ):
        config = ReconcilerConfig(_env_file=None, ai_budget=1)  # type: ignore[call-arg]
        service = AsyncMock()
        service.classify.return_value = json.dumps(
            {"detected_status": "rejected", "confidence": 0.9}
        )
        context = ClassificationContext.from_config(config)

        timeline = await _builder(config, service).build_history(
            lifecycle_observations, context=context
        )

        assert service.classify.await_count == 1
        request = service.classify.await_args.args[0]
        assert request.subject == "Your candidacy at Acme"
        assert [e.tier for e in timeline.history] == [
            ClassifierTier.AI,
            ClassifierTier.RULE,
            ClassifierTier.RULE,
        ]
        assert context.ai_budget == 0

    @pytest.mark.asyncio
    async def test_inconclusive_policy_skips_decisive_rule_results(
        self, lifecycle_observations
    ):
        config = ReconcilerConfig(_env_file=None, ai_policy="inconclusive")  # type: ignore[call-arg]
        service = AsyncMock()
        service.classify.return_value = json.dumps(
            {"detected_status": "applied", "confidence": 0.9}
        )

        await _builder(config, service).build_history(lifecycle_observations)

        # Only the 0.5 confirmation is below the decisive bar
        assert service.classify.await_count == 1
        assert service.classify.await_args.args[0].subject == "We received your application"

    @pytest.mark.asyncio
    async def test_complex_content_flag(self, reconciler_config, make_observation):
        service = AsyncMock()
        service.classify.return_value = "{}"

        await _builder(reconciler_config, service).build_history(
            [make_observation("a", subject="Hello", body="x" * 2500)]
        )

        request = service.classify.await_args.args[0]
        assert request.signals.has_complex_content is True
        assert request.signals.initial_confidence == 0.5

"""Status timeline: one classification per observation, plus the current status."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Sequence

from apptrail.reconciler.classifier import ClassificationContext, StatusClassifier
from apptrail.reconciler.config import ReconcilerConfig, get_reconciler_config
from apptrail.reconciler.models import (
    ClassificationSignals,
    ClassifierTier,
    StatusAnalysis,
    StatusHistoryEntry,
    StatusTimeline,
)
from apptrail.tracker.models import ApplicationStatus, Observation, newest_first

logger = logging.getLogger(__name__)


class TimelineBuilder:
    """Builds the status history for one merge.

    The builder derives status from evidence only. It does not check the
    transition table; the engine validates transitions before anything is
    persisted.
    """

    def __init__(
        self,
        classifier: StatusClassifier,
        config: ReconcilerConfig | None = None,
    ):
        self.classifier = classifier
        self.config = config or classifier.config or get_reconciler_config()

    async def build_history(
        self,
        observations: Sequence[Observation],
        seed_status: ApplicationStatus | None = None,
        context: ClassificationContext | None = None,
    ) -> StatusTimeline:
        """Classify every observation and pick the authoritative status.

        Args:
            observations: Observations for one record, in any order.
            seed_status: Status to keep when no entry is confident enough;
                ``applied`` when None.
            context: Classification context. A fresh one is created from
                config when not given.

        Returns:
            StatusTimeline with exactly one history entry per observation,
            newest first by ``(timestamp, source_id)``.
        """
        context = context or ClassificationContext.from_config(self.config)
        ordered = newest_first(list(observations))
        seed = seed_status or ApplicationStatus.APPLIED

        # Rule tier first, so AI budget can be handed out in a fixed order
        rule_results = [
            self.classifier.classify_rules(obs.subject, obs.body, context)
            for obs in ordered
        ]
        use_ai = [
            self.classifier.wants_ai(rule) and context.reserve_ai_call()
            for rule in rule_results
        ]

        results = await asyncio.gather(
            *(
                self._classify_one(obs, rule, ai, seed, context)
                for obs, rule, ai in zip(ordered, rule_results, use_ai)
            )
        )

        history: list[StatusHistoryEntry] = []
        analyses: dict[str, StatusAnalysis] = {}
        for obs, analysis in zip(ordered, results):
            history.append(
                StatusHistoryEntry(
                    status=analysis.status,
                    date=obs.timestamp,
                    source_id=obs.source_id,
                    confidence=analysis.confidence,
                    tier=analysis.tier,
                )
            )
            analyses[obs.source_id] = analysis

        status = self.authoritative_status(history, seed)
        return StatusTimeline(status=status, history=history, analyses=analyses)

    def authoritative_status(
        self,
        history: Sequence[StatusHistoryEntry],
        seed: ApplicationStatus,
    ) -> ApplicationStatus:
        """Highest-confidence entry above the threshold; ties go to the newest."""
        best: StatusHistoryEntry | None = None
        for entry in history:
            if entry.confidence <= self.config.status_confidence_threshold:
                continue
            if best is None or entry.confidence > best.confidence:
                best = entry
        return best.status if best is not None else seed

    async def _classify_one(
        self,
        observation: Observation,
        rule: StatusAnalysis,
        use_ai: bool,
        seed: ApplicationStatus,
        context: ClassificationContext,
    ) -> StatusAnalysis:
        if not use_ai:
            logger.debug(
                "%s: %s (%.2f, rule)", observation.source_id, rule.status.value, rule.confidence
            )
            return rule

        signals = ClassificationSignals(
            initial_confidence=rule.confidence,
            has_complex_content=len(observation.body)
            > self.config.complex_content_length,
        )
        outcome = await self.classifier.analyze_with_ai(
            subject=observation.subject,
            body=observation.body,
            sender=observation.sender,
            current_status=seed,
            rule_hint=rule,
            context=context,
            source_id=observation.source_id,
            signals=signals,
        )

        if not outcome.ok:
            context.usage.fallbacks += 1
            logger.debug(
                "%s: falling back to keyword scan (%s)", observation.source_id, outcome.error
            )
            return StatusAnalysis(
                status=rule.status,
                confidence=self.config.fallback_confidence,
                reasoning=f"Keyword fallback after AI failure: {outcome.error}",
                matched_terms=list(rule.matched_terms),
                tier=ClassifierTier.FALLBACK,
            )

        result = self.classifier.combine(rule, outcome)
        if result is not rule:
            context.usage.ai_accepted += 1
        logger.debug(
            "%s: %s (%.2f, %s)",
            observation.source_id,
            result.status.value,
            result.confidence,
            result.tier.value,
        )
        return result

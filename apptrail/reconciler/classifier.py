"""Two-tier status classification.

The rule tier is cheap and always available. The AI tier calls an external
text classification service and is only consulted when the caller elects
deeper analysis. Every service call yields a ``ClassificationOutcome``; the
fallback paths are explicit branches on that outcome.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field

from pydantic import ValidationError

from apptrail.reconciler.config import ReconcilerConfig, get_reconciler_config
from apptrail.reconciler.models import (
    ClassificationOutcome,
    ClassificationRequest,
    ClassificationSignals,
    ClassifierTier,
    LLMStatusAnalysis,
    StatusAnalysis,
)
from apptrail.reconciler.ports import TextClassificationService
from apptrail.reconciler.rules import classify_by_rules, scan_keywords
from apptrail.tracker.models import ApplicationStatus

logger = logging.getLogger(__name__)

# The service is never trusted with full certainty
MAX_AI_CONFIDENCE = 0.95


class FailureTracker:
    """Counts AI failures per error signature.

    A signature is ``(source_id, error type)``. Once a signature reaches
    ``max_attempts`` the message is not resubmitted for as long as the
    tracker lives.
    """

    def __init__(self, max_attempts: int = 3):
        self.max_attempts = max_attempts
        self._counts: dict[tuple[str, str], int] = {}

    @staticmethod
    def signature(source_id: str, error: Exception) -> tuple[str, str]:
        original = getattr(error, "original_error", None)
        kind = type(original or error).__name__
        return (source_id, kind)

    def record_failure(self, source_id: str, error: Exception) -> int:
        key = self.signature(source_id, error)
        self._counts[key] = self._counts.get(key, 0) + 1
        return self._counts[key]

    def is_exhausted(self, source_id: str) -> bool:
        return any(
            count >= self.max_attempts
            for (source, _kind), count in self._counts.items()
            if source == source_id
        )

    def attempts(self, source_id: str, kind: str) -> int:
        return self._counts.get((source_id, kind), 0)


@dataclass
class UsageStats:
    """Per-context classifier counters."""

    rule_calls: int = 0
    ai_calls: int = 0
    ai_accepted: int = 0
    ai_failures: int = 0
    ai_skipped: int = 0
    fallbacks: int = 0

    def to_dict(self) -> dict[str, int]:
        return {
            "rule_calls": self.rule_calls,
            "ai_calls": self.ai_calls,
            "ai_accepted": self.ai_accepted,
            "ai_failures": self.ai_failures,
            "ai_skipped": self.ai_skipped,
            "fallbacks": self.fallbacks,
        }


@dataclass
class ClassificationContext:
    """Mutable classifier state owned by the caller, never by the module.

    Pass one context per merge for isolated accounting, or share one across
    merges so throttled error signatures stay skipped.
    """

    failures: FailureTracker = field(default_factory=FailureTracker)
    usage: UsageStats = field(default_factory=UsageStats)
    ai_budget: int | None = None

    @classmethod
    def from_config(cls, config: ReconcilerConfig) -> ClassificationContext:
        return cls(
            failures=FailureTracker(max_attempts=config.max_failure_attempts),
            ai_budget=config.ai_budget,
        )

    def reserve_ai_call(self) -> bool:
        """Take one unit of AI budget; False when the budget is spent."""
        if self.ai_budget is None:
            return True
        if self.ai_budget <= 0:
            return False
        self.ai_budget -= 1
        return True


def extract_json_payload(content: str) -> str | None:
    """Extract a JSON object from a model answer.

    Handles markdown code fences and reasoning text before the object.
    Returns None when the content holds no JSON object at all.
    """
    content = content.strip()

    if content.startswith("```"):
        first_newline = content.find("\n")
        if first_newline != -1:
            content = content[first_newline + 1 :]
        if content.endswith("```"):
            content = content[:-3]
        content = content.strip()

    start = content.find("{")
    if start == -1:
        return None

    depth = 0
    for idx in range(start, len(content)):
        ch = content[idx]
        if ch == "{":
            depth += 1
        elif ch == "}":
            depth -= 1
            if depth == 0:
                return content[start : idx + 1]
    return None


def parse_service_response(text: str, rule_hint: StatusAnalysis) -> StatusAnalysis:
    """Turn the service's answer into a status analysis.

    Structured JSON is validated against ``LLMStatusAnalysis``. When the
    answer is free text (or JSON that does not validate), the text is scanned
    with the rule tier's keyword families; if that finds nothing either, the
    rule hint stands.
    """
    payload = extract_json_payload(text)
    if payload is not None:
        try:
            parsed = LLMStatusAnalysis.model_validate_json(payload)
        except ValidationError:
            logger.debug("Service JSON did not validate; scanning as free text")
        else:
            return StatusAnalysis(
                status=parsed.detected_status,
                confidence=min(parsed.confidence, MAX_AI_CONFIDENCE),
                reasoning=parsed.reasoning or "AI analysis completed",
                matched_terms=list(parsed.key_indicators),
                tier=ClassifierTier.AI,
                details=parsed.extracted_details,
            )

    found = scan_keywords(text)
    if found is None:
        return rule_hint

    family, hits = found
    return StatusAnalysis(
        status=family.status,
        confidence=min(family.confidence, MAX_AI_CONFIDENCE),
        reasoning="Derived from free-text classifier response",
        matched_terms=hits,
        tier=ClassifierTier.AI,
    )


class StatusClassifier:
    """Rule tier plus optional AI tier over a text classification service."""

    def __init__(
        self,
        service: TextClassificationService | None = None,
        config: ReconcilerConfig | None = None,
    ):
        self.service = service
        self.config = config or get_reconciler_config()

    @property
    def ai_available(self) -> bool:
        return self.service is not None and self.config.ai_policy != "off"

    def classify_rules(
        self,
        subject: str,
        body: str,
        context: ClassificationContext | None = None,
    ) -> StatusAnalysis:
        if context is not None:
            context.usage.rule_calls += 1
        return classify_by_rules(subject, body)

    def wants_ai(self, rule_result: StatusAnalysis) -> bool:
        """Whether the AI tier should look at a message, before budget."""
        if not self.ai_available:
            return False
        if self.config.ai_policy == "inconclusive":
            return rule_result.confidence < self.config.rule_decisive_confidence
        return True

    async def analyze_with_ai(
        self,
        *,
        subject: str,
        body: str,
        sender: str,
        current_status: ApplicationStatus | None,
        rule_hint: StatusAnalysis,
        context: ClassificationContext,
        source_id: str = "",
        signals: ClassificationSignals | None = None,
    ) -> ClassificationOutcome:
        """Make one AI-tier attempt and report how it went.

        Transport and service errors are caught here and come back as a
        failed outcome; nothing from the service propagates to the caller.
        """
        if self.service is None:
            return ClassificationOutcome.failure("no classification service", skipped=True)

        if source_id and context.failures.is_exhausted(source_id):
            context.usage.ai_skipped += 1
            logger.warning(
                "Skipping AI classification for %s: retry cap of %s reached",
                source_id,
                context.failures.max_attempts,
            )
            return ClassificationOutcome.failure("retry cap reached", skipped=True)

        request = ClassificationRequest(
            subject=subject,
            body=body,
            sender=sender,
            current_status=current_status,
            rule_hint=rule_hint,
            signals=signals
            or ClassificationSignals(
                initial_confidence=rule_hint.confidence,
                has_complex_content=True,
            ),
        )

        context.usage.ai_calls += 1
        try:
            text = await self.service.classify(request)
        except Exception as e:
            context.usage.ai_failures += 1
            attempts = context.failures.record_failure(source_id, e)
            logger.warning(
                "AI classification failed for %s (attempt %s): %s",
                source_id or subject[:50],
                attempts,
                e,
            )
            return ClassificationOutcome.failure(str(e) or type(e).__name__)

        return ClassificationOutcome.success(parse_service_response(text, rule_hint))

    def combine(
        self, rule_result: StatusAnalysis, outcome: ClassificationOutcome
    ) -> StatusAnalysis:
        """Hard threshold: the AI result wins only above ai_accept_threshold."""
        if outcome.ok and outcome.analysis.confidence > self.config.ai_accept_threshold:
            return outcome.analysis
        return rule_result

    async def classify_with_ai(
        self,
        subject: str,
        body: str,
        sender: str,
        current_status: ApplicationStatus | None = None,
        rule_hint: StatusAnalysis | None = None,
        *,
        context: ClassificationContext | None = None,
        source_id: str = "",
    ) -> StatusAnalysis:
        """Classify one message with both tiers.

        Args:
            subject: Message subject.
            body: Message body.
            sender: Raw From header.
            current_status: Status of the record the message belongs to.
            rule_hint: Rule-tier result, computed here when not given.
            context: Classification context for counters and throttling.
            source_id: Message id, used for the failure signature.

        Returns:
            The AI analysis when it clears the acceptance threshold, the rule
            result otherwise (including when the service fails).
        """
        context = context or ClassificationContext.from_config(self.config)
        if rule_hint is None:
            rule_hint = self.classify_rules(subject, body, context)

        outcome = await self.analyze_with_ai(
            subject=subject,
            body=body,
            sender=sender,
            current_status=current_status,
            rule_hint=rule_hint,
            context=context,
            source_id=source_id,
        )
        result = self.combine(rule_hint, outcome)
        if result is not rule_hint:
            context.usage.ai_accepted += 1
        return result

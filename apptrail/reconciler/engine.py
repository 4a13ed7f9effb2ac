"""Reconciliation engine: merges observations into one canonical record.

The engine owns the application record. Collaborators (mail source, text
classification service) are injected and only reached through their ports;
storage is the caller's business: the engine returns records, it never
persists them.
"""

from __future__ import annotations

import dataclasses
import hashlib
import logging
from collections.abc import Sequence
from datetime import UTC, date, datetime

from apptrail.reconciler.classifier import ClassificationContext, StatusClassifier
from apptrail.reconciler.config import ReconcilerConfig, get_reconciler_config
from apptrail.reconciler.fields import (
    OLDEST_MESSAGE_CONFIDENCE,
    build_notes,
    extract_email_address,
    is_automated_address,
    resolve_all,
)
from apptrail.reconciler.models import (
    ClassifierTier,
    FieldChange,
    FieldProvenance,
    MergeReport,
    MergeResult,
    StatusAnalysis,
    StatusTimeline,
    StatusTransition,
    UpdateSuggestion,
)
from apptrail.reconciler.ports import FetchOutcome, MailSource
from apptrail.reconciler.timeline import TimelineBuilder
from apptrail.tracker.matcher import find_match
from apptrail.tracker.models import (
    ApplicationRecord,
    ApplicationStatus,
    ExtractionMethod,
    Observation,
    compute_record_id,
    is_valid_transition,
    oldest_first,
)

logger = logging.getLogger(__name__)

IDENTITY_FIELDS = ("company", "position")

# Record attributes copied straight from the resolved provenance
RESOLVED_FIELDS = (
    "contact_email",
    "recruiter",
    "interviewer",
    "job_url",
    "salary",
    "location",
)


class EmptyObservationsError(ValueError):
    """Raised when a merge is requested without any observation."""


class ReconciliationEngine:
    """Composes matching, field resolution and the status timeline.

    Example:
        >>> engine = ReconciliationEngine(classifier=StatusClassifier(StatusLLM()))
        >>> result = await engine.merge(observations)
        >>> result.record.status
        <ApplicationStatus.INTERVIEW: 'interview'>
    """

    def __init__(
        self,
        config: ReconcilerConfig | None = None,
        classifier: StatusClassifier | None = None,
        mail_source: MailSource | None = None,
    ):
        self.config = config or get_reconciler_config()
        self.classifier = classifier or StatusClassifier(config=self.config)
        self.timeline = TimelineBuilder(self.classifier, self.config)
        self.mail_source = mail_source

    async def merge(
        self,
        observations: Sequence[Observation],
        existing: ApplicationRecord | None = None,
        *,
        known_records: Sequence[ApplicationRecord] | None = None,
        context: ClassificationContext | None = None,
    ) -> MergeResult:
        """Merge a batch of observations into a canonical record.

        Args:
            observations: At least one observation about a single application.
            existing: The record to update, when the caller already knows it.
            known_records: Persisted records to search for a duplicate when
                ``existing`` is not given.
            context: Classification context; share one across merges to keep
                failure throttling alive between them.

        Returns:
            MergeResult with the record, whether it is an update, and the
            merge report.

        Raises:
            EmptyObservationsError: If ``observations`` is empty.
        """
        if not observations:
            raise EmptyObservationsError("merge requires at least one observation")

        context = context or ClassificationContext.from_config(self.config)
        batch = list(observations)

        target = existing
        if target is None and known_records:
            target = self._match_existing(batch, known_records)

        fetched = FetchOutcome()
        if target is not None:
            fetched = await self.fetch_related(target)
            batch = dedupe_observations(batch, fetched.observations)

        timeline = await self.timeline.build_history(
            batch,
            seed_status=target.status if target else None,
            context=context,
        )
        evidence = apply_ai_details(batch, timeline)
        provenance = resolve_all(evidence)
        notes = build_notes(evidence, timeline.history)

        now = datetime.now(UTC)
        rejected: StatusTransition | None = None
        if target is None:
            record = self._create_record(provenance, timeline.status, notes, batch, now)
        else:
            record, rejected = self._update_record(
                target, provenance, timeline.status, notes, now
            )

        report = MergeReport(
            observation_count=len(batch),
            provenance=provenance,
            status_history=timeline.history,
            fetched_observation_count=len(fetched.observations),
            rejected_transition=rejected,
            usage=context.usage.to_dict(),
            fetch_error=fetched.error,
        )

        logger.info(
            "%s record %s (%s at %s) from %s observations, status=%s",
            "Updated" if target is not None else "Created",
            record.id,
            record.position or "?",
            record.company or "?",
            len(batch),
            record.status.value,
        )
        if rejected is not None:
            logger.info(
                "Kept status %s for %s: %s is not a valid transition",
                rejected.current.value,
                record.id,
                rejected.proposed.value,
            )

        return MergeResult(record=record, is_update=target is not None, report=report)

    async def fetch_related(self, record: ApplicationRecord) -> FetchOutcome:
        """Ask the mail source for earlier messages about this application.

        A failing mail source degrades the merge to the given batch. The
        error is logged and returned in the outcome; ``merge`` copies it into
        ``MergeReport.fetch_error``.
        """
        if self.mail_source is None:
            return FetchOutcome()

        try:
            found = await self.mail_source.fetch_related_messages(
                record.company, record.position, self.config.lookback_days
            )
        except Exception as e:
            logger.warning(
                "Could not fetch related messages for %s at %s: %s",
                record.position,
                record.company,
                e,
            )
            return FetchOutcome(error=str(e) or type(e).__name__)

        logger.debug("Fetched %s related messages for %s", len(found), record.id)
        return FetchOutcome(observations=list(found))

    async def suggest_updates(
        self,
        observation: Observation,
        record: ApplicationRecord,
        context: ClassificationContext | None = None,
    ) -> UpdateSuggestion:
        """Compute the changes one new observation implies for a persisted record.

        Nothing is applied. ``should_auto_apply`` is set only when at least
        ``auto_apply_min_changes`` high-confidence changes come from distinct
        evidence channels.
        """
        context = context or ClassificationContext.from_config(self.config)
        changes: list[FieldChange] = []

        for name, entry in resolve_all([observation]).items():
            change = self._field_change(observation, record, name, entry)
            if change is not None:
                changes.append(change)

        analysis = await self._classify_single(observation, record, context)
        if analysis.status != record.status and is_valid_transition(
            record.status, analysis.status
        ):
            changes.append(
                FieldChange(
                    field="status",
                    current=record.status.value,
                    proposed=analysis.status.value,
                    confidence=analysis.confidence,
                    source_id=observation.source_id,
                    evidence="classifier",
                )
            )

        high = [c for c in changes if c.confidence >= self.config.auto_apply_confidence]
        independent = {c.evidence for c in high}
        suggestion = UpdateSuggestion(
            record_id=record.id,
            source_id=observation.source_id,
            changes=changes,
            should_auto_apply=len(independent) >= self.config.auto_apply_min_changes,
        )
        logger.debug(
            "%s suggests %s changes for %s (auto_apply=%s)",
            observation.source_id,
            len(changes),
            record.id,
            suggestion.should_auto_apply,
        )
        return suggestion

    def _match_existing(
        self,
        batch: list[Observation],
        known_records: Sequence[ApplicationRecord],
    ) -> ApplicationRecord | None:
        identity = resolve_all(batch)
        company = identity.get("company")
        position = identity.get("position")
        if company is None or position is None:
            return None

        match = find_match(
            known_records,
            company.value,
            position.value,
            threshold=self.config.duplicate_threshold,
        )
        if match is not None:
            logger.debug("Batch matched existing record %s", match.id)
        return match

    def _create_record(
        self,
        provenance: dict[str, FieldProvenance],
        status: ApplicationStatus,
        notes: str,
        batch: list[Observation],
        now: datetime,
    ) -> ApplicationRecord:
        company = _value(provenance, "company") or ""
        position = _value(provenance, "position") or ""
        return ApplicationRecord(
            id=_record_id(company, position, batch),
            company=company,
            position=position,
            status=status,
            applied_date=_value(provenance, "applied_date") or "",
            created_at=now,
            updated_at=now,
            notes=notes,
            **{name: _value(provenance, name) for name in RESOLVED_FIELDS},
        )

    def _update_record(
        self,
        existing: ApplicationRecord,
        provenance: dict[str, FieldProvenance],
        derived_status: ApplicationStatus,
        notes: str,
        now: datetime,
    ) -> tuple[ApplicationRecord, StatusTransition | None]:
        updates: dict = {"notes": notes, "updated_at": now}

        for name in (*IDENTITY_FIELDS, *RESOLVED_FIELDS, "applied_date"):
            entry = provenance.get(name)
            current = getattr(existing, name)
            if entry is None or not _differs(current, entry.value):
                continue
            if not self._keeps_existing(name, current, entry):
                updates[name] = entry.value

        rejected: StatusTransition | None = None
        if is_valid_transition(existing.status, derived_status):
            updates["status"] = derived_status
        else:
            rejected = StatusTransition(current=existing.status, proposed=derived_status)

        return dataclasses.replace(existing, **updates), rejected

    def _keeps_existing(
        self, name: str, current: str | None, entry: FieldProvenance
    ) -> bool:
        """Whether a stored value survives a newly resolved candidate.

        Blank values are always filled. Identity needs a high-confidence
        candidate; a date read off a message timestamp may only move the
        applied date earlier; an automated address never replaces a stored
        contact; anything else needs ``field_overwrite_confidence``.
        """
        if current is None or not current.strip():
            return False

        if name in IDENTITY_FIELDS:
            return entry.confidence < self.config.identity_overwrite_confidence

        if name == "applied_date":
            if not entry.from_timestamp:
                return False
            return entry.confidence <= OLDEST_MESSAGE_CONFIDENCE or not _is_earlier(
                entry.value, current
            )

        if name == "contact_email" and is_automated_address(entry.value):
            return True

        return entry.confidence < self.config.field_overwrite_confidence

    def _field_change(
        self,
        observation: Observation,
        record: ApplicationRecord,
        name: str,
        entry: FieldProvenance,
    ) -> FieldChange | None:
        current = getattr(record, name, None)
        if not _differs(current, entry.value):
            return None

        # Timestamp-derived dates never replace a stored applied date
        if name == "applied_date" and entry.from_timestamp:
            if record.applied_date or entry.confidence <= OLDEST_MESSAGE_CONFIDENCE:
                return None

        if self._keeps_existing(name, current, entry):
            return None

        return FieldChange(
            field=name,
            current=current,
            proposed=entry.value,
            confidence=entry.confidence,
            source_id=observation.source_id,
            evidence=_evidence_channel(observation, name, entry.value),
        )

    async def _classify_single(
        self,
        observation: Observation,
        record: ApplicationRecord,
        context: ClassificationContext,
    ) -> StatusAnalysis:
        rule = self.classifier.classify_rules(observation.subject, observation.body, context)
        if not (self.classifier.wants_ai(rule) and context.reserve_ai_call()):
            return rule
        return await self.classifier.classify_with_ai(
            observation.subject,
            observation.body,
            observation.sender,
            record.status,
            rule,
            context=context,
            source_id=observation.source_id,
        )


def dedupe_observations(
    batch: Sequence[Observation], fetched: Sequence[Observation]
) -> list[Observation]:
    """Union by source id; the caller's batch wins over fetched copies."""
    seen: dict[str, Observation] = {}
    for observation in [*batch, *fetched]:
        seen.setdefault(observation.source_id, observation)
    return list(seen.values())


def apply_ai_details(
    observations: Sequence[Observation], timeline: StatusTimeline
) -> list[Observation]:
    """Fill location and salary from AI-extracted details where a message lacks them."""
    enriched: list[Observation] = []
    for observation in observations:
        analysis = timeline.analyses.get(observation.source_id)
        details = analysis.details if analysis is not None else None
        if analysis is None or analysis.tier != ClassifierTier.AI or details is None:
            enriched.append(observation)
            continue

        updates: dict = {}
        if details.interview_location and not observation.get_field("location"):
            updates["location"] = details.interview_location
        if details.salary and not observation.get_field("salary"):
            updates["salary"] = details.salary

        if updates:
            updates["extraction_method"] = ExtractionMethod.AI_ENHANCED
            observation = observation.model_copy(update=updates)
        enriched.append(observation)
    return enriched


def _value(provenance: dict[str, FieldProvenance], name: str) -> str | None:
    entry = provenance.get(name)
    return entry.value if entry is not None else None


def _record_id(company: str, position: str, batch: Sequence[Observation]) -> str:
    if company or position:
        return compute_record_id(company, position)
    # No identity at all: key on the first message of the batch
    first = oldest_first(list(batch))[0]
    return hashlib.sha256(first.source_id.encode()).hexdigest()[:32]


def _differs(current: str | None, proposed: str) -> bool:
    if current is None:
        return True
    return current.strip().lower() != proposed.strip().lower()


def _is_earlier(candidate: str, current: str) -> bool:
    """Compare ISO dates; values that do not parse never count as earlier."""
    try:
        return date.fromisoformat(candidate) < date.fromisoformat(current)
    except ValueError:
        return False


def _evidence_channel(observation: Observation, name: str, value: str) -> str:
    """Name the channel a suggested value was read from.

    Values taken from the message's own extracted fields count as separate
    evidence per field; values derived from the sender header share one
    channel, as do values derived from the message timestamp.
    """
    explicit = observation.get_field(name)
    if explicit is not None and explicit.strip().lower() == value.strip().lower():
        return name
    if name == "contact_email" and extract_email_address(explicit) == value:
        return name
    if name == "applied_date":
        return "timestamp"
    return "sender"

"""Data models for the reconciliation engine."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum

from pydantic import BaseModel, Field

from apptrail.tracker.models import ApplicationRecord, ApplicationStatus, ExtractionMethod


def format_source_info(source_date: datetime, confidence: float, method: str) -> str:
    """Render provenance as ``"<date> (<confidence>%, <method>)"``."""
    return f"{source_date.date().isoformat()} ({round(confidence * 100)}%, {method})"


@dataclass(frozen=True)
class FieldProvenance:
    """The value chosen for one field and where it came from."""

    value: str
    confidence: float
    source_id: str
    source_date: datetime
    method: ExtractionMethod = ExtractionMethod.RULE_BASED
    # True when the value is a message date rather than an extracted field
    from_timestamp: bool = False

    @property
    def summary(self) -> str:
        return format_source_info(self.source_date, self.confidence, self.method.value)

    def to_dict(self) -> dict:
        return {
            "value": self.value,
            "confidence": self.confidence,
            "source_id": self.source_id,
            "source_date": self.source_date.isoformat(),
            "method": self.method.value,
        }


class ClassifierTier(str, Enum):
    """Which strategy produced a status classification."""

    RULE = "rule"
    AI = "ai"
    FALLBACK = "fallback"


class ExtractedDetails(BaseModel):
    """Structured sub-fields the AI tier may pull out of a message."""

    interview_date: str | None = Field(default=None, description="Interview date")
    interview_time: str | None = Field(default=None, description="Interview time")
    interview_location: str | None = Field(
        default=None, description="Office address, meeting link or 'phone'"
    )
    interview_type: str | None = Field(
        default=None, description="phone, video, in-person or panel"
    )
    rejection_reason: str | None = Field(default=None, description="Stated reason")
    offer_details: str | None = Field(default=None, description="Offer terms")
    salary: str | None = Field(default=None, description="Salary if mentioned")
    next_steps: str | None = Field(default=None, description="What happens next")


class LLMStatusAnalysis(BaseModel):
    """Structured output expected from the text classification service."""

    detected_status: ApplicationStatus = Field(..., description="Best-fitting status")
    confidence: float = Field(..., ge=0.0, le=1.0, description="Confidence 0.0-1.0")
    reasoning: str = Field(default="", description="Short explanation")
    key_indicators: list[str] = Field(
        default_factory=list, description="Phrases that support the status"
    )
    suggested_next_action: str | None = Field(
        default=None, description="What the candidate should do next"
    )
    extracted_details: ExtractedDetails | None = Field(default=None)


@dataclass
class StatusAnalysis:
    """A status guess for one message, from either classifier tier."""

    status: ApplicationStatus
    confidence: float
    reasoning: str
    matched_terms: list[str] = field(default_factory=list)
    tier: ClassifierTier = ClassifierTier.RULE
    details: ExtractedDetails | None = None

    @property
    def suggested_next_action(self) -> str:
        return self.status.suggested_action

    def to_dict(self) -> dict:
        return {
            "status": self.status.value,
            "confidence": self.confidence,
            "reasoning": self.reasoning,
            "matched_terms": list(self.matched_terms),
            "tier": self.tier.value,
            "suggested_next_action": self.suggested_next_action,
            "details": self.details.model_dump(exclude_none=True)
            if self.details
            else None,
        }


@dataclass(frozen=True)
class ClassificationSignals:
    """Context the classification service uses to pick a model tier."""

    initial_confidence: float = 0.5
    is_in_review_queue: bool = False
    has_complex_content: bool = False


@dataclass(frozen=True)
class ClassificationRequest:
    """Everything the AI tier sends to the classification service."""

    subject: str
    body: str
    sender: str
    current_status: ApplicationStatus | None
    rule_hint: StatusAnalysis
    signals: ClassificationSignals = field(default_factory=ClassificationSignals)


@dataclass
class ClassificationOutcome:
    """Result of one AI-tier attempt: an analysis or the failure that stopped it."""

    analysis: StatusAnalysis | None = None
    error: str | None = None
    skipped: bool = False

    @property
    def ok(self) -> bool:
        return self.analysis is not None and self.error is None

    @classmethod
    def success(cls, analysis: StatusAnalysis) -> ClassificationOutcome:
        return cls(analysis=analysis)

    @classmethod
    def failure(cls, error: str, *, skipped: bool = False) -> ClassificationOutcome:
        return cls(error=error, skipped=skipped)


@dataclass(frozen=True)
class StatusHistoryEntry:
    """One per-observation status classification."""

    status: ApplicationStatus
    date: datetime
    source_id: str
    confidence: float
    tier: ClassifierTier = ClassifierTier.RULE

    def to_dict(self) -> dict:
        return {
            "status": self.status.value,
            "date": self.date.isoformat(),
            "source_id": self.source_id,
            "confidence": self.confidence,
            "tier": self.tier.value,
        }


@dataclass
class StatusTimeline:
    """Authoritative status plus the newest-first history it was derived from."""

    status: ApplicationStatus
    history: list[StatusHistoryEntry] = field(default_factory=list)
    analyses: dict[str, StatusAnalysis] = field(default_factory=dict)


@dataclass(frozen=True)
class StatusTransition:
    """A status change the engine refused to apply to an existing record."""

    current: ApplicationStatus
    proposed: ApplicationStatus

    def to_dict(self) -> dict:
        return {"current": self.current.value, "proposed": self.proposed.value}


@dataclass
class MergeReport:
    """How a canonical record was assembled."""

    observation_count: int
    provenance: dict[str, FieldProvenance] = field(default_factory=dict)
    status_history: list[StatusHistoryEntry] = field(default_factory=list)
    fetched_observation_count: int = 0
    rejected_transition: StatusTransition | None = None
    usage: dict[str, int] = field(default_factory=dict)
    fetch_error: str | None = None

    @property
    def source_summary(self) -> dict[str, str]:
        """Field name -> ``"<date> (<confidence>%, <method>)"``."""
        return {name: entry.summary for name, entry in self.provenance.items()}

    def to_dict(self) -> dict:
        return {
            "observation_count": self.observation_count,
            "fetched_observation_count": self.fetched_observation_count,
            "provenance": {
                name: entry.to_dict() for name, entry in self.provenance.items()
            },
            "source_summary": self.source_summary,
            "status_history": [entry.to_dict() for entry in self.status_history],
            "rejected_transition": self.rejected_transition.to_dict()
            if self.rejected_transition
            else None,
            "usage": dict(self.usage),
            "fetch_error": self.fetch_error,
        }


@dataclass
class MergeResult:
    """Output of a full merge."""

    record: ApplicationRecord
    is_update: bool
    report: MergeReport

    def to_dict(self) -> dict:
        return {
            "record": self.record.to_dict(),
            "is_update": self.is_update,
            "merge_report": self.report.to_dict(),
        }


@dataclass(frozen=True)
class FieldChange:
    """A candidate change to one field of a persisted record.

    ``evidence`` names the channel the value came from; changes that share a
    channel (e.g. several fields read off the same sender header) are not
    independent of each other.
    """

    field: str
    current: str | None
    proposed: str
    confidence: float
    source_id: str
    evidence: str

    def to_dict(self) -> dict:
        return {
            "field": self.field,
            "current": self.current,
            "proposed": self.proposed,
            "confidence": self.confidence,
            "source_id": self.source_id,
            "evidence": self.evidence,
        }


@dataclass
class UpdateSuggestion:
    """Delta between a persisted record and one new observation."""

    record_id: str
    source_id: str
    changes: list[FieldChange] = field(default_factory=list)
    should_auto_apply: bool = False

    @property
    def has_changes(self) -> bool:
        return bool(self.changes)

    def to_dict(self) -> dict:
        return {
            "record_id": self.record_id,
            "source_id": self.source_id,
            "changes": [change.to_dict() for change in self.changes],
            "should_auto_apply": self.should_auto_apply,
        }

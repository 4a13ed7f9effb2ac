"""Data models for tracked job applications and the evidence behind them."""

from __future__ import annotations

import hashlib
from dataclasses import dataclass
from datetime import UTC, datetime
from enum import Enum

from pydantic import BaseModel, ConfigDict, Field, field_validator


class ApplicationStatus(str, Enum):
    """Status of a job application."""

    APPLIED = "applied"
    INTERVIEW = "interview"
    OFFER = "offer"
    REJECTED = "rejected"
    WITHDRAWN = "withdrawn"

    def is_terminal(self) -> bool:
        """Return True for end states; an offer can still be declined or withdrawn."""
        return self in TERMINAL_STATUSES

    @property
    def description(self) -> str:
        return _STATUS_DESCRIPTIONS[self]

    @property
    def suggested_action(self) -> str:
        return _SUGGESTED_ACTIONS[self]


# Offer is treated as terminal for progress purposes: it can still be declined
# (rejected) or withdrawn, but never goes back to interview.
STATUS_TRANSITIONS: dict[ApplicationStatus, frozenset[ApplicationStatus]] = {
    ApplicationStatus.APPLIED: frozenset(
        {
            ApplicationStatus.INTERVIEW,
            ApplicationStatus.OFFER,
            ApplicationStatus.REJECTED,
            ApplicationStatus.WITHDRAWN,
        }
    ),
    ApplicationStatus.INTERVIEW: frozenset(
        {
            ApplicationStatus.INTERVIEW,
            ApplicationStatus.OFFER,
            ApplicationStatus.REJECTED,
            ApplicationStatus.WITHDRAWN,
        }
    ),
    ApplicationStatus.OFFER: frozenset(
        {ApplicationStatus.REJECTED, ApplicationStatus.WITHDRAWN}
    ),
    ApplicationStatus.REJECTED: frozenset(),
    ApplicationStatus.WITHDRAWN: frozenset(),
}

TERMINAL_STATUSES = frozenset(
    {ApplicationStatus.OFFER, ApplicationStatus.REJECTED, ApplicationStatus.WITHDRAWN}
)

_STATUS_DESCRIPTIONS = {
    ApplicationStatus.APPLIED: "Application submitted and pending response",
    ApplicationStatus.INTERVIEW: "Interview scheduled or in progress",
    ApplicationStatus.OFFER: "Job offer received",
    ApplicationStatus.REJECTED: "Application was rejected",
    ApplicationStatus.WITHDRAWN: "Application was withdrawn",
}

_SUGGESTED_ACTIONS = {
    ApplicationStatus.APPLIED: "Wait for response or follow up if needed",
    ApplicationStatus.INTERVIEW: "Prepare for interview and confirm attendance",
    ApplicationStatus.OFFER: "Review offer details and respond appropriately",
    ApplicationStatus.REJECTED: "Update application tracking and continue job search",
    ApplicationStatus.WITHDRAWN: "Mark as withdrawn and continue with other opportunities",
}


def is_valid_transition(
    current: ApplicationStatus, proposed: ApplicationStatus
) -> bool:
    """Check a status change against the transition table.

    Staying in the same status is always accepted; re-entering ``interview``
    is listed explicitly because it represents another round.
    """
    if current == proposed:
        return True
    return proposed in STATUS_TRANSITIONS[current]


class ExtractionMethod(str, Enum):
    """How the extracted fields of an observation were produced."""

    RULE_BASED = "rule-based"
    AI_ENHANCED = "ai-enhanced"


class Observation(BaseModel):
    """One unit of evidence derived from a single inbound message.

    Observations are immutable. Extracted fields are independently optional;
    ``confidence`` describes how trustworthy this message's extraction is as
    a whole.
    """

    model_config = ConfigDict(frozen=True, extra="ignore")

    source_id: str = Field(..., min_length=1, description="Message id, unique per source")
    timestamp: datetime = Field(..., description="When the message was received")
    sender: str = Field(default="", description="Raw From header")
    subject: str = Field(default="", description="Message subject")
    body: str = Field(default="", description="Plain-text message body")

    company: str | None = Field(default=None, description="Company name")
    position: str | None = Field(default=None, description="Job title")
    applied_date: str | None = Field(default=None, description="Explicit applied date")
    contact_email: str | None = Field(default=None, description="Contact address")
    job_url: str | None = Field(default=None, description="Job posting URL")
    salary: str | None = Field(default=None, description="Salary text")
    location: str | None = Field(
        default=None, description="Job location or meeting location/link"
    )
    recruiter: str | None = Field(default=None, description="Recruiter name")
    interviewer: str | None = Field(default=None, description="Interviewer name")
    notes: str | None = Field(default=None, description="Free-text notes")

    confidence: float = Field(default=0.5, ge=0.0, le=1.0)
    extraction_method: ExtractionMethod = Field(default=ExtractionMethod.RULE_BASED)

    @field_validator("source_id")
    @classmethod
    def validate_source_id(cls, v: str) -> str:
        value = v.strip()
        if not value:
            raise ValueError("source_id must not be blank")
        return value

    @field_validator("timestamp")
    @classmethod
    def ensure_timezone(cls, v: datetime) -> datetime:
        """Treat naive timestamps as UTC so mixed batches stay comparable."""
        if v.tzinfo is None:
            return v.replace(tzinfo=UTC)
        return v

    @property
    def sort_key(self) -> tuple[datetime, str]:
        return (self.timestamp, self.source_id)

    @property
    def text(self) -> str:
        """Lowercased subject and body, the surface keyword matching runs on."""
        return f"{self.subject} {self.body}".lower()

    def get_field(self, name: str) -> str | None:
        """Return an extracted field trimmed, or None when absent/blank."""
        value = getattr(self, name, None)
        if not isinstance(value, str):
            return None
        value = value.strip()
        return value or None


def newest_first(observations: list[Observation]) -> list[Observation]:
    """Order by timestamp descending; equal timestamps by source id."""
    return sorted(observations, key=lambda o: o.sort_key, reverse=True)


def oldest_first(observations: list[Observation]) -> list[Observation]:
    return sorted(observations, key=lambda o: o.sort_key)


def normalize_key_part(value: str) -> str:
    return " ".join(value.lower().split())


def compute_record_id(company: str, position: str) -> str:
    """Derive a stable record id from the company/position natural key."""
    source = f"{normalize_key_part(company)}|{normalize_key_part(position)}"
    return hashlib.sha256(source.encode()).hexdigest()[:32]


@dataclass
class ApplicationRecord:
    """The canonical, persisted job application.

    Attributes:
        id: Stable identifier derived from company and position.
        company: Name of the company.
        position: Title of the job role.
        status: Current status of the application.
        applied_date: When the application was submitted (ISO date or raw text).
        created_at: When the record was first produced.
        updated_at: When the record was last merged.
        contact_email: Best human contact address.
        recruiter: Recruiter name.
        interviewer: Interviewer name.
        job_url: Job posting URL.
        salary: Salary text.
        location: Job location or interview meeting location.
        notes: Generated notes summarising the message history.
    """

    id: str
    company: str
    position: str
    status: ApplicationStatus
    applied_date: str
    created_at: datetime
    updated_at: datetime
    contact_email: str | None = None
    recruiter: str | None = None
    interviewer: str | None = None
    job_url: str | None = None
    salary: str | None = None
    location: str | None = None
    notes: str | None = None

    def to_dict(self) -> dict:
        """Serialize the record to a dictionary.

        Returns:
            Dictionary representation of the record.
        """
        return {
            "id": self.id,
            "company": self.company,
            "position": self.position,
            "status": self.status.value,
            "applied_date": self.applied_date,
            "created_at": self.created_at.isoformat(),
            "updated_at": self.updated_at.isoformat(),
            "contact_email": self.contact_email,
            "recruiter": self.recruiter,
            "interviewer": self.interviewer,
            "job_url": self.job_url,
            "salary": self.salary,
            "location": self.location,
            "notes": self.notes,
        }

    @classmethod
    def from_dict(cls, data: dict) -> ApplicationRecord:
        """Deserialize a record from a dictionary.

        Args:
            data: Dictionary containing record data.

        Returns:
            ApplicationRecord instance.
        """

        def parse_datetime(value: str | datetime | None) -> datetime:
            if value is None:
                return datetime.now(UTC)
            if isinstance(value, datetime):
                return value
            return datetime.fromisoformat(value)

        company = data["company"]
        position = data["position"]
        return cls(
            id=data.get("id") or compute_record_id(company, position),
            company=company,
            position=position,
            status=ApplicationStatus(data.get("status", "applied")),
            applied_date=data.get("applied_date", ""),
            created_at=parse_datetime(data.get("created_at")),
            updated_at=parse_datetime(data.get("updated_at")),
            contact_email=data.get("contact_email"),
            recruiter=data.get("recruiter"),
            interviewer=data.get("interviewer"),
            job_url=data.get("job_url"),
            salary=data.get("salary"),
            location=data.get("location"),
            notes=data.get("notes"),
        )

"""Ports for the collaborators the reconciliation engine calls out to."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Protocol, runtime_checkable

if TYPE_CHECKING:
    from apptrail.reconciler.models import ClassificationRequest
    from apptrail.tracker.models import Observation


@runtime_checkable
class MailSource(Protocol):
    """Mail ingestion client: finds earlier messages about an application.

    Implementations return normalized observations; field extraction has
    already happened upstream.
    """

    async def fetch_related_messages(
        self, company: str, position: str, lookback_days: int
    ) -> list[Observation]:
        ...


@runtime_checkable
class TextClassificationService(Protocol):
    """Hosted classifier returning raw text, ideally a JSON status analysis.

    Callers must expect free text, malformed JSON, rate limiting and outages.
    """

    async def classify(self, request: ClassificationRequest) -> str:
        ...


@dataclass
class FetchOutcome:
    """Result of asking the mail source for related messages."""

    observations: list[Observation] = field(default_factory=list)
    error: str | None = None

    @property
    def ok(self) -> bool:
        return self.error is None


__all__ = ["FetchOutcome", "MailSource", "TextClassificationService"]

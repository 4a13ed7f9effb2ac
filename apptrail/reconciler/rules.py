"""Rule tier of the status classifier.

Keyword families are matched as case-insensitive substrings over
``subject + body``. The families are checked in a fixed order (interview,
rejection, offer, withdrawal) and the first family with any hit decides the
status; this is a precedence, not a scored contest, so a message that both
invites to an interview and mentions another candidate is an interview.
"""

from __future__ import annotations

from dataclasses import dataclass

from apptrail.reconciler.models import ClassifierTier, StatusAnalysis
from apptrail.tracker.models import ApplicationStatus


@dataclass(frozen=True)
class KeywordFamily:
    status: ApplicationStatus
    confidence: float
    reasoning: str
    terms: tuple[str, ...]

    def matches(self, text: str) -> list[str]:
        return [term for term in self.terms if term in text]


INTERVIEW = KeywordFamily(
    status=ApplicationStatus.INTERVIEW,
    confidence=0.8,
    reasoning="Message contains interview-related keywords",
    terms=(
        "interview",
        "zoom",
        "teams",
        "meet",
        "schedule",
        "invitation",
        "invite you",
        "would like to",
        "phone call",
        "video call",
        "in person",
        "next step",
        "ראיון",
        "הראיון",
        "צעד הבא",
        "שלב הבא",
        "לזמן",
        "זימון",
    ),
)

REJECTION = KeywordFamily(
    status=ApplicationStatus.REJECTED,
    confidence=0.85,
    reasoning="Message contains rejection language",
    terms=(
        "unfortunately",
        "regret",
        "declined",
        "reject",
        "not selected",
        "not moving forward",
        "decided to go",
        "another candidate",
        "other candidates",
        "thank you for your interest",
        "לצערנו",
        "למרבה הצער",
        "לא נבחרת",
        "לא עברת",
        "החלטנו",
        "מועמד אחר",
    ),
)

OFFER = KeywordFamily(
    status=ApplicationStatus.OFFER,
    confidence=0.9,
    reasoning="Message contains job offer language",
    terms=(
        "offer",
        "congratulations",
        "compensation",
        "salary",
        "start date",
        "welcome aboard",
        "הצעה",
        "ברכות",
        "שמחים להציע",
        "חבילת תגמולים",
        "תאריך התחלה",
    ),
)

WITHDRAWAL = KeywordFamily(
    status=ApplicationStatus.WITHDRAWN,
    confidence=0.75,
    reasoning="Message indicates the application was withdrawn",
    terms=(
        "withdraw",
        "no longer interested",
        "pursuing other",
        "different direction",
        "changed my mind",
        "cancel",
        "retract",
        "לחזור בי",
        "לבטל",
        "לא מעוניין",
    ),
)

# Scan order is the precedence
KEYWORD_FAMILIES: tuple[KeywordFamily, ...] = (INTERVIEW, REJECTION, OFFER, WITHDRAWAL)

DEFAULT_CONFIDENCE = 0.5

APPLICATION_TERMS = (
    "application",
    "applied",
    "applying",
    "מועמדות",
    "הגשת",
)


def scan_keywords(text: str) -> tuple[KeywordFamily, list[str]] | None:
    """Return the first family (in precedence order) with hits in ``text``."""
    lowered = text.lower()
    for family in KEYWORD_FAMILIES:
        hits = family.matches(lowered)
        if hits:
            return family, hits
    return None


def classify_by_rules(subject: str, body: str) -> StatusAnalysis:
    """Classify a message with the keyword families.

    Args:
        subject: Message subject.
        body: Message body.

    Returns:
        The first matching family's status at its fixed confidence, or
        ``applied`` at 0.5 when nothing matches.
    """
    found = scan_keywords(f"{subject} {body}")
    if found is None:
        return StatusAnalysis(
            status=ApplicationStatus.APPLIED,
            confidence=DEFAULT_CONFIDENCE,
            reasoning="Default status based on application context",
            tier=ClassifierTier.RULE,
        )

    family, hits = found
    return StatusAnalysis(
        status=family.status,
        confidence=family.confidence,
        reasoning=family.reasoning,
        matched_terms=hits,
        tier=ClassifierTier.RULE,
    )


def mentions_application(subject: str, body: str) -> bool:
    """True when a message talks about submitting an application."""
    text = f"{subject} {body}".lower()
    return any(term in text for term in APPLICATION_TERMS)

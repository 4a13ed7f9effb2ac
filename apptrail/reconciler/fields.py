"""Field resolution across observations.

Each resolver scans every observation for a single record and returns the
best candidate value with its provenance, or None when no observation offers
one. "Not found" is an ordinary outcome here: callers treat a missing field
as unknown.
"""

from __future__ import annotations

import re
from collections.abc import Callable, Sequence
from datetime import timedelta

from apptrail.reconciler.models import FieldProvenance, StatusHistoryEntry
from apptrail.reconciler.rules import mentions_application
from apptrail.tracker.models import (
    ExtractionMethod,
    Observation,
    newest_first,
    oldest_first,
)

GENERIC_FIELDS = ("company", "position", "salary")

# Contact email confidences
AUTOMATED_ADDRESS_CONFIDENCE = 0.3
EXPLICIT_CONTACT_CONFIDENCE = 0.8
SENDER_CONTACT_CONFIDENCE = 0.6

# Applied date confidences
APPLICATION_MENTION_CONFIDENCE = 0.7
OLDEST_MESSAGE_CONFIDENCE = 0.3

# Location confidences
VIRTUAL_MEETING_CONFIDENCE = 0.9
PLAIN_LOCATION_CONFIDENCE = 0.7
SAME_DAY_WINDOW = timedelta(days=1)

# Person confidences
EXPLICIT_PERSON_CONFIDENCE = 0.9
SIGNALLED_SENDER_CONFIDENCE = 0.8
JOB_SENDER_CONFIDENCE = 0.6

AUTOMATED_MARKERS = ("noreply", "no-reply", "donotreply", "do-not-reply")

_EMAIL = r"[a-zA-Z0-9._%+-]+@[a-zA-Z0-9.-]+\.[a-zA-Z]{2,}"
ANGLE_ADDRESS_PATTERN = re.compile(rf"<({_EMAIL})>")
ADDRESS_PATTERN = re.compile(rf"({_EMAIL})")
DISPLAY_NAME_PATTERN = re.compile(r"^([^<]+)<")

VIRTUAL_MEETING_PATTERN = re.compile(
    r"zoom\.us|zoom|teams\.microsoft|microsoft teams|teams|meet\.google|"
    r"webex|whereby|gotomeeting|https?://",
    re.IGNORECASE,
)

# Display names that belong to systems, shared inboxes or the mail/social
# platform itself rather than a person. Matched as whole words.
SENDER_NAME_DENY_PHRASES = re.compile(
    r"\b(?:talent acquisition|no-reply|do-not-reply|mailer-daemon)\b"
)
SENDER_NAME_DENY_TOKENS = {
    "linkedin",
    "gmail",
    "google",
    "noreply",
    "donotreply",
    "support",
    "team",
    "notification",
    "notifications",
    "careers",
    "jobs",
    "recruiting",
    "hiring",
    "postmaster",
    "workday",
    "greenhouse",
    "lever",
    "hr",
    "info",
    "admin",
    "system",
    "bot",
}

RECRUITER_TERMS = ("recruiter", "recruiting", "talent acquisition", "human resources")
HR_WORD_PATTERN = re.compile(r"\bhr\b")
INTERVIEW_TERMS = ("interview", "ראיון")
JOB_TERMS = ("application", "interview", "position", "opportunity")


def _provenance(
    observation: Observation,
    value: str,
    confidence: float,
    method: ExtractionMethod | None = None,
    from_timestamp: bool = False,
) -> FieldProvenance:
    return FieldProvenance(
        value=value,
        confidence=confidence,
        source_id=observation.source_id,
        source_date=observation.timestamp,
        method=method or observation.extraction_method,
        from_timestamp=from_timestamp,
    )


def _best(candidates: Sequence[FieldProvenance]) -> FieldProvenance | None:
    """Strictly highest confidence wins; ties keep the first candidate."""
    best: FieldProvenance | None = None
    for candidate in candidates:
        if best is None or candidate.confidence > best.confidence:
            best = candidate
    return best


def resolve_field(
    observations: Sequence[Observation], field_name: str
) -> FieldProvenance | None:
    """Pick the value from the most confident observation that carries it.

    Blank values are not candidates. Ties keep the first observation in scan
    order, so the result depends on the order observations are passed in.

    Args:
        observations: Observations for one application.
        field_name: Name of an extracted field on Observation.

    Returns:
        Provenance of the chosen value, or None if no observation has one.
    """
    candidates = []
    for observation in observations:
        value = observation.get_field(field_name)
        if value is not None:
            candidates.append(_provenance(observation, value, observation.confidence))
    return _best(candidates)


def resolve_applied_date(
    observations: Sequence[Observation],
) -> FieldProvenance | None:
    """Determine when the application was submitted.

    Order of preference:
    1. The oldest explicit applied-date field
    2. The date of the oldest message that talks about the application (0.7)
    3. The date of the oldest message (0.3)
    """
    ordered = oldest_first(list(observations))
    if not ordered:
        return None

    for observation in ordered:
        explicit = observation.get_field("applied_date")
        if explicit is not None:
            return _provenance(observation, explicit, observation.confidence)

    for observation in ordered:
        if mentions_application(observation.subject, observation.body):
            return _provenance(
                observation,
                observation.timestamp.date().isoformat(),
                APPLICATION_MENTION_CONFIDENCE,
                ExtractionMethod.RULE_BASED,
                from_timestamp=True,
            )

    oldest = ordered[0]
    return _provenance(
        oldest,
        oldest.timestamp.date().isoformat(),
        OLDEST_MESSAGE_CONFIDENCE,
        ExtractionMethod.RULE_BASED,
        from_timestamp=True,
    )


def extract_email_address(value: str | None) -> str | None:
    """Pull an address out of ``Name <addr>``, a bare address or free text."""
    if not value:
        return None

    match = ANGLE_ADDRESS_PATTERN.search(value)
    if match:
        return match.group(1)

    match = ADDRESS_PATTERN.search(value)
    if match:
        return match.group(1)

    return None


def is_automated_address(address: str) -> bool:
    lowered = address.lower()
    return any(marker in lowered for marker in AUTOMATED_MARKERS)


def resolve_contact_email(
    observations: Sequence[Observation],
) -> FieldProvenance | None:
    """Prefer a human contact over an automated sender.

    Explicit contact fields score 0.8 (0.3 when automated); a human sender
    address is a 0.6 fallback and automated senders are never candidates.
    """
    candidates: list[FieldProvenance] = []

    for observation in observations:
        explicit = extract_email_address(observation.contact_email)
        if explicit:
            confidence = (
                AUTOMATED_ADDRESS_CONFIDENCE
                if is_automated_address(explicit)
                else EXPLICIT_CONTACT_CONFIDENCE
            )
            candidates.append(
                _provenance(observation, explicit, confidence, ExtractionMethod.RULE_BASED)
            )

        sender = extract_email_address(observation.sender)
        if sender and not is_automated_address(sender):
            candidates.append(
                _provenance(
                    observation,
                    sender,
                    SENDER_CONTACT_CONFIDENCE,
                    ExtractionMethod.RULE_BASED,
                )
            )

    return _best(candidates)


def resolve_job_url(observations: Sequence[Observation]) -> FieldProvenance | None:
    """The posting link from the earliest message that has one."""
    for observation in oldest_first(list(observations)):
        url = observation.get_field("job_url")
        if url is not None:
            return _provenance(observation, url, observation.confidence)
    return None


def is_virtual_meeting(location: str) -> bool:
    return VIRTUAL_MEETING_PATTERN.search(location) is not None


def resolve_location(observations: Sequence[Observation]) -> FieldProvenance | None:
    """Choose between meeting links and plain locations.

    The most recent candidate date anchors the choice. Candidates dated
    within one day of it compete on confidence (a meeting link at 0.9 beats
    an address at 0.7); anything older loses to recency.
    """
    candidates: list[FieldProvenance] = []
    for observation in newest_first(list(observations)):
        location = observation.get_field("location")
        if location is None:
            continue
        confidence = (
            VIRTUAL_MEETING_CONFIDENCE
            if is_virtual_meeting(location)
            else PLAIN_LOCATION_CONFIDENCE
        )
        candidates.append(_provenance(observation, location, confidence))

    if not candidates:
        return None

    newest_date = candidates[0].source_date
    recent = [
        candidate
        for candidate in candidates
        if newest_date - candidate.source_date < SAME_DAY_WINDOW
    ]
    return _best(recent)


def extract_sender_name(sender: str | None) -> str | None:
    """Return the display name of ``Name <addr>`` if it looks like a person.

    Automated senders, shared team inboxes and the mail or social platform's
    own brand are rejected even when they carry a display name.
    """
    if not sender:
        return None

    match = DISPLAY_NAME_PATTERN.match(sender)
    if not match:
        return None

    name = match.group(1).strip().strip("\"'").strip()
    if not 2 < len(name) < 100:
        return None
    if "@" in name or not any(ch.isalpha() for ch in name):
        return None

    lowered = name.lower()
    if SENDER_NAME_DENY_PHRASES.search(lowered):
        return None
    tokens = set(re.split(r"[^\w]+", lowered))
    if tokens & SENDER_NAME_DENY_TOKENS:
        return None

    return name


def has_recruiter_signals(observation: Observation) -> bool:
    text = observation.text
    sender = observation.sender.lower()
    return (
        "recruit" in sender
        or any(term in text for term in RECRUITER_TERMS)
        or HR_WORD_PATTERN.search(text) is not None
    )


def has_interview_signals(observation: Observation) -> bool:
    text = observation.text
    return any(term in text for term in INTERVIEW_TERMS)


def is_job_related(observation: Observation) -> bool:
    text = observation.text
    return any(term in text for term in JOB_TERMS)


def _resolve_person(
    observations: Sequence[Observation],
    field_name: str,
    has_signals: Callable[[Observation], bool],
) -> FieldProvenance | None:
    candidates: list[FieldProvenance] = []

    for observation in observations:
        explicit = observation.get_field(field_name)
        if explicit is not None:
            candidates.append(
                _provenance(observation, explicit, EXPLICIT_PERSON_CONFIDENCE)
            )
            continue

        name = extract_sender_name(observation.sender)
        if name is None:
            continue

        if has_signals(observation):
            candidates.append(
                _provenance(
                    observation,
                    name,
                    SIGNALLED_SENDER_CONFIDENCE,
                    ExtractionMethod.RULE_BASED,
                )
            )
        elif is_job_related(observation):
            candidates.append(
                _provenance(
                    observation, name, JOB_SENDER_CONFIDENCE, ExtractionMethod.RULE_BASED
                )
            )

    return _best(candidates)


def resolve_recruiter(observations: Sequence[Observation]) -> FieldProvenance | None:
    """Recruiter name: explicit field, then HR-flavoured senders, then any job sender."""
    return _resolve_person(observations, "recruiter", has_recruiter_signals)


def resolve_interviewer(
    observations: Sequence[Observation],
) -> FieldProvenance | None:
    """Interviewer name: explicit field, then interview senders, then any job sender."""
    return _resolve_person(observations, "interviewer", has_interview_signals)


def resolve_all(observations: Sequence[Observation]) -> dict[str, FieldProvenance]:
    """Resolve every record attribute; absent fields are left out."""
    resolved: dict[str, FieldProvenance | None] = {
        name: resolve_field(observations, name) for name in GENERIC_FIELDS
    }
    resolved["applied_date"] = resolve_applied_date(observations)
    resolved["contact_email"] = resolve_contact_email(observations)
    resolved["job_url"] = resolve_job_url(observations)
    resolved["location"] = resolve_location(observations)
    resolved["recruiter"] = resolve_recruiter(observations)
    resolved["interviewer"] = resolve_interviewer(observations)
    return {name: value for name, value in resolved.items() if value is not None}


def build_notes(
    observations: Sequence[Observation],
    history: Sequence[StatusHistoryEntry],
) -> str:
    """Summarise the status progression and message history as plain text."""
    lines: list[str] = []

    if len(history) > 1:
        lines.append("Status progression:")
        for index, entry in enumerate(history, start=1):
            lines.append(
                f"  {index}. {entry.status.value} "
                f"({entry.date.date().isoformat()}, "
                f"{round(entry.confidence * 100)}% confidence)"
            )
        lines.append("")

    lines.append("Message history:")
    for index, observation in enumerate(oldest_first(list(observations)), start=1):
        subject = observation.subject
        if len(subject) > 50:
            subject = subject[:50] + "..."
        lines.append(
            f'  {index}. {observation.timestamp.date().isoformat()}: "{subject}"'
        )

        key_data = []
        if observation.get_field("salary"):
            key_data.append(f"salary: {observation.get_field('salary')}")
        if observation.get_field("location"):
            key_data.append(f"location: {observation.get_field('location')}")
        if observation.get_field("notes"):
            key_data.append(f"notes: {observation.get_field('notes')}")
        if key_data:
            lines.append(f"     {' | '.join(key_data)}")

    return "\n".join(lines)

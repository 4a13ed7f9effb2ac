"""Prompt builders for AI status classification."""

from __future__ import annotations

import json

from apptrail.reconciler.models import ClassificationRequest, LLMStatusAnalysis

STATUS_SYSTEM_PROMPT = """You classify emails about a single job application.

You must follow these rules:
- Pick exactly one status: applied, interview, offer, rejected, withdrawn.
- Base the decision on what the email says, not on what would be likely.
- Messages may be written in English or Hebrew (or mix both); treat them equally.
- Only fill extracted_details with facts stated in the email.
- Output MUST be valid JSON only (no markdown), matching the required schema.
"""

# Guidance per status, shown to the model verbatim
STATUS_GUIDE = (
    ("applied", "initial application submitted, confirmation, or acknowledgment"),
    ("interview", "interview invitation, scheduling, confirmation, or follow-up"),
    ("offer", "job offer, offer letter, salary negotiation, or acceptance"),
    ("rejected", "application rejection, position filled, or a polite 'no thank you'"),
    ("withdrawn", "candidate withdrawing, or the company withdrawing the position"),
)

MAX_BODY_CHARS = 6000


def build_status_prompt(request: ClassificationRequest) -> str:
    """Build the user prompt for one status classification."""
    hint = request.rule_hint
    current = request.current_status.value if request.current_status else "unknown"
    body = request.body
    if len(body) > MAX_BODY_CHARS:
        body = body[:MAX_BODY_CHARS] + "\n[truncated]"

    schema = json.dumps(LLMStatusAnalysis.model_json_schema(), ensure_ascii=True)

    lines = [
        "Determine the job application status this email describes.",
        "",
        "Email details:",
        f"- Subject: {request.subject}",
        f"- From: {request.sender}",
        f"- Current status: {current}",
        "",
        "Email content:",
        body,
        "",
        f"Keyword hint: {hint.status.value} ({hint.confidence:.2f})",
    ]
    if hint.matched_terms:
        lines.append(f"Keywords found: {', '.join(hint.matched_terms)}")

    lines.extend(["", "Statuses:"])
    for name, meaning in STATUS_GUIDE:
        lines.append(f"- {name}: {meaning}")

    lines.extend(
        [
            "",
            "Also extract, when stated: interview date/time/location/type "
            "(phone, video, in-person, panel), rejection reason, offer details, "
            "salary and next steps.",
            "",
            "Respond with a JSON object matching this schema:",
            schema,
        ]
    )
    return "\n".join(lines)

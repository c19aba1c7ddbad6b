"""
Structured rendering of generated emails.

Bodies are split into literal and personalized segments instead of being
rewritten as HTML, so no sanitizer is needed downstream. render_html() escapes
every segment before wrapping it.
"""

import html
import re
from datetime import datetime, timezone

from outreach_api.schemas.email import Segment, Tone, Variant
from outreach_api.schemas.leads import Lead


def segment_body(body: str, used_tokens: list[str], lead: Lead) -> list[Segment]:
    """
    Tag every occurrence of a used token's lead value in the body.

    A token is a Lead field name (e.g. ``first_name``, ``zip``); tokens with no
    value on the lead are ignored. When two values overlap, the longer wins.
    """
    values: dict[str, str] = {}
    for token in used_tokens:
        value = getattr(lead, token, None)
        if value is None or value == "":
            continue
        values.setdefault(str(value), token)

    if not values:
        return [Segment(kind="literal", text=body)] if body else []

    pattern = re.compile(
        "|".join(re.escape(v) for v in sorted(values, key=len, reverse=True))
    )
    segments: list[Segment] = []
    position = 0
    for match in pattern.finditer(body):
        if match.start() > position:
            segments.append(Segment(kind="literal", text=body[position:match.start()]))
        segments.append(
            Segment(kind="personalized", text=match.group(), token=values[match.group()])
        )
        position = match.end()
    if position < len(body):
        segments.append(Segment(kind="literal", text=body[position:]))
    return segments


def render_html(segments: list[Segment]) -> str:
    parts = []
    for segment in segments:
        text = html.escape(segment.text)
        if segment.kind == "personalized":
            token = html.escape(segment.token or "", quote=True)
            parts.append(f'<strong data-token="{token}">{text}</strong>')
        else:
            parts.append(text)
    return "".join(parts)


def union_used_tokens(variants: list[Variant]) -> list[str]:
    """All tokens used by any variant, in first-seen order."""
    seen: dict[str, None] = {}
    for variant in variants:
        for token in variant.used_tokens:
            seen.setdefault(token, None)
    return list(seen)


def email_text(variant: Variant) -> str:
    """Plain-text form used for copy to clipboard."""
    return f"Subject: {variant.subject}\n\n{variant.body}"


def export_filename(lead: Lead, variant_index: int) -> str:
    return f"email-{lead.first_name}-{lead.last_name}-variant-{variant_index + 1}.json"


def export_payload(
    lead: Lead,
    variant: Variant,
    tone: Tone,
    creativity: float,
    generated_at: datetime | None = None,
) -> dict:
    generated_at = generated_at or datetime.now(timezone.utc)
    return {
        "lead": {
            "name": lead.full_name,
            "email": lead.email,
            "zip": lead.zip,
            "interest": lead.interest,
        },
        "email": {
            "subject": variant.subject,
            "body": variant.body,
            "tone": tone.value,
            "creativity": creativity,
            "personalization_tokens": list(variant.used_tokens),
        },
        "generated_at": generated_at.isoformat(),
    }

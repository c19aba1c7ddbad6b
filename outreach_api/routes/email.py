"""
Single-lead email endpoints.

  GET  /email-preview  →  generate variants for one lead via the AI backend
  POST /send-email     →  forward one chosen variant to the backend's /send
  POST /email-export   →  download one variant as a JSON attachment
"""

import logging

from fastapi import APIRouter, Depends, HTTPException, Query
from fastapi.responses import JSONResponse

from outreach_api.config import settings
from outreach_api.deps import Services, get_services
from outreach_api.schemas.email import (
    EmailExportRequest,
    PreviewResponse,
    RenderedVariant,
    SendEmailRequest,
    SendEmailResponse,
    Tone,
)
from outreach_api.schemas.leads import Lead
from outreach_api.services.backend import build_generation_request
from outreach_api.services.errors import ForwarderError
from outreach_api.services.rendering import (
    email_text,
    export_filename,
    export_payload,
    render_html,
    segment_body,
    union_used_tokens,
)

logger = logging.getLogger(__name__)

router = APIRouter(tags=["email"])

SUBJECT_SUGGESTION_COUNT = 3


# ============================================================
# Helpers
# ============================================================

def _get_lead_or_404(services: Services, lead_id: int) -> Lead:
    lead = services.leads.get(lead_id)
    if lead is None:
        raise HTTPException(status_code=404, detail=f"Lead {lead_id} not found.")
    return lead


def _rationale(lead: Lead, tone: Tone) -> str:
    return (
        f"This message uses {lead.first_name}'s recent search intent and local context "
        "to establish relevance, offers a low-friction CTA (10-min call), "
        f"and matches a {tone.value.lower()} tone."
    )


# ============================================================
# PREVIEW  GET /email-preview
# ============================================================

@router.get("/email-preview", response_model=PreviewResponse)
async def email_preview(
    id: int = Query(1, description="Lead ID"),
    tone: Tone = Query(Tone.FRIENDLY),
    variants: int = Query(3, ge=1, description="Requested variants (capped at 5)"),
    creativity: float = Query(0.6, ge=0, le=1, description="Forwarded as temperature"),
    services: Services = Depends(get_services),
):
    """Generate personalized variants for one lead."""
    lead = _get_lead_or_404(services, id)
    request = build_generation_request(lead, tone, variants, creativity)

    try:
        result = await services.backend.generate(request)
    except ForwarderError as e:
        logger.error("Preview for lead %s failed: %s", lead.id, e)
        raise HTTPException(status_code=502, detail=f"Preview generation failed: {e}") from e

    rendered = []
    for v in result.variants:
        segments = segment_body(v.body, v.used_tokens, lead)
        rendered.append(
            RenderedVariant.model_validate(
                {
                    **v.model_dump(),
                    "segments": segments,
                    "html": render_html(segments),
                    "plain_text": email_text(v),
                }
            )
        )
    services.history.record(lead.id, lead.full_name, tone.value, len(rendered))

    return PreviewResponse(
        variants=rendered,
        rationale=_rationale(lead, tone),
        subject_suggestions=[v.subject for v in rendered[:SUBJECT_SUGGESTION_COUNT]],
        personalization_tokens=union_used_tokens(result.variants),
        model=result.model or settings.default_model,
    )


# ============================================================
# SEND  POST /send-email
# ============================================================

@router.post("/send-email", response_model=SendEmailResponse)
async def send_email(data: SendEmailRequest, services: Services = Depends(get_services)):
    """
    Forward one chosen variant to the backend.

    The lead's status becomes "sent" or "failed" to match the outcome. A 2xx
    from the backend whose payload signals failure is reported as a failure.
    """
    lead = _get_lead_or_404(services, data.lead_id)
    logger.info("Send requested for lead %s, variant %s", lead.id, data.variant_id)

    try:
        payload = await services.backend.send(lead, data.subject, data.body, data.consent_snapshot)
    except ForwarderError as e:
        services.leads.set_status(lead.id, "failed")
        body = SendEmailResponse(ok=False, error="Failed to send email via backend", details=str(e))
        return JSONResponse(status_code=502, content=body.model_dump())

    services.leads.set_status(lead.id, "sent")
    return SendEmailResponse(ok=True, response=payload)


# ============================================================
# EXPORT  POST /email-export
# ============================================================

@router.post("/email-export")
async def email_export(data: EmailExportRequest, services: Services = Depends(get_services)):
    lead = _get_lead_or_404(services, data.lead_id)
    filename = export_filename(lead, data.variant_index)
    return JSONResponse(
        content=export_payload(lead, data.variant, data.tone, data.creativity),
        headers={"Content-Disposition": f'attachment; filename="{filename}"'},
    )

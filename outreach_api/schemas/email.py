"""
Schemas for email generation, preview, and sending.

Backend-facing models mirror the AI backend's /generate and /send contract;
the rest describe what this service returns to its own callers.
"""

from enum import Enum
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field


class Tone(str, Enum):
    FRIENDLY = "Friendly"
    PROFESSIONAL = "Professional"
    EMPATHETIC = "Empathetic"
    URGENT = "Urgent"


class Variant(BaseModel):
    """One AI-generated candidate email. Extra backend fields are kept as-is."""

    model_config = ConfigDict(extra="allow", frozen=True, coerce_numbers_to_str=True)

    id: str
    subject: str
    body: str
    used_tokens: list[str] = Field(default_factory=list)
    confidence: float | None = Field(None, ge=0, le=1)
    tokens_used: int | None = None


# ── Backend contract ─────────────────────────────────────────────────────────

class BackendLead(BaseModel):
    id: str
    first_name: str
    last_name: str
    zip: str | None = None
    insight: str | None = None
    business_specialization: str


class GenerationRequest(BaseModel):
    """Body of POST {backend}/generate."""

    lead: BackendLead
    tone: Tone
    variants: int = Field(..., ge=1, le=5)
    temperature: float = Field(..., ge=0, le=1)


class GenerationResponse(BaseModel):
    variants: list[Variant]
    model: str | None = None


class ConsentSnapshot(BaseModel):
    """Compliance evidence that must accompany every send."""

    source: str
    captured_at: str
    exact_text: str


class BackendSendRequest(BaseModel):
    """Body of POST {backend}/send."""

    recipient_email: str
    subject: str
    body: str
    consent_snapshot: ConsentSnapshot


# ── Service API ──────────────────────────────────────────────────────────────

class Segment(BaseModel):
    """A slice of an email body; personalized slices name the lead token they came from."""

    kind: Literal["literal", "personalized"]
    text: str
    token: str | None = None


class RenderedVariant(Variant):
    segments: list[Segment] = Field(default_factory=list)
    html: str = ""
    plain_text: str = ""


class PreviewResponse(BaseModel):
    """Output of GET /email-preview."""

    variants: list[RenderedVariant]
    rationale: str
    subject_suggestions: list[str]
    personalization_tokens: list[str] = Field(default_factory=list)
    model: str


class SendEmailRequest(BaseModel):
    """Input of POST /send-email."""

    lead_id: int = Field(..., alias="leadId")
    variant_id: str = Field(..., alias="variantId")
    subject: str
    body: str
    consent_snapshot: ConsentSnapshot

    model_config = ConfigDict(populate_by_name=True)


class SendEmailResponse(BaseModel):
    ok: bool
    error: str | None = None
    details: str | None = None
    response: dict[str, Any] | None = None


class EmailExportRequest(BaseModel):
    """Input of POST /email-export."""

    lead_id: int
    variant: Variant
    variant_index: int = Field(0, ge=0)
    tone: Tone = Tone.FRIENDLY
    creativity: float = Field(0.6, ge=0, le=1)

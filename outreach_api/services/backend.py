"""
Client for the external AI backend: POST /generate and POST /send.

Both calls go through the RetryingForwarder. Payload validation and the
send-success check happen here, after the wire call has succeeded.
"""

import logging
from typing import Any

from pydantic import ValidationError

from outreach_api.config import settings
from outreach_api.schemas.email import (
    BackendLead,
    BackendSendRequest,
    ConsentSnapshot,
    GenerationRequest,
    GenerationResponse,
    Tone,
)
from outreach_api.schemas.leads import Lead
from outreach_api.services.errors import BackendError, EmptyResult, LogicalFailure
from outreach_api.services.forwarder import RetryingForwarder

logger = logging.getLogger(__name__)

GENERATE_PATH = "/generate"
SEND_PATH = "/send"


def is_send_success(payload: dict[str, Any]) -> bool:
    """
    Canonical send-success check.

    A 2xx payload is a failure when it carries ``ok`` that is not ``True`` or
    ``status`` that is not ``"success"``. A payload with neither field is a
    success.
    """
    if "ok" in payload and payload["ok"] is not True:
        return False
    if "status" in payload and payload["status"] != "success":
        return False
    return True


def build_generation_request(
    lead: Lead, tone: Tone, variants: int, temperature: float
) -> GenerationRequest:
    return GenerationRequest(
        lead=BackendLead(
            id=str(lead.id),
            first_name=lead.first_name,
            last_name=lead.last_name,
            zip=lead.zip,
            insight=lead.insight or settings.default_insight,
            business_specialization=settings.business_specialization,
        ),
        tone=tone,
        variants=min(variants, settings.max_variants),
        temperature=temperature,
    )


class BackendClient:
    def __init__(self, forwarder: RetryingForwarder):
        self._forwarder = forwarder

    async def generate(self, request: GenerationRequest) -> GenerationResponse:
        """Return the generated variants. Raises EmptyResult when there are none."""
        data = await self._forwarder.post(GENERATE_PATH, request.model_dump(mode="json"))
        try:
            result = GenerationResponse.model_validate(data)
        except ValidationError as e:
            raise BackendError(f"Malformed /generate response: {e}") from e

        if not result.variants:
            raise EmptyResult(f"Backend returned no variants for lead {request.lead.id}")
        return result

    async def send(
        self,
        lead: Lead,
        subject: str,
        body: str,
        consent_snapshot: ConsentSnapshot,
    ) -> dict[str, Any]:
        """Forward a send to the backend. Raises LogicalFailure if the payload signals failure."""
        request = BackendSendRequest(
            recipient_email=lead.email,
            subject=subject,
            body=body,
            consent_snapshot=consent_snapshot,
        )
        logger.info("Forwarding send for lead %s to %s", lead.id, lead.email)
        payload = await self._forwarder.post(SEND_PATH, request.model_dump(mode="json"))

        if not is_send_success(payload):
            error = payload.get("error") or payload.get("status") or "ok=false"
            raise LogicalFailure(f"Backend rejected send for lead {lead.id}: {error}")
        return payload

"""Schemas for POST /batch-send and its progress stream."""

from enum import Enum
from typing import Literal

from pydantic import BaseModel, Field, field_validator

from outreach_api.schemas.email import ConsentSnapshot, Tone


class LeadState(str, Enum):
    """Per-lead state within one batch pass."""

    PENDING = "pending"
    GENERATING = "generating"
    SENDING = "sending"
    SENT = "sent"
    FAILED = "failed"

    @property
    def is_terminal(self) -> bool:
        return self in (LeadState.SENT, LeadState.FAILED)


class BatchSendRequest(BaseModel):
    lead_ids: list[int] = Field(..., min_length=1)
    tone: Tone = Tone.FRIENDLY
    creativity: float = Field(0.6, ge=0, le=1)
    consent_snapshot: ConsentSnapshot

    @field_validator("lead_ids")
    @classmethod
    def _unique_ids(cls, v: list[int]) -> list[int]:
        if len(set(v)) != len(v):
            raise ValueError("lead_ids must not contain duplicates")
        return v


class LeadProgress(BaseModel):
    lead_id: int
    state: LeadState
    error: str | None = None


class BatchTally(BaseModel):
    sent: int
    failed: int
    total: int


class BatchSnapshot(BaseModel):
    """Read-only view of a batch job at one point in time."""

    lead_ids: list[int]
    total: int
    completed: int
    sent: int
    failed: int
    current_lead_id: int | None
    leads: list[LeadProgress]


class BatchEvent(BaseModel):
    """One line of the NDJSON progress stream."""

    event: Literal["progress", "complete", "error"]
    job: BatchSnapshot | None = None
    tally: BatchTally | None = None
    error: str | None = None


class BatchStatusResponse(BaseModel):
    running: bool
    job: BatchSnapshot | None = None
    last_tally: BatchTally | None = None

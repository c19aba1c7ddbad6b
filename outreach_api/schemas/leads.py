"""Lead schema served by GET /leads."""

from typing import Literal

from pydantic import BaseModel

LeadStatus = Literal["pending", "sent", "failed"]


class Lead(BaseModel):
    """A potential customer targeted for outreach."""

    id: int
    first_name: str
    last_name: str
    age: int | None = None
    zip: str | None = None
    interest: str | None = None
    email: str
    insight: str | None = None
    status: LeadStatus | None = None

    @property
    def full_name(self) -> str:
        return f"{self.first_name} {self.last_name}"

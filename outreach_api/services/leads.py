"""
In-memory lead source.

Leads are loaded once per process from a static sample list. Only the status
field changes afterwards, and only through set_status().
"""

from outreach_api.schemas.leads import Lead, LeadStatus

SAMPLE_LEADS: list[dict] = [
    {"id": 1, "first_name": "John", "last_name": "Doe", "age": 35, "zip": "90210", "interest": "Life Insurance", "email": "john@example.com", "insight": "Recently searched for coverage options"},
    {"id": 2, "first_name": "Sarah", "last_name": "Smith", "age": 42, "zip": "10011", "interest": "Retirement Planning", "email": "sarah@example.com", "insight": "Interested in family protection"},
    {"id": 3, "first_name": "Carlos", "last_name": "Diaz", "age": 30, "zip": "33101", "interest": "New parent coverage", "email": "carlos@example.com", "insight": "New parent, looking to secure family"},
    {"id": 4, "first_name": "Aisha", "last_name": "Khan", "age": 29, "zip": "02139", "interest": "Term Life", "email": "aisha@example.com", "insight": "Compared term vs whole life"},
    {"id": 5, "first_name": "Mark", "last_name": "Lee", "age": 50, "zip": "60605", "interest": "Retirement & legacy", "email": "mark@example.com", "insight": "Wants legacy planning"},
]

MAX_LISTED_LEADS = 10


class LeadStore:
    def __init__(self, leads: list[Lead] | None = None):
        if leads is None:
            leads = [Lead.model_validate(row) for row in SAMPLE_LEADS]
        self._leads: dict[int, Lead] = {lead.id: lead for lead in leads}

    def list_leads(self, limit: int = MAX_LISTED_LEADS) -> list[Lead]:
        return list(self._leads.values())[:limit]

    def get(self, lead_id: int) -> Lead | None:
        return self._leads.get(lead_id)

    def set_status(self, lead_id: int, status: LeadStatus) -> None:
        """Record the result of the most recent completed send for this lead."""
        lead = self._leads.get(lead_id)
        if lead is None:
            raise KeyError(lead_id)
        lead.status = status

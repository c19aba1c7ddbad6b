"""Process-wide service objects and the FastAPI dependency that hands them out."""

import asyncio
from collections.abc import Awaitable, Callable
from dataclasses import dataclass

import httpx
from fastapi import Request

from outreach_api.config import settings
from outreach_api.services.analytics import PreviewHistory
from outreach_api.services.backend import BackendClient
from outreach_api.services.batch import BatchRunner, BatchSequencer
from outreach_api.services.forwarder import RetryingForwarder, RetryPolicy
from outreach_api.services.leads import LeadStore


def build_http_client() -> httpx.AsyncClient:
    return httpx.AsyncClient(
        base_url=settings.backend_base_url,
        timeout=settings.request_timeout_seconds,
        headers={"Content-Type": "application/json"},
    )


@dataclass
class Services:
    leads: LeadStore
    backend: BackendClient
    history: PreviewHistory
    batches: BatchRunner

    @classmethod
    def build(
        cls,
        client: httpx.AsyncClient,
        policy: RetryPolicy | None = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
        leads: LeadStore | None = None,
    ) -> "Services":
        forwarder = RetryingForwarder(client, policy or RetryPolicy.from_settings(), sleep=sleep)
        backend = BackendClient(forwarder)
        leads = leads or LeadStore()
        sequencer = BatchSequencer(
            backend,
            leads,
            inter_lead_delay=settings.batch_inter_lead_delay_seconds,
            sleep=sleep,
        )
        return cls(
            leads=leads,
            backend=backend,
            history=PreviewHistory(settings.preview_history_size),
            batches=BatchRunner(sequencer),
        )


def get_services(request: Request) -> Services:
    return request.app.state.services

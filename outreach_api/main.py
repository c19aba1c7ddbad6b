"""
AI Email Outreach — FastAPI Service

Lists sample leads, previews AI-generated email variants, and forwards sends
(single or batched) to the external AI backend with retry safety.
"""

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from outreach_api.config import settings
from outreach_api.deps import Services, build_http_client
from outreach_api.routes import analytics, batch, email, leads


def setup_logging(level: str) -> None:
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Open one HTTP client to the AI backend for the life of the process."""
    setup_logging(settings.log_level)
    async with build_http_client() as client:
        app.state.services = Services.build(client)
        logging.getLogger(__name__).info("Forwarding to AI backend at %s", settings.backend_base_url)
        yield


app = FastAPI(
    title="AI Email Outreach API",
    description="Personalized email previews and sends via an external AI backend, with retry safety.",
    version="1.0.0",
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_allow_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(leads.router)
app.include_router(email.router)
app.include_router(batch.router, prefix="/batch-send")
app.include_router(analytics.router)


@app.get("/health", tags=["health"])
async def health():
    """Health check for load balancers and container orchestration."""
    return {"status": "ok"}

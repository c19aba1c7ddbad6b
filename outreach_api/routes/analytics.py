"""GET /analytics — statistics over recent previews."""

from fastapi import APIRouter, Depends

from outreach_api.deps import Services, get_services
from outreach_api.services.analytics import Analytics, PreviewRecord

router = APIRouter(prefix="/analytics", tags=["analytics"])


@router.get("", response_model=Analytics)
async def get_analytics(services: Services = Depends(get_services)):
    return services.history.summarize()


@router.get("/history", response_model=list[PreviewRecord])
async def get_preview_history(services: Services = Depends(get_services)):
    """Most recent previews, newest first."""
    return services.history.records()

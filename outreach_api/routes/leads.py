"""GET /leads — sample leads with their latest send status."""

from fastapi import APIRouter, Depends

from outreach_api.deps import Services, get_services
from outreach_api.schemas.leads import Lead

router = APIRouter(tags=["leads"])


@router.get("/leads", response_model=list[Lead])
async def list_leads(services: Services = Depends(get_services)):
    return services.leads.list_leads()

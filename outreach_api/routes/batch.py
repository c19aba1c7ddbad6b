"""
/batch-send — generate and send one email per selected lead, serially.

Flow:
  POST /batch-send  →  starts the batch in the background
                    →  streams NDJSON progress events as leads advance
                    →  ends with a "complete" event carrying {sent, failed, total}
  GET  /batch-send  →  read-only snapshot of the running batch
"""

from collections.abc import AsyncIterator

from fastapi import APIRouter, Depends, HTTPException
from fastapi.responses import StreamingResponse

from outreach_api.deps import Services, get_services
from outreach_api.schemas.batch import BatchEvent, BatchSendRequest, BatchStatusResponse
from outreach_api.services.batch import BatchAlreadyRunning

router = APIRouter(tags=["batch"])


async def _ndjson(events: AsyncIterator[BatchEvent]) -> AsyncIterator[str]:
    async for event in events:
        yield event.model_dump_json() + "\n"


@router.post("")
async def batch_send(data: BatchSendRequest, services: Services = Depends(get_services)):
    """
    Start a batch send and stream its progress.

    Only one batch runs at a time; a concurrent request gets a 409. Closing the
    stream early does not stop the batch.
    """
    try:
        events = services.batches.start(data)
    except BatchAlreadyRunning as e:
        raise HTTPException(
            status_code=409,
            detail=str(e),
            headers={"Retry-After": "5"},
        ) from e

    return StreamingResponse(_ndjson(events), media_type="application/x-ndjson")


@router.get("", response_model=BatchStatusResponse)
async def batch_status(services: Services = Depends(get_services)):
    runner = services.batches
    return BatchStatusResponse(
        running=runner.running,
        job=runner.snapshot(),
        last_tally=runner.last_tally,
    )

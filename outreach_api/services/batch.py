"""
Batch sends: generate one variant per lead, then send it, one lead at a time.

Flow per lead:
  pending → generating → sending → sent
                 ↘           ↘
                  failed      failed

A failure on one lead is recorded and the batch moves on; nothing is rolled
back and the batch always runs to the end. Only one batch may run at a time.
"""

import asyncio
import logging
from collections.abc import AsyncIterator, Awaitable, Callable

from outreach_api.schemas.batch import (
    BatchEvent,
    BatchSendRequest,
    BatchSnapshot,
    BatchTally,
    LeadProgress,
    LeadState,
)
from outreach_api.schemas.email import ConsentSnapshot, Tone
from outreach_api.services.backend import BackendClient, build_generation_request
from outreach_api.services.forwarder import Failure, fold
from outreach_api.services.leads import LeadStore

logger = logging.getLogger(__name__)

BATCH_VARIANT_COUNT = 1

_TRANSITIONS: dict[LeadState, frozenset[LeadState]] = {
    LeadState.PENDING: frozenset({LeadState.GENERATING, LeadState.FAILED}),
    LeadState.GENERATING: frozenset({LeadState.SENDING, LeadState.FAILED}),
    LeadState.SENDING: frozenset({LeadState.SENT, LeadState.FAILED}),
    LeadState.SENT: frozenset(),
    LeadState.FAILED: frozenset(),
}


class InvalidTransition(Exception):
    pass


class BatchAlreadyRunning(Exception):
    pass


class BatchJob:
    """Mutable progress of one batch. Observers only ever see snapshot()."""

    def __init__(self, lead_ids: list[int]):
        if not lead_ids:
            raise ValueError("A batch needs at least one lead.")
        if len(set(lead_ids)) != len(lead_ids):
            raise ValueError("A batch cannot visit the same lead twice.")
        self.lead_ids = list(lead_ids)
        self.current_lead_id: int | None = self.lead_ids[0]
        self._states: dict[int, LeadState] = {i: LeadState.PENDING for i in self.lead_ids}
        self._errors: dict[int, str] = {}

    def state(self, lead_id: int) -> LeadState:
        return self._states[lead_id]

    def transition(self, lead_id: int, new_state: LeadState, error: str | None = None) -> None:
        current = self._states[lead_id]
        if new_state not in _TRANSITIONS[current]:
            raise InvalidTransition(f"Lead {lead_id}: {current.value} -> {new_state.value}")
        self._states[lead_id] = new_state
        if error:
            self._errors[lead_id] = error

    def advance(self, lead_id: int) -> None:
        """Move the in-progress marker past lead_id (cleared after the last lead)."""
        index = self.lead_ids.index(lead_id)
        remaining = self.lead_ids[index + 1:]
        self.current_lead_id = remaining[0] if remaining else None

    def _count(self, state: LeadState) -> int:
        return sum(1 for s in self._states.values() if s is state)

    @property
    def total(self) -> int:
        return len(self.lead_ids)

    @property
    def completed(self) -> int:
        return sum(1 for s in self._states.values() if s.is_terminal)

    def tally(self) -> BatchTally:
        return BatchTally(
            sent=self._count(LeadState.SENT),
            failed=self._count(LeadState.FAILED),
            total=self.total,
        )

    def snapshot(self) -> BatchSnapshot:
        tally = self.tally()
        return BatchSnapshot(
            lead_ids=list(self.lead_ids),
            total=tally.total,
            completed=self.completed,
            sent=tally.sent,
            failed=tally.failed,
            current_lead_id=self.current_lead_id,
            leads=[
                LeadProgress(lead_id=i, state=s, error=self._errors.get(i))
                for i, s in self._states.items()
            ],
        )


ProgressCallback = Callable[[BatchSnapshot], None]


class BatchSequencer:
    def __init__(
        self,
        backend: BackendClient,
        leads: LeadStore,
        inter_lead_delay: float = 0.5,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        self._backend = backend
        self._leads = leads
        self._inter_lead_delay = inter_lead_delay
        self._sleep = sleep

    async def run(
        self,
        job: BatchJob,
        tone: Tone,
        creativity: float,
        consent_snapshot: ConsentSnapshot,
        on_progress: ProgressCallback | None = None,
    ) -> BatchTally:
        def notify() -> None:
            if on_progress is not None:
                on_progress(job.snapshot())

        for position, lead_id in enumerate(job.lead_ids):
            await self._process_lead(job, lead_id, tone, creativity, consent_snapshot, notify)
            job.advance(lead_id)
            notify()
            if position < job.total - 1:
                await self._sleep(self._inter_lead_delay)

        tally = job.tally()
        logger.info(
            "Batch finished: %d sent, %d failed, %d total",
            tally.sent,
            tally.failed,
            tally.total,
        )
        return tally

    async def _process_lead(
        self,
        job: BatchJob,
        lead_id: int,
        tone: Tone,
        creativity: float,
        consent_snapshot: ConsentSnapshot,
        notify: Callable[[], None],
    ) -> None:
        lead = self._leads.get(lead_id)
        if lead is None:
            logger.warning("Batch lead %s not found, marking failed", lead_id)
            job.transition(lead_id, LeadState.FAILED, error="Lead not found.")
            return

        job.transition(lead_id, LeadState.GENERATING)
        notify()
        request = build_generation_request(lead, tone, BATCH_VARIANT_COUNT, creativity)
        generated = await fold(self._backend.generate(request))
        if isinstance(generated, Failure):
            self._fail(job, lead_id, "generation", generated)
            return

        variant = generated.response.variants[0]
        job.transition(lead_id, LeadState.SENDING)
        notify()
        sent = await fold(self._backend.send(lead, variant.subject, variant.body, consent_snapshot))
        if isinstance(sent, Failure):
            self._fail(job, lead_id, "send", sent)
            return

        job.transition(lead_id, LeadState.SENT)
        self._leads.set_status(lead_id, "sent")
        logger.info("Batch lead %s: sent variant %s", lead_id, variant.id)

    def _fail(self, job: BatchJob, lead_id: int, step: str, failure: Failure) -> None:
        logger.warning("Batch lead %s: %s failed (%s): %s", lead_id, step, failure.reason, failure.last_error)
        job.transition(lead_id, LeadState.FAILED, error=str(failure.last_error))
        self._leads.set_status(lead_id, "failed")


class BatchRunner:
    """
    Runs at most one batch at a time as a background task.

    The task is independent of whoever started it, so a batch always runs to
    completion even if nobody is reading its progress.
    """

    def __init__(self, sequencer: BatchSequencer):
        self._sequencer = sequencer
        self._job: BatchJob | None = None
        self._task: asyncio.Task | None = None
        self.last_tally: BatchTally | None = None

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    def snapshot(self) -> BatchSnapshot | None:
        return self._job.snapshot() if self._job else None

    def start(self, request: BatchSendRequest) -> AsyncIterator[BatchEvent]:
        """Start a batch and return an iterator over its progress events."""
        if self.running:
            raise BatchAlreadyRunning("A batch send is already in progress.")

        job = BatchJob(request.lead_ids)
        events: asyncio.Queue[BatchEvent | None] = asyncio.Queue()
        self._job = job
        self.last_tally = None
        self._task = asyncio.create_task(self._run(job, request, events))
        logger.info("Batch started for %d leads", job.total)
        return _drain(events)

    async def wait(self) -> BatchTally | None:
        if self._task is not None:
            await self._task
        return self.last_tally

    async def _run(
        self,
        job: BatchJob,
        request: BatchSendRequest,
        events: "asyncio.Queue[BatchEvent | None]",
    ) -> None:
        try:
            tally = await self._sequencer.run(
                job,
                tone=request.tone,
                creativity=request.creativity,
                consent_snapshot=request.consent_snapshot,
                on_progress=lambda snap: events.put_nowait(BatchEvent(event="progress", job=snap)),
            )
            self.last_tally = tally
            events.put_nowait(BatchEvent(event="complete", job=job.snapshot(), tally=tally))
        except Exception as e:
            logger.exception("Batch aborted after %d of %d leads", job.completed, job.total)
            events.put_nowait(BatchEvent(event="error", job=job.snapshot(), error=str(e)))
        finally:
            if self._job is job:
                self._job = None
            events.put_nowait(None)


async def _drain(events: "asyncio.Queue[BatchEvent | None]") -> AsyncIterator[BatchEvent]:
    while True:
        event = await events.get()
        if event is None:
            return
        yield event



import asyncio

import httpx
import pytest

from conftest import CONSENT, StubBackend, make_variant, run
from outreach_api.deps import Services
from outreach_api.schemas.batch import BatchSendRequest, LeadState
from outreach_api.schemas.email import Tone
from outreach_api.services.batch import (
    BatchAlreadyRunning,
    BatchJob,
    BatchSequencer,
    InvalidTransition,
)


def sequencer_for(services, sleep, delay=0.5):
    return BatchSequencer(services.backend, services.leads, inter_lead_delay=delay, sleep=sleep)


def run_batch(services, sleep, lead_ids, consent, snapshots=None):
    job = BatchJob(lead_ids)
    on_progress = snapshots.append if snapshots is not None else None
    tally = run(
        sequencer_for(services, sleep).run(job, Tone.FRIENDLY, 0.6, consent, on_progress=on_progress)
    )
    return job, tally


def fail_generation_for(first_name):
    def generate(payload):
        if payload["lead"]["first_name"] == first_name:
            return httpx.Response(500, text="model overloaded")
        return httpx.Response(200, json={"variants": [make_variant()]})

    return generate


def test_mixed_send_results_are_tallied(services, backend, sleep, consent):
    backend.send = lambda payload: httpx.Response(
        200, json={"ok": payload["recipient_email"] != "sarah@example.com"}
    )

    job, tally = run_batch(services, sleep, [1, 2], consent)

    assert tally.model_dump() == {"sent": 1, "failed": 1, "total": 2}
    assert services.leads.get(1).status == "sent"
    assert services.leads.get(2).status == "failed"
    assert job.state(1) is LeadState.SENT
    assert job.state(2) is LeadState.FAILED


def test_generation_failure_skips_send_and_keeps_order(services, backend, sleep, consent):
    backend.generate = fail_generation_for("Sarah")

    job, tally = run_batch(services, sleep, [1, 2, 3], consent)

    assert tally.model_dump() == {"sent": 2, "failed": 1, "total": 3}
    generated_for = [p["lead"]["id"] for p in backend.calls("/generate")]
    # lead 2 exhausts its three attempts before lead 3 starts
    assert generated_for == ["1", "2", "2", "2", "3"]
    sent_to = [p["recipient_email"] for p in backend.calls("/send")]
    assert sent_to == ["john@example.com", "carlos@example.com"]
    assert [lead.state for lead in job.snapshot().leads] == [
        LeadState.SENT,
        LeadState.FAILED,
        LeadState.SENT,
    ]


def test_every_lead_is_accounted_for(services, backend, sleep, consent):
    backend.send = lambda payload: httpx.Response(
        200, json={"status": "success" if payload["recipient_email"] < "d" else "bounced"}
    )

    _, tally = run_batch(services, sleep, [5, 4, 3, 2, 1], consent)

    assert tally.sent + tally.failed == tally.total == 5


def test_batch_requests_exactly_one_variant(services, backend, sleep, consent):
    run_batch(services, sleep, [1, 2], consent)

    assert {p["variants"] for p in backend.calls("/generate")} == {1}


def test_empty_generation_is_a_failure(services, backend, sleep, consent):
    backend.generate = lambda payload: httpx.Response(200, json={"variants": []})

    job, tally = run_batch(services, sleep, [1], consent)

    assert tally.failed == 1
    assert backend.calls("/send") == []
    assert "no variants" in job.snapshot().leads[0].error


def test_unknown_lead_is_failed_without_backend_calls(services, backend, sleep, consent):
    _, tally = run_batch(services, sleep, [99, 1], consent)

    assert tally.model_dump() == {"sent": 1, "failed": 1, "total": 2}
    assert len(backend.calls("/generate")) == 1


def test_waits_between_leads_only(services, sleep, consent):
    run_batch(services, sleep, [1, 2, 3], consent)

    assert sleep.delays == [0.5, 0.5]


def test_progress_is_reported_incrementally(services, sleep, consent):
    snapshots = []

    run_batch(services, sleep, [1, 2], consent, snapshots=snapshots)

    states = [(s.leads[0].state, s.leads[1].state, s.current_lead_id) for s in snapshots]
    assert states == [
        (LeadState.GENERATING, LeadState.PENDING, 1),
        (LeadState.SENDING, LeadState.PENDING, 1),
        (LeadState.SENT, LeadState.PENDING, 2),
        (LeadState.SENT, LeadState.GENERATING, 2),
        (LeadState.SENT, LeadState.SENDING, 2),
        (LeadState.SENT, LeadState.SENT, None),
    ]
    assert [s.completed for s in snapshots] == [0, 0, 1, 1, 1, 2]


def test_state_machine_rejects_skipping_steps():
    job = BatchJob([1])

    with pytest.raises(InvalidTransition):
        job.transition(1, LeadState.SENT)

    job.transition(1, LeadState.GENERATING)
    job.transition(1, LeadState.FAILED, error="boom")
    with pytest.raises(InvalidTransition):
        job.transition(1, LeadState.SENDING)


def test_job_requires_unique_non_empty_leads():
    with pytest.raises(ValueError):
        BatchJob([])
    with pytest.raises(ValueError):
        BatchJob([1, 1])


def test_runner_rejects_a_second_batch_while_running():
    backend = StubBackend()
    request = BatchSendRequest(lead_ids=[1, 2], tone=Tone.EMPATHETIC, consent_snapshot=CONSENT)

    async def scenario():
        gate = asyncio.Event()

        async def gated_sleep(delay):
            await gate.wait()

        services = Services.build(backend.client(), sleep=gated_sleep)
        events = services.batches.start(request)

        with pytest.raises(BatchAlreadyRunning):
            services.batches.start(request)
        assert services.batches.running

        gate.set()
        collected = [event async for event in events]
        await services.batches.wait()
        return services, collected

    services, events = run(scenario())

    assert events[-1].event == "complete"
    assert events[-1].tally.model_dump() == {"sent": 2, "failed": 0, "total": 2}
    assert not services.batches.running
    assert services.batches.snapshot() is None
    assert services.batches.last_tally == events[-1].tally


def test_batch_keeps_running_when_nobody_reads_progress():
    backend = StubBackend()
    request = BatchSendRequest(lead_ids=[3, 4], consent_snapshot=CONSENT)

    async def scenario():
        async def no_sleep(delay):
            return None

        services = Services.build(backend.client(), sleep=no_sleep)
        services.batches.start(request)
        return await services.batches.wait(), services

    tally, services = run(scenario())

    assert tally.model_dump() == {"sent": 2, "failed": 0, "total": 2}
    assert services.leads.get(3).status == "sent"
    assert services.leads.get(4).status == "sent"


def broken_generate(payload):
    raise RuntimeError("handler bug")


def test_unexpected_errors_are_not_recorded_as_lead_failures(services, backend, sleep, consent):
    backend.generate = broken_generate
    job = BatchJob([1, 2])

    with pytest.raises(RuntimeError, match="handler bug"):
        run(sequencer_for(services, sleep).run(job, Tone.FRIENDLY, 0.6, consent))

    assert job.state(1) is LeadState.GENERATING
    assert job.state(2) is LeadState.PENDING
    assert services.leads.get(1).status is None
    assert len(backend.calls("/generate")) == 1


def test_runner_ends_stream_with_error_event_when_batch_crashes():
    backend = StubBackend()
    backend.generate = broken_generate
    request = BatchSendRequest(lead_ids=[1, 2], consent_snapshot=CONSENT)

    async def scenario():
        async def no_sleep(delay):
            return None

        services = Services.build(backend.client(), sleep=no_sleep)
        events = services.batches.start(request)
        collected = [event async for event in events]
        return await services.batches.wait(), services, collected

    tally, services, events = run(scenario())

    assert tally is None
    assert events[-1].event == "error"
    assert events[-1].error == "handler bug"
    assert events[-1].job.completed == 0
    assert not services.batches.running
    assert services.batches.snapshot() is None
    assert services.batches.last_tally is None

"""Tests for claiming, execution and outcome recording."""

import asyncio

from helpers import ago, insert_job, wait_for_status

from solid_queue.jobs.schemas import JobCreate
from solid_queue.jobs.service import SolidQueue


async def test_failing_handler_with_single_attempt_fails(queue):
    """A job with max_attempts=1 whose handler errors fails after one claim."""

    async def always_fails(ctx):
        raise ValueError("boom")

    queue.register_handler("always_fails", always_fails)
    job_id = await queue.enqueue(JobCreate(handler="always_fails", max_attempts=1))

    assert await queue.dispatcher.run_once() is True

    job = await queue.get_job(job_id)
    assert job.status == "failed"
    assert job.attempts == 1
    assert job.error == "boom"
    assert job.lease_expires_at is None


async def test_failing_handler_with_attempts_left_goes_to_retrying(queue):
    async def fails(ctx):
        raise ValueError("try again")

    queue.register_handler("fails", fails)
    job_id = await queue.enqueue(JobCreate(handler="fails", max_attempts=3))

    await queue.dispatcher.run_once()

    job = await queue.get_job(job_id)
    assert job.status == "retrying"
    assert job.attempts == 1
    assert job.error == "try again"
    # Retries only happen through the recovery poller
    assert await queue.dispatcher.run_once() is False


async def test_retries_until_success(queue):
    """Errors twice then succeeds: retrying, requeued, retrying, requeued, completed."""
    seen_attempts = []

    async def flaky(ctx):
        seen_attempts.append(ctx.attempt)
        if ctx.attempt < 3:
            raise RuntimeError(f"attempt {ctx.attempt} failed")

    queue.register_handler("flaky", flaky)
    job_id = await queue.enqueue(JobCreate(handler="flaky", max_attempts=3))

    await queue.start()
    job = await wait_for_status(queue, job_id, "completed", "failed")

    assert job.status == "completed"
    assert job.attempts == 3
    assert seen_attempts == [1, 2, 3]
    assert job.completed_at is not None


async def test_exhausted_retries_end_failed(queue):
    async def always_fails(ctx):
        raise RuntimeError("still broken")

    queue.register_handler("always_fails", always_fails)
    job_id = await queue.enqueue(JobCreate(handler="always_fails", max_attempts=2))

    await queue.start()
    job = await wait_for_status(queue, job_id, "failed")

    assert job.attempts == 2
    assert job.error == "still broken"


async def test_unregistered_handler_fails_job(queue):
    job_id = await queue.enqueue(JobCreate(handler="ghost", max_attempts=1))

    await queue.dispatcher.run_once()

    job = await queue.get_job(job_id)
    assert job.status == "failed"
    assert "not found" in job.error


async def test_pool_size_bounds_concurrency(test_settings):
    """Five slow jobs on a two-worker pool never run more than two at once."""
    queue = SolidQueue(test_settings, workers=2)
    await queue.migrate()
    in_flight = 0
    peak = 0

    async def slow(ctx):
        nonlocal in_flight, peak
        in_flight += 1
        peak = max(peak, in_flight)
        try:
            await asyncio.sleep(0.2)
        finally:
            in_flight -= 1

    queue.register_handler("slow", slow)
    job_ids = [await queue.enqueue(JobCreate(handler="slow")) for _ in range(5)]

    await queue.start()
    try:
        for job_id in job_ids:
            await wait_for_status(queue, job_id, "completed")
    finally:
        await queue.stop()

    assert peak <= 2


async def test_handler_crash_does_not_kill_worker(queue):
    """Unexpected exceptions fail the job; the worker keeps processing."""

    def crashes(ctx):
        return 1 / 0

    async def fine(ctx):
        return None

    queue.register_handler("crashes", crashes)
    queue.register_handler("fine", fine)
    bad = await queue.enqueue(JobCreate(handler="crashes", max_attempts=1))
    good = await queue.enqueue(JobCreate(handler="fine"))

    await queue.start()
    failed = await wait_for_status(queue, bad, "failed")
    completed = await wait_for_status(queue, good, "completed")

    assert "division by zero" in failed.error
    assert completed.attempts == 1
    assert queue.dispatcher.running


async def test_exception_without_message_records_class_name(queue):
    class Empty(Exception):
        pass

    async def raises_empty(ctx):
        raise Empty()

    queue.register_handler("empty", raises_empty)
    job_id = await queue.enqueue(JobCreate(handler="empty", max_attempts=1))

    await queue.dispatcher.run_once()

    assert (await queue.get_job(job_id)).error == "Empty"


async def test_sync_handler_receives_decoded_payload(queue):
    received = []

    def record(ctx):
        received.append((ctx.id, ctx.queue, ctx.payload))

    queue.register_handler("record", record)
    job_id = await queue.enqueue(
        JobCreate(handler="record", queue="mail", payload={"to": "a@example.com", "n": [1, 2]})
    )

    await queue.dispatcher.run_once()

    assert received == [(job_id, "mail", {"to": "a@example.com", "n": [1, 2]})]
    assert (await queue.get_job(job_id)).status == "completed"


async def test_undecodable_payload_fails_job(queue):
    queue.register_handler("noop", lambda ctx: None)
    job_id = await insert_job(queue, payload="{not json", max_attempts=1)

    await queue.dispatcher.run_once()

    job = await queue.get_job(job_id)
    assert job.status == "failed"
    assert job.error.startswith("failed to unmarshal payload:")


async def test_expired_lease_is_reclaimed(queue):
    """A running job orphaned by a dead worker is claimed again."""
    attempts = []
    queue.register_handler("noop", lambda ctx: attempts.append(ctx.attempt))
    job_id = await insert_job(
        queue,
        status="running",
        attempts=1,
        max_attempts=3,
        scheduled_at=ago(minutes=10),
        started_at=ago(minutes=10),
        lease_expires_at=ago(seconds=1),
    )

    assert await queue.dispatcher.run_once() is True

    job = await queue.get_job(job_id)
    assert job.status == "completed"
    assert job.attempts == 2
    assert attempts == [2]


async def test_live_lease_is_not_reclaimed(queue):
    queue.register_handler("noop", lambda ctx: None)
    await insert_job(queue, status="running", attempts=1, lease_expires_at=None)

    assert await queue.dispatcher.run_once() is False


async def test_claim_sets_lease(queue):
    queue.register_handler("noop", lambda ctx: None)
    job_id = await queue.enqueue(JobCreate(handler="noop"))

    claimed = await queue.dispatcher.claim_next()

    assert claimed.id == job_id
    assert claimed.attempts == 1
    assert job_id in queue.dispatcher.processing
    job = await queue.get_job(job_id)
    assert job.status == "running"
    assert job.started_at is not None
    assert job.lease_expires_at > job.started_at

    # Not eligible again while the lease holds
    assert await queue.dispatcher.claim_next() is None

    await queue.dispatcher.process(claimed)
    assert job_id not in queue.dispatcher.processing


async def test_outcome_not_recorded_after_forced_retry(queue):
    """A worker whose job was reset underneath it does not overwrite the reset."""
    queue.register_handler("noop", lambda ctx: None)
    job_id = await queue.enqueue(JobCreate(handler="noop"))

    claimed = await queue.dispatcher.claim_next()
    await queue.retry(job_id)
    await queue.dispatcher.process(claimed)

    job = await queue.get_job(job_id)
    assert job.status == "pending"
    assert job.attempts == 0


async def test_two_dispatchers_share_a_store(test_settings):
    """Jobs are executed once each when two processes race on one store."""
    first = SolidQueue(test_settings, workers=3)
    second = SolidQueue(test_settings, workers=3)
    await first.migrate()
    executions = []

    async def record(ctx):
        executions.append(ctx.id)
        await asyncio.sleep(0.01)

    first.register_handler("record", record)
    second.register_handler("record", record)
    job_ids = [await first.enqueue(JobCreate(handler="record")) for _ in range(20)]

    await first.start()
    await second.start()
    try:
        for job_id in job_ids:
            await wait_for_status(first, job_id, "completed", timeout=10.0)
    finally:
        await first.stop()
        await second.stop()

    assert sorted(executions) == sorted(job_ids)


async def test_stop_waits_for_in_flight_jobs(test_settings):
    queue = SolidQueue(test_settings)
    await queue.migrate()
    started = asyncio.Event()

    async def slow(ctx):
        started.set()
        await asyncio.sleep(0.2)

    queue.register_handler("slow", slow)
    job_id = await queue.enqueue(JobCreate(handler="slow"))

    await queue.start()
    await asyncio.wait_for(started.wait(), timeout=5.0)
    await queue.stop()

    assert not queue.running
    assert (await queue.get_job(job_id)).status == "completed"
    await queue.database.close()


async def test_heartbeat_keeps_lease_alive(test_settings):
    """A job outliving its initial lease is not reclaimed while its worker is alive."""
    settings = test_settings.model_copy(update={"job_lease_s": 0.3, "job_heartbeat_s": 0.05})
    queue = SolidQueue(settings, workers=2)
    await queue.migrate()
    calls = []

    async def slow(ctx):
        calls.append(ctx.attempt)
        await asyncio.sleep(0.8)

    queue.register_handler("slow", slow)
    job_id = await queue.enqueue(JobCreate(handler="slow"))

    await queue.start()
    try:
        job = await wait_for_status(queue, job_id, "completed")
    finally:
        await queue.stop()

    assert calls == [1]
    assert job.attempts == 1


async def test_stale_outcome_does_not_overwrite_new_claim(test_settings):
    """After a forced retry and a fresh claim elsewhere, the old worker's result is dropped."""
    first = SolidQueue(test_settings)
    second = SolidQueue(test_settings)
    await first.migrate()
    for queue in (first, second):
        queue.register_handler("noop", lambda ctx: None)

    try:
        job_id = await first.enqueue(JobCreate(handler="noop"))
        stale = await first.dispatcher.claim_next()
        await first.retry(job_id)
        current = await second.dispatcher.claim_next()

        assert current.id == stale.id == job_id
        assert current.attempts == stale.attempts == 1

        await first.dispatcher.process(stale)

        job = await second.get_job(job_id)
        assert job.status == "running"
        assert job.completed_at is None

        await second.dispatcher.process(current)
        assert (await second.get_job(job_id)).status == "completed"
    finally:
        await first.stop()
        await second.stop()


async def test_claim_skips_jobs_already_held(queue):
    """A held job at the head of the queue does not block newer due jobs."""
    queue.register_handler("noop", lambda ctx: None)
    held_id = await queue.enqueue(JobCreate(handler="noop"))
    held = await queue.dispatcher.claim_next()
    # Reset while still held here, so it is pending and oldest again
    await queue.retry(held_id)
    next_id = await queue.enqueue(JobCreate(handler="noop"))

    claimed = await queue.dispatcher.claim_next()

    assert held.id == held_id
    assert claimed.id == next_id
    assert queue.dispatcher.processing == {held_id, next_id}

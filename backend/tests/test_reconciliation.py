"""
Tests for delayed reconciliation: timeouts, duplicate delivery, retries,
and the worker loop.
"""

import asyncio
from datetime import datetime, timedelta, timezone

import pytest

from ticketing.core.exceptions import NotFoundError, TransientStoreError
from ticketing.domain.state_machine import BookingStatus, EventStatus, PaymentStatus
from ticketing.models.booking import Booking
from ticketing.models.event import Event
from ticketing.models.payment import Payment
from ticketing.services.interfaces.delayed_queue import ReconciliationJob
from ticketing.services.reconciliation_service import ReconcileResult
from ticketing.workers.reconciliation_worker import ReconciliationWorker

from conftest import RECONCILIATION_DELAY


def _job(booking_id: int = 999, payment_id: int = 999) -> ReconciliationJob:
    return ReconciliationJob(
        booking_id=booking_id,
        event_id=1,
        quantity=1,
        payment_id=payment_id,
        fire_at=datetime.now(timezone.utc),
    )


class FlakyService:
    """Reconciliation service whose store is down."""

    def __init__(self):
        self.calls = 0

    async def reconcile(self, job):
        self.calls += 1
        raise TransientStoreError("store unavailable")


@pytest.mark.asyncio
async def test_timeout_expires_unpaid_booking(reserve, make_event, worker, clock, fetch, available):
    """5 tickets, reserve 2 -> 3 left, no payment, window elapses -> 5 left."""
    event = await make_event(total_tickets=5)
    result = await reserve(event.id, quantity=2)
    assert await available(event.id) == 3

    assert await worker.run_once() == 0

    clock.advance(RECONCILIATION_DELAY)
    assert await worker.run_once() == 1

    assert (await fetch(Booking, result.booking.id)).status == BookingStatus.FAILED
    assert (await fetch(Payment, result.payment.id)).payment_status == PaymentStatus.FAILED
    assert await available(event.id) == 5


@pytest.mark.asyncio
async def test_late_payment_after_expiry(reserve, make_event, worker, clock, gateway, payment_service, available):
    """A payment that lands after expiry does not resurrect the booking."""
    event = await make_event(total_tickets=5)
    result = await reserve(event.id, quantity=2)
    clock.advance(RECONCILIATION_DELAY)
    await worker.run_once()

    order_id = result.order.order_id
    ack = await payment_service.verify_payment(order_id, "pay_late", gateway.sign_payment(order_id, "pay_late"))

    assert not ack.applied
    assert ack.payment_status == PaymentStatus.FAILED
    assert await available(event.id) == 5


@pytest.mark.asyncio
async def test_paid_booking_is_left_alone(reserve, test_event, worker, clock, gateway, payment_service, fetch,
                                          available, queue):
    """The job still fires after payment, and does nothing."""
    result = await reserve(test_event.id, quantity=2)
    order_id = result.order.order_id
    await payment_service.verify_payment(order_id, "pay_1", gateway.sign_payment(order_id, "pay_1"))

    clock.advance(RECONCILIATION_DELAY)
    assert await worker.run_once() == 1

    assert (await fetch(Booking, result.booking.id)).status == BookingStatus.CONFIRMED
    assert await available(test_event.id) == 98
    stats = await queue.stats()
    assert stats["delayed"] == 0
    assert stats["inflight"] == 0


@pytest.mark.asyncio
async def test_duplicate_delivery_restores_once(reserve, make_event, reconciliation_service, available):
    event = await make_event(total_tickets=5)
    result = await reserve(event.id, quantity=2)
    job = ReconciliationJob(
        booking_id=result.booking.id,
        event_id=event.id,
        quantity=2,
        payment_id=result.payment.id,
        fire_at=datetime.now(timezone.utc),
    )

    first = await reconciliation_service.reconcile(job)
    second = await reconciliation_service.reconcile(job)

    assert first is ReconcileResult.EXPIRED
    assert second is ReconcileResult.ALREADY_FINALIZED
    assert await available(event.id) == 5


async def _retrying(operation, attempts: int = 5):
    # Concurrent SQLite writers may refuse a stale snapshot; the worker retries those
    for attempt in range(attempts):
        try:
            return await operation()
        except TransientStoreError:
            if attempt == attempts - 1:
                raise
            await asyncio.sleep(0.01)


@pytest.mark.asyncio
@pytest.mark.parametrize("round_", range(5))
async def test_failed_payment_races_expiry(reserve, make_event, updater, reconciliation_service, fetch, available,
                                           round_):
    """A failed payment and an expiry landing together restore the tickets once."""
    event = await make_event(total_tickets=5)
    result = await reserve(event.id, quantity=2)
    assert await available(event.id) == 3
    job = ReconciliationJob(
        booking_id=result.booking.id,
        event_id=event.id,
        quantity=2,
        payment_id=result.payment.id,
        fire_at=datetime.now(timezone.utc),
    )

    ack, outcome = await asyncio.gather(
        _retrying(lambda: updater.apply_outcome(result.order.order_id, PaymentStatus.FAILED)),
        _retrying(lambda: reconciliation_service.reconcile(job)),
    )

    assert ack.payment_status == PaymentStatus.FAILED
    assert [ack.applied, outcome is ReconcileResult.EXPIRED].count(True) == 1
    assert (await fetch(Booking, result.booking.id)).status == BookingStatus.FAILED
    assert (await fetch(Payment, result.payment.id)).payment_status == PaymentStatus.FAILED
    assert await available(event.id) == 5


@pytest.mark.asyncio
async def test_duplicate_jobs_through_worker(reserve, make_event, queue, worker, clock, available):
    """The same job enqueued twice is harmless."""
    event = await make_event(total_tickets=5)
    result = await reserve(event.id, quantity=2)
    clock.advance(RECONCILIATION_DELAY)
    job = (await queue.claim_due())[0].job
    await queue.enqueue(job, 0)
    await queue.enqueue(job, 0)

    # The first claim is still inflight; let it time out for a third delivery
    clock.advance(61)
    assert await worker.run_once() == 3
    assert await available(event.id) == 5
    assert result.booking.id == job.booking_id


@pytest.mark.asyncio
async def test_cancelled_booking_not_restored_twice(reserve, test_event, coordinator, worker, clock, available):
    result = await reserve(test_event.id, quantity=4)
    await coordinator.cancel_booking(result.booking.id, result.booking.user_id)
    assert await available(test_event.id) == 100

    clock.advance(RECONCILIATION_DELAY)
    await worker.run_once()
    assert await available(test_event.id) == 100


@pytest.mark.asyncio
async def test_missing_booking_is_dead_lettered(queue, worker):
    """A job for a booking that does not exist will never succeed."""
    await queue.enqueue(_job(), 0)

    assert await worker.run_once() == 1

    assert len(queue.dead) == 1
    assert queue.dead[0]["attempts"] == 1
    assert (await queue.stats())["delayed"] == 0


@pytest.mark.asyncio
async def test_reconcile_missing_payment(reserve, test_event, reconciliation_service):
    result = await reserve(test_event.id)
    with pytest.raises(NotFoundError):
        await reconciliation_service.reconcile(_job(booking_id=result.booking.id, payment_id=424242))


@pytest.mark.asyncio
async def test_transient_failures_retry_then_dead_letter(queue, clock):
    """Backoff grows with attempts; the job is parked after max attempts."""
    service = FlakyService()
    worker = ReconciliationWorker(queue, service, batch_size=10)
    await queue.enqueue(_job(), 0)

    assert await worker.run_once() == 1
    assert queue.dead == []

    clock.advance(4)
    assert await worker.run_once() == 0
    clock.advance(1)
    assert await worker.run_once() == 1

    clock.advance(10)
    assert await worker.run_once() == 1

    assert service.calls == 3
    assert len(queue.dead) == 1
    assert queue.dead[0]["error"] == "store unavailable"
    clock.advance(3600)
    assert await worker.run_once() == 0


@pytest.mark.asyncio
async def test_visibility_timeout_redelivers(queue, clock):
    """A claimed job that is never acked comes back."""
    handle = await queue.enqueue(_job(), 0)

    first = await queue.claim_due()
    assert [c.job_id for c in first] == [handle.job_id]
    assert await queue.claim_due() == []

    clock.advance(61)
    second = await queue.claim_due()
    assert [c.job_id for c in second] == [handle.job_id]
    assert second[0].attempts == 2


@pytest.mark.asyncio
async def test_sweep_skips_recent_and_settled(reserve, test_event, gateway, payment_service, reconciliation_service,
                                              fetch, available):
    paid = await reserve(test_event.id, quantity=1)
    unpaid = await reserve(test_event.id, quantity=2)
    order_id = paid.order.order_id
    await payment_service.verify_payment(order_id, "pay_1", gateway.sign_payment(order_id, "pay_1"))

    later = datetime.now(timezone.utc) + timedelta(seconds=RECONCILIATION_DELAY + 121)
    assert await reconciliation_service.sweep_unmonitored(now=later) == 1

    assert (await fetch(Booking, paid.booking.id)).status == BookingStatus.CONFIRMED
    assert (await fetch(Booking, unpaid.booking.id)).status == BookingStatus.FAILED
    assert await available(test_event.id) == 99


@pytest.mark.asyncio
async def test_maintenance_closes_started_events(make_event, worker, fetch):
    started = await make_event(starts_in=timedelta(minutes=-5))

    await worker.run_maintenance()

    assert (await fetch(Event, started.id)).status == EventStatus.INACTIVE


@pytest.mark.asyncio
async def test_worker_loop_processes_due_jobs(reserve, make_event, worker, clock, fetch):
    """The background loop picks up due jobs and stops cleanly."""
    event = await make_event(total_tickets=5)
    result = await reserve(event.id, quantity=2)
    clock.advance(RECONCILIATION_DELAY)

    await worker.start()
    assert worker.running
    try:
        for _ in range(200):
            if (await fetch(Booking, result.booking.id)).status != BookingStatus.PENDING:
                break
            await asyncio.sleep(0.01)
    finally:
        await worker.stop()

    assert not worker.running
    assert (await fetch(Booking, result.booking.id)).status == BookingStatus.FAILED

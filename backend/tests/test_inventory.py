"""
Tests for the conditional inventory decrement, including concurrent access.
"""

import asyncio
import random
from datetime import datetime, timedelta, timezone

import pytest

from ticketing.domain.state_machine import EventStatus
from ticketing.models.event import Event
from ticketing.services import inventory_service
from ticketing.services.inventory_service import ReserveOutcome


async def _reserve(session_factory, event_id, quantity):
    async with session_factory() as db:
        async with db.begin():
            return await inventory_service.reserve(db, event_id, quantity)


async def _restore(session_factory, event_id, quantity):
    async with session_factory() as db:
        async with db.begin():
            await inventory_service.restore(db, event_id, quantity)


@pytest.mark.asyncio
async def test_reserve_decrements(session_factory, test_event, available):
    """A successful reservation takes exactly the requested tickets."""
    outcome = await _reserve(session_factory, test_event.id, 3)
    assert outcome is ReserveOutcome.RESERVED
    assert await available(test_event.id) == 97


@pytest.mark.asyncio
async def test_reserve_bumps_version(session_factory, test_event, fetch):
    await _reserve(session_factory, test_event.id, 1)
    assert (await fetch(Event, test_event.id)).version == 2


@pytest.mark.asyncio
async def test_reserve_insufficient_leaves_inventory(session_factory, make_event, available):
    """Asking for more than is left changes nothing."""
    event = await make_event(total_tickets=5, available_tickets=2)
    outcome = await _reserve(session_factory, event.id, 3)
    assert outcome is ReserveOutcome.INSUFFICIENT_INVENTORY
    assert await available(event.id) == 2


@pytest.mark.asyncio
async def test_reserve_exact_remaining(session_factory, make_event, available):
    event = await make_event(total_tickets=5, available_tickets=2)
    assert await _reserve(session_factory, event.id, 2) is ReserveOutcome.RESERVED
    assert await available(event.id) == 0


@pytest.mark.asyncio
async def test_reserve_missing_event(session_factory):
    assert await _reserve(session_factory, 12345, 1) is ReserveOutcome.EVENT_NOT_FOUND


@pytest.mark.asyncio
async def test_reserve_inactive_event(session_factory, make_event, available):
    """Inactive events refuse reservations even with tickets left."""
    event = await make_event(status=EventStatus.INACTIVE)
    assert await _reserve(session_factory, event.id, 1) is ReserveOutcome.EVENT_INACTIVE
    assert await available(event.id) == 100


@pytest.mark.asyncio
async def test_restore_adds_back(session_factory, test_event, available):
    await _reserve(session_factory, test_event.id, 4)
    await _restore(session_factory, test_event.id, 4)
    assert await available(test_event.id) == 100


@pytest.mark.asyncio
async def test_get_available_tickets(session_factory, test_event):
    async with session_factory() as db:
        assert await inventory_service.get_available_tickets(db, test_event.id) == 100
        assert await inventory_service.get_available_tickets(db, 12345) is None


@pytest.mark.asyncio
async def test_deactivate_started_events(session_factory, make_event, fetch):
    """Only active events whose start date has passed are closed."""
    started = await make_event(starts_in=timedelta(hours=-1))
    upcoming = await make_event(starts_in=timedelta(days=1))

    async with session_factory() as db:
        async with db.begin():
            count = await inventory_service.deactivate_started_events(db, datetime.now(timezone.utc))

    assert count == 1
    assert (await fetch(Event, started.id)).status == EventStatus.INACTIVE
    assert (await fetch(Event, upcoming.id)).status == EventStatus.ACTIVE


@pytest.mark.asyncio
async def test_concurrent_last_ticket(session_factory, make_event, available):
    """Two reservations racing for the last ticket: exactly one wins."""
    event = await make_event(total_tickets=10, available_tickets=1)

    outcomes = await asyncio.gather(
        _reserve(session_factory, event.id, 1),
        _reserve(session_factory, event.id, 1),
    )

    assert sorted(outcomes) == sorted([ReserveOutcome.RESERVED, ReserveOutcome.INSUFFICIENT_INVENTORY])
    assert await available(event.id) == 0


@pytest.mark.asyncio
async def test_concurrent_reserve_restore_never_oversells(session_factory, make_event, available):
    """
    Random interleaving of reservations and releases: the counter never
    goes negative and ends at total minus the tickets still held.
    """
    total = 20
    event = await make_event(total_tickets=total)
    rng = random.Random(1234)
    plan = [(rng.randint(1, 4), rng.random() < 0.4) for _ in range(40)]

    async def attempt(quantity, release):
        if await _reserve(session_factory, event.id, quantity) is not ReserveOutcome.RESERVED:
            return 0
        if release:
            await _restore(session_factory, event.id, quantity)
            return 0
        return quantity

    held = await asyncio.gather(*(attempt(q, release) for q, release in plan))

    assert sum(held) <= total
    assert await available(event.id) == total - sum(held)
    assert await available(event.id) >= 0

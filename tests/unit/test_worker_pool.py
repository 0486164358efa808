"""Tests for the per-organization worker pool."""

import asyncio

import pytest

from autoflow.domain.exceptions import DispatchCapacityException
from autoflow.infrastructure.services.worker_pool import OrganizationWorkerPool


async def test_concurrency_is_bounded_per_organization() -> None:
    pool = OrganizationWorkerPool(2)
    active = 0
    peak = 0

    async def job() -> None:
        nonlocal active, peak
        active += 1
        peak = max(peak, active)
        await asyncio.sleep(0.01)
        active -= 1

    for _ in range(6):
        pool.submit("org-a", job)
    await pool.drain()

    assert peak == 2
    assert pool.pending_tasks == 0
    assert pool.running("org-a") == 0
    assert pool.queued("org-a") == 0


async def test_organizations_do_not_share_slots() -> None:
    pool = OrganizationWorkerPool(1)
    release = asyncio.Event()

    async def blocked() -> str:
        await release.wait()
        return "a"

    async def quick() -> str:
        return "b"

    busy = pool.submit("org-a", blocked)
    other = pool.submit("org-b", quick)
    assert await asyncio.wait_for(other, timeout=1) == "b"
    assert not busy.done()

    release.set()
    assert await busy == "a"


async def test_queue_cap_raises_capacity_exception() -> None:
    pool = OrganizationWorkerPool(1, max_queued_per_organization=2)
    release = asyncio.Event()

    async def job() -> None:
        await release.wait()

    # One job takes the slot, two wait.
    for _ in range(3):
        pool.submit("org-a", job)
    assert pool.queued("org-a") == 2
    with pytest.raises(DispatchCapacityException) as exc_info:
        pool.submit("org-a", job)
    assert exc_info.value.details == {"organization_id": "org-a", "limit": 2}

    await asyncio.sleep(0)
    assert pool.running("org-a") == 1
    with pytest.raises(DispatchCapacityException):
        pool.submit("org-a", job)
    # Other tenants are unaffected.
    pool.submit("org-b", job)

    release.set()
    await pool.drain()


async def test_free_slots_do_not_count_against_queue_cap() -> None:
    pool = OrganizationWorkerPool(4, max_queued_per_organization=1)
    release = asyncio.Event()

    async def job() -> None:
        await release.wait()

    for _ in range(5):
        pool.submit("org-a", job)
    assert pool.queued("org-a") == 1
    with pytest.raises(DispatchCapacityException):
        pool.submit("org-a", job)

    release.set()
    await pool.drain()
    assert pool.queued("org-a") == 0


async def test_closed_pool_rejects_jobs() -> None:
    pool = OrganizationWorkerPool(1)
    await pool.close()
    assert pool.closed

    async def job() -> None:
        return None

    with pytest.raises(RuntimeError):
        pool.submit("org-a", job)


async def test_close_with_cancel_stops_running_jobs() -> None:
    pool = OrganizationWorkerPool(1)

    async def forever() -> None:
        await asyncio.sleep(10)

    task = pool.submit("org-a", forever)
    await asyncio.sleep(0)
    await pool.close(cancel=True)
    assert task.cancelled()


def test_rejects_non_positive_concurrency() -> None:
    with pytest.raises(ValueError):
        OrganizationWorkerPool(0)

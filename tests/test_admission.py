"""Tests for the admission controller."""

import asyncio

import pytest

from scanwarden.admission import AdmissionController
from scanwarden.errors import AdmissionRejectedError, RejectReason
from scanwarden.targets import validate_target

T1 = validate_target("a.example.com")
T2 = validate_target("b.example.com")
T3 = validate_target("c.example.com")


async def _settle() -> None:
    for _ in range(5):
        await asyncio.sleep(0)


@pytest.mark.asyncio
async def test_third_target_waits_for_free_slot():
    admission = AdmissionController(max_concurrent=2)
    first = await admission.acquire(T1)
    await admission.acquire(T2)

    waiter = asyncio.create_task(admission.acquire(T3))
    await _settle()
    assert not waiter.done()
    assert admission.stats()["queued"] == 1
    assert admission.stats()["running"] == 2

    await admission.release(first)
    token = await asyncio.wait_for(waiter, timeout=1)
    assert token.target == "c.example.com"
    assert admission.stats() == {
        "running": 2,
        "queued": 0,
        "targets": 2,
        "max_concurrent": 2,
        "max_queue_depth": 16,
    }


@pytest.mark.asyncio
async def test_duplicate_target_rejected():
    admission = AdmissionController(max_concurrent=4)
    await admission.acquire(T1)

    with pytest.raises(AdmissionRejectedError) as exc_info:
        await admission.acquire(validate_target("A.Example.com."))
    assert exc_info.value.reason is RejectReason.DUPLICATE_TARGET
    assert exc_info.value.status_code == 409
    assert admission.stats()["running"] == 1


@pytest.mark.asyncio
async def test_duplicate_of_queued_target_rejected():
    admission = AdmissionController(max_concurrent=1)
    await admission.acquire(T1)

    queued = asyncio.create_task(admission.acquire(T2))
    await _settle()
    assert admission.stats()["queued"] == 1

    with pytest.raises(AdmissionRejectedError) as exc_info:
        await admission.acquire(T2)
    assert exc_info.value.reason is RejectReason.DUPLICATE_TARGET
    assert admission.stats()["queued"] == 1

    queued.cancel()
    with pytest.raises(asyncio.CancelledError):
        await queued
    assert admission.stats()["queued"] == 0


@pytest.mark.asyncio
async def test_duplicate_target_queues_under_queue_policy():
    admission = AdmissionController(max_concurrent=4, duplicate_policy="queue")
    first = await admission.acquire(T1)

    waiter = asyncio.create_task(admission.acquire(T1))
    await _settle()
    assert not waiter.done()

    await admission.release(first)
    await asyncio.wait_for(waiter, timeout=1)
    assert admission.stats()["running"] == 1


@pytest.mark.asyncio
async def test_full_queue_is_overloaded():
    admission = AdmissionController(max_concurrent=1, max_queue_depth=0)
    await admission.acquire(T1)

    with pytest.raises(AdmissionRejectedError) as exc_info:
        await admission.acquire(T2)
    assert exc_info.value.reason is RejectReason.OVERLOADED
    assert exc_info.value.status_code == 429


@pytest.mark.asyncio
async def test_cancelled_waiter_leaves_queue():
    admission = AdmissionController(max_concurrent=1, max_queue_depth=4)
    token = await admission.acquire(T1)

    waiter = asyncio.create_task(admission.acquire(T2))
    await _settle()
    assert admission.stats()["queued"] == 1

    waiter.cancel()
    with pytest.raises(asyncio.CancelledError):
        await waiter
    assert admission.stats()["queued"] == 0
    assert admission.stats()["running"] == 1

    await admission.release(token)
    await asyncio.wait_for(admission.acquire(T2), timeout=1)


@pytest.mark.asyncio
async def test_release_is_idempotent():
    admission = AdmissionController(max_concurrent=1)
    token = await admission.acquire(T1)
    await admission.release(token)
    await admission.release(token)
    assert admission.stats()["running"] == 0
    assert admission.stats()["targets"] == 0

    # A double release must not hand out a second slot.
    await admission.acquire(T2)
    admission.max_queue_depth = 0
    with pytest.raises(AdmissionRejectedError):
        await admission.acquire(T3)


@pytest.mark.asyncio
async def test_slot_released_when_body_raises():
    admission = AdmissionController(max_concurrent=1)

    with pytest.raises(RuntimeError):
        async with admission.slot(T1):
            assert admission.stats()["running"] == 1
            raise RuntimeError("scan blew up")

    assert admission.stats()["running"] == 0
    async with admission.slot(T1) as token:
        assert token.released is False
    assert token.released is True


@pytest.mark.parametrize(
    "kwargs",
    [{"max_concurrent": 0}, {"per_target_limit": 0}, {"duplicate_policy": "drop"}],
)
def test_invalid_limits_rejected(kwargs):
    with pytest.raises(ValueError):
        AdmissionController(**kwargs)

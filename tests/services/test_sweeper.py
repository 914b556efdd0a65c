"""Tests for the guard sweep and its background worker."""

import asyncio

import pytest

from redeem_guard.services.rate_limiter import POLICY_DEVICE, POLICY_IP
from redeem_guard.services.sweeper import CacheSweepWorker


def test_guard_sweep_expires_counters_and_records(guard, fake_clock) -> None:
    guard.limiter.check(POLICY_IP, "192.0.2.1")
    guard.limiter.check(POLICY_DEVICE, "192.0.2.1-fp")
    guard.record_failure("192.0.2.1")

    fake_clock.advance(301)

    # ip counter (60s) and suspicious record (300s) expire; device counter (600s) stays
    assert guard.sweep() == 2
    assert guard.limiter.counter(POLICY_DEVICE).get("192.0.2.1-fp") is not None
    assert guard.aggregator.get("192.0.2.1") is None


def test_guard_sweep_keeps_live_state(guard, fake_clock) -> None:
    guard.limiter.check(POLICY_IP, "192.0.2.2")
    fake_clock.advance(30)
    assert guard.sweep() == 0


@pytest.mark.asyncio
async def test_worker_sweeps_periodically(guard, mocker) -> None:
    spy = mocker.spy(guard, "sweep")
    worker = CacheSweepWorker(guard, interval_seconds=0.01)

    await worker.start()
    assert worker.running
    await asyncio.sleep(0.1)
    await worker.stop()

    assert not worker.running
    assert worker.sweeps >= 1
    assert spy.call_count == worker.sweeps


@pytest.mark.asyncio
async def test_worker_stop_is_prompt(guard) -> None:
    worker = CacheSweepWorker(guard, interval_seconds=3600)
    await worker.start()
    await asyncio.wait_for(worker.stop(), timeout=1)
    assert worker.sweeps == 0


@pytest.mark.asyncio
async def test_stop_without_start_is_noop(guard) -> None:
    worker = CacheSweepWorker(guard)
    await worker.stop()
    assert not worker.running

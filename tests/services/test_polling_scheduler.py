import asyncio

import pytest

from application.services.polling_scheduler import PollingScheduler


@pytest.mark.asyncio
async def test_checks_run_at_fixed_interval(fake_clock):
    scheduler = PollingScheduler(3.0, fake_clock)
    results = []
    calls = {"n": 0}

    async def check():
        calls["n"] += 1
        return calls["n"]

    scheduler.start("ord_1", check, results.append)
    await fake_clock.advance(2)
    assert results == []

    await fake_clock.advance(1)
    assert results == [1]

    await fake_clock.advance(6)
    assert results == [1, 2, 3]
    await scheduler.aclose()


@pytest.mark.asyncio
async def test_slow_check_skips_overlapping_ticks(fake_clock):
    scheduler = PollingScheduler(3.0, fake_clock)
    release = asyncio.Event()
    calls = {"n": 0, "active": 0, "max_active": 0}
    results = []

    async def check():
        calls["n"] += 1
        calls["active"] += 1
        calls["max_active"] = max(calls["max_active"], calls["active"])
        await release.wait()
        calls["active"] -= 1
        return "done"

    scheduler.start("ord_1", check, results.append)
    await fake_clock.advance(12)

    assert calls["n"] == 1
    assert calls["max_active"] == 1

    release.set()
    await fake_clock.advance(0)
    assert results == ["done"]
    await scheduler.aclose()


@pytest.mark.asyncio
async def test_stop_drops_inflight_result(fake_clock, settle):
    scheduler = PollingScheduler(3.0, fake_clock)
    release = asyncio.Event()
    results = []

    async def check():
        await release.wait()
        return "late"

    scheduler.start("ord_1", check, results.append)
    await fake_clock.advance(3)
    await scheduler.stop("ord_1")
    release.set()
    await settle()

    assert results == []
    assert not scheduler.is_running("ord_1")


@pytest.mark.asyncio
async def test_failing_check_keeps_polling(fake_clock):
    scheduler = PollingScheduler(3.0, fake_clock)
    calls = {"n": 0}
    results = []

    async def check():
        calls["n"] += 1
        if calls["n"] == 1:
            raise RuntimeError("boom")
        return "ok"

    scheduler.start("ord_1", check, results.append)
    await fake_clock.advance(6)

    assert calls["n"] == 2
    assert results == ["ok"]
    await scheduler.aclose()


@pytest.mark.asyncio
async def test_one_poller_per_order(fake_clock):
    scheduler = PollingScheduler(3.0, fake_clock)

    async def check():
        return None

    scheduler.start("ord_1", check, lambda _: None)
    with pytest.raises(RuntimeError):
        scheduler.start("ord_1", check, lambda _: None)
    scheduler.start("ord_2", check, lambda _: None)
    assert scheduler.is_running("ord_2")

    await scheduler.aclose()
    assert not scheduler.is_running("ord_1")
    assert scheduler.cancel("ord_1") == []


def test_interval_must_be_positive():
    with pytest.raises(ValueError):
        PollingScheduler(0)

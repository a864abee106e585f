import asyncio
from unittest.mock import AsyncMock

import pytest

from profile_analysis.bulk.batching import Batcher, ConcurrencyController, run_in_windows


def test_batcher_splits_in_order():
    windows = Batcher(8).split([str(i) for i in range(19)])
    assert [len(w) for w in windows] == [8, 8, 3]
    assert [x for w in windows for x in w] == [str(i) for i in range(19)]


def test_batcher_rejects_zero_size():
    with pytest.raises(ValueError):
        Batcher(0)


def test_window_concurrency_is_bounded():
    in_flight = 0
    peak = 0

    async def job():
        nonlocal in_flight, peak
        in_flight += 1
        peak = max(peak, in_flight)
        await asyncio.sleep(0.01)
        in_flight -= 1
        return True

    controller = ConcurrencyController(limit=3, delay=0)
    results = asyncio.run(controller.run_window([job] * 10))
    assert len(results) == 10
    assert peak == 3


def test_pauses_between_windows_but_not_after_last():
    sleep = AsyncMock(return_value=None)
    controller = ConcurrencyController(limit=2, delay=1.5, sleep=sleep)

    async def worker(ident):
        return ident.upper()

    results = asyncio.run(run_in_windows(["a", "b", "c", "d", "e"], Batcher(2), controller, worker))

    assert sorted(results) == ["A", "B", "C", "D", "E"]
    assert sleep.await_count == 2
    sleep.assert_awaited_with(1.5)


def test_single_window_never_pauses():
    sleep = AsyncMock(return_value=None)
    controller = ConcurrencyController(limit=8, delay=1.0, sleep=sleep)

    async def worker(ident):
        return ident

    asyncio.run(run_in_windows(["a", "b"], Batcher(8), controller, worker))
    sleep.assert_not_awaited()


def test_windows_never_overlap():
    events = []
    controller = ConcurrencyController(limit=2, delay=0)

    async def worker(ident):
        events.append(("start", ident))
        await asyncio.sleep(0)
        events.append(("end", ident))
        return ident

    asyncio.run(run_in_windows(["a", "b", "c"], Batcher(2), controller, worker))
    assert events.index(("start", "c")) > events.index(("end", "a"))
    assert events.index(("start", "c")) > events.index(("end", "b"))


def test_window_callback_receives_each_window():
    seen = []
    controller = ConcurrencyController(limit=2, delay=0)

    async def worker(ident):
        return ident

    asyncio.run(run_in_windows(
        ["a", "b", "c"], Batcher(2), controller, worker,
        on_window_complete=lambda i, total, results: seen.append((i, total, sorted(results))),
    ))
    assert seen == [(0, 2, ["a", "b"]), (1, 2, ["c"])]

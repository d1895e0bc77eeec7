"""Worker pool scheduling, retrieval order and shutdown tests."""

import asyncio
import threading
import time

import numpy as np
import pytest

from mandelpool import WorkerPool, WorkState
from mandelpool.errors import CancellationTimeout, InvalidConfiguration, WorkerFailure
from mandelpool.escape import UnitCancelled
from mandelpool.models import Ordering, RowUnit, WorkResult


def row_result(unit):
    return WorkResult(unit=unit, pixels=np.array([unit.row], dtype=np.uint32))


def make_pool(num_workers=2, delays=None, **kwargs):
    """Pool whose handler echoes the row, sleeping per-row delays first."""
    delays = delays or {}
    pool = WorkerPool(num_workers, **kwargs)

    @pool.task
    def handler(unit, cancel):
        time.sleep(delays.get(unit.row, 0))
        return row_result(unit)

    return pool


class TestPoolLifecycle:
    """Start/stop lifecycle."""

    def test_needs_positive_workers(self):
        with pytest.raises(InvalidConfiguration):
            WorkerPool(0)

    async def test_start_requires_handler(self):
        pool = WorkerPool(2)
        with pytest.raises(RuntimeError):
            pool.start()

    async def test_submit_before_start_raises(self):
        pool = make_pool()
        with pytest.raises(RuntimeError):
            await pool.submit(RowUnit(0))

    async def test_double_start_is_safe(self):
        pool = make_pool()
        pool.start()
        pool.start()  # Should be no-op
        assert pool.running is True
        await pool.stop()

    async def test_double_stop_is_safe(self):
        pool = make_pool()
        pool.start()
        await pool.stop()
        assert await pool.stop() == []

    async def test_submit_after_stop_raises(self):
        pool = make_pool()
        pool.start()
        await pool.stop()
        with pytest.raises(RuntimeError):
            await pool.submit(RowUnit(0))

    async def test_restart_forgets_previous_run(self):
        pool = make_pool()
        pool.start()
        await pool.submit_all(RowUnit(r) for r in range(3))
        await pool.stop()

        pool.start()
        work_id = await pool.submit(RowUnit(7))
        rows = [r.unit.row async for r in pool.results_in_order()]
        completed = [r.unit.row async for r in pool.as_completed()]
        await pool.stop()

        assert rows == [7]
        assert completed == [7]
        assert [s.id for s in await pool.list()] == [work_id]

    async def test_stop_waits_for_active_work(self):
        pool = make_pool(delays={0: 0.1})
        pool.start()
        work_id = await pool.submit(RowUnit(0))

        await pool.stop()

        sub = await pool.get(work_id)
        assert sub.state == WorkState.COMPLETED
        assert sub.result.unit == RowUnit(0)


class TestExecution:
    """Every unit runs exactly once on at most N threads."""

    async def test_every_unit_runs_once(self):
        calls = []
        lock = threading.Lock()
        pool = WorkerPool(4)

        @pool.task
        def handler(unit, cancel):
            with lock:
                calls.append(unit.row)
            return row_result(unit)

        async with pool:
            await pool.submit_all(RowUnit(r) for r in range(20))
            rows = [r.unit.row async for r in pool.results_in_order()]

        assert rows == list(range(20))
        assert sorted(calls) == list(range(20))

    async def test_bounded_thread_count(self):
        names = set()
        pool = WorkerPool(3)

        @pool.task
        def handler(unit, cancel):
            names.add(threading.current_thread().name)
            time.sleep(0.005)
            return row_result(unit)

        async with pool:
            await pool.submit_all(RowUnit(r) for r in range(30))
            async for _ in pool.as_completed():
                pass

        assert 1 <= len(names) <= 3
        assert all(name.startswith("mandelpool-worker") for name in names)

    async def test_oversubscribed_pool_completes(self):
        pool = make_pool(num_workers=32)
        async with pool:
            await pool.submit_all(RowUnit(r) for r in range(5))
            rows = sorted([r.unit.row async for r in pool.as_completed()])
        assert rows == [0, 1, 2, 3, 4]

    async def test_submission_records(self):
        pool = make_pool()
        async with pool:
            ids = await pool.submit_all(RowUnit(r) for r in range(3))
            async for _ in pool.results_in_order():
                pass

        subs = await pool.list()
        assert [s.id for s in subs] == ids
        for sub in subs:
            assert sub.state == WorkState.COMPLETED
            assert sub.started_at is not None
            assert sub.completed_at >= sub.started_at
            assert sub.worker is not None
        assert await pool.list(state=WorkState.FAILED) == []


class TestRetrievalOrder:
    """Submission-order vs completion-order retrieval."""

    async def test_submission_order_blocks_on_slow_unit(self):
        pool = make_pool(num_workers=2, delays={0: 0.2})

        async with pool:
            ids = await pool.submit_all([RowUnit(0), RowUnit(1)])
            stream = pool.results_in_order()

            first = await stream.__anext__()
            # Row 1 finished long ago but was held back behind row 0
            assert first.unit == RowUnit(0)
            assert (await pool.get(ids[1])).state == WorkState.COMPLETED

            second = await stream.__anext__()
            assert second.unit == RowUnit(1)

    async def test_completion_order_does_not_wait_for_slow_unit(self):
        pool = make_pool(num_workers=2, delays={0: 0.2})

        async with pool:
            ids = await pool.submit_all([RowUnit(0), RowUnit(1)])
            order = []
            async for result in pool.as_completed():
                if not order:
                    assert (await pool.get(ids[0])).state == WorkState.RUNNING
                order.append(result.unit.row)

        assert order == [1, 0]

    async def test_stream_selects_ordering(self):
        pool = make_pool(num_workers=2, delays={0: 0.2})
        async with pool:
            await pool.submit_all([RowUnit(0), RowUnit(1)])
            order = [r.unit.row async for r in pool.stream(Ordering.COMPLETION)]
        assert order == [1, 0]

    async def test_result_by_id(self):
        pool = make_pool()
        async with pool:
            ids = await pool.submit_all(RowUnit(r) for r in range(3))
            result = await pool.result(ids[2])
            assert result.unit == RowUnit(2)
            async for _ in pool.as_completed():
                pass


class TestFailures:
    """Handler errors surface where the unit's result is retrieved."""

    async def test_failure_is_wrapped_with_unit(self):
        pool = WorkerPool(2)

        @pool.task
        def handler(unit, cancel):
            if unit.row == 2:
                raise ValueError("bad row")
            return row_result(unit)

        with pytest.raises(WorkerFailure) as exc_info:
            async with pool:
                await pool.submit_all(RowUnit(r) for r in range(4))
                async for _ in pool.results_in_order():
                    pass

        assert exc_info.value.unit == RowUnit(2)
        assert isinstance(exc_info.value.__cause__, ValueError)
        assert pool.running is False

    async def test_on_failure_callback(self):
        failures = []
        pool = WorkerPool(1)

        @pool.task
        def handler(unit, cancel):
            raise RuntimeError("boom")

        @pool.on_failure
        def on_failure(sub, error):
            failures.append((sub.unit, str(error)))

        with pytest.raises(WorkerFailure):
            async with pool:
                await pool.submit(RowUnit(0))
                async for _ in pool.as_completed():
                    pass

        assert failures == [(RowUnit(0), "boom")]

    async def test_failure_drops_queued_units(self):
        pool = WorkerPool(1)

        @pool.task
        def handler(unit, cancel):
            if unit.row == 0:
                raise ValueError("first unit fails")
            time.sleep(0.05)
            return row_result(unit)

        with pytest.raises(WorkerFailure):
            async with pool:
                await pool.submit_all(RowUnit(r) for r in range(10))
                async for _ in pool.results_in_order():
                    pass

        cancelled = await pool.list(state=WorkState.CANCELLED)
        assert len(cancelled) >= 7
        assert len(await pool.list(state=WorkState.FAILED)) == 1

    async def test_callback_errors_do_not_affect_results(self):
        pool = make_pool()

        @pool.on_complete
        def on_complete(sub, duration):
            raise RuntimeError("callback bug")

        async with pool:
            await pool.submit_all(RowUnit(r) for r in range(3))
            rows = [r.unit.row async for r in pool.results_in_order()]

        assert rows == [0, 1, 2]


class TestShutdown:
    """Grace period then forced cancellation."""

    async def test_timeout_cancels_in_flight_unit(self):
        interrupted = threading.Event()
        pool = WorkerPool(1, shutdown_timeout=0.05)

        @pool.task
        def handler(unit, cancel):
            if cancel.wait(timeout=5):
                interrupted.set()
                raise UnitCancelled(f"{unit} interrupted")
            return row_result(unit)

        with pytest.raises(CancellationTimeout) as exc_info:
            async with pool:
                await pool.submit(RowUnit(0))

        assert [s.unit for s in exc_info.value.cancelled] == [RowUnit(0)]
        assert interrupted.wait(timeout=1)

    async def test_stop_joins_interrupted_handlers(self):
        exited = threading.Event()
        pool = WorkerPool(1)

        @pool.task
        def handler(unit, cancel):
            while not cancel.is_set():
                time.sleep(0.005)
            time.sleep(0.02)  # cleanup after noticing the signal
            exited.set()
            raise UnitCancelled(f"{unit} interrupted")

        pool.start()
        await pool.submit(RowUnit(0))
        await asyncio.sleep(0.01)

        await pool.stop(timeout=0.2)

        # No waiting here: stop() already joined the worker
        assert exited.is_set()

    async def test_uncooperative_unit_stays_cancelled(self, caplog):
        pool = make_pool(num_workers=1, delays={0: 0.3})
        pool.start()
        work_id = await pool.submit(RowUnit(0))
        await asyncio.sleep(0.02)

        cancelled = await pool.stop(timeout=0.05)

        assert [s.id for s in cancelled] == [work_id]
        assert "ignored cancellation" in caplog.text
        await asyncio.sleep(0.4)
        assert (await pool.get(work_id)).state == WorkState.CANCELLED

    async def test_timeout_drops_queued_units(self):
        pool = make_pool(num_workers=1, delays={0: 0.2})
        pool.start()
        ids = await pool.submit_all(RowUnit(r) for r in range(5))

        cancelled = await pool.stop(timeout=0.05)

        assert {s.id for s in cancelled} == set(ids)

    async def test_clean_exit_after_retrieval_cancels_nothing(self):
        pool = make_pool(shutdown_timeout=0.01)
        async with pool:
            await pool.submit_all(RowUnit(r) for r in range(4))
            async for _ in pool.as_completed():
                pass
        assert await pool.list(state=WorkState.CANCELLED) == []

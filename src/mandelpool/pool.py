"""Bounded worker pool that computes work units on OS threads."""

from __future__ import annotations

import asyncio
import logging
import threading
import time
import uuid
from concurrent import futures
from concurrent.futures import ThreadPoolExecutor
from functools import partial
from typing import Any, AsyncIterator, Callable, Iterable

from mandelpool.errors import CancellationTimeout, InvalidConfiguration, WorkerFailure
from mandelpool.escape import UnitCancelled
from mandelpool.models import Ordering, Submission, WorkResult, WorkState, WorkUnit

logger = logging.getLogger(__name__)

Handler = Callable[[WorkUnit, threading.Event], WorkResult]

_TERMINAL = (WorkState.COMPLETED, WorkState.FAILED, WorkState.CANCELLED)


class WorkerPool:
    """
    Fixed set of worker threads fed from one shared queue.

    The pool decides WHERE and WHEN a unit runs; the handler decides WHAT it
    computes. Results are pulled back either in submission order or in
    completion order.

    Example:
        pool = WorkerPool(4)

        @pool.task
        def compute(unit, cancel):
            return compute_unit(unit, viewport, max_iterations, cancel)

        async with pool:
            for unit in units:
                await pool.submit(unit)
            async for result in pool.as_completed():
                buffer.write(result)
    """

    def __init__(
        self,
        num_workers: int,
        handler: Handler | None = None,
        *,
        shutdown_timeout: float | None = 60.0,
    ) -> None:
        if num_workers <= 0:
            raise InvalidConfiguration(f"num_workers must be positive, got {num_workers}")

        self.num_workers = num_workers
        self.shutdown_timeout = shutdown_timeout
        self._handler: Handler | None = handler

        # Callbacks
        self._on_start_callback: Callable | None = None
        self._on_complete_callback: Callable | None = None
        self._on_failure_callback: Callable | None = None

        # Submission bookkeeping; _order is submission order
        self._submissions: dict[str, Submission] = {}
        self._order: list[str] = []
        self._futures: dict[str, asyncio.Future] = {}
        self._thread_futures: dict[str, futures.Future] = {}

        # State transitions happen on worker threads and on the loop
        self._lock = threading.Lock()
        self._cancel = threading.Event()
        self._dropping = False

        self._running = False
        self._executor: ThreadPoolExecutor | None = None
        self._loop: asyncio.AbstractEventLoop | None = None

    # --- Registration ---

    def task(self, func: Handler) -> Handler:
        """
        Decorator to register the unit handler.

        The handler is called on a worker thread with ``(unit, cancel)`` and
        must return a WorkResult. Long handlers should check ``cancel`` and
        raise UnitCancelled once it is set.
        """
        self._handler = func
        return func

    def on_start(self, func):
        """
        Decorator to register start callback.

        Called on the worker thread with (submission) before the handler runs.
        """
        self._on_start_callback = func
        return func

    def on_complete(self, func):
        """
        Decorator to register completion callback.

        Called on the worker thread with (submission, duration).
        """
        self._on_complete_callback = func
        return func

    def on_failure(self, func):
        """
        Decorator to register failure callback.

        Called on the worker thread with (submission, error).
        """
        self._on_failure_callback = func
        return func

    # --- Lifecycle ---

    @property
    def running(self) -> bool:
        return self._running

    def start(self) -> None:
        """
        Start the worker threads' executor.

        Must be called from inside a running event loop. Calling it twice is
        a no-op.
        """
        if self._running:
            return
        if self._handler is None:
            raise RuntimeError("No handler registered; use @pool.task or pass handler=")

        # A restarted pool only reports the work submitted since this start
        self._submissions.clear()
        self._order.clear()
        self._futures.clear()
        self._thread_futures.clear()

        self._loop = asyncio.get_running_loop()
        self._executor = ThreadPoolExecutor(
            max_workers=self.num_workers,
            thread_name_prefix="mandelpool-worker",
        )
        self._cancel.clear()
        self._dropping = False
        self._running = True
        logger.debug("Worker pool started with %d thread(s)", self.num_workers)

    async def stop(self, timeout: float | None = None, *, drop_pending: bool = False) -> list[Submission]:
        """
        Stop accepting work and shut the workers down.

        Args:
            timeout: Max seconds to wait for outstanding work. None = wait forever.
            drop_pending: Cancel units that have not started yet instead of
                running them.

        After a timeout the in-flight handlers are signalled and joined for up
        to another ``timeout`` seconds. A handler that ignores the signal is
        left running on its thread; its result is discarded.

        Returns:
            Submissions that ended up cancelled, queued or in flight.
        """
        if self._executor is None:
            return []

        self._running = False
        if drop_pending:
            self._dropping = True

        outstanding = [fut for fut in self._futures.values() if not fut.done()]
        if outstanding:
            if timeout is not None:
                done, pending = await asyncio.wait(
                    outstanding,
                    timeout=timeout,
                    return_when=asyncio.ALL_COMPLETED,
                )
                if pending:
                    logger.warning(
                        "%d unit(s) still running after %ss; cancelling", len(pending), timeout
                    )
                    # Interrupt in-flight handlers and abandon their futures
                    self._cancel.set()
                    for fut in pending:
                        fut.cancel()
            else:
                await asyncio.gather(*outstanding, return_exceptions=True)

        self._executor.shutdown(wait=False, cancel_futures=True)
        self._executor = None

        for work_id, fut in self._futures.items():
            if fut.cancelled():
                self._finish(self._submissions[work_id], WorkState.CANCELLED)

        if self._cancel.is_set():
            await self._join_workers(timeout)

        cancelled = [s for s in self._submissions.values() if s.state is WorkState.CANCELLED]
        logger.debug("Worker pool stopped (%d cancelled)", len(cancelled))
        return cancelled

    async def _join_workers(self, timeout: float) -> None:
        """Give interrupted handlers up to ``timeout`` more seconds to return."""
        running = [fut for fut in self._thread_futures.values() if not fut.done()]
        if not running:
            return
        _, not_done = await self._loop.run_in_executor(None, partial(futures.wait, running, timeout=timeout))
        if not_done:
            logger.warning(
                "%d worker thread(s) ignored cancellation and are still running", len(not_done)
            )

    async def __aenter__(self) -> WorkerPool:
        self.start()
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        # Always release the threads; on an error path queued units are dropped
        cancelled = await self.stop(self.shutdown_timeout, drop_pending=exc_type is not None)
        if cancelled and exc_type is None:
            raise CancellationTimeout(cancelled, self.shutdown_timeout)

    # --- Execution (worker threads) ---

    def _finish(self, submission: Submission, state: WorkState, **fields: Any) -> bool:
        """Move a submission to a terminal state once. Returns False if it already was."""
        with self._lock:
            if submission.state in _TERMINAL:
                return False
            submission.state = state
            submission.completed_at = time.time()
            for name, value in fields.items():
                setattr(submission, name, value)
            return True

    def _emit(self, callback: Callable | None, *args: Any) -> None:
        if callback is None:
            return
        try:
            callback(*args)
        except Exception:
            logger.warning("Pool callback %r failed", callback, exc_info=True)

    def _execute(self, submission: Submission) -> Submission:
        """Run one unit. Never raises; the outcome is recorded on the submission."""
        with self._lock:
            if self._dropping or self._cancel.is_set() or submission.state in _TERMINAL:
                skip = True
            else:
                skip = False
                submission.state = WorkState.RUNNING
                submission.started_at = time.time()
                submission.worker = threading.current_thread().name
        if skip:
            self._finish(submission, WorkState.CANCELLED)
            return submission

        self._emit(self._on_start_callback, submission)
        start_time = time.time()

        try:
            result = self._handler(submission.unit, self._cancel)
        except UnitCancelled as e:
            self._finish(submission, WorkState.CANCELLED, error=e)
        except Exception as e:
            if self._finish(submission, WorkState.FAILED, error=e):
                self._emit(self._on_failure_callback, submission, e)
        else:
            if self._finish(submission, WorkState.COMPLETED, result=result):
                self._emit(self._on_complete_callback, submission, time.time() - start_time)

        return submission

    # --- Work Operations ---

    async def submit(self, unit: WorkUnit) -> str:
        """
        Queue a unit for the workers.

        Returns:
            Submission ID.

        Raises:
            RuntimeError: If the pool is not running.
        """
        if not self._running:
            raise RuntimeError("WorkerPool is not running; call start() first")

        work_id = uuid.uuid4().hex[:12]
        submission = Submission(id=work_id, unit=unit, created_at=time.time())
        self._submissions[work_id] = submission
        self._order.append(work_id)
        thread_future = self._executor.submit(self._execute, submission)
        self._thread_futures[work_id] = thread_future
        self._futures[work_id] = asyncio.wrap_future(thread_future, loop=self._loop)
        return work_id

    async def submit_all(self, units: Iterable[WorkUnit]) -> list[str]:
        ids = [await self.submit(unit) for unit in units]
        logger.debug("Submitted %d unit(s)", len(ids))
        return ids

    async def get(self, work_id: str) -> Submission | None:
        """Get a submission by ID, or None."""
        return self._submissions.get(work_id)

    async def list(self, *, state: WorkState | None = None) -> list[Submission]:
        """Submissions in submission order, optionally filtered by state."""
        subs = [self._submissions[i] for i in self._order]
        if state is None:
            return subs
        return [s for s in subs if s.state == state]

    def _unwrap(self, submission: Submission) -> WorkResult:
        if submission.state is WorkState.COMPLETED:
            return submission.result
        if submission.state is WorkState.FAILED:
            raise WorkerFailure(submission.unit, submission.error) from submission.error
        raise CancellationTimeout([submission], self.shutdown_timeout)

    async def _settled(self, work_id: str) -> Submission:
        # asyncio.wait does not raise when stop() cancels the future
        await asyncio.wait([self._futures[work_id]])
        return self._submissions[work_id]

    async def result(self, work_id: str) -> WorkResult:
        """
        Wait for one specific unit.

        Blocks until that unit is done even if later units finished first.

        Raises:
            KeyError: Unknown submission ID.
            WorkerFailure: The handler raised for this unit.
            CancellationTimeout: The unit was cancelled.
        """
        return self._unwrap(await self._settled(work_id))

    async def results_in_order(self) -> AsyncIterator[WorkResult]:
        """Yield results strictly in submission order."""
        for work_id in list(self._order):
            yield await self.result(work_id)

    async def as_completed(self) -> AsyncIterator[WorkResult]:
        """Yield results in whatever order units finish."""
        waiters = [self._settled(work_id) for work_id in self._order]
        for next_done in asyncio.as_completed(waiters):
            yield self._unwrap(await next_done)

    def stream(self, ordering: Ordering) -> AsyncIterator[WorkResult]:
        if ordering is Ordering.SUBMISSION:
            return self.results_in_order()
        return self.as_completed()

"""Generation strategies and the public ``generate`` operation.

Strategies form a closed set keyed by :class:`Strategy`. Callers such as the
benchmark harness depend only on the :class:`FractalGenerator` interface.
"""

from __future__ import annotations

import asyncio
import logging
import time
from abc import ABC, abstractmethod
from functools import partial

from mandelpool.assembler import ImageBuffer, ResultAssembler
from mandelpool.errors import InvalidConfiguration, WorkerFailure
from mandelpool.escape import compute_unit
from mandelpool.models import Ordering, RunSummary, Strategy, StrategyParams, Viewport
from mandelpool.partition import partition
from mandelpool.pool import WorkerPool

logger = logging.getLogger(__name__)


def _validate(viewport: Viewport, max_iterations: int, strategy: Strategy, params: StrategyParams) -> None:
    viewport.validate()
    if max_iterations <= 0:
        raise InvalidConfiguration(f"max_iterations must be positive, got {max_iterations}")
    params.validate(strategy)


class FractalGenerator(ABC):
    """Base class for generation strategies.

    A generator turns a viewport and an iteration bound into a fully
    written ImageBuffer. ``last_run`` describes the most recent call.
    """

    strategy: Strategy

    def __init__(self) -> None:
        self.last_run: RunSummary | None = None

    @property
    def name(self) -> str:
        return type(self).__name__.removesuffix("Generator")

    @abstractmethod
    async def render(
        self,
        viewport: Viewport,
        max_iterations: int,
        params: StrategyParams | None = None,
    ) -> ImageBuffer:
        """Async form of :meth:`generate`, for callers already in an event loop."""
        ...

    def generate(
        self,
        viewport: Viewport,
        max_iterations: int,
        params: StrategyParams | None = None,
    ) -> ImageBuffer:
        """Render the image, blocking until every pixel is written.

        Raises:
            InvalidConfiguration: Bad sizes, bound, thread count or tile size.
            WorkerFailure: A unit failed; the run is aborted.
            CancellationTimeout: Shutdown had to cancel outstanding units.
        """
        return asyncio.run(self.render(viewport, max_iterations, params))


class SequentialGenerator(FractalGenerator):
    """Single-threaded baseline: the whole image as one unit, no pool."""

    strategy = Strategy.SEQUENTIAL

    async def render(self, viewport, max_iterations, params=None):
        params = params or StrategyParams()
        _validate(viewport, max_iterations, self.strategy, params)
        start = time.perf_counter()

        (unit,) = partition(viewport, self.strategy, params)
        assembler = ResultAssembler(ImageBuffer(viewport.width, viewport.height))
        try:
            result = compute_unit(unit, viewport, max_iterations)
        except Exception as e:
            raise WorkerFailure(unit, e) from e
        assembler.write(result)

        self.last_run = RunSummary(strategy=self.strategy, units=1, elapsed=time.perf_counter() - start)
        return assembler.finish()


class PooledGenerator(FractalGenerator):
    """Shared driver for the strategies that fan units out to a WorkerPool."""

    ordering: Ordering

    async def render(self, viewport, max_iterations, params=None):
        params = params or StrategyParams()
        _validate(viewport, max_iterations, self.strategy, params)
        start = time.perf_counter()

        units = partition(viewport, self.strategy, params)
        summary = RunSummary(
            strategy=self.strategy,
            units=len(units),
            num_threads=params.num_threads,
            tile_size=params.tile_size if self.strategy is Strategy.TILE_BASED else None,
        )
        logger.debug(
            "%s: %d unit(s) on %d thread(s), %s order",
            self.name, len(units), params.num_threads, self.ordering.value,
        )

        handler = partial(compute_unit, viewport=viewport, max_iterations=max_iterations)
        pool = WorkerPool(params.num_threads, shutdown_timeout=params.shutdown_timeout)

        @pool.task
        def compute(unit, cancel):
            return handler(unit, cancel=cancel)

        @pool.on_complete
        def track(submission, duration):
            summary.workers_used.add(submission.worker)

        assembler = ResultAssembler(ImageBuffer(viewport.width, viewport.height))
        async with pool:
            await pool.submit_all(units)
            image = await assembler.assemble(pool, self.ordering)

        summary.elapsed = time.perf_counter() - start
        self.last_run = summary
        return image


class RowBasedGenerator(PooledGenerator):
    """One unit per scanline, collected in submission order.

    Row i's result is awaited before row i+1's, even if row i+1 is already
    done. This keeps the row-to-output mapping trivial at the cost of some
    head-of-line blocking behind slow rows.
    """

    strategy = Strategy.ROW_BASED
    ordering = Ordering.SUBMISSION


class TileBasedGenerator(PooledGenerator):
    """Square tiles, collected in completion order so no slow tile holds up the rest."""

    strategy = Strategy.TILE_BASED
    ordering = Ordering.COMPLETION


GENERATORS: dict[Strategy, type[FractalGenerator]] = {
    Strategy.SEQUENTIAL: SequentialGenerator,
    Strategy.ROW_BASED: RowBasedGenerator,
    Strategy.TILE_BASED: TileBasedGenerator,
}


def get_generator(strategy: Strategy) -> FractalGenerator:
    """Get a generator instance for a strategy."""
    return GENERATORS[Strategy(strategy)]()


def generate(
    viewport: Viewport,
    max_iterations: int,
    strategy: Strategy = Strategy.SEQUENTIAL,
    params: StrategyParams | None = None,
) -> ImageBuffer:
    """Render the Mandelbrot set over ``viewport`` with the chosen strategy.

    Example:
        image = generate(Viewport(800, 600), 500, Strategy.TILE_BASED,
                         StrategyParams(num_threads=8, tile_size=32))
        image.save("mandelbrot.png")
    """
    return get_generator(strategy).generate(viewport, max_iterations, params)

"""Benchmark runner for mandelpool-bench.

Times every generator in the closed strategy set against a sequential
baseline. Generators are passed in as objects; nothing is looked up by name.
"""

from __future__ import annotations

import csv
import logging
import statistics
import time
from dataclasses import dataclass, field
from pathlib import Path
from typing import Callable, Iterable

from mandelpool import (
    FractalGenerator,
    InvalidConfiguration,
    MandelbrotError,
    RowBasedGenerator,
    SequentialGenerator,
    Strategy,
    StrategyParams,
    TileBasedGenerator,
    Viewport,
)

logger = logging.getLogger(__name__)

CSV_HEADER = [
    "Implementation", "Threads", "TileSize",
    "AvgTime", "MinTime", "MaxTime", "MedianTime",
    "Speedup", "Efficiency",
]


@dataclass
class BenchConfig:
    """Configuration for a benchmark session."""

    width: int = 1600
    height: int = 1200
    max_iterations: int = 2000
    warmup: int = 2
    runs: int = 5
    thread_counts: tuple[int, ...] = (1, 2, 4, 8)
    tile_sizes: tuple[int, ...] = (25, 50, 100)

    @property
    def viewport(self) -> Viewport:
        return Viewport(self.width, self.height)

    def validate(self) -> None:
        self.viewport.validate()
        if self.max_iterations <= 0:
            raise InvalidConfiguration(f"max_iterations must be positive, got {self.max_iterations}")
        if self.warmup < 0 or self.runs <= 0:
            raise InvalidConfiguration(f"Need warmup >= 0 and runs > 0, got {self.warmup}/{self.runs}")
        if any(n <= 0 for n in self.thread_counts):
            raise InvalidConfiguration(f"Thread counts must be positive: {self.thread_counts}")
        if any(t <= 0 for t in self.tile_sizes):
            raise InvalidConfiguration(f"Tile sizes must be positive: {self.tile_sizes}")


@dataclass
class BenchmarkCase:
    """One generator with one set of parameters."""

    generator: FractalGenerator
    params: StrategyParams = field(default_factory=StrategyParams)

    @property
    def num_threads(self) -> int:
        if self.generator.strategy is Strategy.SEQUENTIAL:
            return 1
        return self.params.num_threads

    @property
    def tile_size(self) -> int:
        """Tile edge, or 0 for strategies that do not tile."""
        if self.generator.strategy is Strategy.TILE_BASED:
            return self.params.tile_size
        return 0

    @property
    def label(self) -> str:
        label = f"{self.generator.name} (threads={self.num_threads}"
        if self.tile_size:
            label += f", tile={self.tile_size}"
        return label + ")"


@dataclass
class BenchmarkResult:
    """Timing statistics for one case."""

    implementation: str
    num_threads: int
    tile_size: int = 0
    times: list[float] = field(default_factory=list)
    min_time: float = 0.0
    max_time: float = 0.0
    avg_time: float = 0.0
    median_time: float = 0.0
    speedup: float = 0.0
    efficiency: float = 0.0

    def compute_statistics(self, times: Iterable[float], sequential_time: float) -> None:
        """
        Fill in the statistics from wall-clock times.

        Args:
            times: Seconds per timed run.
            sequential_time: Baseline average; speedup = baseline / avg and
                efficiency = speedup / threads. Zero leaves both at 0.
        """
        self.times = sorted(times)
        if not self.times:
            return

        self.min_time = self.times[0]
        self.max_time = self.times[-1]
        self.median_time = self.times[len(self.times) // 2]
        self.avg_time = statistics.fmean(self.times)

        if sequential_time > 0 and self.avg_time > 0:
            self.speedup = sequential_time / self.avg_time
            self.efficiency = self.speedup / self.num_threads

    def to_csv_row(self) -> list[str]:
        return [
            self.implementation,
            str(self.num_threads),
            str(self.tile_size),
            f"{self.avg_time:.3f}",
            f"{self.min_time:.3f}",
            f"{self.max_time:.3f}",
            f"{self.median_time:.3f}",
            f"{self.speedup:.2f}",
            f"{self.efficiency:.4f}",
        ]

    def __str__(self) -> str:
        tile = f", tile={self.tile_size}" if self.tile_size > 0 else ""
        return (
            f"{self.implementation} (threads={self.num_threads}{tile}): "
            f"avg={self.avg_time:.3f}s, min={self.min_time:.3f}s, max={self.max_time:.3f}s, "
            f"median={self.median_time:.3f}s, speedup={self.speedup:.2f}x, "
            f"efficiency={self.efficiency * 100:.2f}%"
        )


def build_cases(config: BenchConfig) -> list[BenchmarkCase]:
    """Row-based for every thread count, then tile-based for every (threads, tile) pair."""
    cases = [
        BenchmarkCase(RowBasedGenerator(), StrategyParams(num_threads=n))
        for n in config.thread_counts
    ]
    for n in config.thread_counts:
        for tile in config.tile_sizes:
            cases.append(BenchmarkCase(TileBasedGenerator(), StrategyParams(num_threads=n, tile_size=tile)))
    return cases


def save_results_csv(results: Iterable[BenchmarkResult | None], path: str | Path) -> Path:
    """Write results to CSV, skipping cases that did not run."""
    path = Path(path)
    with path.open("w", newline="") as f:
        writer = csv.writer(f)
        writer.writerow(CSV_HEADER)
        for result in results:
            if result is not None:
                writer.writerow(result.to_csv_row())
    logger.debug("Results saved to: %s", path)
    return path


class BenchmarkRunner:
    """Runs benchmark cases and reports progress through a callback.

    Usage:
        runner = BenchmarkRunner(BenchConfig(width=400, height=300))
        results = runner.run()
        save_results_csv(results, "results.csv")
    """

    def __init__(
        self,
        config: BenchConfig,
        on_event: Callable[[str, str, str], None] | None = None,
        clock: Callable[[], float] = time.perf_counter,
    ):
        config.validate()
        self.config = config
        self.on_event = on_event or (lambda event_type, label, details: None)
        self._clock = clock
        self.baseline: BenchmarkResult | None = None

    def time_case(self, case: BenchmarkCase) -> list[float]:
        """Warm up, then return the wall-clock seconds of each timed run."""
        viewport = self.config.viewport
        for _ in range(self.config.warmup):
            case.generator.generate(viewport, self.config.max_iterations, case.params)

        times = []
        for i in range(self.config.runs):
            start = self._clock()
            case.generator.generate(viewport, self.config.max_iterations, case.params)
            elapsed = self._clock() - start
            times.append(elapsed)
            self.on_event("run", case.label, f"Run {i + 1}: {elapsed:.3f} seconds")
        return times

    def run_case(self, case: BenchmarkCase, sequential_time: float) -> BenchmarkResult | None:
        """Time one case. A failing case is logged and returns None."""
        self.on_event("started", case.label, "")
        try:
            times = self.time_case(case)
        except MandelbrotError as e:
            logger.warning("Could not run %s: %s", case.label, e)
            self.on_event("failed", case.label, str(e))
            return None

        result = BenchmarkResult(case.generator.name, case.num_threads, case.tile_size)
        result.compute_statistics(times, sequential_time)
        self.on_event("completed", case.label, str(result))
        return result

    def run_baseline(self) -> BenchmarkResult:
        """Time the sequential generator; its average becomes the baseline."""
        case = BenchmarkCase(SequentialGenerator())
        self.on_event("started", case.label, "")
        times = self.time_case(case)

        result = BenchmarkResult(case.generator.name, 1, 0)
        result.compute_statistics(times, statistics.fmean(times))
        self.baseline = result
        self.on_event("completed", case.label, str(result))
        return result

    def run(self, cases: Iterable[BenchmarkCase] | None = None) -> list[BenchmarkResult]:
        """Run the baseline and every case. Failed cases are left out."""
        baseline = self.run_baseline()
        results = [baseline]
        for case in build_cases(self.config) if cases is None else cases:
            result = self.run_case(case, baseline.avg_time)
            if result is not None:
                results.append(result)
        return results

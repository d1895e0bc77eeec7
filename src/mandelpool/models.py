"""Core data models for mandelpool."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Union

import numpy as np

from mandelpool.errors import InvalidConfiguration


class WorkState(str, Enum):
    """Possible states for a submitted work unit."""

    PENDING = "pending"
    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"
    CANCELLED = "cancelled"


class Strategy(str, Enum):
    """The closed set of generation strategies."""

    SEQUENTIAL = "sequential"
    ROW_BASED = "row"
    TILE_BASED = "tile"


class Ordering(str, Enum):
    """How results are pulled out of the worker pool."""

    SUBMISSION = "submission"  # block on unit i before unit i+1
    COMPLETION = "completion"  # whichever unit finishes first


@dataclass(frozen=True)
class Viewport:
    """Region of the complex plane and the pixel grid it is sampled on."""

    width: int
    height: int
    x_min: float = -2.5
    x_max: float = 1.0
    y_min: float = -1.0
    y_max: float = 1.0

    @property
    def size(self) -> int:
        return self.width * self.height

    def validate(self) -> None:
        """Raise InvalidConfiguration if the viewport cannot be rendered."""
        if self.width <= 0 or self.height <= 0:
            raise InvalidConfiguration(
                f"Image size must be positive, got {self.width}x{self.height}"
            )
        if not self.x_min < self.x_max or not self.y_min < self.y_max:
            raise InvalidConfiguration(
                f"Empty viewport: x=[{self.x_min}, {self.x_max}], y=[{self.y_min}, {self.y_max}]"
            )


@dataclass(frozen=True)
class StrategyParams:
    """Tuning knobs for the parallel strategies."""

    num_threads: int = 1
    tile_size: int = 50
    shutdown_timeout: float = 60.0  # Grace period before in-flight work is cancelled

    def validate(self, strategy: Strategy) -> None:
        if strategy is Strategy.SEQUENTIAL:
            return
        if self.num_threads <= 0:
            raise InvalidConfiguration(f"num_threads must be positive, got {self.num_threads}")
        if strategy is Strategy.TILE_BASED and self.tile_size <= 0:
            raise InvalidConfiguration(f"tile_size must be positive, got {self.tile_size}")
        if self.shutdown_timeout < 0:
            raise InvalidConfiguration(
                f"shutdown_timeout must not be negative, got {self.shutdown_timeout}"
            )


@dataclass(frozen=True)
class RowUnit:
    """One full scanline of the image."""

    row: int

    def bounds(self, width: int) -> tuple[int, int, int, int]:
        """Half-open (start_x, start_y, end_x, end_y) within an image of this width."""
        return 0, self.row, width, self.row + 1

    def __str__(self) -> str:
        return f"row {self.row}"


@dataclass(frozen=True)
class TileUnit:
    """A rectangular block, half-open and already clipped to the image."""

    start_x: int
    start_y: int
    end_x: int
    end_y: int

    def bounds(self, width: int) -> tuple[int, int, int, int]:
        return self.start_x, self.start_y, self.end_x, self.end_y

    def __str__(self) -> str:
        return f"tile [{self.start_x}:{self.end_x}, {self.start_y}:{self.end_y}]"


WorkUnit = Union[RowUnit, TileUnit]


@dataclass
class WorkResult:
    """Packed 0xRRGGBB colours for one unit, row-major within its bounds."""

    unit: WorkUnit
    pixels: np.ndarray


@dataclass
class Submission:
    """The pool's record of one submitted unit."""

    id: str
    unit: WorkUnit
    state: WorkState = WorkState.PENDING
    created_at: float = 0.0
    started_at: float | None = None
    completed_at: float | None = None
    result: WorkResult | None = None
    error: BaseException | None = None
    worker: str | None = None  # Thread name that ran it

    @property
    def duration(self) -> float | None:
        if self.started_at is None or self.completed_at is None:
            return None
        return self.completed_at - self.started_at


@dataclass
class RunSummary:
    """What a generator did during one call, for logging and benchmarks."""

    strategy: Strategy
    units: int = 0
    num_threads: int = 1
    tile_size: int | None = None
    elapsed: float = 0.0
    workers_used: set[str] = field(default_factory=set)

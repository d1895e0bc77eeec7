"""mandelpool - Mandelbrot rendering over a bounded pool of worker threads."""

from mandelpool.assembler import ImageBuffer, ResultAssembler
from mandelpool.errors import (
    AssemblyError,
    CancellationTimeout,
    InvalidConfiguration,
    MandelbrotError,
    WorkerFailure,
)
from mandelpool.generators import (
    GENERATORS,
    FractalGenerator,
    RowBasedGenerator,
    SequentialGenerator,
    TileBasedGenerator,
    generate,
    get_generator,
)
from mandelpool.models import (
    Ordering,
    RowUnit,
    Strategy,
    StrategyParams,
    TileUnit,
    Viewport,
    WorkResult,
    WorkState,
)
from mandelpool.pool import WorkerPool

__version__ = "0.1.0"
__all__ = [
    "AssemblyError",
    "CancellationTimeout",
    "FractalGenerator",
    "GENERATORS",
    "ImageBuffer",
    "InvalidConfiguration",
    "MandelbrotError",
    "Ordering",
    "ResultAssembler",
    "RowBasedGenerator",
    "RowUnit",
    "SequentialGenerator",
    "Strategy",
    "StrategyParams",
    "TileBasedGenerator",
    "TileUnit",
    "Viewport",
    "WorkResult",
    "WorkState",
    "WorkerPool",
    "generate",
    "get_generator",
]

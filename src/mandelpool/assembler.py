"""Output buffer and the single writer that fills it."""

from __future__ import annotations

import logging
from pathlib import Path
from typing import TYPE_CHECKING, AsyncIterable

import numpy as np
from PIL import Image

from mandelpool.errors import AssemblyError
from mandelpool.models import Ordering, WorkResult

if TYPE_CHECKING:
    from mandelpool.pool import WorkerPool

logger = logging.getLogger(__name__)


class ImageBuffer:
    """Flat arena of packed 0xRRGGBB pixels, row-major.

    Units address disjoint index ranges of the arena, so writes never need a
    lock. A written-mask enforces that every cell is written exactly once.
    """

    def __init__(self, width: int, height: int):
        self.width = width
        self.height = height
        self.pixels = np.zeros(width * height, dtype=np.uint32)
        self._written = np.zeros(width * height, dtype=bool)

    @property
    def grid(self) -> np.ndarray:
        """(height, width) view onto the arena."""
        return self.pixels.reshape(self.height, self.width)

    @property
    def written(self) -> int:
        return int(np.count_nonzero(self._written))

    @property
    def complete(self) -> bool:
        return bool(self._written.all())

    def write_block(self, start_x: int, start_y: int, end_x: int, end_y: int, pixels: np.ndarray) -> None:
        """Bulk-write a rectangle of pixels given row-major within its bounds."""
        if not (0 <= start_x < end_x <= self.width and 0 <= start_y < end_y <= self.height):
            raise AssemblyError(
                f"Block [{start_x}:{end_x}, {start_y}:{end_y}] outside {self.width}x{self.height} image"
            )
        block_w = end_x - start_x
        block_h = end_y - start_y
        if pixels.size != block_w * block_h:
            raise AssemblyError(
                f"Block [{start_x}:{end_x}, {start_y}:{end_y}] expects {block_w * block_h} pixels, got {pixels.size}"
            )

        mask = self._written.reshape(self.height, self.width)[start_y:end_y, start_x:end_x]
        if mask.any():
            raise AssemblyError(f"Block [{start_x}:{end_x}, {start_y}:{end_y}] overlaps written pixels")

        self.grid[start_y:end_y, start_x:end_x] = pixels.reshape(block_h, block_w)
        mask[...] = True

    def get(self, px: int, py: int) -> int:
        return int(self.pixels[py * self.width + px])

    def to_array(self) -> np.ndarray:
        """(height, width, 3) uint8 RGB array; each channel is masked to 8 bits."""
        grid = self.grid
        rgb = np.stack([(grid >> 16) & 0xFF, (grid >> 8) & 0xFF, grid & 0xFF], axis=-1)
        return rgb.astype(np.uint8)

    def to_image(self) -> Image.Image:
        return Image.fromarray(self.to_array())

    def save(self, path: str | Path) -> Path:
        path = Path(path)
        self.to_image().save(path, "PNG")
        logger.debug("Image saved to: %s", path)
        return path

    def tobytes(self) -> bytes:
        return self.pixels.tobytes()

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, ImageBuffer):
            return NotImplemented
        return (
            self.width == other.width
            and self.height == other.height
            and np.array_equal(self.pixels, other.pixels)
        )

    def __repr__(self) -> str:
        return f"ImageBuffer({self.width}x{self.height}, written={self.written})"


class ResultAssembler:
    """Owns the image buffer and writes unit results into it, one at a time."""

    def __init__(self, buffer: ImageBuffer):
        self.buffer = buffer
        self.units_written = 0

    def write(self, result: WorkResult) -> None:
        """Write one unit's pixels with a single bulk slice assignment."""
        start_x, start_y, end_x, end_y = result.unit.bounds(self.buffer.width)
        self.buffer.write_block(start_x, start_y, end_x, end_y, result.pixels)
        self.units_written += 1

    async def collect(self, results: AsyncIterable[WorkResult]) -> int:
        """Consume a result stream sequentially. Returns the number of units written."""
        count = 0
        async for result in results:
            self.write(result)
            count += 1
        return count

    def finish(self) -> ImageBuffer:
        """Check every pixel was written and hand the buffer over."""
        if not self.buffer.complete:
            missing = self.buffer.width * self.buffer.height - self.buffer.written
            raise AssemblyError(f"Image incomplete: {missing} pixel(s) never written")
        return self.buffer

    async def assemble(self, pool: "WorkerPool", ordering: Ordering) -> ImageBuffer:
        """Drain every submitted unit from the pool in the given order."""
        count = await self.collect(pool.stream(ordering))
        logger.debug("Assembled %d unit(s) in %s order", count, ordering.value)
        return self.finish()

"""Split the pixel grid into disjoint, exhaustive work units."""

from __future__ import annotations

from mandelpool.errors import InvalidConfiguration
from mandelpool.models import RowUnit, Strategy, StrategyParams, TileUnit, Viewport, WorkUnit


def partition_rows(viewport: Viewport) -> list[RowUnit]:
    """One unit per scanline, top to bottom."""
    viewport.validate()
    return [RowUnit(row) for row in range(viewport.height)]


def partition_tiles(viewport: Viewport, tile_size: int) -> list[TileUnit]:
    """Square tiles in row-major order, the last row and column clipped.

    Args:
        viewport: Image to cover.
        tile_size: Edge length of a full tile in pixels.

    Returns:
        Tiles covering every pixel exactly once. Order only decides
        submission order; it says nothing about completion order.
    """
    viewport.validate()
    if tile_size <= 0:
        raise InvalidConfiguration(f"tile_size must be positive, got {tile_size}")

    tiles = []
    for start_y in range(0, viewport.height, tile_size):
        end_y = min(start_y + tile_size, viewport.height)
        for start_x in range(0, viewport.width, tile_size):
            end_x = min(start_x + tile_size, viewport.width)
            tiles.append(TileUnit(start_x, start_y, end_x, end_y))
    return tiles


def partition(viewport: Viewport, strategy: Strategy, params: StrategyParams | None = None) -> list[WorkUnit]:
    """Units for a strategy. Sequential runs get one tile spanning the image."""
    params = params or StrategyParams()
    if strategy is Strategy.ROW_BASED:
        return list(partition_rows(viewport))
    if strategy is Strategy.TILE_BASED:
        return list(partition_tiles(viewport, params.tile_size))
    viewport.validate()
    return [TileUnit(0, 0, viewport.width, viewport.height)]

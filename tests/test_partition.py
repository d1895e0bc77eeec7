"""Tests for splitting the image into work units."""

import numpy as np
import pytest

from mandelpool.errors import InvalidConfiguration
from mandelpool.models import RowUnit, Strategy, StrategyParams, TileUnit, Viewport
from mandelpool.partition import partition, partition_rows, partition_tiles


def coverage(units, viewport):
    """How many times each pixel is covered by the units."""
    counts = np.zeros((viewport.height, viewport.width), dtype=int)
    for unit in units:
        start_x, start_y, end_x, end_y = unit.bounds(viewport.width)
        counts[start_y:end_y, start_x:end_x] += 1
    return counts


class TestRows:
    """Row partitioning."""

    def test_one_unit_per_row(self):
        viewport = Viewport(7, 5)
        units = partition_rows(viewport)
        assert units == [RowUnit(r) for r in range(5)]

    def test_rows_span_full_width(self):
        viewport = Viewport(7, 5)
        assert RowUnit(3).bounds(viewport.width) == (0, 3, 7, 4)
        assert (coverage(partition_rows(viewport), viewport) == 1).all()


class TestTiles:
    """Tile partitioning."""

    @pytest.mark.parametrize("width,height", [(1, 1), (1, 9), (9, 1), (10, 10), (17, 23), (64, 48)])
    @pytest.mark.parametrize("tile_size", [1, 2, 3, 8, 16, 100])
    def test_tiles_cover_every_pixel_once(self, width, height, tile_size):
        viewport = Viewport(width, height)
        units = partition_tiles(viewport, tile_size)
        assert (coverage(units, viewport) == 1).all()

    def test_edge_tiles_are_clipped(self):
        viewport = Viewport(10, 7)
        units = partition_tiles(viewport, 4)

        assert units[0] == TileUnit(0, 0, 4, 4)
        assert units[2] == TileUnit(8, 0, 10, 4)
        assert units[-1] == TileUnit(8, 4, 10, 7)
        for unit in units:
            assert 0 <= unit.start_x < unit.end_x <= viewport.width
            assert 0 <= unit.start_y < unit.end_y <= viewport.height

    def test_row_major_order(self):
        units = partition_tiles(Viewport(6, 4), 2)
        assert [(u.start_x, u.start_y) for u in units] == [
            (0, 0), (2, 0), (4, 0),
            (0, 2), (2, 2), (4, 2),
        ]

    def test_tile_larger_than_image_is_single_tile(self):
        assert partition_tiles(Viewport(30, 20), 64) == [TileUnit(0, 0, 30, 20)]

    @pytest.mark.parametrize("tile_size", [0, -4])
    def test_non_positive_tile_size_rejected(self, tile_size):
        with pytest.raises(InvalidConfiguration):
            partition_tiles(Viewport(8, 8), tile_size)


class TestPartition:
    """Strategy dispatch."""

    def test_sequential_is_one_tile(self):
        assert partition(Viewport(5, 3), Strategy.SEQUENTIAL) == [TileUnit(0, 0, 5, 3)]

    def test_row_strategy(self):
        assert len(partition(Viewport(5, 3), Strategy.ROW_BASED)) == 3

    def test_tile_strategy_uses_tile_size(self):
        units = partition(Viewport(8, 8), Strategy.TILE_BASED, StrategyParams(tile_size=4))
        assert len(units) == 4

    @pytest.mark.parametrize("width,height", [(0, 5), (5, 0), (-1, 3)])
    def test_empty_image_rejected(self, width, height):
        for strategy in Strategy:
            with pytest.raises(InvalidConfiguration):
                partition(Viewport(width, height), strategy)

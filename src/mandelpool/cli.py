#!/usr/bin/env python3
"""
mandelpool: render the Mandelbrot set to a PNG.

Usage:
    mandelpool                          # 1600x1200, 2000 iterations, sequential
    mandelpool 800 600 500              # sequential
    mandelpool 800 600 500 8            # row-based, 8 threads
    mandelpool 800 600 500 8 32         # tile-based, 8 threads, 32px tiles
    mandelpool 800 600 500 8 --strategy tile
"""

from __future__ import annotations

import argparse
import logging
import os
import sys
import time

from mandelpool.errors import CancellationTimeout, MandelbrotError
from mandelpool.generators import get_generator
from mandelpool.models import Strategy, StrategyParams, Viewport

DEFAULT_WIDTH = 1600
DEFAULT_HEIGHT = 1200
DEFAULT_ITERATIONS = 2000
DEFAULT_TILE_SIZE = 50


def configure_logging(verbose: bool = False, names: tuple[str, ...] = ("mandelpool",)) -> None:
    """Configure logging for the command line tools."""
    for name in names:
        logger = logging.getLogger(name)
        if verbose:
            logger.setLevel(logging.DEBUG)
            if not logger.handlers:
                handler = logging.StreamHandler()
                handler.setFormatter(logging.Formatter("%(levelname)s: %(message)s"))
                logger.addHandler(handler)
        else:
            # Only problems reach the console
            logger.setLevel(logging.WARNING)


def infer_strategy(args: argparse.Namespace) -> Strategy:
    if args.strategy:
        return Strategy(args.strategy)
    if args.tile_size is not None:
        return Strategy.TILE_BASED
    if args.threads is not None:
        return Strategy.ROW_BASED
    return Strategy.SEQUENTIAL


def default_output(strategy: Strategy, params: StrategyParams) -> str:
    """File name in the style mandelbrot_tilebased_8threads_tile50.png."""
    if strategy is Strategy.SEQUENTIAL:
        return "mandelbrot_sequential.png"
    if strategy is Strategy.ROW_BASED:
        return f"mandelbrot_rowbased_{params.num_threads}threads.png"
    return f"mandelbrot_tilebased_{params.num_threads}threads_tile{params.tile_size}.png"


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="Render the Mandelbrot set with a sequential, row-based or tile-based strategy",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  mandelpool 800 600 500              # Sequential baseline
  mandelpool 800 600 500 8            # Row-based, 8 threads
  mandelpool 800 600 500 8 32         # Tile-based, 8 threads, 32x32 tiles
        """,
    )
    parser.add_argument("width", type=int, nargs="?", default=DEFAULT_WIDTH, help=f"Image width (default: {DEFAULT_WIDTH})")
    parser.add_argument("height", type=int, nargs="?", default=DEFAULT_HEIGHT, help=f"Image height (default: {DEFAULT_HEIGHT})")
    parser.add_argument("max_iterations", type=int, nargs="?", default=DEFAULT_ITERATIONS, help=f"Max iterations (default: {DEFAULT_ITERATIONS})")
    parser.add_argument("threads", type=int, nargs="?", default=None, help="Worker threads (default: CPU count)")
    parser.add_argument("tile_size", type=int, nargs="?", default=None, help=f"Tile edge in pixels (default: {DEFAULT_TILE_SIZE})")
    parser.add_argument(
        "--strategy", "-s",
        choices=[s.value for s in Strategy],
        default=None,
        help="Force a strategy (default: inferred from the positional arguments)",
    )
    parser.add_argument("--output", "-o", type=str, default=None, help="Output PNG path")
    parser.add_argument(
        "--timeout",
        type=float,
        default=60.0,
        help="Shutdown grace period in seconds before cancelling workers (default: 60)",
    )
    parser.add_argument("--verbose", "-v", action="store_true", help="Debug logging")
    return parser


def main(argv: list[str] | None = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)
    configure_logging(verbose=args.verbose)

    strategy = infer_strategy(args)
    params = StrategyParams(
        num_threads=args.threads if args.threads is not None else (os.cpu_count() or 1),
        tile_size=args.tile_size if args.tile_size is not None else DEFAULT_TILE_SIZE,
        shutdown_timeout=args.timeout,
    )
    viewport = Viewport(args.width, args.height)
    generator = get_generator(strategy)

    print(f"{generator.name} Mandelbrot Generation")
    print(f"Image size: {viewport.width}x{viewport.height}")
    print(f"Max iterations: {args.max_iterations}")
    if strategy is not Strategy.SEQUENTIAL:
        print(f"Number of threads: {params.num_threads}")
    if strategy is Strategy.TILE_BASED:
        print(f"Tile size: {params.tile_size}x{params.tile_size}")
    print("-" * 40)

    start = time.perf_counter()
    try:
        image = generator.generate(viewport, args.max_iterations, params)
    except CancellationTimeout as e:
        print(f"Error: generation did not finish: {e}", file=sys.stderr)
        return 1
    except MandelbrotError as e:
        print(f"Error during generation: {e}", file=sys.stderr)
        return 1
    elapsed = time.perf_counter() - start
    print(f"Generation time: {elapsed:.3f} seconds")

    output = args.output or default_output(strategy, params)
    try:
        image.save(output)
    except OSError as e:
        print(f"Error saving image: {e}", file=sys.stderr)
        return 1
    print(f"Image saved to: {output}")
    return 0


if __name__ == "__main__":
    sys.exit(main())

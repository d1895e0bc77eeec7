#!/usr/bin/env python3
"""
mandelpool-bench: compare the mandelpool strategies against a sequential baseline.

Usage:
    mandelpool-bench
    mandelpool-bench --size 800x600 --iter 500 --threads 1,2,4 --tiles 32,64
    mandelpool-bench --runs 3 --warmup 1 --csv results.csv
"""

from __future__ import annotations

import argparse
import sys

from rich.console import Console

from mandelpool.cli import configure_logging
from mandelpool.errors import MandelbrotError
from mandelpool_bench.display import BenchmarkDisplay
from mandelpool_bench.runner import BenchConfig, BenchmarkRunner, save_results_csv


def parse_size(value: str) -> tuple[int, int]:
    """Parse 'WIDTHxHEIGHT'."""
    parts = value.lower().split("x")
    if len(parts) != 2:
        raise argparse.ArgumentTypeError(f"Size must be WIDTHxHEIGHT, got {value!r}")
    try:
        return int(parts[0]), int(parts[1])
    except ValueError:
        raise argparse.ArgumentTypeError(f"Size must be WIDTHxHEIGHT, got {value!r}") from None


def parse_int_list(value: str) -> tuple[int, ...]:
    """Parse a comma-separated list like '1,2,4'."""
    try:
        return tuple(int(p) for p in value.split(",") if p.strip())
    except ValueError:
        raise argparse.ArgumentTypeError(f"Expected comma-separated integers, got {value!r}") from None


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="mandelpool benchmark - time every strategy against the sequential baseline",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  mandelpool-bench --size 800x600 --iter 500
  mandelpool-bench --threads 1,2,4,8 --tiles 16,32,64
  mandelpool-bench --runs 3 --csv benchmark_results.csv
        """,
    )
    defaults = BenchConfig()
    parser.add_argument(
        "--size",
        type=parse_size,
        default=(defaults.width, defaults.height),
        help=f"Image size WIDTHxHEIGHT (default: {defaults.width}x{defaults.height})",
    )
    parser.add_argument(
        "--iter",
        type=int,
        default=defaults.max_iterations,
        help=f"Max iterations (default: {defaults.max_iterations})",
    )
    parser.add_argument(
        "--warmup",
        type=int,
        default=defaults.warmup,
        help=f"Untimed warmup runs per case (default: {defaults.warmup})",
    )
    parser.add_argument(
        "--runs", "-n",
        type=int,
        default=defaults.runs,
        help=f"Timed runs per case (default: {defaults.runs})",
    )
    parser.add_argument(
        "--threads", "-t",
        type=parse_int_list,
        default=defaults.thread_counts,
        help="Comma-separated thread counts (default: 1,2,4,8)",
    )
    parser.add_argument(
        "--tiles",
        type=parse_int_list,
        default=defaults.tile_sizes,
        help="Comma-separated tile sizes (default: 25,50,100)",
    )
    parser.add_argument(
        "--csv",
        type=str,
        default=None,
        help="Write results to this CSV file",
    )
    parser.add_argument(
        "--verbose", "-v",
        action="store_true",
        help="Show every timed run and debug logging",
    )
    return parser


def main(argv: list[str] | None = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)
    configure_logging(verbose=args.verbose, names=("mandelpool", "mandelpool_bench"))

    width, height = args.size
    config = BenchConfig(
        width=width,
        height=height,
        max_iterations=args.iter,
        warmup=args.warmup,
        runs=args.runs,
        thread_counts=args.threads,
        tile_sizes=args.tiles,
    )

    console = Console()
    display = BenchmarkDisplay(console, verbose=args.verbose)

    try:
        runner = BenchmarkRunner(config, on_event=display.event)
    except MandelbrotError as e:
        parser.error(str(e))

    display.header(config)
    try:
        results = runner.run()
    except MandelbrotError as e:
        # Only the baseline can get here; parallel cases are skipped individually
        console.print(f"[red]Baseline failed:[/red] {e}")
        return 1
    except KeyboardInterrupt:
        console.print("\nInterrupted.")
        return 130

    display.summary(results)

    if args.csv:
        try:
            path = save_results_csv(results, args.csv)
        except OSError as e:
            console.print(f"[red]Error saving results:[/red] {e}")
            return 1
        console.print(f"\nResults saved to: {path}")
    return 0


if __name__ == "__main__":
    sys.exit(main())

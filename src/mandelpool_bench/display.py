"""Rich-based output for mandelpool-bench.

Rendering only; the runner never imports this module.
"""

from __future__ import annotations

from datetime import datetime
from typing import Iterable

from rich.console import Console
from rich.table import Table

from mandelpool_bench.runner import BenchConfig, BenchmarkResult

_SYMBOLS = {
    "started": "[yellow]▶[/yellow]",
    "run": "[dim]·[/dim]",
    "completed": "[green]✓[/green]",
    "failed": "[red]✗[/red]",
}


class BenchmarkDisplay:
    """Prints a header, streamed events and the final results table."""

    def __init__(self, console: Console | None = None, verbose: bool = False):
        self.console = console or Console()
        self.verbose = verbose

    def header(self, config: BenchConfig) -> None:
        self.console.print("\n[bold cyan]Mandelbrot Performance Benchmark[/bold cyan]")
        self.console.print(f"   Image size: {config.width}x{config.height}, Max iterations: {config.max_iterations}")
        self.console.print(f"   Warmup runs: {config.warmup}, Benchmark runs: {config.runs}")
        self.console.print(
            f"   Threads: {', '.join(map(str, config.thread_counts))}  "
            f"Tiles: {', '.join(map(str, config.tile_sizes))}"
        )
        self.console.print()

    def event(self, event_type: str, label: str, details: str = "") -> None:
        """Runner callback. Per-run timings only show in verbose mode."""
        if event_type == "run" and not self.verbose:
            return
        symbol = _SYMBOLS.get(event_type, "·")
        ts = datetime.now().strftime("%H:%M:%S")
        if event_type == "started":
            self.console.print(f"[dim]{ts}[/dim] {symbol} [bold]{label}[/bold]")
        elif event_type == "failed":
            self.console.print(f"[dim]{ts}[/dim] {symbol} {label}: [red]{details}[/red]")
        elif event_type == "run":
            self.console.print(f"[dim]{ts}[/dim] {symbol}   {details}")
        else:
            self.console.print(f"[dim]{ts}[/dim] {symbol} {details}")

    def results_table(self, results: Iterable[BenchmarkResult]) -> Table:
        table = Table(title="Results", expand=False)
        table.add_column("Implementation", style="bold")
        table.add_column("Threads", justify="right")
        table.add_column("Tile", justify="right")
        table.add_column("Avg (s)", justify="right")
        table.add_column("Min (s)", justify="right")
        table.add_column("Max (s)", justify="right")
        table.add_column("Median (s)", justify="right")
        table.add_column("Speedup", justify="right")
        table.add_column("Efficiency", justify="right")

        for r in results:
            if r.efficiency >= 0.75:
                eff_style = "green"
            elif r.efficiency >= 0.4:
                eff_style = "yellow"
            else:
                eff_style = "red"
            table.add_row(
                r.implementation,
                str(r.num_threads),
                str(r.tile_size) if r.tile_size else "-",
                f"{r.avg_time:.3f}",
                f"{r.min_time:.3f}",
                f"{r.max_time:.3f}",
                f"{r.median_time:.3f}",
                f"{r.speedup:.2f}x",
                f"[{eff_style}]{r.efficiency * 100:.1f}%[/{eff_style}]",
            )
        return table

    def summary(self, results: list[BenchmarkResult]) -> None:
        self.console.print()
        self.console.print(self.results_table(results))
        parallel = [r for r in results if r.implementation != "Sequential"]
        if parallel:
            best = max(parallel, key=lambda r: r.speedup)
            self.console.print(f"\n[bold]Best:[/bold] {best}")

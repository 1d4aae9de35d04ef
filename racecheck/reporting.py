"""
Rich console reports for racecheck runs.

Builds tables and panels from scenario results; nothing here changes the
results themselves.
"""

from typing import Dict, List

from rich import box
from rich.console import Console
from rich.panel import Panel
from rich.table import Table

from .models import ClassificationReport, LoadPattern, RunMetrics, ScenarioResult
from .models.enums import EventKind
from .services.stress_runner import Assessment, assess_metrics
from .utils.config import RaceTestConfig


def format_ms(value: float) -> str:
    """Format milliseconds for display."""
    if value >= 1000:
        return f"{value / 1000:.2f}s"
    return f"{value:.1f}ms"


def print_section(console: Console, title: str) -> None:
    console.print()
    console.print(Panel(f"[bold cyan]{title}[/bold cyan]", box=box.DOUBLE))


def create_config_table(config: RaceTestConfig, client_count: int) -> Table:
    """Create a table describing the run configuration."""
    table = Table(title="Configuration", box=box.ROUNDED, show_header=False)
    table.add_column("Setting", style="cyan bold")
    table.add_column("Value", style="white")

    table.add_row("API", config.base_url)
    table.add_row("Project", config.project_id)
    table.add_row("Users", str(client_count))
    table.add_row("Concurrency limit", str(config.concurrency_limit or "unbounded"))
    table.add_row("Admission mode", config.admission_mode.value)
    table.add_row("Proximity window", format_ms(config.proximity_window_ms))
    table.add_row("Seed", "random" if config.seed is None else str(config.seed))
    table.add_row("Debug mode", "Enabled" if config.debug else "Disabled")
    return table


def create_metrics_table(metrics: RunMetrics, title: str) -> Table:
    """Create a rich table with run metrics."""
    table = Table(title=f"📊 {title}", box=box.ROUNDED, show_lines=True)

    table.add_column("Metric", style="cyan bold")
    table.add_column("Value", style="white", justify="right")
    table.add_column("Details", style="dim")

    table.add_row("Total Requests", f"[white]{metrics.total_requests}[/white]", "Completed dispatches")
    table.add_row(
        "Successful",
        f"[green]{metrics.successful_requests}[/green]",
        f"{metrics.success_rate * 100:.2f}% success rate",
    )
    table.add_row(
        "Failed",
        f"[red]{metrics.failed_requests}[/red]",
        f"{metrics.transport_failures} transport failures",
    )
    table.add_row(
        "Race Conditions",
        f"[magenta bold]{metrics.anomaly_count}[/magenta bold]",
        f"{metrics.anomaly_rate * 100:.2f}% of requests",
    )
    table.add_row("Ordinary Failures", f"[yellow]{metrics.ordinary_failure_count}[/yellow]", "Not concurrency related")
    table.add_row("Peak Concurrency", f"[cyan]{metrics.peak_concurrency}[/cyan]", "Max simultaneous requests")
    table.add_row(
        "Avg Latency",
        format_ms(metrics.avg_latency_ms),
        f"min {format_ms(metrics.min_latency_ms)} / max {format_ms(metrics.max_latency_ms)}",
    )
    table.add_row(
        "p95 Latency",
        format_ms(metrics.p95_latency_ms),
        f"p50 {format_ms(metrics.p50_latency_ms)} / p99 {format_ms(metrics.p99_latency_ms)}",
    )
    table.add_row("Throughput", f"{metrics.throughput_rps:.2f} req/s", f"over {format_ms(metrics.wall_clock_ms)}")
    return table


def create_errors_table(metrics: RunMetrics, limit: int = 5) -> Table:
    """Create a table of the most frequent errors."""
    table = Table(title="🔍 Top Errors", box=box.ROUNDED)
    table.add_column("#", style="dim", justify="right")
    table.add_column("Error", style="red")
    table.add_column("Count", style="yellow", justify="right")

    for index, bucket in enumerate(metrics.top_errors(limit), start=1):
        table.add_row(str(index), bucket.error, str(bucket.count))
    return table


def create_anomalies_table(classification: ClassificationReport, limit: int = 20) -> Table:
    """Create a table listing detected race conditions."""
    table = Table(
        title=f"🚨 Race Conditions (window {format_ms(classification.proximity_window_ms)})",
        box=box.ROUNDED,
    )
    table.add_column("User", style="cyan")
    table.add_column("Tokens", justify="right")
    table.add_column("Concurrent", style="magenta", justify="right")
    table.add_column("Matched", style="yellow")
    table.add_column("Error", style="red")

    for classified in classification.anomalies[:limit]:
        outcome = classified.outcome
        table.add_row(
            outcome.client_label,
            str(outcome.token_amount),
            str(classified.cohort_size),
            classified.matched_phrase or "—",
            outcome.error or "—",
        )
    return table


def create_timeline_table(result: ScenarioResult, limit: int = 50) -> Table:
    """Create a timeline table of tracker events relative to the first event."""
    table = Table(title="⏱️ Request Timeline", box=box.ROUNDED, show_header=True)
    table.add_column("At", style="dim", justify="right")
    table.add_column("Event", style="white")
    table.add_column("User", style="cyan")
    table.add_column("Depth", style="magenta", justify="right")
    table.add_column("Latency", style="yellow", justify="right")

    if not result.timeline:
        return table

    origin = result.timeline[0].timestamp_ms
    for event in result.timeline[:limit]:
        if event.kind == EventKind.START:
            label = "▶ [cyan]start[/cyan]"
            latency = "—"
        elif event.success:
            label = "✓ [green]success[/green]"
            latency = format_ms(event.latency_ms or 0.0)
        else:
            label = "✗ [red]failed[/red]"
            latency = format_ms(event.latency_ms or 0.0)

        table.add_row(
            format_ms(event.timestamp_ms - origin),
            label,
            event.client_label,
            str(event.depth_after),
            latency,
        )
    return table


def create_assessment_panel(assessment: Assessment) -> Panel:
    """Create a verdict panel for a run."""
    style = {
        "excellent": ("green", "✅ EXCELLENT"),
        "degraded": ("yellow", "⚠️  ACCEPTABLE"),
        "failing": ("red", "❌ PROBLEMS"),
    }
    color, headline = style[assessment.performance]
    lines = [f"[{color} bold]{headline}[/{color} bold]", ""]
    lines.extend(f"  • {note}" for note in assessment.notes)
    return Panel.fit("\n".join(lines), title="Assessment", border_style=color, box=box.DOUBLE)


def create_suite_table(results: Dict[LoadPattern, ScenarioResult]) -> Table:
    """Create a comparison table across scenarios."""
    table = Table(title="📈 Scenario Comparison", box=box.ROUNDED)
    table.add_column("Scenario", style="cyan bold")
    table.add_column("Requests", justify="right")
    table.add_column("Success", style="green", justify="right")
    table.add_column("Race Conditions", style="magenta", justify="right")
    table.add_column("Peak", justify="right")
    table.add_column("Avg Latency", style="yellow", justify="right")

    for pattern, result in results.items():
        metrics = result.metrics
        table.add_row(
            pattern.value,
            str(metrics.total_requests),
            f"{metrics.success_rate * 100:.1f}%",
            str(metrics.anomaly_count),
            str(metrics.peak_concurrency),
            format_ms(metrics.avg_latency_ms),
        )
    return table


def print_scenario_report(console: Console, result: ScenarioResult, show_timeline: bool = False) -> None:
    """Print the full report for one scenario result."""
    title = f"{result.pattern.value.upper()} - iteration {result.iteration}"
    console.print()
    console.print(create_metrics_table(result.metrics, title))

    if result.metrics.error_histogram:
        console.print()
        console.print(create_errors_table(result.metrics))

    if result.classification.anomalies:
        console.print()
        console.print(create_anomalies_table(result.classification))

    if show_timeline:
        console.print()
        console.print(create_timeline_table(result))

    console.print()
    console.print(create_assessment_panel(assess_metrics(result.metrics)))


def print_iterations_summary(console: Console, results: List[ScenarioResult]) -> None:
    """Print totals across several iterations of one scenario."""
    total = sum(r.metrics.total_requests for r in results)
    successful = sum(r.metrics.successful_requests for r in results)
    anomalies = sum(r.metrics.anomaly_count for r in results)
    peak = max((r.metrics.peak_concurrency for r in results), default=0)
    rate = successful / total * 100 if total else 0.0

    console.print()
    console.print(Panel.fit(
        f"[cyan]Iterations:[/cyan] {len(results)}\n"
        f"[cyan]Total requests:[/cyan] {total}\n"
        f"[cyan]Success rate:[/cyan] {rate:.2f}%\n"
        f"[cyan]Race conditions:[/cyan] {anomalies}\n"
        f"[cyan]Peak concurrency:[/cyan] {peak}",
        title="Summary",
        border_style="cyan",
    ))


def print_suite_summary(console: Console, results: Dict[LoadPattern, ScenarioResult]) -> None:
    """Print the scenario comparison and the verdict on the average success rate."""
    console.print()
    console.print(create_suite_table(results))

    if not results:
        return

    average = sum(r.metrics.success_rate for r in results.values()) / len(results)
    if average >= 0.95:
        verdict = "[green bold]✅ EXCELLENT: the system handles simultaneous load well[/green bold]"
    elif average >= 0.80:
        verdict = "[yellow bold]⚠️  ACCEPTABLE: some problems under load[/yellow bold]"
    else:
        verdict = "[red bold]❌ PROBLEMS: serious failures under simultaneous load[/red bold]"

    console.print()
    console.print(Panel.fit(
        f"[cyan]Average success rate:[/cyan] {average * 100:.2f}%\n\n{verdict}",
        title="Suite Verdict",
        border_style="cyan",
        box=box.DOUBLE,
    ))

"""
racecheck command line interface.

Commands:
- run: one scenario, optionally repeated
- suite: every scenario in sequence with a comparison table
- monitor: repeated simultaneous rounds for a fixed duration
- scenarios: list the available scenarios
"""

import asyncio
from typing import Any, Dict, List, Optional

import typer
from rich import box
from rich.console import Console
from rich.panel import Panel
from rich.table import Table

from .models import AdmissionMode, LoadPattern, ScenarioResult
from .reporting import (
    create_config_table,
    print_iterations_summary,
    print_scenario_report,
    print_section,
    print_suite_summary,
)
from .services.reservation_client import HttpReservationClient
from .services.stress_runner import StressTestRunner
from .utils.config import (
    ConfigurationError,
    RaceTestConfig,
    load_config,
    select_clients,
    validate_required_settings,
)
from .utils.logging_config import configure_logging

app = typer.Typer(help="Concurrent load generation and race condition detection for token reservations")
console = Console()


def _load(config_path: Optional[str], **overrides: Any) -> RaceTestConfig:
    """Load and validate configuration, then install logging."""
    config = load_config(config_path, **overrides)
    configure_logging(
        level="DEBUG" if config.debug else config.log_level,
        log_file=config.log_file,
    )
    validate_required_settings(config)
    return config


def _fail(message: str) -> None:
    console.print(f"[red]❌ {message}[/red]")
    raise typer.Exit(code=1)


def _header(title: str, subtitle: str) -> None:
    console.print()
    console.print(Panel.fit(
        f"[bold cyan]{title}[/bold cyan]\n[yellow]{subtitle}[/yellow]",
        border_style="cyan",
        box=box.DOUBLE,
    ))


async def _run_iterations(
    config: RaceTestConfig, scenario: str, users: int, iterations: int, interval: Optional[float]
) -> List[ScenarioResult]:
    clients = select_clients(config, users)
    async with HttpReservationClient(config.request_timeout_seconds) as client:
        runner = StressTestRunner(config, client)
        return await runner.run_iterations(
            scenario, iterations, clients=clients, monitor_interval_ms=interval
        )


async def _run_suite(config: RaceTestConfig, users: int) -> Dict[LoadPattern, ScenarioResult]:
    clients = select_clients(config, users)
    async with HttpReservationClient(config.request_timeout_seconds) as client:
        runner = StressTestRunner(config, client)
        return await runner.run_suite(clients=clients)


async def _run_monitor(config: RaceTestConfig, users: int, duration_ms: float, interval_ms: float) -> ScenarioResult:
    clients = select_clients(config, users)
    async with HttpReservationClient(config.request_timeout_seconds) as client:
        runner = StressTestRunner(config, client)
        return await runner.run_monitor(duration_ms, interval_ms, clients=clients)


@app.command()
def run(
    scenario: str = typer.Option(
        "burst",
        "--scenario",
        "-s",
        help="Load pattern: burst, sustained, spike or gradual"
    ),
    config_path: Optional[str] = typer.Option(
        None,
        "--config",
        "-c",
        help="Users configuration file (default: users-config.json)"
    ),
    users: int = typer.Option(
        0,
        "--users",
        "-u",
        help="Use only the first N users (0 for all)"
    ),
    iterations: int = typer.Option(
        1,
        "--iterations",
        "-i",
        help="Number of times to repeat the scenario"
    ),
    project: Optional[str] = typer.Option(
        None,
        "--project",
        "-p",
        help="Project ID (overrides project_name from the users file)"
    ),
    tokens: Optional[int] = typer.Option(
        None,
        "--tokens",
        help="Tokens reserved by every user"
    ),
    burst_window: Optional[float] = typer.Option(
        None,
        "--burst-window",
        help="Burst jitter window in milliseconds"
    ),
    concurrency: Optional[int] = typer.Option(
        None,
        "--concurrency",
        "-n",
        help="Maximum requests in flight (0 for unbounded)"
    ),
    admission: Optional[AdmissionMode] = typer.Option(
        None,
        "--admission",
        case_sensitive=False,
        help="How the concurrency ceiling is enforced: slots or waves"
    ),
    seed: Optional[int] = typer.Option(
        None,
        "--seed",
        help="Seed for reproducible dispatch plans"
    ),
    interval: Optional[float] = typer.Option(
        None,
        "--monitor-interval",
        "-m",
        help="Log live tracker snapshots every N milliseconds"
    ),
    timeline: bool = typer.Option(
        False,
        "--timeline",
        "-t",
        help="Show the request timeline"
    ),
    log_file: Optional[str] = typer.Option(
        None,
        "--log-file",
        help="Also write logs to this rotating file"
    ),
    debug: bool = typer.Option(
        False,
        "--debug",
        "-d",
        help="Verbose logging and strict tracker checks"
    ),
):
    """Run one load scenario against the reservation API"""
    try:
        config = _load(
            config_path,
            project_id=project,
            token_amount=tokens,
            burst_window_ms=burst_window,
            concurrency_limit=concurrency,
            admission_mode=admission,
            seed=seed,
            log_file=log_file,
            debug=debug or None,
        )
        _header("RACE CONDITION TEST", f"Scenario: {scenario}")
        console.print()
        console.print(create_config_table(config, len(select_clients(config, users))))

        results = asyncio.run(_run_iterations(config, scenario, users, iterations, interval))
    except ConfigurationError as e:
        _fail(str(e))
    except KeyboardInterrupt:
        console.print("\n[yellow]⚠ Test interrupted by user[/yellow]")
        raise typer.Exit(code=130)

    for result in results:
        print_scenario_report(console, result, show_timeline=timeline)

    if len(results) > 1:
        print_iterations_summary(console, results)


@app.command()
def suite(
    config_path: Optional[str] = typer.Option(
        None,
        "--config",
        "-c",
        help="Users configuration file (default: users-config.json)"
    ),
    users: int = typer.Option(
        0,
        "--users",
        "-u",
        help="Use only the first N users (0 for all)"
    ),
    concurrency: Optional[int] = typer.Option(
        None,
        "--concurrency",
        "-n",
        help="Maximum requests in flight (0 for unbounded)"
    ),
    admission: Optional[AdmissionMode] = typer.Option(
        None,
        "--admission",
        case_sensitive=False,
        help="How the concurrency ceiling is enforced: slots or waves"
    ),
    seed: Optional[int] = typer.Option(
        None,
        "--seed",
        help="Seed for reproducible dispatch plans"
    ),
    debug: bool = typer.Option(
        False,
        "--debug",
        "-d",
        help="Verbose logging and strict tracker checks"
    ),
):
    """Run every load scenario in sequence"""
    try:
        config = _load(
            config_path,
            concurrency_limit=concurrency,
            admission_mode=admission,
            seed=seed,
            debug=debug or None,
        )
        _header("RACE CONDITION TEST SUITE", "burst, sustained, spike and gradual")
        results = asyncio.run(_run_suite(config, users))
    except ConfigurationError as e:
        _fail(str(e))
    except KeyboardInterrupt:
        console.print("\n[yellow]⚠ Suite interrupted by user[/yellow]")
        raise typer.Exit(code=130)

    for result in results.values():
        print_section(console, f"SCENARIO: {result.pattern.value.upper()}")
        print_scenario_report(console, result)

    print_suite_summary(console, results)


@app.command()
def monitor(
    duration: float = typer.Option(
        30.0,
        "--duration",
        "-D",
        help="Monitoring duration in seconds"
    ),
    interval: float = typer.Option(
        1000.0,
        "--interval",
        "-m",
        help="Snapshot interval in milliseconds"
    ),
    config_path: Optional[str] = typer.Option(
        None,
        "--config",
        "-c",
        help="Users configuration file (default: users-config.json)"
    ),
    users: int = typer.Option(
        0,
        "--users",
        "-u",
        help="Use only the first N users (0 for all)"
    ),
    debug: bool = typer.Option(
        False,
        "--debug",
        "-d",
        help="Verbose logging and strict tracker checks"
    ),
):
    """Fire repeated simultaneous rounds and watch concurrency live"""
    try:
        config = _load(config_path, debug=debug or None)
        _header("CONCURRENCY MONITOR", f"{duration:.0f}s of simultaneous rounds")
        result = asyncio.run(_run_monitor(config, users, duration * 1000, interval))
    except ConfigurationError as e:
        _fail(str(e))
    except KeyboardInterrupt:
        console.print("\n[yellow]⚠ Monitor interrupted by user[/yellow]")
        raise typer.Exit(code=130)

    print_scenario_report(console, result)


@app.command()
def scenarios(
    config_path: Optional[str] = typer.Option(
        None,
        "--config",
        "-c",
        help="Users configuration file (default: users-config.json)"
    ),
):
    """List the available load scenarios"""
    try:
        config = load_config(config_path)
    except ConfigurationError as e:
        _fail(str(e))

    # the client is never called while listing
    runner = StressTestRunner(config, client=None)

    table = Table(title="Available Scenarios", box=box.ROUNDED)
    table.add_column("Key", style="cyan bold")
    table.add_column("Name", style="white")
    table.add_column("Description", style="dim")

    for key, info in runner.get_available_scenarios().items():
        table.add_row(key, info["scenario_name"], info["description"])

    console.print(table)


if __name__ == "__main__":
    app()

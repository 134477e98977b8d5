"""Breakwater CLI Entry Point.

Inspect the effective resilience settings and dry-run the resilience
pipeline against a scripted flaky operation on a virtual clock.
"""

from __future__ import annotations

import asyncio
import dataclasses
import json
from pathlib import Path
from typing import Any, Optional

import structlog
import typer

from breakwater.core.clock import VirtualClock
from breakwater.core.config import ConfigurationError, get_settings
from breakwater.core.exceptions import CircuitBreakerOpenError
from breakwater.core.logging import configure_logging
from breakwater.resilience import ResilienceOrchestrator, RetryConfig

log = structlog.get_logger()

# Main app
app = typer.Typer(
    name="breakwater",
    help="Breakwater - resilience layer for outbound API clients",
    no_args_is_help=True,
)

# Config subcommand group
config_app = typer.Typer(help="Configuration commands", no_args_is_help=True)
app.add_typer(config_app, name="config")


def load_config_callback(
    config: Optional[Path] = typer.Option(
        None, "--config", "-c", help="Path to configuration file", is_eager=True
    ),
) -> Optional[Path]:
    """Load configuration file if provided."""
    if config:
        if not config.exists():
            typer.echo(f"Error: Config file '{config}' not found", err=True)
            raise typer.Exit(code=1)

        try:
            get_settings(force_reload=True, config_path=config)
        except ConfigurationError as e:
            typer.echo(f"Error loading config: {e}", err=True)
            raise typer.Exit(code=1)

    try:
        settings = get_settings()
    except ConfigurationError as e:
        typer.echo(f"Error loading config: {e}", err=True)
        raise typer.Exit(code=1)

    configure_logging(settings.logging)
    if config:
        log.debug("config_loaded", path=str(config))
    return config


@app.callback()
def main(
    config: Optional[Path] = typer.Option(
        None,
        "--config",
        "-c",
        callback=load_config_callback,
        is_eager=True,
        help="Path to configuration file",
    ),
) -> None:
    """Breakwater CLI."""
    pass


@config_app.command("show")
def config_show() -> None:
    """Print the effective settings as JSON."""
    settings = get_settings()
    data = settings.model_dump(mode="json", by_alias=True)
    typer.echo(json.dumps(data, indent=2, sort_keys=True))


class SimulatedFailure(Exception):
    """Failure raised by the scripted operation in ``simulate``."""

    def __init__(self, attempt: int, is_retryable: bool, retry_after: Optional[float]) -> None:
        self.is_retryable = is_retryable
        self.retry_after = retry_after
        super().__init__(f"simulated failure #{attempt}")


async def run_simulation(
    failures: int,
    retry: RetryConfig,
    retryable: bool = True,
    retry_after: Optional[float] = None,
) -> dict[str, Any]:
    """Drive a flaky operation through an orchestrator on a virtual clock.

    Args:
        failures: How many leading invocations fail.
        retry: Retry configuration to use instead of the configured one.
        retryable: Whether the scripted failures are transient.
        retry_after: Optional retry-after hint attached to each failure.

    Returns:
        Summary with outcome, invocation count, waits and breaker state.
    """
    clock = VirtualClock()
    resilience = dataclasses.replace(get_settings().to_resilience_config(), retry=retry)
    orchestrator = ResilienceOrchestrator(resilience, clock=clock, name="simulation")
    invocations = 0

    async def flaky() -> str:
        nonlocal invocations
        invocations += 1
        if invocations <= failures:
            raise SimulatedFailure(invocations, retryable, retry_after)
        return "ok"

    outcome = "success"
    error: Optional[str] = None
    try:
        await orchestrator.execute(flaky)
    except CircuitBreakerOpenError as e:
        outcome, error = "rejected", str(e)
    except SimulatedFailure as e:
        outcome, error = "failed", str(e)

    breaker = orchestrator.circuit_breaker
    return {
        "outcome": outcome,
        "error": error,
        "invocations": invocations,
        "waits_ms": list(clock.sleeps),
        "elapsed_ms": clock.now_ms(),
        "breaker_state": str(breaker.state) if breaker is not None else None,
    }


@app.command()
def simulate(
    failures: int = typer.Option(2, "--failures", "-f", min=0, help="Leading invocations that fail"),
    attempts: int = typer.Option(3, "--attempts", "-a", help="Maximum attempts"),
    initial_delay: int = typer.Option(100, "--initial-delay", help="First backoff (ms)"),
    max_delay: int = typer.Option(1000, "--max-delay", help="Backoff cap (ms)"),
    multiplier: float = typer.Option(2.0, "--multiplier", help="Backoff growth factor"),
    jitter: float = typer.Option(0.0, "--jitter", help="Jitter fraction in [0, 1]"),
    retryable: bool = typer.Option(
        True, "--retryable/--no-retryable", help="Classify failures as transient"
    ),
    retry_after: Optional[float] = typer.Option(
        None, "--retry-after", help="Retry-after hint on each failure (seconds)"
    ),
) -> None:
    """Dry-run retry and breaker behavior without real sleeping."""
    try:
        retry = RetryConfig(
            max_attempts=attempts,
            initial_delay_ms=initial_delay,
            max_delay_ms=max_delay,
            multiplier=multiplier,
            jitter=jitter,
        )
    except ValueError as e:
        typer.echo(f"Error: {e}", err=True)
        raise typer.Exit(code=1)

    summary = asyncio.run(run_simulation(failures, retry, retryable, retry_after))

    typer.echo(f"outcome: {summary['outcome']}")
    if summary["error"]:
        typer.echo(f"error: {summary['error']}")
    typer.echo(f"invocations: {summary['invocations']}")
    waits = ", ".join(str(w) for w in summary["waits_ms"]) or "none"
    typer.echo(f"waits_ms: {waits}")
    typer.echo(f"elapsed_ms: {summary['elapsed_ms']}")
    if summary["breaker_state"] is not None:
        typer.echo(f"breaker_state: {summary['breaker_state']}")

    if summary["outcome"] != "success":
        raise typer.Exit(code=1)


if __name__ == "__main__":  # pragma: no cover
    app()

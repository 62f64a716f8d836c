"""CLI entrypoint for multiroom."""

from __future__ import annotations

import asyncio

import rich_click as click

from multiroom.core.config_loader import RoutingConfigError
from multiroom.core.logging import configure_logging
from multiroom.core.orchestrator import MultiAgentOrchestrator, OrchestrationReport
from multiroom.core.settings import get_settings
from multiroom.models.execution_models import RoomEvent
from multiroom.models.routing_models import TaskAnalysis
from multiroom.providers.gateway import UnknownProviderError
from multiroom.routing.router import NoProvidersAvailableError

click.rich_click.USE_MARKDOWN = True

PROVIDER_BADGES = {
    "claude": "🟣",
    "openai": "🟢",
    "gemini": "🔵",
    "grok": "⚫",
}


def _badge(provider: str | None) -> str:
    return PROVIDER_BADGES.get(provider or "", "⚪")


def _build_orchestrator() -> MultiAgentOrchestrator:
    settings = get_settings()
    configure_logging(settings.LOG_LEVEL)
    try:
        return MultiAgentOrchestrator.from_settings(settings)
    except (NoProvidersAvailableError, RoutingConfigError) as e:
        raise click.ClickException(str(e)) from e


@click.group()
def multiroom() -> None:
    """Route tasks to LLM providers, run them in isolated rooms and synthesize the results."""


@multiroom.command("run")
@click.argument("task")
@click.option("--provider", "-p", default=None, help="Force a specific provider.")
@click.option(
    "--parallel/--no-parallel",
    default=None,
    help="Force parallel or sequential execution (default: parallel when routes allow it).",
)
@click.option("--dry-run", is_flag=True, help="Analyze and route without executing.")
@click.option("--verbose", "-v", is_flag=True, help="Show per-room progress.")
def run_task(task: str, provider: str | None, parallel: bool | None, dry_run: bool, verbose: bool) -> None:
    """Analyze TASK, execute it on the routed providers and synthesize the outputs."""
    if not task.strip():
        raise click.BadParameter("Task content cannot be empty", param_hint="TASK")
    orchestrator = _build_orchestrator()

    try:
        analysis = orchestrator.analyze(task, provider=provider)
    except UnknownProviderError as e:
        raise click.ClickException(str(e)) from e

    click.echo(f"Task: \"{task}\"\n")
    _emit_lines(_analysis_lines(analysis))

    if dry_run:
        click.echo("Dry run complete. Run without --dry-run to execute.")
        return
    if not analysis.routes:
        click.echo("No provider route available; nothing to execute.")
        return

    unsubscribe = orchestrator.executor.subscribe(_echo_event) if verbose else None
    try:
        report = asyncio.run(orchestrator.run(task, parallel=parallel, analysis=analysis))
    finally:
        if unsubscribe is not None:
            unsubscribe()

    _emit_lines(_report_lines(report))


@multiroom.command("cleanup")
def cleanup() -> None:
    """Delete every room output and completion flag in the working directory."""
    removed = _build_orchestrator().cleanup()
    click.echo(f"Work directory cleaned ({removed} files removed).")


@multiroom.command("synthesize")
def synthesize() -> None:
    """Synthesize the room outputs currently in the working directory."""
    path = _build_orchestrator().synthesizer.run()
    if path is None:
        click.echo("No outputs found in work directory.")
        return
    click.echo(f"Synthesis complete: {path}")


@multiroom.command("providers")
def providers() -> None:
    """Show enabled providers and parallel execution capability."""
    router = _build_orchestrator().router
    click.echo(f"Enabled providers: {', '.join(router.get_enabled_providers())}")
    click.echo(f"Parallel execution: {'yes' if router.can_run_parallel() else 'no'}")
    click.echo(f"Max parallel rooms: {router.get_max_parallel_rooms()}")


def _analysis_lines(analysis: TaskAnalysis) -> list[str]:
    lines = [
        "Analysis:",
        f"   Keywords: {', '.join(analysis.keywords) or 'none detected'}",
        f"   Task Type: {analysis.task_type.value}",
        f"   Parallelizable: {'yes' if analysis.parallelizable else 'no'}",
        "",
        "Routing Decisions:",
    ]
    for route in analysis.routes:
        lines.append(f"   {_badge(route.provider)} {route.provider.upper()} ({route.confidence * 100:.0f}%)")
        lines.append(f"      Reason: {route.reason}")
        if route.fallback:
            lines.append(f"      Fallback: {route.fallback}")
    lines.append("")
    return lines


def _report_lines(report: OrchestrationReport) -> list[str]:
    lines = [
        "",
        f"Execution Summary ({report.mode}):",
        f"   Total: {len(report.results)}",
        f"   Successful: {report.successful}",
        f"   Failed: {report.failed}",
    ]
    for result in report.results:
        status = "ok" if result.success else f"failed: {result.error}"
        lines.append(f"   {_badge(result.provider)} [{result.provider}] {status} ({result.duration_ms:.0f}ms)")
    if report.final_output is not None:
        lines.append(f"\nComplete! Results: {report.final_output}")
    else:
        lines.append("\nNo outputs to synthesize.")
    return lines


def _echo_event(event: RoomEvent) -> None:
    if event.kind == "room_start":
        click.echo(f"{_badge(event.provider)} [{event.provider}] Starting...")
    elif event.kind == "room_complete":
        status = "done" if event.payload.get("success") else "failed"
        click.echo(f"{_badge(event.provider)} [{event.provider}] {status}")
    elif event.kind == "parallel_start":
        click.echo(f"Executing {event.payload.get('count', 0)} rooms in parallel...")


def _emit_lines(lines: list[str]) -> None:
    for line in lines:
        click.echo(line)


def main() -> None:
    multiroom()


if __name__ == "__main__":  # pragma: no cover
    main()

"""Command line interface for enrichflow."""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Awaitable, Callable, Optional, TypeVar

import typer

from .config import load_config
from .exceptions import InvalidJobStateError, JobNotFoundError
from .jobs.models import JobStatus
from .persistence import get_repository
from .runtime import EnrichflowRuntime, build_runtime

T = TypeVar("T")

app = typer.Typer(help="CLI for enrichflow enrichment workflows")

jobs_app = typer.Typer(help="Commands for managing enrichment jobs")
workflow_app = typer.Typer(help="Commands for inspecting workflow instances")
correlations_app = typer.Typer(help="Commands for inspecting correlation entries")

app.add_typer(jobs_app, name="jobs")
app.add_typer(workflow_app, name="workflow")
app.add_typer(correlations_app, name="correlations")

_state: dict[str, Any] = {"config": None}


@app.callback()
def main(
    config: Optional[str] = typer.Option(None, "--config", "-c", help="Path to config.yaml"),
    log_level: str = typer.Option("INFO", "--log-level", help="Logging level"),
) -> None:
    """Enrichflow CLI entry point."""
    logging.basicConfig(
        level=getattr(logging, log_level.upper(), logging.INFO),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    _state["config"] = config


def _run(action: Callable[[EnrichflowRuntime], Awaitable[T]]) -> T:
    async def runner() -> T:
        runtime = build_runtime(load_config(_state["config"]))
        await runtime.start()
        try:
            return await action(runtime)
        finally:
            await runtime.close()

    return asyncio.run(runner())


@app.command("serve")
def serve(
    host: str = typer.Option("0.0.0.0", help="Interface to bind"),
    port: int = typer.Option(8000, help="Port to listen on"),
) -> None:
    """
    Run the HTTP service receiving webhooks and admin requests.

    Example:
        enrichflow serve --port 8080
    """
    import uvicorn

    from .api import create_app

    config = load_config(_state["config"])
    uvicorn.run(create_app(config=config), host=host, port=port)


@jobs_app.command("list")
def jobs_list(
    status: Optional[JobStatus] = typer.Option(None, help="Only jobs with this status"),
) -> None:
    """List enrichment jobs, oldest first."""
    jobs = _run(lambda rt: rt.store.list_jobs(status=status))
    if not jobs:
        typer.echo("No jobs found")
        return
    for job in jobs:
        line = f"{job.id}\t{JobStatus(job.status).value}\tretries={job.retry_count}"
        if job.failure_reason:
            line += f"\t{job.failure_reason}"
        typer.echo(line)


@jobs_app.command("stats")
def jobs_stats() -> None:
    """Show failed and stale totals with a histogram of failure reasons."""
    stats = _run(lambda rt: rt.failures.failure_stats())
    typer.echo(f"Failed: {stats.total_failed}")
    typer.echo(f"Stale: {stats.total_stale}")
    for reason, count in sorted(stats.failure_reasons.items(), key=lambda kv: -kv[1]):
        typer.echo(f"  {count}\t{reason}")


@jobs_app.command("retry")
def jobs_retry(job_id: str) -> None:
    """Return a failed or stale job to the pending queue."""
    try:
        job = _run(lambda rt: rt.failures.retry(job_id))
    except (JobNotFoundError, InvalidJobStateError) as exc:
        typer.secho(str(exc), fg=typer.colors.RED)
        raise typer.Exit(code=1)
    typer.echo(f"Job {job.id} is pending again")


@jobs_app.command("sweep-stale")
def jobs_sweep_stale(
    hours: Optional[float] = typer.Option(None, help="Staleness threshold in hours"),
) -> None:
    """Mark jobs pending longer than the threshold as stale."""
    threshold = hours * 3600 if hours is not None else None
    marked = _run(lambda rt: rt.failures.sweep_stale(threshold))
    typer.echo(f"Marked {marked} job(s) stale")


@workflow_app.command("list")
def workflow_list(
    status: Optional[str] = typer.Option(None, help="Only instances with this status"),
) -> None:
    """
    List workflow instances with their current status.

    Example:
        enrichflow workflow list --status failed
    """
    repo = get_repository(config=load_config(_state["config"]))
    instances = asyncio.run(repo.list_instances(status=status))
    if not instances:
        typer.echo("No workflows found")
        return
    for wf in instances:
        typer.echo(f"{wf.workflow_id}\t{wf.status.value}")


@workflow_app.command("show")
def workflow_show(workflow_id: str) -> None:
    """Show status, error and completed steps of one workflow instance."""
    repo = get_repository(config=load_config(_state["config"]))
    wf = asyncio.run(repo.get_instance(workflow_id))
    if wf is None:
        typer.echo("Workflow not found")
        raise typer.Exit(code=1)
    typer.echo(f"Workflow {wf.workflow_id}: {wf.status.value}")
    if wf.input:
        typer.echo(f"Input: {wf.input}")
    if wf.error:
        typer.echo(f"Error ({wf.error_kind}): {wf.error}")
    for step in wf.steps:
        typer.echo(f"- {step.name}: completed {step.completed_at.isoformat()}")


@correlations_app.command("list")
def correlations_list() -> None:
    """List correlation ids still waiting for a callback."""
    repo = get_repository(config=load_config(_state["config"]))
    mappings = asyncio.run(repo.list_correlations())
    if not mappings:
        typer.echo("No active correlations")
        return
    for correlation_id, workflow_id in sorted(mappings.items()):
        typer.echo(f"{correlation_id}\t{workflow_id}")

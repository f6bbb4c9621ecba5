"""Terminal rendering for the interactive session."""

from __future__ import annotations

import datetime
import json
from typing import Any

import click

from apiline.workflows.document import WorkflowStep
from apiline.workflows.models import PreparedRequest, ReloadReport, RunSummary, StepOutcome, StepState

VARIABLE_PREVIEW_LIMIT = 60
RESPONSE_PREVIEW_LIMIT = 100

STATE_STYLES: dict[StepState, tuple[str, str]] = {
    StepState.PENDING: ("⏳", "white"),
    StepState.EXECUTING: ("🔄", "cyan"),
    StepState.COMPLETED: ("✅", "green"),
    StepState.FAILED: ("❌", "red"),
    StepState.SKIPPED: ("⏭️ ", "yellow"),
}

HELP_TEXT = """\
Commands:
  v, vars                Show variables
  s, set [NAME [VALUE]]  Set a variable
  l, list                List requests and their state
  n, next                Execute the next request
  <N>                    Execute request N
  a, all                 Execute all remaining requests
  k, skip [N]            Skip the next request (or request N)
  r, reload              Reload the workflow file
  w, save                Save variables to the workflow file
  h, help                Show this help
  q, quit                Exit"""


def truncate(text: str, limit: int) -> str:
    if len(text) > limit:
        return text[: limit - 3] + "..."
    return text


def format_value(value: Any) -> str:
    if isinstance(value, str):
        return value
    if isinstance(value, (datetime.date, datetime.time)):
        return value.isoformat()
    return json.dumps(value, ensure_ascii=False, default=str)


def display_header(version: str, path: str) -> None:
    click.secho(f"apiline {version}", bold=True)
    click.echo(f"Workflow: {path}")


def display_menu(steps: list[tuple[int, WorkflowStep]], next_index: int | None) -> None:
    click.echo()
    if next_index is None:
        click.secho("All requests completed", fg="green", bold=True)
    else:
        _, step = steps[next_index]
        click.echo(f"Next: Step {next_index + 1} - {step.name}")
    click.echo("[n]ext  [a]ll  [l]ist  [v]ars  [s]et  s[k]ip  [r]eload  [h]elp  [q]uit")


def display_help() -> None:
    click.echo(HELP_TEXT)


def display_variables(variables: list[tuple[str, Any]]) -> None:
    if not variables:
        click.echo("No variables set")
        return
    click.secho("Variables:", bold=True)
    for name, value in variables:
        click.echo(f"  {name} = {truncate(format_value(value), VARIABLE_PREVIEW_LIMIT)}")


def display_steps(steps: list[tuple[int, WorkflowStep]], next_index: int | None) -> None:
    if not steps:
        click.echo("No requests defined")
        return
    for index, step in steps:
        icon, color = STATE_STYLES[step.state]
        marker = "→" if index == next_index else " "
        definition = step.definition
        line = f"{marker} {index + 1}. {icon} {step.name} [{definition.http_method} {definition.endpoint}]"
        if step.runtime.last_response is not None:
            line += f" ({step.runtime.last_response.status})"
        click.secho(line, fg=color)


def display_request(index: int, name: str, request: PreparedRequest) -> None:
    click.secho(f"\n{index + 1}. {name}", bold=True)
    click.echo(f"  {request.method} {request.url}")
    if request.auth != "none":
        click.echo(f"  Auth: {request.auth}")
    if request.body is not None:
        click.echo("  Payload:")
        for line in json.dumps(request.body, indent=2, ensure_ascii=False, default=str).splitlines():
            click.echo(f"    {line}")
    for variable in request.unresolved:
        click.secho(f"  ⚠️  Unresolved variable: ${{{variable}}}", fg="yellow")


def display_outcome(outcome: StepOutcome) -> None:
    if outcome.cancelled:
        click.secho("Request cancelled", fg="yellow")
        return
    if outcome.response is not None:
        status = outcome.response.status
        color = "green" if outcome.state == StepState.COMPLETED else "red"
        elapsed = f" in {outcome.response.elapsed_ms:.0f}ms" if outcome.response.elapsed_ms is not None else ""
        click.secho(f"  Status: {status}{elapsed}", fg=color)
        click.echo(f"  Response: {outcome.response.body_preview(RESPONSE_PREVIEW_LIMIT)}")
    if outcome.error is not None:
        click.secho(f"❌  {outcome.error}", fg="red", bold=True)
    for warning in outcome.warnings:
        click.secho(f"⚠️  {warning}", fg="yellow")
    for name, value in outcome.extracted.items():
        click.secho(
            f"  Saved {name} = {truncate(format_value(value), VARIABLE_PREVIEW_LIMIT)}",
            fg="cyan",
        )
    for name, path in outcome.missed:
        click.secho(f"  Nothing found at {path} for {name}", fg="yellow")
    if outcome.state == StepState.COMPLETED:
        click.secho(f"✅  {outcome.step_name} completed", fg="green")
    elif outcome.state == StepState.SKIPPED and outcome.error is None:
        click.secho(f"⏭️  {outcome.step_name} skipped", fg="yellow")
    if outcome.persistence_error is not None:
        click.secho(f"⚠️  {outcome.persistence_error}", fg="yellow")
    if outcome.reload is not None:
        display_reload(outcome.reload)


def display_run_summary(summary: RunSummary) -> None:
    completed = sum(1 for outcome in summary.outcomes if outcome.state == StepState.COMPLETED)
    skipped = sum(1 for outcome in summary.outcomes if outcome.state == StepState.SKIPPED)
    click.secho(
        f"\nRan {len(summary.outcomes)} requests: {completed} completed, "
        f"{len(summary.failed)} failed, {skipped} skipped",
        bold=True,
    )


def display_reload(report: ReloadReport) -> None:
    if report.deferred:
        click.secho("Workflow file changed; reload postponed until the running request finishes", fg="yellow")
        return
    if report.error is not None:
        click.secho(f"⚠️  {report.error}", fg="yellow")
        return
    click.secho("🔄 Workflow file reloaded", fg="cyan")
    if report.added_variables:
        click.echo(f"  New variables: {', '.join(report.added_variables)}")
    if report.added_steps:
        click.echo(f"  New requests: {', '.join(report.added_steps)}")
    if report.reset_steps:
        click.echo(f"  Changed requests reset: {', '.join(report.reset_steps)}")
    if report.removed_steps:
        click.echo(f"  Removed requests: {', '.join(report.removed_steps)}")
    if report.persistence_error is not None:
        click.secho(f"⚠️  {report.persistence_error}", fg="yellow")

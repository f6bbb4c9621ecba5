from __future__ import annotations

import logging
from pathlib import Path
from typing import Any

import click

from apiline.cli import output
from apiline.cli.session import InteractiveSession
from apiline.config import DEFAULT_BASE_URL, SessionConfig, UnresolvedPolicy
from apiline.core.version import APILINE_VERSION
from apiline.workflows.controller import ExecutionController
from apiline.workflows.document import WorkflowDocument
from apiline.workflows.errors import WorkflowParseError, WorkflowValidationError
from apiline.workflows.transport import HttpxTransport
from apiline.workflows.watcher import FileWatcher

CONTEXT_SETTINGS: dict[str, Any] = {"help_option_names": ["-h", "--help"]}
LOG_LEVELS = ["DEBUG", "INFO", "WARNING", "ERROR"]


@click.command(context_settings=CONTEXT_SETTINGS)  # type: ignore[untyped-decorator]
@click.argument("workflow_file", type=click.Path(dir_okay=False, path_type=Path))  # type: ignore[untyped-decorator]
@click.option(  # type: ignore[untyped-decorator]
    "--base-url",
    envvar="APILINE_BASE_URL",
    default=DEFAULT_BASE_URL,
    show_default=True,
    help="Base URL prepended to relative endpoints",
    metavar="URL",
)
@click.option(  # type: ignore[untyped-decorator]
    "--api-key",
    envvar="APILINE_API_KEY",
    default="",
    help="API key for 'admin' auth when no api_key variable is set",
    metavar="KEY",
)
@click.option(  # type: ignore[untyped-decorator]
    "--start-from",
    type=click.IntRange(min=1),
    default=1,
    show_default=True,
    help="Request number to start from",
    metavar="N",
)
@click.option(  # type: ignore[untyped-decorator]
    "--timeout",
    type=click.FloatRange(min=0, min_open=True),
    default=30.0,
    show_default=True,
    help="Default request timeout in seconds",
    metavar="SECONDS",
)
@click.option(  # type: ignore[untyped-decorator]
    "--unresolved",
    type=click.Choice([policy.value for policy in UnresolvedPolicy]),
    default=UnresolvedPolicy.WARN.value,
    show_default=True,
    help="Send unresolved ${name} placeholders literally with a warning, or fail the request",
)
@click.option(  # type: ignore[untyped-decorator]
    "--continue-on-failure",
    is_flag=True,
    default=False,
    help="Keep running remaining requests after a failure in 'all'",
)
@click.option(  # type: ignore[untyped-decorator]
    "--no-watch",
    is_flag=True,
    default=False,
    help="Do not watch the workflow file for external changes",
)
@click.option(  # type: ignore[untyped-decorator]
    "--force-polling",
    is_flag=True,
    default=False,
    help="Poll the workflow file instead of using native change notifications",
)
@click.option(  # type: ignore[untyped-decorator]
    "--tls-verify/--no-tls-verify",
    default=True,
    show_default=True,
    help="Verify TLS certificates",
)
@click.option(  # type: ignore[untyped-decorator]
    "--yes",
    "-y",
    is_flag=True,
    default=False,
    help="Send requests without asking for confirmation",
)
@click.option(  # type: ignore[untyped-decorator]
    "--log-level",
    type=click.Choice(LOG_LEVELS, case_sensitive=False),
    default="WARNING",
    show_default=True,
    help="Logging level",
)
@click.version_option(APILINE_VERSION, prog_name="apiline")  # type: ignore[untyped-decorator]
@click.pass_context  # type: ignore[untyped-decorator]
def main(
    ctx: click.Context,
    workflow_file: Path,
    base_url: str,
    api_key: str,
    start_from: int,
    timeout: float,
    unresolved: str,
    continue_on_failure: bool,
    no_watch: bool,
    force_polling: bool,
    tls_verify: bool,
    yes: bool,
    log_level: str,
) -> None:
    """Execute the API workflow in WORKFLOW_FILE step by step."""
    logging.basicConfig(
        level=getattr(logging, log_level.upper()),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    config = SessionConfig(
        base_url=base_url,
        default_api_key=api_key,
        start_from=start_from - 1,
        timeout=timeout,
        unresolved=unresolved,
        continue_on_failure=continue_on_failure,
        confirm_requests=not yes,
        watch=not no_watch,
        force_polling=force_polling or None,
        verify_ssl=tls_verify,
    )
    output.display_header(APILINE_VERSION, str(workflow_file))
    try:
        document = WorkflowDocument.load(workflow_file, start_from=config.start_from)
    except (WorkflowParseError, WorkflowValidationError) as exc:
        click.secho(f"❌  Failed to load workflow from {workflow_file}", fg="red", bold=True)
        click.echo(f"\n{exc}")
        ctx.exit(1)
    click.echo(f"Loaded {len(document)} requests and {len(document.variables)} variables")

    controller = ExecutionController(document, HttpxTransport(verify_ssl=config.verify_ssl), config)
    watcher = None
    if config.watch:
        watcher = FileWatcher(workflow_file, controller.sync.request_reload, force_polling=config.force_polling)
        watcher.start()
    try:
        InteractiveSession(controller, confirm_requests=config.confirm_requests).run()
    finally:
        if watcher is not None:
            watcher.stop()
        controller.close()

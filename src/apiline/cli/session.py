"""Interactive command loop."""

from __future__ import annotations

import click

from apiline.cli import output
from apiline.workflows.controller import Command, CommandAction, ExecutionController, parse_command
from apiline.workflows.models import PreparedRequest, RunSummary, StepDefinition


class InteractiveSession:
    """Reads operator commands and renders their results.

    External edits of the workflow file are reconciled before each prompt,
    never while a command runs.
    """

    def __init__(self, controller: ExecutionController, confirm_requests: bool = True) -> None:
        self.controller = controller
        self.confirm_requests = confirm_requests

    def run(self) -> None:
        while True:
            self.reconcile_external_edits()
            output.display_menu(self.controller.list_steps(), self.controller.next_index)
            try:
                line = click.prompt("Choice", default="", show_default=False)
            except click.Abort:
                # End of input or Ctrl-C
                click.echo()
                break
            if not self.handle(parse_command(line)):
                break
        click.echo("Goodbye!")

    def reconcile_external_edits(self) -> None:
        report = self.controller.refresh()
        if report is not None:
            output.display_reload(report)

    def handle(self, command: Command) -> bool:
        """Run one command. Returns False when the session should end."""
        action = command.action
        if action == CommandAction.QUIT:
            return False
        if action == CommandAction.SHOW_VARIABLES:
            output.display_variables(self.controller.show_variables())
        elif action == CommandAction.SET_VARIABLE:
            self.set_variable(command.args)
        elif action == CommandAction.LIST_STEPS:
            output.display_steps(self.controller.list_steps(), self.controller.next_index)
        elif action == CommandAction.NEXT:
            outcome = self.controller.execute_next(confirm=self.confirm)
            if outcome is None:
                click.secho("All requests completed", fg="green")
            else:
                output.display_outcome(outcome)
        elif action == CommandAction.EXECUTE:
            self.execute(command.index if command.index is not None else -1)
        elif action == CommandAction.ALL:
            self.execute_all()
        elif action == CommandAction.SKIP:
            self.skip(command.index)
        elif action == CommandAction.RELOAD:
            report = self.controller.refresh(force=True)
            if report is None:
                click.echo("Workflow file unchanged")
            else:
                output.display_reload(report)
        elif action == CommandAction.SAVE:
            error = self.controller.save()
            if error is None:
                click.secho("Workflow saved", fg="green")
            else:
                click.secho(f"⚠️  {error}", fg="yellow")
        elif action == CommandAction.HELP:
            output.display_help()
        elif command.raw:
            click.secho(f"Unknown command: {command.raw}. Type 'h' for help", fg="yellow")
        return True

    def confirm(self, index: int, definition: StepDefinition, request: PreparedRequest) -> bool:
        output.display_request(index, definition.name, request)
        if not self.confirm_requests:
            return True
        return click.confirm("Send request?", default=True)

    def execute(self, index: int) -> None:
        try:
            outcome = self.controller.execute_step(index, confirm=self.confirm)
        except IndexError as e:
            click.secho(f"Invalid step number: {e}", fg="red")
            return
        output.display_outcome(outcome)

    def execute_all(self) -> None:
        total = RunSummary()
        start = None
        while True:
            summary = self.controller.execute_all(confirm=self.confirm, start=start, on_outcome=output.display_outcome)
            total.outcomes.extend(summary.outcomes)
            total.stopped_at = summary.stopped_at
            if not summary.stopped or not self.controller.document.remaining_indexes(summary.stopped_at + 1):
                break
            if not click.confirm("Request failed. Continue with the remaining requests?", default=False):
                break
            start = summary.stopped_at + 1
        if total.outcomes:
            output.display_run_summary(total)
        else:
            click.secho("All requests completed", fg="green")

    def set_variable(self, args: list[str]) -> None:
        name = args[0] if args else click.prompt("Variable name")
        if len(args) > 1:
            value = args[1]
        else:
            value = click.prompt(f"Value for {name}", default="", show_default=False)
        try:
            error = self.controller.set_variable(name, value)
        except ValueError as e:
            click.secho(str(e), fg="red")
            return
        click.secho(f"Set {name} = {output.truncate(value, output.VARIABLE_PREVIEW_LIMIT)}", fg="green")
        if error is not None:
            click.secho(f"⚠️  {error}", fg="yellow")

    def skip(self, index: int | None) -> None:
        try:
            outcome = self.controller.skip(index)
        except IndexError as e:
            click.secho(str(e), fg="red")
            return
        output.display_outcome(outcome)

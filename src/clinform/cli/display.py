"""Rich display helpers for terminal output.

Provides formatted tables for form structure, configuration errors,
validation errors, and read-only answer views.
"""

from __future__ import annotations

from rich.console import Console
from rich.panel import Panel
from rich.table import Table

from clinform.errors import EvaluationError, SchemaConfigurationError
from clinform.handlers.registry import handler_key
from clinform.models.validation import ValidationError
from clinform.session.controller import FormStateController


def display_form_structure(controller: FormStateController, console: Console) -> None:
    """Print one row per field with its page, section, handler tag, and visibility.

    Args:
        controller: A loaded form session.
        console: Rich Console for output.
    """
    form = controller.form
    table = Table(title=f"Form: {form.form.name}", show_lines=False)
    table.add_column("Page", style="bold cyan")
    table.add_column("Section")
    table.add_column("Field", style="bold", no_wrap=True)
    table.add_column("Handler", style="dim")
    table.add_column("Hide expression", style="yellow")
    table.add_column("Visible", justify="center")

    for page in form.form.pages:
        for section in page.sections:
            for field in section.questions:
                if field.config_error is not None:
                    visible = "[bold red]error[/bold red]"
                elif controller.is_visible(field):
                    visible = "[green]yes[/green]"
                else:
                    visible = "[dim]no[/dim]"
                table.add_row(
                    page.label,
                    section.label,
                    field.id,
                    handler_key(field.type, field.rendering),
                    field.hide.hide_when_expression if field.hide else "",
                    visible,
                )

    console.print(table)
    dependencies = form.tracker.as_dict()
    console.print(
        f"[bold]{len(form.fields)}[/bold] fields, "
        f"[bold]{len(form.form.pages)}[/bold] pages, "
        f"[bold]{len(dependencies)}[/bold] determinant field(s)"
    )


def display_configuration_errors(
    errors: list[SchemaConfigurationError],
    evaluation_errors: list[EvaluationError],
    console: Console,
) -> None:
    """Print schema configuration and evaluation problems in a panel."""
    if not errors and not evaluation_errors:
        console.print("[green]No configuration errors[/green]")
        return
    lines = [f"[red]✗[/red] {e.entity}: {e}" for e in errors]
    lines += [f"[yellow]![/yellow] {e}" for e in evaluation_errors]
    console.print(Panel("\n".join(lines), title="Configuration problems", border_style="red"))


def display_validation_errors(
    errors: dict[str, list[ValidationError]],
    controller: FormStateController,
    console: Console,
) -> None:
    """Print all validation errors grouped by field."""
    table = Table(title="Validation Errors", show_lines=True)
    table.add_column("Field", style="bold")
    table.add_column("Label")
    table.add_column("Kind", style="magenta")
    table.add_column("Message", style="red")
    for field_id, field_errors in errors.items():
        label = controller.field(field_id).label
        for error in field_errors:
            table.add_row(field_id, label, error.kind.value, error.message)
    console.print(table)


def display_answers(controller: FormStateController, console: Console) -> None:
    """Print a read-only view of every visible field's answer."""
    for page in controller.visible_pages():
        table = Table(title=page.label, show_header=True, title_style="bold cyan")
        table.add_column("Question", style="bold")
        table.add_column("Answer")
        for section in page.sections:
            if section.is_hidden:
                continue
            for field in section.questions:
                if field.config_error is not None or not controller.is_visible(field):
                    continue
                shown = controller.display_value(field.id)
                table.add_row(field.label or field.id, shown or "[dim]--[/dim]")
        console.print(table)

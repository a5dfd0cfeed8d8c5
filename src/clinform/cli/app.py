"""clinform CLI application entry point.

Provides commands for checking form schemas, filling a form from an answers
file into an encounter payload, and viewing an existing encounter through a
form.

Usage:
    clinform check <schema.json>
    clinform fill <schema.json> --answers <answers.json>
    clinform show <schema.json> --encounter <encounter.json>
"""

from __future__ import annotations

import json
import sys
from pathlib import Path
from typing import Annotated

import typer
from loguru import logger
from rich.console import Console

from clinform.config import EngineConfig
from clinform.errors import ReadOnlySessionError, SchemaConfigurationError
from clinform.models.session import LoadState, SessionMode

app = typer.Typer(
    name="clinform",
    help="Schema-driven clinical form engine.",
    no_args_is_help=True,
)

console = Console()

VerboseOption = Annotated[
    bool,
    typer.Option("--verbose", "-v", help="Show debug logging"),
]
ConfigOption = Annotated[
    Path | None,
    typer.Option("--config", "-c", help="Engine configuration JSON file"),
]


def _configure_logging(verbose: bool) -> None:
    logger.remove()
    logger.add(sys.stderr, level="DEBUG" if verbose else "WARNING")


def _load_config(config_path: Path | None) -> EngineConfig:
    if config_path is None:
        return EngineConfig.from_env()
    try:
        return EngineConfig.from_file(config_path)
    except (FileNotFoundError, ValueError) as e:
        console.print(f"[bold red]Error:[/bold red] {e}")
        raise typer.Exit(code=1) from e


def _read_json(path: Path, what: str) -> dict:
    if not path.is_file():
        console.print(f"[bold red]Error:[/bold red] {what} not found: {path}")
        raise typer.Exit(code=1)
    try:
        data = json.loads(path.read_text())
    except json.JSONDecodeError as e:
        console.print(f"[bold red]Error:[/bold red] {what} is not valid JSON: {e}")
        raise typer.Exit(code=1) from e
    if not isinstance(data, dict):
        console.print(f"[bold red]Error:[/bold red] {what} must be a JSON object")
        raise typer.Exit(code=1)
    return data


def _load_controller(controller) -> None:
    try:
        state = controller.load()
    except SchemaConfigurationError as e:
        console.print(f"[bold red]Schema error:[/bold red] {e}")
        raise typer.Exit(code=1) from e
    if state != LoadState.LOADED:
        console.print(f"[bold red]Error:[/bold red] could not load encounter: {controller.load_error}")
        raise typer.Exit(code=1)


@app.command()
def version() -> None:
    """Show the current version."""
    from clinform import __version__

    console.print(f"clinform {__version__}")


@app.command()
def check(
    schema_path: Annotated[Path, typer.Argument(help="Form schema JSON file")],
    strict: Annotated[
        bool,
        typer.Option("--strict", help="Exit non-zero when any configuration error is found"),
    ] = False,
    config_path: ConfigOption = None,
    verbose: VerboseOption = False,
) -> None:
    """Normalize a form schema and report its structure and problems."""
    from clinform.cli.display import display_configuration_errors, display_form_structure
    from clinform.session.controller import FormStateController

    _configure_logging(verbose)
    schema = _read_json(schema_path, "Schema")
    controller = FormStateController(schema, config=_load_config(config_path))
    _load_controller(controller)

    display_form_structure(controller, console)
    display_configuration_errors(
        controller.form.configuration_errors, controller.form.evaluation_errors, console
    )
    if strict and (controller.form.configuration_errors or controller.form.evaluation_errors):
        raise typer.Exit(code=1)


@app.command()
def fill(
    schema_path: Annotated[Path, typer.Argument(help="Form schema JSON file")],
    answers_path: Annotated[
        Path,
        typer.Option("--answers", "-a", help="JSON object of field id -> answer"),
    ],
    encounter_path: Annotated[
        Path | None,
        typer.Option("--encounter", "-e", help="Existing encounter JSON to edit"),
    ] = None,
    patient: Annotated[str | None, typer.Option("--patient", help="Patient uuid")] = None,
    provider: Annotated[str | None, typer.Option("--provider", help="Provider uuid")] = None,
    location: Annotated[str | None, typer.Option("--location", help="Location uuid")] = None,
    output: Annotated[
        Path | None,
        typer.Option("--output", "-o", help="Write the encounter payload to this file"),
    ] = None,
    save_dir: Annotated[
        Path | None,
        typer.Option("--save-dir", help="Save the encounter into this directory"),
    ] = None,
    config_path: ConfigOption = None,
    verbose: VerboseOption = False,
) -> None:
    """Apply answers to a form, validate them, and produce the encounter payload."""
    from clinform.cli.display import display_validation_errors
    from clinform.resources.file_store import FileEncounterStore
    from clinform.session.collaborators import StaticSessionProvider
    from clinform.session.controller import FormStateController

    _configure_logging(verbose)
    schema = _read_json(schema_path, "Schema")
    answers = _read_json(answers_path, "Answers file")

    encounter_uuid = None
    fetcher = None
    if encounter_path is not None:
        encounter_uuid = _read_json(encounter_path, "Encounter").get("uuid")
        if not encounter_uuid:
            console.print("[bold red]Error:[/bold red] encounter file has no uuid")
            raise typer.Exit(code=1)
        fetcher = FileEncounterStore(encounter_path.parent)

    controller = FormStateController(
        schema,
        patient_uuid=patient,
        encounter_uuid=encounter_uuid,
        fetcher=fetcher,
        saver=FileEncounterStore(save_dir) if save_dir else None,
        session_provider=StaticSessionProvider(provider_uuid=provider, location_uuid=location),
        config=_load_config(config_path),
    )
    _load_controller(controller)

    for field_id, value in answers.items():
        try:
            if field_id.endswith("-unspecified"):
                controller.set_unspecified(field_id.removesuffix("-unspecified"), bool(value))
            else:
                controller.set_value(field_id, value)
        except (KeyError, ValueError, ReadOnlySessionError) as e:
            console.print(f"[bold red]Error:[/bold red] {e}")
            raise typer.Exit(code=1) from e

    if save_dir is not None:
        result = controller.submit()
        if result.errors:
            display_validation_errors(result.errors, controller, console)
            raise typer.Exit(code=1)
        if not result.ok:
            console.print(f"[bold red]Error:[/bold red] {result.message}")
            raise typer.Exit(code=1)
        console.print(f"[green]{result.message}[/green] in {save_dir}")
        payload = result.payload
    else:
        errors = controller.validate()
        if errors:
            display_validation_errors(errors, controller, console)
            raise typer.Exit(code=1)
        payload = controller.build_payload()

    body = json.dumps(payload.to_request(), indent=2, default=str)
    if output is not None:
        output.write_text(body)
        console.print(f"[green]Payload with {len(payload.obs)} observation(s) written to {output}[/green]")
    elif save_dir is None:
        console.print_json(body)


@app.command()
def show(
    schema_path: Annotated[Path, typer.Argument(help="Form schema JSON file")],
    encounter_path: Annotated[
        Path,
        typer.Option("--encounter", "-e", help="Encounter JSON to display"),
    ],
    config_path: ConfigOption = None,
    verbose: VerboseOption = False,
) -> None:
    """Display an existing encounter through a form in read-only mode."""
    from clinform.cli.display import display_answers
    from clinform.resources.file_store import FileEncounterStore
    from clinform.session.controller import FormStateController

    _configure_logging(verbose)
    schema = _read_json(schema_path, "Schema")
    encounter_uuid = _read_json(encounter_path, "Encounter").get("uuid")
    if not encounter_uuid:
        console.print("[bold red]Error:[/bold red] encounter file has no uuid")
        raise typer.Exit(code=1)

    controller = FormStateController(
        schema,
        mode=SessionMode.VIEW,
        encounter_uuid=encounter_uuid,
        fetcher=FileEncounterStore(encounter_path.parent),
        config=_load_config(config_path),
    )
    _load_controller(controller)
    display_answers(controller, console)


if __name__ == "__main__":
    app()

from __future__ import annotations

import logging
from pathlib import Path
from typing import NoReturn

import typer
from rich.console import Console
from rich.prompt import Prompt

from .config import ensure_workspace, save_settings
from .dedupe import entries_without_phone, find_phonebook_duplicates
from .errors import PhonebookError
from .exporter import export_json, export_vcards, write_export
from .importer import ImportOutcome, build_plan, confirm
from .io import read_source_file
from .merge import MergeStrategy, resolve
from .model import MutationOp
from .phone import conversion_intents
from .report import print_duplicate_groups, print_entries, print_outcome, print_plan
from .server import PhonebookApp, serve
from .xml import render_phonebook_xml

app = typer.Typer(
    no_args_is_help=True,
    add_completion=False,
    help="gigaset-phonebook: keep a phonebook for Gigaset base stations, import vCard/JSON files.",
)
console = Console()

_state: dict = {"home": None}


def _app() -> PhonebookApp:
    return PhonebookApp.from_workspace(_state["home"])


def _fail(exc: Exception) -> NoReturn:
    console.print(f"[bold red]{exc}[/bold red]")
    raise typer.Exit(code=2)


@app.callback()
def main(
    home: Path | None = typer.Option(
        None, "--home", envvar="PHONEBOOK_HOME", help="Workspace folder (holds data/ and local/)"
    ),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Debug logging"),
) -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    _state["home"] = home


@app.command(name="serve")
def serve_command(
    host: str | None = typer.Option(None, help="Bind address (default from config)"),
    port: int | None = typer.Option(None, help="Port (default from config)"),
) -> None:
    """Run the HTTP server for the web UI and the base station."""
    serve(_app(), host=host, port=port)


def _dry_run_outcome(plan, strategy: MergeStrategy) -> ImportOutcome:
    intents = resolve(plan, strategy)
    updated = sum(1 for i in intents if i.op is MutationOp.UPDATE)
    return ImportOutcome(
        strategy=strategy,
        inserted=len(intents) - updated,
        updated=updated,
        skipped=len(plan.duplicates) - updated,
    )


@app.command(name="import")
def import_file(
    file: Path = typer.Argument(..., exists=True, dir_okay=False, help="vCard (.vcf) or phonebook .json file"),
    fmt: str | None = typer.Option(None, "--format", "-f", help="vcard or json (default: from extension)"),
    strategy: str | None = typer.Option(
        None, "--strategy", "-s", help="How to treat duplicates: skip, replace or fill-missing"
    ),
    dry_run: bool = typer.Option(False, "--dry-run", help="Preview without writing"),
    yes: bool = typer.Option(False, "--yes", "-y", help="Skip confirmation prompt"),
) -> None:
    """Import contacts, checking them against the stored phonebook first."""
    ctx = _app()
    try:
        candidates = read_source_file(file, fmt)
        plan = build_plan(candidates, ctx.store.list_entries(), max_entries=ctx.settings.max_import_entries)
    except PhonebookError as exc:
        _fail(exc)

    print_plan(plan)
    if plan.blocked:
        console.print("[bold red]Import blocked.[/bold red]")
        raise typer.Exit(code=2)

    try:
        if strategy is not None:
            chosen = MergeStrategy.parse(strategy)
        elif plan.duplicates and not yes:
            answer = Prompt.ask(
                "Duplicates found. Strategy",
                choices=["skip", "replace", "fill-missing"],
                default="skip",
            )
            chosen = MergeStrategy.parse(answer)
        else:
            chosen = MergeStrategy.SKIP
    except PhonebookError as exc:
        _fail(exc)

    if dry_run:
        print_outcome(_dry_run_outcome(plan, chosen), dry_run=True)
        return

    if not yes and not typer.confirm("Apply import?", default=True):
        console.print("[yellow]Aborted.[/yellow]")
        raise typer.Exit(code=0)

    try:
        outcome = confirm(
            {**plan.to_dict(), "strategy": str(chosen)},
            ctx.store,
            max_entries=ctx.settings.max_import_entries,
        )
    except PhonebookError as exc:
        _fail(exc)
    print_outcome(outcome)


@app.command()
def export(
    fmt: str = typer.Option("json", "--format", "-f", help="json or vcf"),
    output: Path | None = typer.Option(None, "--output", "-o", help="Write to file instead of stdout"),
) -> None:
    """Export the phonebook as JSON (re-importable) or vCard."""
    records = _app().store.list_entries()
    if fmt.lower() in ("vcf", "vcard"):
        text = export_vcards(records)
    elif fmt.lower() == "json":
        text = export_json(records)
    else:
        _fail(ValueError(f"Unknown export format: {fmt!r}"))
    if output is None:
        typer.echo(text)
    else:
        write_export(text, output)
        console.print(f"[green]✓[/green] {len(records)} entries written to [bold]{output}[/bold]")


@app.command()
def xml(
    output: Path | None = typer.Option(None, "--output", "-o", help="Write to file instead of stdout"),
) -> None:
    """Render the base-station phonebook XML."""
    text = render_phonebook_xml(_app().store.list_entries())
    if output is None:
        typer.echo(text)
    else:
        write_export(text, output)


@app.command(name="list")
def list_entries(
    search: str | None = typer.Option(None, "--search", "-s", help="Filter by name or number"),
) -> None:
    """Show stored entries."""
    print_entries(_app().store.list_entries(search=search))


@app.command()
def duplicates() -> None:
    """Scan the stored phonebook for entries sharing a number or a name."""
    entries = _app().store.list_entries()
    print_duplicate_groups(find_phonebook_duplicates(entries), len(entries), entries_without_phone(entries))


@app.command(name="convert-phones")
def convert_phones(
    dry_run: bool = typer.Option(False, "--dry-run", help="Only count entries that would change"),
) -> None:
    """Rewrite stored numbers using the phone formatting settings."""
    ctx = _app()
    policy = ctx.settings.phone_policy()
    if not policy.enabled:
        console.print("[yellow]No phone transformation is enabled in settings.[/yellow]")
        raise typer.Exit(code=1)
    intents = conversion_intents(ctx.store.list_entries(), policy)
    if dry_run:
        console.print(f"{len(intents)} entr{'y' if len(intents) == 1 else 'ies'} would change")
        return
    result = ctx.store.apply(intents)
    console.print(f"[green]✓[/green] {result.updated} entries converted")


@app.command()
def settings(
    set_: list[str] = typer.Option([], "--set", help="key=value, repeatable"),
) -> None:
    """Show settings, or change them with --set key=value."""
    paths, current = ensure_workspace(_state["home"])
    if set_:
        updates: dict[str, str] = {}
        for item in set_:
            key, sep, value = item.partition("=")
            if not sep:
                _fail(ValueError(f"Expected key=value, got {item!r}"))
            updates[key.strip()] = value.strip()
        try:
            current = save_settings(paths, updates)
        except PhonebookError as exc:
            _fail(exc)
    for key, value in current.to_dict().items():
        console.print(f"  [dim]{key:<24}[/dim] {value}")


if __name__ == "__main__":
    app()

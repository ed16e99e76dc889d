from __future__ import annotations

from rich.columns import Columns
from rich.console import Console
from rich.panel import Panel
from rich.table import Table
from rich.text import Text

from .dedupe import DuplicateGroup
from .importer import ImportOutcome
from .model import PHONE_FIELDS, ContactRecord, ImportPlan, MatchType, Severity, wire_name
from .phone import same_number

console = Console()

# ── Palette ────────────────────────────────────────────────────────────────────
_ACCENT  = "#4d9fff"
_GREEN   = "#3ecf8e"
_AMBER   = "#f0a500"
_RED     = "#f05c5c"
_TEXT    = "#c9d1e0"
_MID     = "#8896af"
_DIM     = "#546075"
_BORDER  = "#2a3347"

_SLOT_LABELS = {
    "office1": "Office 1", "office2": "Office 2",
    "mobile1": "Mobile 1", "mobile2": "Mobile 2",
    "home1": "Home 1", "home2": "Home 2",
}


def _stat_panel(value: str, label: str, colour: str) -> Panel:
    body = Text()
    body.append(f"{value}\n", style=f"bold {colour}")
    body.append(label, style=f"dim {_DIM}")
    return Panel(body, border_style=_BORDER, padding=(0, 2), expand=True)


def _slot_status(existing: str, imported: str) -> tuple[str, str]:
    if existing and imported and not same_number(existing, imported):
        return "conflict", _AMBER
    if not existing and imported:
        return "new data", _GREEN
    if existing and imported:
        return "same", _DIM
    return "—", _DIM


def print_plan(plan: ImportPlan) -> None:
    console.print()
    console.print(Text("  IMPORT PREVIEW", style=f"dim {_DIM}"))
    console.print()
    errors = sum(1 for i in plan.issues if i.severity is Severity.ERROR)
    console.print(Columns([
        _stat_panel(str(len(plan.new_candidates)), "new contacts", _ACCENT),
        _stat_panel(str(len(plan.duplicates)), "already stored", _AMBER),
        _stat_panel(str(len(plan.issues)), "warnings" if not errors else "issues", _RED if errors else _TEXT),
    ], equal=True, expand=True))
    console.print()

    for match in plan.duplicates:
        table = Table(
            title=f"{match.candidate.display_name}  [dim](matched by {match.match_type})[/dim]",
            title_justify="left",
            show_lines=False,
            border_style=_BORDER,
        )
        table.add_column("Field", style=_MID, no_wrap=True)
        table.add_column("Existing")
        table.add_column("Imported")
        table.add_column("Status")
        for field in PHONE_FIELDS:
            existing = getattr(match.existing, field)
            imported = getattr(match.candidate, field)
            status, colour = _slot_status(existing, imported)
            table.add_row(_SLOT_LABELS[field], existing or "—", imported or "—", Text(status, style=colour))
        console.print(table)
        console.print()

    for issue in plan.issues:
        colour = _RED if issue.severity is Severity.ERROR else _AMBER
        row = Text()
        row.append(f"  {'✗' if colour == _RED else '!'} ", style=f"bold {colour}")
        row.append(issue.message, style=_TEXT)
        console.print(row)
    if plan.issues:
        console.print()


def print_outcome(outcome: ImportOutcome, dry_run: bool = False) -> None:
    console.print(Columns([
        _stat_panel(str(outcome.inserted), "inserted", _ACCENT),
        _stat_panel(str(outcome.updated), "updated", _GREEN),
        _stat_panel(str(outcome.skipped), "skipped", _TEXT),
    ], equal=True, expand=True))
    if outcome.stale:
        console.print(Text("  Phonebook changed since preview; duplicates re-checked.", style=f"dim {_AMBER}"))
    if not dry_run:
        body = Text()
        body.append("✓  Import applied", style=f"bold {_GREEN}")
        body.append(f"  strategy: {outcome.strategy}", style=f"dim {_MID}")
        console.print(Panel(body, border_style=_GREEN, padding=(0, 2)))


def print_entries(records: list[ContactRecord]) -> None:
    table = Table(show_lines=False, border_style=_BORDER)
    table.add_column("Surname", style="bold")
    table.add_column("Name")
    for field in PHONE_FIELDS:
        table.add_column(wire_name(field), style=_MID)
    for r in records:
        table.add_row(r.surname, r.given_name, *(getattr(r, f) for f in PHONE_FIELDS))
    console.print(table)
    console.print(Text(f"  {len(records)} entr{'y' if len(records) == 1 else 'ies'}", style=f"dim {_DIM}"))


def print_duplicate_groups(groups: list[DuplicateGroup], total: int, no_phone: list[ContactRecord]) -> None:
    console.print()
    console.print(Columns([
        _stat_panel(str(total), "entries scanned", _ACCENT),
        _stat_panel(str(len(groups)), "duplicate groups", _AMBER if groups else _TEXT),
        _stat_panel(str(len(no_phone)), "without phone", _RED if no_phone else _TEXT),
    ], equal=True, expand=True))
    console.print()

    for group in groups:
        if group.match_type is MatchType.PHONE:
            title = f"Same phone number  [bold]{group.key}[/bold]"
        else:
            title = f"Same name  [bold]{group.key.replace('|', ', ')}[/bold]"
        table = Table(title=title, title_justify="left", border_style=_BORDER)
        table.add_column("Name", style="bold")
        table.add_column("Numbers", style=_MID)
        table.add_column("ID", style=f"dim {_DIM}")
        for entry in group.entries:
            table.add_row(entry.display_name, ", ".join(entry.phones()) or "—", entry.id or "")
        console.print(table)
        console.print()

    for entry in no_phone:
        row = Text()
        row.append("  ! ", style=f"bold {_AMBER}")
        row.append(f"{entry.display_name}: no phone number", style=_TEXT)
        console.print(row)
    if not groups and not no_phone:
        console.print(Text("  ✓  No duplicates found", style=f"bold {_GREEN}"))

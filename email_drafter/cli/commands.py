"""CLI command implementations — AI commands delegate to EmailComposer."""

from __future__ import annotations

import asyncio
import json
import logging
from typing import TYPE_CHECKING

import click
from rich import box
from rich.console import Console, Group
from rich.live import Live
from rich.panel import Panel
from rich.table import Table
from rich.text import Text

from email_drafter.processing.types import ARCHETYPE_LABEL, Archetype, ComposedEmail
from email_drafter.streaming.events import (
    BodyPartial,
    Classified,
    Done,
    Error,
    EventKind,
    SubjectReady,
)
from email_drafter.streaming.orchestrator import ConfigurationError, EmailComposer

if TYPE_CHECKING:
    from email_drafter.storage.db import DraftDatabase
    from email_drafter.storage.models import DraftRecord

logger = logging.getLogger(__name__)
console = Console(width=200)

_ARCHETYPE_STYLE: dict[Archetype, str] = {
    Archetype.SALES: "magenta",
    Archetype.FOLLOW_UP: "cyan",
}


def _archetype_markup(archetype: Archetype) -> str:
    style = _ARCHETYPE_STYLE[archetype]
    return f"[{style}]{ARCHETYPE_LABEL[archetype]}[/{style}]"


def _email_panel(subject: str, body: str, archetype: Archetype | None) -> Panel:
    title = f"[bold]{subject or '…'}[/bold]"
    subtitle = _archetype_markup(archetype) if archetype else None
    return Panel(Text(body), title=title, subtitle=subtitle, border_style="green")


# ── classify ─────────────────────────────────────────────────────────────────


@click.command()
@click.argument("prompt")
def classify(prompt: str) -> None:
    """Show which email archetype PROMPT would be generated as."""
    try:
        archetype = asyncio.run(EmailComposer.from_env().classify(prompt))
    except ConfigurationError as exc:
        console.print(f"[red]{exc}[/red]")
        raise SystemExit(1) from exc
    console.print(f"Classification: {_archetype_markup(archetype)} ({archetype.value})")


# ── generate ─────────────────────────────────────────────────────────────────


@click.command()
@click.argument("prompt")
@click.option("--recipient", default="", help="Context about the recipient.")
@click.option("--to", "to_addr", default="", help="Recipient address (required with --save).")
@click.option("--cc", default="", help="Cc addresses.")
@click.option("--bcc", default="", help="Bcc addresses.")
@click.option("--save", is_flag=True, help="Store the generated email as a draft.")
@click.option("--json", "as_json", is_flag=True, help="Print the result as JSON.")
@click.pass_obj
def generate(
    db: DraftDatabase,
    prompt: str,
    recipient: str,
    to_addr: str,
    cc: str,
    bcc: str,
    save: bool,
    as_json: bool,
) -> None:
    """Classify PROMPT and generate a complete email in one step."""
    if save and not to_addr:
        raise click.UsageError("--to is required with --save")

    try:
        composed = asyncio.run(EmailComposer.from_env().run(prompt, recipient))
    except ConfigurationError as exc:
        console.print(f"[red]{exc}[/red]")
        raise SystemExit(1) from exc
    except ValueError as exc:
        raise click.UsageError(str(exc)) from exc

    if as_json:
        click.echo(json.dumps(composed.to_dict()))
    else:
        console.print(_email_panel(composed.subject, composed.body, composed.archetype))

    if save:
        _save_draft(db, composed, to_addr, cc, bcc)


def _save_draft(
    db: DraftDatabase, composed: ComposedEmail, to_addr: str, cc: str, bcc: str
) -> None:
    try:
        draft = db.create_from_composed(composed, to=to_addr, cc=cc, bcc=bcc)
    except ValueError as exc:
        console.print(f"[red]Could not save draft: {exc}[/red]")
        raise SystemExit(1) from exc
    console.print(f"[green]Saved draft #{draft.id}.[/green]")


# ── stream ───────────────────────────────────────────────────────────────────


@click.command()
@click.argument("prompt")
@click.option("--recipient", default="", help="Context about the recipient.")
@click.option("--json", "as_json", is_flag=True, help="Print one JSON event per line.")
def stream(prompt: str, recipient: str, as_json: bool) -> None:
    """Generate an email for PROMPT, showing progress as it is written."""
    try:
        ok = asyncio.run(_stream_async(prompt, recipient, as_json))
    except ValueError as exc:
        raise click.UsageError(str(exc)) from exc
    if not ok:
        raise SystemExit(1)


async def _stream_async(prompt: str, recipient: str, as_json: bool) -> bool:
    """Consume the event stream. Returns False if it ended in an Error event."""
    composer = EmailComposer.from_env()
    async with composer.stream(prompt, recipient) as events:
        if as_json:
            ok = True
            async for event in events:
                click.echo(json.dumps(event.to_dict()))
                ok = event.kind is not EventKind.ERROR
            return ok

        status = Text("Classifying…", style="dim")
        archetype: Archetype | None = None
        subject = ""
        body = ""
        ok = True
        with Live(Group(status), console=console, refresh_per_second=20) as live:
            async for event in events:
                if isinstance(event, Error):
                    live.update(Group(Text(event.message, style="red")))
                    ok = False
                    break
                if isinstance(event, Classified):
                    archetype = event.archetype
                    status = Text.from_markup(
                        f"Writing a {_archetype_markup(archetype)} email…"
                    )
                elif isinstance(event, SubjectReady):
                    subject = event.subject
                elif isinstance(event, BodyPartial):
                    body = event.text
                elif isinstance(event, Done):
                    status = Text("Done.", style="green")
                live.update(Group(status, _email_panel(subject, body, archetype)))
    return ok


# ── drafts ───────────────────────────────────────────────────────────────────


@click.group()
def drafts() -> None:
    """List, show, edit, and delete saved drafts."""


def _draft_panel(draft: DraftRecord) -> Panel:
    header = f"To: {draft.to}"
    if draft.cc:
        header += f"\nCc: {draft.cc}"
    if draft.bcc:
        header += f"\nBcc: {draft.bcc}"
    return Panel(
        Text(f"{header}\n\n{draft.body}"),
        title=f"[bold]#{draft.id} {draft.subject}[/bold]",
        subtitle=f"[dim]{draft.created_at}[/dim]",
        border_style="blue",
    )


@drafts.command(name="list")
@click.option("--limit", default=20, show_default=True, help="Number of drafts.")
@click.pass_obj
def list_drafts(db: DraftDatabase, limit: int) -> None:
    """Show the most recent drafts."""
    records = db.list_recent(limit)
    if not records:
        console.print("[yellow]No drafts saved yet.[/yellow]")
        return

    table = Table(box=box.ROUNDED, show_header=True, header_style="bold cyan")
    table.add_column("#", style="dim", width=5)
    table.add_column("To", max_width=30)
    table.add_column("Subject", max_width=50)
    table.add_column("Created", width=20)
    for draft in records:
        table.add_row(str(draft.id), draft.to, draft.subject, draft.created_at)
    console.print(table)


@drafts.command(name="show")
@click.argument("draft_id", type=int)
@click.pass_obj
def show_draft(db: DraftDatabase, draft_id: int) -> None:
    """Show a single draft."""
    draft = db.get(draft_id)
    if draft is None:
        console.print(f"[red]Draft #{draft_id} not found.[/red]")
        raise SystemExit(1)
    console.print(_draft_panel(draft))


@drafts.command(name="edit")
@click.argument("draft_id", type=int)
@click.option("--to", "to_addr", default="", help="Recipient address.")
@click.option("--cc", default="", help="Cc addresses.")
@click.option("--bcc", default="", help="Bcc addresses.")
@click.option("--subject", default="", help="New subject (keeps the old one if omitted).")
@click.option("--body", default="", help="New body.")
@click.pass_obj
def edit_draft(
    db: DraftDatabase,
    draft_id: int,
    to_addr: str,
    cc: str,
    bcc: str,
    subject: str,
    body: str,
) -> None:
    """Replace a draft's fields."""
    draft = db.update(draft_id, to=to_addr, cc=cc, bcc=bcc, subject=subject, body=body)
    if draft is None:
        console.print(f"[red]Draft #{draft_id} not found.[/red]")
        raise SystemExit(1)
    console.print(f"[green]Updated draft #{draft.id}.[/green]")


@drafts.command(name="delete")
@click.argument("draft_id", type=int)
@click.pass_obj
def delete_draft(db: DraftDatabase, draft_id: int) -> None:
    """Delete a draft."""
    if not db.delete(draft_id):
        console.print(f"[red]Draft #{draft_id} not found.[/red]")
        raise SystemExit(1)
    console.print(f"[green]Deleted draft #{draft_id}.[/green]")

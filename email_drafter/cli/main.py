"""CLI entry point for the AI email drafter."""

import logging
import os
from pathlib import Path

import click
from dotenv import load_dotenv

from email_drafter.storage.db import DraftDatabase

logger = logging.getLogger(__name__)


@click.group()
@click.option("--verbose", "-v", is_flag=True, help="Log pipeline progress at INFO level.")
@click.pass_context
def cli(ctx: click.Context, verbose: bool) -> None:
    """AI email drafter — classify, generate, stream, and manage drafts."""
    load_dotenv()
    logging.basicConfig(
        level=logging.INFO if verbose else logging.WARNING,
        format="%(asctime)s %(levelname)-8s %(name)s — %(message)s",
    )
    db = DraftDatabase(db_path=Path(os.environ.get("DRAFTS_DB_PATH", "data/drafts.db")))
    ctx.obj = db
    ctx.call_on_close(db.close)


# Import and register commands after cli is defined to avoid circular imports.
from email_drafter.cli.commands import classify, drafts, generate, stream  # noqa: E402

cli.add_command(classify)
cli.add_command(generate)
cli.add_command(stream)
cli.add_command(drafts)

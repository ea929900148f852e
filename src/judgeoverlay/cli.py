"""CLI for judgeoverlay, built on cyclopts (same framework as FastMCP's CLI)."""

from __future__ import annotations

import json
import sys
from pathlib import Path

import cyclopts
from rich import print as rprint
from rich.console import Console
from rich.table import Table

app = cyclopts.App(
    name="judgeoverlay",
    help="judgeoverlay — judge review overlay MCP server.",
)

_PREVIEW_LENGTH = 60


@app.default
def serve() -> None:
    """Run the judgeoverlay MCP server (default command)."""
    from judgeoverlay.server import mcp  # noqa: PLC0415

    mcp.run()


@app.command(name="lines")
def lines(path: Path) -> None:
    """Print the line table of a document JSON file.

    Line N is the Nth text block in document order, shown with its
    start/end positions and a preview of its text.

    Args:
        path: Document JSON file (``{"type": "doc", "content": [...]}``).
    """
    from judgeoverlay.config import get_config  # noqa: PLC0415
    from judgeoverlay.document import DocNode, text_between  # noqa: PLC0415
    from judgeoverlay.lines import build_line_index  # noqa: PLC0415

    try:
        doc = DocNode.from_json(json.loads(path.read_text(encoding="utf-8")))
    except (OSError, ValueError) as exc:
        rprint(f"[red]Could not read document {path}:[/red] {exc}")
        sys.exit(1)

    schema = get_config().document
    table = Table(title=f"{path.name}: line table")
    table.add_column("Line", justify="right")
    table.add_column("Start", justify="right")
    table.add_column("End", justify="right")
    table.add_column("Text")
    for span in build_line_index(doc, schema):
        preview = text_between(doc, span.start, span.end, schema)
        if len(preview) > _PREVIEW_LENGTH:
            preview = preview[: _PREVIEW_LENGTH - 3] + "..."
        table.add_row(str(span.line), str(span.start), str(span.end), preview)
    Console().print(table)


@app.command(name="mentions")
def mentions_command(text: str, *, roster: Path | None = None) -> None:
    """Show the mentions in TEXT and the text with them removed.

    Args:
        text: Free text containing ``@token`` or ``@{Display Name}`` mentions.
        roster: Optional JSON file with a list of ``{"id", "name"}`` reviewers to match against.
    """
    from judgeoverlay import mentions  # noqa: PLC0415
    from judgeoverlay.models import Reviewer  # noqa: PLC0415

    directory = None
    if roster is not None:
        try:
            reviewers = [Reviewer.model_validate(item) for item in json.loads(roster.read_text(encoding="utf-8"))]
        except (OSError, ValueError) as exc:
            rprint(f"[red]Could not read roster {roster}:[/red] {exc}")
            sys.exit(1)
        directory = mentions.MentionDirectory(reviewers)

    table = Table(title="Mentions")
    table.add_column("Token")
    table.add_column("Key")
    table.add_column("Reviewer")
    for token in mentions.parse_mentions(text):
        match = directory.lookup(token.raw) if directory is not None else None
        reviewer = match.name if match else ("[yellow]unknown[/yellow]" if directory is not None else "")
        table.add_row(token.raw, token.key, reviewer)
    Console().print(table)
    rprint(f"Stripped: {mentions.strip(text)!r}")


@app.command(name="config")
def config_cmd(*, init: bool = False, update: bool = False, clean: bool = False) -> None:
    """Manage ``.judgeoverlay.toml`` in the current directory.

    Args:
        init: Create a new config file with every section documented.
        update: Append missing sections and comment out deprecated keys.
        clean: Remove deprecated keys.
    """
    from judgeoverlay.config import clean_config, init_config, update_config  # noqa: PLC0415

    chosen = [flag for flag, on in (("--init", init), ("--update", update), ("--clean", clean)) if on]
    if len(chosen) != 1:
        rprint("[red]Pass exactly one of --init, --update or --clean.[/red]")
        sys.exit(1)

    if init:
        init_config()
    elif update:
        update_config()
    else:
        clean_config()

"""
CLI interface for schemedoc with Rich output.
"""

import logging
import sys
from pathlib import Path
from typing import Optional

import click
from rich.console import Console
from rich.logging import RichHandler
from rich.panel import Panel
from rich.syntax import Syntax
from rich.table import Table
from rich.text import Text

from schemedoc import Document, DocumentBuilder, SessionManager
from schemedoc.config import get_settings
from schemedoc.errors import DocumentError, FormattingError
from schemedoc.reader import is_complete
from schemedoc.render import format_rich_output, get_outcome_status


console = Console()
err_console = Console(stderr=True)


def _configure_logging(verbose: bool):
    level = logging.DEBUG if verbose else get_settings().log_level.upper()
    logging.basicConfig(
        level=level,
        format="%(message)s",
        handlers=[RichHandler(console=err_console, show_path=False)],
        force=True,
    )


def _load_document(path: str) -> Document:
    settings = get_settings()
    try:
        return Document.from_path(Path(path), languages=settings.example_languages)
    except DocumentError as e:
        err_console.print(f"[red]{e}[/red]")
        sys.exit(1)


@click.group()
@click.option("--verbose", "-v", is_flag=True, help="Enable debug logging")
def main(verbose: bool):
    """schemedoc: evaluate the Scheme examples of a guide and render their output."""
    _configure_logging(verbose)


@main.command()
@click.argument("path", type=click.Path(exists=True))
@click.option("--output", "-o", type=click.Path(), default=None, help="Write the rendered document here")
@click.option("--persist/--no-persist", default=None, help="Load and save named sessions as checkpoints")
@click.option("--save-json", type=click.Path(), default=None, help="Also save the evaluated document as JSON")
def build(path: str, output: Optional[str], persist: Optional[bool], save_json: Optional[str]):
    """Evaluate a document's examples and render it."""
    doc = _load_document(path)
    builder = DocumentBuilder(SessionManager(get_settings().sessions_dir))

    try:
        report = builder.build(doc, persist=persist)
    except FormattingError as e:
        err_console.print(f"[red]Formatting error: {e}[/red]")
        sys.exit(1)

    if output:
        Path(output).write_text(report.rendered, encoding="utf-8")
    else:
        click.echo(report.rendered, nl=False)

    if save_json:
        doc.save(Path(save_json))

    if report.error_count:
        err_console.print(
            f"[yellow]{report.fragment_count} fragments evaluated, {report.error_count} error(s)[/yellow]"
        )
    else:
        err_console.print(f"[green]{report.fragment_count} fragments evaluated[/green]")


@main.command()
@click.argument("path", type=click.Path(exists=True))
def run(path: str):
    """Evaluate a document and show its transcript on the console."""
    doc = _load_document(path)
    builder = DocumentBuilder(SessionManager(get_settings().sessions_dir))

    console.print(Panel(
        f"[bold]{doc.name}[/bold]  [dim]{path}[/dim]",
        title="[bold blue]schemedoc[/bold blue]",
        border_style="blue",
    ))
    console.print()

    blocks = [(i, b) for i, b in doc.example_blocks() if b.evaluate]
    if not blocks:
        console.print("[yellow]No example blocks to evaluate[/yellow]")
        return

    try:
        report = builder.build(doc, persist=False)
    except FormattingError as e:
        console.print(f"[red]Formatting error: {e}[/red]")
        sys.exit(1)

    for block_index, block in blocks:
        session = f"  session={block.session}" if block.session else ""
        console.print(f"[dim]--- Block {block_index}{session} ---[/dim]")
        for fragment, outputs in zip(block.fragments, block.outputs):
            status, style = get_outcome_status(outputs)
            console.print(Syntax(fragment.source, "scheme", theme="monokai", line_numbers=False))
            for out in outputs:
                console.print(format_rich_output(out))
            console.print(Text(status, style=style), justify="right")
        console.print()

    if report.error_count:
        console.print(f"[yellow]{report.fragment_count} fragments, {report.error_count} error(s)[/yellow]")
    else:
        console.print(f"[green]All {report.fragment_count} fragments evaluated successfully[/green]")


@main.command()
@click.option("--session", "-s", default="repl", help="Session name")
@click.option("--load", "load_path", type=click.Path(exists=True), default=None, help="Load a saved session first")
def repl(session: str, load_path: Optional[str]):
    """Interactive session. Commands: :quit, :reset, :save [NAME], :names."""
    settings = get_settings()
    sm = SessionManager(settings.sessions_dir)
    kernel = sm.get_kernel(session)

    if load_path:
        info = sm.load_session(kernel, Path(load_path))
        console.print(f"[dim]Loaded {len(info['restored_vars'])} bindings[/dim]")

    console.print(f"[bold blue]schemedoc[/bold blue] [dim]session {session}; :quit to exit[/dim]")

    prompt = settings.prompt
    buffer: list[str] = []
    while True:
        try:
            line = console.input(prompt if not buffer else " " * len(prompt), markup=False)
        except (EOFError, KeyboardInterrupt):
            break

        if not buffer:
            command = line.strip()
            if command in (":quit", ":q"):
                break
            if command == ":reset":
                sm.reset_session(session)
                console.print("[dim]Session reset[/dim]")
                continue
            if command.startswith(":save"):
                name = command[len(":save"):].strip() or session
                saved = sm.save_session(kernel, name=name)
                console.print(f"[dim]Saved to {saved}[/dim]")
                continue
            if command == ":names":
                console.print(" ".join(kernel.get_defined_names()) or "[dim](none)[/dim]")
                continue
            if not command:
                continue

        buffer.append(line)
        source = "\n".join(buffer)
        if not is_complete(source):
            continue
        buffer.clear()

        result = kernel.execute_fragment(source)
        try:
            outputs = result.to_outputs()
        except FormattingError as e:
            console.print(f"[red]Formatting error: {e}[/red]")
            continue
        for out in outputs:
            console.print(format_rich_output(out))


@main.command()
def sessions():
    """List saved sessions."""
    sm = SessionManager(get_settings().sessions_dir)
    sessions_list = sm.list_sessions()

    if not sessions_list:
        console.print("[yellow]No saved sessions found[/yellow]")
        console.print("[dim]Save a session with :save in the repl, or build with --persist[/dim]")
        return

    table = Table(
        title="Saved Sessions",
        border_style="blue",
        show_lines=True,
    )
    table.add_column("#", style="bold cyan", justify="right")
    table.add_column("Name", style="white")
    table.add_column("Saved At", style="dim")
    table.add_column("Bindings", justify="right", style="green")

    for i, session in enumerate(sessions_list):
        table.add_row(
            str(i),
            session.get("name", ""),
            session.get("saved_at", "") or "",
            str(session.get("var_count", 0)),
        )

    console.print(table)


if __name__ == "__main__":
    main()

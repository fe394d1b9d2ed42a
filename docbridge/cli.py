"""CLI entry point for docbridge."""

from __future__ import annotations

from pathlib import Path
from typing import Annotated

import typer
import yaml
from rich import print as rprint
from rich.console import Console
from rich.markup import escape
from rich.syntax import Syntax
from rich.table import Table

from docbridge.config import DocBridgeConfig, load_config
from docbridge.config.loader import DEFAULT_CONFIG_TEMPLATE, PROJECT_CONFIG
from docbridge.converter import ADAPTERS, ConversionResult, FormatTag, export_document, import_document
from docbridge.errors import ConversionError
from docbridge.log import configure_logging

app = typer.Typer(
    name="docbridge",
    help="Convert between Markdown and docx, xlsx, pptx and pdf.",
    no_args_is_help=True,
)

config_app = typer.Typer(help="Manage docbridge configuration.")
app.add_typer(config_app, name="config")

err_console = Console(stderr=True)

# Global state
_config: DocBridgeConfig | None = None


def _get_config() -> DocBridgeConfig:
    if _config is None:
        return load_config()
    return _config


def _fail(message: str) -> typer.Exit:
    err_console.print(f"[red]Error:[/red] {escape(message)}", soft_wrap=True)
    return typer.Exit(1)


def _report_warnings(result: ConversionResult) -> None:
    for warning in result.warnings:
        err_console.print(
            f"[yellow]warning[/yellow] {warning.code}: {escape(warning.message)}", soft_wrap=True
        )


def _resolve_tag(tag: str | None, path: str) -> FormatTag:
    return FormatTag.parse(tag) if tag else FormatTag.from_path(path)


@app.callback()
def main(
    config: Annotated[
        str | None, typer.Option("--config", "-c", help="Path to docbridge.yaml")
    ] = None,
    verbose: Annotated[
        bool, typer.Option("--verbose", "-v", help="Log debug output to stderr")
    ] = False,
) -> None:
    """Global options."""
    global _config
    try:
        _config = load_config(config)
    except ValueError as e:
        raise _fail(str(e))
    configure_logging("debug" if verbose else _config.log_level, _config.log_format)


@app.command("import")
def import_cmd(
    source: str = typer.Argument(..., help="Document to read"),
    fmt: str | None = typer.Option(None, "--format", "-f", help="docx, xlsx, pptx or pdf (default: from extension)"),
    output: str | None = typer.Option(None, "--output", "-o", help="Write markdown to file instead of stdout"),
) -> None:
    """Convert a document to Markdown."""
    cfg = _get_config()
    try:
        result = import_document(source, _resolve_tag(fmt, source), config=cfg)
    except ConversionError as e:
        raise _fail(str(e))

    _report_warnings(result)
    if output:
        try:
            Path(output).write_text(result.markdown, encoding="utf-8")
        except OSError as e:
            raise _fail(f"cannot write {output}: {e}")
        rprint(f"[green]Written to[/green] {escape(output)}")
    else:
        typer.echo(result.markdown, nl=False)


@app.command("export")
def export_cmd(
    source: str = typer.Argument(..., help="Markdown file to convert"),
    output: str = typer.Option(..., "--output", "-o", help="Destination document"),
    fmt: str | None = typer.Option(None, "--format", "-f", help="docx, xlsx, pptx or pdf (default: from extension)"),
) -> None:
    """Convert a Markdown file to a document."""
    cfg = _get_config()
    src = Path(source)
    try:
        tag = _resolve_tag(fmt, output)
        markdown = src.read_text(encoding="utf-8")
    except ConversionError as e:
        raise _fail(str(e))
    except (OSError, UnicodeDecodeError) as e:
        raise _fail(f"cannot read {source}: {e}")

    if cfg.images.base_dir is None:
        # relative image paths resolve against the Markdown file
        cfg = cfg.model_copy(deep=True)
        cfg.images.base_dir = str(src.resolve().parent)

    try:
        result = export_document(markdown, output, tag, config=cfg)
    except ConversionError as e:
        raise _fail(str(e))

    _report_warnings(result)
    rprint(f"[green]Wrote[/green] {escape(result.output_path or output)}")


@app.command()
def formats() -> None:
    """List supported formats."""
    table = Table(title="Supported formats")
    table.add_column("Tag", style="cyan")
    table.add_column("Extensions", style="green")
    table.add_column("Description")
    table.add_column("Directions", style="yellow")
    for tag, adapter in ADAPTERS.items():
        table.add_row(tag.value, ", ".join(adapter.extensions), adapter.label, "import, export")
    rprint(table)


# ── config ──────────────────────────────────────────────────────────


@config_app.command("show")
def config_show() -> None:
    """Show current resolved configuration."""
    cfg = _get_config()
    rprint(Syntax(yaml.dump(cfg.model_dump(), default_flow_style=False), "yaml"))


@config_app.command("init")
def config_init(
    force: bool = typer.Option(False, "--force", help="Overwrite existing config"),
) -> None:
    """Create a default docbridge.yaml in the current directory."""
    target = Path(PROJECT_CONFIG)
    if target.exists() and not force:
        rprint("[yellow]docbridge.yaml already exists.[/yellow] Use --force to overwrite.")
        raise typer.Exit(1)
    target.write_text(DEFAULT_CONFIG_TEMPLATE)
    rprint(f"[green]Created[/green] {target}")


if __name__ == "__main__":
    app()

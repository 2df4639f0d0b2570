"""Freshen CLI entry point."""

import importlib
import logging
import sys
from pathlib import Path

import click
from rich.console import Console
from rich.logging import RichHandler
from rich.table import Table

from freshen import __version__
from freshen.app import Application

console = Console()


def setup_logging(verbose: bool = False) -> None:
    """Configure logging with rich handler."""
    level = logging.DEBUG if verbose else logging.INFO
    logging.basicConfig(
        level=level,
        format="%(message)s",
        datefmt="[%X]",
        handlers=[RichHandler(rich_tracebacks=True, console=console)],
    )


def load_application(target: str, app_dir: str = ".") -> Application:
    """Import ``module:attribute`` and return the application it names.

    Raises:
        click.BadParameter: If the target is malformed or not an Application.
    """
    module_name, _, attribute = target.partition(":")
    if not module_name or not attribute:
        raise click.BadParameter(f"expected 'module:attribute', got {target!r}", param_hint="TARGET")

    search_path = str(Path(app_dir).resolve())
    if search_path not in sys.path:
        sys.path.insert(0, search_path)

    try:
        module = importlib.import_module(module_name)
    except ModuleNotFoundError as e:
        raise click.BadParameter(f"cannot import {module_name}: {e}", param_hint="TARGET") from e

    app = getattr(module, attribute, None)
    if not isinstance(app, Application):
        raise click.BadParameter(f"{target} is not a freshen Application", param_hint="TARGET")
    return app


@click.group()
@click.version_option(__version__, prog_name="freshen")
@click.option("-v", "--verbose", is_flag=True, help="Enable verbose logging")
@click.pass_context
def cli(ctx: click.Context, verbose: bool) -> None:
    """Freshen - reload application code on each request, without restarting."""
    ctx.ensure_object(dict)
    ctx.obj["verbose"] = verbose
    setup_logging(verbose)


@cli.command()
@click.argument("target")
@click.option("--host", default="127.0.0.1", help="Host to bind to")
@click.option("--port", default=8080, help="Port to bind to")
@click.option("--app-dir", default=".", help="Directory to import the application from")
def serve(target: str, host: str, port: int, app_dir: str) -> None:
    """Serve the application TARGET (module:attribute) in this process."""
    import uvicorn

    app = load_application(target, app_dir)
    if app.reloader is None:
        console.print("[yellow]Reloading is disabled for this application[/yellow]")

    console.print(f"[bold green]Serving {target} on {host}:{port}[/bold green]")
    uvicorn.run(app, host=host, port=port, workers=1)


@cli.command()
@click.argument("target")
@click.option("--app-dir", default=".", help="Directory to import the application from")
def watchers(target: str, app_dir: str) -> None:
    """List the files watched for the application TARGET."""
    app = load_application(target, app_dir)
    if app.reloader is None:
        console.print("[yellow]Reloading is disabled for this application[/yellow]")
        return

    table = Table(title=f"Watched files for {target}")
    table.add_column("File", style="cyan", overflow="fold")
    table.add_column("Elements", justify="right")
    table.add_column("Kinds")
    table.add_column("Status")

    for watcher in app.reloader.watchers(app):
        kinds = sorted({element.kind.value for element in watcher.elements})
        if watcher.ignored:
            status = "[dim]ignored[/dim]"
        elif watcher.removed:
            status = "[red]removed[/red]"
        elif watcher.updated:
            status = "[yellow]changed[/yellow]"
        else:
            status = "[green]current[/green]"
        table.add_row(str(watcher.path), str(len(watcher.elements)), ", ".join(kinds), status)

    console.print(table)


def main() -> None:
    """Main entry point."""
    cli()


if __name__ == "__main__":
    main()

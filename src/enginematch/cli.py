"""Command-line interface for enginematch."""

import typer
from loguru import logger
from rich.console import Console

from enginematch import __version__
from enginematch.configs import load_match_config
from enginematch.errors import ConfigurationError
from enginematch.tournament import ConsoleSink, EngineMatch
from enginematch.utils import setup_logging

app = typer.Typer(
    name="enginematch",
    help="enginematch: automated engine-vs-engine chess matches",
    add_completion=False,
)
console = Console()


@app.command()
def version() -> None:
    """Print version information."""
    console.print(f"[bold blue]enginematch[/bold blue] v{__version__}")


@app.command()
def match(
    config: str = typer.Argument(..., help="Path to the match YAML config"),
    overrides: list[str] | None = typer.Argument(None, help="Overrides, e.g. sprt.elo1=5"),
    debug: bool = typer.Option(False, "--debug", help="Echo protocol traffic"),
) -> None:
    """Run a match between the configured engines."""
    try:
        match_config = load_match_config(config, overrides)
    except ConfigurationError as e:
        console.print(f"[bold red]Error:[/bold red] {e}")
        raise typer.Exit(code=1) from e

    if debug:
        match_config.debug = True
    setup_logging(
        level=match_config.output.log_level,
        log_file=match_config.output.log_file,
        file_level="TRACE" if match_config.debug else None,
    )

    engine_match = EngineMatch(match_config, sink=ConsoleSink(console))
    try:
        engine_match.start()
    except ConfigurationError as e:
        console.print(f"[bold red]Error:[/bold red] {e}")
        raise typer.Exit(code=1) from e

    try:
        engine_match.wait()
    except KeyboardInterrupt:
        logger.warning("Interrupted: finishing games in progress")
        engine_match.stop()
        engine_match.wait()


if __name__ == "__main__":
    app()

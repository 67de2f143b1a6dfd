"""RTD CLI - Runtime Detection Command Line Interface."""
import logging
import sys
from typing import Optional

import typer
from rich.console import Console
from rich.table import Table
from rich.logging import RichHandler

from rtd_core import api
from rtd_core.config import get_config, get_config_manager
from rtd_core.detector import get_detector
from rtd_core.exceptions import RTDError

# Setup logging
logging.basicConfig(
    level=logging.ERROR,
    format="%(message)s",
    handlers=[RichHandler(rich_tracebacks=True, show_path=False)]
)
logger = logging.getLogger("rtd")

# config debug level -> logging level
DEBUG_LEVELS = {
    0: logging.ERROR,
    1: logging.WARNING,
    2: logging.INFO,
    3: logging.DEBUG,
}

# Rich console for pretty output
console = Console()

# CLI app
app = typer.Typer(
    name="rtd",
    help="RTD - Runtime Detection CLI",
    no_args_is_help=True,
)

config_app = typer.Typer(help="Configuration commands")
app.add_typer(config_app, name="config")


def handle_error(e: Exception) -> None:
    """Handle and display errors nicely."""
    if isinstance(e, RTDError):
        console.print(f"[red]Error:[/red] {e}", highlight=False)
    else:
        console.print(f"[red]Unexpected error:[/red] {e}", highlight=False)
        logger.exception("Unexpected error")
    raise typer.Exit(1)


def configure_logging(debug: int) -> None:
    """Apply a 0-3 debug level to the root logger."""
    logging.getLogger().setLevel(DEBUG_LEVELS.get(debug, logging.ERROR))


def ensure_detected() -> None:
    """Detect (or reuse a fresh snapshot) before answering a query."""
    get_detector().detect()


@app.callback()
def main_callback(
    debug: Optional[int] = typer.Option(
        None, "--debug", "-d", min=0, max=3, help="Diagnostic verbosity (0-3), overrides config"
    ),
):
    """RTD - Runtime Detection: platform, architecture, distribution and environment facts."""
    if debug is not None:
        get_config_manager().update(debug=debug)
    configure_logging(get_config().debug)


# ============================================================================
# Detection Commands
# ============================================================================

@app.command("detect")
def detect_cmd():
    """Run detection (reusing a fresh cached snapshot) and print the summary."""
    try:
        get_detector().detect()
        typer.echo(api.summary())
    except Exception as e:
        handle_error(e)


@app.command("refresh")
def refresh_cmd():
    """Force a new detection and print the summary."""
    try:
        get_detector().refresh()
        typer.echo(api.summary())
    except Exception as e:
        handle_error(e)


@app.command("info")
def info_cmd(
    kind: str = typer.Argument(
        "summary",
        help="summary|short, full|detailed, extended, distro, hostname, username, flags, json, version, api-version",
    ),
):
    """Show detected facts in one of several formats."""
    try:
        ensure_detected()
        typer.echo(api.info(kind))
    except Exception as e:
        handle_error(e)


@app.command("is")
def is_cmd(
    target: str = typer.Argument(..., help="macos, linux, bsd, unix, windows, wsl, container, vm, ssh, termux, chroot, interactive, root, ci, bare-metal"),
):
    """Exit 0 if the host matches TARGET, 1 otherwise."""
    try:
        ensure_detected()
        matched = api.is_(target)
    except Exception as e:
        handle_error(e)
        return
    raise typer.Exit(0 if matched else 1)


@app.command("arch")
def arch_cmd(
    query: str = typer.Argument("name", help="name, bits, family, endian, instruction-set|isa"),
):
    """Describe the CPU architecture."""
    try:
        ensure_detected()
        typer.echo(api.arch_info(query))
    except Exception as e:
        handle_error(e)


@app.command("paths")
def paths_cmd(
    kind: str = typer.Argument("temp", help="temp|tmp, config, cache, data, runtime, home"),
):
    """Print a platform-appropriate directory."""
    try:
        ensure_detected()
        typer.echo(api.paths(kind))
    except Exception as e:
        handle_error(e)


@app.command("status")
def status_cmd(
    detect: bool = typer.Option(False, "--detect", help="Detect before reporting"),
):
    """Show module, mode and cache status."""
    try:
        if detect:
            ensure_detected()
        state = api.status()
    except Exception as e:
        handle_error(e)
        return

    table = Table(title="Runtime Detection Module", show_header=False)
    table.add_column("Key", style="yellow")
    table.add_column("Value")

    table.add_row("Version", f"{state['version']} (API: {state['api_version']})")
    table.add_row("Detected", "Yes" if state["detected"] else "No")
    table.add_row(
        "Mode",
        f"strict_cmds={int(state['strict_cmds'])} "
        f"sanitize_env={int(state['sanitize_env'])} "
        f"json_bool={int(state['json_bool'])}",
    )
    if state["detected"]:
        table.add_row("Platform", str(state["summary"]))
        table.add_row("Cache TTL", f"{state['cache_ttl']}s")
        table.add_row("Cache Age", f"{int(state['cache_age'] or 0)}s")
        table.add_row("Auto-detect", "Enabled" if state["auto_detect"] else "Disabled")
        table.add_row("Debug", f"Level {state['debug']}")
        table.add_row("Max file size", f"{state['max_file_size']} bytes")
        table.add_row("Command timeout", f"{state['cmd_timeout']}s")
    else:
        table.add_row("Status", "[red]Not detected[/red] (run rtd detect)")

    console.print(table)


# ============================================================================
# Config Commands
# ============================================================================

@config_app.command("show")
def show_config_cmd():
    """Show current configuration."""
    config = get_config()
    console.print("\n[bold]RTD Configuration:[/bold]")
    for key, value in config.model_dump().items():
        console.print(f"  {key}: {value}", highlight=False)


@config_app.command("path")
def config_path_cmd():
    """Show configuration file path."""
    manager = get_config_manager()
    console.print(f"Config file: {manager.config_path}", highlight=False)


# ============================================================================
# Root Commands
# ============================================================================

@app.command("version")
def version_cmd():
    """Show RTD version."""
    from rtd_core import API_VERSION, __version__
    console.print(f"RTD (Runtime Detection) v{__version__} (API {API_VERSION})", highlight=False)


def main():
    """Main entry point."""
    try:
        app()
    except KeyboardInterrupt:
        console.print("\n[dim]Interrupted[/dim]")
        sys.exit(0)


if __name__ == "__main__":
    main()

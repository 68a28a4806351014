"""Thin CLI wrapper for znx.

This module provides the command-line interface using Typer.
All business logic is delegated to znx.lifecycle.
"""

import json
import logging
import sys
from collections.abc import Callable
from functools import partial
from typing import Annotated, NoReturn

import typer
from rich.console import Console
from rich.logging import RichHandler
from rich.markup import escape

from znx import __version__
from znx.config import ConfigError, get_settings, print_settings_json
from znx.context import CommandContext
from znx.errors import ZnxError
from znx.lifecycle import (
    clean_image,
    deploy_image,
    init_device,
    list_images,
    remove_image,
    revert_image,
    update_image,
)
from znx.types import OperationResult

logger = logging.getLogger(__name__)

app = typer.Typer(
    name="znx",
    help="znx - manage bootable image slots on a storage device",
    no_args_is_help=True,
    context_settings={"help_option_names": ["-h", "--help"]},
)
console = Console()
err_console = Console(stderr=True)

DeviceArg = Annotated[str, typer.Argument(help="Device path (e.g., /dev/sdX)")]
ImageArg = Annotated[str, typer.Argument(help="Image name as <vendor>/<name>")]


def version_callback(value: bool) -> None:
    """Print version and exit."""
    if value:
        console.print(f"znx version {__version__}")
        raise typer.Exit()


def configure_logging(level: str) -> None:
    """Send log records to stderr through rich."""
    logging.basicConfig(
        level=level,
        format="%(message)s",
        handlers=[RichHandler(console=err_console, show_path=False)],
        force=True,
    )


def _fail(message: str) -> NoReturn:
    console.print(f"[red]✗ {escape(message)}[/red]")
    raise typer.Exit(code=1)


@app.callback()
def main(
    version: Annotated[
        bool | None,
        typer.Option(
            "--version",
            "-v",
            help="Show version and exit",
            callback=version_callback,
            is_eager=True,
        ),
    ] = None,
    debug: Annotated[
        bool,
        typer.Option("--debug", help="Log every step, including external commands"),
    ] = False,
) -> None:
    """znx - manage bootable image slots on a storage device."""
    try:
        settings = get_settings()
    except ConfigError as e:
        _fail(e.message)
    configure_logging("DEBUG" if debug else settings.log_level)


def _execute(
    operation: Callable[[CommandContext], OperationResult],
    device: str,
    image: str | None = None,
) -> OperationResult:
    """Run one lifecycle operation and report failures uniformly."""
    try:
        ctx = CommandContext.create(device, image)
        return operation(ctx)
    except ZnxError as e:
        logger.debug("Command failed: %s", e.error_code)
        _fail(e.message)
    except OSError as e:
        logger.debug("Command failed", exc_info=True)
        _fail(str(e))


def _report(result: OperationResult) -> None:
    console.print(f"[green]✓ {result.message}[/green]")


@app.command()
def init(device: DeviceArg) -> None:
    """Partition and format a device. ALL DATA ON IT IS LOST."""
    _report(_execute(init_device, device))


@app.command()
def deploy(
    device: DeviceArg,
    image: ImageArg,
    source: Annotated[
        str, typer.Argument(help="Local file, .zsync URL or download URL")
    ],
) -> None:
    """Deploy an image into a new slot."""
    _report(_execute(partial(deploy_image, source=source), device, image))


@app.command()
def update(device: DeviceArg, image: ImageArg) -> None:
    """Update an image from the location embedded in it."""
    _report(_execute(update_image, device, image))


@app.command()
def revert(device: DeviceArg, image: ImageArg) -> None:
    """Restore the backup generation of an image."""
    _report(_execute(revert_image, device, image))


@app.command()
def clean(device: DeviceArg, image: ImageArg) -> None:
    """Delete the backup generation of an image."""
    _report(_execute(clean_image, device, image))


@app.command()
def remove(device: DeviceArg, image: ImageArg) -> None:
    """Delete an image and all its generations."""
    _report(_execute(remove_image, device, image))


@app.command("list")
def list_cmd(
    device: DeviceArg,
    json_output: Annotated[
        bool,
        typer.Option("--json", help="Output as JSON"),
    ] = False,
) -> None:
    """List deployed images."""
    result = _execute(list_images, device)
    images: list[dict[str, str]] = result.details["images"]  # type: ignore[assignment]

    if json_output:
        console.print(json.dumps(images, indent=2))
        return
    if not images:
        console.print("[yellow]No images deployed[/yellow]")
        return
    for entry in images:
        marker = " [dim](backup available)[/dim]" if entry["state"] == "dual" else ""
        console.print(f"{entry['name']}{marker}")


@app.command()
def config(
    json_output: Annotated[
        bool,
        typer.Option("--json", help="Output as JSON"),
    ] = False,
) -> None:
    """Show effective configuration."""
    settings = get_settings()
    if json_output:
        console.print(print_settings_json(settings))
        return

    tmp_dir_display = str(settings.tmp_dir) if settings.tmp_dir else "(system default)"
    console.print("[bold]Effective Configuration:[/bold]")
    console.print()
    console.print("[bold]Paths:[/bold]")
    console.print(f"  Temp directory:      {tmp_dir_display}")
    console.print(f"  Bootloader files:    {settings.bootloader_dir}")
    console.print()
    console.print("[bold]Device:[/bold]")
    console.print(f"  Boot volume size:    {settings.boot_size_mib} MiB")
    console.print(f"  Unmount retries:     {settings.unmount_retries}")
    console.print(f"  Unmount interval:    {settings.unmount_retry_interval}s")
    console.print()
    console.print("[bold]Operational:[/bold]")
    console.print(f"  Sync engine:         {settings.zsync_bin}")
    console.print(f"  Log level:           {settings.log_level}")
    console.print()
    console.print("[bold]Timeouts (seconds):[/bold]")
    console.print(f"  Download timeout:    {settings.download_timeout}")
    console.print(f"  Command timeout:     {settings.command_timeout}")


def run() -> None:
    """Console entry point.

    Exits 0 on success and 1 on any error, usage errors included. Exits
    caused by a signal keep their 128+n status.
    """
    try:
        app()
    except SystemExit as e:
        code = e.code
    else:
        code = 0

    if code is None or code == 0:
        sys.exit(0)
    if isinstance(code, int) and code > 128:
        sys.exit(code)
    sys.exit(1)


if __name__ == "__main__":
    run()

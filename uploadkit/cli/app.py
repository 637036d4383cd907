"""uploadkit CLI entry point."""

from __future__ import annotations

import asyncio
import logging
import signal
from collections.abc import Awaitable, Callable
from pathlib import Path
from typing import Any, TypeVar

import typer
from tqdm import tqdm

from uploadkit import __version__
from uploadkit.bootstrap import UploadServices, upload_services
from uploadkit.config_manager.config import ConfigError, ConfigManager
from uploadkit.exceptions import UploadKitError
from uploadkit.models import UploadProgress

app = typer.Typer(add_completion=False, help="uploadkit command line interface.")

T = TypeVar("T")


def _version_callback(value: bool) -> bool:
    if value:
        typer.echo(__version__)
        raise typer.Exit()
    return value


@app.callback()
def callback(
    ctx: typer.Context,
    version: bool = typer.Option(
        False,
        "--version",
        "-v",
        help="Show the uploadkit version and exit.",
        callback=_version_callback,
        is_eager=True,
        is_flag=True,
    ),
    verbose: bool = typer.Option(False, "--verbose", help="Enable debug logging."),
    config_path: Path | None = typer.Option(
        None, "--config", help="Path to a YAML configuration file."
    ),
    offline: bool = typer.Option(
        False, "--offline", help="Never contact the upload service."
    ),
) -> None:
    """Handle global CLI options."""
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    ctx.obj = {"config_path": config_path, "offline": True if offline else None}


def _run(
    ctx: typer.Context,
    action: Callable[[UploadServices], Awaitable[T]],
    **overrides: Any,
) -> T:
    """Resolve config, run ``action`` against fresh services, map errors."""
    obj = ctx.obj or {}
    try:
        config = ConfigManager(obj.get("config_path")).resolve_effective_config(
            {"offline": obj.get("offline"), **overrides}
        )
    except ConfigError as e:
        typer.echo(f"Error: {e}", err=True)
        raise typer.Exit(code=1) from e

    async def main() -> T:
        async with upload_services(config) as services:
            return await action(services)

    try:
        return asyncio.run(main())
    except (UploadKitError, FileNotFoundError, ValueError) as e:
        typer.echo(f"Error: {e}", err=True)
        raise typer.Exit(code=1) from e


def _progress_bar_callback(bar: tqdm) -> Callable[[UploadProgress], None]:
    def on_progress(snapshot: UploadProgress) -> None:
        if bar.total != snapshot.total_chunks:
            bar.total = snapshot.total_chunks
        bar.n = len(snapshot.uploaded_chunks)
        bar.refresh()

    return on_progress


def _cancel_on_sigint(cancel_event: asyncio.Event) -> None:
    try:
        asyncio.get_running_loop().add_signal_handler(signal.SIGINT, cancel_event.set)
    except (NotImplementedError, RuntimeError):
        pass  # no signal handlers on this platform


@app.command("upload")
def upload(
    ctx: typer.Context,
    path: Path = typer.Argument(..., exists=True, dir_okay=False, readable=True),
    user_id: str | None = typer.Option(None, "--user-id", help="Uploading user."),
) -> None:
    """Upload a file in 4 MiB chunks."""

    async def action(services: UploadServices) -> None:
        cancel_event = asyncio.Event()
        _cancel_on_sigint(cancel_event)
        with tqdm(desc=path.name, unit="chunk") as bar:
            session = await services.upload_manager.upload_file(
                path,
                user_id=user_id,
                progress_callback=_progress_bar_callback(bar),
                cancel_event=cancel_event,
            )
        typer.echo(
            f"{session.file_id} {session.status.value} "
            f"({session.total_chunks} chunks, mode={session.mode.value})"
        )

    _run(ctx, action)


@app.command("resume")
def resume(
    ctx: typer.Context,
    path: Path = typer.Argument(..., exists=True, dir_okay=False, readable=True),
    file_id: str = typer.Argument(..., help="Identifier of the interrupted upload."),
) -> None:
    """Resume an interrupted upload, skipping chunks already recorded."""

    async def action(services: UploadServices) -> None:
        cancel_event = asyncio.Event()
        _cancel_on_sigint(cancel_event)
        with tqdm(desc=path.name, unit="chunk") as bar:
            session = await services.upload_manager.resume_upload(
                path,
                file_id,
                progress_callback=_progress_bar_callback(bar),
                cancel_event=cancel_event,
            )
        typer.echo(f"{session.file_id} {session.status.value}")

    _run(ctx, action)


@app.command("list")
def list_files(ctx: typer.Context) -> None:
    """List known files, completed first."""

    async def action(services: UploadServices) -> None:
        entries = await services.upload_manager.list_files()
        if not entries:
            typer.echo("No files.")
            return
        for entry in entries:
            typer.echo(
                f"{entry.file_id}\t{entry.file_name}\t{entry.size}\t"
                f"{entry.status.value}\t{len(entry.uploaded_chunks)} chunk(s)"
            )

    _run(ctx, action)


@app.command("delete")
def delete(
    ctx: typer.Context,
    file_id: str = typer.Argument(..., help="Identifier of the file to delete."),
) -> None:
    """Delete a file remotely (best effort) and locally."""

    async def action(services: UploadServices) -> None:
        outcome = await services.upload_manager.delete_file(file_id)
        typer.echo(f"Deleted {file_id} (remote: {outcome.value})")

    _run(ctx, action)


@app.command("gc")
def collect_garbage(ctx: typer.Context) -> None:
    """Remove ledger entries older than 24 hours."""

    async def action(services: UploadServices) -> None:
        removed = await services.upload_manager.collect_garbage()
        typer.echo(f"Removed {removed} stale ledger entries")

    # start-up collection would run first and leave nothing to report
    _run(ctx, action, gc_on_start=False)


@app.command("metadata")
def metadata(
    ctx: typer.Context,
    file_id: str = typer.Argument(..., help="Identifier of the upload."),
) -> None:
    """Show upload metadata, from the service or the local ledger."""

    async def action(services: UploadServices) -> None:
        record = await services.upload_manager.get_upload_metadata(file_id)
        typer.echo(record.model_dump_json(by_alias=True, indent=2))

    _run(ctx, action)


def main() -> None:
    """Console script entry point."""
    app()

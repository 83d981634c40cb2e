"""Typer CLI entrypoint."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from pathlib import Path

import typer

from snapctl.core.errors import SnapctlError
from snapctl.core.profile_loader import DEFAULT_PROFILE, load_profiles
from snapctl.core.service import DEFAULT_UPLOAD_PORT, SnapService
from snapctl.core.session import DEFAULT_CONTROL_PORT

app = typer.Typer(help="Program and configure CASPER SNAP boards over KATCP")


@dataclass(frozen=True)
class ConnectionOptions:
    address: str
    port: int
    profile: str
    timeout_s: float | None


def _build_service(options: ConnectionOptions) -> SnapService:
    loaded = load_profiles()
    for warning in loaded.warnings:
        typer.echo(f"Warning: {warning}", err=True)
    profile = loaded.resolve(options.profile)
    return SnapService.connect(
        options.address,
        profile=profile,
        port=options.port,
        timeout_s=options.timeout_s,
    )


@app.callback()
def main(
    ctx: typer.Context,
    address: str = typer.Argument(..., help="Address of the SNAP tcpborphserver"),
    port: int = typer.Option(
        DEFAULT_CONTROL_PORT, "--port", "-p", min=1, max=65535, help="KATCP control port"
    ),
    profile: str = typer.Option(DEFAULT_PROFILE, "--profile", help="Device profile ID"),
    timeout: float | None = typer.Option(None, "--timeout", help="Seconds to wait for each reply"),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Print debug information"),
) -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    ctx.obj = ConnectionOptions(address=address, port=port, profile=profile, timeout_s=timeout)


@app.command("load")
def load_bitstream(
    ctx: typer.Context,
    path: Path = typer.Argument(..., help="Bitstream (BOF/FPG) file to program"),
    force: bool = typer.Option(False, "--force", "-f", help="Upload even if the device already stores the file"),
    port: int = typer.Option(
        DEFAULT_UPLOAD_PORT, "--port", min=1, max=65535, help="Port to upload the file through"
    ),
) -> None:
    """Program the FPGA with a bitstream, uploading it if needed."""
    try:
        with _build_service(ctx.obj) as service:
            result = service.load(path, force=force, port=port)
        how = "uploaded" if result.uploaded else "stored copy"
        typer.echo(f"Programmed {result.filename} ({how})")
    except SnapctlError as exc:
        typer.echo(f"Error: {exc}", err=True)
        raise typer.Exit(code=1) from None


@app.command("config-gbe")
def config_gbe(
    ctx: typer.Context,
    core: str = typer.Argument(..., help="Name of the 10GbE core block"),
) -> None:
    """Configure and enable a 10GbE core."""
    try:
        with _build_service(ctx.obj) as service:
            result = service.config_gbe(core)
        state = "up" if result.link_up else "down"
        typer.echo(f"Configured {result.core}: link {state}")
    except SnapctlError as exc:
        typer.echo(f"Error: {exc}", err=True)
        raise typer.Exit(code=1) from None


@app.command("list-bitstreams")
def list_bitstreams(ctx: typer.Context) -> None:
    """List bitstream images stored on the device."""
    try:
        with _build_service(ctx.obj) as service:
            filenames = service.list_bitstreams()
        if not filenames:
            typer.echo("No bitstreams stored")
            return
        for filename in filenames:
            typer.echo(filename)
    except SnapctlError as exc:
        typer.echo(f"Error: {exc}", err=True)
        raise typer.Exit(code=1) from None


@app.command("list-registers")
def list_registers(ctx: typer.Context) -> None:
    """List named registers of the running design."""
    try:
        with _build_service(ctx.obj) as service:
            names = service.list_registers()
        for name in names:
            typer.echo(name)
    except SnapctlError as exc:
        typer.echo(f"Error: {exc}", err=True)
        raise typer.Exit(code=1) from None


def run() -> None:
    app()


if __name__ == "__main__":
    run()

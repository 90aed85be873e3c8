"""Typer CLI entrypoint."""

from __future__ import annotations

import logging
from collections.abc import Sequence
from pathlib import Path

import typer

from obdlog.core.diagnostics import DEFAULT_MODULES
from obdlog.core.errors import ObdlogError
from obdlog.core.model import ModuleTroubleCodes
from obdlog.core.service import ObdService, parse_module

app = typer.Typer(help="Log OBD-II diagnostic requests from a vehicle definition to CSV")


def _build_service(port: str | None = None) -> ObdService:
    return ObdService(port=port)


def _modules(values: list[str] | None) -> list[int]:
    if not values:
        return list(DEFAULT_MODULES)
    return [parse_module(v) for v in values]


def _fail(exc: ObdlogError) -> None:
    typer.echo(f"Error: {exc}", err=True)
    raise typer.Exit(code=1) from None


def _show_screen(lines: Sequence[str]) -> None:
    typer.clear()
    for line in lines:
        typer.echo(line)


@app.callback()
def main(verbose: bool = typer.Option(False, "--verbose", "-v", help="Enable debug logging")) -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )


@app.command("log")
def log_requests(
    vehicle: str = typer.Argument(..., help="Vehicle definition file or name"),
    refresh_ms: int | None = typer.Argument(None, min=1, help="Refresh interval in milliseconds"),
    port: str | None = typer.Option(None, "--port", help="Serial port of the OBD adapter"),
    log_file: Path | None = typer.Option(None, "--log-file", help="CSV output path; must not exist yet"),
) -> None:
    """Poll every supported request of VEHICLE and append samples to a CSV log."""
    service = _build_service(port)
    try:
        definition = service.load_vehicle(vehicle)
        typer.echo("Fetching supported PIDs...")
        loop = service.polling_loop(
            definition,
            refresh_ms=refresh_ms,
            display=_show_screen,
            log_path=log_file,
        )
        loop.resolve()
        typer.echo(f"Logging {len(loop.bound)} requests to {loop.logger.path}")
        loop.run()
    except ObdlogError as exc:
        _fail(exc)
    except KeyboardInterrupt:
        typer.echo("Stopped")
    finally:
        service.close()


@app.command("pids")
def list_pids(
    port: str | None = typer.Option(None, "--port", help="Serial port of the OBD adapter"),
    module: list[str] | None = typer.Option(None, "--module", help="Module address in hex (repeatable)"),
) -> None:
    """List the service 01 PIDs each module supports."""
    service = _build_service(port)
    try:
        typer.echo("Reading supported Service 01 PIDs...")
        for address, pids in service.supported_parameters(_modules(module)).items():
            typer.echo(f"ECU {address:03x}:")
            for pid in sorted(pids):
                typer.echo(f"\t{pid:02x}")
    except ObdlogError as exc:
        _fail(exc)
    finally:
        service.close()


def _echo_trouble_codes(results: list[ModuleTroubleCodes]) -> None:
    for result in results:
        typer.echo(f"ECU {result.module:03x}:")
        if result.error:
            typer.echo(f"\tError: {result.error}")
        elif not result.codes:
            typer.echo("\tNo DTCs")
        for code in result.codes:
            suffix = f" {code.description}" if code.description else ""
            typer.echo(f"\t{code.code}{suffix}")


@app.command("dtc")
def list_dtcs(
    port: str | None = typer.Option(None, "--port", help="Serial port of the OBD adapter"),
    module: list[str] | None = typer.Option(None, "--module", help="Module address in hex (repeatable)"),
) -> None:
    """Read stored trouble codes from every module."""
    service = _build_service(port)
    try:
        typer.echo("Reading DTCs...")
        _echo_trouble_codes(service.trouble_codes(_modules(module)))
    except ObdlogError as exc:
        _fail(exc)
    finally:
        service.close()


@app.command("dtc-clear")
def clear_dtcs(
    port: str | None = typer.Option(None, "--port", help="Serial port of the OBD adapter"),
    module: list[str] | None = typer.Option(None, "--module", help="Module address in hex (repeatable)"),
    yes: bool = typer.Option(False, "--yes", "-y", help="Do not ask for confirmation"),
) -> None:
    """Clear stored trouble codes and freeze-frame data."""
    if not yes:
        typer.confirm("Clear all stored DTCs?", abort=True)
    service = _build_service(port)
    try:
        typer.echo("Clearing DTCs...")
        results = service.clear_trouble_codes(_modules(module))
        for result in results:
            status = f"Error: {result.error}" if result.error else "cleared"
            typer.echo(f"ECU {result.module:03x}: {status}")
    except ObdlogError as exc:
        _fail(exc)
    finally:
        service.close()


@app.command("new")
def new_vehicle(
    path: Path,
    make: str = typer.Option(..., "--make"),
    model: str = typer.Option(..., "--model"),
    force: bool = typer.Option(False, "--force", help="Overwrite an existing file"),
) -> None:
    """Create an empty vehicle definition file."""
    try:
        vehicle = _build_service().create_vehicle(path, make, model, overwrite=force)
        typer.echo(f"Created vehicle {vehicle.id} ({make} {model}) in {path}")
    except ObdlogError as exc:
        _fail(exc)


@app.command("add")
def add_request(
    path: Path,
    address: str = typer.Argument(..., help="ECU:SERVICE:PID in hex, e.g. 7E0:01:0C"),
    name: str = typer.Option("", "--name"),
    formula: str = typer.Option("", "--formula", help="Value formula over bytes A, B, ..."),
    unit: str = typer.Option("", "--unit"),
    category: str = typer.Option("", "--category"),
    description: str = typer.Option("", "--description"),
) -> None:
    """Append a request to a vehicle definition file."""
    try:
        request = _build_service().add_request(
            path,
            address,
            name=name,
            formula=formula,
            unit=unit,
            category=category,
            description=description,
        )
        typer.echo(f"Added {request.label} ({request.id})")
    except ObdlogError as exc:
        _fail(exc)


@app.command("show")
def show_vehicle(vehicle: str = typer.Argument(..., help="Vehicle definition file or name")) -> None:
    """Print a vehicle definition and its requests."""
    try:
        definition = _build_service().load_vehicle(vehicle)
        typer.echo(f"{definition.make} {definition.model} ({definition.id})")
        for request in definition.requests():
            formula = f" = {request.formula}" if request.formula else ""
            unit = f" [{request.unit}]" if request.unit else ""
            typer.echo(
                f"  {request.label}: {request.ecu:03x}:{request.service:02x}:{request.pid:02x}{formula}{unit}"
            )
    except ObdlogError as exc:
        _fail(exc)


def run() -> None:
    app()


if __name__ == "__main__":
    run()

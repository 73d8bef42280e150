"""Typer CLI entrypoint."""

from __future__ import annotations

import enum
import logging
import threading

import typer

from relayctl.api import Client
from relayctl.core.errors import RelayctlError
from relayctl.core.model import DataEvent, SessionStatus, StatusEvent

app = typer.Typer(help="Bluetooth serial relay board control")

_ENDED = (SessionStatus.DISCONNECTED, SessionStatus.FAILED)


class Switch(str, enum.Enum):
    on = "on"
    off = "off"


class RadioAction(str, enum.Enum):
    status = "status"
    on = "on"
    off = "off"


@app.callback()
def main(
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Enable debug logging"),
) -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(levelname)s %(name)s: %(message)s",
    )


def _build_client() -> Client:
    client = Client()
    for warning in getattr(client, "load_warnings", ()):
        typer.echo(f"Warning: {warning}", err=True)
    return client


@app.command("devices")
def list_devices() -> None:
    """List Bluetooth devices already bonded with this host."""
    try:
        with _build_client() as client:
            devices = client.list_bonded().result()
        if not devices:
            typer.echo("No bonded Bluetooth devices found")
            return
        for device in devices:
            typer.echo(f"{device.address} {device.name or '<unnamed>'}")
    except RelayctlError as exc:
        typer.echo(f"Error: {exc}", err=True)
        raise typer.Exit(code=1) from None


@app.command("commands")
def list_commands() -> None:
    """List the active command table."""
    try:
        with _build_client() as client:
            table = client.command_table
        typer.echo(f"{table.id}: {table.name}")
        for command in table.commands.values():
            typer.echo(f"  {command.label}: on={command.on_byte} off={command.off_byte}")
    except RelayctlError as exc:
        typer.echo(f"Error: {exc}", err=True)
        raise typer.Exit(code=1) from None


@app.command("radio")
def radio(action: RadioAction = typer.Argument(RadioAction.status)) -> None:
    """Show the radio state, or request it be switched on or off."""
    try:
        with _build_client() as client:
            if action == RadioAction.status:
                state = client.radio_state().result()
            else:
                state = client.set_radio(action == RadioAction.on).result()
        typer.echo(f"Bluetooth: {state.value}")
    except RelayctlError as exc:
        typer.echo(f"Error: {exc}", err=True)
        raise typer.Exit(code=1) from None


@app.command("send")
def send_command(
    device: str = typer.Argument(..., help="Address or partial name of a bonded device"),
    label: str = typer.Argument(..., help="Command label, e.g. 'Relay 1'"),
    state: Switch = typer.Argument(...),
) -> None:
    """Connect, send one relay command, and disconnect."""
    try:
        with _build_client() as client:
            target = client.connect(device).result()
            try:
                payload = client.send_command(label, state == Switch.on).result()
            finally:
                client.disconnect().result()
        typer.echo(
            f"Sent {label}={state.value} to {target.address} ({target.display_name}) "
            f"payload={payload.decode('latin-1')}"
        )
    except RelayctlError as exc:
        typer.echo(f"Error: {exc}", err=True)
        raise typer.Exit(code=1) from None


@app.command("monitor")
def monitor(
    device: str = typer.Argument(..., help="Address or partial name of a bonded device"),
) -> None:
    """Connect and print status changes and inbound data until the session ends."""
    ended = threading.Event()

    def _on_status(event: StatusEvent) -> None:
        suffix = f" ({event.reason})" if event.reason else ""
        typer.echo(f"[status] {event.previous.value} -> {event.current.value}{suffix}")
        if event.current in _ENDED:
            ended.set()

    def _on_data(event: DataEvent) -> None:
        typer.echo(f"[data] {event.payload.decode('latin-1')!r}")

    try:
        with _build_client() as client:
            client.on_status(_on_status)
            client.on_data(_on_data)
            client.connect(device).result()
            try:
                ended.wait()
            except KeyboardInterrupt:
                client.disconnect().result()
    except RelayctlError as exc:
        typer.echo(f"Error: {exc}", err=True)
        raise typer.Exit(code=1) from None


def run() -> None:
    app()


if __name__ == "__main__":
    run()

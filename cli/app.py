from __future__ import annotations

import time
from dataclasses import dataclass
from typing import Optional

import typer

from app.schemas import TickStatus
from cli.client import ApiClient
from cli.config import CLIConfig, load_config
from cli.render import render_device, render_devices, render_poller
from datastore.device_store import DeviceStore
from logging_config import configure_logging
from services.aqi import aqi_category, derive_aqi
from services.poller import build_poller


@dataclass
class CLIState:
    config: CLIConfig
    client: ApiClient


app = typer.Typer(
    help="Poll PurpleAir sensors and inspect their AQI readings.",
    context_settings={"help_option_names": ["-h", "--help"]},
)


def _get_state(ctx: typer.Context) -> CLIState:
    state = ctx.obj
    if not isinstance(state, CLIState):
        typer.secho("CLI state is uninitialized.", fg=typer.colors.RED, err=True)
        raise typer.Exit(code=1)
    return state


@app.callback()
def main(
    ctx: typer.Context,
    base_url: Optional[str] = typer.Option(
        None,
        "--base-url",
        "-b",
        help="Bridge API base URL (defaults to API_BASE_URL env or http://localhost:8000).",
    ),
    timeout: Optional[float] = typer.Option(
        None,
        "--timeout",
        help="HTTP timeout in seconds for API requests.",
    ),
) -> None:
    """Entry point for the CLI."""
    config = load_config(base_url=base_url, timeout=timeout)
    client = ApiClient(config)
    ctx.obj = CLIState(config=config, client=client)
    ctx.call_on_close(client.close)


@app.command("aqi")
def aqi_command(
    pm25: float = typer.Argument(..., min=0, help="PM2.5 concentration in ug/m3."),
) -> None:
    """Convert a PM2.5 concentration into an AQI value."""
    value = derive_aqi(pm25)
    typer.echo(f"AQI {value} ({aqi_category(value)})")


@app.command("poll-once")
def poll_once_command() -> None:
    """Query the sensor network once and print the sensors it reports."""
    configure_logging()
    store = DeviceStore()
    poller = build_poller(store)
    try:
        status = poller.run_once()
    finally:
        poller.shutdown()

    if status is not TickStatus.completed:
        typer.secho(f"Poll did not complete: {status.value}", fg=typer.colors.RED, err=True)
        raise typer.Exit(code=1)
    render_devices(device.model_dump(mode="json") for device in store.scan())


@app.command("run")
def run_command() -> None:
    """Poll on the configured interval until interrupted."""
    configure_logging()
    poller = build_poller(DeviceStore())
    typer.echo(f"Polling every {poller.interval}s, press Ctrl+C to stop.")
    poller.start()
    try:
        while poller.running:
            time.sleep(1.0)
    except KeyboardInterrupt:
        typer.echo("Stopping poller...")
    finally:
        poller.shutdown()


@app.command("sensors")
def sensors_command(ctx: typer.Context) -> None:
    """List sensors known to a running bridge service."""
    state = _get_state(ctx)
    render_devices(state.client.list_sensors())


@app.command("sensor")
def sensor_command(
    ctx: typer.Context,
    sensor_id: str = typer.Argument(..., help="Sensor ID as reported by the network."),
) -> None:
    """Show one sensor known to a running bridge service."""
    state = _get_state(ctx)
    render_device(state.client.get_sensor(sensor_id))


@app.command("status")
def status_command(ctx: typer.Context) -> None:
    """Show the scheduler status of a running bridge service."""
    state = _get_state(ctx)
    render_poller(state.client.poller_status())

from __future__ import annotations

from typing import Any, Dict, Iterable

import typer


def echo_heading(text: str) -> None:
    typer.secho(text, bold=True)


def echo_key_values(pairs: Iterable[tuple[str, Any]]) -> None:
    for key, value in pairs:
        typer.echo(f"{key}: {value}")


def _format_value(state: Dict[str, Any]) -> str:
    description = state.get("description") or {}
    value = state.get("value")
    if value is None:
        return "n/a"
    unit = description.get("unit")
    return f"{value} {unit}" if unit else f"{value}"


def render_device(payload: Dict[str, Any]) -> None:
    echo_heading(f"{payload.get('title')} ({payload.get('sensor_id')})")
    echo_key_values(
        [
            ("device_id", payload.get("device_id")),
            ("capabilities", ", ".join(payload.get("capabilities") or []) or "none"),
            ("updated_at", payload.get("updated_at")),
        ]
    )
    properties = payload.get("properties") or {}
    if properties:
        for name, state in properties.items():
            title = (state.get("description") or {}).get("title", name)
            typer.echo(f"  - {title}: {_format_value(state)}")
    else:
        typer.echo("  No properties reported.")


def render_devices(devices: Iterable[Dict[str, Any]]) -> None:
    items = list(devices)
    echo_heading("Sensors")
    if not items:
        typer.echo("No sensors reported.")
        return
    for device in items:
        typer.echo()
        render_device(device)


def render_poller(payload: Dict[str, Any]) -> None:
    echo_heading("Poller")
    echo_key_values(
        [
            ("running", payload.get("running")),
            ("interval_seconds", payload.get("interval_seconds")),
            ("tick_count", payload.get("tick_count")),
            ("last_status", payload.get("last_status")),
            ("last_tick_at", payload.get("last_tick_at")),
        ]
    )
    box = payload.get("bounding_box") or {}
    if box:
        typer.echo(
            f"bounding_box: nw=({box.get('nw_lat')}, {box.get('nw_lng')}) "
            f"se=({box.get('se_lat')}, {box.get('se_lng')})"
        )

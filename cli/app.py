from __future__ import annotations

import time
from dataclasses import dataclass
from pathlib import Path
from typing import Callable, Dict, List, Optional

import typer

from cli.client import ApiClient
from cli.config import CLIConfig, load_config
from cli.csv_readings import parse_readings_file
from cli.render import render_history, render_snapshot, render_summary, render_tickets


@dataclass
class CLIState:
    config: CLIConfig
    client: ApiClient


app = typer.Typer(
    help="Utilities for interacting with the sensor trust service.",
    context_settings={"help_option_names": ["-h", "--help"]},
)


def _get_state(ctx: typer.Context) -> CLIState:
    state = ctx.obj
    if not isinstance(state, CLIState):
        raise typer.Exit(code=1, message="CLI state is uninitialized.")
    return state


@app.callback()
def main(
    ctx: typer.Context,
    base_url: Optional[str] = typer.Option(
        None,
        "--base-url",
        "-b",
        help="Trust API base URL (defaults to TRUST_API_BASE_URL env or http://localhost:8000).",
    ),
    timeout: Optional[float] = typer.Option(
        None,
        "--timeout",
        help="HTTP timeout in seconds.",
    ),
) -> None:
    """Entry point for the CLI."""
    config = load_config(base_url=base_url, timeout=timeout)
    client = ApiClient(config)
    ctx.obj = CLIState(config=config, client=client)
    ctx.call_on_close(client.close)


@app.command("register")
def register_command(
    ctx: typer.Context,
    sensor_id: str = typer.Argument(..., help="Sensor identifier, e.g. SENSOR-001."),
    zone: str = typer.Option(..., "--zone", "-z", help="Zone the sensor belongs to."),
    sensor_type: str = typer.Option("soil_moisture", "--type", help="Sensor type."),
) -> None:
    """Register a sensor."""
    state = _get_state(ctx)
    profile = state.client.register_sensor(
        {"sensor_id": sensor_id, "zone": zone, "sensor_type": sensor_type}
    )
    typer.secho(f"Registered {profile['sensor_id']} in {profile['zone']}.", fg=typer.colors.GREEN)


@app.command("ingest")
def ingest_command(
    ctx: typer.Context,
    sensor_id: str = typer.Argument(...),
    moisture: float = typer.Argument(..., help="Soil moisture in percent."),
    temperature: Optional[float] = typer.Option(None, "--temperature"),
    ec: Optional[float] = typer.Option(None, "--ec"),
    ph: Optional[float] = typer.Option(None, "--ph"),
) -> None:
    """Send one reading and show the resulting trust score."""
    state = _get_state(ctx)
    payload = {"sensor_id": sensor_id, "moisture": moisture}
    for key, value in (("temperature", temperature), ("ec", ec), ("ph", ph)):
        if value is not None:
            payload[key] = value
    result = state.client.send_reading(payload)
    render_snapshot(result["trust_score"])


@app.command("ingest-csv")
def ingest_csv_command(
    ctx: typer.Context,
    file: Path = typer.Argument(..., exists=True, dir_okay=False, readable=True, help="Path to CSV file."),
) -> None:
    """Send every valid row of a CSV file as one batch."""
    state = _get_state(ctx)
    try:
        parsed = parse_readings_file(file)
    except ValueError as exc:
        raise typer.BadParameter(str(exc)) from exc

    for error in parsed.errors:
        typer.secho(f"Skipping row {error.row_number}: {error.reason}", fg=typer.colors.YELLOW, err=True)
    if not parsed.payloads:
        typer.secho("No valid rows to ingest.", fg=typer.colors.RED, err=True)
        raise typer.Exit(code=1)

    results = state.client.send_batch(parsed.payloads)
    succeeded = sum(1 for item in results if item.get("success"))
    typer.echo(f"Ingested {succeeded}/{len(results)} readings.")
    for payload, item in zip(parsed.payloads, results):
        if not item.get("success"):
            typer.secho(f"  - {payload['sensor_id']}: {item.get('error')}", fg=typer.colors.RED)


@app.command("history")
def history_command(
    ctx: typer.Context,
    sensor_id: str = typer.Argument(...),
    limit: int = typer.Option(10, "--limit", "-n", min=1),
) -> None:
    """Show recent trust score snapshots of a sensor."""
    state = _get_state(ctx)
    render_history(sensor_id, state.client.get_history(sensor_id, limit))


@app.command("tickets")
def tickets_command(
    ctx: typer.Context,
    status: Optional[str] = typer.Option(None, "--status", help="Open, InProgress or Resolved."),
) -> None:
    """List maintenance tickets."""
    state = _get_state(ctx)
    render_tickets(state.client.list_tickets(status))


@app.command("resolve")
def resolve_command(
    ctx: typer.Context,
    ticket_id: str = typer.Argument(...),
) -> None:
    """Mark a maintenance ticket as resolved."""
    state = _get_state(ctx)
    ticket = state.client.update_ticket_status(ticket_id, "Resolved")
    typer.secho(f"Ticket {ticket['ticket_id']} resolved.", fg=typer.colors.GREEN)


@app.command("summary")
def summary_command(ctx: typer.Context) -> None:
    """Show dashboard totals and per-zone statistics."""
    state = _get_state(ctx)
    render_summary(state.client.get_summary(), state.client.get_zones())


def _send_series(
    state: CLIState,
    sensor_id: str,
    values: List[float],
    delay: float,
) -> Optional[Dict]:
    last: Optional[Dict] = None
    for value in values:
        result = state.client.send_reading({"sensor_id": sensor_id, "moisture": value})
        typer.echo(f"  sent {sensor_id} moisture={value}")
        last = result["trust_score"]
        if delay:
            time.sleep(delay)
    return last


def _ensure_sensor(state: CLIState, sensor_id: str, zone: str) -> None:
    state.client.register_sensor({"sensor_id": sensor_id, "zone": zone}, allow_existing=True)


def _demo_stuck(state: CLIState, delay: float) -> None:
    echo_banner("Stuck sensor: five identical readings")
    _ensure_sensor(state, "DEMO-STUCK-1", "Demo-Stuck")
    render_snapshot(_send_series(state, "DEMO-STUCK-1", [45.0] * 5, delay))


def _demo_spike(state: CLIState, delay: float) -> None:
    echo_banner("Spike: stable baseline followed by a jump")
    _ensure_sensor(state, "DEMO-SPIKE-1", "Demo-Spike")
    render_snapshot(_send_series(state, "DEMO-SPIKE-1", [35.0, 37.0, 36.0, 90.0], delay))


def _demo_zone(state: CLIState, delay: float) -> None:
    echo_banner("Zone anomaly: one sensor disagrees with its neighbours")
    for index, value in enumerate([42.0, 44.0, 41.0], start=1):
        sensor_id = f"DEMO-ZONE-{index}"
        _ensure_sensor(state, sensor_id, "Demo-Zone")
        _send_series(state, sensor_id, [value], delay)
    _ensure_sensor(state, "DEMO-ZONE-4", "Demo-Zone")
    render_snapshot(_send_series(state, "DEMO-ZONE-4", [95.0], delay))


def _demo_recovery(state: CLIState, delay: float) -> None:
    echo_banner("Recovery: a stuck sensor returns to normal")
    _ensure_sensor(state, "DEMO-RECOVERY-1", "Demo-Recovery")
    render_snapshot(_send_series(state, "DEMO-RECOVERY-1", [50.0] * 5, delay))
    render_snapshot(_send_series(state, "DEMO-RECOVERY-1", [47.0, 52.0, 58.0, 49.0, 55.0], delay))
    render_history("DEMO-RECOVERY-1", state.client.get_history("DEMO-RECOVERY-1", 10))


_DEMOS: Dict[str, Callable[[CLIState, float], None]] = {
    "stuck": _demo_stuck,
    "spike": _demo_spike,
    "zone": _demo_zone,
    "recovery": _demo_recovery,
}


def echo_banner(text: str) -> None:
    typer.echo()
    typer.secho("=" * 60, bold=True)
    typer.secho(text, bold=True)
    typer.secho("=" * 60, bold=True)


@app.command("demo")
def demo_command(
    ctx: typer.Context,
    scenario: str = typer.Argument("all", help="stuck, spike, zone, recovery or all."),
    delay: Optional[float] = typer.Option(None, "--delay", help="Seconds between readings."),
) -> None:
    """Replay scripted scenarios that exercise each detector."""
    state = _get_state(ctx)
    if scenario != "all" and scenario not in _DEMOS:
        raise typer.BadParameter(f"Unknown scenario {scenario!r}; choose from {', '.join(_DEMOS)} or all.")
    pause = state.config.demo_delay if delay is None else delay
    selected = list(_DEMOS) if scenario == "all" else [scenario]
    for name in selected:
        _DEMOS[name](state, pause)

from __future__ import annotations

from typing import Any, Dict, Iterable, List

import typer

_STATUS_COLORS = {
    "Healthy": typer.colors.GREEN,
    "Warning": typer.colors.YELLOW,
    "Anomalous": typer.colors.RED,
}

_FLAG_MESSAGES = (
    ("low_variance", "Low variance detected"),
    ("spike_detected", "Spike detected"),
    ("zone_anomaly", "Zone anomaly detected"),
)


def echo_heading(text: str) -> None:
    typer.secho(text, bold=True)


def echo_key_values(pairs: Iterable[tuple[str, Any]]) -> None:
    for key, value in pairs:
        typer.echo(f"{key}: {value}")


def render_snapshot(snapshot: Dict[str, Any]) -> None:
    status = snapshot.get("status")
    typer.secho(
        f"Trust score: {snapshot.get('score')} ({status}, {snapshot.get('label')})",
        fg=_STATUS_COLORS.get(status),
    )
    echo_key_values(
        [
            ("severity", snapshot.get("severity")),
            ("root_causes", ", ".join(snapshot.get("root_causes") or []) or "none"),
            ("trend", f"{snapshot.get('health_trend')} (slope {snapshot.get('health_slope')})"),
            ("anomaly_rate", snapshot.get("anomaly_rate")),
            ("evaluated_at", snapshot.get("evaluated_at")),
        ]
    )
    for flag, message in _FLAG_MESSAGES:
        if snapshot.get(flag):
            typer.secho(f"  ! {message}", fg=typer.colors.YELLOW)
    typer.echo(f"diagnostic: {snapshot.get('diagnostic')}")


def render_history(sensor_id: str, history: List[Dict[str, Any]]) -> None:
    echo_heading(f"Trust history for {sensor_id}")
    if not history:
        typer.echo("No snapshots recorded.")
        return
    for snapshot in history:
        causes = ",".join(snapshot.get("root_causes") or []) or "-"
        typer.echo(
            f"  {snapshot.get('evaluated_at')}  {snapshot.get('score'):>5}  "
            f"{snapshot.get('status'):<9}  {causes}"
        )


def render_tickets(tickets: List[Dict[str, Any]]) -> None:
    echo_heading("Maintenance Tickets")
    if not tickets:
        typer.echo("No tickets found.")
        return
    for ticket in tickets:
        typer.echo(
            f"  - {ticket.get('ticket_id')} [{ticket.get('status')}] {ticket.get('sensor_id')} "
            f"{ticket.get('root_cause')} ({ticket.get('severity')}): {ticket.get('issue')}"
        )


def render_summary(summary: Dict[str, Any], zones: List[Dict[str, Any]]) -> None:
    sensors = summary.get("sensors") or {}
    tickets = summary.get("tickets") or {}
    echo_heading("Sensors")
    echo_key_values(
        [
            ("total", sensors.get("total")),
            ("healthy", sensors.get("healthy")),
            ("warning", sensors.get("warning")),
            ("anomalous", sensors.get("anomalous")),
            ("offline", sensors.get("offline")),
        ]
    )
    by_severity = sensors.get("by_severity") or {}
    if by_severity:
        typer.echo("by_severity:")
        for severity, count in by_severity.items():
            typer.echo(f"  - {severity}: {count}")

    typer.echo()
    echo_heading("Tickets")
    echo_key_values(
        [
            ("open", tickets.get("open")),
            ("in_progress", tickets.get("in_progress")),
            ("resolved", tickets.get("resolved")),
        ]
    )

    typer.echo()
    echo_heading("Zones")
    if not zones:
        typer.echo("No zones registered.")
    for zone in zones:
        typer.echo(
            f"  - {zone.get('zone')}: {zone.get('total')} sensors, avg score {zone.get('avg_score')}, "
            f"{zone.get('anomalous')} anomalous, {zone.get('degrading')} degrading"
        )

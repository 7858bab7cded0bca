"""Unit tests for the dashboard aggregation logic."""

from __future__ import annotations

from datetime import datetime, timezone
from typing import List

from app.schemas import (
    HealthTrend,
    MaintenanceTicket,
    RootCause,
    SensorProfile,
    Severity,
    TicketStatus,
    TrustScoreSnapshot,
    TrustStatus,
)
from services.aggregator import Aggregator

_NOW = datetime(2025, 6, 1, tzinfo=timezone.utc)


def _sensor(sensor_id: str, zone: str) -> SensorProfile:
    """Helper to build deterministic sensor profiles."""

    return SensorProfile(sensor_id=sensor_id, zone=zone, registered_at=_NOW)


def _snapshot(
    sensor_id: str,
    score: float,
    status: TrustStatus,
    severity: Severity = Severity.none,
    causes: List[RootCause] | None = None,
    trend: HealthTrend = HealthTrend.stable,
) -> TrustScoreSnapshot:
    return TrustScoreSnapshot(
        sensor_id=sensor_id,
        score=score,
        status=status,
        severity=severity,
        label="test",
        diagnostic="test",
        root_causes=causes or [],
        health_trend=trend,
        evaluated_at=_NOW,
    )


def _ticket(ticket_id: str, status: TicketStatus) -> MaintenanceTicket:
    return MaintenanceTicket(
        ticket_id=ticket_id,
        sensor_id="s-1",
        root_cause=RootCause.spike,
        severity=Severity.medium,
        issue="Spike",
        status=status,
        created_at=_NOW,
        updated_at=_NOW,
    )


def test_summarize_empty_fleet_returns_zeroes() -> None:
    aggregator = Aggregator()

    summary = aggregator.summarize([], {}, [])

    assert summary.sensors.total == 0
    assert summary.sensors.by_severity == {
        "None": 0,
        "Low": 0,
        "Medium": 0,
        "High": 0,
        "Critical": 0,
    }
    assert summary.tickets.total == 0


def test_summarize_counts_statuses_and_tickets() -> None:
    aggregator = Aggregator()
    sensors = [_sensor("s-1", "A"), _sensor("s-2", "A"), _sensor("s-3", "B"), _sensor("s-4", "B")]
    latest = {
        "s-1": _snapshot("s-1", 1.0, TrustStatus.healthy),
        "s-2": _snapshot("s-2", 0.75, TrustStatus.warning, Severity.high, [RootCause.zone_anomaly]),
        "s-3": _snapshot("s-3", 0.0, TrustStatus.anomalous, Severity.critical, [RootCause.sensor_offline]),
    }
    tickets = [
        _ticket("t-1", TicketStatus.open),
        _ticket("t-2", TicketStatus.in_progress),
        _ticket("t-3", TicketStatus.resolved),
        _ticket("t-4", TicketStatus.open),
    ]

    summary = aggregator.summarize(sensors, latest, tickets)

    assert summary.sensors.total == 4
    assert (summary.sensors.healthy, summary.sensors.warning, summary.sensors.anomalous) == (1, 1, 1)
    assert summary.sensors.offline == 1
    assert summary.sensors.by_severity["Critical"] == 1
    assert summary.sensors.by_severity["High"] == 1
    assert summary.sensors.by_severity["None"] == 1
    assert summary.tickets.total == 4
    assert summary.tickets.open == 2
    assert summary.tickets.in_progress == 1
    assert summary.tickets.resolved == 1


def test_zone_statistics_groups_and_averages() -> None:
    aggregator = Aggregator()
    sensors = [_sensor("s-1", "North"), _sensor("s-2", "North"), _sensor("s-3", "East")]
    latest = {
        "s-1": _snapshot("s-1", 1.0, TrustStatus.healthy),
        "s-2": _snapshot(
            "s-2",
            0.55,
            TrustStatus.anomalous,
            Severity.critical,
            [RootCause.spike, RootCause.zone_anomaly],
            trend=HealthTrend.degrading,
        ),
    }

    zones = aggregator.zone_statistics(sensors, latest)

    assert [zone.zone for zone in zones] == ["East", "North"]
    east, north = zones
    assert east.total == 1
    assert east.avg_score == 0.0
    assert north.total == 2
    assert north.healthy == 1
    assert north.anomalous == 1
    assert north.degrading == 1
    assert north.avg_score == 0.775

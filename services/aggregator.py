"""Aggregation logic for dashboard summaries."""

from __future__ import annotations

from typing import Dict, Iterable, List, Mapping

from app.schemas import (
    DashboardSummary,
    HealthTrend,
    MaintenanceTicket,
    RootCause,
    SensorCounts,
    SensorProfile,
    Severity,
    TicketCounts,
    TicketStatus,
    TrustScoreSnapshot,
    TrustStatus,
    ZoneStatistics,
)


def _is_offline(snapshot: TrustScoreSnapshot) -> bool:
    return RootCause.sensor_offline in snapshot.root_causes


class Aggregator:
    """Pure aggregation component that can be unit tested in isolation."""

    def summarize(
        self,
        sensors: Iterable[SensorProfile],
        latest: Mapping[str, TrustScoreSnapshot],
        tickets: Iterable[MaintenanceTicket],
    ) -> DashboardSummary:
        counts = SensorCounts(by_severity={severity.value: 0 for severity in Severity})

        for sensor in sensors:
            counts.total += 1
            snapshot = latest.get(sensor.sensor_id)
            if snapshot is None:
                continue
            if snapshot.status == TrustStatus.healthy:
                counts.healthy += 1
            elif snapshot.status == TrustStatus.warning:
                counts.warning += 1
            else:
                counts.anomalous += 1
            if _is_offline(snapshot):
                counts.offline += 1
            counts.by_severity[snapshot.severity.value] += 1

        ticket_counts = TicketCounts()
        for ticket in tickets:
            ticket_counts.total += 1
            if ticket.status == TicketStatus.open:
                ticket_counts.open += 1
            elif ticket.status == TicketStatus.in_progress:
                ticket_counts.in_progress += 1
            else:
                ticket_counts.resolved += 1

        return DashboardSummary(sensors=counts, tickets=ticket_counts)

    def zone_statistics(
        self,
        sensors: Iterable[SensorProfile],
        latest: Mapping[str, TrustScoreSnapshot],
    ) -> List[ZoneStatistics]:
        zones: Dict[str, ZoneStatistics] = {}
        score_totals: Dict[str, float] = {}
        scored: Dict[str, int] = {}

        for sensor in sensors:
            stats = zones.setdefault(sensor.zone, ZoneStatistics(zone=sensor.zone))
            stats.total += 1
            snapshot = latest.get(sensor.sensor_id)
            if snapshot is None:
                continue
            if snapshot.status == TrustStatus.healthy:
                stats.healthy += 1
            elif snapshot.status == TrustStatus.warning:
                stats.warning += 1
            else:
                stats.anomalous += 1
            if _is_offline(snapshot):
                stats.offline += 1
            if snapshot.health_trend == HealthTrend.degrading:
                stats.degrading += 1
            score_totals[sensor.zone] = score_totals.get(sensor.zone, 0.0) + snapshot.score
            scored[sensor.zone] = scored.get(sensor.zone, 0) + 1

        for zone, stats in zones.items():
            if scored.get(zone):
                stats.avg_score = round(score_totals[zone] / scored[zone], 3)

        return [zones[zone] for zone in sorted(zones)]

"""Cached dashboard views over the latest trust snapshots."""

from __future__ import annotations

from datetime import datetime, timedelta, timezone
from functools import lru_cache
from typing import Callable, List

from app.schemas import DashboardSummary, RecentActivity, TrustScoreSnapshot, ZoneStatistics
from datastore.memory_store import InMemoryTrustStore, build_default_store
from services.aggregator import Aggregator
from services.errors import UnknownSensorError
from storage.summary_cache import SummaryCache, build_default_cache

SUMMARY_KEY = "dashboard:summary"
ZONES_KEY = "dashboard:zones"


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class DashboardService:
    def __init__(
        self,
        store: InMemoryTrustStore,
        aggregator: Aggregator,
        cache: SummaryCache,
        clock: Callable[[], datetime] = _utcnow,
    ) -> None:
        self.store = store
        self.aggregator = aggregator
        self.cache = cache
        self.clock = clock

    def summary(self) -> DashboardSummary:
        return self.cache.get_or_compute(
            SUMMARY_KEY,
            lambda: self.aggregator.summarize(
                self.store.list_sensors(),
                self.store.latest_snapshots(),
                self.store.list_tickets(),
            ),
        )

    def zones(self) -> List[ZoneStatistics]:
        return self.cache.get_or_compute(
            ZONES_KEY,
            lambda: self.aggregator.zone_statistics(
                self.store.list_sensors(),
                self.store.latest_snapshots(),
            ),
        )

    def recent_activity(self, limit: int = 10) -> RecentActivity:
        return RecentActivity(
            readings=self.store.recent_readings(limit),
            tickets=self.store.list_tickets()[:limit],
        )

    def health_timeline(self, sensor_id: str, days: int = 7) -> List[TrustScoreSnapshot]:
        """Snapshots of the last ``days`` days, oldest first."""
        if self.store.get_sensor(sensor_id) is None:
            raise UnknownSensorError(sensor_id)
        cutoff = self.clock() - timedelta(days=days)
        return self.store.snapshots_since(sensor_id, cutoff)


@lru_cache
def build_default_dashboard() -> DashboardService:
    return DashboardService(
        store=build_default_store(),
        aggregator=Aggregator(),
        cache=build_default_cache(),
    )

"""Reading ingestion and sensor registration around the trust engine."""

from __future__ import annotations

import logging
from concurrent.futures import Future, ThreadPoolExecutor
from datetime import datetime, timezone
from functools import lru_cache
from typing import Callable, Dict, List, Optional, Sequence, Tuple

from app.schemas import (
    BatchItemResult,
    HealthTrend,
    IngestResult,
    Reading,
    ReadingIn,
    SensorCreate,
    SensorDetail,
    SensorProfile,
    Severity,
    TrustScoreSnapshot,
    TrustStatus,
)
from datastore.memory_store import InMemoryTrustStore, build_default_store
from services.errors import UnknownSensorError
from services.events import DASHBOARD_UPDATE, READING_NEW, EventHub, build_default_event_hub
from services.trust_engine import TrustEngine, build_default_engine
from settings import get_settings
from storage.summary_cache import SummaryCache, build_default_cache

logger = logging.getLogger(__name__)

DASHBOARD_CACHE_PATTERN = "dashboard"
REGISTRATION_DIAGNOSTIC = "Sensor newly registered, awaiting first evaluation."


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class IngestionService:
    """Stores readings, triggers evaluation and notifies downstream consumers."""

    def __init__(
        self,
        store: InMemoryTrustStore,
        engine: TrustEngine,
        cache: SummaryCache,
        events: EventHub,
        workers: int = 4,
        clock: Callable[[], datetime] = _utcnow,
    ) -> None:
        self.store = store
        self.engine = engine
        self.cache = cache
        self.events = events
        self.clock = clock
        self.executor = ThreadPoolExecutor(max_workers=workers)

    def register_sensor(self, payload: SensorCreate) -> SensorProfile:
        """Register a sensor and seed its history with a fully trusted snapshot."""
        registered_at = self.clock()
        profile = SensorProfile(
            sensor_id=payload.sensor_id.strip(),
            zone=payload.zone.strip(),
            sensor_type=payload.sensor_type,
            latitude=payload.latitude,
            longitude=payload.longitude,
            registered_at=registered_at,
        )
        self.store.register_sensor(profile)
        self.store.persist_snapshot(
            TrustScoreSnapshot(
                sensor_id=profile.sensor_id,
                score=1.0,
                status=TrustStatus.healthy,
                severity=Severity.none,
                label="Highly Reliable",
                diagnostic=REGISTRATION_DIAGNOSTIC,
                health_trend=HealthTrend.stable,
                evaluated_at=registered_at,
            )
        )
        self.cache.invalidate_pattern(DASHBOARD_CACHE_PATTERN)
        logger.info("Sensor registered", extra={"sensor_id": profile.sensor_id, "zone": profile.zone})
        return profile

    def ingest_reading(self, payload: ReadingIn) -> IngestResult:
        """Store one reading and evaluate it.

        Unknown sensors raise ``UnknownSensorError``; readings that are not
        newer than the sensor's latest reading raise ``OutOfOrderReadingError``.
        """
        reading = Reading(
            sensor_id=payload.sensor_id.strip(),
            moisture=payload.moisture,
            temperature=payload.temperature,
            ec=payload.ec,
            ph=payload.ph,
            air_temp=payload.air_temp,
            is_raining=payload.is_raining,
            irrigation_active=payload.irrigation_active,
            timestamp=self._normalize_timestamp(payload.timestamp),
        )
        with self.engine.sensor_scope(reading.sensor_id):
            self.store.append_reading(reading)
            snapshot = self.engine.evaluate(reading.sensor_id, reading)

        self.cache.invalidate_pattern(DASHBOARD_CACHE_PATTERN)
        result = IngestResult(reading=reading, trust_score=snapshot)
        self.events.publish(READING_NEW, result)
        self.events.publish(DASHBOARD_UPDATE, {"type": "reading", "sensor_id": reading.sensor_id})
        return result

    def ingest_batch(self, payloads: Sequence[ReadingIn]) -> List[BatchItemResult]:
        """Ingest every item independently; one failure never affects the others.

        Items of one sensor are ingested in submission order, different sensors
        in parallel. Results line up with ``payloads``.
        """
        groups: Dict[str, List[int]] = {}
        for index, payload in enumerate(payloads):
            groups.setdefault(payload.sensor_id.strip(), []).append(index)

        futures: List[Future[List[Tuple[int, BatchItemResult]]]] = [
            self.executor.submit(self._ingest_group, [(index, payloads[index]) for index in indices])
            for indices in groups.values()
        ]
        results: List[Optional[BatchItemResult]] = [None] * len(payloads)
        for future in futures:
            for index, item in future.result():
                results[index] = item
        logger.info("Batch ingested", extra={"batch_size": len(payloads)})
        return [item for item in results if item is not None]

    def _ingest_group(self, items: List[Tuple[int, ReadingIn]]) -> List[Tuple[int, BatchItemResult]]:
        outcomes: List[Tuple[int, BatchItemResult]] = []
        for index, payload in items:
            try:
                outcomes.append((index, BatchItemResult(success=True, data=self.ingest_reading(payload))))
            except Exception as exc:  # noqa: BLE001 - reported per item
                logger.warning(
                    "Batch item rejected",
                    extra={"sensor_id": payload.sensor_id, "reason": str(exc)},
                )
                outcomes.append((index, BatchItemResult(success=False, error=str(exc))))
        return outcomes

    def sweep_offline(self, now: Optional[datetime] = None) -> List[TrustScoreSnapshot]:
        sensor_ids = [sensor.sensor_id for sensor in self.store.list_sensors()]
        marked = self.engine.sweep_offline(sensor_ids, now=now)
        if marked:
            self.cache.invalidate_pattern(DASHBOARD_CACHE_PATTERN)
            self.events.publish(
                DASHBOARD_UPDATE,
                {"type": "offline", "sensor_ids": [snapshot.sensor_id for snapshot in marked]},
            )
        return marked

    def fetch_sensor(self, sensor_id: str, reading_limit: int = 10) -> SensorDetail:
        profile = self.store.get_sensor(sensor_id)
        if profile is None:
            raise UnknownSensorError(sensor_id)
        return SensorDetail(
            sensor=profile,
            trust_score=self.store.latest_snapshot(sensor_id),
            readings=self.store.get_recent_readings(sensor_id, reading_limit),
        )

    def list_sensors(self) -> List[SensorDetail]:
        return [
            SensorDetail(
                sensor=profile,
                trust_score=self.store.latest_snapshot(profile.sensor_id),
                readings=self.store.get_recent_readings(profile.sensor_id, 1),
            )
            for profile in self.store.list_sensors()
        ]

    def trust_history(self, sensor_id: str, limit: int = 50) -> List[TrustScoreSnapshot]:
        """Most recent snapshots first."""
        if self.store.get_sensor(sensor_id) is None:
            raise UnknownSensorError(sensor_id)
        return self.store.get_snapshot_history(sensor_id, limit)

    def shutdown(self) -> None:
        """Clean up executor resources during application shutdown."""
        self.executor.shutdown(wait=False, cancel_futures=True)

    def _normalize_timestamp(self, value: Optional[datetime]) -> datetime:
        if value is None:
            return self.clock()
        if value.tzinfo is None:
            value = value.replace(tzinfo=timezone.utc)
        return value.astimezone(timezone.utc)


@lru_cache
def build_default_ingestion(workers: Optional[int] = None) -> IngestionService:
    """Factory that wires ingestion with the default store, engine and cache."""
    settings = get_settings()
    worker_count = workers or settings.ingest_workers
    return IngestionService(
        store=build_default_store(),
        engine=build_default_engine(),
        cache=build_default_cache(),
        events=build_default_event_hub(),
        workers=worker_count,
    )

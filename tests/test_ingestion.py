from __future__ import annotations

import logging
import threading
import time
from datetime import datetime, timedelta, timezone
from typing import Any, Iterator, List, Tuple

import pytest

from app.schemas import Reading, ReadingIn, RootCause, SensorCreate, TicketStatus, TrustStatus
from datastore.memory_store import InMemoryTrustStore
from services.aggregator import Aggregator
from services.dashboard import SUMMARY_KEY, DashboardService
from services.errors import DuplicateSensorError, OutOfOrderReadingError, UnknownSensorError
from services.escalation import EscalationPolicy
from services.events import DASHBOARD_UPDATE, READING_NEW, TICKET_UPDATE, EventHub
from services.ingestion import REGISTRATION_DIAGNOSTIC, IngestionService
from services.maintenance import MaintenanceService
from services.trust_engine import EngineConfig, TrustEngine
from storage.summary_cache import SummaryCache

_T0 = datetime(2025, 6, 1, 6, 0, tzinfo=timezone.utc)


class _Clock:
    def __init__(self) -> None:
        self.now = _T0

    def __call__(self) -> datetime:
        return self.now


class _Recorder:
    def __init__(self) -> None:
        self.events: List[Tuple[str, Any]] = []

    def __call__(self, topic: str, message: Any) -> None:
        self.events.append((topic, message))

    def topics(self) -> List[str]:
        return [topic for topic, _ in self.events]


@pytest.fixture
def clock() -> _Clock:
    return _Clock()


@pytest.fixture
def store() -> InMemoryTrustStore:
    return InMemoryTrustStore()


@pytest.fixture
def cache() -> SummaryCache:
    return SummaryCache(default_ttl=60)


@pytest.fixture
def events() -> EventHub:
    return EventHub()


@pytest.fixture
def ingestion(store, cache, events, clock) -> Iterator[IngestionService]:
    engine = TrustEngine(
        history=store,
        snapshots=store,
        escalation=EscalationPolicy(store, backoff_seconds=0),
        config=EngineConfig(),
        clock=clock,
    )
    service = IngestionService(store=store, engine=engine, cache=cache, events=events, workers=3, clock=clock)
    yield service
    service.shutdown()


def _reading(sensor_id: str, moisture: float, minutes: int) -> ReadingIn:
    return ReadingIn(sensor_id=sensor_id, moisture=moisture, timestamp=_T0 + timedelta(minutes=minutes))


def test_registration_seeds_a_trusted_snapshot(ingestion: IngestionService, clock: _Clock) -> None:
    profile = ingestion.register_sensor(SensorCreate(sensor_id=" SENSOR-001 ", zone="North"))

    assert profile.sensor_id == "SENSOR-001"
    assert profile.registered_at == clock.now
    (seed,) = ingestion.trust_history("SENSOR-001")
    assert seed.score == 1.0
    assert seed.status == TrustStatus.healthy
    assert seed.diagnostic == REGISTRATION_DIAGNOSTIC
    with pytest.raises(DuplicateSensorError):
        ingestion.register_sensor(SensorCreate(sensor_id="SENSOR-001", zone="South"))


def test_ingest_evaluates_and_notifies(
    ingestion: IngestionService, events: EventHub, cache: SummaryCache, clock: _Clock
) -> None:
    ingestion.register_sensor(SensorCreate(sensor_id="S-1", zone="North"))
    recorder = _Recorder()
    for topic in (READING_NEW, DASHBOARD_UPDATE):
        events.subscribe(topic, recorder)
    cache.set(SUMMARY_KEY, "stale")
    clock.now = _T0 + timedelta(minutes=2)

    result = ingestion.ingest_reading(_reading("S-1", 41.0, minutes=1))

    assert result.reading.timestamp == _T0 + timedelta(minutes=1)
    assert result.trust_score.score == 1.0
    assert result.trust_score.evaluated_at == clock.now
    assert cache.get(SUMMARY_KEY) is None
    assert recorder.topics() == [READING_NEW, DASHBOARD_UPDATE]
    assert recorder.events[0][1] == result


def test_ingest_defaults_timestamp_and_assumes_utc(ingestion: IngestionService, clock: _Clock) -> None:
    ingestion.register_sensor(SensorCreate(sensor_id="S-1", zone="North"))
    clock.now = _T0 + timedelta(minutes=5)

    first = ingestion.ingest_reading(ReadingIn(sensor_id="S-1", moisture=40.0))
    clock.now = _T0 + timedelta(minutes=7)
    second = ingestion.ingest_reading(
        ReadingIn(sensor_id="S-1", moisture=40.5, timestamp=datetime(2025, 6, 1, 6, 6))
    )

    assert first.reading.timestamp == _T0 + timedelta(minutes=5)
    assert second.reading.timestamp == _T0 + timedelta(minutes=6)
    assert second.reading.timestamp.tzinfo is not None


def test_ingest_rejects_unknown_and_stale_readings(ingestion: IngestionService, store: InMemoryTrustStore) -> None:
    ingestion.register_sensor(SensorCreate(sensor_id="S-1", zone="North"))
    ingestion.ingest_reading(_reading("S-1", 40.0, minutes=1))

    with pytest.raises(UnknownSensorError):
        ingestion.ingest_reading(_reading("ghost", 40.0, minutes=2))
    with pytest.raises(OutOfOrderReadingError):
        ingestion.ingest_reading(_reading("S-1", 40.0, minutes=1))

    assert len(store.get_snapshot_history("S-1", 10)) == 2


def test_batch_keeps_per_sensor_order_and_isolates_failures(
    ingestion: IngestionService, clock: _Clock, caplog
) -> None:
    for sensor_id in ("A", "B"):
        ingestion.register_sensor(SensorCreate(sensor_id=sensor_id, zone="North"))
    clock.now = _T0 + timedelta(minutes=30)
    payloads = [_reading("A", 40.0 + minute, minutes=minute) for minute in range(1, 6)]
    payloads.insert(2, _reading("ghost", 40.0, minutes=1))
    payloads.append(_reading("B", 42.0, minutes=1))

    with caplog.at_level(logging.WARNING, logger="services.ingestion"):
        results = ingestion.ingest_batch(payloads)

    assert [item.success for item in results] == [True, True, False, True, True, True, True]
    assert "ghost" in (results[2].error or "")
    assert [item.data.reading.moisture for item in results if item.data and item.data.reading.sensor_id == "A"] == [
        41.0,
        42.0,
        43.0,
        44.0,
        45.0,
    ]
    rejected = [record for record in caplog.records if record.getMessage() == "Batch item rejected"]
    assert [getattr(record, "sensor_id", None) for record in rejected] == ["ghost"]


def test_sweep_marks_silent_sensors_offline(
    ingestion: IngestionService, events: EventHub, clock: _Clock
) -> None:
    ingestion.register_sensor(SensorCreate(sensor_id="S-1", zone="North"))
    ingestion.ingest_reading(_reading("S-1", 40.0, minutes=0))
    recorder = _Recorder()
    events.subscribe(DASHBOARD_UPDATE, recorder)
    clock.now = _T0 + timedelta(hours=3)

    marked = ingestion.sweep_offline()

    assert [snapshot.sensor_id for snapshot in marked] == ["S-1"]
    assert marked[0].root_causes == [RootCause.sensor_offline]
    assert recorder.events == [(DASHBOARD_UPDATE, {"type": "offline", "sensor_ids": ["S-1"]})]
    assert ingestion.sweep_offline() == []


def test_sensor_views(ingestion: IngestionService) -> None:
    ingestion.register_sensor(SensorCreate(sensor_id="S-2", zone="South"))
    ingestion.register_sensor(SensorCreate(sensor_id="S-1", zone="North"))
    ingestion.ingest_reading(_reading("S-1", 40.0, minutes=1))
    ingestion.ingest_reading(_reading("S-1", 41.0, minutes=2))

    detail = ingestion.fetch_sensor("S-1")
    listing = ingestion.list_sensors()

    assert [reading.moisture for reading in detail.readings] == [41.0, 40.0]
    assert detail.trust_score is not None
    assert [item.sensor.sensor_id for item in listing] == ["S-1", "S-2"]
    assert listing[1].readings == []
    with pytest.raises(UnknownSensorError):
        ingestion.fetch_sensor("ghost")


def test_dashboard_and_ticket_workflow(
    ingestion: IngestionService, store: InMemoryTrustStore, cache: SummaryCache, events: EventHub, clock: _Clock
) -> None:
    for index, (sensor_id, value) in enumerate((("A", 42.0), ("B", 44.0), ("C", 41.0), ("D", 95.0)), start=1):
        ingestion.register_sensor(SensorCreate(sensor_id=sensor_id, zone="Z"))
        ingestion.ingest_reading(_reading(sensor_id, value, minutes=index))
    dashboard = DashboardService(store=store, aggregator=Aggregator(), cache=cache, clock=clock)
    maintenance = MaintenanceService(store=store, cache=cache, events=events, clock=clock)
    recorder = _Recorder()
    events.subscribe(TICKET_UPDATE, recorder)

    before = dashboard.summary()
    assert before.tickets.open == 1
    assert before.sensors.warning == 1
    assert dashboard.summary() is before

    (ticket,) = maintenance.list_tickets(TicketStatus.open)
    assert ticket.sensor_id == "D"
    assert ticket.root_cause == RootCause.zone_anomaly

    resolved = maintenance.resolve(ticket.ticket_id)

    assert resolved.status == TicketStatus.resolved
    assert recorder.topics() == [TICKET_UPDATE]
    after = dashboard.summary()
    assert after.tickets.open == 0
    assert after.tickets.resolved == 1
    timeline = dashboard.health_timeline("D", days=1)
    assert [snapshot.zone_anomaly for snapshot in timeline] == [False, True]


class _OperationLog(InMemoryTrustStore):
    """Records when readings are stored and when an evaluation reads them back."""

    def __init__(self) -> None:
        super().__init__()
        self.operations: List[str] = []

    def append_reading(self, reading: Reading) -> Reading:
        stored = super().append_reading(reading)
        self.operations.append("store")
        time.sleep(0.01)
        return stored

    def get_recent_readings(self, sensor_id: str, window_size: int) -> List[Reading]:
        self.operations.append("evaluate")
        return super().get_recent_readings(sensor_id, window_size)


def test_concurrent_ingests_store_and_evaluate_as_one_step(
    cache: SummaryCache, events: EventHub, clock: _Clock
) -> None:
    store = _OperationLog()
    engine = TrustEngine(
        history=store,
        snapshots=store,
        escalation=EscalationPolicy(store, backoff_seconds=0),
        config=EngineConfig(),
        clock=clock,
    )
    service = IngestionService(store=store, engine=engine, cache=cache, events=events, workers=2, clock=clock)
    try:
        service.register_sensor(SensorCreate(sensor_id="S-1", zone="North"))
        for minute, value in ((1, 35.0), (2, 37.0), (3, 36.0)):
            service.ingest_reading(_reading("S-1", value, minutes=minute))
        store.operations.clear()
        rejected: List[Exception] = []

        def ingest(payload: ReadingIn) -> None:
            try:
                service.ingest_reading(payload)
            except OutOfOrderReadingError as exc:
                rejected.append(exc)

        threads = [
            threading.Thread(target=ingest, args=(_reading("S-1", 62.0, minutes=4),)),
            threading.Thread(target=ingest, args=(_reading("S-1", 90.0, minutes=5),)),
        ]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join()
    finally:
        service.shutdown()

    stored = store.operations.count("store")
    assert stored + len(rejected) == 2
    assert store.operations == ["store", "evaluate"] * stored
    latest = store.latest_snapshot("S-1")
    assert latest is not None
    assert latest.spike_detected is True

"""Trust scoring pipeline: detect, classify, annotate trend, persist, escalate."""

from __future__ import annotations

import logging
from contextlib import contextmanager
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from functools import lru_cache
from threading import Lock, RLock
from typing import Callable, Dict, Iterable, Iterator, List, Optional

from app.schemas import (
    Reading,
    RootCause,
    SensorProfile,
    Severity,
    TrustScoreSnapshot,
)
from datastore.base import ReadingHistoryAccessor, SnapshotStore
from datastore.memory_store import build_default_store
from models.records import DetectorOutcome, PeerReading
from services.classifier import Classification, classify, classify_offline
from services.detectors import detect_low_variance, detect_spike, detect_zone_anomaly
from services.errors import EvaluationFailed, StorageError, UnknownSensorError
from services.escalation import EscalationPolicy
from services.events import TICKET_UPDATE, build_default_event_hub
from services.trend import summarize_trend
from settings import Settings, get_settings

logger = logging.getLogger(__name__)

_MIN_STEP = timedelta(microseconds=1)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass(frozen=True)
class EngineConfig:
    window_size: int = 5
    low_variance_threshold: float = 0.5
    spike_threshold: float = 25.0
    zone_sigma_multiple: float = 2.0
    zone_flat_threshold: float = 15.0
    zone_min_peers: int = 2
    zone_spread_min_population: int = 3
    offline_after_seconds: float = 3600.0
    trend_window: int = 10
    trend_epsilon: float = 0.01
    escalation_min_severity: Severity = Severity.medium

    @classmethod
    def from_settings(cls, settings: Settings) -> "EngineConfig":
        return cls(
            window_size=settings.window_size,
            low_variance_threshold=settings.low_variance_threshold,
            spike_threshold=settings.spike_threshold,
            zone_sigma_multiple=settings.zone_sigma_multiple,
            zone_flat_threshold=settings.zone_flat_threshold,
            zone_min_peers=settings.zone_min_peers,
            offline_after_seconds=settings.offline_after_seconds,
            trend_window=settings.trend_window,
            trend_epsilon=settings.trend_epsilon,
            escalation_min_severity=Severity(settings.escalation_min_severity),
        )


@dataclass
class _EvaluationInputs:
    profile: SensorProfile
    window: List[Reading]
    peers: List[PeerReading]
    prior_snapshots: List[TrustScoreSnapshot]


class TrustEngine:
    """Evaluate readings into append-only trust score snapshots.

    Evaluations of one sensor are serialized by a per-sensor lock held from the
    history read to the escalation step; callers that store a reading before
    evaluating it hold the same lock through ``sensor_scope`` so the store and
    the evaluation happen as one step. Evaluations of different sensors run
    in parallel; zone peers are read from their latest committed readings
    without taking the peers' locks, so zone decisions are eventually
    consistent rather than linearizable.
    """

    def __init__(
        self,
        history: ReadingHistoryAccessor,
        snapshots: SnapshotStore,
        escalation: EscalationPolicy,
        config: Optional[EngineConfig] = None,
        clock: Callable[[], datetime] = _utcnow,
    ) -> None:
        self.history = history
        self.snapshots = snapshots
        self.escalation = escalation
        self.config = config or EngineConfig.from_settings(get_settings())
        self.clock = clock
        self._locks: Dict[str, RLock] = {}
        self._locks_lock = Lock()

    @contextmanager
    def sensor_scope(self, sensor_id: str) -> Iterator[None]:
        """Hold the sensor's evaluation lock; ``evaluate`` may be called inside."""
        with self._sensor_lock(sensor_id):
            yield

    def evaluate(self, sensor_id: str, new_reading: Reading) -> TrustScoreSnapshot:
        """Score ``new_reading``, persist the snapshot and escalate if needed.

        The detectors run for every reading regardless of its age; silence is
        handled by ``mark_offline``. Raises ``EvaluationFailed`` when history cannot be
        read or the snapshot cannot be written; nothing is persisted in that
        case.
        """
        if new_reading.sensor_id != sensor_id:
            raise ValueError(
                f"Reading belongs to sensor {new_reading.sensor_id!r}, not {sensor_id!r}."
            )
        with self._sensor_lock(sensor_id):
            inputs = self._load_inputs(sensor_id, new_reading)
            evaluated_at = self._next_evaluation_time(inputs.prior_snapshots)
            outcomes = self.run_detectors(new_reading, inputs.window, inputs.peers)
            classification = classify(outcomes, new_reading)

            snapshot = self._build_snapshot(
                sensor_id, classification, inputs.prior_snapshots, evaluated_at
            )
            self._persist(snapshot)
            self._log_snapshot(snapshot, inputs.profile)
            self.escalation.escalate(snapshot)
            return snapshot

    def mark_offline(
        self, sensor_id: str, now: Optional[datetime] = None
    ) -> Optional[TrustScoreSnapshot]:
        """Append an offline snapshot when the sensor has gone silent.

        Returns ``None`` when the sensor reported recently or its latest
        snapshot already records it as offline.
        """
        with self._sensor_lock(sensor_id):
            try:
                profile = self.history.get_sensor(sensor_id)
                latest = self.history.get_recent_readings(sensor_id, 1)
                prior = self.snapshots.get_snapshot_history(
                    sensor_id, max(self.config.trend_window - 1, 1)
                )
            except Exception as exc:
                raise EvaluationFailed(sensor_id, str(exc)) from exc
            if profile is None:
                raise UnknownSensorError(sensor_id)

            current = now or self.clock()
            last_seen = latest[0].timestamp if latest else None
            reference = last_seen or profile.registered_at
            if (current - reference).total_seconds() <= self.config.offline_after_seconds:
                return None
            if prior and RootCause.sensor_offline in prior[0].root_causes:
                return None

            evaluated_at = current
            if prior and evaluated_at <= prior[0].evaluated_at:
                evaluated_at = prior[0].evaluated_at + _MIN_STEP

            classification = classify_offline(last_seen, self.config.offline_after_seconds)
            trend_prior = prior[: max(self.config.trend_window - 1, 0)]
            snapshot = self._build_snapshot(sensor_id, classification, trend_prior, evaluated_at)
            self._persist(snapshot)
            self._log_snapshot(snapshot, profile)
            self.escalation.escalate(snapshot)
            return snapshot

    def sweep_offline(
        self, sensor_ids: Iterable[str], now: Optional[datetime] = None
    ) -> List[TrustScoreSnapshot]:
        current = now or self.clock()
        marked: List[TrustScoreSnapshot] = []
        for sensor_id in sensor_ids:
            snapshot = self.mark_offline(sensor_id, now=current)
            if snapshot is not None:
                marked.append(snapshot)
        return marked

    def run_detectors(
        self,
        new_reading: Reading,
        window: List[Reading],
        peers: List[PeerReading],
    ) -> List[DetectorOutcome]:
        """Run the moisture detectors against one reading.

        ``window`` is most recent first and starts with ``new_reading``.
        """
        config = self.config
        values = [reading.moisture for reading in window]
        fresh_peers = [
            peer.reading.moisture
            for peer in peers
            if (new_reading.timestamp - peer.reading.timestamp).total_seconds()
            <= config.offline_after_seconds
        ]
        return [
            detect_low_variance(values, config.window_size, config.low_variance_threshold),
            detect_spike(values[0], values[1 : config.window_size + 1], config.spike_threshold),
            detect_zone_anomaly(
                new_reading.moisture,
                fresh_peers,
                min_peers=config.zone_min_peers,
                sigma_multiple=config.zone_sigma_multiple,
                flat_threshold=config.zone_flat_threshold,
                spread_min_population=config.zone_spread_min_population,
            ),
        ]

    def _sensor_lock(self, sensor_id: str) -> RLock:
        with self._locks_lock:
            lock = self._locks.get(sensor_id)
            if lock is None:
                lock = RLock()
                self._locks[sensor_id] = lock
            return lock

    def _load_inputs(self, sensor_id: str, new_reading: Reading) -> _EvaluationInputs:
        config = self.config
        try:
            profile = self.history.get_sensor(sensor_id)
            if profile is None:
                raise UnknownSensorError(sensor_id)
            stored = self.history.get_recent_readings(sensor_id, config.window_size + 1)
            peers = self.history.get_zone_peers_latest(profile.zone, sensor_id)
            prior = self.snapshots.get_snapshot_history(
                sensor_id, max(config.trend_window - 1, 0)
            )
        except UnknownSensorError:
            raise
        except Exception as exc:
            raise EvaluationFailed(sensor_id, str(exc)) from exc

        # Readings stored after this one are not part of its baseline.
        earlier = [reading for reading in stored if reading.timestamp < new_reading.timestamp]
        window = [new_reading, *earlier][: config.window_size + 1]
        return _EvaluationInputs(profile=profile, window=window, peers=peers, prior_snapshots=prior)

    def _next_evaluation_time(self, prior: List[TrustScoreSnapshot]) -> datetime:
        evaluated_at = self.clock()
        if prior and evaluated_at <= prior[0].evaluated_at:
            evaluated_at = prior[0].evaluated_at + _MIN_STEP
        return evaluated_at

    def _build_snapshot(
        self,
        sensor_id: str,
        classification: Classification,
        prior: List[TrustScoreSnapshot],
        evaluated_at: datetime,
    ) -> TrustScoreSnapshot:
        oldest_first = list(reversed(prior))
        trend = summarize_trend(
            [snapshot.score for snapshot in oldest_first] + [classification.score],
            [snapshot.status for snapshot in oldest_first] + [classification.status],
            self.config.trend_epsilon,
        )
        params = classification.param_scores
        return TrustScoreSnapshot(
            sensor_id=sensor_id,
            score=classification.score,
            status=classification.status,
            severity=classification.severity,
            label=classification.label,
            diagnostic=classification.diagnostic,
            root_causes=list(classification.root_causes),
            param_moisture=params.get("moisture"),
            param_temperature=params.get("temperature"),
            param_ec=params.get("ec"),
            param_ph=params.get("ph"),
            low_variance=classification.low_variance,
            spike_detected=classification.spike_detected,
            zone_anomaly=classification.zone_anomaly,
            health_trend=trend.trend,
            health_slope=trend.slope,
            anomaly_rate=trend.anomaly_rate,
            evaluated_at=evaluated_at,
        )

    def _persist(self, snapshot: TrustScoreSnapshot) -> None:
        try:
            self.snapshots.persist_snapshot(snapshot)
        except StorageError as exc:
            logger.error(
                "Snapshot write failed",
                extra={"sensor_id": snapshot.sensor_id, "reason": str(exc)},
            )
            raise EvaluationFailed(snapshot.sensor_id, str(exc)) from exc

    @staticmethod
    def _log_snapshot(snapshot: TrustScoreSnapshot, profile: SensorProfile) -> None:
        logger.info(
            "Trust score evaluated",
            extra={
                "sensor_id": snapshot.sensor_id,
                "zone": profile.zone,
                "score": snapshot.score,
                "status": snapshot.status,
                "severity": snapshot.severity,
                "root_cause": snapshot.root_causes or None,
            },
        )


@lru_cache
def build_default_engine() -> TrustEngine:
    """Factory that wires the engine with the default store and event hub."""
    settings = get_settings()
    store = build_default_store()
    hub = build_default_event_hub()
    escalation = EscalationPolicy(
        tickets=store,
        min_severity=Severity(settings.escalation_min_severity),
        retries=settings.escalation_retries,
        listener=lambda ticket: hub.publish(TICKET_UPDATE, ticket),
    )
    return TrustEngine(
        history=store,
        snapshots=store,
        escalation=escalation,
        config=EngineConfig.from_settings(settings),
    )

"""Pydantic schemas shared by the engine, the datastore and the HTTP API."""

from __future__ import annotations

from datetime import datetime
from enum import Enum
from typing import Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field


class TrustStatus(str, Enum):
    """Status bands derived from the trust score."""

    healthy = "Healthy"
    warning = "Warning"
    anomalous = "Anomalous"


class Severity(str, Enum):
    """Escalation urgency, ordered from least to most urgent."""

    none = "None"
    low = "Low"
    medium = "Medium"
    high = "High"
    critical = "Critical"

    @property
    def rank(self) -> int:
        return _SEVERITY_ORDER.index(self)


_SEVERITY_ORDER = (
    Severity.none,
    Severity.low,
    Severity.medium,
    Severity.high,
    Severity.critical,
)


class RootCause(str, Enum):
    """Detector tags. Declaration order is the canonical reporting order."""

    stuck_sensor = "STUCK_SENSOR"
    spike = "SPIKE"
    zone_anomaly = "ZONE_ANOMALY"
    sensor_offline = "SENSOR_OFFLINE"


ROOT_CAUSE_ORDER: tuple[RootCause, ...] = tuple(RootCause)


class HealthTrend(str, Enum):
    improving = "improving"
    stable = "stable"
    degrading = "degrading"


class TicketStatus(str, Enum):
    open = "Open"
    in_progress = "InProgress"
    resolved = "Resolved"


ACTIVE_TICKET_STATUSES = frozenset({TicketStatus.open, TicketStatus.in_progress})


class SensorProfile(BaseModel):
    """Registry record for a sensor. The zone never changes after registration."""

    model_config = ConfigDict(frozen=True)

    sensor_id: str = Field(..., min_length=1)
    zone: str = Field(..., min_length=1)
    sensor_type: str = "soil_moisture"
    latitude: Optional[float] = None
    longitude: Optional[float] = None
    registered_at: datetime


class Reading(BaseModel):
    """A stored sensor reading."""

    model_config = ConfigDict(frozen=True)

    sensor_id: str
    moisture: float
    temperature: Optional[float] = None
    ec: Optional[float] = None
    ph: Optional[float] = None
    air_temp: Optional[float] = None
    is_raining: bool = False
    irrigation_active: bool = False
    timestamp: datetime


class TrustScoreSnapshot(BaseModel):
    """One evaluation of a sensor. Snapshots are appended, never edited."""

    model_config = ConfigDict(frozen=True)

    sensor_id: str
    score: float = Field(..., ge=0.0, le=1.0)
    status: TrustStatus
    severity: Severity
    label: str
    diagnostic: str
    root_causes: List[RootCause] = Field(default_factory=list)
    param_moisture: Optional[float] = Field(default=None, ge=0.0, le=1.0)
    param_temperature: Optional[float] = Field(default=None, ge=0.0, le=1.0)
    param_ec: Optional[float] = Field(default=None, ge=0.0, le=1.0)
    param_ph: Optional[float] = Field(default=None, ge=0.0, le=1.0)
    low_variance: bool = False
    spike_detected: bool = False
    zone_anomaly: bool = False
    health_trend: HealthTrend = HealthTrend.stable
    health_slope: float = 0.0
    anomaly_rate: float = Field(default=0.0, ge=0.0, le=1.0)
    evaluated_at: datetime


class MaintenanceTicket(BaseModel):
    """Maintenance work item opened by the escalation policy."""

    ticket_id: str
    sensor_id: str
    root_cause: RootCause
    severity: Severity
    issue: str
    status: TicketStatus = TicketStatus.open
    created_at: datetime
    updated_at: datetime
    resolved_at: Optional[datetime] = None


class SensorCreate(BaseModel):
    """Payload for registering a sensor."""

    sensor_id: str = Field(..., min_length=1, description="External sensor identifier, e.g. SENSOR-001.")
    zone: str = Field(..., min_length=1)
    sensor_type: str = "soil_moisture"
    latitude: Optional[float] = None
    longitude: Optional[float] = None


class ReadingIn(BaseModel):
    """Payload for a single ingested reading."""

    sensor_id: str = Field(..., min_length=1)
    moisture: float
    temperature: Optional[float] = None
    ec: Optional[float] = None
    ph: Optional[float] = Field(default=None, ge=0.0, le=14.0)
    air_temp: Optional[float] = None
    is_raining: bool = False
    irrigation_active: bool = False
    timestamp: Optional[datetime] = Field(
        default=None, description="Reading time; defaults to the ingestion time."
    )


class IngestResult(BaseModel):
    """A stored reading together with the snapshot it produced."""

    reading: Reading
    trust_score: TrustScoreSnapshot


class BatchItemResult(BaseModel):
    success: bool
    data: Optional[IngestResult] = None
    error: Optional[str] = None


class SensorDetail(BaseModel):
    """A sensor with its latest snapshot and most recent readings."""

    sensor: SensorProfile
    trust_score: Optional[TrustScoreSnapshot] = None
    readings: List[Reading] = Field(default_factory=list)


class TicketStatusUpdate(BaseModel):
    status: TicketStatus


class SensorCounts(BaseModel):
    total: int = 0
    healthy: int = 0
    warning: int = 0
    anomalous: int = 0
    offline: int = 0
    by_severity: Dict[str, int] = Field(default_factory=dict)


class TicketCounts(BaseModel):
    total: int = 0
    open: int = 0
    in_progress: int = 0
    resolved: int = 0


class DashboardSummary(BaseModel):
    sensors: SensorCounts
    tickets: TicketCounts


class ZoneStatistics(BaseModel):
    zone: str
    total: int = 0
    healthy: int = 0
    warning: int = 0
    anomalous: int = 0
    offline: int = 0
    degrading: int = 0
    avg_score: float = 0.0


class RecentActivity(BaseModel):
    """Latest readings and tickets across the fleet, newest first."""

    readings: List[Reading] = Field(default_factory=list)
    tickets: List[MaintenanceTicket] = Field(default_factory=list)


class OfflineSweepResult(BaseModel):
    sensor_ids: List[str] = Field(default_factory=list)

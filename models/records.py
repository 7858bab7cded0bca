"""Internal value objects passed between engine stages."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Optional

from app.schemas import HealthTrend, Reading, RootCause


@dataclass(frozen=True, slots=True)
class PeerReading:
    """Latest committed reading of another sensor in the same zone."""

    sensor_id: str
    reading: Reading


@dataclass(frozen=True, slots=True)
class DetectorOutcome:
    """Result of one detector run.

    ``insufficient_data`` outcomes never carry a penalty.
    """

    root_cause: RootCause
    triggered: bool = False
    penalty: float = 0.0
    insufficient_data: bool = False
    detail: Optional[str] = None

    @property
    def effective_penalty(self) -> float:
        return self.penalty if self.triggered else 0.0


@dataclass(frozen=True, slots=True)
class TrendSummary:
    trend: HealthTrend
    slope: float
    anomaly_rate: float

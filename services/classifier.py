"""Combine detector outcomes into a score, status, severity and explanation."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import Dict, Iterable, List, Optional, Sequence

from app.schemas import ROOT_CAUSE_ORDER, Reading, RootCause, Severity, TrustStatus
from models.records import DetectorOutcome

HEALTHY_BREAKPOINT = 0.80
WARNING_BREAKPOINT = 0.60

HEALTHY_DIAGNOSTIC = "All readings consistent with sensor history and zone peers."

_SINGLE_CAUSE_LABELS = {
    RootCause.stuck_sensor: "Possibly Stuck",
    RootCause.spike: "Spike Suspected",
    RootCause.zone_anomaly: "Zone Outlier",
    RootCause.sensor_offline: "Offline",
}

_SINGLE_CAUSE_SEVERITY = {
    RootCause.stuck_sensor: Severity.low,
    RootCause.spike: Severity.medium,
    RootCause.zone_anomaly: Severity.high,
    RootCause.sensor_offline: Severity.critical,
}


@dataclass
class Classification:
    score: float
    status: TrustStatus
    severity: Severity
    label: str
    diagnostic: str
    root_causes: List[RootCause] = field(default_factory=list)
    param_scores: Dict[str, Optional[float]] = field(default_factory=dict)
    low_variance: bool = False
    spike_detected: bool = False
    zone_anomaly: bool = False


def aggregate_score(outcomes: Iterable[DetectorOutcome]) -> float:
    """Additive penalties against a baseline of 1.0, floored at 0."""
    deduction = sum(outcome.effective_penalty for outcome in outcomes)
    return round(max(0.0, 1.0 - deduction), 6)


def status_for_score(score: float) -> TrustStatus:
    if score >= HEALTHY_BREAKPOINT:
        return TrustStatus.healthy
    if score >= WARNING_BREAKPOINT:
        return TrustStatus.warning
    return TrustStatus.anomalous


def ordered_causes(causes: Iterable[RootCause]) -> List[RootCause]:
    present = set(causes)
    return [cause for cause in ROOT_CAUSE_ORDER if cause in present]


def severity_for_causes(causes: Sequence[RootCause]) -> Severity:
    if not causes:
        return Severity.none
    if RootCause.sensor_offline in causes:
        return Severity.critical
    if len(causes) == 1:
        return _SINGLE_CAUSE_SEVERITY[causes[0]]
    if len(causes) >= 3 or RootCause.zone_anomaly in causes:
        return Severity.critical
    return Severity.high


def label_for_causes(causes: Sequence[RootCause]) -> str:
    if not causes:
        return "Highly Reliable"
    if RootCause.sensor_offline in causes:
        return _SINGLE_CAUSE_LABELS[RootCause.sensor_offline]
    if len(causes) == 1:
        return _SINGLE_CAUSE_LABELS[causes[0]]
    return "Unreliable"


def compose_diagnostic(outcomes: Sequence[DetectorOutcome]) -> str:
    fired = {outcome.root_cause: outcome for outcome in outcomes if outcome.triggered}
    if not fired:
        return HEALTHY_DIAGNOSTIC
    sentences = [
        fired[cause].detail or f"{cause.value} detected."
        for cause in ordered_causes(fired)
    ]
    return " ".join(sentences)


def _sampled(value: Optional[float]) -> Optional[float]:
    return None if value is None else 1.0


def classify(outcomes: Sequence[DetectorOutcome], reading: Reading) -> Classification:
    """Classify one evaluation of moisture-based detector outcomes."""
    causes = ordered_causes(outcome.root_cause for outcome in outcomes if outcome.triggered)
    score = aggregate_score(outcomes)
    triggered = {outcome.root_cause for outcome in outcomes if outcome.triggered}

    return Classification(
        score=score,
        status=status_for_score(score),
        severity=severity_for_causes(causes),
        label=label_for_causes(causes),
        diagnostic=compose_diagnostic(outcomes),
        root_causes=causes,
        param_scores={
            "moisture": score,
            "temperature": _sampled(reading.temperature),
            "ec": _sampled(reading.ec),
            "ph": _sampled(reading.ph),
        },
        low_variance=RootCause.stuck_sensor in triggered,
        spike_detected=RootCause.spike in triggered,
        zone_anomaly=RootCause.zone_anomaly in triggered,
    )


def classify_offline(last_seen: Optional[datetime], offline_after_seconds: float) -> Classification:
    """Offline overrides every other cause and the last stored score."""
    if last_seen is None:
        diagnostic = "Sensor has never reported a reading."
    else:
        diagnostic = (
            f"No reading received within {offline_after_seconds:.0f} seconds; "
            f"last reading at {last_seen.isoformat()}."
        )
    causes = [RootCause.sensor_offline]
    return Classification(
        score=0.0,
        status=TrustStatus.anomalous,
        severity=severity_for_causes(causes),
        label=label_for_causes(causes),
        diagnostic=diagnostic,
        root_causes=causes,
        param_scores={"moisture": None, "temperature": None, "ec": None, "ph": None},
    )

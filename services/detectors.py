"""Rule-based anomaly detectors.

Every detector is a pure function over values that were already fetched for the
evaluation, so each one can be exercised without a datastore. A detector that
lacks the data it needs reports ``insufficient_data`` and never penalises.
"""

from __future__ import annotations

from statistics import fmean, pstdev, pvariance
from typing import Sequence

from app.schemas import RootCause
from models.records import DetectorOutcome

VARIANCE_PENALTY = 0.15
SPIKE_PENALTY = 0.20
ZONE_PENALTY = 0.25

PENALTIES = {
    RootCause.stuck_sensor: VARIANCE_PENALTY,
    RootCause.spike: SPIKE_PENALTY,
    RootCause.zone_anomaly: ZONE_PENALTY,
}


def detect_low_variance(
    window: Sequence[float],
    window_size: int,
    threshold: float,
    parameter: str = "moisture",
) -> DetectorOutcome:
    """Flag a sensor whose last ``window_size`` values barely move.

    ``window`` holds the newest value first and includes the value under
    evaluation.
    """
    if len(window) < window_size:
        return DetectorOutcome(root_cause=RootCause.stuck_sensor, insufficient_data=True)

    values = list(window[:window_size])
    variance = pvariance(values)
    if variance >= threshold:
        return DetectorOutcome(root_cause=RootCause.stuck_sensor)

    return DetectorOutcome(
        root_cause=RootCause.stuck_sensor,
        triggered=True,
        penalty=VARIANCE_PENALTY,
        detail=(
            f"{parameter.capitalize()} variance of {variance:.2f} across the last "
            f"{window_size} readings suggests a stuck sensor."
        ),
    )


def detect_spike(
    value: float,
    baseline_window: Sequence[float],
    threshold: float,
    parameter: str = "moisture",
) -> DetectorOutcome:
    """Flag a value that jumps away from the mean of the prior readings."""
    if not baseline_window:
        return DetectorOutcome(root_cause=RootCause.spike, insufficient_data=True)

    baseline = fmean(baseline_window)
    delta = abs(value - baseline)
    if delta < threshold:
        return DetectorOutcome(root_cause=RootCause.spike)

    return DetectorOutcome(
        root_cause=RootCause.spike,
        triggered=True,
        penalty=SPIKE_PENALTY,
        detail=(
            f"{parameter.capitalize()} jumped {delta:.1f} points to {value:.1f} "
            f"from a baseline of {baseline:.1f}."
        ),
    )


def detect_zone_anomaly(
    value: float,
    peer_values: Sequence[float],
    min_peers: int,
    sigma_multiple: float,
    flat_threshold: float,
    spread_min_population: int = 3,
    parameter: str = "moisture",
) -> DetectorOutcome:
    """Flag a value that diverges from the concurrent values of zone peers.

    The allowed deviation is ``max(sigma_multiple * stdev, flat_threshold)``;
    below ``spread_min_population`` peers only the flat threshold applies.
    """
    if len(peer_values) < max(min_peers, 1):
        return DetectorOutcome(root_cause=RootCause.zone_anomaly, insufficient_data=True)

    zone_mean = fmean(peer_values)
    allowance = flat_threshold
    if len(peer_values) >= spread_min_population:
        allowance = max(sigma_multiple * pstdev(peer_values), flat_threshold)

    deviation = abs(value - zone_mean)
    if deviation <= allowance:
        return DetectorOutcome(root_cause=RootCause.zone_anomaly)

    return DetectorOutcome(
        root_cause=RootCause.zone_anomaly,
        triggered=True,
        penalty=ZONE_PENALTY,
        detail=(
            f"{parameter.capitalize()} of {value:.1f} deviates {deviation:.1f} points from "
            f"the zone mean of {zone_mean:.1f} across {len(peer_values)} peers."
        ),
    )

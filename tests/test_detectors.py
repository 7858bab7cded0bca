"""Unit tests for the stuck, spike and zone detectors."""

from __future__ import annotations

import pytest

from app.schemas import RootCause
from services.detectors import (
    SPIKE_PENALTY,
    VARIANCE_PENALTY,
    ZONE_PENALTY,
    detect_low_variance,
    detect_spike,
    detect_zone_anomaly,
)


def test_low_variance_requires_full_window() -> None:
    outcome = detect_low_variance([45.0, 45.0, 45.0, 45.0], window_size=5, threshold=0.5)

    assert outcome.insufficient_data is True
    assert outcome.triggered is False
    assert outcome.effective_penalty == 0.0


def test_low_variance_flags_identical_values() -> None:
    outcome = detect_low_variance([45.0] * 5, window_size=5, threshold=0.5)

    assert outcome.root_cause == RootCause.stuck_sensor
    assert outcome.triggered is True
    assert outcome.penalty == VARIANCE_PENALTY
    assert "stuck sensor" in (outcome.detail or "")


def test_low_variance_ignores_values_beyond_window() -> None:
    # The newest five values are flat; older, noisier values must not count.
    outcome = detect_low_variance([45.0, 45.1, 45.0, 44.9, 45.0, 10.0, 80.0], window_size=5, threshold=0.5)

    assert outcome.triggered is True


def test_low_variance_passes_varying_values() -> None:
    outcome = detect_low_variance([47.0, 52.0, 58.0, 49.0, 55.0], window_size=5, threshold=0.5)

    assert outcome.triggered is False
    assert outcome.insufficient_data is False


def test_spike_without_baseline_is_insufficient() -> None:
    outcome = detect_spike(90.0, [], threshold=25.0)

    assert outcome.insufficient_data is True
    assert outcome.effective_penalty == 0.0


def test_spike_fires_on_large_jump() -> None:
    outcome = detect_spike(90.0, [36.0, 37.0, 35.0], threshold=25.0)

    assert outcome.triggered is True
    assert outcome.penalty == SPIKE_PENALTY
    assert "36.0" in (outcome.detail or "")


def test_spike_fires_at_exact_threshold() -> None:
    outcome = detect_spike(60.0, [35.0, 35.0], threshold=25.0)

    assert outcome.triggered is True


def test_spike_fires_on_drops_too() -> None:
    outcome = detect_spike(5.0, [40.0, 41.0], threshold=25.0)

    assert outcome.triggered is True


def test_spike_ignores_small_changes() -> None:
    outcome = detect_spike(40.0, [36.0, 37.0, 35.0], threshold=25.0)

    assert outcome.triggered is False


def test_zone_requires_minimum_peers() -> None:
    outcome = detect_zone_anomaly(95.0, [42.0], min_peers=2, sigma_multiple=2.0, flat_threshold=15.0)

    assert outcome.insufficient_data is True
    assert outcome.triggered is False


def test_zone_flags_outlier() -> None:
    outcome = detect_zone_anomaly(
        95.0, [42.0, 44.0, 41.0], min_peers=2, sigma_multiple=2.0, flat_threshold=15.0
    )

    assert outcome.root_cause == RootCause.zone_anomaly
    assert outcome.triggered is True
    assert outcome.penalty == ZONE_PENALTY
    assert "3 peers" in (outcome.detail or "")


def test_zone_flat_threshold_protects_tight_zones() -> None:
    # Peers are tightly clustered, so 2 sigma alone would flag ordinary noise.
    outcome = detect_zone_anomaly(
        47.0, [42.0, 44.0, 41.0], min_peers=2, sigma_multiple=2.0, flat_threshold=15.0
    )

    assert outcome.triggered is False


def test_zone_sigma_allowance_widens_for_spread_out_zones() -> None:
    peers = [10.0, 50.0, 90.0]
    outcome = detect_zone_anomaly(
        110.0, peers, min_peers=2, sigma_multiple=2.0, flat_threshold=15.0
    )

    # mean 50, stdev ~32.7 -> allowance ~65.3, deviation 60
    assert outcome.triggered is False


def test_zone_small_population_uses_flat_threshold_only() -> None:
    outcome = detect_zone_anomaly(
        70.0, [40.0, 42.0], min_peers=2, sigma_multiple=2.0, flat_threshold=15.0
    )

    assert outcome.triggered is True


@pytest.mark.parametrize("value", [41.0, 55.9])
def test_zone_within_allowance_is_not_flagged(value: float) -> None:
    outcome = detect_zone_anomaly(
        value, [42.0, 44.0, 41.0], min_peers=2, sigma_multiple=2.0, flat_threshold=15.0
    )

    assert outcome.triggered is False

from __future__ import annotations

import os
from dataclasses import dataclass
from functools import lru_cache
from typing import Callable, Optional, TypeVar


_WINDOW_SIZE_ENV = "TRUST_WINDOW_SIZE"
_LOW_VARIANCE_ENV = "TRUST_LOW_VARIANCE_THRESHOLD"
_SPIKE_THRESHOLD_ENV = "TRUST_SPIKE_THRESHOLD"
_ZONE_SIGMA_ENV = "TRUST_ZONE_SIGMA_MULTIPLE"
_ZONE_FLAT_ENV = "TRUST_ZONE_FLAT_THRESHOLD"
_ZONE_MIN_PEERS_ENV = "TRUST_ZONE_MIN_PEERS"
_OFFLINE_AFTER_ENV = "TRUST_OFFLINE_AFTER_SECONDS"
_TREND_WINDOW_ENV = "TRUST_TREND_WINDOW"
_TREND_EPSILON_ENV = "TRUST_TREND_EPSILON"
_ESCALATION_SEVERITY_ENV = "TRUST_ESCALATION_MIN_SEVERITY"
_ESCALATION_RETRIES_ENV = "TRUST_ESCALATION_RETRIES"
_STORE_PATH_ENV = "TRUST_STORE_PERSISTENCE_PATH"
_CACHE_TTL_ENV = "SUMMARY_CACHE_TTL_SECONDS"
_WORKER_COUNT_ENV = "INGEST_WORKER_COUNT"
_LOG_LEVEL_ENV = "LOG_LEVEL"

_SEVERITY_NAMES = ("None", "Low", "Medium", "High", "Critical")

Number = TypeVar("Number", int, float)


@dataclass(frozen=True)
class Settings:
    window_size: int
    low_variance_threshold: float
    spike_threshold: float
    zone_sigma_multiple: float
    zone_flat_threshold: float
    zone_min_peers: int
    offline_after_seconds: float
    trend_window: int
    trend_epsilon: float
    escalation_min_severity: str
    escalation_retries: int
    store_persistence_path: Optional[str]
    summary_cache_ttl_seconds: float
    ingest_workers: int
    log_level: str


def _raw_env(name: str) -> Optional[str]:
    """Stripped value of ``name``; ``None`` when unset or blank."""
    value = os.getenv(name)
    if value is None:
        return None
    return value.strip() or None


def _read_number(
    name: str,
    default: Number,
    parse: Callable[[str], Number],
    minimum: float = 0.0,
    inclusive: bool = False,
) -> Number:
    candidate = _raw_env(name)
    if candidate is None:
        return default
    try:
        parsed = parse(candidate)
    except ValueError:
        return default
    in_range = parsed >= minimum if inclusive else parsed > minimum
    return parsed if in_range else default


def _read_severity(default: str) -> str:
    candidate = _raw_env(_ESCALATION_SEVERITY_ENV)
    if candidate is None:
        return default
    candidate = candidate.capitalize()
    return candidate if candidate in _SEVERITY_NAMES else default


@lru_cache
def get_settings() -> Settings:
    """Read service settings from the environment.

    Blank or malformed values fall back to the defaults below.
    """
    log_level = _raw_env(_LOG_LEVEL_ENV)
    return Settings(
        window_size=_read_number(_WINDOW_SIZE_ENV, 5, int),
        low_variance_threshold=_read_number(_LOW_VARIANCE_ENV, 0.5, float),
        spike_threshold=_read_number(_SPIKE_THRESHOLD_ENV, 25.0, float),
        zone_sigma_multiple=_read_number(_ZONE_SIGMA_ENV, 2.0, float),
        zone_flat_threshold=_read_number(_ZONE_FLAT_ENV, 15.0, float),
        zone_min_peers=_read_number(_ZONE_MIN_PEERS_ENV, 2, int, minimum=1, inclusive=True),
        offline_after_seconds=_read_number(_OFFLINE_AFTER_ENV, 3600.0, float),
        trend_window=_read_number(_TREND_WINDOW_ENV, 10, int),
        trend_epsilon=_read_number(_TREND_EPSILON_ENV, 0.01, float),
        escalation_min_severity=_read_severity("Medium"),
        escalation_retries=_read_number(_ESCALATION_RETRIES_ENV, 2, int, inclusive=True),
        store_persistence_path=_raw_env(_STORE_PATH_ENV),
        summary_cache_ttl_seconds=_read_number(_CACHE_TTL_ENV, 30.0, float),
        ingest_workers=_read_number(_WORKER_COUNT_ENV, 4, int),
        log_level=log_level.upper() if log_level else "INFO",
    )

from __future__ import annotations

import os
from dataclasses import dataclass
from typing import Optional

DEFAULT_BASE_URL = "http://localhost:8000"
DEFAULT_TIMEOUT = 30.0
DEFAULT_DEMO_DELAY = 0.5

_BASE_URL_ENV = "TRUST_API_BASE_URL"
_TIMEOUT_ENV = "TRUST_CLI_TIMEOUT"
_DEMO_DELAY_ENV = "TRUST_DEMO_DELAY"


@dataclass(frozen=True)
class CLIConfig:
    base_url: str = DEFAULT_BASE_URL
    timeout: float = DEFAULT_TIMEOUT
    demo_delay: float = DEFAULT_DEMO_DELAY


def _read_float(value: Optional[str], default: float, allow_zero: bool = False) -> float:
    if value is None:
        return default
    candidate = value.strip()
    if not candidate:
        return default
    try:
        parsed = float(candidate)
    except ValueError:
        return default
    if parsed > 0 or (allow_zero and parsed == 0):
        return parsed
    return default


def load_config(
    base_url: Optional[str] = None,
    timeout: Optional[float] = None,
    demo_delay: Optional[float] = None,
) -> CLIConfig:
    url = base_url or os.getenv(_BASE_URL_ENV) or DEFAULT_BASE_URL
    if timeout is None:
        timeout = _read_float(os.getenv(_TIMEOUT_ENV), DEFAULT_TIMEOUT)
    if demo_delay is None:
        demo_delay = _read_float(os.getenv(_DEMO_DELAY_ENV), DEFAULT_DEMO_DELAY, allow_zero=True)
    return CLIConfig(
        base_url=url.rstrip("/"),
        timeout=timeout,
        demo_delay=demo_delay,
    )

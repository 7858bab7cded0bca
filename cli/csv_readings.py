"""Parse reading CSV files into batch ingestion payloads."""

from __future__ import annotations

import csv
from dataclasses import dataclass, field
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, List, Optional, TextIO

_REQUIRED_COLUMNS = {"sensor_id", "moisture"}
_OPTIONAL_FLOAT_COLUMNS = ("temperature", "ec", "ph", "air_temp")
_BOOLEAN_COLUMNS = ("is_raining", "irrigation_active")
_TRUE_VALUES = {"1", "true", "yes", "y"}


@dataclass
class RowError:
    row_number: int
    reason: str


@dataclass
class ParsedReadings:
    payloads: List[Dict[str, Any]] = field(default_factory=list)
    errors: List[RowError] = field(default_factory=list)


def parse_timestamp(value: str) -> datetime:
    candidate = value.strip()
    if not candidate:
        raise ValueError("Timestamp is empty.")

    if candidate.endswith("Z"):
        candidate = candidate[:-1] + "+00:00"

    try:
        parsed = datetime.fromisoformat(candidate)
    except ValueError as exc:
        raise ValueError("Invalid timestamp format") from exc

    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)

    return parsed.astimezone(timezone.utc)


def _optional_float(raw: Optional[str]) -> Optional[float]:
    candidate = (raw or "").strip()
    if not candidate:
        return None
    return float(candidate)


def parse_readings(stream: TextIO) -> ParsedReadings:
    """Read ``sensor_id,moisture[,temperature,ec,ph,air_temp,...,timestamp]`` rows.

    Invalid rows are collected as errors and skipped.
    """
    reader = csv.DictReader(stream)
    if not reader.fieldnames:
        raise ValueError("CSV file is missing a header row.")

    normalized = {name.lower().strip(): name for name in reader.fieldnames}
    missing = sorted(_REQUIRED_COLUMNS - normalized.keys())
    if missing:
        raise ValueError(f"CSV missing required columns: {', '.join(missing)}")

    result = ParsedReadings()
    for row_number, row in enumerate(reader, start=2):
        sensor_raw = (row.get(normalized["sensor_id"]) or "").strip()
        if not sensor_raw:
            result.errors.append(RowError(row_number=row_number, reason="missing sensor_id"))
            continue

        moisture_raw = (row.get(normalized["moisture"]) or "").strip()
        if not moisture_raw:
            result.errors.append(RowError(row_number=row_number, reason="missing moisture"))
            continue

        payload: Dict[str, Any] = {"sensor_id": sensor_raw}
        try:
            payload["moisture"] = float(moisture_raw)
            for column in _OPTIONAL_FLOAT_COLUMNS:
                if column in normalized:
                    value = _optional_float(row.get(normalized[column]))
                    if value is not None:
                        payload[column] = value
        except ValueError:
            result.errors.append(RowError(row_number=row_number, reason="invalid numeric value"))
            continue

        if "timestamp" in normalized:
            timestamp_raw = (row.get(normalized["timestamp"]) or "").strip()
            if timestamp_raw:
                try:
                    payload["timestamp"] = parse_timestamp(timestamp_raw).isoformat()
                except ValueError:
                    result.errors.append(RowError(row_number=row_number, reason="invalid timestamp"))
                    continue

        for column in _BOOLEAN_COLUMNS:
            if column in normalized:
                raw = (row.get(normalized[column]) or "").strip().lower()
                payload[column] = raw in _TRUE_VALUES

        result.payloads.append(payload)

    return result


def parse_readings_file(path: Path) -> ParsedReadings:
    with path.open("r", encoding="utf-8", newline="") as handle:
        return parse_readings(handle)

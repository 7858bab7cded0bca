from __future__ import annotations

import io
from datetime import datetime, timezone

import pytest

from cli.csv_readings import parse_readings, parse_timestamp


def test_parse_timestamp_normalizes_to_utc() -> None:
    assert parse_timestamp("2025-06-01T10:00:00Z") == datetime(2025, 6, 1, 10, tzinfo=timezone.utc)
    assert parse_timestamp("2025-06-01T12:00:00+02:00") == datetime(2025, 6, 1, 10, tzinfo=timezone.utc)
    assert parse_timestamp("2025-06-01T10:00:00") == datetime(2025, 6, 1, 10, tzinfo=timezone.utc)

    with pytest.raises(ValueError):
        parse_timestamp("yesterday")


def test_parse_readings_collects_payloads_and_row_errors() -> None:
    stream = io.StringIO(
        "Sensor_ID,Moisture,Temperature,pH,timestamp,is_raining\n"
        "S-1,41.5,22.0,6.8,2025-06-01T10:00:00Z,yes\n"
        "S-2,abc,22.0,,,\n"
        "S-3,40.0,,,not-a-date,\n"
        "S-4,39.0,,,,no\n"
    )

    parsed = parse_readings(stream)

    assert parsed.payloads == [
        {
            "sensor_id": "S-1",
            "moisture": 41.5,
            "temperature": 22.0,
            "ph": 6.8,
            "timestamp": "2025-06-01T10:00:00+00:00",
            "is_raining": True,
        },
        {"sensor_id": "S-4", "moisture": 39.0, "is_raining": False},
    ]
    assert [(error.row_number, error.reason) for error in parsed.errors] == [
        (3, "invalid numeric value"),
        (4, "invalid timestamp"),
    ]


def test_parse_readings_requires_columns() -> None:
    with pytest.raises(ValueError, match="moisture"):
        parse_readings(io.StringIO("sensor_id,value\nS-1,1.0\n"))

    with pytest.raises(ValueError):
        parse_readings(io.StringIO(""))

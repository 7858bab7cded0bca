"""Exceptions raised by the trust engine and its collaborators."""

from __future__ import annotations


class TrustEngineError(Exception):
    """Base class for engine failures."""


class StorageError(TrustEngineError):
    """A collaborator could not read or write persisted state."""


class EvaluationFailed(TrustEngineError):
    """An evaluation was aborted before a snapshot could be persisted."""

    def __init__(self, sensor_id: str, reason: str) -> None:
        super().__init__(f"Evaluation of sensor {sensor_id!r} failed: {reason}")
        self.sensor_id = sensor_id
        self.reason = reason


class UnknownSensorError(KeyError):
    def __init__(self, sensor_id: str) -> None:
        super().__init__(f"Sensor {sensor_id!r} not found.")
        self.sensor_id = sensor_id

    def __str__(self) -> str:
        return str(self.args[0])


class DuplicateSensorError(ValueError):
    def __init__(self, sensor_id: str) -> None:
        super().__init__(f"Sensor {sensor_id!r} is already registered.")
        self.sensor_id = sensor_id


class OutOfOrderReadingError(ValueError):
    """A reading is not newer than the latest stored reading of its sensor."""


class TicketNotFoundError(KeyError):
    def __init__(self, ticket_id: str) -> None:
        super().__init__(f"Ticket {ticket_id!r} not found.")
        self.ticket_id = ticket_id

    def __str__(self) -> str:
        return str(self.args[0])

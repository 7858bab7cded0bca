from __future__ import annotations
import json
from datetime import datetime
from functools import lru_cache
from pathlib import Path
from threading import Lock
from typing import Callable, Dict, List, Optional

from app.schemas import (
    ACTIVE_TICKET_STATUSES,
    MaintenanceTicket,
    Reading,
    RootCause,
    SensorProfile,
    TicketStatus,
    TrustScoreSnapshot,
)
from datastore.base import ReadingHistoryAccessor, SnapshotStore, TicketStore
from models.records import PeerReading
from services.errors import (
    DuplicateSensorError,
    OutOfOrderReadingError,
    StorageError,
    TicketNotFoundError,
    UnknownSensorError,
)
from settings import get_settings


class InMemoryTrustStore(ReadingHistoryAccessor, SnapshotStore, TicketStore):
    """Registry, reading log, snapshot log and ticket table behind a single lock.

    Readings and snapshots are kept oldest first and only ever appended.
    """

    def __init__(self, name: str = "trust", persistence_path: Optional[Path] = None) -> None:
        self.name = name
        self.persistence_path = persistence_path
        self._sensors: Dict[str, SensorProfile] = {}
        self._readings: Dict[str, List[Reading]] = {}
        self._snapshots: Dict[str, List[TrustScoreSnapshot]] = {}
        self._tickets: Dict[str, MaintenanceTicket] = {}
        self._lock = Lock()
        if persistence_path:
            persistence_path.parent.mkdir(parents=True, exist_ok=True)
            self._load_from_disk()

    # Registry

    def register_sensor(self, profile: SensorProfile) -> SensorProfile:
        with self._lock:
            if profile.sensor_id in self._sensors:
                raise DuplicateSensorError(profile.sensor_id)
            self._sensors[profile.sensor_id] = profile
            self._readings.setdefault(profile.sensor_id, [])
            self._snapshots.setdefault(profile.sensor_id, [])
            self._commit(lambda: self._forget_sensor(profile.sensor_id))
            return profile

    def get_sensor(self, sensor_id: str) -> Optional[SensorProfile]:
        with self._lock:
            return self._sensors.get(sensor_id)

    def list_sensors(self) -> list[SensorProfile]:
        with self._lock:
            return sorted(self._sensors.values(), key=lambda sensor: sensor.sensor_id)

    # Readings

    def append_reading(self, reading: Reading) -> Reading:
        with self._lock:
            if reading.sensor_id not in self._sensors:
                raise UnknownSensorError(reading.sensor_id)
            history = self._readings.setdefault(reading.sensor_id, [])
            if history and reading.timestamp <= history[-1].timestamp:
                raise OutOfOrderReadingError(
                    f"Reading for sensor {reading.sensor_id!r} at {reading.timestamp.isoformat()} "
                    f"is not newer than the latest stored reading at {history[-1].timestamp.isoformat()}."
                )
            history.append(reading)
            self._commit(history.pop)
            return reading

    def latest_reading(self, sensor_id: str) -> Optional[Reading]:
        with self._lock:
            history = self._readings.get(sensor_id)
            return history[-1] if history else None

    def get_recent_readings(self, sensor_id: str, window_size: int) -> List[Reading]:
        with self._lock:
            history = self._readings.get(sensor_id, [])
            return list(reversed(history[-window_size:])) if window_size > 0 else []

    def recent_readings(self, limit: int) -> List[Reading]:
        """Latest ``limit`` readings across all sensors, newest first."""
        with self._lock:
            readings = [reading for history in self._readings.values() for reading in history]
        readings.sort(key=lambda reading: (reading.timestamp, reading.sensor_id), reverse=True)
        return readings[:limit] if limit > 0 else []

    def get_zone_peers_latest(self, zone: str, excluding_sensor_id: str) -> List[PeerReading]:
        with self._lock:
            peers: List[PeerReading] = []
            for sensor_id, profile in sorted(self._sensors.items()):
                if sensor_id == excluding_sensor_id or profile.zone != zone:
                    continue
                history = self._readings.get(sensor_id)
                if history:
                    peers.append(PeerReading(sensor_id=sensor_id, reading=history[-1]))
            return peers

    # Snapshots

    def persist_snapshot(self, snapshot: TrustScoreSnapshot) -> None:
        with self._lock:
            if snapshot.sensor_id not in self._sensors:
                raise StorageError(f"Cannot persist snapshot for unknown sensor {snapshot.sensor_id!r}.")
            history = self._snapshots.setdefault(snapshot.sensor_id, [])
            if history and snapshot.evaluated_at <= history[-1].evaluated_at:
                raise StorageError(
                    f"Snapshot for sensor {snapshot.sensor_id!r} is not newer than the latest stored snapshot."
                )
            history.append(snapshot.model_copy(deep=True))
            self._commit(history.pop)

    def get_snapshot_history(self, sensor_id: str, k: int) -> List[TrustScoreSnapshot]:
        with self._lock:
            history = self._snapshots.get(sensor_id, [])
            if k <= 0:
                return []
            return [item.model_copy(deep=True) for item in reversed(history[-k:])]

    def latest_snapshot(self, sensor_id: str) -> Optional[TrustScoreSnapshot]:
        with self._lock:
            history = self._snapshots.get(sensor_id)
            return history[-1].model_copy(deep=True) if history else None

    def latest_snapshots(self) -> Dict[str, TrustScoreSnapshot]:
        with self._lock:
            return {
                sensor_id: history[-1].model_copy(deep=True)
                for sensor_id, history in self._snapshots.items()
                if history
            }

    def snapshots_since(self, sensor_id: str, cutoff: datetime) -> List[TrustScoreSnapshot]:
        """Return snapshots evaluated at or after ``cutoff``, oldest first."""

        with self._lock:
            return [
                item.model_copy(deep=True)
                for item in self._snapshots.get(sensor_id, [])
                if item.evaluated_at >= cutoff
            ]

    # Tickets

    def find_open_ticket(self, sensor_id: str, root_cause: RootCause) -> Optional[MaintenanceTicket]:
        with self._lock:
            for ticket in self._tickets.values():
                if (
                    ticket.sensor_id == sensor_id
                    and ticket.root_cause == root_cause
                    and ticket.status in ACTIVE_TICKET_STATUSES
                ):
                    return ticket.model_copy(deep=True)
            return None

    def create_or_update_ticket(self, ticket: MaintenanceTicket) -> MaintenanceTicket:
        with self._lock:
            previous = self._tickets.get(ticket.ticket_id)
            if previous is None and ticket.status in ACTIVE_TICKET_STATUSES:
                for existing in self._tickets.values():
                    if (
                        existing.sensor_id == ticket.sensor_id
                        and existing.root_cause == ticket.root_cause
                        and existing.status in ACTIVE_TICKET_STATUSES
                    ):
                        raise StorageError(
                            f"Sensor {ticket.sensor_id!r} already has an active "
                            f"{ticket.root_cause.value} ticket {existing.ticket_id!r}."
                        )
            self._tickets[ticket.ticket_id] = ticket.model_copy(deep=True)
            self._commit(lambda: self._restore_ticket(ticket.ticket_id, previous))
            return ticket.model_copy(deep=True)

    def get_ticket(self, ticket_id: str) -> MaintenanceTicket:
        with self._lock:
            ticket = self._tickets.get(ticket_id)
            if ticket is None:
                raise TicketNotFoundError(ticket_id)
            return ticket.model_copy(deep=True)

    def list_tickets(self, status: Optional[TicketStatus] = None) -> list[MaintenanceTicket]:
        with self._lock:
            tickets = [
                ticket.model_copy(deep=True)
                for ticket in self._tickets.values()
                if status is None or ticket.status == status
            ]
        return sorted(tickets, key=lambda ticket: ticket.created_at, reverse=True)

    def update_ticket_status(
        self, ticket_id: str, status: TicketStatus, now: datetime
    ) -> MaintenanceTicket:
        with self._lock:
            previous = self._tickets.get(ticket_id)
            if previous is None:
                raise TicketNotFoundError(ticket_id)
            if previous.status == TicketStatus.resolved and status != TicketStatus.resolved:
                raise ValueError(f"Ticket {ticket_id!r} is resolved and cannot be reopened.")
            updated = previous.model_copy(
                update={
                    "status": status,
                    "updated_at": now,
                    "resolved_at": now if status == TicketStatus.resolved else None,
                }
            )
            self._tickets[ticket_id] = updated
            self._commit(lambda: self._restore_ticket(ticket_id, previous))
            return updated.model_copy(deep=True)

    # Persistence

    def _commit(self, rollback: Callable[[], object]) -> None:
        """Persist current state; undo the pending in-memory change when the write fails."""
        try:
            self._persist()
        except OSError as exc:
            rollback()
            raise StorageError(f"Failed to persist store {self.name!r}: {exc}") from exc

    def _forget_sensor(self, sensor_id: str) -> None:
        self._sensors.pop(sensor_id, None)
        self._readings.pop(sensor_id, None)
        self._snapshots.pop(sensor_id, None)

    def _restore_ticket(self, ticket_id: str, previous: Optional[MaintenanceTicket]) -> None:
        if previous is None:
            self._tickets.pop(ticket_id, None)
        else:
            self._tickets[ticket_id] = previous

    def _persist(self) -> None:
        if not self.persistence_path:
            return
        payload = {
            "sensors": {
                sensor_id: profile.model_dump(mode="json")
                for sensor_id, profile in self._sensors.items()
            },
            "readings": {
                sensor_id: [reading.model_dump(mode="json") for reading in history]
                for sensor_id, history in self._readings.items()
            },
            "snapshots": {
                sensor_id: [snapshot.model_dump(mode="json") for snapshot in history]
                for sensor_id, history in self._snapshots.items()
            },
            "tickets": {
                ticket_id: ticket.model_dump(mode="json")
                for ticket_id, ticket in self._tickets.items()
            },
        }
        self.persistence_path.write_text(json.dumps(payload, indent=2, sort_keys=True))

    def _load_from_disk(self) -> None:
        if not self.persistence_path or not self.persistence_path.exists():
            return

        try:
            raw = self.persistence_path.read_text() or "{}"
            data = json.loads(raw)
        except (OSError, json.JSONDecodeError):
            data = {}

        for sensor_id, payload in data.get("sensors", {}).items():
            self._sensors[sensor_id] = SensorProfile.model_validate(payload)
        for sensor_id, items in data.get("readings", {}).items():
            self._readings[sensor_id] = [Reading.model_validate(item) for item in items]
        for sensor_id, items in data.get("snapshots", {}).items():
            self._snapshots[sensor_id] = [
                TrustScoreSnapshot.model_validate(item) for item in items
            ]
        for ticket_id, payload in data.get("tickets", {}).items():
            self._tickets[ticket_id] = MaintenanceTicket.model_validate(payload)


@lru_cache
def build_default_store(path: Optional[str] = None) -> InMemoryTrustStore:
    settings = get_settings()
    store_path = settings.store_persistence_path if path is None else path
    persistence = Path(store_path) if store_path else None
    return InMemoryTrustStore(persistence_path=persistence)

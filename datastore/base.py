"""Storage contracts consumed by the trust engine and escalation policy."""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import List, Optional

from app.schemas import (
    MaintenanceTicket,
    Reading,
    RootCause,
    SensorProfile,
    TrustScoreSnapshot,
)
from models.records import PeerReading


class ReadingHistoryAccessor(ABC):
    @abstractmethod
    def get_sensor(self, sensor_id: str) -> Optional[SensorProfile]:
        ...

    @abstractmethod
    def get_recent_readings(self, sensor_id: str, window_size: int) -> List[Reading]:
        """Return up to ``window_size`` readings, most recent first."""
        ...

    @abstractmethod
    def get_zone_peers_latest(self, zone: str, excluding_sensor_id: str) -> List[PeerReading]:
        ...


class SnapshotStore(ABC):
    @abstractmethod
    def get_snapshot_history(self, sensor_id: str, k: int) -> List[TrustScoreSnapshot]:
        """Return up to ``k`` snapshots, most recent first."""
        ...

    @abstractmethod
    def persist_snapshot(self, snapshot: TrustScoreSnapshot) -> None:
        """Append a snapshot. Raise ``StorageError`` on write failure."""
        ...


class TicketStore(ABC):
    @abstractmethod
    def find_open_ticket(self, sensor_id: str, root_cause: RootCause) -> Optional[MaintenanceTicket]:
        ...

    @abstractmethod
    def create_or_update_ticket(self, ticket: MaintenanceTicket) -> MaintenanceTicket:
        """Insert or replace a ticket by id. Raise ``StorageError`` on write failure."""
        ...

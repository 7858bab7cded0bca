"""Maintenance ticket escalation, deduplicated per (sensor, root cause)."""

from __future__ import annotations

import logging
import time
from typing import Callable, List, Optional
from uuid import uuid4

from app.schemas import (
    MaintenanceTicket,
    RootCause,
    Severity,
    TicketStatus,
    TrustScoreSnapshot,
)
from datastore.base import TicketStore
from services.errors import StorageError

logger = logging.getLogger(__name__)

_CAUSE_TITLES = {
    RootCause.stuck_sensor: "Stuck sensor",
    RootCause.spike: "Reading spike",
    RootCause.zone_anomaly: "Zone anomaly",
    RootCause.sensor_offline: "Sensor offline",
}

TicketListener = Callable[[MaintenanceTicket], None]


def issue_text(root_cause: RootCause, snapshot: TrustScoreSnapshot) -> str:
    return f"{_CAUSE_TITLES[root_cause]} ({snapshot.severity.value}): {snapshot.diagnostic}"


class EscalationPolicy:
    """Open or refresh tickets for snapshots at or above a severity threshold.

    Tickets are never resolved here; resolution is an explicit operator action.
    Store failures are retried and then logged so that they never affect the
    snapshot that triggered them.
    """

    def __init__(
        self,
        tickets: TicketStore,
        min_severity: Severity = Severity.medium,
        retries: int = 2,
        backoff_seconds: float = 0.05,
        listener: Optional[TicketListener] = None,
    ) -> None:
        self.tickets = tickets
        self.min_severity = min_severity
        self.retries = retries
        self.backoff_seconds = backoff_seconds
        self.listener = listener

    def should_escalate(self, snapshot: TrustScoreSnapshot) -> bool:
        return bool(snapshot.root_causes) and snapshot.severity.rank >= self.min_severity.rank

    def escalate(self, snapshot: TrustScoreSnapshot) -> List[MaintenanceTicket]:
        if not self.should_escalate(snapshot):
            return []

        touched: List[MaintenanceTicket] = []
        for root_cause in snapshot.root_causes:
            ticket = self._escalate_with_retry(snapshot, root_cause)
            if ticket is None:
                continue
            touched.append(ticket)
            if self.listener is not None:
                self.listener(ticket)
        return touched

    def _escalate_with_retry(
        self, snapshot: TrustScoreSnapshot, root_cause: RootCause
    ) -> Optional[MaintenanceTicket]:
        attempts = self.retries + 1
        for attempt in range(1, attempts + 1):
            try:
                return self._escalate_cause(snapshot, root_cause)
            except StorageError as exc:
                if attempt >= attempts:
                    logger.error(
                        "Ticket escalation abandoned",
                        extra={
                            "sensor_id": snapshot.sensor_id,
                            "root_cause": root_cause,
                            "attempt": attempt,
                            "reason": str(exc),
                        },
                    )
                    return None
                logger.warning(
                    "Ticket escalation failed; retrying",
                    extra={
                        "sensor_id": snapshot.sensor_id,
                        "root_cause": root_cause,
                        "attempt": attempt,
                        "reason": str(exc),
                    },
                )
                if self.backoff_seconds:
                    time.sleep(self.backoff_seconds * attempt)
        return None

    def _escalate_cause(
        self, snapshot: TrustScoreSnapshot, root_cause: RootCause
    ) -> MaintenanceTicket:
        existing = self.tickets.find_open_ticket(snapshot.sensor_id, root_cause)
        issue = issue_text(root_cause, snapshot)

        if existing is not None:
            updated = existing.model_copy(
                update={
                    "severity": snapshot.severity,
                    "issue": issue,
                    "updated_at": snapshot.evaluated_at,
                }
            )
            stored = self.tickets.create_or_update_ticket(updated)
            logger.info(
                "Ticket refreshed",
                extra={
                    "sensor_id": snapshot.sensor_id,
                    "root_cause": root_cause,
                    "ticket_id": stored.ticket_id,
                    "severity": stored.severity,
                },
            )
            return stored

        ticket = MaintenanceTicket(
            ticket_id=str(uuid4()),
            sensor_id=snapshot.sensor_id,
            root_cause=root_cause,
            severity=snapshot.severity,
            issue=issue,
            status=TicketStatus.open,
            created_at=snapshot.evaluated_at,
            updated_at=snapshot.evaluated_at,
        )
        stored = self.tickets.create_or_update_ticket(ticket)
        logger.info(
            "Ticket opened",
            extra={
                "sensor_id": snapshot.sensor_id,
                "root_cause": root_cause,
                "ticket_id": stored.ticket_id,
                "severity": stored.severity,
            },
        )
        return stored

"""Operator-facing ticket workflow. Escalation opens tickets; people close them."""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from functools import lru_cache
from typing import Callable, List, Optional

from app.schemas import MaintenanceTicket, TicketStatus
from datastore.memory_store import InMemoryTrustStore, build_default_store
from services.events import DASHBOARD_UPDATE, TICKET_UPDATE, EventHub, build_default_event_hub
from storage.summary_cache import SummaryCache, build_default_cache

logger = logging.getLogger(__name__)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class MaintenanceService:
    def __init__(
        self,
        store: InMemoryTrustStore,
        cache: SummaryCache,
        events: EventHub,
        clock: Callable[[], datetime] = _utcnow,
    ) -> None:
        self.store = store
        self.cache = cache
        self.events = events
        self.clock = clock

    def list_tickets(self, status: Optional[TicketStatus] = None) -> List[MaintenanceTicket]:
        return self.store.list_tickets(status)

    def get_ticket(self, ticket_id: str) -> MaintenanceTicket:
        return self.store.get_ticket(ticket_id)

    def set_status(self, ticket_id: str, status: TicketStatus) -> MaintenanceTicket:
        ticket = self.store.update_ticket_status(ticket_id, status, self.clock())
        self.cache.invalidate_pattern("dashboard")
        self.events.publish(TICKET_UPDATE, ticket)
        self.events.publish(DASHBOARD_UPDATE, {"type": "ticket", "ticket_id": ticket.ticket_id})
        logger.info(
            "Ticket status changed",
            extra={"ticket_id": ticket.ticket_id, "sensor_id": ticket.sensor_id, "status": ticket.status},
        )
        return ticket

    def resolve(self, ticket_id: str) -> MaintenanceTicket:
        return self.set_status(ticket_id, TicketStatus.resolved)


@lru_cache
def build_default_maintenance() -> MaintenanceService:
    return MaintenanceService(
        store=build_default_store(),
        cache=build_default_cache(),
        events=build_default_event_hub(),
    )

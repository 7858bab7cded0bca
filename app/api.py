"""HTTP route definitions for the service."""

from __future__ import annotations

from typing import List, Optional

from fastapi import APIRouter, Depends, HTTPException, Query, status

from app.schemas import (
    BatchItemResult,
    DashboardSummary,
    IngestResult,
    MaintenanceTicket,
    OfflineSweepResult,
    ReadingIn,
    RecentActivity,
    SensorCreate,
    SensorDetail,
    SensorProfile,
    TicketStatus,
    TicketStatusUpdate,
    TrustScoreSnapshot,
    ZoneStatistics,
)
from services.dashboard import DashboardService, build_default_dashboard
from services.errors import (
    DuplicateSensorError,
    EvaluationFailed,
    TicketNotFoundError,
    UnknownSensorError,
)
from services.ingestion import IngestionService, build_default_ingestion
from services.maintenance import MaintenanceService, build_default_maintenance

router = APIRouter()


def get_ingestion() -> IngestionService:
    return build_default_ingestion()


def get_dashboard() -> DashboardService:
    return build_default_dashboard()


def get_maintenance() -> MaintenanceService:
    return build_default_maintenance()


def _not_found(exc: KeyError) -> HTTPException:
    return HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(exc))


@router.post(
    "/sensors",
    status_code=status.HTTP_201_CREATED,
    response_model=SensorProfile,
    summary="Register a sensor in a zone.",
)
def create_sensor(
    payload: SensorCreate,
    ingestion: IngestionService = Depends(get_ingestion),
) -> SensorProfile:
    try:
        return ingestion.register_sensor(payload)
    except DuplicateSensorError as exc:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=str(exc)) from exc


@router.get(
    "/sensors",
    response_model=List[SensorDetail],
    summary="List sensors with their latest trust score and reading.",
)
def list_sensors(ingestion: IngestionService = Depends(get_ingestion)) -> List[SensorDetail]:
    return ingestion.list_sensors()


@router.post(
    "/sensors/offline-sweep",
    response_model=OfflineSweepResult,
    summary="Record an offline snapshot for every sensor that stopped reporting.",
)
def sweep_offline(ingestion: IngestionService = Depends(get_ingestion)) -> OfflineSweepResult:
    try:
        marked = ingestion.sweep_offline()
    except EvaluationFailed as exc:
        raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail=str(exc)) from exc
    return OfflineSweepResult(sensor_ids=[snapshot.sensor_id for snapshot in marked])


@router.get(
    "/sensors/{sensor_id}",
    response_model=SensorDetail,
    summary="Fetch a sensor with its latest trust score and recent readings.",
)
def get_sensor(
    sensor_id: str,
    ingestion: IngestionService = Depends(get_ingestion),
) -> SensorDetail:
    try:
        return ingestion.fetch_sensor(sensor_id)
    except UnknownSensorError as exc:
        raise _not_found(exc) from exc


@router.get(
    "/sensors/{sensor_id}/trust-history",
    response_model=List[TrustScoreSnapshot],
    summary="Trust score snapshots, most recent first.",
)
def get_trust_history(
    sensor_id: str,
    limit: int = Query(50, ge=1, le=1000),
    ingestion: IngestionService = Depends(get_ingestion),
) -> List[TrustScoreSnapshot]:
    try:
        return ingestion.trust_history(sensor_id, limit)
    except UnknownSensorError as exc:
        raise _not_found(exc) from exc


@router.get(
    "/sensors/{sensor_id}/timeline",
    response_model=List[TrustScoreSnapshot],
    summary="Trust score snapshots of the last N days, oldest first.",
)
def get_health_timeline(
    sensor_id: str,
    days: int = Query(7, ge=1, le=365),
    dashboard: DashboardService = Depends(get_dashboard),
) -> List[TrustScoreSnapshot]:
    try:
        return dashboard.health_timeline(sensor_id, days)
    except UnknownSensorError as exc:
        raise _not_found(exc) from exc


@router.post(
    "/readings",
    status_code=status.HTTP_201_CREATED,
    response_model=IngestResult,
    summary="Ingest a reading and evaluate the sensor's trust score.",
)
def ingest_reading(
    payload: ReadingIn,
    ingestion: IngestionService = Depends(get_ingestion),
) -> IngestResult:
    try:
        return ingestion.ingest_reading(payload)
    except UnknownSensorError as exc:
        raise _not_found(exc) from exc
    except ValueError as exc:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc)) from exc
    except EvaluationFailed as exc:
        raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail=str(exc)) from exc


@router.post(
    "/readings/batch",
    response_model=List[BatchItemResult],
    summary="Ingest several readings; each item succeeds or fails on its own.",
)
def ingest_batch(
    payload: List[ReadingIn],
    ingestion: IngestionService = Depends(get_ingestion),
) -> List[BatchItemResult]:
    if not payload:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Batch is empty.")
    return ingestion.ingest_batch(payload)


@router.get(
    "/tickets",
    response_model=List[MaintenanceTicket],
    summary="List maintenance tickets, newest first.",
)
def list_tickets(
    ticket_status: Optional[TicketStatus] = Query(None, alias="status"),
    maintenance: MaintenanceService = Depends(get_maintenance),
) -> List[MaintenanceTicket]:
    return maintenance.list_tickets(ticket_status)


@router.patch(
    "/tickets/{ticket_id}/status",
    response_model=MaintenanceTicket,
    summary="Move a ticket to InProgress or Resolved.",
)
def update_ticket_status(
    ticket_id: str,
    payload: TicketStatusUpdate,
    maintenance: MaintenanceService = Depends(get_maintenance),
) -> MaintenanceTicket:
    try:
        return maintenance.set_status(ticket_id, payload.status)
    except TicketNotFoundError as exc:
        raise _not_found(exc) from exc
    except ValueError as exc:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=str(exc)) from exc


@router.get(
    "/dashboard/summary",
    response_model=DashboardSummary,
    summary="Sensor and ticket totals.",
)
def dashboard_summary(dashboard: DashboardService = Depends(get_dashboard)) -> DashboardSummary:
    return dashboard.summary()


@router.get(
    "/dashboard/zones",
    response_model=List[ZoneStatistics],
    summary="Per-zone trust statistics.",
)
def dashboard_zones(dashboard: DashboardService = Depends(get_dashboard)) -> List[ZoneStatistics]:
    return dashboard.zones()


@router.get(
    "/dashboard/activity",
    response_model=RecentActivity,
    summary="Latest readings and tickets across all sensors.",
)
def dashboard_activity(
    limit: int = Query(10, ge=1, le=100),
    dashboard: DashboardService = Depends(get_dashboard),
) -> RecentActivity:
    return dashboard.recent_activity(limit)


@router.get(
    "/health",
    summary="Health check endpoint.",
    status_code=status.HTTP_200_OK,
)
def healthcheck() -> dict[str, str]:
    return {"status": "ok"}

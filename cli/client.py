from __future__ import annotations

from typing import Any, Dict, List, Optional

import httpx
import typer

from cli.config import CLIConfig


class ApiClient:
    """Minimal HTTP client for the trust service."""

    def __init__(self, config: CLIConfig) -> None:
        self._config = config
        self._client = httpx.Client(base_url=config.base_url, timeout=config.timeout)

    def close(self) -> None:
        self._client.close()

    def register_sensor(self, payload: Dict[str, Any], allow_existing: bool = False) -> Optional[Dict[str, Any]]:
        """Register a sensor; returns ``None`` for an existing sensor when ``allow_existing``."""
        response = self._client.post("/sensors", json=payload)
        if allow_existing and response.status_code == 409:
            return None
        return self._json(response)

    def send_reading(self, payload: Dict[str, Any]) -> Dict[str, Any]:
        return self._json(self._client.post("/readings", json=payload))

    def send_batch(self, payloads: List[Dict[str, Any]]) -> List[Dict[str, Any]]:
        return self._json(self._client.post("/readings/batch", json=payloads))

    def get_history(self, sensor_id: str, limit: int = 10) -> List[Dict[str, Any]]:
        response = self._client.get(f"/sensors/{sensor_id}/trust-history", params={"limit": limit})
        if response.status_code == 404:
            raise typer.BadParameter(f"Sensor {sensor_id} was not found.")
        return self._json(response)

    def list_tickets(self, status: Optional[str] = None) -> List[Dict[str, Any]]:
        params = {"status": status} if status else None
        return self._json(self._client.get("/tickets", params=params))

    def update_ticket_status(self, ticket_id: str, status: str) -> Dict[str, Any]:
        response = self._client.patch(f"/tickets/{ticket_id}/status", json={"status": status})
        if response.status_code == 404:
            raise typer.BadParameter(f"Ticket {ticket_id} was not found.")
        return self._json(response)

    def get_summary(self) -> Dict[str, Any]:
        return self._json(self._client.get("/dashboard/summary"))

    def get_zones(self) -> List[Dict[str, Any]]:
        return self._json(self._client.get("/dashboard/zones"))

    def _json(self, response: httpx.Response) -> Any:
        try:
            response.raise_for_status()
        except httpx.HTTPStatusError as exc:
            self._handle_http_error(exc)
        return response.json()

    @staticmethod
    def _handle_http_error(exc: httpx.HTTPStatusError) -> None:
        detail: str | None = None
        try:
            data = exc.response.json()
            detail = data.get("detail")
        except Exception:  # noqa: BLE001 - best effort parsing
            detail = exc.response.text.strip()
        message = (
            f"Request failed with status {exc.response.status_code}: {detail or 'no detail provided.'}"
        )
        typer.secho(message, fg=typer.colors.RED, err=True)
        raise typer.Exit(code=1)

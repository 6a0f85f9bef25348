from __future__ import annotations

from typing import Any, Dict, List, Optional

import httpx
import typer

from cli.config import CLIConfig


class ApiClient:
    """Minimal HTTP client for the rain watch service."""

    def __init__(self, config: CLIConfig) -> None:
        self._config = config
        self._client = httpx.Client(base_url=config.base_url, timeout=config.timeout)

    def close(self) -> None:
        self._client.close()

    def send_reading(
        self,
        temperature: float,
        humidity: float,
        device_id: Optional[str] = None,
    ) -> Dict[str, Any]:
        body: Dict[str, Any] = {"temperature": temperature, "humidity": humidity}
        if device_id:
            body["device_id"] = device_id
        try:
            response = self._client.post("/api/data", json=body)
            response.raise_for_status()
        except httpx.HTTPStatusError as exc:
            self._handle_http_error(exc)
        payload = response.json()
        if not isinstance(payload.get("rain_detected"), bool):
            raise typer.BadParameter("Unexpected response payload when sending a reading.")
        return payload

    def list_readings(self, limit: int) -> List[Dict[str, Any]]:
        try:
            response = self._client.get("/api/data", params={"limit": limit})
            response.raise_for_status()
        except httpx.HTTPStatusError as exc:
            self._handle_http_error(exc)
        return response.json()

    def get_stats(self) -> Dict[str, Any]:
        try:
            response = self._client.get("/api/stats/month")
            response.raise_for_status()
        except httpx.HTTPStatusError as exc:
            self._handle_http_error(exc)
        return response.json()

    @staticmethod
    def _handle_http_error(exc: httpx.HTTPStatusError) -> None:
        detail: str | None = None
        try:
            data = exc.response.json()
            detail = data.get("error") or data.get("detail")
        except Exception:  # noqa: BLE001 - best effort parsing
            detail = exc.response.text.strip()
        message = (
            f"Request failed with status {exc.response.status_code}: {detail or 'no detail provided.'}"
        )
        typer.secho(message, fg=typer.colors.RED, err=True)
        raise typer.Exit(code=1)

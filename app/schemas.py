"""Pydantic schemas for the HTTP API layer."""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Any, Dict, List, Optional
from uuid import uuid4

from pydantic import BaseModel, ConfigDict, Field


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class Reading(BaseModel):
    """A persisted sensor sample with its episode flags."""

    id: str = Field(default_factory=lambda: str(uuid4()))
    timestamp: datetime = Field(default_factory=_utcnow)
    temperature: Optional[float] = None
    humidity: Optional[float] = None
    rain_detected: bool = Field(
        default=False, description="True only on the sample that starts a rain episode."
    )
    alert_sent: bool = Field(
        default=False, description="True once a push fan-out was started for this reading."
    )
    device_id: str

    def public_fields(self) -> Dict[str, Any]:
        """Fields pushed to real-time viewers."""
        return self.model_dump(
            mode="json",
            include={"timestamp", "temperature", "humidity", "rain_detected", "device_id"},
        )


class IngestRequest(BaseModel):
    """Sensor payload; measurements stay untyped so malformed values classify as no rain."""

    model_config = ConfigDict(coerce_numbers_to_str=True)

    temperature: Any = None
    humidity: Any = None
    device_id: Optional[str] = None


class IngestResponse(BaseModel):
    message: str
    rain_detected: bool


class MonthlyStats(BaseModel):
    total_rain: int = Field(..., ge=0)
    details: List[Reading] = Field(default_factory=list)


class MessageResponse(BaseModel):
    message: str


class ErrorResponse(BaseModel):
    error: str


class SessionView(BaseModel):
    is_raining: bool
    last_rain_end_time: Optional[datetime] = None


class SessionsResponse(BaseModel):
    scope: str
    sessions: Dict[str, SessionView] = Field(default_factory=dict)


class PublicKeyResponse(BaseModel):
    public_key: Optional[str] = None

"""HTTP route definitions for the service."""

from __future__ import annotations

from datetime import timedelta
from typing import Any, List

from fastapi import (
    APIRouter,
    BackgroundTasks,
    Body,
    Depends,
    Query,
    WebSocket,
    WebSocketDisconnect,
    status,
)

from app.schemas import (
    IngestRequest,
    IngestResponse,
    MessageResponse,
    MonthlyStats,
    PublicKeyResponse,
    Reading,
    SessionsResponse,
    SessionView,
)
from models.records import SensorSample
from services.ingestion import IngestionService, build_default_ingestion
from services.subscribers import SubscriberRegistry
from settings import get_settings

router = APIRouter()

MAX_RECENT_READINGS = 1000


def get_ingestion() -> IngestionService:
    return build_default_ingestion()


def get_registry(ingestion: IngestionService = Depends(get_ingestion)) -> SubscriberRegistry:
    return ingestion.dispatcher.registry


@router.post(
    "/api/data",
    status_code=status.HTTP_201_CREATED,
    response_model=IngestResponse,
    summary="Ingest one temperature/humidity sample from a sensor.",
)
def ingest_reading(
    payload: IngestRequest,
    background_tasks: BackgroundTasks,
    ingestion: IngestionService = Depends(get_ingestion),
) -> IngestResponse:
    # Plain def: the session lock and the journal append run in the threadpool.
    device_id = payload.device_id or get_settings().default_device_id
    sample = SensorSample(
        temperature=payload.temperature,
        humidity=payload.humidity,
        device_id=device_id,
    )
    outcome = ingestion.ingest(background_tasks, sample)
    return IngestResponse(message="Data saved", rain_detected=outcome.is_new_episode)


@router.get(
    "/api/data",
    response_model=List[Reading],
    summary="Most recent readings, newest first.",
)
async def list_readings(
    limit: int = Query(MAX_RECENT_READINGS, ge=1, le=MAX_RECENT_READINGS),
    ingestion: IngestionService = Depends(get_ingestion),
) -> List[Reading]:
    return ingestion.recent_readings(limit=limit)


@router.get(
    "/api/stats/month",
    response_model=MonthlyStats,
    summary="Rain episodes started within the trailing stats window.",
)
async def monthly_stats(
    ingestion: IngestionService = Depends(get_ingestion),
) -> MonthlyStats:
    window = timedelta(days=get_settings().stats_window_days)
    episodes = ingestion.episode_starts_since(window)
    return MonthlyStats(total_rain=len(episodes), details=episodes)


@router.get(
    "/api/session",
    response_model=SessionsResponse,
    summary="Current rain session state.",
)
async def session_state(
    ingestion: IngestionService = Depends(get_ingestion),
) -> SessionsResponse:
    sessions = {
        key: SessionView(is_raining=state.is_raining, last_rain_end_time=state.last_rain_end_time)
        for key, state in ingestion.sessions.snapshot().items()
    }
    return SessionsResponse(scope=ingestion.sessions.scope, sessions=sessions)


@router.get(
    "/api/push/public-key",
    response_model=PublicKeyResponse,
    summary="VAPID public key browsers need to create a push subscription.",
)
async def push_public_key() -> PublicKeyResponse:
    return PublicKeyResponse(public_key=get_settings().vapid_public_key)


@router.post(
    "/subscribe",
    status_code=status.HTTP_201_CREATED,
    response_model=MessageResponse,
    summary="Register a push subscription.",
)
async def subscribe(
    subscriber: Any = Body(...),
    registry: SubscriberRegistry = Depends(get_registry),
) -> MessageResponse:
    registry.add(subscriber)
    return MessageResponse(message="Subscribed")


@router.post(
    "/unsubscribe",
    status_code=status.HTTP_200_OK,
    response_model=MessageResponse,
    summary="Remove a push subscription.",
)
async def unsubscribe(
    subscriber: Any = Body(...),
    registry: SubscriberRegistry = Depends(get_registry),
) -> MessageResponse:
    registry.remove(subscriber)
    return MessageResponse(message="Unsubscribed")


@router.websocket("/ws")
async def rain_events(
    websocket: WebSocket,
    ingestion: IngestionService = Depends(get_ingestion),
) -> None:
    broadcaster = ingestion.broadcaster
    await broadcaster.connect(websocket)
    try:
        while True:
            # Viewers only listen; inbound frames are read to notice disconnects.
            await websocket.receive_text()
    except WebSocketDisconnect:
        pass
    finally:
        await broadcaster.disconnect(websocket)


@router.get(
    "/health",
    summary="Health check endpoint.",
    status_code=status.HTTP_200_OK,
)
async def healthcheck(
    ingestion: IngestionService = Depends(get_ingestion),
) -> dict[str, Any]:
    return {
        "status": "ok",
        "storage": "connected" if ingestion.store.connected else "unavailable",
        "subscribers": len(ingestion.dispatcher.registry),
        "viewers": ingestion.broadcaster.connection_count,
    }


@router.get(
    "/",
    summary="Root endpoint mirrors health information.",
    status_code=status.HTTP_200_OK,
)
async def root() -> dict[str, str]:
    return {"status": "ok", "detail": "See /health for service status."}

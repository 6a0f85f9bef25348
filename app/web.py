from __future__ import annotations

from datetime import timedelta
from pathlib import Path

import qrcode
import qrcode.image.svg
from fastapi import APIRouter, Depends, Request
from fastapi.responses import HTMLResponse
from fastapi.templating import Jinja2Templates

from app.api import get_ingestion
from services.ingestion import IngestionService
from settings import get_settings


templates = Jinja2Templates(directory=str(Path(__file__).resolve().parent / "templates"))

DASHBOARD_READINGS = 50


def render_qr_svg(url: str) -> str:
    image = qrcode.make(url, image_factory=qrcode.image.svg.SvgPathImage)
    return image.to_string().decode("utf-8")


router = APIRouter(include_in_schema=False)


@router.get("/ui", name="ui_index", response_class=HTMLResponse)
async def ui_index(
    request: Request,
    ingestion: IngestionService = Depends(get_ingestion),
) -> HTMLResponse:
    settings = get_settings()
    readings = ingestion.recent_readings(limit=DASHBOARD_READINGS)
    episodes = ingestion.episode_starts_since(timedelta(days=settings.stats_window_days))
    return templates.TemplateResponse(
        request,
        "ui/index.html",
        {
            "readings": readings,
            "episode_count": len(episodes),
            "window_days": settings.stats_window_days,
            "sessions": ingestion.sessions.snapshot(),
        },
    )


@router.get("/qrcode", name="ui_qrcode", response_class=HTMLResponse)
async def ui_qrcode(request: Request) -> HTMLResponse:
    frontend_url = get_settings().frontend_url
    return templates.TemplateResponse(
        request,
        "ui/qrcode.html",
        {
            "frontend_url": frontend_url,
            "qr_svg": render_qr_svg(frontend_url),
        },
    )

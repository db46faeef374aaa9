"""
Page routes for the live detection web interface.

A single page: the overlaid camera stream, the start/stop toggle and the
list of current predictions.
"""

from __future__ import annotations

from pathlib import Path

from fastapi import APIRouter, Request
from fastapi.responses import HTMLResponse
from fastapi.templating import Jinja2Templates

router = APIRouter()
templates = Jinja2Templates(directory=str(Path(__file__).resolve().parent.parent / "templates"))


@router.get("/", response_class=HTMLResponse)
def index(request: Request):
    ctx = request.app.state.ctx
    return templates.TemplateResponse(
        request,
        "index.html",
        {
            "running": ctx.loop.is_running,
            "model_ready": ctx.model_ready,
            "stream_fps": ctx.config.web.stream_fps,
        },
    )

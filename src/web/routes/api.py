from __future__ import annotations

import logging

from fastapi import APIRouter, Depends, HTTPException, Request
from fastapi.responses import StreamingResponse

from pipeline.errors import InvalidStartPrecondition
from runtime.context import RuntimeContext
from ..api_models import PredictionsResponse, StatusResponse, ToggleResponse
from ..services.stream_service import StreamService

router = APIRouter()


def get_ctx(request: Request) -> RuntimeContext:
    return request.app.state.ctx


def _toggle_response(ctx: RuntimeContext) -> dict:
    return {"state": ctx.loop.state.value, "running": ctx.loop.is_running}


@router.get("/status", response_model=StatusResponse)
def status(ctx: RuntimeContext = Depends(get_ctx)):
    """
    Loop state and counters for the UI.
    Fields:
    - state: idle|running
    - model_ready / model_error: whether detection can be started
    - source_ready, frame_width, frame_height: live camera status
    - stats: tick/inference/publish counters and last latency
    """
    return ctx.status()


@router.get("/predictions", response_model=PredictionsResponse)
def predictions(ctx: RuntimeContext = Depends(get_ctx)):
    """Latest detection batch, in the order the model returned it."""
    return ctx.store.current().to_dict()


@router.post("/detection/start", response_model=ToggleResponse)
def start_detection(ctx: RuntimeContext = Depends(get_ctx)):
    try:
        ctx.loop.start()
    except InvalidStartPrecondition as e:
        logging.warning(f"Start rejected: {e}")
        raise HTTPException(status_code=409, detail=str(e))
    return _toggle_response(ctx)


@router.post("/detection/stop", response_model=ToggleResponse)
def stop_detection(ctx: RuntimeContext = Depends(get_ctx)):
    ctx.loop.stop()
    return _toggle_response(ctx)


@router.post("/detection/toggle", response_model=ToggleResponse)
def toggle_detection(ctx: RuntimeContext = Depends(get_ctx)):
    try:
        ctx.loop.toggle()
    except InvalidStartPrecondition as e:
        logging.warning(f"Start rejected: {e}")
        raise HTTPException(status_code=409, detail=str(e))
    return _toggle_response(ctx)


@router.get("/snapshot.jpg")
def snapshot(ctx: RuntimeContext = Depends(get_ctx)):
    try:
        jpeg_bytes = StreamService.snapshot_jpeg(ctx)
    except RuntimeError as e:
        raise HTTPException(status_code=503, detail=str(e))

    return StreamingResponse(
        iter([jpeg_bytes]),
        media_type="image/jpeg",
        headers={"Cache-Control": "no-store"},
    )


@router.get("/stream.mjpg")
def stream(fps: int = 0, ctx: RuntimeContext = Depends(get_ctx)):
    fps = fps or ctx.config.web.stream_fps

    def gen():
        for chunk in StreamService.mjpeg_stream(ctx, fps=fps):
            yield chunk

    return StreamingResponse(gen(), media_type="multipart/x-mixed-replace; boundary=frame")

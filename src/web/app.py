"""
FastAPI application factory for the live detection overlay.

Routes:
- / -> single-page viewer (stream, toggle, predictions)
- /api/* -> REST API + MJPEG stream
"""

from __future__ import annotations

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from runtime.context import RuntimeContext
from .routes import api, pages


def create_app(ctx: RuntimeContext) -> FastAPI:
    """Create the FastAPI app bound to a runtime context."""
    app = FastAPI(
        title="Live Detection",
        version="0.1.0",
        description="Real-time object detection overlay for a live camera feed",
    )
    app.state.ctx = ctx

    # CORS for development front-ends
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["http://localhost:5173", "http://127.0.0.1:5173"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.include_router(api.router, prefix="/api")
    app.include_router(pages.router)

    return app

"""FastAPI application factory."""

from __future__ import annotations

from contextlib import asynccontextmanager

from fastapi import FastAPI

from src.course.client import CourseClient
from src.session import AnnotationSession
from src.web.routes import create_router
from src.web.websocket import create_ws_router


def create_app(session: AnnotationSession, client: CourseClient | None = None) -> FastAPI:
    """Create and configure the FastAPI application."""

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        yield
        session.close()
        if client is not None:
            await client.aclose()

    app = FastAPI(title="Trajectory Annotator", version="0.1.0", lifespan=lifespan)

    # Routes
    app.include_router(create_router(session))
    app.include_router(create_ws_router(session))

    return app

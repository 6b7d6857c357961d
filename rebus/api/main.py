"""FastAPI entrypoint and HTTP routes."""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from typing import AsyncIterator

from fastapi import FastAPI, HTTPException, Request, Response
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import FileResponse
from prometheus_client import CONTENT_TYPE_LATEST, generate_latest
from pydantic import BaseModel, ConfigDict, Field

from rebus.config.settings import Settings, get_settings
from rebus.errors import GenerationError
from rebus.monitoring.logging import configure_logging
from rebus.services.container import Services, build_services
from rebus.services.dates import parse_puzzle_id, validate_date

logger = logging.getLogger(__name__)


class PuzzleOut(BaseModel):
    """Public view of a puzzle; the answer stays on the server."""

    model_config = ConfigDict(populate_by_name=True)

    id: str
    date: str
    index: int
    image_url: str = Field(serialization_alias="imageUrl")
    hint: str


class PuzzlesResponse(BaseModel):
    date: str
    puzzles: list[PuzzleOut]


class VerifyRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    puzzle_id: str = Field(alias="puzzleId")
    answer: str


class VerifyResponse(BaseModel):
    correct: bool


class TriggerResponse(BaseModel):
    success: bool
    generated: bool
    message: str


def _services(request: Request) -> Services:
    return request.app.state.services


def create_app(settings: Settings | None = None, services: Services | None = None) -> FastAPI:
    """Initialise the FastAPI application."""

    settings = settings or get_settings()

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncIterator[None]:
        configure_logging(settings)
        owned = services is None
        app.state.services = services or await build_services(settings)
        if settings.scheduler_enabled:
            await app.state.services.scheduler.start()
        try:
            yield
        finally:
            if owned:
                await app.state.services.close()
            else:
                await app.state.services.scheduler.stop()

    app = FastAPI(
        title="Daily Rebus API",
        version="0.1.0",
        docs_url="/docs" if settings.environment != "production" else None,
        redoc_url="/redoc" if settings.environment != "production" else None,
        lifespan=lifespan,
    )
    app.add_middleware(
        CORSMiddleware,
        allow_origins=list(settings.allowed_origins),
        allow_methods=["GET", "POST", "OPTIONS"],
        allow_headers=["Content-Type"],
    )

    @app.get("/health", tags=["system"])
    async def health_check() -> dict[str, str]:
        """Simple health endpoint used for readiness probes."""

        return {"status": "ok"}

    @app.get("/metrics", tags=["system"])
    async def metrics() -> Response:
        return Response(generate_latest(), media_type=CONTENT_TYPE_LATEST)

    @app.get("/api/puzzles/{date}", response_model=PuzzlesResponse, response_model_by_alias=True, tags=["puzzles"])
    async def get_puzzles(date: str, request: Request) -> PuzzlesResponse:
        try:
            validate_date(date)
        except ValueError as exc:
            raise HTTPException(status_code=400, detail=str(exc)) from exc

        records = await _services(request).repository.list_for_date(date)
        if not records:
            raise HTTPException(
                status_code=404,
                detail=f"No puzzles found for date: {date}. They may not have been generated yet.",
            )
        return PuzzlesResponse(
            date=date,
            puzzles=[
                PuzzleOut(
                    id=record.id,
                    date=record.date,
                    index=record.position,
                    image_url=record.image_reference,
                    hint=record.hint,
                )
                for record in records
            ],
        )

    @app.post("/api/puzzles/verify", response_model=VerifyResponse, tags=["puzzles"])
    async def verify_answer(body: VerifyRequest, request: Request) -> VerifyResponse:
        try:
            parse_puzzle_id(body.puzzle_id)
        except ValueError as exc:
            raise HTTPException(status_code=400, detail=str(exc)) from exc

        correct = await _services(request).repository.verify_answer(body.puzzle_id, body.answer)
        if correct is None:
            raise HTTPException(status_code=404, detail="Puzzle not found")
        return VerifyResponse(correct=correct)

    @app.post("/api/puzzles/trigger", response_model=TriggerResponse, tags=["puzzles"])
    async def trigger_job(request: Request) -> TriggerResponse:
        try:
            generated = await _services(request).scheduler.trigger_today()
        except GenerationError as exc:
            logger.error("Manual batch production failed: %s", exc)
            raise HTTPException(status_code=500, detail=f"Failed to trigger job: {exc}") from exc

        message = "Puzzles generated successfully for today" if generated else "Puzzles already exist for today"
        return TriggerResponse(success=True, generated=generated, message=message)

    @app.get("/api/images/{filename}", tags=["images"])
    async def serve_image(filename: str, request: Request) -> FileResponse:
        try:
            path = _services(request).image_store.resolve(filename)
        except ValueError as exc:
            raise HTTPException(status_code=400, detail=str(exc)) from exc
        if not path.is_file():
            raise HTTPException(status_code=404, detail="Image not found")
        return FileResponse(path, media_type="image/png")

    return app


app = create_app()

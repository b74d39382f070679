"""FastAPI application exposing gamedir run triggers."""

from __future__ import annotations

import asyncio
from typing import Any, Callable, Dict, List, Optional

from fastapi import Depends, FastAPI, HTTPException
from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field

from ..config import GamedirConfig
from ..errors import ManifestInvalid, RunInProgress
from ..manifest import describe_manifest, load_manifest
from ..models import RunSummary
from ..orchestrator import Orchestrator


class RunRequest(BaseModel):
    workers: Optional[int] = Field(default=None, ge=1)


class OutcomeResponse(BaseModel):
    name: str
    state: str
    version: Optional[str] = None
    error_kind: Optional[str] = None
    detail: str = ""


class RunResponse(BaseModel):
    ok: bool
    published: int
    skipped: int
    failed: int
    index_path: Optional[str] = None
    outcomes: List[OutcomeResponse]


class GameResponse(BaseModel):
    name: str
    repo_url: str
    description: str
    tags: List[str]
    published_version: Optional[str] = None
    published_at: Optional[str] = None


class HealthResponse(BaseModel):
    status: str


def _run_response(summary: RunSummary) -> RunResponse:
    return RunResponse(
        ok=summary.ok,
        published=len(summary.published),
        skipped=len(summary.skipped),
        failed=len(summary.failed),
        index_path=str(summary.index_path) if summary.index_path else None,
        outcomes=[
            OutcomeResponse(
                name=outcome.name,
                state=outcome.state.value,
                version=outcome.version,
                error_kind=outcome.error_kind,
                detail=outcome.detail,
            )
            for outcome in summary.outcomes
        ],
    )


def create_app(orchestrator_factory: Callable[[], Orchestrator]) -> FastAPI:
    """Create the FastAPI application exposing gamedir operations."""

    app = FastAPI(title="gamedir", version="0.1.0")

    async def get_orchestrator() -> Orchestrator:
        return orchestrator_factory()

    @app.get("/health", response_model=HealthResponse)
    async def health() -> HealthResponse:
        return HealthResponse(status="ok")

    @app.post("/run", response_model=RunResponse)
    async def trigger_run(
        payload: Optional[RunRequest] = None,
        orchestrator: Orchestrator = Depends(get_orchestrator),
    ) -> RunResponse:
        workers = payload.workers if payload is not None else None

        def _run_once() -> RunSummary:
            return orchestrator.run_once(workers=workers)

        loop = asyncio.get_running_loop()
        summary = await loop.run_in_executor(None, _run_once)
        return _run_response(summary)

    @app.get("/runs/last")
    async def last_run(
        orchestrator: Orchestrator = Depends(get_orchestrator),
    ) -> Dict[str, Any]:
        summary = orchestrator.last_summary()
        if summary is None:
            raise HTTPException(status_code=404, detail="No run has completed yet")
        return summary

    @app.get("/games", response_model=List[GameResponse])
    async def list_games(
        orchestrator: Orchestrator = Depends(get_orchestrator),
    ) -> List[GameResponse]:
        specs = load_manifest(orchestrator.config.manifest)
        games: List[GameResponse] = []
        for entry in describe_manifest(specs)["games"]:
            record = orchestrator.store.get(entry["name"])
            games.append(
                GameResponse(
                    **entry,
                    published_version=record.version if record else None,
                    published_at=record.published_at if record else None,
                )
            )
        return games

    @app.exception_handler(RunInProgress)
    async def run_in_progress_handler(
        _: Any, exc: RunInProgress
    ) -> JSONResponse:  # pragma: no cover - simple mapping
        return JSONResponse(status_code=409, content={"detail": str(exc)})

    @app.exception_handler(ManifestInvalid)
    async def manifest_invalid_handler(
        _: Any, exc: ManifestInvalid
    ) -> JSONResponse:  # pragma: no cover - simple mapping
        return JSONResponse(status_code=422, content={"detail": str(exc)})

    return app


def run_service(
    config: GamedirConfig, host: str = "127.0.0.1", port: int = 8000
) -> None:  # pragma: no cover - integration path
    import uvicorn

    app = create_app(lambda: Orchestrator(config))
    uvicorn.run(app, host=host, port=port)

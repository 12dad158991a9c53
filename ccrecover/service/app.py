"""FastAPI application entrypoint for ccrecover service mode."""

from __future__ import annotations

import asyncio
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional

from fastapi import Depends, FastAPI
from fastapi.responses import JSONResponse
from pydantic import BaseModel

from ..config import ConfigError
from ..errors import FatalStructuralError
from ..orchestrator import RecoveryPipeline
from ..result import RecoveryResult


class RecoverRequest(BaseModel):
    source: str
    output: Optional[str] = None
    layout: Optional[str] = None
    write: bool = True


class DiagnosticModel(BaseModel):
    kind: str
    code: str
    message: str
    subject: Optional[str] = None


class RecoverResponse(BaseModel):
    status: str
    layout: str
    output: Optional[str] = None
    modules: int
    units: List[str]
    assignments: int
    orphans: List[str]
    diagnostic_counts: Dict[str, int]
    diagnostics: List[DiagnosticModel]


class HealthResponse(BaseModel):
    status: str


def _default_pipeline() -> RecoveryPipeline:
    return RecoveryPipeline()


def create_app(
    pipeline_factory: Callable[[], RecoveryPipeline] = _default_pipeline,
) -> FastAPI:
    """Create the FastAPI application exposing recovery runs."""

    app = FastAPI(title="ccrecover service", version="0.1.0")

    async def get_pipeline() -> RecoveryPipeline:
        return pipeline_factory()

    @app.get("/health", response_model=HealthResponse)
    async def health() -> HealthResponse:
        return HealthResponse(status="ok")

    @app.post("/recover", response_model=RecoverResponse)
    async def recover_build(
        payload: RecoverRequest,
        pipeline: RecoveryPipeline = Depends(get_pipeline),
    ) -> RecoverResponse:
        source = Path(payload.source).expanduser()
        if not source.exists():
            raise FileNotFoundError(f"Build directory not found: {source}")

        def _run() -> RecoveryResult:
            return pipeline.run(
                source,
                payload.output,
                layout_hint=payload.layout,
                write=payload.write and payload.output is not None,
            )

        loop = asyncio.get_running_loop()
        result = await loop.run_in_executor(None, _run)
        summary = result.to_summary()
        return RecoverResponse(
            status="ok",
            layout=summary["layout"],
            output=summary["output"],
            modules=summary["modules"],
            units=summary["units"],
            assignments=summary["assignments"],
            orphans=summary["orphans"],
            diagnostic_counts=summary["diagnostic_counts"],
            diagnostics=[DiagnosticModel(**item) for item in summary["diagnostics"]],
        )

    @app.exception_handler(FileNotFoundError)
    async def file_not_found_handler(_: Any, exc: FileNotFoundError) -> JSONResponse:
        return JSONResponse(status_code=404, content={"detail": str(exc)})

    @app.exception_handler(FatalStructuralError)
    async def structural_error_handler(_: Any, exc: FatalStructuralError) -> JSONResponse:
        return JSONResponse(status_code=422, content={"detail": str(exc)})

    @app.exception_handler(ConfigError)
    async def config_error_handler(_: Any, exc: ConfigError) -> JSONResponse:
        return JSONResponse(status_code=400, content={"detail": str(exc)})

    return app


def run_service(host: str = "127.0.0.1", port: int = 8000) -> None:  # pragma: no cover - integration path
    import uvicorn

    app = create_app()
    uvicorn.run(app, host=host, port=port)


__all__ = ["create_app", "run_service"]

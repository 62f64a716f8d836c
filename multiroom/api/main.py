"""FastAPI application entrypoint and HTTP endpoints."""

from __future__ import annotations

from contextlib import asynccontextmanager
from typing import Any

import structlog
from fastapi import FastAPI, HTTPException, Request
from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field

from multiroom.core.logging import configure_logging
from multiroom.core.orchestrator import MultiAgentOrchestrator, OrchestrationReport
from multiroom.core.settings import get_settings
from multiroom.models.execution_models import ExecutionRecord
from multiroom.models.routing_models import TaskAnalysis
from multiroom.providers.gateway import UnknownProviderError

log = structlog.get_logger(__name__)


class TaskRequest(BaseModel):
    task: str = Field(...)
    provider: str | None = None
    parallel: bool | None = None


class ExecutionReadResponse(BaseModel):
    execution_id: str
    record: ExecutionRecord | None = None
    output: str | None = None
    complete: bool


class SynthesisResponse(BaseModel):
    final_output: str | None = None


@asynccontextmanager
async def lifespan(application: FastAPI):
    """FastAPI lifespan hook: configure logging and build the orchestrator."""
    settings = get_settings()
    configure_logging(settings.LOG_LEVEL)
    orchestrator = MultiAgentOrchestrator.from_settings(settings)
    orchestrator.executor.work_dir.mkdir(parents=True, exist_ok=True)
    application.state.orchestrator = orchestrator
    log.info("api_startup_complete", work_dir=settings.WORK_DIR)
    yield
    log.info("api_shutdown_complete")


app = FastAPI(title="Multi-Provider Agent Rooms API", version="1.0.0", lifespan=lifespan)


def _orchestrator(request: Request) -> MultiAgentOrchestrator:
    return request.app.state.orchestrator


def _require_task(body: TaskRequest) -> str:
    task = body.task.strip()
    if not task:
        raise HTTPException(status_code=400, detail="Task content cannot be empty")
    return task


@app.post("/v1/tasks/analyze", response_model=TaskAnalysis)
async def analyze_task(body: TaskRequest, request: Request) -> TaskAnalysis:
    """Dry run: report routing decisions without calling any provider."""
    task = _require_task(body)
    try:
        return _orchestrator(request).analyze(task, provider=body.provider)
    except UnknownProviderError as e:
        raise HTTPException(status_code=400, detail=str(e)) from e


@app.post("/v1/tasks/execute", response_model=OrchestrationReport)
async def execute_task(body: TaskRequest, request: Request) -> OrchestrationReport:
    """Route the task, run every room and synthesize the results."""
    task = _require_task(body)
    try:
        return await _orchestrator(request).run(task, provider=body.provider, parallel=body.parallel)
    except UnknownProviderError as e:
        raise HTTPException(status_code=400, detail=str(e)) from e


@app.get("/v1/executions/{execution_id}", response_model=ExecutionReadResponse)
async def get_execution(execution_id: str, request: Request) -> ExecutionReadResponse:
    executor = _orchestrator(request).executor
    record = executor.get_execution(execution_id)
    output = executor.read_room_output(execution_id)
    if record is None and output is None:
        raise HTTPException(status_code=404, detail="Execution not found")
    return ExecutionReadResponse(
        execution_id=execution_id,
        record=record,
        output=output,
        complete=executor.is_complete(execution_id),
    )


@app.get("/v1/outputs")
async def list_outputs(request: Request) -> dict[str, Any]:
    return {"outputs": _orchestrator(request).executor.list_outputs()}


@app.post("/v1/synthesis", response_model=SynthesisResponse)
async def synthesize(request: Request) -> SynthesisResponse:
    path = _orchestrator(request).synthesizer.run()
    return SynthesisResponse(final_output=str(path) if path else None)


@app.delete("/v1/outputs")
async def cleanup_outputs(request: Request) -> dict[str, Any]:
    removed = _orchestrator(request).cleanup()
    return {"removed": removed}


@app.get("/health")
async def health(request: Request) -> JSONResponse:
    """Health check: reports enabled providers and working directory access."""
    orchestrator: MultiAgentOrchestrator | None = getattr(request.app.state, "orchestrator", None)
    if orchestrator is None:
        return JSONResponse(status_code=503, content={"status": "degraded", "providers": [], "work_dir": {"ok": False}})

    work_dir = orchestrator.executor.work_dir
    work_dir_ok = work_dir.is_dir()
    router = orchestrator.router
    payload: dict[str, Any] = {
        "status": "healthy" if work_dir_ok else "degraded",
        "providers": router.get_enabled_providers(),
        "parallel": router.can_run_parallel(),
        "max_parallel_rooms": router.get_max_parallel_rooms(),
        "work_dir": {"ok": work_dir_ok, "path": str(work_dir)},
    }
    return JSONResponse(status_code=200 if work_dir_ok else 503, content=payload)

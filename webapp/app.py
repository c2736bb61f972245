"""Brainstormer HTTP API: FastAPI routes over the run engine plus an SSE event stream."""

from __future__ import annotations

from datetime import datetime, timezone
import json
import logging
from typing import Any, Dict, List, Optional

from fastapi import Body, FastAPI, HTTPException, Request
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, PlainTextResponse, StreamingResponse
from pydantic import BaseModel

from config import get_server_settings
from core import PIPELINE_GRAPH
from intelligence.refinements import (
    RefinementContext,
    RefinementIdea,
    generate_refinement,
    list_refinement_kinds,
)
from utils.exceptions import (
    BrainstormError,
    ChannelNotFoundError,
    RunNotFoundError,
    SeedValidationError,
    StorageError,
)
from webapp.runtime import get_runtime


logger = logging.getLogger(__name__)

SSE_HEADERS = {
    "Cache-Control": "no-cache",
    "Connection": "keep-alive",
    "X-Accel-Buffering": "no",
}


class RefinementRequest(BaseModel):
    kind: str
    idea: RefinementIdea
    context: Optional[RefinementContext] = None


def _sse(data: Dict[str, Any]) -> str:
    payload = json.dumps(data, ensure_ascii=False, default=str)
    return f"data: {payload}\n\n"


app = FastAPI(title="Node-Graph Brainstormer API")
app.add_middleware(
    CORSMiddleware,
    allow_origins=get_server_settings().cors_origins,
    allow_credentials=False,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.exception_handler(RequestValidationError)
async def _validation_error(_request: Request, exc: RequestValidationError) -> JSONResponse:
    return JSONResponse(status_code=400, content={"detail": jsonable_encoder(exc.errors())})


@app.get("/health")
async def health() -> Dict[str, str]:
    return {"status": "ok", "timestamp": datetime.now(timezone.utc).isoformat(timespec="seconds")}


@app.get("/graph")
async def graph() -> Dict[str, Any]:
    return PIPELINE_GRAPH.to_wire()


@app.post("/run", status_code=202)
async def create_run(payload: Any = Body(default=None)) -> Dict[str, str]:
    engine = get_runtime().engine
    try:
        run_id = await engine.start_run(payload)
    except SeedValidationError as exc:
        raise HTTPException(status_code=400, detail=exc.message) from exc
    except StorageError as exc:
        logger.exception("run_create_failed")
        raise HTTPException(status_code=500, detail="Failed to create run") from exc
    return {"runId": run_id}


@app.get("/runs")
async def list_runs() -> List[Dict[str, Any]]:
    return [state.to_wire() for state in get_runtime().store.list_runs()]


@app.get("/runs/{run_id}")
async def get_run(run_id: str) -> Dict[str, Any]:
    store = get_runtime().store
    try:
        state = store.read_run_state(run_id)
        artifacts = store.read_stage_artifacts(run_id)
        packaged = store.read_packaged_brief(run_id)
        usage = store.read_usage(run_id)
        brief = store.read_brief(run_id)
    except RunNotFoundError as exc:
        raise HTTPException(status_code=404, detail="Run not found") from exc
    except StorageError as exc:
        logger.exception("run_read_failed run_id=%s", run_id)
        raise HTTPException(status_code=500, detail="Failed to read run") from exc

    return {
        "state": state.to_wire(),
        "stageIO": {stage_id: artifact.to_wire() for stage_id, artifact in artifacts.items()},
        "brief": brief,
        "packagedBrief": packaged.to_wire() if packaged else None,
        "usage": usage.to_wire() if usage else None,
    }


@app.get("/runs/{run_id}/events")
async def stream_run_events(run_id: str) -> StreamingResponse:
    hub = get_runtime().hub
    try:
        subscription = hub.subscribe(run_id)
    except ChannelNotFoundError as exc:
        raise HTTPException(status_code=404, detail="Run not found or already closed") from exc

    async def _event_stream():
        try:
            yield "retry: 3000\n\n"
            async for event in subscription.events(keepalive_interval=hub.keepalive_interval):
                if event is None:
                    yield ":heartbeat\n\n"
                    continue
                yield _sse(event.to_wire())
        finally:
            subscription.close()

    return StreamingResponse(_event_stream(), media_type="text/event-stream", headers=SSE_HEADERS)


@app.get("/runs/{run_id}/brief")
async def get_brief(run_id: str) -> PlainTextResponse:
    store = get_runtime().store
    try:
        brief = store.read_brief(run_id)
    except RunNotFoundError as exc:
        raise HTTPException(status_code=404, detail="Run not found") from exc
    if brief is None:
        raise HTTPException(status_code=404, detail="Brief not found")
    return PlainTextResponse(brief, media_type="text/markdown")


@app.get("/refinements")
async def refinement_kinds() -> List[Dict[str, Any]]:
    return list_refinement_kinds()


@app.post("/refinements")
async def create_refinement(req: RefinementRequest) -> Dict[str, Any]:
    runtime = get_runtime()
    try:
        result = await generate_refinement(
            req.kind,
            req.idea,
            req.context,
            llm_factory=runtime.llm_factory,
        )
    except BrainstormError as exc:
        logger.warning("refinement_failed kind=%s error=%s", req.kind, exc.message)
        raise HTTPException(status_code=400, detail=exc.message) from exc
    return result.model_dump(mode="json", by_alias=True)

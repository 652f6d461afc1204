import asyncio
import json
import logging
import queue
import threading
from typing import AsyncIterator
from fastapi import APIRouter, Depends, HTTPException, Request
from fastapi.responses import StreamingResponse
from celery.result import AsyncResult
from app.core.artifacts import inspect
from app.core.config import PipelineConfig, Settings, settings
from app.schemas.runs import (
    InspectRequest,
    InspectionResponse,
    RunAccepted,
    RunCreateRequest,
    RunStatusResponse,
    StreamRequest,
)
from app.streaming.bridge import StreamingBridge
from app.tasks.celery_app import celery_app
from app.tasks.pipeline import run_pipeline

log = logging.getLogger(__name__)

router = APIRouter()

STREAM_DONE = object()
STREAM_POLL_INTERVAL_S = 0.1


async def relay_frames(
    events: queue.Queue,
    bridge: StreamingBridge,
    request: Request,
    poll_interval_s: float = STREAM_POLL_INTERVAL_S,
) -> AsyncIterator[str]:
    """Yield SSE frames from the run's queue until the run ends or the client goes away.

    A disconnect only closes the bridge's stream; the run itself keeps going.
    """
    try:
        while not await request.is_disconnected():
            try:
                item = events.get_nowait()
            except queue.Empty:
                await asyncio.sleep(poll_interval_s)
                continue
            if item is STREAM_DONE:
                return
            yield f"data: {json.dumps(item, ensure_ascii=False)}\n\n"
        log.info("Stream client disconnected, %s continues without a listener", bridge.session_id)
    finally:
        bridge.mark_stream_closed()


def get_settings() -> Settings:
    return settings


def get_registry_factory():
    """Agents for streamed runs; None means the default Claude-backed registry."""
    return None


@router.post("/inspect", response_model=InspectionResponse)
def inspect_work_dir(req: InspectRequest, cfg: Settings = Depends(get_settings)):
    result = inspect(req.work_dir or cfg.work_dir)
    return InspectionResponse(
        next_stage=result.next_stage,
        next_stage_name=result.next_stage.display_name,
        existing_artifacts=result.existing_artifacts,
        rationale=result.rationale,
        config_usable=result.config_usable,
        config_path=result.config_path,
        needs_fresh_config=result.needs_fresh_config,
    )


@router.post("/runs", response_model=RunAccepted, status_code=202)
def create_run(req: RunCreateRequest):
    config = req.config
    config.save()
    start = int(req.start_stage) if req.start_stage else None
    task = run_pipeline.delay(config.model_dump(by_alias=True), start)
    log.info("Queued pipeline run %s", task.id, extra={"work_dir": config.work_dir, "stage": "-"})
    return RunAccepted(task_id=task.id, work_dir=config.work_dir, start_stage=req.start_stage)


@router.get("/runs/{task_id}", response_model=RunStatusResponse)
def get_run(task_id: str):
    result = AsyncResult(task_id, app=celery_app)
    if result.failed():
        return RunStatusResponse(task_id=task_id, state=result.state, error_message=str(result.result))
    payload = result.result if result.successful() else None
    return RunStatusResponse(task_id=task_id, state=result.state, result=payload)


@router.post("/runs/stream")
def stream_run(
    req: StreamRequest,
    request: Request,
    cfg: Settings = Depends(get_settings),
    registry_factory=Depends(get_registry_factory),
):
    if not req.input.strip():
        raise HTTPException(status_code=400, detail="Missing input")
    try:
        config = PipelineConfig.from_prompt(req.input, req.work_dir or cfg.work_dir)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))

    if inspect(config.work_dir).needs_fresh_config:
        config.save()

    events: queue.Queue = queue.Queue()
    bridge = StreamingBridge(events.put, settings=cfg, registry_factory=registry_factory)

    def worker():
        try:
            bridge.run(config)
        finally:
            events.put(STREAM_DONE)

    threading.Thread(target=worker, name=f"stream-{bridge.session_id}", daemon=True).start()

    return StreamingResponse(
        relay_frames(events, bridge, request),
        media_type="text/event-stream",
        headers={"Cache-Control": "no-cache", "Connection": "keep-alive"},
    )

from __future__ import annotations

import dataclasses
import logging
import os
import time
from datetime import datetime, timezone
from typing import Any, Dict

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse
from starlette.responses import Response, StreamingResponse

from ekostudio import __version__
from ekostudio.agent.http_engine import AgentEngine
from ekostudio.eventlog.errors import EventLogError, LogNotFound, error_kind
from ekostudio.eventlog.locator import latest_log_file, list_log_files, resolve_log_file
from ekostudio.eventlog.player import ReplayMode, ReplayOptions
from ekostudio.eventlog.reader import summarize_log_file
from ekostudio.logging_setup import configure_logging
from ekostudio.service.handlers import ReplayHandle, ReplayRequest, stream_task
from ekostudio.service.sse import SSE_HEADERS, format_sse, stream_frames
from ekostudio.service.tasks import TaskStore, validate_query
from ekostudio.settings import Settings

logger = logging.getLogger(__name__)


def _now_iso() -> str:
    return datetime.now(timezone.utc).isoformat().replace("+00:00", "Z")


def _init_state(target: FastAPI, settings: Settings, engine: AgentEngine | None) -> None:
    target.state.settings = settings
    target.state.tasks = TaskStore()
    target.state.engine = engine
    target.state.started_at = time.time()


def create_app(settings: Settings | None = None, *, engine: AgentEngine | None = None) -> FastAPI:
    """
    App factory used by uvicorn and tests.

    Routes are registered on the module-level `app` via decorators, so calling this
    again reconfigures that same instance (fresh task table, new settings).
    """
    s = settings or Settings()
    existing = globals().get("app")
    if isinstance(existing, FastAPI):
        _init_state(existing, s, engine)
        return existing

    new_app = FastAPI(title="EKO Studio", version=__version__)
    _init_state(new_app, s, engine)
    return new_app


app = create_app()


@app.on_event("startup")
def _startup() -> None:
    configure_logging()
    s: Settings = app.state.settings
    logger.info("eko studio started (environment=%s, log_dir=%s)", s.environment, os.path.abspath(s.log_dir))


def _sse_error(status_code: int, data: Dict[str, Any]) -> Response:
    return Response(
        content=format_sse("error", data),
        status_code=status_code,
        media_type="text/event-stream",
        headers=SSE_HEADERS,
    )


def _start_response(query: str | None, params: Dict[str, Any] | None, request: Request) -> JSONResponse:
    settings: Settings = request.app.state.settings
    err = validate_query(query, max_chars=settings.max_query_chars)
    if err:
        return JSONResponse({"success": False, "error": err, "timestamp": _now_iso()}, status_code=400)
    task = request.app.state.tasks.create(query or "", params)
    return JSONResponse(
        {
            "success": True,
            "data": {"taskId": task.task_id, "query": task.query, "sseUrl": f"/api/agent/stream/{task.task_id}"},
            "timestamp": _now_iso(),
        }
    )


@app.get("/api/health")
def health(request: Request) -> Dict[str, Any]:
    settings: Settings = request.app.state.settings
    return {
        "status": "ok",
        "timestamp": _now_iso(),
        "uptime_s": round(time.time() - request.app.state.started_at, 3),
        "environment": settings.environment,
        "version": __version__,
    }


@app.get("/api/agent/start")
def agent_start_get(request: Request, query: str | None = None, q: str | None = None) -> JSONResponse:
    text = query or q
    if not text:
        return JSONResponse(
            {"success": False, "error": 'Query parameter is required (use "query" or "q")', "timestamp": _now_iso()},
            status_code=400,
        )
    return _start_response(text, None, request)


@app.post("/api/agent/start")
async def agent_start_post(request: Request) -> JSONResponse:
    try:
        body = await request.json()
    except ValueError:
        body = None
    if not isinstance(body, dict) or not body.get("query"):
        return JSONResponse(
            {"success": False, "error": "Query field is required in request body", "timestamp": _now_iso()},
            status_code=400,
        )
    params = body.get("params") if isinstance(body.get("params"), dict) else None
    return _start_response(str(body["query"]), params, request)


def _parse_replay_request(settings: Settings, qp: Dict[str, str]) -> ReplayRequest | Response:
    playback = (qp.get("playbackMode") or settings.replay_default_mode).strip().lower()
    if playback not in (ReplayMode.realtime.value, ReplayMode.fixed.value):
        return _sse_error(400, {"error": "Invalid playbackMode parameter", "message": "playbackMode must be realtime or fixed"})

    speed_cfg = settings.speed_bounds()
    interval_cfg = settings.fixed_interval_bounds()
    try:
        speed = float(qp.get("speed") or speed_cfg.default)
        fixed_interval = float(qp.get("fixedInterval") or interval_cfg.default)
    except ValueError:
        return _sse_error(400, {"error": "Invalid replay parameter", "message": "speed and fixedInterval must be numbers"})

    if not (speed_cfg.min <= speed <= speed_cfg.max):
        return _sse_error(
            400,
            {"error": "Invalid speed parameter", "message": f"Speed must be between {speed_cfg.min} and {speed_cfg.max}"},
        )
    if not (interval_cfg.min <= fixed_interval <= interval_cfg.max):
        return _sse_error(
            400,
            {
                "error": "Invalid fixedInterval parameter",
                "message": f"Fixed interval must be between {interval_cfg.min} and {interval_cfg.max} ms",
            },
        )
    return ReplayRequest(
        log_file=qp.get("logFile") or None,
        options=ReplayOptions(mode=ReplayMode(playback), speed=speed, fixed_interval_ms=fixed_interval),
    )


@app.get("/api/agent/stream/{task_id}")
async def agent_stream(request: Request, task_id: str) -> Response:
    settings: Settings = request.app.state.settings
    tasks: TaskStore = request.app.state.tasks
    qp = dict(request.query_params)
    mode = qp.get("mode") or "normal"

    task = tasks.get(task_id)
    if task is None:
        logger.warning("stream requested for unknown task %s (known=%d)", task_id, tasks.size())
        return _sse_error(
            404,
            {"error": "Task not found", "taskId": task_id, "message": "The task may have expired or was not created properly"},
        )
    if task.status == "completed":
        return Response(
            content=format_sse(
                "completed",
                {"taskId": task_id, "status": "completed", "message": "Task was already completed", "query": task.query},
            ),
            media_type="text/event-stream",
            headers=SSE_HEADERS,
        )
    if task.status == "running":
        return _sse_error(
            409,
            {
                "taskId": task_id,
                "status": "error",
                "error": "Task is already running",
                "message": "Only one SSE connection per task is allowed",
            },
        )
    if task.status == "error":
        return _sse_error(
            410,
            {
                "taskId": task_id,
                "status": "error",
                "error": "Task previously failed",
                "message": "This task has already failed and cannot be retried",
            },
        )

    replay: ReplayRequest | None = None
    if mode == "replay":
        parsed = _parse_replay_request(settings, qp)
        if isinstance(parsed, Response):
            return parsed
        replay = parsed

    if tasks.claim(task_id) is None:
        return _sse_error(409, {"taskId": task_id, "status": "error", "error": "Task is already running"})

    handle = ReplayHandle()

    def _on_abort() -> None:
        logger.info("[stream] client disconnected: task=%s mode=%s", task_id, mode)
        handle.cancel()
        tasks.update_status(task_id, "completed" if mode == "replay" else "error")

    async def _produce(emit) -> None:
        await stream_task(
            emit,
            settings=settings,
            tasks=tasks,
            task=task,
            mode=mode,
            replay=replay,
            handle=handle,
            engine=request.app.state.engine,
        )

    return StreamingResponse(
        stream_frames(_produce, on_abort=_on_abort, keepalive_s=settings.sse_keepalive_s),
        media_type="text/event-stream",
        headers=SSE_HEADERS,
    )


@app.get("/api/logs")
def logs_list(request: Request) -> JSONResponse:
    settings: Settings = request.app.state.settings
    return JSONResponse({"logs": list_log_files(settings.log_dir)})


@app.get("/api/logs/latest")
def logs_latest(request: Request) -> JSONResponse:
    settings: Settings = request.app.state.settings
    return JSONResponse({"log": latest_log_file(settings.log_dir)})


@app.get("/api/logs/{name}/summary")
def logs_summary(request: Request, name: str) -> JSONResponse:
    settings: Settings = request.app.state.settings
    try:
        summary = summarize_log_file(resolve_log_file(settings.log_dir, name))
    except LogNotFound as e:
        return JSONResponse({"error": str(e), "kind": e.kind}, status_code=404)
    except EventLogError as e:
        return JSONResponse({"error": str(e), "kind": error_kind(e)}, status_code=500)
    if summary is None:
        return JSONResponse({"error": f"Log file has no readable entries: {name}", "kind": "empty_log"}, status_code=404)
    return JSONResponse(
        {
            "logFile": name,
            "totalMessages": summary.total_entries,
            "firstTimestamp": summary.first_timestamp,
            "lastTimestamp": summary.last_timestamp,
            "duration": summary.duration_ms,
        }
    )


@app.get("/api/replay/config")
def replay_config(request: Request) -> JSONResponse:
    settings: Settings = request.app.state.settings
    return JSONResponse(
        {
            "playbackMode": settings.replay_default_mode,
            "speed": dataclasses.asdict(settings.speed_bounds()),
            "fixedInterval": dataclasses.asdict(settings.fixed_interval_bounds()),
        }
    )

"""
Stream handlers behind GET /api/agent/stream/{task_id}.

Both handlers emit the same frame shapes, so a consumer only tells a replay from a
live run by the `replay` metadata on each message.
"""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass
from typing import Any, Dict, Optional

from ekostudio.agent.http_engine import AgentEngine
from ekostudio.agent.runner import run_agent
from ekostudio.eventlog.adapter import ReplayMetadata, ReplaySinkAdapter, ReplayStartInfo
from ekostudio.eventlog.errors import error_kind
from ekostudio.eventlog.locator import resolve_log_file
from ekostudio.eventlog.player import ReplayMode, ReplayOptions, ReplayState
from ekostudio.service.sse import Emit, format_sse, message_frame
from ekostudio.service.tasks import TaskRecord, TaskStore
from ekostudio.settings import Settings

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ReplayRequest:
    log_file: str | None
    options: ReplayOptions


class ReplayHandle:
    """Lets the transport cancel a replay that is already running."""

    def __init__(self) -> None:
        self.adapter: Optional[ReplaySinkAdapter] = None
        self._cancelled = False

    def cancel(self) -> None:
        self._cancelled = True
        if self.adapter is not None:
            self.adapter.cancel()

    @property
    def cancelled(self) -> bool:
        return self._cancelled


async def handle_replay(emit: Emit, *, settings: Settings, task_id: str, req: ReplayRequest, handle: ReplayHandle) -> bool:
    """Returns True when every entry was delivered."""
    path = resolve_log_file(settings.log_dir, req.log_file)
    log_name = os.path.basename(path)
    opts = req.options
    logger.info("[replay] task=%s file=%s mode=%s speed=%s", task_id, log_name, opts.mode.value, opts.speed)

    async def _on_start(info: ReplayStartInfo) -> None:
        data: Dict[str, Any] = {
            "logFile": log_name,
            "totalMessages": info.total_entries,
            "duration": info.duration_ms,
            "mode": opts.mode.value,
            "speed": opts.speed,
        }
        if opts.mode is ReplayMode.fixed:
            data["fixedInterval"] = opts.fixed_interval_ms
        await emit(message_frame({"type": "replay_info", "data": data}))

    async def _on_message(payload: Any, meta: ReplayMetadata) -> None:
        await emit(
            message_frame(
                payload,
                replay={
                    "count": meta.sequence,
                    "originalTimestamp": meta.timestamp,
                    "timeDiff": meta.time_diff,
                    "progress": meta.progress,
                },
            )
        )

    adapter = ReplaySinkAdapter(path, opts, on_message=_on_message, on_start=_on_start)
    handle.adapter = adapter
    if handle.cancelled:
        adapter.cancel()
    await adapter.start()
    return adapter.state is ReplayState.completed


async def handle_run(emit: Emit, *, settings: Settings, task: TaskRecord, engine: AgentEngine | None) -> None:
    params = dict(task.params or {})

    async def _on_message(message: Any) -> None:
        await emit(message_frame(message))

    res = await run_agent(task.query, _on_message, settings=settings, engine=engine, params=params)
    if res.log_path:
        logger.info("[run] task=%s recorded %d events to %s", task.task_id, res.event_count, res.log_path)


async def stream_task(
    emit: Emit,
    *,
    settings: Settings,
    tasks: TaskStore,
    task: TaskRecord,
    mode: str,
    replay: ReplayRequest | None,
    handle: ReplayHandle,
    engine: AgentEngine | None = None,
) -> None:
    await emit(format_sse("connected", {"taskId": task.task_id, "status": "connected", "mode": mode}))
    try:
        if mode == "replay":
            if replay is None:
                raise ValueError("replay mode requires replay options")
            done = await handle_replay(emit, settings=settings, task_id=task.task_id, req=replay, handle=handle)
            if not done:
                # Cancelled replays end quietly; the client is usually gone already.
                tasks.update_status(task.task_id, "completed")
                return
            message = "Log replay completed"
        else:
            await handle_run(emit, settings=settings, task=task, engine=engine)
            message = "Agent execution completed"
        await emit(
            format_sse(
                "completed",
                {"taskId": task.task_id, "status": "completed", "message": message, "mode": mode},
            )
        )
        tasks.update_status(task.task_id, "completed")
    except Exception as e:
        logger.exception("[stream] %s failed for task %s", mode, task.task_id)
        await emit(
            format_sse(
                "error",
                {"taskId": task.task_id, "status": "error", "error": str(e), "kind": error_kind(e), "mode": mode},
            )
        )
        tasks.update_status(task.task_id, "error")

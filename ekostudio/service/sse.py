from __future__ import annotations

import asyncio
import contextlib
import json
from datetime import datetime, timezone
from typing import Any, AsyncGenerator, Awaitable, Callable, Dict, Optional

SSE_HEADERS = {
    "Cache-Control": "no-cache",
    "Connection": "keep-alive",
    "X-Accel-Buffering": "no",
}

Emit = Callable[[str], Awaitable[None]]


def format_sse(event_type: str, data: Any) -> str:
    return f"event: {event_type}\ndata: {json.dumps(data, ensure_ascii=False, default=str)}\n\n"


def message_frame(content: Any, *, replay: Optional[Dict[str, Any]] = None) -> str:
    now = datetime.now(timezone.utc)
    data: Dict[str, Any] = {
        "time": now.isoformat().replace("+00:00", "Z"),
        "timestamp": int(now.timestamp() * 1000),
        "content": content,
    }
    if replay is not None:
        data["replay"] = replay
    return format_sse("message", data)


async def stream_frames(
    produce: Callable[[Emit], Awaitable[None]],
    *,
    on_abort: Optional[Callable[[], None]] = None,
    keepalive_s: float | None = None,
) -> AsyncGenerator[str, None]:
    """
    Run `produce` in a background task and yield the frames it emits, in order.

    If the consumer stops iterating early (client disconnect), `on_abort` is called and
    the producer task is cancelled.
    """
    q: "asyncio.Queue[str | None]" = asyncio.Queue()

    async def _emit(frame: str) -> None:
        await q.put(frame)

    async def _run() -> None:
        try:
            await produce(_emit)
        finally:
            await q.put(None)

    task = asyncio.create_task(_run())
    try:
        while True:
            if keepalive_s:
                try:
                    frame = await asyncio.wait_for(q.get(), timeout=keepalive_s)
                except asyncio.TimeoutError:
                    # Keepalive comment so proxies don't drop a quiet replay.
                    yield ": ping\n\n"
                    continue
            else:
                frame = await q.get()
            if frame is None:
                break
            yield frame
        await task
    finally:
        if not task.done():
            if on_abort is not None:
                on_abort()
            task.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await task

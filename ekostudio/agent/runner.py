from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Dict, Optional

from ekostudio.agent.http_engine import AgentEngine, AgentEngineError, HttpAgentEngine, OnMessage
from ekostudio.agent.recording import RecordingCallback
from ekostudio.eventlog.writer import EventLogWriter
from ekostudio.settings import Settings

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class RecordingResult:
    log_path: str | None
    event_count: int
    result: Any = None


def engine_from_settings(settings: Settings) -> HttpAgentEngine:
    if not settings.agent_url:
        raise AgentEngineError("agent_url_not_configured: set EKO_AGENT_URL to run live tasks")
    return HttpAgentEngine(
        base_url=settings.agent_url or "",
        api_key=settings.agent_api_key,
        timeout_s=float(settings.agent_timeout_s),
    )


async def run_agent(
    query: str,
    on_message: OnMessage,
    *,
    settings: Settings,
    engine: AgentEngine | None = None,
    params: Optional[Dict[str, Any]] = None,
    model: str | None = None,
    record: bool | None = None,
) -> RecordingResult:
    """
    Run one agent task, recording every streamed event before it reaches `on_message`.
    The recording is closed on every exit path, including engine failures.
    """
    eng = engine or engine_from_settings(settings)
    enabled = settings.recording_enabled if record is None else bool(record)
    label = model or (params or {}).get("model") or settings.default_model

    async with EventLogWriter(settings.log_dir, str(label), enabled=enabled) as writer:
        tap = RecordingCallback(on_message, writer)
        result = await eng.run(query, tap.on_message, params=params)

    if writer.enabled:
        logger.info("log saved to %s (%d events)", writer.path, writer.count)
    return RecordingResult(log_path=writer.path, event_count=writer.count, result=result)

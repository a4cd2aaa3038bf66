from __future__ import annotations

import inspect
import json
import logging
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Dict, Optional, Protocol, Union

import httpx

logger = logging.getLogger(__name__)

OnMessage = Callable[[Any], Union[None, Awaitable[None]]]


class AgentEngineError(RuntimeError):
    kind = "agent_engine_error"


class AgentEngine(Protocol):
    async def run(self, query: str, on_message: OnMessage, *, params: Optional[Dict[str, Any]] = None) -> Any:
        ...


@dataclass(frozen=True)
class HttpAgentEngine:
    """
    Client for an external agent service that streams its events back as NDJSON.

    Endpoint: POST {base_url}/run  body: {"query": ..., "params": {...}}
    Each non-empty response line is one event object, forwarded in arrival order.
    """

    base_url: str
    api_key: str | None = None
    timeout_s: float = 600.0
    transport: httpx.AsyncBaseTransport | None = None

    async def run(self, query: str, on_message: OnMessage, *, params: Optional[Dict[str, Any]] = None) -> int:
        if not self.base_url:
            raise AgentEngineError("agent_url_not_configured")
        url = f"{self.base_url.rstrip('/')}/run"
        headers: Dict[str, str] = {"Accept": "application/x-ndjson"}
        if self.api_key:
            headers["Authorization"] = f"Bearer {self.api_key}"

        forwarded = 0
        async with httpx.AsyncClient(timeout=self.timeout_s, transport=self.transport) as client:
            async with client.stream("POST", url, headers=headers, json={"query": query, "params": params or {}}) as r:
                if r.status_code != 200:
                    body = (await r.aread()).decode("utf-8", errors="replace")
                    raise AgentEngineError(f"agent_http_{r.status_code}: {body[:1500]}")
                async for line in r.aiter_lines():
                    if not line.strip():
                        continue
                    try:
                        event = json.loads(line)
                    except json.JSONDecodeError as e:
                        raise AgentEngineError(f"agent_stream_parse_error: {line[:500]}") from e
                    res = on_message(event)
                    if inspect.isawaitable(res):
                        await res
                    forwarded += 1
        logger.info("agent run finished: %d events", forwarded)
        return forwarded

from __future__ import annotations

import inspect
import logging
import os
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Optional, Union

from ekostudio.eventlog.errors import EmptyLog
from ekostudio.eventlog.format import LogEntry, LogSummary
from ekostudio.eventlog.player import ReplayOptions, ReplayOutcome, ReplayScheduler, ReplayState
from ekostudio.eventlog.reader import EventLogReader

logger = logging.getLogger(__name__)

Hook = Callable[..., Union[None, Awaitable[None]]]


@dataclass(frozen=True)
class ReplayStartInfo:
    total_entries: int
    duration_ms: int
    first_timestamp: int
    last_timestamp: int


@dataclass(frozen=True)
class ReplayMetadata:
    sequence: int
    timestamp: int
    time_diff: int
    index: int
    total: int

    @property
    def progress(self) -> str:
        return f"{self.index + 1}/{self.total}"


async def _call(hook: Hook, *args: Any) -> None:
    res = hook(*args)
    if inspect.isawaitable(res):
        await res


class ReplaySinkAdapter:
    """
    Replays a recorded file through the same message-shaped hooks a live run uses.

    Order of hooks: on_start(info) -> on_message(payload, metadata)* -> on_complete().
    A cancelled replay ends without on_complete. Failures go to on_error when given,
    otherwise they are raised.
    """

    def __init__(
        self,
        path: str,
        options: ReplayOptions | None = None,
        *,
        on_message: Callable[[Any, ReplayMetadata], Union[None, Awaitable[None]]],
        on_start: Optional[Callable[[ReplayStartInfo], Union[None, Awaitable[None]]]] = None,
        on_complete: Optional[Callable[[], Union[None, Awaitable[None]]]] = None,
        on_error: Optional[Callable[[BaseException], Union[None, Awaitable[None]]]] = None,
    ) -> None:
        self.path = path
        self.options = options or ReplayOptions()
        self.on_message = on_message
        self.on_start = on_start
        self.on_complete = on_complete
        self.on_error = on_error
        self._scheduler = ReplayScheduler()

    @property
    def state(self) -> ReplayState:
        return self._scheduler.state

    def cancel(self) -> None:
        self._scheduler.cancel()

    def summary(self) -> Optional[LogSummary]:
        return EventLogReader(self.path).summary()

    async def _deliver(self, entry: LogEntry, index: int, total: int) -> None:
        meta = ReplayMetadata(
            sequence=entry.sequence,
            timestamp=entry.timestamp,
            time_diff=entry.time_diff,
            index=index,
            total=total,
        )
        await _call(self.on_message, entry.payload, meta)

    async def start(self) -> Optional[ReplayOutcome]:
        name = os.path.basename(self.path)
        try:
            reader = EventLogReader(self.path)
            entries = reader.entries()
            summary = reader.summary()
            if summary is None:
                raise EmptyLog(f"Log file has no readable entries: {name}")

            logger.info(
                "replay started: %s (%d entries, %dms recorded, mode=%s speed=%s)",
                name,
                summary.total_entries,
                summary.duration_ms,
                self.options.mode.value,
                self.options.speed,
            )
            if self.on_start is not None:
                await _call(
                    self.on_start,
                    ReplayStartInfo(
                        total_entries=summary.total_entries,
                        duration_ms=summary.duration_ms,
                        first_timestamp=summary.first_timestamp,
                        last_timestamp=summary.last_timestamp,
                    ),
                )

            outcome = await self._scheduler.run(entries, self._deliver, self.options)
            if outcome.state is ReplayState.completed:
                logger.info("replay completed: %s", name)
                if self.on_complete is not None:
                    await _call(self.on_complete)
            return outcome
        except Exception as e:
            logger.warning("replay failed: %s: %s", name, e)
            if self.on_error is None:
                raise
            await _call(self.on_error, e)
            return None

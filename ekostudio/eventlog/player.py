from __future__ import annotations

import asyncio
import inspect
import logging
import math
from dataclasses import dataclass
from enum import Enum
from typing import Awaitable, Callable, List, Sequence, Union

from ekostudio.eventlog.errors import ConsumerCallbackFailure
from ekostudio.eventlog.format import LogEntry

logger = logging.getLogger(__name__)

PlaybackCallback = Callable[[LogEntry, int, int], Union[None, Awaitable[None]]]


class ReplayMode(str, Enum):
    realtime = "realtime"  # recorded gaps, scaled by speed
    fixed = "fixed"  # constant gap, scaled by speed


class ReplayState(str, Enum):
    idle = "idle"
    running = "running"
    completed = "completed"
    cancelled = "cancelled"
    failed = "failed"


@dataclass(frozen=True)
class ReplayOptions:
    mode: ReplayMode = ReplayMode.realtime
    speed: float = 1.0
    fixed_interval_ms: float = 1000.0

    def __post_init__(self) -> None:
        object.__setattr__(self, "mode", ReplayMode(self.mode))
        if not (math.isfinite(self.speed) and self.speed > 0):
            raise ValueError(f"speed must be a finite number > 0 (got {self.speed})")
        if not (math.isfinite(self.fixed_interval_ms) and self.fixed_interval_ms >= 0):
            raise ValueError(f"fixed_interval_ms must be a finite number >= 0 (got {self.fixed_interval_ms})")


@dataclass(frozen=True)
class ReplayOutcome:
    state: ReplayState
    delivered: int


def delay_after(entries: Sequence[LogEntry], index: int, options: ReplayOptions) -> float:
    """Milliseconds to wait after delivering entries[index]; 0 after the last entry."""
    if index >= len(entries) - 1:
        return 0.0
    if options.mode is ReplayMode.fixed:
        return options.fixed_interval_ms / options.speed
    # The next entry's recorded gap is the distance from the current one.
    return max(0, entries[index + 1].time_diff) / options.speed


class ReplayScheduler:
    """
    Delivers entries one at a time, awaiting each callback before the next delay.

    Delays are recomputed per step and passed to the event loop as float seconds
    (no rounding), so timer jitter does not accumulate across steps.
    """

    def __init__(self) -> None:
        self.state = ReplayState.idle
        self.delivered = 0
        self._cancel = asyncio.Event()

    def cancel(self) -> None:
        self._cancel.set()

    async def _wait(self, delay_ms: float) -> None:
        if delay_ms <= 0:
            await asyncio.sleep(0)
            return
        try:
            await asyncio.wait_for(self._cancel.wait(), timeout=delay_ms / 1000.0)
        except asyncio.TimeoutError:
            pass

    async def run(
        self,
        entries: Sequence[LogEntry],
        callback: PlaybackCallback,
        options: ReplayOptions | None = None,
    ) -> ReplayOutcome:
        if self.state is not ReplayState.idle:
            raise RuntimeError(f"scheduler already used (state={self.state.value})")
        opts = options or ReplayOptions()
        items: List[LogEntry] = list(entries)
        total = len(items)
        self.state = ReplayState.running

        try:
            for i, entry in enumerate(items):
                if self._cancel.is_set():
                    break
                try:
                    res = callback(entry, i, total)
                    if inspect.isawaitable(res):
                        await res
                except Exception as e:
                    self.state = ReplayState.failed
                    raise ConsumerCallbackFailure(f"replay callback failed at index {i} (sequence {entry.sequence}): {e}") from e
                self.delivered += 1
                await self._wait(delay_after(items, i, opts))
        except asyncio.CancelledError:
            self.state = ReplayState.cancelled
            raise

        if self._cancel.is_set() and self.delivered < total:
            self.state = ReplayState.cancelled
            logger.info("replay cancelled after %d/%d entries", self.delivered, total)
        else:
            self.state = ReplayState.completed
        return ReplayOutcome(state=self.state, delivered=self.delivered)


async def replay_entries(
    entries: Sequence[LogEntry],
    callback: PlaybackCallback,
    options: ReplayOptions | None = None,
) -> ReplayOutcome:
    return await ReplayScheduler().run(entries, callback, options)


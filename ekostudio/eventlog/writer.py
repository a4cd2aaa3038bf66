from __future__ import annotations

import asyncio
import logging
import os
import time
from typing import IO, Any, Callable, Optional

from ekostudio.eventlog.errors import WriteFailure
from ekostudio.eventlog.format import LogEntry, build_log_filename, format_record

logger = logging.getLogger(__name__)


def _now_ms() -> int:
    return int(time.time() * 1000)


def _write_sync(fh: IO[str], text: str) -> None:
    fh.write(text)
    fh.flush()


class EventLogWriter:
    """
    Append-only recorder for one run: one writer owns one file for its whole lifetime.

    When `enabled` is false the writer never touches the filesystem and every call is a
    no-op, so callers can wrap a stream unconditionally.
    """

    def __init__(
        self,
        log_dir: str,
        source_label: str,
        *,
        enabled: bool = True,
        clock: Callable[[], int] | None = None,
    ) -> None:
        self.log_dir = log_dir
        self.source_label = source_label
        self.enabled = bool(enabled)
        self._clock = clock or _now_ms
        self._path: Optional[str] = None
        self._fh: Optional[IO[str]] = None
        self._count = 0
        self._last_ts = 0
        self._closed = False
        self._lock = asyncio.Lock()
        # Outlives a cancelled append so close() never races a worker thread.
        self._inflight: Optional[asyncio.Future] = None

    @property
    def path(self) -> Optional[str]:
        return self._path

    @property
    def count(self) -> int:
        return self._count

    def open(self) -> "EventLogWriter":
        if not self.enabled or self._fh is not None or self._closed:
            return self
        try:
            os.makedirs(self.log_dir, exist_ok=True)
            path = os.path.join(self.log_dir, build_log_filename(self._clock(), self.source_label))
            self._fh = open(path, "a", encoding="utf-8")
        except OSError as e:
            raise WriteFailure(f"cannot open log file in {self.log_dir}: {e}") from e
        self._path = path
        logger.info("recording events to %s", path)
        return self

    async def _commit(self, fh: IO[str], entry: LogEntry, record: str) -> LogEntry:
        try:
            await asyncio.to_thread(_write_sync, fh, record)
        except OSError as e:
            raise WriteFailure(f"failed to append record {entry.sequence} to {self._path}: {e}") from e
        self._count = entry.sequence
        self._last_ts = entry.timestamp
        return entry

    async def append(self, event: Any) -> Optional[LogEntry]:
        if not self.enabled or self._closed:
            return None
        if self._fh is None:
            self.open()
        async with self._lock:
            fh = self._fh
            if fh is None:
                return None
            ts = int(self._clock())
            entry = LogEntry(
                sequence=self._count + 1,
                timestamp=ts,
                time_diff=0 if self._count == 0 else ts - self._last_ts,
                payload=event,
            )
            inflight = asyncio.ensure_future(self._commit(fh, entry, format_record(entry)))
            self._inflight = inflight
            try:
                return await asyncio.shield(inflight)
            finally:
                if inflight.done():
                    self._inflight = None

    async def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        inflight, self._inflight = self._inflight, None
        if inflight is not None:
            await asyncio.wait([inflight])
            if not inflight.cancelled() and inflight.exception() is not None:
                logger.warning("last append to %s failed: %s", self._path, inflight.exception())
        async with self._lock:
            fh, self._fh = self._fh, None
            if fh is None:
                return
            try:
                await asyncio.to_thread(fh.close)
            except OSError as e:
                raise WriteFailure(f"failed to close {self._path}: {e}") from e
        logger.info("recording closed: %s (%d events)", self._path, self._count)

    async def __aenter__(self) -> "EventLogWriter":
        return self.open()

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.close()

from __future__ import annotations

import asyncio
from pathlib import Path
from typing import Any, List

import pytest

from ekostudio.eventlog.adapter import ReplayMetadata, ReplaySinkAdapter, ReplayStartInfo
from ekostudio.eventlog.errors import ConsumerCallbackFailure, EmptyLog, LogNotFound
from ekostudio.eventlog.player import ReplayMode, ReplayOptions, ReplayState

FAST = ReplayOptions(mode=ReplayMode.fixed, speed=1.0, fixed_interval_ms=0)


def _write_log(path: Path, n: int, *, skip: tuple = ()) -> Path:
    parts = []
    ts = 1_000
    for seq in range(1, n + 1):
        diff = 0 if seq == 1 else 100
        ts += diff
        if seq in skip:
            parts.append(f"{seq}-{ts}-{diff}\n{{not json\n\n")
        else:
            parts.append(f'{seq}-{ts}-{diff}\n{{\n  "seq": {seq}\n}}\n\n')
    path.write_text("".join(parts), encoding="utf-8")
    return path


class _Recorder:
    def __init__(self) -> None:
        self.calls: List[tuple] = []

    async def on_start(self, info: ReplayStartInfo) -> None:
        self.calls.append(("start", info))

    async def on_message(self, payload: Any, meta: ReplayMetadata) -> None:
        self.calls.append(("message", payload, meta))

    def on_complete(self) -> None:
        self.calls.append(("complete",))

    def on_error(self, exc: BaseException) -> None:
        self.calls.append(("error", exc))

    def kinds(self) -> List[str]:
        return [c[0] for c in self.calls]


def _adapter(path: Path, rec: _Recorder, options: ReplayOptions = FAST, **kw: Any) -> ReplaySinkAdapter:
    return ReplaySinkAdapter(
        str(path),
        options,
        on_message=rec.on_message,
        on_start=rec.on_start,
        on_complete=rec.on_complete,
        on_error=kw.get("on_error", rec.on_error),
    )


def test_hooks_fire_in_order_with_metadata(tmp_path: Path) -> None:
    path = _write_log(tmp_path / "eko-log-1-a.log", 3)
    rec = _Recorder()
    adapter = _adapter(path, rec)
    outcome = asyncio.run(adapter.start())

    assert outcome is not None and outcome.state is ReplayState.completed
    assert rec.kinds() == ["start", "message", "message", "message", "complete"]
    info = rec.calls[0][1]
    assert (info.total_entries, info.duration_ms) == (3, 200)
    payloads = [c[1] for c in rec.calls if c[0] == "message"]
    assert payloads == [{"seq": 1}, {"seq": 2}, {"seq": 3}]
    last_meta = rec.calls[3][2]
    assert (last_meta.sequence, last_meta.index, last_meta.total, last_meta.time_diff) == (3, 2, 3, 100)
    assert last_meta.progress == "3/3"


def test_index_and_sequence_diverge_when_records_are_skipped(tmp_path: Path) -> None:
    path = _write_log(tmp_path / "eko-log-1-a.log", 4, skip=(2,))
    rec = _Recorder()
    asyncio.run(_adapter(path, rec).start())
    metas = [c[2] for c in rec.calls if c[0] == "message"]
    assert [(m.sequence, m.index, m.total) for m in metas] == [(1, 0, 3), (3, 1, 3), (4, 2, 3)]


def test_empty_log_goes_to_on_error_without_start(tmp_path: Path) -> None:
    path = tmp_path / "eko-log-1-a.log"
    path.write_text("", encoding="utf-8")
    rec = _Recorder()
    assert asyncio.run(_adapter(path, rec).start()) is None
    assert rec.kinds() == ["error"]
    assert isinstance(rec.calls[0][1], EmptyLog)


def test_empty_log_raises_without_on_error(tmp_path: Path) -> None:
    path = tmp_path / "eko-log-1-a.log"
    path.write_text("\n\n", encoding="utf-8")
    rec = _Recorder()
    adapter = ReplaySinkAdapter(str(path), FAST, on_message=rec.on_message, on_start=rec.on_start)
    with pytest.raises(EmptyLog):
        asyncio.run(adapter.start())
    assert rec.calls == []


def test_missing_file_is_reported_as_not_found(tmp_path: Path) -> None:
    rec = _Recorder()
    asyncio.run(_adapter(tmp_path / "eko-log-404-x.log", rec).start())
    assert rec.kinds() == ["error"]
    assert isinstance(rec.calls[0][1], LogNotFound)


def test_cancel_after_second_of_five_entries(tmp_path: Path) -> None:
    path = _write_log(tmp_path / "eko-log-1-a.log", 5)
    rec = _Recorder()
    holder: dict = {}

    async def _on_message(payload: Any, meta: ReplayMetadata) -> None:
        await rec.on_message(payload, meta)
        if meta.index == 1:
            holder["adapter"].cancel()

    adapter = ReplaySinkAdapter(
        str(path),
        ReplayOptions(mode=ReplayMode.realtime),
        on_message=_on_message,
        on_start=rec.on_start,
        on_complete=rec.on_complete,
        on_error=rec.on_error,
    )
    holder["adapter"] = adapter
    outcome = asyncio.run(adapter.start())

    assert rec.kinds() == ["start", "message", "message"]
    assert outcome is not None and outcome.state is ReplayState.cancelled
    assert adapter.state is ReplayState.cancelled


def test_consumer_failure_reaches_on_error(tmp_path: Path) -> None:
    path = _write_log(tmp_path / "eko-log-1-a.log", 3)
    rec = _Recorder()

    def _boom(payload: Any, meta: ReplayMetadata) -> None:
        raise RuntimeError("transport closed")

    adapter = ReplaySinkAdapter(str(path), FAST, on_message=_boom, on_complete=rec.on_complete, on_error=rec.on_error)
    asyncio.run(adapter.start())
    assert rec.kinds() == ["error"]
    assert isinstance(rec.calls[0][1], ConsumerCallbackFailure)


def test_replay_does_not_modify_source(tmp_path: Path) -> None:
    path = _write_log(tmp_path / "eko-log-1-a.log", 2)
    before = path.read_bytes()
    rec = _Recorder()
    adapter = _adapter(path, rec)
    asyncio.run(adapter.start())
    assert path.read_bytes() == before
    summary = adapter.summary()
    assert summary is not None and summary.total_entries == 2

"""
On-disk record format shared by the writer, reader and locator.

A log file is a sequence of records separated by one blank line:

    <sequence>-<timestamp_ms>-<time_diff_ms>
    <pretty-printed JSON payload>

Filenames look like `eko-log-<epoch_ms>-<YYYY_MM_DD_HH_MM_SS>-<label>.log`, so a
plain descending sort lists the newest recording first.
"""

from __future__ import annotations

import dataclasses
import json
import re
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Optional

from pydantic import BaseModel

from ekostudio.eventlog.errors import MalformedRecord

LOG_FILE_PREFIX = "eko-log-"
LOG_FILE_SUFFIX = ".log"

_UNSAFE_LABEL_CHARS = re.compile(r"[^a-zA-Z0-9\-_.]")
# Sequences start at 1; time_diff may be negative if the recording clock stepped backwards.
_HEADER = re.compile(r"^([1-9]\d*)-(\d+)-(-?\d+)$")
# Bytes that were not valid UTF-8, as left by the "surrogateescape" decoder.
_UNDECODABLE = re.compile("[\udc80-\udcff]")


@dataclass(frozen=True)
class LogEntry:
    sequence: int
    timestamp: int
    time_diff: int
    payload: Any


@dataclass(frozen=True)
class LogSummary:
    path: str
    total_entries: int
    first_timestamp: int
    last_timestamp: int

    @property
    def duration_ms(self) -> int:
        return self.last_timestamp - self.first_timestamp


def sanitize_label(label: str) -> str:
    return _UNSAFE_LABEL_CHARS.sub("_", label or "")


def build_log_filename(now_ms: int, label: str) -> str:
    dt = datetime.fromtimestamp(now_ms / 1000.0)
    return f"{LOG_FILE_PREFIX}{now_ms}-{dt.strftime('%Y_%m_%d_%H_%M_%S')}-{sanitize_label(label)}{LOG_FILE_SUFFIX}"


def is_log_filename(name: str) -> bool:
    return name.startswith(LOG_FILE_PREFIX) and name.endswith(LOG_FILE_SUFFIX)


def format_header(sequence: int, timestamp: int, time_diff: int) -> str:
    return f"{sequence}-{timestamp}-{time_diff}"


def parse_header(line: str) -> tuple[int, int, int]:
    m = _HEADER.match(line.strip())
    if m is None:
        raise MalformedRecord(f"invalid record header: {line!r}")
    return int(m.group(1)), int(m.group(2)), int(m.group(3))


def _jsonable(value: Any) -> Any:
    if isinstance(value, BaseModel):
        return value.model_dump(mode="json")
    if dataclasses.is_dataclass(value) and not isinstance(value, type):
        return dataclasses.asdict(value)
    return value


def _json_default(value: Any) -> Any:
    converted = _jsonable(value)
    if converted is not value:
        return converted
    if isinstance(value, (set, frozenset, tuple)):
        return list(value)
    if isinstance(value, datetime):
        return value.isoformat()
    return str(value)


def format_payload(payload: Any) -> str:
    return json.dumps(_jsonable(payload), indent=2, ensure_ascii=False, default=_json_default)


def format_record(entry: LogEntry) -> str:
    return f"{format_header(entry.sequence, entry.timestamp, entry.time_diff)}\n{format_payload(entry.payload)}\n\n"


def parse_block(block: str) -> LogEntry:
    lines = block.strip("\n").split("\n")
    sequence, timestamp, time_diff = parse_header(lines[0])
    if _UNDECODABLE.search(block):
        raise MalformedRecord(f"record {sequence} contains bytes that are not valid UTF-8")
    body = "\n".join(lines[1:])
    if not body.strip():
        raise MalformedRecord(f"record {sequence} has no payload")
    try:
        payload = json.loads(body)
    except json.JSONDecodeError as e:
        raise MalformedRecord(f"record {sequence} payload is not valid JSON: {e}") from e
    return LogEntry(sequence=sequence, timestamp=timestamp, time_diff=time_diff, payload=payload)


def summarize_entries(path: str, entries: list[LogEntry]) -> Optional[LogSummary]:
    if not entries:
        return None
    return LogSummary(
        path=path,
        total_entries=len(entries),
        first_timestamp=entries[0].timestamp,
        last_timestamp=entries[-1].timestamp,
    )

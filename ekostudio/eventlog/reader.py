from __future__ import annotations

import logging
import os
import re
from typing import List, Optional

from ekostudio.eventlog.errors import LogNotFound, MalformedRecord
from ekostudio.eventlog.format import LogEntry, LogSummary, parse_block, summarize_entries

logger = logging.getLogger(__name__)

# Lines holding only spaces/tabs count as blank separators.
_BLOCK_SEPARATOR = re.compile(r"\n[ \t]*\n")


def parse_log_text(text: str, *, source: str = "<text>") -> List[LogEntry]:
    """
    Parse log contents into entries in file order.

    Malformed blocks (bad header, missing or invalid JSON payload) are logged and
    skipped so that a truncated tail from a crashed writer does not hide the records
    before it.
    """
    normalized = (text or "").replace("\r\n", "\n")
    out: List[LogEntry] = []
    for block in _BLOCK_SEPARATOR.split(normalized):
        if not block.strip():
            continue
        try:
            out.append(parse_block(block))
        except MalformedRecord as e:
            logger.warning("skipping malformed record in %s: %s", source, e)
    return out


def read_log_file(path: str) -> List[LogEntry]:
    if not os.path.isfile(path):
        raise LogNotFound(f"Log file does not exist: {path}")
    with open(path, "r", encoding="utf-8", errors="surrogateescape") as f:
        return parse_log_text(f.read(), source=path)


def summarize_log_file(path: str) -> Optional[LogSummary]:
    return summarize_entries(path, read_log_file(path))


def validate_time_diffs(entries: List[LogEntry]) -> List[str]:
    problems: List[str] = []
    for prev, cur in zip(entries, entries[1:]):
        expected = cur.timestamp - prev.timestamp
        if cur.time_diff != expected:
            problems.append(f"record {cur.sequence}: time_diff={cur.time_diff} but timestamps differ by {expected}")
    if entries and entries[0].time_diff != 0:
        problems.append(f"record {entries[0].sequence}: first record has time_diff={entries[0].time_diff}")
    return problems


class EventLogReader:
    """Read-only view over one log file. Parses lazily and caches the result."""

    def __init__(self, path: str) -> None:
        if not os.path.isfile(path):
            raise LogNotFound(f"Log file does not exist: {path}")
        self.path = path
        self._entries: Optional[List[LogEntry]] = None

    def entries(self) -> List[LogEntry]:
        if self._entries is None:
            self._entries = read_log_file(self.path)
            for problem in validate_time_diffs(self._entries):
                logger.warning("inconsistent timing in %s: %s", self.path, problem)
        return self._entries

    def summary(self) -> Optional[LogSummary]:
        return summarize_entries(self.path, self.entries())

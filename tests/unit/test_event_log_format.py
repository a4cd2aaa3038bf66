from __future__ import annotations

import pytest

from ekostudio.eventlog.errors import MalformedRecord
from ekostudio.eventlog.format import (
    LogEntry,
    build_log_filename,
    format_record,
    is_log_filename,
    parse_block,
    parse_header,
    sanitize_label,
)


def test_sanitize_label_replaces_unsafe_chars() -> None:
    assert sanitize_label("openai/gpt-5.2 mini:v1") == "openai_gpt-5.2_mini_v1"
    assert sanitize_label("ok-name_1.0") == "ok-name_1.0"


def test_build_log_filename_is_prefixed_and_sortable() -> None:
    name = build_log_filename(1700000000123, "anthropic/model")
    assert name.startswith("eko-log-1700000000123-")
    assert name.endswith("-anthropic_model.log")
    assert is_log_filename(name)
    # <prefix>-<ms>-<YYYY_MM_DD_HH_MM_SS>-<label>.log
    stamp = name[len("eko-log-1700000000123-") :].split("-")[0]
    assert len(stamp.split("_")) == 6


def test_parse_header_requires_three_integers() -> None:
    assert parse_header("3-1700000000000-250") == (3, 1700000000000, 250)
    assert parse_header("4-1700000000000--5") == (4, 1700000000000, -5)
    for bad in ["1-2", "1-2-3-4", "a-2-3", "1--3", "", "0-1000-0", "01-1000-0"]:
        with pytest.raises(MalformedRecord):
            parse_header(bad)


def test_format_record_is_header_then_pretty_json_then_blank_line() -> None:
    text = format_record(LogEntry(sequence=1, timestamp=10, time_diff=0, payload={"type": "start", "n": [1, 2]}))
    lines = text.split("\n")
    assert lines[0] == "1-10-0"
    assert lines[1] == "{"
    assert text.endswith("}\n\n")


def test_parse_block_round_trips_unicode_payload() -> None:
    entry = LogEntry(sequence=2, timestamp=20, time_diff=10, payload={"text": "héllo\n\nworld", "ok": True})
    parsed = parse_block(format_record(entry))
    assert parsed == entry

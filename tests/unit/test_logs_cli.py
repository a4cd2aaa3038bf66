from __future__ import annotations

import json
from pathlib import Path

import pytest

from ekostudio.cli.logs import main


def _recording(d: Path) -> str:
    name = "eko-log-1700000000000-2023_11_14_22_13_20-m.log"
    d.mkdir(parents=True, exist_ok=True)
    (d / name).write_text('1-1000-0\n{\n  "type": "start"\n}\n\n2-1005-5\n{\n  "type": "finish"\n}\n\n', encoding="utf-8")
    return name


def test_cli_list_latest_and_summary(tmp_path: Path, capsys: pytest.CaptureFixture[str]) -> None:
    name = _recording(tmp_path)
    assert main(["--log-dir", str(tmp_path), "list"]) == 0
    assert capsys.readouterr().out.strip() == name

    assert main(["--log-dir", str(tmp_path), "latest"]) == 0
    assert capsys.readouterr().out.strip() == name

    assert main(["--log-dir", str(tmp_path), "summary"]) == 0
    summary = json.loads(capsys.readouterr().out)
    assert summary["totalMessages"] == 2 and summary["duration"] == 5


def test_cli_replay_prints_json_lines(tmp_path: Path, capsys: pytest.CaptureFixture[str]) -> None:
    name = _recording(tmp_path)
    assert main(["--log-dir", str(tmp_path), "replay", name, "--mode", "fixed", "--fixed-interval", "0"]) == 0
    lines = [json.loads(ln) for ln in capsys.readouterr().out.splitlines()]
    assert [ln["content"]["type"] for ln in lines] == ["start", "finish"]
    assert lines[1]["replay"]["progress"] == "2/2"


def test_cli_reports_missing_recordings(tmp_path: Path, capsys: pytest.CaptureFixture[str]) -> None:
    assert main(["--log-dir", str(tmp_path / "none"), "latest"]) == 1
    assert main(["--log-dir", str(tmp_path / "none"), "summary"]) == 2
    assert "error:" in capsys.readouterr().err


@pytest.mark.parametrize("flag", ["--speed", "--fixed-interval"])
def test_cli_replay_rejects_nan_pacing(tmp_path: Path, capsys: pytest.CaptureFixture[str], flag: str) -> None:
    name = _recording(tmp_path)
    assert main(["--log-dir", str(tmp_path), "replay", name, "--mode", "fixed", flag, "nan"]) == 2
    captured = capsys.readouterr()
    assert captured.out == ""
    assert "finite" in captured.err

from __future__ import annotations

import pytest

from ekostudio.settings import Settings


def test_fixed_interval_bounds_depend_on_environment() -> None:
    dev = Settings(environment="development").fixed_interval_bounds()
    prod = Settings(environment="production").fixed_interval_bounds()
    assert (dev.default, dev.min, dev.max) == (1.0, 0.0, 60000.0)
    assert (prod.default, prod.min, prod.max) == (30.0, 10.0, 60000.0)


def test_speed_bounds_defaults() -> None:
    sp = Settings().speed_bounds()
    assert (sp.default, sp.min, sp.max) == (1.0, 0.1, 100.0)


def test_env_prefix(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("EKO_LOG_DIR", "/tmp/recordings")
    monkeypatch.setenv("EKO_RECORDING_ENABLED", "false")
    monkeypatch.setenv("EKO_REPLAY_FIXED_INTERVAL_DEFAULT_MS", "250")
    s = Settings()
    assert s.log_dir == "/tmp/recordings"
    assert s.recording_enabled is False
    assert s.fixed_interval_bounds().default == 250.0

from __future__ import annotations

from dataclasses import dataclass

from pydantic_settings import BaseSettings, SettingsConfigDict


@dataclass(frozen=True)
class FixedIntervalConfig:
    default: float
    min: float
    max: float
    step: float = 1


@dataclass(frozen=True)
class SpeedConfig:
    default: float
    min: float
    max: float
    step: float = 0.1
    precision: int = 1


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_prefix="EKO_", extra="ignore")

    environment: str = "development"  # development|production

    # Recording / replay directory (one file per recorded run)
    log_dir: str = "agent-log"
    recording_enabled: bool = True
    # Used as the source label in recording filenames when a run does not name its model.
    default_model: str = "openai/gpt-5-nano"

    # External agent engine (streams NDJSON events back)
    agent_url: str | None = None
    agent_api_key: str | None = None
    agent_timeout_s: float = 600.0

    # Replay defaults and bounds
    replay_default_mode: str = "fixed"  # fixed|realtime
    replay_speed_default: float = 1.0
    replay_speed_min: float = 0.1
    replay_speed_max: float = 100.0
    # Fixed interval default/min depend on environment, see fixed_interval_bounds().
    replay_fixed_interval_default_ms: float | None = None
    replay_fixed_interval_max_ms: float = 60000.0

    max_query_chars: int = 1000
    sse_keepalive_s: float = 15.0

    @property
    def is_development(self) -> bool:
        return (self.environment or "").strip().lower() != "production"

    def fixed_interval_bounds(self) -> FixedIntervalConfig:
        dev = self.is_development
        default = self.replay_fixed_interval_default_ms
        if default is None:
            default = 1.0 if dev else 30.0
        return FixedIntervalConfig(
            default=float(default),
            min=0.0 if dev else 10.0,
            max=float(self.replay_fixed_interval_max_ms),
        )

    def speed_bounds(self) -> SpeedConfig:
        return SpeedConfig(
            default=float(self.replay_speed_default),
            min=float(self.replay_speed_min),
            max=float(self.replay_speed_max),
        )

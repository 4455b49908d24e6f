from __future__ import annotations

from pathlib import Path
from typing import Any, cast

from pydantic import BaseModel, ConfigDict, Field, model_validator

from metrics_service.contracts import TimerConfig


class TimerCfg(BaseModel):
    model_config = ConfigDict(extra="forbid")

    max_age_seconds: float | None = Field(default=None, gt=0)
    age_buckets: int | None = Field(default=None, ge=1)
    prune_aged_buckets: bool = False

    @model_validator(mode="after")
    def _prune_requires_aging(self) -> TimerCfg:
        if (
            self.prune_aged_buckets
            and self.max_age_seconds is None
            and self.age_buckets is None
        ):
            raise ValueError("prune_aged_buckets requires max_age_seconds or age_buckets")
        return self

    def to_timer_config(self) -> TimerConfig | None:
        if self.max_age_seconds is None and self.age_buckets is None:
            return None
        return TimerConfig(
            max_age_seconds=self.max_age_seconds,
            age_buckets=self.age_buckets,
            prune_aged_buckets=self.prune_aged_buckets,
        )


class ReportCfg(BaseModel):
    model_config = ConfigDict(extra="forbid")

    enabled: bool = False
    interval_sec: float = Field(default=60.0, gt=0)


class MetricsCfg(BaseModel):
    model_config = ConfigDict(extra="forbid")

    project_name: str | None = None
    static_labels: dict[str, str] = Field(default_factory=dict)
    timers: TimerCfg = Field(default_factory=TimerCfg)
    report: ReportCfg = Field(default_factory=ReportCfg)


class LoggingCfg(BaseModel):
    model_config = ConfigDict(extra="forbid")

    level: str = "INFO"
    json_format: bool = False
    log_dir: Path | None = None


class Config(BaseModel):
    model_config = ConfigDict(extra="forbid")

    metrics: MetricsCfg = Field(default_factory=MetricsCfg)
    logging: LoggingCfg = Field(default_factory=LoggingCfg)


def _read_yaml(path: Path) -> dict[str, Any]:
    """Safe YAML read; returns {} if file missing/empty."""
    import yaml  # lazy import

    if not path.exists():
        return {}
    text = path.read_text(encoding="utf-8")
    data = yaml.safe_load(text)
    return data or {}


def load_config(base_dir: str | Path) -> Config:
    """Load config from ./config/metrics.yaml under ``base_dir``."""

    base_path = Path(base_dir)
    metrics_yaml = base_path / "config" / "metrics.yaml"
    data = _read_yaml(metrics_yaml)
    if not data:
        msg = f"Missing or empty config file: {metrics_yaml}"
        raise FileNotFoundError(msg)

    return cast(Config, Config.model_validate(data))

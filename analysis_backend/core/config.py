from __future__ import annotations

import os
from pathlib import Path
from typing import Literal, Mapping

import yaml
from pydantic import BaseModel, Field

CONFIG_DIR = Path(__file__).resolve().parent.parent / "config"
DEFAULT_CONFIG = CONFIG_DIR / "analysis.yaml"
ENV_PREFIX = "ANALYSIS_"
OFFLINE_BROKER_URL = "http://localhost:6001"
LOCAL_RESULTS_URL = "http://localhost:8000/api/regional/results"


class AnalysisSettings(BaseModel):
    offline: bool = True
    broker_url: str = OFFLINE_BROKER_URL
    broker_timeout_seconds: float = 30.0

    queue_backend: Literal["memory", "sqs"] = "memory"
    results_queue: str = "analysis-results"
    results_url: str = LOCAL_RESULTS_URL
    aws_region: str | None = None

    storage_backend: Literal["local", "s3"] = "local"
    storage_root: Path = Path("analysis-data")
    bundle_bucket: str | None = None
    results_bucket: str | None = None

    documents_path: Path | None = None

    submit_workers: int = Field(default=2, ge=1)
    submit_queue_size: int = Field(default=512, ge=1)

    listener_max_messages: int = Field(default=10, ge=1)
    listener_wait_seconds: float = Field(default=20.0, ge=0)
    listener_backoff_initial: float = Field(default=1.0, gt=0)
    listener_backoff_max: float = Field(default=60.0, gt=0)

    retention_seconds: float = Field(default=3600.0, ge=0)
    stall_timeout_seconds: float | None = None
    sweep_interval_seconds: float = Field(default=60.0, gt=0)

    log_level: str = "INFO"
    cors_origins: list[str] = Field(default_factory=list)

    @property
    def effective_broker_url(self) -> str:
        return OFFLINE_BROKER_URL if self.offline else self.broker_url.rstrip("/")


def _load_yaml(path: Path) -> dict:
    if not path.exists():
        return {}
    with path.open("r", encoding="utf-8") as fp:
        return yaml.safe_load(fp) or {}


def _env_overrides(env: Mapping[str, str]) -> dict[str, object]:
    overrides: dict[str, object] = {}
    for name, field in AnalysisSettings.model_fields.items():
        raw = (env.get(f"{ENV_PREFIX}{name.upper()}") or "").strip()
        if not raw:
            continue
        if name == "cors_origins":
            overrides[name] = [origin.strip() for origin in raw.split(",") if origin.strip()]
        elif raw.lower() in {"none", "null"} and field.default is None:
            overrides[name] = None
        else:
            overrides[name] = raw
    return overrides


def load_settings(path: Path | None = None, env: Mapping[str, str] | None = None) -> AnalysisSettings:
    """Read the YAML defaults and apply ``ANALYSIS_*`` environment overrides."""

    values = _load_yaml(path or DEFAULT_CONFIG)
    values.update(_env_overrides(os.environ if env is None else env))
    return AnalysisSettings(**values)

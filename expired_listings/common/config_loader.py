"""Configuration loading and validation."""

from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Mapping

from expired_listings.common.errors import ConfigError
from expired_listings.common.fs import read_yaml
from expired_listings.common.http import HttpClient, RetryConfig, TimeoutConfig
from expired_listings.common.schema import validate_pipeline_config

CONFIG_FILENAME = "pipeline.yml"
SECRET_ENV_VARS = {
    "tracerfy_api_key": "TRACERFY_API_KEY",
    "anthropic_api_key": "ANTHROPIC_API_KEY",
    "slack_webhook_url": "SLACK_WEBHOOK_URL",
}


@dataclass(frozen=True)
class PipelineConfig:
    input: dict
    skip_trace: dict
    analysis: dict
    notification: dict
    storage: dict
    http: dict
    tracerfy_api_key: str | None = None
    anthropic_api_key: str | None = None
    slack_webhook_url: str | None = None

    @property
    def skip_trace_enabled(self) -> bool:
        return bool(self.tracerfy_api_key)

    def build_http_client(self) -> HttpClient:
        return HttpClient(
            timeout=TimeoutConfig(
                connect=float(self.http["connect_timeout"]),
                read=float(self.http["read_timeout"]),
            ),
            retry=RetryConfig(max_attempts=int(self.http["max_attempts"])),
            rate_limits={str(k): float(v) for k, v in self.http["rate_limits"].items()},
        )


def _deep_merge(base: Any, overlay: Any) -> Any:
    if isinstance(base, dict) and isinstance(overlay, dict):
        merged = dict(base)
        for key, value in overlay.items():
            if key in merged:
                merged[key] = _deep_merge(merged[key], value)
            else:
                merged[key] = value
        return merged
    return overlay


def _load_yaml_with_overlay(path: Path, overlay_path: Path | None) -> dict:
    if not path.exists():
        raise ConfigError(f"Config file not found: {path}")
    base = read_yaml(path)
    if overlay_path is None or not overlay_path.exists():
        return base
    overlay = read_yaml(overlay_path)
    return _deep_merge(base, overlay)


def _secret(environ: Mapping[str, str], name: str) -> str | None:
    value = (environ.get(name) or "").strip()
    return value or None


def load_pipeline_config(
    config_dir: Path,
    *,
    allow_unknown: bool = False,
    overlay_config_dir: Path | None = None,
    environ: Mapping[str, str] | None = None,
) -> PipelineConfig:
    overlay_path = overlay_config_dir / CONFIG_FILENAME if overlay_config_dir is not None else None
    cfg = validate_pipeline_config(
        _load_yaml_with_overlay(config_dir / CONFIG_FILENAME, overlay_path),
        allow_unknown=allow_unknown,
    )
    env = os.environ if environ is None else environ
    secrets = {field: _secret(env, var) for field, var in SECRET_ENV_VARS.items()}
    return PipelineConfig(
        input=cfg["input"],
        skip_trace=cfg["skip_trace"],
        analysis=cfg["analysis"],
        notification=cfg["notification"],
        storage=cfg["storage"],
        http=cfg["http"],
        **secrets,
    )

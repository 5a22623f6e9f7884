"""Minimal strict schemas for YAML config validation."""

from __future__ import annotations

from expired_listings.common.errors import ConfigError

SECTION_KEYS = {
    "input": {"root", "prefix", "state"},
    "skip_trace": {"base_url", "poll_interval_seconds", "max_poll_attempts"},
    "analysis": {
        "endpoint",
        "model",
        "max_tokens",
        "anthropic_version",
        "deep_analysis_limit",
        "min_delay_seconds",
    },
    "notification": {"top_n", "report_url"},
    "storage": {"results_path", "topic_id"},
    "http": {"connect_timeout", "read_timeout", "max_attempts", "rate_limits"},
}

OPTIONAL_KEYS = {
    "analysis": {"agent_name", "market"},
}


def _assert_required_keys(obj: dict, required: set[str], ctx: str) -> None:
    missing = required - set(obj)
    if missing:
        missing_str = ", ".join(sorted(missing))
        raise ConfigError(f"Missing keys in {ctx}: {missing_str}")


def _assert_no_unknown_keys(obj: dict, known: set[str], ctx: str, allow_unknown: bool) -> None:
    if allow_unknown:
        return
    unknown = set(obj) - known
    if unknown:
        unknown_str = ", ".join(sorted(unknown))
        raise ConfigError(f"Unknown keys in {ctx}: {unknown_str}")


def _assert_positive(value, ctx: str, *, allow_zero: bool = False) -> None:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise ConfigError(f"{ctx} must be a number")
    if value < 0 or (value == 0 and not allow_zero):
        raise ConfigError(f"{ctx} must be {'non-negative' if allow_zero else 'positive'}")


def validate_pipeline_config(cfg: dict, *, allow_unknown: bool = False) -> dict:
    if not isinstance(cfg, dict):
        raise ConfigError("pipeline config must be a mapping")

    _assert_required_keys(cfg, set(SECTION_KEYS), "pipeline config")
    _assert_no_unknown_keys(cfg, set(SECTION_KEYS), "pipeline config", allow_unknown)

    for section, required in SECTION_KEYS.items():
        body = cfg[section]
        if not isinstance(body, dict):
            raise ConfigError(f"{section} must be a mapping")
        _assert_required_keys(body, required, section)
        known = required | OPTIONAL_KEYS.get(section, set())
        _assert_no_unknown_keys(body, known, section, allow_unknown)

    _assert_positive(cfg["skip_trace"]["poll_interval_seconds"], "skip_trace.poll_interval_seconds", allow_zero=True)
    _assert_positive(cfg["skip_trace"]["max_poll_attempts"], "skip_trace.max_poll_attempts")
    _assert_positive(cfg["analysis"]["deep_analysis_limit"], "analysis.deep_analysis_limit", allow_zero=True)
    _assert_positive(cfg["analysis"]["min_delay_seconds"], "analysis.min_delay_seconds", allow_zero=True)
    _assert_positive(cfg["notification"]["top_n"], "notification.top_n")
    _assert_positive(cfg["http"]["max_attempts"], "http.max_attempts")

    if not str(cfg["input"]["prefix"]).endswith("/"):
        raise ConfigError("input.prefix must end with '/'")
    if not isinstance(cfg["http"]["rate_limits"], dict):
        raise ConfigError("http.rate_limits must be a mapping")

    return cfg

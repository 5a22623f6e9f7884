import copy
from pathlib import Path

import pytest

from expired_listings.common.errors import ConfigError
from expired_listings.common.fs import read_yaml
from expired_listings.common.schema import validate_pipeline_config

BASE = read_yaml(Path(__file__).resolve().parents[2] / "config" / "pipeline.yml")


def _cfg(**section_overrides) -> dict:
    cfg = copy.deepcopy(BASE)
    for section, values in section_overrides.items():
        cfg[section].update(values)
    return cfg


def test_repo_config_is_valid():
    assert validate_pipeline_config(_cfg()) == BASE


def test_missing_section_or_key_raises():
    cfg = _cfg()
    del cfg["storage"]
    with pytest.raises(ConfigError, match="storage"):
        validate_pipeline_config(cfg)

    cfg = _cfg()
    del cfg["skip_trace"]["max_poll_attempts"]
    with pytest.raises(ConfigError, match="max_poll_attempts"):
        validate_pipeline_config(cfg)


def test_unknown_keys_rejected_unless_allowed():
    cfg = _cfg(notification={"channel": "#leads"})
    with pytest.raises(ConfigError, match="channel"):
        validate_pipeline_config(cfg)
    assert validate_pipeline_config(cfg, allow_unknown=True)["notification"]["channel"] == "#leads"


@pytest.mark.parametrize(
    "overrides",
    [
        {"skip_trace": {"max_poll_attempts": 0}},
        {"analysis": {"min_delay_seconds": -1}},
        {"notification": {"top_n": "ten"}},
        {"input": {"prefix": "expired-listings"}},
        {"http": {"rate_limits": [1, 2]}},
    ],
)
def test_invalid_values_raise(overrides):
    with pytest.raises(ConfigError):
        validate_pipeline_config(_cfg(**overrides))


def test_non_mapping_config_raises():
    with pytest.raises(ConfigError):
        validate_pipeline_config(None)

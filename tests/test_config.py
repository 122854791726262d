"""Tests for envdock.config: engine config loading and retry policy overrides."""

import pytest

from envdock.config import (
    LETSENCRYPT_PROD_URL,
    LETSENCRYPT_STAGING_URL,
    EngineConfig,
    RetryConfig,
    deep_merge,
    load_engine_config,
)
from envdock.errors import EngineError, ErrorTag
from envdock.retry import RetryPolicy


def test_deep_merge_nested():
    base = {"retry": {"dns_check": {"attempts": 60, "delay_ms": 3000}}, "dry_run": False}
    override = {"retry": {"dns_check": {"attempts": 5}}, "dry_run": True}
    assert deep_merge(base, override) == {"retry": {"dns_check": {"attempts": 5, "delay_ms": 3000}}, "dry_run": True}


def test_retry_defaults():
    retry = RetryConfig()
    assert retry.dns_check == RetryPolicy("fixed", 3000, 60)
    assert retry.domain_check == RetryPolicy("fibonacci", 3000, 10)
    assert retry.pod_readiness.kind == "fixed"


def test_retry_override_keeps_other_fields():
    retry = RetryConfig.from_dict({"dns_check": {"attempts": 2}})
    assert retry.dns_check == RetryPolicy("fixed", 3000, 2)
    assert retry.load_balancer == RetryPolicy("fibonacci", 3000, 10)


def test_retry_unknown_policy_rejected():
    with pytest.raises(EngineError) as exc_info:
        RetryConfig.from_dict({"dns_chek": {"attempts": 2}})
    assert exc_info.value.tag is ErrorTag.CONFIG


def test_load_engine_config(write_yaml, tmp_path):
    path = write_yaml(
        "engine.yaml",
        {
            "lib_root_dir": str(tmp_path / "lib"),
            "workspace_root_dir": str(tmp_path / "ws"),
            "execution_id": "abc",
            "is_test_cluster": True,
            "retry": {"pod_readiness": {"attempts": 3, "delay_ms": 100}},
        },
    )
    config = load_engine_config(path, overrides={"dry_run": True})
    assert config.dry_run is True
    assert config.execution_id == "abc"
    assert config.workspace_dir == str(tmp_path / "ws" / "abc")
    assert config.acme_server_url == LETSENCRYPT_STAGING_URL
    assert config.retry.pod_readiness == RetryPolicy("fixed", 100, 3)


def test_load_engine_config_from_overrides_only(tmp_path):
    config = load_engine_config(overrides={"lib_root_dir": "lib", "workspace_root_dir": str(tmp_path)})
    assert config.acme_server_url == LETSENCRYPT_PROD_URL
    assert len(config.execution_id) == 12


def test_load_engine_config_missing_file(tmp_path):
    with pytest.raises(EngineError, match="Config file not found"):
        load_engine_config(str(tmp_path / "nope.yaml"))


def test_engine_config_requires_paths():
    with pytest.raises(EngineError, match="lib_root_dir"):
        EngineConfig.from_dict({"workspace_root_dir": "/tmp"})


@pytest.mark.parametrize(
    "policy, expected",
    [
        ({"kind": "exponential"}, "unknown kind 'exponential'"),
        ({"attempts": 0}, "attempts must be at least 1"),
        ({"delay_ms": -1}, "delay_ms must not be negative"),
        ({"attempts": "many"}, "invalid literal"),
    ],
)
def test_invalid_retry_policy_rejected_at_load(policy, expected, tmp_path):
    overrides = {"lib_root_dir": "lib", "workspace_root_dir": str(tmp_path), "retry": {"pod_readiness": policy}}
    with pytest.raises(EngineError, match=expected) as exc_info:
        load_engine_config(overrides=overrides)
    assert exc_info.value.tag is ErrorTag.CONFIG
    assert "pod_readiness" in str(exc_info.value)


def test_retry_policy_must_be_a_mapping():
    with pytest.raises(EngineError, match="expected a mapping"):
        RetryConfig.from_dict({"dns_check": 5})


def test_retry_policy_from_dict_validates():
    assert RetryPolicy.from_dict({"kind": "fibonacci", "delay_ms": 0, "attempts": 1}) == RetryPolicy("fibonacci", 0, 1)
    with pytest.raises(ValueError, match="unknown kind"):
        RetryPolicy.from_dict({"kind": "linear"})

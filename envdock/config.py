"""Engine configuration: paths, execution flags and tunable retry policies."""

import os
import uuid
from dataclasses import dataclass, field, fields

import yaml

from envdock.errors import EngineError
from envdock.retry import RetryPolicy

LETSENCRYPT_PROD_URL = "https://acme-v02.api.letsencrypt.org/directory"
LETSENCRYPT_STAGING_URL = "https://acme-staging-v02.api.letsencrypt.org/directory"


def deep_merge(base, override):
    """Recursive dict merge. Override wins for scalars."""
    result = base.copy()
    for key, value in override.items():
        if key in result and isinstance(result[key], dict) and isinstance(value, dict):
            result[key] = deep_merge(result[key], value)
        else:
            result[key] = value
    return result


def _policy(kind, delay_ms, attempts):
    return field(default_factory=lambda: RetryPolicy(kind=kind, delay_ms=delay_ms, attempts=attempts))


@dataclass
class RetryConfig:
    """Retry policy per class of flaky operation."""

    dns_check: RetryPolicy = _policy("fixed", 3000, 60)
    domain_check: RetryPolicy = _policy("fibonacci", 3000, 10)
    load_balancer: RetryPolicy = _policy("fibonacci", 3000, 10)
    pod_readiness: RetryPolicy = _policy("fixed", 10000, 60)
    pods_terminated: RetryPolicy = _policy("fixed", 10000, 60)
    terraform_init: RetryPolicy = _policy("fixed", 3000, 5)
    terraform_destroy: RetryPolicy = _policy("fixed", 3000, 5)

    @classmethod
    def from_dict(cls, d: dict) -> "RetryConfig":
        defaults = cls()
        unknown = set(d) - {f.name for f in fields(cls)}
        if unknown:
            raise EngineError.new_config_error(f"Unknown retry policies: {', '.join(sorted(unknown))}")
        kwargs = {}
        for f in fields(cls):
            base = getattr(defaults, f.name)
            override = d.get(f.name, {})
            if not isinstance(override, dict):
                raise EngineError.new_config_error(f"Invalid retry policy '{f.name}': expected a mapping")
            try:
                kwargs[f.name] = RetryPolicy.from_dict(
                    deep_merge({"kind": base.kind, "delay_ms": base.delay_ms, "attempts": base.attempts}, override)
                )
            except (TypeError, ValueError) as e:
                raise EngineError.new_config_error(f"Invalid retry policy '{f.name}': {e}") from e
        return cls(**kwargs)


@dataclass
class EngineConfig:
    """Settings for one engine execution."""

    lib_root_dir: str
    workspace_root_dir: str
    execution_id: str = field(default_factory=lambda: uuid.uuid4().hex[:12])
    dry_run: bool = False
    resource_expiration_in_seconds: int | None = None
    progress_interval_seconds: float = 10.0
    helm_timeout_seconds: int = 600
    terraform_plugin_cache_dir: str | None = None
    is_test_cluster: bool = False
    retry: RetryConfig = field(default_factory=RetryConfig)

    @property
    def workspace_dir(self) -> str:
        """Per-execution workspace where templates are rendered."""
        return os.path.join(self.workspace_root_dir, self.execution_id)

    @property
    def acme_server_url(self) -> str:
        return LETSENCRYPT_STAGING_URL if self.is_test_cluster else LETSENCRYPT_PROD_URL

    @classmethod
    def from_dict(cls, d: dict) -> "EngineConfig":
        for key in ("lib_root_dir", "workspace_root_dir"):
            if not d.get(key):
                raise EngineError.new_config_error(f"'{key}' is required")
        kwargs = {
            "lib_root_dir": os.path.expanduser(d["lib_root_dir"]),
            "workspace_root_dir": os.path.expanduser(d["workspace_root_dir"]),
            "dry_run": bool(d.get("dry_run", False)),
            "resource_expiration_in_seconds": d.get("resource_expiration_in_seconds"),
            "progress_interval_seconds": float(d.get("progress_interval_seconds", 10.0)),
            "helm_timeout_seconds": int(d.get("helm_timeout_seconds", 600)),
            "terraform_plugin_cache_dir": d.get("terraform_plugin_cache_dir"),
            "is_test_cluster": bool(d.get("is_test_cluster", False)),
            "retry": RetryConfig.from_dict(d.get("retry", {})),
        }
        if d.get("execution_id"):
            kwargs["execution_id"] = str(d["execution_id"])
        return cls(**kwargs)


def load_engine_config(path=None, overrides=None) -> EngineConfig:
    """Load engine config from a YAML file, with optional dict overrides on top."""
    raw = {}
    if path is not None:
        if not os.path.isfile(path):
            raise EngineError.new_config_error(f"Config file not found: {path}")
        with open(path) as f:
            raw = yaml.safe_load(f) or {}
    if overrides:
        raw = deep_merge(raw, overrides)
    return EngineConfig.from_dict(raw)

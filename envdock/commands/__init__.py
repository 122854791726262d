"""Shared CLI helpers: cluster and config loading, target construction."""

import os

import yaml

from envdock.config import load_engine_config
from envdock.errors import EngineError
from envdock.models import Cluster
from envdock.progress import ListenersHelper, LoggingProgressListener
from envdock.target import DeploymentTarget, Executors, TargetKind


def add_common_args(parser):
    """Arguments every command needs to reach a cluster."""
    parser.add_argument("--cluster", required=True, help="Path to cluster YAML file")
    parser.add_argument("--config", default=None, help="Path to engine config YAML file")
    parser.add_argument("--lib-dir", default=None, help="Template library root (overrides config)")
    parser.add_argument("--workspace-dir", default=None, help="Workspace root for rendered files (overrides config)")
    parser.add_argument("--dry-run", action="store_true", help="Print commands without executing")
    parser.add_argument("--verbose", "-v", action="store_true", help="Enable debug logging")


def load_cluster(path) -> Cluster:
    """Load a cluster description from a YAML file."""
    if not os.path.isfile(path):
        raise EngineError.new_config_error(f"Cluster file not found: {path}")
    with open(path) as f:
        raw = yaml.safe_load(f) or {}
    try:
        return Cluster.from_dict(raw)
    except (KeyError, TypeError, ValueError) as e:
        raise EngineError.new_config_error(f"Invalid cluster file {path}: {e}") from e


def load_config_from_args(args):
    overrides = {}
    if args.lib_dir:
        overrides["lib_root_dir"] = args.lib_dir
    if args.workspace_dir:
        overrides["workspace_root_dir"] = args.workspace_dir
    if args.dry_run:
        overrides["dry_run"] = True
    return load_engine_config(args.config, overrides)


def build_target(cluster, environment, config) -> DeploymentTarget:
    """Self-hosted target logging its progress; services refine it per kind."""
    return DeploymentTarget(
        kind=TargetKind.SELF_HOSTED,
        cluster=cluster,
        environment=environment,
        config=config,
        executors=Executors.for_cluster(cluster, config),
        listeners=ListenersHelper([LoggingProgressListener()]),
    )

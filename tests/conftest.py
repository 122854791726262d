"""Shared pytest fixtures for all test modules."""

import json
import os
import subprocess
import sys

import pytest
import yaml

from envdock.config import EngineConfig, RetryConfig
from envdock.environment import Environment
from envdock.models import AwsCredentials, Cluster, EnvironmentKind
from envdock.progress import ListenersHelper, ProgressListener
from envdock.retry import RetryPolicy
from envdock.target import DeploymentTarget, Executors, TargetKind

PROJECT_ROOT = os.path.normpath(os.path.join(os.path.dirname(__file__), ".."))


@pytest.fixture(scope="session")
def project_root():
    """Absolute path to the project root directory."""
    return PROJECT_ROOT


@pytest.fixture(scope="session")
def run_cli(project_root):
    """Return a callable that invokes the envdock CLI as a subprocess."""

    def _run(*args):
        result = subprocess.run(
            [sys.executable, "-m", "envdock.envdock", *args],
            capture_output=True,
            text=True,
            cwd=project_root,
        )
        return result.returncode, result.stdout, result.stderr

    return _run


# ── Fake command runner ─────────────────────────────────────────────


def pods_json(*pods):
    """`kubectl get pods -o json` payload; each pod is (name, ready) or a dict."""
    items = []
    for pod in pods:
        if isinstance(pod, dict):
            items.append(pod)
            continue
        name, ready = pod
        items.append(
            {
                "metadata": {"name": name},
                "status": {"phase": "Running", "containerStatuses": [{"ready": ready, "restartCount": 0, "state": {}}]},
            }
        )
    return json.dumps({"items": items})


def history_json(*rows):
    """`helm history -o json` payload; each row is (revision, status)."""
    return json.dumps([{"revision": rev, "status": status, "chart": "chart-0.1.0"} for rev, status in rows])


class FakeRunner:
    """Async stand-in for run_shell_cmd that records commands and plays scripted answers.

    Rules match when their needle is a substring of the space-joined command.
    The most recently added matching rule wins; a rule with ``times`` set is
    used that many times then ignored. Unmatched commands succeed with empty
    output.
    """

    def __init__(self):
        self.calls = []
        self.rules = []

    def on(self, needle, rc=0, stdout="", stderr="", times=None):
        self.rules.insert(0, {"needle": needle, "result": (rc, stdout, stderr), "times": times})
        return self

    async def __call__(self, command, env=None, cwd=None, timeout=600, dry_run=False):
        line = " ".join(command)
        self.calls.append({"command": line, "env": dict(env or []), "cwd": cwd, "dry_run": dry_run})
        if dry_run:
            return 0, "", ""
        for rule in self.rules:
            if rule["needle"] not in line:
                continue
            if rule["times"] is not None:
                if rule["times"] == 0:
                    continue
                rule["times"] -= 1
            return rule["result"]
        return 0, "", ""

    def commands(self, needle=""):
        return [c["command"] for c in self.calls if needle in c["command"]]


@pytest.fixture
def runner():
    """FakeRunner answering like a healthy cluster: releases deployed, pods ready."""
    fake = FakeRunner()
    fake.on("helm history", stdout=history_json((1, "deployed")))
    fake.on("get pods", stdout=pods_json(("pod-0", True)))
    return fake


class RecordingListener(ProgressListener):
    def __init__(self):
        self.events = []

    def notify(self, event, info):
        self.events.append((event, info))

    def messages(self, event=None):
        return [info.message for e, info in self.events if event is None or e is event]


@pytest.fixture
def listener():
    return RecordingListener()


async def no_sleep(seconds):
    pass


# ── Model fixtures ──────────────────────────────────────────────────


def _write(path, content):
    os.makedirs(os.path.dirname(path), exist_ok=True)
    with open(path, "w") as f:
        f.write(content)


@pytest.fixture
def lib_dir(tmp_path):
    """Minimal template library: charts, value overrides and terraform modules."""
    root = tmp_path / "lib"
    for chart in ("q-application", "q-container"):
        _write(str(root / "common/charts" / chart / "Chart.yaml"), f"name: {chart}\nversion: 0.1.0\n")
        _write(
            str(root / "common/charts" / chart / "values.j2.yaml"),
            "image: {{ image_name_with_tag }}\nreplicas: {{ total_instances }}\nselector: {{ selector }}\n",
        )
    _write(str(root / "common/charts/q-ingress-tls/Chart.yaml"), "name: q-ingress-tls\nversion: 0.1.0\n")
    _write(
        str(root / "common/charts/q-ingress-tls/values.j2.yaml"),
        "domain: {{ router_default_domain }}\nacme: {{ spec_acme_server }}\n",
    )
    _write(str(root / "common/charts/external-name-svc/Chart.yaml"), "name: external-name-svc\nversion: 0.1.0\n")
    _write(
        str(root / "common/charts/external-name-svc/values.j2.yaml"),
        "name: {{ database_name }}\nexternalName: {{ fqdn }}\n",
    )
    _write(str(root / "common/services/postgresql/Chart.yaml"), "name: postgresql\nversion: 0.1.0\n")
    _write(str(root / "common/services/postgresql/values.j2.yaml"), "port: {{ database_port }}\n")
    _write(str(root / "aws/chart_values/postgresql/override.j2.yaml"), "disk: {{ database_disk_size_in_gib }}Gi\n")
    _write(str(root / "aws/services/common/backend.j2.tf"), 'key = "{{ tfstate_name }}"\n')
    _write(str(root / "aws/services/postgresql/main.j2.tf"), 'identifier = "{{ database_name }}"\n')
    return str(root)


@pytest.fixture
def config(tmp_path, lib_dir):
    """EngineConfig with single-attempt, zero-delay retry policies."""
    quick = RetryPolicy("fixed", 0, 1)
    return EngineConfig(
        lib_root_dir=lib_dir,
        workspace_root_dir=str(tmp_path / "workspace"),
        execution_id="exec-1",
        retry=RetryConfig(
            dns_check=quick,
            domain_check=quick,
            load_balancer=quick,
            pod_readiness=RetryPolicy("fixed", 0, 3),
            pods_terminated=RetryPolicy("fixed", 0, 3),
            terraform_init=quick,
            terraform_destroy=quick,
        ),
    )


@pytest.fixture
def cluster():
    return Cluster(
        id="c1",
        name="test-cluster",
        region="us-east-2",
        kubeconfig_path="/tmp/kubeconfig",
        credentials=AwsCredentials("AKIATESTACCESSKEY", "test-secret-access-key-value", "us-east-2"),
        acme_email="ops@example.com",
    )


@pytest.fixture
def make_environment():
    def _make(kind=EnvironmentKind.DEVELOPMENT, **services):
        return Environment(id="env1", project_id="proj1", organization_id="org1", kind=kind, **services)

    return _make


@pytest.fixture
def make_target(cluster, config, runner, listener):
    """Return a factory building a self-hosted target over the fake runner."""

    def _make(environment, kind=TargetKind.SELF_HOSTED, resolve_host=None, should_abort=None):
        target = DeploymentTarget(
            kind=kind,
            cluster=cluster,
            environment=environment,
            config=config,
            executors=Executors.for_cluster(cluster, config, run_cmd=runner),
            listeners=ListenersHelper([listener]),
            sleep=no_sleep,
        )
        if resolve_host is not None:
            target.resolve_host = resolve_host
        if should_abort is not None:
            target.should_abort = should_abort
        return target

    return _make


@pytest.fixture
def write_yaml(tmp_path):
    def _write_yaml(name, data):
        path = tmp_path / name
        with open(path, "w") as f:
            yaml.dump(data, f)
        return str(path)

    return _write_yaml

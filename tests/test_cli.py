"""CLI tests: argument handling and dry-run flows that need no cluster tooling."""

import pytest


@pytest.fixture
def cluster_file(write_yaml, tmp_path):
    return write_yaml(
        "cluster.yaml",
        {
            "id": "c1",
            "name": "test-cluster",
            "region": "us-east-2",
            "kubeconfig_path": str(tmp_path / "kubeconfig"),
            "credentials": {
                "provider": "aws",
                "access_key_id": "AKIACLITESTKEY0001",
                "secret_access_key": "cli-secret-access-key-value",
                "region": "us-east-2",
            },
        },
    )


@pytest.fixture
def environment_file(write_yaml):
    return write_yaml(
        "environment.yaml",
        {
            "id": "e1",
            "project_id": "p1",
            "organization_id": "o1",
            "applications": [{"id": "a1", "name": "web", "image": "acme/web", "tag": "2.0"}],
        },
    )


def test_help(run_cli):
    rc, stdout, _ = run_cli("--help")
    assert rc == 0
    for command in ("deploy", "pause", "delete", "infra"):
        assert command in stdout


def test_deploy_requires_environment(run_cli):
    rc, _, stderr = run_cli("deploy", "--cluster", "cluster.yaml")
    assert rc != 0
    assert "--environment" in stderr


def test_missing_cluster_file(run_cli, environment_file, lib_dir, tmp_path):
    rc, stdout, _ = run_cli(
        "deploy",
        "--environment", environment_file,
        "--cluster", str(tmp_path / "missing.yaml"),
        "--lib-dir", lib_dir,
        "--workspace-dir", str(tmp_path / "ws"),
    )
    assert rc == 1
    assert "Cluster file not found" in stdout


def test_deploy_dry_run(run_cli, cluster_file, environment_file, lib_dir, tmp_path):
    rc, stdout, _ = run_cli(
        "deploy",
        "--environment", environment_file,
        "--cluster", cluster_file,
        "--lib-dir", lib_dir,
        "--workspace-dir", str(tmp_path / "ws"),
        "--dry-run",
    )
    assert rc == 0, stdout
    assert "[dry-run] create namespace zp1-ze1" in stdout
    assert "[dry-run] helm upgrade --install application-web-a1" in stdout
    assert "Deploy of environment e1 done" in stdout


def test_infra_dry_run(run_cli, cluster_file, lib_dir, tmp_path):
    rc, stdout, _ = run_cli(
        "infra",
        "--cluster", cluster_file,
        "--lib-dir", lib_dir,
        "--workspace-dir", str(tmp_path / "ws"),
        "--metrics-history",
        "--dry-run",
    )
    assert rc == 0, stdout
    assert "[dry-run] level 2: prometheus-operator" in stdout
    assert "[dry-run] level 6: cert-manager-configs, cluster-agent, engine-agent, grafana" in stdout

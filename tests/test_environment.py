"""Tests for envdock.environment: service ordering, abort, compensation and sizing."""

import logging

import pytest

from conftest import pods_json
from envdock.environment import Environment, EnvironmentDeployment, deploy_environment, load_environment, pause_environment
from envdock.errors import EngineError, ErrorTag
from envdock.models import Action, DatabaseMode, EnvironmentKind, EnvironmentResources
from envdock.services import Application, Container, Database, Router


def _services():
    return dict(
        databases=[Database(id="d1", long_id="d1", name="main", action=Action.CREATE, mode=DatabaseMode.CONTAINER)],
        containers=[Container(id="c1", long_id="c1", name="worker", image="w", action=Action.CREATE)],
        applications=[Application(id="a1", long_id="a1", name="web", image="acme/web", action=Action.CREATE)],
        routers=[Router(id="r1", long_id="r1", name="edge", action=Action.CREATE)],
    )


def _release(command):
    return command.split()[3]


# ── ordering ────────────────────────────────────────────────────────


async def test_create_order(make_environment, make_target, runner):
    environment = make_environment(**_services())

    deployment = await deploy_environment(environment, make_target(environment))

    releases = [_release(c) for c in runner.commands("helm upgrade --install")]
    assert releases == ["postgresql-d1", "container-worker-c1", "application-web-a1", "router-r1"]
    assert deployment.deployed_services == ["d1", "c1", "a1", "r1"]


async def test_pause_order(make_environment, make_target, runner):
    runner.on("get pods", stdout=pods_json())
    environment = make_environment(**_services())

    await pause_environment(environment, make_target(environment))

    steps = [c for c in runner.commands() if "helm uninstall" in c or " scale " in c]
    assert "helm uninstall router-r1" in steps[0]
    assert "-l appId=a1" in steps[1]
    assert "-l appId=c1" in steps[2]
    assert "scale statefulset" in steps[3] and "-l databaseId=d1" in steps[3]


async def test_nothing_action_is_skipped(make_environment, make_target, runner):
    app = Application(id="a1", long_id="a1", name="web", image="acme/web", action=Action.NOTHING)
    environment = make_environment(applications=[app])

    deployment = await deploy_environment(environment, make_target(environment))

    assert runner.commands("helm") == []
    assert deployment.deployed_services == []


async def test_namespace_creation_is_idempotent(make_environment, make_target, runner):
    runner.on("get namespace", rc=1, stderr="Error from server (NotFound)", times=1)
    environment = make_environment()
    target = make_target(environment)

    await deploy_environment(environment, target)
    await deploy_environment(environment, target)

    assert len(runner.commands("create namespace")) == 1
    assert len(runner.commands("label namespace")) == 2


# ── abort and failure ───────────────────────────────────────────────


async def test_abort_between_services(make_environment, make_target, runner):
    apps = [
        Application(id="a1", long_id="a1", name="one", image="x", action=Action.CREATE),
        Application(id="a2", long_id="a2", name="two", image="x", action=Action.CREATE),
    ]
    environment = make_environment(applications=apps)
    target = make_target(environment, should_abort=lambda: len(runner.commands("helm upgrade")) >= 1)

    with pytest.raises(EngineError) as exc_info:
        await deploy_environment(environment, target)

    assert exc_info.value.tag is ErrorTag.TASK_CANCELLATION_REQUESTED
    assert [_release(c) for c in runner.commands("helm upgrade --install")] == ["application-one-a1"]


async def test_compensation_failure_does_not_mask_error(make_environment, make_target, runner, caplog):
    runner.on("helm upgrade", rc=1, stderr="Error: UPGRADE FAILED: timed out waiting for the condition")
    runner.on("helm history", rc=1, stderr="Error: Kubernetes cluster unreachable")
    apps = [
        Application(id="a1", long_id="a1", name="one", image="x", action=Action.CREATE),
        Application(id="a2", long_id="a2", name="two", image="x", action=Action.CREATE),
    ]
    environment = make_environment(applications=apps)

    with caplog.at_level(logging.ERROR):
        with pytest.raises(EngineError) as exc_info:
            await deploy_environment(environment, make_target(environment))

    assert exc_info.value.tag is ErrorTag.HELM_CHART_INSTALL
    assert "error hook failed as well" in caplog.text
    assert [_release(c) for c in runner.commands("helm upgrade --install")] == ["application-one-a1"]


async def test_direct_orchestrator_records_nothing_on_failure(make_environment, make_target, runner):
    runner.on("helm upgrade", rc=1, stderr="boom")
    environment = make_environment(applications=[Application(id="a1", long_id="a1", name="one", image="x", action=Action.CREATE)])
    deployment = EnvironmentDeployment(environment, make_target(environment))

    with pytest.raises(EngineError):
        await deployment.on_create()
    assert deployment.deployed_services == []


# ── model ───────────────────────────────────────────────────────────


def test_namespace_and_labels():
    environment = Environment(id="e1", project_id="p1", organization_id="o1")
    assert environment.namespace == "zp1-ze1"
    assert environment.namespace_labels == {"envdock.io/environment-id": "e1", "envdock.io/project-id": "p1"}


def test_required_resources_skips_managed_production_databases():
    app = Application(id="a1", long_id="a1", name="web", total_cpus="500m", total_ram_in_mib=256, total_instances=2)
    managed = Database(id="d1", long_id="d1", name="m", mode=DatabaseMode.MANAGED, total_cpus="2", total_ram_in_mib=4096)
    in_cluster = Database(id="d2", long_id="d2", name="c", mode=DatabaseMode.CONTAINER, total_cpus="1", total_ram_in_mib=1024)

    production = Environment(
        id="e1", project_id="p1", organization_id="o1", kind=EnvironmentKind.PRODUCTION,
        applications=[app], databases=[managed, in_cluster],
    )
    assert production.required_resources() == EnvironmentResources(pods=3, cpu=1.5, ram_in_mib=1280)

    development = Environment(
        id="e1", project_id="p1", organization_id="o1", kind=EnvironmentKind.DEVELOPMENT,
        applications=[app], databases=[managed, in_cluster],
    )
    assert development.required_resources() == EnvironmentResources(pods=4, cpu=3.5, ram_in_mib=5376)


def test_load_environment(write_yaml):
    path = write_yaml(
        "env.yaml",
        {
            "id": "e1",
            "project_id": "p1",
            "organization_id": "o1",
            "kind": "production",
            "applications": [{"id": "a1", "name": "web", "image": "acme/web"}],
            "databases": [{"id": "d1", "name": "main", "type": "mysql", "mode": "managed", "password": "mysql-password-1"}],
            "routers": [
                {
                    "id": "r1",
                    "name": "edge",
                    "default_domain": "r1.example.com",
                    "routes": [{"path": "/", "application_name": "web"}],
                }
            ],
        },
    )
    environment = load_environment(path)
    assert environment.kind is EnvironmentKind.PRODUCTION
    assert environment.applications[0].image_name_with_tag == "acme/web:latest"
    assert environment.databases[0].private_port == 3306
    assert environment.routers[0].routes[0].application_name == "web"
    assert environment.find_application("web") is environment.applications[0]


def test_load_environment_invalid(write_yaml):
    path = write_yaml("env.yaml", {"id": "e1", "project_id": "p1", "kind": "staging"})
    with pytest.raises(EngineError, match="Invalid environment file"):
        load_environment(path)


def test_load_environment_missing(tmp_path):
    with pytest.raises(EngineError, match="Environment file not found"):
        load_environment(str(tmp_path / "missing.yaml"))

"""Environment model and the orchestrator driving its services through their lifecycle."""

import logging
import os
from dataclasses import dataclass, field

import yaml

from envdock.deployment import ensure_namespace
from envdock.errors import CommandError, EngineError, Scope
from envdock.models import Action, DatabaseMode, EnvironmentKind, EnvironmentResources
from envdock.progress import ProgressInfo, ProgressLevel
from envdock.services import Application, Container, Database, Router

logger = logging.getLogger(__name__)

ENVIRONMENT_ID_LABEL = "envdock.io/environment-id"
PROJECT_ID_LABEL = "envdock.io/project-id"


@dataclass
class Environment:
    """An environment's services, ordered as declared."""

    id: str
    project_id: str
    organization_id: str
    kind: EnvironmentKind = EnvironmentKind.DEVELOPMENT
    applications: list[Application] = field(default_factory=list)
    containers: list[Container] = field(default_factory=list)
    routers: list[Router] = field(default_factory=list)
    databases: list[Database] = field(default_factory=list)

    @property
    def namespace(self) -> str:
        return f"z{self.project_id}-z{self.id}"

    @property
    def namespace_labels(self) -> dict:
        return {ENVIRONMENT_ID_LABEL: self.id, PROJECT_ID_LABEL: self.project_id}

    @property
    def scope(self) -> Scope:
        return Scope.environment(self.id)

    @property
    def stateless_services(self) -> list:
        return [*self.applications, *self.containers, *self.routers]

    @property
    def stateful_services(self) -> list:
        return list(self.databases)

    def find_application(self, name):
        for application in [*self.applications, *self.containers]:
            if application.name == name:
                return application
        return None

    def required_resources(self) -> EnvironmentResources:
        """Cluster capacity needed: stateless services plus in-cluster stateful services.

        Production databases in managed mode run outside the cluster and
        count for nothing.
        """
        total = EnvironmentResources()
        for service in self.stateless_services:
            total += service.required_resources()
        for service in self.stateful_services:
            if self.kind is EnvironmentKind.PRODUCTION and service.mode is DatabaseMode.MANAGED:
                continue
            total += service.required_resources()
        return total

    @classmethod
    def from_dict(cls, d: dict) -> "Environment":
        return cls(
            id=str(d["id"]),
            project_id=str(d["project_id"]),
            organization_id=str(d.get("organization_id", "")),
            kind=EnvironmentKind(d.get("kind", "development")),
            applications=[Application.from_dict(a) for a in d.get("applications", [])],
            containers=[Container.from_dict(c) for c in d.get("containers", [])],
            routers=[Router.from_dict(r) for r in d.get("routers", [])],
            databases=[Database.from_dict(db) for db in d.get("databases", [])],
        )


def load_environment(path) -> Environment:
    """Load an environment description from a YAML file."""
    if not os.path.isfile(path):
        raise EngineError.new_config_error(f"Environment file not found: {path}")
    with open(path) as f:
        raw = yaml.safe_load(f) or {}
    try:
        return Environment.from_dict(raw)
    except (KeyError, ValueError) as e:
        raise EngineError.new_config_error(f"Invalid environment file {path}: {e}") from e


class EnvironmentDeployment:
    """Drive every service of an environment, one at a time, through an action.

    The first failing service aborts the pass and its error is raised; services
    after it are not touched.
    """

    def __init__(self, environment: Environment, target):
        self.environment = environment
        self.target = target
        self.deployed_services: list[str] = []

    @property
    def scope(self) -> Scope:
        return self.environment.scope

    def _check_abort(self):
        if self.target.should_abort():
            raise EngineError.new_task_cancellation_requested(self.scope, self.target.execution_id)

    def _info(self, service, message, level=ProgressLevel.INFO):
        return ProgressInfo(service.scope, level, message, self.target.execution_id)

    async def _run(self, service, action: Action):
        self._check_abort()
        if action is Action.NOTHING:
            return
        target = self.target.for_service(service)
        try:
            await service.exec_action(target, action)
            await service.exec_check_action(target, action)
        except EngineError as error:
            await self._compensate(service, target, action, error)
            if error.debug_info is not None:
                for line in error.debug_info.lines():
                    target.listeners.debug(service.scope, action, line, self.target.execution_id)
            target.listeners.failure(action, self._info(service, str(error), ProgressLevel.ERROR))
            raise
        self.deployed_services.append(service.long_id)
        target.listeners.success(action, self._info(service, f"{action.display} of {service.scope} succeeded"))

    async def _compensate(self, service, target, action, error):
        logger.error(f"[{service.scope}] {action.display.lower()} failed: {error}")
        try:
            await service.exec_error_action(target, action)
        except EngineError as e:
            logger.error(f"[{service.scope}] error hook failed as well: {e}")

    async def on_create(self):
        """Namespace first, then databases, containers, applications and routers."""
        logger.info(f"Deploying environment {self.environment.id} in namespace {self.environment.namespace}")
        await ensure_namespace(self.target, self.scope)
        env = self.environment
        for service in [*env.databases, *env.containers, *env.applications, *env.routers]:
            await self._run(service, service.action)

    async def on_pause(self):
        """Routers first so traffic stops before the workloads behind them."""
        logger.info(f"Pausing environment {self.environment.id}")
        env = self.environment
        for service in [*env.routers, *env.applications, *env.containers, *env.databases]:
            await self._run(service, Action.PAUSE)

    async def on_delete(self):
        """Delete every service then the namespace; an absent namespace means nothing to do."""
        namespace = self.environment.namespace
        try:
            exists = await self.target.kubectl.namespace_exists(namespace)
        except CommandError as e:
            raise EngineError.new_k8s_delete_namespace(self.scope, self.target.execution_id, namespace, e) from e
        if not exists:
            logger.info(f"Namespace {namespace} does not exist, nothing to delete")
            return

        logger.info(f"Deleting environment {self.environment.id}")
        env = self.environment
        for service in [*env.routers, *env.applications, *env.containers, *env.databases]:
            await self._run(service, Action.DELETE)

        if self.target.dry_run:
            logger.info(f"[dry-run] delete namespace {namespace}")
            return
        try:
            await self.target.kubectl.delete_namespace(namespace)
        except CommandError as e:
            raise EngineError.new_k8s_delete_namespace(self.scope, self.target.execution_id, namespace, e) from e


async def deploy_environment(environment: Environment, target) -> EnvironmentDeployment:
    deployment = EnvironmentDeployment(environment, target)
    await deployment.on_create()
    return deployment


async def pause_environment(environment: Environment, target) -> EnvironmentDeployment:
    deployment = EnvironmentDeployment(environment, target)
    await deployment.on_pause()
    return deployment


async def delete_environment(environment: Environment, target) -> EnvironmentDeployment:
    deployment = EnvironmentDeployment(environment, target)
    await deployment.on_delete()
    return deployment

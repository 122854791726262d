"""Deployment target: where and with which backend a service is deployed."""

import asyncio
import dataclasses
import socket
from collections.abc import Callable
from dataclasses import dataclass, field
from enum import Enum

from envdock.cmd import Helm, Kubectl, Terraform, run_shell_cmd
from envdock.config import EngineConfig
from envdock.models import Cluster, DatabaseMode, EnvironmentKind, ServiceKind
from envdock.progress import ListenersHelper


class TargetKind(Enum):
    MANAGED_SERVICES = "managed_services"
    SELF_HOSTED = "self_hosted"


async def resolve_host(hostname) -> list[str]:
    """Resolve ``hostname`` to its addresses.

    Raises socket.gaierror when it does not resolve, UnicodeError when a label
    cannot be IDNA-encoded (empty or longer than 63 characters).
    """
    loop = asyncio.get_running_loop()
    infos = await loop.getaddrinfo(hostname, None, type=socket.SOCK_STREAM)
    return sorted({info[4][0] for info in infos})


@dataclass
class Executors:
    """External tool executors bound to one cluster's credentials."""

    helm: Helm
    kubectl: Kubectl
    terraform: Callable[[str], Terraform]

    @classmethod
    def for_cluster(cls, cluster: Cluster, config: EngineConfig, run_cmd=run_shell_cmd) -> "Executors":
        envs = cluster.credentials.credentials_environment_variables()

        def _terraform(root_dir):
            return Terraform(
                root_dir,
                envs=envs,
                run_cmd=run_cmd,
                plugin_cache_dir=config.terraform_plugin_cache_dir,
                init_policy=config.retry.terraform_init,
                destroy_policy=config.retry.terraform_destroy,
            )

        return cls(
            helm=Helm(cluster.kubeconfig_path, envs=envs, run_cmd=run_cmd),
            kubectl=Kubectl(cluster.kubeconfig_path, envs=envs, run_cmd=run_cmd),
            terraform=_terraform,
        )


@dataclass
class DeploymentTarget:
    """Either ``ManagedServices(cluster, environment)`` or ``SelfHosted(cluster, environment)``.

    The kind only matters for stateful services: it selects the Terraform
    backend (managed) or the Helm backend (self-hosted). Stateless services
    always run in-cluster through Helm.
    """

    kind: TargetKind
    cluster: Cluster
    environment: object
    config: EngineConfig
    executors: Executors
    listeners: ListenersHelper = field(default_factory=ListenersHelper)
    should_abort: Callable[[], bool] = lambda: False
    sleep: Callable = asyncio.sleep
    resolve_host: Callable = resolve_host

    @property
    def is_managed(self) -> bool:
        return self.kind is TargetKind.MANAGED_SERVICES

    @property
    def helm(self) -> Helm:
        return self.executors.helm

    @property
    def kubectl(self) -> Kubectl:
        return self.executors.kubectl

    @property
    def namespace(self) -> str:
        return self.environment.namespace

    @property
    def execution_id(self) -> str:
        return self.config.execution_id

    @property
    def dry_run(self) -> bool:
        return self.config.dry_run

    def terraform(self, root_dir) -> Terraform:
        return self.executors.terraform(root_dir)

    def for_service(self, service) -> "DeploymentTarget":
        """Target to use for ``service``: managed only for a production database in managed mode."""
        managed = (
            service.kind is ServiceKind.DATABASE
            and self.environment.kind is EnvironmentKind.PRODUCTION
            and service.mode is DatabaseMode.MANAGED
        )
        kind = TargetKind.MANAGED_SERVICES if managed else TargetKind.SELF_HOSTED
        return dataclasses.replace(self, kind=kind)

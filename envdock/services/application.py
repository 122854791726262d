"""Application and Container services: stateless workloads deployed with Helm."""

import logging
import os
from dataclasses import dataclass, field

from envdock.deployment import delete_stateless, deploy_stateless, pause_service
from envdock.models import (
    Action,
    EnvironmentVariable,
    Port,
    ServiceKind,
    ServiceTemplateContext,
    Storage,
)
from envdock.service import Service, service_fields_from_dict

logger = logging.getLogger(__name__)


@dataclass
class Application(Service):
    """A user workload built from source elsewhere and shipped as an image."""

    image: str = ""
    tag: str = "latest"
    environment_variables: list[EnvironmentVariable] = field(default_factory=list)
    storage: list[Storage] = field(default_factory=list)
    ports: list[Port] = field(default_factory=list)
    min_instances: int = 1
    max_instances: int = 1

    kind = ServiceKind.APPLICATION
    name_prefix = "app"
    chart_name = "q-application"

    @property
    def image_name_with_tag(self) -> str:
        return f"{self.image}:{self.tag}"

    @property
    def is_statefulset(self) -> bool:
        return bool(self.storage)

    def chart_dir(self, config) -> str:
        return os.path.join(config.lib_root_dir, "common", "charts", self.chart_name)

    def template_context(self, target) -> ServiceTemplateContext:
        return ServiceTemplateContext(
            common=self.common_context(target),
            image_name_with_tag=self.image_name_with_tag,
            version=self.version,
            total_cpus=self.total_cpus,
            total_ram_in_mib=self.total_ram_in_mib,
            total_instances=self.total_instances,
            min_instances=self.min_instances,
            max_instances=self.max_instances,
            private_port=self.private_port,
            ports=self.ports,
            environment_variables=self.environment_variables,
            storage=self.storage,
            selector=self.selector,
        )

    async def _deploy(self, target):
        await deploy_stateless(
            target,
            self,
            self.chart_dir(target.config),
            self.template_context(target).to_template_context(),
            error_message=f"{self.kind.value.capitalize()} '{self.name}' failed to start. Check its logs and port configuration.",
        )

    async def on_create(self, target):
        await self.with_progress(target, Action.CREATE, self._deploy(target))

    async def on_create_error(self, target):
        await delete_stateless(target, self, on_error=True)

    async def on_pause(self, target):
        await self.with_progress(target, Action.PAUSE, pause_service(target, self))

    async def on_delete(self, target):
        await self.with_progress(target, Action.DELETE, delete_stateless(target, self))

    @classmethod
    def from_dict(cls, d: dict) -> "Application":
        return cls(
            **service_fields_from_dict(d),
            image=d.get("image", ""),
            tag=str(d.get("tag", "latest")),
            environment_variables=[
                EnvironmentVariable(str(k), str(v)) for k, v in (d.get("environment_variables") or {}).items()
            ],
            storage=[Storage.from_dict(s) for s in d.get("storage", [])],
            ports=[Port(int(p["port"]), bool(p.get("publicly_accessible", False)), p.get("name")) for p in d.get("ports", [])],
            min_instances=int(d.get("min_instances", 1)),
            max_instances=int(d.get("max_instances", d.get("min_instances", 1))),
        )


@dataclass
class Container(Application):
    """A workload running a prebuilt image pulled from a registry."""

    registry_url: str = ""

    kind = ServiceKind.CONTAINER
    name_prefix = "container"
    chart_name = "q-container"

    @property
    def image_name_with_tag(self) -> str:
        image = f"{self.image}:{self.tag}"
        return f"{self.registry_url.rstrip('/')}/{image}" if self.registry_url else image

    @classmethod
    def from_dict(cls, d: dict) -> "Container":
        app = Application.from_dict(d)
        return cls(**{k: v for k, v in vars(app).items()}, registry_url=d.get("registry_url", ""))

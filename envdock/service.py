"""Service lifecycle: one ``execute(action, phase)`` entry point per service.

Which hooks a service kind supports is declared in ``LIFECYCLE_TABLE``; any
combination absent from the table, or whose hook is not implemented, fails
with the same ``unsupported action`` error.
"""

import logging
import os
from dataclasses import dataclass
from typing import ClassVar

from envdock.errors import EngineError, Scope, ScopeKind
from envdock.models import (
    Action,
    CommonTemplateContext,
    EnvironmentResources,
    Phase,
    ServiceKind,
    cut,
    parse_cpus,
    sanitize_name,
)
from envdock.progress import send_progress_on_long_task

logger = logging.getLogger(__name__)

HELM_RELEASE_NAME_MAX_LENGTH = 50

_STATEFUL_ONLY = {
    Action.BACKUP: "backup",
    Action.CLONE: "clone",
    Action.UPGRADE: "upgrade",
    Action.DOWNGRADE: "downgrade",
}

_COMMON = {
    Action.CREATE: "create",
    Action.PAUSE: "pause",
    Action.DELETE: "delete",
}

# (ServiceKind, Action) -> hook family. Families resolve to on_<family>,
# on_<family>_check and on_<family>_error.
LIFECYCLE_TABLE: dict[tuple[ServiceKind, Action], str] = {
    **{(kind, action): family for kind in ServiceKind for action, family in _COMMON.items()},
    **{(ServiceKind.DATABASE, action): family for action, family in _STATEFUL_ONLY.items()},
}

_HOOK_NAMES = {
    Phase.RUN: "on_{}",
    Phase.CHECK: "on_{}_check",
    Phase.ERROR: "on_{}_error",
}


@dataclass
class Service:
    """Identity, sizing and lifecycle shared by every service kind."""

    id: str
    long_id: str
    name: str
    action: Action = Action.NOTHING
    version: str = ""
    total_cpus: str = "1"
    total_ram_in_mib: int = 512
    total_instances: int = 1
    private_port: int | None = None

    kind: ClassVar[ServiceKind]
    name_prefix: ClassVar[str]
    selector_key: ClassVar[str] = "appId"

    # ── identity ────────────────────────────────────────────────────

    @property
    def sanitized_name(self) -> str:
        return sanitize_name(self.name_prefix, self.name)

    @property
    def selector(self) -> str:
        return f"{self.selector_key}={self.id}"

    @property
    def helm_release_name(self) -> str:
        # Helm release names must be DNS-1123 labels: the raw name is lowercased and sanitized
        return cut(sanitize_name(self.kind.value, f"{self.name}-{self.id}"), HELM_RELEASE_NAME_MAX_LENGTH)

    @property
    def scope(self) -> Scope:
        return Scope(ScopeKind(self.kind.value), id=self.id, name=self.name)

    @property
    def is_stateful(self) -> bool:
        return self.kind.is_stateful

    def workspace_directory(self, config) -> str:
        return os.path.join(config.workspace_dir, f"{self.kind.value}s", self.sanitized_name)

    def required_resources(self) -> EnvironmentResources:
        return EnvironmentResources(
            pods=self.total_instances,
            cpu=parse_cpus(self.total_cpus),
            ram_in_mib=self.total_ram_in_mib,
        )

    def common_context(self, target) -> CommonTemplateContext:
        environment = target.environment
        cluster = target.cluster
        return CommonTemplateContext(
            id=self.id,
            long_id=self.long_id,
            name=self.name,
            sanitized_name=self.sanitized_name,
            project_id=environment.project_id,
            organization_id=environment.organization_id,
            environment_id=environment.id,
            namespace=environment.namespace,
            region=cluster.region,
            zone=cluster.zone,
            cluster_id=cluster.id,
            cluster_name=cluster.name,
            kubeconfig_path=cluster.kubeconfig_path,
            execution_id=target.execution_id,
            resource_expiration_in_seconds=target.config.resource_expiration_in_seconds,
            provider_values={**cluster.credentials.template_context(), **cluster.extra_template_values},
        )

    # ── lifecycle ───────────────────────────────────────────────────

    def _hook(self, action: Action, phase: Phase):
        family = LIFECYCLE_TABLE.get((self.kind, action))
        if family is None:
            return None
        return getattr(self, _HOOK_NAMES[phase].format(family), None)

    async def execute(self, target, action: Action, phase: Phase = Phase.RUN):
        """Run the ``phase`` hook of ``action``; NOTHING runs no hook at all."""
        if action is Action.NOTHING:
            return
        hook = self._hook(action, phase)
        if hook is None:
            raise EngineError.new_unsupported_action(self.scope, target.execution_id, action, self.kind)
        logger.debug(f"[{self.scope}] {hook.__name__}")
        await hook(target)

    async def exec_action(self, target, action: Action | None = None):
        await self.execute(target, action or self.action, Phase.RUN)

    async def exec_check_action(self, target, action: Action | None = None):
        await self.execute(target, action or self.action, Phase.CHECK)

    async def exec_error_action(self, target, action: Action | None = None):
        await self.execute(target, action or self.action, Phase.ERROR)

    async def with_progress(self, target, action: Action, operation):
        """Await ``operation`` while sending periodic in-progress notifications."""
        return await send_progress_on_long_task(
            target.listeners,
            self.scope,
            action,
            operation,
            execution_id=target.execution_id,
            interval=target.config.progress_interval_seconds,
        )

    # Default check and error hooks: nothing to verify, nothing to compensate.

    async def on_create_check(self, target):
        pass

    async def on_create_error(self, target):
        pass

    async def on_pause_check(self, target):
        pass

    async def on_pause_error(self, target):
        pass

    async def on_delete_check(self, target):
        pass

    async def on_delete_error(self, target):
        pass


def service_fields_from_dict(d: dict) -> dict:
    """Identity and sizing fields shared by every service kind."""
    return {
        "id": str(d["id"]),
        "long_id": str(d.get("long_id", d["id"])),
        "name": d["name"],
        "action": Action(d.get("action", "create")),
        "version": str(d.get("version", "")),
        "total_cpus": str(d.get("total_cpus", "1")),
        "total_ram_in_mib": int(d.get("total_ram_in_mib", 512)),
        "total_instances": int(d.get("total_instances", 1)),
        "private_port": d.get("private_port"),
    }

"""Database service: managed by the cloud provider or self-hosted in the cluster."""

import logging
import os
from dataclasses import dataclass

from envdock.deployment import delete_stateful, deploy_stateful, get_tfstate_name, get_tfstate_suffix, pause_service
from envdock.dns import check_domains
from envdock.models import (
    Action,
    DatabaseKind,
    DatabaseMode,
    DatabaseTemplateContext,
    ServiceKind,
    cut,
    sanitize_name,
)
from envdock.redact import register_secret
from envdock.service import HELM_RELEASE_NAME_MAX_LENGTH, Service, service_fields_from_dict

logger = logging.getLogger(__name__)


@dataclass
class Database(Service):
    database_kind: DatabaseKind = DatabaseKind.POSTGRESQL
    mode: DatabaseMode = DatabaseMode.MANAGED
    login: str = ""
    password: str = ""
    disk_size_in_gib: int = 10
    disk_type: str = "gp2"
    instance_type: str = ""
    fqdn: str = ""
    fqdn_id: str = ""
    publicly_accessible: bool = False

    kind = ServiceKind.DATABASE
    selector_key = "databaseId"
    is_statefulset = True

    def __post_init__(self):
        register_secret(self.password)
        if self.private_port is None:
            self.private_port = self.database_kind.default_port

    @property
    def sanitized_name(self) -> str:
        return sanitize_name(self.database_kind.value, self.name)

    @property
    def helm_release_name(self) -> str:
        return cut(f"{self.database_kind.value}-{self.id}", HELM_RELEASE_NAME_MAX_LENGTH)

    @property
    def external_name_release_name(self) -> str:
        return cut(f"{self.database_kind.value}-{self.id}-extname", HELM_RELEASE_NAME_MAX_LENGTH)

    # ── template locations ──────────────────────────────────────────

    def chart_dir(self, config) -> str:
        return os.path.join(config.lib_root_dir, "common", "services", self.database_kind.value)

    def chart_values_dir(self, target) -> str:
        return os.path.join(target.config.lib_root_dir, target.cluster.provider, "chart_values", self.database_kind.value)

    def terraform_common_dir(self, target) -> str:
        return os.path.join(target.config.lib_root_dir, target.cluster.provider, "services", "common")

    def terraform_resource_dir(self, target) -> str:
        return os.path.join(target.config.lib_root_dir, target.cluster.provider, "services", self.database_kind.value)

    def external_name_service_chart_dir(self, config) -> str:
        return os.path.join(config.lib_root_dir, "common", "charts", "external-name-svc")

    def internal_fqdn(self, target) -> str:
        """In-cluster DNS name of a self-hosted database."""
        return f"{self.sanitized_name}.{target.namespace}.svc.cluster.local"

    def template_context(self, target) -> DatabaseTemplateContext:
        fqdn = self.fqdn if target.is_managed else self.internal_fqdn(target)
        return DatabaseTemplateContext(
            common=self.common_context(target),
            version=self.version,
            database_kind=self.database_kind.value,
            database_name=self.sanitized_name,
            database_db_name=self.name,
            database_login=self.login,
            database_password=self.password,
            database_port=self.private_port,
            database_disk_size_in_gib=self.disk_size_in_gib,
            database_disk_type=self.disk_type,
            database_instance_type=self.instance_type,
            database_ram_size_in_mib=self.total_ram_in_mib,
            database_total_cpus=self.total_cpus,
            database_fqdn=fqdn,
            fqdn=fqdn,
            fqdn_id=self.fqdn_id or self.sanitized_name,
            publicly_accessible=self.publicly_accessible,
            tfstate_suffix_name=get_tfstate_suffix(self),
            tfstate_name=get_tfstate_name(self),
            final_snapshot_name=f"{self.id}-final-snapshot",
            skip_final_snapshot=target.config.is_test_cluster,
            delete_automated_backups=target.config.is_test_cluster,
            selector=self.selector,
        )

    # ── lifecycle ───────────────────────────────────────────────────

    async def on_create(self, target):
        await self.with_progress(target, Action.CREATE, deploy_stateful(target, self))

    async def on_create_check(self, target):
        if target.dry_run or not (target.is_managed and self.publicly_accessible and self.fqdn):
            return
        await check_domains(target, self.scope, [self.fqdn], target.config.retry.domain_check)

    async def on_create_error(self, target):
        # Managed resources are left in place so the provider-side failure can be inspected
        if target.is_managed:
            logger.info(f"[{self.scope}] managed database left as is after a failed deployment")
            return
        await delete_stateful(target, self, on_error=True)

    async def on_pause(self, target):
        if target.is_managed:
            logger.info(f"[{self.scope}] pause is a no-op for managed databases")
            return
        await self.with_progress(target, Action.PAUSE, pause_service(target, self))

    async def on_delete(self, target):
        await self.with_progress(target, Action.DELETE, delete_stateful(target, self))

    @classmethod
    def from_dict(cls, d: dict) -> "Database":
        return cls(
            **service_fields_from_dict(d),
            database_kind=DatabaseKind(d.get("type", "postgresql")),
            mode=DatabaseMode(d.get("mode", "managed")),
            login=d.get("login", ""),
            password=d.get("password", ""),
            disk_size_in_gib=int(d.get("disk_size_in_gib", 10)),
            disk_type=d.get("disk_type", "gp2"),
            instance_type=d.get("instance_type", ""),
            fqdn=d.get("fqdn", ""),
            fqdn_id=d.get("fqdn_id", ""),
            publicly_accessible=bool(d.get("publicly_accessible", False)),
        )

"""Typed template contexts, flattened to a plain dict only when rendering."""

import dataclasses
from dataclasses import dataclass, field

from envdock.models.types import CustomDomain, EnvironmentVariable, Port, Route, Storage


@dataclass
class CommonTemplateContext:
    """Keys every rendered chart or terraform module receives."""

    id: str
    long_id: str
    name: str
    sanitized_name: str
    project_id: str
    organization_id: str
    environment_id: str
    namespace: str
    region: str
    zone: str | None
    cluster_id: str
    cluster_name: str
    kubeconfig_path: str
    execution_id: str
    resource_expiration_in_seconds: int | None = None
    provider_values: dict = field(default_factory=dict)

    def to_dict(self) -> dict:
        ctx = dataclasses.asdict(self)
        ctx.update(ctx.pop("provider_values"))
        return ctx


@dataclass
class ServiceTemplateContext:
    """Context of an application or container chart."""

    common: CommonTemplateContext
    image_name_with_tag: str
    version: str
    total_cpus: str
    total_ram_in_mib: int
    total_instances: int
    min_instances: int
    max_instances: int
    private_port: int | None = None
    ports: list[Port] = field(default_factory=list)
    environment_variables: list[EnvironmentVariable] = field(default_factory=list)
    storage: list[Storage] = field(default_factory=list)
    selector: str = ""

    def to_template_context(self) -> dict:
        ctx = self.common.to_dict()
        ctx.update({f.name: getattr(self, f.name) for f in dataclasses.fields(self) if f.name != "common"})
        ctx["ports"] = [dataclasses.asdict(p) for p in self.ports]
        ctx["environment_variables"] = [dataclasses.asdict(e) for e in self.environment_variables]
        ctx["storage"] = [dataclasses.asdict(s) for s in self.storage]
        ctx["is_storage"] = bool(self.storage)
        return ctx


@dataclass
class DatabaseTemplateContext:
    """Context of a database chart or terraform module."""

    common: CommonTemplateContext
    version: str
    database_kind: str
    database_name: str
    database_db_name: str
    database_login: str
    database_password: str
    database_port: int
    database_disk_size_in_gib: int
    database_disk_type: str
    database_instance_type: str
    database_ram_size_in_mib: int
    database_total_cpus: str
    database_fqdn: str
    fqdn: str
    fqdn_id: str
    publicly_accessible: bool
    tfstate_suffix_name: str
    tfstate_name: str
    final_snapshot_name: str
    skip_final_snapshot: bool = False
    delete_automated_backups: bool = False
    selector: str = ""

    def to_template_context(self) -> dict:
        ctx = self.common.to_dict()
        ctx.update({f.name: getattr(self, f.name) for f in dataclasses.fields(self) if f.name != "common"})
        ctx["database_id"] = self.common.id
        return ctx


@dataclass
class RouterTemplateContext:
    """Context of the ingress chart of a router."""

    common: CommonTemplateContext
    router_default_domain: str
    router_default_domain_hash: str
    custom_domains: list[CustomDomain] = field(default_factory=list)
    custom_domain_hashes: dict[str, str] = field(default_factory=dict)
    routes: list[Route] = field(default_factory=list)
    route_ports: dict[str, int] = field(default_factory=dict)
    spec_acme_email: str = ""
    spec_acme_server: str = ""
    load_balancer_hostname: str | None = None

    def to_template_context(self) -> dict:
        ctx = self.common.to_dict()
        ctx.update(
            {
                "router_default_domain": self.router_default_domain,
                "router_default_domain_hash": self.router_default_domain_hash,
                "custom_domains": [
                    {
                        "domain": d.domain,
                        "domain_hash": self.custom_domain_hashes.get(d.domain, ""),
                        "target_domain": d.target_domain,
                    }
                    for d in self.custom_domains
                ],
                "has_custom_domains": bool(self.custom_domains),
                "routes": [
                    {
                        "path": r.path,
                        "application_name": r.application_name,
                        "application_port": self.route_ports.get(r.application_name),
                    }
                    for r in self.routes
                ],
                "spec_acme_email": self.spec_acme_email,
                "spec_acme_server": self.spec_acme_server,
                "load_balancer_hostname": self.load_balancer_hostname,
            }
        )
        return ctx

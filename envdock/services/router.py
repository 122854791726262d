"""Router service: the TLS ingress exposing an environment's applications."""

import hashlib
import logging
import os
from dataclasses import dataclass, field

from envdock.deployment import delete_stateless, deploy_stateless
from envdock.dns import check_domains, wait_for_domain
from envdock.errors import CommandError, EngineError, Scope, ScopeKind
from envdock.models import Action, CustomDomain, Route, RouterTemplateContext, ServiceKind, cut
from envdock.retry import Retry, RetryExhausted, retry
from envdock.service import HELM_RELEASE_NAME_MAX_LENGTH, Service, service_fields_from_dict

logger = logging.getLogger(__name__)

INGRESS_CONTROLLER_NAMESPACE = "nginx-ingress"
INGRESS_CONTROLLER_SELECTOR = "app.kubernetes.io/name=ingress-nginx"


def domain_hash(domain: str) -> str:
    """Short stable identifier of a domain, used in certificate and secret names."""
    return hashlib.sha1(domain.encode()).hexdigest()[:16]


@dataclass
class Router(Service):
    default_domain: str = ""
    custom_domains: list[CustomDomain] = field(default_factory=list)
    routes: list[Route] = field(default_factory=list)

    kind = ServiceKind.ROUTER
    name_prefix = "router"
    selector_key = "routerId"
    is_statefulset = False

    @property
    def helm_release_name(self) -> str:
        return cut(f"router-{self.id}", HELM_RELEASE_NAME_MAX_LENGTH)

    def chart_dir(self, config) -> str:
        return os.path.join(config.lib_root_dir, "common", "charts", "q-ingress-tls")

    def template_context(self, target, load_balancer_hostname=None) -> RouterTemplateContext:
        ports = {}
        for route in self.routes:
            application = target.environment.find_application(route.application_name)
            if application is not None:
                ports[route.application_name] = application.private_port
        return RouterTemplateContext(
            common=self.common_context(target),
            router_default_domain=self.default_domain,
            router_default_domain_hash=domain_hash(self.default_domain),
            custom_domains=self.custom_domains,
            custom_domain_hashes={d.domain: domain_hash(d.domain) for d in self.custom_domains},
            routes=self.routes,
            route_ports=ports,
            spec_acme_email=target.cluster.acme_email,
            spec_acme_server=target.config.acme_server_url,
            load_balancer_hostname=load_balancer_hostname,
        )

    async def load_balancer_hostname(self, target) -> str:
        """Wait for the ingress controller's load balancer to publish its endpoint."""
        scope = Scope(ScopeKind.KUBERNETES, id=target.cluster.id, name=target.cluster.name)

        async def lookup():
            try:
                hostname = await target.kubectl.get_load_balancer_hostname(
                    INGRESS_CONTROLLER_NAMESPACE, INGRESS_CONTROLLER_SELECTOR
                )
            except CommandError as e:
                return Retry(e.message_safe)
            return hostname or Retry("no endpoint published yet")

        target.listeners.info(
            self.scope,
            Action.CREATE,
            "Waiting for the load balancer endpoint to be available to configure TLS",
            target.execution_id,
        )
        try:
            return await retry(
                target.config.retry.load_balancer.schedule(),
                lookup,
                sleep=target.sleep,
                description="load balancer endpoint",
            )
        except RetryExhausted as e:
            raise EngineError.new_service_not_ready(
                scope, target.execution_id, "Load balancer of the ingress controller", reason=e.reason
            ) from e

    async def _deploy(self, target):
        hostname = None
        if self.custom_domains and not target.dry_run:
            hostname = await self.load_balancer_hostname(target)
        await deploy_stateless(
            target,
            self,
            self.chart_dir(target.config),
            self.template_context(target, load_balancer_hostname=hostname).to_template_context(),
            error_message=f"Router '{self.name}' failed to be deployed",
            wait_for_pods=False,
        )

    async def on_create(self, target):
        await self.with_progress(target, Action.CREATE, self._deploy(target))

    async def on_create_check(self, target):
        if target.dry_run or not self.default_domain:
            return
        await wait_for_domain(target, self.scope, self.default_domain, target.config.retry.dns_check)
        await check_domains(
            target,
            self.scope,
            [d.domain for d in self.custom_domains],
            target.config.retry.domain_check,
        )

    async def on_create_error(self, target):
        await delete_stateless(target, self, on_error=True)

    # A router holds no state: pausing it removes the ingress.
    async def on_pause(self, target):
        await self.with_progress(target, Action.PAUSE, delete_stateless(target, self))

    async def on_delete(self, target):
        await self.with_progress(target, Action.DELETE, delete_stateless(target, self))

    @classmethod
    def from_dict(cls, d: dict) -> "Router":
        return cls(
            **service_fields_from_dict(d),
            default_domain=d.get("default_domain", ""),
            custom_domains=[CustomDomain(c["domain"], c["target_domain"]) for c in d.get("custom_domains", [])],
            routes=[Route(r["path"], r["application_name"]) for r in d.get("routes", [])],
        )

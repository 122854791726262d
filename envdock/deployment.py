"""Deploy, delete and pause algorithms for stateless and stateful services.

Stateless services always go through Helm. Stateful services branch on the
deployment target: Terraform for managed services, Helm for self-hosted ones.
"""

import logging
import os
from dataclasses import dataclass, field

from envdock.errors import CommandError, EngineError, ErrorCause
from envdock.models import HelmChart, first_successful_row
from envdock.retry import Retry, RetryExhausted, retry
from envdock.template import TemplateRenderError, generate_and_copy_all_files_into_dir

logger = logging.getLogger(__name__)

MAX_TERMINATED_REASONS = 10


def get_tfstate_suffix(service) -> str:
    return service.id


def get_tfstate_name(service) -> str:
    """Name of the Kubernetes secret holding a managed service's Terraform state."""
    return f"tfstate-default-{get_tfstate_suffix(service)}"


@dataclass
class DebugInfo:
    """In-cluster diagnostics gathered when a self-hosted service fails."""

    describe: str = ""
    logs: list[str] = field(default_factory=list)
    events: list[str] = field(default_factory=list)
    terminated_reasons: list[str] = field(default_factory=list)

    def lines(self) -> list[str]:
        return [*self.terminated_reasons, *self.events, *self.logs]


# ── shared steps ────────────────────────────────────────────────────


def render_templates(target, service, from_dir, to_dir, context: dict):
    try:
        generate_and_copy_all_files_into_dir(from_dir, to_dir, context)
    except TemplateRenderError as e:
        raise EngineError.new_template_error(service.scope, target.execution_id, from_dir, str(e)) from e


def namespace_labels(target) -> dict:
    labels = dict(target.environment.namespace_labels)
    if target.config.resource_expiration_in_seconds is not None:
        labels["ttl"] = str(target.config.resource_expiration_in_seconds)
    return labels


async def ensure_namespace(target, scope):
    """Create the environment namespace if absent, applying the TTL label."""
    if target.dry_run:
        logger.info(f"[dry-run] create namespace {target.namespace}")
        return
    try:
        await target.kubectl.create_namespace_if_not_exists(target.namespace, namespace_labels(target))
    except CommandError as e:
        raise EngineError.new_k8s_create_namespace(scope, target.execution_id, target.namespace, e) from e


async def collect_debug_info(target, service) -> DebugInfo:
    """Describe pods, fetch logs, abnormal events and the last terminated-container reasons.

    Each probe is independent: a failing probe is logged and the others still run.
    """
    info = DebugInfo()
    kubectl = target.kubectl
    namespace = target.namespace
    selector = service.selector

    try:
        info.describe = await kubectl.describe_pods(namespace, selector)
    except CommandError as e:
        logger.warning(f"[{service.scope}] unable to describe pods: {e.message_safe}")
    try:
        info.logs = await kubectl.logs(namespace, selector)
    except CommandError as e:
        logger.warning(f"[{service.scope}] unable to fetch logs: {e.message_safe}")

    pod_names = set()
    try:
        pods = await kubectl.get_pods(namespace, selector)
    except CommandError as e:
        logger.warning(f"[{service.scope}] unable to list pods: {e.message_safe}")
        pods = []
    for pod in pods:
        pod_names.add(pod.name)
        if pod.last_terminated_reason:
            reason = f"{pod.name}: terminated ({pod.last_terminated_reason}, exit code {pod.last_terminated_exit_code})"
            if pod.last_terminated_message:
                reason += f": {pod.last_terminated_message}"
            info.terminated_reasons.append(reason)
    info.terminated_reasons = info.terminated_reasons[-MAX_TERMINATED_REASONS:]

    try:
        events = await kubectl.get_events(namespace, field_selector="involvedObject.kind=Pod")
    except CommandError as e:
        logger.warning(f"[{service.scope}] unable to fetch events: {e.message_safe}")
        events = []
    for event in events:
        event_type = event.get("type", "")
        involved = event.get("involvedObject", {}).get("name", "")
        if event_type.lower() != "normal" and involved in pod_names:
            info.events.append(f"{event_type}: {event.get('message', '')}")

    return info


async def helm_upgrade(target, service, chart: HelmChart):
    try:
        return await target.helm.upgrade(chart, dry_run=target.dry_run)
    except CommandError as e:
        error = EngineError.new_helm_error(service.scope, target.execution_id, chart.name, e)
        raise error.attach_debug_info(await collect_debug_info(target, service)) from e


async def uninstall_if_deployed(target, service, release) -> bool:
    """Uninstall ``release`` only if it has a successfully deployed revision.

    A release that never succeeded is left alone: uninstalling it would fail
    on an already-absent release.
    """
    try:
        rows = await target.helm.history(release, target.namespace)
    except CommandError as e:
        raise EngineError.new_helm_history_error(service.scope, target.execution_id, release, e) from e

    if first_successful_row(rows) is None:
        logger.info(f"[{service.scope}] no valid history row found for release {release}, skipping uninstall")
        return False

    try:
        await target.helm.uninstall(release, target.namespace)
    except CommandError as e:
        raise EngineError.new_helm_uninstall_error(service.scope, target.execution_id, release, e) from e
    return True


async def wait_for_pods_ready(target, service):
    """Poll pods of ``service`` until every one is ready; fatal once the policy is exhausted."""

    async def check():
        try:
            pods = await target.kubectl.get_pods(target.namespace, service.selector)
        except CommandError as e:
            raise EngineError.new_k8s_get_pods(service.scope, target.execution_id, service.selector, e) from e
        if not pods:
            return Retry("no pod found")
        not_ready = [pod.name for pod in pods if not pod.ready]
        if not_ready:
            return Retry(f"{len(not_ready)}/{len(pods)} pod(s) not ready: {', '.join(not_ready)}")
        return pods

    try:
        return await retry(
            target.config.retry.pod_readiness.schedule(),
            check,
            sleep=target.sleep,
            description=f"{service.scope} readiness",
        )
    except RetryExhausted as e:
        error = EngineError.new_service_not_ready(
            service.scope,
            target.execution_id,
            f"{service.kind.value.capitalize()} '{service.name}'",
            reason=e.reason,
            cause=ErrorCause.USER,
            hint="Check the service logs and that it listens on its configured port.",
        )
        raise error.attach_debug_info(await collect_debug_info(target, service)) from e


async def wait_for_pods_count(target, service, desired: int, what: str):
    async def check():
        try:
            pods = await target.kubectl.get_pods(target.namespace, service.selector)
        except CommandError as e:
            raise EngineError.new_k8s_get_pods(service.scope, target.execution_id, service.selector, e) from e
        if len(pods) != desired:
            return Retry(f"{len(pods)} pod(s) remaining, expected {desired}")
        return True

    try:
        await retry(target.config.retry.pods_terminated.schedule(), check, sleep=target.sleep, description=what)
    except RetryExhausted as e:
        raise EngineError.new_service_not_ready(service.scope, target.execution_id, what, reason=e.reason) from e


def _values_files(directory) -> list[str]:
    if not directory or not os.path.isdir(directory):
        return []
    return [
        os.path.join(directory, name)
        for name in sorted(os.listdir(directory))
        if name.endswith((".yaml", ".yml"))
    ]


# ── deploy ──────────────────────────────────────────────────────────


async def deploy_stateless(target, service, chart_dir, context: dict, error_message: str, values_dir=None, wait_for_pods=True):
    """Render the chart, ensure the namespace, helm upgrade, then wait for ready pods.

    Args:
        target: DeploymentTarget
        service: the service being deployed
        chart_dir: template directory of the service's chart
        context: template context, already flattened to a dict
        error_message: user message raised when no revision succeeded
        values_dir: optional template directory of environment-specific value
            overrides, rendered next to the chart and passed with ``-f``
        wait_for_pods: poll pod readiness after the upgrade (routers have no pods)
    """
    workspace = service.workspace_directory(target.config)
    render_templates(target, service, chart_dir, workspace, context)
    values_files = []
    if values_dir:
        rendered_values_dir = f"{workspace}-values"
        render_templates(target, service, values_dir, rendered_values_dir, context)
        values_files = _values_files(rendered_values_dir)

    await ensure_namespace(target, service.scope)
    if not target.dry_run:
        await unpause_service_if_needed(target, service)

    chart = HelmChart(
        name=service.helm_release_name,
        path=workspace,
        namespace=target.namespace,
        values_files=values_files,
        timeout_in_seconds=target.config.helm_timeout_seconds,
        k8s_selector=service.selector,
    )
    rows = await helm_upgrade(target, service, chart)
    if target.dry_run:
        return

    if first_successful_row(rows) is None:
        error = EngineError.new_no_successful_revision(service.scope, target.execution_id, chart.name, error_message)
        raise error.attach_debug_info(await collect_debug_info(target, service))

    if wait_for_pods:
        await wait_for_pods_ready(target, service)
    logger.info(f"[{service.scope}] deployed")


async def deploy_stateful(target, service):
    """Managed: render terraform modules and apply them. Self-hosted: Helm chart with value overrides."""
    config = target.config
    context = service.template_context(target).to_template_context()

    if not target.is_managed:
        await deploy_stateless(
            target,
            service,
            service.chart_dir(config),
            context,
            error_message=f"Database '{service.name}' failed to start",
            values_dir=service.chart_values_dir(target),
        )
        return

    workspace = service.workspace_directory(config)
    render_templates(target, service, service.terraform_common_dir(target), workspace, context)
    render_templates(target, service, service.terraform_resource_dir(target), workspace, context)
    external_name_dir = os.path.join(workspace, "external-name-svc")
    render_templates(target, service, service.external_name_service_chart_dir(config), external_name_dir, context)

    await ensure_namespace(target, service.scope)
    try:
        await target.terraform(workspace).init_validate_plan_apply(dry_run=target.dry_run)
    except CommandError as e:
        raise EngineError.new_terraform_error(service.scope, target.execution_id, e) from e

    chart = HelmChart(
        name=service.external_name_release_name,
        path=external_name_dir,
        namespace=target.namespace,
        timeout_in_seconds=target.config.helm_timeout_seconds,
    )
    try:
        await target.helm.upgrade(chart, dry_run=target.dry_run)
    except CommandError as e:
        raise EngineError.new_helm_error(service.scope, target.execution_id, chart.name, e) from e
    logger.info(f"[{service.scope}] managed database provisioned")


# ── delete ──────────────────────────────────────────────────────────


async def delete_stateless(target, service, on_error=False):
    """Uninstall the service's release if it ever deployed successfully."""
    if on_error:
        info = await collect_debug_info(target, service)
        for line in info.lines():
            logger.info(f"[{service.scope}] {line}")

    if target.dry_run:
        logger.info(f"[dry-run] uninstall release {service.helm_release_name}")
        return

    if await uninstall_if_deployed(target, service, service.helm_release_name):
        await wait_for_pods_count(target, service, 0, f"Pods of {service.scope} termination")


async def delete_stateful(target, service, on_error=False):
    """Managed: apply then destroy the terraform module and drop its state secret."""
    if not target.is_managed:
        await delete_stateless(target, service, on_error=on_error)
        return

    if target.dry_run:
        logger.info(f"[dry-run] terraform destroy for {service.scope}")
        return

    context = service.template_context(target).to_template_context()
    workspace = service.workspace_directory(target.config)
    render_templates(target, service, service.terraform_common_dir(target), workspace, context)
    render_templates(target, service, service.terraform_resource_dir(target), workspace, context)

    try:
        await target.terraform(workspace).init_validate_destroy()
    except CommandError as e:
        raise EngineError.new_terraform_error(service.scope, target.execution_id, e) from e

    secret = get_tfstate_name(service)
    try:
        await target.kubectl.delete_secret(target.namespace, secret)
    except CommandError as e:
        raise EngineError.new_k8s_delete_secret(service.scope, target.execution_id, secret, e) from e

    await uninstall_if_deployed(target, service, service.external_name_release_name)


# ── pause ───────────────────────────────────────────────────────────


def _workload_kind(service) -> str:
    return "statefulset" if service.is_statefulset else "deployment"


async def pause_service(target, service):
    """Scale the service's workload to zero and wait for its pods to go away.

    Volumes are kept: the workload is scaled, not deleted.
    """
    kind = _workload_kind(service)
    if target.dry_run:
        logger.info(f"[dry-run] scale {kind} {service.selector} to 0")
        return
    try:
        await target.kubectl.scale(kind, target.namespace, service.selector, 0)
    except CommandError as e:
        raise EngineError.new_k8s_scale(service.scope, target.execution_id, service.selector, 0, e) from e
    await wait_for_pods_count(target, service, 0, f"Scale down of {service.scope}")
    logger.info(f"[{service.scope}] paused")


async def unpause_service_if_needed(target, service):
    """Scale a paused workload (0 replicas) back to one replica before an upgrade."""
    kind = _workload_kind(service)
    try:
        replicas = await target.kubectl.get_replicas(kind, target.namespace, service.selector)
        if any(count == 0 for count in replicas.values()):
            logger.info(f"[{service.scope}] resuming paused {kind}")
            await target.kubectl.scale(kind, target.namespace, service.selector, 1)
    except CommandError as e:
        raise EngineError.new_k8s_scale(service.scope, target.execution_id, service.selector, 1, e) from e

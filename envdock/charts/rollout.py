"""Level-by-level rollout of infrastructure charts."""

import asyncio
import logging
import os

from envdock.errors import CommandError, EngineError, Scope, ScopeKind
from envdock.models import HelmAction, HelmChart, first_successful_row

logger = logging.getLogger(__name__)


def _chart_scope(chart: HelmChart) -> Scope:
    return Scope(ScopeKind.INFRASTRUCTURE, id=chart.name, name=chart.namespace)


def check_prerequisites(chart: HelmChart, execution_id=""):
    for values_file in chart.values_files:
        if not os.path.isfile(values_file):
            raise EngineError.new_values_file_not_found(_chart_scope(chart), execution_id, values_file)


async def _log_namespace_events(kubectl, chart: HelmChart):
    try:
        events = await kubectl.get_events(chart.namespace)
    except CommandError as e:
        logger.warning(f"Unable to fetch events of namespace {chart.namespace}: {e.message_safe}")
        return
    for event in events:
        obj = event.get("involvedObject", {})
        logger.warning(
            f"[{chart.namespace}] {event.get('type', '')} {obj.get('kind', '')}/{obj.get('name', '')}: "
            f"{event.get('reason', '')} {event.get('message', '')}"
        )


async def deploy_chart(helm, kubectl, chart: HelmChart, execution_id=""):
    """Run one chart: prerequisites, crash-loop cleanup, then its helm action."""
    scope = _chart_scope(chart)
    check_prerequisites(chart, execution_id)

    if chart.action is HelmAction.SKIP:
        logger.info(f"Skipping chart {chart.name}")
        return

    if chart.action is HelmAction.DESTROY:
        try:
            await helm.uninstall(chart.name, chart.namespace)
        except CommandError as e:
            raise EngineError.new_helm_uninstall_error(scope, execution_id, chart.name, e) from e
        return

    if chart.k8s_selector and kubectl is not None:
        try:
            await kubectl.delete_crash_looping_pods(chart.namespace, chart.k8s_selector)
        except CommandError as e:
            raise EngineError.new_k8s_get_pods(scope, execution_id, chart.k8s_selector, e) from e

    try:
        rows = await helm.upgrade(chart)
    except CommandError as e:
        if kubectl is not None:
            await _log_namespace_events(kubectl, chart)
        raise EngineError.new_helm_error(scope, execution_id, chart.name, e) from e

    if first_successful_row(rows) is None:
        if kubectl is not None:
            await _log_namespace_events(kubectl, chart)
        raise EngineError.new_no_successful_revision(
            scope, execution_id, chart.name, f"Chart {chart.name} has no successfully deployed revision"
        )
    logger.info(f"Chart {chart.name} deployed")


async def _diff_level(helm, level: list[HelmChart]):
    for chart in level:
        if chart.action is not HelmAction.DEPLOY:
            continue
        try:
            diff = await helm.upgrade_diff(chart)
        except CommandError as e:
            logger.warning(f"Unable to diff chart {chart.name}: {e.message_safe}")
            continue
        if diff.strip():
            logger.info(f"Changes for chart {chart.name}:\n{diff}")


async def deploy_charts_levels(helm, levels: list[list[HelmChart]], kubectl=None, dry_run=False, execution_id=""):
    """Deploy chart levels in order, the charts of one level concurrently.

    Every chart of a level runs to completion before the first failure of that
    level is raised; later levels are never started. In dry-run mode charts
    are only diffed.
    """
    for index, level in enumerate(levels, start=1):
        if not level:
            continue
        await _diff_level(helm, level)
        if dry_run:
            logger.info(f"[dry-run] level {index}: {', '.join(c.name for c in level)}")
            continue

        logger.info(f"Deploying charts level {index}: {', '.join(c.name for c in level)}")
        results = await asyncio.gather(
            *(deploy_chart(helm, kubectl, chart, execution_id) for chart in level),
            return_exceptions=True,
        )
        errors = [r for r in results if isinstance(r, BaseException)]
        for chart, result in zip(level, results):
            if isinstance(result, BaseException):
                logger.error(f"Chart {chart.name} failed: {result}")
        if errors:
            raise errors[0]

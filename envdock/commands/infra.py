"""Infra command: roll out the cluster infrastructure charts level by level."""

import asyncio
import logging
import sys

from envdock.charts import ChartsConfigPrerequisites, deploy_charts_levels, gen_charts_to_deploy
from envdock.commands import add_common_args, load_cluster, load_config_from_args
from envdock.errors import EngineError, Scope, ScopeKind
from envdock.logging_setup import setup_cli_logging
from envdock.models import Action
from envdock.progress import ListenersHelper, LoggingProgressListener, send_progress_on_long_task
from envdock.target import Executors

logger = logging.getLogger(__name__)


def handle_infra(args):
    """Handle the infra command."""
    setup_cli_logging(verbose=args.verbose)
    asyncio.run(_handle_infra(args))


async def _handle_infra(args):
    try:
        config = load_config_from_args(args)
        cluster = load_cluster(args.cluster)
    except EngineError as e:
        logger.error(f"Error: {e}")
        sys.exit(1)

    prereqs = ChartsConfigPrerequisites(
        cluster_id=cluster.id,
        cluster_name=cluster.name,
        region=cluster.region,
        lib_root_dir=config.lib_root_dir,
        dns_provider=cluster.dns_provider,
        acme_email=cluster.acme_email,
        acme_server_url=config.acme_server_url,
        ff_metrics_history_enabled=args.metrics_history,
        ff_log_history_enabled=args.log_history,
        disable_pleco=args.disable_pleco,
    )
    levels = gen_charts_to_deploy(prereqs)
    executors = Executors.for_cluster(cluster, config)
    scope = Scope(ScopeKind.INFRASTRUCTURE, id=cluster.id, name=cluster.name)

    try:
        await send_progress_on_long_task(
            ListenersHelper([LoggingProgressListener()]),
            scope,
            Action.CREATE,
            deploy_charts_levels(
                executors.helm,
                levels,
                kubectl=executors.kubectl,
                dry_run=config.dry_run,
                execution_id=config.execution_id,
            ),
            execution_id=config.execution_id,
            interval=config.progress_interval_seconds,
            message=f"Infrastructure '{cluster.name} ({cluster.id})' deployment is in progress...",
        )
    except EngineError as e:
        logger.error(f"Infrastructure deployment failed: {e}")
        if e.hint:
            logger.error(f"Hint: {e.hint}")
        sys.exit(1)

    logger.info(f"Infrastructure of cluster {cluster.name} deployed")


def register_infra_command(subparsers):
    """Register the infra subcommand."""
    parser = subparsers.add_parser("infra", help="Deploy the cluster infrastructure charts")
    add_common_args(parser)
    parser.add_argument("--metrics-history", action="store_true", help="Deploy the metrics history stack")
    parser.add_argument("--log-history", action="store_true", help="Deploy the log history stack")
    parser.add_argument("--disable-pleco", action="store_true", help="Do not deploy the resource cleaner")
    parser.set_defaults(func=handle_infra)

"""Environment commands: deploy, pause and delete every service of an environment."""

import asyncio
import logging
import sys

from envdock.commands import add_common_args, build_target, load_cluster, load_config_from_args
from envdock.environment import delete_environment, deploy_environment, load_environment, pause_environment
from envdock.errors import EngineError
from envdock.logging_setup import setup_cli_logging

logger = logging.getLogger(__name__)

_OPERATIONS = {
    "deploy": deploy_environment,
    "pause": pause_environment,
    "delete": delete_environment,
}


def handle_environment(args):
    """Handle the deploy, pause and delete commands."""
    setup_cli_logging(verbose=args.verbose)
    asyncio.run(_handle_environment(args))


async def _handle_environment(args):
    try:
        config = load_config_from_args(args)
        cluster = load_cluster(args.cluster)
        environment = load_environment(args.environment)
    except EngineError as e:
        logger.error(f"Error: {e}")
        sys.exit(1)

    target = build_target(cluster, environment, config)
    resources = environment.required_resources()
    logger.info(
        f"Environment {environment.id} ({environment.kind.value}) on cluster {cluster.name}: "
        f"{resources.pods} pods, {resources.cpu:g} CPU, {resources.ram_in_mib} MiB"
    )
    if config.dry_run:
        logger.info("[dry-run] no change will be applied to the cluster")

    try:
        deployment = await _OPERATIONS[args.command](environment, target)
    except EngineError as e:
        logger.error(f"{args.command.capitalize()} failed: {e}")
        if e.hint:
            logger.error(f"Hint: {e.hint}")
        if e.debug_info is not None:
            for line in e.debug_info.lines():
                logger.debug(line)
        sys.exit(1)

    logger.info(f"{args.command.capitalize()} of environment {environment.id} done ({len(deployment.deployed_services)} service(s))")


def register_environment_commands(subparsers):
    """Register the deploy, pause and delete subcommands."""
    helps = {
        "deploy": "Deploy an environment's services",
        "pause": "Pause an environment's services, keeping their data",
        "delete": "Delete an environment's services and namespace",
    }
    for name, help_text in helps.items():
        parser = subparsers.add_parser(name, help=help_text)
        parser.add_argument("--environment", required=True, help="Path to environment YAML file")
        add_common_args(parser)
        parser.set_defaults(func=handle_environment)

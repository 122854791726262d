#!/usr/bin/env python3
"""Environment deployment engine: CLI entrypoint."""

import argparse

from envdock.commands.environment import register_environment_commands
from envdock.commands.infra import register_infra_command


def main():
    parser = argparse.ArgumentParser(description="Deploy environments to Kubernetes with Helm and Terraform")
    subparsers = parser.add_subparsers(dest="command", required=True)

    # deploy, pause, delete
    register_environment_commands(subparsers)
    register_infra_command(subparsers)

    args = parser.parse_args()
    args.func(args)


if __name__ == "__main__":
    main()

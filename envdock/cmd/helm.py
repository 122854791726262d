"""Helm executor: upgrade/install, history, uninstall and diff of releases."""

import json
import logging

from envdock.cmd.shell import run_shell_cmd
from envdock.errors import CommandError
from envdock.models.helm import HelmChart, HelmHistoryRow

logger = logging.getLogger(__name__)

_RELEASE_NOT_FOUND = "release: not found"
_PENDING_OPERATION = "another operation (install/upgrade/rollback) is in progress"


def _hint_for(stderr: str) -> str | None:
    if _PENDING_OPERATION in stderr:
        return "A previous Helm operation is still pending on this release; wait for it or roll it back."
    return None


class Helm:
    """Run the ``helm`` binary against one cluster.

    Args:
        kubeconfig_path: kubeconfig passed to every invocation
        envs: list of (key, value) pairs exported to the process, typically
            the provider credentials
        run_cmd: async callable(command, env=None, cwd=None, timeout=600, dry_run=False)
            -> (returncode, stdout, stderr)
    """

    def __init__(self, kubeconfig_path, envs=None, run_cmd=run_shell_cmd):
        self.kubeconfig_path = kubeconfig_path
        self.envs = list(envs or [])
        self.run_cmd = run_cmd

    async def _run(self, command, timeout=600, dry_run=False):
        rc, stdout, stderr = await self.run_cmd(command, env=self.envs, timeout=timeout, dry_run=dry_run)
        if rc != 0:
            raise CommandError.from_result(command, rc, stdout, stderr, hint=_hint_for(stderr))
        return stdout

    def _upgrade_args(self, chart: HelmChart) -> list[str]:
        args = [
            chart.name,
            chart.path,
            "--kubeconfig", self.kubeconfig_path,
            "--namespace", chart.namespace,
            "--create-namespace",
            "--history-max", "50",
            "--timeout", f"{chart.timeout_in_seconds}s",
        ]
        for values_file in chart.values_files:
            args += ["-f", values_file]
        for value in chart.values:
            args += ["--set", f"{value.key}={value.value}"]
        return args

    async def upgrade(self, chart: HelmChart, dry_run=False) -> list[HelmHistoryRow]:
        """Install or upgrade ``chart`` and return the release history."""
        command = ["helm", "upgrade", "--install", *self._upgrade_args(chart)]
        if chart.atomic:
            command.append("--atomic")
        if chart.wait:
            command.append("--wait")
        logger.info(f"Deploying Helm chart {chart.name} in namespace {chart.namespace}...")
        # Leave headroom over helm's own timeout so helm reports the failure
        await self._run(command, timeout=chart.timeout_in_seconds + 60, dry_run=dry_run)
        if dry_run:
            return []
        return await self.history(chart.name, chart.namespace)

    async def upgrade_diff(self, chart: HelmChart) -> str:
        """Preview the changes ``upgrade`` would apply (needs the helm-diff plugin)."""
        command = ["helm", "diff", "upgrade", "--install", *self._upgrade_args(chart)]
        return await self._run(command, timeout=chart.timeout_in_seconds)

    async def history(self, release, namespace) -> list[HelmHistoryRow]:
        """Release revisions; an unknown release has an empty history."""
        command = [
            "helm", "history", release,
            "--kubeconfig", self.kubeconfig_path,
            "--namespace", namespace,
            "--max", "10",
            "-o", "json",
        ]
        rc, stdout, stderr = await self.run_cmd(command, env=self.envs, timeout=60)
        if rc != 0:
            if _RELEASE_NOT_FOUND in stderr:
                return []
            raise CommandError.from_result(command, rc, stdout, stderr)
        try:
            rows = json.loads(stdout) if stdout.strip() else []
        except json.JSONDecodeError as e:
            raise CommandError(f"Unable to parse history of release {release}", full_details=stdout) from e
        return [HelmHistoryRow.from_json(row) for row in rows]

    async def uninstall(self, release, namespace, dry_run=False):
        """Remove a release; removing an absent release is not an error."""
        command = [
            "helm", "uninstall", release,
            "--kubeconfig", self.kubeconfig_path,
            "--namespace", namespace,
            "--wait",
        ]
        logger.info(f"Uninstalling Helm release {release} from namespace {namespace}...")
        rc, stdout, stderr = await self.run_cmd(command, env=self.envs, timeout=600, dry_run=dry_run)
        if rc != 0 and _RELEASE_NOT_FOUND not in stderr:
            raise CommandError.from_result(command, rc, stdout, stderr, hint=_hint_for(stderr))

"""kubectl executor: namespaces, scaling, pod introspection and secrets."""

import json
import logging
from dataclasses import dataclass

from envdock.cmd.shell import run_shell_cmd
from envdock.errors import CommandError

logger = logging.getLogger(__name__)

_NO_OBJECTS_TO_SCALE = "no objects passed to scale"


@dataclass
class PodStatus:
    """Condensed status of one pod."""

    name: str
    phase: str
    ready: bool
    restart_count: int = 0
    waiting_reason: str | None = None
    last_terminated_reason: str | None = None
    last_terminated_message: str | None = None
    last_terminated_exit_code: int | None = None

    @classmethod
    def from_json(cls, item: dict) -> "PodStatus":
        status = item.get("status", {})
        containers = status.get("containerStatuses", [])
        waiting_reason = None
        terminated = {}
        for container in containers:
            waiting = container.get("state", {}).get("waiting")
            if waiting and waiting.get("reason"):
                waiting_reason = waiting["reason"]
            last_terminated = container.get("lastState", {}).get("terminated")
            if last_terminated:
                terminated = last_terminated
        return cls(
            name=item.get("metadata", {}).get("name", ""),
            phase=status.get("phase", "Unknown"),
            ready=bool(containers) and all(c.get("ready", False) for c in containers),
            restart_count=sum(c.get("restartCount", 0) for c in containers),
            waiting_reason=waiting_reason,
            last_terminated_reason=terminated.get("reason"),
            last_terminated_message=terminated.get("message"),
            last_terminated_exit_code=terminated.get("exitCode"),
        )

    @property
    def is_crash_looping(self) -> bool:
        return self.waiting_reason == "CrashLoopBackOff"


class Kubectl:
    """Run ``kubectl`` against one cluster.

    Args:
        kubeconfig_path: kubeconfig passed to every invocation
        envs: list of (key, value) pairs exported to the process
        run_cmd: async callable(command, env=None, cwd=None, timeout=600, dry_run=False)
            -> (returncode, stdout, stderr)
    """

    def __init__(self, kubeconfig_path, envs=None, run_cmd=run_shell_cmd):
        self.kubeconfig_path = kubeconfig_path
        self.envs = list(envs or [])
        self.run_cmd = run_cmd

    def _command(self, *args):
        return ["kubectl", "--kubeconfig", self.kubeconfig_path, *args]

    async def _exec(self, *args, timeout=300):
        command = self._command(*args)
        rc, stdout, stderr = await self.run_cmd(command, env=self.envs, timeout=timeout)
        return command, rc, stdout, stderr

    async def _run(self, *args, timeout=300):
        command, rc, stdout, stderr = await self._exec(*args, timeout=timeout)
        if rc != 0:
            raise CommandError.from_result(command, rc, stdout, stderr)
        return stdout

    async def _get_json(self, *args) -> dict:
        stdout = await self._run("get", *args, "-o", "json")
        try:
            return json.loads(stdout) if stdout.strip() else {}
        except json.JSONDecodeError as e:
            raise CommandError(f"Unable to parse kubectl output for `get {' '.join(args)}`", full_details=stdout) from e

    # ── namespaces ──────────────────────────────────────────────────

    async def namespace_exists(self, namespace) -> bool:
        command, rc, stdout, stderr = await self._exec("get", "namespace", namespace, "-o", "name")
        if rc == 0:
            return True
        if "NotFound" in stderr:
            return False
        raise CommandError.from_result(command, rc, stdout, stderr)

    async def create_namespace_if_not_exists(self, namespace, labels=None):
        """Create ``namespace`` when absent, then merge ``labels`` onto it.

        Safe to call repeatedly: an existing namespace only gets its labels
        overwritten with the same values.
        """
        if not await self.namespace_exists(namespace):
            command, rc, stdout, stderr = await self._exec("create", "namespace", namespace)
            if rc != 0 and "AlreadyExists" not in stderr:
                raise CommandError.from_result(command, rc, stdout, stderr)
            logger.info(f"Namespace {namespace} created")
        if labels:
            pairs = [f"{key}={value}" for key, value in labels.items()]
            await self._run("label", "namespace", namespace, *pairs, "--overwrite")

    async def delete_namespace(self, namespace):
        await self._run("delete", "namespace", namespace, "--ignore-not-found", timeout=900)

    # ── workloads ───────────────────────────────────────────────────

    async def scale(self, kind, namespace, selector, replicas: int):
        """Scale every ``kind`` (deployment/statefulset) matching ``selector``."""
        command, rc, stdout, stderr = await self._exec(
            "scale", kind, "--namespace", namespace, "-l", selector, f"--replicas={replicas}"
        )
        if rc != 0 and _NO_OBJECTS_TO_SCALE not in stderr:
            raise CommandError.from_result(command, rc, stdout, stderr)

    async def get_replicas(self, kind, namespace, selector) -> dict[str, int]:
        """Current replica count per workload name."""
        data = await self._get_json(kind, "--namespace", namespace, "-l", selector)
        return {
            item["metadata"]["name"]: item.get("status", {}).get("replicas", 0) or 0
            for item in data.get("items", [])
        }

    async def get_pods(self, namespace, selector) -> list[PodStatus]:
        data = await self._get_json("pods", "--namespace", namespace, "-l", selector)
        return [PodStatus.from_json(item) for item in data.get("items", [])]

    async def delete_pod(self, namespace, name):
        await self._run("delete", "pod", name, "--namespace", namespace, "--ignore-not-found")

    async def delete_crash_looping_pods(self, namespace, selector):
        """Delete pods stuck in CrashLoopBackOff so an upgrade starts from fresh ones."""
        for pod in await self.get_pods(namespace, selector):
            if pod.is_crash_looping:
                logger.info(f"Deleting crash looping pod {pod.name} in {namespace}")
                await self.delete_pod(namespace, pod.name)

    # ── introspection ───────────────────────────────────────────────

    async def describe_pods(self, namespace, selector) -> str:
        return await self._run("describe", "pods", "--namespace", namespace, "-l", selector)

    async def logs(self, namespace, selector, tail=1000) -> list[str]:
        stdout = await self._run(
            "logs", "--namespace", namespace, "-l", selector, "--all-containers", "--prefix", f"--tail={tail}"
        )
        return stdout.splitlines()

    async def get_events(self, namespace, field_selector=None) -> list[dict]:
        args = ["events", "--namespace", namespace]
        if field_selector:
            args += ["--field-selector", field_selector]
        data = await self._get_json(*args)
        return data.get("items", [])

    async def get_load_balancer_hostname(self, namespace, selector) -> str | None:
        """Hostname (or IP) of the first LoadBalancer service matching ``selector``."""
        data = await self._get_json("services", "--namespace", namespace, "-l", selector)
        for item in data.get("items", []):
            for ingress in item.get("status", {}).get("loadBalancer", {}).get("ingress", []) or []:
                address = ingress.get("hostname") or ingress.get("ip")
                if address:
                    return address
        return None

    # ── secrets ─────────────────────────────────────────────────────

    async def delete_secret(self, namespace, name):
        await self._run("delete", "secret", name, "--namespace", namespace, "--ignore-not-found")

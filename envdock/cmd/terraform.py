"""Terraform executor working on one rendered module directory."""

import asyncio
import logging

from envdock.cmd.shell import run_shell_cmd
from envdock.errors import CommandError
from envdock.retry import Retry, RetryExhausted, RetryPolicy, retry

logger = logging.getLogger(__name__)

PLAN_FILE = "tf_plan"

_KNOWN_FAILURES = [
    ("Error acquiring the state lock", "Terraform state is locked by another run; wait for it to finish or release the lock."),
    ("LimitExceeded", "A cloud provider quota was reached; raise the quota or free resources."),
    ("QuotaExceeded", "A cloud provider quota was reached; raise the quota or free resources."),
    ("InvalidClientTokenId", "Cloud provider credentials were rejected; check the access keys."),
]


def _hint_for(output: str) -> str | None:
    for needle, hint in _KNOWN_FAILURES:
        if needle in output:
            return hint
    return None


class Terraform:
    """Run ``terraform`` commands inside ``root_dir``.

    Only ``init`` and ``destroy`` are retried: provider registry downloads and
    cloud-side deletions fail transiently, the other steps do not.
    """

    def __init__(
        self,
        root_dir,
        envs=None,
        run_cmd=run_shell_cmd,
        plugin_cache_dir=None,
        init_policy: RetryPolicy | None = None,
        destroy_policy: RetryPolicy | None = None,
        sleep=asyncio.sleep,
    ):
        self.root_dir = root_dir
        self.envs = list(envs or [])
        if plugin_cache_dir:
            self.envs.append(("TF_PLUGIN_CACHE_DIR", plugin_cache_dir))
        self.envs.append(("TF_IN_AUTOMATION", "1"))
        self.run_cmd = run_cmd
        self.init_policy = init_policy or RetryPolicy("fixed", 3000, 5)
        self.destroy_policy = destroy_policy or RetryPolicy("fixed", 3000, 5)
        self.sleep = sleep

    async def _run(self, *args, timeout=3600):
        command = ["terraform", *args]
        rc, stdout, stderr = await self.run_cmd(command, env=self.envs, cwd=self.root_dir, timeout=timeout)
        if rc != 0:
            raise CommandError.from_result(command, rc, stdout, stderr, hint=_hint_for(stderr + stdout))
        return stdout

    async def _retried(self, policy: RetryPolicy, description, *args):
        last_error = None

        async def attempt():
            nonlocal last_error
            try:
                return await self._run(*args)
            except CommandError as e:
                last_error = e
                logger.warning(f"{description} failed, retrying: {e.message_safe}")
                return Retry(e.message_safe)

        try:
            return await retry(policy.schedule(), attempt, sleep=self.sleep, description=description)
        except RetryExhausted:
            raise last_error from None

    async def init(self):
        return await self._retried(self.init_policy, "terraform init", "init", "-no-color", "-input=false")

    async def validate(self):
        return await self._run("validate", "-no-color")

    async def plan(self):
        return await self._run("plan", "-no-color", "-input=false", f"-out={PLAN_FILE}")

    async def apply(self):
        return await self._run("apply", "-no-color", "-input=false", "-auto-approve", PLAN_FILE)

    async def destroy(self):
        return await self._retried(self.destroy_policy, "terraform destroy", "destroy", "-no-color", "-input=false", "-auto-approve")

    async def init_validate_plan_apply(self, dry_run=False):
        """Provision the module; under dry run everything but ``apply`` runs."""
        logger.info(f"Running terraform in {self.root_dir}...")
        await self.init()
        await self.validate()
        await self.plan()
        if dry_run:
            logger.info(f"[dry-run] terraform apply skipped in {self.root_dir}")
            return
        await self.apply()

    async def init_validate_destroy(self):
        """Destroy the module's resources.

        A fresh plan/apply runs first so the state covers every resource the
        module declares before destroying it.
        """
        logger.info(f"Destroying terraform resources in {self.root_dir}...")
        await self.init()
        await self.validate()
        await self.plan()
        await self.apply()
        await self.destroy()

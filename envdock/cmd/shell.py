"""Shell command execution helper shared by the Helm, Terraform and kubectl executors."""

import asyncio
import logging
import os

logger = logging.getLogger(__name__)


def build_env(envs=None):
    """Process environment with ``envs`` (list of (key, value) pairs) layered on top."""
    env = dict(os.environ)
    for key, value in envs or []:
        env[key] = value
    return env


async def run_shell_cmd(command, env=None, cwd=None, timeout=600, dry_run=False):
    """Run a command and return (returncode, stdout, stderr).

    Args:
        command: list of command arguments
        env: optional list of (key, value) pairs added to the process environment
        cwd: working directory for the command
        timeout: maximum seconds to wait for the command
        dry_run: if True, log the command instead of executing it

    Returns:
        (returncode, stdout, stderr) tuple
    """
    if dry_run:
        logger.info(f"[dry-run] {' '.join(command)}")
        return 0, "", ""

    logger.debug(f"$ {' '.join(command)}")
    try:
        proc = await asyncio.create_subprocess_exec(
            *command,
            cwd=cwd,
            env=build_env(env),
            stdout=asyncio.subprocess.PIPE,
            stderr=asyncio.subprocess.PIPE,
        )
        stdout_bytes, stderr_bytes = await asyncio.wait_for(proc.communicate(), timeout=timeout)
        stdout = stdout_bytes.decode() if stdout_bytes else ""
        stderr = stderr_bytes.decode() if stderr_bytes else ""
        return proc.returncode, stdout, stderr
    except TimeoutError:
        logger.error(f"Command timed out after {timeout}s: {' '.join(command)}")
        proc.kill()
        await proc.wait()
        return 1, "", f"timed out after {timeout}s"
    except FileNotFoundError:
        logger.error(f"Error: '{command[0]}' not found. Is it installed and on PATH?")
        return 1, "", f"'{command[0]}' not found"

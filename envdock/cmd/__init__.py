"""Executors for the external tools: helm, terraform and kubectl."""

from envdock.cmd.helm import Helm
from envdock.cmd.kubectl import Kubectl, PodStatus
from envdock.cmd.shell import run_shell_cmd
from envdock.cmd.terraform import Terraform

__all__ = [
    "Helm",
    "Kubectl",
    "PodStatus",
    "Terraform",
    "run_shell_cmd",
]

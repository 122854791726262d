"""Helm chart descriptions and release history rows."""

from dataclasses import dataclass, field
from enum import Enum

DEFAULT_HELM_TIMEOUT_SECONDS = 600


class HelmAction(Enum):
    DEPLOY = "deploy"
    DESTROY = "destroy"
    SKIP = "skip"


@dataclass
class ChartSetValue:
    """A single ``--set key=value`` override."""

    key: str
    value: str


@dataclass
class HelmChart:
    """A chart to install or remove, with its ordered value overrides."""

    name: str
    path: str
    namespace: str = "kube-system"
    values: list[ChartSetValue] = field(default_factory=list)
    values_files: list[str] = field(default_factory=list)
    timeout_in_seconds: int = DEFAULT_HELM_TIMEOUT_SECONDS
    action: HelmAction = HelmAction.DEPLOY
    k8s_selector: str | None = None
    atomic: bool = True
    wait: bool = True


@dataclass
class HelmHistoryRow:
    """One revision of a Helm release, as reported by ``helm history -o json``."""

    revision: int
    status: str
    chart: str = ""
    app_version: str = ""
    description: str = ""
    updated: str = ""

    @property
    def is_successfully_deployed(self) -> bool:
        return self.status == "deployed"

    @classmethod
    def from_json(cls, d: dict) -> "HelmHistoryRow":
        return cls(
            revision=int(d.get("revision", 0)),
            status=d.get("status", ""),
            chart=d.get("chart", ""),
            app_version=d.get("app_version", ""),
            description=d.get("description", ""),
            updated=d.get("updated", ""),
        )


def first_successful_row(rows: list[HelmHistoryRow]) -> HelmHistoryRow | None:
    """Most recent successfully deployed revision, if any."""
    for row in sorted(rows, key=lambda r: r.revision, reverse=True):
        if row.is_successfully_deployed:
            return row
    return None

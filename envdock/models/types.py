"""Core enums and value types shared by services, environments and executors."""

import re
from dataclasses import dataclass
from enum import Enum


class Action(Enum):
    """Action requested for a service during one orchestration pass."""

    CREATE = "create"
    PAUSE = "pause"
    DELETE = "delete"
    NOTHING = "nothing"
    # Stateful-only actions, modelled but not implemented by any service
    BACKUP = "backup"
    CLONE = "clone"
    UPGRADE = "upgrade"
    DOWNGRADE = "downgrade"

    @property
    def display(self) -> str:
        """Human-readable noun used in progress messages."""
        return {
            Action.CREATE: "Deployment",
            Action.PAUSE: "Pause",
            Action.DELETE: "Deletion",
        }.get(self, self.value.capitalize())


class Phase(Enum):
    """Sub-hook of a lifecycle action: do the work, verify it, or compensate."""

    RUN = "run"
    CHECK = "check"
    ERROR = "error"


class ServiceKind(Enum):
    APPLICATION = "application"
    CONTAINER = "container"
    ROUTER = "router"
    DATABASE = "database"

    @property
    def is_stateful(self) -> bool:
        return self is ServiceKind.DATABASE


class DatabaseKind(Enum):
    POSTGRESQL = "postgresql"
    MYSQL = "mysql"
    MONGODB = "mongodb"
    REDIS = "redis"

    @property
    def default_port(self) -> int:
        return {
            DatabaseKind.POSTGRESQL: 5432,
            DatabaseKind.MYSQL: 3306,
            DatabaseKind.MONGODB: 27017,
            DatabaseKind.REDIS: 6379,
        }[self]


class DatabaseMode(Enum):
    """Whether a database is provisioned by the cloud provider or in-cluster."""

    MANAGED = "managed"
    CONTAINER = "container"


class EnvironmentKind(Enum):
    PRODUCTION = "production"
    DEVELOPMENT = "development"


def sanitize_name(prefix: str, name: str) -> str:
    """Kubernetes-safe resource name: ``<prefix>-<name>`` lowercased, dashes only."""
    return re.sub(r"[^a-z0-9-]", "-", f"{prefix}-{name}".lower())


def cut(text: str, length: int) -> str:
    return text[:length]


@dataclass
class EnvironmentVariable:
    key: str
    value: str


@dataclass
class Storage:
    """Persistent volume attached to a stateless service."""

    id: str
    name: str
    storage_type: str
    size_in_gib: int
    mount_point: str
    snapshot_retention_in_days: int = 0

    @classmethod
    def from_dict(cls, d: dict) -> "Storage":
        return cls(
            id=d["id"],
            name=d["name"],
            storage_type=d.get("storage_type", "ssd"),
            size_in_gib=int(d.get("size_in_gib", 10)),
            mount_point=d["mount_point"],
            snapshot_retention_in_days=int(d.get("snapshot_retention_in_days", 0)),
        )


@dataclass
class Port:
    port: int
    publicly_accessible: bool = False
    name: str | None = None


@dataclass
class CustomDomain:
    domain: str
    target_domain: str


@dataclass
class Route:
    path: str
    application_name: str


@dataclass
class EnvironmentResources:
    """Cluster capacity an environment needs."""

    pods: int = 0
    cpu: float = 0.0
    ram_in_mib: int = 0

    def __add__(self, other: "EnvironmentResources") -> "EnvironmentResources":
        return EnvironmentResources(
            pods=self.pods + other.pods,
            cpu=self.cpu + other.cpu,
            ram_in_mib=self.ram_in_mib + other.ram_in_mib,
        )


def parse_cpus(value) -> float:
    """Parse a Kubernetes CPU quantity ("500m", "2", 1.5) into cores."""
    text = str(value).strip()
    if text.endswith("m"):
        return int(text[:-1]) / 1000
    return float(text)

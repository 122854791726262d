"""Data model: enums, value types, cluster description and template contexts."""

from envdock.models.cluster import (
    AwsCredentials,
    Cluster,
    CredentialsProvider,
    DigitalOceanCredentials,
    ScalewayCredentials,
    credentials_from_dict,
)
from envdock.models.context import (
    CommonTemplateContext,
    DatabaseTemplateContext,
    RouterTemplateContext,
    ServiceTemplateContext,
)
from envdock.models.helm import (
    DEFAULT_HELM_TIMEOUT_SECONDS,
    ChartSetValue,
    HelmAction,
    HelmChart,
    HelmHistoryRow,
    first_successful_row,
)
from envdock.models.types import (
    Action,
    CustomDomain,
    DatabaseKind,
    DatabaseMode,
    EnvironmentKind,
    EnvironmentResources,
    EnvironmentVariable,
    Phase,
    Port,
    Route,
    ServiceKind,
    Storage,
    cut,
    parse_cpus,
    sanitize_name,
)

__all__ = [
    "DEFAULT_HELM_TIMEOUT_SECONDS",
    "Action",
    "AwsCredentials",
    "ChartSetValue",
    "Cluster",
    "CommonTemplateContext",
    "CredentialsProvider",
    "CustomDomain",
    "DatabaseKind",
    "DatabaseMode",
    "DatabaseTemplateContext",
    "DigitalOceanCredentials",
    "EnvironmentKind",
    "EnvironmentResources",
    "EnvironmentVariable",
    "HelmAction",
    "HelmChart",
    "HelmHistoryRow",
    "Phase",
    "Port",
    "Route",
    "RouterTemplateContext",
    "ScalewayCredentials",
    "ServiceKind",
    "ServiceTemplateContext",
    "Storage",
    "credentials_from_dict",
    "cut",
    "first_successful_row",
    "parse_cpus",
    "sanitize_name",
]

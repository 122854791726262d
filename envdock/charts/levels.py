"""Infrastructure charts of a cluster, grouped into dependency-ordered levels.

Level N only contains charts whose dependencies live in levels < N:

1. storage classes, DNS configuration, CNI
2. metrics stack operator
3. autoscaler, IAM user mapping, network policies, log shipping
4. metrics server, node termination handler, external-dns, metrics adapters
5. ingress controller, cert-manager, resource cleaner
6. cert-manager issuers and the agents, which need DNS records and TLS
"""

import os
from dataclasses import dataclass

from envdock.config import LETSENCRYPT_PROD_URL
from envdock.models import ChartSetValue, HelmChart

PROMETHEUS_NAMESPACE = "prometheus"
LOGGING_NAMESPACE = "logging"
SYSTEM_NAMESPACE = "envdock-system"


@dataclass
class ChartsConfigPrerequisites:
    """Cluster facts and feature flags the infrastructure charts depend on."""

    cluster_id: str
    cluster_name: str
    region: str
    lib_root_dir: str
    dns_provider: str = "cloudflare"
    acme_email: str = ""
    acme_server_url: str = LETSENCRYPT_PROD_URL
    ff_metrics_history_enabled: bool = False
    ff_log_history_enabled: bool = False
    disable_pleco: bool = False

    def bootstrap_chart(self, name, provider_specific=False) -> str:
        base = "aws" if provider_specific else "common"
        return os.path.join(self.lib_root_dir, base, "bootstrap", "charts", name)

    def chart_values(self, name) -> str:
        return os.path.join(self.lib_root_dir, "aws", "bootstrap", "chart_values", f"{name}.yaml")


def _values(**pairs) -> list[ChartSetValue]:
    # Keyword names use "__" for "." so nested helm keys stay readable
    return [ChartSetValue(key.replace("__", "."), str(value)) for key, value in pairs.items()]


def gen_charts_to_deploy(prereqs: ChartsConfigPrerequisites) -> list[list[HelmChart]]:
    """Return the six chart levels; feature flags only append to their own level."""
    p = prereqs
    metrics = p.ff_metrics_history_enabled
    logs = p.ff_log_history_enabled

    # level 1
    storage_class = HelmChart(name="q-storageclass", path=p.bootstrap_chart("q-storageclass", provider_specific=True))
    coredns_config = HelmChart(
        name="coredns",
        path=p.bootstrap_chart("coredns-config"),
        values=_values(managed_dns__0=p.dns_provider),
    )
    aws_vpc_cni = HelmChart(
        name="aws-vpc-cni",
        path=p.bootstrap_chart("aws-vpc-cni", provider_specific=True),
        values=_values(image__region=p.region, crd__create="false", originalMatchLabels="true"),
        k8s_selector="k8s-app=aws-node",
    )

    # level 2
    prometheus_operator = HelmChart(
        name="prometheus-operator",
        path=p.bootstrap_chart("kube-prometheus-stack"),
        namespace=PROMETHEUS_NAMESPACE,
        values_files=[p.chart_values("kube-prometheus-stack")],
        timeout_in_seconds=480,
    )

    # level 3
    cluster_autoscaler = HelmChart(
        name="cluster-autoscaler",
        path=p.bootstrap_chart("cluster-autoscaler"),
        values=_values(
            cloudProvider="aws",
            awsRegion=p.region,
            autoDiscovery__clusterName=p.cluster_name,
            serviceMonitor__enabled=str(metrics).lower(),
        ),
        k8s_selector="app.kubernetes.io/name=aws-cluster-autoscaler",
    )
    iam_eks_user_mapper = HelmChart(
        name="iam-eks-user-mapper",
        path=p.bootstrap_chart("iam-eks-user-mapper", provider_specific=True),
        values=_values(aws__region=p.region, syncIamGroup="Admins"),
    )
    calico = HelmChart(name="calico", path=p.bootstrap_chart("calico", provider_specific=True))
    promtail = HelmChart(
        name="promtail",
        path=p.bootstrap_chart("promtail"),
        namespace=LOGGING_NAMESPACE,
        values=_values(config__lokiAddress=f"http://loki.{LOGGING_NAMESPACE}.svc:3100/loki/api/v1/push"),
    )

    # level 4
    metrics_server = HelmChart(name="metrics-server", path=p.bootstrap_chart("metrics-server"))
    node_term_handler = HelmChart(
        name="aws-node-term-handler",
        path=p.bootstrap_chart("aws-node-termination-handler", provider_specific=True),
        values=_values(enableSpotInterruptionDraining="true", enableScheduledEventDraining="true"),
    )
    external_dns = HelmChart(
        name="externaldns",
        path=p.bootstrap_chart("external-dns"),
        values=_values(provider=p.dns_provider, txtOwnerId=p.cluster_id, policy="sync"),
    )
    prometheus_adapter = HelmChart(
        name="prometheus-adapter",
        path=p.bootstrap_chart("prometheus-adapter"),
        namespace=PROMETHEUS_NAMESPACE,
        values=_values(prometheus__url=f"http://prometheus-operated.{PROMETHEUS_NAMESPACE}.svc"),
    )
    kube_state_metrics = HelmChart(
        name="kube-state-metrics",
        path=p.bootstrap_chart("kube-state-metrics"),
        namespace=PROMETHEUS_NAMESPACE,
        values=_values(prometheus__monitor__enabled="true"),
    )
    loki = HelmChart(
        name="loki",
        path=p.bootstrap_chart("loki"),
        namespace=LOGGING_NAMESPACE,
        values=_values(config__storage_config__aws__region=p.region),
        timeout_in_seconds=600,
    )

    # level 5
    nginx_ingress = HelmChart(
        name="nginx-ingress",
        path=p.bootstrap_chart("ingress-nginx"),
        namespace="nginx-ingress",
        values=_values(controller__publishService__enabled="true"),
        k8s_selector="app.kubernetes.io/name=ingress-nginx",
    )
    cert_manager = HelmChart(
        name="cert-manager",
        path=p.bootstrap_chart("cert-manager"),
        namespace="cert-manager",
        values=_values(installCRDs="true", prometheus__servicemonitor__enabled=str(metrics).lower()),
    )
    pleco = HelmChart(
        name="pleco",
        path=p.bootstrap_chart("pleco"),
        values=_values(environmentVariables__AWS_DEFAULT_REGION=p.region, environmentVariables__LOG_LEVEL="info"),
    )

    # level 6
    cert_manager_configs = HelmChart(
        name="cert-manager-configs",
        path=p.bootstrap_chart("cert-manager-configs"),
        namespace="cert-manager",
        values=_values(
            externalDnsProvider=p.dns_provider,
            acme__letsEncrypt__emailReport=p.acme_email,
            acme__letsEncrypt__acmeUrl=p.acme_server_url,
        ),
    )
    cluster_agent = HelmChart(
        name="cluster-agent",
        path=p.bootstrap_chart("cluster-agent"),
        namespace=SYSTEM_NAMESPACE,
        values=_values(environmentVariables__CLUSTER_ID=p.cluster_id),
    )
    engine_agent = HelmChart(
        name="engine-agent",
        path=p.bootstrap_chart("engine-agent"),
        namespace=SYSTEM_NAMESPACE,
        values=_values(environmentVariables__CLUSTER_ID=p.cluster_id, environmentVariables__REGION=p.region),
    )
    grafana = HelmChart(
        name="grafana",
        path=p.bootstrap_chart("grafana"),
        namespace=PROMETHEUS_NAMESPACE,
        values_files=[p.chart_values("grafana")],
    )

    level_1 = [storage_class, coredns_config, aws_vpc_cni]
    level_2 = []
    level_3 = [cluster_autoscaler, iam_eks_user_mapper, calico]
    level_4 = [metrics_server, node_term_handler, external_dns]
    level_5 = [nginx_ingress, cert_manager]
    level_6 = [cert_manager_configs, cluster_agent, engine_agent]

    if metrics:
        level_2.append(prometheus_operator)
        level_4.extend([prometheus_adapter, kube_state_metrics])
    if logs:
        level_3.append(promtail)
        level_4.append(loki)
    if not p.disable_pleco:
        level_5.append(pleco)
    if metrics or logs:
        level_6.append(grafana)

    return [level_1, level_2, level_3, level_4, level_5, level_6]

"""Target cluster description and per-provider credentials."""

from dataclasses import dataclass, field

from envdock.redact import register_secret


class CredentialsProvider:
    """Capability exposing a cloud provider's credentials to external tools."""

    provider = "unknown"

    def credentials_environment_variables(self) -> list[tuple[str, str]]:
        raise NotImplementedError

    def template_context(self) -> dict:
        """Provider-specific keys made available to Terraform templates."""
        return {}


@dataclass
class AwsCredentials(CredentialsProvider):
    access_key_id: str
    secret_access_key: str
    region: str

    provider = "aws"

    def __post_init__(self):
        register_secret(self.access_key_id)
        register_secret(self.secret_access_key)

    def credentials_environment_variables(self) -> list[tuple[str, str]]:
        return [
            ("AWS_ACCESS_KEY_ID", self.access_key_id),
            ("AWS_SECRET_ACCESS_KEY", self.secret_access_key),
            ("AWS_DEFAULT_REGION", self.region),
        ]

    def template_context(self) -> dict:
        return {
            "aws_access_key": self.access_key_id,
            "aws_secret_key": self.secret_access_key,
            "aws_region": self.region,
        }


@dataclass
class ScalewayCredentials(CredentialsProvider):
    access_key: str
    secret_key: str
    project_id: str
    region: str

    provider = "scaleway"

    def __post_init__(self):
        register_secret(self.access_key)
        register_secret(self.secret_key)

    def credentials_environment_variables(self) -> list[tuple[str, str]]:
        return [
            ("SCW_ACCESS_KEY", self.access_key),
            ("SCW_SECRET_KEY", self.secret_key),
            ("SCW_DEFAULT_PROJECT_ID", self.project_id),
            ("SCW_DEFAULT_REGION", self.region),
        ]

    def template_context(self) -> dict:
        return {
            "scaleway_access_key": self.access_key,
            "scaleway_secret_key": self.secret_key,
            "scaleway_project_id": self.project_id,
            "scw_region": self.region,
        }


@dataclass
class DigitalOceanCredentials(CredentialsProvider):
    token: str
    spaces_access_id: str = ""
    spaces_secret_key: str = ""

    provider = "digitalocean"

    def __post_init__(self):
        register_secret(self.token)
        register_secret(self.spaces_secret_key)

    def credentials_environment_variables(self) -> list[tuple[str, str]]:
        return [
            ("DIGITAL_OCEAN_TOKEN", self.token),
            ("SPACES_ACCESS_KEY_ID", self.spaces_access_id),
            ("SPACES_SECRET_ACCESS_KEY", self.spaces_secret_key),
        ]

    def template_context(self) -> dict:
        return {
            "digitalocean_token": self.token,
            "spaces_access_id": self.spaces_access_id,
            "spaces_secret_key": self.spaces_secret_key,
        }


_PROVIDERS = {
    "aws": AwsCredentials,
    "scaleway": ScalewayCredentials,
    "digitalocean": DigitalOceanCredentials,
}


def credentials_from_dict(d: dict) -> CredentialsProvider:
    """Build a provider's credentials from ``{"provider": name, **fields}``."""
    fields = dict(d)
    name = fields.pop("provider", None)
    if name not in _PROVIDERS:
        raise ValueError(f"Unknown cloud provider: {name!r} (expected one of {', '.join(_PROVIDERS)})")
    return _PROVIDERS[name](**fields)


@dataclass
class Cluster:
    """Kubernetes cluster the environment is deployed to."""

    id: str
    name: str
    region: str
    kubeconfig_path: str
    credentials: CredentialsProvider
    zone: str | None = None
    dns_provider: str = "cloudflare"
    acme_email: str = ""
    extra_template_values: dict = field(default_factory=dict)

    @property
    def provider(self) -> str:
        return self.credentials.provider

    @classmethod
    def from_dict(cls, d: dict) -> "Cluster":
        return cls(
            id=d["id"],
            name=d["name"],
            region=d["region"],
            kubeconfig_path=d["kubeconfig_path"],
            credentials=credentials_from_dict(d["credentials"]),
            zone=d.get("zone"),
            dns_provider=d.get("dns_provider", "cloudflare"),
            acme_email=d.get("acme_email", ""),
            extra_template_values=d.get("extra_template_values", {}),
        )

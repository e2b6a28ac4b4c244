"""Render the foundational manifest catalog and cluster-side documents.

File manifests go into the GitOps repository working tree; the root
App-of-Apps, the AppProject and the Secrets are returned as documents
for the reconciler to apply directly.
"""

from __future__ import annotations

import ipaddress
import re
import secrets
from pathlib import Path
from typing import TYPE_CHECKING, Any, Literal

import structlog
from pydantic import BaseModel, ConfigDict, Field, SecretStr, ValidationError, model_validator

from gitops_bootstrap.integrations.kubernetes.resources import ARGOCD_NAMESPACE
from gitops_bootstrap.services.gitops import catalog
from gitops_bootstrap.services.gitops.catalog import CATALOG, COMMON_LABELS, CatalogEntry
from gitops_bootstrap.services.gitops.exceptions import RenderError

if TYPE_CHECKING:
    from gitops_bootstrap.core.config.models import BootstrapConfig
    from gitops_bootstrap.integrations.git.credentials import GitCredential

logger = structlog.get_logger()

Provider = Literal["aws", "gcp", "azure", "hetzner", "local"]
CertificateIssuer = Literal["selfsigned-issuer", "letsencrypt-issuer"]

DEFAULT_DOMAIN = "cluster.local"
DEFAULT_METALLB_RANGE = "192.168.1.100-192.168.1.110"
LETSENCRYPT_SERVER = "https://acme-v02.api.letsencrypt.org/directory"
ROOT_APPLICATION_NAME = "gitops-root"
REPOSITORY_SECRET_NAME = "gitops-repo-creds"
OCI_SECRET_NAME = "docker-oci-repo"
SECRET_TYPE_LABEL = "argocd.argoproj.io/secret-type"

STORAGE_CLASSES = {
    "aws": "gp2",
    "gcp": "standard-rwo",
    "azure": "managed-csi",
    "hetzner": "hcloud-volumes",
    "local": "standard",
}

_LABEL = r"[a-z0-9]([a-z0-9-]{0,61}[a-z0-9])?"
_DOMAIN_RE = re.compile(rf"^(?=.{{1,253}}$){_LABEL}(\.{_LABEL})*$")


class TemplateData(BaseModel):
    """Substitution values for every catalog entry."""

    model_config = ConfigDict(extra="forbid", frozen=True)

    git_repo_url: str = Field(min_length=1)
    git_branch: str = "main"
    git_path: str = ""
    domain: str = DEFAULT_DOMAIN
    provider: Provider = "local"
    storage_class: str = ""
    certificate_issuer: CertificateIssuer = "selfsigned-issuer"
    acme_email: str | None = None
    acme_server: str = LETSENCRYPT_SERVER
    metallb_address_range: str = DEFAULT_METALLB_RANGE

    @model_validator(mode="before")
    @classmethod
    def derive_storage_class(cls, values: Any) -> Any:
        """Fill in the provider's default storage class when not given."""
        if isinstance(values, dict) and not values.get("storage_class"):
            values = dict(values)
            provider = values.get("provider", "local")
            values["storage_class"] = STORAGE_CLASSES.get(provider, "standard")
        return values

    @model_validator(mode="after")
    def validate_values(self) -> TemplateData:
        if not _DOMAIN_RE.match(self.domain):
            raise ValueError(f"invalid domain: {self.domain!r}")
        if self.certificate_issuer == "letsencrypt-issuer" and (
            not self.acme_email or "@" not in self.acme_email
        ):
            raise ValueError("letsencrypt issuer requires a valid acme_email")
        address_range = self.metallb_address_range
        start, sep, end = address_range.partition("-")
        try:
            first = ipaddress.ip_address(start.strip())
            last = ipaddress.ip_address(end.strip()) if sep else first
        except ValueError as e:
            raise ValueError(f"invalid MetalLB address range: {address_range!r}") from e
        if first.version != last.version or int(first) > int(last):
            raise ValueError(f"invalid MetalLB address range: {address_range!r}")
        return self

    @classmethod
    def create(cls, **values: Any) -> TemplateData:
        """Validate ``values``, raising RenderError instead of ValidationError."""
        try:
            return cls(**values)
        except ValidationError as e:
            raise RenderError(f"invalid template data: {e}") from e

    @classmethod
    def from_config(cls, config: BootstrapConfig) -> TemplateData:
        repo = config.git_repository
        certificate = config.certificate
        values: dict[str, Any] = {
            "git_repo_url": repo.url,
            "git_branch": repo.branch,
            "git_path": repo.path,
            "domain": config.domain,
            "provider": config.provider,
            "metallb_address_range": config.metallb_address_range,
        }
        if certificate.type == "letsencrypt":
            values["certificate_issuer"] = "letsencrypt-issuer"
            if certificate.acme is not None:
                values["acme_email"] = certificate.acme.email
                values["acme_server"] = certificate.acme.server or LETSENCRYPT_SERVER
        return cls.create(**values)


# =============================================================================
# Foundational Credentials
# =============================================================================


def generate_password() -> SecretStr:
    """43 URL-safe characters from 32 random bytes."""
    return SecretStr(secrets.token_urlsafe(32))


class KeycloakCredentials(BaseModel):
    """Passwords seeded into the keycloak namespace on first bootstrap."""

    model_config = ConfigDict(extra="forbid", frozen=True)

    enabled: bool = True
    admin_password: SecretStr = Field(default_factory=generate_password)
    db_password: SecretStr = Field(default_factory=generate_password)
    postgres_admin_password: SecretStr = Field(default_factory=generate_password)
    postgres_user_password: SecretStr = Field(default_factory=generate_password)
    realm_admin_password: SecretStr | None = Field(default_factory=generate_password)


class FoundationalConfig(BaseModel):
    """Cluster-side inputs of the foundational services install."""

    model_config = ConfigDict(extra="forbid", frozen=True)

    keycloak: KeycloakCredentials = Field(default_factory=KeycloakCredentials)


# =============================================================================
# Renderer
# =============================================================================


def _secret(
    name: str,
    namespace: str,
    string_data: dict[str, str],
    labels: dict[str, str] | None = None,
) -> dict[str, Any]:
    metadata: dict[str, Any] = {"name": name, "namespace": namespace}
    if labels:
        metadata["labels"] = labels
    return {
        "apiVersion": "v1",
        "kind": "Secret",
        "metadata": metadata,
        "type": "Opaque",
        "stringData": string_data,
    }


class ManifestRenderer:
    """Render the fixed catalog for one deployment.

    Example:
        >>> renderer = ManifestRenderer(TemplateData.create(git_repo_url=url))
        >>> renderer.write_all(repo.work_dir)
    """

    def __init__(
        self,
        data: TemplateData,
        *,
        root_name: str = ROOT_APPLICATION_NAME,
        namespace: str = ARGOCD_NAMESPACE,
    ) -> None:
        self.data = data
        self.root_name = root_name
        self.namespace = namespace
        self._log = logger.bind(entity="manifest_renderer")

    # =========================================================================
    # Repository Files
    # =========================================================================

    def entries(self) -> list[CatalogEntry]:
        """Catalog entries that apply to this deployment."""
        return [entry for entry in CATALOG if entry.applies_to(self.data)]

    def applications(self) -> list[str]:
        """Names of the Applications written under ``apps/``, sorted."""
        return sorted(entry.name for entry in self.entries() if entry.is_application)

    def _find(self, name: str) -> CatalogEntry:
        for entry in self.entries():
            if entry.path == name or (entry.is_application and entry.name == name):
                return entry
        raise RenderError(f"no template for {name!r} (provider {self.data.provider})")

    def render(self, name: str) -> str:
        """Render one entry, by application name or relative path.

        Raises:
            RenderError: Unknown or excluded entry, or a builder failure.
        """
        entry = self._find(name)
        try:
            return entry.build(self.data)
        except (KeyError, TypeError, ValueError) as e:
            raise RenderError(f"failed to render {entry.path}: {e}") from e

    def write_all(self, work_dir: Path) -> list[Path]:
        """Write every applicable entry under ``work_dir``.

        Directory creation is idempotent and output is byte-for-byte
        deterministic. Write-once files that already exist are left alone.

        Returns:
            Paths written in this call.
        """
        written: list[Path] = []
        for entry in self.entries():
            target = work_dir / entry.path
            if entry.write_once and target.exists():
                self._log.debug("kept_existing_file", path=entry.path)
                continue
            content = self.render(entry.path)
            try:
                target.parent.mkdir(parents=True, exist_ok=True)
                target.write_text(content, encoding="utf-8")
            except OSError as e:
                raise RenderError(f"failed to write {entry.path}: {e}") from e
            written.append(target)
        self._log.info("rendered_manifests", count=len(written), work_dir=str(work_dir))
        return written

    # =========================================================================
    # Cluster Documents
    # =========================================================================

    def root_application(self) -> dict[str, Any]:
        """App-of-Apps that syncs every file under ``apps/``."""
        return {
            "apiVersion": "argoproj.io/v1alpha1",
            "kind": "Application",
            "metadata": {
                "name": self.root_name,
                "namespace": self.namespace,
                "labels": dict(COMMON_LABELS),
                "finalizers": [catalog.FINALIZER],
            },
            "spec": {
                "project": catalog.PROJECT_NAME,
                "source": {
                    "repoURL": self.data.git_repo_url,
                    "targetRevision": self.data.git_branch,
                    "path": catalog.repo_path(self.data, "apps"),
                    "directory": {
                        "recurse": False,
                        "include": "*.yaml",
                        "exclude": "root.yaml",
                    },
                },
                "destination": {
                    "server": catalog.IN_CLUSTER_SERVER,
                    "namespace": self.namespace,
                },
                "syncPolicy": {
                    "automated": {"prune": True, "selfHeal": True, "allowEmpty": False},
                    "syncOptions": ["CreateNamespace=true"],
                    "retry": {
                        "limit": 5,
                        "backoff": {"duration": "5s", "factor": 2, "maxDuration": "3m"},
                    },
                },
            },
        }

    def project(self) -> dict[str, Any]:
        """AppProject grouping the foundational Applications."""
        return {
            "apiVersion": "argoproj.io/v1alpha1",
            "kind": "AppProject",
            "metadata": {
                "name": catalog.PROJECT_NAME,
                "namespace": self.namespace,
                "labels": dict(COMMON_LABELS),
            },
            "spec": {
                "description": "Foundational platform services managed through GitOps",
                "sourceRepos": ["*"],
                "destinations": [{"server": catalog.IN_CLUSTER_SERVER, "namespace": "*"}],
                "clusterResourceWhitelist": [{"group": "*", "kind": "*"}],
                "namespaceResourceWhitelist": [{"group": "*", "kind": "*"}],
            },
        }

    def repository_secret(
        self, credential: GitCredential, url: str | None = None
    ) -> dict[str, Any]:
        """Repository-access Secret letting the controller read the GitOps repo."""
        data = {"name": "gitops-repo", "type": "git", "url": url or self.data.git_repo_url}
        data.update(credential.argocd_secret_data())
        return _secret(
            REPOSITORY_SECRET_NAME,
            self.namespace,
            data,
            labels={SECRET_TYPE_LABEL: "repository"},
        )

    def oci_repository_secret(self) -> dict[str, Any]:
        """Anonymous OCI Helm registry used by the chart-based Applications."""
        return _secret(
            OCI_SECRET_NAME,
            self.namespace,
            {"name": "docker-oci", "type": "helm", "url": "oci://docker.io", "enableOCI": "true"},
            labels={SECRET_TYPE_LABEL: "repository"},
        )

    def namespaces(self, foundational: FoundationalConfig) -> list[dict[str, Any]]:
        """Namespaces that must exist before the credential Secrets."""
        if not foundational.keycloak.enabled:
            return []
        return [
            {
                "apiVersion": "v1",
                "kind": "Namespace",
                "metadata": {"name": catalog.KEYCLOAK_NAMESPACE, "labels": dict(COMMON_LABELS)},
            }
        ]

    def credential_secrets(self, foundational: FoundationalConfig) -> list[dict[str, Any]]:
        """Secrets read by foundational workloads at pod start."""
        keycloak = foundational.keycloak
        if not keycloak.enabled:
            return []
        ns = catalog.KEYCLOAK_NAMESPACE
        documents = [
            _secret(
                "keycloak-admin-credentials",
                ns,
                {"admin-password": keycloak.admin_password.get_secret_value()},
            ),
            _secret(
                "keycloak-postgresql-credentials",
                ns,
                {"password": keycloak.db_password.get_secret_value()},
            ),
            _secret(
                "postgresql-credentials",
                ns,
                {
                    "postgres-password": keycloak.postgres_admin_password.get_secret_value(),
                    "user-password": keycloak.postgres_user_password.get_secret_value(),
                },
            ),
        ]
        if keycloak.realm_admin_password is not None:
            documents.append(
                _secret(
                    "realm-admin-credentials",
                    ns,
                    {
                        "username": "admin",
                        "password": keycloak.realm_admin_password.get_secret_value(),
                    },
                    labels=dict(COMMON_LABELS),
                )
            )
        return documents

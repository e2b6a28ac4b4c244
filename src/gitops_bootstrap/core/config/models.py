"""Bootstrap configuration models."""

from __future__ import annotations

import os
from pathlib import Path
from typing import Any, Literal

import yaml
from pydantic import BaseModel, ConfigDict, ValidationError, field_validator, model_validator

from gitops_bootstrap.core.exceptions import ConfigurationError
from gitops_bootstrap.integrations.git.config import GitRepositoryConfig

DEFAULT_CONFIG_PATH = Path("~/.config/gitops-bootstrap/config.yaml")


class AcmeConfig(BaseModel):
    """ACME account used by the Let's Encrypt issuer."""

    model_config = ConfigDict(extra="forbid")

    email: str
    server: str | None = None

    @field_validator("email")
    @classmethod
    def validate_email(cls, v: str) -> str:
        if "@" not in v:
            raise ValueError("acme email must be an email address")
        return v


class CertificateConfig(BaseModel):
    """TLS certificate issuance for the cluster gateway."""

    model_config = ConfigDict(extra="forbid")

    type: Literal["selfsigned", "letsencrypt"] = "selfsigned"
    acme: AcmeConfig | None = None

    @model_validator(mode="after")
    def validate_acme(self) -> CertificateConfig:
        """Let's Encrypt needs an ACME account."""
        if self.type == "letsencrypt" and self.acme is None:
            raise ValueError("letsencrypt certificates require an acme section")
        return self


class KubernetesConfig(BaseModel):
    """Where to find the cluster's kubeconfig."""

    model_config = ConfigDict(extra="forbid")

    kubeconfig: str = "~/.kube/config"
    context: str | None = None
    retry_attempts: int = 3

    @field_validator("kubeconfig")
    @classmethod
    def validate_kubeconfig(cls, v: str) -> str:
        """Expand ~ in kubeconfig path."""
        return str(Path(v).expanduser())

    @field_validator("retry_attempts")
    @classmethod
    def validate_retry_attempts(cls, v: int) -> int:
        if v < 0:
            raise ValueError("retry_attempts must be non-negative")
        return v


class TimeoutsConfig(BaseModel):
    """Convergence timeouts in seconds."""

    model_config = ConfigDict(extra="forbid")

    poll_interval: float = 5.0
    cluster: float = 600.0
    argocd: float = 600.0
    # No wait for the root application when unset
    sync: float | None = None

    @field_validator("poll_interval", "cluster", "argocd", "sync")
    @classmethod
    def validate_positive(cls, v: float | None) -> float | None:
        if v is not None and v <= 0:
            raise ValueError("timeouts must be positive")
        return v


class BootstrapConfig(BaseModel):
    """Complete configuration of a bootstrap run."""

    model_config = ConfigDict(extra="forbid")

    git_repository: GitRepositoryConfig
    domain: str = "cluster.local"
    provider: Literal["aws", "gcp", "azure", "hetzner", "local"] = "local"
    certificate: CertificateConfig = CertificateConfig()
    metallb_address_range: str = "192.168.1.100-192.168.1.110"
    argocd_namespace: str = "argocd"
    root_application: str = "gitops-root"
    keycloak_enabled: bool = True
    verify_cluster: bool = True
    kubernetes: KubernetesConfig = KubernetesConfig()
    timeouts: TimeoutsConfig = TimeoutsConfig()

    @field_validator("domain")
    @classmethod
    def validate_domain(cls, v: str) -> str:
        v = v.strip().lower().rstrip(".")
        return v or "cluster.local"

    @classmethod
    def from_env(cls, base_config: dict[str, Any] | None = None) -> BootstrapConfig:
        """Create configuration with environment variable overrides.

        Environment variables take precedence over base_config values.

        Supported environment variables:
            GITOPS_GIT_URL: Repository URL
            GITOPS_GIT_BRANCH: Branch to commit to
            GITOPS_GIT_PATH: Sub-path inside the repository
            GITOPS_GIT_SSH_KEY_ENV: Name of the variable holding an SSH key
            GITOPS_GIT_TOKEN_ENV: Name of the variable holding a token
            GITOPS_DOMAIN: Cluster base domain
            GITOPS_PROVIDER: Cloud provider (aws, gcp, azure, hetzner, local)
            GITOPS_KUBECONFIG: Kubeconfig path
            GITOPS_KUBE_CONTEXT: Kubeconfig context
        """
        config_dict = dict(base_config) if base_config else {}
        git_cfg = dict(config_dict.get("git_repository") or {})
        kube_cfg = dict(config_dict.get("kubernetes") or {})

        if url := os.environ.get("GITOPS_GIT_URL"):
            git_cfg["url"] = url
        if branch := os.environ.get("GITOPS_GIT_BRANCH"):
            git_cfg["branch"] = branch
        if path := os.environ.get("GITOPS_GIT_PATH"):
            git_cfg["path"] = path

        # An auth override replaces the configured source entirely
        if ssh_key_env := os.environ.get("GITOPS_GIT_SSH_KEY_ENV"):
            git_cfg["auth"] = {"ssh_key_env": ssh_key_env}
        elif token_env := os.environ.get("GITOPS_GIT_TOKEN_ENV"):
            git_cfg["auth"] = {"token_env": token_env}

        if domain := os.environ.get("GITOPS_DOMAIN"):
            config_dict["domain"] = domain
        if provider := os.environ.get("GITOPS_PROVIDER"):
            config_dict["provider"] = provider
        if kubeconfig := os.environ.get("GITOPS_KUBECONFIG"):
            kube_cfg["kubeconfig"] = kubeconfig
        if context := os.environ.get("GITOPS_KUBE_CONTEXT"):
            kube_cfg["context"] = context

        config_dict["git_repository"] = git_cfg
        if kube_cfg:
            config_dict["kubernetes"] = kube_cfg
        return cls.model_validate(config_dict)


def load_config(path: str | Path | None = None, *, apply_env: bool = True) -> BootstrapConfig:
    """Load configuration from a YAML file, then apply environment overrides.

    A missing file at the default location is not an error; the
    configuration then comes from the environment alone.

    Raises:
        ConfigurationError: The file is unreadable, not YAML, or fails validation.
    """
    config_path = Path(path).expanduser() if path else DEFAULT_CONFIG_PATH.expanduser()
    base: dict[str, Any] = {}

    if config_path.exists():
        try:
            loaded = yaml.safe_load(config_path.read_text(encoding="utf-8"))
        except (OSError, yaml.YAMLError) as e:
            raise ConfigurationError(f"cannot read configuration {config_path}: {e}") from e
        if loaded is not None and not isinstance(loaded, dict):
            raise ConfigurationError(f"configuration {config_path} must be a YAML mapping")
        base = loaded or {}
    elif path:
        raise ConfigurationError(f"configuration file not found: {config_path}")

    try:
        if apply_env:
            return BootstrapConfig.from_env(base)
        return BootstrapConfig.model_validate(base)
    except ValidationError as e:
        raise ConfigurationError(f"invalid configuration: {e}") from e

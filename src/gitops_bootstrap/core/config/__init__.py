"""Configuration management with Pydantic validation."""

from gitops_bootstrap.core.config.models import (
    AcmeConfig,
    BootstrapConfig,
    CertificateConfig,
    KubernetesConfig,
    TimeoutsConfig,
    load_config,
)

__all__ = [
    "AcmeConfig",
    "BootstrapConfig",
    "CertificateConfig",
    "KubernetesConfig",
    "TimeoutsConfig",
    "load_config",
]

"""Kubernetes integration - API client, resource access and exceptions."""

from gitops_bootstrap.integrations.kubernetes.client import KubernetesClient
from gitops_bootstrap.integrations.kubernetes.exceptions import (
    KubernetesAuthError,
    KubernetesConflictError,
    KubernetesConnectionError,
    KubernetesError,
    KubernetesNotFoundError,
    KubernetesValidationError,
)
from gitops_bootstrap.integrations.kubernetes.resources import (
    APP_PROJECT,
    ARGOCD_NAMESPACE,
    APPLICATION,
    NAMESPACE,
    SECRET,
    DynamicResourceClient,
    ResourceClient,
    ResourceType,
    pluralize_kind,
)

__all__ = [
    "APPLICATION",
    "APP_PROJECT",
    "ARGOCD_NAMESPACE",
    "NAMESPACE",
    "SECRET",
    "DynamicResourceClient",
    "KubernetesAuthError",
    "KubernetesClient",
    "KubernetesConflictError",
    "KubernetesConnectionError",
    "KubernetesError",
    "KubernetesNotFoundError",
    "KubernetesValidationError",
    "ResourceClient",
    "ResourceType",
    "pluralize_kind",
]

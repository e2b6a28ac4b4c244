"""GitOps bootstrap exceptions.

Git and Kubernetes failures keep their own hierarchies
(``integrations.git.exceptions``, ``integrations.kubernetes.exceptions``);
the errors here describe failures of the bootstrap steps built on top of
them and are chained to the underlying cause.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

from gitops_bootstrap.core.exceptions import OperationCancelledError

if TYPE_CHECKING:
    from gitops_bootstrap.integrations.kubernetes.resources import ResourceType


class GitOpsError(Exception):
    """Base exception for GitOps bootstrap operations."""

    def __init__(self, message: str) -> None:
        self.message = message
        super().__init__(message)


class RenderError(GitOpsError):
    """Template data is invalid or a manifest could not be rendered."""


class ReconcileError(GitOpsError):
    """Creating or updating a cluster resource failed.

    Attributes:
        resource_type: Descriptor of the kind being reconciled.
        name: Object name.
        namespace: Object namespace, None for cluster-scoped kinds.
    """

    def __init__(
        self,
        message: str,
        resource_type: ResourceType | None = None,
        name: str | None = None,
        namespace: str | None = None,
    ) -> None:
        self.resource_type = resource_type
        self.name = name
        self.namespace = namespace
        super().__init__(message)

    def __str__(self) -> str:
        if self.resource_type is None:
            return self.message
        ref = f"{self.resource_type.kind}/{self.name}"
        if self.namespace:
            ref = f"{self.namespace}/{ref}"
        return f"{self.message} ({ref})"


class ConvergenceTimeoutError(GitOpsError):
    """A readiness condition was not observed before the deadline."""

    def __init__(self, description: str, timeout: float) -> None:
        self.description = description
        self.timeout = timeout
        super().__init__(f"timed out after {timeout:g}s waiting for {description}")


class BootstrapError(GitOpsError):
    """A fatal bootstrap step failed.

    Attributes:
        state: Name of the last state reached before the failure.
    """

    def __init__(self, message: str, state: str) -> None:
        self.state = state
        super().__init__(message)


__all__ = [
    "BootstrapError",
    "ConvergenceTimeoutError",
    "GitOpsError",
    "OperationCancelledError",
    "ReconcileError",
    "RenderError",
]

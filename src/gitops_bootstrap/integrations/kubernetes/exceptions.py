"""Kubernetes API exceptions raised by the cluster-side bootstrap steps."""

from __future__ import annotations

from typing import Any


class KubernetesError(Exception):
    """Base exception for Kubernetes API calls.

    Attributes:
        message: Human-readable error message.
        status_code: HTTP status code returned by the API server, if any.
        kind: Kind of the object involved (e.g. "Application", "Secret").
        name: Name of the object involved.
        namespace: Namespace of the object, for namespaced kinds.
    """

    def __init__(
        self,
        message: str,
        status_code: int | None = None,
        kind: str | None = None,
        name: str | None = None,
        namespace: str | None = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.status_code = status_code
        self.kind = kind
        self.name = name
        self.namespace = namespace

    @property
    def resource_ref(self) -> str | None:
        """``Kind/name`` (plus ``@namespace``) when the object is known."""
        if not (self.kind and self.name):
            return None
        ref = f"{self.kind}/{self.name}"
        if self.namespace:
            ref += f"@{self.namespace}"
        return ref

    def __str__(self) -> str:
        parts = [self.message]
        if self.status_code:
            parts.append(f"(status: {self.status_code})")
        if ref := self.resource_ref:
            parts.append(f"[{ref}]")
        return " ".join(parts)


class KubernetesConnectionError(KubernetesError):
    """The API server could not be reached or the kubeconfig is unusable.

    Raised for network failures and kubeconfig parsing problems. These are
    the only errors retried by the resource client.
    """

    def __init__(
        self,
        message: str = "Failed to connect to Kubernetes cluster",
        original_error: Exception | None = None,
    ) -> None:
        super().__init__(message=message)
        self.original_error = original_error


class KubernetesAuthError(KubernetesError):
    """The API server rejected our credentials (401) or RBAC denied us (403)."""

    def __init__(
        self,
        message: str = "Kubernetes authentication/authorization failed",
        status_code: int | None = 401,
        reason: str | None = None,
    ) -> None:
        super().__init__(message=message, status_code=status_code)
        self.reason = reason


class KubernetesNotFoundError(KubernetesError):
    """The requested object does not exist (404)."""

    def __init__(
        self,
        message: str = "Kubernetes resource not found",
        kind: str | None = None,
        name: str | None = None,
        namespace: str | None = None,
    ) -> None:
        if kind and name:
            message = f"{kind} '{name}' not found"
            if namespace:
                message += f" in namespace '{namespace}'"
        super().__init__(
            message=message,
            status_code=404,
            kind=kind,
            name=name,
            namespace=namespace,
        )


class KubernetesConflictError(KubernetesError):
    """The object already exists or its resourceVersion is stale (409)."""

    def __init__(
        self,
        message: str = "Resource conflict",
        kind: str | None = None,
        name: str | None = None,
        namespace: str | None = None,
    ) -> None:
        if kind and name:
            message = f"{kind} '{name}' conflicts with the live object"
            if namespace:
                message += f" in namespace '{namespace}'"
        super().__init__(
            message=message,
            status_code=409,
            kind=kind,
            name=name,
            namespace=namespace,
        )


class KubernetesValidationError(KubernetesError):
    """The API server rejected the document (400/422)."""

    def __init__(
        self,
        message: str = "Invalid resource specification",
        validation_errors: dict[str, Any] | None = None,
        status_code: int | None = 422,
    ) -> None:
        super().__init__(message=message, status_code=status_code)
        self.validation_errors = validation_errors or {}

"""Kind-agnostic access to Kubernetes objects.

Callers describe *what* they manipulate with a :class:`ResourceType` and
pass plain ``dict`` documents. Anything that satisfies the
:class:`ResourceClient` protocol can back the reconciler; production code
uses :class:`DynamicResourceClient`.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING, Any, Protocol

import structlog

if TYPE_CHECKING:
    from gitops_bootstrap.integrations.kubernetes.client import KubernetesClient

logger = structlog.get_logger()

# Kinds whose plural is not derived by the suffix rules below
IRREGULAR_PLURALS = {
    "gatewayclass": "gatewayclasses",
    "ingressclass": "ingressclasses",
    "storageclass": "storageclasses",
    "priorityclass": "priorityclasses",
    "endpoints": "endpoints",
}

CLUSTER_SCOPED_KINDS = frozenset(
    {
        "Namespace",
        "Node",
        "ClusterRole",
        "ClusterRoleBinding",
        "ClusterIssuer",
        "CustomResourceDefinition",
        "GatewayClass",
        "IngressClass",
        "PersistentVolume",
        "PriorityClass",
        "StorageClass",
    }
)


def pluralize_kind(kind: str) -> str:
    """Convert a Kind to its lowercase plural resource name.

    Example:
        >>> pluralize_kind("AppProject")
        'appprojects'
        >>> pluralize_kind("Policy")
        'policies'
    """
    lower = kind.lower()
    if lower in IRREGULAR_PLURALS:
        return IRREGULAR_PLURALS[lower]
    if lower.endswith(("s", "x", "z", "ch", "sh")):
        return lower + "es"
    if len(lower) > 1 and lower.endswith("y") and lower[-2] not in "aeiou":
        return lower[:-1] + "ies"
    return lower + "s"


@dataclass(frozen=True)
class ResourceType:
    """Group/version/resource descriptor for one kind."""

    group: str
    version: str
    plural: str
    kind: str
    namespaced: bool = True

    @property
    def api_version(self) -> str:
        return f"{self.group}/{self.version}" if self.group else self.version

    @classmethod
    def for_document(cls, document: dict[str, Any]) -> ResourceType:
        """Derive the resource type of a manifest from apiVersion and kind.

        Raises:
            ValueError: If apiVersion or kind is missing.
        """
        api_version = document.get("apiVersion")
        kind = document.get("kind")
        if not api_version or not kind:
            raise ValueError("document must set apiVersion and kind")
        group, _, version = api_version.rpartition("/")
        return cls(
            group=group,
            version=version,
            plural=pluralize_kind(kind),
            kind=kind,
            namespaced=kind not in CLUSTER_SCOPED_KINDS,
        )

    def __str__(self) -> str:
        return f"{self.plural}.{self.group or 'core'}/{self.version}"


ARGOCD_NAMESPACE = "argocd"

APPLICATION = ResourceType("argoproj.io", "v1alpha1", "applications", "Application")
APP_PROJECT = ResourceType("argoproj.io", "v1alpha1", "appprojects", "AppProject")
SECRET = ResourceType("", "v1", "secrets", "Secret")
NAMESPACE = ResourceType("", "v1", "namespaces", "Namespace", namespaced=False)


class ResourceClient(Protocol):
    """Create/get/replace capability over Kubernetes objects.

    Implementations raise ``KubernetesNotFoundError`` when an object is
    absent and ``KubernetesConflictError`` on 409 responses.
    """

    def get(
        self, resource_type: ResourceType, name: str, namespace: str | None = None
    ) -> dict[str, Any]: ...

    def create(
        self,
        resource_type: ResourceType,
        document: dict[str, Any],
        namespace: str | None = None,
    ) -> dict[str, Any]: ...

    def replace(
        self,
        resource_type: ResourceType,
        name: str,
        document: dict[str, Any],
        namespace: str | None = None,
    ) -> dict[str, Any]: ...


class DynamicResourceClient:
    """``ResourceClient`` backed by ``kubernetes.dynamic``.

    Each call is retried on transient connection errors using the retry
    policy of the wrapped :class:`KubernetesClient`.
    """

    def __init__(self, client: KubernetesClient) -> None:
        self._client = client
        self._retry = client.make_retry_decorator()
        self._log = logger.bind(entity="dynamic_resource_client")

    def _resource_api(self, resource_type: ResourceType) -> Any:
        return self._client.dynamic.resources.get(
            api_version=resource_type.api_version,
            kind=resource_type.kind,
        )

    def _call(
        self,
        resource_type: ResourceType,
        verb: str,
        object_name: str | None,
        namespace: str | None,
        **kwargs: Any,
    ) -> dict[str, Any]:
        ns = namespace if resource_type.namespaced else None

        @self._retry
        def attempt() -> dict[str, Any]:
            try:
                api = self._resource_api(resource_type)
                result = getattr(api, verb)(namespace=ns, **kwargs)
            except Exception as e:
                raise self._client.translate_api_exception(
                    e, kind=resource_type.kind, name=object_name, namespace=ns
                ) from e
            return result.to_dict() if hasattr(result, "to_dict") else dict(result)

        self._log.debug(
            f"{verb}_resource", kind=resource_type.kind, name=object_name, namespace=ns
        )
        return attempt()

    def get(
        self, resource_type: ResourceType, name: str, namespace: str | None = None
    ) -> dict[str, Any]:
        return self._call(resource_type, "get", name, namespace, name=name)

    def create(
        self,
        resource_type: ResourceType,
        document: dict[str, Any],
        namespace: str | None = None,
    ) -> dict[str, Any]:
        name = document.get("metadata", {}).get("name")
        return self._call(resource_type, "create", name, namespace, body=document)

    def replace(
        self,
        resource_type: ResourceType,
        name: str,
        document: dict[str, Any],
        namespace: str | None = None,
    ) -> dict[str, Any]:
        return self._call(resource_type, "replace", name, namespace, body=document, name=name)

"""Generic create-or-update of cluster resources.

The reconciler never branches on kind: callers pass an opaque document
plus a :class:`ResourceType`. Updates are read-modify-write and carry the
live object's ``resourceVersion``, so they are only safe while a single
writer owns the objects. A concurrent writer would make the API server
reject the stale version with a 409.
"""

from __future__ import annotations

import copy
from typing import Any, Literal

import structlog

from gitops_bootstrap import status
from gitops_bootstrap.integrations.kubernetes.exceptions import (
    KubernetesConflictError,
    KubernetesError,
    KubernetesNotFoundError,
)
from gitops_bootstrap.integrations.kubernetes.resources import ResourceClient, ResourceType
from gitops_bootstrap.services.gitops.exceptions import ReconcileError
from gitops_bootstrap.status import StatusEvent, StatusLevel

logger = structlog.get_logger()

ApplyResult = Literal["created", "updated"]
EnsureResult = Literal["created", "exists"]


def _metadata(document: dict[str, Any]) -> tuple[str, str | None]:
    metadata = document.get("metadata") or {}
    name = metadata.get("name")
    if not name:
        raise ReconcileError("document has no metadata.name")
    return name, metadata.get("namespace")


def _report(level: StatusLevel, message: str, resource: str, action: str) -> None:
    status.send(StatusEvent.create(level, message).with_resource(resource).with_action(action))


class ResourceReconciler:
    """Apply desired documents to a cluster through a :class:`ResourceClient`.

    Example:
        >>> reconciler = ResourceReconciler(DynamicResourceClient(client))
        >>> reconciler.apply(APPLICATION, root_app)
        'created'
    """

    _entity_name = "reconciler"

    def __init__(self, client: ResourceClient) -> None:
        """Initialize the reconciler.

        Args:
            client: Backend performing get/create/replace calls.
        """
        self._client = client
        self._log = logger.bind(entity=self._entity_name)

    @property
    def client(self) -> ResourceClient:
        return self._client

    def _namespace_for(self, resource_type: ResourceType, namespace: str | None) -> str | None:
        return namespace if resource_type.namespaced else None

    def apply(self, resource_type: ResourceType, document: dict[str, Any]) -> ApplyResult:
        """Create the object, or replace it carrying the live resourceVersion.

        The caller's ``document`` is never mutated.

        Args:
            resource_type: Kind descriptor.
            document: Desired object; ``metadata.name`` is required.

        Returns:
            "created" or "updated".

        Raises:
            ReconcileError: The lookup, create or replace call failed.
        """
        name, namespace = _metadata(document)
        ns = self._namespace_for(resource_type, namespace)
        resource = f"{resource_type.kind}/{name}"
        _report(StatusLevel.PROGRESS, f"Applying {resource}", resource, "apply")
        self._log.debug("applying_resource", kind=resource_type.kind, name=name, namespace=ns)

        try:
            try:
                existing = self._client.get(resource_type, name, ns)
            except KubernetesNotFoundError:
                self._client.create(resource_type, document, ns)
                result: ApplyResult = "created"
            else:
                desired = copy.deepcopy(document)
                version = (existing.get("metadata") or {}).get("resourceVersion")
                if version:
                    desired.setdefault("metadata", {})["resourceVersion"] = version
                self._client.replace(resource_type, name, desired, ns)
                result = "updated"
        except KubernetesError as e:
            _report(StatusLevel.WARNING, f"Failed to apply {resource}: {e}", resource, "apply")
            raise ReconcileError(
                f"failed to apply {resource_type.kind}: {e}",
                resource_type=resource_type,
                name=name,
                namespace=ns,
            ) from e

        _report(StatusLevel.SUCCESS, f"{resource} {result}", resource, result)
        self._log.info(f"{result}_resource", kind=resource_type.kind, name=name, namespace=ns)
        return result

    def ensure(self, resource_type: ResourceType, document: dict[str, Any]) -> EnsureResult:
        """Create the object only if it does not exist; an existing object wins.

        Used for credential Secrets and Namespaces whose live content must
        not be overwritten by a re-run.

        Returns:
            "created" or "exists".

        Raises:
            ReconcileError: The lookup or create call failed.
        """
        name, namespace = _metadata(document)
        ns = self._namespace_for(resource_type, namespace)
        resource = f"{resource_type.kind}/{name}"
        _report(StatusLevel.PROGRESS, f"Ensuring {resource}", resource, "ensure")

        try:
            if self.exists(resource_type, name, ns):
                result: EnsureResult = "exists"
            else:
                try:
                    self._client.create(resource_type, document, ns)
                    result = "created"
                except KubernetesConflictError:
                    # Created by someone else between the lookup and the create.
                    result = "exists"
        except KubernetesError as e:
            _report(StatusLevel.WARNING, f"Failed to ensure {resource}: {e}", resource, "ensure")
            raise ReconcileError(
                f"failed to ensure {resource_type.kind}: {e}",
                resource_type=resource_type,
                name=name,
                namespace=ns,
            ) from e

        message = f"{resource} already exists" if result == "exists" else f"{resource} created"
        _report(StatusLevel.SUCCESS, message, resource, result)
        self._log.info(
            "ensured_resource", kind=resource_type.kind, name=name, namespace=ns, result=result
        )
        return result

    def exists(self, resource_type: ResourceType, name: str, namespace: str | None = None) -> bool:
        """True if the object is present.

        Raises:
            KubernetesError: Any lookup failure other than 404.
        """
        try:
            self._client.get(resource_type, name, self._namespace_for(resource_type, namespace))
        except KubernetesNotFoundError:
            return False
        return True

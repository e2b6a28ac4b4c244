"""Poll externally reconciled systems until a condition holds.

:class:`ConvergencePoller` is the single "fetch, test, wait" loop used for
every readiness check. Fetch errors are expected while things converge
("not found yet") and are retried silently until the deadline.
"""

from __future__ import annotations

import threading
import time
from collections.abc import Callable, Iterable
from typing import TYPE_CHECKING, Any, TypeVar

import structlog

from gitops_bootstrap import status
from gitops_bootstrap.core.exceptions import OperationCancelledError, raise_if_cancelled
from gitops_bootstrap.integrations.kubernetes.resources import (
    APPLICATION,
    ARGOCD_NAMESPACE,
    ResourceClient,
)
from gitops_bootstrap.services.gitops.exceptions import ConvergenceTimeoutError

if TYPE_CHECKING:
    from gitops_bootstrap.integrations.kubernetes.client import KubernetesClient

logger = structlog.get_logger()

T = TypeVar("T")

DEFAULT_POLL_INTERVAL = 5.0
DEFAULT_CLUSTER_TIMEOUT = 600.0
DEFAULT_WORKLOAD_TIMEOUT = 600.0
DEFAULT_APPLICATION_TIMEOUT = 900.0

ARGOCD_DEPLOYMENTS = ("argocd-server", "argocd-repo-server")
ARGOCD_STATEFULSETS = ("argocd-application-controller",)

HEALTHY = "Healthy"
SYNCED = "Synced"
UNKNOWN = "Unknown"


class ConvergencePoller:
    """Fixed-interval poll with deadline and cooperative cancellation."""

    def __init__(self, interval: float = DEFAULT_POLL_INTERVAL) -> None:
        if interval <= 0:
            raise ValueError("interval must be positive")
        self.interval = interval
        self._log = logger.bind(entity="convergence_poller")

    def wait_for(
        self,
        fetch: Callable[[], T],
        is_ready: Callable[[T], bool],
        timeout: float,
        *,
        description: str = "condition",
        cancel: threading.Event | None = None,
    ) -> T:
        """Wait one interval, fetch, test; repeat until ready or deadline.

        Args:
            fetch: Returns a fresh snapshot; exceptions count as "not yet".
            is_ready: Pure predicate over a snapshot.
            timeout: Seconds until the deadline.
            description: Used in logs and the timeout message.
            cancel: Setting this event aborts the wait at the next tick.

        Returns:
            The first snapshot for which ``is_ready`` returned True.

        Raises:
            ConvergenceTimeoutError: Deadline elapsed; chained to the last
                fetch error, if any.
            OperationCancelledError: ``cancel`` was set.
        """
        deadline = time.monotonic() + timeout
        last_error: Exception | None = None
        attempts = 0

        while True:
            raise_if_cancelled(cancel, f"wait for {description}")
            remaining = deadline - time.monotonic()
            if remaining <= 0:
                break
            delay = min(self.interval, remaining)
            if cancel is not None:
                if cancel.wait(delay):
                    raise OperationCancelledError(f"wait for {description}")
            else:
                time.sleep(delay)
            if time.monotonic() >= deadline:
                break

            attempts += 1
            try:
                snapshot = fetch()
            except Exception as e:
                last_error = e
                self._log.debug(
                    "poll_fetch_failed", description=description, attempt=attempts, error=str(e)
                )
                continue

            last_error = None
            if is_ready(snapshot):
                self._log.debug("poll_converged", description=description, attempts=attempts)
                return snapshot

        self._log.warning("poll_timed_out", description=description, attempts=attempts)
        raise ConvergenceTimeoutError(description, timeout) from last_error


# =============================================================================
# Conditions
# =============================================================================


def _get(obj: Any, *path: str) -> Any:
    """Nested lookup over dicts or client model objects; None when absent."""
    current = obj
    for key in path:
        if current is None:
            return None
        if isinstance(current, dict):
            current = current.get(key)
        else:
            current = getattr(current, key, None)
    return current


def any_node_ready(nodes: Iterable[Any]) -> bool:
    """True if at least one node reports condition Ready=True."""
    for node in nodes:
        for condition in _get(node, "status", "conditions") or []:
            if _get(condition, "type") == "Ready" and _get(condition, "status") == "True":
                return True
    return False


def workload_ready(workload: Any) -> bool:
    """readyReplicas >= desired replicas (desired defaults to 1)."""
    desired = _get(workload, "spec", "replicas")
    if desired is None:
        desired = 1
    ready = _get(workload, "status", "ready_replicas")
    if ready is None:
        ready = _get(workload, "status", "readyReplicas")
    return (ready or 0) >= desired


def application_converged(application: dict[str, Any]) -> bool:
    """Health is Healthy and sync is Synced at the same time."""
    health, sync = application_status(application)
    return health == HEALTHY and sync == SYNCED


def application_status(application: dict[str, Any]) -> tuple[str, str]:
    """(health, sync) of an Application document, Unknown when not populated."""
    health = _get(application, "status", "health", "status") or UNKNOWN
    sync = _get(application, "status", "sync", "status") or UNKNOWN
    return health, sync


# =============================================================================
# Readiness Waits
# =============================================================================


def wait_for_cluster_ready(
    client: KubernetesClient,
    timeout: float = DEFAULT_CLUSTER_TIMEOUT,
    *,
    poller: ConvergencePoller | None = None,
    cancel: threading.Event | None = None,
) -> None:
    """Block until any node is Ready."""
    poller = poller or ConvergencePoller()
    status.progress("Waiting for cluster nodes to become ready")
    poller.wait_for(
        lambda: client.core_v1.list_node().items,
        any_node_ready,
        timeout,
        description="cluster nodes",
        cancel=cancel,
    )
    status.success("Cluster is ready")


def wait_for_workloads_ready(
    client: KubernetesClient,
    namespace: str,
    deployments: Iterable[str] = (),
    statefulsets: Iterable[str] = (),
    timeout: float = DEFAULT_WORKLOAD_TIMEOUT,
    *,
    poller: ConvergencePoller | None = None,
    cancel: threading.Event | None = None,
) -> None:
    """Block until every named Deployment and StatefulSet is ready."""
    poller = poller or ConvergencePoller()
    deployments = list(deployments)
    statefulsets = list(statefulsets)

    def fetch() -> list[Any]:
        apps = client.apps_v1
        workloads = [apps.read_namespaced_deployment(name, namespace) for name in deployments]
        workloads.extend(
            apps.read_namespaced_stateful_set(name, namespace) for name in statefulsets
        )
        return workloads

    names = ", ".join([*deployments, *statefulsets])
    status.progress(f"Waiting for workloads in {namespace}: {names}")
    poller.wait_for(
        fetch,
        lambda workloads: all(workload_ready(w) for w in workloads),
        timeout,
        description=f"workloads in {namespace}",
        cancel=cancel,
    )
    status.success(f"Workloads in {namespace} are ready")


def wait_for_argocd_ready(
    client: KubernetesClient,
    namespace: str = ARGOCD_NAMESPACE,
    timeout: float = DEFAULT_WORKLOAD_TIMEOUT,
    *,
    poller: ConvergencePoller | None = None,
    cancel: threading.Event | None = None,
) -> None:
    """Block until the Argo CD server, repo server and controller are ready."""
    wait_for_workloads_ready(
        client,
        namespace,
        deployments=ARGOCD_DEPLOYMENTS,
        statefulsets=ARGOCD_STATEFULSETS,
        timeout=timeout,
        poller=poller,
        cancel=cancel,
    )


def get_application_status(
    resource_client: ResourceClient, name: str, namespace: str = ARGOCD_NAMESPACE
) -> tuple[str, str]:
    """Fetch an Application and return its (health, sync) status."""
    return application_status(resource_client.get(APPLICATION, name, namespace))


def wait_for_application(
    resource_client: ResourceClient,
    name: str,
    namespace: str = ARGOCD_NAMESPACE,
    timeout: float = DEFAULT_APPLICATION_TIMEOUT,
    *,
    poller: ConvergencePoller | None = None,
    cancel: threading.Event | None = None,
) -> dict[str, Any]:
    """Block until the Application is Healthy and Synced; returns the document."""
    poller = poller or ConvergencePoller()
    status.progress(f"Waiting for application {name} to become healthy and synced")
    application = poller.wait_for(
        lambda: resource_client.get(APPLICATION, name, namespace),
        application_converged,
        timeout,
        description=f"application {name}",
        cancel=cancel,
    )
    status.success(f"Application {name} is healthy and synced")
    return application

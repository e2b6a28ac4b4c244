"""GitOps bootstrap-and-convergence services."""

from gitops_bootstrap.services.gitops.exceptions import (
    BootstrapError,
    ConvergenceTimeoutError,
    GitOpsError,
    OperationCancelledError,
    ReconcileError,
    RenderError,
)
from gitops_bootstrap.services.gitops.orchestrator import (
    BootstrapOrchestrator,
    BootstrapResult,
    BootstrapState,
)
from gitops_bootstrap.services.gitops.poller import (
    ConvergencePoller,
    any_node_ready,
    application_converged,
    get_application_status,
    wait_for_application,
    wait_for_argocd_ready,
    wait_for_cluster_ready,
    wait_for_workloads_ready,
    workload_ready,
)
from gitops_bootstrap.services.gitops.reconciler import ResourceReconciler
from gitops_bootstrap.services.gitops.renderer import (
    FoundationalConfig,
    KeycloakCredentials,
    ManifestRenderer,
    TemplateData,
)

__all__ = [
    "BootstrapError",
    "BootstrapOrchestrator",
    "BootstrapResult",
    "BootstrapState",
    "ConvergencePoller",
    "ConvergenceTimeoutError",
    "FoundationalConfig",
    "GitOpsError",
    "KeycloakCredentials",
    "ManifestRenderer",
    "OperationCancelledError",
    "ReconcileError",
    "RenderError",
    "ResourceReconciler",
    "TemplateData",
    "any_node_ready",
    "application_converged",
    "get_application_status",
    "wait_for_application",
    "wait_for_argocd_ready",
    "wait_for_cluster_ready",
    "wait_for_workloads_ready",
    "workload_ready",
]

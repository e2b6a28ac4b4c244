"""Idempotent GitOps bootstrap sequence.

The orchestrator drives one linear run::

    NOT_STARTED -> AUTH_VALIDATED -> REPO_INITIALIZED
        -> (SKIPPED | MANIFESTS_RENDERED -> MARKER_WRITTEN -> COMMITTED)
        -> PROJECT_APPLIED -> SECRETS_APPLIED -> ROOT_APP_APPLIED -> DONE

The bootstrap marker in the repository is the idempotency gate. A
repository that is already bootstrapped is not re-rendered unless
``force_render`` is set.
"""

from __future__ import annotations

import threading
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path

import structlog

from gitops_bootstrap import status
from gitops_bootstrap.core.exceptions import OperationCancelledError, raise_if_cancelled
from gitops_bootstrap.integrations.git.credentials import (
    CredentialProvider,
    EnvCredentialProvider,
    GitCredential,
)
from gitops_bootstrap.integrations.git.exceptions import GitError
from gitops_bootstrap.integrations.git.repository import GitOpsRepository
from gitops_bootstrap.integrations.kubernetes.exceptions import KubernetesError
from gitops_bootstrap.integrations.kubernetes.resources import (
    APP_PROJECT,
    APPLICATION,
    NAMESPACE,
    SECRET,
)
from gitops_bootstrap.services.gitops.exceptions import (
    BootstrapError,
    ConvergenceTimeoutError,
    GitOpsError,
)
from gitops_bootstrap.services.gitops.poller import ConvergencePoller, wait_for_application
from gitops_bootstrap.services.gitops.reconciler import ResourceReconciler
from gitops_bootstrap.services.gitops.renderer import FoundationalConfig, ManifestRenderer

logger = structlog.get_logger()

BOOTSTRAP_COMMIT_MESSAGE = "Bootstrap foundational ArgoCD applications"
REGENERATE_COMMIT_MESSAGE = "Regenerate foundational ArgoCD applications"


class BootstrapState(str, Enum):
    """States of one bootstrap run, in order."""

    NOT_STARTED = "not_started"
    AUTH_VALIDATED = "auth_validated"
    REPO_INITIALIZED = "repo_initialized"
    SKIPPED = "skipped"
    MANIFESTS_RENDERED = "manifests_rendered"
    MARKER_WRITTEN = "marker_written"
    COMMITTED = "committed"
    PROJECT_APPLIED = "project_applied"
    SECRETS_APPLIED = "secrets_applied"
    ROOT_APP_APPLIED = "root_app_applied"
    DONE = "done"


@dataclass
class BootstrapResult:
    """Outcome of :meth:`BootstrapOrchestrator.run`."""

    state: BootstrapState = BootstrapState.NOT_STARTED
    states: list[BootstrapState] = field(default_factory=lambda: [BootstrapState.NOT_STARTED])
    committed: bool = False
    skipped: bool = False
    written: list[Path] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)

    def advance(self, state: BootstrapState) -> None:
        self.state = state
        self.states.append(state)


class BootstrapOrchestrator:
    """Compose repository, renderer, reconciler and poller into one bootstrap.

    Instances are single-use per run and must not be shared across threads.

    Example:
        ```python
        with GitOpsRepository(config.git_repository) as repo:
            orchestrator = BootstrapOrchestrator(
                repo,
                ManifestRenderer(TemplateData.from_config(config)),
                ResourceReconciler(DynamicResourceClient(client)),
            )
            result = orchestrator.run()
        ```
    """

    def __init__(
        self,
        repository: GitOpsRepository,
        renderer: ManifestRenderer,
        reconciler: ResourceReconciler,
        *,
        foundational: FoundationalConfig | None = None,
        force_render: bool = False,
        poller: ConvergencePoller | None = None,
        sync_timeout: float | None = None,
        verify_cluster: bool = True,
        argocd_credentials: CredentialProvider | None = None,
    ) -> None:
        """Initialize the orchestrator.

        Args:
            repository: Exclusively owned repository handle.
            renderer: Renderer for repository files and cluster documents.
            reconciler: Applies documents to the cluster.
            foundational: Credentials seeded into the cluster; generated if None.
            force_render: Re-render and commit even if already bootstrapped.
            poller: Poller for the optional root application wait.
            sync_timeout: Wait this long for the root application to become
                healthy and synced; no wait if None.
            verify_cluster: When the marker is present, check that the root
                Application exists in the cluster and re-apply the cluster
                resources if it does not.
            argocd_credentials: Credentials stored in the repository-access
                Secret; defaults to the repository's read-only auth config.
        """
        self.repository = repository
        self.renderer = renderer
        self.reconciler = reconciler
        self.foundational = foundational or FoundationalConfig()
        self.force_render = force_render
        self.poller = poller or ConvergencePoller()
        self.sync_timeout = sync_timeout
        self.verify_cluster = verify_cluster
        self._argocd_credentials = argocd_credentials
        self._log = logger.bind(entity="bootstrap_orchestrator")

    # =========================================================================
    # Run
    # =========================================================================

    def run(self, cancel: threading.Event | None = None) -> BootstrapResult:
        """Execute the bootstrap sequence.

        Raises:
            BootstrapError: A fatal step failed; ``state`` is the last state
                reached and the cause is chained.
            OperationCancelledError: ``cancel`` was set.
        """
        result = BootstrapResult()
        status.info("Bootstrapping GitOps repository and foundational services")
        try:
            self._run(result, cancel)
        except OperationCancelledError:
            self._log.warning("bootstrap_cancelled", state=result.state.value)
            raise
        except BootstrapError:
            raise
        except (GitError, GitOpsError, KubernetesError) as e:
            status.error(f"Bootstrap failed after {result.state.value}: {e}")
            self._log.error("bootstrap_failed", state=result.state.value, error=str(e))
            raise BootstrapError(f"bootstrap failed: {e}", state=result.state.value) from e

        self._log.info(
            "bootstrap_completed",
            committed=result.committed,
            skipped=result.skipped,
            warnings=len(result.warnings),
        )
        return result

    def _run(self, result: BootstrapResult, cancel: threading.Event | None) -> None:
        repo = self.repository

        repo.validate_auth(cancel)
        result.advance(BootstrapState.AUTH_VALIDATED)

        repo.init(cancel)
        result.advance(BootstrapState.REPO_INITIALIZED)

        if repo.is_bootstrapped() and not self.force_render:
            status.info("GitOps repository already bootstrapped, skipping")
            result.skipped = True
            result.advance(BootstrapState.SKIPPED)
            if not self._root_missing(result):
                result.advance(BootstrapState.DONE)
                return
        else:
            self._render_and_commit(result, cancel)

        self._apply_cluster_resources(result, cancel)
        result.advance(BootstrapState.DONE)
        status.success("Foundational services bootstrap completed")

    def _root_missing(self, result: BootstrapResult) -> bool:
        """True if cluster verification is on and the root Application is absent."""
        if not self.verify_cluster:
            return False
        try:
            present = self.reconciler.exists(
                APPLICATION, self.renderer.root_name, self.renderer.namespace
            )
        except KubernetesError as e:
            self._warn(result, f"Could not verify root application in cluster: {e}")
            return False
        if present:
            return False
        self._warn(
            result,
            f"Repository is bootstrapped but root application {self.renderer.root_name} "
            "is missing from the cluster; re-applying cluster resources",
        )
        return True

    def _render_and_commit(self, result: BootstrapResult, cancel: threading.Event | None) -> None:
        repo = self.repository
        regenerate = self.force_render and repo.is_bootstrapped()

        result.written = self.renderer.write_all(repo.work_dir)
        result.advance(BootstrapState.MANIFESTS_RENDERED)

        repo.write_bootstrap_marker()
        result.advance(BootstrapState.MARKER_WRITTEN)

        raise_if_cancelled(cancel, "commit bootstrap manifests")
        message = REGENERATE_COMMIT_MESSAGE if regenerate else BOOTSTRAP_COMMIT_MESSAGE
        result.committed = repo.commit_and_push(message, cancel)
        result.advance(BootstrapState.COMMITTED)
        if result.committed:
            status.success(f"Pushed bootstrap manifests to {repo.branch}")
        else:
            status.info("Bootstrap manifests unchanged, nothing to commit")

    # =========================================================================
    # Cluster Resources
    # =========================================================================

    def _apply_cluster_resources(
        self, result: BootstrapResult, cancel: threading.Event | None
    ) -> None:
        renderer = self.renderer

        raise_if_cancelled(cancel, "apply project")
        try:
            self.reconciler.apply(APP_PROJECT, renderer.project())
        except GitOpsError as e:
            # Applications fall back to the default project.
            self._warn(result, f"Failed to install ArgoCD project: {e}")
        else:
            result.advance(BootstrapState.PROJECT_APPLIED)

        raise_if_cancelled(cancel, "apply secrets")
        for namespace in renderer.namespaces(self.foundational):
            self.reconciler.ensure(NAMESPACE, namespace)
        for secret in renderer.credential_secrets(self.foundational):
            self.reconciler.ensure(SECRET, secret)
        self.reconciler.apply(SECRET, renderer.repository_secret(self._argocd_credential()))
        self.reconciler.apply(SECRET, renderer.oci_repository_secret())
        result.advance(BootstrapState.SECRETS_APPLIED)

        raise_if_cancelled(cancel, "apply root application")
        self.reconciler.apply(APPLICATION, renderer.root_application())
        result.advance(BootstrapState.ROOT_APP_APPLIED)
        status.success(f"Root application {renderer.root_name} applied")

        if self.sync_timeout is not None:
            try:
                wait_for_application(
                    self.reconciler.client,
                    renderer.root_name,
                    renderer.namespace,
                    self.sync_timeout,
                    poller=self.poller,
                    cancel=cancel,
                )
            except ConvergenceTimeoutError as e:
                # The controller keeps converging in the background.
                self._warn(result, str(e))

    def _argocd_credential(self) -> GitCredential:
        if self._argocd_credentials is not None:
            return self._argocd_credentials.resolve()
        config = self.repository.config
        if config.argocd_auth is None:
            return self.repository.credential()
        return EnvCredentialProvider(config.argocd_auth).resolve()

    def _warn(self, result: BootstrapResult, message: str) -> None:
        result.warnings.append(message)
        status.warning(message)
        self._log.warning("bootstrap_warning", message=message)

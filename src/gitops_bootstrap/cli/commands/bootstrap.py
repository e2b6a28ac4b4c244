"""GitOps bootstrap commands."""

from __future__ import annotations

import contextlib
import signal
import threading
from collections.abc import Iterator
from enum import Enum
from pathlib import Path

import structlog
import typer
from rich.console import Console
from rich.markup import escape
from rich.panel import Panel
from rich.table import Table

from gitops_bootstrap.core.config.models import BootstrapConfig, load_config
from gitops_bootstrap.core.exceptions import ConfigurationError, OperationCancelledError
from gitops_bootstrap.integrations.git.exceptions import GitError
from gitops_bootstrap.integrations.git.repository import GitOpsRepository
from gitops_bootstrap.integrations.kubernetes.client import KubernetesClient
from gitops_bootstrap.integrations.kubernetes.exceptions import (
    KubernetesConnectionError,
    KubernetesError,
)
from gitops_bootstrap.integrations.kubernetes.resources import DynamicResourceClient
from gitops_bootstrap.services.gitops.exceptions import GitOpsError
from gitops_bootstrap.services.gitops.orchestrator import BootstrapOrchestrator
from gitops_bootstrap.services.gitops.poller import (
    ConvergencePoller,
    get_application_status,
    wait_for_application,
    wait_for_argocd_ready,
    wait_for_cluster_ready,
)
from gitops_bootstrap.services.gitops.reconciler import ResourceReconciler
from gitops_bootstrap.services.gitops.renderer import (
    FoundationalConfig,
    KeycloakCredentials,
    ManifestRenderer,
    TemplateData,
)
from gitops_bootstrap.status import StatusEvent, StatusLevel, log_status_event, start_handler

console = Console()
logger = structlog.get_logger()

_LEVEL_STYLES = {
    StatusLevel.INFO: ("•", "cyan"),
    StatusLevel.PROGRESS: ("→", "blue"),
    StatusLevel.SUCCESS: ("✓", "green"),
    StatusLevel.WARNING: ("!", "yellow"),
    StatusLevel.ERROR: ("✗", "red"),
}

_HANDLED_ERRORS = (
    ConfigurationError,
    GitError,
    GitOpsError,
    KubernetesError,
    OperationCancelledError,
)


class WaitTarget(str, Enum):
    """What the ``wait`` command blocks on."""

    CLUSTER = "cluster"
    ARGOCD = "argocd"
    APPLICATION = "application"


ConfigOption = typer.Option(
    None,
    "--config",
    "-c",
    help="Configuration file (defaults to ~/.config/gitops-bootstrap/config.yaml).",
)


def render_status_event(event: StatusEvent) -> None:
    """Print a status event to the console and forward it to the log."""
    symbol, style = _LEVEL_STYLES.get(event.level, ("•", "white"))
    console.print(f"[{style}]{symbol}[/{style}] {escape(event.message)}", highlight=False)
    log_status_event(event)


@contextlib.contextmanager
def cancel_on_interrupt() -> Iterator[threading.Event]:
    """Yield an event that is set on SIGINT instead of raising KeyboardInterrupt."""
    cancel = threading.Event()
    if threading.current_thread() is not threading.main_thread():
        yield cancel
        return

    previous = signal.getsignal(signal.SIGINT)

    def handler(signum: int, frame: object) -> None:
        console.print("[yellow]Cancelling after the current step...[/yellow]")
        cancel.set()

    signal.signal(signal.SIGINT, handler)
    try:
        yield cancel
    finally:
        signal.signal(signal.SIGINT, previous)


def _load(config_file: Path | None) -> BootstrapConfig:
    return load_config(config_file)


def _kubernetes_client(config: BootstrapConfig) -> KubernetesClient:
    kube = config.kubernetes
    return KubernetesClient.from_file(
        kube.kubeconfig,
        context=kube.context,
        retry_attempts=kube.retry_attempts,
    )


def _fail(error: Exception) -> typer.Exit:
    console.print(f"[red]Error:[/red] {escape(str(error))}")
    logger.error("command_failed", error=str(error), error_type=type(error).__name__)
    return typer.Exit(code=1)


# =============================================================================
# Commands
# =============================================================================


def bootstrap(
    config_file: Path | None = ConfigOption,
    regen_apps: bool = typer.Option(
        False,
        "--regen-apps",
        help="Regenerate application manifests even if already bootstrapped.",
    ),
    wait_for_cluster: bool = typer.Option(
        True,
        "--wait-for-cluster/--no-wait-for-cluster",
        help="Wait for cluster nodes and Argo CD before applying resources.",
    ),
    sync_timeout: float | None = typer.Option(
        None,
        "--sync-timeout",
        help="Seconds to wait for the root application to become healthy and synced.",
    ),
    verify_cluster: bool | None = typer.Option(
        None,
        "--verify-cluster/--no-verify-cluster",
        help="Re-apply cluster resources when the root application is missing.",
    ),
) -> None:
    """Render foundational manifests, push them, and apply the root App-of-Apps."""
    cleanup = start_handler(render_status_event)
    try:
        with cancel_on_interrupt() as cancel:
            config = _load(config_file)
            poller = ConvergencePoller(config.timeouts.poll_interval)

            with _kubernetes_client(config) as client:
                if wait_for_cluster:
                    wait_for_cluster_ready(
                        client, config.timeouts.cluster, poller=poller, cancel=cancel
                    )
                    wait_for_argocd_ready(
                        client,
                        config.argocd_namespace,
                        config.timeouts.argocd,
                        poller=poller,
                        cancel=cancel,
                    )
                elif not client.check_connection():
                    raise KubernetesConnectionError(
                        message=f"Kubernetes API unreachable via {config.kubernetes.kubeconfig}"
                    )

                renderer = ManifestRenderer(
                    TemplateData.from_config(config),
                    root_name=config.root_application,
                    namespace=config.argocd_namespace,
                )
                foundational = FoundationalConfig(
                    keycloak=KeycloakCredentials(enabled=config.keycloak_enabled)
                )
                with GitOpsRepository(config.git_repository) as repo:
                    orchestrator = BootstrapOrchestrator(
                        repo,
                        renderer,
                        ResourceReconciler(DynamicResourceClient(client)),
                        foundational=foundational,
                        force_render=regen_apps,
                        poller=poller,
                        sync_timeout=sync_timeout or config.timeouts.sync,
                        verify_cluster=(
                            config.verify_cluster if verify_cluster is None else verify_cluster
                        ),
                    )
                    result = orchestrator.run(cancel)
    except _HANDLED_ERRORS as e:
        raise _fail(e) from e
    finally:
        cleanup()

    lines = [
        f"Final state: [bold]{result.state.value}[/bold]",
        f"Committed: {'yes' if result.committed else 'no'}",
        f"Already bootstrapped: {'yes' if result.skipped else 'no'}",
        f"Files rendered: {len(result.written)}",
    ]
    for warning in result.warnings:
        lines.append(f"[yellow]Warning:[/yellow] {escape(warning)}")
    console.print(
        Panel(
            "\n".join(lines),
            title="gitops-bootstrap",
            border_style="yellow" if result.warnings else "green",
        )
    )


def validate_auth(config_file: Path | None = ConfigOption) -> None:
    """Check that the configured credentials can list the remote's refs."""
    try:
        config = _load(config_file)
        with GitOpsRepository(config.git_repository) as repo:
            repo.validate_auth()
    except _HANDLED_ERRORS as e:
        raise _fail(e) from e
    console.print(
        f"[green]Authenticated[/green] to {config.git_repository.url} "
        f"({config.git_repository.auth.auth_type})"
    )


def wait(
    target: WaitTarget = typer.Argument(..., help="What to wait for."),
    name: str | None = typer.Option(
        None, "--name", "-n", help="Application name (defaults to the root application)."
    ),
    timeout: float = typer.Option(600.0, "--timeout", "-t", help="Timeout in seconds."),
    config_file: Path | None = ConfigOption,
) -> None:
    """Block until the cluster, Argo CD, or an application has converged."""
    cleanup = start_handler(render_status_event)
    try:
        with cancel_on_interrupt() as cancel:
            config = _load(config_file)
            poller = ConvergencePoller(config.timeouts.poll_interval)
            with _kubernetes_client(config) as client:
                if target is WaitTarget.CLUSTER:
                    wait_for_cluster_ready(client, timeout, poller=poller, cancel=cancel)
                elif target is WaitTarget.ARGOCD:
                    wait_for_argocd_ready(
                        client, config.argocd_namespace, timeout, poller=poller, cancel=cancel
                    )
                else:
                    wait_for_application(
                        DynamicResourceClient(client),
                        name or config.root_application,
                        config.argocd_namespace,
                        timeout,
                        poller=poller,
                        cancel=cancel,
                    )
    except _HANDLED_ERRORS as e:
        raise _fail(e) from e
    finally:
        cleanup()


def app_status(
    names: list[str] | None = typer.Argument(
        None, help="Application names (defaults to the root application)."
    ),
    config_file: Path | None = ConfigOption,
) -> None:
    """Show health and sync status of Argo CD applications."""
    try:
        config = _load(config_file)
        table = Table(title="Application Status")
        table.add_column("Application", style="cyan", no_wrap=True)
        table.add_column("Health")
        table.add_column("Sync")

        with _kubernetes_client(config) as client:
            resources = DynamicResourceClient(client)
            for app_name in names or [config.root_application]:
                health, sync = get_application_status(
                    resources, app_name, config.argocd_namespace
                )
                health_style = "green" if health == "Healthy" else "yellow"
                sync_style = "green" if sync == "Synced" else "yellow"
                table.add_row(
                    app_name,
                    f"[{health_style}]{health}[/{health_style}]",
                    f"[{sync_style}]{sync}[/{sync_style}]",
                )
    except _HANDLED_ERRORS as e:
        raise _fail(e) from e
    console.print(table)

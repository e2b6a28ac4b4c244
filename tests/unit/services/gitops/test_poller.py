"""Unit tests for the convergence poller and readiness waits."""

from __future__ import annotations

import threading
import time
from types import SimpleNamespace
from typing import Any
from unittest.mock import MagicMock

import pytest

from gitops_bootstrap.core.exceptions import OperationCancelledError
from gitops_bootstrap.integrations.kubernetes.resources import APPLICATION
from gitops_bootstrap.services.gitops.exceptions import ConvergenceTimeoutError
from gitops_bootstrap.services.gitops.poller import (
    ARGOCD_DEPLOYMENTS,
    ARGOCD_STATEFULSETS,
    ConvergencePoller,
    any_node_ready,
    application_converged,
    application_status,
    get_application_status,
    wait_for_application,
    wait_for_argocd_ready,
    wait_for_cluster_ready,
    workload_ready,
)
from gitops_bootstrap.status import StatusChannel, StatusLevel

FAST = 0.01


def _ready_node() -> dict[str, Any]:
    return {"status": {"conditions": [{"type": "Ready", "status": "True"}]}}


def _application(health: str | None, sync: str | None) -> dict[str, Any]:
    status: dict[str, Any] = {}
    if health:
        status["health"] = {"status": health}
    if sync:
        status["sync"] = {"status": sync}
    return {
        "apiVersion": "argoproj.io/v1alpha1",
        "kind": "Application",
        "metadata": {"name": "root", "namespace": "argocd"},
        "status": status,
    }


@pytest.mark.unit
class TestConvergencePoller:
    """Tests for ConvergencePoller.wait_for."""

    def test_rejects_non_positive_interval(self) -> None:
        with pytest.raises(ValueError):
            ConvergencePoller(0)

    def test_returns_first_ready_snapshot(self) -> None:
        fetch = MagicMock(side_effect=range(10))

        result = ConvergencePoller(FAST).wait_for(fetch, lambda n: n >= 2, 5)

        assert result == 2
        assert fetch.call_count == 3

    def test_waits_one_interval_before_first_fetch(self) -> None:
        """A timeout shorter than the interval expires without fetching."""
        fetch = MagicMock(return_value=True)

        with pytest.raises(ConvergenceTimeoutError):
            ConvergencePoller(1.0).wait_for(fetch, bool, 0.05)

        fetch.assert_not_called()

    def test_fetch_errors_are_retried(self) -> None:
        attempts = {"n": 0}

        def fetch() -> str:
            attempts["n"] += 1
            if attempts["n"] < 3:
                raise RuntimeError("not found yet")
            return "ready"

        result = ConvergencePoller(FAST).wait_for(fetch, lambda s: s == "ready", 5)

        assert result == "ready"
        assert attempts["n"] == 3

    def test_timeout_chains_last_error(self) -> None:
        fetch = MagicMock(side_effect=RuntimeError("still missing"))

        with pytest.raises(ConvergenceTimeoutError) as exc_info:
            ConvergencePoller(FAST).wait_for(fetch, bool, 0.1, description="thing")

        assert "waiting for thing" in str(exc_info.value)
        assert isinstance(exc_info.value.__cause__, RuntimeError)
        assert fetch.call_count >= 2

    def test_timeout_without_error_has_no_cause(self) -> None:
        with pytest.raises(ConvergenceTimeoutError) as exc_info:
            ConvergencePoller(FAST).wait_for(lambda: False, bool, 0.1)

        assert exc_info.value.__cause__ is None
        assert exc_info.value.timeout == 0.1

    def test_cancel_before_start(self) -> None:
        cancel = threading.Event()
        cancel.set()
        fetch = MagicMock()

        with pytest.raises(OperationCancelledError):
            ConvergencePoller(FAST).wait_for(fetch, bool, 5, cancel=cancel)

        fetch.assert_not_called()

    def test_cancel_interrupts_wait(self) -> None:
        """Setting the event wakes the poller mid-interval."""
        cancel = threading.Event()
        timer = threading.Timer(0.05, cancel.set)
        timer.start()
        started = time.monotonic()

        try:
            with pytest.raises(OperationCancelledError):
                ConvergencePoller(10.0).wait_for(lambda: False, bool, 30, cancel=cancel)
        finally:
            timer.cancel()

        assert time.monotonic() - started < 5


@pytest.mark.unit
class TestConditions:
    """Tests for readiness predicates."""

    def test_any_node_ready(self) -> None:
        not_ready = {"status": {"conditions": [{"type": "Ready", "status": "False"}]}}

        assert any_node_ready([not_ready, _ready_node()]) is True
        assert any_node_ready([not_ready]) is False
        assert any_node_ready([]) is False

    def test_any_node_ready_with_client_models(self) -> None:
        condition = SimpleNamespace(type="Ready", status="True")
        node = SimpleNamespace(status=SimpleNamespace(conditions=[condition]))

        assert any_node_ready([node]) is True

    @pytest.mark.parametrize(
        ("replicas", "ready", "expected"),
        [(3, 3, True), (3, 2, False), (None, 1, True), (None, None, False), (0, None, True)],
    )
    def test_workload_ready(self, replicas: int | None, ready: int | None, expected: bool) -> None:
        workload = SimpleNamespace(
            spec=SimpleNamespace(replicas=replicas),
            status=SimpleNamespace(ready_replicas=ready),
        )

        assert workload_ready(workload) is expected

    def test_workload_ready_with_dict(self) -> None:
        assert workload_ready({"spec": {"replicas": 2}, "status": {"readyReplicas": 2}})

    def test_application_status_defaults_to_unknown(self) -> None:
        assert application_status(_application(None, None)) == ("Unknown", "Unknown")
        assert application_status({}) == ("Unknown", "Unknown")

    def test_application_converged_needs_both(self) -> None:
        assert application_converged(_application("Healthy", "Synced"))
        assert not application_converged(_application("Healthy", "OutOfSync"))
        assert not application_converged(_application("Progressing", "Synced"))


@pytest.mark.unit
class TestReadinessWaits:
    """Tests for the cluster, workload and application waits."""

    def test_wait_for_cluster_ready(
        self, mock_k8s_client: MagicMock, status_channel: StatusChannel
    ) -> None:
        mock_k8s_client.core_v1.list_node.return_value.items = [_ready_node()]

        wait_for_cluster_ready(mock_k8s_client, 5, poller=ConvergencePoller(FAST))

        levels = [e.level for e in status_channel.drain()]
        assert levels == [StatusLevel.PROGRESS, StatusLevel.SUCCESS]

    def test_wait_for_argocd_ready(self, mock_k8s_client: MagicMock) -> None:
        ready = {"spec": {"replicas": 1}, "status": {"readyReplicas": 1}}
        apps = mock_k8s_client.apps_v1
        apps.read_namespaced_deployment.return_value = ready
        apps.read_namespaced_stateful_set.return_value = ready

        wait_for_argocd_ready(mock_k8s_client, "argocd", 5, poller=ConvergencePoller(FAST))

        deployments = [c.args[0] for c in apps.read_namespaced_deployment.call_args_list]
        statefulsets = [c.args[0] for c in apps.read_namespaced_stateful_set.call_args_list]
        assert set(deployments) == set(ARGOCD_DEPLOYMENTS)
        assert set(statefulsets) == set(ARGOCD_STATEFULSETS)

    def test_wait_for_argocd_times_out(self, mock_k8s_client: MagicMock) -> None:
        not_ready = {"spec": {"replicas": 1}, "status": {}}
        mock_k8s_client.apps_v1.read_namespaced_deployment.return_value = not_ready
        mock_k8s_client.apps_v1.read_namespaced_stateful_set.return_value = not_ready

        with pytest.raises(ConvergenceTimeoutError, match="workloads in argocd"):
            wait_for_argocd_ready(mock_k8s_client, "argocd", 0.1, poller=ConvergencePoller(FAST))

    def test_get_application_status(self, fake_resources: Any) -> None:
        fake_resources.create(APPLICATION, _application("Degraded", "Synced"), "argocd")

        assert get_application_status(fake_resources, "root", "argocd") == ("Degraded", "Synced")

    def test_wait_for_application_returns_document(self, fake_resources: Any) -> None:
        fake_resources.create(APPLICATION, _application("Healthy", "Synced"), "argocd")

        app = wait_for_application(
            fake_resources, "root", "argocd", 5, poller=ConvergencePoller(FAST)
        )

        assert app["metadata"]["name"] == "root"

    def test_wait_for_missing_application_times_out(self, fake_resources: Any) -> None:
        with pytest.raises(ConvergenceTimeoutError) as exc_info:
            wait_for_application(
                fake_resources, "root", "argocd", 0.1, poller=ConvergencePoller(FAST)
            )

        assert exc_info.value.__cause__ is not None

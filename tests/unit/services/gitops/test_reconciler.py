"""Unit tests for ResourceReconciler."""

from __future__ import annotations

from typing import Any

import pytest

from gitops_bootstrap.integrations.kubernetes.exceptions import (
    KubernetesConflictError,
    KubernetesError,
)
from gitops_bootstrap.integrations.kubernetes.resources import APPLICATION, NAMESPACE, SECRET
from gitops_bootstrap.services.gitops.exceptions import ReconcileError
from gitops_bootstrap.services.gitops.reconciler import ResourceReconciler
from gitops_bootstrap.status import StatusChannel, StatusLevel


def _secret(name: str = "creds", value: str = "a") -> dict[str, Any]:
    return {
        "apiVersion": "v1",
        "kind": "Secret",
        "metadata": {"name": name, "namespace": "argocd"},
        "stringData": {"value": value},
    }


@pytest.mark.unit
class TestApply:
    """Tests for apply (create-or-update)."""

    def test_creates_when_absent(self, fake_resources: Any) -> None:
        reconciler = ResourceReconciler(fake_resources)

        assert reconciler.apply(SECRET, _secret()) == "created"
        assert fake_resources.count("create") == 1

    def test_updates_with_live_resource_version(self, fake_resources: Any) -> None:
        reconciler = ResourceReconciler(fake_resources)
        reconciler.apply(SECRET, _secret(value="a"))

        assert reconciler.apply(SECRET, _secret(value="b")) == "updated"

        stored = fake_resources.get(SECRET, "creds", "argocd")
        assert stored["stringData"] == {"value": "b"}
        assert fake_resources.count("create") == 1
        assert fake_resources.count("replace") == 1

    def test_idempotent_reapply(self, fake_resources: Any) -> None:
        """Applying the same document twice yields one create and one update."""
        reconciler = ResourceReconciler(fake_resources)
        document = _secret()

        results = [reconciler.apply(SECRET, document), reconciler.apply(SECRET, document)]

        assert results == ["created", "updated"]
        assert len(fake_resources.objects) == 1

    def test_does_not_mutate_document(self, fake_resources: Any) -> None:
        reconciler = ResourceReconciler(fake_resources)
        document = _secret()
        reconciler.apply(SECRET, document)

        reconciler.apply(SECRET, document)

        assert "resourceVersion" not in document["metadata"]

    def test_cluster_scoped_ignores_namespace(self, fake_resources: Any) -> None:
        reconciler = ResourceReconciler(fake_resources)
        namespace = {"apiVersion": "v1", "kind": "Namespace", "metadata": {"name": "keycloak"}}

        reconciler.apply(NAMESPACE, namespace)

        assert ("namespaces", None, "keycloak") in fake_resources.objects

    def test_failure_raises_reconcile_error(self, fake_resources: Any) -> None:
        fake_resources.fail("Application")
        reconciler = ResourceReconciler(fake_resources)
        app = {"metadata": {"name": "root", "namespace": "argocd"}}

        with pytest.raises(ReconcileError) as exc_info:
            reconciler.apply(APPLICATION, app)

        error = exc_info.value
        assert error.resource_type is APPLICATION
        assert error.name == "root"
        assert "argocd/Application/root" in str(error)
        assert isinstance(error.__cause__, KubernetesError)

    def test_missing_name(self, fake_resources: Any) -> None:
        with pytest.raises(ReconcileError, match="metadata.name"):
            ResourceReconciler(fake_resources).apply(SECRET, {"metadata": {}})

    def test_reports_progress_and_success(
        self, fake_resources: Any, status_channel: StatusChannel
    ) -> None:
        ResourceReconciler(fake_resources).apply(SECRET, _secret())

        events = status_channel.drain()
        assert [e.level for e in events] == [StatusLevel.PROGRESS, StatusLevel.SUCCESS]
        assert events[-1].resource == "Secret/creds"
        assert events[-1].action == "created"

    def test_reports_warning_on_failure(
        self, fake_resources: Any, status_channel: StatusChannel
    ) -> None:
        fake_resources.fail("Secret")

        with pytest.raises(ReconcileError):
            ResourceReconciler(fake_resources).apply(SECRET, _secret())

        assert status_channel.drain()[-1].level is StatusLevel.WARNING


@pytest.mark.unit
class TestEnsure:
    """Tests for ensure (create-if-absent)."""

    def test_creates_when_absent(self, fake_resources: Any) -> None:
        assert ResourceReconciler(fake_resources).ensure(SECRET, _secret()) == "created"

    def test_existing_object_wins(self, fake_resources: Any) -> None:
        """A re-run never overwrites live credential values."""
        reconciler = ResourceReconciler(fake_resources)
        reconciler.ensure(SECRET, _secret(value="original"))

        assert reconciler.ensure(SECRET, _secret(value="regenerated")) == "exists"

        stored = fake_resources.get(SECRET, "creds", "argocd")
        assert stored["stringData"] == {"value": "original"}
        assert fake_resources.count("replace") == 0

    def test_create_race_counts_as_exists(self, fake_resources: Any) -> None:
        reconciler = ResourceReconciler(fake_resources)
        original_create = fake_resources.create

        def racing_create(*args: Any, **kwargs: Any) -> Any:
            original_create(*args, **kwargs)
            raise KubernetesConflictError(kind="Secret", name="creds")

        fake_resources.create = racing_create

        assert reconciler.ensure(SECRET, _secret()) == "exists"

    def test_failure_raises_reconcile_error(self, fake_resources: Any) -> None:
        fake_resources.fail("Secret")

        with pytest.raises(ReconcileError, match="failed to ensure Secret"):
            ResourceReconciler(fake_resources).ensure(SECRET, _secret())


@pytest.mark.unit
class TestExists:
    """Tests for exists."""

    def test_absent_and_present(self, fake_resources: Any) -> None:
        reconciler = ResourceReconciler(fake_resources)

        assert reconciler.exists(SECRET, "creds", "argocd") is False
        reconciler.apply(SECRET, _secret())
        assert reconciler.exists(SECRET, "creds", "argocd") is True

    def test_other_errors_propagate(self, fake_resources: Any) -> None:
        fake_resources.fail("Application")

        with pytest.raises(KubernetesError):
            ResourceReconciler(fake_resources).exists(APPLICATION, "root", "argocd")

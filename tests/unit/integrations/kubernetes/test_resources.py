"""Unit tests for resource descriptors and the dynamic resource client."""

from __future__ import annotations

from unittest.mock import MagicMock

import pytest

from gitops_bootstrap.integrations.kubernetes.exceptions import (
    KubernetesConnectionError,
    KubernetesNotFoundError,
)
from gitops_bootstrap.integrations.kubernetes.resources import (
    APPLICATION,
    NAMESPACE,
    SECRET,
    DynamicResourceClient,
    ResourceType,
    pluralize_kind,
)


@pytest.mark.unit
@pytest.mark.kubernetes
class TestPluralizeKind:
    """Tests for pluralize_kind."""

    @pytest.mark.parametrize(
        ("kind", "plural"),
        [
            ("Application", "applications"),
            ("AppProject", "appprojects"),
            ("Policy", "policies"),
            ("Gateway", "gateways"),
            ("GatewayClass", "gatewayclasses"),
            ("Ingress", "ingresses"),
            ("IPAddressPool", "ipaddresspools"),
            ("Endpoints", "endpoints"),
        ],
    )
    def test_pluralize(self, kind: str, plural: str) -> None:
        assert pluralize_kind(kind) == plural


@pytest.mark.unit
@pytest.mark.kubernetes
class TestResourceType:
    """Tests for ResourceType."""

    def test_api_version(self) -> None:
        assert APPLICATION.api_version == "argoproj.io/v1alpha1"
        assert SECRET.api_version == "v1"

    def test_for_document(self) -> None:
        rt = ResourceType.for_document(
            {"apiVersion": "cert-manager.io/v1", "kind": "ClusterIssuer"}
        )

        assert rt.group == "cert-manager.io"
        assert rt.plural == "clusterissuers"
        assert rt.namespaced is False

    def test_for_core_document(self) -> None:
        rt = ResourceType.for_document({"apiVersion": "v1", "kind": "ConfigMap"})

        assert rt.group == ""
        assert rt.namespaced is True
        assert str(rt) == "configmaps.core/v1"

    def test_for_document_requires_kind(self) -> None:
        with pytest.raises(ValueError):
            ResourceType.for_document({"apiVersion": "v1"})


@pytest.fixture
def mock_kube() -> MagicMock:
    """KubernetesClient double whose retry decorator is a passthrough."""
    client = MagicMock()
    client.make_retry_decorator.return_value = lambda fn: fn
    client.translate_api_exception.side_effect = lambda e, **kwargs: KubernetesNotFoundError(
        **kwargs
    )
    return client


@pytest.mark.unit
@pytest.mark.kubernetes
class TestDynamicResourceClient:
    """Tests for DynamicResourceClient."""

    def test_get_returns_dict(self, mock_kube: MagicMock) -> None:
        api = mock_kube.dynamic.resources.get.return_value
        api.get.return_value.to_dict.return_value = {"metadata": {"name": "root"}}

        result = DynamicResourceClient(mock_kube).get(APPLICATION, "root", "argocd")

        assert result == {"metadata": {"name": "root"}}
        mock_kube.dynamic.resources.get.assert_called_once_with(
            api_version="argoproj.io/v1alpha1", kind="Application"
        )
        api.get.assert_called_once_with(namespace="argocd", name="root")

    def test_cluster_scoped_drops_namespace(self, mock_kube: MagicMock) -> None:
        api = mock_kube.dynamic.resources.get.return_value
        api.create.return_value.to_dict.return_value = {}
        doc = {"metadata": {"name": "keycloak"}}

        DynamicResourceClient(mock_kube).create(NAMESPACE, doc, "ignored")

        api.create.assert_called_once_with(namespace=None, body=doc)

    def test_replace_passes_name_and_body(self, mock_kube: MagicMock) -> None:
        api = mock_kube.dynamic.resources.get.return_value
        api.replace.return_value.to_dict.return_value = {}
        doc = {"metadata": {"name": "s", "resourceVersion": "7"}}

        DynamicResourceClient(mock_kube).replace(SECRET, "s", doc, "argocd")

        api.replace.assert_called_once_with(namespace="argocd", body=doc, name="s")

    def test_errors_are_translated(self, mock_kube: MagicMock) -> None:
        api = mock_kube.dynamic.resources.get.return_value
        api.get.side_effect = RuntimeError("404")

        with pytest.raises(KubernetesNotFoundError) as exc_info:
            DynamicResourceClient(mock_kube).get(SECRET, "missing", "argocd")

        assert exc_info.value.name == "missing"
        mock_kube.translate_api_exception.assert_called_once()

    def test_uses_client_retry_policy(self, mock_kube: MagicMock) -> None:
        """Each call goes through the wrapped client's retry decorator."""
        calls: list[int] = []

        def retry_twice(fn):  # type: ignore[no-untyped-def]
            def wrapper():  # type: ignore[no-untyped-def]
                try:
                    return fn()
                except KubernetesConnectionError:
                    calls.append(1)
                    return fn()

            return wrapper

        mock_kube.make_retry_decorator.return_value = retry_twice
        mock_kube.translate_api_exception.side_effect = lambda e, **kwargs: e
        api = mock_kube.dynamic.resources.get.return_value
        ok = MagicMock()
        ok.to_dict.return_value = {"ok": True}
        api.get.side_effect = [KubernetesConnectionError(), ok]

        result = DynamicResourceClient(mock_kube).get(SECRET, "s", "argocd")

        assert result == {"ok": True}
        assert calls == [1]

"""Shared fixtures for GitOps service tests."""

from __future__ import annotations

import copy
from collections.abc import Generator
from typing import Any
from unittest.mock import MagicMock

import pytest

from gitops_bootstrap.integrations.kubernetes.exceptions import (
    KubernetesConflictError,
    KubernetesError,
    KubernetesNotFoundError,
)
from gitops_bootstrap.integrations.kubernetes.resources import ResourceType
from gitops_bootstrap.status import StatusChannel, with_channel


class FakeResourceClient:
    """In-memory ResourceClient keyed by (plural, namespace, name).

    Every create/replace bumps ``resourceVersion``. ``failures`` maps a
    kind to the exception raised by any call on that kind.
    """

    def __init__(self) -> None:
        self.objects: dict[tuple[str, str | None, str], dict[str, Any]] = {}
        self.failures: dict[str, Exception] = {}
        self.calls: list[tuple[str, str, str]] = []
        self._version = 0

    def _key(self, rt: ResourceType, name: str, namespace: str | None) -> tuple:
        return (rt.plural, namespace if rt.namespaced else None, name)

    def _check(self, verb: str, rt: ResourceType, name: str) -> None:
        self.calls.append((verb, rt.kind, name))
        if rt.kind in self.failures:
            raise self.failures[rt.kind]

    def _store(self, key: tuple, document: dict[str, Any]) -> dict[str, Any]:
        self._version += 1
        stored = copy.deepcopy(document)
        stored.setdefault("metadata", {})["resourceVersion"] = str(self._version)
        self.objects[key] = stored
        return copy.deepcopy(stored)

    def get(self, rt: ResourceType, name: str, namespace: str | None = None) -> dict[str, Any]:
        self._check("get", rt, name)
        key = self._key(rt, name, namespace)
        if key not in self.objects:
            raise KubernetesNotFoundError(kind=rt.kind, name=name, namespace=namespace)
        return copy.deepcopy(self.objects[key])

    def create(
        self, rt: ResourceType, document: dict[str, Any], namespace: str | None = None
    ) -> dict[str, Any]:
        name = document["metadata"]["name"]
        self._check("create", rt, name)
        key = self._key(rt, name, namespace)
        if key in self.objects:
            raise KubernetesConflictError(kind=rt.kind, name=name, namespace=namespace)
        return self._store(key, document)

    def replace(
        self,
        rt: ResourceType,
        name: str,
        document: dict[str, Any],
        namespace: str | None = None,
    ) -> dict[str, Any]:
        self._check("replace", rt, name)
        key = self._key(rt, name, namespace)
        if key not in self.objects:
            raise KubernetesNotFoundError(kind=rt.kind, name=name, namespace=namespace)
        live = self.objects[key]["metadata"]["resourceVersion"]
        if document.get("metadata", {}).get("resourceVersion") != live:
            raise KubernetesConflictError(kind=rt.kind, name=name, namespace=namespace)
        return self._store(key, document)

    def count(self, verb: str, kind: str | None = None) -> int:
        return sum(1 for v, k, _ in self.calls if v == verb and (kind is None or k == kind))

    def fail(self, kind: str, error: Exception | None = None) -> None:
        self.failures[kind] = error or KubernetesError("injected failure", status_code=500)


@pytest.fixture
def fake_resources() -> FakeResourceClient:
    """In-memory resource client."""
    return FakeResourceClient()


@pytest.fixture
def status_channel() -> Generator[StatusChannel]:
    """Attach a large channel for the test; read it with ``drain()``."""
    with with_channel(StatusChannel(1000)) as channel:
        yield channel


@pytest.fixture
def mock_k8s_client() -> MagicMock:
    """KubernetesClient double with core_v1 and apps_v1 sub-mocks."""
    return MagicMock()

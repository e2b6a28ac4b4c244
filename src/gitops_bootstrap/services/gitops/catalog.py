"""Fixed catalog of foundational manifests written to the GitOps repository.

Every :class:`CatalogEntry` produces one file under ``apps/`` (Argo CD
Applications discovered by the root App-of-Apps) or ``manifests/``
(plain resources those Applications point at). Builders are pure
functions of :class:`TemplateData`, so rendering is deterministic.
"""

from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass
from pathlib import PurePosixPath
from typing import TYPE_CHECKING, Any

import yaml

from gitops_bootstrap.integrations.kubernetes.resources import ARGOCD_NAMESPACE

if TYPE_CHECKING:
    from gitops_bootstrap.services.gitops.renderer import TemplateData

PROJECT_NAME = "foundational"
IN_CLUSTER_SERVER = "https://kubernetes.default.svc"

PART_OF = "foundational"
MANAGED_BY = "gitops-bootstrap"
COMMON_LABELS = {
    "app.kubernetes.io/part-of": PART_OF,
    "app.kubernetes.io/managed-by": MANAGED_BY,
}

SYNC_WAVE_ANNOTATION = "argocd.argoproj.io/sync-wave"
FINALIZER = "resources-finalizer.argocd.argoproj.io"

KEYCLOAK_NAMESPACE = "keycloak"
GATEWAY_NAMESPACE = "envoy-gateway-system"
GATEWAY_NAME = "foundational-gateway"
OTEL_OVERRIDES = "manifests/opentelemetry-collector/overrides.yaml"


def dump(*documents: dict[str, Any]) -> str:
    """Serialize documents as a multi-document YAML stream, keys in insertion order."""
    return yaml.safe_dump_all(documents, sort_keys=False, default_flow_style=False)


def repo_path(data: TemplateData, relative: str) -> str:
    """Path of ``relative`` inside the repository, under the configured sub-path."""
    return str(PurePosixPath(data.git_path, relative)) if data.git_path else relative


def application(
    name: str,
    destination_namespace: str,
    *,
    wave: int,
    source: dict[str, Any] | None = None,
    sources: list[dict[str, Any]] | None = None,
    sync_options: tuple[str, ...] = (),
) -> dict[str, Any]:
    """Argo CD Application in the foundational project with automated sync."""
    spec: dict[str, Any] = {"project": PROJECT_NAME}
    if sources is not None:
        spec["sources"] = sources
    else:
        spec["source"] = source
    spec["destination"] = {"server": IN_CLUSTER_SERVER, "namespace": destination_namespace}
    spec["syncPolicy"] = {
        "automated": {"prune": True, "selfHeal": True},
        "syncOptions": ["CreateNamespace=true", *sync_options],
    }
    return {
        "apiVersion": "argoproj.io/v1alpha1",
        "kind": "Application",
        "metadata": {
            "name": name,
            "namespace": ARGOCD_NAMESPACE,
            "labels": dict(COMMON_LABELS),
            "annotations": {SYNC_WAVE_ANNOTATION: str(wave)},
            "finalizers": [FINALIZER],
        },
        "spec": spec,
    }


def git_source(data: TemplateData, relative: str) -> dict[str, Any]:
    return {
        "repoURL": data.git_repo_url,
        "targetRevision": data.git_branch,
        "path": repo_path(data, relative),
    }


def helm_source(
    repo_url: str, chart: str, version: str, values: dict[str, Any] | None = None
) -> dict[str, Any]:
    source: dict[str, Any] = {"repoURL": repo_url, "chart": chart, "targetRevision": version}
    if values:
        source["helm"] = {"valuesObject": values}
    return source


# =============================================================================
# Builders
# =============================================================================


def _cert_manager(data: TemplateData) -> str:
    return dump(
        application(
            "cert-manager",
            "cert-manager",
            wave=-5,
            source=helm_source(
                "https://charts.jetstack.io",
                "cert-manager",
                "v1.16.2",
                {"crds": {"enabled": True}},
            ),
            sync_options=("ServerSideApply=true",),
        )
    )


def _cert_manager_issuers(data: TemplateData) -> str:
    return dump(
        application(
            "cert-manager-issuers",
            "cert-manager",
            wave=-4,
            source=git_source(data, "manifests/cert-manager"),
        )
    )


def _selfsigned_issuer(data: TemplateData) -> str:
    return dump(
        {
            "apiVersion": "cert-manager.io/v1",
            "kind": "ClusterIssuer",
            "metadata": {"name": "selfsigned-issuer", "labels": dict(COMMON_LABELS)},
            "spec": {"selfSigned": {}},
        }
    )


def _letsencrypt_issuer(data: TemplateData) -> str:
    return dump(
        {
            "apiVersion": "cert-manager.io/v1",
            "kind": "ClusterIssuer",
            "metadata": {"name": "letsencrypt-issuer", "labels": dict(COMMON_LABELS)},
            "spec": {
                "acme": {
                    "email": data.acme_email,
                    "server": data.acme_server,
                    "privateKeySecretRef": {"name": "letsencrypt-issuer-account-key"},
                    "solvers": [
                        {
                            "http01": {
                                "gatewayHTTPRoute": {
                                    "parentRefs": [
                                        {
                                            "name": GATEWAY_NAME,
                                            "namespace": GATEWAY_NAMESPACE,
                                            "kind": "Gateway",
                                        }
                                    ]
                                }
                            }
                        }
                    ],
                }
            },
        }
    )


def _envoy_gateway(data: TemplateData) -> str:
    return dump(
        application(
            "envoy-gateway",
            GATEWAY_NAMESPACE,
            wave=-3,
            source=helm_source("docker.io/envoyproxy", "gateway-helm", "v1.2.4"),
            sync_options=("ServerSideApply=true",),
        )
    )


def _gateway(data: TemplateData) -> str:
    return dump(
        application(
            "gateway",
            GATEWAY_NAMESPACE,
            wave=-2,
            source=git_source(data, "manifests/gateway"),
        )
    )


def _gateway_manifests(data: TemplateData) -> str:
    wildcard = f"*.{data.domain}"
    return dump(
        {
            "apiVersion": "gateway.networking.k8s.io/v1",
            "kind": "GatewayClass",
            "metadata": {"name": "envoy", "labels": dict(COMMON_LABELS)},
            "spec": {"controllerName": "gateway.envoyproxy.io/gatewayclass-controller"},
        },
        {
            "apiVersion": "cert-manager.io/v1",
            "kind": "Certificate",
            "metadata": {
                "name": "wildcard-tls",
                "namespace": GATEWAY_NAMESPACE,
                "labels": dict(COMMON_LABELS),
            },
            "spec": {
                "secretName": "wildcard-tls",
                "dnsNames": [data.domain, wildcard],
                "issuerRef": {"name": data.certificate_issuer, "kind": "ClusterIssuer"},
            },
        },
        {
            "apiVersion": "gateway.networking.k8s.io/v1",
            "kind": "Gateway",
            "metadata": {
                "name": GATEWAY_NAME,
                "namespace": GATEWAY_NAMESPACE,
                "labels": dict(COMMON_LABELS),
            },
            "spec": {
                "gatewayClassName": "envoy",
                "listeners": [
                    {
                        "name": "http",
                        "protocol": "HTTP",
                        "port": 80,
                        "allowedRoutes": {"namespaces": {"from": "All"}},
                    },
                    {
                        "name": "https",
                        "protocol": "HTTPS",
                        "port": 443,
                        "hostname": wildcard,
                        "tls": {
                            "mode": "Terminate",
                            "certificateRefs": [{"kind": "Secret", "name": "wildcard-tls"}],
                        },
                        "allowedRoutes": {"namespaces": {"from": "All"}},
                    },
                ],
            },
        },
    )


def _postgresql(data: TemplateData) -> str:
    return dump(
        application(
            "postgresql",
            KEYCLOAK_NAMESPACE,
            wave=-1,
            source=helm_source(
                "registry-1.docker.io/bitnamicharts",
                "postgresql",
                "16.4.1",
                {
                    "auth": {
                        "existingSecret": "postgresql-credentials",
                        "secretKeys": {
                            "adminPasswordKey": "postgres-password",
                            "userPasswordKey": "user-password",
                        },
                        "username": "keycloak",
                        "database": "keycloak",
                    },
                    "primary": {"persistence": {"storageClass": data.storage_class}},
                },
            ),
        )
    )


def _keycloak(data: TemplateData) -> str:
    hostname = f"keycloak.{data.domain}"
    return dump(
        application(
            "keycloak",
            KEYCLOAK_NAMESPACE,
            wave=0,
            source=helm_source(
                "https://codecentric.github.io/helm-charts",
                "keycloakx",
                "7.0.1",
                {
                    "command": ["/opt/keycloak/bin/kc.sh", "start", "--http-enabled=true"],
                    "database": {
                        "vendor": "postgres",
                        "hostname": "postgresql",
                        "port": 5432,
                        "database": "keycloak",
                        "username": "keycloak",
                        "existingSecret": "keycloak-postgresql-credentials",
                        "existingSecretKey": "password",
                    },
                    "extraEnv": "\n".join(
                        [
                            "- name: KC_HOSTNAME",
                            f"  value: {hostname}",
                            "- name: KC_PROXY_HEADERS",
                            "  value: xforwarded",
                            "- name: KEYCLOAK_ADMIN",
                            "  value: admin",
                            "- name: KEYCLOAK_ADMIN_PASSWORD",
                            "  valueFrom:",
                            "    secretKeyRef:",
                            "      name: keycloak-admin-credentials",
                            "      key: admin-password",
                        ]
                    ),
                },
            ),
        )
    )


def _metallb(data: TemplateData) -> str:
    return dump(
        application(
            "metallb",
            "metallb-system",
            wave=-5,
            source=helm_source("https://metallb.github.io/metallb", "metallb", "0.14.9"),
        )
    )


def _metallb_config(data: TemplateData) -> str:
    return dump(
        application(
            "metallb-config",
            "metallb-system",
            wave=-4,
            source=git_source(data, "manifests/metallb"),
        )
    )


def _metallb_pool(data: TemplateData) -> str:
    return dump(
        {
            "apiVersion": "metallb.io/v1beta1",
            "kind": "IPAddressPool",
            "metadata": {
                "name": "default-pool",
                "namespace": "metallb-system",
                "labels": dict(COMMON_LABELS),
            },
            "spec": {"addresses": [data.metallb_address_range]},
        },
        {
            "apiVersion": "metallb.io/v1beta1",
            "kind": "L2Advertisement",
            "metadata": {
                "name": "default",
                "namespace": "metallb-system",
                "labels": dict(COMMON_LABELS),
            },
            "spec": {"ipAddressPools": ["default-pool"]},
        },
    )


def _opentelemetry_collector(data: TemplateData) -> str:
    return dump(
        application(
            "opentelemetry-collector",
            "observability",
            wave=1,
            sources=[
                {
                    "repoURL": "https://open-telemetry.github.io/opentelemetry-helm-charts",
                    "chart": "opentelemetry-collector",
                    "targetRevision": "0.110.0",
                    "helm": {
                        "valuesObject": {
                            "mode": "deployment",
                            "image": {"repository": "otel/opentelemetry-collector-k8s"},
                        },
                        "valueFiles": [f"$values/{repo_path(data, OTEL_OVERRIDES)}"],
                    },
                },
                {
                    "repoURL": data.git_repo_url,
                    "targetRevision": data.git_branch,
                    "ref": "values",
                },
            ],
        )
    )


def _opentelemetry_overrides(data: TemplateData) -> str:
    return (
        "# Helm value overrides for the OpenTelemetry collector.\n"
        "# This file is created once and never regenerated; edit it freely.\n"
        "{}\n"
    )


# =============================================================================
# Catalog
# =============================================================================


@dataclass(frozen=True)
class CatalogEntry:
    """One rendered file.

    Attributes:
        path: Path relative to the working directory.
        build: Produces the file content.
        providers: Providers the entry applies to; None means all.
        issuer: Certificate issuer the entry applies to; None means any.
        write_once: Never overwrite an existing file (user-owned overrides).
    """

    path: str
    build: Callable[[TemplateData], str]
    providers: frozenset[str] | None = None
    issuer: str | None = None
    write_once: bool = False

    @property
    def is_application(self) -> bool:
        return self.path.startswith("apps/")

    @property
    def name(self) -> str:
        return PurePosixPath(self.path).stem

    def applies_to(self, data: TemplateData) -> bool:
        if self.providers is not None and data.provider not in self.providers:
            return False
        return self.issuer is None or self.issuer == data.certificate_issuer


LOCAL_ONLY = frozenset({"local"})

CATALOG: tuple[CatalogEntry, ...] = (
    CatalogEntry("apps/cert-manager.yaml", _cert_manager),
    CatalogEntry("apps/cert-manager-issuers.yaml", _cert_manager_issuers),
    CatalogEntry("apps/envoy-gateway.yaml", _envoy_gateway),
    CatalogEntry("apps/gateway.yaml", _gateway),
    CatalogEntry("apps/keycloak.yaml", _keycloak),
    CatalogEntry("apps/metallb.yaml", _metallb, providers=LOCAL_ONLY),
    CatalogEntry("apps/metallb-config.yaml", _metallb_config, providers=LOCAL_ONLY),
    CatalogEntry("apps/opentelemetry-collector.yaml", _opentelemetry_collector),
    CatalogEntry("apps/postgresql.yaml", _postgresql),
    CatalogEntry("manifests/cert-manager/selfsigned-issuer.yaml", _selfsigned_issuer),
    CatalogEntry(
        "manifests/cert-manager/letsencrypt-issuer.yaml",
        _letsencrypt_issuer,
        issuer="letsencrypt-issuer",
    ),
    CatalogEntry("manifests/gateway/gateway.yaml", _gateway_manifests),
    CatalogEntry("manifests/metallb/ip-pool.yaml", _metallb_pool, providers=LOCAL_ONLY),
    CatalogEntry(
        OTEL_OVERRIDES,
        _opentelemetry_overrides,
        write_once=True,
    ),
)

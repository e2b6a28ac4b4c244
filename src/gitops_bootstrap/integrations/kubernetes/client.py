"""Kubernetes API client built from a kubeconfig blob.

The kubeconfig comes from whatever provisioned the cluster (a cloud
provider collaborator, a file on disk, a CI secret). The client keeps its
own ``ApiClient`` so several clusters can be driven from one process
without touching the kubernetes package's global default configuration.
"""

from __future__ import annotations

from pathlib import Path
from typing import TYPE_CHECKING, Any

import structlog
import yaml
from tenacity import (
    retry,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)

from gitops_bootstrap.integrations.kubernetes.exceptions import (
    KubernetesAuthError,
    KubernetesConflictError,
    KubernetesConnectionError,
    KubernetesError,
    KubernetesNotFoundError,
    KubernetesValidationError,
)

if TYPE_CHECKING:
    from kubernetes.client import ApiClient, AppsV1Api, CoreV1Api, VersionApi
    from kubernetes.dynamic import DynamicClient

logger = structlog.get_logger()

DEFAULT_RETRY_ATTEMPTS = 3


class KubernetesClient:
    """Kubernetes API client for a single cluster.

    Wraps the official kubernetes Python client with:
    - Construction from kubeconfig bytes (no global state)
    - Lazy API group and dynamic client initialization
    - Retry with tenacity for transient connection errors
    - Translation of API errors to the exceptions in ``exceptions.py``

    Example:
        ```python
        kubeconfig = provider.get_kubeconfig()
        with KubernetesClient(kubeconfig) as client:
            nodes = client.core_v1.list_node()
        ```
    """

    def __init__(
        self,
        kubeconfig: bytes | str,
        *,
        context: str | None = None,
        retry_attempts: int = DEFAULT_RETRY_ATTEMPTS,
    ) -> None:
        """Initialize the client.

        Args:
            kubeconfig: Kubeconfig document as bytes or text.
            context: Kubeconfig context to use; the current-context if None.
            retry_attempts: Attempts for calls wrapped by the retry decorator.

        Raises:
            KubernetesConnectionError: If the kubeconfig cannot be parsed.
        """
        self._retries = retry_attempts
        self._context = context

        self._core_v1: CoreV1Api | None = None
        self._apps_v1: AppsV1Api | None = None
        self._version_api: VersionApi | None = None
        self._dynamic: DynamicClient | None = None

        self._api_client = self._load_config(kubeconfig, context)
        logger.debug("kubernetes_client_initialized", context=context or "current-context")

    @classmethod
    def from_file(cls, path: str | Path, **kwargs: Any) -> KubernetesClient:
        """Create a client from a kubeconfig file on disk."""
        kubeconfig_path = Path(path).expanduser()
        try:
            content = kubeconfig_path.read_bytes()
        except OSError as e:
            raise KubernetesConnectionError(
                message=f"Cannot read kubeconfig {kubeconfig_path}",
                original_error=e,
            ) from e
        return cls(content, **kwargs)

    @staticmethod
    def _load_config(kubeconfig: bytes | str, context: str | None) -> ApiClient:
        """Parse kubeconfig content into a dedicated ``ApiClient``."""
        from kubernetes import config
        from kubernetes.config import ConfigException

        try:
            config_dict = yaml.safe_load(kubeconfig)
        except yaml.YAMLError as e:
            raise KubernetesConnectionError(
                message="Kubeconfig is not valid YAML",
                original_error=e,
            ) from e

        if not isinstance(config_dict, dict):
            raise KubernetesConnectionError(message="Kubeconfig must be a YAML mapping")

        try:
            return config.new_client_from_config_dict(config_dict, context=context)
        except (ConfigException, KeyError, TypeError, ValueError) as e:
            raise KubernetesConnectionError(
                message="Cannot load Kubernetes configuration from kubeconfig",
                original_error=e,
            ) from e

    # =========================================================================
    # Lazy API Group Accessors
    # =========================================================================

    @property
    def api_client(self) -> ApiClient:
        return self._api_client

    @property
    def core_v1(self) -> CoreV1Api:
        """CoreV1Api (nodes, namespaces, secrets)."""
        if self._core_v1 is None:
            from kubernetes.client import CoreV1Api

            self._core_v1 = CoreV1Api(self._api_client)
        return self._core_v1

    @property
    def apps_v1(self) -> AppsV1Api:
        """AppsV1Api (deployments, statefulsets)."""
        if self._apps_v1 is None:
            from kubernetes.client import AppsV1Api

            self._apps_v1 = AppsV1Api(self._api_client)
        return self._apps_v1

    @property
    def version_api(self) -> VersionApi:
        if self._version_api is None:
            from kubernetes.client import VersionApi

            self._version_api = VersionApi(self._api_client)
        return self._version_api

    @property
    def dynamic(self) -> DynamicClient:
        """Dynamic client for arbitrary kinds. Runs API discovery on first use."""
        if self._dynamic is None:
            from kubernetes.dynamic import DynamicClient

            try:
                self._dynamic = DynamicClient(self._api_client)
            except Exception as e:
                raise self.translate_api_exception(e) from e
        return self._dynamic

    # =========================================================================
    # Error Translation
    # =========================================================================

    @staticmethod
    def translate_api_exception(
        e: Exception,
        kind: str | None = None,
        name: str | None = None,
        namespace: str | None = None,
    ) -> KubernetesError:
        """Translate a kubernetes client exception to a ``KubernetesError``.

        Args:
            e: The original exception.
            kind: Kind of the object being operated on.
            name: Name of the object.
            namespace: Namespace of the object.

        Returns:
            An appropriate KubernetesError subclass.
        """
        from kubernetes.client import ApiException
        from urllib3.exceptions import HTTPError

        if isinstance(e, KubernetesError):
            return e

        if isinstance(e, (HTTPError, ConnectionError)):
            return KubernetesConnectionError(
                message=f"Kubernetes API unreachable: {e}",
                original_error=e,
            )

        if not isinstance(e, ApiException):
            return KubernetesError(message=str(e), kind=kind, name=name, namespace=namespace)

        status = e.status

        if status in (401, 403):
            return KubernetesAuthError(
                message=e.reason or "Authentication/authorization failed",
                status_code=status,
                reason=e.reason,
            )

        if status == 404:
            return KubernetesNotFoundError(kind=kind, name=name, namespace=namespace)

        if status == 409:
            return KubernetesConflictError(kind=kind, name=name, namespace=namespace)

        if status in (400, 422):
            return KubernetesValidationError(
                message=e.reason or "Validation failed",
                status_code=status,
            )

        return KubernetesError(
            message=e.reason or f"Kubernetes API error: {status}",
            status_code=status,
            kind=kind,
            name=name,
            namespace=namespace,
        )

    def make_retry_decorator(self) -> Any:
        """Retry decorator for transient connection errors (exponential backoff)."""
        return retry(
            retry=retry_if_exception_type(KubernetesConnectionError),
            stop=stop_after_attempt(max(1, self._retries)),
            wait=wait_exponential(multiplier=1, min=1, max=10),
            reraise=True,
        )

    # =========================================================================
    # Connection Check
    # =========================================================================

    def check_connection(self) -> bool:
        """Return True if the API server answers a version request."""
        try:
            self.version_api.get_code()
            return True
        except Exception:
            return False

    # =========================================================================
    # Lifecycle
    # =========================================================================

    def close(self) -> None:
        """Release the underlying connection pool."""
        self._core_v1 = None
        self._apps_v1 = None
        self._version_api = None
        self._dynamic = None
        self._api_client.close()
        logger.debug("kubernetes_client_closed")

    def __enter__(self) -> KubernetesClient:
        return self

    def __exit__(self, *args: Any) -> None:
        self.close()

"""Kubernetes Secret provider, a thin adapter over the official client."""
import asyncio
import base64
import binascii
from pathlib import Path
from typing import Any, List, Optional

from kubernetes import client as k8s_client
from kubernetes import config as k8s_config
from kubernetes.client.exceptions import ApiException
from kubernetes.config.config_exception import ConfigException

from broker.secrets.base import Secret, SecretProvider
from broker.secrets.errors import (
    AuthenticationError,
    NotConfiguredError,
    ProviderError,
    SecretNotFoundError,
)
from broker.logging import get_logger

logger = get_logger(__name__)

SERVICE_ACCOUNT_NAMESPACE = Path("/var/run/secrets/kubernetes.io/serviceaccount/namespace")


def default_kubeconfig_path() -> str:
    return str(Path.home() / ".kube" / "config")


def detect_namespace(path: Path = SERVICE_ACCOUNT_NAMESPACE) -> str:
    """Namespace of the pod's service account, or 'default' outside a cluster."""
    try:
        namespace = path.read_text(encoding="utf-8").strip()
    except OSError:
        return "default"
    return namespace or "default"


def build_core_api(in_cluster: bool = True, kubeconfig: Optional[str] = None) -> k8s_client.CoreV1Api:
    """
    Create a CoreV1Api from local credentials only (no API call is made).

    In-cluster service account config is tried first when in_cluster is set,
    falling back to the kubeconfig file.
    """
    configuration = k8s_client.Configuration()

    loaded = False
    if in_cluster:
        try:
            k8s_config.load_incluster_config(client_configuration=configuration)
            loaded = True
        except ConfigException as e:
            logger.info("In-cluster Kubernetes config unavailable, trying kubeconfig", error=str(e))

    if not loaded:
        path = kubeconfig or default_kubeconfig_path()
        try:
            k8s_config.load_kube_config(config_file=path, client_configuration=configuration)
        except (ConfigException, OSError) as e:
            raise NotConfiguredError(f"failed to build Kubernetes config from {path}: {e}") from e

    return k8s_client.CoreV1Api(k8s_client.ApiClient(configuration=configuration))


class KubernetesSecretProvider(SecretProvider):
    """Reads keys from the data map of one Secret object in one namespace."""

    name = "kubernetes"

    def __init__(
        self,
        secret_name: str,
        namespace: Optional[str] = None,
        in_cluster: bool = True,
        kubeconfig: Optional[str] = None,
        health_timeout: float = 5.0,
        api: Optional[Any] = None,
    ):
        """
        Initialize the Kubernetes provider.

        Args:
            secret_name: Name of the Secret object
            namespace: Namespace of the Secret (defaults to the pod's namespace)
            in_cluster: Try the pod service account before kubeconfig
            kubeconfig: Path to a kubeconfig file
            health_timeout: Upper bound for healthy() (seconds)
            api: Pre-built CoreV1Api (skips credential discovery)
        """
        if not secret_name:
            raise ValueError("Kubernetes secret name is required")

        self.secret_name = secret_name
        self.namespace = namespace or detect_namespace()
        self.health_timeout = health_timeout
        self.api = api if api is not None else build_core_api(in_cluster, kubeconfig)

        logger.info(
            "Kubernetes provider initialized",
            namespace=self.namespace,
            secret_name=self.secret_name,
        )

    async def _read(self, request_timeout: Optional[float] = None):
        # The client is blocking; keep it off the event loop.
        kwargs = {}
        if request_timeout is not None:
            kwargs["_request_timeout"] = request_timeout
        try:
            return await asyncio.to_thread(
                self.api.read_namespaced_secret,
                name=self.secret_name,
                namespace=self.namespace,
                **kwargs,
            )
        except ApiException:
            raise
        except Exception as e:
            raise ProviderError(
                self.name, f"failed to reach Kubernetes API: {e}"
            ) from e

    def _wrap(self, error: ApiException) -> Exception:
        if error.status in (401, 403):
            return AuthenticationError(self.name, f"status {error.status} reading {self.secret_name}")
        return ProviderError(
            self.name,
            f"failed to get secret {self.namespace}/{self.secret_name}",
            error.status,
            error.body if isinstance(error.body, str) else None,
        )

    async def get_with_metadata(self, key: str) -> Secret:
        """Decode one entry of the Secret's data map."""
        try:
            k8s_secret = await self._read()
        except ApiException as e:
            if e.status == 404:
                raise SecretNotFoundError(key, provider=self.name) from e
            raise self._wrap(e) from e

        data = k8s_secret.data or {}
        if key not in data:
            raise SecretNotFoundError(key, provider=self.name)

        try:
            value = base64.b64decode(data[key] or "").decode("utf-8")
        except (binascii.Error, UnicodeDecodeError) as e:
            raise ProviderError(self.name, f"secret key {key!r} is not valid base64 text") from e

        meta = k8s_secret.metadata
        metadata = {
            "namespace": self.namespace,
            "secret_name": self.secret_name,
        }
        labels = (meta.labels if meta is not None else None) or {}
        for label, label_value in labels.items():
            metadata[f"label.{label}"] = label_value

        return Secret(
            key=key,
            value=value,
            version=(meta.resource_version if meta is not None else None) or "",
            created_at=meta.creation_timestamp if meta is not None else None,
            metadata=metadata,
        )

    async def list(self) -> List[str]:
        """Keys of the Secret's data map; a missing Secret lists as empty."""
        try:
            k8s_secret = await self._read()
        except ApiException as e:
            if e.status == 404:
                return []
            raise self._wrap(e) from e

        return [name for name in (k8s_secret.data or {})]

    async def close(self) -> None:
        """Close the API client's connection pool."""
        api_client = getattr(self.api, "api_client", None)
        if api_client is not None:
            api_client.close()

    async def healthy(self) -> bool:
        """The API is healthy if it answers, even with 'not found'."""
        try:
            await asyncio.wait_for(
                self._read(request_timeout=self.health_timeout), timeout=self.health_timeout
            )
        except ApiException as e:
            if e.status == 404:
                return True
            logger.warning("Kubernetes health check failed", status=e.status, reason=e.reason)
            return False
        except Exception as e:
            logger.warning("Kubernetes health check failed", error=str(e))
            return False
        return True

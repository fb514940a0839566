"""Test the Kubernetes provider with a stubbed CoreV1Api."""
import base64
import time
from datetime import datetime, timezone
from unittest.mock import MagicMock

import pytest
from kubernetes.client import V1ObjectMeta, V1Secret
from kubernetes.client.exceptions import ApiException
from kubernetes.config.config_exception import ConfigException

from broker.secrets import kubernetes_provider
from broker.secrets.errors import (
    AuthenticationError,
    NotConfiguredError,
    ProviderError,
    SecretNotFoundError,
)
from broker.secrets.kubernetes_provider import (
    KubernetesSecretProvider,
    build_core_api,
    detect_namespace,
)

CREATED = datetime(2024, 1, 15, 10, 30, tzinfo=timezone.utc)


def encode(value):
    return base64.b64encode(value.encode("utf-8")).decode("ascii")


def make_secret(data, labels=None):
    return V1Secret(
        data=data,
        metadata=V1ObjectMeta(
            name="app-secrets",
            namespace="apps",
            resource_version="12345",
            creation_timestamp=CREATED,
            labels=labels,
        ),
    )


def make_provider(api):
    return KubernetesSecretProvider(secret_name="app-secrets", namespace="apps", api=api)


@pytest.fixture
def api():
    stub = MagicMock()
    stub.read_namespaced_secret.return_value = make_secret(
        {"password": encode("s3cr3t"), "username": encode("admin")},
        labels={"app": "billing", "tier": "backend"},
    )
    return stub


def test_constructor_requires_secret_name(api):
    with pytest.raises(ValueError):
        KubernetesSecretProvider(secret_name="", api=api)


def test_constructor_detects_namespace(api, monkeypatch):
    monkeypatch.setattr(kubernetes_provider, "detect_namespace", lambda: "from-pod")

    provider = KubernetesSecretProvider(secret_name="app-secrets", api=api)

    assert provider.name == "kubernetes"
    assert provider.namespace == "from-pod"


@pytest.mark.asyncio
async def test_get_with_metadata(api):
    provider = make_provider(api)

    secret = await provider.get_with_metadata("password")

    api.read_namespaced_secret.assert_called_once_with(name="app-secrets", namespace="apps")
    assert secret.key == "password"
    assert secret.value == "s3cr3t"
    assert secret.version == "12345"
    assert secret.created_at == CREATED
    assert secret.metadata == {
        "namespace": "apps",
        "secret_name": "app-secrets",
        "label.app": "billing",
        "label.tier": "backend",
    }
    assert await provider.get("username") == "admin"


@pytest.mark.asyncio
async def test_get_missing_key(api):
    provider = make_provider(api)

    with pytest.raises(SecretNotFoundError) as exc_info:
        await provider.get("api-key")
    assert exc_info.value.key == "api-key"


@pytest.mark.asyncio
async def test_get_missing_secret_object(api):
    api.read_namespaced_secret.side_effect = ApiException(status=404, reason="Not Found")
    provider = make_provider(api)

    with pytest.raises(SecretNotFoundError):
        await provider.get("password")


@pytest.mark.asyncio
@pytest.mark.parametrize("status", [401, 403])
async def test_get_forbidden(api, status):
    api.read_namespaced_secret.side_effect = ApiException(status=status, reason="Forbidden")
    provider = make_provider(api)

    with pytest.raises(AuthenticationError):
        await provider.get("password")


@pytest.mark.asyncio
async def test_get_server_error(api):
    api.read_namespaced_secret.side_effect = ApiException(status=500, reason="Internal Server Error")
    provider = make_provider(api)

    with pytest.raises(ProviderError) as exc_info:
        await provider.get("password")
    assert exc_info.value.status_code == 500


@pytest.mark.asyncio
async def test_get_transport_error(api):
    api.read_namespaced_secret.side_effect = ConnectionError("connection refused")
    provider = make_provider(api)

    with pytest.raises(ProviderError, match="connection refused"):
        await provider.get("password")


@pytest.mark.asyncio
async def test_get_invalid_base64(api):
    api.read_namespaced_secret.return_value = make_secret({"password": "!!not-base64!!"})
    provider = make_provider(api)

    with pytest.raises(ProviderError):
        await provider.get("password")


@pytest.mark.asyncio
async def test_list(api):
    provider = make_provider(api)

    assert sorted(await provider.list()) == ["password", "username"]


@pytest.mark.asyncio
async def test_list_missing_secret_is_empty(api):
    api.read_namespaced_secret.side_effect = ApiException(status=404)
    provider = make_provider(api)

    assert await provider.list() == []


@pytest.mark.asyncio
async def test_list_error(api):
    api.read_namespaced_secret.side_effect = ApiException(status=403)
    provider = make_provider(api)

    with pytest.raises(AuthenticationError):
        await provider.list()


@pytest.mark.asyncio
async def test_healthy(api):
    provider = make_provider(api)

    assert await provider.healthy() is True
    assert api.read_namespaced_secret.call_args.kwargs["_request_timeout"] == provider.health_timeout


@pytest.mark.asyncio
async def test_healthy_when_secret_missing(api):
    api.read_namespaced_secret.side_effect = ApiException(status=404)

    assert await make_provider(api).healthy() is True


@pytest.mark.asyncio
async def test_unhealthy_on_api_error(api):
    api.read_namespaced_secret.side_effect = ApiException(status=500)

    assert await make_provider(api).healthy() is False


@pytest.mark.asyncio
async def test_unhealthy_on_slow_api(api):
    api.read_namespaced_secret.side_effect = lambda **kwargs: time.sleep(0.3)
    provider = KubernetesSecretProvider(
        secret_name="app-secrets", namespace="apps", health_timeout=0.05, api=api
    )

    assert await provider.healthy() is False


@pytest.mark.asyncio
async def test_close_closes_api_client(api):
    provider = make_provider(api)

    await provider.close()

    api.api_client.close.assert_called_once_with()


def test_detect_namespace(tmp_path):
    path = tmp_path / "namespace"
    path.write_text("payments\n", encoding="utf-8")

    assert detect_namespace(path) == "payments"
    assert detect_namespace(tmp_path / "missing") == "default"

    path.write_text("", encoding="utf-8")
    assert detect_namespace(path) == "default"


def test_build_core_api_prefers_in_cluster(monkeypatch):
    calls = []
    monkeypatch.setattr(
        kubernetes_provider.k8s_config, "load_incluster_config",
        lambda client_configuration: calls.append("incluster"),
    )
    monkeypatch.setattr(
        kubernetes_provider.k8s_config, "load_kube_config",
        lambda config_file, client_configuration: calls.append(config_file),
    )

    api = build_core_api(in_cluster=True, kubeconfig="/tmp/kubeconfig")

    assert calls == ["incluster"]
    assert api.api_client is not None


def test_build_core_api_falls_back_to_kubeconfig(monkeypatch):
    calls = []

    def no_cluster(client_configuration):
        raise ConfigException("Service host/port is not set.")

    monkeypatch.setattr(kubernetes_provider.k8s_config, "load_incluster_config", no_cluster)
    monkeypatch.setattr(
        kubernetes_provider.k8s_config, "load_kube_config",
        lambda config_file, client_configuration: calls.append(config_file),
    )

    build_core_api(in_cluster=True, kubeconfig="/tmp/kubeconfig")

    assert calls == ["/tmp/kubeconfig"]


def test_build_core_api_skips_in_cluster_when_disabled(monkeypatch):
    def unexpected(client_configuration):
        raise AssertionError("in-cluster config should not be tried")

    calls = []
    monkeypatch.setattr(kubernetes_provider.k8s_config, "load_incluster_config", unexpected)
    monkeypatch.setattr(
        kubernetes_provider.k8s_config, "load_kube_config",
        lambda config_file, client_configuration: calls.append(config_file),
    )
    monkeypatch.setattr(kubernetes_provider, "default_kubeconfig_path", lambda: "/home/dev/.kube/config")

    build_core_api(in_cluster=False)

    assert calls == ["/home/dev/.kube/config"]


def test_build_core_api_without_any_config(monkeypatch):
    def no_cluster(client_configuration):
        raise ConfigException("Service host/port is not set.")

    def no_kubeconfig(config_file, client_configuration):
        raise ConfigException("Invalid kube-config file. No configuration found.")

    monkeypatch.setattr(kubernetes_provider.k8s_config, "load_incluster_config", no_cluster)
    monkeypatch.setattr(kubernetes_provider.k8s_config, "load_kube_config", no_kubeconfig)

    with pytest.raises(NotConfiguredError, match="Kubernetes config"):
        build_core_api(in_cluster=True, kubeconfig="/nonexistent")

"""Tests for the Kubernetes API adapter, with the kubernetes API objects mocked."""

from types import SimpleNamespace
from unittest.mock import MagicMock, patch

import pytest
from kubernetes.client.rest import ApiException

from meshinventory.clients.kubernetes.client_factory import KubernetesClientFactory
from meshinventory.clients.kubernetes.k8s_client import KubernetesClient, METRICS_API_SERVICE
from meshinventory.core.exceptions import ClientConnectionException, ClusterAccessException


def container(name, requests=None, restart_policy=None):
    return SimpleNamespace(
        name=name,
        restart_policy=restart_policy,
        resources=SimpleNamespace(requests=requests),
    )


def api_service(*conditions):
    return SimpleNamespace(status=SimpleNamespace(
        conditions=[SimpleNamespace(type=t, status=s) for t, s in conditions]
    ))


@pytest.fixture
def k8s_client():
    client = KubernetesClient({"retry_attempts": 3, "retry_backoff_factor": 0}, context="prod")
    client.v1 = MagicMock()
    client.custom = MagicMock()
    client.apiregistration = MagicMock()
    return client


class TestQueries:

    def test_get_node(self, k8s_client):
        k8s_client.v1.read_node.return_value = SimpleNamespace(
            metadata=SimpleNamespace(name="node-a", labels={"topology.kubernetes.io/zone": "a"}),
            status=SimpleNamespace(capacity={'cpu': "4", 'memory': "16Gi", 'pods': "110"}),
        )

        node = k8s_client.get_node("node-a")

        assert node == {
            'name': "node-a",
            'labels': {"topology.kubernetes.io/zone": "a"},
            'capacity': {'cpu': "4", 'memory': "16Gi"},
        }

    def test_list_pods(self, k8s_client):
        pod = SimpleNamespace(
            metadata=SimpleNamespace(name="web-1"),
            spec=SimpleNamespace(
                containers=[container("app", {'cpu': "500m", 'memory': "1Gi"}), container("istio-proxy")],
                init_containers=[container("proxy-init", restart_policy="Always")],
            ),
        )
        k8s_client.v1.list_namespaced_pod.return_value = SimpleNamespace(items=[pod])

        pods = k8s_client.list_pods("shop")

        k8s_client.v1.list_namespaced_pod.assert_called_once_with("shop")
        assert pods[0]['name'] == "web-1"
        assert pods[0]['containers'][0]['requests'] == {'cpu': "500m", 'memory': "1Gi"}
        assert pods[0]['containers'][1]['requests'] == {'cpu': None, 'memory': None}
        assert pods[0]['init_containers'][0]['restart_policy'] == "Always"

    def test_list_namespaces(self, k8s_client):
        k8s_client.v1.list_namespace.return_value = SimpleNamespace(items=[
            SimpleNamespace(metadata=SimpleNamespace(name="shop", labels={"istio-injection": "enabled"})),
            SimpleNamespace(metadata=SimpleNamespace(name="default", labels=None)),
        ])

        assert k8s_client.list_namespaces() == [
            {'name': "shop", 'labels': {"istio-injection": "enabled"}},
            {'name': "default", 'labels': {}},
        ]

    def test_get_pod_metrics(self, k8s_client):
        k8s_client.custom.list_namespaced_custom_object.return_value = {
            'items': [{
                'metadata': {'name': "web-1"},
                'containers': [{'name': "app", 'usage': {'cpu': "12345n", 'memory': "20Mi"}}],
            }]
        }

        metrics = k8s_client.get_pod_metrics("shop")

        assert metrics == [{'name': "web-1", 'containers': [{'name': "app", 'usage': {'cpu': "12345n", 'memory': "20Mi"}}]}]
        kwargs = k8s_client.custom.list_namespaced_custom_object.call_args.kwargs
        assert kwargs["group"] == "metrics.k8s.io"
        assert kwargs["plural"] == "pods"

    def test_get_node_metrics(self, k8s_client):
        k8s_client.custom.get_cluster_custom_object.return_value = {'usage': {'cpu': "1", 'memory': "2Gi"}}

        assert k8s_client.get_node_metrics("node-a") == {'cpu': "1", 'memory': "2Gi"}


class TestRetries:

    def test_server_error_is_retried(self, k8s_client):
        k8s_client.v1.list_node.side_effect = ApiException(status=500, reason="Internal Server Error")

        with pytest.raises(ClusterAccessException) as exc_info:
            k8s_client.list_nodes()

        assert exc_info.value.status == 500
        assert k8s_client.v1.list_node.call_count == 3

    def test_transient_error_then_success(self, k8s_client):
        k8s_client.v1.list_node.side_effect = [
            ApiException(status=429, reason="Too Many Requests"),
            SimpleNamespace(items=[SimpleNamespace(metadata=SimpleNamespace(name="node-a"))]),
        ]

        assert k8s_client.list_nodes() == ["node-a"]
        assert k8s_client.v1.list_node.call_count == 2

    def test_client_error_is_not_retried(self, k8s_client):
        k8s_client.v1.list_namespaced_pod.side_effect = ApiException(status=404, reason="Not Found")

        with pytest.raises(ClusterAccessException) as exc_info:
            k8s_client.list_pods("gone")

        assert exc_info.value.status == 404
        assert k8s_client.v1.list_namespaced_pod.call_count == 1


class TestMetricsProbe:

    def test_available(self, k8s_client):
        k8s_client.apiregistration.read_api_service.return_value = api_service(("Available", "True"))

        assert k8s_client.has_metrics_api() is True
        k8s_client.apiregistration.read_api_service.assert_called_once_with(METRICS_API_SERVICE)

    def test_registered_but_unavailable(self, k8s_client):
        k8s_client.apiregistration.read_api_service.return_value = api_service(("Available", "False"))

        assert k8s_client.has_metrics_api() is False

    def test_not_registered(self, k8s_client):
        k8s_client.apiregistration.read_api_service.side_effect = ApiException(status=404, reason="Not Found")

        assert k8s_client.has_metrics_api() is False

    def test_probe_error(self, k8s_client):
        k8s_client.apiregistration.read_api_service.side_effect = ApiException(status=403, reason="Forbidden")

        assert k8s_client.has_metrics_api() is False


class TestConnection:

    @pytest.mark.asyncio
    async def test_connect_failure(self):
        client = KubernetesClient({}, kubeconfig_path="/nonexistent/kubeconfig")

        with patch("meshinventory.clients.kubernetes.k8s_client.config.list_kube_config_contexts",
                   side_effect=Exception("no kubeconfig")):
            with pytest.raises(ClientConnectionException):
                await client.connect()

        assert not client.is_connected

    @pytest.mark.asyncio
    async def test_connect_uses_current_context(self):
        client = KubernetesClient({})

        with patch("meshinventory.clients.kubernetes.k8s_client.config") as kube_config:
            kube_config.list_kube_config_contexts.return_value = ([], {"name": "prod-eu"})
            await client.connect()

        assert client.is_connected
        assert client.cluster_name == "prod-eu"
        assert kube_config.load_kube_config.call_args.kwargs["context"] == "prod-eu"

    @pytest.mark.asyncio
    async def test_health_check_requires_connection(self):
        assert await KubernetesClient({}).health_check() is False

    def test_factory_prefers_explicit_context(self):
        factory = KubernetesClientFactory({"context": "staging", "kubeconfig_path": "/tmp/kc"})

        assert factory.create_client().context == "staging"
        assert factory.create_client("prod").context == "prod"
        assert factory.create_client().kubeconfig_path == "/tmp/kc"

    @pytest.mark.asyncio
    async def test_health_check_asks_api_server_version(self):
        client = KubernetesClient({"timeout_seconds": 30})
        client._connected = True

        with patch("meshinventory.clients.kubernetes.k8s_client.client.VersionApi") as version_api:
            assert await client.health_check() is True

        version_api.return_value.get_code.assert_called_once_with(_request_timeout=30)


class TestRequestTimeout:

    def test_timeout_is_passed_to_every_call(self):
        k8s = KubernetesClient({"timeout_seconds": 30, "retry_backoff_factor": 0}, context="prod")
        k8s.v1 = MagicMock()
        k8s.v1.list_node.return_value = SimpleNamespace(items=[])

        k8s.list_nodes()

        k8s.v1.list_node.assert_called_once_with(_request_timeout=30)

    def test_no_timeout_configured(self, k8s_client):
        k8s_client.v1.list_node.return_value = SimpleNamespace(items=[])

        k8s_client.list_nodes()

        k8s_client.v1.list_node.assert_called_once_with()

"""Shared fixtures: an in-memory cluster standing in for the Kubernetes API."""

import threading
import time
from collections import Counter
from typing import Any, Dict, List, Optional

import pytest

from meshinventory.core.base_client import ClusterAccessClient
from meshinventory.core.exceptions import ClusterAccessException


def make_pod(name: str, *containers: Dict[str, Any], init_containers: Optional[List[Dict[str, Any]]] = None):
    """Build a pod dict in the shape ``ClusterAccessClient.list_pods`` returns."""
    return {
        'name': name,
        'containers': list(containers),
        'init_containers': init_containers or [],
    }


def make_container(name: str, cpu: Optional[str] = None, memory: Optional[str] = None, restart_policy=None):
    return {
        'name': name,
        'restart_policy': restart_policy,
        'requests': {'cpu': cpu, 'memory': memory},
    }


def meshed_pod(name: str, app_cpu="500m", app_mem="1Gi", proxy_cpu="100m", proxy_mem="128Mi"):
    return make_pod(
        name,
        make_container("app", app_cpu, app_mem),
        make_container("istio-proxy", proxy_cpu, proxy_mem),
    )


class FakeClusterClient(ClusterAccessClient):
    """In-memory ``ClusterAccessClient`` with call counting and failure injection."""

    def __init__(self,
                 cluster_name: str = "test-cluster",
                 nodes: Optional[Dict[str, Dict[str, Any]]] = None,
                 namespaces: Optional[List[Dict[str, Any]]] = None,
                 pods: Optional[Dict[str, List[Dict[str, Any]]]] = None,
                 metrics: bool = True,
                 node_metrics: Optional[Dict[str, Dict[str, str]]] = None,
                 pod_metrics: Optional[Dict[str, List[Dict[str, Any]]]] = None,
                 failures: Optional[Dict[str, Exception]] = None,
                 delays: Optional[Dict[str, float]] = None,
                 healthy: bool = True):
        super().__init__({}, "FakeClusterClient")
        self.cluster_name = cluster_name
        self.nodes = nodes or {}
        self.namespaces = namespaces or []
        self.pods = pods or {}
        self.metrics = metrics
        self.node_metrics = node_metrics or {}
        self.pod_metrics = pod_metrics or {}
        self.failures = failures or {}
        self.delays = delays or {}
        self.healthy = healthy

        self.calls = Counter()
        self.in_flight = 0
        self.max_in_flight = 0
        self.timeline: Dict[str, tuple] = {}
        self._lock = threading.Lock()

    async def connect(self) -> None:
        self._connected = True

    async def disconnect(self) -> None:
        self._connected = False

    async def health_check(self) -> bool:
        return self._connected and self.healthy

    def _enter(self, operation: str, target: str):
        self.calls[(operation, target)] += 1
        failure = self.failures.get(f"{operation}:{target}")
        if failure is not None:
            raise failure

    def list_nodes(self) -> List[str]:
        return list(self.nodes)

    def get_node(self, name: str) -> Dict[str, Any]:
        self._enter("get_node", name)
        node = self.nodes[name]
        return {'name': name, 'labels': node.get('labels', {}), 'capacity': node.get('capacity')}

    def list_namespaces(self) -> List[Dict[str, Any]]:
        return [{'name': ns['name'], 'labels': ns.get('labels', {})} for ns in self.namespaces]

    def list_pods(self, namespace: str) -> List[Dict[str, Any]]:
        with self._lock:
            self.in_flight += 1
            self.max_in_flight = max(self.max_in_flight, self.in_flight)
        started = time.monotonic()
        try:
            self._enter("list_pods", namespace)
            time.sleep(self.delays.get(namespace, 0))
            return self.pods.get(namespace, [])
        finally:
            with self._lock:
                self.in_flight -= 1
            self.timeline[namespace] = (started, time.monotonic())

    def has_metrics_api(self) -> bool:
        return self.metrics

    def get_node_metrics(self, name: str) -> Dict[str, Any]:
        self._enter("get_node_metrics", name)
        return self.node_metrics.get(name, {})

    def get_pod_metrics(self, namespace: str) -> List[Dict[str, Any]]:
        self._enter("get_pod_metrics", namespace)
        return self.pod_metrics.get(namespace, [])


def api_error(operation: str = "call", status: int = 500) -> ClusterAccessException:
    return ClusterAccessException(operation, "boom", status=status)


@pytest.fixture
def injected_labels():
    return {"istio-injection": "enabled"}


@pytest.fixture
def small_cluster():
    """2 nodes, 3 injected namespaces of which one has no pods."""
    return FakeClusterClient(
        nodes={
            "node-a": {
                'labels': {
                    "node.kubernetes.io/instance-type": "m5.large",
                    "topology.kubernetes.io/region": "eu-west-1",
                    "topology.kubernetes.io/zone": "eu-west-1a",
                },
                'capacity': {'cpu': "2", 'memory': "8Gi"},
            },
            "node-b": {'labels': {}, 'capacity': {'cpu': "4", 'memory': "16Gi"}},
        },
        namespaces=[
            {'name': "shop", 'labels': {"istio-injection": "enabled"}},
            {'name': "payments", 'labels': {"istio.io/rev": "1-22"}},
            {'name': "empty", 'labels': {"istio-injection": "enabled"}},
        ],
        pods={
            "shop": [meshed_pod("shop-1"), meshed_pod("shop-2")],
            "payments": [meshed_pod("pay-1", app_cpu="1", app_mem="2Gi")],
            "empty": [],
        },
        node_metrics={
            "node-a": {'cpu': "250000000n", 'memory': "2Gi"},
            "node-b": {'cpu': "1", 'memory': "4Gi"},
        },
        pod_metrics={
            "shop": [
                {'name': "shop-1", 'containers': [
                    {'name': "app", 'usage': {'cpu': "100m", 'memory': "512Mi"}},
                    {'name': "istio-proxy", 'usage': {'cpu': "10m", 'memory': "64Mi"}},
                ]},
            ],
        },
    )

# src/meshinventory/clients/kubernetes/k8s_client.py
"""Kubernetes client exposing the queries the inventory collectors need."""

import asyncio
from typing import Dict, Any, List, Optional
import structlog
from kubernetes import client, config
from kubernetes.client.rest import ApiException

from meshinventory.core.base_client import ClusterAccessClient
from meshinventory.core.exceptions import ClientConnectionException, ClusterAccessException
from meshinventory.core.utils import retry_with_backoff

logger = structlog.get_logger(__name__)

METRICS_GROUP = "metrics.k8s.io"
METRICS_VERSION = "v1beta1"
METRICS_API_SERVICE = f"{METRICS_VERSION}.{METRICS_GROUP}"


def _is_retryable(exc: BaseException) -> bool:
    return isinstance(exc, ClusterAccessException) and exc.retryable


class KubernetesClient(ClusterAccessClient):
    """Kubernetes client bound to a single kubeconfig context."""

    def __init__(self,
                 config_dict: Dict[str, Any],
                 kubeconfig_path: Optional[str] = None,
                 context: Optional[str] = None):
        super().__init__(config_dict, "KubernetesClient")
        self.kubeconfig_path = kubeconfig_path
        self.context = context
        self.cluster_name = context or "unknown"
        self.pool_size = config_dict.get("pool_size", 16)
        self.request_timeout = config_dict.get("timeout_seconds")

        self.api_client = None
        self.v1 = None
        self.custom = None
        self.apiregistration = None

        self._call = retry_with_backoff(
            max_retries=config_dict.get("retry_attempts", 3),
            backoff_factor=config_dict.get("retry_backoff_factor", 1.5),
            retry_on=_is_retryable
        )(self._call_once)

    async def connect(self) -> None:
        """Load the kubeconfig context and build API clients."""
        try:
            if not self.context:
                _, active = config.list_kube_config_contexts(config_file=self.kubeconfig_path)
                self.context = active["name"]
            self.cluster_name = self.context

            configuration = client.Configuration()
            config.load_kube_config(
                config_file=self.kubeconfig_path,
                context=self.context,
                client_configuration=configuration
            )
            # collectors call the API from worker threads concurrently
            configuration.connection_pool_maxsize = self.pool_size

            self.api_client = client.ApiClient(configuration)
            self.v1 = client.CoreV1Api(self.api_client)
            self.custom = client.CustomObjectsApi(self.api_client)
            self.apiregistration = client.ApiregistrationV1Api(self.api_client)

            self._connected = True
            self.logger.info("Kubernetes client connected", context=self.context)

        except Exception as e:
            raise ClientConnectionException("Kubernetes", f"Could not load context {self.context!r}: {e}")

    async def disconnect(self) -> None:
        """Release the API client connection pool."""
        if self.api_client is not None:
            self.api_client.close()
        self._connected = False
        self.logger.info("Kubernetes client disconnected")

    async def health_check(self) -> bool:
        """Check that the API server answers."""
        try:
            if not self._connected:
                return False
            await asyncio.to_thread(client.VersionApi(self.api_client).get_code, **self._request_options())
            return True
        except Exception as e:
            self.logger.warning("Kubernetes health check failed", error=str(e))
            return False

    def _request_options(self) -> Dict[str, Any]:
        # per-request HTTP timeout, unset means wait forever
        return {'_request_timeout': self.request_timeout} if self.request_timeout else {}

    def _call_once(self, operation: str, fn, *args, **kwargs):
        kwargs = {**self._request_options(), **kwargs}
        try:
            return fn(*args, **kwargs)
        except ApiException as e:
            raise ClusterAccessException(operation, e.reason or str(e), status=e.status)
        except Exception as e:
            # urllib3 connection errors and the like
            raise ClusterAccessException(operation, str(e))

    def list_nodes(self) -> List[str]:
        """List node names."""
        node_list = self._call("list_node", self.v1.list_node)
        return [node.metadata.name for node in node_list.items]

    def get_node(self, name: str) -> Dict[str, Any]:
        """Read node labels and capacity."""
        node = self._call("read_node", self.v1.read_node, name)
        capacity = (node.status.capacity or {}) if node.status else {}
        return {
            'name': node.metadata.name,
            'labels': node.metadata.labels or {},
            'capacity': {
                'cpu': capacity.get('cpu'),
                'memory': capacity.get('memory')
            }
        }

    def list_namespaces(self) -> List[Dict[str, Any]]:
        """List namespaces with their labels."""
        ns_list = self._call("list_namespace", self.v1.list_namespace)
        return [
            {'name': ns.metadata.name, 'labels': ns.metadata.labels or {}}
            for ns in ns_list.items
        ]

    def list_pods(self, namespace: str) -> List[Dict[str, Any]]:
        """List pods of a namespace with container resource requests."""
        pod_list = self._call("list_namespaced_pod", self.v1.list_namespaced_pod, namespace)
        return [
            {
                'name': pod.metadata.name,
                'containers': [self._container_to_dict(c) for c in (pod.spec.containers or [])],
                'init_containers': [self._container_to_dict(c) for c in (pod.spec.init_containers or [])]
            }
            for pod in pod_list.items
        ]

    def has_metrics_api(self) -> bool:
        """Check the metrics APIService is registered and Available."""
        try:
            service = self._call_once(
                "read_api_service", self.apiregistration.read_api_service, METRICS_API_SERVICE
            )
        except ClusterAccessException as e:
            if e.status != 404:
                self.logger.warning("Could not probe metrics API", error=e.message)
            return False

        conditions = (service.status.conditions or []) if service.status else []
        for condition in conditions:
            if condition.type == 'Available':
                return condition.status == 'True'
        return False

    def get_node_metrics(self, name: str) -> Dict[str, Any]:
        """Read live node usage from metrics-server."""
        metrics = self._call(
            "get_node_metrics",
            self.custom.get_cluster_custom_object,
            group=METRICS_GROUP, version=METRICS_VERSION, plural="nodes", name=name
        )
        usage = metrics.get('usage', {})
        return {'cpu': usage.get('cpu'), 'memory': usage.get('memory')}

    def get_pod_metrics(self, namespace: str) -> List[Dict[str, Any]]:
        """Read live usage of every pod in a namespace from metrics-server."""
        metrics = self._call(
            "list_pod_metrics",
            self.custom.list_namespaced_custom_object,
            group=METRICS_GROUP, version=METRICS_VERSION, namespace=namespace, plural="pods"
        )
        return [
            {
                'name': item.get('metadata', {}).get('name'),
                'containers': [
                    {'name': c.get('name'), 'usage': c.get('usage', {})}
                    for c in item.get('containers', [])
                ]
            }
            for item in metrics.get('items', [])
        ]

    # Helper methods
    def _container_to_dict(self, container) -> Dict[str, Any]:
        requests = (container.resources.requests or {}) if container.resources else {}
        return {
            'name': container.name,
            'restart_policy': getattr(container, 'restart_policy', None),
            'requests': {
                'cpu': requests.get('cpu'),
                'memory': requests.get('memory')
            }
        }

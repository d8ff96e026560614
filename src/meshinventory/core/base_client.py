"""Base client interfaces for external services."""

from abc import ABC, abstractmethod
from typing import Dict, Any, List, Optional
import structlog

logger = structlog.get_logger(__name__)


class BaseClient(ABC):
    """Abstract base class for all external service clients."""

    def __init__(self, config: Dict[str, Any], name: Optional[str] = None):
        self.config = config
        self.name = name or self.__class__.__name__
        self._connected = False
        self.logger = logger.bind(client=self.name)

    @abstractmethod
    async def connect(self) -> None:
        """Establish connection to the external service."""
        pass

    @abstractmethod
    async def disconnect(self) -> None:
        """Close connection to the external service."""
        pass

    @abstractmethod
    async def health_check(self) -> bool:
        """Check if the client connection is healthy."""
        pass

    @property
    def is_connected(self) -> bool:
        """Check if client is connected."""
        return self._connected

    async def __aenter__(self):
        """Async context manager entry."""
        await self.connect()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        """Async context manager exit."""
        await self.disconnect()


class ClusterAccessClient(BaseClient):
    """Capabilities the collectors need from a cluster, scoped to one context.

    The query methods are synchronous and may block; collectors call them from
    worker threads. Failures raise ``ClusterAccessException``.
    """

    cluster_name: str = "unknown"

    @abstractmethod
    def list_nodes(self) -> List[str]:
        """Names of all nodes in the cluster."""

    @abstractmethod
    def get_node(self, name: str) -> Dict[str, Any]:
        """Node detail: ``{'name', 'labels', 'capacity': {'cpu', 'memory'}}``."""

    @abstractmethod
    def list_namespaces(self) -> List[Dict[str, Any]]:
        """Namespaces as ``{'name', 'labels'}``."""

    @abstractmethod
    def list_pods(self, namespace: str) -> List[Dict[str, Any]]:
        """Pods as ``{'name', 'containers': [...], 'init_containers': [...]}``.

        Containers are ``{'name', 'restart_policy', 'requests': {'cpu', 'memory'}}``.
        """

    @abstractmethod
    def has_metrics_api(self) -> bool:
        """Whether the ``metrics.k8s.io`` API is served by the cluster."""

    @abstractmethod
    def get_node_metrics(self, name: str) -> Dict[str, Any]:
        """Live node usage as ``{'cpu', 'memory'}`` quantity strings."""

    @abstractmethod
    def get_pod_metrics(self, namespace: str) -> List[Dict[str, Any]]:
        """Live pod usage as ``{'name', 'containers': [{'name', 'usage': {'cpu', 'memory'}}]}``."""

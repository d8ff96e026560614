from .classifier import ClassifiedResources, ContainerSpec, classify_containers
from .coordinator import CollectionCoordinator
from .namespace_collector import NamespaceCollector, is_mesh_injected
from .node_collector import NodeCollector
from .orchestrator import InventoryOrchestrator

__all__ = [
    "ContainerSpec",
    "ClassifiedResources",
    "classify_containers",
    "NamespaceCollector",
    "NodeCollector",
    "CollectionCoordinator",
    "InventoryOrchestrator",
    "is_mesh_injected",
]

from .snapshot_models import *
from .artifacts import *

__all__ = [
    "InventoryBaseModel",
    "ResourceUsage",
    "ResourceAggregate",
    "NamespaceResources",
    "NamespaceRecord",
    "NodeRecord",
    "ClusterSnapshot",
    "UnitKind",
    "UnitState",
    "WorkUnit",
    "CollectionArtifact",
]

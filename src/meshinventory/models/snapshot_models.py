"""Snapshot document models.

Optional sub-fields are omitted from the document when they do not apply:
``actual`` is absent when the cluster serves no metrics API, and a namespace
carries a ``sidecar`` aggregate only when it is mesh-injected.
"""

from typing import Any, Dict, Optional

from pydantic import BaseModel, ConfigDict, Field


class InventoryBaseModel(BaseModel):
    """Base model for all snapshot records."""

    model_config = ConfigDict(frozen=True, extra="ignore", use_enum_values=True)

    def to_document(self) -> Dict[str, Any]:
        return self.model_dump(mode="json", exclude_none=True)


class ResourceUsage(InventoryBaseModel):
    cpu: float = 0.0
    memory_gb: float = 0.0


class ResourceAggregate(InventoryBaseModel):
    """Totals for one container category within a namespace."""

    containers: int = 0
    requested: ResourceUsage = Field(default_factory=ResourceUsage)
    actual: Optional[ResourceUsage] = None
    unparsed_quantities: int = Field(0, exclude=True)


class NamespaceResources(InventoryBaseModel):
    regular: ResourceAggregate = Field(default_factory=ResourceAggregate)
    sidecar: Optional[ResourceAggregate] = None


class NamespaceRecord(InventoryBaseModel):
    pods: int = Field(..., ge=0)
    mesh_injected: bool = False
    resources: NamespaceResources = Field(default_factory=NamespaceResources)


class NodeRecord(InventoryBaseModel):
    instance_type: str = "unknown"
    region: str = "unknown"
    zone: str = "unknown"
    capacity: ResourceUsage = Field(default_factory=ResourceUsage)
    actual: Optional[ResourceUsage] = None


class ClusterSnapshot(InventoryBaseModel):
    """Top-level document, one per cluster context."""

    cluster: str
    has_metrics: bool = False
    nodes: Dict[str, NodeRecord] = Field(default_factory=dict)
    namespaces: Dict[str, NamespaceRecord] = Field(default_factory=dict)

    @classmethod
    def empty(cls, cluster: str, has_metrics: bool = False) -> "ClusterSnapshot":
        return cls(cluster=cluster, has_metrics=has_metrics)

    @classmethod
    def from_document(cls, data: Dict[str, Any]) -> "ClusterSnapshot":
        return cls.model_validate(data)

    def contains(self, section: str, key: str) -> bool:
        return key in getattr(self, section)

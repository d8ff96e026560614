"""Per-node capacity and usage collection."""

from typing import Dict, Any, Optional, Sequence
from pydantic import ValidationError

from meshinventory.core.exceptions import ClusterAccessException, CollectionError, CollectionErrorKind
from meshinventory.core.quantity import bytes_to_gib, parse_cpu, parse_memory
from meshinventory.models.snapshot_models import NodeRecord, ResourceUsage
from meshinventory.models.artifacts import UnitKind, WorkUnit
from .base import BaseCollector

UNKNOWN = "unknown"

INSTANCE_TYPE_LABELS = ("node.kubernetes.io/instance-type", "beta.kubernetes.io/instance-type")
REGION_LABELS = ("topology.kubernetes.io/region", "failure-domain.beta.kubernetes.io/region")
ZONE_LABELS = ("topology.kubernetes.io/zone", "failure-domain.beta.kubernetes.io/zone")


def label_value(labels: Dict[str, str], keys: Sequence[str], default: str = UNKNOWN) -> str:
    """First present label among ``keys``."""
    for key in keys:
        value = (labels or {}).get(key)
        if value:
            return value
    return default


def usage_from_quantities(quantities: Dict[str, Optional[str]]) -> ResourceUsage:
    return ResourceUsage(
        cpu=parse_cpu(quantities.get('cpu')),
        memory_gb=bytes_to_gib(parse_memory(quantities.get('memory')))
    )


class NodeCollector(BaseCollector):
    """Builds one ``NodeRecord`` per node."""

    def get_unit_kind(self) -> UnitKind:
        return UnitKind.NODE

    async def collect(self, unit: WorkUnit, metrics_available: bool) -> NodeRecord:
        try:
            node = await self._fetch(self.client.get_node, unit.name)
        except ClusterAccessException as e:
            raise CollectionError(CollectionErrorKind.MALFORMED_DATA, unit.name, f"Node detail unavailable: {e.message}")

        capacity = node.get('capacity') if isinstance(node, dict) else None
        if not isinstance(capacity, dict):
            raise CollectionError(CollectionErrorKind.MALFORMED_DATA, unit.name, "Node capacity missing")

        labels = node.get('labels') or {}
        actual = await self._fetch_usage(unit.name) if metrics_available else None

        try:
            return NodeRecord(
                instance_type=label_value(labels, INSTANCE_TYPE_LABELS),
                region=label_value(labels, REGION_LABELS),
                zone=label_value(labels, ZONE_LABELS),
                capacity=usage_from_quantities(capacity),
                actual=actual
            )
        except ValidationError as e:
            raise CollectionError(CollectionErrorKind.CONSTRUCTION_FAILURE, unit.name, str(e))

    async def _fetch_usage(self, name: str) -> ResourceUsage:
        try:
            usage = await self._fetch(self.client.get_node_metrics, name)
            return usage_from_quantities(usage)
        except ClusterAccessException as e:
            error = e.message
        except (AttributeError, KeyError, TypeError) as e:
            error = f"Unreadable metrics payload: {e}"

        self.logger.warning(
            "Node metrics unavailable, reporting zero usage",
            node=name,
            kind=CollectionErrorKind.METRICS_UNAVAILABLE.value,
            error=error
        )
        return ResourceUsage()

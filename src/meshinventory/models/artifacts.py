"""Work units and the per-job artifacts the collectors produce."""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, Optional, Union

from meshinventory.core.exceptions import CollectionError
from .snapshot_models import NamespaceRecord, NodeRecord


class UnitKind(str, Enum):
    NODE = "node"
    NAMESPACE = "namespace"

    @property
    def section(self) -> str:
        """Snapshot mapping the unit's record is merged into."""
        return "nodes" if self is UnitKind.NODE else "namespaces"


class UnitState(str, Enum):
    PENDING = "pending"
    IN_FLIGHT = "in_flight"
    SUCCEEDED = "succeeded"
    SKIPPED = "skipped"
    FAILED = "failed"


@dataclass
class WorkUnit:
    kind: UnitKind
    name: str
    key: str
    labels: Dict[str, str] = field(default_factory=dict)
    state: UnitState = UnitState.PENDING

    @property
    def section(self) -> str:
        return self.kind.section


@dataclass(frozen=True)
class CollectionArtifact:
    """Outcome of one job. Exactly one artifact exists per work unit."""

    unit: WorkUnit
    state: UnitState
    record: Optional[Union[NodeRecord, NamespaceRecord]] = None
    error: Optional[CollectionError] = None
    duration_seconds: float = 0.0

    def to_dict(self) -> Dict[str, Any]:
        return {
            'kind': self.unit.kind.value,
            'name': self.unit.name,
            'key': self.unit.key,
            'state': self.state.value,
            'error': self.error.message if self.error else None,
            'error_kind': self.error.kind.value if self.error else None,
            'duration_seconds': self.duration_seconds
        }

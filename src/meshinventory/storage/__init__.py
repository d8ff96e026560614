from .checkpoint import CheckpointStore
from .merger import MergeActor, SnapshotMerger, merge

__all__ = ["CheckpointStore", "SnapshotMerger", "MergeActor", "merge"]

"""Single writer of the shared snapshot document."""

import asyncio
from typing import Callable, Optional, Union

import structlog

from meshinventory.models.artifacts import CollectionArtifact, UnitState
from meshinventory.models.snapshot_models import ClusterSnapshot, NamespaceRecord, NodeRecord
from .checkpoint import CheckpointStore

logger = structlog.get_logger(__name__)

SECTIONS = ("nodes", "namespaces")


def merge(
    snapshot: ClusterSnapshot,
    section: str,
    key: str,
    record: Union[NodeRecord, NamespaceRecord]
) -> ClusterSnapshot:
    """Return a new snapshot with ``record`` stored whole under ``key``."""
    if section not in SECTIONS:
        raise ValueError(f"Unknown snapshot section: {section}")
    entries = dict(getattr(snapshot, section))
    entries[key] = record
    return snapshot.model_copy(update={section: entries})


class SnapshotMerger:
    """Folds artifacts into the snapshot one at a time, flushing after each merge."""

    def __init__(self, snapshot: ClusterSnapshot, store: Optional[CheckpointStore] = None):
        self.snapshot = snapshot
        self.store = store
        self.merged = 0
        self.logger = logger.bind(component="merger")

    def apply(self, artifact: CollectionArtifact) -> ClusterSnapshot:
        if artifact.state is UnitState.SUCCEEDED and artifact.record is not None:
            self.snapshot = merge(self.snapshot, artifact.unit.section, artifact.unit.key, artifact.record)
            self.merged += 1
            self.flush()
        # skipped units already have their entry; failed ones stay absent
        return self.snapshot

    def flush(self) -> None:
        if self.store is not None:
            self.store.save(self.snapshot)


class MergeActor:
    """Serializes merge requests from concurrent jobs through a queue.

    A merge failure stops the consumer; ``on_failure`` is called with the error
    right away so the producer can stop dispatching, and ``close`` re-raises it.
    """

    def __init__(self, merger: SnapshotMerger, on_failure: Optional[Callable[[BaseException], None]] = None):
        self.merger = merger
        self.on_failure = on_failure
        self.error: Optional[BaseException] = None
        self._queue: asyncio.Queue = asyncio.Queue()
        self._task: Optional[asyncio.Task] = None

    @property
    def failed(self) -> bool:
        return self.error is not None

    async def start(self) -> None:
        self._task = asyncio.create_task(self._consume())

    async def submit(self, artifact: CollectionArtifact) -> None:
        if self.failed:
            return
        await self._queue.put(artifact)

    async def close(self) -> None:
        """Drain pending artifacts and stop. Re-raises a merge failure."""
        if self._task is None:
            return
        if not self.failed:
            await self._queue.put(None)
        task, self._task = self._task, None
        await task

    async def _consume(self) -> None:
        while True:
            artifact = await self._queue.get()
            if artifact is None:
                break
            try:
                await asyncio.to_thread(self.merger.apply, artifact)
            except Exception as e:
                self.error = e
                self.merger.logger.error("Merge failed, no further results will be written", error=str(e))
                if self.on_failure is not None:
                    self.on_failure(e)
                raise

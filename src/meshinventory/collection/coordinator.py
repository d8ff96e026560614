"""Bounded-concurrency dispatch of node and namespace collection jobs."""

import asyncio
import functools
from concurrent.futures import ThreadPoolExecutor
from typing import Any, Callable, Dict, List, Optional
import structlog
from datetime import datetime, timezone

from meshinventory.config.settings import SchedulingMode
from meshinventory.core.base_client import ClusterAccessClient
from meshinventory.core.exceptions import ConfigurationException
from meshinventory.core.obfuscation import IdentityMapper
from meshinventory.core.utils import default_worker_count, gather_in_batches, gather_with_concurrency
from meshinventory.models.artifacts import CollectionArtifact, UnitKind, UnitState, WorkUnit
from meshinventory.storage.merger import MergeActor, SnapshotMerger
from .base import BaseCollector
from .namespace_collector import NamespaceCollector, is_mesh_injected
from .node_collector import NodeCollector

logger = structlog.get_logger(__name__)

ProgressCallback = Callable[[int, int], None]


class CollectionCoordinator:
    """Runs collectors over every node, then every namespace.

    At most ``max_workers`` jobs are in flight. Jobs only return artifacts;
    the merger is the single writer of the snapshot.
    """

    def __init__(self,
                 client: ClusterAccessClient,
                 merger: SnapshotMerger,
                 identity: Optional[IdentityMapper] = None,
                 config: Optional[Dict[str, Any]] = None,
                 progress: Optional[ProgressCallback] = None):
        config = config or {}
        self.client = client
        self.merger = merger
        self.identity = identity or IdentityMapper(enabled=False)
        self.max_workers = default_worker_count(config.get("max_workers"))
        try:
            self.scheduling = SchedulingMode(config.get("scheduling") or SchedulingMode.COMPLETION)
        except ValueError:
            raise ConfigurationException(f"Unknown scheduling mode: {config.get('scheduling')!r}")
        self.timeout_seconds = config.get("timeout_seconds")
        self.mesh_only = config.get("mesh_only", False)
        self.progress = progress

        self.collectors: Dict[UnitKind, BaseCollector] = {
            UnitKind.NODE: NodeCollector(client, config),
            UnitKind.NAMESPACE: NamespaceCollector(client, config),
        }

        self.units: List[WorkUnit] = []
        self.artifacts: List[CollectionArtifact] = []
        self._completed = 0
        self._stop_requested = False
        self.logger = logger.bind(coordinator=self.scheduling.value, max_workers=self.max_workers)

    def request_stop(self) -> None:
        """Finish dispatched jobs, dispatch no new ones."""
        if not self._stop_requested:
            self.logger.warning("Stop requested, waiting for in-flight jobs")
        self._stop_requested = True

    @property
    def stop_requested(self) -> bool:
        return self._stop_requested

    async def plan(self) -> List[WorkUnit]:
        """Enumerate nodes then namespaces as work units."""
        node_names = await asyncio.to_thread(self.client.list_nodes)
        namespaces = await asyncio.to_thread(self.client.list_namespaces)

        units = [WorkUnit(kind=UnitKind.NODE, name=name, key=self.identity(name)) for name in node_names]
        for ns in namespaces:
            labels = ns.get('labels') or {}
            if self.mesh_only and not is_mesh_injected(labels):
                continue
            units.append(WorkUnit(
                kind=UnitKind.NAMESPACE, name=ns['name'], key=self.identity(ns['name']), labels=labels
            ))

        # keys already merged by a previous run are not collected again
        for unit in units:
            if self.merger.snapshot.contains(unit.section, unit.key):
                unit.state = UnitState.SKIPPED

        self.logger.info(
            "Planned collection",
            nodes=sum(1 for u in units if u.kind is UnitKind.NODE),
            namespaces=sum(1 for u in units if u.kind is UnitKind.NAMESPACE),
            skipped=sum(1 for u in units if u.state is UnitState.SKIPPED)
        )
        return units

    async def run(self, metrics_available: bool) -> List[CollectionArtifact]:
        """Collect every planned unit and fold the artifacts into the snapshot."""
        start_time = datetime.now(timezone.utc)
        self.units = await self.plan()
        self._report_progress()

        # a call abandoned by a timeout keeps its thread, so it still counts against the cap
        executor = ThreadPoolExecutor(max_workers=self.max_workers, thread_name_prefix="collector")
        for collector in self.collectors.values():
            collector.executor = executor
        try:
            for kind in (UnitKind.NODE, UnitKind.NAMESPACE):
                group = [u for u in self.units if u.kind is kind]
                if not group or self._stop_requested:
                    continue
                if self.scheduling is SchedulingMode.BATCH:
                    await self._run_batches(group, metrics_available)
                else:
                    await self._run_pool(group, metrics_available)
        finally:
            for collector in self.collectors.values():
                collector.executor = None
            executor.shutdown(wait=False, cancel_futures=True)

        duration = (datetime.now(timezone.utc) - start_time).total_seconds()
        self.logger.info(
            f"Collection finished in {duration:.2f}s",
            succeeded=self.count(UnitState.SUCCEEDED),
            skipped=self.count(UnitState.SKIPPED),
            failed=self.count(UnitState.FAILED),
            pending=self.count(UnitState.PENDING)
        )
        return self.artifacts

    def count(self, state: UnitState) -> int:
        return sum(1 for u in self.units if u.state is state)

    async def _run_pool(self, units: List[WorkUnit], metrics_available: bool) -> None:
        """Completion-driven: a freed slot immediately takes the next unit."""
        actor = MergeActor(self.merger, on_failure=lambda e: self.request_stop())
        await actor.start()

        async def job(unit: WorkUnit) -> None:
            artifact = await self._run_unit(unit, metrics_available)
            if artifact is not None:
                await actor.submit(artifact)

        try:
            await gather_with_concurrency(
                [job(unit) for unit in units],
                max_concurrency=self.max_workers,
                return_exceptions=False
            )
        finally:
            await actor.close()

    async def _run_batches(self, units: List[WorkUnit], metrics_available: bool) -> None:
        """Batch-driven: each batch of ``max_workers`` is awaited in full, then merged."""

        async def merge_batch(artifacts: List[Optional[CollectionArtifact]]) -> None:
            for artifact in artifacts:
                if artifact is not None:
                    await asyncio.to_thread(self.merger.apply, artifact)

        await gather_in_batches(
            [functools.partial(self._run_unit, unit, metrics_available) for unit in units],
            batch_size=self.max_workers,
            on_batch=merge_batch,
            should_continue=lambda: not self._stop_requested
        )

    async def _run_unit(self, unit: WorkUnit, metrics_available: bool) -> Optional[CollectionArtifact]:
        if unit.state is UnitState.SKIPPED:
            artifact = CollectionArtifact(unit=unit, state=UnitState.SKIPPED)
        elif self._stop_requested:
            return None
        else:
            artifact = await self.collectors[unit.kind].collect_with_metadata(
                unit, metrics_available, self.timeout_seconds
            )

        self.artifacts.append(artifact)
        self._completed += 1
        self._report_progress()
        return artifact

    def _report_progress(self) -> None:
        if self.progress is not None:
            self.progress(self._completed, len(self.units))

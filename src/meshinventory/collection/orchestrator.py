# src/meshinventory/collection/orchestrator.py
"""Orchestrator for a complete inventory run against one cluster context."""

import asyncio
from typing import Dict, Any, Optional
import structlog
from datetime import datetime, timezone

from meshinventory.clients.kubernetes.client_factory import KubernetesClientFactory
from meshinventory.core.base_client import ClusterAccessClient
from meshinventory.core.exceptions import ClientConnectionException
from meshinventory.core.obfuscation import IdentityMapper
from meshinventory.models.artifacts import UnitState
from meshinventory.models.snapshot_models import ClusterSnapshot
from meshinventory.storage.checkpoint import CheckpointStore
from meshinventory.storage.merger import SnapshotMerger
from .coordinator import CollectionCoordinator, ProgressCallback

logger = structlog.get_logger(__name__)


class InventoryOrchestrator:
    """
    Coordinates a full snapshot run.

    Pre-flight (client connection, reachability, metrics probe, checkpoint
    load) happens in ``initialize``; any failure there is fatal and happens
    before collection starts. Per-unit failures during ``run_inventory`` are
    not fatal and are reported in the run summary.
    """

    def __init__(self,
                 config: Dict[str, Any],
                 client: Optional[ClusterAccessClient] = None,
                 progress: Optional[ProgressCallback] = None):
        self.config = config
        self.k8s_config = config.get("kubernetes", {})
        self.collection_config = config.get("collection", {})
        self.output_path = config.get("storage", {}).get("output_path", "cluster_info.json")
        self.obfuscate = config.get("obfuscate", False)
        self.resume = config.get("resume", False)
        self.progress = progress

        self.client = client
        self._owns_client = client is None
        self.identity = IdentityMapper(enabled=self.obfuscate)
        self.store = CheckpointStore(self.output_path)

        self.has_metrics = False
        self.merger: Optional[SnapshotMerger] = None
        self.coordinator: Optional[CollectionCoordinator] = None

        self.logger = logger.bind(orchestrator="inventory")

    async def __aenter__(self):
        await self.initialize()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        await self.shutdown()

    async def initialize(self) -> None:
        """Connect, verify the cluster answers, probe metrics and load the checkpoint."""
        self.logger.info("Initializing inventory orchestrator")

        if self.client is None:
            factory = KubernetesClientFactory({**self.k8s_config, **self.collection_config})
            self.client = factory.create_client()

        if not self.client.is_connected:
            await self.client.connect()

        if not await self.client.health_check():
            raise ClientConnectionException("Kubernetes", f"Cluster {self.client.cluster_name!r} is unreachable")

        self.has_metrics = await asyncio.to_thread(self.client.has_metrics_api)
        if not self.has_metrics:
            self.logger.warning("Metrics API not available, actual usage will be omitted")

        cluster_key = self.identity(self.client.cluster_name)
        snapshot = await asyncio.to_thread(self.store.initialize, cluster_key, self.has_metrics, self.resume)

        self.merger = SnapshotMerger(snapshot, self.store)
        # the document exists from the start of the run, even before the first merge
        await asyncio.to_thread(self.merger.flush)

        self.coordinator = CollectionCoordinator(
            self.client,
            self.merger,
            identity=self.identity,
            config=self.collection_config,
            progress=self.progress
        )
        self.logger.info(
            "Inventory orchestrator initialized",
            cluster=self.client.cluster_name,
            has_metrics=self.has_metrics,
            resume=self.resume,
            obfuscate=self.obfuscate
        )

    async def shutdown(self) -> None:
        if self._owns_client and self.client is not None and self.client.is_connected:
            await self.client.disconnect()

    def request_stop(self) -> None:
        if self.coordinator is not None:
            self.coordinator.request_stop()

    @property
    def snapshot(self) -> Optional[ClusterSnapshot]:
        return self.merger.snapshot if self.merger else None

    async def run_inventory(self) -> Dict[str, Any]:
        """Collect the cluster and return the run summary."""
        if self.coordinator is None:
            raise ClientConnectionException("Kubernetes", "Orchestrator not initialized")

        start_time = datetime.now(timezone.utc)
        artifacts = await self.coordinator.run(self.has_metrics)
        end_time = datetime.now(timezone.utc)

        failed = [a.to_dict() for a in artifacts if a.state is UnitState.FAILED]
        pending = [
            {'kind': u.kind.value, 'name': u.name}
            for u in self.coordinator.units if u.state is UnitState.PENDING
        ]

        summary = {
            'cluster': self.snapshot.cluster,
            'output_path': str(self.store.path),
            'has_metrics': self.has_metrics,
            'nodes': len(self.snapshot.nodes),
            'namespaces': len(self.snapshot.namespaces),
            'succeeded': self.coordinator.count(UnitState.SUCCEEDED),
            'skipped': self.coordinator.count(UnitState.SKIPPED),
            'failed': failed,
            'pending': pending,
            'stopped': self.coordinator.stop_requested,
            'start_time': start_time.isoformat(),
            'end_time': end_time.isoformat(),
            'duration_seconds': (end_time - start_time).total_seconds()
        }

        if failed or pending:
            self.logger.warning(
                "Some units were not collected; re-run with --resume to retry only those",
                failed=len(failed),
                pending=len(pending)
            )
        else:
            self.logger.info("Inventory complete", nodes=summary['nodes'], namespaces=summary['namespaces'])

        return summary

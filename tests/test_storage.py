"""Tests for the checkpoint store and the snapshot merger."""

import asyncio
import json

import pytest

from meshinventory.core.exceptions import CheckpointMismatchException, CollectionError, CollectionErrorKind, StorageException
from meshinventory.models.artifacts import CollectionArtifact, UnitKind, UnitState, WorkUnit
from meshinventory.models.snapshot_models import (
    ClusterSnapshot,
    NamespaceRecord,
    NodeRecord,
    ResourceUsage,
)
from meshinventory.storage.checkpoint import CheckpointStore
from meshinventory.storage.merger import MergeActor, SnapshotMerger, merge


def node_record(cpu=2.0):
    return NodeRecord(instance_type="m5.large", capacity=ResourceUsage(cpu=cpu, memory_gb=8.0))


def succeeded(kind, name, record):
    return CollectionArtifact(unit=WorkUnit(kind=kind, name=name, key=name), state=UnitState.SUCCEEDED, record=record)


@pytest.fixture
def store(tmp_path):
    return CheckpointStore(tmp_path / "cluster_info.json")


class TestCheckpointStore:

    def test_save_and_load(self, store):
        snapshot = merge(ClusterSnapshot.empty("prod", True), "nodes", "node-a", node_record())

        store.save(snapshot)

        assert store.exists()
        assert store.load() == snapshot

    def test_save_leaves_no_temp_files(self, store, tmp_path):
        store.save(ClusterSnapshot.empty("prod"))
        store.save(ClusterSnapshot.empty("prod", True))

        assert [p.name for p in tmp_path.iterdir()] == ["cluster_info.json"]

    def test_document_layout(self, store):
        snapshot = merge(ClusterSnapshot.empty("prod"), "namespaces", "shop", NamespaceRecord(pods=3))
        store.save(snapshot)

        document = json.loads(store.path.read_text())

        assert document["cluster"] == "prod"
        assert document["has_metrics"] is False
        assert document["nodes"] == {}
        assert document["namespaces"]["shop"]["pods"] == 3
        assert "sidecar" not in document["namespaces"]["shop"]["resources"]
        assert "actual" not in document["namespaces"]["shop"]["resources"]["regular"]

    def test_corrupt_file_raises(self, store):
        store.path.write_text("{not json")

        with pytest.raises(StorageException):
            store.load()

    def test_invalid_document_raises(self, store):
        store.path.write_text(json.dumps({"nodes": {}}))

        with pytest.raises(StorageException):
            store.load()

    def test_initialize_fresh_ignores_existing_file(self, store):
        store.save(merge(ClusterSnapshot.empty("prod"), "nodes", "node-a", node_record()))

        snapshot = store.initialize("prod", has_metrics=False, resume=False)

        assert snapshot.nodes == {}

    def test_initialize_resume_keeps_entries(self, store):
        store.save(merge(ClusterSnapshot.empty("prod"), "nodes", "node-a", node_record()))

        snapshot = store.initialize("prod", has_metrics=False, resume=True)

        assert snapshot.contains("nodes", "node-a")

    def test_initialize_resume_without_file(self, store):
        snapshot = store.initialize("prod", has_metrics=True, resume=True)

        assert snapshot == ClusterSnapshot.empty("prod", True)

    def test_initialize_resume_other_cluster(self, store):
        store.save(ClusterSnapshot.empty("staging"))

        with pytest.raises(CheckpointMismatchException) as exc_info:
            store.initialize("prod", has_metrics=False, resume=True)

        assert exc_info.value.found == "staging"
        assert exc_info.value.expected == "prod"

    def test_initialize_resume_updates_metrics_flag(self, store):
        store.save(ClusterSnapshot.empty("prod", has_metrics=False))

        snapshot = store.initialize("prod", has_metrics=True, resume=True)

        assert snapshot.has_metrics is True


class TestMerge:

    def test_merge_is_order_independent(self):
        base = ClusterSnapshot.empty("prod")
        a = ("nodes", "node-a", node_record(2.0))
        b = ("namespaces", "shop", NamespaceRecord(pods=1))

        ab = merge(merge(base, *a), *b)
        ba = merge(merge(base, *b), *a)

        assert ab == ba

    def test_merge_does_not_mutate_input(self):
        base = ClusterSnapshot.empty("prod")

        merged = merge(base, "nodes", "node-a", node_record())

        assert base.nodes == {}
        assert merged.contains("nodes", "node-a")

    def test_merge_replaces_whole_record(self):
        first = merge(ClusterSnapshot.empty("prod"), "nodes", "node-a", node_record(2.0))

        second = merge(first, "nodes", "node-a", NodeRecord())

        assert second.nodes["node-a"].instance_type == "unknown"
        assert second.nodes["node-a"].capacity.cpu == 0.0

    def test_unknown_section(self):
        with pytest.raises(ValueError):
            merge(ClusterSnapshot.empty("prod"), "pods", "x", node_record())


class TestSnapshotMerger:

    def test_apply_flushes_each_merge(self, store):
        merger = SnapshotMerger(ClusterSnapshot.empty("prod"), store)

        merger.apply(succeeded(UnitKind.NODE, "node-a", node_record()))

        assert merger.merged == 1
        assert store.load().contains("nodes", "node-a")

    def test_failed_and_skipped_artifacts_are_not_merged(self, store):
        merger = SnapshotMerger(ClusterSnapshot.empty("prod"), store)
        unit = WorkUnit(kind=UnitKind.NAMESPACE, name="empty", key="empty")
        error = CollectionError(CollectionErrorKind.NO_PODS, "empty", "No pods found")

        merger.apply(CollectionArtifact(unit=unit, state=UnitState.FAILED, error=error))
        merger.apply(CollectionArtifact(unit=unit, state=UnitState.SKIPPED))

        assert merger.merged == 0
        assert not store.exists()
        assert merger.snapshot.namespaces == {}


class TestMergeActor:

    @pytest.mark.asyncio
    async def test_concurrent_submissions_are_all_merged(self, store):
        merger = SnapshotMerger(ClusterSnapshot.empty("prod"), store)
        actor = MergeActor(merger)
        await actor.start()

        await asyncio.gather(*(
            actor.submit(succeeded(UnitKind.NAMESPACE, f"ns-{i}", NamespaceRecord(pods=i)))
            for i in range(20)
        ))
        await actor.close()

        assert merger.merged == 20
        assert len(store.load().namespaces) == 20

    @pytest.mark.asyncio
    async def test_close_reraises_merge_failure(self, tmp_path):
        blocker = tmp_path / "blocker"
        blocker.write_text("")
        merger = SnapshotMerger(ClusterSnapshot.empty("prod"), CheckpointStore(blocker / "out.json"))
        actor = MergeActor(merger)
        await actor.start()

        await actor.submit(succeeded(UnitKind.NODE, "node-a", node_record()))

        with pytest.raises(StorageException):
            await actor.close()

    @pytest.mark.asyncio
    async def test_failure_is_reported_immediately(self, tmp_path):
        blocker = tmp_path / "blocker"
        blocker.write_text("")
        merger = SnapshotMerger(ClusterSnapshot.empty("prod"), CheckpointStore(blocker / "out.json"))
        failures = []
        actor = MergeActor(merger, on_failure=failures.append)
        await actor.start()

        await actor.submit(succeeded(UnitKind.NODE, "node-a", node_record()))
        for _ in range(50):
            if actor.failed:
                break
            await asyncio.sleep(0.01)

        assert actor.failed
        assert isinstance(failures[0], StorageException)
        # later artifacts are dropped instead of queued
        await actor.submit(succeeded(UnitKind.NODE, "node-b", node_record()))
        assert actor._queue.empty()
        with pytest.raises(StorageException):
            await actor.close()

"""Durable snapshot document with resume support."""

import json
import os
import tempfile
from pathlib import Path
from typing import Union

import structlog
from pydantic import ValidationError

from meshinventory.core.exceptions import CheckpointMismatchException, StorageException
from meshinventory.models.snapshot_models import ClusterSnapshot

logger = structlog.get_logger(__name__)


class CheckpointStore:
    """JSON snapshot file, rewritten atomically on every save."""

    def __init__(self, path: Union[str, Path]):
        self.path = Path(path)
        self.logger = logger.bind(store=str(self.path))

    def exists(self) -> bool:
        return self.path.is_file()

    def load(self) -> ClusterSnapshot:
        """Read the full snapshot document."""
        try:
            with open(self.path, 'r', encoding='utf-8') as f:
                data = json.load(f)
            return ClusterSnapshot.from_document(data)
        except (OSError, json.JSONDecodeError, ValidationError) as e:
            raise StorageException(f"Cannot read snapshot {self.path}: {e}")

    def save(self, snapshot: ClusterSnapshot) -> None:
        """Write the snapshot to a temp file next to the target, then rename over it."""
        directory = self.path.parent
        tmp_name = None
        try:
            directory.mkdir(parents=True, exist_ok=True)
            with tempfile.NamedTemporaryFile(
                'w', encoding='utf-8', dir=directory, prefix=f".{self.path.name}.", suffix=".tmp", delete=False
            ) as f:
                tmp_name = f.name
                json.dump(snapshot.to_document(), f, indent=2, sort_keys=True)
                f.write("\n")
                f.flush()
                os.fsync(f.fileno())
            os.replace(tmp_name, self.path)
        except OSError as e:
            if tmp_name and os.path.exists(tmp_name):
                os.unlink(tmp_name)
            raise StorageException(f"Cannot write snapshot {self.path}: {e}")

    def initialize(self, cluster: str, has_metrics: bool, resume: bool = False) -> ClusterSnapshot:
        """Starting snapshot for a run: the prior document when resuming, else empty."""
        if resume and self.exists():
            snapshot = self.load()
            if snapshot.cluster != cluster:
                raise CheckpointMismatchException(expected=cluster, found=snapshot.cluster)
            if snapshot.has_metrics != has_metrics:
                self.logger.warning(
                    "Metrics availability changed since the checkpoint was written",
                    previous=snapshot.has_metrics,
                    current=has_metrics
                )
                snapshot = snapshot.model_copy(update={"has_metrics": has_metrics})
            self.logger.info(
                "Resuming from checkpoint",
                nodes=len(snapshot.nodes),
                namespaces=len(snapshot.namespaces)
            )
            return snapshot

        if resume:
            self.logger.info("No checkpoint found, starting a fresh snapshot")
        return ClusterSnapshot.empty(cluster, has_metrics)

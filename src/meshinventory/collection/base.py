"""Base collector interface."""

import asyncio
import functools
from concurrent.futures import Executor
from abc import ABC, abstractmethod
from typing import Dict, Any, Optional, Union
import structlog
from datetime import datetime, timezone

from meshinventory.core.base_client import ClusterAccessClient
from meshinventory.core.exceptions import CollectionError, CollectionErrorKind
from meshinventory.models.snapshot_models import NamespaceRecord, NodeRecord
from meshinventory.models.artifacts import CollectionArtifact, UnitKind, UnitState, WorkUnit

logger = structlog.get_logger(__name__)


class BaseCollector(ABC):
    """Abstract base class for node and namespace collectors."""

    def __init__(self, client: ClusterAccessClient, config: Dict[str, Any]):
        self.client = client
        self.config = config
        # set by the coordinator for the duration of a run
        self.executor: Optional[Executor] = None
        self.logger = logger.bind(collector=self.get_unit_kind().value)

    @abstractmethod
    async def collect(self, unit: WorkUnit, metrics_available: bool) -> Union[NodeRecord, NamespaceRecord]:
        """Build the record for one unit or raise ``CollectionError``."""
        pass

    @abstractmethod
    def get_unit_kind(self) -> UnitKind:
        """Get the kind of unit this collector handles."""
        pass

    async def collect_with_metadata(
        self,
        unit: WorkUnit,
        metrics_available: bool,
        timeout_seconds: Optional[float] = None
    ) -> CollectionArtifact:
        """Collect one unit and wrap the outcome into an artifact.

        Never raises for a per-unit failure; the failure is logged and carried
        in the artifact instead.
        """
        start_time = datetime.now(timezone.utc)
        unit.state = UnitState.IN_FLIGHT
        record = None
        error = None

        try:
            if timeout_seconds:
                record = await asyncio.wait_for(self.collect(unit, metrics_available), timeout=timeout_seconds)
            else:
                record = await self.collect(unit, metrics_available)
            state = UnitState.SUCCEEDED

        except CollectionError as e:
            error = e
            state = UnitState.FAILED

        except asyncio.TimeoutError:
            error = CollectionError(
                CollectionErrorKind.TIMEOUT, unit.name, f"Collection timed out after {timeout_seconds} seconds"
            )
            state = UnitState.FAILED

        except Exception as e:
            self.logger.exception("Unexpected collection failure", **{unit.kind.value: unit.name})
            error = CollectionError(CollectionErrorKind.CONSTRUCTION_FAILURE, unit.name, str(e))
            state = UnitState.FAILED

        duration = (datetime.now(timezone.utc) - start_time).total_seconds()
        unit.state = state

        if error is not None:
            self.logger.warning(
                f"Skipping {unit.kind.value}",
                **{unit.kind.value: unit.name},
                kind=error.kind.value,
                error=error.message
            )
        else:
            self.logger.debug(f"Collected {unit.kind.value}", **{unit.kind.value: unit.name}, duration_seconds=duration)

        return CollectionArtifact(unit=unit, state=state, record=record, error=error, duration_seconds=duration)

    async def _fetch(self, fn, *args):
        """Run a blocking client call on the collection executor.

        Falls back to the default executor when none was assigned.
        """
        if self.executor is None:
            return await asyncio.to_thread(fn, *args)
        loop = asyncio.get_running_loop()
        return await loop.run_in_executor(self.executor, functools.partial(fn, *args))

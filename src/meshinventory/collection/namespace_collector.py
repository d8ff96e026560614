"""Per-namespace pod and container resource collection."""

from typing import Dict, Any, List
from pydantic import ValidationError

from meshinventory.core.exceptions import ClusterAccessException, CollectionError, CollectionErrorKind
from meshinventory.models.snapshot_models import NamespaceRecord, NamespaceResources
from meshinventory.models.artifacts import UnitKind, WorkUnit
from .base import BaseCollector
from .classifier import DEFAULT_SIDECAR_NAME, build_container_specs, classify_containers

INJECTION_LABEL = "istio-injection"
REVISION_LABEL = "istio.io/rev"


def is_mesh_injected(labels: Dict[str, str]) -> bool:
    """A namespace is injected when labelled ``istio-injection=enabled`` or with a revision tag."""
    labels = labels or {}
    return labels.get(INJECTION_LABEL) == "enabled" or labels.get(REVISION_LABEL) is not None


def _is_pod_metrics(payload: Any) -> bool:
    """Whether ``payload`` has the ``[{name, containers: [{name, usage: {...}}]}]`` shape."""
    if not isinstance(payload, list):
        return False
    for pod in payload:
        if not isinstance(pod, dict) or not isinstance(pod.get('containers') or [], list):
            return False
        for container in pod.get('containers') or []:
            if not isinstance(container, dict) or not isinstance(container.get('usage') or {}, dict):
                return False
    return True


class NamespaceCollector(BaseCollector):
    """Builds one ``NamespaceRecord`` per namespace."""

    def __init__(self, client, config: Dict[str, Any]):
        super().__init__(client, config)
        self.sidecar_name = config.get("sidecar_container_name", DEFAULT_SIDECAR_NAME)
        self.include_native_sidecars = config.get("include_native_sidecars", True)

    def get_unit_kind(self) -> UnitKind:
        return UnitKind.NAMESPACE

    async def collect(self, unit: WorkUnit, metrics_available: bool) -> NamespaceRecord:
        namespace = unit.name

        try:
            pods = await self._fetch(self.client.list_pods, namespace)
        except ClusterAccessException as e:
            raise CollectionError(CollectionErrorKind.NO_PODS, namespace, f"Pod query failed: {e.message}")

        if not pods:
            raise CollectionError(CollectionErrorKind.NO_PODS, namespace, "No pods found")

        if not isinstance(pods, list) or not all(isinstance(pod, dict) for pod in pods):
            raise CollectionError(CollectionErrorKind.MALFORMED_DATA, namespace, "Could not determine pod count")

        pod_metrics = await self._fetch_pod_metrics(namespace) if metrics_available else None

        try:
            specs = build_container_specs(pods, pod_metrics, self.include_native_sidecars)
        except (AttributeError, TypeError) as e:
            raise CollectionError(CollectionErrorKind.MALFORMED_DATA, namespace, f"Unreadable container spec: {e}")

        classified = classify_containers(specs, self.sidecar_name, include_actual=metrics_available)
        injected = is_mesh_injected(unit.labels)

        unparsed = classified.regular.unparsed_quantities + classified.sidecar.unparsed_quantities
        if unparsed:
            self.logger.warning("Unrecognized quantities counted as zero", namespace=namespace, count=unparsed)

        try:
            return NamespaceRecord(
                pods=len(pods),
                mesh_injected=injected,
                resources=NamespaceResources(
                    regular=classified.regular,
                    sidecar=classified.sidecar if injected else None
                )
            )
        except ValidationError as e:
            raise CollectionError(CollectionErrorKind.CONSTRUCTION_FAILURE, namespace, str(e))

    async def _fetch_pod_metrics(self, namespace: str) -> List[Dict[str, Any]]:
        try:
            pod_metrics = await self._fetch(self.client.get_pod_metrics, namespace)
        except ClusterAccessException as e:
            return self._metrics_unavailable(namespace, e.message)
        except (AttributeError, KeyError, TypeError) as e:
            return self._metrics_unavailable(namespace, f"Unreadable metrics payload: {e}")

        if not _is_pod_metrics(pod_metrics):
            return self._metrics_unavailable(namespace, "Unreadable metrics payload")
        return pod_metrics

    def _metrics_unavailable(self, namespace: str, error: str) -> List[Dict[str, Any]]:
        self.logger.warning(
            "Pod metrics unavailable, reporting zero usage",
            namespace=namespace,
            kind=CollectionErrorKind.METRICS_UNAVAILABLE.value,
            error=error
        )
        return []

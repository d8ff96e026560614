"""Split containers into regular and sidecar categories and total their resources."""

from dataclasses import dataclass
from typing import Any, Dict, Iterable, List, Optional

from meshinventory.core.quantity import bytes_to_gib, is_valid_quantity, parse_cpu, parse_memory
from meshinventory.models.snapshot_models import ResourceAggregate, ResourceUsage

DEFAULT_SIDECAR_NAME = "istio-proxy"


@dataclass(frozen=True)
class ContainerSpec:
    name: str
    requested_cpu: Optional[str] = None
    requested_memory: Optional[str] = None
    actual_cpu: Optional[str] = None
    actual_memory: Optional[str] = None


@dataclass(frozen=True)
class ClassifiedResources:
    regular: ResourceAggregate
    sidecar: ResourceAggregate


@dataclass
class _Totals:
    containers: int = 0
    requested_cpu: float = 0.0
    requested_memory: float = 0.0
    actual_cpu: float = 0.0
    actual_memory: float = 0.0
    unparsed: int = 0

    def add(self, spec: ContainerSpec, include_actual: bool) -> None:
        self.containers += 1
        self.requested_cpu += parse_cpu(spec.requested_cpu)
        self.requested_memory += parse_memory(spec.requested_memory)
        quantities = [("cpu", spec.requested_cpu), ("memory", spec.requested_memory)]
        if include_actual:
            self.actual_cpu += parse_cpu(spec.actual_cpu)
            self.actual_memory += parse_memory(spec.actual_memory)
            quantities += [("cpu", spec.actual_cpu), ("memory", spec.actual_memory)]
        self.unparsed += sum(
            1 for kind, value in quantities
            if value is not None and not is_valid_quantity(value, kind)
        )

    def to_aggregate(self, include_actual: bool) -> ResourceAggregate:
        actual = None
        if include_actual:
            actual = ResourceUsage(cpu=self.actual_cpu, memory_gb=bytes_to_gib(self.actual_memory))
        return ResourceAggregate(
            containers=self.containers,
            requested=ResourceUsage(cpu=self.requested_cpu, memory_gb=bytes_to_gib(self.requested_memory)),
            actual=actual,
            unparsed_quantities=self.unparsed
        )


def is_sidecar(container_name: str, sidecar_name: str = DEFAULT_SIDECAR_NAME) -> bool:
    return container_name == sidecar_name


def classify_containers(
    containers: Iterable[ContainerSpec],
    sidecar_name: str = DEFAULT_SIDECAR_NAME,
    include_actual: bool = False
) -> ClassifiedResources:
    """Sum requested (and optionally actual) resources per category.

    Classification depends only on the container name; whether the sidecar
    aggregate is reported is decided by the caller.
    """
    regular, sidecar = _Totals(), _Totals()
    for spec in containers:
        target = sidecar if is_sidecar(spec.name, sidecar_name) else regular
        target.add(spec, include_actual)
    return ClassifiedResources(
        regular=regular.to_aggregate(include_actual),
        sidecar=sidecar.to_aggregate(include_actual)
    )


def running_containers(pod: Dict[str, Any], include_native_sidecars: bool = True) -> List[Dict[str, Any]]:
    """Containers that run for the pod's lifetime.

    Init containers with ``restartPolicy: Always`` are native sidecars and keep
    running next to the app containers.
    """
    containers = list(pod.get('containers') or [])
    if include_native_sidecars:
        containers += [
            c for c in (pod.get('init_containers') or [])
            if c.get('restart_policy') == 'Always'
        ]
    return containers


def build_container_specs(
    pods: List[Dict[str, Any]],
    pod_metrics: Optional[List[Dict[str, Any]]] = None,
    include_native_sidecars: bool = True
) -> List[ContainerSpec]:
    """Flatten pods into container specs, joining live usage by pod and container name."""
    usage_by_container: Dict[tuple, Dict[str, Any]] = {}
    for pod_usage in pod_metrics or []:
        for container in pod_usage.get('containers') or []:
            usage_by_container[(pod_usage.get('name'), container.get('name'))] = container.get('usage') or {}

    specs = []
    for pod in pods:
        for container in running_containers(pod, include_native_sidecars):
            requests = container.get('requests') or {}
            usage = usage_by_container.get((pod.get('name'), container.get('name')), {})
            specs.append(ContainerSpec(
                name=container.get('name') or "",
                requested_cpu=requests.get('cpu'),
                requested_memory=requests.get('memory'),
                actual_cpu=usage.get('cpu'),
                actual_memory=usage.get('memory')
            ))
    return specs

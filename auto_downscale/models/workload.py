from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, List, Optional

from auto_downscale.core import annotations


class WorkloadKind(str, Enum):
    """Types de charges pilotées par le downscaler"""
    DEPLOYMENT = "Deployment"
    STATEFULSET = "StatefulSet"
    CRONJOB = "CronJob"

    @property
    def has_replicas(self) -> bool:
        return self in (WorkloadKind.DEPLOYMENT, WorkloadKind.STATEFULSET)

    @property
    def label(self) -> str:
        return self.value.lower()


@dataclass
class Workload:
    kind: WorkloadKind
    name: str
    namespace: str
    uid: Optional[str] = None
    replicas: int = 0
    ready_replicas: int = 0
    suspended: bool = False
    annotations: Dict[str, str] = field(default_factory=dict)

    @classmethod
    def from_resource(cls, kind: WorkloadKind, resource: dict) -> "Workload":
        metadata = resource.get("metadata") or {}
        spec = resource.get("spec") or {}
        status = resource.get("status") or {}

        # spec.replicas absent = 1 côté API
        replicas = spec.get("replicas")
        return cls(
            kind=kind,
            name=metadata.get("name", ""),
            namespace=metadata.get("namespace", ""),
            uid=metadata.get("uid"),
            replicas=1 if replicas is None else replicas,
            ready_replicas=status.get("readyReplicas") or 0,
            suspended=bool(spec.get("suspend", False)),
            annotations=annotations.get_annotations(resource),
        )

    @property
    def identity(self) -> str:
        """Identité stable: l'uid si connu, sinon kind/namespace/name"""
        return self.uid or f"{self.kind.value}/{self.namespace}/{self.name}"

    @property
    def is_ready(self) -> bool:
        return self.ready_replicas == self.replicas

    def __str__(self) -> str:
        return f"{self.kind.label} {self.namespace}/{self.name}"


@dataclass
class DiscoveredResources:
    deployments: List[Workload] = field(default_factory=list)
    statefulsets: List[Workload] = field(default_factory=list)
    cronjobs: List[Workload] = field(default_factory=list)

    def all(self) -> List[Workload]:
        return [*self.deployments, *self.statefulsets, *self.cronjobs]

    def scalable(self) -> List[Workload]:
        """Deployments et statefulsets, les seuls à avoir des réplicas"""
        return [*self.deployments, *self.statefulsets]

    def merge(self, other: "DiscoveredResources") -> "DiscoveredResources":
        """Union dédoublonnée par identité, l'ordre de découverte est conservé"""
        merged = DiscoveredResources()
        seen = set()
        for workload in [*self.all(), *other.all()]:
            if workload.identity in seen:
                continue
            seen.add(workload.identity)
            merged.add(workload)
        return merged

    def add(self, workload: Workload) -> None:
        if workload.kind is WorkloadKind.DEPLOYMENT:
            self.deployments.append(workload)
        elif workload.kind is WorkloadKind.STATEFULSET:
            self.statefulsets.append(workload)
        elif workload.kind is WorkloadKind.CRONJOB:
            self.cronjobs.append(workload)
        else:
            raise ValueError(f"Type de charge non supporté: {workload.kind}")

    def __len__(self) -> int:
        return len(self.all())

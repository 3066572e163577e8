import logging
from enum import Enum
from typing import Callable, Dict, Optional

from auto_downscale.core import annotations
from auto_downscale.core.exceptions import NotFoundError, TransportError
from auto_downscale.external.k8s_client import K8sClient
from auto_downscale.models.workload import Workload, WorkloadKind

logger = logging.getLogger(__name__)


class ScaleOutcome(str, Enum):
    CHANGED = "changed"
    UNCHANGED = "unchanged"
    FAILED = "failed"


class WorkloadScaler:
    """
    Passe une charge de l'état actif à l'état de veille et inversement.

    Deployments et statefulsets: replicas à 0, nombre d'origine dans
    l'annotation original-replicas. Cronjobs: suspend=true.
    """

    def __init__(self, k8s_client: K8sClient):
        self.k8s_client = k8s_client
        self._idle_handlers: Dict[WorkloadKind, Callable[[Workload], ScaleOutcome]] = {
            WorkloadKind.DEPLOYMENT: self._scale_to_zero,
            WorkloadKind.STATEFULSET: self._scale_to_zero,
            WorkloadKind.CRONJOB: self._suspend,
        }
        self._restore_handlers: Dict[WorkloadKind, Callable[[Workload], ScaleOutcome]] = {
            WorkloadKind.DEPLOYMENT: self._scale_to_original,
            WorkloadKind.STATEFULSET: self._scale_to_original,
            WorkloadKind.CRONJOB: self._unsuspend,
        }
        missing = set(WorkloadKind) - set(self._idle_handlers) | set(WorkloadKind) - set(self._restore_handlers)
        if missing:
            raise ValueError(f"Types de charge sans traitement: {missing}")

    def idle(self, workload: Workload) -> ScaleOutcome:
        """Met la charge en veille. Sans effet si elle l'est déjà."""
        return self._apply("mise en veille", self._idle_handlers, workload)

    def restore(self, workload: Workload) -> ScaleOutcome:
        """Restaure la charge dans son état d'origine. Sans effet si elle y est déjà."""
        return self._apply("restauration", self._restore_handlers, workload)

    def _apply(self, action: str, handlers: Dict, workload: Workload) -> ScaleOutcome:
        handler = handlers.get(workload.kind)
        if handler is None:
            raise ValueError(f"Type de charge non supporté: {workload.kind}")
        try:
            return handler(workload)
        except (TransportError, NotFoundError) as e:
            logger.error(f"Erreur lors de la {action} du {workload}: {e}")
            return ScaleOutcome.FAILED

    def _patch(self, workload: Workload, body: dict) -> None:
        self.k8s_client.patch(workload.kind, workload.name, workload.namespace, body)

    def _scale_to_zero(self, workload: Workload) -> ScaleOutcome:
        if workload.replicas > 0:
            self._patch(workload, {
                "metadata": {"annotations": {annotations.ORIGINAL_REPLICAS: str(workload.replicas)}},
                "spec": {"replicas": 0},
            })
            logger.info(f"{workload} réduit de {workload.replicas} à 0")
            return ScaleOutcome.CHANGED

        if annotations.ORIGINAL_REPLICAS not in workload.annotations:
            # Déjà à 0 avant la mise en veille: on le mémorise pour le restaurer à 0
            self._patch(workload, {"metadata": {"annotations": {annotations.ORIGINAL_REPLICAS: "0"}}})
        return ScaleOutcome.UNCHANGED

    def _scale_to_original(self, workload: Workload) -> ScaleOutcome:
        raw = workload.annotations.get(annotations.ORIGINAL_REPLICAS)
        target = self._parse_replicas(raw)
        if target is None:
            target = workload.replicas if workload.replicas > 0 else 1

        if workload.replicas != target:
            self._patch(workload, {
                "metadata": {"annotations": {annotations.ORIGINAL_REPLICAS: None}},
                "spec": {"replicas": target},
            })
            logger.info(f"{workload} remis à l'échelle de {workload.replicas} à {target}")
            return ScaleOutcome.CHANGED

        if raw is not None:
            self._patch(workload, {"metadata": {"annotations": {annotations.ORIGINAL_REPLICAS: None}}})
        return ScaleOutcome.UNCHANGED

    def _suspend(self, workload: Workload) -> ScaleOutcome:
        if not workload.suspended:
            self._patch(workload, {
                "metadata": {"annotations": {annotations.ORIGINAL_SUSPEND: None}},
                "spec": {"suspend": True},
            })
            logger.info(f"{workload} suspendu")
            return ScaleOutcome.CHANGED

        if annotations.ORIGINAL_SUSPEND not in workload.annotations:
            # Suspendu avant la mise en veille: il doit le rester à la restauration
            self._patch(workload, {"metadata": {"annotations": {annotations.ORIGINAL_SUSPEND: annotations.TRUE}}})
        return ScaleOutcome.UNCHANGED

    def _unsuspend(self, workload: Workload) -> ScaleOutcome:
        keep_suspended = workload.annotations.get(annotations.ORIGINAL_SUSPEND) == annotations.TRUE

        if workload.suspended and not keep_suspended:
            self._patch(workload, {
                "metadata": {"annotations": {annotations.ORIGINAL_SUSPEND: None}},
                "spec": {"suspend": False},
            })
            logger.info(f"{workload} réactivé")
            return ScaleOutcome.CHANGED

        if annotations.ORIGINAL_SUSPEND in workload.annotations:
            self._patch(workload, {"metadata": {"annotations": {annotations.ORIGINAL_SUSPEND: None}}})
        return ScaleOutcome.UNCHANGED

    @staticmethod
    def _parse_replicas(raw: Optional[str]) -> Optional[int]:
        if raw is None:
            return None
        try:
            value = int(raw)
        except (TypeError, ValueError):
            return None
        return value if value >= 0 else None

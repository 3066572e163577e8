import asyncio
import logging
from typing import Any, Dict, List, Set

from auto_downscale.core import annotations
from auto_downscale.core.exceptions import (
    NotDownscaledError,
    NotFoundError,
    ReadinessTimeoutError,
    StateCorruptionError,
    TransportError,
)
from auto_downscale.services.discovery import ResourceDiscovery
from auto_downscale.services.ingress_service import IngressService
from auto_downscale.services.proxy_manager import ProxyLifecycleManager
from auto_downscale.services.readiness import ReadinessWatcher, all_ready, resource_status
from auto_downscale.services.service_redirector import ServiceRedirector
from auto_downscale.services.workload_scaler import ScaleOutcome, WorkloadScaler

logger = logging.getLogger(__name__)


class UpscaleService:
    """
    Relance à la demande d'un environnement en veille.

    La relance des charges est synchrone, le reste (attente de disponibilité,
    restauration des Services, nettoyage du proxy) se fait en tâche de fond
    pour que l'appelant ne soit pas bloqué.
    """

    def __init__(
        self,
        ingress_service: IngressService,
        discovery: ResourceDiscovery,
        scaler: WorkloadScaler,
        watcher: ReadinessWatcher,
        redirector: ServiceRedirector,
        proxy_manager: ProxyLifecycleManager,
    ):
        self.ingress_service = ingress_service
        self.discovery = discovery
        self.scaler = scaler
        self.watcher = watcher
        self.redirector = redirector
        self.proxy_manager = proxy_manager
        self._tasks: Set[asyncio.Task] = set()

    async def upscale(self, ingress: Dict) -> Dict[str, Any]:
        """
        Relance les charges de l'environnement et planifie la fin de la relance.

        Raises:
            NotDownscaledError: si l'ingress n'est pas marqué down
            TransportError: si la découverte ou la mise à jour de l'ingress échoue
        """
        metadata = ingress["metadata"]
        name = metadata["name"]
        if not annotations.is_down(ingress):
            raise NotDownscaledError(f"L'environnement {name} n'est pas en veille")

        resources = await asyncio.to_thread(self.discovery.discover_for_ingress, ingress)
        workloads = resources.all()

        *outcomes, _ = await asyncio.gather(
            *(asyncio.to_thread(self.scaler.restore, workload) for workload in workloads),
            asyncio.to_thread(self.ingress_service.mark_up, ingress),
        )

        failed = [str(w) for w, outcome in zip(workloads, outcomes) if outcome is ScaleOutcome.FAILED]
        if failed:
            logger.warning(f"Relance de {name}: échec pour {failed}")

        task = asyncio.create_task(self.complete_upscale(ingress), name=f"upscale-{name}")
        self._tasks.add(task)
        task.add_done_callback(self._on_task_done)

        logger.info(f"Relance de {metadata['namespace']}/{name} déclenchée ({len(workloads)} ressource(s))")
        return {
            "message": f"{name} triggered",
            "resources": len(workloads),
            "failed": failed,
        }

    async def complete_upscale(self, ingress: Dict) -> bool:
        """
        Attend la disponibilité des charges, restaure les Services puis
        supprime le proxy s'il n'est plus référencé.

        Returns:
            False si l'attente a expiré (les Services restent redirigés et
            l'ingress est de nouveau marqué down)
        """
        namespace = ingress["metadata"]["namespace"]
        name = ingress["metadata"]["name"]

        try:
            legacy_names = self.discovery.legacy_deployment_names(ingress)
            if legacy_names is not None:
                await self.watcher.wait_for(
                    lambda: self.discovery.discover_by_names(namespace, legacy_names),
                    description=f"deployments {legacy_names} dans {namespace}",
                )
            else:
                for label_selector in self.discovery.selectors_for_ingress(ingress):
                    await self.watcher.wait_ready(namespace, label_selector)
        except ReadinessTimeoutError as e:
            logger.warning(f"Relance de {namespace}/{name} toujours en cours: {e}")
            # Les Services restent sur le proxy: l'ingress redevient down pour
            # que la page d'attente soit servie et qu'une relance soit possible
            try:
                await asyncio.to_thread(self.ingress_service.mark_down, ingress)
            except (TransportError, NotFoundError) as err:
                logger.error(f"Impossible de remettre {namespace}/{name} en veille: {err}")
            return False

        for service_name in self.ingress_service.service_names(ingress):
            try:
                await asyncio.to_thread(self.redirector.reset, service_name, namespace)
            except StateCorruptionError as e:
                logger.error(
                    f"État du Service {namespace}/{service_name} corrompu, intervention manuelle requise: {e}"
                )
            except (TransportError, NotFoundError) as e:
                logger.error(f"Erreur lors de la restauration du Service {namespace}/{service_name}: {e}")

        await asyncio.to_thread(self.proxy_manager.reclaim, namespace)
        logger.info(f"Relance de {namespace}/{name} terminée")
        return True

    async def status(self, ingress: Dict) -> Dict[str, Any]:
        """État de la relance. Ne lève pas: une erreur API donne done=False."""
        namespace = ingress["metadata"]["namespace"]
        service_names = self.ingress_service.service_names(ingress)

        try:
            resources = await asyncio.to_thread(self.discovery.discover_for_ingress, ingress)
            redirected = await asyncio.to_thread(self._redirected_services, namespace, service_names)
        except (TransportError, NotFoundError) as e:
            logger.warning(f"Statut de {namespace}/{ingress['metadata']['name']} indisponible: {e}")
            return {
                "done": False,
                "percentage": 0,
                "resourceStatus": [],
                "service": {"names": service_names, "redirected": None},
            }

        statuses = resource_status(resources)
        desired = sum(s["desiredCount"] for s in statuses)
        ready = sum(s["readyCount"] for s in statuses)

        return {
            "done": all_ready(statuses) and not redirected,
            "percentage": round(100 * ready / desired) if desired else 100,
            "resourceStatus": statuses,
            "service": {"names": service_names, "redirected": bool(redirected)},
        }

    def _redirected_services(self, namespace: str, service_names: List[str]) -> List[str]:
        redirected = []
        for service_name in service_names:
            if self.redirector.is_redirected(service_name, namespace):
                redirected.append(service_name)
        return redirected

    async def shutdown(self) -> None:
        """Annule les relances encore en attente"""
        tasks = list(self._tasks)
        for task in tasks:
            task.cancel()
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)

    def _on_task_done(self, task: asyncio.Task) -> None:
        self._tasks.discard(task)
        if task.cancelled():
            logger.info(f"{task.get_name()} annulée")
            return
        error = task.exception()
        if error is not None:
            logger.error(f"{task.get_name()} a échoué: {error!r}")

import asyncio
import logging
import time
from typing import Any, Callable, Dict, List, Optional

from auto_downscale.core.exceptions import ReadinessTimeoutError, TransportError
from auto_downscale.models.workload import DiscoveredResources
from auto_downscale.services.discovery import ResourceDiscovery

logger = logging.getLogger(__name__)


def resource_status(resources: DiscoveredResources) -> List[Dict[str, Any]]:
    """Statut de disponibilité des deployments et statefulsets (les cronjobs n'ont pas de réplicas)"""
    return [
        {
            "name": workload.name,
            "type": workload.kind.label,
            "message": f"{workload.ready_replicas} / {workload.replicas}",
            "desiredCount": workload.replicas,
            "readyCount": workload.ready_replicas,
            "isReady": workload.is_ready,
        }
        for workload in resources.scalable()
    ]


def all_ready(statuses: List[Dict[str, Any]]) -> bool:
    return all(status["isReady"] for status in statuses)


class ReadinessWatcher:
    """Attend que les charges d'un environnement aient autant de réplicas prêts que désirés"""

    def __init__(self, discovery: ResourceDiscovery, poll_interval: float = 10, timeout: float = 900):
        self.discovery = discovery
        self.poll_interval = poll_interval
        self.timeout = timeout

    async def wait_ready(
        self,
        namespace: str,
        label_selector: str,
        poll_interval: Optional[float] = None,
        timeout: Optional[float] = None,
    ) -> List[Dict[str, Any]]:
        """
        Attend que chaque deployment/statefulset du sélecteur soit prêt.

        Raises:
            ReadinessTimeoutError: si le délai est dépassé
            asyncio.CancelledError: si la tâche appelante est annulée
        """
        return await self.wait_for(
            lambda: self.discovery.discover(namespace, label_selector),
            poll_interval=poll_interval,
            timeout=timeout,
            description=f"'{label_selector}' dans {namespace}",
        )

    async def wait_for(
        self,
        loader: Callable[[], DiscoveredResources],
        poll_interval: Optional[float] = None,
        timeout: Optional[float] = None,
        description: str = "ressources",
    ) -> List[Dict[str, Any]]:
        """Même boucle que wait_ready sur un chargeur quelconque (appelé dans un thread)"""
        poll_interval = self.poll_interval if poll_interval is None else poll_interval
        timeout = self.timeout if timeout is None else timeout
        deadline = time.monotonic() + timeout

        while True:
            try:
                resources = await asyncio.to_thread(loader)
                statuses = resource_status(resources)
                logger.debug(f"Disponibilité {description}: {[s['message'] for s in statuses]}")
                if all_ready(statuses):
                    logger.info(f"{description}: {len(statuses)} ressource(s) prête(s)")
                    return statuses
            except TransportError as e:
                logger.warning(f"Erreur transitoire pendant l'attente de {description}: {e}")

            remaining = deadline - time.monotonic()
            if remaining <= 0:
                raise ReadinessTimeoutError(f"{description} non prêt(s) après {timeout}s")
            await asyncio.sleep(min(poll_interval, remaining))

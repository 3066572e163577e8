import asyncio
import logging
import re
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, List, Mapping, Optional

from auto_downscale.core.durations import is_eligible
from auto_downscale.core.exceptions import ConfigurationError
from auto_downscale.services.discovery import ResourceDiscovery
from auto_downscale.services.ingress_service import IngressService
from auto_downscale.services.service_redirector import ServiceRedirector
from auto_downscale.services.workload_scaler import ScaleOutcome, WorkloadScaler

logger = logging.getLogger(__name__)


class DownscaleWorker:
    """Balayage périodique: met en veille les environnements inactifs"""

    def __init__(
        self,
        ingress_service: IngressService,
        discovery: ResourceDiscovery,
        redirector: ServiceRedirector,
        scaler: WorkloadScaler,
        default_min_age: timedelta,
        min_age_rules: Optional[Mapping[re.Pattern, timedelta]] = None,
        concurrency: int = 4,
        interval: float = 0,
    ):
        self.ingress_service = ingress_service
        self.discovery = discovery
        self.redirector = redirector
        self.scaler = scaler
        self.default_min_age = default_min_age
        self.min_age_rules = min_age_rules or {}
        self.concurrency = concurrency
        self.interval = interval
        self.running = False
        self._task = None
        self.last_run_results: Dict[str, Any] = {"timestamp": None, "summary": {}, "errors": []}

    async def start(self):
        """Démarre la boucle de balayage"""
        if self.running:
            return

        self.running = True
        logger.info(f"Worker de mise en veille démarré (période {self.interval}s)")

        while self.running:
            try:
                await self.run_once()
                await asyncio.sleep(self.interval)
            except asyncio.CancelledError:
                logger.info("Worker de mise en veille annulé")
                break
            except Exception as e:
                logger.error(f"Erreur dans le balayage: {e}")
                if self.running:
                    await asyncio.sleep(self.interval)

        logger.info("Worker de mise en veille arrêté")

    def stop(self):
        """Arrête le worker"""
        self.running = False

    def is_healthy(self) -> bool:
        return self.running and self._task is not None and not self._task.done()

    def eligible_ingresses(self, ingresses: List[Dict], now: datetime) -> List[Dict]:
        eligible = []
        for ingress in ingresses:
            try:
                if is_eligible(ingress, now, self.default_min_age, self.min_age_rules):
                    eligible.append(ingress)
            except ConfigurationError as e:
                metadata = ingress.get("metadata") or {}
                logger.error(f"Ingress {metadata.get('namespace')}/{metadata.get('name')} ignoré: {e}")
        return eligible

    async def run_once(self, now: Optional[datetime] = None) -> Dict[str, Any]:
        """Un balayage complet. Une erreur sur un ingress n'interrompt pas les autres."""
        started = datetime.now(timezone.utc)
        now = now or started

        results = {
            "timestamp": started.isoformat(),
            "summary": {
                "ingresses_scanned": 0,
                "eligible": 0,
                "downscaled": 0,
                "failed": 0,
                "workloads_idled": 0,
                "workloads_failed": 0,
            },
            "downscaled": [],
            "errors": [],
            "duration_seconds": 0,
        }

        ingresses = await asyncio.to_thread(self.ingress_service.list_ingresses)
        eligible = self.eligible_ingresses(ingresses, now)
        results["summary"]["ingresses_scanned"] = len(ingresses)
        results["summary"]["eligible"] = len(eligible)
        logger.info(f"{len(eligible)} ingress éligible(s) sur {len(ingresses)}")

        semaphore = asyncio.Semaphore(self.concurrency)

        async def process(ingress: Dict):
            metadata = ingress["metadata"]
            target = f"{metadata['namespace']}/{metadata['name']}"
            async with semaphore:
                try:
                    outcomes = await asyncio.to_thread(self.downscale_ingress, ingress)
                except Exception as e:
                    results["summary"]["failed"] += 1
                    results["errors"].append(f"{target}: {e}")
                    logger.error(f"Échec de la mise en veille de {target}: {e}")
                    return

            results["summary"]["downscaled"] += 1
            results["summary"]["workloads_idled"] += sum(1 for o in outcomes if o is ScaleOutcome.CHANGED)
            results["summary"]["workloads_failed"] += sum(1 for o in outcomes if o is ScaleOutcome.FAILED)
            results["downscaled"].append(target)

        await asyncio.gather(*(process(ingress) for ingress in eligible))

        results["duration_seconds"] = round((datetime.now(timezone.utc) - started).total_seconds(), 2)
        self.last_run_results = results
        logger.info(
            f"Balayage terminé: {results['summary']['downscaled']} en veille, "
            f"{results['summary']['failed']} échec(s), {results['duration_seconds']}s"
        )
        return results

    def downscale_ingress(self, ingress: Dict) -> List[ScaleOutcome]:
        """
        Met un environnement en veille: redirection des Services, marquage de
        l'ingress, puis mise en veille des charges. Les charges ne sont touchées
        qu'une fois le trafic redirigé.
        """
        metadata = ingress["metadata"]
        namespace = metadata["namespace"]

        service_names = self.ingress_service.service_names(ingress)
        if not service_names:
            logger.warning(f"Aucun Service pour l'ingress {namespace}/{metadata['name']}")
        for service_name in service_names:
            self.redirector.redirect(service_name, namespace)

        self.ingress_service.mark_down(ingress)

        resources = self.discovery.discover_for_ingress(ingress)
        return [self.scaler.idle(workload) for workload in resources.all()]

    def get_last_run_results(self) -> Dict[str, Any]:
        return self.last_run_results


def main() -> int:
    """Point d'entrée pour un planificateur externe (CronJob): un seul balayage"""
    from auto_downscale.config import settings
    from auto_downscale.core.logging import setup_logging
    from auto_downscale.dependencies import get_downscale_worker

    setup_logging(settings.LOG_LEVEL)
    results = asyncio.run(get_downscale_worker().run_once())
    return 1 if results["summary"]["failed"] else 0


if __name__ == "__main__":
    raise SystemExit(main())

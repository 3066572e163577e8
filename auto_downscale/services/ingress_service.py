import logging
from datetime import datetime, timezone
from typing import Dict, List, Optional

from auto_downscale.core import annotations
from auto_downscale.core.durations import format_timestamp
from auto_downscale.external.k8s_client import K8sClient

logger = logging.getLogger(__name__)

INGRESS = "Ingress"


class IngressService:
    """L'ingress sert d'ancre d'état à chaque environnement"""

    def __init__(self, k8s_client: K8sClient):
        self.k8s_client = k8s_client

    def list_ingresses(self) -> List[Dict]:
        return self.k8s_client.list_all_namespaces(INGRESS)

    def find_by_hostname(self, hostname: str) -> Optional[Dict]:
        """Premier ingress dont une règle porte ce nom d'hôte"""
        if not hostname:
            return None
        hostname = hostname.strip().lower()
        for ingress in self.list_ingresses():
            rules = (ingress.get("spec") or {}).get("rules") or []
            if any((rule.get("host") or "").lower() == hostname for rule in rules):
                return ingress
        return None

    def service_names(self, ingress: Dict) -> List[str]:
        """
        Services fronts de l'environnement: l'annotation services (liste séparée
        par des virgules) ou, à défaut, les backends déclarés par l'ingress.
        """
        raw = annotations.get_annotations(ingress).get(annotations.SERVICES)
        if raw:
            return [name.strip() for name in raw.split(",") if name.strip()]

        spec = ingress.get("spec") or {}
        backends = [spec.get("defaultBackend")]
        for rule in spec.get("rules") or []:
            backends.extend(path.get("backend") for path in ((rule.get("http") or {}).get("paths") or []))

        names = []
        for backend in backends:
            name = ((backend or {}).get("service") or {}).get("name")
            if name and name not in names:
                names.append(name)
        return names

    def mark_down(self, ingress: Dict) -> Dict:
        metadata = ingress["metadata"]
        result = self.k8s_client.patch(INGRESS, metadata["name"], metadata["namespace"], {
            "metadata": {"annotations": {annotations.DOWN: annotations.TRUE}},
        })
        logger.info(f"Ingress {metadata['namespace']}/{metadata['name']} marqué en veille")
        return result

    def mark_up(self, ingress: Dict, now: Optional[datetime] = None) -> Dict:
        """Efface le drapeau down et rafraîchit last-update"""
        metadata = ingress["metadata"]
        now = now or datetime.now(timezone.utc)
        result = self.k8s_client.patch(INGRESS, metadata["name"], metadata["namespace"], {
            "metadata": {"annotations": {
                annotations.DOWN: None,
                annotations.LAST_UPDATE: format_timestamp(now),
            }},
        })
        logger.info(f"Ingress {metadata['namespace']}/{metadata['name']} réveillé")
        return result

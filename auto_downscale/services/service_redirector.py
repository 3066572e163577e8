import json
import logging
from typing import Dict, List, Optional

from auto_downscale.core import annotations
from auto_downscale.core.exceptions import AutoDownscaleError
from auto_downscale.external.k8s_client import K8sClient
from auto_downscale.models.service_state import ServiceRedirectState
from auto_downscale.services.proxy_manager import ProxyLifecycleManager

logger = logging.getLogger(__name__)

SERVICE = "Service"
EXTERNAL_NAME = "ExternalName"


class ServiceRedirector:
    """Bascule le trafic d'un Service entre ses pods et le proxy d'attente"""

    def __init__(self, k8s_client: K8sClient, proxy_manager: ProxyLifecycleManager):
        self.k8s_client = k8s_client
        self.proxy_manager = proxy_manager

    def redirect(self, service_name: str, namespace: str) -> bool:
        """
        Redirige le Service vers le proxy du namespace.

        Sans effet si le Service est déjà marqué down. Le proxy est prêt avant
        que le trafic ne soit déplacé. Toute erreur est propagée à l'appelant.

        Returns:
            True si le Service vient d'être redirigé, False s'il l'était déjà
        """
        service = self.k8s_client.get(SERVICE, service_name, namespace)
        if annotations.is_down(service):
            logger.debug(f"Service {namespace}/{service_name} déjà redirigé")
            return False

        self.proxy_manager.ensure(namespace)

        state = ServiceRedirectState.capture(service)

        # Le merge patch fusionne les maps: les clés d'origine doivent être retirées explicitement
        selector: Dict[str, Optional[str]] = {key: None for key in (state.original_selector or {})}
        selector.update(self.proxy_manager.pod_labels)

        self.k8s_client.patch(SERVICE, service_name, namespace, {
            "metadata": {
                "labels": {annotations.REDIRECTED_LABEL: annotations.TRUE},
                "annotations": state.to_annotations(),
            },
            "spec": {
                "selector": selector,
                "ports": self._proxy_ports(state.original_ports or []),
            },
        })

        logger.info(f"Service {namespace}/{service_name} redirigé vers le proxy d'attente")
        return True

    def reset(self, service_name: str, namespace: str) -> bool:
        """
        Restaure le Service à son état d'avant redirection.

        Raises:
            StateCorruptionError: si l'état sauvegardé est absent ou illisible

        Returns:
            True si le Service a été restauré, False s'il n'était pas redirigé
        """
        service = self.k8s_client.get(SERVICE, service_name, namespace)
        if not annotations.is_down(service):
            logger.debug(f"Service {namespace}/{service_name} non redirigé, rien à restaurer")
            return False

        state = ServiceRedirectState.from_annotations(annotations.get_annotations(service))
        spec = service.get("spec") or {}
        ports = state.original_ports if state.original_ports is not None else (spec.get("ports") or [])
        original_type = state.original_type or "ClusterIP"

        if spec.get("type") == EXTERNAL_NAME and original_type != EXTERNAL_NAME:
            # Ancienne redirection par ExternalName: certains load balancers
            # refusent le changement de type à chaud
            self._recreate(service, state, original_type, ports)
        else:
            self.k8s_client.patch(SERVICE, service_name, namespace, {
                "metadata": {
                    "labels": {annotations.REDIRECTED_LABEL: None},
                    "annotations": ServiceRedirectState.cleared_annotations(),
                },
                "spec": {
                    "type": original_type,
                    "selector": self._restored_selector(spec.get("selector"), state.original_selector),
                    "ports": ports,
                },
            })

        logger.info(f"Service {namespace}/{service_name} restauré")
        return True

    def is_redirected(self, service_name: str, namespace: str) -> bool:
        return annotations.is_down(self.k8s_client.get(SERVICE, service_name, namespace))

    def _proxy_ports(self, original_ports: List[dict]) -> List[dict]:
        if not original_ports:
            return [{"name": "http", "port": 80, "protocol": "TCP", "targetPort": self.proxy_manager.port}]
        return [{**port, "targetPort": self.proxy_manager.port} for port in original_ports]

    @staticmethod
    def _restored_selector(current: Optional[dict], original: Optional[dict]) -> Optional[dict]:
        if original is None:
            return None
        selector: Dict[str, Optional[str]] = {key: None for key in (current or {}) if key not in original}
        selector.update(original)
        return selector

    def _recreate(self, service: dict, state: ServiceRedirectState, original_type: str, ports: List[dict]):
        metadata = service["metadata"]
        name, namespace = metadata["name"], metadata["namespace"]

        labels = {k: v for k, v in (metadata.get("labels") or {}).items() if k != annotations.REDIRECTED_LABEL}
        cleared = ServiceRedirectState.cleared_annotations()
        kept_annotations = {k: v for k, v in (metadata.get("annotations") or {}).items() if k not in cleared}

        spec = {"type": original_type, "ports": ports}
        if state.original_selector is not None:
            spec["selector"] = state.original_selector

        body = {
            "apiVersion": "v1",
            "kind": "Service",
            "metadata": {"name": name, "namespace": namespace, "labels": labels, "annotations": kept_annotations},
            "spec": spec,
        }

        self.k8s_client.delete(SERVICE, name, namespace)
        try:
            self.k8s_client.create(SERVICE, namespace, body)
        except AutoDownscaleError as e:
            # Le Service n'existe plus: le manifeste est journalisé pour être réappliqué à la main
            logger.error(
                f"Recréation du Service {namespace}/{name} impossible, intervention manuelle requise: {e}. "
                f"Manifeste: {json.dumps(body)}"
            )
            raise
        logger.info(f"Service {namespace}/{name} recréé en {original_type} (ancienne redirection ExternalName)")

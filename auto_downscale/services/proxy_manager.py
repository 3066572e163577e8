import logging
import time
from typing import Dict

from auto_downscale.core import annotations
from auto_downscale.core.exceptions import (
    AlreadyExistsError,
    NotFoundError,
    ReadinessTimeoutError,
    TransportError,
)
from auto_downscale.external.k8s_client import K8sClient
from auto_downscale.models.workload import WorkloadKind

logger = logging.getLogger(__name__)

MANAGED_BY = "auto-downscale"


class ProxyLifecycleManager:
    """
    Gère le proxy d'attente partagé: un Deployment par namespace, créé à la
    première redirection et supprimé quand plus aucun Service ne porte le
    label redirected=true.

    Le comptage de références se fait par scan des labels, sans compteur.
    Deux environnements qui redirigent et restaurent en même temps peuvent
    donc brièvement laisser un proxy en trop ou le supprimer juste avant une
    redirection; ensure() le recrée au prochain passage.
    """

    def __init__(
        self,
        k8s_client: K8sClient,
        name: str,
        image: str,
        port: int,
        upstream: str,
        ready_timeout: float = 120,
        poll_interval: float = 2,
    ):
        self.k8s_client = k8s_client
        self.name = name
        self.image = image
        self.port = port
        self.upstream = upstream
        self.ready_timeout = ready_timeout
        self.poll_interval = poll_interval

    @property
    def pod_labels(self) -> Dict[str, str]:
        return {
            "app.kubernetes.io/name": self.name,
            "app.kubernetes.io/managed-by": MANAGED_BY,
        }

    def build_manifest(self, namespace: str) -> dict:
        return {
            "apiVersion": "apps/v1",
            "kind": "Deployment",
            "metadata": {
                "name": self.name,
                "namespace": namespace,
                "labels": dict(self.pod_labels),
            },
            "spec": {
                "replicas": 1,
                "selector": {"matchLabels": dict(self.pod_labels)},
                "template": {
                    "metadata": {"labels": dict(self.pod_labels)},
                    "spec": {
                        "containers": [
                            {
                                "name": "proxy",
                                "image": self.image,
                                "ports": [{"containerPort": self.port, "protocol": "TCP"}],
                                "env": [
                                    {"name": "UPSTREAM", "value": self.upstream},
                                    {"name": "PORT", "value": str(self.port)},
                                ],
                                "resources": {
                                    "requests": {"cpu": "10m", "memory": "16Mi"},
                                    "limits": {"cpu": "50m", "memory": "32Mi"},
                                },
                            }
                        ]
                    },
                },
            },
        }

    def ensure(self, namespace: str) -> dict:
        """
        Récupère ou crée le proxy du namespace, puis attend qu'au moins un
        réplica soit prêt avant de rendre la main.

        Raises:
            TransportError: si l'API échoue
            ReadinessTimeoutError: si le proxy n'est pas prêt dans le délai
        """
        try:
            proxy = self.k8s_client.get(WorkloadKind.DEPLOYMENT, self.name, namespace)
        except NotFoundError:
            try:
                proxy = self.k8s_client.create(WorkloadKind.DEPLOYMENT, namespace, self.build_manifest(namespace))
                logger.info(f"Proxy {namespace}/{self.name} créé")
            except AlreadyExistsError:
                # Créé entre-temps par une autre redirection
                proxy = self.k8s_client.get(WorkloadKind.DEPLOYMENT, self.name, namespace)

        if self._ready_replicas(proxy) >= 1:
            return proxy
        return self._wait_ready(namespace)

    def _wait_ready(self, namespace: str) -> dict:
        deadline = time.monotonic() + self.ready_timeout
        while True:
            proxy = self.k8s_client.get(WorkloadKind.DEPLOYMENT, self.name, namespace)
            if self._ready_replicas(proxy) >= 1:
                logger.info(f"Proxy {namespace}/{self.name} prêt")
                return proxy
            if time.monotonic() >= deadline:
                raise ReadinessTimeoutError(
                    f"Proxy {namespace}/{self.name} non prêt après {self.ready_timeout}s"
                )
            time.sleep(self.poll_interval)

    def reclaim(self, namespace: str) -> bool:
        """
        Supprime le proxy si plus aucun Service du namespace n'est redirigé.

        Returns:
            True si le proxy est absent à l'issue de l'appel
        """
        selector = f"{annotations.REDIRECTED_LABEL}={annotations.TRUE}"
        try:
            redirected = self.k8s_client.list("Service", namespace, selector)
            if redirected:
                logger.info(
                    f"Proxy {namespace}/{self.name} conservé: "
                    f"{len(redirected)} service(s) encore redirigé(s)"
                )
                return False

            self.k8s_client.delete(WorkloadKind.DEPLOYMENT, self.name, namespace)
            logger.info(f"Proxy {namespace}/{self.name} supprimé")
            return True
        except NotFoundError:
            logger.debug(f"Proxy {namespace}/{self.name} déjà absent")
            return True
        except TransportError as e:
            logger.error(f"Erreur lors de la suppression du proxy {namespace}/{self.name}: {e}")
            return False

    @staticmethod
    def _ready_replicas(proxy: dict) -> int:
        return (proxy.get("status") or {}).get("readyReplicas") or 0

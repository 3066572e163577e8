from typing import List, Optional
import logging

from auto_downscale.core import annotations
from auto_downscale.core.exceptions import NotFoundError
from auto_downscale.external.k8s_client import K8sClient
from auto_downscale.models.workload import DiscoveredResources, Workload, WorkloadKind

logger = logging.getLogger(__name__)


class ResourceDiscovery:
    """Résout les charges (deployments, statefulsets, cronjobs) d'un environnement"""

    def __init__(self, k8s_client: K8sClient):
        self.k8s_client = k8s_client

    def discover(self, namespace: str, label_selector: str) -> DiscoveredResources:
        """
        Liste les trois types de charges correspondant au sélecteur.

        Une erreur de transport sur l'une des listes fait échouer toute la
        découverte: aucun résultat partiel n'est retourné.
        """
        resources = DiscoveredResources()
        for kind in WorkloadKind:
            for item in self.k8s_client.list(kind, namespace, label_selector):
                resources.add(Workload.from_resource(kind, item))

        logger.debug(
            f"{len(resources)} ressource(s) trouvée(s) pour '{label_selector}' dans {namespace}"
        )
        return resources

    def selectors_for_ingress(self, ingress: dict) -> List[str]:
        """
        Sélecteurs à utiliser pour un ingress, dans l'ordre.

        Un sélecteur explicite (annotation label-selector) est exclusif. Sinon
        les deux conventions de labels des charts sont couvertes:
        release=<instance> puis app.kubernetes.io/instance=<instance>.
        """
        explicit = annotations.get_annotations(ingress).get(annotations.LABEL_SELECTOR)
        if explicit:
            return [explicit]

        instance = self._instance_name(ingress)
        return [
            f"{annotations.RELEASE_LABEL}={instance}",
            f"{annotations.INSTANCE_LABEL}={instance}",
        ]

    def legacy_deployment_names(self, ingress: dict) -> Optional[List[str]]:
        """Liste de l'annotation deployments (ancien mode), None si absente ou si un sélecteur explicite existe"""
        ingress_annotations = annotations.get_annotations(ingress)
        if ingress_annotations.get(annotations.LABEL_SELECTOR):
            return None
        raw = ingress_annotations.get(annotations.DEPLOYMENTS)
        if not raw:
            return None
        return [name.strip() for name in raw.split(",") if name.strip()]

    def discover_for_ingress(self, ingress: dict) -> DiscoveredResources:
        """Charges d'un environnement, union dédoublonnée des sélecteurs"""
        namespace = ingress["metadata"]["namespace"]

        legacy_names = self.legacy_deployment_names(ingress)
        if legacy_names is not None:
            return self.discover_by_names(namespace, legacy_names)

        resources = DiscoveredResources()
        for label_selector in self.selectors_for_ingress(ingress):
            resources = resources.merge(self.discover(namespace, label_selector))
        return resources

    def discover_by_names(self, namespace: str, deployment_names: List[str]) -> DiscoveredResources:
        resources = DiscoveredResources()
        for name in deployment_names:
            try:
                item = self.k8s_client.get(WorkloadKind.DEPLOYMENT, name, namespace)
            except NotFoundError:
                logger.warning(f"Deployment {namespace}/{name} introuvable, ignoré")
                continue
            resources.add(Workload.from_resource(WorkloadKind.DEPLOYMENT, item))
        return resources

    def _instance_name(self, ingress: dict) -> str:
        labels = annotations.get_labels(ingress)
        return (
            labels.get(annotations.RELEASE_LABEL)
            or labels.get(annotations.INSTANCE_LABEL)
            or ingress["metadata"]["name"]
        )

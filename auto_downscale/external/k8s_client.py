from contextlib import contextmanager
from kubernetes import client, config
from kubernetes.client.rest import ApiException
from kubernetes.config.config_exception import ConfigException
from urllib3.exceptions import HTTPError
import logging
from typing import Any, Dict, List, Optional

from auto_downscale.core.exceptions import AlreadyExistsError, NotFoundError, TransportError

logger = logging.getLogger(__name__)

MERGE_PATCH = "application/merge-patch+json"

# kind -> (attribut de l'API, suffixe des méthodes générées)
_KIND_METHODS = {
    "Ingress": ("networking_v1", "ingress"),
    "Service": ("v1", "service"),
    "Deployment": ("apps_v1", "deployment"),
    "StatefulSet": ("apps_v1", "stateful_set"),
    "CronJob": ("batch_v1", "cron_job"),
}


class K8sClient:
    """
    Accès au cluster par type de ressource.

    Toutes les ressources sont échangées sous forme de dictionnaires au format
    JSON de l'API (clés camelCase). Les ApiException sont traduites en
    NotFoundError / AlreadyExistsError / TransportError.
    """

    def __init__(self):
        try:
            config.load_incluster_config()
        except ConfigException:
            try:
                config.load_kube_config()
            except Exception as e:
                logger.error(f"Impossible de charger la configuration Kubernetes: {e}")
                raise

        self.api_client = client.ApiClient()
        self.v1 = client.CoreV1Api(self.api_client)
        self.apps_v1 = client.AppsV1Api(self.api_client)
        self.batch_v1 = client.BatchV1Api(self.api_client)
        self.networking_v1 = client.NetworkingV1Api(self.api_client)

    def _method(self, verb: str, kind: Any, scope: str = "namespaced"):
        kind = getattr(kind, "value", kind)
        if kind not in _KIND_METHODS:
            raise ValueError(f"Type de ressource non supporté: {kind}")
        api_name, suffix = _KIND_METHODS[kind]
        api = getattr(self, api_name)
        if scope == "all":
            return getattr(api, f"{verb}_{suffix}_for_all_namespaces")
        return getattr(api, f"{verb}_namespaced_{suffix}")

    def _to_dict(self, obj) -> Dict:
        return self.api_client.sanitize_for_serialization(obj)

    @contextmanager
    def _api_errors(self, action: str, kind: Any, namespace: Optional[str], name: Optional[str] = None):
        kind = getattr(kind, "value", kind)
        target = f"{kind} {namespace}/{name}" if name else f"{kind} dans {namespace or 'tous les namespaces'}"
        try:
            yield
        except ApiException as e:
            if e.status == 404:
                raise NotFoundError(f"{target} introuvable") from e
            if e.status == 409 and action == "create":
                raise AlreadyExistsError(f"{target} existe déjà") from e
            raise TransportError(f"Erreur API lors de '{action}' sur {target}: {e.status} {e.reason}", e.status) from e
        except (HTTPError, OSError) as e:
            raise TransportError(f"API Kubernetes injoignable lors de '{action}' sur {target}: {e}") from e

    def list(self, kind: Any, namespace: str, label_selector: Optional[str] = None) -> List[Dict]:
        """Liste les ressources d'un namespace, filtrées par sélecteur"""
        kwargs = {"label_selector": label_selector} if label_selector else {}
        with self._api_errors("list", kind, namespace):
            result = self._method("list", kind)(namespace, **kwargs)
        return [self._to_dict(item) for item in result.items]

    def list_all_namespaces(self, kind: Any, label_selector: Optional[str] = None) -> List[Dict]:
        """Liste les ressources de tous les namespaces"""
        kwargs = {"label_selector": label_selector} if label_selector else {}
        with self._api_errors("list", kind, None):
            result = self._method("list", kind, scope="all")(**kwargs)
        return [self._to_dict(item) for item in result.items]

    def get(self, kind: Any, name: str, namespace: str) -> Dict:
        with self._api_errors("get", kind, namespace, name):
            result = self._method("read", kind)(name, namespace)
        return self._to_dict(result)

    def patch(self, kind: Any, name: str, namespace: str, body: Dict) -> Dict:
        """Applique un merge patch (RFC 7386): une valeur None supprime la clé"""
        with self._api_errors("patch", kind, namespace, name):
            result = self._method("patch", kind)(name, namespace, body, _content_type=MERGE_PATCH)
        return self._to_dict(result)

    def create(self, kind: Any, namespace: str, body: Dict) -> Dict:
        name = (body.get("metadata") or {}).get("name")
        with self._api_errors("create", kind, namespace, name):
            result = self._method("create", kind)(namespace, body)
        return self._to_dict(result)

    def delete(self, kind: Any, name: str, namespace: str) -> None:
        with self._api_errors("delete", kind, namespace, name):
            self._method("delete", kind)(name, namespace)

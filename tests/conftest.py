"""
Test fixtures and configuration for pytest
"""
import copy
import uuid
from datetime import timedelta

import pytest

from auto_downscale.core import annotations
from auto_downscale.core.exceptions import AlreadyExistsError, NotFoundError, TransportError
from auto_downscale.services.discovery import ResourceDiscovery
from auto_downscale.services.ingress_service import IngressService
from auto_downscale.services.proxy_manager import ProxyLifecycleManager
from auto_downscale.services.readiness import ReadinessWatcher
from auto_downscale.services.service_redirector import ServiceRedirector
from auto_downscale.services.upscale_service import UpscaleService
from auto_downscale.services.workload_scaler import WorkloadScaler
from auto_downscale.workers.downscale_worker import DownscaleWorker


def merge_patch(target, patch):
    """RFC 7386"""
    if not isinstance(patch, dict):
        return copy.deepcopy(patch)
    result = copy.deepcopy(target) if isinstance(target, dict) else {}
    for key, value in patch.items():
        if value is None:
            result.pop(key, None)
        else:
            result[key] = merge_patch(result.get(key), value)
    return result


def matches_selector(labels, selector):
    if not selector:
        return True
    for term in selector.split(","):
        term = term.strip()
        if "!=" in term:
            key, value = term.split("!=", 1)
            if labels.get(key.strip()) == value.strip():
                return False
        elif "=" in term:
            key, value = term.replace("==", "=").split("=", 1)
            if labels.get(key.strip()) != value.strip():
                return False
        elif term.startswith("!"):
            if term[1:] in labels:
                return False
        elif term not in labels:
            return False
    return True


class FakeK8sClient:
    """Cluster en mémoire avec la même interface que K8sClient"""

    def __init__(self, auto_ready=True):
        self.objects = {}
        self.calls = []
        self.failures = {}
        self.auto_ready = auto_ready

    @staticmethod
    def _kind(kind):
        return getattr(kind, "value", kind)

    def add(self, kind, obj):
        obj = copy.deepcopy(obj)
        metadata = obj.setdefault("metadata", {})
        metadata.setdefault("uid", str(uuid.uuid4()))
        self.objects[(self._kind(kind), metadata["namespace"], metadata["name"])] = obj
        return obj

    def find(self, kind, name, namespace):
        return self.objects.get((self._kind(kind), namespace, name))

    def fail(self, verb, kind, error=None):
        self.failures[(verb, self._kind(kind))] = error or TransportError("boom", 500)

    def _record(self, verb, kind, namespace, name=None):
        kind = self._kind(kind)
        self.calls.append((verb, kind, namespace, name))
        error = self.failures.get((verb, kind))
        if error is not None:
            raise error

    def calls_for(self, verb, kind=None):
        return [c for c in self.calls if c[0] == verb and (kind is None or c[1] == self._kind(kind))]

    def list(self, kind, namespace, label_selector=None):
        self._record("list", kind, namespace)
        kind = self._kind(kind)
        return [
            copy.deepcopy(obj) for (k, ns, _), obj in self.objects.items()
            if k == kind and ns == namespace
            and matches_selector(obj["metadata"].get("labels") or {}, label_selector)
        ]

    def list_all_namespaces(self, kind, label_selector=None):
        self._record("list", kind, None)
        kind = self._kind(kind)
        return [
            copy.deepcopy(obj) for (k, _, _), obj in self.objects.items()
            if k == kind and matches_selector(obj["metadata"].get("labels") or {}, label_selector)
        ]

    def get(self, kind, name, namespace):
        self._record("get", kind, namespace, name)
        obj = self.find(kind, name, namespace)
        if obj is None:
            raise NotFoundError(f"{self._kind(kind)} {namespace}/{name} introuvable")
        return copy.deepcopy(obj)

    def patch(self, kind, name, namespace, body):
        self._record("patch", kind, namespace, name)
        key = (self._kind(kind), namespace, name)
        if key not in self.objects:
            raise NotFoundError(f"{key} introuvable")
        self.objects[key] = merge_patch(self.objects[key], body)
        return copy.deepcopy(self.objects[key])

    def create(self, kind, namespace, body):
        name = body["metadata"]["name"]
        self._record("create", kind, namespace, name)
        if self.find(kind, name, namespace) is not None:
            raise AlreadyExistsError(f"{self._kind(kind)} {namespace}/{name} existe déjà")
        obj = copy.deepcopy(body)
        obj["metadata"]["namespace"] = namespace
        if self.auto_ready and self._kind(kind) == "Deployment":
            obj["status"] = {"readyReplicas": obj["spec"].get("replicas", 1)}
        return self.add(kind, obj)

    def delete(self, kind, name, namespace):
        self._record("delete", kind, namespace, name)
        if self.objects.pop((self._kind(kind), namespace, name), None) is None:
            raise NotFoundError(f"{self._kind(kind)} {namespace}/{name} introuvable")

    def set_ready(self, kind, name, namespace, ready):
        obj = self.find(kind, name, namespace)
        obj.setdefault("status", {})["readyReplicas"] = ready


def make_ingress(name, namespace="review", host=None, annotations_=None, labels=None, service="web"):
    return {
        "metadata": {
            "name": name,
            "namespace": namespace,
            "labels": labels or {},
            "annotations": annotations_ or {},
        },
        "spec": {
            "rules": [{
                "host": host or f"{name}.example.com",
                "http": {"paths": [{"path": "/", "backend": {"service": {"name": service, "port": {"number": 80}}}}]},
            }],
        },
    }


def make_service(name, namespace="review", selector=None, ports=None, type_="ClusterIP", annotations_=None, labels=None):
    return {
        "metadata": {"name": name, "namespace": namespace, "labels": labels or {}, "annotations": annotations_ or {}},
        "spec": {
            "type": type_,
            "selector": selector if selector is not None else {"app": name},
            "ports": ports if ports is not None else [{"name": "http", "port": 80, "targetPort": 3000, "protocol": "TCP"}],
        },
    }


def make_deployment(name, namespace="review", replicas=3, ready=None, labels=None, annotations_=None):
    return {
        "metadata": {"name": name, "namespace": namespace, "labels": labels or {}, "annotations": annotations_ or {}},
        "spec": {"replicas": replicas},
        "status": {"readyReplicas": replicas if ready is None else ready},
    }


def make_cronjob(name, namespace="review", suspend=False, labels=None, annotations_=None):
    return {
        "metadata": {"name": name, "namespace": namespace, "labels": labels or {}, "annotations": annotations_ or {}},
        "spec": {"schedule": "0 * * * *", "suspend": suspend},
    }


@pytest.fixture
def k8s():
    return FakeK8sClient()


@pytest.fixture
def discovery(k8s):
    return ResourceDiscovery(k8s)


@pytest.fixture
def ingress_service(k8s):
    return IngressService(k8s)


@pytest.fixture
def proxy_manager(k8s):
    return ProxyLifecycleManager(
        k8s,
        name="auto-downscale-proxy",
        image="auto-downscale/proxy:test",
        port=8080,
        upstream="auto-downscale.auto-downscale.svc.cluster.local",
        ready_timeout=0.05,
        poll_interval=0.01,
    )


@pytest.fixture
def redirector(k8s, proxy_manager):
    return ServiceRedirector(k8s, proxy_manager)


@pytest.fixture
def scaler(k8s):
    return WorkloadScaler(k8s)


@pytest.fixture
def watcher(discovery):
    return ReadinessWatcher(discovery, poll_interval=0.01, timeout=0.5)


@pytest.fixture
def upscale_service(ingress_service, discovery, scaler, watcher, redirector, proxy_manager):
    return UpscaleService(ingress_service, discovery, scaler, watcher, redirector, proxy_manager)


@pytest.fixture
def worker(ingress_service, discovery, redirector, scaler):
    return DownscaleWorker(
        ingress_service, discovery, redirector, scaler,
        default_min_age=timedelta(hours=1),
    )


@pytest.fixture
def down_annotations():
    return {annotations.DOWN: annotations.TRUE}

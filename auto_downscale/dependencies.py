from functools import lru_cache

from auto_downscale.config import settings
from auto_downscale.external.k8s_client import K8sClient
from auto_downscale.services.discovery import ResourceDiscovery
from auto_downscale.services.ingress_service import IngressService
from auto_downscale.services.proxy_manager import ProxyLifecycleManager
from auto_downscale.services.readiness import ReadinessWatcher
from auto_downscale.services.service_redirector import ServiceRedirector
from auto_downscale.services.upscale_service import UpscaleService
from auto_downscale.services.workload_scaler import WorkloadScaler
from auto_downscale.workers.downscale_worker import DownscaleWorker


# === CLIENTS EXTERNES ===
@lru_cache()
def get_k8s_client() -> K8sClient:
    return K8sClient()


# === SERVICES ===
@lru_cache()
def get_ingress_service() -> IngressService:
    return IngressService(get_k8s_client())


@lru_cache()
def get_discovery() -> ResourceDiscovery:
    return ResourceDiscovery(get_k8s_client())


@lru_cache()
def get_proxy_manager() -> ProxyLifecycleManager:
    return ProxyLifecycleManager(
        k8s_client=get_k8s_client(),
        name=settings.PROXY_NAME,
        image=settings.PROXY_IMAGE,
        port=settings.PROXY_PORT,
        upstream=settings.placeholder_upstream,
        ready_timeout=settings.PROXY_READY_TIMEOUT_SECONDS,
    )


@lru_cache()
def get_service_redirector() -> ServiceRedirector:
    return ServiceRedirector(get_k8s_client(), get_proxy_manager())


@lru_cache()
def get_workload_scaler() -> WorkloadScaler:
    return WorkloadScaler(get_k8s_client())


@lru_cache()
def get_readiness_watcher() -> ReadinessWatcher:
    return ReadinessWatcher(
        get_discovery(),
        poll_interval=settings.READINESS_POLL_INTERVAL_SECONDS,
        timeout=settings.READINESS_TIMEOUT_SECONDS,
    )


@lru_cache()
def get_upscale_service() -> UpscaleService:
    """Singleton: il garde la trace des relances en cours"""
    return UpscaleService(
        ingress_service=get_ingress_service(),
        discovery=get_discovery(),
        scaler=get_workload_scaler(),
        watcher=get_readiness_watcher(),
        redirector=get_service_redirector(),
        proxy_manager=get_proxy_manager(),
    )


# === WORKERS ===
@lru_cache()
def get_downscale_worker() -> DownscaleWorker:
    return DownscaleWorker(
        ingress_service=get_ingress_service(),
        discovery=get_discovery(),
        redirector=get_service_redirector(),
        scaler=get_workload_scaler(),
        default_min_age=settings.default_min_age,
        min_age_rules=settings.min_age_rules,
        concurrency=settings.SWEEP_CONCURRENCY,
        interval=settings.SWEEP_INTERVAL_SECONDS,
    )

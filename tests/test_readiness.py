"""
Tests for the readiness watcher
"""
import pytest

from auto_downscale.core.exceptions import ReadinessTimeoutError, TransportError
from auto_downscale.models.workload import DiscoveredResources, Workload, WorkloadKind
from auto_downscale.services.readiness import all_ready, resource_status

from conftest import make_cronjob, make_deployment

SELECTOR = "release=review-123"
LABELS = {"release": "review-123"}


def test_resource_status_skips_cronjobs():
    resources = DiscoveredResources(
        deployments=[Workload(WorkloadKind.DEPLOYMENT, "web", "review", replicas=3, ready_replicas=1)],
        cronjobs=[Workload(WorkloadKind.CRONJOB, "cleanup", "review", suspended=True)],
    )

    statuses = resource_status(resources)

    assert statuses == [{
        "name": "web",
        "type": "deployment",
        "message": "1 / 3",
        "desiredCount": 3,
        "readyCount": 1,
        "isReady": False,
    }]


def test_empty_environment_is_ready():
    assert all_ready([])


def test_zero_desired_is_ready():
    workload = Workload(WorkloadKind.STATEFULSET, "db", "review", replicas=0, ready_replicas=0)
    assert all_ready(resource_status(DiscoveredResources(statefulsets=[workload])))


@pytest.mark.asyncio
async def test_wait_ready_returns_once_all_ready(k8s, watcher):
    k8s.add("Deployment", make_deployment("web", replicas=2, labels=LABELS))
    k8s.add("CronJob", make_cronjob("cleanup", suspend=True, labels=LABELS))

    statuses = await watcher.wait_ready("review", SELECTOR)

    assert [s["name"] for s in statuses] == ["web"]
    assert all_ready(statuses)


@pytest.mark.asyncio
async def test_wait_ready_times_out(k8s, watcher):
    k8s.add("Deployment", make_deployment("web", replicas=2, ready=1, labels=LABELS))

    with pytest.raises(ReadinessTimeoutError):
        await watcher.wait_ready("review", SELECTOR, poll_interval=0.01, timeout=0.05)


@pytest.mark.asyncio
async def test_transient_errors_are_retried(discovery, watcher):
    attempts = []

    def flaky_loader():
        attempts.append(1)
        if len(attempts) < 3:
            raise TransportError("connexion refusée")
        return DiscoveredResources(
            deployments=[Workload(WorkloadKind.DEPLOYMENT, "web", "review", replicas=1, ready_replicas=1)],
        )

    statuses = await watcher.wait_for(flaky_loader, poll_interval=0.01, timeout=1)

    assert len(attempts) == 3
    assert statuses[0]["isReady"]


@pytest.mark.asyncio
async def test_waits_until_replicas_become_ready(k8s, watcher):
    k8s.add("Deployment", make_deployment("web", replicas=2, ready=0, labels=LABELS))
    polls = []

    def loader():
        polls.append(1)
        if len(polls) == 3:
            k8s.set_ready("Deployment", "web", "review", 2)
        return watcher.discovery.discover("review", SELECTOR)

    statuses = await watcher.wait_for(loader, poll_interval=0.01, timeout=1)

    assert len(polls) == 3
    assert statuses[0]["readyCount"] == 2

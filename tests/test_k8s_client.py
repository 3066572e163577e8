"""
Tests for the Kubernetes client wrapper
"""
from unittest.mock import MagicMock

import pytest
from kubernetes import client
from kubernetes.client.rest import ApiException
from urllib3.exceptions import MaxRetryError

from auto_downscale.core.exceptions import AlreadyExistsError, NotFoundError, TransportError
from auto_downscale.external import k8s_client as k8s_module
from auto_downscale.external.k8s_client import MERGE_PATCH, K8sClient
from auto_downscale.models.workload import WorkloadKind


@pytest.fixture
def api(monkeypatch):
    monkeypatch.setattr(k8s_module, "config", MagicMock())
    wrapper = K8sClient()
    wrapper.apps_v1 = MagicMock()
    wrapper.v1 = MagicMock()
    return wrapper


def test_resources_are_returned_as_api_dicts(api):
    api.apps_v1.read_namespaced_deployment.return_value = client.V1Deployment(
        metadata=client.V1ObjectMeta(name="web", namespace="review"),
        spec=client.V1DeploymentSpec(
            replicas=3,
            selector=client.V1LabelSelector(match_labels={"app": "web"}),
            template=client.V1PodTemplateSpec(),
        ),
        status=client.V1DeploymentStatus(ready_replicas=2),
    )

    deployment = api.get(WorkloadKind.DEPLOYMENT, "web", "review")

    assert deployment["spec"]["selector"] == {"matchLabels": {"app": "web"}}
    assert deployment["status"]["readyReplicas"] == 2
    api.apps_v1.read_namespaced_deployment.assert_called_once_with("web", "review")


def test_patch_is_a_merge_patch(api):
    api.v1.patch_namespaced_service.return_value = client.V1Service()

    api.patch("Service", "web", "review", {"spec": {"selector": {"app": None}}})

    _, kwargs = api.v1.patch_namespaced_service.call_args
    assert kwargs["_content_type"] == MERGE_PATCH


def _sent_headers(call_api):
    call = call_api.call_args
    return call.args[4] if len(call.args) > 4 else call.kwargs["header_params"]


@pytest.mark.parametrize("kind,response", [
    (WorkloadKind.DEPLOYMENT, client.V1Deployment(metadata=client.V1ObjectMeta(name="web"))),
    (WorkloadKind.CRONJOB, client.V1CronJob(metadata=client.V1ObjectMeta(name="web"))),
    ("Service", client.V1Service(metadata=client.V1ObjectMeta(name="web"))),
    ("Ingress", client.V1Ingress(metadata=client.V1ObjectMeta(name="web"))),
])
def test_merge_patch_header_reaches_the_generated_api(monkeypatch, kind, response):
    # Seul l'envoi HTTP est remplacé: les méthodes générées du client sont appelées
    monkeypatch.setattr(k8s_module, "config", MagicMock())
    wrapper = K8sClient()
    wrapper.api_client.call_api = MagicMock(return_value=response)

    result = wrapper.patch(kind, "web", "review", {"spec": {"selector": {"app": None}}})

    assert result["metadata"]["name"] == "web"
    assert wrapper.api_client.call_api.call_args.args[1] == "PATCH"
    assert _sent_headers(wrapper.api_client.call_api)["Content-Type"] == MERGE_PATCH


def test_list_passes_label_selector(api):
    api.apps_v1.list_namespaced_stateful_set.return_value = client.V1StatefulSetList(items=[])

    assert api.list(WorkloadKind.STATEFULSET, "review", "release=r") == []
    api.apps_v1.list_namespaced_stateful_set.assert_called_once_with("review", label_selector="release=r")


@pytest.mark.parametrize("status,action,expected", [
    (404, "get", NotFoundError),
    (409, "create", AlreadyExistsError),
    (409, "patch", TransportError),
    (500, "get", TransportError),
    (403, "delete", TransportError),
])
def test_api_errors_are_translated(api, status, action, expected):
    error = ApiException(status=status, reason="erreur")
    api.v1.read_namespaced_service.side_effect = error
    api.v1.create_namespaced_service.side_effect = error
    api.v1.patch_namespaced_service.side_effect = error
    api.v1.delete_namespaced_service.side_effect = error

    calls = {
        "get": lambda: api.get("Service", "web", "review"),
        "create": lambda: api.create("Service", "review", {"metadata": {"name": "web"}}),
        "patch": lambda: api.patch("Service", "web", "review", {}),
        "delete": lambda: api.delete("Service", "web", "review"),
    }
    with pytest.raises(expected):
        calls[action]()


def test_transport_error_keeps_status(api):
    api.v1.read_namespaced_service.side_effect = ApiException(status=503, reason="Service Unavailable")

    with pytest.raises(TransportError) as excinfo:
        api.get("Service", "web", "review")
    assert excinfo.value.status == 503


def test_unreachable_api(api):
    api.v1.read_namespaced_service.side_effect = MaxRetryError(None, "/api/v1", "connexion refusée")

    with pytest.raises(TransportError):
        api.get("Service", "web", "review")


def test_unsupported_kind(api):
    with pytest.raises(ValueError):
        api.get("ConfigMap", "web", "review")

"""
Tests for the HTTP endpoints
"""
from unittest.mock import AsyncMock, MagicMock

import pytest
from fastapi.testclient import TestClient

from auto_downscale.api.v1.environments import get_deny_list
from auto_downscale.api.v1.placeholder import placeholder_page_content
from auto_downscale.core.exceptions import TransportError
from auto_downscale.dependencies import get_ingress_service, get_upscale_service
from auto_downscale.main import app

from conftest import make_deployment, make_ingress, make_service


@pytest.fixture
def client(ingress_service, upscale_service):
    app.dependency_overrides[get_ingress_service] = lambda: ingress_service
    app.dependency_overrides[get_upscale_service] = lambda: upscale_service
    app.dependency_overrides[get_deny_list] = lambda: [r"^prod\."]
    # Sans "with": le lifespan (et donc le vrai client Kubernetes) n'est pas démarré
    yield TestClient(app)
    app.dependency_overrides.clear()


@pytest.fixture
def down_env(k8s, down_annotations):
    k8s.add("Ingress", make_ingress("review-123", annotations_=down_annotations))
    k8s.add("Ingress", make_ingress("prod", host="prod.example.com", annotations_=down_annotations))
    k8s.add("Ingress", make_ingress("live", host="live.example.com"))


def test_health(client):
    response = client.get("/health")

    assert response.status_code == 200
    assert response.json() == {"status": "healthy"}


class TestUpscaleEndpoint:

    def test_upscale_down_environment(self, client, down_env, upscale_service):
        upscale_service.upscale = AsyncMock(return_value={"message": "review-123 triggered", "resources": 2, "failed": []})

        response = client.post("/upscale", params={"domain": "review-123.example.com"})

        assert response.status_code == 200
        assert response.json()["message"] == "review-123 triggered"
        ingress = upscale_service.upscale.await_args.args[0]
        assert ingress["metadata"]["name"] == "review-123"

    def test_unknown_domain(self, client, down_env):
        response = client.post("/upscale", params={"domain": "nope.example.com"})

        assert response.status_code == 404

    def test_environment_already_up(self, client, down_env):
        response = client.post("/upscale", params={"domain": "live.example.com"})

        assert response.status_code == 404

    def test_denied_domain(self, client, down_env, k8s):
        response = client.post("/upscale", params={"domain": "prod.example.com"})

        assert response.status_code == 403
        assert k8s.calls_for("patch") == []

    def test_domain_is_required(self, client):
        assert client.post("/upscale").status_code == 422

    def test_kubernetes_unavailable(self, client, k8s):
        k8s.fail("list", "Ingress")

        response = client.post("/upscale", params={"domain": "review-123.example.com"})

        assert response.status_code == 502


class TestStatusEndpoint:

    def test_status_of_known_environment(self, client, k8s):
        k8s.add("Ingress", make_ingress("review-123"))
        k8s.add("Service", make_service("web"))
        k8s.add("Deployment", make_deployment("web", replicas=2, ready=1, labels={"release": "review-123"}))

        response = client.get("/status", params={"domain": "review-123.example.com"})

        assert response.status_code == 200
        body = response.json()
        assert body["done"] is False
        assert body["percentage"] == 50
        assert body["resourceStatus"][0]["message"] == "1 / 2"
        assert body["service"]["names"] == ["web"]

    def test_status_of_unknown_environment(self, client):
        response = client.get("/status", params={"domain": "nope.example.com"})

        assert response.status_code == 404


class TestPlaceholder:

    def test_page_for_down_environment(self, client, down_env):
        response = client.get("/some/page", headers={"host": "review-123.example.com:8000"})

        assert response.status_code == 404
        assert response.headers["x-robots-tag"] == "noindex, nofollow"
        assert response.headers["content-type"].startswith("text/html")
        assert "review-123" in response.text
        assert "/upscale?domain=review-123.example.com" in response.text

    def test_running_environment_gets_empty_404(self, client, down_env):
        response = client.get("/", headers={"host": "live.example.com"})

        assert response.status_code == 404
        assert response.text == ""
        assert response.headers["x-robots-tag"] == "noindex, nofollow"

    def test_unknown_host(self, client, down_env):
        response = client.get("/", headers={"host": "nope.example.com"})

        assert response.status_code == 404
        assert response.text == ""

    def test_api_error_gives_empty_404(self, client):
        failing = MagicMock()
        failing.find_by_hostname.side_effect = TransportError("boom")
        app.dependency_overrides[get_ingress_service] = lambda: failing

        response = client.get("/", headers={"host": "review-123.example.com"})

        assert response.status_code == 404

    def test_page_content_is_escaped(self):
        content = placeholder_page_content("a.example.com", "<script>", "api.example.com")

        assert "<h2>L'environnement &lt;script&gt; est en veille</h2>" in content
        assert "&lt;script&gt;" in content
        assert "//api.example.com/status?domain=a.example.com" in content

    def test_api_domain_defaults_to_hostname(self):
        content = placeholder_page_content("a.example.com", "review", "")

        assert "//a.example.com/upscale?domain=a.example.com" in content

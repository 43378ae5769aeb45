"""Tests for Prometheus metrics endpoint and middleware."""

import pytest
from fastapi.testclient import TestClient
from prometheus_client import REGISTRY

from ftp_s3_gateway.credentials import CredentialStore
from ftp_s3_gateway.errors import BackendUnavailable
from ftp_s3_gateway.main import create_app
from ftp_s3_gateway.middleware.metrics import normalize_path

from tests.conftest import transient


def sample(name, labels=None):
    return REGISTRY.get_sample_value(name, labels or {}) or 0.0


class TestNormalizePath:
    def test_fixed_paths(self):
        assert normalize_path("/") == "/"
        assert normalize_path("/health") == "/health"
        assert normalize_path("/metrics") == "/metrics"

    def test_bucket_and_key(self):
        assert normalize_path("/default") == "/{bucket}"
        assert normalize_path("/default/") == "/{bucket}/{key}"
        assert normalize_path("/default/a/b/c.txt") == "/{bucket}/{key}"


class TestMetricsEndpoint:
    def test_prometheus_format(self, client):
        client.get("/health")
        response = client.get("/metrics")

        assert response.status_code == 200
        assert response.headers["content-type"].startswith("text/plain")
        content = response.text
        assert "ftp_s3_gateway_requests_total" in content
        assert "ftp_s3_gateway_request_duration_seconds" in content
        assert "ftp_s3_gateway_backend_connected" in content

    def test_service_info_set_on_startup(self, open_settings, session):
        app = create_app(open_settings, session=session, store=CredentialStore())
        with TestClient(app) as test_client:
            content = test_client.get("/metrics").text

        assert "ftp_s3_gateway_service_info" in content
        assert 'bucket="default"' in content

    def test_disabled(self, open_settings, session):
        config = open_settings.model_copy(update={"metrics_enabled": False})
        app = create_app(config, session=session, store=CredentialStore())

        response = TestClient(app).get("/metrics")

        # Without the metrics router the path is just an unknown bucket
        assert response.status_code == 404


class TestRequestMetrics:
    def test_requests_are_counted_by_normalized_endpoint(self, client, ftp_server):
        ftp_server.add_file("k.txt", b"x")
        labels = {"method": "GET", "endpoint": "/{bucket}/{key}", "status_code": "200"}
        before = sample("ftp_s3_gateway_requests_total", labels)

        client.get("/default/k.txt")

        assert sample("ftp_s3_gateway_requests_total", labels) == before + 1

    def test_auth_failures_are_counted(self, auth_client):
        labels = {"code": "AccessDenied"}
        before = sample("ftp_s3_gateway_auth_failures_total", labels)

        auth_client.get("/default/k.txt")

        assert sample("ftp_s3_gateway_auth_failures_total", labels) == before + 1


class TestBackendMetrics:
    def test_reconnect_is_counted(self, client, ftp_server):
        labels = {"operation": "list"}
        before = sample("ftp_s3_gateway_backend_reconnects_total", labels)
        ftp_server.inject("list_dir", transient())

        client.get("/default", params={"list-type": "2"})

        assert sample("ftp_s3_gateway_backend_reconnects_total", labels) == before + 1

    def test_failed_reconnect_is_counted_as_error(self, ftp_server, session):
        labels = {"operation": "list", "status": "error"}
        before = sample("ftp_s3_gateway_backend_operations_total", labels)
        session.connect()
        ftp_server.inject("list_dir", transient())
        ftp_server.refuse_connections = True

        with pytest.raises(BackendUnavailable):
            session.list(".")

        assert sample("ftp_s3_gateway_backend_operations_total", labels) == before + 1

    def test_bytes_in_and_out(self, client):
        bytes_in = sample("ftp_s3_gateway_s3_bytes_in_total")
        bytes_out = sample("ftp_s3_gateway_s3_bytes_out_total")

        client.put("/default/m.bin", content=b"12345")
        client.get("/default/m.bin")

        assert sample("ftp_s3_gateway_s3_bytes_in_total") == bytes_in + 5
        assert sample("ftp_s3_gateway_s3_bytes_out_total") == bytes_out + 5

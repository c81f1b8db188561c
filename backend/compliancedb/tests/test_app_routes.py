from __future__ import annotations

import anyio
import pytest

from compliancedb import main
from compliancedb.apps.compliance.errors import StoreUnavailable, ValidationError


def _paths():
    paths = main.app.openapi()["paths"]
    return {(path, method.upper()) for path, operations in paths.items() for method in operations}


@pytest.mark.parametrize(
    "path,method",
    [
        ("/health", "GET"),
        ("/compliance/{org_id}/report", "GET"),
        ("/compliance/{org_id}/obligations", "GET"),
        ("/compliance/{org_id}/trend", "GET"),
        ("/compliance/{org_id}/settings", "GET"),
        ("/compliance/{org_id}/settings", "PUT"),
        ("/compliance/{org_id}/evidence-pack", "GET"),
        ("/compliance/{org_id}/evidence-pack.zip", "GET"),
        ("/cron/send-reminders", "POST"),
        ("/notifications/{org_id}/logs", "GET"),
        ("/audit/{org_id}/events", "GET"),
    ],
)
def test_route_is_registered(path, method):
    assert (path, method) in _paths()


def test_health():
    assert main.health() == {"status": "ok"}


def test_allowed_origins_from_env(monkeypatch):
    monkeypatch.setenv("CORS_ALLOWED_ORIGINS", "https://a.example.com, https://b.example.com")
    assert main._allowed_origins() == ["https://a.example.com", "https://b.example.com"]

    monkeypatch.delenv("CORS_ALLOWED_ORIGINS")
    assert "http://localhost:3000" in main._allowed_origins()


def test_engine_errors_map_to_status_codes():
    invalid = anyio.run(main.validation_error_handler, None, ValidationError("bad window", field="debounce_window"))
    assert invalid.status_code == 422

    unavailable = anyio.run(main.store_unavailable_handler, None, StoreUnavailable("list_obligations"))
    assert unavailable.status_code == 503


def test_cron_endpoint_rejects_wrong_secret_over_http(monkeypatch):
    from starlette.testclient import TestClient

    monkeypatch.setenv("CRON_SECRET", "s3cret")
    client = TestClient(main.app)

    assert client.get("/health").json() == {"status": "ok"}
    response = client.post("/cron/send-reminders", headers={"Authorization": "Bearer nope"})
    assert response.status_code == 401

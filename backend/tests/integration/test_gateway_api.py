"""Integration tests for API endpoints using FastAPI TestClient."""

from __future__ import annotations

from collections.abc import Iterator
from pathlib import Path

import pytest
from fastapi.testclient import TestClient

from ai_gateway.config import Settings, get_settings
from ai_gateway.dependencies import build_gateway_service
from ai_gateway.main import create_app

from conftest import FakeProvider, MemoryHistorySink, MemorySnapshotStore


@pytest.fixture
def settings(tmp_path: Path) -> Settings:
    return get_settings(
        openai_api_key="sk-test",
        anthropic_api_key="ak-test",
        gemini_api_key="gk-test",
        data_dir=str(tmp_path),
        flush_interval_seconds=3600,
    )


@pytest.fixture
def fake_provider() -> FakeProvider:
    return FakeProvider()


@pytest.fixture
def client(settings: Settings, fake_provider: FakeProvider) -> Iterator[TestClient]:
    gateway = build_gateway_service(
        settings,
        provider=fake_provider,
        store=MemorySnapshotStore(),
        history=MemoryHistorySink(),
    )
    app = create_app(settings, gateway=gateway)
    with TestClient(app) as test_client:
        yield test_client


class TestHealthEndpoints:
    def test_health_check(self, client: TestClient) -> None:
        resp = client.get("/api/v1/health")
        assert resp.status_code == 200
        data = resp.json()
        assert data["status"] == "ok"
        assert data["providers"] == {
            "openai": "available",
            "anthropic": "available",
            "gemini": "available",
        }
        assert "period" in data

    def test_health_degraded_without_credentials(self, tmp_path: Path) -> None:
        settings = get_settings(
            openai_api_key="", anthropic_api_key="", gemini_api_key="", data_dir=str(tmp_path)
        )
        gateway = build_gateway_service(
            settings, provider=FakeProvider(), store=MemorySnapshotStore(), history=MemoryHistorySink()
        )
        with TestClient(create_app(settings, gateway=gateway)) as client:
            resp = client.get("/api/v1/health")
        assert resp.status_code == 503
        assert resp.json()["status"] == "degraded"

    def test_metrics_endpoint(self, client: TestClient) -> None:
        client.get("/api/v1/health")
        resp = client.get("/api/v1/metrics")
        assert resp.status_code == 200
        assert b"http_requests_total" in resp.content

    def test_request_id_echoed(self, client: TestClient) -> None:
        resp = client.get("/api/v1/health", headers={"X-Request-ID": "abc123"})
        assert resp.headers["X-Request-ID"] == "abc123"

    def test_budget_period_header(self, client: TestClient) -> None:
        resp = client.get("/api/v1/health")
        assert resp.headers["X-Budget-Period"] == resp.json()["period"]
        assert resp.headers["X-Request-ID"]


class TestGenerateEndpoint:
    def test_generate_success(self, client: TestClient, fake_provider: FakeProvider) -> None:
        resp = client.post(
            "/api/v1/generate",
            json={
                "messages": [{"role": "user", "content": "Hello"}],
                "preferred_provider": "gemini",
            },
        )
        assert resp.status_code == 200
        data = resp.json()
        assert data["success"] is True
        assert data["provider"] == "gemini"
        assert data["content"] == "reply from gemini"
        assert fake_provider.calls == ["gemini"]
        assert resp.headers["X-AI-Provider"] == "gemini"

    def test_generate_total_failure_is_structured(
        self, client: TestClient, fake_provider: FakeProvider
    ) -> None:
        fake_provider.failing = {"openai", "anthropic", "gemini"}
        resp = client.post(
            "/api/v1/generate",
            json={"messages": [{"role": "user", "content": "Hello"}]},
        )
        assert resp.status_code == 200
        data = resp.json()
        assert data["success"] is False
        assert data["error"] == "All AI providers failed"
        assert set(data["diagnostics"]) == {"openai", "anthropic", "gemini"}
        assert "X-AI-Provider" not in resp.headers

    def test_generate_validation(self, client: TestClient) -> None:
        resp = client.post("/api/v1/generate", json={"messages": []})
        assert resp.status_code == 422


class TestBudgetEndpoints:
    def test_stats(self, client: TestClient) -> None:
        resp = client.get("/api/v1/budget")
        assert resp.status_code == 200
        data = resp.json()
        assert set(data) == {"period", "per_service", "aggregate", "availability"}
        assert data["aggregate"]["limit"] == 200.0

    def test_report_is_text(self, client: TestClient) -> None:
        resp = client.get("/api/v1/budget/report")
        assert resp.status_code == 200
        assert resp.headers["content-type"].startswith("text/plain")
        assert "BUDGET REPORT" in resp.text

    def test_recommended(self, client: TestClient) -> None:
        assert client.get("/api/v1/budget/recommended/ai").json() == {"kind": "ai", "service": "openai"}
        assert client.get("/api/v1/budget/recommended/voice").json() == {
            "kind": "auxiliary",
            "service": "elevenlabs",
        }
        assert client.get("/api/v1/budget/recommended/video").status_code == 422

    def test_record_usage_and_reset(self, client: TestClient) -> None:
        resp = client.post("/api/v1/budget/elevenlabs/usage", json={"usage_amount": 10_000, "cost": 60.0})
        assert resp.status_code == 202
        assert resp.json()["disabled"] is True
        assert client.get("/api/v1/budget/recommended/voice").json()["service"] == "free_tts"

        resp = client.post("/api/v1/budget/elevenlabs/reset")
        assert resp.status_code == 200
        assert client.get("/api/v1/budget/recommended/voice").json()["service"] == "elevenlabs"

    def test_unknown_service(self, client: TestClient) -> None:
        resp = client.post("/api/v1/budget/mistral/reset")
        assert resp.status_code == 404
        assert resp.json()["code"] == "UNKNOWN_SERVICE"
        resp = client.post("/api/v1/budget/mistral/usage", json={"usage_amount": 1, "cost": 1.0})
        assert resp.status_code == 404

    def test_history(self, client: TestClient) -> None:
        resp = client.get("/api/v1/budget/history")
        assert resp.status_code == 200
        assert resp.json() == []


class TestProviderEndpoints:
    def test_override(self, client: TestClient) -> None:
        resp = client.post("/api/v1/providers/openai/override", json={"enabled": False})
        assert resp.status_code == 200
        providers = client.get("/api/v1/providers").json()
        assert providers["openai"]["available"] is False

        client.post("/api/v1/providers/openai/override", json={"enabled": True})
        providers = client.get("/api/v1/providers").json()
        assert providers["openai"]["available"] is True

    def test_override_unknown_provider(self, client: TestClient) -> None:
        resp = client.post("/api/v1/providers/mistral/override", json={"enabled": True})
        assert resp.status_code == 404
        assert resp.json()["code"] == "UNKNOWN_SERVICE"

    def test_error_schema_is_documented(self, client: TestClient) -> None:
        schema = client.get("/openapi.json").json()
        override = schema["paths"]["/api/v1/providers/{provider_id}/override"]["post"]
        assert override["responses"]["404"]["content"]["application/json"]["schema"] == {
            "$ref": "#/components/schemas/ErrorResponse"
        }
        assert set(schema["components"]["schemas"]["ErrorResponse"]["required"]) == {"code", "message"}

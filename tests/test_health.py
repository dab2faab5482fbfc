from __future__ import annotations


def test_health_ok(client) -> None:
    res = client.get("/health")
    assert res.status_code == 200
    assert res.json() == {"status": "ok"}
    assert "x-request-id" in res.headers


def test_metrics_exposes_prometheus_text(client) -> None:
    client.get("/health")
    res = client.get("/metrics")
    assert res.status_code == 200
    assert "http_requests_total" in res.text


def test_requests_without_user_header_are_rejected(client) -> None:
    res = client.get("/reports")
    assert res.status_code == 401
    assert res.json()["detail"] == "Not authenticated"


def test_admin_endpoints_require_admin_key(client) -> None:
    assert client.get("/admin/processing/queue").status_code == 403
    res = client.get("/admin/processing/queue", headers={"X-Admin-Key": "wrong"})
    assert res.status_code == 403


def test_main_serves_app_with_configured_address(monkeypatch) -> None:
    import uvicorn

    from healthvault import main as entrypoint
    from healthvault.core.settings import get_settings

    calls: list[tuple[tuple, dict]] = []
    monkeypatch.setattr(uvicorn, "run", lambda *args, **kwargs: calls.append((args, kwargs)))
    monkeypatch.setenv("HOST", "0.0.0.0")
    monkeypatch.setenv("PORT", "9001")
    monkeypatch.setenv("APP_ENV", "development")
    get_settings.cache_clear()

    entrypoint.main()

    [(args, kwargs)] = calls
    assert args == ("healthvault.main:app",)
    assert (kwargs["host"], kwargs["port"], kwargs["reload"]) == ("0.0.0.0", 9001, True)
    assert kwargs["log_config"] is None

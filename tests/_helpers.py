"""Shared helpers for API tests."""

from __future__ import annotations

import uuid

from starlette.testclient import TestClient

ADMIN_KEY = "test-admin-key"
SERVICE_KEY = "test-service-key"


def user_headers(user_id: uuid.UUID | str) -> dict[str, str]:
    return {"X-User-ID": str(user_id)}


def admin_headers() -> dict[str, str]:
    return {"X-Admin-Key": ADMIN_KEY}


def service_headers() -> dict[str, str]:
    return {"X-Service-Key": SERVICE_KEY}


def subscribe(*, client: TestClient, user_id: uuid.UUID | str, features: dict) -> str:
    """Create a plan with the given limits, put the user on it and return the plan id."""
    res = client.post(
        "/admin/subscription-plans",
        json={
            "name": f"plan-{uuid.uuid4().hex[:8]}",
            "display_name": "Test Plan",
            "price_monthly": 0,
            "features": features,
        },
        headers=admin_headers(),
        follow_redirects=False,
    )
    assert res.status_code == 201, res.text
    plan_id = res.json()["id"]

    res = client.put(
        f"/admin/users/{user_id}/subscription",
        json={"subscription_plan_id": plan_id, "status": "active"},
        headers=admin_headers(),
    )
    assert res.status_code == 200, res.text
    return plan_id


def upload_report(
    *,
    client: TestClient,
    user_id: uuid.UUID | str,
    title: str = "Blood panel",
    content: bytes = b"hemoglobin 13.5 g/dL",
    filename: str = "panel.txt",
    mime_type: str = "text/plain",
    data: dict | None = None,
) -> dict:
    """Upload a document and return the created report."""
    # Safety: never follow redirects on POST. A 307/308 would re-POST and can create duplicates.
    res = client.post(
        "/reports",
        files={"file": (filename, content, mime_type)},
        data={"title": title, **(data or {})},
        headers=user_headers(user_id),
        follow_redirects=False,
    )
    assert res.status_code == 201, res.text
    return res.json()

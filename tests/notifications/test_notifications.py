from __future__ import annotations

import uuid

from starlette.testclient import TestClient

from tests._helpers import user_headers


def _seed_notifications(client: TestClient, headers: dict[str, str]) -> list[dict]:
    activation = client.post("/sos", json={}, headers=headers).json()
    client.post(f"/sos/{activation['id']}/cancel", headers=headers)
    body = client.get("/notifications", headers=headers).json()
    assert len(body["items"]) == 2
    return body["items"]


def test_list_and_unread_count(client: TestClient) -> None:
    headers = user_headers(uuid.uuid4())
    items = _seed_notifications(client, headers)
    assert all(not n["is_read"] for n in items)

    assert client.get("/notifications/unread-count", headers=headers).json() == {"unread_count": 2}

    res = client.post(f"/notifications/{items[0]['id']}/read", headers=headers)
    assert res.status_code == 200
    assert res.json()["is_read"] is True

    body = client.get("/notifications?unread_only=true", headers=headers).json()
    assert [n["id"] for n in body["items"]] == [items[1]["id"]]
    assert body["unread_count"] == 1


def test_mark_all_read(client: TestClient) -> None:
    headers = user_headers(uuid.uuid4())
    _seed_notifications(client, headers)

    assert client.post("/notifications/read-all", headers=headers).json() == {"updated": 2}
    assert client.post("/notifications/read-all", headers=headers).json() == {"updated": 0}
    assert client.get("/notifications/unread-count", headers=headers).json()["unread_count"] == 0


def test_delete_and_ownership(client: TestClient) -> None:
    headers = user_headers(uuid.uuid4())
    items = _seed_notifications(client, headers)
    target = items[0]["id"]

    other = user_headers(uuid.uuid4())
    res = client.post(f"/notifications/{target}/read", headers=other)
    assert res.status_code == 404
    assert res.json()["detail"] == "Notification not found"

    assert client.delete(f"/notifications/{target}", headers=headers).status_code == 204
    assert client.delete(f"/notifications/{target}", headers=headers).status_code == 404
    remaining = client.get("/notifications", headers=headers).json()["items"]
    assert [n["id"] for n in remaining] == [items[1]["id"]]

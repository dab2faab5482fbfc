from __future__ import annotations

import uuid

from starlette.testclient import TestClient

from tests._helpers import user_headers


def _add_contact(client: TestClient, headers: dict[str, str], name: str, **extra) -> dict:
    res = client.post(
        "/emergency-contacts",
        json={"name": name, "relationship": "sibling", "phone_number": "+919812345678", **extra},
        headers=headers,
    )
    assert res.status_code == 201, res.text
    return res.json()


def test_contact_priority_defaults_to_next_slot(client: TestClient) -> None:
    headers = user_headers(uuid.uuid4())
    first = _add_contact(client, headers, "Ravi")
    second = _add_contact(client, headers, "Meera")
    assert (first["priority"], second["priority"]) == (1, 2)

    res = client.patch(
        f"/emergency-contacts/{second['id']}", json={"priority": 0}, headers=headers
    )
    assert res.status_code == 422

    _add_contact(client, headers, "Doctor", priority=1)
    listed = client.get("/emergency-contacts", headers=headers).json()
    assert [c["priority"] for c in listed] == sorted(c["priority"] for c in listed)
    assert listed[-1]["name"] == "Meera"


def test_contact_update_and_delete(client: TestClient) -> None:
    headers = user_headers(uuid.uuid4())
    contact = _add_contact(client, headers, "Ravi")

    res = client.patch(
        f"/emergency-contacts/{contact['id']}",
        json={"phone_number": "+919800000001"},
        headers=headers,
    )
    assert res.status_code == 200
    assert res.json()["phone_number"] == "+919800000001"

    res = client.patch(f"/emergency-contacts/{contact['id']}", json={"name": None}, headers=headers)
    assert res.status_code == 400

    other = user_headers(uuid.uuid4())
    res = client.delete(f"/emergency-contacts/{contact['id']}", headers=other)
    assert res.status_code == 404
    assert res.json()["detail"] == "Emergency contact not found"

    assert client.delete(f"/emergency-contacts/{contact['id']}", headers=headers).status_code == 204
    assert client.get("/emergency-contacts", headers=headers).json() == []


def test_sos_trigger_then_cancel(client: TestClient) -> None:
    headers = user_headers(uuid.uuid4())
    res = client.post(
        "/sos", json={"location_data": {"latitude": 12.97, "longitude": 77.59}}, headers=headers
    )
    assert res.status_code == 201, res.text
    activation = res.json()
    assert activation["status"] == "triggered"
    assert activation["location_data"]["latitude"] == 12.97
    assert activation["sms_sent"] is False

    res = client.post(f"/sos/{activation['id']}/cancel", headers=headers)
    assert res.status_code == 200
    assert res.json()["status"] == "cancelled"
    assert res.json()["cancelled_at"] is not None

    res = client.post(f"/sos/{activation['id']}/complete", headers=headers)
    assert res.status_code == 409

    notifications = client.get("/notifications", headers=headers).json()["items"]
    assert {n["category"] for n in notifications} == {"sos"}
    assert "SOS Activated" in {n["title"] for n in notifications}


def test_sos_complete(client: TestClient) -> None:
    headers = user_headers(uuid.uuid4())
    activation = client.post("/sos", json={}, headers=headers).json()

    res = client.post(f"/sos/{activation['id']}/complete", headers=headers)
    assert res.status_code == 200
    body = res.json()
    assert body["status"] == "completed"
    assert body["completed_at"] is not None
    assert body["sms_sent"] is True

    assert client.post(f"/sos/{activation['id']}/cancel", headers=headers).status_code == 409

    history = client.get("/sos", headers=headers).json()
    assert [a["id"] for a in history] == [activation["id"]]


def test_sos_activation_is_private(client: TestClient) -> None:
    activation = client.post("/sos", json={}, headers=user_headers(uuid.uuid4())).json()
    res = client.post(f"/sos/{activation['id']}/cancel", headers=user_headers(uuid.uuid4()))
    assert res.status_code == 404
    assert res.json()["detail"] == "SOS activation not found"


def test_sos_transitions_survive_notification_failures(
    client: TestClient, failing_notifications
) -> None:
    headers = user_headers(uuid.uuid4())
    res = client.post("/sos", json={}, headers=headers)
    assert res.status_code == 201, res.text
    activation = res.json()

    res = client.post(f"/sos/{activation['id']}/cancel", headers=headers)
    assert res.status_code == 200, res.text
    assert res.json()["status"] == "cancelled"

    assert client.get("/sos", headers=headers).json()[0]["status"] == "cancelled"
    assert client.get("/notifications", headers=headers).json()["items"] == []

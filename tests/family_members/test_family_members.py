from __future__ import annotations

import uuid

from starlette.testclient import TestClient

from tests._helpers import upload_report, user_headers

_PNG = b"\x89PNG\r\n\x1a\n" + b"\x00" * 32


def _create_member(client: TestClient, user_id: uuid.UUID, **overrides) -> dict:
    payload = {"first_name": "Asha", "last_name": "Rao", "relationship": "parent", **overrides}
    res = client.post("/family-members", json=payload, headers=user_headers(user_id))
    assert res.status_code == 201, res.text
    return res.json()


def test_family_member_crud(client: TestClient) -> None:
    user_id = uuid.uuid4()
    headers = user_headers(user_id)
    member = _create_member(client, user_id, date_of_birth="1958-07-14", gender="female")
    assert member["relationship"] == "parent"
    assert member["photo_url"] is None

    res = client.patch(
        f"/family-members/{member['id']}",
        json={"medical_notes": "Type 2 diabetes", "phone_number": "+919800000000"},
        headers=headers,
    )
    assert res.status_code == 200, res.text
    assert res.json()["medical_notes"] == "Type 2 diabetes"

    res = client.patch(
        f"/family-members/{member['id']}", json={"first_name": None}, headers=headers
    )
    assert res.status_code == 400

    listed = client.get("/family-members", headers=headers).json()
    assert [m["id"] for m in listed] == [member["id"]]

    assert client.delete(f"/family-members/{member['id']}", headers=headers).status_code == 204
    assert client.get(f"/family-members/{member['id']}", headers=headers).status_code == 404


def test_family_member_validation(client: TestClient) -> None:
    res = client.post(
        "/family-members",
        json={"first_name": "A", "last_name": "B", "relationship": "neighbour"},
        headers=user_headers(uuid.uuid4()),
    )
    assert res.status_code == 422


def test_family_members_are_private(client: TestClient) -> None:
    member = _create_member(client, uuid.uuid4())
    res = client.get(f"/family-members/{member['id']}", headers=user_headers(uuid.uuid4()))
    assert res.status_code == 404
    assert res.json()["detail"] == "Family member not found"


def test_deleting_member_unlinks_reports(client: TestClient) -> None:
    user_id = uuid.uuid4()
    headers = user_headers(user_id)
    member = _create_member(client, user_id)
    report = upload_report(client=client, user_id=user_id, data={"family_member_id": member["id"]})
    assert report["family_member_id"] == member["id"]

    assert client.delete(f"/family-members/{member['id']}", headers=headers).status_code == 204
    res = client.get(f"/reports/{report['id']}", headers=headers)
    assert res.status_code == 200
    assert res.json()["family_member_id"] is None


def test_photo_upload_replaces_previous_photo(client: TestClient, storage_dir) -> None:
    user_id = uuid.uuid4()
    headers = user_headers(user_id)
    member = _create_member(client, user_id)
    url = f"/family-members/{member['id']}/photo"

    res = client.put(url, files={"file": ("me.png", _PNG, "image/png")}, headers=headers)
    assert res.status_code == 200, res.text
    first_key = res.json()["photo_url"]
    assert first_key.startswith(f"{user_id}/{member['id']}/")
    assert first_key.endswith(".png")
    first_path = storage_dir / "profile-images" / first_key
    assert first_path.read_bytes() == _PNG

    res = client.put(url, files={"file": ("new.png", _PNG + b"2", "image/png")}, headers=headers)
    second_key = res.json()["photo_url"]
    assert second_key != first_key
    assert not first_path.exists()

    res = client.get(url, headers=headers)
    assert res.status_code == 200
    assert res.content == _PNG + b"2"
    assert res.headers["content-type"] == "image/png"


def test_photo_upload_rejects_non_images(client: TestClient) -> None:
    user_id = uuid.uuid4()
    member = _create_member(client, user_id)
    res = client.put(
        f"/family-members/{member['id']}/photo",
        files={"file": ("notes.txt", b"hello", "text/plain")},
        headers=user_headers(user_id),
    )
    assert res.status_code == 415


def test_photo_missing_returns_404(client: TestClient) -> None:
    user_id = uuid.uuid4()
    member = _create_member(client, user_id)
    res = client.get(f"/family-members/{member['id']}/photo", headers=user_headers(user_id))
    assert res.status_code == 404

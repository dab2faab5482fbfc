from __future__ import annotations

import uuid

from starlette.testclient import TestClient

from tests._helpers import upload_report, user_headers


def _stored_path(storage_dir, report: dict):
    return storage_dir / "medical-documents" / report["file_path"]


def test_upload_creates_pending_report_and_stores_file(client: TestClient, storage_dir) -> None:
    user_id = uuid.uuid4()
    report = upload_report(
        client=client,
        user_id=user_id,
        title="  Lipid profile ",
        data={"report_type": "lab", "report_date": "2026-09-30"},
    )

    assert report["title"] == "Lipid profile"
    assert report["report_type"] == "lab"
    assert report["report_date"] == "2026-09-30"
    assert report["parsing_status"] == "pending"
    assert report["progress_percentage"] == 0
    assert report["content_mime_type"] == "text/plain"
    assert report["file_name"] == "panel.txt"
    assert report["file_size"] == len(b"hemoglobin 13.5 g/dL")
    assert report["file_path"].startswith(f"{user_id}/{report['id']}/")
    assert _stored_path(storage_dir, report).read_bytes() == b"hemoglobin 13.5 g/dL"


def test_get_patch_and_download_report(client: TestClient) -> None:
    user_id = uuid.uuid4()
    report = upload_report(client=client, user_id=user_id)
    headers = user_headers(user_id)

    res = client.get(f"/reports/{report['id']}", headers=headers)
    assert res.status_code == 200, res.text
    assert res.json()["id"] == report["id"]

    res = client.patch(
        f"/reports/{report['id']}",
        json={"physician_name": "Dr. Rao", "tags": ["annual"], "is_critical": True},
        headers=headers,
    )
    assert res.status_code == 200, res.text
    body = res.json()
    assert body["physician_name"] == "Dr. Rao"
    assert body["tags"] == ["annual"]
    assert body["is_critical"] is True

    res = client.patch(f"/reports/{report['id']}", json={"title": None}, headers=headers)
    assert res.status_code == 400

    res = client.get(f"/reports/{report['id']}/file", headers=headers)
    assert res.status_code == 200
    assert res.content == b"hemoglobin 13.5 g/dL"
    assert res.headers["content-type"].startswith("text/plain")


def test_reports_are_scoped_to_their_owner(client: TestClient) -> None:
    owner = uuid.uuid4()
    report = upload_report(client=client, user_id=owner)
    stranger = user_headers(uuid.uuid4())

    assert client.get(f"/reports/{report['id']}", headers=stranger).status_code == 404
    assert client.delete(f"/reports/{report['id']}", headers=stranger).status_code == 404
    assert client.get("/reports", headers=stranger).json()["items"] == []


def test_delete_report_removes_row_and_stored_file(client: TestClient, storage_dir) -> None:
    user_id = uuid.uuid4()
    headers = user_headers(user_id)
    report = upload_report(client=client, user_id=user_id)
    path = _stored_path(storage_dir, report)
    assert path.exists()

    res = client.post(
        "/prescriptions",
        json={"medication_name": "Metformin", "report_id": report["id"]},
        headers=headers,
    )
    assert res.status_code == 201, res.text
    prescription_id = res.json()["id"]

    res = client.delete(f"/reports/{report['id']}", headers=headers)
    assert res.status_code == 204

    assert not path.exists()
    assert client.get(f"/reports/{report['id']}", headers=headers).status_code == 404
    res = client.get(f"/prescriptions/{prescription_id}", headers=headers)
    assert res.status_code == 200
    assert res.json()["report_id"] is None


def test_delete_report_succeeds_when_file_already_gone(client: TestClient, storage_dir) -> None:
    user_id = uuid.uuid4()
    report = upload_report(client=client, user_id=user_id)
    _stored_path(storage_dir, report).unlink()

    res = client.delete(f"/reports/{report['id']}", headers=user_headers(user_id))
    assert res.status_code == 204


def test_list_reports_filters_and_paginates(client: TestClient) -> None:
    user_id = uuid.uuid4()
    headers = user_headers(user_id)
    upload_report(
        client=client, user_id=user_id, title="X-ray chest", data={"report_type": "radiology"}
    )
    upload_report(client=client, user_id=user_id, title="CBC", data={"report_type": "lab"})
    upload_report(client=client, user_id=user_id, title="Lipids", data={"report_type": "lab"})

    res = client.get("/reports?report_type=lab", headers=headers)
    assert res.status_code == 200
    assert {r["title"] for r in res.json()["items"]} == {"CBC", "Lipids"}

    res = client.get("/reports?q=x-RAY", headers=headers)
    assert [r["title"] for r in res.json()["items"]] == ["X-ray chest"]

    seen: list[str] = []
    cursor = None
    for _ in range(3):
        url = "/reports?limit=2" + (f"&cursor={cursor}" if cursor else "")
        page = client.get(url, headers=headers).json()
        seen.extend(r["id"] for r in page["items"])
        assert all(r["has_file"] for r in page["items"])
        cursor = page["next_cursor"]
        if cursor is None:
            break
    assert len(seen) == 3
    assert len(set(seen)) == 3


def test_list_reports_rejects_bad_cursor(client: TestClient) -> None:
    res = client.get("/reports?cursor=not-a-cursor", headers=user_headers(uuid.uuid4()))
    assert res.status_code == 400


def test_upload_rejects_family_member_of_another_user(client: TestClient) -> None:
    other = uuid.uuid4()
    res = client.post(
        "/family-members",
        json={"first_name": "Asha", "last_name": "Rao", "relationship": "parent"},
        headers=user_headers(other),
    )
    assert res.status_code == 201, res.text

    res = client.post(
        "/reports",
        files={"file": ("a.txt", b"text", "text/plain")},
        data={"title": "Mine", "family_member_id": res.json()["id"]},
        headers=user_headers(uuid.uuid4()),
    )
    assert res.status_code == 400

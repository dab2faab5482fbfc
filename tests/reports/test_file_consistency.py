from __future__ import annotations

import uuid
from pathlib import Path

import pytest
from fastapi.testclient import TestClient

from healthvault.core.settings import get_settings
from healthvault.main import create_app
from healthvault.storage.deps import get_storage
from healthvault.storage.local import (
    InvalidStorageKeyError,
    LocalFileStorage,
    StorageAccessDeniedError,
)
from tests._helpers import admin_headers, upload_report, user_headers


class _FaultyStorage(LocalFileStorage):
    """Local storage that fails downloads for selected keys."""

    def __init__(self, *, base_dir: Path, failures: dict[str, Exception]):
        super().__init__(base_dir=base_dir)
        self._failures = failures

    async def download(self, *, bucket: str, key: str) -> bytes:
        if key in self._failures:
            raise self._failures[key]
        return await super().download(bucket=bucket, key=key)


@pytest.fixture
def failures() -> dict[str, Exception]:
    return {}


@pytest.fixture
def faulty_client(failures: dict[str, Exception]):
    app = create_app()
    app.dependency_overrides[get_storage] = lambda: _FaultyStorage(
        base_dir=Path(get_settings().local_storage_base_path), failures=failures
    )
    with TestClient(app) as c:
        yield c


def _bucket_path(storage_dir: Path, report: dict) -> Path:
    return storage_dir / "medical-documents" / report["file_path"]


def test_all_files_present_reports_no_issues(client: TestClient) -> None:
    user_id = uuid.uuid4()
    upload_report(client=client, user_id=user_id, title="A")
    upload_report(client=client, user_id=user_id, title="B")

    res = client.get("/reports/file-consistency", headers=user_headers(user_id))
    assert res.status_code == 200, res.text
    body = res.json()
    assert body["total_reports"] == 2
    assert body["valid_files"] == 2
    assert body["issues"] == []


def test_missing_and_corrupted_files_are_classified(client: TestClient, storage_dir) -> None:
    user_id = uuid.uuid4()
    missing = upload_report(client=client, user_id=user_id, title="Missing")
    corrupted = upload_report(client=client, user_id=user_id, title="Corrupted")
    upload_report(client=client, user_id=user_id, title="Fine")

    _bucket_path(storage_dir, missing).unlink()
    _bucket_path(storage_dir, corrupted).write_bytes(b"tampered")

    res = client.get("/reports/file-consistency", headers=user_headers(user_id))
    body = res.json()
    assert body["total_reports"] == 3
    assert body["valid_files"] == 1

    issues = {i["report_id"]: i for i in body["issues"]}
    assert issues[missing["id"]]["issue_type"] == "missing_file"
    assert issues[missing["id"]]["can_reupload"] is True
    assert issues[corrupted["id"]]["issue_type"] == "corrupted_file"
    # Other files under the same user folder are offered as recovery candidates.
    assert corrupted["file_path"] in issues[missing["id"]]["alternative_files"]
    assert missing["file_path"] not in issues[missing["id"]]["alternative_files"]


def test_listed_but_unreadable_file_is_access_denied(
    faulty_client: TestClient, failures: dict[str, Exception]
) -> None:
    user_id = uuid.uuid4()
    report = upload_report(client=faulty_client, user_id=user_id)
    failures[report["file_path"]] = StorageAccessDeniedError("denied")

    body = faulty_client.get("/reports/file-consistency", headers=user_headers(user_id)).json()
    assert [i["issue_type"] for i in body["issues"]] == ["access_denied"]


def test_invalid_key_is_invalid_path(
    faulty_client: TestClient, failures: dict[str, Exception]
) -> None:
    user_id = uuid.uuid4()
    report = upload_report(client=faulty_client, user_id=user_id)
    failures[report["file_path"]] = InvalidStorageKeyError("bad key")

    body = faulty_client.get("/reports/file-consistency", headers=user_headers(user_id)).json()
    assert body["issues"][0]["issue_type"] == "invalid_path"
    assert body["issues"][0]["alternative_files"] == []


def test_check_can_be_limited_to_one_report(client: TestClient, storage_dir) -> None:
    user_id = uuid.uuid4()
    broken = upload_report(client=client, user_id=user_id, title="Broken")
    fine = upload_report(client=client, user_id=user_id, title="Fine")
    _bucket_path(storage_dir, broken).unlink()

    res = client.get(
        f"/reports/file-consistency?report_id={fine['id']}", headers=user_headers(user_id)
    )
    body = res.json()
    assert body["total_reports"] == 1
    assert body["issues"] == []


def test_text_report_lists_issues(client: TestClient, storage_dir) -> None:
    user_id = uuid.uuid4()
    report = upload_report(client=client, user_id=user_id, title="Thyroid panel")
    _bucket_path(storage_dir, report).unlink()

    res = client.get("/reports/file-consistency/report", headers=user_headers(user_id))
    assert res.status_code == 200
    assert "attachment" in res.headers["content-disposition"]
    assert "Total Reports Checked: 1" in res.text
    assert "Issues Found: 1" in res.text
    assert "1. Thyroid panel" in res.text
    assert "Issue: File Missing" in res.text


def test_mark_for_reupload_clears_file_reference(client: TestClient, storage_dir) -> None:
    user_id = uuid.uuid4()
    headers = user_headers(user_id)
    report = upload_report(client=client, user_id=user_id)
    _bucket_path(storage_dir, report).unlink()

    res = client.post(f"/reports/{report['id']}/mark-for-reupload", headers=headers)
    assert res.status_code == 200, res.text
    body = res.json()
    assert body["file_path"] is None
    assert body["parsing_status"] == "pending"

    check = client.get("/reports/file-consistency", headers=headers).json()
    assert check["total_reports"] == 0
    assert client.get(f"/reports/{report['id']}/file", headers=headers).status_code == 404


def test_fix_file_path_points_report_at_existing_key(client: TestClient, storage_dir) -> None:
    user_id = uuid.uuid4()
    headers = user_headers(user_id)
    broken = upload_report(client=client, user_id=user_id, title="Broken")
    spare = upload_report(client=client, user_id=user_id, title="Spare", content=b"recovered")
    _bucket_path(storage_dir, broken).unlink()

    res = client.put(
        f"/reports/{broken['id']}/file-path",
        json={"file_path": spare["file_path"]},
        headers=headers,
    )
    assert res.status_code == 200, res.text
    assert res.json()["file_path"] == spare["file_path"]
    assert res.json()["file_size"] == len(b"recovered")

    res = client.put(
        f"/reports/{broken['id']}/file-path",
        json={"file_path": f"{user_id}/does-not-exist"},
        headers=headers,
    )
    assert res.status_code == 400

    other_user_key = upload_report(client=client, user_id=uuid.uuid4())["file_path"]
    res = client.put(
        f"/reports/{broken['id']}/file-path",
        json={"file_path": other_user_key},
        headers=headers,
    )
    assert res.status_code == 400


def test_admin_check_covers_every_user(client: TestClient, storage_dir) -> None:
    first = upload_report(client=client, user_id=uuid.uuid4())
    upload_report(client=client, user_id=uuid.uuid4())
    _bucket_path(storage_dir, first).unlink()

    res = client.get("/admin/file-consistency", headers=admin_headers())
    assert res.status_code == 200, res.text
    body = res.json()
    assert body["total_reports"] == 2
    assert [i["report_id"] for i in body["issues"]] == [first["id"]]

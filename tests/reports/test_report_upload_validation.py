from __future__ import annotations

import uuid

from starlette.testclient import TestClient

from healthvault.core.settings import get_settings
from tests._helpers import upload_report, user_headers


def test_upload_rejects_unsupported_mime_type(client: TestClient, storage_dir) -> None:
    res = client.post(
        "/reports",
        files={"file": ("x.bin", b"binary", "application/octet-stream")},
        data={"title": "Unknown"},
        headers=user_headers(uuid.uuid4()),
    )
    assert res.status_code == 415, res.text
    assert not (storage_dir / "medical-documents").exists() or not any(
        p.is_file() for p in (storage_dir / "medical-documents").rglob("*")
    )


def test_upload_rejects_files_over_the_size_limit(
    client: TestClient, storage_dir, monkeypatch
) -> None:
    monkeypatch.setenv("MAX_UPLOAD_MB", "1")
    get_settings.cache_clear()

    res = client.post(
        "/reports",
        files={"file": ("big.txt", b"a" * (1024 * 1024 + 1), "text/plain")},
        data={"title": "Too big"},
        headers=user_headers(uuid.uuid4()),
    )
    assert res.status_code == 413, res.text
    bucket = storage_dir / "medical-documents"
    assert not bucket.exists() or not any(p.is_file() for p in bucket.rglob("*"))


def test_upload_sniffs_pdf_mislabelled_as_text(client: TestClient) -> None:
    report = upload_report(
        client=client,
        user_id=uuid.uuid4(),
        content=b"%PDF-1.7\n%fake\n",
        filename="scan.pdf",
        mime_type="text/plain",
    )
    assert report["content_mime_type"] == "application/pdf"


def test_upload_requires_title(client: TestClient) -> None:
    res = client.post(
        "/reports",
        files={"file": ("a.txt", b"text", "text/plain")},
        headers=user_headers(uuid.uuid4()),
    )
    assert res.status_code == 422

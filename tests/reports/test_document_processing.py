from __future__ import annotations

import time
import uuid
from typing import Any

import pytest
from fastapi.testclient import TestClient

from healthvault.core.functions.client import EdgeFunctionError
from healthvault.core.functions.deps import get_edge_function_client
from healthvault.main import create_app
from tests._helpers import service_headers, subscribe, upload_report, user_headers

_LAB_RESULT = {
    "success": True,
    "confidence": 0.92,
    "extractedText": "Glucose 310 mg/dL (critical)",
    "parsedData": {
        "reportType": "lab",
        "facility": "City Lab Diagnostics",
        "tests": [
            {"name": "Glucose", "value": "310", "status": "critical"},
            {"name": "HbA1c", "value": "6.1", "status": "normal"},
        ],
        "processingPipeline": ["aws_textract", "aws_comprehend", "llm"],
    },
}


class _ScriptedEdgeClient:
    """Returns or raises the scripted outcomes in order (shared list); records every call."""

    def __init__(self, outcomes: list[Any]):
        self._outcomes = outcomes
        self.calls: list[tuple[str, dict[str, Any]]] = []

    async def invoke(self, name: str, *, body: dict[str, Any]) -> dict[str, Any]:
        self.calls.append((name, body))
        outcome = self._outcomes.pop(0)
        if isinstance(outcome, Exception):
            raise outcome
        return outcome


@pytest.fixture
def edge_outcomes() -> list[Any]:
    return []


@pytest.fixture
def edge_client(edge_outcomes: list[Any]) -> _ScriptedEdgeClient:
    return _ScriptedEdgeClient(edge_outcomes)


@pytest.fixture
def processing_client(edge_client: _ScriptedEdgeClient):
    app = create_app()
    app.dependency_overrides[get_edge_function_client] = lambda: edge_client
    with TestClient(app) as c:
        yield c


def test_successful_processing_persists_results_and_tags(
    processing_client: TestClient, edge_client: _ScriptedEdgeClient, edge_outcomes: list
) -> None:
    user_id = uuid.uuid4()
    headers = user_headers(user_id)
    subscribe(client=processing_client, user_id=user_id, features={"documents_per_month": 5})
    report = upload_report(client=processing_client, user_id=user_id)
    edge_outcomes.append(_LAB_RESULT)

    res = processing_client.post(f"/reports/{report['id']}/process", headers=headers)
    assert res.status_code == 200, res.text
    body = res.json()
    assert body["success"] is True
    assert body["parsing_status"] == "completed"
    assert body["hybrid"] is True
    assert body["pipeline"] == {
        "stage1_textract": "completed",
        "stage2_comprehend": "completed",
        "stage3_llm": "completed",
        "stage4_validation": "completed",
    }
    assert body["attempts"] == 1
    assert body["tags"] == ["lab", "abnormal", "critical", "laboratory"]
    assert body["validation_errors"] == []
    assert body["validation_warnings"] == ["Missing extraction timestamp"]
    assert body["validation_confidence"] == pytest.approx(0.64)

    name, call_body = edge_client.calls[0]
    assert name == "process-medical-document"
    assert call_body == {"reportId": report["id"], "filePath": report["file_path"]}

    stored = processing_client.get(f"/reports/{report['id']}", headers=headers).json()
    assert stored["parsing_status"] == "completed"
    assert stored["processing_phase"] == "completed"
    assert stored["progress_percentage"] == 100
    assert stored["is_critical"] is True
    assert stored["parsing_confidence"] == pytest.approx(0.92)
    assert stored["parsed_data"]["reportType"] == "lab"

    usage = processing_client.get("/usage", headers=headers).json()
    counts = {i["usage_type"]: i["usage_count"] for i in usage["items"]}
    assert counts["documents_processed"] == 1

    notes = processing_client.get("/notifications", headers=headers).json()
    assert notes["items"][0]["title"] == "Processing Complete"
    assert notes["items"][0]["category"] == "processing"


def test_retryable_errors_are_retried(
    processing_client: TestClient, edge_outcomes: list
) -> None:
    user_id = uuid.uuid4()
    subscribe(client=processing_client, user_id=user_id, features={"documents_per_month": -1})
    report = upload_report(client=processing_client, user_id=user_id)
    edge_outcomes.extend(
        [
            EdgeFunctionError("Processing timeout - function took too long"),
            EdgeFunctionError("Function returned 500"),
            _LAB_RESULT,
        ]
    )

    res = processing_client.post(f"/reports/{report['id']}/process", headers=user_headers(user_id))
    assert res.status_code == 200, res.text
    assert res.json()["attempts"] == 3


def test_non_retryable_failure_is_persisted_with_user_message(
    processing_client: TestClient, edge_outcomes: list
) -> None:
    user_id = uuid.uuid4()
    headers = user_headers(user_id)
    subscribe(client=processing_client, user_id=user_id, features={"documents_per_month": 5})
    report = upload_report(client=processing_client, user_id=user_id)
    edge_outcomes.append(EdgeFunctionError("Unable to extract text from PDF"))

    res = processing_client.post(f"/reports/{report['id']}/process", headers=headers)
    assert res.status_code == 502
    message = "Could not read text from this PDF. Try uploading it as an image instead."
    assert res.json()["detail"] == message

    stored = processing_client.get(f"/reports/{report['id']}", headers=headers).json()
    assert stored["parsing_status"] == "failed"
    assert stored["processing_phase"] == "failed"
    assert stored["processing_error"] == message

    usage = processing_client.get("/usage", headers=headers).json()
    counts = {i["usage_type"]: i["usage_count"] for i in usage["items"]}
    assert counts["documents_processed"] == 0


def test_exhausted_retries_report_attempt_count(
    processing_client: TestClient, edge_outcomes: list
) -> None:
    user_id = uuid.uuid4()
    subscribe(client=processing_client, user_id=user_id, features={"documents_per_month": 5})
    report = upload_report(client=processing_client, user_id=user_id)
    edge_outcomes.extend([EdgeFunctionError("network error while calling function")] * 4)

    res = processing_client.post(f"/reports/{report['id']}/process", headers=user_headers(user_id))
    assert res.status_code == 502
    assert res.json()["detail"] == (
        "Failed to process the document after 4 attempts. Please try again later."
    )


def test_processing_requires_a_subscription(
    processing_client: TestClient, edge_client: _ScriptedEdgeClient
) -> None:
    user_id = uuid.uuid4()
    report = upload_report(client=processing_client, user_id=user_id)

    res = processing_client.post(f"/reports/{report['id']}/process", headers=user_headers(user_id))
    assert res.status_code == 403
    assert res.json()["detail"] == "No active subscription found"
    assert edge_client.calls == []


def test_processing_denied_when_quota_is_used_up(
    processing_client: TestClient, edge_client: _ScriptedEdgeClient, edge_outcomes: list
) -> None:
    user_id = uuid.uuid4()
    headers = user_headers(user_id)
    subscribe(client=processing_client, user_id=user_id, features={"documents_per_month": 1})
    first = upload_report(client=processing_client, user_id=user_id, title="First")
    second = upload_report(client=processing_client, user_id=user_id, title="Second")
    edge_outcomes.append(_LAB_RESULT)

    res = processing_client.post(f"/reports/{first['id']}/process", headers=headers)
    assert res.status_code == 200

    res = processing_client.post(f"/reports/{second['id']}/process", headers=headers)
    assert res.status_code == 429
    body = res.json()
    assert body["usage_type"] == "documents_processed"
    assert body["limit"] == 1
    assert body["current"] == 1
    assert len(edge_client.calls) == 1

    stored = processing_client.get(f"/reports/{second['id']}", headers=headers).json()
    assert stored["parsing_status"] == "pending"


def test_process_without_functions_configured_returns_502(client: TestClient) -> None:
    user_id = uuid.uuid4()
    report = upload_report(client=client, user_id=user_id)

    res = client.post(f"/reports/{report['id']}/process", headers=user_headers(user_id))
    assert res.status_code == 502
    assert res.json()["detail"] == "Document processing service unavailable"


def test_callbacks_advance_phases_and_reject_going_backwards(client: TestClient) -> None:
    user_id = uuid.uuid4()
    report = upload_report(client=client, user_id=user_id)
    url = f"/internal/reports/{report['id']}/processing-updates"

    res = client.post(url, json={"processing_phase": "ocr_completed"}, headers=service_headers())
    assert res.status_code == 200, res.text
    body = res.json()
    assert body["parsing_status"] == "processing"
    assert body["progress_percentage"] == 25
    assert body["stage"] == "entity_extraction"
    assert body["progress"] == {
        "ocr_complete": True,
        "aws_entities_extracted": False,
        "terminology_validated": False,
        "llm_enhanced": False,
        "results_merged": False,
    }

    res = client.post(
        url, json={"processing_phase": "llm_enhancement"}, headers=service_headers()
    )
    assert res.json()["progress"]["terminology_validated"] is True

    res = client.post(url, json={"processing_phase": "ocr_completed"}, headers=service_headers())
    assert res.status_code == 409

    res = client.post(
        url,
        json={"processing_phase": "completed", "parsed_data": {"reportType": "imaging"}},
        headers=service_headers(),
    )
    assert res.status_code == 200
    assert res.json()["parsing_status"] == "completed"
    assert res.json()["stage"] == "completed"
    assert all(res.json()["progress"].values())


def test_callbacks_require_service_key(client: TestClient) -> None:
    report = upload_report(client=client, user_id=uuid.uuid4())
    res = client.post(
        f"/internal/reports/{report['id']}/processing-updates",
        json={"processing_phase": "ocr_completed"},
        headers={"X-Service-Key": "nope"},
    )
    assert res.status_code == 403


def test_failed_callback_marks_report_failed(client: TestClient) -> None:
    user_id = uuid.uuid4()
    report = upload_report(client=client, user_id=user_id)

    res = client.post(
        f"/internal/reports/{report['id']}/processing-updates",
        json={"processing_phase": "failed", "error": "CPU Time exceeded"},
        headers=service_headers(),
    )
    assert res.status_code == 200
    body = res.json()
    assert body["parsing_status"] == "failed"
    assert body["stage"] == "error"
    assert body["processing_error"].startswith("Document processing timed out.")


def test_processing_status_wait_returns_on_deadline(client: TestClient) -> None:
    user_id = uuid.uuid4()
    report = upload_report(client=client, user_id=user_id)

    res = client.get(
        f"/reports/{report['id']}/processing-status?wait_seconds=0.05",
        headers=user_headers(user_id),
    )
    assert res.status_code == 200
    body = res.json()
    assert body["parsing_status"] == "pending"
    assert body["stage"] == "initializing"
    assert body["retry_count"] == 0


def test_incomplete_parsed_data_reports_validation_errors(
    processing_client: TestClient, edge_outcomes: list
) -> None:
    user_id = uuid.uuid4()
    subscribe(client=processing_client, user_id=user_id, features={"documents_per_month": 5})
    report = upload_report(client=processing_client, user_id=user_id)
    edge_outcomes.append(
        {
            "success": True,
            "parsedData": {
                "reportType": "lab",
                "extractedAt": "2026-03-01T10:00:00Z",
                "confidence": 0.9,
                "tests": [],
            },
        }
    )

    res = processing_client.post(f"/reports/{report['id']}/process", headers=user_headers(user_id))
    assert res.status_code == 200, res.text
    body = res.json()
    assert body["parsing_status"] == "completed"
    assert body["validation_errors"] == ["No lab tests found"]
    assert body["validation_confidence"] == pytest.approx(0.45)


def test_processing_succeeds_when_notification_cannot_be_stored(
    processing_client: TestClient, edge_outcomes: list, failing_notifications
) -> None:
    user_id = uuid.uuid4()
    headers = user_headers(user_id)
    subscribe(client=processing_client, user_id=user_id, features={"documents_per_month": 5})
    report = upload_report(client=processing_client, user_id=user_id)
    edge_outcomes.append(_LAB_RESULT)

    res = processing_client.post(f"/reports/{report['id']}/process", headers=headers)
    assert res.status_code == 200, res.text
    assert res.json()["parsing_status"] == "completed"

    stored = processing_client.get(f"/reports/{report['id']}", headers=headers).json()
    assert stored["parsing_status"] == "completed"
    assert processing_client.get("/notifications", headers=headers).json()["items"] == []


def test_failure_message_survives_notification_failure(
    processing_client: TestClient, edge_outcomes: list, failing_notifications
) -> None:
    user_id = uuid.uuid4()
    subscribe(client=processing_client, user_id=user_id, features={"documents_per_month": 5})
    report = upload_report(client=processing_client, user_id=user_id)
    edge_outcomes.append(EdgeFunctionError("Unable to extract text from PDF"))
    headers = user_headers(user_id)

    res = processing_client.post(f"/reports/{report['id']}/process", headers=headers)
    assert res.status_code == 502
    assert res.json()["detail"].startswith("Could not read text from this PDF.")
    stored = processing_client.get(f"/reports/{report['id']}", headers=headers).json()
    assert stored["parsing_status"] == "failed"


def test_process_rejects_report_already_processing(
    processing_client: TestClient, edge_client: _ScriptedEdgeClient
) -> None:
    user_id = uuid.uuid4()
    report = upload_report(client=processing_client, user_id=user_id)
    res = processing_client.post(
        f"/internal/reports/{report['id']}/processing-updates",
        json={"processing_phase": "ocr_completed"},
        headers=service_headers(),
    )
    assert res.status_code == 200

    res = processing_client.post(f"/reports/{report['id']}/process", headers=user_headers(user_id))
    assert res.status_code == 409
    assert edge_client.calls == []


def test_process_rejects_report_without_file(
    processing_client: TestClient, edge_client: _ScriptedEdgeClient
) -> None:
    user_id = uuid.uuid4()
    headers = user_headers(user_id)
    report = upload_report(client=processing_client, user_id=user_id)
    res = processing_client.post(f"/reports/{report['id']}/mark-for-reupload", headers=headers)
    assert res.status_code == 200

    res = processing_client.post(f"/reports/{report['id']}/process", headers=headers)
    assert res.status_code == 400
    assert res.json()["detail"] == "Report has no file to process."
    assert edge_client.calls == []


def test_processing_status_wait_returns_once_terminal(client: TestClient) -> None:
    user_id = uuid.uuid4()
    report = upload_report(client=client, user_id=user_id)
    client.post(
        f"/internal/reports/{report['id']}/processing-updates",
        json={"processing_phase": "completed", "parsed_data": {"reportType": "lab"}},
        headers=service_headers(),
    )

    started = time.monotonic()
    res = client.get(
        f"/reports/{report['id']}/processing-status?wait_seconds=10",
        headers=user_headers(user_id),
    )
    assert res.status_code == 200
    assert res.json()["parsing_status"] == "completed"
    assert time.monotonic() - started < 5


def _completed_with(client: TestClient, user_id: uuid.UUID, title: str, parsed: dict) -> str:
    report = upload_report(client=client, user_id=user_id, title=title)
    res = client.post(
        f"/internal/reports/{report['id']}/processing-updates",
        json={"processing_phase": "completed", "parsed_data": parsed},
        headers=service_headers(),
    )
    assert res.status_code == 200, res.text
    return report["id"]


def test_duplicate_check_matches_same_patient_and_date(client: TestClient) -> None:
    user_id = uuid.uuid4()
    headers = user_headers(user_id)
    patient = {"name": "Asha Rao", "dateOfBirth": "1958-07-14"}
    original = _completed_with(
        client,
        user_id,
        "CBC March",
        {"reportType": "lab", "reportDate": "2026-03-01", "patient": patient},
    )
    copy = _completed_with(
        client,
        user_id,
        "CBC March (scan)",
        {"reportType": "lab", "reportDate": "2026-03-01", "patient": patient},
    )
    later = _completed_with(
        client,
        user_id,
        "CBC June",
        {"reportType": "lab", "reportDate": "2026-06-01", "patient": {"name": "Ravi"}},
    )

    body = client.get(f"/reports/{copy}/duplicates", headers=headers).json()
    assert body["is_duplicate"] is True
    assert body["matched_report_id"] == original
    assert body["similarity"] == pytest.approx(1.0)

    body = client.get(f"/reports/{later}/duplicates", headers=headers).json()
    assert body == {
        "is_duplicate": False,
        "similarity": 0.0,
        "matched_report_id": None,
        "matched_title": None,
    }


def test_duplicate_check_ignores_other_users(client: TestClient) -> None:
    parsed = {"reportType": "lab", "reportDate": "2026-03-01"}
    _completed_with(client, uuid.uuid4(), "Someone else", parsed)
    user_id = uuid.uuid4()
    mine = _completed_with(client, user_id, "Mine", parsed)

    body = client.get(f"/reports/{mine}/duplicates", headers=user_headers(user_id)).json()
    assert body["is_duplicate"] is False


def test_reprocess_runs_pending_and_failed_reports(
    processing_client: TestClient, edge_outcomes: list
) -> None:
    user_id = uuid.uuid4()
    headers = user_headers(user_id)
    subscribe(client=processing_client, user_id=user_id, features={"documents_per_month": 5})
    first = upload_report(client=processing_client, user_id=user_id, title="First")
    second = upload_report(client=processing_client, user_id=user_id, title="Second")
    done = _completed_with(processing_client, user_id, "Done", {"reportType": "lab"})
    edge_outcomes.extend([_LAB_RESULT, EdgeFunctionError("Unable to extract text")])

    res = processing_client.post("/reports/reprocess", headers=headers)
    assert res.status_code == 200, res.text
    body = res.json()
    assert (body["total"], body["completed"], body["failed"], body["skipped"]) == (2, 1, 1, 0)
    assert [i["report_id"] for i in body["items"]] == [first["id"], second["id"]]
    assert body["items"][1]["error"].startswith("Could not read text from this PDF.")
    assert done not in [i["report_id"] for i in body["items"]]


def test_reprocess_skips_remaining_reports_when_quota_runs_out(
    processing_client: TestClient, edge_client: _ScriptedEdgeClient, edge_outcomes: list
) -> None:
    user_id = uuid.uuid4()
    subscribe(client=processing_client, user_id=user_id, features={"documents_per_month": 1})
    for title in ("A", "B", "C"):
        upload_report(client=processing_client, user_id=user_id, title=title)
    edge_outcomes.append(_LAB_RESULT)

    body = processing_client.post("/reports/reprocess", headers=user_headers(user_id)).json()
    assert [i["status"] for i in body["items"]] == ["completed", "skipped", "skipped"]
    assert len(edge_client.calls) == 1

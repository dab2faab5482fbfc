from __future__ import annotations

import base64
import json
import uuid
from dataclasses import dataclass
from datetime import datetime


@dataclass(frozen=True)
class ReportCursor:
    user_id: uuid.UUID
    last_created_at: datetime
    last_id: uuid.UUID


def encode_report_cursor(*, cursor: ReportCursor) -> str:
    payload = {
        "user_id": str(cursor.user_id),
        "last_created_at": cursor.last_created_at.isoformat(),
        "last_id": str(cursor.last_id),
    }
    raw = json.dumps(payload, separators=(",", ":"), sort_keys=True).encode("utf-8")
    return base64.urlsafe_b64encode(raw).decode("ascii")


def decode_report_cursor(*, raw: str) -> ReportCursor:
    try:
        padded = raw + "=" * (-len(raw) % 4)
        decoded = base64.urlsafe_b64decode(padded.encode("ascii"))
        obj = json.loads(decoded.decode("utf-8"))
        return ReportCursor(
            user_id=uuid.UUID(obj["user_id"]),
            last_created_at=datetime.fromisoformat(obj["last_created_at"]),
            last_id=uuid.UUID(obj["last_id"]),
        )
    except Exception as exc:  # noqa: BLE001
        raise ValueError("Invalid cursor") from exc

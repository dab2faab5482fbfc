"""Best-effort form pre-fill from an uploaded document (nothing is persisted)."""

from __future__ import annotations

import logging
import uuid
from dataclasses import dataclass

from fastapi import UploadFile

from healthvault.core.functions.client import (
    EXTRACT_DOCUMENT_METADATA,
    EdgeFunctionClient,
    EdgeFunctionError,
)
from healthvault.storage.local import (
    MEDICAL_DOCUMENTS_BUCKET,
    LocalFileStorage,
    StorageIOError,
)

logger = logging.getLogger("healthvault.metadata")

TEMP_PREFIX = "metadata-extraction"

# The function picks its analysis mode from the key's extension.
_EXTENSIONS = {
    "application/pdf": ".pdf",
    "image/png": ".png",
    "image/jpeg": ".jpg",
    "text/plain": ".txt",
}


class MetadataExtractionError(Exception):
    """Raised when a document could not be analyzed (safe to map to 502)."""


@dataclass(frozen=True)
class ExtractedMetadata:
    title: str | None = None
    report_type: str | None = None
    physician_name: str | None = None
    facility_name: str | None = None
    description: str | None = None


def temp_key(*, user_id: uuid.UUID, mime_type: str) -> str:
    return f"{TEMP_PREFIX}/{user_id}/temp_{uuid.uuid4().hex}{_EXTENSIONS.get(mime_type, '')}"


def _str_or_none(value: object) -> str | None:
    if isinstance(value, str) and value.strip():
        return value.strip()
    return None


async def extract_metadata(
    *,
    storage: LocalFileStorage,
    client: EdgeFunctionClient,
    user_id: uuid.UUID,
    upload: UploadFile,
    mime_type: str,
    max_bytes: int,
) -> ExtractedMetadata:
    """
    Store the upload under a temporary key, ask the extraction function about it, and
    always remove the temporary file afterwards.
    """

    key = temp_key(user_id=user_id, mime_type=mime_type)
    try:
        await storage.save(
            bucket=MEDICAL_DOCUMENTS_BUCKET, key=key, upload=upload, max_bytes=max_bytes
        )
    except StorageIOError as exc:
        raise MetadataExtractionError("Failed to upload file for analysis") from exc

    try:
        data = await client.invoke(EXTRACT_DOCUMENT_METADATA, body={"filePath": key})
    except EdgeFunctionError as exc:
        raise MetadataExtractionError("Failed to extract metadata") from exc
    finally:
        try:
            await storage.delete(bucket=MEDICAL_DOCUMENTS_BUCKET, key=key)
        except StorageIOError as exc:
            logger.warning(
                "Temporary metadata file removal failed",
                extra={"error": exc.__class__.__name__, "success": False},
            )

    metadata = data.get("metadata")
    if not isinstance(metadata, dict):
        raise MetadataExtractionError("Function returned no metadata")

    return ExtractedMetadata(
        title=_str_or_none(metadata.get("title")),
        report_type=_str_or_none(metadata.get("reportType")),
        physician_name=_str_or_none(metadata.get("physicianName")),
        facility_name=_str_or_none(metadata.get("facilityName")),
        description=_str_or_none(metadata.get("description")),
    )

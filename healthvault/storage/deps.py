from __future__ import annotations

import mimetypes
from pathlib import Path

from fastapi import HTTPException, status

from healthvault.core.settings import get_settings
from healthvault.storage.local import LocalFileStorage

_SNIFFED_BINARY_TYPES = frozenset({"application/pdf", "image/png", "image/jpeg"})


def get_storage() -> LocalFileStorage:
    settings = get_settings()
    if settings.file_storage_backend != "local":
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="File storage backend is not supported",
        )
    return LocalFileStorage(base_dir=Path(settings.local_storage_base_path))


def _sniff_mime_type(upload) -> str | None:
    """Magic-byte detection first, then the filename extension. Nothing is logged."""

    f = getattr(upload, "file", None)
    if f is None:
        return None
    try:
        pos = f.tell()
        # Form parsers may leave the cursor at EOF.
        f.seek(0)
        head = f.read(16)
        f.seek(pos)
    except Exception:  # noqa: BLE001
        head = b""

    if head.startswith(b"%PDF-"):
        return "application/pdf"
    if head.startswith(b"\x89PNG\r\n\x1a\n"):
        return "image/png"
    if head.startswith(b"\xff\xd8\xff"):
        return "image/jpeg"

    filename = getattr(upload, "filename", None)
    if filename:
        guessed, _ = mimetypes.guess_type(filename)
        return guessed

    return None


def determine_mime_type(*, upload, allowed: set[str]) -> str:
    """
    Pick the MIME type for an upload. A confidently sniffed binary type wins over what
    the client claimed; otherwise the client's value is used when allowed.
    """

    provided = (getattr(upload, "content_type", None) or "").lower().strip()
    sniffed = (_sniff_mime_type(upload) or "").lower().strip()
    if sniffed in allowed:
        if sniffed in _SNIFFED_BINARY_TYPES and provided != sniffed:
            return sniffed
        if provided in allowed:
            return provided
        return sniffed

    if provided in allowed:
        return provided

    return provided or sniffed or "application/octet-stream"

from __future__ import annotations

import hashlib
import os
import uuid
from dataclasses import dataclass
from pathlib import Path

from fastapi import UploadFile
from starlette.concurrency import run_in_threadpool

MEDICAL_DOCUMENTS_BUCKET = "medical-documents"
PROFILE_IMAGES_BUCKET = "profile-images"

_BUCKETS = frozenset({MEDICAL_DOCUMENTS_BUCKET, PROFILE_IMAGES_BUCKET})


class StorageIOError(Exception):
    """Raised for unexpected storage I/O failures (should map to HTTP 500)."""


class InvalidStorageKeyError(StorageIOError):
    """Raised when a key would resolve outside its bucket or names an unknown bucket."""


class StorageNotFoundError(StorageIOError):
    """Raised when a key does not exist in the bucket."""


class StorageAccessDeniedError(StorageIOError):
    """Raised when a stored object exists but cannot be read."""


class PayloadTooLargeError(Exception):
    """Raised when an upload exceeds the configured maximum size."""


@dataclass(frozen=True)
class StoredFile:
    # Opaque storage key, relative to the bucket root.
    key: str
    size_bytes: int
    sha256_hex: str


def _safe_join(base_dir: Path, key: str) -> Path:
    """Resolve `key` under `base_dir`, refusing anything that escapes it."""

    if not key or key.startswith("/"):
        raise InvalidStorageKeyError("Invalid storage key")
    base_dir = base_dir.resolve()
    candidate = (base_dir / key).resolve()
    if base_dir in candidate.parents:
        return candidate
    raise InvalidStorageKeyError("Invalid storage key")


def _write_upload_to_path(
    *,
    upload: UploadFile,
    dest_path: Path,
    max_bytes: int,
) -> tuple[int, str]:
    """
    Synchronous write (called in a threadpool).
    Returns (size_bytes, sha256_hex).
    """

    hasher = hashlib.sha256()
    size = 0

    dest_path.parent.mkdir(parents=True, exist_ok=True)
    upload.file.seek(0)

    # O_EXCL: a key is written once and never overwritten.
    fd = os.open(str(dest_path), os.O_WRONLY | os.O_CREAT | os.O_EXCL, 0o600)
    try:
        with os.fdopen(fd, "wb") as f:
            while True:
                chunk = upload.file.read(1024 * 1024)
                if not chunk:
                    break
                size += len(chunk)
                if size > max_bytes:
                    raise PayloadTooLargeError("uploaded file exceeds maximum allowed size")
                hasher.update(chunk)
                f.write(chunk)
            f.flush()
            os.fsync(f.fileno())
    except BaseException:
        dest_path.unlink(missing_ok=True)
        raise

    return size, hasher.hexdigest()


def _read_path(path: Path) -> bytes:
    try:
        return path.read_bytes()
    except FileNotFoundError as exc:
        raise StorageNotFoundError("Object not found") from exc
    except IsADirectoryError as exc:
        raise StorageNotFoundError("Object not found") from exc
    except PermissionError as exc:
        raise StorageAccessDeniedError("Object is not readable") from exc
    except OSError as exc:
        raise StorageIOError("Failed to read object") from exc


def _list_dir(path: Path, search: str | None) -> list[str]:
    if not path.is_dir():
        return []
    names = sorted(p.name for p in path.iterdir() if p.is_file())
    if search:
        names = [n for n in names if search in n]
    return names


class LocalFileStorage:
    """
    Bucketed object storage on local disk: `{base_dir}/{bucket}/{key}`.

    Medical document keys are UUID-based and PHI-free:
      {user_id}/{report_id}/{random_uuid}
    """

    def __init__(self, *, base_dir: Path):
        self._base_dir = base_dir

    def _bucket_dir(self, bucket: str) -> Path:
        if bucket not in _BUCKETS:
            raise InvalidStorageKeyError("Unknown bucket")
        return self._base_dir / bucket

    def path_for(self, *, bucket: str, key: str) -> Path:
        return _safe_join(self._bucket_dir(bucket), key)

    async def save(
        self,
        *,
        bucket: str,
        key: str,
        upload: UploadFile,
        max_bytes: int,
    ) -> StoredFile:
        dest_path = self.path_for(bucket=bucket, key=key)
        try:
            size_bytes, sha256_hex = await run_in_threadpool(
                _write_upload_to_path, upload=upload, dest_path=dest_path, max_bytes=max_bytes
            )
        except PayloadTooLargeError:
            raise
        except Exception as exc:  # noqa: BLE001
            raise StorageIOError("Failed to write uploaded file") from exc

        return StoredFile(key=key, size_bytes=size_bytes, sha256_hex=sha256_hex)

    async def download(self, *, bucket: str, key: str) -> bytes:
        path = self.path_for(bucket=bucket, key=key)
        return await run_in_threadpool(_read_path, path)

    async def exists(self, *, bucket: str, key: str) -> bool:
        path = self.path_for(bucket=bucket, key=key)
        return await run_in_threadpool(path.is_file)

    async def list_folder(
        self, *, bucket: str, prefix: str, search: str | None = None
    ) -> list[str]:
        """File names directly under `prefix` (optionally containing `search`)."""

        bucket_dir = self._bucket_dir(bucket)
        folder = _safe_join(bucket_dir, prefix) if prefix else bucket_dir.resolve()
        try:
            return await run_in_threadpool(_list_dir, folder, search)
        except PermissionError as exc:
            raise StorageAccessDeniedError("Folder is not readable") from exc
        except OSError as exc:
            raise StorageIOError("Failed to list folder") from exc

    async def list_recursive(self, *, bucket: str, prefix: str) -> list[str]:
        """All keys below `prefix`, relative to the bucket root."""

        bucket_dir = self._bucket_dir(bucket).resolve()
        folder = _safe_join(bucket_dir, prefix)

        def _walk() -> list[str]:
            if not folder.is_dir():
                return []
            return sorted(
                str(p.relative_to(bucket_dir).as_posix()) for p in folder.rglob("*") if p.is_file()
            )

        try:
            return await run_in_threadpool(_walk)
        except OSError as exc:
            raise StorageIOError("Failed to list folder") from exc

    async def delete(self, *, bucket: str, key: str) -> None:
        path = self.path_for(bucket=bucket, key=key)
        try:
            await run_in_threadpool(path.unlink, missing_ok=True)
        except Exception as exc:  # noqa: BLE001
            raise StorageIOError("Failed to delete file") from exc


def document_key(*, user_id: uuid.UUID, report_id: uuid.UUID) -> str:
    return f"{user_id}/{report_id}/{uuid.uuid4()}"

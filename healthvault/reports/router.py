from __future__ import annotations

import logging
import uuid
from datetime import date

from fastapi import (
    APIRouter,
    Depends,
    File,
    Form,
    HTTPException,
    Query,
    Request,
    Response,
    UploadFile,
    status,
)
from fastapi.responses import PlainTextResponse
from sqlalchemy.ext.asyncio import AsyncSession

from healthvault.api.deps import get_current_user_id
from healthvault.core.db import get_session
from healthvault.core.functions.client import EdgeFunctionClient
from healthvault.core.functions.deps import get_edge_function_client
from healthvault.core.middleware.http_logging import request_id_from
from healthvault.core.settings import get_settings
from healthvault.reports.consistency import check_file_consistency, generate_consistency_report
from healthvault.reports.metadata import MetadataExtractionError, extract_metadata
from healthvault.reports.models import Report
from healthvault.reports.processing.service import (
    DocumentProcessingError,
    check_duplicate_report,
    processing_status,
    reprocess_reports,
    start_processing,
)
from healthvault.reports.schemas import (
    ConsistencyReportOut,
    DuplicateCheckOut,
    ExtractedMetadataOut,
    FixFilePathIn,
    ParsingStatus,
    PipelineOut,
    ProcessingResultOut,
    ProcessingStatusOut,
    ReportListItemOut,
    ReportListOut,
    ReportOut,
    ReportUpdate,
    ReprocessItemOut,
    ReprocessOut,
)
from healthvault.reports.service import (
    create_report,
    delete_report,
    fix_report_file_path,
    get_report,
    list_reports,
    mark_report_for_reupload,
    read_report_file,
    update_report,
)
from healthvault.storage.deps import determine_mime_type, get_storage
from healthvault.storage.local import (
    MEDICAL_DOCUMENTS_BUCKET,
    LocalFileStorage,
    PayloadTooLargeError,
    StorageIOError,
    StorageNotFoundError,
    document_key,
)

router = APIRouter(prefix="/reports", tags=["reports"])
logger = logging.getLogger("healthvault.reports")

METADATA_FAILED_DETAIL = "Could not analyze document. Please fill form manually."


async def _get_owned_report(
    *, session: AsyncSession, user_id: uuid.UUID, report_id: uuid.UUID
) -> Report:
    report = await get_report(session=session, user_id=user_id, report_id=report_id)
    if report is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Report not found")
    return report


def _check_mime_type(upload: UploadFile, allowed: list[str]) -> str:
    mime_type = determine_mime_type(upload=upload, allowed=set(allowed))
    if mime_type not in allowed:
        raise HTTPException(
            status_code=status.HTTP_415_UNSUPPORTED_MEDIA_TYPE,
            detail=f"Unsupported media type: {mime_type}",
        )
    return mime_type


@router.get("", response_model=ReportListOut)
async def get_reports(
    limit: int = Query(default=50, ge=1, le=100),
    cursor: str | None = Query(
        default=None, description="Cursor for pagination (use `next_cursor` from previous response)"
    ),
    parsing_status: ParsingStatus | None = Query(default=None),
    report_type: str | None = Query(default=None, min_length=1, max_length=50),
    family_member_id: uuid.UUID | None = Query(default=None),
    is_critical: bool | None = Query(default=None),
    q: str | None = Query(
        default=None,
        min_length=1,
        description="Case-insensitive match on title, physician or facility.",
    ),
    user_id: uuid.UUID = Depends(get_current_user_id),
    session: AsyncSession = Depends(get_session),
) -> ReportListOut:
    try:
        items, next_cursor = await list_reports(
            session=session,
            user_id=user_id,
            limit=limit,
            cursor=cursor,
            parsing_status=parsing_status,
            report_type=report_type,
            family_member_id=family_member_id,
            is_critical=is_critical,
            q=q,
        )
    except ValueError as exc:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc)) from exc

    return ReportListOut(
        items=[ReportListItemOut.model_validate(r) for r in items],
        limit=limit,
        next_cursor=next_cursor,
    )


@router.post("", status_code=status.HTTP_201_CREATED, response_model=ReportOut)
async def upload_report(
    file: UploadFile = File(...),
    title: str = Form(..., min_length=1, max_length=255),
    report_type: str = Form(default="general", min_length=1, max_length=50),
    report_date: date | None = Form(default=None),
    description: str | None = Form(default=None, max_length=5000),
    family_member_id: uuid.UUID | None = Form(default=None),
    user_id: uuid.UUID = Depends(get_current_user_id),
    session: AsyncSession = Depends(get_session),
    storage: LocalFileStorage = Depends(get_storage),
) -> ReportOut:
    settings = get_settings()
    mime_type = _check_mime_type(file, settings.allowed_mime_types)

    report_id = uuid.uuid4()
    key = document_key(user_id=user_id, report_id=report_id)
    try:
        stored = await storage.save(
            bucket=MEDICAL_DOCUMENTS_BUCKET,
            key=key,
            upload=file,
            max_bytes=settings.max_upload_bytes,
        )
    except PayloadTooLargeError as exc:
        raise HTTPException(
            status_code=status.HTTP_413_REQUEST_ENTITY_TOO_LARGE,
            detail="Uploaded file is too large",
        ) from exc
    except StorageIOError as exc:
        raise HTTPException(status_code=500, detail="File storage failed") from exc

    # Row after file; if the row cannot be written the file is removed (best-effort).
    try:
        report = await create_report(
            session=session,
            user_id=user_id,
            report_id=report_id,
            title=title.strip(),
            report_type=report_type.strip(),
            report_date=report_date,
            description=description,
            family_member_id=family_member_id,
            file_name=file.filename,
            content_mime_type=mime_type,
            stored_file=stored,
        )
    except Exception:
        try:
            await storage.delete(bucket=MEDICAL_DOCUMENTS_BUCKET, key=stored.key)
        except StorageIOError as cleanup_exc:
            logger.warning(
                "Orphan upload cleanup failed",
                extra={"error": cleanup_exc.__class__.__name__, "success": False},
            )
        raise

    return ReportOut.model_validate(report)


@router.post("/extract-metadata", response_model=ExtractedMetadataOut)
async def post_extract_metadata(
    request: Request,
    file: UploadFile = File(...),
    user_id: uuid.UUID = Depends(get_current_user_id),
    storage: LocalFileStorage = Depends(get_storage),
    client: EdgeFunctionClient | None = Depends(get_edge_function_client),
) -> ExtractedMetadataOut:
    settings = get_settings()
    mime_type = _check_mime_type(file, settings.allowed_mime_types)
    request_id = request_id_from(request)

    if client is None:
        logger.info(
            "Metadata extraction failed (functions not configured)",
            extra={"request_id": request_id, "success": False},
        )
        raise HTTPException(status_code=status.HTTP_502_BAD_GATEWAY, detail=METADATA_FAILED_DETAIL)

    try:
        metadata = await extract_metadata(
            storage=storage,
            client=client,
            user_id=user_id,
            upload=file,
            mime_type=mime_type,
            max_bytes=settings.max_upload_bytes,
        )
    except PayloadTooLargeError as exc:
        raise HTTPException(
            status_code=status.HTTP_413_REQUEST_ENTITY_TOO_LARGE,
            detail="Uploaded file is too large",
        ) from exc
    except MetadataExtractionError:
        logger.info(
            "Metadata extraction failed",
            extra={"request_id": request_id, "success": False},
        )
        raise HTTPException(
            status_code=status.HTTP_502_BAD_GATEWAY, detail=METADATA_FAILED_DETAIL
        ) from None

    logger.info("Metadata extracted", extra={"request_id": request_id, "success": True})
    return ExtractedMetadataOut(
        title=metadata.title,
        report_type=metadata.report_type,
        physician_name=metadata.physician_name,
        facility_name=metadata.facility_name,
        description=metadata.description,
    )


@router.post("/reprocess", response_model=ReprocessOut)
async def post_reprocess_reports(
    request: Request,
    user_id: uuid.UUID = Depends(get_current_user_id),
    session: AsyncSession = Depends(get_session),
    client: EdgeFunctionClient | None = Depends(get_edge_function_client),
) -> ReprocessOut:
    if client is None:
        logger.info(
            "Bulk reprocessing failed (functions not configured)",
            extra={"request_id": request_id_from(request), "success": False},
        )
        raise HTTPException(
            status_code=status.HTTP_502_BAD_GATEWAY,
            detail="Document processing service unavailable",
        )

    items = await reprocess_reports(
        session=session, user_id=user_id, client=client, settings=get_settings()
    )
    return ReprocessOut(
        total=len(items),
        completed=sum(1 for i in items if i.status == "completed"),
        failed=sum(1 for i in items if i.status == "failed"),
        skipped=sum(1 for i in items if i.status == "skipped"),
        items=[ReprocessItemOut.model_validate(i) for i in items],
    )


@router.get("/file-consistency", response_model=ConsistencyReportOut)
async def get_file_consistency(
    report_id: uuid.UUID | None = Query(default=None, description="Limit the check to one report."),
    user_id: uuid.UUID = Depends(get_current_user_id),
    session: AsyncSession = Depends(get_session),
    storage: LocalFileStorage = Depends(get_storage),
) -> ConsistencyReportOut:
    result = await check_file_consistency(
        session=session, storage=storage, user_id=user_id, report_id=report_id
    )
    return ConsistencyReportOut.model_validate(result)


@router.get("/file-consistency/report", response_class=PlainTextResponse)
async def get_file_consistency_text(
    user_id: uuid.UUID = Depends(get_current_user_id),
    session: AsyncSession = Depends(get_session),
    storage: LocalFileStorage = Depends(get_storage),
) -> PlainTextResponse:
    result = await check_file_consistency(session=session, storage=storage, user_id=user_id)
    filename = f"file-consistency-report-{result.checked_at.date().isoformat()}.txt"
    return PlainTextResponse(
        generate_consistency_report(result),
        headers={"Content-Disposition": f'attachment; filename="{filename}"'},
    )


@router.get("/{report_id}", response_model=ReportOut)
async def get_report_by_id(
    report_id: uuid.UUID,
    user_id: uuid.UUID = Depends(get_current_user_id),
    session: AsyncSession = Depends(get_session),
) -> ReportOut:
    report = await _get_owned_report(session=session, user_id=user_id, report_id=report_id)
    return ReportOut.model_validate(report)


@router.patch("/{report_id}", response_model=ReportOut)
async def patch_report(
    report_id: uuid.UUID,
    payload: ReportUpdate,
    user_id: uuid.UUID = Depends(get_current_user_id),
    session: AsyncSession = Depends(get_session),
) -> ReportOut:
    report = await _get_owned_report(session=session, user_id=user_id, report_id=report_id)
    updated = await update_report(
        session=session, report=report, changes=payload.model_dump(exclude_unset=True)
    )
    return ReportOut.model_validate(updated)


@router.delete("/{report_id}", status_code=status.HTTP_204_NO_CONTENT, response_model=None)
async def delete_report_by_id(
    report_id: uuid.UUID,
    user_id: uuid.UUID = Depends(get_current_user_id),
    session: AsyncSession = Depends(get_session),
    storage: LocalFileStorage = Depends(get_storage),
) -> None:
    report = await _get_owned_report(session=session, user_id=user_id, report_id=report_id)
    await delete_report(session=session, storage=storage, report=report)
    return None


@router.get("/{report_id}/file")
async def download_report_file(
    report_id: uuid.UUID,
    user_id: uuid.UUID = Depends(get_current_user_id),
    session: AsyncSession = Depends(get_session),
    storage: LocalFileStorage = Depends(get_storage),
) -> Response:
    report = await _get_owned_report(session=session, user_id=user_id, report_id=report_id)
    try:
        data = await read_report_file(storage=storage, report=report)
    except StorageNotFoundError as exc:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="File not found") from exc
    except StorageIOError as exc:
        raise HTTPException(status_code=500, detail="File retrieval failed") from exc

    return Response(
        content=data,
        media_type=report.content_mime_type or "application/octet-stream",
        headers={"Cache-Control": "no-store"},
    )


@router.post("/{report_id}/mark-for-reupload", response_model=ReportOut)
async def post_mark_for_reupload(
    report_id: uuid.UUID,
    user_id: uuid.UUID = Depends(get_current_user_id),
    session: AsyncSession = Depends(get_session),
) -> ReportOut:
    report = await _get_owned_report(session=session, user_id=user_id, report_id=report_id)
    updated = await mark_report_for_reupload(session=session, report=report)
    return ReportOut.model_validate(updated)


@router.put("/{report_id}/file-path", response_model=ReportOut)
async def put_report_file_path(
    report_id: uuid.UUID,
    payload: FixFilePathIn,
    user_id: uuid.UUID = Depends(get_current_user_id),
    session: AsyncSession = Depends(get_session),
    storage: LocalFileStorage = Depends(get_storage),
) -> ReportOut:
    report = await _get_owned_report(session=session, user_id=user_id, report_id=report_id)
    updated = await fix_report_file_path(
        session=session, storage=storage, report=report, file_path=payload.file_path
    )
    return ReportOut.model_validate(updated)


@router.post("/{report_id}/process", response_model=ProcessingResultOut)
async def post_process_report(
    report_id: uuid.UUID,
    request: Request,
    user_id: uuid.UUID = Depends(get_current_user_id),
    session: AsyncSession = Depends(get_session),
    client: EdgeFunctionClient | None = Depends(get_edge_function_client),
) -> ProcessingResultOut:
    report = await _get_owned_report(session=session, user_id=user_id, report_id=report_id)
    request_id = request_id_from(request)

    if client is None:
        logger.info(
            "Document processing failed (functions not configured)",
            extra={"request_id": request_id, "report_id": str(report_id), "success": False},
        )
        raise HTTPException(
            status_code=status.HTTP_502_BAD_GATEWAY,
            detail="Document processing service unavailable",
        )

    try:
        outcome = await start_processing(
            session=session, report=report, client=client, settings=get_settings()
        )
    except DocumentProcessingError as exc:
        raise HTTPException(
            status_code=status.HTTP_502_BAD_GATEWAY, detail=exc.user_message
        ) from None

    validation = outcome.validation
    return ProcessingResultOut(
        report_id=outcome.report.id,
        success=True,
        parsing_status=outcome.report.parsing_status,
        confidence=outcome.confidence,
        hybrid=outcome.hybrid,
        pipeline=PipelineOut.model_validate(outcome.pipeline),
        tags=outcome.tags,
        attempts=outcome.attempts,
        processing_time_ms=outcome.processing_time_ms,
        validation_errors=validation.errors if validation else [],
        validation_warnings=validation.warnings if validation else [],
        validation_confidence=validation.confidence if validation else None,
    )


@router.get("/{report_id}/processing-status", response_model=ProcessingStatusOut)
async def get_processing_status(
    report_id: uuid.UUID,
    wait_seconds: float = Query(
        default=0.0,
        ge=0.0,
        le=30.0,
        description="Wait up to this long for processing to finish (fixed-interval polling).",
    ),
    user_id: uuid.UUID = Depends(get_current_user_id),
    session: AsyncSession = Depends(get_session),
) -> ProcessingStatusOut:
    report = await _get_owned_report(session=session, user_id=user_id, report_id=report_id)
    snap = await processing_status(
        session=session,
        report=report,
        wait_seconds=wait_seconds,
        poll_interval_seconds=get_settings().processing_poll_interval_seconds,
    )
    return ProcessingStatusOut.model_validate(snap)


@router.get("/{report_id}/duplicates", response_model=DuplicateCheckOut)
async def get_duplicate_check(
    report_id: uuid.UUID,
    user_id: uuid.UUID = Depends(get_current_user_id),
    session: AsyncSession = Depends(get_session),
) -> DuplicateCheckOut:
    report = await _get_owned_report(session=session, user_id=user_id, report_id=report_id)
    match = await check_duplicate_report(session=session, report=report)
    if match is None:
        return DuplicateCheckOut(is_duplicate=False)
    return DuplicateCheckOut(
        is_duplicate=True,
        similarity=match.similarity,
        matched_report_id=match.report_id,
        matched_title=match.title,
    )

"""Callbacks from the document processing functions (service key required)."""

from __future__ import annotations

import uuid

from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy.ext.asyncio import AsyncSession

from healthvault.api.deps import require_service
from healthvault.core.db import get_session
from healthvault.reports.processing.service import record_processing_update, snapshot
from healthvault.reports.schemas import ProcessingStatusOut, ProcessingUpdateIn
from healthvault.reports.service import get_report_any_user

router = APIRouter(prefix="/internal", tags=["internal"], dependencies=[Depends(require_service)])


@router.post("/reports/{report_id}/processing-updates", response_model=ProcessingStatusOut)
async def post_processing_update(
    report_id: uuid.UUID,
    payload: ProcessingUpdateIn,
    session: AsyncSession = Depends(get_session),
) -> ProcessingStatusOut:
    report = await get_report_any_user(session=session, report_id=report_id)
    if report is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Report not found")
    updated = await record_processing_update(
        session=session,
        report=report,
        processing_phase=payload.processing_phase,
        progress_percentage=payload.progress_percentage,
        parsed_data=payload.parsed_data,
        extracted_text=payload.extracted_text,
        extraction_confidence=payload.extraction_confidence,
        error=payload.error,
    )
    return ProcessingStatusOut.model_validate(snapshot(updated))

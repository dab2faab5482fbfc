from __future__ import annotations

import logging
import uuid

from fastapi import APIRouter, Depends, HTTPException, Query, Request, status
from sqlalchemy.ext.asyncio import AsyncSession

from healthvault.api.deps import get_current_user_id
from healthvault.core.db import get_session
from healthvault.core.llm.deps import get_openai_client
from healthvault.core.llm.openai_client import OpenAIError
from healthvault.core.middleware.http_logging import request_id_from
from healthvault.summaries.models import Summary
from healthvault.summaries.schemas import (
    SummaryCreate,
    SummaryListOut,
    SummaryOut,
    SummaryRatingIn,
)
from healthvault.summaries.service import (
    SummaryLLMError,
    SummaryService,
    delete_summary,
    get_summary,
    list_summaries,
    rate_summary,
    toggle_pin,
)

router = APIRouter(prefix="/summaries", tags=["summaries"])
logger = logging.getLogger("healthvault.summaries")


async def _get_owned_summary(
    *, session: AsyncSession, user_id: uuid.UUID, summary_id: uuid.UUID
) -> Summary:
    summary = await get_summary(session=session, user_id=user_id, summary_id=summary_id)
    if summary is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Summary not found")
    return summary


@router.post("", status_code=status.HTTP_201_CREATED, response_model=SummaryOut)
async def create_summary(
    payload: SummaryCreate,
    request: Request,
    user_id: uuid.UUID = Depends(get_current_user_id),
    session: AsyncSession = Depends(get_session),
    openai_client=Depends(get_openai_client),
) -> SummaryOut:
    """
    Generate and store an AI summary over the caller's reports.

    IMPORTANT (safety): prompts and model output contain PHI and are never logged.
    """

    request_id = request_id_from(request)
    log_extra = {"request_id": request_id, "summary_type": payload.summary_type}

    if openai_client is None:
        logger.info(
            "Summary generation failed (LLM not configured)",
            extra={**log_extra, "success": False},
        )
        raise HTTPException(
            status_code=status.HTTP_502_BAD_GATEWAY, detail="LLM service unavailable"
        )

    svc = SummaryService(session=session, llm_client=openai_client)
    try:
        summary = await svc.generate_summary(
            user_id=user_id,
            report_ids=payload.report_ids,
            summary_type=payload.summary_type,
            custom_prompt=payload.custom_prompt,
        )
    except (OpenAIError, SummaryLLMError):
        logger.info("Summary generation failed", extra={**log_extra, "success": False})
        raise HTTPException(
            status_code=status.HTTP_502_BAD_GATEWAY,
            detail="LLM service failed",
        ) from None

    if summary is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Report not found")

    logger.info(
        "Summary generated",
        extra={**log_extra, "summary_id": str(summary.id), "success": True},
    )
    return SummaryOut.model_validate(summary)


@router.get("", response_model=SummaryListOut)
async def get_summaries(
    pinned: bool | None = Query(
        default=None, description="Only pinned (true) or unpinned (false)."
    ),
    user_id: uuid.UUID = Depends(get_current_user_id),
    session: AsyncSession = Depends(get_session),
) -> SummaryListOut:
    items = await list_summaries(session=session, user_id=user_id, pinned=pinned)
    return SummaryListOut(items=[SummaryOut.model_validate(s) for s in items])


@router.get("/{summary_id}", response_model=SummaryOut)
async def get_summary_by_id(
    summary_id: uuid.UUID,
    user_id: uuid.UUID = Depends(get_current_user_id),
    session: AsyncSession = Depends(get_session),
) -> SummaryOut:
    summary = await _get_owned_summary(session=session, user_id=user_id, summary_id=summary_id)
    return SummaryOut.model_validate(summary)


@router.post("/{summary_id}/toggle-pin", response_model=SummaryOut)
async def post_toggle_pin(
    summary_id: uuid.UUID,
    user_id: uuid.UUID = Depends(get_current_user_id),
    session: AsyncSession = Depends(get_session),
) -> SummaryOut:
    summary = await _get_owned_summary(session=session, user_id=user_id, summary_id=summary_id)
    return SummaryOut.model_validate(await toggle_pin(session=session, summary=summary))


@router.put("/{summary_id}/rating", response_model=SummaryOut)
async def put_summary_rating(
    summary_id: uuid.UUID,
    payload: SummaryRatingIn,
    user_id: uuid.UUID = Depends(get_current_user_id),
    session: AsyncSession = Depends(get_session),
) -> SummaryOut:
    summary = await _get_owned_summary(session=session, user_id=user_id, summary_id=summary_id)
    updated = await rate_summary(
        session=session, summary=summary, rating=payload.rating, feedback=payload.feedback
    )
    return SummaryOut.model_validate(updated)


@router.delete("/{summary_id}", status_code=status.HTTP_204_NO_CONTENT, response_model=None)
async def delete_summary_by_id(
    summary_id: uuid.UUID,
    user_id: uuid.UUID = Depends(get_current_user_id),
    session: AsyncSession = Depends(get_session),
) -> None:
    summary = await _get_owned_summary(session=session, user_id=user_id, summary_id=summary_id)
    await delete_summary(session=session, summary=summary)
    return None

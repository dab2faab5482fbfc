from __future__ import annotations

import uuid
from datetime import UTC, datetime
from typing import Any, Protocol

from pydantic import ValidationError
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from healthvault.core.settings import get_settings
from healthvault.domain.exceptions import BusinessValidationError
from healthvault.quota.service import enforce_quota, track_usage
from healthvault.reports.models import Report
from healthvault.summaries.models import Summary
from healthvault.summaries.prompt import SUMMARY_TITLES, build_summary_prompts
from healthvault.summaries.schemas import _LLMSummaryJSON

REPORTS_GENERATED = "reports_generated"
DEFAULT_CONFIDENCE = 0.8


class LLMClient(Protocol):
    async def generate_json(self, *, system_prompt: str, user_prompt: str) -> dict[str, Any]: ...


class SummaryLLMError(Exception):
    """Raised when the LLM fails or returns invalid output."""


def _truncate_reports_for_prompt(
    *, reports: list[dict[str, Any]], max_prompt_chars: int
) -> list[dict[str, Any]]:
    """
    Soft-cap prompt size by truncating extracted text while keeping metadata and parsed data.
    Truncated reports are marked so the model does not infer the missing content.
    """

    remaining = max_prompt_chars
    out: list[dict[str, Any]] = []
    for report in reports:
        r = dict(report)
        text = r.get("extracted_text")
        if isinstance(text, str) and text:
            if remaining <= 0:
                r["extracted_text"] = None
                r["text_truncated"] = True
            elif len(text) > remaining:
                r["extracted_text"] = text[:remaining] + "\n[TRUNCATED]"
                r["text_truncated"] = True
                remaining = 0
            else:
                remaining -= len(text)
        out.append(r)
    return out


def _confidence(value: float | None) -> float:
    if value is None or not 0.0 <= value <= 1.0:
        return DEFAULT_CONFIDENCE
    return float(value)


async def _load_owned_reports(
    *, session: AsyncSession, user_id: uuid.UUID, report_ids: list[uuid.UUID]
) -> list[Report] | None:
    unique_ids = list(dict.fromkeys(report_ids))
    stmt = (
        select(Report)
        .where(Report.id.in_(unique_ids), Report.user_id == user_id)
        .order_by(Report.report_date.asc().nulls_last(), Report.created_at.asc())
    )
    reports = list((await session.execute(stmt)).scalars().all())
    if len(reports) != len(unique_ids):
        return None
    return reports


class SummaryService:
    def __init__(self, *, session: AsyncSession, llm_client: LLMClient):
        self._session = session
        self._llm = llm_client

    async def generate_summary(
        self,
        *,
        user_id: uuid.UUID,
        report_ids: list[uuid.UUID],
        summary_type: str,
        custom_prompt: str | None = None,
    ) -> Summary | None:
        """Returns None when any report is missing or belongs to someone else."""

        reports = await _load_owned_reports(
            session=self._session, user_id=user_id, report_ids=report_ids
        )
        if reports is None:
            return None

        not_ready = [
            r.title for r in reports if not (r.extracted_text or "").strip() and not r.parsed_data
        ]
        if not_ready:
            raise BusinessValidationError(
                "The following reports have not been processed yet: "
                f"{', '.join(not_ready)}. Process them before generating a summary."
            )

        await enforce_quota(
            session=self._session, user_id=user_id, usage_type=REPORTS_GENERATED, requested=1
        )

        settings = get_settings()
        reports_for_prompt = _truncate_reports_for_prompt(
            reports=[
                {
                    "title": r.title,
                    "report_type": r.report_type,
                    "report_date": r.report_date.isoformat() if r.report_date else None,
                    "extracted_text": r.extracted_text,
                    "parsed_data": r.parsed_data,
                }
                for r in reports
            ],
            max_prompt_chars=int(settings.openai_max_prompt_chars),
        )
        system_prompt, user_prompt = build_summary_prompts(
            summary_type=summary_type, reports=reports_for_prompt, custom_prompt=custom_prompt
        )

        try:
            llm_json = await self._llm.generate_json(
                system_prompt=system_prompt, user_prompt=user_prompt
            )
            parsed = _LLMSummaryJSON.model_validate(llm_json)
        except ValidationError as exc:
            raise SummaryLLMError("LLM summary output was invalid") from exc

        summary = Summary(
            user_id=user_id,
            title=SUMMARY_TITLES[summary_type],
            summary_type=summary_type,
            content=llm_json,
            source_report_ids=[str(r.id) for r in reports],
            generated_at=datetime.now(UTC),
            ai_model_used=getattr(self._llm, "model", None),
            confidence_score=_confidence(parsed.confidence_score),
            is_pinned=False,
        )
        self._session.add(summary)
        await self._session.commit()
        await self._session.refresh(summary)

        await track_usage(
            session=self._session, user_id=user_id, usage_type=REPORTS_GENERATED, amount=1
        )
        return summary


async def list_summaries(
    *, session: AsyncSession, user_id: uuid.UUID, pinned: bool | None = None
) -> list[Summary]:
    stmt = select(Summary).where(Summary.user_id == user_id)
    if pinned is not None:
        stmt = stmt.where(Summary.is_pinned.is_(pinned))
    stmt = stmt.order_by(Summary.generated_at.desc(), Summary.id.desc())
    return list((await session.execute(stmt)).scalars().all())


async def get_summary(
    *, session: AsyncSession, user_id: uuid.UUID, summary_id: uuid.UUID
) -> Summary | None:
    summary = await session.get(Summary, summary_id)
    if summary is None or summary.user_id != user_id:
        return None
    return summary


async def toggle_pin(*, session: AsyncSession, summary: Summary) -> Summary:
    summary.is_pinned = not summary.is_pinned
    await session.commit()
    await session.refresh(summary)
    return summary


async def rate_summary(
    *, session: AsyncSession, summary: Summary, rating: int, feedback: str | None
) -> Summary:
    if not 1 <= rating <= 5:
        raise BusinessValidationError("rating must be between 1 and 5.")
    summary.user_rating = rating
    summary.user_feedback = feedback
    await session.commit()
    await session.refresh(summary)
    return summary


async def delete_summary(*, session: AsyncSession, summary: Summary) -> None:
    await session.delete(summary)
    await session.commit()

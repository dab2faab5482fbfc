from __future__ import annotations

import uuid
from datetime import datetime
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field

SummaryType = Literal["comprehensive", "abnormal_findings", "trend_analysis", "doctor_prep"]


class SummaryCreate(BaseModel):
    report_ids: list[uuid.UUID] = Field(
        min_length=1,
        max_length=50,
        description="Reports to summarize. All must belong to the caller.",
    )
    summary_type: SummaryType = Field(default="comprehensive")
    custom_prompt: str | None = Field(
        default=None,
        max_length=2000,
        description="Optional task description replacing the default for this summary type.",
    )


class SummaryRatingIn(BaseModel):
    rating: int = Field(ge=1, le=5, examples=[4])
    feedback: str | None = Field(default=None, max_length=2000)


class SummaryOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    title: str
    summary_type: str
    content: dict[str, Any]
    source_report_ids: list[str]
    generated_at: datetime
    ai_model_used: str | None = None
    confidence_score: float | None = None
    is_pinned: bool
    user_rating: int | None = None
    user_feedback: str | None = None


class SummaryListOut(BaseModel):
    items: list[SummaryOut]


class _LLMSummaryJSON(BaseModel):
    """Minimal validation of the model's object; the full object is stored as content."""

    model_config = ConfigDict(extra="allow")

    summary: str = Field(min_length=1)
    confidence_score: float | None = None

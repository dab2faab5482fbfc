from __future__ import annotations

import uuid
from datetime import datetime
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field

NotificationType = Literal["info", "success", "warning", "error", "health"]
NotificationCategory = Literal["general", "health", "processing", "sos", "reminder"]


class NotificationOut(BaseModel):
    model_config = ConfigDict(from_attributes=True, populate_by_name=True)

    id: uuid.UUID
    title: str
    message: str
    type: str
    category: str
    is_read: bool
    priority: int
    metadata: dict[str, Any] = Field(default_factory=dict, validation_alias="metadata_")
    action_url: str | None = None
    expires_at: datetime | None = None
    created_at: datetime


class NotificationListOut(BaseModel):
    items: list[NotificationOut]
    unread_count: int


class UnreadCountOut(BaseModel):
    unread_count: int


class MarkAllReadOut(BaseModel):
    updated: int = Field(description="Number of notifications marked as read.")

from __future__ import annotations

import uuid
from datetime import date, datetime
from typing import Literal

from pydantic import BaseModel, ConfigDict, Field

Relationship = Literal[
    "spouse", "child", "parent", "sibling", "grandparent", "grandchild", "other"
]
Gender = Literal["male", "female", "other", "prefer_not_to_say"]


class FamilyMemberCreate(BaseModel):
    first_name: str = Field(min_length=1, max_length=100, examples=["Asha"])
    last_name: str = Field(min_length=1, max_length=100, examples=["Rao"])
    relationship: Relationship = Field(examples=["parent"])
    date_of_birth: date | None = Field(default=None, examples=["1958-07-14"])
    gender: Gender | None = None
    phone_number: str | None = Field(default=None, max_length=30)
    medical_notes: str | None = Field(default=None, max_length=5000)
    emergency_contact_name: str | None = Field(default=None, max_length=255)
    emergency_contact_phone: str | None = Field(default=None, max_length=30)


class FamilyMemberUpdate(BaseModel):
    first_name: str | None = Field(default=None, min_length=1, max_length=100)
    last_name: str | None = Field(default=None, min_length=1, max_length=100)
    relationship: Relationship | None = None
    date_of_birth: date | None = None
    gender: Gender | None = None
    phone_number: str | None = Field(default=None, max_length=30)
    medical_notes: str | None = Field(default=None, max_length=5000)
    emergency_contact_name: str | None = Field(default=None, max_length=255)
    emergency_contact_phone: str | None = Field(default=None, max_length=30)


class FamilyMemberOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    first_name: str
    last_name: str
    relationship: str
    date_of_birth: date | None = None
    gender: str | None = None
    phone_number: str | None = None
    photo_url: str | None = Field(
        default=None, description="Storage key of the profile photo (profile-images bucket)."
    )
    medical_notes: str | None = None
    emergency_contact_name: str | None = None
    emergency_contact_phone: str | None = None
    created_at: datetime
    updated_at: datetime

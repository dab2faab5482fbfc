from __future__ import annotations

from pydantic import BaseModel, ConfigDict, Field


class GstinValidateIn(BaseModel):
    gstin: str = Field(min_length=1, max_length=32, examples=["29ABCDE1234F1Z5"])


class GstinValidateOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    gstin: str
    is_valid: bool
    state: str | None = None
    message: str


class GstCalculateIn(BaseModel):
    amount_paise: int = Field(ge=0, description="GST-inclusive amount in paise.")
    customer_state: str = Field(min_length=1, max_length=100, examples=["karnataka"])


class GstCalculateOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    cgst: int
    sgst: int
    igst: int
    total_tax: int
    net_amount: int
    gross_amount: int
    hsn_code: str
    is_intrastate: bool
    formatted_gross: str
    formatted_tax: str
    invoice_number: str

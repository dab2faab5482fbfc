from __future__ import annotations

import uuid

from fastapi import APIRouter, Depends

from healthvault.api.deps import get_current_user_id
from healthvault.billing.gst import (
    calculate_gst,
    format_inr,
    generate_invoice_number,
    validate_gstin,
)
from healthvault.billing.schemas import (
    GstCalculateIn,
    GstCalculateOut,
    GstinValidateIn,
    GstinValidateOut,
)
from healthvault.core.settings import get_settings

router = APIRouter(prefix="/billing", tags=["billing"])


@router.post("/gstin/validate", response_model=GstinValidateOut)
async def post_validate_gstin(
    payload: GstinValidateIn,
    _user_id: uuid.UUID = Depends(get_current_user_id),
) -> GstinValidateOut:
    return GstinValidateOut.model_validate(validate_gstin(payload.gstin))


@router.post("/gst/calculate", response_model=GstCalculateOut)
async def post_calculate_gst(
    payload: GstCalculateIn,
    _user_id: uuid.UUID = Depends(get_current_user_id),
) -> GstCalculateOut:
    breakdown = calculate_gst(
        amount_paise=payload.amount_paise,
        customer_state=payload.customer_state,
        company_state=get_settings().company_state,
    )
    return GstCalculateOut(
        cgst=breakdown.cgst,
        sgst=breakdown.sgst,
        igst=breakdown.igst,
        total_tax=breakdown.total_tax,
        net_amount=breakdown.net_amount,
        gross_amount=breakdown.gross_amount,
        hsn_code=breakdown.hsn_code,
        is_intrastate=breakdown.is_intrastate,
        formatted_gross=format_inr(breakdown.gross_amount),
        formatted_tax=format_inr(breakdown.total_tax),
        invoice_number=generate_invoice_number(),
    )

"""GST helpers for subscription invoices.

Amounts are integers in paise. Plans are priced GST-inclusive, so the net amount is
backed out of the gross price and the difference is the tax.
"""

from __future__ import annotations

import re
import secrets
from dataclasses import dataclass
from datetime import UTC, datetime
from decimal import ROUND_HALF_UP, Decimal

SAAS_HSN_CODE = "998314"
GST_RATE_PERCENT = 18

GSTIN_LENGTH = 15
_GSTIN_RE = re.compile(r"^[0-9]{2}[A-Z]{5}[0-9]{4}[A-Z][1-9A-Z]Z[0-9A-Z]$")
_NON_ALNUM_RE = re.compile(r"[^A-Z0-9]")

# State codes as published by the GST council (first two digits of a GSTIN).
GST_STATE_CODES: dict[str, str] = {
    "01": "jammu and kashmir",
    "02": "himachal pradesh",
    "03": "punjab",
    "04": "chandigarh",
    "05": "uttarakhand",
    "06": "haryana",
    "07": "delhi",
    "08": "rajasthan",
    "09": "uttar pradesh",
    "10": "bihar",
    "11": "sikkim",
    "12": "arunachal pradesh",
    "13": "nagaland",
    "14": "manipur",
    "15": "mizoram",
    "16": "tripura",
    "17": "meghalaya",
    "18": "assam",
    "19": "west bengal",
    "20": "jharkhand",
    "21": "odisha",
    "22": "chhattisgarh",
    "23": "madhya pradesh",
    "24": "gujarat",
    "25": "dadra and nagar haveli and daman and diu",
    "26": "dadra and nagar haveli and daman and diu",
    "27": "maharashtra",
    "29": "karnataka",
    "30": "goa",
    "31": "lakshadweep",
    "32": "kerala",
    "33": "tamil nadu",
    "34": "puducherry",
    "35": "andaman and nicobar islands",
    "36": "telangana",
    "37": "andhra pradesh",
    "38": "ladakh",
}


@dataclass(frozen=True)
class GstinValidation:
    gstin: str
    is_valid: bool
    state: str | None
    message: str


@dataclass(frozen=True)
class GstBreakdown:
    cgst: int
    sgst: int
    igst: int
    total_tax: int
    net_amount: int
    gross_amount: int
    hsn_code: str
    is_intrastate: bool


def normalize_gstin(raw: str) -> str:
    return _NON_ALNUM_RE.sub("", (raw or "").upper())


def is_valid_gstin(gstin: str) -> bool:
    return bool(gstin) and _GSTIN_RE.fullmatch(gstin) is not None


def state_from_gstin(gstin: str) -> str | None:
    if not is_valid_gstin(gstin):
        return None
    return GST_STATE_CODES.get(gstin[:2])


def validate_gstin(raw: str) -> GstinValidation:
    """Format check only; the trailing check character is not verified."""

    gstin = normalize_gstin(raw)
    if is_valid_gstin(gstin):
        state = state_from_gstin(gstin)
        label = state.capitalize() if state else "Unknown"
        return GstinValidation(
            gstin=gstin, is_valid=True, state=state, message=f"Valid GSTIN from {label}"
        )
    if len(gstin) == GSTIN_LENGTH:
        message = "Invalid GSTIN format or checksum"
    else:
        message = "GSTIN must be 15 characters long"
    return GstinValidation(gstin=gstin, is_valid=False, state=None, message=message)


def _round_half_up(value: Decimal) -> int:
    return int(value.quantize(Decimal("1"), rounding=ROUND_HALF_UP))


def calculate_gst(
    *, amount_paise: int, customer_state: str, company_state: str = "karnataka"
) -> GstBreakdown:
    if amount_paise < 0:
        raise ValueError("amount_paise must not be negative")

    is_intrastate = customer_state.strip().lower() == company_state.strip().lower()
    net_amount = _round_half_up(
        Decimal(amount_paise) / (Decimal(1) + Decimal(GST_RATE_PERCENT) / Decimal(100))
    )
    total_tax = amount_paise - net_amount

    cgst = sgst = igst = 0
    if is_intrastate:
        half = _round_half_up(Decimal(total_tax) / Decimal(2))
        cgst = sgst = half
    else:
        igst = total_tax

    return GstBreakdown(
        cgst=cgst,
        sgst=sgst,
        igst=igst,
        total_tax=total_tax,
        net_amount=net_amount,
        gross_amount=amount_paise,
        hsn_code=SAAS_HSN_CODE,
        is_intrastate=is_intrastate,
    )


def format_inr(amount_paise: int) -> str:
    """Render paise as rupees with Indian digit grouping, e.g. ₹1,23,456.78."""

    sign = "-" if amount_paise < 0 else ""
    rupees, paise = divmod(abs(amount_paise), 100)
    digits = str(rupees)
    if len(digits) > 3:
        head, tail = digits[:-3], digits[-3:]
        groups = []
        while len(head) > 2:
            groups.insert(0, head[-2:])
            head = head[:-2]
        if head:
            groups.insert(0, head)
        digits = ",".join(groups) + "," + tail
    return f"{sign}₹{digits}.{paise:02d}"


def generate_invoice_number(now: datetime | None = None) -> str:
    now = now or datetime.now(UTC)
    return f"INV{now:%y%m}{secrets.randbelow(10_000):04d}"

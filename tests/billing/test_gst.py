from __future__ import annotations

import uuid
from datetime import UTC, datetime

import pytest
from starlette.testclient import TestClient

from healthvault.billing.gst import (
    calculate_gst,
    format_inr,
    generate_invoice_number,
    state_from_gstin,
    validate_gstin,
)
from tests._helpers import user_headers


@pytest.mark.parametrize(
    ("gstin", "state", "label"),
    [
        ("29ABCDE1234F1Z5", "karnataka", "Karnataka"),
        ("27AAPFU0939F1ZV", "maharashtra", "Maharashtra"),
        ("07AAACB2894G1ZP", "delhi", "Delhi"),
        ("33ABCDE1234F2ZA", "tamil nadu", "Tamil nadu"),
    ],
)
def test_valid_gstin_resolves_state(gstin: str, state: str, label: str) -> None:
    result = validate_gstin(gstin)
    assert result.is_valid is True
    assert result.state == state
    assert result.message == f"Valid GSTIN from {label}"


def test_gstin_input_is_normalized() -> None:
    result = validate_gstin(" 29abcde-1234 f1z5 ")
    assert result.gstin == "29ABCDE1234F1Z5"
    assert result.is_valid is True


@pytest.mark.parametrize(
    "gstin",
    [
        "29ABCDE1234F0Z5",  # entity number may not be 0
        "29ABCDE1234F1X5",  # 14th character must be Z
        "2AABCDE1234F1Z5",  # state code must be two digits
        "29ABCD11234F1Z5",  # PAN letters
    ],
)
def test_malformed_15_character_gstin(gstin: str) -> None:
    result = validate_gstin(gstin)
    assert result.is_valid is False
    assert result.state is None
    assert result.message == "Invalid GSTIN format or checksum"


@pytest.mark.parametrize("gstin", ["", "29ABCDE1234F1Z", "29ABCDE1234F1Z55"])
def test_wrong_length_gstin(gstin: str) -> None:
    result = validate_gstin(gstin)
    assert result.is_valid is False
    assert result.message == "GSTIN must be 15 characters long"


def test_state_from_gstin_unknown_code() -> None:
    assert state_from_gstin("99ABCDE1234F1Z5") is None
    assert validate_gstin("99ABCDE1234F1Z5").message == "Valid GSTIN from Unknown"


def test_intrastate_splits_cgst_and_sgst() -> None:
    gst = calculate_gst(amount_paise=29900, customer_state="Karnataka")
    assert gst.net_amount == 25339
    assert gst.total_tax == 4561
    assert gst.cgst == 2281
    assert gst.sgst == 2281
    assert gst.igst == 0
    assert gst.hsn_code == "998314"
    assert gst.is_intrastate is True


def test_interstate_uses_igst() -> None:
    gst = calculate_gst(amount_paise=118000, customer_state="maharashtra")
    assert gst.net_amount == 100000
    assert gst.igst == 18000
    assert gst.cgst == gst.sgst == 0
    assert gst.is_intrastate is False


def test_negative_amount_is_rejected() -> None:
    with pytest.raises(ValueError):
        calculate_gst(amount_paise=-1, customer_state="karnataka")


@pytest.mark.parametrize(
    ("paise", "formatted"),
    [
        (0, "₹0.00"),
        (99900, "₹999.00"),
        (123456789, "₹12,34,567.89"),
        (10000000, "₹1,00,000.00"),
    ],
)
def test_format_inr_uses_indian_grouping(paise: int, formatted: str) -> None:
    assert format_inr(paise) == formatted


def test_invoice_number_format() -> None:
    number = generate_invoice_number(datetime(2026, 3, 5, tzinfo=UTC))
    assert number.startswith("INV2603")
    assert len(number) == 11
    assert number[7:].isdigit()


def test_billing_endpoints(client: TestClient) -> None:
    headers = user_headers(uuid.uuid4())

    res = client.post("/billing/gstin/validate", json={"gstin": "29abcde1234f1z5"}, headers=headers)
    assert res.status_code == 200
    assert res.json()["is_valid"] is True
    assert res.json()["state"] == "karnataka"

    res = client.post(
        "/billing/gst/calculate",
        json={"amount_paise": 118000, "customer_state": "Kerala"},
        headers=headers,
    )
    assert res.status_code == 200
    body = res.json()
    assert body["igst"] == 18000
    assert body["formatted_gross"] == "₹1,180.00"
    assert body["invoice_number"].startswith("INV")

"""
Checks on parsed document data. Pure functions; no I/O.

`validate_medical_data` runs type-specific completeness checks and scales the
confidence down when it finds problems (errors halve it, warnings cut it by 20%).
`find_duplicate` compares a parsed document with the user's other parsed reports.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date
from typing import Any

DEFAULT_CONFIDENCE = 0.8
DUPLICATE_THRESHOLD = 0.85

_LAB_STATUSES = frozenset({"normal", "abnormal", "critical", "high", "low"})
_VITAL_TYPES = frozenset(
    {
        "blood_pressure",
        "heart_rate",
        "temperature",
        "respiratory_rate",
        "oxygen_saturation",
        "weight",
        "height",
        "bmi",
    }
)
_DATE_KEYS = ("reportDate", "studyDate", "prescriptionDate", "collectionDate", "visitDate")

# Weights for the duplicate score; identical documents score 1.0.
_TYPE_WEIGHT = 0.3
_PATIENT_FIELD_WEIGHT = 0.2
_DATE_WEIGHT = 0.3


@dataclass
class ValidationResult:
    is_valid: bool = True
    confidence: float = DEFAULT_CONFIDENCE
    errors: list[str] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)


@dataclass(frozen=True)
class DuplicateMatch:
    report_id: Any
    title: str
    similarity: float


def _list(parsed: dict[str, Any], key: str) -> list[Any]:
    value = parsed.get(key)
    return value if isinstance(value, list) else []


def _entries(items: list[Any]) -> list[dict[str, Any]]:
    return [i if isinstance(i, dict) else {} for i in items]


def _validate_lab(parsed: dict[str, Any], result: ValidationResult) -> None:
    tests = _list(parsed, "tests")
    if not tests:
        result.errors.append("No lab tests found")
        return
    for index, test in enumerate(_entries(tests), start=1):
        if not test.get("name"):
            result.errors.append(f"Test {index}: Missing test name")
        if not test.get("value"):
            result.warnings.append(f"Test {index}: Missing test value")
        status = test.get("status")
        if status and status not in _LAB_STATUSES:
            result.warnings.append(f"Test {index}: Invalid status value")


def _validate_prescription(parsed: dict[str, Any], result: ValidationResult) -> None:
    medications = _list(parsed, "medications")
    if not medications:
        result.errors.append("No medications found")
        return
    for index, med in enumerate(_entries(medications), start=1):
        if not med.get("name"):
            result.errors.append(f"Medication {index}: Missing medication name")
        if not med.get("dosage"):
            result.warnings.append(f"Medication {index}: Missing dosage information")
        if not med.get("frequency"):
            result.warnings.append(f"Medication {index}: Missing frequency information")


def _validate_radiology(parsed: dict[str, Any], result: ValidationResult) -> None:
    if not parsed.get("study"):
        result.warnings.append("Missing study information")
    if not _list(parsed, "findings"):
        result.warnings.append("No findings documented")
    if not parsed.get("impression"):
        result.warnings.append("Missing radiologist impression")


def _validate_vitals(parsed: dict[str, Any], result: ValidationResult) -> None:
    vitals = _list(parsed, "vitals")
    if not vitals:
        result.errors.append("No vital signs found")
        return
    for index, vital in enumerate(_entries(vitals), start=1):
        vital_type = vital.get("type")
        if not vital_type:
            result.errors.append(f"Vital {index}: Missing vital type")
        elif vital_type not in _VITAL_TYPES:
            result.warnings.append(f"Vital {index}: Unknown vital type: {vital_type}")
        if not vital.get("value"):
            result.errors.append(f"Vital {index}: Missing value")


_TYPE_VALIDATORS = {
    "lab": _validate_lab,
    "prescription": _validate_prescription,
    "radiology": _validate_radiology,
    "vitals": _validate_vitals,
}


def validate_medical_data(parsed: dict[str, Any]) -> ValidationResult:
    confidence = parsed.get("confidence")
    result = ValidationResult(
        confidence=float(confidence)
        if isinstance(confidence, (int, float)) and confidence
        else DEFAULT_CONFIDENCE
    )

    report_type = parsed.get("reportType")
    if not report_type:
        result.errors.append("Missing report type")
    if not parsed.get("extractedAt"):
        result.warnings.append("Missing extraction timestamp")

    validator = _TYPE_VALIDATORS.get(str(report_type or ""))
    if validator is not None:
        validator(parsed, result)
    elif not _list(parsed, "sections"):
        result.warnings.append("No document sections identified")

    if result.errors:
        result.confidence *= 0.5
        result.is_valid = False
    elif result.warnings:
        result.confidence *= 0.8
    return result


def _report_date(parsed: dict[str, Any]) -> date | None:
    for key in _DATE_KEYS:
        value = parsed.get(key)
        if isinstance(value, str) and value:
            try:
                return date.fromisoformat(value[:10])
            except ValueError:
                return None
    return None


def similarity(first: dict[str, Any], second: dict[str, Any]) -> float:
    """
    Weighted share of matching attributes (type, patient name/DOB, report date).

    Returns 0.0 unless patient details or report dates can be compared; a shared
    report type alone is not evidence of a duplicate.
    """

    score = _TYPE_WEIGHT if first.get("reportType") == second.get("reportType") else 0.0
    compared = _TYPE_WEIGHT
    has_evidence = False

    first_patient, second_patient = first.get("patient"), second.get("patient")
    if isinstance(first_patient, dict) and isinstance(second_patient, dict):
        has_evidence = True
        for key in ("name", "dateOfBirth"):
            if first_patient.get(key) == second_patient.get(key):
                score += _PATIENT_FIELD_WEIGHT
            compared += _PATIENT_FIELD_WEIGHT

    first_date, second_date = _report_date(first), _report_date(second)
    if first_date and second_date:
        has_evidence = True
        days = abs((first_date - second_date).days)
        if days == 0:
            score += _DATE_WEIGHT
        elif days <= 1:
            score += 0.2
        elif days <= 7:
            score += 0.1
        compared += _DATE_WEIGHT

    if not has_evidence:
        return 0.0
    return round(score / compared, 4)


def find_duplicate(
    parsed: dict[str, Any], candidates: list[tuple[Any, str, dict[str, Any] | None]]
) -> DuplicateMatch | None:
    """First candidate `(report_id, title, parsed_data)` scoring above the threshold."""

    for report_id, title, other in candidates:
        if not other:
            continue
        score = similarity(parsed, other)
        if score > DUPLICATE_THRESHOLD:
            return DuplicateMatch(report_id=report_id, title=title, similarity=score)
    return None

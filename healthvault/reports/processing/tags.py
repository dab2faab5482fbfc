"""Tags derived from a parsed document. Pure functions; no I/O."""

from __future__ import annotations

import re
from typing import Any

_MEDICATION_CONDITIONS = (
    ("insulin", "diabetes"),
    ("metformin", "diabetes"),
    ("lisinopril", "hypertension"),
    ("amlodipine", "hypertension"),
    ("statin", "cholesterol"),
    ("atorvastatin", "cholesterol"),
)


def _items(parsed: dict[str, Any], key: str) -> list[dict[str, Any]]:
    value = parsed.get(key)
    if not isinstance(value, list):
        return []
    return [v for v in value if isinstance(v, dict)]


def generate_smart_tags(parsed: dict[str, Any] | None) -> list[str]:
    if not parsed:
        return []

    # dict keeps insertion order and de-duplicates.
    tags: dict[str, None] = {}
    report_type = parsed.get("reportType") or "general"
    tags[str(report_type)] = None

    if report_type == "lab":
        for test in _items(parsed, "tests"):
            status = test.get("status")
            if status in ("abnormal", "critical"):
                tags["abnormal"] = None
            if status == "critical":
                tags["critical"] = None
    elif report_type == "prescription":
        for med in _items(parsed, "medications"):
            name = str(med.get("name") or "").lower()
            if not name:
                continue
            for needle, condition in _MEDICATION_CONDITIONS:
                if needle in name:
                    tags[condition] = None
    elif report_type == "radiology":
        for finding in _items(parsed, "findings"):
            if finding.get("severity") in ("abnormal", "severe"):
                tags["abnormal"] = None

    facility = parsed.get("facility")
    if isinstance(facility, str) and facility:
        lowered = facility.lower()
        # "er" only as a whole word; as a substring it matches most facility names.
        words = set(re.findall(r"[a-z]+", lowered))
        if "emergency" in lowered or "er" in words:
            tags["emergency"] = None
        if "lab" in lowered:
            tags["laboratory"] = None
        if "imaging" in lowered or "radiology" in lowered:
            tags["imaging"] = None

    return list(tags)


def is_critical_result(parsed: dict[str, Any] | None) -> bool:
    if not parsed:
        return False
    return any(t.get("status") == "critical" for t in _items(parsed, "tests"))

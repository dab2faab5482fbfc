from __future__ import annotations

import json
from typing import Any

# Output structure per summary type. Every structure carries `summary` and
# `confidence_score`; the priority buckets differ by type.
_STRUCTURES: dict[str, dict[str, Any]] = {
    "comprehensive": {
        "summary": "Brief overall health status",
        "high_priority": {"findings": ["..."], "recommendations": ["..."]},
        "medium_priority": {"findings": ["..."], "recommendations": ["..."]},
        "low_priority": {"findings": ["..."], "recommendations": ["..."]},
        "confidence_score": 0.85,
    },
    "abnormal_findings": {
        "summary": "Brief overview of abnormal findings",
        "high_priority": {"findings": ["..."], "severity": "severe", "recommendations": ["..."]},
        "medium_priority": {
            "findings": ["..."],
            "severity": "moderate",
            "recommendations": ["..."],
        },
        "low_priority": {"findings": ["..."], "severity": "mild", "recommendations": ["..."]},
        "overall_concern_level": "mild|moderate|severe",
        "confidence_score": 0.9,
    },
    "trend_analysis": {
        "summary": "Brief overview of health trends",
        "high_priority": {"trends": ["..."], "timeframe": "...", "recommendations": ["..."]},
        "medium_priority": {"trends": ["..."], "timeframe": "...", "recommendations": ["..."]},
        "low_priority": {"trends": ["..."], "timeframe": "...", "recommendations": ["..."]},
        "confidence_score": 0.88,
    },
    "doctor_prep": {
        "summary": "Key topics to discuss with the doctor",
        "high_priority": {"topics": ["..."], "questions": ["..."], "symptoms": ["..."]},
        "medium_priority": {"topics": ["..."], "questions": ["..."], "symptoms": ["..."]},
        "low_priority": {"topics": ["..."], "questions": ["..."], "symptoms": ["..."]},
        "confidence_score": 0.92,
    },
}

_TASKS = {
    "comprehensive": (
        "Create a comprehensive health summary from the reports. Group findings by priority."
    ),
    "abnormal_findings": "Identify all abnormal findings in the reports, grouped by severity.",
    "trend_analysis": "Analyze the reports for trends over time, grouped by priority.",
    "doctor_prep": (
        "Prepare talking points for a doctor visit based on the reports, "
        "prioritized by importance."
    ),
}

SUMMARY_TITLES = {
    "comprehensive": "Comprehensive Health Summary",
    "abnormal_findings": "Abnormal Findings Analysis",
    "trend_analysis": "Health Trends Analysis",
    "doctor_prep": "Doctor Visit Preparation",
}


def build_summary_prompts(
    *,
    summary_type: str,
    reports: list[dict[str, Any]],
    custom_prompt: str | None = None,
) -> tuple[str, str]:
    """
    Create (system_prompt, user_prompt) for a stored summary.

    A custom prompt replaces the task description only; the output structure is always
    appended so responses stay parseable.
    """

    task = (custom_prompt or "").strip() or _TASKS[summary_type]
    structure = json.dumps(_STRUCTURES[summary_type], indent=2)

    system_prompt = "\n".join(
        [
            "You are a careful medical report analysis assistant for a personal health record.",
            "You must follow these rules:",
            "- Base every statement ONLY on the provided reports.",
            "- Do NOT invent diagnoses, medications, lab values or dates.",
            "- If information is missing, leave the list empty rather than guessing.",
            "- Use plain, calm language suitable for the patient.",
            "",
            task,
            "",
            "Output requirements:",
            "- Output MUST be valid JSON (and nothing else).",
            "- Use exactly this structure:",
            structure,
            "- confidence_score MUST be a number between 0 and 1.",
        ]
    )

    user_payload = {
        "summary_type": summary_type,
        "reports_chronological": reports,
        "reminders": [
            "Parsed data is machine-extracted and may be incomplete.",
            "Text marked [TRUNCATED] was shortened; do not infer the missing part.",
        ],
    }
    user_prompt = (
        "Summarize the following medical reports (JSON input).\n"
        "Return ONLY the JSON object described in the instructions.\n\n"
        f"{json.dumps(user_payload, ensure_ascii=False, default=str)}"
    )
    return system_prompt, user_prompt

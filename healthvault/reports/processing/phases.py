from __future__ import annotations

from dataclasses import dataclass
from typing import Literal

ProcessingPhase = Literal[
    "pending",
    "ocr_completed",
    "aws_processing_completed",
    "llm_enhancement",
    "completed",
    "failed",
]
DisplayStage = Literal[
    "initializing",
    "entity_extraction",
    "llm_enhancement",
    "merging_results",
    "completed",
    "error",
]

# Linear order; `failed` sits outside it and can be entered from anywhere.
PHASE_ORDER: tuple[str, ...] = (
    "pending",
    "ocr_completed",
    "aws_processing_completed",
    "llm_enhancement",
    "completed",
)
FAILED = "failed"

PHASE_PROGRESS = {
    "pending": 0,
    "ocr_completed": 25,
    "aws_processing_completed": 50,
    "llm_enhancement": 75,
    "completed": 100,
}


@dataclass(frozen=True)
class HybridProgress:
    ocr_complete: bool = False
    aws_entities_extracted: bool = False
    terminology_validated: bool = False
    llm_enhanced: bool = False
    results_merged: bool = False


def phase_rank(phase: str | None) -> int:
    if phase is None:
        return 0
    try:
        return PHASE_ORDER.index(phase)
    except ValueError:
        return -1


def is_valid_transition(current: str | None, new: str) -> bool:
    """Phases only move forward (or repeat); `failed` is always reachable."""

    if new == FAILED:
        return True
    if new not in PHASE_ORDER:
        return False
    if current == FAILED:
        # A retried report starts over from the beginning.
        return True
    return phase_rank(new) >= phase_rank(current)


def progress_for_phase(phase: str | None) -> HybridProgress:
    rank = phase_rank(phase)
    return HybridProgress(
        ocr_complete=rank >= 1,
        aws_entities_extracted=rank >= 2,
        terminology_validated=rank >= 2,
        llm_enhanced=rank >= 3,
        results_merged=rank >= 4,
    )


def display_stage(*, phase: str | None, parsing_status: str) -> DisplayStage:
    if parsing_status == "failed" or phase == FAILED:
        return "error"
    if parsing_status == "completed" or phase == "completed":
        return "completed"
    if phase == "ocr_completed":
        return "entity_extraction"
    if phase == "aws_processing_completed":
        return "llm_enhancement"
    if phase == "llm_enhancement":
        return "merging_results"
    return "initializing"

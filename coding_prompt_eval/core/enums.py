"""
Enumerations for the Coding Prompt Evaluation Harness

Enumeration Categories:
    CaseStatus   → Completeness of a case (derived, never set directly)
    Specialty    → Clinical specialty a gold-standard audit belongs to
    ModelOption  → Gemini models offered for test runs
    ActionState  → State machine of an evaluation round or improvement request

Author: Shubham Singh
Date: October 2026
"""

from enum import Enum


# =============================================================================
# STAGE 1: CASE STATUS
# =============================================================================


class CaseStatus(str, Enum):
    """
    Completeness status of a case.

    What it does:
        Tags a case as complete (gold standard and clinical note both
        present) or as one of the two half-ingested states.

    Why it exists:
        Only complete cases can be tested. The value is a pure function of
        which halves are present; use derive() rather than assigning it.
    """

    COMPLETE = "complete"
    TRUTH_ONLY = "incomplete_truth_only"
    NOTE_ONLY = "incomplete_note_only"

    @classmethod
    def derive(cls, has_ground_truth: bool, has_raw_text: bool) -> "CaseStatus":
        """
        Compute the status from the halves present on a case.

        Raises:
            ValueError: If neither half is present (such a case cannot exist)
        """
        if has_ground_truth and has_raw_text:
            return cls.COMPLETE
        if has_ground_truth:
            return cls.TRUTH_ONLY
        if has_raw_text:
            return cls.NOTE_ONLY
        raise ValueError("A case needs a ground truth or a raw note to have a status")

    @property
    def badge(self) -> str:
        """Short label for listings."""
        return {
            CaseStatus.COMPLETE: "Complete",
            CaseStatus.TRUTH_ONLY: "Truth Only",
            CaseStatus.NOTE_ONLY: "Note Only",
        }[self]

    @classmethod
    def from_string(cls, value: str) -> "CaseStatus":
        """
        Convert a string to CaseStatus, accepting the enum value or the
        short forms used on the command line ("complete", "truth-only",
        "note-only").

        Raises:
            ValueError: If the string matches no status
        """
        normalized = value.strip().lower().replace("-", "_")
        aliases = {
            "complete": cls.COMPLETE,
            "truth_only": cls.TRUTH_ONLY,
            "note_only": cls.NOTE_ONLY,
        }
        if normalized in aliases:
            return aliases[normalized]
        for status in cls:
            if status.value == normalized:
                return status
        raise ValueError(f"Unknown case status: {value}. Valid: {[s.value for s in cls]}")


# =============================================================================
# STAGE 2: SPECIALTY
# =============================================================================


class Specialty(str, Enum):
    """
    Clinical specialties an audit batch can be tagged with.

    Free strings are also accepted by the case repository; these are the
    values offered by the CLI.
    """

    UROLOGY = "Urology"
    CARDIOLOGY = "Cardiology"
    ORTHOPEDICS = "Orthopedics"
    GASTROENTEROLOGY = "Gastroenterology"
    GENERAL = "General"

    @classmethod
    def get_all_values(cls) -> list:
        """Return all specialty values as a list."""
        return [specialty.value for specialty in cls]


# =============================================================================
# STAGE 3: MODEL OPTIONS
# =============================================================================


class ModelOption(str, Enum):
    """Gemini models selectable for a test run."""

    GEMINI_2_0_FLASH = "gemini-2.0-flash-exp"
    GEMINI_1_5_PRO = "gemini-1.5-pro"
    GEMINI_1_5_FLASH = "gemini-1.5-flash"


# =============================================================================
# STAGE 4: ACTION STATE MACHINE
# =============================================================================
# One evaluation round:  IDLE → RUNNING → SUCCESS | FAILED → IDLE
# Improvement request:   IDLE → ANALYZING → SUCCESS | FAILED → IDLE


class ActionState(str, Enum):
    """State of a user-triggered action that calls the model service."""

    IDLE = "idle"
    RUNNING = "running"
    ANALYZING = "analyzing"
    SUCCESS = "success"
    FAILED = "failed"

    @property
    def is_in_flight(self) -> bool:
        """True while the model call has not resolved."""
        return self in (ActionState.RUNNING, ActionState.ANALYZING)

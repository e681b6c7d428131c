"""
Core Layer - Domain Models, Enums, Configuration and Exceptions

This layer contains PURE, side-effect-free components that form the
foundation of the evaluation harness.

Submodules:
    models.py     → Data structures (GroundTruth, Case, TestRun, ...)
    enums.py      → Enumerations (CaseStatus, Specialty, ActionState)
    config.py     → Configuration dataclass
    constants.py  → Identifier patterns and prompt templates
    exceptions.py → Domain-specific exceptions

Dependency Rule:
    This layer depends on NOTHING else in the package.
    All other layers may depend on this layer.

Author: Shubham Singh
Date: October 2026
"""

from coding_prompt_eval.core.models import (
    AuditEntry,
    BatchIngestionReport,
    Case,
    CaseMetadata,
    GroundTruth,
    NoteIngestionResult,
    Prediction,
    SavedPrompt,
    Score,
    TestRun,
    TestRunDraft,
    WriteResult,
)
from coding_prompt_eval.core.enums import ActionState, CaseStatus, ModelOption, Specialty
from coding_prompt_eval.core.config import EvaluationConfiguration
from coding_prompt_eval.core.exceptions import (
    CaseNotFoundError,
    CaseNotReadyError,
    CodingEvalError,
    ConfigurationError,
    EvaluationInProgressError,
    ExtractionParseError,
    LLMError,
    MissingCredentialError,
    ModelServiceError,
    PersistenceUnavailableError,
    RepositoryError,
)

__all__ = [
    # Models
    "AuditEntry",
    "BatchIngestionReport",
    "Case",
    "CaseMetadata",
    "GroundTruth",
    "NoteIngestionResult",
    "Prediction",
    "SavedPrompt",
    "Score",
    "TestRun",
    "TestRunDraft",
    "WriteResult",
    # Enums
    "ActionState",
    "CaseStatus",
    "ModelOption",
    "Specialty",
    # Configuration
    "EvaluationConfiguration",
    # Exceptions
    "CaseNotFoundError",
    "CaseNotReadyError",
    "CodingEvalError",
    "ConfigurationError",
    "EvaluationInProgressError",
    "ExtractionParseError",
    "LLMError",
    "MissingCredentialError",
    "ModelServiceError",
    "PersistenceUnavailableError",
    "RepositoryError",
]

"""
Coding Prompt Evaluation Module

A human-in-the-loop harness for measuring and refining medical-coding
prompts against audited gold standards.

Architecture Overview:
    coding_prompt_eval/
    ├── core/           → Domain models, enums, configuration (Layer 0 - Pure)
    ├── extraction/     → Record-number extraction (Layer 1 - Pure)
    ├── scoring/        → Prediction vs. gold comparison (Layer 1 - Pure)
    ├── repository/     → Cases, test-run ledger, prompts (Layer 2 - Infrastructure)
    ├── analysis/       → Aggregate views over the ledger (Layer 3 - Business Logic)
    ├── clients/        → LLM clients and model service (Layer 4 - Infrastructure)
    ├── improvement/    → Prompt refinement loop (Layer 5 - Business Logic)
    ├── pipeline.py     → Main orchestrator (Layer 6 - Public API)
    └── cli.py          → Command-line surface

Quick Start:
    from coding_prompt_eval import EvaluationHarness

    harness = EvaluationHarness.from_environment()
    harness.ingest_audit_pdf(pdf_bytes, "audit_march.pdf", specialty="Urology")
    outcome = harness.run_test("7654321")

Author: Shubham Singh
Date: October 2026
"""

__version__ = "1.0.0"
__author__ = "Shubham Singh"

# =============================================================================
# PUBLIC API EXPORTS
# =============================================================================

# Main Entry Point
from coding_prompt_eval.pipeline import ActionOutcome, EvaluationHarness

# Core Models
from coding_prompt_eval.core.models import (
    AuditEntry,
    Case,
    GroundTruth,
    Prediction,
    SavedPrompt,
    Score,
    TestRun,
)

# Enums
from coding_prompt_eval.core.enums import ActionState, CaseStatus, Specialty

# Configuration
from coding_prompt_eval.core.config import EvaluationConfiguration

# Pure operations
from coding_prompt_eval.extraction import extract_identifier
from coding_prompt_eval.scoring import normalize_code, score

__all__ = [
    # Main Entry Point (use this!)
    "EvaluationHarness",
    "ActionOutcome",
    # Core Models
    "AuditEntry",
    "Case",
    "GroundTruth",
    "Prediction",
    "SavedPrompt",
    "Score",
    "TestRun",
    # Enums
    "ActionState",
    "CaseStatus",
    "Specialty",
    # Configuration
    "EvaluationConfiguration",
    # Pure operations
    "extract_identifier",
    "normalize_code",
    "score",
]

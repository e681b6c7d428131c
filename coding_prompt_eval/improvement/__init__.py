"""
Improvement Layer - Prompt Refinement Loop

Submodules:
    prompt_builder.py → Analysis payload assembly (pure)
    orchestrator.py   → Request state machine, candidate accept/reject

Dependency Rule:
    This layer depends on: core, clients, repository
    This layer is used by: pipeline
"""

from coding_prompt_eval.improvement.prompt_builder import (
    FlaggedCaseDetail,
    ImprovementRequestBuilder,
    note_excerpt,
)
from coding_prompt_eval.improvement.orchestrator import PromptImprovementOrchestrator

__all__ = [
    "FlaggedCaseDetail",
    "ImprovementRequestBuilder",
    "note_excerpt",
    "PromptImprovementOrchestrator",
]

"""
Analysis Layer - Ledger Aggregation and Reporting Statistics

Submodules:
    aggregation.py → By-prompt and by-case roll-ups, summary, matrix, ranking

Dependency Rule:
    This layer depends on: core
    This layer is used by: improvement, pipeline, cli
"""

from coding_prompt_eval.analysis.aggregation import (
    CaseAggregate,
    CasePromptMatrix,
    PromptAggregate,
    RunSummary,
    aggregate_by_case,
    aggregate_by_prompt,
    as_percent,
    best_result,
    case_prompt_matrix,
    rank_prompts,
    run_quality,
    summarize_runs,
)

__all__ = [
    "CaseAggregate",
    "CasePromptMatrix",
    "PromptAggregate",
    "RunSummary",
    "aggregate_by_case",
    "aggregate_by_prompt",
    "as_percent",
    "best_result",
    "case_prompt_matrix",
    "rank_prompts",
    "run_quality",
    "summarize_runs",
]

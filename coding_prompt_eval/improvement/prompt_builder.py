"""
Improvement Request Builder - Analysis Payload for Prompt Refinement

This module assembles the free-text request that asks the model service to
rewrite a coding prompt. The payload carries:
    1. The current prompt text
    2. Summary statistics over the whole run history
    3. Detail for at most the 10 most recent runs
    4. A priority section per flagged case (gold, latest outcome, note excerpt)
    5. Editing guidelines (a seventh one when cases are flagged)

Pipeline Position:
    Ledger → Aggregation → [Request Builder] → Model Service → candidate prompt

Author: Shubham Singh
Date: October 2026
"""

from dataclasses import dataclass
from typing import List, Optional, Sequence

from coding_prompt_eval.core.constants import (
    FLAGGED_CASE_GUIDELINE,
    IMPROVEMENT_GUIDELINES,
    MATCH_MARK,
    MISS_MARK,
    NOTE_EXCERPT_CHARS,
    RECENT_RUNS_IN_REQUEST,
    TRUNCATION_MARKER,
)
from coding_prompt_eval.core.models import GroundTruth, TestRun


# =============================================================================
# STAGE 1: REQUEST TEMPLATES
# =============================================================================

IMPROVEMENT_REQUEST_TEMPLATE = """You are a prompt engineering expert specializing in medical coding AI systems.

## Current Prompt
{current_prompt}

## Test Results Analysis ({total_tests} tests)
- Primary ICD Match Rate: {match_rate}
- Commonly Missed CPT Codes: {missed_codes}
- Commonly Hallucinated CPT Codes: {hallucinated_codes}

## Detailed Test Results
{run_details}
{flagged_section}
## Your Task
Generate an IMPROVED version of the prompt that addresses the patterns of errors WITHOUT overfitting to specific cases.

Guidelines:
{guidelines}

Return ONLY the improved prompt text, nothing else."""

RUN_DETAIL_TEMPLATE = """
Test {index}:
- Gold Primary: {gold_primary} | Predicted: {pred_primary} | {mark}
- Gold CPTs: {gold_cpts}
- Predicted CPTs: {pred_cpts}
- Missed: {missed}
- Hallucinated: {hallucinated}
"""

FLAGGED_SECTION_TEMPLATE = """
## PRIORITY FOCUS CASES
The user has flagged the following cases as problematic. The improved prompt MUST address the issues with these specific cases.

{cases}

IMPORTANT: Analyze WHY the prompt failed on these specific cases and add targeted instructions to address these failures.
"""

FLAGGED_CASE_TEMPLATE = """
### Focus Case {index} (MRN: {case_key})

**Ground Truth:**
- Primary ICD: {gold_primary}
- CPT Codes: {gold_cpts}

**Last Test Result:**
- Predicted Primary: {pred_primary} {mark}
- Missed CPTs: {missed}
- Hallucinated CPTs: {hallucinated}

**Clinical Note (excerpt):**
```
{excerpt}
```
"""


# =============================================================================
# STAGE 2: INPUT TYPES
# =============================================================================


@dataclass(frozen=True)
class FlaggedCaseDetail:
    """
    Everything the request shows about one flagged case.

    Attributes:
        case_key: Patient record number
        raw_text: Clinical note text (excerpted in the request)
        ground_truth: Gold standard, if ingested
        latest_run: Most recent run on the case, if any
    """

    case_key: str
    raw_text: str
    ground_truth: Optional[GroundTruth] = None
    latest_run: Optional[TestRun] = None


def _join(codes: Sequence[str], empty: str = "None") -> str:
    return ", ".join(codes) or empty


def _distinct(runs: Sequence[TestRun], attribute: str) -> List[str]:
    seen = dict.fromkeys(code for run in runs for code in getattr(run, attribute))
    return list(seen)


def note_excerpt(text: str, limit: int = NOTE_EXCERPT_CHARS) -> str:
    """First `limit` characters, with an explicit marker when cut."""
    if len(text) <= limit:
        return text
    return text[:limit] + TRUNCATION_MARKER


# =============================================================================
# STAGE 3: REQUEST BUILDER
# =============================================================================


class ImprovementRequestBuilder:
    """
    Builds the prompt-refinement request text.

    What it does:
        Turns the current prompt, the run history and the flagged cases into
        one instruction for the model service. Pure string assembly; no
        model call happens here, so the payload can be inspected in tests.

    Example:
        >>> builder = ImprovementRequestBuilder()
        >>> payload = builder.build(current_prompt, ledger.list(), flagged=[])
    """

    def build(
        self,
        current_prompt: str,
        run_history: Sequence[TestRun],
        flagged: Sequence[FlaggedCaseDetail] = (),
    ) -> str:
        """
        Assemble the request.

        STAGE 3.1: Summary statistics over the full history
        STAGE 3.2: Detail of the most recent runs
        STAGE 3.3: Flagged-case section
        STAGE 3.4: Guidelines and final assembly

        Args:
            current_prompt: Prompt text to improve
            run_history: Runs, newest first
            flagged: Detail of operator-flagged cases

        Returns:
            Request text ready for the model service
        """
        # =====================================================================
        # STAGE 3.1: SUMMARY STATISTICS
        # =====================================================================
        total = len(run_history)
        matches = sum(1 for run in run_history if run.primary_match)
        match_rate = (matches / total * 100) if total else 0.0

        # =====================================================================
        # STAGE 3.2: RECENT RUN DETAIL
        # =====================================================================
        details = [
            RUN_DETAIL_TEMPLATE.format(
                index=index,
                gold_primary=run.gold_primary,
                pred_primary=run.pred_primary,
                mark=MATCH_MARK if run.primary_match else MISS_MARK,
                gold_cpts=_join(run.gold_cpts, empty=""),
                pred_cpts=_join(run.pred_cpts, empty=""),
                missed=_join(run.missed_cpts),
                hallucinated=_join(run.hallucinated_cpts),
            )
            for index, run in enumerate(run_history[:RECENT_RUNS_IN_REQUEST], 1)
        ]

        # =====================================================================
        # STAGE 3.3: FLAGGED CASES
        # =====================================================================
        flagged_section = self.build_flagged_section(flagged) if flagged else ""

        # =====================================================================
        # STAGE 3.4: GUIDELINES AND ASSEMBLY
        # =====================================================================
        guidelines = list(IMPROVEMENT_GUIDELINES)
        if flagged:
            guidelines.append(FLAGGED_CASE_GUIDELINE)

        return IMPROVEMENT_REQUEST_TEMPLATE.format(
            current_prompt=current_prompt,
            total_tests=total,
            match_rate=f"{match_rate:.1f}%",
            missed_codes=_join(_distinct(run_history, "missed_cpts")),
            hallucinated_codes=_join(_distinct(run_history, "hallucinated_cpts")),
            run_details="\n".join(details),
            flagged_section=flagged_section,
            guidelines="\n".join(f"{i}. {line}" for i, line in enumerate(guidelines, 1)),
        )

    def build_flagged_section(self, flagged: Sequence[FlaggedCaseDetail]) -> str:
        """Priority section listing each flagged case."""
        cases = []
        for index, detail in enumerate(flagged, 1):
            gold = detail.ground_truth
            run = detail.latest_run
            cases.append(
                FLAGGED_CASE_TEMPLATE.format(
                    index=index,
                    case_key=detail.case_key,
                    gold_primary=(gold.primary_code if gold else "") or "N/A",
                    gold_cpts=_join(gold.procedure_codes if gold else (), empty="N/A"),
                    pred_primary=(run.pred_primary if run else "") or "N/A",
                    mark=MATCH_MARK if run and run.primary_match else MISS_MARK,
                    missed=_join(run.missed_cpts if run else ()),
                    hallucinated=_join(run.hallucinated_cpts if run else ()),
                    excerpt=note_excerpt(detail.raw_text),
                )
            )
        return FLAGGED_SECTION_TEMPLATE.format(cases="\n".join(cases))

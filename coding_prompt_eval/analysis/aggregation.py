"""
Aggregation Engine - Roll-Ups of the Test Run Ledger

Pure functions over a sequence of TestRuns. Nothing is cached; every call
recomputes from the runs it is given.

Views:
    aggregate_by_prompt  → per prompt name: count, match rate, mean recall,
                           mean precision, overall score; ordered by the
                           prompt's most recent run, oldest first
    aggregate_by_case    → per case key: all results newest first plus the
                           best result (first maximal match + recall)
    summarize_runs       → totals across the whole history
    case_prompt_matrix   → latest score of every prompt on every case
    rank_prompts         → prompt groups ordered by overall score

Display Convention:
    Rates are kept as fractions. as_percent() converts for display with
    half-up rounding, so 0.6335 → 63 and 0.005 → 1.

Usage:
    from coding_prompt_eval.analysis import aggregate_by_prompt, as_percent

    for group in aggregate_by_prompt(ledger.list()):
        print(group.prompt_name, as_percent(group.overall_score))

Author: Shubham Singh
Date: October 2026
"""

import math
from dataclasses import dataclass, field
from datetime import datetime
from typing import Dict, List, Optional, Sequence, Union

from coding_prompt_eval.core.models import TestRun


# =============================================================================
# STAGE 1: RESULT TYPES
# =============================================================================


@dataclass(frozen=True)
class PromptAggregate:
    """
    Statistics for one prompt name.

    Attributes:
        prompt_name: Group key
        test_count: Runs in the group
        primary_matches: Runs whose primary code matched
        primary_match_rate: primary_matches / test_count
        mean_recall: Mean CPT recall
        mean_precision: Mean of (predicted − hallucinated) / predicted per run
        overall_score: (primary_match_rate + mean_recall) / 2
        latest_timestamp: Timestamp of the group's most recent run
        prompt_text: Prompt snapshot of the first run seen in the group
    """

    prompt_name: str
    test_count: int
    primary_matches: int
    primary_match_rate: float
    mean_recall: float
    mean_precision: float
    overall_score: float
    latest_timestamp: str
    prompt_text: str = ""


@dataclass(frozen=True)
class CaseAggregate:
    """All results of one case, newest first, with its best result."""

    case_key: str
    gold_primary: str
    gold_cpts: tuple
    results: tuple
    best: TestRun

    @property
    def best_score(self) -> float:
        return run_quality(self.best)


@dataclass(frozen=True)
class RunSummary:
    total: int
    primary_accuracy: float
    avg_cpt_recall: float


@dataclass
class CasePromptMatrix:
    """
    Latest score of each prompt on each case.

    scores[case_key][prompt_name] is round(((match ? 1 : 0) + recall) / 2 * 100),
    or 0 when that prompt was never run on the case.
    """

    prompt_names: List[str] = field(default_factory=list)
    scores: Dict[str, Dict[str, int]] = field(default_factory=dict)


# =============================================================================
# STAGE 2: HELPERS
# =============================================================================


def as_percent(rate: float, digits: int = 0) -> Union[int, float]:
    """
    Convert a fraction to a percentage rounded half up.

    Python's round() rounds half to even; the reports use half up.

    Example:
        >>> as_percent(0.6335)
        63
        >>> as_percent(0.125)
        13
    """
    scale = 10**digits
    value = math.floor(rate * 100 * scale + 0.5) / scale
    return int(value) if digits == 0 else value


def run_quality(run: TestRun) -> float:
    """Per-run quality: 1 for a primary match plus CPT recall (range 0 to 2)."""
    return (1.0 if run.primary_match else 0.0) + run.cpt_recall


def _moment(run: TestRun) -> datetime:
    return run.created_at


def _group_by_prompt(runs: Sequence[TestRun]) -> Dict[str, List[TestRun]]:
    groups: Dict[str, List[TestRun]] = {}
    for run in runs:
        groups.setdefault(run.prompt_name, []).append(run)
    return groups


def _aggregate_group(name: str, group: List[TestRun]) -> PromptAggregate:
    count = len(group)
    matches = sum(1 for run in group if run.primary_match)
    match_rate = matches / count
    mean_recall = sum(run.cpt_recall for run in group) / count
    mean_precision = sum(run.count_precision for run in group) / count
    latest = max(group, key=_moment)

    return PromptAggregate(
        prompt_name=name,
        test_count=count,
        primary_matches=matches,
        primary_match_rate=match_rate,
        mean_recall=mean_recall,
        mean_precision=mean_precision,
        overall_score=(match_rate + mean_recall) / 2,
        latest_timestamp=latest.timestamp,
        prompt_text=group[0].prompt_text,
    )


# =============================================================================
# STAGE 3: BY PROMPT
# =============================================================================


def aggregate_by_prompt(runs: Sequence[TestRun]) -> List[PromptAggregate]:
    """
    Group runs by prompt name.

    Args:
        runs: Ledger contents, any order

    Returns:
        One PromptAggregate per prompt name, ordered by latest run
        timestamp ascending. Ties keep first-seen order.
    """
    aggregates = [_aggregate_group(name, group) for name, group in _group_by_prompt(runs).items()]
    return sorted(aggregates, key=lambda a: datetime.fromisoformat(a.latest_timestamp))


def rank_prompts(runs: Sequence[TestRun]) -> List[PromptAggregate]:
    """Prompt groups ordered by overall score, best first. Ties keep first-seen order."""
    aggregates = [_aggregate_group(name, group) for name, group in _group_by_prompt(runs).items()]
    return sorted(aggregates, key=lambda a: a.overall_score, reverse=True)


# =============================================================================
# STAGE 4: BY CASE
# =============================================================================


def best_result(results: Sequence[TestRun]) -> Optional[TestRun]:
    """
    Run with the highest match + recall. On a tie the first one encountered
    wins; the sequence is not re-sorted.
    """
    best: Optional[TestRun] = None
    for run in results:
        if best is None or run_quality(run) > run_quality(best):
            best = run
    return best


def aggregate_by_case(runs: Sequence[TestRun]) -> List[CaseAggregate]:
    """
    Group runs by case key.

    Returns:
        One CaseAggregate per case, sorted by key. Each carries its results
        newest first and the best of them. Gold fields come from the first
        run seen for the case.
    """
    groups: Dict[str, List[TestRun]] = {}
    for run in runs:
        groups.setdefault(run.case_key, []).append(run)

    aggregates = []
    for key in sorted(groups):
        group = sorted(groups[key], key=_moment, reverse=True)
        first = groups[key][0]
        aggregates.append(
            CaseAggregate(
                case_key=key,
                gold_primary=first.gold_primary,
                gold_cpts=first.gold_cpts,
                results=tuple(group),
                best=best_result(group),
            )
        )
    return aggregates


# =============================================================================
# STAGE 5: SUMMARY AND MATRIX
# =============================================================================


def summarize_runs(runs: Sequence[TestRun]) -> RunSummary:
    """Totals across all runs; every rate is 0 for an empty history."""
    total = len(runs)
    if total == 0:
        return RunSummary(total=0, primary_accuracy=0.0, avg_cpt_recall=0.0)
    matches = sum(1 for run in runs if run.primary_match)
    return RunSummary(
        total=total,
        primary_accuracy=matches / total,
        avg_cpt_recall=sum(run.cpt_recall for run in runs) / total,
    )


def case_prompt_matrix(runs: Sequence[TestRun]) -> CasePromptMatrix:
    """
    Score every prompt on every case using each pair's most recent run.

    Returns:
        CasePromptMatrix with prompt names in first-seen order and cases
        sorted by key
    """
    latest: Dict[str, Dict[str, TestRun]] = {}
    for run in runs:
        per_prompt = latest.setdefault(run.case_key, {})
        current = per_prompt.get(run.prompt_name)
        if current is None or _moment(run) > _moment(current):
            per_prompt[run.prompt_name] = run

    prompt_names = list(dict.fromkeys(run.prompt_name for run in runs))
    matrix = CasePromptMatrix(prompt_names=prompt_names)
    for key in sorted(latest):
        row = {}
        for name in prompt_names:
            run = latest[key].get(name)
            row[name] = as_percent(run_quality(run) / 2) if run else 0
        matrix.scores[key] = row
    return matrix

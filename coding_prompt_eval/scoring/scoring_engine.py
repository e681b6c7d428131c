"""
Scoring Engine - Prediction vs Gold Standard Comparison

Compares the model's coding of one clinical note with the auditor's gold
standard and produces match/recall/precision metrics plus the code diffs.

Normalization:
    Every code is lower-cased and whitespace-trimmed before comparison.
    Procedure codes are compared as sets (duplicates collapse, order is
    irrelevant). A modifier makes a different code: "99214-25" and "99214"
    do not match each other.

Metrics:
    primary_match = normalize(gold.primary) == normalize(pred.primary)
    matched       = gold_set ∩ pred_set
    missed        = gold_set − pred_set
    hallucinated  = pred_set − gold_set
    recall        = |matched| / |gold_set|   (0 when gold_set is empty)
    precision     = |matched| / |pred_set|   (0 when pred_set is empty)

Pipeline Position:
    Model prediction → [Scoring] → Test Run Ledger
"""

from typing import Dict, Iterable

from coding_prompt_eval.core.models import GroundTruth, Prediction, Score


def normalize_code(code: str) -> str:
    """Lower-case and trim a code for comparison."""
    return (code or "").lower().strip()


def _normalized_set(codes: Iterable[str]) -> Dict[str, None]:
    # dict keeps first-seen order, which keeps diff lists stable for display
    return dict.fromkeys(normalize_code(c) for c in codes if normalize_code(c))


def score(gold: GroundTruth, pred: Prediction) -> Score:
    """
    Score one prediction against one gold standard.

    Args:
        gold: Auditor-verified coding
        pred: Model output

    Returns:
        Score with primary match, CPT recall/precision and diff lists

    Example:
        >>> gold = GroundTruth(primary_code="N20.0", procedure_codes=("52356",))
        >>> pred = Prediction(primary_code="n20.0 ", procedure_codes=("52000",))
        >>> result = score(gold, pred)
        >>> result.primary_match, result.cpt_recall, result.missed_cpts
        (True, 0.0, ('52356',))
    """
    primary_match = normalize_code(gold.primary_code) == normalize_code(pred.primary_code)

    gold_set = _normalized_set(gold.procedure_codes)
    pred_set = _normalized_set(pred.procedure_codes)

    matched = tuple(c for c in gold_set if c in pred_set)
    missed = tuple(c for c in gold_set if c not in pred_set)
    hallucinated = tuple(c for c in pred_set if c not in gold_set)

    recall = len(matched) / len(gold_set) if gold_set else 0.0
    precision = len(matched) / len(pred_set) if pred_set else 0.0

    return Score(
        primary_match=primary_match,
        cpt_recall=recall,
        cpt_precision=precision,
        matched_cpts=matched,
        missed_cpts=missed,
        hallucinated_cpts=hallucinated,
    )

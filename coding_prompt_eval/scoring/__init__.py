"""
Scoring Layer - Gold Standard Comparison

Submodules:
    scoring_engine.py → score(gold, prediction) and code normalization
"""

from coding_prompt_eval.scoring.scoring_engine import normalize_code, score

__all__ = ["normalize_code", "score"]

"""
Extraction Layer - Case Identifier Extraction

Submodules:
    identifier_extractor.py → Ordered-pattern patient record number lookup
"""

from coding_prompt_eval.extraction.identifier_extractor import extract_identifier

__all__ = ["extract_identifier"]

"""
Identifier Extractor - Patient Record Number Lookup

Derives a case key from unstructured text pulled out of a PDF. Patterns are
tried in priority order and the first match wins:

    1. "id #<digits>"                      (audit documents)
    2. "MRN: <digits>"
    3. "Medical Record Number: <digits>"
    4. any standalone 7-digit number       (fallback)

Known limitation:
    The 7-digit fallback will pick up phone numbers, dates written as digits
    or account numbers when a note carries no labelled record number. Such
    false positives are accepted; the operator sees the linked key in the
    batch report.

Pipeline Position:
    PDF text → [Identifier Extractor] → Case Repository
"""

from typing import Optional

from loguru import logger

from coding_prompt_eval.core.constants import IDENTIFIER_PATTERNS


def extract_identifier(text: str) -> Optional[str]:
    """
    Extract a patient record number from free text.

    Args:
        text: Text extracted from a clinical note or audit page

    Returns:
        The captured digits of the first matching pattern, or None

    Example:
        >>> extract_identifier("Encounter (id #42) ... 1234567")
        '42'
    """
    if not text:
        return None

    for pattern_name, pattern in IDENTIFIER_PATTERNS:
        match = pattern.search(text)
        if match:
            logger.debug(f"Identifier found | Pattern: {pattern_name} | Value: {match.group(1)}")
            return match.group(1)

    return None

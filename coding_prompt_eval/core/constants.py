"""
Constants for the Coding Prompt Evaluation Harness

Constant Categories:
    IDENTIFIER_PATTERNS   → Ordered regexes for patient record numbers
    PROMPT TEMPLATES      → Instructions sent to the model service
    IMPROVEMENT LIMITS    → Bounds on the prompt-improvement payload

Author: Shubham Singh
Date: October 2026
"""

import re
from typing import List, Pattern, Tuple


# =============================================================================
# STAGE 1: IDENTIFIER PATTERNS
# =============================================================================
# Tried in order; the first match wins. Audit-style documents carry
# "id #<digits>", plain clinical notes fall through to the looser patterns.

IDENTIFIER_PATTERNS: List[Tuple[str, Pattern[str]]] = [
    ("audit_id", re.compile(r"id\s*#\s*(\d+)", re.IGNORECASE)),
    ("mrn_label", re.compile(r"MRN:?\s*(\d+)", re.IGNORECASE)),
    ("medical_record_label", re.compile(r"Medical Record (?:Number|#):?\s*(\d+)", re.IGNORECASE)),
    ("seven_digit_fallback", re.compile(r"\b(\d{7})\b")),
]


# =============================================================================
# STAGE 2: MODEL SERVICE PROMPTS
# =============================================================================

# -----------------------------------------------------------------------------
# 2.1 Audit PDF extraction
# -----------------------------------------------------------------------------
AUDIT_EXTRACTION_PROMPT = """
Analyze this Medical Coding Audit PDF. It contains multiple encounters.

For EACH encounter (indicated by a Green Header or 'Details' section):
1. **mrn**: Extract the 'Medical Record Number' from the Details section.
2. **audit_filename_ref**: Extract the filename string from the Green Header bar.
3. **cpt_codes**: Look at the 'Codes' table. Look ONLY at the 'Auditor' column (Right Side).
   - Combine the Code + Modifier column. Example: If Code is '99214' and Mod is '25', output '99214-25'.
   - IGNORE the 'Office Transcription' column completely.
4. **primary_icd**: The FIRST ICD-10 code listed in the 'Auditor' column.
5. **secondary_icds**: Any other ICD-10 codes in the 'Auditor' column (after the first).
6. **auditor_notes**: Text from 'Auditor notes' section.

Return a JSON array of objects matching this schema:
[
  {
    "mrn": "string",
    "audit_filename_ref": "string",
    "primary_icd": "string",
    "secondary_icds": ["string"],
    "cpt_codes": ["string"],
    "auditor_notes": "string"
  }
]
"""

# -----------------------------------------------------------------------------
# 2.2 Clinical note text extraction
# -----------------------------------------------------------------------------
TEXT_EXTRACTION_PROMPT = """
Extract ALL text from this PDF document exactly as it appears.
Preserve the formatting and structure as much as possible.
Return only the extracted text, no additional commentary.
"""

# -----------------------------------------------------------------------------
# 2.3 Coding run wrapper
# -----------------------------------------------------------------------------
CODING_REQUEST_TEMPLATE = """
{prompt_text}

---

**Clinical Note:**
{note_text}

---

Return your analysis as JSON matching this schema:
{{
  "primary_icd": "string - the primary ICD-10 code",
  "secondary_icds": ["array of secondary ICD-10 codes"],
  "cpt_codes": ["array of CPT codes with modifiers"],
  "reasoning": "string - detailed explanation of your coding decisions"
}}
"""

DEFAULT_CODING_PROMPT = """You are an expert Medical Coder certified in CPT and ICD-10-CM coding.

Analyze the provided medical note and assign the correct codes following CMS guidelines.

Instructions:
1. Identify the PRIMARY diagnosis (the main reason for the encounter)
2. Identify any SECONDARY diagnoses documented
3. Identify all CPT codes for procedures and services performed
4. Include appropriate modifiers when needed

Provide your reasoning for each code selection."""

DEFAULT_PROMPT_NAME = "Custom Prompt"


# =============================================================================
# STAGE 3: PROMPT IMPROVEMENT
# =============================================================================

RECENT_RUNS_IN_REQUEST = 10
"""Maximum number of individual runs listed in an improvement request."""

NOTE_EXCERPT_CHARS = 2000
"""Characters of a flagged case's clinical note included in the request."""

TRUNCATION_MARKER = "...[truncated]"

IMPROVED_PROMPT_PREFIX = "Improved"

IMPROVEMENT_GUIDELINES: List[str] = [
    "If primary ICD matching is low, add clearer instructions about identifying the main reason for encounter",
    "If certain CPT codes are commonly missed, add guidance about those procedure categories",
    "If hallucinations are common, add instructions to only code what's explicitly documented",
    "Keep improvements GENERALIZABLE - don't reference specific codes unless they represent a pattern",
    "Maintain the same output format requirements",
    "Add clarifying instructions where the original prompt was ambiguous",
]

FLAGGED_CASE_GUIDELINE = (
    "PAY SPECIAL ATTENTION to the focus cases - understand what went wrong "
    "and add specific guidance to prevent those errors"
)

MATCH_MARK = "✓"
MISS_MARK = "✗"

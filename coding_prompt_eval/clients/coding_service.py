"""
Coding Model Service - The Four Calls the Harness Makes to the LLM

Wraps any LLMClientProtocol implementation with the harness's prompts and
strict response decoding.

Operations:
    extract_structured_entries(pdf_bytes) → List[AuditEntry]
    extract_text(pdf_bytes)               → str
    run_coding(note_text, prompt_text)    → Prediction
    propose_improved_prompt(payload_text) → str (trimmed, otherwise unchecked)

Each is one request/response with no retry. Parse failures raise
ExtractionParseError; transport failures raise LLMError.

Author: Shubham Singh
Date: October 2026
"""

from typing import List

from loguru import logger

from coding_prompt_eval.clients.llm_client import PDF_MIME_TYPE, LLMClientProtocol
from coding_prompt_eval.clients.schemas import parse_audit_entries, parse_prediction
from coding_prompt_eval.core.constants import (
    AUDIT_EXTRACTION_PROMPT,
    CODING_REQUEST_TEMPLATE,
    TEXT_EXTRACTION_PROMPT,
)
from coding_prompt_eval.core.models import AuditEntry, Prediction


class CodingModelService:
    """
    Domain-level facade over an LLM client.

    What it does:
        Builds the request for each operation, sends it through the client
        and decodes the answer into domain models.

    Why it exists:
        1. Prompts and parsing live in one place
        2. Tests swap the client for a scripted fake; nothing else changes

    Example:
        >>> service = CodingModelService(GeminiClient(api_key="..."))
        >>> prediction = service.run_coding(note_text, DEFAULT_CODING_PROMPT)
    """

    def __init__(self, client: LLMClientProtocol):
        self._client = client

    @property
    def model_name(self) -> str:
        return self._client.model_name

    def extract_structured_entries(self, pdf_bytes: bytes) -> List[AuditEntry]:
        """
        Extract gold-standard entries from an audit PDF.

        Raises:
            ExtractionParseError: If the answer is not a JSON array of entries
            LLMError: If the call fails
        """
        response = self._client.generate(
            AUDIT_EXTRACTION_PROMPT,
            document=pdf_bytes,
            mime_type=PDF_MIME_TYPE,
            json_output=True,
        )
        entries = parse_audit_entries(response)
        logger.info(f"Audit entries extracted | Count: {len(entries)}")
        return entries

    def extract_text(self, pdf_bytes: bytes) -> str:
        """Extract the full text of a clinical note PDF."""
        text = self._client.generate(
            TEXT_EXTRACTION_PROMPT, document=pdf_bytes, mime_type=PDF_MIME_TYPE
        )
        logger.debug(f"Note text extracted | Chars: {len(text)}")
        return text

    def run_coding(self, note_text: str, prompt_text: str) -> Prediction:
        """
        Ask the model to code one clinical note with the given prompt.

        Raises:
            ExtractionParseError: If the answer is not a prediction object
            LLMError: If the call fails
        """
        request = CODING_REQUEST_TEMPLATE.format(prompt_text=prompt_text, note_text=note_text)
        response = self._client.generate(request, json_output=True)
        return parse_prediction(response)

    def propose_improved_prompt(self, payload_text: str) -> str:
        """Send an improvement request and return the trimmed answer."""
        return self._client.generate(payload_text).strip()

"""
Clients Layer - External Model Service

This layer provides clean abstractions over LLM providers (Gemini, OpenAI)
and the harness-specific calls built on top of them.

Submodules:
    llm_client.py     → Protocol and base implementation
    gemini_client.py  → Google Gemini implementation
    openai_client.py  → OpenAI implementation
    schemas.py        → Pydantic response schemas and strict decoding
    coding_service.py → Audit extraction, text extraction, coding, improvement

Author: Shubham Singh
Date: October 2026
"""

from coding_prompt_eval.clients.llm_client import (
    BaseLLMClient,
    LLMClientProtocol,
)
from coding_prompt_eval.clients.gemini_client import GeminiClient
from coding_prompt_eval.clients.openai_client import OpenAIClient
from coding_prompt_eval.clients.schemas import (
    AuditEntryPayload,
    CodingPredictionPayload,
    parse_audit_entries,
    parse_prediction,
    strip_code_fence,
)
from coding_prompt_eval.clients.coding_service import CodingModelService

__all__ = [
    "BaseLLMClient",
    "LLMClientProtocol",
    "GeminiClient",
    "OpenAIClient",
    "AuditEntryPayload",
    "CodingPredictionPayload",
    "parse_audit_entries",
    "parse_prediction",
    "strip_code_fence",
    "CodingModelService",
]

"""
Gemini Client

Sends harness prompts to Google Gemini through google-generativeai. PDFs
(audit sheets, clinical notes) travel as an inline data part placed
before the instruction.

Author: Shubham Singh
Date: October 2026
"""

from typing import Any, List, Optional, Union

from loguru import logger

from coding_prompt_eval.clients.llm_client import BaseLLMClient
from coding_prompt_eval.core.enums import ModelOption
from coding_prompt_eval.core.exceptions import (
    LLMContentFilteredError,
    LLMError,
    LLMRateLimitError,
)


PROVIDER = "gemini"

# Operative notes describe anatomy and injuries; default filters block them.
UNFILTERED_CATEGORIES = (
    "HARM_CATEGORY_HARASSMENT",
    "HARM_CATEGORY_HATE_SPEECH",
    "HARM_CATEGORY_SEXUALLY_EXPLICIT",
    "HARM_CATEGORY_DANGEROUS_CONTENT",
)

RATE_LIMIT_MARKERS = ("429", "quota", "rate")
FILTER_MARKERS = ("blocked", "safety")


class GeminiClient(BaseLLMClient):
    """
    Gemini implementation of the model client.

    What it does:
        Builds a GenerativeModel with filtering disabled for clinical text,
        attaches documents inline, and asks for a JSON body when the
        caller needs structured output.

    Why it exists:
        Gemini is the default provider and the only one the audit and note
        PDF flows were first built against.

    Example:
        >>> client = GeminiClient(api_key="...")
        >>> client.generate(TEXT_EXTRACTION_PROMPT, document=pdf_bytes)
    """

    def __init__(
        self,
        api_key: str,
        model_name: str = ModelOption.GEMINI_2_0_FLASH.value,
        rate_limit_delay: float = 0.5,
    ):
        super().__init__(api_key=api_key, model_name=model_name, rate_limit_delay=rate_limit_delay)
        self._model = self._build_model()
        logger.info(f"GeminiClient ready | Model: {model_name}")

    def _build_model(self) -> Any:
        try:
            import google.generativeai as genai
        except ImportError as e:
            raise LLMError(
                "google-generativeai is not installed (pip install google-generativeai)",
                provider=PROVIDER,
            ) from e

        try:
            genai.configure(api_key=self._api_key)
            return genai.GenerativeModel(
                model_name=self._model_name,
                safety_settings=[
                    {"category": category, "threshold": "BLOCK_NONE"}
                    for category in UNFILTERED_CATEGORIES
                ],
            )
        except Exception as e:
            raise LLMError(
                f"Could not set up Gemini model {self._model_name}: {e}",
                provider=PROVIDER,
                original_error=e,
            ) from e

    def _call_api(
        self, prompt: str, document: Optional[bytes], mime_type: str, json_output: bool
    ) -> str:
        contents: Union[str, List[Any]] = prompt
        if document:
            contents = [{"mime_type": mime_type, "data": document}, prompt]
        generation_config = {"response_mime_type": "application/json"} if json_output else None

        try:
            response = self._model.generate_content(contents, generation_config=generation_config)
        except Exception as e:
            raise self._classify(e) from e

        feedback = getattr(response, "prompt_feedback", None)
        if feedback is not None and feedback.block_reason:
            raise LLMContentFilteredError(provider=PROVIDER, reason=str(feedback.block_reason))

        text = self._first_text(response)
        if not text:
            raise LLMError("Gemini answered with no text", provider=PROVIDER)
        return text

    @staticmethod
    def _first_text(response: Any) -> Optional[str]:
        for candidate in getattr(response, "candidates", None) or []:
            content = getattr(candidate, "content", None)
            parts = getattr(content, "parts", None) or []
            texts = [part.text for part in parts if getattr(part, "text", None)]
            if texts:
                return "".join(texts)
        return None

    @staticmethod
    def _classify(error: Exception) -> LLMError:
        detail = str(error).lower()
        if any(marker in detail for marker in RATE_LIMIT_MARKERS):
            return LLMRateLimitError(provider=PROVIDER, original_error=error)
        if any(marker in detail for marker in FILTER_MARKERS):
            return LLMContentFilteredError(provider=PROVIDER, reason=str(error))
        return LLMError(f"Gemini request failed: {error}", provider=PROVIDER, original_error=error)

    @property
    def provider_name(self) -> str:
        return PROVIDER

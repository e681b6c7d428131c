"""
OpenAI Client

Chat-completions implementation of the model client. Documents are sent
as a base64 `file` content part ahead of the instruction text.

Author: Shubham Singh
Date: October 2026
"""

import base64
from typing import Any, Dict, List, Optional, Union

from loguru import logger

from coding_prompt_eval.clients.llm_client import BaseLLMClient
from coding_prompt_eval.core.exceptions import (
    LLMContentFilteredError,
    LLMError,
    LLMRateLimitError,
)


PROVIDER = "openai"
TEMPERATURE = 0.2
MAX_TOKENS = 4096

RATE_LIMIT_MARKERS = ("429", "quota", "rate")
FILTER_MARKERS = ("content_filter", "policy")


class OpenAIClient(BaseLLMClient):
    """
    OpenAI implementation of the model client, selected with
    LLM_PROVIDER=openai. Structured calls use the json_object response
    format.
    """

    def __init__(self, api_key: str, model_name: str = "gpt-4o", rate_limit_delay: float = 0.5):
        super().__init__(api_key=api_key, model_name=model_name, rate_limit_delay=rate_limit_delay)
        self._client = self._build_client()
        logger.info(f"OpenAIClient ready | Model: {model_name}")

    def _build_client(self) -> Any:
        try:
            from openai import OpenAI
        except ImportError as e:
            raise LLMError("openai is not installed (pip install openai)", provider=PROVIDER) from e

        try:
            return OpenAI(api_key=self._api_key)
        except Exception as e:
            raise LLMError(
                f"Could not set up OpenAI client: {e}", provider=PROVIDER, original_error=e
            ) from e

    @staticmethod
    def _message_content(
        prompt: str, document: Optional[bytes], mime_type: str
    ) -> Union[str, List[Dict[str, Any]]]:
        if not document:
            return prompt
        data_url = f"data:{mime_type};base64,{base64.b64encode(document).decode('ascii')}"
        return [
            {"type": "file", "file": {"filename": "document.pdf", "file_data": data_url}},
            {"type": "text", "text": prompt},
        ]

    def _call_api(
        self, prompt: str, document: Optional[bytes], mime_type: str, json_output: bool
    ) -> str:
        request: Dict[str, Any] = {
            "model": self._model_name,
            "messages": [
                {"role": "user", "content": self._message_content(prompt, document, mime_type)}
            ],
            "temperature": TEMPERATURE,
            "max_tokens": MAX_TOKENS,
        }
        if json_output:
            request["response_format"] = {"type": "json_object"}

        try:
            response = self._client.chat.completions.create(**request)
        except Exception as e:
            raise self._classify(e) from e

        if not response.choices:
            raise LLMError("OpenAI answered with no choices", provider=PROVIDER)
        choice = response.choices[0]
        if choice.finish_reason == "content_filter":
            raise LLMContentFilteredError(provider=PROVIDER, reason="content_filter")
        if not choice.message.content:
            raise LLMError("OpenAI answered with no text", provider=PROVIDER)
        return choice.message.content

    @staticmethod
    def _classify(error: Exception) -> LLMError:
        detail = str(error).lower()
        if any(marker in detail for marker in RATE_LIMIT_MARKERS):
            return LLMRateLimitError(provider=PROVIDER, original_error=error)
        if any(marker in detail for marker in FILTER_MARKERS):
            return LLMContentFilteredError(provider=PROVIDER, reason=str(error))
        return LLMError(f"OpenAI request failed: {error}", provider=PROVIDER, original_error=error)

    @property
    def provider_name(self) -> str:
        return PROVIDER

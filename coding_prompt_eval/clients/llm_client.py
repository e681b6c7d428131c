"""
Model Client Contract and Shared Call Handling

Every model call in the harness (audit extraction, note transcription,
coding runs, prompt refinement) goes through one of these clients.

Layout:
    - LLMClientProtocol: what the harness depends on
    - BaseLLMClient: pacing, exception wrapping and call counters
    - GeminiClient / OpenAIClient: one provider request each

Call Policy:
    A call is attempted once. Failures are classified (rate limit,
    content filter, generic) and raised to the caller; whether to
    re-trigger an action is the operator's decision.

Author: Shubham Singh
Date: October 2026
"""

import time
from abc import ABC, abstractmethod
from typing import Optional, Protocol, runtime_checkable

from loguru import logger

from coding_prompt_eval.core.exceptions import LLMError


PDF_MIME_TYPE = "application/pdf"


# =============================================================================
# STAGE 1: CLIENT CONTRACT
# =============================================================================


@runtime_checkable
class LLMClientProtocol(Protocol):
    """
    The single generation call the harness needs from a model provider.

    What it does:
        Takes an instruction plus an optional attached document (an audit
        sheet or a note PDF) and returns the model's text answer.

    Why it exists:
        The coding service and the harness are written against this
        contract, so tests hand in a scripted client and the provider is
        picked from configuration.
    """

    def generate(
        self,
        prompt: str,
        document: Optional[bytes] = None,
        mime_type: str = PDF_MIME_TYPE,
        json_output: bool = False,
    ) -> str:
        """
        Args:
            prompt: Instruction text
            document: Raw bytes of an attached file
            mime_type: MIME type of the attached file
            json_output: Request a JSON response body

        Raises:
            LLMError: The call did not produce an answer
        """
        ...

    @property
    def model_name(self) -> str:
        ...

    @property
    def provider_name(self) -> str:
        ...


# =============================================================================
# STAGE 2: SHARED CLIENT BEHAVIOUR
# =============================================================================


class BaseLLMClient(ABC):
    """
    Base for provider clients.

    What it does:
        Spaces calls at least rate_limit_delay seconds apart, turns any
        unexpected SDK exception into LLMError, and counts successes and
        failures. Subclasses only translate one request into the
        provider's SDK call in _call_api.
    """

    def __init__(self, api_key: str, model_name: str, rate_limit_delay: float = 0.5):
        self._api_key = api_key
        self._model_name = model_name
        self._rate_limit_delay = rate_limit_delay

        self._previous_call_at: Optional[float] = None
        self._succeeded = 0
        self._failed = 0

    # =========================================================================
    # STAGE 3: GENERATION
    # =========================================================================

    def generate(
        self,
        prompt: str,
        document: Optional[bytes] = None,
        mime_type: str = PDF_MIME_TYPE,
        json_output: bool = False,
    ) -> str:
        """Pace, call the provider once, and record the outcome."""
        self._wait_for_slot()

        try:
            answer = self._call_api(prompt, document, mime_type, json_output)
        except LLMError as e:
            self._failed += 1
            logger.error(f"Model call failed | Provider: {self.provider_name} | {e.message}")
            raise
        except Exception as e:
            self._failed += 1
            logger.error(f"Model call raised | Provider: {self.provider_name} | {type(e).__name__}: {e}")
            raise LLMError(str(e), provider=self.provider_name, original_error=e) from e

        self._succeeded += 1
        logger.debug(
            f"Model call complete | Provider: {self.provider_name} | Model: {self._model_name} | "
            f"Document: {'yes' if document else 'no'} | Answer chars: {len(answer)}"
        )
        return answer

    @abstractmethod
    def _call_api(
        self, prompt: str, document: Optional[bytes], mime_type: str, json_output: bool
    ) -> str:
        """Send one request to the provider and return its text."""

    @property
    @abstractmethod
    def provider_name(self) -> str:
        ...

    @property
    def model_name(self) -> str:
        return self._model_name

    def _wait_for_slot(self) -> None:
        if self._previous_call_at is not None:
            remaining = self._rate_limit_delay - (time.time() - self._previous_call_at)
            if remaining > 0:
                time.sleep(remaining)
        self._previous_call_at = time.time()

    # =========================================================================
    # STAGE 4: CALL COUNTERS
    # =========================================================================

    @property
    def total_calls(self) -> int:
        """Successful calls."""
        return self._succeeded

    @property
    def failed_calls(self) -> int:
        return self._failed

    @property
    def success_rate(self) -> float:
        """Share of successful calls as a percentage; 100 before any call."""
        attempted = self._succeeded + self._failed
        if attempted == 0:
            return 100.0
        return self._succeeded / attempted * 100

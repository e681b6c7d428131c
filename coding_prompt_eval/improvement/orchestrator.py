"""
Prompt-Improvement Orchestrator - Closing the Evaluation Loop

Feeds aggregate failure patterns and operator-flagged cases back to the
model service and holds the revised prompt for the operator to accept or
reject.

State Machine:
    IDLE → ANALYZING → SUCCESS (candidate held) → accept()/reject() → IDLE
                     → FAILED  (error kept)     → reset()           → IDLE

Only one improvement request may be in flight at a time; a second call
while ANALYZING raises EvaluationInProgressError.

Naming:
    An accepted candidate is saved as "Improved v<n>" (see
    PromptLibrary.next_improved_name).

Author: Shubham Singh
Date: October 2026
"""

import threading
from typing import Callable, Optional, Sequence

from loguru import logger

from coding_prompt_eval.clients.coding_service import CodingModelService
from coding_prompt_eval.core.enums import ActionState
from coding_prompt_eval.core.exceptions import CodingEvalError, EvaluationInProgressError
from coding_prompt_eval.core.models import SavedPrompt, TestRun
from coding_prompt_eval.improvement.prompt_builder import (
    FlaggedCaseDetail,
    ImprovementRequestBuilder,
)
from coding_prompt_eval.repository.prompt_library import PromptLibrary


IMPROVEMENT_REQUEST_KEY = "improvement"


class PromptImprovementOrchestrator:
    """
    Runs improvement requests and manages the candidate prompt.

    What it does:
        1. Builds the analysis payload (ImprovementRequestBuilder)
        2. Sends it through the coding model service
        3. Holds the trimmed answer as the candidate prompt
        4. On accept, saves it to the prompt library under the next
           "Improved v<n>" name

    Why a service factory:
        The model service is resolved when a request starts, so a missing
        API key fails that request (FAILED) instead of construction.

    Example:
        >>> orchestrator = PromptImprovementOrchestrator(lambda: service, library)
        >>> candidate = orchestrator.propose_improvement(prompt, ledger.list(), [])
        >>> saved = orchestrator.accept()
    """

    def __init__(
        self,
        service_factory: Callable[[], CodingModelService],
        prompt_library: PromptLibrary,
        builder: Optional[ImprovementRequestBuilder] = None,
    ):
        self._service_factory = service_factory
        self._library = prompt_library
        self._builder = builder or ImprovementRequestBuilder()

        self._lock = threading.Lock()
        self._state = ActionState.IDLE
        self._candidate: Optional[str] = None
        self._last_error: Optional[str] = None

    # =========================================================================
    # STAGE 1: PROPOSE
    # =========================================================================

    def propose_improvement(
        self,
        current_prompt: str,
        run_history: Sequence[TestRun],
        flagged_cases: Sequence[FlaggedCaseDetail] = (),
    ) -> str:
        """
        Request a revised prompt.

        Args:
            current_prompt: Prompt text to improve
            run_history: Ledger contents, newest first
            flagged_cases: Detail for operator-flagged cases

        Returns:
            The candidate prompt text (also held until accept/reject)

        Raises:
            EvaluationInProgressError: If a request is already in flight
            CodingEvalError: If the model call fails (state becomes FAILED)
        """
        with self._lock:
            if self._state.is_in_flight:
                raise EvaluationInProgressError(IMPROVEMENT_REQUEST_KEY)
            self._state = ActionState.ANALYZING
            self._candidate = None
            self._last_error = None

        logger.info(
            f"Requesting prompt improvement | Runs: {len(run_history)} | "
            f"Flagged: {len(flagged_cases)}"
        )

        try:
            payload = self._builder.build(current_prompt, run_history, flagged_cases)
            candidate = self._service_factory().propose_improved_prompt(payload)
        except CodingEvalError as e:
            with self._lock:
                self._state = ActionState.FAILED
                self._last_error = e.message
            logger.error(f"Prompt improvement failed | {e}")
            raise

        with self._lock:
            self._candidate = candidate
            self._state = ActionState.SUCCESS
        logger.info(f"Improved prompt received | Chars: {len(candidate)}")
        return candidate

    # =========================================================================
    # STAGE 2: OPERATOR DECISION
    # =========================================================================

    def accept(self, name: Optional[str] = None) -> SavedPrompt:
        """
        Save the held candidate and return to IDLE.

        Args:
            name: Explicit name; defaults to the next "Improved v<n>"

        Raises:
            ValueError: If no candidate is held
        """
        if self._state is not ActionState.SUCCESS or self._candidate is None:
            raise ValueError("No improved prompt to accept")

        saved = self._library.save(name or self._library.next_improved_name(), self._candidate)
        logger.info(f"Improved prompt accepted | Name: {saved.name}")
        self.reset()
        return saved

    def reject(self) -> None:
        """Discard the held candidate."""
        if self._candidate is not None:
            logger.info("Improved prompt rejected")
        self.reset()

    def reset(self) -> None:
        with self._lock:
            if self._state.is_in_flight:
                raise EvaluationInProgressError(IMPROVEMENT_REQUEST_KEY)
            self._state = ActionState.IDLE
            self._candidate = None
            self._last_error = None

    # =========================================================================
    # STAGE 3: PROPERTIES
    # =========================================================================

    @property
    def state(self) -> ActionState:
        return self._state

    @property
    def candidate(self) -> Optional[str]:
        return self._candidate

    @property
    def last_error(self) -> Optional[str]:
        return self._last_error

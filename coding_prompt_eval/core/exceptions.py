"""
Domain Exceptions for the Coding Prompt Evaluation Harness

This module defines all custom exceptions used throughout the evaluation
harness. Well-defined exceptions enable:
    1. Clear error categorization for the operator-facing status message
    2. Specific catch blocks at the boundary of each user action
    3. Rich error context for troubleshooting

Exception Hierarchy:
    CodingEvalError (base)
    ├── ConfigurationError          → Invalid configuration
    │   └── MissingCredentialError  → No API key for the model service
    ├── ModelServiceError           → External model service failures
    │   ├── LLMError                → Network/service error from the model call
    │   │   ├── LLMRateLimitError
    │   │   └── LLMContentFilteredError
    │   └── ExtractionParseError    → Response not in the expected shape
    ├── RepositoryError             → Case/ledger/persistence errors
    │   ├── PersistenceUnavailableError
    │   ├── CaseNotFoundError
    │   └── CaseNotReadyError
    └── EvaluationInProgressError   → Duplicate request while one is in flight

Usage:
    from coding_prompt_eval.core.exceptions import ExtractionParseError

    try:
        prediction = service.run_coding(note_text, prompt_text)
    except ExtractionParseError as e:
        logger.error(f"Unparseable prediction: {e.message}")

Author: Shubham Singh
Date: October 2026
"""

from typing import Optional


# =============================================================================
# STAGE 1: BASE EXCEPTION
# =============================================================================
# All domain exceptions inherit from this base class.


class CodingEvalError(Exception):
    """
    Base exception for all evaluation harness errors.

    What it does:
        Provides a common base class for all domain-specific exceptions,
        enabling catch-all handling at the user-action boundary while
        preserving specific error types.

    Attributes:
        message: Human-readable error description
        context: Dictionary of additional context for debugging
    """

    def __init__(self, message: str, context: Optional[dict] = None):
        """
        Initialize with message and optional context.

        Args:
            message: Human-readable error description
            context: Additional debugging context (key, stage, inputs)
        """
        self.message = message
        self.context = context or {}
        super().__init__(self._format_message())

    def _format_message(self) -> str:
        """Format message with context for display."""
        if self.context:
            context_str = ", ".join(f"{k}={v}" for k, v in self.context.items())
            return f"{self.message} [{context_str}]"
        return self.message


# =============================================================================
# STAGE 2: CONFIGURATION ERRORS
# =============================================================================


class ConfigurationError(CodingEvalError):
    """
    Error in harness configuration.

    When raised:
        - Unknown LLM provider
        - Invalid numeric settings
        - Unreadable data directory
    """

    pass


class MissingCredentialError(ConfigurationError):
    """
    The model service cannot be invoked because no API key is configured.

    Checked eagerly before any network call is issued, so the operator
    gets an actionable message instead of a network-layer error.

    Attributes:
        provider: The LLM provider that needs a key
        setting: Environment variable or settings key the operator should set
    """

    def __init__(self, provider: str, setting: str):
        self.provider = provider
        self.setting = setting
        super().__init__(
            f"{provider.capitalize()} API key not found. Please set it in settings.",
            context={"provider": provider, "setting": setting},
        )


# =============================================================================
# STAGE 3: MODEL SERVICE ERRORS
# =============================================================================
# Errors raised while talking to the external large-language-model service.


class ModelServiceError(CodingEvalError):
    """Base exception for external model service failures."""

    pass


class LLMError(ModelServiceError):
    """
    Error from an LLM API call.

    What it does:
        Wraps errors from the underlying LLM API (Gemini, OpenAI) with
        the provider name and the original exception. Surfaced with the
        underlying message; the operator decides whether to re-trigger.

    Attributes:
        provider: The LLM provider (gemini, openai)
        original_error: The wrapped original exception
    """

    def __init__(self, message: str, provider: str, original_error: Optional[Exception] = None):
        self.provider = provider
        self.original_error = original_error
        super().__init__(
            message,
            context={
                "provider": provider,
                "original_error": str(original_error) if original_error else None,
            },
        )


class LLMRateLimitError(LLMError):
    """
    LLM API rate limit exceeded.

    Attributes:
        retry_after: Seconds the provider asked us to wait (if known)
    """

    def __init__(
        self,
        provider: str,
        retry_after: Optional[int] = None,
        original_error: Optional[Exception] = None,
    ):
        self.retry_after = retry_after
        super().__init__(
            f"Rate limit exceeded for {provider}", provider=provider, original_error=original_error
        )
        self.context["retry_after"] = retry_after


class LLMContentFilteredError(LLMError):
    """LLM response was blocked by the provider's safety settings."""

    def __init__(self, provider: str, reason: Optional[str] = None):
        super().__init__(
            f"Content filtered by {provider} safety settings: {reason or 'unknown reason'}",
            provider=provider,
        )
        self.reason = reason


class ExtractionParseError(ModelServiceError):
    """
    Model response could not be decoded into the expected structured shape.

    What it does:
        Signals missing or malformed JSON, or JSON whose shape does not match
        the audit-entry array or coding-prediction object schema. The
        triggering ingestion or test run is abandoned with no state change.

    Attributes:
        expected: Name of the expected shape (e.g. "audit entry array")
        raw_excerpt: First characters of the raw response, for the operator
    """

    def __init__(self, expected: str, reason: str, raw_text: str = ""):
        self.expected = expected
        self.reason = reason
        self.raw_excerpt = raw_text[:200]
        super().__init__(
            f"Could not parse {expected} from response: {reason}",
            context={"expected": expected},
        )


# =============================================================================
# STAGE 4: REPOSITORY ERRORS
# =============================================================================


class RepositoryError(CodingEvalError):
    """
    Error accessing case, ledger or prompt data.
    """

    pass


class PersistenceUnavailableError(RepositoryError):
    """
    The durable-storage collaborator is unreachable.

    Repositories catch this and report it through WriteResult; the in-memory
    state still reflects the attempted change.

    Attributes:
        operation: The persistence operation that failed
    """

    def __init__(self, operation: str, reason: str):
        self.operation = operation
        self.reason = reason
        super().__init__(
            f"Persistence unavailable during {operation}: {reason}",
            context={"operation": operation},
        )


class CaseNotFoundError(RepositoryError):
    """No case exists for the requested key."""

    def __init__(self, key: str):
        self.key = key
        super().__init__(f"Case not found: {key}", context={"key": key})


class CaseNotReadyError(RepositoryError):
    """
    Case exists but cannot be tested because it is not complete.

    Attributes:
        key: Case key
        status: Current completeness status
    """

    def __init__(self, key: str, status: str):
        self.key = key
        self.status = status
        super().__init__(
            f"Case {key} is not complete and cannot be tested",
            context={"key": key, "status": status},
        )


# =============================================================================
# STAGE 5: EVALUATION FLOW ERRORS
# =============================================================================


class EvaluationInProgressError(CodingEvalError):
    """
    A second identical request was issued while the first is still pending.

    Attributes:
        request_key: Identifier of the in-flight request (case key or "improvement")
    """

    def __init__(self, request_key: str):
        self.request_key = request_key
        super().__init__(
            "A request for this item is already running",
            context={"request": request_key},
        )

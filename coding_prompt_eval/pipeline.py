"""
Coding Prompt Evaluation Harness - Main Orchestrator

This is the PUBLIC API entry point for the evaluation harness. It wires the
repositories, scoring, aggregation, model service and improvement loop
into one object with one method per operator action.

Architecture Diagram:
    ┌─────────────────────────────────────────────────────────────────────┐
    │                        EvaluationHarness                            │
    ├─────────────────────────────────────────────────────────────────────┤
    │                                                                     │
    │  ┌──────────┐   ┌───────────┐   ┌─────────┐   ┌────────┐            │
    │  │Extraction│ → │   Cases   │ → │ Scoring │ → │ Ledger │            │
    │  └──────────┘   └───────────┘   └─────────┘   └────────┘            │
    │                                                    │                │
    │                 ┌─────────────┐   ┌─────────────┐  ▼                │
    │                 │ Improvement │ ← │ Aggregation │ ←┘                │
    │                 └─────────────┘   └─────────────┘                   │
    └─────────────────────────────────────────────────────────────────────┘

Action Boundary:
    Every action method returns an ActionOutcome (state, message, payload).
    Domain errors (CodingEvalError) are caught here and turned into a FAILED
    outcome; nothing an action does crashes the process.

Usage:
    from coding_prompt_eval import EvaluationHarness

    harness = EvaluationHarness.from_environment()
    harness.ingest_audit_pdf(pdf_bytes, "audit_march.pdf", specialty="Urology")
    harness.ingest_note_pdfs([("note_7654321.pdf", note_bytes)])
    outcome = harness.run_test("7654321")

Author: Shubham Singh
Date: October 2026
"""

import threading
from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Sequence, Set, Tuple

from loguru import logger

from coding_prompt_eval.analysis import (
    aggregate_by_case,
    aggregate_by_prompt,
    case_prompt_matrix,
    rank_prompts,
    summarize_runs,
)
from coding_prompt_eval.analysis.aggregation import (
    CaseAggregate,
    CasePromptMatrix,
    PromptAggregate,
    RunSummary,
)
from coding_prompt_eval.clients import CodingModelService, GeminiClient, OpenAIClient
from coding_prompt_eval.clients.llm_client import LLMClientProtocol
from coding_prompt_eval.core.config import EvaluationConfiguration
from coding_prompt_eval.core.constants import DEFAULT_CODING_PROMPT, DEFAULT_PROMPT_NAME
from coding_prompt_eval.core.enums import ActionState, Specialty
from coding_prompt_eval.core.exceptions import (
    CaseNotReadyError,
    CodingEvalError,
    EvaluationInProgressError,
    MissingCredentialError,
    PersistenceUnavailableError,
)
from coding_prompt_eval.core.models import (
    AuditEntry,
    BatchIngestionReport,
    NoteIngestionResult,
    TestRunDraft,
    WriteResult,
)
from coding_prompt_eval.improvement import FlaggedCaseDetail, PromptImprovementOrchestrator
from coding_prompt_eval.repository import (
    CaseRepository,
    FlagSet,
    JsonFilePersistence,
    PersistenceBackend,
    PromptLibrary,
    TestRunLedger,
    mirror_write,
)
from coding_prompt_eval.repository.test_run_ledger import Clock
from coding_prompt_eval.scoring import score


# =============================================================================
# STAGE 1: ACTION OUTCOME
# =============================================================================


@dataclass(frozen=True)
class ActionOutcome:
    """
    Result of one operator action, rendered as a status message.

    Attributes:
        state: SUCCESS or FAILED
        message: Operator-facing text
        payload: Action-specific result (TestRun, report, candidate prompt...)
    """

    state: ActionState
    message: str
    payload: Any = None

    @property
    def ok(self) -> bool:
        return self.state is ActionState.SUCCESS


def _succeeded(message: str, payload: Any = None) -> ActionOutcome:
    logger.info(message)
    return ActionOutcome(ActionState.SUCCESS, message, payload)


def _failed(action: str, error: CodingEvalError) -> ActionOutcome:
    logger.error(f"{action} failed | {error}")
    return ActionOutcome(ActionState.FAILED, f"Error: {error.message}", error)


# =============================================================================
# STAGE 2: HARNESS CLASS
# =============================================================================


class EvaluationHarness:
    """
    Main orchestrator for prompt evaluation.

    What it does:
        Provides a single entry point for ingesting gold standards and
        clinical notes, running prompts against complete cases, reporting on
        the run history and refining prompts.

    Why it exists:
        1. Simple API: one method per operator action
        2. Error boundary: every action reports success or failure as data
        3. Composition root: one place builds and injects every component

    How it works:
        STAGE 1: Build repositories on the persistence backend
        STAGE 2: Resolve the model service on first use (credential check)
        STAGE 3: Actions → ActionOutcome

    Example:
        >>> harness = EvaluationHarness(config, persistence=InMemoryPersistence(),
        ...                             llm_client=fake_client)
        >>> harness.ingest_note_texts([("note.txt", "MRN: 7654321 ...")]).message
        'Processed 1 files. 1 successfully linked.'
    """

    def __init__(
        self,
        config: EvaluationConfiguration,
        persistence: Optional[PersistenceBackend] = None,
        llm_client: Optional[LLMClientProtocol] = None,
        clock: Optional[Clock] = None,
    ):
        """
        Initialize the harness with configuration and optional overrides.

        Args:
            config: Harness configuration
            persistence: Storage backend override (defaults to JSON files in
                config.data_directory)
            llm_client: LLM client override; skips the credential lookup
            clock: Time source for run timestamps (for testing)
        """
        # =====================================================================
        # STAGE 2.1: STORE CONFIGURATION
        # =====================================================================
        self._config = config
        self._llm_client = llm_client

        # =====================================================================
        # STAGE 2.2: INITIALIZE PERSISTENCE AND REPOSITORIES
        # =====================================================================
        if persistence is None:
            persistence = JsonFilePersistence(config.data_directory)
        self._persistence = persistence
        self._cases = CaseRepository(self._persistence)
        self._ledger = TestRunLedger(self._persistence, clock=clock)
        self._prompts = PromptLibrary(self._persistence)
        self._flags = FlagSet()

        # =====================================================================
        # STAGE 2.3: MODEL SERVICE CACHE AND IMPROVEMENT LOOP
        # =====================================================================
        self._clients: Dict[Tuple[str, str], LLMClientProtocol] = {}
        self._orchestrator = PromptImprovementOrchestrator(
            service_factory=self.coding_service, prompt_library=self._prompts
        )

        # =====================================================================
        # STAGE 2.4: IN-FLIGHT TRACKING
        # =====================================================================
        self._in_flight: Set[str] = set()
        self._in_flight_lock = threading.Lock()

        logger.info(
            f"EvaluationHarness initialized | Provider: {config.llm_provider} | "
            f"Model: {config.active_model} | Cases: {len(self._cases)} | Runs: {len(self._ledger)}"
        )

    # =========================================================================
    # STAGE 3: MODEL SERVICE RESOLUTION
    # =========================================================================

    def resolve_api_key(self) -> str:
        """
        API key for the configured provider: environment first, then the
        settings store.

        Raises:
            MissingCredentialError: If neither holds a key
        """
        key = self._config.active_api_key
        if not key:
            key = self.get_setting(self._config.api_key_setting)
        if not key:
            raise MissingCredentialError(self._config.llm_provider, self._config.api_key_setting)
        return key

    def coding_service(self, model: Optional[str] = None) -> CodingModelService:
        """
        Model service for a model name (default: the configured model).

        The credential is checked here, before any network call.

        Raises:
            MissingCredentialError: If no API key is configured
            LLMError: If the SDK client cannot be created
        """
        if self._llm_client is not None:
            return CodingModelService(self._llm_client)

        model_name = model or self._config.active_model
        api_key = self.resolve_api_key()
        cache_key = (model_name, api_key)
        client = self._clients.get(cache_key)
        if client is None:
            client = self._create_llm_client(model_name, api_key)
            self._clients[cache_key] = client
        return CodingModelService(client)

    def _create_llm_client(self, model_name: str, api_key: str) -> LLMClientProtocol:
        """Create LLM client from configuration."""
        if self._config.llm_provider == "openai":
            return OpenAIClient(
                api_key=api_key,
                model_name=model_name,
                rate_limit_delay=self._config.rate_limit_delay,
            )
        return GeminiClient(
            api_key=api_key,
            model_name=model_name,
            rate_limit_delay=self._config.rate_limit_delay,
        )

    # =========================================================================
    # STAGE 4: INGESTION ACTIONS
    # =========================================================================

    def ingest_audit_pdf(
        self, pdf_bytes: bytes, source_label: str, specialty: Optional[str] = None
    ) -> ActionOutcome:
        """
        Extract gold-standard entries from an audit PDF and merge them.

        A parse failure abandons the whole document; no case changes.
        """
        try:
            entries = self.coding_service().extract_structured_entries(pdf_bytes)
        except CodingEvalError as e:
            return _failed("Audit ingestion", e)
        return self.ingest_audit_entries(entries, source_label, specialty)

    def ingest_audit_entries(
        self, entries: Sequence[AuditEntry], source_label: str, specialty: Optional[str] = None
    ) -> ActionOutcome:
        """Merge already-extracted audit entries (e.g. from a JSON export)."""
        count = self._cases.ingest_gold(entries, source_label, specialty)
        return _succeeded(
            f"Successfully extracted {count} audit cases from {source_label}", payload=count
        )

    def ingest_note_pdfs(self, files: Sequence[Tuple[str, bytes]]) -> ActionOutcome:
        """
        Extract text from clinical note PDFs and link each to its case.

        The credential is checked once up front. After that each file is
        handled on its own; one failure does not stop the batch.

        Args:
            files: (filename, pdf bytes) pairs
        """
        try:
            service = self.coding_service()
        except CodingEvalError as e:
            return _failed("Note ingestion", e)

        report = BatchIngestionReport()
        for filename, pdf_bytes in files:
            try:
                text = service.extract_text(pdf_bytes)
            except CodingEvalError as e:
                logger.warning(f"Note extraction failed | File: {filename} | {e}")
                report.results.append(
                    NoteIngestionResult(success=False, filename=filename, error=e.message)
                )
                continue
            report.results.append(self._cases.ingest_note(text, filename))

        return _succeeded(report.message, payload=report)

    def ingest_note_texts(self, files: Sequence[Tuple[str, str]]) -> ActionOutcome:
        """
        Link clinical notes that are already plain text.

        Args:
            files: (filename, note text) pairs
        """
        report = BatchIngestionReport()
        for filename, text in files:
            report.results.append(self._cases.ingest_note(text, filename))
        return _succeeded(report.message, payload=report)

    # =========================================================================
    # STAGE 5: TEST EXECUTION
    # =========================================================================

    def run_test(
        self,
        case_key: str,
        prompt_text: Optional[str] = None,
        prompt_name: Optional[str] = None,
        model: Optional[str] = None,
    ) -> ActionOutcome:
        """
        Run a prompt against one complete case, score it and record the run.

        State machine: IDLE → RUNNING → SUCCESS (run appended) | FAILED
        (nothing appended) → IDLE. A second request for the same case while
        one is running fails with EvaluationInProgressError.

        Args:
            case_key: Key of a complete case
            prompt_text: Prompt to test; defaults to the saved prompt called
                prompt_name, then to the built-in default prompt
            prompt_name: Name recorded on the run (default "Custom Prompt")
            model: Model override

        Returns:
            ActionOutcome whose payload is the new TestRun on success
        """
        try:
            self._begin(case_key)
        except EvaluationInProgressError as e:
            return _failed("Test run", e)

        try:
            name, text = self._resolve_prompt(prompt_text, prompt_name)

            case = self._cases.require(case_key)
            if not case.is_complete:
                raise CaseNotReadyError(case_key, case.status.value)

            service = self.coding_service(model)
            logger.info(
                f"Running test | Case: {case_key} | Prompt: {name} | Model: {service.model_name}"
            )
            prediction = service.run_coding(case.raw_text, text)

            result = score(case.ground_truth, prediction)
            draft = TestRunDraft.from_score(
                case_key=case_key,
                model=service.model_name,
                prompt_name=name,
                prompt_text=text,
                gold=case.ground_truth,
                prediction=prediction,
                score=result,
            )
            run = self._ledger.append(draft)
        except CodingEvalError as e:
            return _failed("Test run", e)
        finally:
            self._finish(case_key)

        return _succeeded(
            f"Test complete | Case: {case_key} | Primary: "
            f"{'match' if run.primary_match else 'miss'} | CPT recall: {run.cpt_recall:.0%}",
            payload=run,
        )

    def _resolve_prompt(
        self, prompt_text: Optional[str], prompt_name: Optional[str]
    ) -> Tuple[str, str]:
        if prompt_text is None and prompt_name:
            saved = self._prompts.get_by_name(prompt_name)
            if saved is not None:
                return saved.name, saved.text
        return prompt_name or DEFAULT_PROMPT_NAME, prompt_text or DEFAULT_CODING_PROMPT

    def _begin(self, request_key: str) -> None:
        with self._in_flight_lock:
            if request_key in self._in_flight:
                raise EvaluationInProgressError(request_key)
            self._in_flight.add(request_key)

    def _finish(self, request_key: str) -> None:
        with self._in_flight_lock:
            self._in_flight.discard(request_key)

    def run_state(self, case_key: str) -> ActionState:
        """RUNNING while a test on the case is in flight, otherwise IDLE."""
        return ActionState.RUNNING if case_key in self._in_flight else ActionState.IDLE

    def delete_run(self, run_id: str) -> WriteResult:
        return self._ledger.delete(run_id)

    # =========================================================================
    # STAGE 6: PROMPT IMPROVEMENT
    # =========================================================================

    def flagged_case_details(self, keys: Optional[Sequence[str]] = None) -> List[FlaggedCaseDetail]:
        """
        Detail for flagged cases that have a clinical note.

        Args:
            keys: Case keys (default: the session's flag set)
        """
        details = []
        for key in keys if keys is not None else self._flags.sorted():
            case = self._cases.get(key)
            if case is None or not case.raw_text:
                logger.warning(f"Flagged case skipped, no clinical note | Key: {key}")
                continue
            details.append(
                FlaggedCaseDetail(
                    case_key=key,
                    raw_text=case.raw_text,
                    ground_truth=case.ground_truth,
                    latest_run=self._ledger.latest_for_case(key),
                )
            )
        return details

    def propose_improvement(
        self,
        current_prompt: Optional[str] = None,
        prompt_name: Optional[str] = None,
        flagged_keys: Optional[Sequence[str]] = None,
    ) -> ActionOutcome:
        """
        Ask the model service for a revised prompt.

        The history sent is the ledger restricted to prompt_name when given,
        otherwise the whole ledger. On success the candidate is held until
        apply_improvement() or reject_improvement().
        """
        _, text = self._resolve_prompt(current_prompt, prompt_name)
        history = self._ledger.list()
        if prompt_name:
            history = [run for run in history if run.prompt_name == prompt_name] or history

        try:
            candidate = self._orchestrator.propose_improvement(
                text, history, self.flagged_case_details(flagged_keys)
            )
        except CodingEvalError as e:
            return _failed("Prompt improvement", e)
        return _succeeded("Improved prompt generated", payload=candidate)

    def apply_improvement(self, name: Optional[str] = None) -> ActionOutcome:
        """Save the held candidate as "Improved v<n>" (or the given name)."""
        try:
            saved = self._orchestrator.accept(name)
        except ValueError as e:
            logger.error(f"Apply improvement failed | {e}")
            return ActionOutcome(ActionState.FAILED, str(e))
        return _succeeded(f"Saved prompt '{saved.name}'", payload=saved)

    def reject_improvement(self) -> None:
        self._orchestrator.reject()

    # =========================================================================
    # STAGE 7: REPORTING
    # =========================================================================

    def prompt_report(self) -> List[PromptAggregate]:
        return aggregate_by_prompt(self._ledger.list())

    def case_report(self) -> List[CaseAggregate]:
        return aggregate_by_case(self._ledger.list())

    def summary(self) -> RunSummary:
        return summarize_runs(self._ledger.list())

    def matrix(self) -> CasePromptMatrix:
        return case_prompt_matrix(self._ledger.list())

    def leaderboard(self) -> List[PromptAggregate]:
        return rank_prompts(self._ledger.list())

    # =========================================================================
    # STAGE 8: SETTINGS AND DURABILITY
    # =========================================================================

    def get_setting(self, key: str) -> Optional[str]:
        try:
            return self._persistence.get_setting(key)
        except PersistenceUnavailableError as e:
            logger.warning(f"Setting unavailable | Key: {key} | {e}")
            return None

    def put_setting(self, key: str, value: str) -> WriteResult:
        return mirror_write(f"put setting {key}", lambda: self._persistence.put_setting(key, value))

    def set_api_key(self, value: str) -> WriteResult:
        """Store the API key for the configured provider in the settings store."""
        self._clients.clear()
        return self.put_setting(self._config.api_key_setting, value.strip())

    def sync(self) -> Dict[str, int]:
        """Retry every change the store has not accepted yet."""
        return {
            "cases": self._cases.sync(),
            "test_runs": self._ledger.sync(),
            "prompts": self._prompts.sync(),
        }

    @property
    def has_unsynced_changes(self) -> bool:
        return bool(
            self._cases.unsynced_keys or self._ledger.unsynced_ids or self._prompts.unsynced_names
        )

    # =========================================================================
    # STAGE 9: FACTORY METHODS
    # =========================================================================

    @classmethod
    def from_environment(cls, env_file: Optional[str] = None) -> "EvaluationHarness":
        """
        Create harness from environment configuration.

        Raises:
            ConfigurationError: If settings are invalid

        Example:
            >>> harness = EvaluationHarness.from_environment()
        """
        config = EvaluationConfiguration.from_environment(env_file=env_file, validate_on_load=True)
        return cls(config)

    # =========================================================================
    # STAGE 10: PROPERTIES
    # =========================================================================

    @property
    def config(self) -> EvaluationConfiguration:
        return self._config

    @property
    def cases(self) -> CaseRepository:
        return self._cases

    @property
    def ledger(self) -> TestRunLedger:
        return self._ledger

    @property
    def prompts(self) -> PromptLibrary:
        return self._prompts

    @property
    def flags(self) -> FlagSet:
        return self._flags

    @property
    def improvement(self) -> PromptImprovementOrchestrator:
        return self._orchestrator

    @property
    def specialties(self) -> List[str]:
        return Specialty.get_all_values()

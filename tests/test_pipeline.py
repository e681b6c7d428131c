"""
End-to-end tests for EvaluationHarness with a scripted model client.

These tests verify:
1. Audit PDF → gold standards, note PDFs → linked cases
2. A test run is scored, recorded and reported
3. Failures become FAILED outcomes and change nothing
4. Credential, in-flight and durability behaviour at the action boundary
"""

import json

import pytest

from conftest import FakeLLMClient, SteppingClock, prediction_json

from coding_prompt_eval import ActionState, EvaluationHarness
from coding_prompt_eval.core.config import EvaluationConfiguration
from coding_prompt_eval.core.enums import CaseStatus
from coding_prompt_eval.core.exceptions import (
    CaseNotReadyError,
    EvaluationInProgressError,
    ExtractionParseError,
    LLMError,
    MissingCredentialError,
)
from coding_prompt_eval.core.models import AuditEntry
from coding_prompt_eval.repository import InMemoryPersistence


AUDIT_RESPONSE = json.dumps(
    [
        {
            "mrn": "7654321",
            "audit_filename_ref": "note_7654321.pdf",
            "primary_icd": "N20.0",
            "secondary_icds": [],
            "cpt_codes": ["52356"],
            "auditor_notes": "",
        }
    ]
)
NOTE_TEXT = "CLINICAL NOTE\nMRN: 7654321\nCystoscopy, ureteroscopy and laser lithotripsy."


@pytest.fixture
def harness(config, persistence, fake_client):
    return EvaluationHarness(
        config, persistence=persistence, llm_client=fake_client, clock=SteppingClock()
    )


@pytest.fixture
def complete_case(harness, fake_client):
    fake_client.queue(AUDIT_RESPONSE, NOTE_TEXT)
    harness.ingest_audit_pdf(b"%PDF-audit", "audit_march.pdf", "Urology")
    harness.ingest_note_pdfs([("note_7654321.pdf", b"%PDF-note")])
    return harness.cases.get("7654321")


# =============================================================================
# Ingestion
# =============================================================================

class TestIngestion:

    def test_audit_pdf(self, harness, fake_client):
        fake_client.queue(AUDIT_RESPONSE)
        outcome = harness.ingest_audit_pdf(b"%PDF", "audit_march.pdf", "Urology")

        assert outcome.ok
        assert outcome.message == "Successfully extracted 1 audit cases from audit_march.pdf"
        assert harness.cases.get("7654321").status is CaseStatus.TRUTH_ONLY

    def test_audit_parse_failure_changes_nothing(self, harness, fake_client):
        fake_client.queue("Sorry, I cannot read this document.")
        outcome = harness.ingest_audit_pdf(b"%PDF", "audit.pdf")

        assert outcome.state is ActionState.FAILED
        assert isinstance(outcome.payload, ExtractionParseError)
        assert outcome.message.startswith("Error: ")
        assert len(harness.cases) == 0

    def test_note_batch_reports_each_file(self, harness, fake_client):
        fake_client.queue(
            LLMError("timeout", provider="fake"),
            "A note with no record number.",
            "MRN: 1234567\nFollow-up.",
        )
        outcome = harness.ingest_note_pdfs(
            [("a.pdf", b"1"), ("b.pdf", b"2"), ("c.pdf", b"3")]
        )

        assert outcome.ok
        assert outcome.message == "Processed 3 files. 1 successfully linked."
        results = outcome.payload.results
        assert [r.success for r in results] == [False, False, True]
        assert results[0].error == "timeout"
        assert results[1].error == "No medical record number found"
        assert harness.cases.get("1234567").status is CaseStatus.NOTE_ONLY

    def test_note_texts(self, harness):
        outcome = harness.ingest_note_texts([("note.txt", NOTE_TEXT)])
        assert outcome.message == "Processed 1 files. 1 successfully linked."

    def test_complete_case(self, complete_case):
        assert complete_case.status is CaseStatus.COMPLETE
        assert complete_case.specialty == "Urology"
        assert complete_case.metadata.raw_note_file == "note_7654321.pdf"


# =============================================================================
# Test Runs
# =============================================================================

class TestRunTest:

    def test_scores_and_records_run(self, harness, fake_client, complete_case):
        fake_client.queue(prediction_json("N20.0", ["52000"]))
        outcome = harness.run_test("7654321")

        assert outcome.ok
        run = outcome.payload
        assert run.primary_match is True
        assert run.cpt_recall == 0.0
        assert run.cpt_precision == 0.0
        assert run.missed_cpts == ("52356",)
        assert run.hallucinated_cpts == ("52000",)
        assert run.gold_cpts == ("52356",)
        assert run.prompt_name == "Custom Prompt"
        assert run.model == "fake-model"
        assert harness.ledger.list() == [run]
        assert harness.run_state("7654321") is ActionState.IDLE

    def test_recorded_gold_survives_reingestion(self, harness, fake_client, complete_case):
        fake_client.queue(prediction_json("N20.0", ["52356"]))
        run = harness.run_test("7654321").payload

        corrected = AuditEntry(identifier="7654321", primary_code="N20.1", procedure_codes=("52000",))
        harness.ingest_audit_entries([corrected], "audit_april.json")

        assert complete_case.ground_truth.primary_code == "N20.1"
        stored = harness.ledger.list()[0]
        assert stored is run
        assert (stored.gold_primary, stored.gold_cpts) == ("N20.0", ("52356",))

    def test_request_carries_note_and_prompt(self, harness, fake_client, complete_case):
        fake_client.queue(prediction_json("N20.0", ["52356"]))
        harness.run_test("7654321", prompt_text="MY PROMPT", prompt_name="Mine")

        sent = fake_client.calls[-1]["prompt"]
        assert "MY PROMPT" in sent
        assert "laser lithotripsy" in sent

    def test_saved_prompt_by_name(self, harness, fake_client, complete_case):
        harness.prompts.save("Baseline", "SAVED PROMPT TEXT")
        fake_client.queue(prediction_json("N20.0", ["52356"]))

        run = harness.run_test("7654321", prompt_name="Baseline").payload

        assert run.prompt_name == "Baseline"
        assert run.prompt_text == "SAVED PROMPT TEXT"
        assert "SAVED PROMPT TEXT" in fake_client.calls[-1]["prompt"]

    def test_incomplete_case_is_refused(self, harness, fake_client):
        fake_client.queue(AUDIT_RESPONSE)
        harness.ingest_audit_pdf(b"%PDF", "audit.pdf")

        outcome = harness.run_test("7654321")

        assert outcome.state is ActionState.FAILED
        assert isinstance(outcome.payload, CaseNotReadyError)
        assert len(harness.ledger) == 0

    def test_unknown_case(self, harness):
        outcome = harness.run_test("0000000")
        assert not outcome.ok
        assert "Case not found" in outcome.message

    def test_parse_failure_records_nothing(self, harness, fake_client, complete_case):
        fake_client.queue("not json")
        outcome = harness.run_test("7654321")

        assert outcome.state is ActionState.FAILED
        assert len(harness.ledger) == 0
        assert harness.run_state("7654321") is ActionState.IDLE

    def test_duplicate_request_while_running(self, config, persistence, complete_case):
        nested = []

        class ReentrantClient(FakeLLMClient):
            def generate(self, prompt, document=None, mime_type="application/pdf", json_output=False):
                nested.append(reentrant.run_state("7654321"))
                nested.append(reentrant.run_test("7654321"))
                return prediction_json("N20.0", ["52356"])

        reentrant = EvaluationHarness(config, persistence=persistence, llm_client=ReentrantClient())
        outcome = reentrant.run_test("7654321")

        assert outcome.ok
        state, inner = nested
        assert state is ActionState.RUNNING
        assert inner.state is ActionState.FAILED
        assert isinstance(inner.payload, EvaluationInProgressError)
        assert len(reentrant.ledger) == 1

    def test_delete_run(self, harness, fake_client, complete_case):
        fake_client.queue(prediction_json("N20.0", ["52356"]))
        run = harness.run_test("7654321").payload

        assert harness.delete_run(run.id).committed
        assert len(harness.ledger) == 0


# =============================================================================
# Credentials
# =============================================================================

class TestCredentials:

    @pytest.fixture
    def keyless(self, tmp_path):
        config = EvaluationConfiguration(gemini_api_key=None, data_directory=str(tmp_path))
        return EvaluationHarness(config, persistence=InMemoryPersistence())

    def test_missing_key_fails_before_any_call(self, keyless):
        outcome = keyless.ingest_audit_pdf(b"%PDF", "audit.pdf")

        assert outcome.state is ActionState.FAILED
        assert isinstance(outcome.payload, MissingCredentialError)
        assert outcome.message == "Error: Gemini API key not found. Please set it in settings."

    def test_missing_key_fails_note_batch(self, keyless):
        outcome = keyless.ingest_note_pdfs([("a.pdf", b"1")])
        assert not outcome.ok
        assert len(keyless.cases) == 0

    def test_key_from_settings_store(self, keyless):
        keyless.set_api_key("  stored-key ")
        assert keyless.resolve_api_key() == "stored-key"

    def test_environment_key_wins(self, tmp_path):
        config = EvaluationConfiguration(gemini_api_key="env-key", data_directory=str(tmp_path))
        harness = EvaluationHarness(config, persistence=InMemoryPersistence())
        harness.set_api_key("stored-key")
        assert harness.resolve_api_key() == "env-key"

    def test_resolve_raises(self, keyless):
        with pytest.raises(MissingCredentialError):
            keyless.resolve_api_key()


# =============================================================================
# Improvement Loop
# =============================================================================

class TestImprovement:

    def test_propose_and_apply(self, harness, fake_client, complete_case):
        fake_client.queue(prediction_json("N20.0", ["52000"]))
        harness.run_test("7654321")
        fake_client.queue("Better prompt")

        outcome = harness.propose_improvement(flagged_keys=["7654321", "9999999"])

        assert outcome.ok
        assert outcome.payload == "Better prompt"
        request = fake_client.calls[-1]["prompt"]
        assert "Focus Case 1 (MRN: 7654321)" in request
        assert "9999999" not in request
        assert "Commonly Hallucinated CPT Codes: 52000" in request

        applied = harness.apply_improvement()
        assert applied.ok
        assert applied.message == "Saved prompt 'Improved v1'"
        assert harness.prompts.get_by_name("Improved v1").text == "Better prompt"

    def test_session_flags_are_used_by_default(self, harness, fake_client, complete_case):
        harness.flags.add("7654321")
        fake_client.queue("Better prompt")
        harness.propose_improvement()
        assert "PRIORITY FOCUS CASES" in fake_client.calls[-1]["prompt"]

    def test_history_restricted_to_prompt_name(self, harness, fake_client, complete_case):
        fake_client.queue(
            prediction_json("N20.0", ["52356"]),
            prediction_json("R31.9", ["52000"]),
        )
        harness.run_test("7654321", prompt_text="A", prompt_name="A")
        harness.run_test("7654321", prompt_text="B", prompt_name="B")
        fake_client.queue("Better")

        harness.propose_improvement(current_prompt="A", prompt_name="A")

        assert "(1 tests)" in fake_client.calls[-1]["prompt"]

    def test_apply_without_candidate(self, harness):
        assert harness.apply_improvement().state is ActionState.FAILED

    def test_failed_request(self, harness, fake_client):
        fake_client.queue(LLMError("quota exceeded", provider="fake"))
        outcome = harness.propose_improvement("p")
        assert outcome.message == "Error: quota exceeded"
        assert harness.improvement.state is ActionState.FAILED


# =============================================================================
# Reports and Durability
# =============================================================================

class TestReportsAndSync:

    def test_reports(self, harness, fake_client, complete_case):
        fake_client.queue(prediction_json("N20.0", ["52356"]))
        harness.run_test("7654321", prompt_name="Baseline")

        [group] = harness.prompt_report()
        assert group.prompt_name == "Baseline"
        assert group.overall_score == 1.0
        assert harness.summary().total == 1
        assert harness.case_report()[0].best_score == 2.0
        assert harness.matrix().scores["7654321"]["Baseline"] == 100
        assert harness.leaderboard()[0].prompt_name == "Baseline"

    def test_offline_changes_sync_later(self, harness, persistence, fake_client, complete_case):
        persistence.available = False
        fake_client.queue(prediction_json("N20.0", ["52356"]))
        harness.run_test("7654321")
        harness.ingest_note_texts([("n.txt", "MRN: 1234567")])

        assert harness.has_unsynced_changes

        persistence.available = True
        counts = harness.sync()

        assert counts == {"cases": 1, "test_runs": 1, "prompts": 0}
        assert not harness.has_unsynced_changes

    def test_json_store_round_trip(self, config, fake_client):
        first = EvaluationHarness(config, llm_client=fake_client)
        first.ingest_note_texts([("note.txt", NOTE_TEXT)])
        first.put_setting("theme", "dark")

        second = EvaluationHarness(config, llm_client=fake_client)
        assert second.cases.get("7654321").raw_text == NOTE_TEXT
        assert second.get_setting("theme") == "dark"

    def test_setting_read_when_store_offline(self, harness, persistence):
        persistence.available = False
        assert harness.get_setting("anything") is None

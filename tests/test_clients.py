"""
Tests for response decoding, the coding model service and the base LLM
client's error wrapping. No network calls; the client is scripted.
"""

import json

import pytest

from conftest import FakeLLMClient, prediction_json

from coding_prompt_eval.clients import (
    BaseLLMClient,
    CodingModelService,
    parse_audit_entries,
    parse_prediction,
    strip_code_fence,
)
from coding_prompt_eval.core.exceptions import ExtractionParseError, LLMError


AUDIT_RESPONSE = json.dumps(
    [
        {
            "mrn": "7654321",
            "audit_filename_ref": "note_7654321.pdf",
            "primary_icd": "N20.0",
            "secondary_icds": ["N13.2"],
            "cpt_codes": ["52356", "74176-26"],
            "auditor_notes": "Stone confirmed on CT.",
        },
        {"mrn": None, "primary_icd": "I10", "cpt_codes": None},
    ]
)


# =============================================================================
# Decoding
# =============================================================================

class TestStripCodeFence:

    def test_json_fence(self):
        assert strip_code_fence('```json\n{"a": 1}\n```') == '{"a": 1}'

    def test_bare_fence(self):
        assert strip_code_fence('```\n[1, 2]\n```') == "[1, 2]"

    def test_no_fence(self):
        assert strip_code_fence('  {"a": 1} ') == '{"a": 1}'


class TestParseAuditEntries:

    def test_wire_field_names(self):
        entries = parse_audit_entries(AUDIT_RESPONSE)

        assert len(entries) == 2
        first = entries[0]
        assert first.identifier == "7654321"
        assert first.source_filename_reference == "note_7654321.pdf"
        assert first.primary_code == "N20.0"
        assert first.secondary_codes == ("N13.2",)
        assert first.procedure_codes == ("52356", "74176-26")
        assert first.notes == "Stone confirmed on CT."

    def test_missing_identifier_and_null_lists(self):
        second = parse_audit_entries(AUDIT_RESPONSE)[1]
        assert second.identifier is None
        assert second.procedure_codes == ()

    def test_numeric_identifier_and_codes(self):
        [entry] = parse_audit_entries('[{"mrn": 7654321, "primary_icd": "I10", "cpt_codes": [99214]}]')
        assert entry.identifier == "7654321"
        assert entry.procedure_codes == ("99214",)

    def test_fenced_response(self):
        entries = parse_audit_entries(f"```json\n{AUDIT_RESPONSE}\n```")
        assert len(entries) == 2

    def test_empty_array(self):
        assert parse_audit_entries("[]") == []

    @pytest.mark.parametrize(
        "text",
        ["", "not json at all", '{"mrn": "1"}', '[{"mrn": "1"}', "Here you go: [{}]"],
    )
    def test_malformed(self, text):
        with pytest.raises(ExtractionParseError) as exc_info:
            parse_audit_entries(text)
        assert exc_info.value.expected == "audit entry array"


class TestParsePrediction:

    def test_prediction(self):
        prediction = parse_prediction(prediction_json("N20.0", ["52356"], ["N13.2"], "Stone."))
        assert prediction.primary_code == "N20.0"
        assert prediction.procedure_codes == ("52356",)
        assert prediction.secondary_codes == ("N13.2",)
        assert prediction.reasoning == "Stone."

    def test_reasoning_optional(self):
        prediction = parse_prediction('{"primary_icd": "I10", "cpt_codes": []}')
        assert prediction.reasoning == ""

    def test_missing_primary_is_an_error(self):
        with pytest.raises(ExtractionParseError):
            parse_prediction('{"cpt_codes": ["99213"]}')

    def test_array_is_an_error(self):
        with pytest.raises(ExtractionParseError) as exc_info:
            parse_prediction("[]")
        assert exc_info.value.expected == "coding prediction"


# =============================================================================
# Coding Model Service
# =============================================================================

class TestCodingModelService:

    def test_extract_structured_entries_sends_pdf_as_json_request(self):
        client = FakeLLMClient([AUDIT_RESPONSE])
        entries = CodingModelService(client).extract_structured_entries(b"%PDF-1.4")

        assert len(entries) == 2
        call = client.calls[0]
        assert call["document"] == b"%PDF-1.4"
        assert call["mime_type"] == "application/pdf"
        assert call["json_output"] is True

    def test_extract_text_returns_raw_text(self):
        client = FakeLLMClient(["MRN: 7654321\nNote body"])
        assert CodingModelService(client).extract_text(b"%PDF") == "MRN: 7654321\nNote body"
        assert client.calls[0]["json_output"] is False

    def test_run_coding_embeds_prompt_and_note(self):
        client = FakeLLMClient([prediction_json("N20.0", ["52000"])])
        prediction = CodingModelService(client).run_coding("NOTE BODY", "PROMPT BODY")

        assert prediction.procedure_codes == ("52000",)
        sent = client.calls[0]["prompt"]
        assert "PROMPT BODY" in sent
        assert "NOTE BODY" in sent
        assert sent.index("PROMPT BODY") < sent.index("NOTE BODY")

    def test_run_coding_parse_error(self):
        client = FakeLLMClient(["I could not code this note."])
        with pytest.raises(ExtractionParseError):
            CodingModelService(client).run_coding("note", "prompt")

    def test_propose_improved_prompt_is_trimmed(self):
        client = FakeLLMClient(["\n  Better prompt.  \n"])
        assert CodingModelService(client).propose_improved_prompt("payload") == "Better prompt."

    def test_model_name(self):
        assert CodingModelService(FakeLLMClient(model_name="m-1")).model_name == "m-1"


# =============================================================================
# Base Client
# =============================================================================

class ExplodingClient(BaseLLMClient):

    def __init__(self, error):
        super().__init__(api_key="k", model_name="boom", rate_limit_delay=0.0)
        self._error = error

    def _call_api(self, prompt, document, mime_type, json_output):
        raise self._error

    @property
    def provider_name(self):
        return "test"


class EchoClient(BaseLLMClient):

    def __init__(self):
        super().__init__(api_key="k", model_name="echo", rate_limit_delay=0.0)

    def _call_api(self, prompt, document, mime_type, json_output):
        return prompt

    @property
    def provider_name(self):
        return "test"


class TestBaseLLMClient:

    def test_unexpected_error_is_wrapped(self):
        client = ExplodingClient(RuntimeError("socket closed"))
        with pytest.raises(LLMError) as exc_info:
            client.generate("hello")
        assert isinstance(exc_info.value.original_error, RuntimeError)
        assert client.failed_calls == 1

    def test_llm_error_passes_through(self):
        original = LLMError("quota", provider="test")
        with pytest.raises(LLMError) as exc_info:
            ExplodingClient(original).generate("hello")
        assert exc_info.value is original

    def test_success_metrics(self):
        client = EchoClient()
        assert client.generate("hi") == "hi"
        assert client.total_calls == 1
        assert client.success_rate == 100.0

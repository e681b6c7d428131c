"""
Tests for the command-line surface. A pre-built harness is passed to
main() so no environment or network is involved.
"""

import json

import pytest

from conftest import SteppingClock, prediction_json

from coding_prompt_eval.cli import main
from coding_prompt_eval.pipeline import EvaluationHarness


AUDIT_JSON = json.dumps(
    [{"mrn": "7654321", "primary_icd": "N20.0", "cpt_codes": ["52356"], "auditor_notes": ""}]
)


@pytest.fixture
def harness(config, persistence, fake_client):
    return EvaluationHarness(
        config, persistence=persistence, llm_client=fake_client, clock=SteppingClock()
    )


@pytest.fixture
def loaded(harness, tmp_path):
    audit = tmp_path / "audit.json"
    audit.write_text(AUDIT_JSON)
    note = tmp_path / "note_7654321.txt"
    note.write_text("MRN: 7654321\nUreteroscopy.")
    main(["ingest-audit", str(audit), "--specialty", "Urology"], harness=harness)
    main(["ingest-notes", str(note)], harness=harness)
    return harness


class TestIngestCommands:

    def test_ingest_audit_json(self, harness, tmp_path, capsys):
        audit = tmp_path / "audit.json"
        audit.write_text(AUDIT_JSON)

        assert main(["ingest-audit", str(audit)], harness=harness) == 0
        assert "Successfully extracted 1 audit cases from audit.json" in capsys.readouterr().out

    def test_ingest_audit_pdf_uses_model(self, harness, fake_client, tmp_path):
        pdf = tmp_path / "audit.pdf"
        pdf.write_bytes(b"%PDF-1.4")
        fake_client.queue(AUDIT_JSON)

        assert main(["ingest-audit", str(pdf)], harness=harness) == 0
        assert fake_client.calls[0]["document"] == b"%PDF-1.4"

    def test_malformed_audit_json(self, harness, tmp_path, capsys):
        audit = tmp_path / "audit.json"
        audit.write_text("{not json")

        assert main(["ingest-audit", str(audit)], harness=harness) == 1
        assert "Error:" in capsys.readouterr().out

    def test_ingest_notes_mixed(self, harness, fake_client, tmp_path, capsys):
        pdf = tmp_path / "a.pdf"
        pdf.write_bytes(b"%PDF")
        text = tmp_path / "b.txt"
        text.write_text("no identifier here")
        fake_client.queue("MRN: 1111111\nNote.")

        assert main(["ingest-notes", str(pdf), str(text)], harness=harness) == 0
        out = capsys.readouterr().out
        assert "[OK]   a.pdf" in out
        assert "[FAIL] b.txt" in out
        assert "Processed 2 files. 1 successfully linked." in out

    def test_undecodable_note_does_not_stop_the_batch(self, harness, tmp_path, capsys):
        good = tmp_path / "good.txt"
        good.write_text("MRN: 7654321\nUreteroscopy.")
        bad = tmp_path / "bad.txt"
        bad.write_bytes(b"MRN: 1111111\n\xff\xfe")

        assert main(["ingest-notes", str(good), str(bad)], harness=harness) == 0
        out = capsys.readouterr().out
        assert "[OK]   good.txt" in out
        assert "[FAIL] bad.txt: Unreadable" in out
        assert "7654321" in harness.cases
        assert "1111111" not in harness.cases

    def test_undecodable_audit_json(self, harness, tmp_path, capsys):
        audit = tmp_path / "audit.json"
        audit.write_bytes(b"\xff\xfe[]")

        assert main(["ingest-audit", str(audit)], harness=harness) == 1
        assert "Error:" in capsys.readouterr().out


class TestCaseAndRunCommands:

    def test_cases_listing(self, loaded, capsys):
        capsys.readouterr()
        assert main(["cases", "--status", "complete"], harness=loaded) == 0
        out = capsys.readouterr().out
        assert "7654321" in out
        assert "Complete: 1" in out

    def test_run_test(self, loaded, fake_client, capsys):
        fake_client.queue(prediction_json("N20.0", ["52000"]))
        capsys.readouterr()

        assert main(["run-test", "7654321"], harness=loaded) == 0
        out = capsys.readouterr().out
        assert "Missed CPTs: 52356" in out
        assert "Hallucinated CPTs: 52000" in out

    def test_run_test_unknown_case(self, harness):
        assert main(["run-test", "0000000"], harness=harness) == 1

    def test_report_summary(self, loaded, fake_client, capsys):
        fake_client.queue(prediction_json("N20.0", ["52356"]))
        main(["run-test", "7654321", "--prompt-name", "Baseline"], harness=loaded)
        capsys.readouterr()

        assert main(["report", "--by", "summary"], harness=loaded) == 0
        assert "Tests: 1 | Primary accuracy: 100.0%" in capsys.readouterr().out

    @pytest.mark.parametrize(
        "view, expected",
        [("prompt", "overall=100%"), ("case", "best=Baseline"), ("matrix", "100%")],
    )
    def test_report_views(self, loaded, fake_client, capsys, view, expected):
        fake_client.queue(prediction_json("N20.0", ["52356"]))
        main(["run-test", "7654321", "--prompt-name", "Baseline"], harness=loaded)
        capsys.readouterr()

        assert main(["report", "--by", view], harness=loaded) == 0
        assert expected in capsys.readouterr().out


class TestPromptCommands:

    def test_flag_persists_between_invocations(self, loaded):
        assert main(["flag", "7654321"], harness=loaded) == 0
        assert loaded.get_setting("flagged_cases") == "7654321"

        assert main(["unflag", "7654321"], harness=loaded) == 0
        assert loaded.get_setting("flagged_cases") == ""

    def test_improve_and_apply(self, loaded, fake_client):
        main(["flag", "7654321"], harness=loaded)
        fake_client.queue("Improved prompt body")

        assert main(["improve", "--apply"], harness=loaded) == 0
        assert "PRIORITY FOCUS CASES" in fake_client.calls[-1]["prompt"]
        assert loaded.prompts.get_by_name("Improved v1").text == "Improved prompt body"

    def test_improve_without_apply_saves_nothing(self, loaded, fake_client):
        fake_client.queue("Improved prompt body")
        assert main(["improve"], harness=loaded) == 0
        assert len(loaded.prompts) == 0

    def test_save_and_list_prompts(self, harness, tmp_path, capsys):
        prompt_file = tmp_path / "prompt.txt"
        prompt_file.write_text("Code carefully.")

        assert main(["save-prompt", "Careful", str(prompt_file)], harness=harness) == 0
        assert main(["prompts"], harness=harness) == 0
        assert "Careful" in capsys.readouterr().out

    def test_set_key(self, harness):
        assert main(["set-key", "abc"], harness=harness) == 0
        assert harness.get_setting("gemini_api_key") == "abc"

    def test_delete_unknown_run(self, harness):
        assert main(["delete-run", "nope"], harness=harness) == 0

"""
Command-Line Interface - Operator Surface for the Evaluation Harness

Commands:
    ingest-audit FILE [--specialty S]       Audit PDF (or JSON export) → gold standards
    ingest-notes FILE...                    Clinical notes (PDF or text) → linked cases
    cases [--status] [--specialty] [--search]
    run-test KEY [--prompt-file F | --prompt-name N] [--model M]
    report [--by prompt|case|matrix|summary]
    flag KEY / unflag KEY                   Mark cases for the next improvement
    improve [--prompt-file F | --prompt-name N] [--flag KEY...] [--apply]
    prompts                                 List saved prompts
    save-prompt NAME FILE                   Save a prompt text under a name
    delete-run ID                           Remove one test run
    set-key VALUE                           Store the API key in the settings store

Exit code 0 on success, 1 when the action failed.

Usage:
    coding-eval ingest-audit audit_march.pdf --specialty Urology
    python -m coding_prompt_eval report --by prompt

Author: Shubham Singh
Date: October 2026
"""

import argparse
import sys
from pathlib import Path
from typing import List, Optional

from loguru import logger

from coding_prompt_eval.analysis import as_percent
from coding_prompt_eval.clients.schemas import parse_audit_entries
from coding_prompt_eval.core.config import EvaluationConfiguration
from coding_prompt_eval.core.enums import CaseStatus, ModelOption, Specialty
from coding_prompt_eval.core.exceptions import CodingEvalError
from coding_prompt_eval.core.models import BatchIngestionReport, NoteIngestionResult
from coding_prompt_eval.pipeline import ActionOutcome, EvaluationHarness


# Flags are session state in the harness; the CLI keeps them between
# invocations in the settings store under this key.
FLAGS_SETTING = "flagged_cases"


# =============================================================================
# STAGE 1: ARGUMENT PARSER
# =============================================================================


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="coding-eval",
        description="Evaluate and refine medical-coding prompts against audited cases.",
    )
    parser.add_argument("--env-file", help="Path to a .env file")
    parser.add_argument("--log-level", help="Override LOG_LEVEL")
    sub = parser.add_subparsers(dest="command", required=True)

    audit = sub.add_parser("ingest-audit", help="Ingest an audit PDF or JSON export")
    audit.add_argument("file", type=Path)
    audit.add_argument("--specialty", choices=Specialty.get_all_values())

    notes = sub.add_parser("ingest-notes", help="Ingest clinical notes (PDF or text)")
    notes.add_argument("files", type=Path, nargs="+")

    cases = sub.add_parser("cases", help="List cases")
    cases.add_argument("--status", choices=["complete", "truth-only", "note-only"])
    cases.add_argument("--specialty")
    cases.add_argument("--search")

    run = sub.add_parser("run-test", help="Run a prompt against one case")
    run.add_argument("key")
    _add_prompt_arguments(run)
    run.add_argument(
        "--model", help=f"Model override (Gemini: {', '.join(m.value for m in ModelOption)})"
    )

    report = sub.add_parser("report", help="Summarize the run history")
    report.add_argument("--by", choices=["prompt", "case", "matrix", "summary"], default="prompt")

    flag = sub.add_parser("flag", help="Flag a case for the next improvement")
    flag.add_argument("key")
    unflag = sub.add_parser("unflag", help="Remove a case flag")
    unflag.add_argument("key")

    improve = sub.add_parser("improve", help="Ask the model for an improved prompt")
    _add_prompt_arguments(improve)
    improve.add_argument("--flag", action="append", default=[], metavar="KEY")
    improve.add_argument("--apply", action="store_true", help="Save the result as 'Improved v<n>'")

    sub.add_parser("prompts", help="List saved prompts")

    save = sub.add_parser("save-prompt", help="Save a prompt text under a name")
    save.add_argument("name")
    save.add_argument("file", type=Path)

    delete = sub.add_parser("delete-run", help="Delete one test run")
    delete.add_argument("run_id")

    key = sub.add_parser("set-key", help="Store the API key for the configured provider")
    key.add_argument("value")

    return parser


def _add_prompt_arguments(parser: argparse.ArgumentParser) -> None:
    group = parser.add_mutually_exclusive_group()
    group.add_argument("--prompt-file", type=Path)
    group.add_argument("--prompt-name")


def _read_prompt(args: argparse.Namespace) -> Optional[str]:
    if getattr(args, "prompt_file", None):
        return args.prompt_file.read_text(encoding="utf-8")
    return None


def _report_outcome(outcome: ActionOutcome) -> int:
    print(outcome.message)
    return 0 if outcome.ok else 1


# =============================================================================
# STAGE 2: COMMAND HANDLERS
# =============================================================================


def _ingest_audit(harness: EvaluationHarness, args: argparse.Namespace) -> int:
    data = args.file.read_bytes()
    if args.file.suffix.lower() == ".json":
        entries = parse_audit_entries(data.decode("utf-8"))
        return _report_outcome(
            harness.ingest_audit_entries(entries, args.file.name, args.specialty)
        )
    return _report_outcome(harness.ingest_audit_pdf(data, args.file.name, args.specialty))


def _ingest_notes(harness: EvaluationHarness, args: argparse.Namespace) -> int:
    report = BatchIngestionReport()
    pdfs, texts = [], []
    for path in args.files:
        try:
            if path.suffix.lower() == ".pdf":
                pdfs.append((path.name, path.read_bytes()))
            else:
                texts.append((path.name, path.read_text(encoding="utf-8")))
        except (OSError, UnicodeDecodeError) as e:
            logger.warning(f"Unreadable note file | File: {path.name} | {e}")
            report.results.append(
                NoteIngestionResult(
                    success=False, identifier=None, filename=path.name, error=f"Unreadable: {e}"
                )
            )

    if pdfs:
        outcome = harness.ingest_note_pdfs(pdfs)
        if not outcome.ok:
            return _report_outcome(outcome)
        report.results.extend(outcome.payload.results)
    if texts:
        report.results.extend(harness.ingest_note_texts(texts).payload.results)

    for result in report.results:
        if result.success:
            print(f"  [OK]   {result.filename} → {result.identifier}")
        else:
            print(f"  [FAIL] {result.filename}: {result.error}")
    print(report.message)
    return 0


def _list_cases(harness: EvaluationHarness, args: argparse.Namespace) -> int:
    status = CaseStatus.from_string(args.status) if args.status else None
    matches = harness.cases.filter_cases(args.search, status, args.specialty)
    for case in matches:
        primary = case.ground_truth.primary_code if case.ground_truth else "-"
        print(f"{case.key:<12} {case.status.badge:<11} {case.specialty or '-':<17} {primary}")
    counts = harness.cases.count_by_status()
    print(
        f"{len(matches)} shown | Complete: {counts[CaseStatus.COMPLETE]} | "
        f"Truth only: {counts[CaseStatus.TRUTH_ONLY]} | Note only: {counts[CaseStatus.NOTE_ONLY]}"
    )
    return 0


def _run_test(harness: EvaluationHarness, args: argparse.Namespace) -> int:
    outcome = harness.run_test(args.key, _read_prompt(args), args.prompt_name, args.model)
    if outcome.ok:
        run = outcome.payload
        print(f"Primary: {run.pred_primary} (gold {run.gold_primary})")
        print(f"Matched CPTs: {', '.join(run.matched_cpts) or 'None'}")
        print(f"Missed CPTs: {', '.join(run.missed_cpts) or 'None'}")
        print(f"Hallucinated CPTs: {', '.join(run.hallucinated_cpts) or 'None'}")
        print(f"Precision: {as_percent(run.cpt_precision)}%")
    return _report_outcome(outcome)


def _report(harness: EvaluationHarness, args: argparse.Namespace) -> int:
    if args.by == "summary":
        summary = harness.summary()
        print(
            f"Tests: {summary.total} | Primary accuracy: {as_percent(summary.primary_accuracy, 1)}% | "
            f"Avg CPT recall: {as_percent(summary.avg_cpt_recall, 1)}%"
        )
    elif args.by == "prompt":
        for group in harness.prompt_report():
            print(
                f"{group.prompt_name:<24} tests={group.test_count:<4} "
                f"primary={as_percent(group.primary_match_rate)}% "
                f"recall={as_percent(group.mean_recall)}% "
                f"precision={as_percent(group.mean_precision)}% "
                f"overall={as_percent(group.overall_score)}%"
            )
    elif args.by == "case":
        for aggregate in harness.case_report():
            best = aggregate.best
            print(
                f"{aggregate.case_key:<12} gold={aggregate.gold_primary:<8} "
                f"runs={len(aggregate.results):<3} best={best.prompt_name} "
                f"({as_percent(aggregate.best_score / 2)}%)"
            )
    else:
        matrix = harness.matrix()
        print("case".ljust(12) + "".join(name[:16].ljust(18) for name in matrix.prompt_names))
        for key, row in matrix.scores.items():
            print(key.ljust(12) + "".join(f"{row[name]}%".ljust(18) for name in matrix.prompt_names))
    return 0


def _stored_flags(harness: EvaluationHarness) -> List[str]:
    value = harness.get_setting(FLAGS_SETTING) or ""
    return [key for key in value.split(",") if key]


def _flag(harness: EvaluationHarness, args: argparse.Namespace, flagged: bool) -> int:
    for key in _stored_flags(harness):
        harness.flags.add(key)
    if flagged:
        harness.flags.add(args.key)
    else:
        harness.flags.remove(args.key)
    result = harness.put_setting(FLAGS_SETTING, ",".join(harness.flags.sorted()))
    print(f"Flagged cases: {', '.join(harness.flags.sorted()) or 'None'}")
    return 0 if result.committed else 1


def _improve(harness: EvaluationHarness, args: argparse.Namespace) -> int:
    flagged = sorted(set(_stored_flags(harness)) | set(args.flag))
    outcome = harness.propose_improvement(_read_prompt(args), args.prompt_name, flagged)
    if not outcome.ok:
        return _report_outcome(outcome)

    print(outcome.payload)
    if args.apply:
        return _report_outcome(harness.apply_improvement())
    harness.reject_improvement()
    return 0


def _list_prompts(harness: EvaluationHarness, args: argparse.Namespace) -> int:
    for prompt in harness.prompts.list():
        print(f"{prompt.name:<24} {prompt.created_at[:19]}  {len(prompt.text)} chars  id={prompt.id}")
    return 0


def _save_prompt(harness: EvaluationHarness, args: argparse.Namespace) -> int:
    saved = harness.prompts.save(args.name, args.file.read_text(encoding="utf-8"))
    print(f"Saved prompt '{saved.name}'")
    return 0


def _delete_run(harness: EvaluationHarness, args: argparse.Namespace) -> int:
    result = harness.delete_run(args.run_id)
    print(f"Deleted run {args.run_id}" if result.committed else f"Not persisted: {result.error}")
    return 0 if result.committed else 1


def _set_key(harness: EvaluationHarness, args: argparse.Namespace) -> int:
    result = harness.set_api_key(args.value)
    print("API key saved" if result.committed else f"Not persisted: {result.error}")
    return 0 if result.committed else 1


HANDLERS = {
    "ingest-audit": _ingest_audit,
    "ingest-notes": _ingest_notes,
    "cases": _list_cases,
    "run-test": _run_test,
    "report": _report,
    "flag": lambda harness, args: _flag(harness, args, flagged=True),
    "unflag": lambda harness, args: _flag(harness, args, flagged=False),
    "improve": _improve,
    "prompts": _list_prompts,
    "save-prompt": _save_prompt,
    "delete-run": _delete_run,
    "set-key": _set_key,
}


# =============================================================================
# STAGE 3: ENTRY POINT
# =============================================================================


def main(argv: Optional[List[str]] = None, harness: Optional[EvaluationHarness] = None) -> int:
    """
    Parse arguments, configure logging and dispatch one command.

    Args:
        argv: Arguments (default: sys.argv[1:])
        harness: Pre-built harness (for testing)

    Returns:
        Process exit code
    """
    args = build_parser().parse_args(argv)

    try:
        if harness is None:
            config = EvaluationConfiguration.from_environment(env_file=args.env_file)
            log_level = (args.log_level or config.log_level).upper()
            logger.remove()
            logger.add(sys.stderr, level=log_level)
            harness = EvaluationHarness(config)
        return HANDLERS[args.command](harness, args)
    except CodingEvalError as e:
        logger.error(f"Command failed | {args.command} | {e}")
        print(f"Error: {e.message}")
        return 1
    except (OSError, UnicodeDecodeError) as e:
        print(f"Error: {e}")
        return 1


if __name__ == "__main__":
    raise SystemExit(main())

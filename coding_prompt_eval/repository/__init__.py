"""
Repository Layer - In-Process State Mirrored to Durable Storage

This layer owns the session's cases, test runs, saved prompts and flags.
Each repository is constructed with an injected persistence backend and
hydrates from it; every mutation goes through repository methods.

Submodules:
    persistence.py      → Backend protocol, in-memory and JSON file stores
    case_repository.py  → Case merge/lookup (gold + note linking)
    test_run_ledger.py  → Append-only run history
    prompt_library.py   → Saved prompts (upsert by name)
    flag_set.py         → Operator-flagged case keys

Dependency Rule:
    This layer depends on: core, extraction
    This layer is used by: analysis, improvement, pipeline

Author: Shubham Singh
Date: October 2026
"""

from coding_prompt_eval.repository.persistence import (
    DocumentStore,
    InMemoryPersistence,
    JsonFilePersistence,
    PersistenceBackend,
    mirror_write,
)
from coding_prompt_eval.repository.case_repository import CaseRepository
from coding_prompt_eval.repository.test_run_ledger import TestRunLedger
from coding_prompt_eval.repository.prompt_library import PromptLibrary
from coding_prompt_eval.repository.flag_set import FlagSet

__all__ = [
    "DocumentStore",
    "InMemoryPersistence",
    "JsonFilePersistence",
    "PersistenceBackend",
    "mirror_write",
    "CaseRepository",
    "TestRunLedger",
    "PromptLibrary",
    "FlagSet",
]

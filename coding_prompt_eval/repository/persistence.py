"""
Persistence Collaborator - Durable Mirror of Cases, Runs, Prompts and Settings

The in-memory repositories are the source of truth for a session; this
module is the durable mirror behind them. It exposes plain CRUD over four
collections and promises nothing beyond per-record atomicity.

Architecture:
    PersistenceBackend (Protocol)
    ├── InMemoryPersistence   → Dict-backed, for tests (can simulate outages)
    └── JsonFilePersistence   → One JSON document per collection on disk

Collections:
    cases          → keyed by "mrn"   (create-or-update, partial update, delete, list)
    test_runs      → keyed by "id"    (create, list, delete)
    saved_prompts  → unique "name"    (create-or-update by name, list, delete by id)
    settings       → flat key/value   (get, put)

Failure Policy:
    Any storage failure surfaces as PersistenceUnavailableError. Repositories
    catch it through mirror_write() and report a WriteResult with
    committed=False instead of failing the user action.

Usage:
    from coding_prompt_eval.repository.persistence import JsonFilePersistence

    store = JsonFilePersistence("coding_eval_data")
    store.upsert_case({"mrn": "7654321", "status": "complete", ...})

Author: Shubham Singh
Date: October 2026
"""

import json
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional, Protocol, runtime_checkable

from loguru import logger

from coding_prompt_eval.core.exceptions import PersistenceUnavailableError
from coding_prompt_eval.core.models import WriteResult


# =============================================================================
# STAGE 1: PERSISTENCE PROTOCOL (INTERFACE)
# =============================================================================


@runtime_checkable
class PersistenceBackend(Protocol):
    """
    Protocol defining the durable storage collaborator.

    Required Methods:
        upsert_case / patch_case / delete_case / list_cases
        create_test_run / delete_test_run / list_test_runs
        upsert_prompt / delete_prompt / list_prompts
        get_setting / put_setting

    Every method may raise PersistenceUnavailableError.
    """

    def upsert_case(self, record: Dict[str, Any]) -> None: ...

    def patch_case(self, key: str, updates: Dict[str, Any]) -> None: ...

    def delete_case(self, key: str) -> None: ...

    def list_cases(self) -> List[Dict[str, Any]]: ...

    def create_test_run(self, record: Dict[str, Any]) -> None: ...

    def delete_test_run(self, run_id: str) -> None: ...

    def list_test_runs(self) -> List[Dict[str, Any]]: ...

    def upsert_prompt(self, record: Dict[str, Any]) -> None: ...

    def delete_prompt(self, prompt_id: str) -> None: ...

    def list_prompts(self) -> List[Dict[str, Any]]: ...

    def get_setting(self, key: str) -> Optional[str]: ...

    def put_setting(self, key: str, value: str) -> None: ...


# =============================================================================
# STAGE 2: DOCUMENT STORE BASE
# =============================================================================
# CRUD over four collections, written once against _read/_write.


class DocumentStore(ABC):
    """
    Base class implementing the collection CRUD on top of two primitives.

    What subclasses must implement:
        - _read(collection): return the stored document (list or dict)
        - _write(collection, document): replace the stored document
    """

    CASES = "cases"
    TEST_RUNS = "test_runs"
    SAVED_PROMPTS = "saved_prompts"
    SETTINGS = "settings"

    # -------------------------------------------------------------------------
    # 2.1 Primitives
    # -------------------------------------------------------------------------

    @abstractmethod
    def _read(self, collection: str) -> Any: ...

    @abstractmethod
    def _write(self, collection: str, document: Any) -> None: ...

    def _read_list(self, collection: str) -> List[Dict[str, Any]]:
        return list(self._read(collection) or [])

    # -------------------------------------------------------------------------
    # 2.2 Cases
    # -------------------------------------------------------------------------

    def upsert_case(self, record: Dict[str, Any]) -> None:
        """Create the case or replace the stored fields for its key."""
        cases = self._read_list(self.CASES)
        for index, existing in enumerate(cases):
            if existing.get("mrn") == record["mrn"]:
                cases[index] = {**existing, **record}
                break
        else:
            cases.append(dict(record))
        self._write(self.CASES, cases)

    def patch_case(self, key: str, updates: Dict[str, Any]) -> None:
        """Update selected fields of an existing case; unknown keys are ignored."""
        cases = self._read_list(self.CASES)
        for index, existing in enumerate(cases):
            if existing.get("mrn") == key:
                cases[index] = {**existing, **updates, "mrn": key}
                self._write(self.CASES, cases)
                return

    def delete_case(self, key: str) -> None:
        cases = self._read_list(self.CASES)
        self._write(self.CASES, [c for c in cases if c.get("mrn") != key])

    def list_cases(self) -> List[Dict[str, Any]]:
        return self._read_list(self.CASES)

    # -------------------------------------------------------------------------
    # 2.3 Test runs
    # -------------------------------------------------------------------------

    def create_test_run(self, record: Dict[str, Any]) -> None:
        runs = self._read_list(self.TEST_RUNS)
        runs.insert(0, dict(record))
        self._write(self.TEST_RUNS, runs)

    def delete_test_run(self, run_id: str) -> None:
        runs = self._read_list(self.TEST_RUNS)
        self._write(self.TEST_RUNS, [r for r in runs if r.get("id") != run_id])

    def list_test_runs(self) -> List[Dict[str, Any]]:
        return self._read_list(self.TEST_RUNS)

    # -------------------------------------------------------------------------
    # 2.4 Saved prompts
    # -------------------------------------------------------------------------

    def upsert_prompt(self, record: Dict[str, Any]) -> None:
        """Create or update by unique name; an existing row keeps its id and createdAt."""
        prompts = self._read_list(self.SAVED_PROMPTS)
        for index, existing in enumerate(prompts):
            if existing.get("name") == record["name"]:
                prompts[index] = {**existing, "text": record.get("text", "")}
                break
        else:
            prompts.append(dict(record))
        self._write(self.SAVED_PROMPTS, prompts)

    def delete_prompt(self, prompt_id: str) -> None:
        prompts = self._read_list(self.SAVED_PROMPTS)
        self._write(self.SAVED_PROMPTS, [p for p in prompts if p.get("id") != prompt_id])

    def list_prompts(self) -> List[Dict[str, Any]]:
        return self._read_list(self.SAVED_PROMPTS)

    # -------------------------------------------------------------------------
    # 2.5 Settings
    # -------------------------------------------------------------------------

    def get_setting(self, key: str) -> Optional[str]:
        settings = self._read(self.SETTINGS) or {}
        return settings.get(key)

    def put_setting(self, key: str, value: str) -> None:
        settings = dict(self._read(self.SETTINGS) or {})
        settings[key] = value
        self._write(self.SETTINGS, settings)


# =============================================================================
# STAGE 3: IN-MEMORY IMPLEMENTATION
# =============================================================================


class InMemoryPersistence(DocumentStore):
    """
    Dict-backed store for tests and throwaway sessions.

    Set `available = False` to simulate an unreachable store: every
    operation then raises PersistenceUnavailableError.
    """

    def __init__(self):
        self._documents: Dict[str, Any] = {}
        self.available = True

    def _check(self, operation: str) -> None:
        if not self.available:
            raise PersistenceUnavailableError(operation, "store offline")

    def _read(self, collection: str) -> Any:
        self._check(f"read {collection}")
        return json.loads(json.dumps(self._documents.get(collection)))

    def _write(self, collection: str, document: Any) -> None:
        self._check(f"write {collection}")
        self._documents[collection] = json.loads(json.dumps(document))


# =============================================================================
# STAGE 4: JSON FILE IMPLEMENTATION
# =============================================================================


class JsonFilePersistence(DocumentStore):
    """
    Keeps each collection in its own JSON file inside a data directory.

    Files:
        cases.json, test_runs.json, saved_prompts.json, settings.json

    Writes go to a temporary sibling file which is then renamed over the
    target, so a crash mid-write leaves the previous document intact.

    Example:
        >>> store = JsonFilePersistence("coding_eval_data")
        >>> store.put_setting("gemini_api_key", "...")
    """

    def __init__(self, data_directory: str):
        self._data_dir = Path(data_directory)
        logger.debug(f"JsonFilePersistence initialized | Directory: {self._data_dir}")

    def _path(self, collection: str) -> Path:
        return self._data_dir / f"{collection}.json"

    def _read(self, collection: str) -> Any:
        path = self._path(collection)
        if not path.exists():
            return None
        try:
            with open(path, "r", encoding="utf-8") as f:
                return json.load(f)
        except json.JSONDecodeError as e:
            raise PersistenceUnavailableError(f"read {collection}", f"Invalid JSON: {e}") from e
        except OSError as e:
            raise PersistenceUnavailableError(f"read {collection}", str(e)) from e

    def _write(self, collection: str, document: Any) -> None:
        path = self._path(collection)
        tmp_path = path.with_suffix(".json.tmp")
        try:
            self._data_dir.mkdir(parents=True, exist_ok=True)
            with open(tmp_path, "w", encoding="utf-8") as f:
                json.dump(document, f, indent=2, ensure_ascii=False)
            tmp_path.replace(path)
        except OSError as e:
            raise PersistenceUnavailableError(f"write {collection}", str(e)) from e

    @property
    def data_directory(self) -> Path:
        return self._data_dir


# =============================================================================
# STAGE 5: WRITE MIRRORING
# =============================================================================


def mirror_write(operation: str, write: Callable[[], None]) -> WriteResult:
    """
    Run a persistence write after the in-memory change has been applied.

    Args:
        operation: Description for logs (e.g. "upsert case 7654321")
        write: Zero-argument callable performing the backend call

    Returns:
        WriteResult(committed=True) on success, committed=False with the
        error message when the store is unavailable
    """
    try:
        write()
    except PersistenceUnavailableError as e:
        logger.warning(f"Change kept locally but not persisted | Operation: {operation} | {e}")
        return WriteResult(applied_locally=True, committed=False, error=str(e))
    return WriteResult(applied_locally=True, committed=True)

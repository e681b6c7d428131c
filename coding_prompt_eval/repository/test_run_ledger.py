"""
Test Run Ledger - Append-Only History of Scored Runs

Every scored execution of a prompt against a case is stamped with an id and
a timestamp and prepended to the ledger. Runs are never updated; the only
removal is an explicit delete by id.

Ordering:
    list() is newest first. Timestamps are strictly increasing in append
    order (a clock that repeats or steps back is nudged forward by one
    microsecond), so append order and timestamp order always agree.

Usage:
    ledger = TestRunLedger(persistence)
    run = ledger.append(draft)
    latest = ledger.list()[0]      # == run

Author: Shubham Singh
Date: October 2026
"""

import uuid
from dataclasses import fields
from datetime import datetime, timedelta, timezone
from typing import Callable, Dict, List, Optional

from loguru import logger

from coding_prompt_eval.core.exceptions import PersistenceUnavailableError
from coding_prompt_eval.core.models import TestRun, TestRunDraft, WriteResult
from coding_prompt_eval.repository.persistence import PersistenceBackend, mirror_write


Clock = Callable[[], datetime]


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def _new_run_id(moment: datetime) -> str:
    """Millisecond epoch plus a random suffix, e.g. '1760870400000-3f9a1c2b7'."""
    return f"{int(moment.timestamp() * 1000)}-{uuid.uuid4().hex[:9]}"


class TestRunLedger:
    """
    Exclusive owner of TestRun records.

    What it does:
        Stamps drafts into immutable TestRuns, keeps them newest first and
        mirrors creates/deletes to the persistence backend.

    Why it exists:
        1. Trend analysis treats history as a reliable log; no update path
        2. Gold fields are copied into each run, so case edits never
           rewrite history
        3. Cases hold no reference to runs; lookups go by case key

    Example:
        >>> ledger = TestRunLedger(InMemoryPersistence())
        >>> run = ledger.append(draft)
        >>> ledger.delete(run.id)
    """

    __test__ = False

    def __init__(self, persistence: PersistenceBackend, clock: Optional[Clock] = None):
        self._persistence = persistence
        self._clock = clock or utc_now
        self._runs: List[TestRun] = []
        self._last_moment: Optional[datetime] = None

        # id -> "create" | "delete" for changes the store has not accepted
        self._unsynced: Dict[str, str] = {}

        self._load()
        logger.info(f"TestRunLedger initialized | Runs: {len(self._runs)}")

    def _load(self) -> None:
        try:
            records = self._persistence.list_test_runs()
        except PersistenceUnavailableError as e:
            logger.warning(f"Starting with empty ledger, store unavailable | {e}")
            return

        runs = [TestRun.from_dict(record) for record in records]
        runs.sort(key=lambda r: r.timestamp, reverse=True)
        self._runs = runs
        if runs:
            self._last_moment = runs[0].created_at

    # =========================================================================
    # STAGE 1: APPEND
    # =========================================================================

    def append(self, draft: TestRunDraft) -> TestRun:
        """
        Stamp a draft and prepend it to the history.

        Args:
            draft: Scored run without id and timestamp

        Returns:
            The stored TestRun
        """
        moment = self._next_moment()
        values = {f.name: getattr(draft, f.name) for f in fields(TestRunDraft)}
        run = TestRun(**values, id=_new_run_id(moment), timestamp=moment.isoformat())
        self._runs.insert(0, run)

        result = mirror_write(
            f"create test run {run.id}",
            lambda: self._persistence.create_test_run(run.to_dict()),
        )
        self._track(run.id, "create", result)

        logger.info(
            f"Test run recorded | Case: {run.case_key} | Prompt: {run.prompt_name} | "
            f"Primary: {'match' if run.primary_match else 'miss'} | "
            f"Recall: {run.cpt_recall:.2f}"
        )
        return run

    def _next_moment(self) -> datetime:
        moment = self._clock()
        if moment.tzinfo is None:
            moment = moment.replace(tzinfo=timezone.utc)
        if self._last_moment is not None and moment <= self._last_moment:
            moment = self._last_moment + timedelta(microseconds=1)
        self._last_moment = moment
        return moment

    # =========================================================================
    # STAGE 2: READ
    # =========================================================================

    def list(self) -> List[TestRun]:
        """All runs, newest first."""
        return list(self._runs)

    def get(self, run_id: str) -> Optional[TestRun]:
        for run in self._runs:
            if run.id == run_id:
                return run
        return None

    def runs_for_case(self, case_key: str) -> List[TestRun]:
        """Runs of one case, newest first."""
        return [run for run in self._runs if run.case_key == case_key]

    def latest_for_case(self, case_key: str) -> Optional[TestRun]:
        for run in self._runs:
            if run.case_key == case_key:
                return run
        return None

    def prompt_names(self) -> List[str]:
        """Distinct prompt names in first-seen (newest first) order."""
        return list(dict.fromkeys(run.prompt_name for run in self._runs))

    # =========================================================================
    # STAGE 3: DELETE
    # =========================================================================

    def delete(self, run_id: str) -> WriteResult:
        """
        Remove one run by id. Deleting an unknown id is a no-op.
        """
        remaining = [run for run in self._runs if run.id != run_id]
        if len(remaining) == len(self._runs):
            logger.debug(f"Delete ignored, no such run | Id: {run_id}")
            return WriteResult()

        self._runs = remaining
        if self._unsynced.get(run_id) == "create":
            # never reached the store, nothing to delete there
            del self._unsynced[run_id]
            return WriteResult()

        result = mirror_write(
            f"delete test run {run_id}", lambda: self._persistence.delete_test_run(run_id)
        )
        self._track(run_id, "delete", result)
        logger.info(f"Test run deleted | Id: {run_id}")
        return result

    # =========================================================================
    # STAGE 4: DURABILITY
    # =========================================================================

    @property
    def unsynced_ids(self) -> List[str]:
        return sorted(self._unsynced)

    def sync(self) -> int:
        """
        Replay creates and deletes the store has not accepted yet.

        Returns:
            Number of changes committed by this call
        """
        committed = 0
        # oldest first so the store's newest-first order matches ours
        for run in reversed(self._runs):
            if self._unsynced.get(run.id) != "create":
                continue
            record = run.to_dict()
            result = mirror_write(
                f"create test run {run.id}", lambda: self._persistence.create_test_run(record)
            )
            self._track(run.id, "create", result)
            committed += int(result.committed)

        for run_id, action in list(self._unsynced.items()):
            if action != "delete":
                continue
            result = mirror_write(
                f"delete test run {run_id}",
                lambda: self._persistence.delete_test_run(run_id),
            )
            self._track(run_id, "delete", result)
            committed += int(result.committed)

        return committed

    def _track(self, run_id: str, action: str, result: WriteResult) -> None:
        if result.committed:
            self._unsynced.pop(run_id, None)
        else:
            self._unsynced[run_id] = action

    def __len__(self) -> int:
        return len(self._runs)

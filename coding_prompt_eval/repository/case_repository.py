"""
Case Repository - Linking Gold Standards and Clinical Notes by Key

This module merges partial records into complete test cases. Audit entries
bring the gold standard, clinical notes bring the raw text; both are keyed
by the patient record number and land on the same Case.

Merge Policy:
    - Ingestion is additive and status-promoting only: a case moves from
      incomplete to complete, never back, within a session.
    - Ground truth and raw text are last-write-wins: re-ingesting the same
      half overwrites it in place on the same Case object.
    - Specialty is first-write-wins: an incoming specialty never replaces
      one already set.
    - Metadata is merged key by key.
    - Entries without an identifier are skipped (logged, not raised).

Pipeline Position:
    Identifier Extractor → [Case Repository] → test execution → Scoring

Usage:
    repo = CaseRepository(persistence=InMemoryPersistence())
    repo.ingest_gold(entries, source_label="audit_march.pdf", specialty="Urology")
    result = repo.ingest_note(note_text, "note_7654321.pdf")
    ready = repo.list_complete()

Author: Shubham Singh
Date: October 2026
"""

from typing import Dict, List, Optional, Sequence, Set, Union

from loguru import logger

from coding_prompt_eval.core.enums import CaseStatus, Specialty
from coding_prompt_eval.core.exceptions import CaseNotFoundError, PersistenceUnavailableError
from coding_prompt_eval.core.models import (
    AuditEntry,
    Case,
    NoteIngestionResult,
    WriteResult,
)
from coding_prompt_eval.extraction.identifier_extractor import extract_identifier
from coding_prompt_eval.repository.persistence import PersistenceBackend, mirror_write


class CaseRepository:
    """
    In-process view of all cases, mirrored to a persistence backend.

    What it does:
        Owns exactly one Case per key, applies the ingestion merge rules and
        answers lookups. Every mutation is mirrored to the backend; if the
        backend is down the change stays in memory and the key is kept in
        `unsynced_keys` until sync() succeeds.

    Why it exists:
        1. Single place for the merge semantics
        2. Injected persistence so tests run against an in-memory fake
        3. Status is always derived from the case data, never stored

    Example:
        >>> repo = CaseRepository(InMemoryPersistence())
        >>> repo.ingest_gold([AuditEntry(identifier="123", primary_code="I10")], "a.pdf")
        1
        >>> repo.get("123").status
        <CaseStatus.TRUTH_ONLY: 'incomplete_truth_only'>
    """

    def __init__(self, persistence: PersistenceBackend):
        # =====================================================================
        # STAGE 1.1: STORE COLLABORATORS
        # =====================================================================
        self._persistence = persistence
        self._cases: Dict[str, Case] = {}
        self._unsynced: Set[str] = set()

        # =====================================================================
        # STAGE 1.2: HYDRATE FROM THE DURABLE STORE
        # =====================================================================
        self._load()

        logger.info(f"CaseRepository initialized | Cases: {len(self._cases)}")

    def _load(self) -> None:
        try:
            records = self._persistence.list_cases()
        except PersistenceUnavailableError as e:
            logger.warning(f"Starting with no cases, store unavailable | {e}")
            return

        for record in records:
            if not record.get("ground_truth") and not record.get("raw_text"):
                logger.warning(f"Skipping stored case with no data | Key: {record.get('mrn')}")
                continue
            case = Case.from_dict(record)
            self._cases[case.key] = case

    # =========================================================================
    # STAGE 2: INGESTION
    # =========================================================================

    def ingest_gold(
        self,
        entries: Sequence[AuditEntry],
        source_label: str,
        specialty: Optional[Union[str, Specialty]] = None,
    ) -> int:
        """
        Merge a batch of audit entries into cases.

        Args:
            entries: Entries extracted from one audit document
            source_label: Name of the audit file the batch came from
            specialty: Specialty to tag new cases with

        Returns:
            Number of entries processed. Entries without an identifier are
            excluded; repeated keys are counted every time.
        """
        specialty_value = specialty.value if isinstance(specialty, Specialty) else specialty
        processed = 0

        for entry in entries:
            key = (entry.identifier or "").strip()
            if not key:
                logger.warning(
                    f"Skipping audit entry without identifier | Source: {source_label} | "
                    f"Ref: {entry.source_filename_reference or '-'}"
                )
                continue

            ground_truth = entry.to_ground_truth()
            case = self._cases.get(key)

            if case is None:
                case = Case(key=key, specialty=specialty_value)
                self._cases[key] = case
            elif not case.specialty:
                case.specialty = specialty_value

            case.ground_truth = ground_truth
            case.metadata = case.metadata.merged(
                audit_filename_ref=entry.source_filename_reference,
                audit_source=source_label,
            )

            self._mirror(case)
            processed += 1
            logger.debug(f"Gold standard merged | Key: {key} | Status: {case.status.value}")

        logger.info(
            f"Ingested gold batch | Source: {source_label} | "
            f"Processed: {processed}/{len(entries)}"
        )
        return processed

    def ingest_note(self, text: str, filename: str) -> NoteIngestionResult:
        """
        Link a clinical note to its case.

        The key is extracted from the text. When none is found nothing is
        created or changed and a failure result is returned.

        Args:
            text: Full text of the clinical note
            filename: Source file name, kept in the case metadata

        Returns:
            NoteIngestionResult with success flag and identifier
        """
        key = extract_identifier(text)
        if key is None:
            logger.warning(f"No identifier found in note | File: {filename}")
            return NoteIngestionResult(
                success=False,
                identifier=None,
                filename=filename,
                error="No medical record number found",
            )

        case = self._cases.get(key)
        if case is None:
            case = Case(key=key)
            self._cases[key] = case

        case.raw_text = text
        case.metadata = case.metadata.merged(raw_note_file=filename)

        self._mirror(case)
        logger.info(f"Note linked | File: {filename} | Key: {key} | Status: {case.status.value}")
        return NoteIngestionResult(success=True, identifier=key, filename=filename)

    # =========================================================================
    # STAGE 3: LOOKUP AND FILTERING
    # =========================================================================

    def get(self, key: str) -> Optional[Case]:
        """Return the case for a key, or None."""
        return self._cases.get(key)

    def require(self, key: str) -> Case:
        """
        Return the case for a key.

        Raises:
            CaseNotFoundError: If no case has this key
        """
        case = self._cases.get(key)
        if case is None:
            raise CaseNotFoundError(key)
        return case

    def list_complete(self) -> List[Case]:
        """Cases with both gold standard and clinical note, in ingestion order."""
        return [c for c in self._cases.values() if c.status is CaseStatus.COMPLETE]

    def list_cases(self) -> List[Case]:
        """All cases sorted by key."""
        return sorted(self._cases.values(), key=lambda c: c.key)

    def filter_cases(
        self,
        search: Optional[str] = None,
        status: Optional[CaseStatus] = None,
        specialty: Optional[str] = None,
    ) -> List[Case]:
        """
        Filter cases for listings.

        Args:
            search: Case-insensitive substring of the key or gold primary code
            status: Only cases with this status
            specialty: Only cases tagged with this specialty

        Returns:
            Matching cases sorted by key
        """
        needle = search.lower().strip() if search else ""
        matches = []
        for case in self.list_cases():
            if status is not None and case.status is not status:
                continue
            if specialty is not None and case.specialty != specialty:
                continue
            if needle:
                primary = case.ground_truth.primary_code.lower() if case.ground_truth else ""
                if needle not in case.key.lower() and needle not in primary:
                    continue
            matches.append(case)
        return matches

    def count_by_status(self) -> Dict[CaseStatus, int]:
        counts = {status: 0 for status in CaseStatus}
        for case in self._cases.values():
            counts[case.status] += 1
        return counts

    # =========================================================================
    # STAGE 4: OPERATOR EDITS
    # =========================================================================

    def update_specialty(self, key: str, specialty: Optional[str]) -> WriteResult:
        """
        Explicitly re-tag a case. Ingestion never overwrites specialty; this does.

        Raises:
            CaseNotFoundError: If no case has this key
        """
        case = self.require(key)
        case.specialty = specialty
        result = mirror_write(
            f"patch case {key}",
            lambda: self._persistence.patch_case(key, {"specialty": specialty}),
        )
        self._track(key, result)
        return result

    def delete_case(self, key: str) -> WriteResult:
        """Remove a case. Deleting an unknown key is a no-op."""
        if self._cases.pop(key, None) is None:
            return WriteResult()
        return self._mirror_delete(key)

    # =========================================================================
    # STAGE 5: DURABILITY
    # =========================================================================

    @property
    def unsynced_keys(self) -> Set[str]:
        """Keys whose latest change has not reached the durable store."""
        return set(self._unsynced)

    def sync(self) -> int:
        """
        Push every unsynced change to the store again. A key with no case
        in memory is a pending delete.

        Returns:
            Number of changes committed by this call
        """
        committed = 0
        for key in sorted(self._unsynced):
            case = self._cases.get(key)
            result = self._mirror_delete(key) if case is None else self._mirror(case)
            if result.committed:
                committed += 1
        return committed

    def _mirror_delete(self, key: str) -> WriteResult:
        result = mirror_write(f"delete case {key}", lambda: self._persistence.delete_case(key))
        self._track(key, result)
        return result

    def _mirror(self, case: Case) -> WriteResult:
        record = case.to_dict()
        result = mirror_write(
            f"upsert case {case.key}", lambda: self._persistence.upsert_case(record)
        )
        self._track(case.key, result)
        return result

    def _track(self, key: str, result: WriteResult) -> None:
        if result.committed:
            self._unsynced.discard(key)
        else:
            self._unsynced.add(key)

    def __len__(self) -> int:
        return len(self._cases)

    def __contains__(self, key: str) -> bool:
        return key in self._cases

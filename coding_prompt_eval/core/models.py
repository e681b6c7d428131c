"""
Domain Models for the Coding Prompt Evaluation Harness

This module defines the core data structures used throughout the harness.
Gold-standard and run records are frozen dataclasses with tuple-valued code
lists, so nothing downstream can mutate history by accident.

Model Hierarchy:
    GroundTruth      → Auditor-verified coding for one case
    AuditEntry       → One row extracted from an audit PDF (wire shape)
    CaseMetadata     → Source filenames attached to a case
    Case             → Unit of evaluation, keyed by patient record number
    Prediction       → Model output for one test run (ephemeral)
    Score            → Comparison of a prediction against the gold standard
    TestRunDraft     → A scored run before the ledger stamps it
    TestRun          → Immutable, stamped record owned by the ledger
    SavedPrompt      → Named prompt text
    WriteResult      → Whether a change was applied locally and/or committed
    NoteIngestionResult → Outcome of linking one clinical note

Usage:
    from coding_prompt_eval.core.models import GroundTruth, Prediction

    gold = GroundTruth(primary_code="N20.0", procedure_codes=("52356",))

Author: Shubham Singh
Date: October 2026
"""

from dataclasses import dataclass, field, replace
from datetime import datetime
from typing import Any, Dict, Iterable, List, Optional, Tuple

from coding_prompt_eval.core.enums import CaseStatus


def _utc_isoformat(timestamp: Any) -> str:
    """Stored timestamp as text fromisoformat accepts; a trailing "Z" becomes "+00:00"."""
    text = str(timestamp)
    return text[:-1] + "+00:00" if text.endswith("Z") else text


def _as_code_tuple(values: Optional[Iterable[str]]) -> Tuple[str, ...]:
    """Coerce a list of codes from a JSON record into a tuple of strings."""
    if not values:
        return ()
    return tuple(str(value) for value in values)


# =============================================================================
# STAGE 1: GOLD STANDARD
# =============================================================================


@dataclass(frozen=True)
class GroundTruth:
    """
    The gold-standard coding for one case.

    What it does:
        Holds the auditor-verified primary diagnosis, secondary diagnoses,
        procedure (CPT) codes and auditor notes for a case.

    Why it exists:
        1. Scoring compares every prediction against it
        2. Frozen so that a TestRun's denormalized copy cannot drift
        3. Replaced wholesale on re-ingestion (last write wins)

    Attributes:
        primary_code: Principal ICD-10 diagnosis (e.g. "N20.0")
        secondary_codes: Other ICD-10 codes, order irrelevant
        procedure_codes: CPT codes, possibly with modifier (e.g. "99214-25")
        auditor_notes: Free text from the audit
    """

    primary_code: str
    secondary_codes: Tuple[str, ...] = ()
    procedure_codes: Tuple[str, ...] = ()
    auditor_notes: str = ""

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for JSON serialization."""
        return {
            "primary_icd": self.primary_code,
            "secondary_icds": list(self.secondary_codes),
            "cpt_codes": list(self.procedure_codes),
            "auditor_notes": self.auditor_notes,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "GroundTruth":
        """Create from dictionary (JSON deserialization)."""
        return cls(
            primary_code=data.get("primary_icd", data.get("primary_code", "")) or "",
            secondary_codes=_as_code_tuple(data.get("secondary_icds", data.get("secondary_codes"))),
            procedure_codes=_as_code_tuple(data.get("cpt_codes", data.get("procedure_codes"))),
            auditor_notes=data.get("auditor_notes", "") or "",
        )


@dataclass(frozen=True)
class AuditEntry:
    """
    One encounter extracted from an audit document.

    Entries without an identifier are tolerated here and skipped by the
    case repository; PDF extraction is noisy.

    Attributes:
        identifier: Patient record number, or None if the extractor missed it
        source_filename_reference: Filename printed in the audit header bar
        primary_code: First auditor ICD-10 code
        secondary_codes: Remaining auditor ICD-10 codes
        procedure_codes: Auditor CPT codes with modifiers joined ("99214-25")
        notes: Auditor notes
    """

    identifier: Optional[str]
    source_filename_reference: str = ""
    primary_code: str = ""
    secondary_codes: Tuple[str, ...] = ()
    procedure_codes: Tuple[str, ...] = ()
    notes: str = ""

    def to_ground_truth(self) -> GroundTruth:
        """Build the gold standard carried by this entry."""
        return GroundTruth(
            primary_code=self.primary_code,
            secondary_codes=self.secondary_codes,
            procedure_codes=self.procedure_codes,
            auditor_notes=self.notes,
        )

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "AuditEntry":
        """Create from the audit wire shape (original field names accepted)."""
        identifier = data.get("identifier", data.get("mrn"))
        return cls(
            identifier=str(identifier).strip() if identifier else None,
            source_filename_reference=data.get(
                "source_filename_reference", data.get("audit_filename_ref", "")
            )
            or "",
            primary_code=data.get("primary_code", data.get("primary_icd", "")) or "",
            secondary_codes=_as_code_tuple(data.get("secondary_codes", data.get("secondary_icds"))),
            procedure_codes=_as_code_tuple(data.get("procedure_codes", data.get("cpt_codes"))),
            notes=data.get("notes", data.get("auditor_notes", "")) or "",
        )


# =============================================================================
# STAGE 2: CASE
# =============================================================================


@dataclass(frozen=True)
class CaseMetadata:
    """Source filenames attached to a case."""

    audit_filename_ref: Optional[str] = None
    audit_source: Optional[str] = None
    raw_note_file: Optional[str] = None

    def merged(self, **updates: Optional[str]) -> "CaseMetadata":
        """Return a copy with the given fields overwritten."""
        return replace(self, **updates)

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary, dropping unset fields."""
        data = {
            "audit_filename_ref": self.audit_filename_ref,
            "audit_source": self.audit_source,
            "raw_note_file": self.raw_note_file,
        }
        return {k: v for k, v in data.items() if v is not None}

    @classmethod
    def from_dict(cls, data: Optional[Dict[str, Any]]) -> "CaseMetadata":
        data = data or {}
        return cls(
            audit_filename_ref=data.get("audit_filename_ref"),
            audit_source=data.get("audit_source"),
            raw_note_file=data.get("raw_note_file"),
        )


@dataclass
class Case:
    """
    The unit of evaluation: one patient encounter keyed by record number.

    What it does:
        Combines the gold standard and/or the raw clinical note for one key.
        Exactly one Case exists per key; ingestion mutates it in place.

    Why status is a property:
        Completeness is fully derived from which halves are present, so it
        is recomputed on every read and can never drift from the data.

    Attributes:
        key: Patient record number
        specialty: Specialty of the first audit batch that mentioned the key
        ground_truth: Gold standard, once an audit entry has been ingested
        raw_text: Clinical note text, once a note has been ingested
        metadata: Source filenames
    """

    key: str
    specialty: Optional[str] = None
    ground_truth: Optional[GroundTruth] = None
    raw_text: Optional[str] = None
    metadata: CaseMetadata = field(default_factory=CaseMetadata)

    @property
    def status(self) -> CaseStatus:
        """Completeness status derived from the halves present."""
        return CaseStatus.derive(self.ground_truth is not None, bool(self.raw_text))

    @property
    def is_complete(self) -> bool:
        return self.status is CaseStatus.COMPLETE

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for persistence (status mirrored for readers)."""
        return {
            "mrn": self.key,
            "status": self.status.value,
            "specialty": self.specialty,
            "ground_truth": self.ground_truth.to_dict() if self.ground_truth else None,
            "raw_text": self.raw_text,
            "metadata": self.metadata.to_dict(),
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Case":
        """Create from a persisted record. A stored status is ignored."""
        ground_truth = data.get("ground_truth")
        return cls(
            key=str(data.get("mrn", data.get("key"))),
            specialty=data.get("specialty"),
            ground_truth=GroundTruth.from_dict(ground_truth) if ground_truth else None,
            raw_text=data.get("raw_text") or None,
            metadata=CaseMetadata.from_dict(data.get("metadata")),
        )


# =============================================================================
# STAGE 3: PREDICTION AND SCORE
# =============================================================================


@dataclass(frozen=True)
class Prediction:
    """
    The model's coding output for one test run.

    Ephemeral: only its fields are kept, embedded in a TestRun.
    """

    primary_code: str
    secondary_codes: Tuple[str, ...] = ()
    procedure_codes: Tuple[str, ...] = ()
    reasoning: str = ""


@dataclass(frozen=True)
class Score:
    """
    Result of comparing one prediction with one gold standard.

    Attributes:
        primary_match: Normalized primary codes are equal
        cpt_recall: |matched| / |gold procedure set|, 0 when the set is empty
        cpt_precision: |matched| / |predicted procedure set|, 0 when empty
        matched_cpts: gold ∩ predicted (normalized)
        missed_cpts: gold − predicted
        hallucinated_cpts: predicted − gold
    """

    primary_match: bool
    cpt_recall: float
    cpt_precision: float
    matched_cpts: Tuple[str, ...] = ()
    missed_cpts: Tuple[str, ...] = ()
    hallucinated_cpts: Tuple[str, ...] = ()


# =============================================================================
# STAGE 4: TEST RUNS
# =============================================================================


@dataclass(frozen=True)
class TestRunDraft:
    """
    A scored run that has not yet been stamped with id and timestamp.

    The gold fields are copied (not referenced) so that later edits to a
    case's ground truth never change a historical run.
    """

    __test__ = False

    case_key: str
    model: str
    prompt_name: str
    prompt_text: str
    primary_match: bool
    cpt_recall: float
    cpt_precision: float
    matched_cpts: Tuple[str, ...]
    missed_cpts: Tuple[str, ...]
    hallucinated_cpts: Tuple[str, ...]
    pred_primary: str
    pred_cpts: Tuple[str, ...]
    gold_primary: str
    gold_cpts: Tuple[str, ...]
    reasoning: Optional[str] = None

    @classmethod
    def from_score(
        cls,
        case_key: str,
        model: str,
        prompt_name: str,
        prompt_text: str,
        gold: GroundTruth,
        prediction: Prediction,
        score: Score,
    ) -> "TestRunDraft":
        """Assemble a draft from the pieces of one evaluation round."""
        return cls(
            case_key=case_key,
            model=model,
            prompt_name=prompt_name,
            prompt_text=prompt_text,
            primary_match=score.primary_match,
            cpt_recall=score.cpt_recall,
            cpt_precision=score.cpt_precision,
            matched_cpts=score.matched_cpts,
            missed_cpts=score.missed_cpts,
            hallucinated_cpts=score.hallucinated_cpts,
            pred_primary=prediction.primary_code,
            pred_cpts=prediction.procedure_codes,
            gold_primary=gold.primary_code,
            gold_cpts=gold.procedure_codes,
            reasoning=prediction.reasoning or None,
        )


@dataclass(frozen=True)
class TestRun(TestRunDraft):
    """
    Immutable record of one scored execution of a prompt against one case.

    Created exactly once by the ledger; never updated. Cases hold no
    reference to their runs; association is by case_key lookup only.
    """

    __test__ = False

    id: str = ""
    timestamp: str = ""

    @property
    def created_at(self) -> datetime:
        """Parsed timestamp."""
        return datetime.fromisoformat(self.timestamp)

    @property
    def count_precision(self) -> float:
        """
        Precision derived from counts:
        (predicted − hallucinated) / predicted, 0 with no predicted codes.
        """
        predicted = len(self.pred_cpts)
        if predicted == 0:
            return 0.0
        return (predicted - len(self.hallucinated_cpts)) / predicted

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for persistence."""
        return {
            "id": self.id,
            "timestamp": self.timestamp,
            "mrn": self.case_key,
            "model": self.model,
            "prompt_name": self.prompt_name,
            "prompt_text": self.prompt_text,
            "primary_match": self.primary_match,
            "cpt_recall": self.cpt_recall,
            "cpt_precision": self.cpt_precision,
            "matched_cpts": list(self.matched_cpts),
            "missed_cpts": list(self.missed_cpts),
            "hallucinated_cpts": list(self.hallucinated_cpts),
            "pred_primary": self.pred_primary,
            "pred_cpts": list(self.pred_cpts),
            "gold_primary": self.gold_primary,
            "gold_cpts": list(self.gold_cpts),
            "reasoning": self.reasoning,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "TestRun":
        """
        Create from a persisted record.

        Older records carry neither precision nor matched codes; both are
        rebuilt from the stored code lists.
        """
        pred_cpts = _as_code_tuple(data.get("pred_cpts"))
        hallucinated = _as_code_tuple(data.get("hallucinated_cpts"))
        missed = _as_code_tuple(data.get("missed_cpts"))
        matched = data.get("matched_cpts")
        if matched is None:
            gold_normalized = [c.lower().strip() for c in _as_code_tuple(data.get("gold_cpts"))]
            matched = [c for c in dict.fromkeys(gold_normalized) if c not in missed]
        precision = data.get("cpt_precision")
        if precision is None:
            precision = (
                (len(pred_cpts) - len(hallucinated)) / len(pred_cpts) if pred_cpts else 0.0
            )
        return cls(
            id=str(data["id"]),
            timestamp=_utc_isoformat(data["timestamp"]),
            case_key=str(data.get("mrn", data.get("case_key"))),
            model=data.get("model", ""),
            prompt_name=data.get("prompt_name", ""),
            prompt_text=data.get("prompt_text") or "",
            primary_match=bool(data.get("primary_match")),
            cpt_recall=float(data.get("cpt_recall", 0.0)),
            cpt_precision=float(precision),
            matched_cpts=_as_code_tuple(matched),
            missed_cpts=missed,
            hallucinated_cpts=hallucinated,
            pred_primary=data.get("pred_primary", "") or "",
            pred_cpts=pred_cpts,
            gold_primary=data.get("gold_primary", "") or "",
            gold_cpts=_as_code_tuple(data.get("gold_cpts")),
            reasoning=data.get("reasoning"),
        )


# =============================================================================
# STAGE 5: SAVED PROMPTS
# =============================================================================


@dataclass
class SavedPrompt:
    """
    A named prompt text. Saving an existing name overwrites the text only;
    id and created_at are kept.
    """

    id: str
    name: str
    text: str
    created_at: str

    def to_dict(self) -> Dict[str, Any]:
        return {"id": self.id, "name": self.name, "text": self.text, "createdAt": self.created_at}

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "SavedPrompt":
        return cls(
            id=str(data["id"]),
            name=data["name"],
            text=data.get("text", ""),
            created_at=data.get("createdAt", data.get("created_at", "")),
        )


# =============================================================================
# STAGE 6: OPERATION RESULTS
# =============================================================================


@dataclass(frozen=True)
class WriteResult:
    """
    Outcome of a state change mirrored to the persistence collaborator.

    The in-memory state always reflects the change (applied_locally);
    committed says whether the durable store accepted it too.
    """

    applied_locally: bool = True
    committed: bool = True
    error: Optional[str] = None

    @property
    def is_durable(self) -> bool:
        return self.applied_locally and self.committed


@dataclass(frozen=True)
class NoteIngestionResult:
    """
    Outcome of linking one clinical note to a case.

    An unfound identifier is a normal failure result, not an exception,
    so a batch can carry on with the remaining files.
    """

    success: bool
    identifier: Optional[str] = None
    filename: str = ""
    error: Optional[str] = None


@dataclass
class BatchIngestionReport:
    """Per-file outcomes of a multi-file note ingestion."""

    results: List[NoteIngestionResult] = field(default_factory=list)

    @property
    def processed(self) -> int:
        return len(self.results)

    @property
    def linked(self) -> int:
        return sum(1 for r in self.results if r.success)

    @property
    def message(self) -> str:
        return f"Processed {self.processed} files. {self.linked} successfully linked."

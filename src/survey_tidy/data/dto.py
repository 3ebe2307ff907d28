from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, List, Optional, Tuple, Union

from survey_tidy.exceptions import (
    AlignmentError,
    ConsistencyMismatch,
    DomainViolation,
    StructuralMismatchError,
)


class _Missing:
    """Explicit "never collected" marker. Distinct from 0, "" and every category."""

    _instance = None

    def __new__(cls):
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    def __repr__(self) -> str:
        return "MISSING"

    def __bool__(self) -> bool:
        return False


MISSING = _Missing()


@dataclass(frozen=True)
class RawRecord:
    """One row of the raw export: an id and the single encoded response string."""
    record_id: Any
    encoded: str


@dataclass(frozen=True)
class Chunk:
    """Result of one delimiter split; intermediate, only its log entry outlives the run."""
    stage: str
    delimiter: str
    pieces: Tuple[str, ...]
    expected: Optional[Tuple[int, ...]] = None
    remainder: Optional[str] = None

    def log_entry(self) -> Dict[str, Any]:
        return {
            "stage": self.stage,
            "count": len(self.pieces),
            "expected": list(self.expected) if self.expected is not None else None,
            "remainder": self.remainder,
        }


@dataclass(frozen=True)
class ChunkedRecord:
    record_id: Any
    pre_scalars: Tuple[str, ...]
    pre_text: str
    continuation: Tuple[str, ...]
    post_scalars: Tuple[str, ...]
    post_text: str
    stamps: Tuple[str, ...]
    chunks: Tuple[Chunk, ...] = ()

    def scalars(self, occasion: str) -> Tuple[str, ...]:
        return self.pre_scalars if occasion == "pre" else self.post_scalars

    def text(self, occasion: str) -> str:
        return self.pre_text if occasion == "pre" else self.post_text


@dataclass(frozen=True)
class FieldSet:
    """Immutable, ordered name -> value mapping for one occasion of one record."""
    occasion: str
    items: Tuple[Tuple[str, Any], ...]

    @classmethod
    def from_pairs(cls, occasion: str, names: Iterable[str], values: Iterable[Any]) -> "FieldSet":
        names = list(names)
        values = list(values)
        if len(names) != len(values):
            raise ValueError(f"{len(names)} names for {len(values)} values")
        return cls(occasion=occasion, items=tuple(zip(names, values)))

    @classmethod
    def empty(cls, occasion: str, names: Iterable[str]) -> "FieldSet":
        names = list(names)
        return cls.from_pairs(occasion, names, [MISSING] * len(names))

    def __getitem__(self, name: str) -> Any:
        for key, value in self.items:
            if key == name:
                return value
        raise KeyError(name)

    def __contains__(self, name: object) -> bool:
        return any(key == name for key, _ in self.items)

    def get(self, name: str, default: Any = MISSING) -> Any:
        try:
            return self[name]
        except KeyError:
            return default

    def is_missing(self, name: str) -> bool:
        return self[name] is MISSING

    @property
    def names(self) -> List[str]:
        return [key for key, _ in self.items]

    def as_dict(self) -> Dict[str, Any]:
        return dict(self.items)

    def replace(self, **changes: Any) -> "FieldSet":
        unknown = set(changes) - set(self.names)
        if unknown:
            raise KeyError(f"unknown fields: {sorted(unknown)}")
        return FieldSet(
            occasion=self.occasion,
            items=tuple((key, changes.get(key, value)) for key, value in self.items),
        )


@dataclass(frozen=True)
class Aligned:
    fieldset: FieldSet


@dataclass(frozen=True)
class ShortByOne:
    fieldset: FieldSet
    missing_field: str


@dataclass(frozen=True)
class Unrecognized:
    fragments: Tuple[str, ...]
    reason: str


AlignmentResult = Union[Aligned, ShortByOne, Unrecognized]


@dataclass(frozen=True)
class TidyRecord:
    """Final per-participant row. Built once from a recovered FieldSet pair."""
    record_id: Any
    status: str  # ok | structural_error | alignment_error
    pre: FieldSet
    post: FieldSet
    continuation: FieldSet
    pre_date: Any = MISSING
    post_date: Any = MISSING
    pre_text: Any = MISSING  # tuple of responses or MISSING
    post_text: Any = MISSING
    consistency: Tuple[Tuple[str, bool], ...] = ()

    def to_row(self, text_field: str = "Text", date_field: str = "Date") -> Dict[str, Any]:
        row: Dict[str, Any] = {"id": self.record_id, "status": self.status}
        for fieldset, date, text in (
            (self.pre, self.pre_date, self.pre_text),
            (self.post, self.post_date, self.post_text),
        ):
            suffix = fieldset.occasion
            for name, value in fieldset.items:
                row[f"{name}_{suffix}"] = value
            row[f"{text_field}_{suffix}"] = text
            row[f"{date_field}_{suffix}"] = date
        for name, value in self.continuation.items:
            row[name] = value
        for name, ok in self.consistency:
            row[f"consistent_{name}"] = ok
        return row


@dataclass
class DiagnosticsReport:
    """Everything that deviated from the expected shape, accumulated over one run."""
    total_records: int = 0
    structural_errors: List[StructuralMismatchError] = field(default_factory=list)
    alignment_errors: List[AlignmentError] = field(default_factory=list)
    domain_violations: List[DomainViolation] = field(default_factory=list)
    consistency_mismatches: List[ConsistencyMismatch] = field(default_factory=list)
    recoveries: List[Dict[str, Any]] = field(default_factory=list)
    chunk_log: List[Dict[str, Any]] = field(default_factory=list)
    mismatch_counts: Dict[str, int] = field(default_factory=dict)
    declared_optional_field: Optional[str] = None
    inferred_optional_field: Optional[str] = None

    @property
    def failed_records(self) -> int:
        return len(self.structural_errors) + len(self.alignment_errors)

    @property
    def optional_field_confirmed(self) -> bool:
        return self.inferred_optional_field in (None, self.declared_optional_field)

    def summary(self) -> Dict[str, Any]:
        return {
            "total_records": self.total_records,
            "failed_records": self.failed_records,
            "structural_errors": len(self.structural_errors),
            "alignment_errors": len(self.alignment_errors),
            "domain_violations": len(self.domain_violations),
            "consistency_mismatches": len(self.consistency_mismatches),
            "recoveries": len(self.recoveries),
            "optional_field_confirmed": self.optional_field_confirmed,
        }

    def to_dict(self) -> Dict[str, Any]:
        return {
            "summary": self.summary(),
            "structural_errors": [e.to_dict() for e in self.structural_errors],
            "alignment_errors": [e.to_dict() for e in self.alignment_errors],
            "domain_violations": [e.to_dict() for e in self.domain_violations],
            "consistency_mismatches": [e.to_dict() for e in self.consistency_mismatches],
            "recoveries": list(self.recoveries),
            "chunk_log": list(self.chunk_log),
            "mismatch_counts": dict(self.mismatch_counts),
            "declared_optional_field": self.declared_optional_field,
            "inferred_optional_field": self.inferred_optional_field,
        }

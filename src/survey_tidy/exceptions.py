from typing import Any, Dict, Optional


class SurveyTidyError(Exception):
    """Base exception for survey-tidy errors."""
    pass


class ConfigError(SurveyTidyError):
    """Configuration or schema loading specific errors."""
    pass


class DataSourceError(SurveyTidyError):
    """Input table loading / shape errors."""
    pass


class RowError(SurveyTidyError):
    """
    Base for every deviation tied to one input row.
    Carries enough context to be written into the diagnostics report.
    """

    kind = "row_error"

    def __init__(self, message: str, *, record_id: Any = None, **context: Any):
        super().__init__(message)
        self.message = message
        self.record_id = record_id
        self.context = context

    def to_dict(self) -> Dict[str, Any]:
        payload = {"kind": self.kind, "record_id": self.record_id, "message": self.message}
        payload.update(self.context)
        return payload


class StructuralMismatchError(RowError):
    """A chunking stage saw a piece count outside the accepted counts. Fatal for the row."""

    kind = "structural_mismatch"

    def __init__(
        self,
        message: str,
        *,
        record_id: Any = None,
        stage: str = "",
        actual: int = 0,
        expected: Optional[tuple] = None,
        remainder: str = "",
    ):
        super().__init__(
            message,
            record_id=record_id,
            stage=stage,
            actual=actual,
            expected=list(expected or ()),
            remainder=remainder,
        )
        self.stage = stage
        self.actual = actual
        self.expected = tuple(expected or ())
        self.remainder = remainder


class AlignmentError(RowError):
    """No recovery rule maps the observed fields onto the canonical order. Fatal for the row."""

    kind = "alignment_error"

    def __init__(self, message: str, *, record_id: Any = None, occasion: str = "", fragments: Optional[list] = None):
        super().__init__(message, record_id=record_id, occasion=occasion, fragments=list(fragments or []))
        self.occasion = occasion
        self.fragments = list(fragments or [])


class DomainViolation(RowError):
    """A value falls outside its field's declared domain. Recoverable: the raw value is kept."""

    kind = "domain_violation"

    def __init__(self, message: str, *, record_id: Any = None, field: str = "", value: Any = None, occasion: str = ""):
        super().__init__(message, record_id=record_id, field=field, value=value, occasion=occasion)
        self.field = field
        self.value = value
        self.occasion = occasion

    def with_context(self, record_id: Any, occasion: str) -> "DomainViolation":
        return DomainViolation(self.message, record_id=record_id, field=self.field, value=self.value, occasion=occasion)


class ConsistencyMismatch(RowError):
    """A field collected on both occasions disagrees. Reported, never repaired."""

    kind = "consistency_mismatch"

    def __init__(self, message: str, *, record_id: Any = None, field: str = "", pre: Any = None, post: Any = None):
        super().__init__(message, record_id=record_id, field=field, pre=pre, post=post)
        self.field = field
        self.pre = pre
        self.post = post

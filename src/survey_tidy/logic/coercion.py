import logging
from datetime import date
from typing import Any, Dict, Iterable, List, Tuple

from survey_tidy.data.dto import MISSING, FieldSet
from survey_tidy.exceptions import DomainViolation
from survey_tidy.schema import INTEGER, FieldSpec

logger = logging.getLogger(__name__)

DEFAULT_MISSING_TOKENS = ("", "(not asked)")


def extract_date(stamp: str) -> date:
    """`submitted>2019-02-11T04:36:04.112Z` -> date(2019, 2, 11). Time and zone are dropped."""
    tail = stamp.split(">")[-1]
    prefix = tail.split("T")[0].strip()
    return date.fromisoformat(prefix)


def coerce_value(value: Any, spec: FieldSpec, missing_tokens: Iterable[str] = DEFAULT_MISSING_TOKENS) -> Any:
    """
    Convert one raw value to its declared type.
    Already-typed values pass through, so coercing twice is a no-op.
    Raises DomainViolation when the value is outside the field's domain.
    """
    if value is MISSING:
        return MISSING

    if spec.kind == "int" and isinstance(value, int) and not isinstance(value, bool):
        return _check_range(value, spec)
    if spec.kind == "date" and isinstance(value, date):
        return value
    if not isinstance(value, str):
        raise DomainViolation(f"{spec.name}: unexpected {type(value).__name__}", field=spec.name, value=value)

    text = value.strip()
    if text in missing_tokens:
        return MISSING

    if spec.kind == "int":
        if not INTEGER.fullmatch(text):
            raise DomainViolation(f"{spec.name}: '{text}' is not an integer", field=spec.name, value=text)
        return _check_range(int(text), spec)

    if spec.kind == "category":
        if text not in spec.categories:
            raise DomainViolation(f"{spec.name}: '{text}' is not a known category", field=spec.name, value=text)
        return text

    if spec.kind == "date":
        try:
            return extract_date(text)
        except ValueError as e:
            raise DomainViolation(f"{spec.name}: no date in '{text}'", field=spec.name, value=text) from e

    if not spec.in_domain(text):
        raise DomainViolation(f"{spec.name}: '{text}' does not match {spec.pattern}", field=spec.name, value=text)
    return text


def _check_range(number: int, spec: FieldSpec) -> int:
    if (spec.minimum is not None and number < spec.minimum) or (
        spec.maximum is not None and number > spec.maximum
    ):
        raise DomainViolation(
            f"{spec.name}: {number} outside {spec.minimum}..{spec.maximum}",
            field=spec.name,
            value=number,
        )
    return number


def coerce_fieldset(
    fieldset: FieldSet,
    specs: Dict[str, FieldSpec],
    record_id: Any = None,
    missing_tokens: Iterable[str] = DEFAULT_MISSING_TOKENS,
) -> Tuple[FieldSet, List[DomainViolation]]:
    """Coerce every field; violating fields keep their raw value and are reported."""
    missing_tokens = tuple(missing_tokens)
    typed = {}
    violations: List[DomainViolation] = []
    for name, value in fieldset.items:
        try:
            typed[name] = coerce_value(value, specs[name], missing_tokens)
        except DomainViolation as e:
            violations.append(e.with_context(record_id, fieldset.occasion))
            typed[name] = value.strip() if isinstance(value, str) else value

    if violations:
        logger.warning(
            "domain violations",
            extra={"record_id": record_id, "occasion": fieldset.occasion, "fields": [v.field for v in violations]},
        )
    return fieldset.replace(**typed), violations

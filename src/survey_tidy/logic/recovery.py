"""
Maps comma-separated fragments onto the canonical field order.

Recovery is driven by the schema's rule table (observed field count -> strategy)
rather than by per-row guessing. A row the table does not cover comes back as
`Unrecognized` and `recover()` turns it into an AlignmentError.
"""
import logging
from typing import Any, Iterable, List, Optional, Sequence, Tuple

import pandas as pd

from survey_tidy.data.dto import (
    MISSING,
    Aligned,
    AlignmentResult,
    FieldSet,
    ShortByOne,
    Unrecognized,
)
from survey_tidy.exceptions import AlignmentError
from survey_tidy.schema import RecoveryRule, SurveySchema

logger = logging.getLogger(__name__)


def align_scalars(pieces: Sequence[str], occasion: str, schema: SurveySchema) -> AlignmentResult:
    names = schema.occasion_names
    values = [p.strip() for p in pieces]
    fragments = tuple(pieces)

    rule = schema.rule_for(len(values))
    if rule is None:
        known = sorted(r.observed_count for r in schema.recovery_rules)
        return Unrecognized(fragments, f"{len(values)} fields observed, recovery rules cover {known}")

    if rule.strategy == "short_by_one":
        return _reanchor(values, rule, occasion, schema, fragments)

    short_rule = schema.short_rule()
    if short_rule is None:
        return Aligned(FieldSet.from_pairs(occasion, names, values))

    anchor_idx = names.index(short_rule.anchor_field)
    if values[anchor_idx] != "":
        return Aligned(FieldSet.from_pairs(occasion, names, values))

    # Full width but the anchor slot is blank: the exporter padded a short row.
    if values[names.index(short_rule.optional_field)] == "":
        return Unrecognized(
            fragments,
            f"{short_rule.optional_field} and {short_rule.anchor_field} are both blank",
        )
    short = values[:anchor_idx] + values[anchor_idx + 1:]
    return _reanchor(short, short_rule, occasion, schema, fragments)


def _reanchor(
    values: List[Any],
    rule: RecoveryRule,
    occasion: str,
    schema: SurveySchema,
    fragments: Tuple[str, ...],
) -> AlignmentResult:
    names = schema.occasion_names
    optional_idx = names.index(rule.optional_field)
    realigned = values[:optional_idx] + [MISSING] + values[optional_idx:]

    recovered = realigned[names.index(rule.anchor_field)]
    if recovered != rule.anchor_code:
        return Unrecognized(
            fragments,
            f"{rule.anchor_field} would recover '{recovered}', expected '{rule.anchor_code}'",
        )

    # The skipped field must be the optional one: its slot holds a foreign value
    # and every shifted value lands inside its new field's domain.
    specs = schema.specs()
    displaced = values[optional_idx]
    if not schema.is_missing_token(displaced) and specs[rule.optional_field].in_domain(displaced):
        return Unrecognized(
            fragments,
            f"'{displaced}' is a valid {rule.optional_field} answer, another field was skipped",
        )
    for name, value in zip(names[optional_idx + 1:], realigned[optional_idx + 1:]):
        if not schema.is_missing_token(value) and not specs[name].in_domain(value):
            return Unrecognized(fragments, f"{name} would recover '{value}', outside its domain")
    return ShortByOne(FieldSet.from_pairs(occasion, names, realigned), missing_field=rule.optional_field)


def align_continuation(pieces: Sequence[str], schema: SurveySchema) -> AlignmentResult:
    """
    The leading single-select answer may contain a comma ("Yes, but not right now").
    Join the longest prefix that spells a known category, then assign the rest by position.
    """
    names = schema.continuation_names
    lead = schema.continuation_fields[0]

    values = [p.strip() for p in pieces]
    for width in range(len(pieces), 0, -1):
        candidate = ",".join(pieces[:width]).strip()
        if candidate in lead.categories:
            values = [candidate] + [p.strip() for p in pieces[width:]]
            break

    if len(values) != len(names):
        return Unrecognized(tuple(pieces), f"continuation has {len(values)} fields, expected {len(names)}")
    return Aligned(FieldSet.from_pairs("continuation", names, values))


def recover(result: AlignmentResult, record_id: Any = None, occasion: str = "") -> FieldSet:
    if isinstance(result, (Aligned, ShortByOne)):
        return result.fieldset
    raise AlignmentError(
        f"{occasion or 'fields'}: {result.reason}",
        record_id=record_id,
        occasion=occasion,
        fragments=list(result.fragments),
    )


# ---------------------------------------------------------------------------
# Empirical checks of the declared rule
# ---------------------------------------------------------------------------

def naive_frame(rows: Iterable[Tuple[Any, Sequence[str]]], schema: SurveySchema) -> pd.DataFrame:
    """Plain positional assignment, no recovery. Short rows leave trailing NaN."""
    names = schema.occasion_names
    records = []
    for record_id, pieces in rows:
        values = [p.strip() for p in pieces]
        row = {"id": record_id, "observed_count": len(values)}
        row.update(zip(names, values))
        records.append(row)
    return pd.DataFrame(records, columns=["id", "observed_count"] + names)


def crosstab_adjacent(frame: pd.DataFrame, left: str, right: str) -> pd.DataFrame:
    return pd.crosstab(frame[left].fillna("<none>"), frame[right].fillna("<none>"))


def infer_optional_field(frame: pd.DataFrame, schema: SurveySchema) -> Optional[str]:
    """
    First field whose observed values include entries from the next field's
    domain (and not its own): those rows skipped that field.
    """
    specs = schema.occasion_fields
    for current, following in zip(specs, specs[1:]):
        observed = {str(v) for v in frame[current.name].dropna() if str(v) != ""}
        foreign = sorted(v for v in observed if following.in_domain(v) and not current.in_domain(v))
        if foreign:
            logger.debug(
                "foreign values detected",
                extra={"field": current.name, "neighbour": following.name, "values": foreign[:5]},
            )
            return current.name
    return None

from datetime import date

import pytest

from factories import full_fields
from survey_tidy.data.dto import MISSING, FieldSet
from survey_tidy.exceptions import DomainViolation
from survey_tidy.logic.coercion import coerce_fieldset, coerce_value, extract_date
from survey_tidy.schema import FieldSpec

ITEM = FieldSpec(name="Q5", kind="int", minimum=0, maximum=6)


def test_extract_date_prefix():
    extracted = extract_date("submitted>2019-02-11T04:36:04.112Z")
    assert extracted == date(2019, 2, 11)
    assert extracted.isoformat() == "2019-02-11"


def test_coerce_date_field_and_idempotence():
    spec = FieldSpec(name="Date", kind="date")
    once = coerce_value("submitted>2019-02-11T04:36:04.112Z", spec)
    assert coerce_value(once, spec) == once


def test_int_coercion_is_idempotent():
    once = coerce_value("5", ITEM)
    assert once == 5
    assert coerce_value(once, ITEM) == 5


def test_zero_is_not_missing():
    assert coerce_value("0", ITEM) == 0
    assert coerce_value("0", ITEM) is not MISSING


@pytest.mark.parametrize("raw", ["", "   ", "(not asked)"])
def test_blank_and_not_asked_are_missing(raw):
    assert coerce_value(raw, ITEM) is MISSING


@pytest.mark.parametrize(
    "raw,spec",
    [
        ("7", ITEM),
        ("five", ITEM),
        ("Maybe", FieldSpec(name="Sex", kind="category", categories=["Female", "Male", "Other"])),
        ("2139", FieldSpec(name="Zip", kind="text", pattern=r"[0-9]{5}")),
        ("\u0663", ITEM),
        ("0_5", ITEM),
        ("submitted>last tuesday", FieldSpec(name="Date", kind="date")),
    ],
)
def test_out_of_domain_values_raise(raw, spec):
    with pytest.raises(DomainViolation) as exc:
        coerce_value(raw, spec)
    assert exc.value.field == spec.name


def test_already_typed_int_out_of_range_still_raises():
    with pytest.raises(DomainViolation):
        coerce_value(9, ITEM)


def test_coerce_fieldset_keeps_raw_value_on_violation(schema):
    fields = FieldSet.from_pairs("pre", schema.occasion_names, full_fields(Sex=" Unknown ", Age="21"))
    typed, violations = coerce_fieldset(fields, schema.specs(), record_id=42, missing_tokens=schema.missing_tokens)

    assert typed["Age"] == 21
    assert typed["Q1"] == 5
    assert typed["Zip"] == "02139"
    assert typed["Sex"] == "Unknown"
    assert len(violations) == 1
    violation = violations[0]
    assert violation.record_id == 42
    assert violation.occasion == "pre"
    assert violation.to_dict()["field"] == "Sex"

    # The original fieldset is untouched.
    assert fields["Age"] == "21"


def test_missing_marker_passes_through(schema):
    fields = FieldSet.from_pairs("pre", schema.occasion_names, full_fields()).replace(Religion=MISSING)
    typed, violations = coerce_fieldset(fields, schema.specs())
    assert typed["Religion"] is MISSING
    assert violations == []


def test_unparseable_date_keeps_parse_error_as_cause():
    with pytest.raises(DomainViolation) as exc:
        coerce_value("submitted>2019-13-40T00:00:00Z", FieldSpec(name="Date", kind="date"))
    assert isinstance(exc.value.__cause__, ValueError)

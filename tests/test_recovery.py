import pytest

from factories import ITEMS, full_fields, short_fields
from survey_tidy.data.dto import MISSING, Aligned, ShortByOne, Unrecognized
from survey_tidy.exceptions import AlignmentError
from survey_tidy.logic.recovery import (
    align_continuation,
    align_scalars,
    crosstab_adjacent,
    infer_optional_field,
    naive_frame,
    recover,
)


def test_full_row_is_identity(schema):
    result = align_scalars(full_fields(), "pre", schema)
    assert isinstance(result, Aligned)
    fields = result.fieldset
    assert fields["Religion"] == "Catholic"
    assert fields["Zip"] == "02139"
    assert fields["Condition"] == "A1"
    assert fields["Q12"] == "0"
    assert fields.names == schema.occasion_names


def test_short_row_reanchors_condition(schema):
    result = align_scalars(short_fields(), "pre", schema)
    assert isinstance(result, ShortByOne)
    assert result.missing_field == "Religion"
    fields = result.fieldset
    assert fields["Condition"] == "B1"
    assert fields["Zip"] == "02139"
    assert fields["Religion"] is MISSING
    assert fields["Politics"] == "3"


def test_full_width_row_with_blank_condition(schema):
    # Trailing empty slot left by the exporter: Zip value sits in Religion, B1 in Zip.
    pieces = short_fields() + [""]
    assert len(pieces) == 23
    result = align_scalars(pieces, "post", schema)
    assert isinstance(result, ShortByOne)
    fields = result.fieldset
    assert fields.occasion == "post"
    assert fields["Condition"] == "B1"
    assert fields["Zip"] == "02139"
    assert fields["Religion"] is MISSING


def test_short_row_without_anchor_code_fails_loudly(schema):
    pieces = short_fields(Condition="A1")
    result = align_scalars(pieces, "pre", schema)
    assert isinstance(result, Unrecognized)
    with pytest.raises(AlignmentError) as exc:
        recover(result, record_id=12, occasion="pre")
    assert exc.value.record_id == 12
    assert exc.value.occasion == "pre"
    assert "B1" in str(exc.value)


def test_short_row_skipping_zip_is_not_reanchored(schema):
    # B1 participant answered Religion but skipped Zip: shifting would move
    # "Catholic" into Zip and erase a real Religion answer.
    pieces = ITEMS + ["21", "Female", "White", "3", "Catholic", "B1"]
    assert len(pieces) == 22
    result = align_scalars(pieces, "pre", schema)
    assert isinstance(result, Unrecognized)
    assert "Religion" in result.reason
    with pytest.raises(AlignmentError):
        recover(result, record_id=7, occasion="pre")


def test_shifted_value_outside_domain_is_unrecognized(schema):
    pieces = short_fields(Zip="Boston")
    result = align_scalars(pieces, "pre", schema)
    assert isinstance(result, Unrecognized)
    assert "Zip" in result.reason


def test_short_row_with_not_asked_zip_is_recovered(schema):
    result = align_scalars(short_fields(Zip="(not asked)"), "pre", schema)
    assert isinstance(result, ShortByOne)
    assert result.fieldset["Zip"] == "(not asked)"


def test_blank_religion_and_condition_is_unrecognized(schema):
    pieces = full_fields(Religion="", Condition="")
    result = align_scalars(pieces, "pre", schema)
    assert isinstance(result, Unrecognized)


@pytest.mark.parametrize("count", [20, 21, 24])
def test_unknown_field_count_raises(schema, count):
    pieces = (full_fields() * 2)[:count]
    result = align_scalars(pieces, "pre", schema)
    assert isinstance(result, Unrecognized)
    with pytest.raises(AlignmentError):
        recover(result, record_id=1, occasion="pre")


def test_continuation_category_does_not_spill(schema):
    pieces = "Yes,5,5,6,(not asked),(not asked)".split(",")
    result = align_continuation(pieces, schema)
    assert isinstance(result, Aligned)
    fields = result.fieldset
    assert fields["Continue"] == "Yes"
    assert fields["Enjoyment"] == "5"
    assert fields["Usefulness"] == "6"
    assert fields["Revisit"] == "(not asked)"


def test_continuation_category_with_embedded_comma(schema):
    pieces = "Yes, but not right now,2,3,4,No,Yes".split(",")
    assert len(pieces) == 7
    fields = recover(align_continuation(pieces, schema))
    assert fields["Continue"] == "Yes, but not right now"
    assert fields["Enjoyment"] == "2"
    assert fields["Revisit"] == "Yes"


def test_continuation_with_wrong_count(schema):
    result = align_continuation("Yes,5,5".split(","), schema)
    assert isinstance(result, Unrecognized)


def test_infer_optional_field_from_naive_assignment(schema):
    rows = [(1, full_fields()), (2, short_fields()), (3, full_fields(Religion="Jewish"))]
    frame = naive_frame(rows, schema)
    assert list(frame["observed_count"]) == [23, 22, 23]
    assert infer_optional_field(frame, schema) == "Religion"

    table = crosstab_adjacent(frame, "Zip", "Condition")
    assert table.loc["B1", "<none>"] == 1
    assert table.loc["02139", "A1"] == 2


def test_infer_optional_field_without_short_rows(schema):
    frame = naive_frame([(1, full_fields()), (2, full_fields(Condition="B1"))], schema)
    assert infer_optional_field(frame, schema) is None

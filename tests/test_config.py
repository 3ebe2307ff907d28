import pytest
import yaml

from survey_tidy.config import Settings
from survey_tidy.exceptions import ConfigError
from survey_tidy.schema import SurveySchema, load_schema


def test_load_schema_defaults_when_file_missing(tmp_path):
    schema = load_schema(tmp_path / "missing.yaml")
    assert schema.full_count == 23
    assert schema.occasion_names[:2] == ["Q1", "Q2"]
    assert schema.occasion_names[-7:] == ["Age", "Sex", "Race", "Politics", "Religion", "Zip", "Condition"]
    assert schema.rule_for(23).strategy == "aligned"
    assert schema.rule_for(22).optional_field == "Religion"
    assert schema.rule_for(21) is None


def test_load_schema_overrides_from_yaml(tmp_path):
    path = tmp_path / "schema.yaml"
    path.write_text(
        yaml.safe_dump(
            {
                "version": "2019.2",
                "missing_tokens": ["", "(not asked)", "n/a"],
                "consistency_fields": ["Age", "Zip"],
            }
        )
    )
    schema = load_schema(path)
    assert schema.version == "2019.2"
    assert schema.is_missing_token(" n/a ")
    assert schema.consistency_fields == ["Age", "Zip"]
    # Untouched sections keep their defaults.
    assert schema.continuation_names[0] == "Continue"


def test_invalid_schema_raises_config_error(tmp_path):
    path = tmp_path / "schema.yaml"
    path.write_text(yaml.safe_dump({"consistency_fields": ["Shoe size"]}))
    with pytest.raises(ConfigError):
        load_schema(path)


def test_rule_counts_must_match_field_count():
    with pytest.raises(ValueError):
        SurveySchema(recovery_rules=[{"observed_count": 20, "strategy": "aligned"}])


def test_rule_must_reference_known_fields():
    with pytest.raises(ValueError):
        SurveySchema(
            recovery_rules=[
                {"observed_count": 22, "strategy": "short_by_one", "optional_field": "Shoe", "anchor_field": "Condition"}
            ]
        )


def test_field_spec_domains(schema):
    specs = schema.specs()
    assert specs["Zip"].in_domain("02139")
    assert not specs["Zip"].in_domain("Catholic")
    assert specs["Condition"].in_domain("B1")
    assert not specs["Age"].in_domain("6")
    assert specs["Q3"].in_domain("6")
    assert not specs["Q3"].in_domain("\u0666")
    assert not specs["Zip"].in_domain("\u0660\u0662\u0661\u0663\u0669")


def test_settings_load_from_yaml(tmp_path):
    path = tmp_path / "settings.yaml"
    path.write_text(yaml.safe_dump({"input": {"id_column": "ResponseId"}, "export": {"format": "xlsx"}}))
    loaded = Settings.load(path)
    assert loaded.input.id_column == "ResponseId"
    assert loaded.input.encoded_column == "encoded"
    assert loaded.export.format == "xlsx"


def test_settings_missing_file_raises(tmp_path):
    with pytest.raises(ConfigError):
        Settings.load(tmp_path / "nope.yaml")

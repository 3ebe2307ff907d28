import json

from typer.testing import CliRunner

from factories import encode, full_fields, raw_frame, short_fields
from survey_tidy.main import app

runner = CliRunner()


def test_version():
    result = runner.invoke(app, ["version"])
    assert result.exit_code == 0
    assert "survey-tidy" in result.output


def test_run_writes_table_and_diagnostics(tmp_path):
    source = tmp_path / "responses.csv"
    raw_frame({"1": encode(full_fields()), "2": encode(short_fields())}).to_csv(source, index=False)
    output = tmp_path / "tidy.csv"
    diagnostics = tmp_path / "diagnostics.json"

    result = runner.invoke(
        app, ["run", "--input", str(source), "--output", str(output), "--diagnostics", str(diagnostics)]
    )
    assert result.exit_code == 0, result.output
    assert output.exists()
    assert "total_records: 2" in result.output
    report = json.loads(diagnostics.read_text(encoding="utf-8"))
    assert report["summary"]["recoveries"] == 2


def test_run_with_missing_input_exits_non_zero(tmp_path):
    result = runner.invoke(app, ["run", "--input", str(tmp_path / "absent.csv")])
    assert result.exit_code == 1


def test_inspect_reports_inferred_field(tmp_path):
    source = tmp_path / "responses.csv"
    raw_frame({"1": encode(full_fields()), "2": encode(short_fields())}).to_csv(source, index=False)

    result = runner.invoke(app, ["inspect", "--input", str(source)])
    assert result.exit_code == 0, result.output
    assert "Inferred optional field: Religion" in result.output
    assert "Religion x Zip" in result.output

import logging
import sys
from pathlib import Path
from typing import Optional

import typer

from survey_tidy.config import settings
from survey_tidy.data.loader import load_raw_table, to_raw_records
from survey_tidy.exceptions import SurveyTidyError
from survey_tidy.logic import chunker, recovery
from survey_tidy.schema import load_schema
from survey_tidy.services.exporter import TableExporter
from survey_tidy.services.pipeline import TidyPipeline

app = typer.Typer(help="survey-tidy: turn the encoded survey export into a tidy table")
logger = logging.getLogger("survey_tidy")


def setup_logging(verbose: bool):
    level = logging.DEBUG if verbose else getattr(logging, settings.logging.level.upper(), logging.INFO)
    logging.basicConfig(
        level=level,
        format=settings.logging.format,
        handlers=[logging.StreamHandler(sys.stdout)],
        force=True,
    )


@app.command()
def version():
    """
    Prints the version of survey-tidy.
    """
    typer.echo(f"{settings.app.name} {settings.app.version}")


@app.command()
def run(
    input_path: Path = typer.Option(settings.paths.input_path, "--input", "-i", help="Raw export (CSV or xlsx)"),
    output_path: Path = typer.Option(settings.paths.output_path, "--output", "-o", help="Tidy table (CSV or xlsx)"),
    diagnostics_path: Path = typer.Option(
        settings.paths.diagnostics_path, "--diagnostics", "-d", help="Diagnostics report (JSON)"
    ),
    schema_path: Optional[Path] = typer.Option(None, "--schema", help="Survey schema YAML override"),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Enable verbose logging"),
):
    """
    Parses every encoded response and writes the tidy table plus its diagnostics.
    """
    setup_logging(verbose)
    logger.info(f"Starting tidy run. Input: {input_path}")

    try:
        schema = load_schema(schema_path or settings.paths.schema_path)
        frame = load_raw_table(input_path)
    except SurveyTidyError as e:
        logger.critical(f"Failed to load inputs: {e}")
        raise typer.Exit(code=1)

    result = TidyPipeline(schema).run(frame)

    exporter = TableExporter()
    exporter.export_table(result.table, output_path)
    exporter.export_diagnostics(result.diagnostics, diagnostics_path)

    summary = result.diagnostics.summary()
    for key, value in summary.items():
        typer.echo(f"{key}: {value}")
    if result.diagnostics.failed_records:
        logger.warning(f"{result.diagnostics.failed_records} record(s) could not be recovered, see {diagnostics_path}")


@app.command()
def inspect(
    input_path: Path = typer.Option(settings.paths.input_path, "--input", "-i", help="Raw export (CSV or xlsx)"),
    occasion: str = typer.Option("pre", help="Which test block to inspect (pre|post)"),
    left: Optional[str] = typer.Option(None, help="Left field of the cross-tabulation"),
    right: Optional[str] = typer.Option(None, help="Right field of the cross-tabulation"),
    schema_path: Optional[Path] = typer.Option(None, "--schema", help="Survey schema YAML override"),
):
    """
    Shows the naive positional assignment: field counts, an adjacent-field
    cross-tabulation and which field the data says was skipped.
    """
    setup_logging(False)
    try:
        schema = load_schema(schema_path or settings.paths.schema_path)
        frame = load_raw_table(input_path)
    except SurveyTidyError as e:
        logger.critical(f"Failed to load inputs: {e}")
        raise typer.Exit(code=1)

    rows = []
    for raw in to_raw_records(frame):
        try:
            chunks = chunker.chunk_record(raw)
        except SurveyTidyError as e:
            typer.echo(f"skipped {raw.record_id}: {e}")
            continue
        rows.append((raw.record_id, chunks.scalars(occasion)))

    naive = recovery.naive_frame(rows, schema)
    typer.echo("Observed field counts:")
    typer.echo(naive["observed_count"].value_counts().sort_index().to_string())

    rule = schema.short_rule()
    names = schema.occasion_names
    left = left or (rule.optional_field if rule else names[-2])
    if left not in names or (right is None and left == names[-1]):
        raise typer.BadParameter(f"--left must be one of {names[:-1]}")
    right = right or names[names.index(left) + 1]
    if right not in names:
        raise typer.BadParameter(f"--right must be one of {names}")
    typer.echo(f"\n{left} x {right}:")
    typer.echo(recovery.crosstab_adjacent(naive, left, right).to_string())

    inferred = recovery.infer_optional_field(naive, schema)
    typer.echo(f"\nInferred optional field: {inferred}")
    typer.echo(f"Declared optional field: {rule.optional_field if rule else None}")


if __name__ == "__main__":
    app()

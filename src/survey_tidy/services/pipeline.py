import logging
from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Tuple

import pandas as pd

from survey_tidy.config import InputSettings, settings
from survey_tidy.data.dto import (
    MISSING,
    ChunkedRecord,
    DiagnosticsReport,
    FieldSet,
    RawRecord,
    ShortByOne,
    TidyRecord,
)
from survey_tidy.data.loader import to_raw_records
from survey_tidy.exceptions import AlignmentError, DomainViolation, StructuralMismatchError
from survey_tidy.logic import chunker, coercion, consistency, recovery
from survey_tidy.schema import SurveySchema, load_schema

logger = logging.getLogger(__name__)


@dataclass
class TidyResult:
    table: pd.DataFrame
    diagnostics: DiagnosticsReport
    records: List[TidyRecord]


class TidyPipeline:
    """
    Runs every raw row through chunk -> recover -> coerce -> derive -> consistency.
    Row-level failures are isolated: the row still yields a TidyRecord (all MISSING,
    status naming the failure) and the error lands in the diagnostics report.
    """

    def __init__(self, schema: Optional[SurveySchema] = None, input_settings: Optional[InputSettings] = None):
        self.schema = schema or load_schema(settings.paths.schema_path)
        self.input_settings = input_settings or settings.input

    def run(self, frame: pd.DataFrame) -> TidyResult:
        raw_records = to_raw_records(frame, self.input_settings)
        report = DiagnosticsReport(total_records=len(raw_records))
        short_rule = self.schema.short_rule()
        report.declared_optional_field = short_rule.optional_field if short_rule else None

        chunked: List[ChunkedRecord] = []
        records: List[TidyRecord] = []
        for raw in raw_records:
            record, chunks = self.process(raw, report)
            records.append(record)
            if chunks is not None:
                chunked.append(chunks)

        self._check_declared_rule(chunked, report)

        _, counts = consistency.consistency_frame(records, self.schema.consistency_fields)
        report.mismatch_counts = {name: int(n) for name, n in counts.items()}

        table = self.to_frame(records)
        logger.info("tidy run complete", extra=report.summary())
        return TidyResult(table=table, diagnostics=report, records=records)

    def process(self, raw: RawRecord, report: DiagnosticsReport) -> Tuple[TidyRecord, Optional[ChunkedRecord]]:
        """Process one row. Returns the record and its chunks (None when chunking failed)."""
        try:
            chunks = chunker.chunk_record(raw)
        except StructuralMismatchError as e:
            logger.warning(f"Structural mismatch on record {raw.record_id}: {e}")
            report.structural_errors.append(e)
            report.chunk_log.append({
                "record_id": raw.record_id,
                "stage": e.stage,
                "count": e.actual,
                "expected": list(e.expected),
                "remainder": e.remainder,
            })
            return self._failed(raw.record_id, "structural_error"), None

        for chunk in chunks.chunks:
            entry = chunk.log_entry()
            entry["record_id"] = raw.record_id
            report.chunk_log.append(entry)

        try:
            record = self._build(chunks, report)
        except StructuralMismatchError as e:
            logger.warning(f"Structural mismatch on record {raw.record_id}: {e}")
            report.structural_errors.append(e)
            return self._failed(raw.record_id, "structural_error"), chunks
        except AlignmentError as e:
            logger.warning(f"Alignment failed on record {raw.record_id}: {e}")
            report.alignment_errors.append(e)
            return self._failed(raw.record_id, "alignment_error"), chunks
        return record, chunks

    def _build(self, chunks: ChunkedRecord, report: DiagnosticsReport) -> TidyRecord:
        rid = chunks.record_id
        schema = self.schema
        specs = schema.specs()
        violations: List[DomainViolation] = []
        recoveries: List[Dict[str, Any]] = []

        occasions: Dict[str, FieldSet] = {}
        for occasion in schema.occasions:
            result = recovery.align_scalars(chunks.scalars(occasion), occasion, schema)
            fieldset = recovery.recover(result, record_id=rid, occasion=occasion)
            if isinstance(result, ShortByOne):
                recoveries.append({"record_id": rid, "occasion": occasion, "missing_field": result.missing_field})
            typed, found = coercion.coerce_fieldset(fieldset, specs, rid, schema.missing_tokens)
            self._check_exclusive(typed, rid)
            occasions[occasion] = typed
            violations.extend(found)

        cont_result = recovery.align_continuation(chunks.continuation, schema)
        cont_fields = recovery.recover(cont_result, record_id=rid, occasion="continuation")
        cont_typed, found = coercion.coerce_fieldset(cont_fields, schema.continuation_specs(), rid, schema.missing_tokens)
        violations.extend(found)

        texts = {
            occasion: chunker.parse_text_block(chunks.text(occasion), f"{occasion}_text", rid)
            for occasion in schema.occasions
        }
        dates = {}
        for occasion, stamp in zip(schema.occasions, chunks.stamps):
            try:
                dates[occasion] = coercion.coerce_value(stamp, schema.date_field, schema.missing_tokens)
            except DomainViolation as e:
                violations.append(e.with_context(rid, occasion))
                dates[occasion] = stamp.strip()

        pre, post = occasions["pre"], occasions["post"]
        flags = consistency.check_consistency(pre, post, schema.consistency_fields)

        # Only a fully built record touches the report.
        report.recoveries.extend(recoveries)
        report.domain_violations.extend(violations)
        report.consistency_mismatches.extend(
            consistency.mismatches(rid, pre, post, schema.consistency_fields)
        )
        return TidyRecord(
            record_id=rid,
            status="ok",
            pre=pre,
            post=post,
            continuation=cont_typed,
            pre_date=dates.get("pre", MISSING),
            post_date=dates.get("post", MISSING),
            pre_text=texts["pre"],
            post_text=texts["post"],
            consistency=tuple(flags.items()),
        )

    def _check_exclusive(self, fieldset: FieldSet, record_id: Any) -> None:
        """After recovery the optional field and the anchor field are never both missing."""
        rule = self.schema.short_rule()
        if rule is None:
            return
        if fieldset.is_missing(rule.optional_field) and fieldset.is_missing(rule.anchor_field):
            raise AlignmentError(
                f"{fieldset.occasion}: {rule.optional_field} and {rule.anchor_field} are both missing",
                record_id=record_id,
                occasion=fieldset.occasion,
            )

    def _failed(self, record_id: Any, status: str) -> TidyRecord:
        names = self.schema.occasion_names
        return TidyRecord(
            record_id=record_id,
            status=status,
            pre=FieldSet.empty("pre", names),
            post=FieldSet.empty("post", names),
            continuation=FieldSet.empty("continuation", self.schema.continuation_names),
        )

    def _check_declared_rule(self, chunked: List[ChunkedRecord], report: DiagnosticsReport) -> None:
        rows = [
            (c.record_id, c.scalars(occasion))
            for c in chunked
            for occasion in self.schema.occasions
        ]
        if not rows:
            return
        naive = recovery.naive_frame(rows, self.schema)
        inferred = recovery.infer_optional_field(naive, self.schema)
        report.inferred_optional_field = inferred
        if not report.optional_field_confirmed:
            logger.warning(
                f"Observed data points at '{inferred}' as the skipped field, "
                f"recovery rules declare '{report.declared_optional_field}'"
            )

    def to_frame(self, records: List[TidyRecord]) -> pd.DataFrame:
        rows = [
            {key: (pd.NA if value is MISSING else value) for key, value in
             r.to_row(text_field=self.schema.text_field, date_field=self.schema.date_field.name).items()}
            for r in records
        ]
        frame = pd.DataFrame(rows, columns=self._columns())
        return self._type_columns(frame)

    def _columns(self) -> List[str]:
        schema = self.schema
        columns = ["id", "status"]
        for occasion in schema.occasions:
            columns += [f"{name}_{occasion}" for name in schema.occasion_names]
            columns += [f"{schema.text_field}_{occasion}", f"{schema.date_field.name}_{occasion}"]
        columns += schema.continuation_names
        columns += [f"consistent_{name}" for name in schema.consistency_fields]
        return columns

    def _type_columns(self, frame: pd.DataFrame) -> pd.DataFrame:
        """Nullable Int64 for integer fields whose values all coerced cleanly."""
        int_fields = [f.name for f in self.schema.occasion_fields + self.schema.continuation_fields if f.kind == "int"]
        for column in frame.columns:
            base = column.rsplit("_", 1)[0] if column.endswith(tuple(f"_{o}" for o in self.schema.occasions)) else column
            if base not in int_fields:
                continue
            values = frame[column].dropna()
            if all(isinstance(v, int) and not isinstance(v, bool) for v in values):
                frame[column] = frame[column].astype("Int64")
        for name in self.schema.consistency_fields:
            frame[f"consistent_{name}"] = frame[f"consistent_{name}"].astype("boolean")
        return frame

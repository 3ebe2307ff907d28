import json
import logging
from pathlib import Path
from typing import Optional

import pandas as pd
from openpyxl.utils import get_column_letter

from survey_tidy.config import ExportSettings, settings
from survey_tidy.data.dto import DiagnosticsReport

logger = logging.getLogger(__name__)


class TableExporter:
    """
    Writes the tidy table (CSV or xlsx) and the diagnostics report (JSON).
    Text-response tuples are joined for flat files; missing values stay empty.
    """

    def __init__(self, export_settings: Optional[ExportSettings] = None):
        self.settings = export_settings or settings.export

    def flatten(self, table: pd.DataFrame) -> pd.DataFrame:
        flat = table.copy()
        for column in flat.columns:
            if flat[column].map(lambda v: isinstance(v, tuple)).any():
                flat[column] = flat[column].map(
                    lambda v: self.settings.text_joiner.join(v) if isinstance(v, tuple) else v
                )
        return flat

    def export_table(self, table: pd.DataFrame, path: Path, fmt: Optional[str] = None) -> Path:
        fmt = (fmt or self._format_for(path)).lower()
        path.parent.mkdir(parents=True, exist_ok=True)
        flat = self.flatten(table)

        if fmt == "xlsx":
            with pd.ExcelWriter(path, engine="openpyxl") as writer:
                flat.to_excel(writer, index=False, sheet_name="tidy")
                _autosize(writer.sheets["tidy"])
        elif fmt == "csv":
            flat.to_csv(path, index=False, encoding="utf-8")
        else:
            raise ValueError(f"Unsupported export format: {fmt}")

        logger.info(f"Tidy table written to {path} ({len(flat)} rows, {len(flat.columns)} columns)")
        return path

    def export_diagnostics(self, report: DiagnosticsReport, path: Path) -> Path:
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(
            json.dumps(report.to_dict(), ensure_ascii=False, indent=2, default=str),
            encoding="utf-8",
        )
        logger.info(f"Diagnostics written to {path}")
        return path

    def _format_for(self, path: Path) -> str:
        if path.suffix.lower() == ".xlsx":
            return "xlsx"
        if path.suffix.lower() == ".csv":
            return "csv"
        return self.settings.format


def _autosize(ws):
    for col in ws.columns:
        max_len = 0
        col_letter = get_column_letter(col[0].column)
        for cell in col:
            if cell.value is None:
                continue
            max_len = max(max_len, len(str(cell.value)))
        ws.column_dimensions[col_letter].width = min(max(10, max_len + 2), 60)

import logging
from pathlib import Path
from typing import List, Optional

import pandas as pd

from survey_tidy.config import InputSettings, settings
from survey_tidy.data.dto import RawRecord
from survey_tidy.exceptions import DataSourceError

logger = logging.getLogger(__name__)


def load_raw_table(file_path: Path, input_settings: Optional[InputSettings] = None) -> pd.DataFrame:
    """
    Reads the raw export (CSV or xlsx) into the two-column frame the pipeline expects.
    Every value is read as a string so ids and zip codes keep their leading zeros.
    """
    input_settings = input_settings or settings.input
    if not file_path.exists():
        logger.error(f"Input file not found: {file_path}")
        raise DataSourceError(f"Input file not found: {file_path}")

    logger.info(f"Loading raw responses from {file_path}")
    try:
        if file_path.suffix.lower() in (".xlsx", ".xlsm"):
            frame = pd.read_excel(
                file_path,
                sheet_name=input_settings.sheet_name or 0,
                dtype=str,
                keep_default_na=False,
                engine="openpyxl",
            )
        else:
            frame = pd.read_csv(file_path, dtype=str, keep_default_na=False, encoding="utf-8")
    except (OSError, ValueError) as e:
        raise DataSourceError(f"Failed to read {file_path}: {e}") from e

    frame.columns = frame.columns.astype(str).str.strip()
    validate_raw_table(frame, input_settings)
    logger.info(f"Loaded {len(frame)} raw rows from {file_path.name}")
    return frame


def validate_raw_table(frame: pd.DataFrame, input_settings: Optional[InputSettings] = None) -> None:
    input_settings = input_settings or settings.input
    expected = [input_settings.id_column, input_settings.encoded_column]
    if list(frame.columns) != expected:
        raise DataSourceError(f"Expected exactly the columns {expected}, got {list(frame.columns)}")

    ids = frame[input_settings.id_column]
    duplicated = ids[ids.duplicated()].tolist()
    if duplicated:
        raise DataSourceError(f"Duplicate record ids: {duplicated[:10]}")


def to_raw_records(frame: pd.DataFrame, input_settings: Optional[InputSettings] = None) -> List[RawRecord]:
    input_settings = input_settings or settings.input
    validate_raw_table(frame, input_settings)
    return [
        RawRecord(record_id=rid, encoded=encoded if isinstance(encoded, str) else "")
        for rid, encoded in zip(frame[input_settings.id_column], frame[input_settings.encoded_column])
    ]

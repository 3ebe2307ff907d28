from typing import Dict, Iterable, List, Sequence, Tuple

import pandas as pd

from survey_tidy.data.dto import FieldSet, TidyRecord
from survey_tidy.exceptions import ConsistencyMismatch


def check_field(pre: FieldSet, post: FieldSet, field: str) -> bool:
    """Demographics are collected twice; both occasions must agree. Two MISSING values agree."""
    return pre.get(field) == post.get(field)


def check_consistency(pre: FieldSet, post: FieldSet, fields: Iterable[str]) -> Dict[str, bool]:
    return {field: check_field(pre, post, field) for field in fields}


def mismatches(record_id, pre: FieldSet, post: FieldSet, fields: Iterable[str]) -> List[ConsistencyMismatch]:
    found = []
    for field, ok in check_consistency(pre, post, fields).items():
        if not ok:
            found.append(
                ConsistencyMismatch(
                    f"{field} differs between occasions",
                    record_id=record_id,
                    field=field,
                    pre=pre.get(field),
                    post=post.get(field),
                )
            )
    return found


def consistency_frame(records: Sequence[TidyRecord], fields: Sequence[str]) -> Tuple[pd.DataFrame, pd.Series]:
    """Per-record boolean flags plus mismatch counts per field. Only `ok` records are compared."""
    rows = []
    for record in records:
        if record.status != "ok":
            continue
        row = {"id": record.record_id}
        row.update(check_consistency(record.pre, record.post, fields))
        rows.append(row)
    frame = pd.DataFrame(rows, columns=["id"] + list(fields)).set_index("id")
    frame = frame.astype(bool)
    counts = (~frame).sum().astype(int)
    return frame, counts

"""
Splits the single encoded response string into its nested sections.

Layout of one encoded value (brackets nest one split inside another, so the
splits run in a fixed order: `]` first, then `[` inside the two test blocks,
then `,` inside every scalar list):

    [[<pre scalars>[<pre text>]<continuation>][[<post scalars>[<post text>]<stamps>]

Free text is wrapped in `|...|` and may contain any delimiter; nothing inside a
wrapper is ever split.
"""
import logging
import re
from dataclasses import dataclass
from typing import Any, List, Optional, Tuple

from survey_tidy.data.dto import MISSING, Chunk, ChunkedRecord, RawRecord
from survey_tidy.exceptions import StructuralMismatchError

logger = logging.getLogger(__name__)

WRAPPER = "|"
_RESPONSE_RE = re.compile(r"\|([^|]*)\|")


@dataclass(frozen=True)
class SplitDirective:
    delimiter: str
    expected: Optional[Tuple[int, ...]] = None  # None: piece count is resolved by the recoverer
    allow_remainder: bool = False  # one trailing delimiter may close the string


SECTIONS = SplitDirective("]", expected=(4,), allow_remainder=True)
TEST_BLOCK = SplitDirective("[", expected=(4,))
SCALARS = SplitDirective(",")
CONTINUATION = SplitDirective(",")
STAMPS = SplitDirective(",", expected=(2,))


def split_outside(text: str, delimiter: str, wrapper: str = WRAPPER) -> List[str]:
    """Split on `delimiter`, ignoring every occurrence inside a wrapper pair."""
    pieces: List[str] = []
    current: List[str] = []
    wrapped = False
    for ch in text:
        if ch == wrapper:
            wrapped = not wrapped
            current.append(ch)
        elif ch == delimiter and not wrapped:
            pieces.append("".join(current))
            current = []
        else:
            current.append(ch)
    pieces.append("".join(current))
    return pieces


def split_chunk(text: str, directive: SplitDirective, stage: str, record_id: Any = None) -> Chunk:
    """
    Apply one split and validate the piece count.
    Raises StructuralMismatchError with the observed count and the leftover text.
    """
    if text.count(WRAPPER) % 2:
        raise StructuralMismatchError(
            f"{stage}: unbalanced '{WRAPPER}' text wrapper",
            record_id=record_id,
            stage=stage,
            actual=0,
            expected=directive.expected,
            remainder=text,
        )

    pieces = split_outside(text, directive.delimiter)
    remainder = None
    if directive.allow_remainder and len(pieces) > 1 and pieces[-1] == "":
        trimmed = len(pieces) - 1
        if directive.expected is None or trimmed in directive.expected:
            pieces.pop()
            remainder = directive.delimiter

    if directive.expected is not None and len(pieces) not in directive.expected:
        limit = max(directive.expected)
        leftover = directive.delimiter.join(pieces[limit:])
        raise StructuralMismatchError(
            f"{stage}: expected {list(directive.expected)} pieces on '{directive.delimiter}', got {len(pieces)}",
            record_id=record_id,
            stage=stage,
            actual=len(pieces),
            expected=directive.expected,
            remainder=leftover,
        )

    return Chunk(
        stage=stage,
        delimiter=directive.delimiter,
        pieces=tuple(pieces),
        expected=directive.expected,
        remainder=remainder,
    )


def _split_test_block(text: str, occasion: str, record_id: Any) -> Chunk:
    chunk = split_chunk(text, TEST_BLOCK, f"{occasion}_block", record_id)
    markers = chunk.pieces[:2]
    if any(m.strip() for m in markers):
        raise StructuralMismatchError(
            f"{occasion}_block: leading markers are not empty",
            record_id=record_id,
            stage=f"{occasion}_block",
            actual=len(chunk.pieces),
            expected=TEST_BLOCK.expected,
            remainder=TEST_BLOCK.delimiter.join(markers),
        )
    return chunk


def chunk_record(raw: RawRecord) -> ChunkedRecord:
    rid = raw.record_id
    encoded = raw.encoded.strip() if isinstance(raw.encoded, str) else ""

    sections = split_chunk(encoded, SECTIONS, "sections", rid)
    pre_text, continuation_text, post_text, stamp_text = sections.pieces

    pre_block = _split_test_block(pre_text, "pre", rid)
    post_block = _split_test_block(post_text, "post", rid)
    pre_scalars = split_chunk(pre_block.pieces[2], SCALARS, "pre_scalars", rid)
    post_scalars = split_chunk(post_block.pieces[2], SCALARS, "post_scalars", rid)
    continuation = split_chunk(continuation_text, CONTINUATION, "continuation", rid)
    stamps = split_chunk(stamp_text, STAMPS, "stamps", rid)

    chunks = (sections, pre_block, pre_scalars, continuation, post_block, post_scalars, stamps)
    logger.debug(
        "chunked record",
        extra={"record_id": rid, "counts": {c.stage: len(c.pieces) for c in chunks}},
    )
    return ChunkedRecord(
        record_id=rid,
        pre_scalars=pre_scalars.pieces,
        pre_text=pre_block.pieces[3],
        continuation=continuation.pieces,
        post_scalars=post_scalars.pieces,
        post_text=post_block.pieces[3],
        stamps=stamps.pieces,
        chunks=chunks,
    )


def parse_text_block(text: str, stage: str = "text", record_id: Any = None):
    """
    `|first, answer||second|` -> ("first, answer", "second").
    An empty block is MISSING; text outside the wrappers is a structural error.
    """
    leftover = _RESPONSE_RE.sub("", text).strip()
    if leftover:
        raise StructuralMismatchError(
            f"{stage}: text outside '{WRAPPER}' wrappers",
            record_id=record_id,
            stage=stage,
            actual=len(_RESPONSE_RE.findall(text)),
            remainder=leftover,
        )
    responses = tuple(r.strip() for r in _RESPONSE_RE.findall(text) if r.strip())
    return responses or MISSING

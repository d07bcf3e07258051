"""Decode JSONL transcript text into typed entries."""
from __future__ import annotations

import json
import logging
from collections.abc import Iterator
from pathlib import Path

from pydantic import ValidationError

from convtree import observability
from convtree.errors import MalformedLineError
from convtree.models import ENTRY_ADAPTER, DecodedEntry, ParseFailure

logger = logging.getLogger("convtree.parser")


def _failure_reason(exc: ValidationError) -> str:
    errors = exc.errors(include_url=False)
    if not errors:
        return "validation failed"
    first = errors[0]
    location = ".".join(str(part) for part in first.get("loc", ()))
    message = first.get("msg", "invalid")
    suffix = f" (+{len(errors) - 1} more)" if len(errors) > 1 else ""
    return f"{location}: {message}{suffix}" if location else f"{message}{suffix}"


def decode_line(line: str, line_number: int, *, session_id: str = "") -> DecodedEntry:
    """Decode one non-blank line, keeping ``line`` verbatim on a ``ParseFailure``.

    Raises ``MalformedLineError`` when the line is not JSON at all. Any JSON
    value that no entry model accepts comes back as a ``ParseFailure``.
    """
    try:
        record = json.loads(line)
    except json.JSONDecodeError as exc:
        raise MalformedLineError(line_number, line, exc.msg) from exc

    if not isinstance(record, dict):
        reason = f"expected a JSON object, got {type(record).__name__}"
    else:
        try:
            return ENTRY_ADAPTER.validate_python(record)
        except ValidationError as exc:
            reason = _failure_reason(exc)

    logger.debug("Unrecognized entry at line %s (session=%s): %s", line_number, session_id or "-", reason)
    observability.record_parser_failure("jsonl")
    return ParseFailure(lineNumber=line_number, line=line, reason=reason)


def iter_jsonl(text: str, *, session_id: str = "") -> Iterator[DecodedEntry]:
    """Yield decoded entries one line at a time.

    Blank and whitespace-only lines are skipped but still counted, so
    ``ParseFailure.lineNumber`` is the 1-based position in ``text``. Entries
    before a malformed line are yielded before ``MalformedLineError`` raises.
    """
    for index, raw_line in enumerate(text.split("\n"), start=1):
        if not raw_line.strip():
            continue
        yield decode_line(raw_line.rstrip("\r"), index, session_id=session_id)


def parse_jsonl(text: str, *, session_id: str = "") -> list[DecodedEntry]:
    """Decode a whole log.

    A malformed line aborts the call: nothing is returned for the lines that
    decoded before it.
    """
    entries = list(iter_jsonl(text, session_id=session_id))
    failures = sum(1 for entry in entries if isinstance(entry, ParseFailure))
    if failures:
        logger.info("Decoded %s entries with %s unrecognized lines (session=%s)", len(entries), failures, session_id or "-")
    return entries


def parse_jsonl_file(path: Path, *, session_id: str = "") -> list[DecodedEntry]:
    """Decode a UTF-8 log file. Bytes that are not UTF-8 raise ``MalformedLineError``."""
    data = path.read_bytes()
    try:
        text = data.decode("utf-8")
    except UnicodeDecodeError as exc:
        line_number = data.count(b"\n", 0, exc.start) + 1
        line_start = data.rfind(b"\n", 0, exc.start) + 1
        line_end = data.find(b"\n", exc.start)
        bad_line = data[line_start : line_end if line_end != -1 else len(data)]
        raise MalformedLineError(
            line_number,
            bad_line.decode("utf-8", errors="replace").rstrip("\r"),
            f"invalid UTF-8 at byte {exc.start}",
        ) from exc
    return parse_jsonl(text, session_id=session_id or path.stem)
